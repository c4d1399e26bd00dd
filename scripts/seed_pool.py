"""Seed the shared pool from a recipe JSON file (defaults to the bundled static set).

Usage: python scripts/seed_pool.py [path/to/recipes.json]
"""
import sys
import os

# Add project root to sys.path
sys.path.append(os.path.join(os.path.dirname(__file__), "../"))

from recipefinder.db import init_db
from recipefinder.errors import InvalidQuery, ResolverError
from recipefinder.services.ingredient_normalize import normalize_ingredients
from recipefinder.services.shared_pool import PoolStore
from recipefinder.services.static_fallback import load_static_recipes
from recipefinder.settings import settings


def seed_pool(path=None):
    print(f"Connecting to {settings.database_url}...")
    init_db()
    store = PoolStore()

    recipes = load_static_recipes(path)
    print(f"Loaded {len(recipes)} recipes.")

    seeded = 0
    for recipe in recipes:
        try:
            query = normalize_ingredients(recipe.ingredients)
        except InvalidQuery:
            print(f"Skipping '{recipe.name}': no ingredients")
            continue
        try:
            store.add_generated([recipe], query)
        except ResolverError as e:
            print(f"Error seeding '{recipe.name}': {e}")
            sys.exit(1)
        seeded += 1
        print(f"Seeded '{recipe.name}' ({query.key})")

    print(f"Seed complete: {seeded} recipes.")


if __name__ == "__main__":
    seed_pool(sys.argv[1] if len(sys.argv) > 1 else None)
