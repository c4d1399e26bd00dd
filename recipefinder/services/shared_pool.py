"""Community pool of previously generated recipes.

Every generated recipe is written here together with the ingredient
combination it was generated for. Lookups match that combination against a
new query ("contains all" first, then "overlap >= threshold") and score the
candidates with the MatchScorer. Only entitled users read from the pool.
"""

import asyncio
import logging
import math
from typing import Callable, Iterable, Optional

from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..core.background import BackgroundRunner
from ..db import SessionLocal, db_errors
from ..models import PooledRecipe, PooledRecipeIngredient
from ..schemas import IngredientSet, MatchBundle, Recipe
from ..settings import settings
from .match_scorer import MatchScorer

logger = logging.getLogger("recipefinder.pool")

EXACT_POPULARITY_INCREMENT = 1.0
NEAR_POPULARITY_INCREMENT = 0.5


def recipe_from_row(row: PooledRecipe) -> Optional[Recipe]:
    """Validate a pool row into a Recipe. Broken rows are skipped, not fatal."""
    try:
        return Recipe.model_validate({
            "id": row.id,
            "name": row.name,
            "description": row.description,
            "ingredients": row.ingredients or [],
            "instructions": row.instructions or [],
            "preparation_time": row.preparation_time,
            "servings": row.servings,
            "difficulty": row.difficulty,
            "category": row.category,
            "image_url": row.image_url,
            "tips": row.tips,
            "popularity_score": row.popularity_score,
            "source": "shared_pool",
            "ai_generated": row.ai_generated,
        })
    except ValidationError as e:
        logger.warning(f"Skipping invalid pool recipe {row.id}: {e}")
        return None


class PoolStore:
    """Relational access to the shared pool. Synchronous; callers offload to a thread."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        candidate_limit: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.candidate_limit = candidate_limit or settings.pool_candidate_limit

    def _session(self) -> Session:
        factory = self._session_factory or SessionLocal()
        return factory()

    def _ids_with_overlap(self, db: Session, ingredients: list[str], min_overlap: int) -> list[str]:
        overlap = func.count(PooledRecipeIngredient.ingredient)
        stmt = (
            select(PooledRecipeIngredient.recipe_id)
            .where(PooledRecipeIngredient.ingredient.in_(ingredients))
            .group_by(PooledRecipeIngredient.recipe_id)
            .having(overlap >= min_overlap)
        )
        return list(db.scalars(stmt))

    def _load(self, db: Session, ids: list[str]) -> list[PooledRecipe]:
        if not ids:
            return []
        stmt = (
            select(PooledRecipe)
            .where(PooledRecipe.id.in_(ids))
            .order_by(PooledRecipe.popularity_score.desc(), PooledRecipe.created_at.desc())
            .limit(self.candidate_limit)
        )
        return list(db.scalars(stmt))

    def find_containing_all(self, ingredients: list[str]) -> list[Recipe]:
        """Pool recipes whose combination contains every query ingredient."""
        with db_errors("pool contains-all lookup"), self._session() as db:
            rows = self._load(db, self._ids_with_overlap(db, ingredients, len(set(ingredients))))
            return [r for r in map(recipe_from_row, rows) if r is not None]

    def find_overlapping(self, ingredients: list[str], min_overlap: int) -> list[Recipe]:
        """Pool recipes sharing at least `min_overlap` combination ingredients."""
        with db_errors("pool overlap lookup"), self._session() as db:
            rows = self._load(db, self._ids_with_overlap(db, ingredients, min_overlap))
            return [r for r in map(recipe_from_row, rows) if r is not None]

    def find_candidates(self, ingredients: list[str], min_overlap: int) -> list[Recipe]:
        """Contains-all matches first, then overlap matches, without duplicates."""
        seen: set[str] = set()
        candidates: list[Recipe] = []
        for recipe in self.find_containing_all(ingredients) + self.find_overlapping(ingredients, min_overlap):
            if recipe.id not in seen:
                seen.add(recipe.id)
                candidates.append(recipe)
        return candidates

    def increment_popularity(self, increments: dict[str, float]) -> None:
        """Atomic per-row increment (no read-modify-write)."""
        if not increments:
            return
        with db_errors("pool popularity increment"), self._session() as db:
            for recipe_id, amount in increments.items():
                db.execute(
                    update(PooledRecipe)
                    .where(PooledRecipe.id == recipe_id)
                    .values(popularity_score=PooledRecipe.popularity_score + amount)
                )
            db.commit()

    def add_generated(
        self,
        recipes: Iterable[Recipe],
        query: IngredientSet,
        *,
        user_id: Optional[str] = None,
        tokens_used: int = 0,
    ) -> list[Recipe]:
        """Insert generated recipes with popularity 1 and the query as their combination."""
        stored: list[Recipe] = []
        with db_errors("pool insert"), self._session() as db:
            for recipe in recipes:
                row = PooledRecipe(
                    name=recipe.name,
                    description=recipe.description,
                    ingredients=list(recipe.ingredients),
                    instructions=list(recipe.instructions),
                    preparation_time=recipe.preparation_time,
                    servings=recipe.servings,
                    difficulty=recipe.difficulty,
                    category=recipe.category,
                    image_url=recipe.image_url,
                    tips=recipe.tips,
                    popularity_score=1.0,
                    combination_key=query.key,
                    original_ingredients=list(query.items),
                    ai_generated=recipe.ai_generated,
                    tokens_used=tokens_used,
                    created_by_user_id=user_id,
                    combination=[PooledRecipeIngredient(ingredient=i) for i in query.items],
                )
                db.add(row)
                db.flush()
                stored.append(recipe.model_copy(update={"id": row.id, "popularity_score": 1.0}))
            db.commit()
        logger.info(f"Added {len(stored)} recipes to the shared pool for {query.key}")
        return stored


class SharedPoolResolver:
    source = "shared_pool"

    def __init__(
        self,
        store: PoolStore,
        scorer: MatchScorer,
        *,
        overlap_ratio: Optional[float] = None,
        background: Optional[BackgroundRunner] = None,
    ):
        self.store = store
        self.scorer = scorer
        self.overlap_ratio = overlap_ratio if overlap_ratio is not None else settings.pool_overlap_ratio
        self.background = background or BackgroundRunner("pool-popularity")

    def min_overlap(self, query: IngredientSet) -> int:
        return max(1, math.ceil(len(query.items) * self.overlap_ratio))

    async def resolve(self, query: IngredientSet, entitled: bool) -> Optional[MatchBundle]:
        if not entitled:
            # Not worth a network round trip
            logger.debug("Skipping shared pool for non-entitled caller")
            return None

        candidates = await asyncio.to_thread(
            self.store.find_candidates, list(query.items), self.min_overlap(query)
        )
        if not candidates:
            return None

        bundle = self.scorer.rank(candidates, query.items)
        if bundle.is_empty():
            return None

        logger.info(
            f"Shared pool hit for {query.key}: "
            f"{len(bundle.exact_matches)} exact, {len(bundle.near_matches)} near"
        )
        self.background.spawn(self._bump_popularity(bundle), label=f"popularity:{query.key}")
        return bundle

    async def _bump_popularity(self, bundle: MatchBundle) -> None:
        increments: dict[str, float] = {}
        for match in bundle.exact_matches:
            increments[match.recipe.id] = EXACT_POPULARITY_INCREMENT
        for match in bundle.near_matches:
            increments.setdefault(match.recipe.id, NEAR_POPULARITY_INCREMENT)
        await asyncio.to_thread(self.store.increment_popularity, increments)
