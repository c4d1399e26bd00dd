import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..schemas import IngredientSet, MatchBundle, Recipe
from ..settings import settings
from .match_scorer import MatchScorer

logger = logging.getLogger("recipefinder.static")

DEFAULT_STATIC_RECIPES_PATH = Path(__file__).resolve().parent.parent / "data" / "static_recipes.json"


def load_static_recipes(path: Optional[Path | str] = None) -> list[Recipe]:
    """Load the bundled dataset. Individual broken records are skipped."""
    path = path or settings.static_recipes_path or DEFAULT_STATIC_RECIPES_PATH
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    recipes = []
    for raw in data.get("recipes", []):
        try:
            recipes.append(Recipe.model_validate({**raw, "source": "static"}))
        except (ValidationError, TypeError) as e:
            logger.warning(f"Skipping invalid static recipe {raw!r:.60}: {e}")
    return recipes


@lru_cache(maxsize=1)
def bundled_recipes() -> tuple[Recipe, ...]:
    return tuple(load_static_recipes())


class StaticFallbackResolver:
    """Last tier. Always answers, possibly with empty partitions."""

    source = "static"

    def __init__(self, scorer: MatchScorer, recipes: Optional[list[Recipe]] = None):
        self.scorer = scorer
        self._recipes = recipes

    def recipes(self) -> list[Recipe]:
        if self._recipes is None:
            self._recipes = list(bundled_recipes())
        return self._recipes

    def resolve(self, query: IngredientSet) -> MatchBundle:
        try:
            return self.scorer.rank(self.recipes(), query.items)
        except Exception:
            logger.exception("Static dataset unavailable, returning no results")
            return MatchBundle()
