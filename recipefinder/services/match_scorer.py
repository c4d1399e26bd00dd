"""Partial ingredient matching and ranking.

A recipe ingredient counts as "matching" when it contains, is contained by,
or shares a synonym group with one of the query ingredients. Candidates are
ranked by priority and split into exact matches (nothing missing) and near
matches (something missing, but close enough to be worth showing).
"""

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

from ..schemas import IngredientSuggestion, MatchBundle, MatchResult, Recipe
from ..settings import settings
from .ingredient_normalize import normalize_ingredient

logger = logging.getLogger("recipefinder.scoring")

DEFAULT_VOCABULARY_PATH = Path(__file__).resolve().parent.parent / "data" / "vocabulary.json"

MAX_EXACT_MATCHES = 15
MAX_NEAR_MATCHES = 25

# Near-match admission
NEAR_MIN_RATIO = 0.3
NEAR_MIN_MATCHING = 2
NEAR_MAX_MISSING = 3

# Missing-ingredient suggestions
MAX_SUGGESTIONS = 10
SUGGEST_STAPLE_WEIGHT = 0.5
SUGGEST_OTHER_WEIGHT = 2.0


@dataclass(frozen=True)
class ScoringVocabulary:
    synonym_groups: tuple[frozenset[str], ...] = ()
    basic_ingredients: frozenset[str] = field(default_factory=frozenset)
    basic_bonus: float = 2.0

    @classmethod
    def from_dict(cls, data: dict) -> "ScoringVocabulary":
        groups = tuple(
            frozenset(normalize_ingredient(i) for i in group)
            for group in data.get("synonym_groups", [])
        )
        basics = frozenset(normalize_ingredient(i) for i in data.get("basic_ingredients", []))
        return cls(
            synonym_groups=groups,
            basic_ingredients=basics,
            basic_bonus=float(data.get("basic_bonus", 2.0)),
        )

    @classmethod
    def from_file(cls, path: Path | str) -> "ScoringVocabulary":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def are_synonyms(self, a: str, b: str) -> bool:
        return any(a in group and b in group for group in self.synonym_groups)

    def is_basic(self, ingredient: str) -> bool:
        return ingredient in self.basic_ingredients


@lru_cache(maxsize=1)
def default_vocabulary() -> ScoringVocabulary:
    path = settings.vocabulary_path or DEFAULT_VOCABULARY_PATH
    return ScoringVocabulary.from_file(path)


def is_near_match(matching_count: int, missing_count: int, match_ratio: float) -> bool:
    return matching_count >= 1 and (
        match_ratio >= NEAR_MIN_RATIO
        or matching_count >= NEAR_MIN_MATCHING
        or missing_count <= NEAR_MAX_MISSING
    )


class MatchScorer:
    def __init__(self, vocabulary: Optional[ScoringVocabulary] = None):
        self.vocabulary = vocabulary or default_vocabulary()

    def ingredient_matches(self, recipe_ingredient: str, query: Iterable[str]) -> bool:
        return any(
            q in recipe_ingredient
            or recipe_ingredient in q
            or self.vocabulary.are_synonyms(recipe_ingredient, q)
            for q in query
        )

    def score(self, recipe: Recipe, query: Iterable[str]) -> MatchResult:
        """Annotate one recipe against the (normalized) query."""
        query = [q for q in query if q]
        ingredients = [normalize_ingredient(i) for i in recipe.ingredients]
        ingredients = [i for i in ingredients if i]

        matching = [i for i in ingredients if self.ingredient_matches(i, query)]
        missing = [i for i in ingredients if i not in matching]

        matching_count = len(matching)
        missing_count = len(missing)
        match_ratio = matching_count / len(ingredients) if ingredients else 0.0

        priority = matching_count * 10
        priority += match_ratio * 5
        priority -= missing_count * 0.5
        # Staples only nudge the ranking
        if any(self.vocabulary.is_basic(i) for i in matching):
            priority += self.vocabulary.basic_bonus

        return MatchResult(
            recipe=recipe.model_copy(update={"missing_ingredients": missing}),
            matching_count=matching_count,
            missing_count=missing_count,
            match_ratio=match_ratio,
            priority=priority,
        )

    def rank(self, recipes: Iterable[Recipe], query: Iterable[str], *, admit_all: bool = False) -> MatchBundle:
        """Score, sort and split candidates.

        With `admit_all`, every candidate is kept: anything that is not an exact
        match lands in the near list regardless of the near-match filter.
        """
        query = list(query)
        scored = [self.score(r, query) for r in recipes]
        if not admit_all:
            scored = [m for m in scored if m.matching_count > 0]
        scored.sort(key=lambda m: m.priority, reverse=True)

        exact: list[MatchResult] = []
        near: list[MatchResult] = []
        for match in scored:
            if match.missing_count == 0:
                exact.append(match)
            elif admit_all or is_near_match(match.matching_count, match.missing_count, match.match_ratio):
                near.append(match)

        logger.debug(
            "Ranked %d candidates: %d exact, %d near", len(scored), len(exact), len(near)
        )
        return MatchBundle(
            exact_matches=exact[:MAX_EXACT_MATCHES],
            near_matches=near[:MAX_NEAR_MATCHES],
        )

    def suggest_missing(
        self, bundle: MatchBundle, query: Iterable[str], limit: int = MAX_SUGGESTIONS
    ) -> list[IngredientSuggestion]:
        """Ingredients worth buying: the ones missing across the returned matches.

        Each recipe that needs an ingredient adds 1, plus a weight that favors
        non-staples over staples.
        """
        have = {normalize_ingredient(q) for q in query}
        recipes_by_ingredient: dict[str, list[str]] = {}
        priorities: dict[str, float] = {}

        for match in [*bundle.exact_matches, *bundle.near_matches]:
            for ingredient in match.recipe.missing_ingredients or []:
                ingredient = normalize_ingredient(ingredient)
                if not ingredient or ingredient in have:
                    continue
                names = recipes_by_ingredient.setdefault(ingredient, [])
                if match.recipe.name not in names:
                    names.append(match.recipe.name)
                weight = SUGGEST_STAPLE_WEIGHT if self.vocabulary.is_basic(ingredient) else SUGGEST_OTHER_WEIGHT
                priorities[ingredient] = priorities.get(ingredient, 0.0) + 1 + weight

        ranked = sorted(priorities, key=lambda i: priorities[i], reverse=True)
        return [
            IngredientSuggestion(ingredient=i, recipes=recipes_by_ingredient[i], priority=priorities[i])
            for i in ranked[:limit]
        ]
