import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db import SessionLocal, db_errors
from ..models import GenerationCacheEntry
from ..schemas import IngredientSet, MatchBundle, Recipe
from ..settings import settings
from .match_scorer import MatchScorer

logger = logging.getLogger("recipefinder.generation_cache")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationCacheStore:
    """Hash-keyed generation outputs. Expiry is fixed at write time."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory = session_factory
        self.clock = clock or utcnow

    def _session(self) -> Session:
        factory = self._session_factory or SessionLocal()
        return factory()

    def get(self, key: str) -> Optional[list[Recipe]]:
        now = self.clock()
        with db_errors("generation cache read"), self._session() as db:
            row = db.scalar(
                select(GenerationCacheEntry).where(
                    GenerationCacheEntry.combination_key == key,
                    GenerationCacheEntry.expires_at > now,
                )
            )
            if row is None:
                return None
            raw_recipes = list(row.recipes or [])

        recipes = []
        for raw in raw_recipes:
            try:
                recipes.append(Recipe.model_validate({**raw, "source": "generation_cache"}))
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipping invalid cached recipe for {key}: {e}")
        return recipes

    def put(self, query: IngredientSet, recipes: Iterable[Recipe], *, tokens_used: int = 0, ttl_days: Optional[int] = None) -> None:
        now = self.clock()
        ttl_days = ttl_days if ttl_days is not None else settings.generation_cache_ttl_days
        payload = [r.model_dump(mode="json") for r in recipes]
        with db_errors("generation cache write"), self._session() as db:
            row = db.get(GenerationCacheEntry, query.key)
            if row is None:
                row = GenerationCacheEntry(combination_key=query.key)
                db.add(row)
            row.ingredients = list(query.items)
            row.recipes = payload
            row.tokens_used = tokens_used
            row.created_at = now
            row.expires_at = now + timedelta(days=ttl_days)
            db.commit()

    def purge_expired(self) -> int:
        now = self.clock()
        with db_errors("generation cache purge"), self._session() as db:
            result = db.execute(
                delete(GenerationCacheEntry).where(GenerationCacheEntry.expires_at <= now)
            )
            db.commit()
            return result.rowcount or 0


class GenerationCacheResolver:
    source = "generation_cache"

    def __init__(self, store: GenerationCacheStore, scorer: MatchScorer):
        self.store = store
        self.scorer = scorer

    async def resolve(self, query: IngredientSet) -> Optional[MatchBundle]:
        recipes = await asyncio.to_thread(self.store.get, query.key)
        if not recipes:
            return None
        bundle = self.scorer.rank(recipes, query.items)
        if bundle.is_empty():
            return None
        logger.info(f"Generation cache hit for {query.key} ({bundle.total()} recipes)")
        return bundle
