"""Metered recipe generation.

Flow for one call:
1. Consume quota (never refunded, even when generation fails)
2. Call the generator under a timeout
3. Persist into the shared pool and the generation cache (best effort)
"""

import asyncio
import logging
from typing import Optional

from ..errors import GenerationFailed, QuotaExceeded, ResolverError
from ..schemas import GeneratedRecipes, GenerationRequest, IngredientSet, SearchRequest
from ..settings import settings
from .entitlements import EntitlementService
from .generation_cache import GenerationCacheStore
from .recipe_generator import RecipeGenerator
from .shared_pool import PoolStore

logger = logging.getLogger("recipefinder.generation")


class GenerationOrchestrator:
    def __init__(
        self,
        entitlements: EntitlementService,
        generator: RecipeGenerator,
        pool_store: PoolStore,
        cache_store: GenerationCacheStore,
        *,
        timeout: Optional[float] = None,
    ):
        self.entitlements = entitlements
        self.generator = generator
        self.pool_store = pool_store
        self.cache_store = cache_store
        self.timeout = timeout if timeout is not None else settings.generation_timeout_sec

    def build_request(self, query: IngredientSet, hints: Optional[SearchRequest] = None) -> GenerationRequest:
        if hints is None:
            return GenerationRequest(ingredients=list(query.items), locale=settings.default_locale)
        return GenerationRequest(
            ingredients=list(query.items),
            locale=hints.locale or settings.default_locale,
            meal_time=hints.meal_time,
            user_profile=hints.user_profile,
            exclude_ingredients=list(hints.exclude_ingredients),
        )

    async def generate(
        self,
        query: IngredientSet,
        user_id: str,
        hints: Optional[SearchRequest] = None,
    ) -> GeneratedRecipes:
        if not await self.entitlements.check_and_consume_quota(user_id, 1):
            raise QuotaExceeded(f"No generation quota left for user {user_id}")

        request = self.build_request(query, hints)
        try:
            result = await asyncio.wait_for(self.generator.generate(request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Generation timed out after {self.timeout}s for {query.key}")
            raise GenerationFailed(f"Generation timed out after {self.timeout}s") from e
        except GenerationFailed:
            raise
        except Exception as e:
            logger.error(f"Generation failed for {query.key}: {e}")
            raise GenerationFailed(str(e)) from e

        if not result.recipes:
            raise GenerationFailed("Generator returned no recipes")

        recipes = result.recipes
        try:
            recipes = await asyncio.to_thread(
                self.pool_store.add_generated,
                recipes,
                query,
                user_id=user_id,
                tokens_used=result.total_tokens_used,
            )
        except ResolverError as e:
            logger.warning(f"Could not add generated recipes to the shared pool: {e}")

        try:
            await asyncio.to_thread(
                self.cache_store.put, query, recipes, tokens_used=result.total_tokens_used
            )
        except ResolverError as e:
            logger.warning(f"Could not write generation cache for {query.key}: {e}")

        return result.model_copy(update={"recipes": [r.model_copy(update={"source": "generated"}) for r in recipes]})
