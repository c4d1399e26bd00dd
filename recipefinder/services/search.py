"""Tiered recipe resolution.

Order of tiers, terminal on the first non-empty result:
1. Device cache (fresh: return; stale: return and refresh in the background)
2. Shared pool (entitled users only)
3. Generation cache
4. Live generation (opt-in, authenticated, metered)
5. Static dataset (always answers)

Tiers 2-4 share one contract: return a bundle, return None, or raise a
ResolverError. NetworkUnavailable from any of them skips straight to the
static tier.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..core.background import BackgroundRunner
from ..errors import NetworkUnavailable, QuotaExceeded, ResolverError
from ..infra.reachability import NetworkReachability
from ..schemas import (
    IngredientSet,
    MatchBundle,
    SearchHistoryEntry,
    SearchRequest,
    SearchResponse,
    Source,
)
from .device_cache import CacheRead, DeviceCache
from .entitlements import EntitlementService
from .generation import GenerationOrchestrator
from .generation_cache import GenerationCacheResolver
from .history import SearchHistoryLog
from .ingredient_normalize import normalize_ingredients
from .match_scorer import MatchScorer
from .revalidator import StaleRevalidator
from .shared_pool import SharedPoolResolver
from .static_fallback import StaticFallbackResolver

logger = logging.getLogger("recipefinder.search")

TierAttempt = Callable[[], Awaitable[Optional[MatchBundle]]]


@dataclass
class Resolution:
    bundle: MatchBundle
    source: Source


class SearchOrchestrator:
    def __init__(
        self,
        *,
        device_cache: DeviceCache,
        pool: SharedPoolResolver,
        generation_cache: GenerationCacheResolver,
        generation: GenerationOrchestrator,
        static: StaticFallbackResolver,
        entitlements: EntitlementService,
        reachability: NetworkReachability,
        scorer: MatchScorer,
        revalidator: Optional[StaleRevalidator] = None,
        history: Optional[SearchHistoryLog] = None,
        background: Optional[BackgroundRunner] = None,
    ):
        self.device_cache = device_cache
        self.pool = pool
        self.generation_cache = generation_cache
        self.generation = generation
        self.static = static
        self.entitlements = entitlements
        self.reachability = reachability
        self.scorer = scorer
        self.revalidator = revalidator or StaleRevalidator()
        self.history = history
        self.background = background or BackgroundRunner("search")

    async def search(self, request: SearchRequest) -> SearchResponse:
        started = time.perf_counter()
        query = normalize_ingredients(request.ingredients)

        cached = await self._read_cache(query)
        online = self.reachability.is_online()

        if cached is not None:
            if cached.is_stale and online:
                self._schedule_refresh(query, request, cached.entry.source)
            response = self._response(
                query,
                cached.entry.bundle,
                "device_cache",
                started,
                cached_source=cached.entry.source,
                is_stale=cached.is_stale,
            )
            return self._finish(response)

        if online:
            resolution = await self._resolve_upstream(query, request)
        else:
            logger.info(f"Offline with no cached entry for {query.key}, using static dataset")
            resolution = Resolution(self.static.resolve(query), "static")

        await self.device_cache.put(query, resolution.bundle, resolution.source)
        response = self._response(query, resolution.bundle, resolution.source, started)
        return self._finish(response)

    async def _read_cache(self, query: IngredientSet) -> Optional[CacheRead]:
        try:
            return await self.device_cache.get(query.key)
        except Exception:
            logger.exception(f"Device cache lookup failed for {query.key}")
            return None

    def _tiers(self, query: IngredientSet, request: SearchRequest) -> list[tuple[Source, TierAttempt]]:
        user_id = request.user_id

        async def shared_pool() -> Optional[MatchBundle]:
            entitled = await self.entitlements.is_entitled(user_id) if user_id else False
            return await self.pool.resolve(query, entitled)

        async def generation_cache() -> Optional[MatchBundle]:
            return await self.generation_cache.resolve(query)

        async def generated() -> Optional[MatchBundle]:
            result = await self.generation.generate(query, user_id, request)
            # Paid-for recipes are always shown, close match or not
            return self.scorer.rank(result.recipes, query.items, admit_all=True)

        tiers: list[tuple[Source, TierAttempt]] = [
            ("shared_pool", shared_pool),
            ("generation_cache", generation_cache),
        ]
        if (request.allow_generation or request.require_generation) and user_id:
            tiers.append(("generated", generated))
        return tiers

    async def _resolve_upstream(self, query: IngredientSet, request: SearchRequest) -> Resolution:
        for source, attempt in self._tiers(query, request):
            try:
                bundle = await attempt()
            except NetworkUnavailable as e:
                logger.warning(f"Network unavailable at {source} tier, skipping to static: {e}")
                break
            except QuotaExceeded as e:
                if request.require_generation:
                    raise
                logger.info(f"{e}; falling through")
                continue
            except ResolverError as e:
                logger.warning(f"{source} tier failed for {query.key}: {e}")
                continue
            except Exception:
                logger.exception(f"Unexpected failure in {source} tier for {query.key}")
                continue

            if bundle is None:
                continue
            if not bundle.is_empty() or source == "generated":
                return Resolution(bundle, source)

        return Resolution(self.static.resolve(query), "static")

    def _schedule_refresh(self, query: IngredientSet, request: SearchRequest, cached_source: Source) -> None:
        # A background refresh never surfaces QuotaExceeded
        refresh_request = request.model_copy(update={"require_generation": False})

        async def refresh() -> None:
            if not self.reachability.is_online():
                logger.info(f"Skipping refresh for {query.key}: offline")
                return
            resolution = await self._resolve_upstream(query, refresh_request)
            if resolution.source == "static" and cached_source != "static":
                logger.info(f"Refresh for {query.key} only reached static data, keeping {cached_source} entry")
                return
            await self.device_cache.put(query, resolution.bundle, resolution.source)
            logger.info(f"Refreshed {query.key} from {resolution.source}")

        self.revalidator.schedule(f"{self.device_cache.namespace}:{query.key}", refresh)

    def _response(
        self,
        query: IngredientSet,
        bundle: MatchBundle,
        source: Source,
        started: float,
        *,
        cached_source: Optional[Source] = None,
        is_stale: bool = False,
    ) -> SearchResponse:
        return SearchResponse(
            exact_matches=bundle.exact_matches,
            near_matches=bundle.near_matches,
            source=source,
            cached_source=cached_source,
            is_cached=source == "device_cache",
            is_stale=is_stale,
            combination_key=query.key,
            ingredients=list(query.items),
            response_time_ms=int((time.perf_counter() - started) * 1000),
            suggested_ingredients=self.scorer.suggest_missing(bundle, query.items),
        )

    def _finish(self, response: SearchResponse) -> SearchResponse:
        if self.history is not None:
            entry = SearchHistoryEntry(
                id=uuid.uuid4().hex,
                ingredients=response.ingredients,
                source=response.source,
                exact_count=len(response.exact_matches),
                near_count=len(response.near_matches),
                results_count=len(response.exact_matches) + len(response.near_matches),
                response_time_ms=response.response_time_ms,
                used_generation=response.source == "generated",
                timestamp=self.history.clock(),
            )
            self.background.spawn(self.history.record(entry), label=f"history:{response.combination_key}")

        logger.info(
            f"Search {response.combination_key} answered by {response.source}"
            f"{' (stale)' if response.is_stale else ''}: "
            f"{len(response.exact_matches)} exact, {len(response.near_matches)} near "
            f"in {response.response_time_ms}ms"
        )
        return response

    async def drain(self) -> None:
        """Wait for background refreshes and history writes."""
        await self.revalidator.wait_idle()
        await self.background.drain()
