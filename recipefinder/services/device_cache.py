"""Per-device cache of resolved searches.

Each entry lives under its combination key and carries its own expiry.
Reads are tri-state:
- fresh: younger than half the entry's TTL
- stale: past the half-life but not expired (serve, then revalidate)
- miss: absent or expired (expired entries are purged on read)

Store failures never escape: a failed read is a miss, a failed write is logged.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal, Optional

from pydantic import ValidationError

from ..errors import StorageUnavailable
from ..infra.device_store import DeviceStore
from ..schemas import CacheEntry, CacheStats, IngredientSet, MatchBundle, Source
from ..settings import settings

logger = logging.getLogger("recipefinder.cache")

Freshness = Literal["fresh", "stale"]
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_ttls() -> dict[str, int]:
    return {
        "shared_pool": settings.device_cache_ttl_shared_pool,
        "generation_cache": settings.device_cache_ttl_generation_cache,
        "generated": settings.device_cache_ttl_generated,
        "static": settings.device_cache_ttl_static,
    }


@dataclass(frozen=True)
class CacheRead:
    entry: CacheEntry
    freshness: Freshness

    @property
    def is_stale(self) -> bool:
        return self.freshness == "stale"


def entry_freshness(entry: CacheEntry, now: datetime) -> Optional[Freshness]:
    """None when expired."""
    if now >= entry.expires_at:
        return None
    half_life = (entry.expires_at - entry.created_at) / 2
    return "stale" if now >= entry.created_at + half_life else "fresh"


class DeviceCache:
    def __init__(
        self,
        store: DeviceStore,
        *,
        namespace: str = "local",
        clock: Optional[Clock] = None,
        ttls: Optional[dict[str, int]] = None,
        capacity: Optional[int] = None,
        evict_batch: Optional[int] = None,
    ):
        self.store = store
        self.namespace = namespace
        self.clock = clock or utcnow
        self.ttls = ttls or default_ttls()
        self.capacity = capacity if capacity is not None else settings.device_cache_capacity
        self.evict_batch = evict_batch if evict_batch is not None else settings.device_cache_evict_batch

    @property
    def prefix(self) -> str:
        return f"recipefinder:device:{self.namespace}:search:"

    def _store_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def ttl_for(self, source: Source) -> int:
        return self.ttls.get(source, self.ttls["static"])

    async def _load(self, store_key: str) -> Optional[CacheEntry]:
        raw = await self.store.get(store_key)
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Dropping unreadable cache entry %s", store_key)
            await self._delete_quietly(store_key)
            return None

    async def _delete_quietly(self, store_key: str) -> None:
        try:
            await self.store.delete(store_key)
        except StorageUnavailable as e:
            logger.warning("Cache delete failed for %s: %s", store_key, e)

    async def get(self, key: str) -> Optional[CacheRead]:
        store_key = self._store_key(key)
        try:
            entry = await self._load(store_key)
        except StorageUnavailable as e:
            logger.warning("Cache read failed, treating as miss: %s", e)
            return None
        if entry is None:
            return None

        freshness = entry_freshness(entry, self.clock())
        if freshness is None:
            logger.info("Cache entry expired: %s", key)
            await self._delete_quietly(store_key)
            return None

        logger.info("Cache hit %s (%s, source=%s)", key, freshness, entry.source)
        return CacheRead(entry=entry, freshness=freshness)

    async def put(self, query: IngredientSet, bundle: MatchBundle, source: Source) -> Optional[CacheEntry]:
        now = self.clock()
        ttl = self.ttl_for(source)
        entry = CacheEntry(
            key=query.key,
            ingredients=list(query.items),
            bundle=bundle,
            source=source,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        try:
            await self.store.put(self._store_key(query.key), entry.model_dump_json().encode("utf-8"), ttl_hint=ttl)
            await self._enforce_capacity()
        except StorageUnavailable as e:
            logger.warning("Failed to cache search result %s: %s", query.key, e)
            return None
        return entry

    async def _enforce_capacity(self) -> None:
        keys = await self.store.list_keys(self.prefix)
        if len(keys) <= self.capacity:
            return

        oldest_first: list[tuple[datetime, str]] = []
        for store_key in keys:
            entry = await self._load(store_key)
            created = entry.created_at if entry else datetime.min.replace(tzinfo=timezone.utc)
            oldest_first.append((created, store_key))
        oldest_first.sort()

        evicted = oldest_first[: self.evict_batch]
        for _, store_key in evicted:
            await self.store.delete(store_key)
        logger.info("Evicted %d oldest cache entries", len(evicted))

    async def clear(self) -> int:
        """Remove every cached search for this device. Returns the count removed."""
        try:
            keys = await self.store.list_keys(self.prefix)
            for store_key in keys:
                await self.store.delete(store_key)
        except StorageUnavailable as e:
            logger.warning("Failed to clear cache: %s", e)
            return 0
        logger.info("Search cache cleared (%d entries)", len(keys))
        return len(keys)

    async def stats(self) -> CacheStats:
        by_source: dict[str, int] = {}
        stale = 0
        count = 0
        now = self.clock()
        try:
            keys = await self.store.list_keys(self.prefix)
            for store_key in keys:
                entry = await self._load(store_key)
                if entry is None:
                    continue
                freshness = entry_freshness(entry, now)
                if freshness is None:
                    continue
                count += 1
                if freshness == "stale":
                    stale += 1
                by_source[entry.source] = by_source.get(entry.source, 0) + 1
        except StorageUnavailable as e:
            logger.warning("Failed to read cache stats: %s", e)
        return CacheStats(entries=count, stale_entries=stale, by_source=by_source)
