"""Per-device search history and ingredient preferences.

History entries are stored one key per search, keyed by timestamp so a key
listing is already chronological. The preferences record keeps the most
recently searched ingredients (used for suggestions) and a search counter.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from ..errors import StorageUnavailable
from ..infra.device_store import DeviceStore
from ..schemas import IngredientPreferences, SearchHistoryEntry
from ..settings import settings
from .ingredient_normalize import normalize_ingredient

logger = logging.getLogger("recipefinder.history")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchHistoryLog:
    def __init__(
        self,
        store: DeviceStore,
        *,
        namespace: str = "local",
        limit: Optional[int] = None,
        frequent_limit: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.namespace = namespace
        self.limit = limit if limit is not None else settings.history_limit
        self.frequent_limit = frequent_limit if frequent_limit is not None else settings.frequent_ingredients_limit
        self.clock = clock or utcnow

    @property
    def prefix(self) -> str:
        return f"recipefinder:device:{self.namespace}:history:"

    @property
    def prefs_key(self) -> str:
        return f"recipefinder:device:{self.namespace}:prefs"

    def _entry_key(self, entry: SearchHistoryEntry) -> str:
        ts_ms = int(entry.timestamp.timestamp() * 1000)
        return f"{self.prefix}{ts_ms:013d}:{entry.id}"

    async def record(self, entry: SearchHistoryEntry) -> None:
        """Append an entry, trim to the limit and update preferences."""
        await self.store.put(self._entry_key(entry), entry.model_dump_json().encode("utf-8"))

        keys = await self.store.list_keys(self.prefix)
        overflow = len(keys) - self.limit
        for key in keys[:max(0, overflow)]:
            await self.store.delete(key)

        prefs = await self._load_preferences()
        frequent = list(entry.ingredients)
        frequent += [i for i in prefs.frequent_ingredients if i not in frequent]
        prefs = IngredientPreferences(
            frequent_ingredients=frequent[:self.frequent_limit],
            search_count=prefs.search_count + 1,
            last_search_at=entry.timestamp,
        )
        await self.store.put(self.prefs_key, prefs.model_dump_json().encode("utf-8"))

    async def recent(self, limit: Optional[int] = None) -> list[SearchHistoryEntry]:
        """Newest first."""
        try:
            keys = await self.store.list_keys(self.prefix)
        except StorageUnavailable as e:
            logger.warning("Failed to list search history: %s", e)
            return []

        keys = list(reversed(keys))
        if limit is not None:
            keys = keys[:limit]

        entries = []
        for key in keys:
            try:
                raw = await self.store.get(key)
            except StorageUnavailable as e:
                logger.warning("Failed to read history entry %s: %s", key, e)
                continue
            if raw is None:
                continue
            try:
                entries.append(SearchHistoryEntry.model_validate_json(raw))
            except ValidationError:
                logger.warning("Skipping unreadable history entry %s", key)
        return entries

    async def clear(self) -> int:
        keys = await self.store.list_keys(self.prefix)
        for key in keys:
            await self.store.delete(key)
        await self.store.delete(self.prefs_key)
        logger.info("Search history cleared (%d entries)", len(keys))
        return len(keys)

    async def _load_preferences(self) -> IngredientPreferences:
        raw = await self.store.get(self.prefs_key)
        if raw is None:
            return IngredientPreferences()
        try:
            return IngredientPreferences.model_validate_json(raw)
        except ValidationError:
            logger.warning("Resetting unreadable ingredient preferences")
            return IngredientPreferences()

    async def preferences(self) -> IngredientPreferences:
        try:
            return await self._load_preferences()
        except StorageUnavailable as e:
            logger.warning("Failed to read ingredient preferences: %s", e)
            return IngredientPreferences()

    async def suggest(self, text: str, limit: int = 10) -> list[str]:
        """Frequent ingredients matching `text`: prefix matches first, then substring."""
        needle = normalize_ingredient(text)
        frequent = (await self.preferences()).frequent_ingredients
        if not needle:
            return frequent[:limit]

        starts = [i for i in frequent if i.startswith(needle)]
        contains = [i for i in frequent if needle in i and i not in starts]
        return (starts + contains)[:limit]
