"""Per-device key/value store.

The device cache and the search history only rely on the `DeviceStore`
capability; `RedisDeviceStore` is the shipped implementation.
"""

import logging
from typing import Optional, Protocol

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from ..errors import StorageUnavailable
from .redis_client import get_redis

logger = logging.getLogger("recipefinder.store")


class DeviceStore(Protocol):
    async def get(self, key: str) -> Optional[bytes]: ...

    async def put(self, key: str, data: bytes, ttl_hint: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list_keys(self, prefix: str) -> list[str]: ...


class RedisDeviceStore:
    """DeviceStore backed by redis. All redis errors surface as StorageUnavailable."""

    def __init__(self, client: Optional[AsyncRedis] = None):
        self._client = client

    async def _redis(self) -> AsyncRedis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def get(self, key: str) -> Optional[bytes]:
        try:
            r = await self._redis()
            raw = await r.get(key)
        except RedisError as e:
            raise StorageUnavailable(f"get {key}: {e}") from e
        if raw is None:
            return None
        return raw if isinstance(raw, bytes) else str(raw).encode("utf-8")

    async def put(self, key: str, data: bytes, ttl_hint: Optional[int] = None) -> None:
        try:
            r = await self._redis()
            # ttl_hint is advisory; readers still check expiry themselves
            ex = int(ttl_hint) if ttl_hint and ttl_hint > 0 else None
            await r.set(key, data, ex=ex)
        except RedisError as e:
            raise StorageUnavailable(f"put {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            r = await self._redis()
            await r.delete(key)
        except RedisError as e:
            raise StorageUnavailable(f"delete {key}: {e}") from e

    async def list_keys(self, prefix: str) -> list[str]:
        try:
            r = await self._redis()
            keys = [k async for k in r.scan_iter(match=f"{prefix}*")]
        except RedisError as e:
            raise StorageUnavailable(f"list {prefix}: {e}") from e
        return sorted(k.decode("utf-8") if isinstance(k, bytes) else k for k in keys)
