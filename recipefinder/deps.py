"""FastAPI dependencies for the recipe finder API.

Provides:
- Caller identity (X-User-Id) and device namespace (X-Device-Id)
- Process-wide collaborators (stores, scorer, reachability, background runners)
- A SearchOrchestrator wired for the calling device
"""

import re
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from .core.background import BackgroundRunner
from .infra.device_store import DeviceStore, RedisDeviceStore
from .infra.reachability import ReachabilityMonitor
from .services.device_cache import DeviceCache
from .services.entitlements import SqlEntitlementService
from .services.generation import GenerationOrchestrator
from .services.generation_cache import GenerationCacheResolver, GenerationCacheStore
from .services.history import SearchHistoryLog
from .services.match_scorer import MatchScorer
from .services.recipe_generator import get_recipe_generator
from .services.revalidator import StaleRevalidator
from .services.search import SearchOrchestrator
from .services.shared_pool import PoolStore, SharedPoolResolver
from .services.static_fallback import StaticFallbackResolver

DEVICE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")
DEFAULT_DEVICE_ID = "local"


def get_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> Optional[str]:
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


def require_user_id(user_id: Optional[str] = Depends(get_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return user_id


def get_device_id(x_device_id: Optional[str] = Header(None, alias="X-Device-Id")) -> str:
    """Device namespace for cache and history keys. Strict: a malformed id is a 400."""
    if not x_device_id:
        return DEFAULT_DEVICE_ID
    if not DEVICE_ID_RE.match(x_device_id):
        raise HTTPException(status_code=400, detail=f"Invalid device id '{x_device_id}'")
    return x_device_id


# --- process-wide singletons ---

@lru_cache(maxsize=1)
def get_reachability() -> ReachabilityMonitor:
    return ReachabilityMonitor()


@lru_cache(maxsize=1)
def get_background() -> BackgroundRunner:
    return BackgroundRunner("api")


@lru_cache(maxsize=1)
def get_revalidator() -> StaleRevalidator:
    return StaleRevalidator()


@lru_cache(maxsize=1)
def get_scorer() -> MatchScorer:
    return MatchScorer()


@lru_cache(maxsize=1)
def get_device_store() -> DeviceStore:
    return RedisDeviceStore()


@lru_cache(maxsize=1)
def get_entitlements() -> SqlEntitlementService:
    return SqlEntitlementService()


@lru_cache(maxsize=1)
def get_pool_store() -> PoolStore:
    return PoolStore()


@lru_cache(maxsize=1)
def get_generation_cache_store() -> GenerationCacheStore:
    return GenerationCacheStore()


@lru_cache(maxsize=1)
def get_generation() -> GenerationOrchestrator:
    return GenerationOrchestrator(
        get_entitlements(),
        get_recipe_generator(),
        get_pool_store(),
        get_generation_cache_store(),
    )


# --- per-device ---

def get_device_cache(
    device_id: str = Depends(get_device_id),
    store: DeviceStore = Depends(get_device_store),
) -> DeviceCache:
    return DeviceCache(store, namespace=device_id)


def get_history(
    device_id: str = Depends(get_device_id),
    store: DeviceStore = Depends(get_device_store),
) -> SearchHistoryLog:
    return SearchHistoryLog(store, namespace=device_id)


def get_search_orchestrator(
    device_cache: DeviceCache = Depends(get_device_cache),
    history: SearchHistoryLog = Depends(get_history),
) -> SearchOrchestrator:
    scorer = get_scorer()
    background = get_background()
    return SearchOrchestrator(
        device_cache=device_cache,
        pool=SharedPoolResolver(get_pool_store(), scorer, background=background),
        generation_cache=GenerationCacheResolver(get_generation_cache_store(), scorer),
        generation=get_generation(),
        static=StaticFallbackResolver(scorer),
        entitlements=get_entitlements(),
        reachability=get_reachability(),
        scorer=scorer,
        revalidator=get_revalidator(),
        history=history,
        background=background,
    )
