from fastapi import APIRouter, Depends

from .. import schemas
from ..deps import get_device_cache
from ..services.device_cache import DeviceCache

router = APIRouter()


@router.delete("/cache")
async def clear_cache(cache: DeviceCache = Depends(get_device_cache)):
    """Remove every cached search for the calling device."""
    cleared = await cache.clear()
    return {"cleared": cleared}


@router.get("/cache/stats", response_model=schemas.CacheStats)
async def cache_stats(cache: DeviceCache = Depends(get_device_cache)):
    return await cache.stats()
