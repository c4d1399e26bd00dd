import asyncio
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text

from ..core.ai_client import ai_client
from ..db import get_engine
from ..deps import get_reachability
from ..infra.reachability import ReachabilityMonitor
from ..infra.redis_client import get_redis
from ..settings import settings

logger = logging.getLogger("recipefinder.api")

router = APIRouter()


class ReachabilityUpdate(BaseModel):
    online: bool


def _ping_db() -> None:
    with get_engine().connect() as conn:
        conn.execute(text("SELECT 1"))


@router.get("/ready")
async def ready(reachability: ReachabilityMonitor = Depends(get_reachability)):
    redis_ok = False
    try:
        r = await get_redis()
        await r.ping()
        redis_ok = True
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")

    db_ok = False
    try:
        await asyncio.to_thread(_ping_db)
        db_ok = True
    except Exception as e:
        logger.warning(f"Database check failed: {e}")

    return {
        "ok": True,
        "redis_ok": redis_ok,
        "db_ok": db_ok,
        "online": reachability.is_online(),
        "ai": {
            "ai_mode": settings.ai_mode,
            "available": ai_client.is_available(),
            "quota_exceeded": ai_client.quota_exceeded,
            "last_error": ai_client.last_error,
            "last_error_at": ai_client.last_error_at,
        },
    }


@router.post("/reachability")
async def set_reachability(
    body: ReachabilityUpdate,
    reachability: ReachabilityMonitor = Depends(get_reachability),
):
    """Device agent hook: report online/offline transitions."""
    reachability.set_online(body.online)
    return {"online": reachability.is_online()}
