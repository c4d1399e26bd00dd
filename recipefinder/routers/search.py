import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from .. import schemas
from ..deps import get_search_orchestrator, get_user_id
from ..errors import InvalidQuery, QuotaExceeded
from ..services.search import SearchOrchestrator
from ..settings import settings

logger = logging.getLogger("recipefinder.api")

router = APIRouter()
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])


@router.post("/search", response_model=schemas.SearchResponse)
@limiter.limit(settings.rate_limit)
async def search_recipes(
    request: Request,  # Required for rate limiter
    body: schemas.SearchRequest,
    user_id: Optional[str] = Depends(get_user_id),
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
):
    """Resolve ingredients into ranked recipes (device cache → pool → generation → static)."""
    # Identity comes from the header only; a body user_id is ignored
    body = body.model_copy(update={"user_id": user_id})

    try:
        return await orchestrator.search(body)
    except InvalidQuery as e:
        raise HTTPException(status_code=422, detail=str(e))
    except QuotaExceeded as e:
        raise HTTPException(status_code=402, detail=str(e))
