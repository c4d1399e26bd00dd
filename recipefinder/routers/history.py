from fastapi import APIRouter, Depends, HTTPException, Query

from .. import schemas
from ..deps import get_history
from ..errors import StorageUnavailable
from ..services.history import SearchHistoryLog

router = APIRouter()


@router.get("/history", response_model=list[schemas.SearchHistoryEntry])
async def list_history(
    limit: int = Query(50, ge=1, le=200),
    history: SearchHistoryLog = Depends(get_history),
):
    """Recent searches on this device, newest first."""
    return await history.recent(limit)


@router.delete("/history")
async def clear_history(history: SearchHistoryLog = Depends(get_history)):
    try:
        cleared = await history.clear()
    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"cleared": cleared}


@router.get("/ingredients/suggest")
async def suggest_ingredients(
    q: str = "",
    limit: int = Query(10, ge=1, le=50),
    history: SearchHistoryLog = Depends(get_history),
):
    """Suggestions from the ingredients this device searches most recently."""
    return {"suggestions": await history.suggest(q, limit)}


@router.get("/ingredients/preferences", response_model=schemas.IngredientPreferences)
async def ingredient_preferences(history: SearchHistoryLog = Depends(get_history)):
    return await history.preferences()
