from fastapi import APIRouter, Depends, HTTPException

from .. import schemas
from ..deps import get_entitlements, require_user_id
from ..errors import ResolverError
from ..services.entitlements import SqlEntitlementService

router = APIRouter()


@router.get("/quota", response_model=schemas.QuotaState)
async def get_quota(
    user_id: str = Depends(require_user_id),
    entitlements: SqlEntitlementService = Depends(get_entitlements),
):
    """Remaining generation allowance for the caller."""
    try:
        return await entitlements.get_quota(user_id)
    except ResolverError as e:
        raise HTTPException(status_code=503, detail=str(e))
