from fastapi import APIRouter, Depends, HTTPException

from app.deps.auth import require_auth
from app.schemas.aggregation import RateHistoryResponse
from app.services import aggregation_service

router = APIRouter(prefix="/rates", tags=["Rates"])


@router.get("/{activity}", response_model=RateHistoryResponse)
def get_rate_history(
    activity: str,
    _user_id: str = Depends(require_auth),
):
    try:
        return aggregation_service.rate_history(activity)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
