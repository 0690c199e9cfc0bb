from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.core.authorization import Role, require_role
from app.core.errors import (
    CommentNotFoundError,
    CommentPermissionError,
    InvalidStatusTransitionError,
    WorkOrderLockedError,
    WorkOrderNotFoundError,
)
from app.deps.auth import require_auth
from app.schemas.aggregation import (
    AdjustmentOut,
    AggregationDetailResponse,
    AggregationUpdateRequest,
    CommentCreate,
    CommentUpdate,
    SnapshotHistoryResponse,
    SnapshotOut,
    SuccessResponse,
)
from app.services import aggregation_service

router = APIRouter(prefix="/aggregation", tags=["Aggregation"])


def _raise_http(exc: Exception):
    if isinstance(exc, (WorkOrderNotFoundError, CommentNotFoundError)):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, WorkOrderLockedError):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if isinstance(exc, CommentPermissionError):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    if isinstance(exc, (InvalidStatusTransitionError, ValueError)):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    raise exc


# ---------- History ----------

@router.get("/history", response_model=SnapshotHistoryResponse)
def list_aggregation_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _user_id: str = Depends(require_auth),
):
    total, rows = aggregation_service.list_snapshots(limit=limit, offset=offset)
    return SnapshotHistoryResponse(
        limit=limit,
        offset=offset,
        total=total,
        rows=[SnapshotOut.model_validate(r) for r in rows],
    )


# ---------- Comments ----------

@router.post("/comment", response_model=AdjustmentOut)
def create_comment(
    payload: CommentCreate,
    request: Request,
    _user_id: str = Depends(require_auth),
):
    try:
        return aggregation_service.add_comment(
            payload.work_order_id,
            payload.amount,
            payload.reason,
            payload.memo,
            str(request.state.user_id),
        )
    except (LookupError, ValueError) as exc:
        _raise_http(exc)


@router.patch("/comment/{comment_id}", response_model=AdjustmentOut)
def update_comment(
    comment_id: int,
    payload: CommentUpdate,
    request: Request,
    role: Role = Depends(require_role(Role.MEMBER)),
):
    try:
        return aggregation_service.edit_comment(comment_id, payload.memo, str(request.state.user_id), role)
    except (LookupError, ValueError, PermissionError) as exc:
        _raise_http(exc)


@router.delete("/comment/{comment_id}", response_model=AdjustmentOut)
def remove_comment(
    comment_id: int,
    request: Request,
    role: Role = Depends(require_role(Role.MEMBER)),
):
    try:
        return aggregation_service.delete_comment(comment_id, str(request.state.user_id), role)
    except (LookupError, ValueError, PermissionError) as exc:
        _raise_http(exc)


# ---------- Work order ----------

@router.get("/{work_order_id}", response_model=AggregationDetailResponse)
def get_aggregation_detail(
    work_order_id: int,
    _user_id: str = Depends(require_auth),
):
    try:
        return aggregation_service.fetch_aggregation_detail(work_order_id)
    except LookupError as exc:
        _raise_http(exc)


@router.patch("/{work_order_id}", response_model=SuccessResponse)
def update_aggregation(
    work_order_id: int,
    payload: AggregationUpdateRequest,
    request: Request,
    _role=Depends(require_role(Role.MANAGER)),
):
    try:
        aggregation_service.apply_aggregation_edits(
            work_order_id,
            payload,
            user_id=str(request.state.user_id),
        )
    except (LookupError, ValueError) as exc:
        _raise_http(exc)
    return SuccessResponse(success=True)


@router.get("/{work_order_id}/snapshot", response_model=SnapshotOut)
def get_aggregation_snapshot(
    work_order_id: int,
    _user_id: str = Depends(require_auth),
):
    try:
        row = aggregation_service.get_snapshot(work_order_id)
    except LookupError as exc:
        _raise_http(exc)
    if row is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return SnapshotOut.model_validate(row)
