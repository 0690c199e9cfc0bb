from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.authorization import Role
from app.core.config import get_default_rate
from app.core.errors import InvalidStatusTransitionError, WorkOrderLockedError, WorkOrderNotFoundError
from app.database import SessionLocal
from app.models.adjustment import (
    Adjustment,
    ESTIMATE_AMOUNT_CHANGE,
    FINAL_DECISION_AMOUNT_CHANGE,
)
from app.models.aggregation_snapshot import AggregationSnapshot
from app.models.material import Material
from app.models.work_order import WorkOrder
from app.schemas.aggregation import (
    ActivityOut,
    AdjustmentOut,
    AggregationDetailResponse,
    AggregationUpdateRequest,
    ExpenseItemIn,
    ExpenseItemOut,
    RateHistoryResponse,
    RateOut,
)
from app.services.activity_classifier import activity_name, parse_activity
from app.services.adjustment_ledger import AdjustmentLedger, RateAdjustmentInput
from app.services.aggregation_engine import AggregationEngine, total_hours
from app.services.expense_calculator import ExpenseCalculator, ExpenseLine, load_markup_rates
from app.services.finalization import FinalizationSnapshotter, project_name_for, stored_expenses
from app.services.rate_resolver import RateResolver
from app.services.stores import SqlRateStore, SqlWorkRecordStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ("delivered", "aggregating"),
    ("aggregating", "delivered"),
    ("aggregating", "aggregated"),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class _Components:
    """Per-session wiring of the aggregation pieces over SQL stores."""

    def __init__(self, db: Session):
        self.records = SqlWorkRecordStore(db)
        self.resolver = RateResolver(SqlRateStore(db), default_rate=get_default_rate())
        self.engine = AggregationEngine(self.resolver)
        self.ledger = AdjustmentLedger(db, self.engine, self.records)
        self.calculator = ExpenseCalculator(load_markup_rates(db))
        self.snapshotter = FinalizationSnapshotter(db, self.engine, self.records)


def get_work_order(db: Session, work_order_id: int) -> WorkOrder:
    row = db.query(WorkOrder).filter(WorkOrder.id == int(work_order_id)).first()
    if row is None:
        raise WorkOrderNotFoundError(f"Work order not found: {work_order_id}")
    return row


def ensure_editable(work_order: WorkOrder) -> None:
    if work_order.status == "aggregated":
        raise WorkOrderLockedError(work_order.id)


def check_transition(current: str, requested: str) -> bool:
    """True when a status change is needed; raises when it is not allowed."""
    if current == requested:
        return False
    if (current, requested) not in ALLOWED_TRANSITIONS:
        raise InvalidStatusTransitionError(current, requested)
    return True


def _expense_line_from_input(item: ExpenseItemIn) -> ExpenseLine:
    manual = item.manual_bill_override
    if manual is None:
        manual = item.bill_total is not None
    return ExpenseLine(
        category=item.category,
        cost_unit_price=item.cost_unit_price,
        cost_quantity=item.cost_quantity,
        cost_total=None,
        bill_unit_price=item.bill_unit_price,
        bill_quantity=item.bill_quantity,
        bill_total=item.bill_total,
        file_estimate=item.file_estimate,
        memo=item.memo,
        manual_bill_override=bool(manual),
    )


def replace_expenses(
    db: Session,
    parts: _Components,
    work_order_id: int,
    items: List[ExpenseItemIn],
    created_by: str,
    at: datetime,
) -> List[Material]:
    """Delete every stored line for the order and insert the normalized new set."""
    old_lines = stored_expenses(db, work_order_id)
    new_lines = parts.calculator.sanitize_for_save(_expense_line_from_input(i) for i in items)

    db.query(Material).filter(Material.work_order_id == int(work_order_id)).delete(synchronize_session="fetch")

    rows = []
    for line in new_lines:
        row = Material(
            work_order_id=int(work_order_id),
            category=line.category,
            cost_unit_price=line.cost_unit_price,
            cost_quantity=line.cost_quantity,
            cost_total=line.cost_total,
            bill_unit_price=line.bill_unit_price,
            bill_quantity=line.bill_quantity,
            bill_total=line.bill_total,
            file_estimate=line.file_estimate,
            memo=line.memo or None,
            created_at=at,
        )
        db.add(row)
        rows.append(row)
    db.flush()

    parts.ledger.record_expense_changes(work_order_id, old_lines, new_lines, created_by, at)
    return rows


def _detail(db: Session, parts: _Components, work_order: WorkOrder, at: datetime) -> AggregationDetailResponse:
    memos = parts.ledger.activity_memos(work_order.id)
    activities = parts.engine.aggregate(parts.records.records_for_work_order(work_order.id), at=at, memos=memos)

    adjustments = (
        db.query(Adjustment)
        .filter(Adjustment.work_order_id == work_order.id)
        .order_by(Adjustment.created_at.desc(), Adjustment.id.desc())
        .all()
    )
    expenses = [
        ExpenseItemOut(**{**e.breakdown(), "id": e.id})
        for e in stored_expenses(db, work_order.id)
    ]

    return AggregationDetailResponse(
        id=work_order.id,
        work_number=work_order.work_number,
        customer_name=work_order.customer.name if work_order.customer else "",
        project_name=project_name_for(work_order),
        term=work_order.term,
        status=work_order.status,
        total_hours=float(total_hours(activities)),
        activities=[
            ActivityOut(
                activity=a.activity,
                activity_name=a.activity_name,
                hours=float(a.hours),
                cost_rate=a.cost_rate,
                bill_rate=a.bill_rate,
                cost_amount=a.cost_amount,
                bill_amount=a.bill_amount,
                adjustment=a.adjustment,
                memo=a.memo,
            )
            for a in activities
        ],
        adjustments=[AdjustmentOut.model_validate(r) for r in adjustments],
        expenses=expenses,
        estimate_amount=work_order.estimate_amount,
        final_decision_amount=work_order.final_decision_amount,
        delivery_date=work_order.delivery_date,
    )


def fetch_aggregation_detail(
    work_order_id: int,
    *,
    db: Optional[Session] = None,
    at: Optional[datetime] = None,
) -> AggregationDetailResponse:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        work_order = get_work_order(db, work_order_id)
        return _detail(db, _Components(db), work_order, at or _utcnow())
    finally:
        if owns_db:
            db.close()


def apply_aggregation_edits(
    work_order_id: int,
    payload: AggregationUpdateRequest,
    user_id: str,
    *,
    db: Optional[Session] = None,
    at: Optional[datetime] = None,
) -> Dict[str, object]:
    """
    Apply one save from the edit screen in a single transaction.

    Order: rate versions + rate adjustments, expense replacement, amounts and
    delivery date, then the status change (finalization last so it sees
    everything written above).
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = at or _utcnow()
    fields = payload.model_fields_set

    try:
        work_order = get_work_order(db, work_order_id)
        ensure_editable(work_order)

        status_change = False
        if "status" in fields and payload.status is not None:
            status_change = check_transition(work_order.status, payload.status)

        parts = _Components(db)
        written: List[Adjustment] = []

        if payload.bill_rate_adjustments:
            written.extend(
                parts.ledger.apply_rate_adjustments(
                    work_order.id,
                    {
                        key: RateAdjustmentInput(bill_rate=item.bill_rate, memo=item.memo)
                        for key, item in payload.bill_rate_adjustments.items()
                    },
                    created_by=user_id,
                    at=now,
                )
            )

        if "expenses" in fields and payload.expenses is not None:
            replace_expenses(db, parts, work_order.id, payload.expenses, user_id, now)

        if "estimate_amount" in fields and payload.estimate_amount != work_order.estimate_amount:
            parts.ledger.record_amount_change(
                work_order.id, ESTIMATE_AMOUNT_CHANGE, work_order.estimate_amount, payload.estimate_amount, user_id, now
            )
            work_order.estimate_amount = payload.estimate_amount

        if "final_decision_amount" in fields and payload.final_decision_amount != work_order.final_decision_amount:
            parts.ledger.record_amount_change(
                work_order.id,
                FINAL_DECISION_AMOUNT_CHANGE,
                work_order.final_decision_amount,
                payload.final_decision_amount,
                user_id,
                now,
            )
            work_order.final_decision_amount = payload.final_decision_amount

        if "delivery_date" in fields:
            work_order.delivery_date = payload.delivery_date

        snapshot_id = None
        if status_change:
            if payload.status == "aggregated":
                snapshot_id = parts.snapshotter.finalize(work_order, aggregated_by=user_id, at=now).id
            else:
                work_order.status = payload.status

        work_order.updated_at = now
        db.flush()

        if owns_db:
            db.commit()

        logger.info(
            "Aggregation edits applied",
            extra={
                "work_order_id": int(work_order_id),
                "user_id": str(user_id),
                "adjustments_written": len(written),
                "status": work_order.status,
            },
        )

        return {"success": True, "snapshot_id": snapshot_id}
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def get_snapshot(work_order_id: int, *, db: Optional[Session] = None) -> Optional[AggregationSnapshot]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        get_work_order(db, work_order_id)
        return (
            db.query(AggregationSnapshot)
            .filter(AggregationSnapshot.work_order_id == int(work_order_id))
            .first()
        )
    finally:
        if owns_db:
            db.close()


def list_snapshots(
    *, limit: int = 50, offset: int = 0, db: Optional[Session] = None
) -> Tuple[int, List[AggregationSnapshot]]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        q = db.query(AggregationSnapshot)
        total = q.count()
        rows = (
            q.order_by(AggregationSnapshot.aggregated_at.desc(), AggregationSnapshot.id.desc())
            .limit(int(limit))
            .offset(int(offset))
            .all()
        )
        return total, rows
    finally:
        if owns_db:
            db.close()


def _comment_action(db: Optional[Session], action):
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        row = action(db, _Components(db))
        db.flush()
        if owns_db:
            db.commit()
            db.refresh(row)
        return AdjustmentOut.model_validate(row)
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def add_comment(
    work_order_id: int,
    amount: int,
    reason: str,
    memo: Optional[str],
    user_id: str,
    *,
    db: Optional[Session] = None,
    at: Optional[datetime] = None,
) -> AdjustmentOut:
    def action(session: Session, parts: _Components) -> Adjustment:
        ensure_editable(get_work_order(session, work_order_id))
        return parts.ledger.add_comment(work_order_id, amount, reason, memo, user_id, at)

    return _comment_action(db, action)


def edit_comment(
    comment_id: int,
    memo: str,
    user_id: str,
    role: Role,
    *,
    db: Optional[Session] = None,
    at: Optional[datetime] = None,
) -> AdjustmentOut:
    def action(session: Session, parts: _Components) -> Adjustment:
        comment = parts.ledger.get_comment(comment_id)
        ensure_editable(get_work_order(session, comment.work_order_id))
        return parts.ledger.edit_comment(comment_id, memo, user_id, role, at)

    return _comment_action(db, action)


def delete_comment(
    comment_id: int,
    user_id: str,
    role: Role,
    *,
    db: Optional[Session] = None,
    at: Optional[datetime] = None,
) -> AdjustmentOut:
    def action(session: Session, parts: _Components) -> Adjustment:
        comment = parts.ledger.get_comment(comment_id)
        ensure_editable(get_work_order(session, comment.work_order_id))
        return parts.ledger.delete_comment(comment_id, user_id, role, at)

    return _comment_action(db, action)


def rate_history(
    activity: str,
    *,
    db: Optional[Session] = None,
    at: Optional[datetime] = None,
) -> RateHistoryResponse:
    code = parse_activity(activity).value

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        resolver = RateResolver(SqlRateStore(db), default_rate=get_default_rate())
        current = resolver.current(code, at or _utcnow())
        original = resolver.original(code)
        return RateHistoryResponse(
            activity=code,
            activity_name=activity_name(code),
            current_bill_rate=current.bill_rate,
            current_cost_rate=current.cost_rate,
            original_bill_rate=original.bill_rate,
            is_default=current.is_default,
            history=[RateOut.model_validate(r) for r in resolver.history(code)],
        )
    finally:
        if owns_db:
            db.close()
