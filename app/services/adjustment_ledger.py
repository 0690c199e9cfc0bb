from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session

from app.core.authorization import ROLE_RANK, Role
from app.core.errors import CommentNotFoundError, CommentPermissionError
from app.models.activity_memo import WorkOrderActivityMemo
from app.models.adjustment import (
    COMMENT_TYPES,
    ESTIMATE_AMOUNT_CHANGE,
    EXPENSE_CHANGE,
    FINAL_DECISION_AMOUNT_CHANGE,
    FINAL_DECISION_CHANGE,
    RATE_ADJUSTMENT,
    Adjustment,
)
from app.services.activity_classifier import parse_activity
from app.services.aggregation_engine import AggregationEngine
from app.services.expense_calculator import ExpenseLine
from app.services.rounding import round_money
from app.services.stores import WorkRecordStore

logger = logging.getLogger(__name__)

AMOUNT_LABELS = {
    ESTIMATE_AMOUNT_CHANGE: "Estimate amount",
    FINAL_DECISION_AMOUNT_CHANGE: "Final decision amount",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _yen(amount: Optional[int]) -> str:
    if amount is None:
        return "unset"
    return f"¥{amount:,}"


def rate_change_reason(activity: str, old_rate: int, new_rate: int) -> str:
    return f"{activity} rate change ({old_rate:,} → {new_rate:,})"


@dataclass(frozen=True)
class RateAdjustmentInput:
    bill_rate: int
    memo: Optional[str] = None


def can_edit_comment(comment: Adjustment, user_id: str, role: Role) -> bool:
    if comment.type not in COMMENT_TYPES or comment.is_deleted:
        return False
    if comment.created_by == str(user_id):
        return True
    return ROLE_RANK[role] >= ROLE_RANK[Role.MANAGER]


def can_delete_comment(comment: Adjustment, user_id: str, role: Role) -> bool:
    return can_edit_comment(comment, user_id, role)


class AdjustmentLedger:
    """Append-only audit log for a work order.

    Every committed bill-rate change is versioned through the rate resolver and
    recorded as one delta row in the same transaction; zero deltas leave no row.
    The caller owns the session and its commit.
    """

    def __init__(self, db: Session, engine: AggregationEngine, records: WorkRecordStore):
        self.db = db
        self.engine = engine
        self.records = records

    def _append(self, work_order_id: int, type_: str, amount: int, reason: str,
                memo: Optional[str], created_by: str, at: datetime) -> Adjustment:
        row = Adjustment(
            work_order_id=int(work_order_id),
            type=type_,
            amount=int(amount),
            reason=reason,
            memo=memo or None,
            created_by=str(created_by),
            created_at=at,
            is_deleted=False,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def set_activity_memo(self, work_order_id: int, activity: str, memo: Optional[str]) -> None:
        row = (
            self.db.query(WorkOrderActivityMemo)
            .filter(
                WorkOrderActivityMemo.work_order_id == int(work_order_id),
                WorkOrderActivityMemo.activity == str(activity),
            )
            .first()
        )
        if row is None:
            row = WorkOrderActivityMemo(work_order_id=int(work_order_id), activity=str(activity))
            self.db.add(row)
        row.memo = memo or None
        self.db.flush()

    def activity_memos(self, work_order_id: int) -> Dict[str, str]:
        rows = (
            self.db.query(WorkOrderActivityMemo)
            .filter(WorkOrderActivityMemo.work_order_id == int(work_order_id))
            .all()
        )
        return {r.activity: r.memo for r in rows if r.memo}

    def apply_rate_adjustments(
        self,
        work_order_id: int,
        adjustments: Mapping[str, RateAdjustmentInput],
        created_by: str,
        at: Optional[datetime] = None,
    ) -> List[Adjustment]:
        now = at or _utcnow()
        written: List[Adjustment] = []
        resolver = self.engine.resolver

        for key, item in adjustments.items():
            activity = parse_activity(key).value

            if item.memo is not None:
                self.set_activity_memo(work_order_id, activity, item.memo)

            change = resolver.record_version(activity, bill_rate=int(item.bill_rate), at=now)
            if change is None:
                continue

            # Read back what is now in effect rather than trusting the request.
            old_bill_rate = change.old_bill_rate
            new_bill_rate = resolver.current(activity, change.changed_at).bill_rate

            hours = self.engine.activity_hours(self.records.records_for_work_order(work_order_id), activity)
            amount = round_money(hours * (new_bill_rate - old_bill_rate))
            if amount == 0:
                continue

            row = self._append(
                work_order_id,
                RATE_ADJUSTMENT,
                amount,
                rate_change_reason(activity, old_bill_rate, new_bill_rate),
                item.memo,
                created_by,
                now,
            )
            written.append(row)
            logger.info(
                "Rate adjustment recorded",
                extra={
                    "work_order_id": int(work_order_id),
                    "activity": activity,
                    "hours": str(hours),
                    "amount": amount,
                },
            )

        return written

    def record_amount_change(
        self,
        work_order_id: int,
        type_: str,
        old_amount: Optional[int],
        new_amount: Optional[int],
        created_by: str,
        at: Optional[datetime] = None,
    ) -> Optional[Adjustment]:
        if type_ not in AMOUNT_LABELS:
            raise ValueError(f"Not an amount change type: {type_}")
        difference = int(new_amount or 0) - int(old_amount or 0)
        if difference == 0:
            return None

        reason = f"{AMOUNT_LABELS[type_]} change ({_yen(old_amount)} → {_yen(new_amount)})"
        return self._append(work_order_id, type_, difference, reason, None, created_by, at or _utcnow())

    def record_expense_changes(
        self,
        work_order_id: int,
        old_lines: Iterable[ExpenseLine],
        new_lines: Iterable[ExpenseLine],
        created_by: str,
        at: Optional[datetime] = None,
    ) -> List[Adjustment]:
        now = at or _utcnow()
        old_totals: Dict[str, int] = defaultdict(int)
        new_totals: Dict[str, int] = defaultdict(int)
        for line in old_lines:
            old_totals[line.category] += int(line.bill_total or 0)
        for line in new_lines:
            new_totals[line.category] += int(line.bill_total or 0)

        written: List[Adjustment] = []
        for category in sorted(set(old_totals) | set(new_totals)):
            old_amount = old_totals.get(category, 0)
            new_amount = new_totals.get(category, 0)
            difference = new_amount - old_amount
            if difference == 0:
                continue

            if old_amount == 0:
                reason = f"{category} added"
            elif new_amount == 0:
                reason = f"{category} removed"
            else:
                reason = f"{category} changed ({_yen(old_amount)} → {_yen(new_amount)})"

            written.append(self._append(work_order_id, EXPENSE_CHANGE, difference, reason, None, created_by, now))

        return written

    def add_comment(
        self,
        work_order_id: int,
        amount: int,
        reason: str,
        memo: Optional[str],
        created_by: str,
        at: Optional[datetime] = None,
    ) -> Adjustment:
        return self._append(
            work_order_id, FINAL_DECISION_CHANGE, amount, reason, memo, created_by, at or _utcnow()
        )

    def get_comment(self, comment_id: int) -> Adjustment:
        row = self.db.query(Adjustment).filter(Adjustment.id == int(comment_id)).first()
        if row is None or row.type not in COMMENT_TYPES:
            raise CommentNotFoundError("Comment not found")
        return row

    def edit_comment(self, comment_id: int, memo: str, user_id: str, role: Role,
                     at: Optional[datetime] = None) -> Adjustment:
        row = self.get_comment(comment_id)
        if not can_edit_comment(row, user_id, role):
            raise CommentPermissionError("Not allowed to edit this comment")
        row.memo = memo
        row.updated_at = at or _utcnow()
        self.db.flush()
        return row

    def delete_comment(self, comment_id: int, user_id: str, role: Role,
                       at: Optional[datetime] = None) -> Adjustment:
        row = self.get_comment(comment_id)
        if not can_delete_comment(row, user_id, role):
            raise CommentPermissionError("Not allowed to delete this comment")
        now = at or _utcnow()
        row.is_deleted = True
        row.deleted_by = str(user_id)
        row.deleted_at = now
        row.updated_at = now
        self.db.flush()
        return row
