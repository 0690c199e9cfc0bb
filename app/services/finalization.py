from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import InvalidStatusTransitionError, WorkOrderLockedError
from app.models.aggregation_snapshot import AggregationSnapshot
from app.models.material import Material
from app.models.work_order import WorkOrder
from app.services.aggregation_engine import AggregationEngine, summarize
from app.services import ledger_immutability  # noqa: F401  registers the snapshot flush guard
from app.services.expense_calculator import ExpenseLine
from app.services.stores import WorkRecordStore

logger = logging.getLogger(__name__)

PROJECT_NAME_PLACEHOLDER = "Untitled"
SNAPSHOT_MEMO = "Aggregation completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def project_name_for(work_order: WorkOrder) -> str:
    return work_order.project_name or work_order.description or PROJECT_NAME_PLACEHOLDER


def stored_expenses(db: Session, work_order_id: int) -> List[ExpenseLine]:
    rows = (
        db.query(Material)
        .filter(Material.work_order_id == int(work_order_id))
        .order_by(Material.id.asc())
        .all()
    )
    return [ExpenseLine.from_material(r) for r in rows]


class FinalizationSnapshotter:
    """Writes the one immutable snapshot for a work order and locks it.

    Works from stored state only. The snapshot insert and the status change are
    flushed together; the caller commits or rolls back both.
    """

    def __init__(self, db: Session, engine: AggregationEngine, records: WorkRecordStore):
        self.db = db
        self.engine = engine
        self.records = records

    def finalize(
        self,
        work_order: WorkOrder,
        aggregated_by: str,
        at: Optional[datetime] = None,
    ) -> AggregationSnapshot:
        if work_order.status == "aggregated":
            raise WorkOrderLockedError(work_order.id)
        if work_order.status != "aggregating":
            raise InvalidStatusTransitionError(work_order.status, "aggregated")

        existing = (
            self.db.query(AggregationSnapshot.id)
            .filter(AggregationSnapshot.work_order_id == work_order.id)
            .first()
        )
        if existing is not None:
            raise WorkOrderLockedError(work_order.id)

        now = at or _utcnow()

        activities = self.engine.aggregate(self.records.records_for_work_order(work_order.id), at=now)
        expenses = stored_expenses(self.db, work_order.id)
        totals = summarize(activities, (e.bill_total for e in expenses))

        snapshot = AggregationSnapshot(
            work_order_id=work_order.id,
            work_number=work_order.work_number,
            customer_name=work_order.customer.name if work_order.customer else "",
            project_name=project_name_for(work_order),
            total_hours=totals.total_hours,
            cost_total=totals.cost_total,
            bill_total=totals.bill_total,
            material_total=totals.material_total,
            adjustment_total=totals.adjustment_total,
            final_amount=totals.final_amount,
            activity_breakdown=[a.breakdown() for a in activities],
            material_breakdown=[e.breakdown() for e in expenses],
            aggregated_at=now,
            aggregated_by=str(aggregated_by),
            memo=SNAPSHOT_MEMO,
        )
        self.db.add(snapshot)

        work_order.status = "aggregated"
        self.db.flush()

        logger.info(
            "Work order finalized",
            extra={
                "work_order_id": work_order.id,
                "total_hours": str(totals.total_hours),
                "final_amount": totals.final_amount,
            },
        )

        return snapshot
