from app.models.activity_memo import WorkOrderActivityMemo
from app.models.adjustment import Adjustment
from app.models.aggregation_snapshot import AggregationSnapshot
from app.models.customer import Customer
from app.models.expense_rate import ExpenseRate
from app.models.machine import Machine
from app.models.material import Material
from app.models.rate import Rate
from app.models.report import Report
from app.models.work_order import WorkOrder
from app.models.work_record import WorkRecord
from app.models.worker import Worker

__all__ = [
    "Adjustment",
    "AggregationSnapshot",
    "Customer",
    "ExpenseRate",
    "Machine",
    "Material",
    "Rate",
    "Report",
    "WorkOrder",
    "WorkOrderActivityMemo",
    "WorkRecord",
    "Worker",
]
