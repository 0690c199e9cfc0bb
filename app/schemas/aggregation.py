from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.services.activity_classifier import parse_activity

ExpenseCategory = Literal["materials", "outsourcing", "shipping", "other"]
WorkOrderStatus = Literal["delivered", "aggregating", "aggregated"]

# Lenient numeric input; coerced by the expense calculator rather than rejected.
LooseNumber = Optional[Union[int, float, str]]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------- Detail ----------

class ActivityOut(CamelModel):
    activity: str
    activity_name: str
    hours: float
    cost_rate: int
    bill_rate: int
    cost_amount: int
    bill_amount: int
    adjustment: int
    memo: Optional[str] = None


class AdjustmentOut(CamelModel):
    id: int
    type: str
    amount: int
    reason: Optional[str] = None
    memo: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    is_deleted: bool = False


class ExpenseItemOut(CamelModel):
    id: Optional[int] = None
    category: ExpenseCategory
    cost_unit_price: int
    cost_quantity: int
    cost_total: int
    bill_unit_price: int
    bill_quantity: int
    bill_total: int
    file_estimate: Optional[int] = None
    memo: Optional[str] = None


class AggregationDetailResponse(CamelModel):
    id: int
    work_number: str
    customer_name: str
    project_name: str
    term: Optional[str] = None
    status: WorkOrderStatus
    total_hours: float
    activities: List[ActivityOut]
    adjustments: List[AdjustmentOut]
    expenses: List[ExpenseItemOut]
    estimate_amount: Optional[int] = None
    final_decision_amount: Optional[int] = None
    delivery_date: Optional[date] = None


# ---------- Update ----------

class BillRateAdjustmentIn(CamelModel):
    bill_rate: int = Field(ge=0)
    memo: Optional[str] = Field(default=None, max_length=50)


class ExpenseItemIn(CamelModel):
    category: ExpenseCategory = "materials"
    cost_unit_price: LooseNumber = 0
    cost_quantity: LooseNumber = 1
    bill_unit_price: LooseNumber = 0
    bill_quantity: LooseNumber = 1
    bill_total: LooseNumber = None
    file_estimate: Optional[int] = Field(default=None, ge=0)
    memo: Optional[str] = Field(default=None, max_length=50)
    manual_bill_override: Optional[bool] = None


class AggregationUpdateRequest(CamelModel):
    bill_rate_adjustments: Optional[Dict[str, BillRateAdjustmentIn]] = None
    expenses: Optional[List[ExpenseItemIn]] = None
    estimate_amount: Optional[int] = Field(default=None, ge=0)
    final_decision_amount: Optional[int] = Field(default=None, ge=0)
    delivery_date: Optional[date] = None
    status: Optional[WorkOrderStatus] = None

    @field_validator("bill_rate_adjustments")
    @classmethod
    def _known_activities(cls, value):
        if value is None:
            return value
        for key in value:
            parse_activity(key)
        return value


class SuccessResponse(BaseModel):
    success: bool = True


# ---------- Snapshot / history ----------

class SnapshotOut(CamelModel):
    id: int
    work_order_id: int
    work_number: str
    customer_name: str
    project_name: str
    total_hours: float
    cost_total: int
    bill_total: int
    material_total: int
    adjustment_total: int
    final_amount: int
    activity_breakdown: list
    material_breakdown: list
    aggregated_at: datetime
    aggregated_by: str
    memo: Optional[str] = None


class SnapshotHistoryResponse(CamelModel):
    limit: int
    offset: int
    total: int
    rows: List[SnapshotOut]


# ---------- Comments ----------

class CommentCreate(CamelModel):
    work_order_id: int
    amount: int = 0
    reason: str = Field(min_length=1, max_length=200)
    memo: Optional[str] = Field(default=None, max_length=500)


class CommentUpdate(CamelModel):
    memo: str = Field(max_length=500)


# ---------- Rates ----------

class RateOut(CamelModel):
    id: int
    activity: str
    effective_from: datetime
    effective_to: Optional[datetime] = None
    cost_rate: int
    bill_rate: int


class RateHistoryResponse(CamelModel):
    activity: str
    activity_name: str
    current_bill_rate: int
    current_cost_rate: int
    original_bill_rate: int
    is_default: bool
    history: List[RateOut]
