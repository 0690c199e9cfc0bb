"""Staged edit buffer for one operator's aggregation screen.

The session is an explicit two-state machine (VIEWING, EDITING). Every derived
value (bill amounts, rate diffs, change flags) is computed by a module-level
function that takes the buffers as arguments, so nothing is cached or mutated
while deriving. The session only holds state and dispatches.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from app.core.errors import EditSessionStateError, NothingToSaveError
from app.schemas.aggregation import (
    ActivityOut,
    AggregationDetailResponse,
    AggregationUpdateRequest,
    ExpenseItemOut,
)
from app.services.expense_calculator import ExpenseCalculator, ExpenseLine, parse_integer
from app.services.rounding import round_money, to_decimal

logger = logging.getLogger(__name__)

RATE_FIELDS = ("bill_rate", "memo")


class EditSessionState(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"


@dataclass
class RateEdit:
    bill_rate: str = ""
    memo: str = ""


@dataclass
class AmountDateBuffer:
    estimate_amount: str = ""
    final_decision_amount: str = ""
    delivery_date: str = ""


@dataclass(frozen=True)
class RateChange:
    activity: str
    activity_name: str
    old_rate: int
    new_rate: int
    hours: Decimal
    adjustment: int
    memo: Optional[str] = None


@dataclass(frozen=True)
class ActivityBillAmount:
    activity: str
    current_bill_rate: int
    current_bill_amount: int


@dataclass(frozen=True)
class AmountDateChanges:
    estimate_amount: bool = False
    final_decision_amount: bool = False
    delivery_date: bool = False

    @property
    def any(self) -> bool:
        return self.estimate_amount or self.final_decision_amount or self.delivery_date


# ---------- canonical forms ----------

def amount_text(value: Optional[int]) -> str:
    return "" if value is None else str(int(value))


def date_text(value: Optional[date]) -> str:
    return "" if value is None else value.isoformat()


def parse_amount_text(text: str) -> Optional[int]:
    """Blank clears the amount; anything else is read as a non-negative integer."""
    if text is None or not str(text).strip():
        return None
    return max(parse_integer(text, 0), 0)


def parse_date_text(text: str) -> Optional[date]:
    if text is None or not str(text).strip():
        return None
    return date.fromisoformat(str(text).strip())


def parse_rate_input(text: str, fallback: int) -> int:
    """Blank, non-numeric or negative input keeps the original rate."""
    parsed = parse_integer(text, -1)
    if parsed < 0:
        return fallback
    return parsed


def expense_line_from_item(item: ExpenseItemOut) -> ExpenseLine:
    return ExpenseLine(
        id=item.id,
        category=item.category,
        cost_unit_price=item.cost_unit_price,
        cost_quantity=item.cost_quantity,
        cost_total=item.cost_total,
        bill_unit_price=item.bill_unit_price,
        bill_quantity=item.bill_quantity,
        bill_total=item.bill_total,
        file_estimate=item.file_estimate,
        memo=item.memo,
    )


# ---------- derivations ----------

def activities_for_display(
    activities: Sequence[ActivityOut], rate_edits: Mapping[str, RateEdit]
) -> List[ActivityOut]:
    shown = []
    for a in activities:
        edit = rate_edits.get(a.activity)
        if edit is None:
            shown.append(a)
        else:
            shown.append(a.model_copy(update={"memo": edit.memo or None}))
    return shown


def activity_bill_amounts(
    activities: Sequence[ActivityOut], rate_edits: Mapping[str, RateEdit]
) -> Dict[str, ActivityBillAmount]:
    amounts: Dict[str, ActivityBillAmount] = {}
    for a in activities:
        edit = rate_edits.get(a.activity)
        rate = a.bill_rate if edit is None else parse_rate_input(edit.bill_rate, a.bill_rate)
        amounts[a.activity] = ActivityBillAmount(
            activity=a.activity,
            current_bill_rate=rate,
            current_bill_amount=round_money(to_decimal(a.hours) * rate),
        )
    return amounts


def bill_labor_subtotal(amounts: Mapping[str, ActivityBillAmount]) -> int:
    return sum(a.current_bill_amount for a in amounts.values())


def rate_changes(
    activities: Sequence[ActivityOut], rate_edits: Mapping[str, RateEdit]
) -> List[RateChange]:
    changes = []
    for a in activities:
        edit = rate_edits.get(a.activity)
        if edit is None:
            continue
        new_rate = parse_rate_input(edit.bill_rate, a.bill_rate)
        if new_rate == a.bill_rate:
            continue
        hours = to_decimal(a.hours)
        changes.append(
            RateChange(
                activity=a.activity,
                activity_name=a.activity_name,
                old_rate=a.bill_rate,
                new_rate=new_rate,
                hours=hours,
                adjustment=round_money((new_rate - a.bill_rate) * hours),
                memo=edit.memo or None,
            )
        )
    return changes


def adjustment_total(changes: Sequence[RateChange]) -> int:
    return sum(c.adjustment for c in changes)


def memo_changed(activity: ActivityOut, edit: RateEdit) -> bool:
    return (edit.memo or "") != (activity.memo or "")


def changed_rate_edits(
    activities: Sequence[ActivityOut], rate_edits: Mapping[str, RateEdit]
) -> Dict[str, RateEdit]:
    """Edits whose rate or memo differs from what the server showed."""
    changed_rates = {c.activity for c in rate_changes(activities, rate_edits)}
    pending = {}
    for a in activities:
        edit = rate_edits.get(a.activity)
        if edit is None:
            continue
        if a.activity in changed_rates or memo_changed(a, edit):
            pending[a.activity] = edit
    return pending


def amount_and_date_changes(
    detail: AggregationDetailResponse, buffer: AmountDateBuffer
) -> AmountDateChanges:
    return AmountDateChanges(
        estimate_amount=amount_text(parse_amount_text(buffer.estimate_amount)) != amount_text(detail.estimate_amount),
        final_decision_amount=(
            amount_text(parse_amount_text(buffer.final_decision_amount)) != amount_text(detail.final_decision_amount)
        ),
        delivery_date=date_text(parse_date_text(buffer.delivery_date)) != date_text(detail.delivery_date),
    )


def build_update_payload(
    detail: AggregationDetailResponse,
    rate_edits: Mapping[str, RateEdit],
    expenses: Sequence[ExpenseLine],
    amounts: AmountDateBuffer,
    calculator: ExpenseCalculator,
    original_expenses: Sequence[ExpenseLine],
) -> Optional[AggregationUpdateRequest]:
    """The request for everything that differs, or None when nothing does."""
    data: dict = {}

    pending_rates = changed_rate_edits(detail.activities, rate_edits)
    if pending_rates:
        originals = {a.activity: a.bill_rate for a in detail.activities}
        data["bill_rate_adjustments"] = {
            activity: {
                "bill_rate": parse_rate_input(edit.bill_rate, originals[activity]),
                "memo": edit.memo,
            }
            for activity, edit in pending_rates.items()
        }

    if calculator.expenses_changed(expenses, original_expenses):
        data["expenses"] = [
            {
                "category": line.category,
                "cost_unit_price": line.cost_unit_price,
                "cost_quantity": line.cost_quantity,
                "bill_unit_price": line.bill_unit_price,
                "bill_quantity": line.bill_quantity,
                "bill_total": line.bill_total,
                "file_estimate": line.file_estimate,
                "memo": line.memo or None,
                "manual_bill_override": line.manual_bill_override,
            }
            for line in calculator.sanitize_for_save(expenses)
        ]

    flags = amount_and_date_changes(detail, amounts)
    if flags.estimate_amount:
        data["estimate_amount"] = parse_amount_text(amounts.estimate_amount)
    if flags.final_decision_amount:
        data["final_decision_amount"] = parse_amount_text(amounts.final_decision_amount)
    if flags.delivery_date:
        data["delivery_date"] = parse_date_text(amounts.delivery_date)

    if not data:
        return None
    return AggregationUpdateRequest.model_validate(data)


# ---------- session ----------

@dataclass
class EditSession:
    calculator: ExpenseCalculator = field(default_factory=ExpenseCalculator)
    state: EditSessionState = EditSessionState.VIEWING
    detail: Optional[AggregationDetailResponse] = None
    rate_edits: Dict[str, RateEdit] = field(default_factory=dict)
    expenses: List[ExpenseLine] = field(default_factory=list)
    original_expenses: List[ExpenseLine] = field(default_factory=list)
    amounts: AmountDateBuffer = field(default_factory=AmountDateBuffer)

    def _require_editing(self) -> None:
        if self.state is not EditSessionState.EDITING:
            raise EditSessionStateError("Edit session is not in editing state")

    @property
    def is_editing(self) -> bool:
        return self.state is EditSessionState.EDITING

    def load(self, detail: AggregationDetailResponse) -> None:
        """Replace the server view; only allowed while viewing."""
        if self.is_editing:
            raise EditSessionStateError("Cannot reload while editing")
        self.detail = detail

    def start_editing(self, detail: Optional[AggregationDetailResponse] = None) -> None:
        if self.is_editing:
            raise EditSessionStateError("Already editing")
        if detail is not None:
            self.detail = detail
        if self.detail is None:
            raise EditSessionStateError("Nothing loaded to edit")
        if self.detail.status == "aggregated":
            raise EditSessionStateError("Work order is already finalized")

        self.rate_edits = {
            a.activity: RateEdit(bill_rate=str(a.bill_rate), memo=a.memo or "")
            for a in self.detail.activities
        }
        self.original_expenses = [expense_line_from_item(e) for e in self.detail.expenses]
        self.expenses = [self.calculator.seed(line) for line in self.original_expenses]
        self.amounts = AmountDateBuffer(
            estimate_amount=amount_text(self.detail.estimate_amount),
            final_decision_amount=amount_text(self.detail.final_decision_amount),
            delivery_date=date_text(self.detail.delivery_date),
        )
        self.state = EditSessionState.EDITING

    def _clear(self) -> None:
        self.rate_edits = {}
        self.expenses = []
        self.original_expenses = []
        self.amounts = AmountDateBuffer()
        self.state = EditSessionState.VIEWING

    def cancel(self) -> None:
        self._clear()

    # ----- rate buffer -----

    def edit_rate(self, activity: str, field_name: str, value: str) -> None:
        self._require_editing()
        if field_name not in RATE_FIELDS:
            raise ValueError(f"Not a rate field: {field_name}")
        if activity not in self.rate_edits:
            raise ValueError(f"Unknown activity: {activity}")
        self.rate_edits[activity] = replace(self.rate_edits[activity], **{field_name: "" if value is None else str(value)})

    # ----- expense buffer -----

    def _replace_expense(self, index: int, line: ExpenseLine) -> None:
        self.expenses = [line if i == index else e for i, e in enumerate(self.expenses)]

    def _expense_at(self, index: int) -> ExpenseLine:
        if index < 0 or index >= len(self.expenses):
            raise IndexError(f"No expense line at {index}")
        return self.expenses[index]

    def add_expense(self) -> int:
        self._require_editing()
        self.expenses = [*self.expenses, self.calculator.new_line()]
        return len(self.expenses) - 1

    def remove_expense(self, index: int) -> None:
        self._require_editing()
        self._expense_at(index)
        self.expenses = [e for i, e in enumerate(self.expenses) if i != index]

    def change_category_at(self, index: int, category: str) -> None:
        self._require_editing()
        self._replace_expense(index, self.calculator.change_category(self._expense_at(index), category))

    def change_cost_field_at(self, index: int, field_name: str, value) -> None:
        self._require_editing()
        self._replace_expense(index, self.calculator.edit_cost_field(self._expense_at(index), field_name, value))

    def change_billing_field_at(self, index: int, field_name: str, value) -> None:
        self._require_editing()
        self._replace_expense(index, self.calculator.edit_bill_field(self._expense_at(index), field_name, value))

    def set_file_estimate_at(self, index: int, value) -> None:
        self._require_editing()
        estimate = parse_amount_text(value)
        self._replace_expense(index, replace(self._expense_at(index), file_estimate=estimate))

    def reset_override_at(self, index: int) -> None:
        self._require_editing()
        self._replace_expense(index, self.calculator.reset_override(self._expense_at(index)))

    # ----- amounts / date -----

    def set_estimate_amount(self, value: str) -> None:
        self._require_editing()
        self.amounts = replace(self.amounts, estimate_amount="" if value is None else str(value))

    def set_final_decision_amount(self, value: str) -> None:
        self._require_editing()
        self.amounts = replace(self.amounts, final_decision_amount="" if value is None else str(value))

    def set_delivery_date(self, value: str) -> None:
        self._require_editing()
        text = "" if value is None else str(value).strip()
        if text:
            parse_date_text(text)
        self.amounts = replace(self.amounts, delivery_date=text)

    # ----- derived -----

    def get_activities_for_display(self) -> List[ActivityOut]:
        if self.detail is None:
            return []
        return activities_for_display(self.detail.activities, self.rate_edits)

    def get_activity_bill_amounts(self) -> Dict[str, ActivityBillAmount]:
        if self.detail is None:
            return {}
        return activity_bill_amounts(self.detail.activities, self.rate_edits)

    def get_bill_labor_subtotal(self) -> int:
        return bill_labor_subtotal(self.get_activity_bill_amounts())

    def get_rate_changes(self) -> List[RateChange]:
        if self.detail is None:
            return []
        return rate_changes(self.detail.activities, self.rate_edits)

    def get_adjustment_total(self) -> int:
        return adjustment_total(self.get_rate_changes())

    def get_expenses_has_changes(self) -> bool:
        if not self.is_editing:
            return False
        return self.calculator.expenses_changed(self.expenses, self.original_expenses)

    def get_material_total(self) -> int:
        return sum(line.bill_total or 0 for line in self.calculator.sanitize_for_save(self.expenses))

    def get_amount_and_date_has_changes(self) -> AmountDateChanges:
        if self.detail is None or not self.is_editing:
            return AmountDateChanges()
        return amount_and_date_changes(self.detail, self.amounts)

    def build_payload(self) -> Optional[AggregationUpdateRequest]:
        if self.detail is None or not self.is_editing:
            return None
        return build_update_payload(
            self.detail,
            self.rate_edits,
            self.expenses,
            self.amounts,
            self.calculator,
            self.original_expenses,
        )

    def has_changes(self) -> bool:
        return self.build_payload() is not None

    def save(
        self,
        submit: Callable[[AggregationUpdateRequest], object],
        refetch: Optional[Callable[[], AggregationDetailResponse]] = None,
    ):
        """Send every pending diff in one request.

        Buffers survive a failed submit so the operator can retry; they are
        cleared only once the submit returns.
        """
        self._require_editing()
        payload = self.build_payload()
        if payload is None:
            raise NothingToSaveError()

        result = submit(payload)

        logger.info(
            "Edit session saved",
            extra={
                "work_order_id": self.detail.id,
                "fields": sorted(payload.model_dump(exclude_unset=True).keys()),
            },
        )

        self._clear()
        if refetch is not None:
            self.detail = refetch()
        return result
