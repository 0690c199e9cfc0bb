"""Billed amounts for non-labor expense lines.

Numeric input is coerced, never rejected: quantities floor at 1, prices at 0,
and blank or unparseable values fall back to those minimums.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session

from app.core.config import DEFAULT_MARKUP_RATES
from app.models.expense_rate import ExpenseRate
from app.models.material import Material
from app.services.rounding import ceil_div, ceil_money, to_decimal

EXPENSE_CATEGORIES = ("materials", "outsourcing", "shipping", "other")

COST_FIELDS = ("cost_unit_price", "cost_quantity", "memo")
BILL_FIELDS = ("bill_unit_price", "bill_quantity", "bill_total", "memo")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_integer(value, fallback: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        if isinstance(value, float) and not math.isfinite(value):
            return fallback
        if isinstance(value, Decimal) and not value.is_finite():
            return fallback
        return int(value)
    match = _LEADING_INT.match(str(value))
    if match is None:
        return fallback
    return int(match.group(1))


def clamp_quantity(value) -> int:
    return max(1, parse_integer(value, 1))


def clamp_price(value) -> int:
    return max(0, parse_integer(value, 0))


@dataclass(frozen=True)
class ExpenseLine:
    category: str = "materials"
    cost_unit_price: int = 0
    cost_quantity: int = 1
    cost_total: int = 0
    bill_unit_price: int = 0
    bill_quantity: int = 1
    bill_total: Optional[int] = 0
    file_estimate: Optional[int] = None
    memo: Optional[str] = None
    manual_bill_override: bool = False
    id: Optional[int] = None

    @classmethod
    def from_material(cls, material: Material) -> "ExpenseLine":
        return cls(
            id=material.id,
            category=material.category,
            cost_unit_price=int(material.cost_unit_price),
            cost_quantity=int(material.cost_quantity),
            cost_total=int(material.cost_total),
            bill_unit_price=int(material.bill_unit_price),
            bill_quantity=int(material.bill_quantity),
            bill_total=int(material.bill_total),
            file_estimate=material.file_estimate,
            memo=material.memo,
        )

    def comparable(self) -> tuple:
        return (
            self.category,
            self.cost_unit_price,
            self.cost_quantity,
            self.cost_total,
            self.bill_unit_price,
            self.bill_quantity,
            self.bill_total,
            self.file_estimate,
            self.memo or None,
        )

    def breakdown(self) -> dict:
        return {
            "category": self.category,
            "costUnitPrice": self.cost_unit_price,
            "costQuantity": self.cost_quantity,
            "costTotal": self.cost_total,
            "billUnitPrice": self.bill_unit_price,
            "billQuantity": self.bill_quantity,
            "billTotal": self.bill_total,
            "fileEstimate": self.file_estimate,
            "memo": self.memo or None,
        }


def load_markup_rates(db: Session) -> Dict[str, Decimal]:
    """Active category markups; the built-in table applies when none are configured."""
    rows = db.query(ExpenseRate).filter(ExpenseRate.is_active.is_(True)).all()
    if not rows:
        return dict(DEFAULT_MARKUP_RATES)
    return {str(r.category): to_decimal(r.markup_rate) for r in rows}


class ExpenseCalculator:
    def __init__(self, markup_rates: Optional[Mapping[str, object]] = None):
        source = DEFAULT_MARKUP_RATES if markup_rates is None else markup_rates
        self.markup_rates: Dict[str, Decimal] = {
            str(category): to_decimal(str(rate)) for category, rate in source.items()
        }

    def markup_for(self, category: str) -> Optional[Decimal]:
        return self.markup_rates.get(category)

    def expected_bill_total(self, line: ExpenseLine) -> Optional[int]:
        markup = self.markup_for(line.category)
        if markup is None:
            return None
        cost_total = line.cost_total
        if cost_total is None:
            cost_total = clamp_price(line.cost_unit_price) * clamp_quantity(line.cost_quantity)
        return ceil_money(to_decimal(cost_total) * markup)

    def determine_manual_override(self, line: ExpenseLine) -> bool:
        expected = self.expected_bill_total(line)
        if expected is None:
            return True
        return line.bill_total != expected

    def normalize(self, line: ExpenseLine) -> ExpenseLine:
        cost_unit_price = clamp_price(line.cost_unit_price)
        cost_quantity = clamp_quantity(line.cost_quantity)
        cost_total = cost_unit_price * cost_quantity

        updated = replace(
            line,
            cost_unit_price=cost_unit_price,
            cost_quantity=cost_quantity,
            cost_total=cost_total,
        )

        markup = self.markup_for(updated.category)
        if markup is not None and not updated.manual_bill_override:
            bill_quantity = cost_quantity
            bill_total = ceil_money(to_decimal(cost_total) * markup)
            return replace(
                updated,
                bill_quantity=bill_quantity,
                bill_total=bill_total,
                bill_unit_price=ceil_div(bill_total, bill_quantity),
            )

        bill_quantity = clamp_quantity(updated.bill_quantity)
        bill_unit_price = clamp_price(updated.bill_unit_price)
        if updated.bill_total is None or parse_integer(updated.bill_total, -1) < 0:
            bill_total = bill_unit_price * bill_quantity
        else:
            bill_total = parse_integer(updated.bill_total)
            if bill_unit_price == 0:
                bill_unit_price = ceil_div(bill_total, bill_quantity)

        return replace(
            updated,
            bill_quantity=bill_quantity,
            bill_unit_price=bill_unit_price,
            bill_total=bill_total,
        )

    def seed(self, line: ExpenseLine) -> ExpenseLine:
        return self.normalize(replace(line, manual_bill_override=self.determine_manual_override(line)))

    def new_line(self) -> ExpenseLine:
        return self.normalize(ExpenseLine())

    def edit_cost_field(self, line: ExpenseLine, field_name: str, value) -> ExpenseLine:
        if field_name not in COST_FIELDS:
            raise ValueError(f"Not a cost field: {field_name}")
        if field_name == "memo":
            return replace(line, memo=value)
        if field_name == "cost_quantity":
            return self.normalize(replace(line, cost_quantity=clamp_quantity(value)))
        return self.normalize(replace(line, cost_unit_price=clamp_price(value)))

    def edit_bill_field(self, line: ExpenseLine, field_name: str, value) -> ExpenseLine:
        """Any direct bill-side edit switches the line to manual override."""
        if field_name not in BILL_FIELDS:
            raise ValueError(f"Not a bill field: {field_name}")
        if field_name == "memo":
            return replace(line, memo=value)

        if field_name == "bill_quantity":
            bill_quantity = clamp_quantity(value)
            edited = replace(
                line,
                bill_quantity=bill_quantity,
                bill_total=clamp_price(line.bill_unit_price) * bill_quantity,
            )
        elif field_name == "bill_unit_price":
            bill_unit_price = clamp_price(value)
            edited = replace(
                line,
                bill_unit_price=bill_unit_price,
                bill_total=bill_unit_price * clamp_quantity(line.bill_quantity),
            )
        else:
            bill_total = clamp_price(value)
            edited = replace(
                line,
                bill_total=bill_total,
                bill_unit_price=ceil_div(bill_total, clamp_quantity(line.bill_quantity)),
            )

        return self.normalize(replace(edited, manual_bill_override=True))

    def change_category(self, line: ExpenseLine, category: str) -> ExpenseLine:
        if category not in EXPENSE_CATEGORIES:
            raise ValueError(f"Unknown expense category: {category}")
        if self.markup_for(category) is None:
            manual = True
        else:
            manual = line.manual_bill_override
        return self.normalize(replace(line, category=category, manual_bill_override=manual))

    def reset_override(self, line: ExpenseLine) -> ExpenseLine:
        return self.normalize(replace(line, manual_bill_override=False))

    @staticmethod
    def is_empty(line: ExpenseLine) -> bool:
        return not line.cost_total and not line.bill_total and not line.file_estimate

    def sanitize_for_save(self, lines: Iterable[ExpenseLine]) -> List[ExpenseLine]:
        normalized = (self.normalize(line) for line in lines)
        return [line for line in normalized if not self.is_empty(line)]

    def expenses_changed(self, current: Iterable[ExpenseLine], original: Iterable[ExpenseLine]) -> bool:
        pending = sorted((line.comparable() for line in self.sanitize_for_save(current)), key=repr)
        stored = sorted((line.comparable() for line in original if not self.is_empty(line)), key=repr)
        return pending != stored
