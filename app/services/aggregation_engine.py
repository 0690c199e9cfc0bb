from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from app.services.activity_classifier import (
    ACTIVITY_ORDER,
    Activity,
    ActivityClassifier,
    WorkRecordView,
    activity_name,
)
from app.services.rate_resolver import RateResolver
from app.services.rounding import round_hours, round_money, to_decimal

SECONDS_PER_HOUR = Decimal(3600)


@dataclass
class ActivityGroup:
    activity: Activity
    raw_hours: Decimal = Decimal(0)

    @property
    def hours(self) -> Decimal:
        return round_hours(self.raw_hours)


@dataclass(frozen=True)
class ActivitySummary:
    activity: str
    activity_name: str
    hours: Decimal
    cost_rate: int
    bill_rate: int
    cost_amount: int
    bill_amount: int
    adjustment: int
    original_bill_rate: int
    memo: Optional[str] = None

    def breakdown(self) -> dict:
        return {
            "activity": self.activity,
            "activityName": self.activity_name,
            "hours": float(self.hours),
            "costRate": self.cost_rate,
            "billRate": self.bill_rate,
            "costAmount": self.cost_amount,
            "billAmount": self.bill_amount,
            "adjustment": self.adjustment,
        }


@dataclass(frozen=True)
class AggregationTotals:
    total_hours: Decimal
    cost_total: int
    bill_total: int
    material_total: int
    adjustment_total: int
    final_amount: int


def record_hours(record: WorkRecordView) -> Decimal:
    """Decimal hours for one record; a record ending before it starts counts as zero."""
    seconds = to_decimal((record.end_time - record.start_time).total_seconds())
    if seconds <= 0:
        return Decimal(0)
    return seconds / SECONDS_PER_HOUR


def total_hours(activities: Iterable[ActivitySummary]) -> Decimal:
    return round_hours(sum((a.hours for a in activities), Decimal(0)))


def summarize(activities: List[ActivitySummary], expense_bill_totals: Iterable[int]) -> AggregationTotals:
    bill_total = sum(a.bill_amount for a in activities)
    material_total = sum(int(t or 0) for t in expense_bill_totals)

    return AggregationTotals(
        total_hours=total_hours(activities),
        cost_total=sum(a.cost_amount for a in activities),
        bill_total=bill_total,
        material_total=material_total,
        adjustment_total=sum(a.adjustment for a in activities),
        final_amount=bill_total + material_total,
    )


class AggregationEngine:
    """Groups a work order's records by activity and prices each group.

    Pure given its inputs: the same records, rate history and instant always
    produce the same figures, whether for display or for a snapshot.
    """

    def __init__(self, resolver: RateResolver, classifier: Optional[ActivityClassifier] = None):
        self.resolver = resolver
        self.classifier = classifier or ActivityClassifier()

    def group(self, records: Iterable[WorkRecordView]) -> Dict[Activity, ActivityGroup]:
        groups: Dict[Activity, ActivityGroup] = {}
        for record in records:
            activity = self.classifier.classify(record)
            group = groups.get(activity)
            if group is None:
                group = groups[activity] = ActivityGroup(activity=activity)
            group.raw_hours += record_hours(record)
        return groups

    def activity_hours(self, records: Iterable[WorkRecordView], activity) -> Decimal:
        group = self.group(records).get(Activity(activity))
        if group is None:
            return Decimal(0)
        return group.hours

    def price_group(
        self,
        group: ActivityGroup,
        at: Optional[datetime] = None,
        memo: Optional[str] = None,
    ) -> ActivitySummary:
        rate = self.resolver.current(group.activity.value, at)
        original = self.resolver.original(group.activity.value)

        hours = group.hours
        cost_amount = round_money(hours * rate.cost_rate)
        bill_amount = round_money(hours * rate.bill_rate)
        original_bill_amount = round_money(hours * original.bill_rate)

        return ActivitySummary(
            activity=group.activity.value,
            activity_name=activity_name(group.activity),
            hours=hours,
            cost_rate=rate.cost_rate,
            bill_rate=rate.bill_rate,
            cost_amount=cost_amount,
            bill_amount=bill_amount,
            adjustment=bill_amount - original_bill_amount,
            original_bill_rate=original.bill_rate,
            memo=memo,
        )

    def aggregate(
        self,
        records: Iterable[WorkRecordView],
        at: Optional[datetime] = None,
        memos: Optional[Mapping[str, str]] = None,
    ) -> List[ActivitySummary]:
        groups = self.group(records)
        memos = memos or {}

        return [
            self.price_group(groups[activity], at=at, memo=memos.get(activity.value))
            for activity in ACTIVITY_ORDER
            if activity in groups
        ]
