from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from app.core.config import get_default_rate
from app.models.rate import Rate
from app.services.stores import RateStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(dt: Optional[datetime]) -> datetime:
    if dt is None:
        return _utcnow()
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class ResolvedRate:
    activity: str
    cost_rate: int
    bill_rate: int
    rate_id: Optional[int] = None
    is_default: bool = False


@dataclass(frozen=True)
class RateVersionChange:
    activity: str
    old: ResolvedRate
    new_rate: Rate
    changed_at: datetime

    @property
    def old_bill_rate(self) -> int:
        return self.old.bill_rate

    @property
    def new_bill_rate(self) -> int:
        return int(self.new_rate.bill_rate)


class RateResolver:
    """Time-versioned unit price lookup per activity.

    Reads pick the version whose [effective_from, effective_to) interval contains
    the instant; activities with no version at all resolve to ``default_rate``.
    """

    def __init__(self, store: RateStore, default_rate: Optional[int] = None):
        self.store = store
        self.default_rate = get_default_rate() if default_rate is None else int(default_rate)

    def _default(self, activity: str) -> ResolvedRate:
        return ResolvedRate(
            activity=str(activity),
            cost_rate=self.default_rate,
            bill_rate=self.default_rate,
            is_default=True,
        )

    @staticmethod
    def _resolved(rate: Rate) -> ResolvedRate:
        return ResolvedRate(
            activity=str(rate.activity),
            cost_rate=int(rate.cost_rate),
            bill_rate=int(rate.bill_rate),
            rate_id=rate.id,
        )

    def current(self, activity: str, at: Optional[datetime] = None) -> ResolvedRate:
        row = self.store.find_effective(str(activity), _naive_utc(at))
        if row is None:
            return self._default(activity)
        return self._resolved(row)

    def original(self, activity: str) -> ResolvedRate:
        row = self.store.find_original(str(activity))
        if row is None:
            return self._default(activity)
        return self._resolved(row)

    def history(self, activity: str) -> List[Rate]:
        return self.store.history(str(activity))

    def record_version(
        self,
        activity: str,
        bill_rate: int,
        cost_rate: Optional[int] = None,
        at: Optional[datetime] = None,
    ) -> Optional[RateVersionChange]:
        """Close the open version and open a new one starting at ``at``.

        Returns None when neither rate differs from the one in effect. The caller
        owns the transaction; both writes only become visible on its commit.
        """
        activity = str(activity)
        now = _naive_utc(at)
        old = self.current(activity, now)

        new_bill_rate = int(bill_rate)
        new_cost_rate = old.cost_rate if cost_rate is None else int(cost_rate)
        if new_bill_rate < 0 or new_cost_rate < 0:
            raise ValueError("Rates must be non-negative")

        if new_bill_rate == old.bill_rate and new_cost_rate == old.cost_rate:
            return None

        closed = self.store.find_open(activity)
        if closed is not None:
            if closed.effective_from > now:
                raise ValueError(f"Open rate for {activity} starts in the future")
            self.store.close(closed, now)
        elif self.store.find_original(activity) is None:
            # Keep the default visible as the historical first price.
            closed = Rate(
                activity=activity,
                effective_from=now,
                effective_to=now,
                cost_rate=old.cost_rate,
                bill_rate=old.bill_rate,
            )
            self.store.add(closed)

        new_rate = Rate(
            activity=activity,
            effective_from=now,
            effective_to=None,
            cost_rate=new_cost_rate,
            bill_rate=new_bill_rate,
        )
        self.store.add(new_rate)

        logger.info(
            "Rate version recorded",
            extra={
                "activity": activity,
                "old_bill_rate": old.bill_rate,
                "new_bill_rate": new_bill_rate,
                "effective_from": now.isoformat(),
            },
        )

        return RateVersionChange(
            activity=activity,
            old=old,
            new_rate=new_rate,
            changed_at=now,
        )
