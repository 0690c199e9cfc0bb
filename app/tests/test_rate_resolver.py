from datetime import datetime, timedelta

import pytest

from app.models.rate import Rate
from app.services.rate_resolver import RateResolver
from app.services.stores import SqlRateStore
from app.tests.fakes import InMemoryRateStore

T0 = datetime(2026, 1, 1, 0, 0)


def _rate(activity, start, end, bill, cost=None):
    return Rate(
        activity=activity,
        effective_from=start,
        effective_to=end,
        cost_rate=bill if cost is None else cost,
        bill_rate=bill,
    )


def test_missing_rate_resolves_to_configured_default():
    resolver = RateResolver(InMemoryRateStore(), default_rate=11000)
    current = resolver.current("NORMAL", T0)
    assert (current.cost_rate, current.bill_rate, current.is_default) == (11000, 11000, True)
    assert resolver.original("NORMAL").bill_rate == 11000


def test_current_picks_the_interval_containing_the_instant():
    store = InMemoryRateStore([
        _rate("NORMAL", T0, T0 + timedelta(days=10), 10000),
        _rate("NORMAL", T0 + timedelta(days=10), None, 12000),
        _rate("INSPECTION", T0, None, 9000),
    ])
    resolver = RateResolver(store, default_rate=11000)

    assert resolver.current("NORMAL", T0 + timedelta(days=9, hours=23)).bill_rate == 10000
    # effective_to is exclusive
    assert resolver.current("NORMAL", T0 + timedelta(days=10)).bill_rate == 12000
    assert resolver.current("NORMAL", T0 - timedelta(seconds=1)).is_default is True
    assert resolver.original("NORMAL").bill_rate == 10000
    assert resolver.current("INSPECTION", T0).bill_rate == 9000


def test_record_version_closes_open_row_and_opens_new_one():
    store = InMemoryRateStore([_rate("NORMAL", T0, None, 11000, cost=8000)])
    resolver = RateResolver(store, default_rate=11000)
    at = T0 + timedelta(days=3)

    change = resolver.record_version("NORMAL", bill_rate=12000, at=at)

    assert change is not None
    assert (change.old_bill_rate, change.new_bill_rate) == (11000, 12000)
    rows = resolver.history("NORMAL")
    assert len(rows) == 2
    assert rows[0].effective_to == at
    assert rows[1].effective_from == at and rows[1].effective_to is None
    assert rows[1].cost_rate == 8000
    assert [r for r in rows if r.effective_to is None] == [rows[1]]
    assert resolver.current("NORMAL", at).bill_rate == 12000
    assert resolver.original("NORMAL").bill_rate == 11000


def test_record_version_without_change_writes_nothing():
    store = InMemoryRateStore([_rate("NORMAL", T0, None, 11000)])
    resolver = RateResolver(store, default_rate=11000)

    assert resolver.record_version("NORMAL", bill_rate=11000, at=T0 + timedelta(days=1)) is None
    assert len(store.rows) == 1


def test_first_version_materializes_the_default_as_original():
    store = InMemoryRateStore()
    resolver = RateResolver(store, default_rate=11000)
    at = T0 + timedelta(hours=5)

    resolver.record_version("TRAINEE", bill_rate=8000, at=at)

    rows = resolver.history("TRAINEE")
    assert [(r.bill_rate, r.effective_from, r.effective_to) for r in rows] == [
        (11000, at, at),
        (8000, at, None),
    ]
    assert resolver.original("TRAINEE").bill_rate == 11000
    assert resolver.current("TRAINEE", at).bill_rate == 8000


def test_intervals_never_overlap_after_repeated_changes():
    store = InMemoryRateStore()
    resolver = RateResolver(store, default_rate=11000)
    for day, bill in enumerate([12000, 13000, 12500, 12500, 14000], start=1):
        resolver.record_version("NORMAL", bill_rate=bill, at=T0 + timedelta(days=day))

    rows = resolver.history("NORMAL")
    assert sum(1 for r in rows if r.effective_to is None) == 1
    for earlier, later in zip(rows, rows[1:]):
        assert earlier.effective_to is not None
        assert earlier.effective_to <= later.effective_from


def test_negative_rate_is_rejected():
    resolver = RateResolver(InMemoryRateStore(), default_rate=11000)
    with pytest.raises(ValueError):
        resolver.record_version("NORMAL", bill_rate=-1, at=T0)


def test_sql_store_round_trip(db):
    resolver = RateResolver(SqlRateStore(db), default_rate=11000)
    at = datetime(2026, 9, 1, 12, 0)

    resolver.record_version("NORMAL", bill_rate=12000, at=at)
    resolver.record_version("NORMAL", bill_rate=13000, at=at + timedelta(hours=1))

    rows = db.query(Rate).filter(Rate.activity == "NORMAL").order_by(Rate.id).all()
    assert [r.bill_rate for r in rows] == [11000, 12000, 13000]
    assert sum(1 for r in rows if r.effective_to is None) == 1
    assert resolver.current("NORMAL", at + timedelta(minutes=30)).bill_rate == 12000
    assert resolver.current("NORMAL", at + timedelta(hours=2)).bill_rate == 13000
    assert resolver.original("NORMAL").bill_rate == 11000
