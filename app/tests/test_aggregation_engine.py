from datetime import datetime, timedelta
from decimal import Decimal

from app.models.rate import Rate
from app.services.activity_classifier import WorkRecordView
from app.services.aggregation_engine import AggregationEngine, record_hours, summarize, total_hours
from app.services.rate_resolver import RateResolver
from app.services.stores import SqlWorkRecordStore
from app.tests.fakes import InMemoryRateStore

START = datetime(2026, 9, 1, 8, 0)
AT = datetime(2026, 9, 30, 12, 0)


def _record(record_id, minutes, **fields):
    return WorkRecordView(
        id=record_id,
        start_time=START,
        end_time=START + timedelta(minutes=minutes),
        worker_name=fields.pop("worker_name", "Sato Ichiro"),
        **fields,
    )


def _engine(rows=None):
    return AggregationEngine(RateResolver(InMemoryRateStore(rows), default_rate=11000))


def test_normal_and_inspection_example():
    records = [
        _record(1, 180),
        _record(2, 150, work_description="検品"),
    ]

    activities = _engine().aggregate(records, at=AT)

    assert [(a.activity, a.hours, a.bill_amount) for a in activities] == [
        ("NORMAL", Decimal("3.0"), 33000),
        ("INSPECTION", Decimal("2.5"), 27500),
    ]
    assert total_hours(activities) == Decimal("5.5")
    assert sum(a.bill_amount for a in activities) == 60500
    assert all(a.adjustment == 0 for a in activities)


def test_hours_are_rounded_per_group_not_per_record():
    # 3 x 20 min = 1.0h; per-record rounding would give 3 x 0.3 = 0.9h
    records = [_record(i, 20) for i in range(1, 4)]
    [normal] = _engine().aggregate(records, at=AT)
    assert normal.hours == Decimal("1.0")
    assert normal.bill_amount == 11000


def test_rounding_is_half_up():
    # 0.25h rounds to 0.3h; 0.3 x 11001 = 3300.3 -> 3300
    [normal] = _engine().aggregate([_record(1, 15)], at=AT)
    assert normal.hours == Decimal("0.3")

    rows = [Rate(activity="NORMAL", effective_from=START, effective_to=None, cost_rate=5, bill_rate=5)]
    [cheap] = _engine(rows).aggregate([_record(1, 30)], at=AT)
    # 0.5 x 5 = 2.5 -> 3 (half-up, not banker's 2)
    assert cheap.bill_amount == 3


def test_negative_span_counts_as_zero_hours():
    record = WorkRecordView(id=1, start_time=START, end_time=START - timedelta(hours=1))
    assert record_hours(record) == Decimal(0)


def test_adjustment_is_against_original_rate():
    rows = [
        Rate(activity="NORMAL", effective_from=START - timedelta(days=30), effective_to=START, cost_rate=9000, bill_rate=11000),
        Rate(activity="NORMAL", effective_from=START, effective_to=START + timedelta(days=1), cost_rate=9000, bill_rate=11500),
        Rate(activity="NORMAL", effective_from=START + timedelta(days=1), effective_to=None, cost_rate=9000, bill_rate=12000),
    ]
    [normal] = _engine(rows).aggregate([_record(1, 180)], at=AT)

    assert normal.bill_rate == 12000
    assert normal.original_bill_rate == 11000
    assert normal.cost_amount == 27000
    assert normal.bill_amount == 36000
    assert normal.adjustment == 36000 - 33000


def test_activities_follow_display_order_and_carry_memos():
    records = [
        _record(1, 60, machine_name="12尺"),
        _record(2, 60, worker_name="マリア"),
        _record(3, 60),
        _record(4, 60, machine_name="1052"),
    ]
    activities = _engine().aggregate(records, at=AT, memos={"TRAINEE": "first week"})

    assert [a.activity for a in activities] == ["NORMAL", "TRAINEE", "M_1052", "M_12SHAKU"]
    assert activities[1].memo == "first week"
    assert activities[1].activity_name == "実習生"


def test_same_inputs_same_figures():
    records = [_record(1, 95), _record(2, 40, work_description="検品")]
    engine = _engine()
    assert engine.aggregate(records, at=AT) == engine.aggregate(list(reversed(records)), at=AT)


def test_summarize_totals():
    activities = _engine().aggregate([_record(1, 180), _record(2, 150, work_description="検品")], at=AT)
    totals = summarize(activities, [12000, 600])

    assert totals.total_hours == Decimal("5.5")
    assert totals.bill_total == 60500
    assert totals.cost_total == 60500
    assert totals.material_total == 12600
    assert totals.final_amount == 73100
    assert totals.adjustment_total == 0


def test_breakdown_is_camel_case_json():
    [normal] = _engine().aggregate([_record(1, 90)], at=AT)
    assert normal.breakdown() == {
        "activity": "NORMAL",
        "activityName": "通常作業",
        "hours": 1.5,
        "costRate": 11000,
        "billRate": 11000,
        "costAmount": 16500,
        "billAmount": 16500,
        "adjustment": 0,
    }


def test_sql_work_record_store_joins_worker_and_machine(db, make_work_order, add_record):
    work_order = make_work_order()
    add_record(work_order, 2.0, machine_name="正面盤")
    add_record(work_order, 1.0, worker_name="グエン", report_date=datetime(2026, 9, 2).date())
    other = make_work_order()
    add_record(other, 5.0)

    views = SqlWorkRecordStore(db).records_for_work_order(work_order.id)

    assert len(views) == 2
    assert {v.machine_name for v in views} == {"正面盤", None}
    activities = _engine().aggregate(views, at=AT)
    assert [(a.activity, a.hours) for a in activities] == [
        ("TRAINEE", Decimal("1.0")),
        ("M_SHOMEN", Decimal("2.0")),
    ]
