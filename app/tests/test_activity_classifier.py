from datetime import datetime, timedelta

import pytest

from app.services.activity_classifier import (
    Activity,
    ActivityClassifier,
    ActivityRule,
    LaborCategory,
    WorkRecordView,
    activity_name,
    is_trainee_name,
    labor_category,
    parse_activity,
)

START = datetime(2026, 9, 1, 8, 0)


def _record(worker_name="Sato Ichiro", machine_name=None, work_description=None, record_id=1):
    return WorkRecordView(
        id=record_id,
        start_time=START,
        end_time=START + timedelta(hours=1),
        worker_name=worker_name,
        machine_name=machine_name,
        work_description=work_description,
    )


classify = ActivityClassifier()


def test_default_is_normal():
    assert classify(_record()) == Activity.NORMAL


def test_katakana_only_name_is_trainee():
    assert classify(_record(worker_name="グエン　ヴァン・アン")) == Activity.TRAINEE


def test_mixed_script_name_is_not_trainee():
    assert is_trainee_name("グエン Van") is False
    assert is_trainee_name("佐藤") is False
    assert is_trainee_name("   ") is False
    assert is_trainee_name(None) is False


def test_inspection_keyword_in_description():
    assert classify(_record(work_description="最終検品と梱包")) == Activity.INSPECTION


@pytest.mark.parametrize(
    "machine_name, expected",
    [
        ("1052", Activity.M_1052),
        ("正面盤", Activity.M_SHOMEN),
        ("12尺", Activity.M_12SHAKU),
        (" 12尺 ", Activity.M_12SHAKU),
        ("1052-B", Activity.NORMAL),
    ],
)
def test_named_machines_match_exactly(machine_name, expected):
    assert classify(_record(machine_name=machine_name)) == expected


def test_rule_priority_trainee_beats_inspection_beats_machine():
    record = _record(worker_name="マリア", machine_name="1052", work_description="検品")
    assert classify(record) == Activity.TRAINEE

    record = _record(machine_name="1052", work_description="検品")
    assert classify(record) == Activity.INSPECTION


def test_classification_is_deterministic_and_independent_of_order():
    records = [
        _record(record_id=1, machine_name="正面盤"),
        _record(record_id=2, worker_name="マリア"),
        _record(record_id=3, work_description="検品"),
        _record(record_id=4),
    ]
    forward = [classify(r) for r in records]
    backward = [classify(r) for r in reversed(records)][::-1]
    assert forward == backward
    assert forward == [Activity.M_SHOMEN, Activity.TRAINEE, Activity.INSPECTION, Activity.NORMAL]
    assert [classify(r) for r in records] == forward


def test_custom_rule_list_is_used_in_order():
    rules = [ActivityRule("everything_inspection", lambda r: True, Activity.INSPECTION)]
    assert ActivityClassifier(rules=rules)(_record(worker_name="マリア")) == Activity.INSPECTION


def test_names_categories_and_parsing():
    assert activity_name(Activity.NORMAL) == "通常作業"
    assert activity_name("M_SHOMEN") == "正面盤"
    assert labor_category("M_1052") == LaborCategory.MACHINE
    assert labor_category(Activity.TRAINEE) == LaborCategory.LABOR
    assert parse_activity("INSPECTION") is Activity.INSPECTION
    with pytest.raises(ValueError, match="Unknown activity"):
        parse_activity("WELDING")
