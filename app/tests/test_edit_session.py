from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import EditSessionStateError, NothingToSaveError
from app.schemas.aggregation import AggregationDetailResponse
from app.services.edit_session import (
    AmountDateBuffer,
    EditSession,
    EditSessionState,
    RateEdit,
    amount_and_date_changes,
    parse_rate_input,
    rate_changes,
)


def _detail(**overrides):
    data = {
        "id": 7,
        "workNumber": "26-014",
        "customerName": "Kanto Steel",
        "projectName": "Switchboard frame",
        "term": "2026-09",
        "status": "aggregating",
        "totalHours": 5.5,
        "activities": [
            {"activity": "NORMAL", "activityName": "通常作業", "hours": 3.0, "costRate": 11000,
             "billRate": 11000, "costAmount": 33000, "billAmount": 33000, "adjustment": 0},
            {"activity": "INSPECTION", "activityName": "検品", "hours": 2.5, "costRate": 11000,
             "billRate": 11000, "costAmount": 27500, "billAmount": 27500, "adjustment": 0,
             "memo": "final check"},
        ],
        "adjustments": [],
        "expenses": [
            {"id": 1, "category": "materials", "costUnitPrice": 1000, "costQuantity": 2, "costTotal": 2000,
             "billUnitPrice": 1200, "billQuantity": 2, "billTotal": 2400},
            {"id": 2, "category": "shipping", "costUnitPrice": 500, "costQuantity": 1, "costTotal": 500,
             "billUnitPrice": 800, "billQuantity": 1, "billTotal": 800, "memo": "express"},
        ],
        "estimateAmount": 100000,
        "finalDecisionAmount": None,
        "deliveryDate": "2026-09-30",
    }
    data.update(overrides)
    return AggregationDetailResponse.model_validate(data)


def _editing(detail=None):
    session = EditSession()
    session.start_editing(detail or _detail())
    return session


def test_state_machine_transitions():
    session = EditSession()
    assert session.state is EditSessionState.VIEWING

    with pytest.raises(EditSessionStateError):
        session.edit_rate("NORMAL", "bill_rate", "12000")
    with pytest.raises(EditSessionStateError):
        session.start_editing()

    session.start_editing(_detail())
    assert session.state is EditSessionState.EDITING
    with pytest.raises(EditSessionStateError):
        session.start_editing()

    session.cancel()
    assert session.state is EditSessionState.VIEWING
    assert session.rate_edits == {}


def test_finalized_order_cannot_be_edited():
    with pytest.raises(EditSessionStateError):
        EditSession().start_editing(_detail(status="aggregated"))


def test_untouched_session_has_no_changes():
    session = _editing()

    assert session.get_rate_changes() == []
    assert session.get_expenses_has_changes() is False
    assert session.get_amount_and_date_has_changes().any is False
    assert session.has_changes() is False

    with pytest.raises(NothingToSaveError):
        session.save(lambda payload: pytest.fail("must not submit"))


def test_rate_change_diff_and_derived_amounts():
    session = _editing()
    session.edit_rate("NORMAL", "bill_rate", "12000")
    session.edit_rate("NORMAL", "memo", "customer agreed")

    [change] = session.get_rate_changes()
    assert (change.activity, change.old_rate, change.new_rate) == ("NORMAL", 11000, 12000)
    assert change.hours == Decimal("3.0")
    assert change.adjustment == 3000
    assert change.memo == "customer agreed"

    amounts = session.get_activity_bill_amounts()
    assert amounts["NORMAL"].current_bill_amount == 36000
    assert amounts["INSPECTION"].current_bill_amount == 27500
    assert session.get_bill_labor_subtotal() == 63500
    assert session.get_adjustment_total() == 3000

    # derivations do not touch the server view
    assert session.detail.activities[0].bill_rate == 11000


def test_rate_edited_back_to_original_is_not_a_change():
    session = _editing()
    session.edit_rate("NORMAL", "bill_rate", "12000")
    session.edit_rate("NORMAL", "bill_rate", "11000")
    assert session.get_rate_changes() == []
    assert session.has_changes() is False


@pytest.mark.parametrize("text", ["", "abc", "-100"])
def test_invalid_rate_input_falls_back_to_original(text):
    assert parse_rate_input(text, 11000) == 11000
    session = _editing()
    session.edit_rate("NORMAL", "bill_rate", text)
    assert session.get_rate_changes() == []
    assert session.get_activity_bill_amounts()["NORMAL"].current_bill_rate == 11000


def test_memo_overlay_for_display_and_memo_only_payload():
    session = _editing()
    session.edit_rate("INSPECTION", "memo", "")

    shown = {a.activity: a.memo for a in session.get_activities_for_display()}
    assert shown == {"NORMAL": None, "INSPECTION": None}
    assert session.get_rate_changes() == []

    payload = session.build_payload()
    assert payload.model_dump(by_alias=True, exclude_unset=True) == {
        "billRateAdjustments": {"INSPECTION": {"billRate": 11000, "memo": ""}},
    }


def test_expense_edits_are_detected_and_sent_normalized():
    session = _editing()
    assert session.expenses[1].manual_bill_override is True
    assert session.expenses[0].manual_bill_override is False

    index = session.add_expense()
    assert session.get_expenses_has_changes() is False  # empty line is ignored
    session.change_category_at(index, "outsourcing")
    session.change_cost_field_at(index, "cost_unit_price", "25000")
    assert session.get_expenses_has_changes() is True
    assert session.get_material_total() == 2400 + 800 + 30000

    session.change_billing_field_at(0, "bill_total", "3000")
    session.remove_expense(1)

    payload = session.build_payload().model_dump(exclude_unset=True)
    assert [(e["category"], e["bill_total"], e["manual_bill_override"]) for e in payload["expenses"]] == [
        ("materials", 3000, True),
        ("outsourcing", 30000, False),
    ]

    session.reset_override_at(0)
    assert session.expenses[0].bill_total == 2400


def test_amount_and_date_flags_use_canonical_strings():
    detail = _detail()
    assert amount_and_date_changes(detail, AmountDateBuffer("100000", "", "2026-09-30")).any is False
    assert amount_and_date_changes(detail, AmountDateBuffer("0100000", "", " 2026-09-30 ")).any is False

    flags = amount_and_date_changes(detail, AmountDateBuffer("", "95000", "2026-10-01"))
    assert (flags.estimate_amount, flags.final_decision_amount, flags.delivery_date) == (True, True, True)


def test_same_date_in_compact_spelling_is_not_a_change():
    session = _editing()
    session.set_delivery_date("20260930")

    assert session.get_amount_and_date_has_changes().delivery_date is False
    assert session.has_changes() is False


def test_payload_carries_only_changed_fields():
    session = _editing()
    session.set_final_decision_amount("95000")
    session.set_delivery_date("")

    payload = session.build_payload()
    assert payload.model_dump(exclude_unset=True) == {
        "final_decision_amount": 95000,
        "delivery_date": None,
    }

    with pytest.raises(ValueError):
        session.set_delivery_date("30/09/2026")


def test_save_clears_buffers_only_on_success():
    session = _editing()
    session.set_estimate_amount("120000")

    def failing_submit(payload):
        raise RuntimeError("network down")

    with pytest.raises(RuntimeError):
        session.save(failing_submit)
    assert session.state is EditSessionState.EDITING
    assert session.amounts.estimate_amount == "120000"

    sent = []
    refreshed = _detail(estimateAmount=120000)
    session.save(sent.append, refetch=lambda: refreshed)

    assert [p.estimate_amount for p in sent] == [120000]
    assert session.state is EditSessionState.VIEWING
    assert session.detail.estimate_amount == 120000


def test_pure_rate_changes_function():
    detail = _detail()
    edits = {"INSPECTION": RateEdit(bill_rate="9000", memo="")}
    [change] = rate_changes(detail.activities, edits)
    assert change.adjustment == -5000
    assert detail.delivery_date == date(2026, 9, 30)
