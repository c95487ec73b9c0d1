from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from propdesk.services.recurrence import (
    add_months,
    build_occurrences,
    normalize_frequency,
    occurrence_dates,
    plan_series_delete,
    plan_series_update,
    rent_description,
)


def _dt(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 9, tzinfo=timezone.utc)


def test_add_months_clamps_to_month_end() -> None:
    assert add_months(_dt(2025, 1, 31), 1) == _dt(2025, 2, 28)
    assert add_months(_dt(2024, 1, 31), 1) == _dt(2024, 2, 29)
    assert add_months(_dt(2025, 11, 30), 3) == _dt(2026, 2, 28)
    assert add_months(_dt(2025, 3, 15), -3) == _dt(2024, 12, 15)


def test_monthly_series_stays_anchored_on_start_day() -> None:
    start = _dt(2025, 1, 31)
    dates = occurrence_dates(start, "months", 1, end_date=_dt(2025, 5, 31), now=start)
    assert dates == [_dt(2025, 2, 28), _dt(2025, 3, 31), _dt(2025, 4, 30), _dt(2025, 5, 31)]


def test_legacy_frequency_names_ignore_interval() -> None:
    assert normalize_frequency("quarterly", 5) == ("months", 3)
    assert normalize_frequency("annually") == ("years", 1)
    assert normalize_frequency("weeks", 2) == ("weeks", 2)
    start = _dt(2025, 1, 10)
    assert occurrence_dates(start, "biannually", 4, end_date=_dt(2026, 1, 10), now=start) == [
        _dt(2025, 7, 10),
        _dt(2026, 1, 10),
    ]


def test_unknown_frequency_is_rejected() -> None:
    with pytest.raises(ValueError):
        normalize_frequency("fortnightly")


def test_end_date_is_inclusive() -> None:
    start = _dt(2025, 1, 1)
    assert occurrence_dates(start, "weeks", 1, end_date=_dt(2025, 1, 15), now=start) == [
        _dt(2025, 1, 8),
        _dt(2025, 1, 15),
    ]


def test_generation_is_capped_at_24_instances() -> None:
    start = _dt(2025, 1, 1)
    dates = occurrence_dates(start, "days", 1, now=start)
    assert len(dates) == 24
    assert dates[-1] == start + timedelta(days=24)


def test_generation_stops_at_two_year_horizon() -> None:
    start = _dt(2025, 6, 1)
    dates = occurrence_dates(start, "years", 1, now=_dt(2025, 5, 1))
    assert dates == [_dt(2026, 6, 1)]


def test_rent_description_only_for_rental_income() -> None:
    when = _dt(2025, 9, 1)
    assert rent_description("Unit 4 Rent", "Rental Income", when) == "September 2025 Rent"
    assert rent_description("Parking fee", "Rental Income", when) == "Parking fee"
    assert rent_description("Unit 4 Rent", "Late Fees", when) == "Unit 4 Rent"


def test_build_occurrences_copies_parent_fields() -> None:
    parent = {
        "id": uuid4(),
        "date": _dt(2025, 1, 5),
        "amount": 99,
        "description": "Internet",
        "category": "Utilities",
        "is_recurring": True,
        "recurring_frequency": "months",
        "recurring_interval": 1,
        "recurring_end_date": _dt(2025, 3, 5),
        "parent_recurring_id": None,
        "payment_status": "Paid",
    }
    rows = build_occurrences(
        parent, "date", [_dt(2025, 2, 5), _dt(2025, 3, 5)], uuid4, {"payment_status": "Unpaid"}
    )
    assert [r["date"] for r in rows] == [_dt(2025, 2, 5), _dt(2025, 3, 5)]
    for row in rows:
        assert row["id"] != parent["id"]
        assert row["parent_recurring_id"] == parent["id"]
        assert row["is_recurring"] is False
        assert row["recurring_frequency"] is None
        assert row["amount"] == 99
        assert row["payment_status"] == "Unpaid"


def _series() -> tuple[dict, list[dict]]:
    parent = {"id": uuid4(), "is_recurring": True, "parent_recurring_id": None, "date": _dt(2025, 1, 1)}
    children = [
        {"id": uuid4(), "is_recurring": False, "parent_recurring_id": parent["id"], "date": _dt(2025, m, 1)}
        for m in (2, 3, 4, 5)
    ]
    return parent, children


def test_plan_delete_child_future() -> None:
    parent, children = _series()
    plan = plan_series_delete(children[1], [parent] + children, "future", "date")
    assert plan.row_ids == [children[1]["id"], children[2]["id"], children[3]["id"]]
    assert plan.parent_end_dates == {parent["id"]: _dt(2025, 2, 28)}


def test_plan_delete_parent_future_and_all() -> None:
    parent, children = _series()
    series = [parent] + children
    future = plan_series_delete(parent, series, "future", "date")
    assert set(future.row_ids) == {parent["id"]} | {c["id"] for c in children}
    assert future.parent_end_dates == {}

    everything = plan_series_delete(children[3], series, "all", "date")
    assert set(everything.row_ids) == {parent["id"]} | {c["id"] for c in children}


def test_plan_delete_parent_future_keeping_parent() -> None:
    parent, children = _series()
    plan = plan_series_delete(parent, [parent] + children, "future", "date", keep_parent_on_future=True)
    assert parent["id"] not in plan.row_ids
    assert len(plan.row_ids) == 4
    assert plan.parent_end_dates == {parent["id"]: _dt(2024, 12, 31)}


def test_plan_update_modes() -> None:
    parent, children = _series()
    series = [parent] + children
    assert plan_series_update(children[2], series, "future", "date") == [children[2]["id"], children[3]["id"]]
    assert plan_series_update(parent, series, "future", "date") == [parent["id"]] + [c["id"] for c in children]
    assert len(plan_series_update(children[0], series, "all", "date")) == 5


def test_non_series_row_only_touches_itself() -> None:
    lone = {"id": uuid4(), "is_recurring": False, "parent_recurring_id": None, "date": _dt(2025, 1, 1)}
    assert plan_series_delete(lone, [lone], "all", "date").row_ids == [lone["id"]]
    assert plan_series_update(lone, [lone], "future", "date") == [lone["id"]]


def test_undated_target_with_future_mode_affects_only_itself() -> None:
    parent, children = _series()
    undated = {"id": uuid4(), "is_recurring": False, "parent_recurring_id": parent["id"], "date": None}
    plan = plan_series_delete(undated, [parent, undated] + children, "future", "date")
    assert plan.row_ids == [undated["id"]]
    assert plan.parent_end_dates == {}
