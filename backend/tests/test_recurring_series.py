from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from fastapi.testclient import TestClient

from propdesk.main import app

client = TestClient(app)

NEXT_YEAR = datetime.now(timezone.utc).year + 1
SERIES_START = datetime(NEXT_YEAR, 1, 15, 12, tzinfo=timezone.utc)
SERIES_END = datetime(NEXT_YEAR, 6, 20, tzinfo=timezone.utc)


def _auth_headers() -> dict[str, str]:
    res = client.post(
        "/api/auth/register",
        json={"email": f"series-{uuid4().hex[:8]}@example.com", "password": "Secret123!"},
    )
    assert res.status_code == 201
    return {"Authorization": f"Bearer {res.json()['token']}"}


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _create_property(headers: dict[str, str]) -> str:
    res = client.post(
        "/api/properties",
        json={
            "name": "Birch Flats",
            "type": "Residential Building",
            "street": "4 Birch Rd",
            "city": "Newark",
            "state": "NJ",
            "zipCode": "07102",
        },
        headers=headers,
    )
    assert res.status_code == 201
    return res.json()["id"]


def _create_monthly_expense(headers: dict[str, str], property_id: str) -> dict:
    res = client.post(
        "/api/expenses",
        json={
            "propertyId": property_id,
            "amount": 120,
            "description": "Landscaping",
            "category": "Maintenance",
            "date": SERIES_START.isoformat(),
            "isRecurring": True,
            "recurringFrequency": "months",
            "recurringInterval": 1,
            "recurringEndDate": SERIES_END.isoformat(),
        },
        headers=headers,
    )
    assert res.status_code == 201
    return res.json()


def _expenses(headers: dict[str, str]) -> list[dict]:
    res = client.get("/api/transactions", params={"type": "Expense"}, headers=headers)
    assert res.status_code == 200
    return sorted(res.json(), key=lambda t: _parse(t["date"]))


def _child_in_month(rows: list[dict], month: int) -> dict:
    return next(r for r in rows if _parse(r["date"]).month == month and r["parentRecurringId"])


def test_recurring_expense_generates_monthly_occurrences() -> None:
    headers = _auth_headers()
    parent = _create_monthly_expense(headers, _create_property(headers))

    rows = _expenses(headers)
    assert len(rows) == 6
    assert [_parse(r["date"]).month for r in rows] == [1, 2, 3, 4, 5, 6]
    children = [r for r in rows if r["id"] != parent["id"]]
    assert all(c["parentRecurringId"] == parent["id"] for c in children)
    assert all(c["isRecurring"] is False for c in children)
    assert all(_parse(c["date"]).day == 15 for c in children)


def test_rental_income_occurrences_get_month_descriptions() -> None:
    headers = _auth_headers()
    property_id = _create_property(headers)
    res = client.post(
        "/api/revenues",
        json={
            "propertyId": property_id,
            "amount": 1800,
            "description": "Unit 2 Rent",
            "category": "Rental Income",
            "date": SERIES_START.isoformat(),
            "isRecurring": True,
            "recurringFrequency": "monthly",
            "recurringEndDate": datetime(NEXT_YEAR, 3, 31, tzinfo=timezone.utc).isoformat(),
        },
        headers=headers,
    )
    assert res.status_code == 201
    assert res.json()["type"] == "Income"

    rows = client.get("/api/transactions", params={"type": "Income"}, headers=headers).json()
    descriptions = sorted(r["description"] for r in rows if r["parentRecurringId"])
    assert descriptions == [f"February {NEXT_YEAR} Rent", f"March {NEXT_YEAR} Rent"]


def test_delete_child_and_future_truncates_series() -> None:
    headers = _auth_headers()
    parent = _create_monthly_expense(headers, _create_property(headers))
    march = _child_in_month(_expenses(headers), 3)

    res = client.delete(f"/api/expenses/{march['id']}/recurring", params={"mode": "future"}, headers=headers)
    assert res.status_code == 200
    assert res.json() == {"deleted": 4}

    rows = _expenses(headers)
    assert [_parse(r["date"]).month for r in rows] == [1, 2]
    kept_parent = next(r for r in rows if r["id"] == parent["id"])
    assert _parse(kept_parent["recurringEndDate"]) == _parse(march["date"]) - timedelta(days=1)


def test_delete_parent_and_future_removes_whole_series() -> None:
    headers = _auth_headers()
    parent = _create_monthly_expense(headers, _create_property(headers))

    res = client.delete(f"/api/expenses/{parent['id']}/recurring", params={"mode": "future"}, headers=headers)
    assert res.json() == {"deleted": 6}
    assert _expenses(headers) == []


def test_delete_all_from_child_removes_parent_and_children() -> None:
    headers = _auth_headers()
    _create_monthly_expense(headers, _create_property(headers))
    april = _child_in_month(_expenses(headers), 4)

    res = client.delete(f"/api/expenses/{april['id']}/recurring", params={"mode": "all"}, headers=headers)
    assert res.json() == {"deleted": 6}
    assert _expenses(headers) == []


def test_series_endpoint_without_mode_deletes_single_occurrence() -> None:
    headers = _auth_headers()
    _create_monthly_expense(headers, _create_property(headers))
    may = _child_in_month(_expenses(headers), 5)

    res = client.delete(f"/api/expenses/{may['id']}/recurring", headers=headers)
    assert res.json() == {"deleted": 1}
    assert [_parse(r["date"]).month for r in _expenses(headers)] == [1, 2, 3, 4, 6]


def test_single_delete_keeps_rest_of_series() -> None:
    headers = _auth_headers()
    _create_monthly_expense(headers, _create_property(headers))
    feb = _child_in_month(_expenses(headers), 2)

    assert client.delete(f"/api/expenses/{feb['id']}", headers=headers).status_code == 200
    assert len(_expenses(headers)) == 5


def test_series_mode_errors() -> None:
    headers = _auth_headers()
    property_id = _create_property(headers)
    parent = _create_monthly_expense(headers, property_id)

    invalid = client.delete(f"/api/expenses/{parent['id']}/recurring", params={"mode": "past"}, headers=headers)
    assert invalid.status_code == 400

    invalid_body = client.put(
        f"/api/expenses/{parent['id']}/recurring", json={"amount": 90, "mode": "past"}, headers=headers
    )
    assert invalid_body.status_code == 400
    assert "invalid mode" in invalid_body.json()["detail"]

    single = client.post(
        "/api/expenses",
        json={"propertyId": property_id, "amount": 50, "description": "Filters", "date": SERIES_START.isoformat()},
        headers=headers,
    )
    not_recurring = client.delete(
        f"/api/expenses/{single.json()['id']}/recurring", params={"mode": "future"}, headers=headers
    )
    assert not_recurring.status_code == 400
    assert "not a recurring" in not_recurring.json()["detail"]

    missing = client.delete(f"/api/expenses/{uuid4()}/recurring", params={"mode": "all"}, headers=headers)
    assert missing.status_code == 404

    other_org = _auth_headers()
    forbidden = client.delete(f"/api/expenses/{parent['id']}/recurring", params={"mode": "all"}, headers=other_org)
    assert forbidden.status_code == 403

    wrong_type = client.delete(f"/api/revenues/{parent['id']}", headers=headers)
    assert wrong_type.status_code == 404


def test_update_child_and_future_changes_only_later_occurrences() -> None:
    headers = _auth_headers()
    _create_monthly_expense(headers, _create_property(headers))
    april = _child_in_month(_expenses(headers), 4)

    res = client.put(
        f"/api/expenses/{april['id']}/recurring",
        params={"mode": "future"},
        json={"amount": 150, "description": "Landscaping (new vendor)"},
        headers=headers,
    )
    assert res.status_code == 200

    amounts = {_parse(r["date"]).month: Decimal(r["amount"]) for r in _expenses(headers)}
    assert amounts == {
        1: Decimal("120"),
        2: Decimal("120"),
        3: Decimal("120"),
        4: Decimal("150"),
        5: Decimal("150"),
        6: Decimal("150"),
    }


def test_update_all_keeps_each_occurrence_date() -> None:
    headers = _auth_headers()
    parent = _create_monthly_expense(headers, _create_property(headers))
    march = _child_in_month(_expenses(headers), 3)
    moved = datetime(NEXT_YEAR, 3, 18, 12, tzinfo=timezone.utc)

    res = client.put(
        f"/api/expenses/{march['id']}/recurring",
        json={"mode": "all", "notes": "new contract", "date": moved.isoformat()},
        headers=headers,
    )
    assert res.status_code == 200
    assert _parse(res.json()["date"]) == moved

    rows = _expenses(headers)
    assert all(r["notes"] == "new contract" for r in rows)
    days = {r["id"]: _parse(r["date"]).day for r in rows}
    assert days[march["id"]] == 18
    assert days[parent["id"]] == 15
    assert sorted(days.values()) == [15, 15, 15, 15, 15, 18]


def _create_weekly_reminder(headers: dict[str, str]) -> dict:
    res = client.post(
        "/api/reminders",
        json={
            "title": "Check boiler pressure",
            "type": "maintenance",
            "dueAt": SERIES_START.isoformat(),
            "isRecurring": True,
            "recurringFrequency": "weeks",
            "recurringInterval": 1,
            "recurringEndDate": (SERIES_START + timedelta(weeks=4)).isoformat(),
        },
        headers=headers,
    )
    assert res.status_code == 201
    return res.json()


def _reminders(headers: dict[str, str]) -> list[dict]:
    rows = client.get("/api/reminders", headers=headers).json()
    return sorted(rows, key=lambda r: _parse(r["dueAt"]))


def test_recurring_reminder_generation_and_parent_future_delete() -> None:
    headers = _auth_headers()
    parent = _create_weekly_reminder(headers)
    rows = _reminders(headers)
    assert len(rows) == 5
    assert all(r["status"] == "Pending" for r in rows)

    res = client.delete(f"/api/reminders/{parent['id']}/recurring", params={"mode": "future"}, headers=headers)
    assert res.json() == {"deleted": 4}

    rows = client.get("/api/reminders", headers=headers).json()
    assert [r["id"] for r in rows] == [parent["id"]]
    assert _parse(rows[0]["recurringEndDate"]) == SERIES_START - timedelta(days=1)


def test_reminder_series_update_from_child() -> None:
    headers = _auth_headers()
    parent = _create_weekly_reminder(headers)
    third = _reminders(headers)[2]

    res = client.patch(
        f"/api/reminders/{third['id']}/recurring",
        params={"mode": "future"},
        json={"title": "Check boiler pressure and flue"},
        headers=headers,
    )
    assert res.status_code == 200

    titles = [r["title"] for r in _reminders(headers)]
    assert titles[:2] == ["Check boiler pressure", "Check boiler pressure"]
    assert titles[2:] == ["Check boiler pressure and flue"] * 3
    assert _reminders(headers)[0]["id"] == parent["id"]
