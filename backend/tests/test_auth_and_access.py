from uuid import uuid4

from fastapi.testclient import TestClient

from propdesk.main import app

client = TestClient(app)


def _register(full_name: str = "Test Owner") -> dict:
    res = client.post(
        "/api/auth/register",
        json={
            "email": f"owner-{uuid4().hex[:8]}@example.com",
            "password": "Secret123!",
            "fullName": full_name,
        },
    )
    assert res.status_code == 201
    return res.json()


def _headers(auth: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {auth['token']}"}


def _property_payload(name: str = "Maple Court") -> dict:
    return {
        "name": name,
        "type": "Single Family",
        "street": "12 Maple St",
        "city": "Albany",
        "state": "NY",
        "zipCode": "12207",
    }


def test_health_is_public() -> None:
    res = TestClient(app).get("/api/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_api_requires_authentication() -> None:
    anonymous = TestClient(app)
    res = anonymous.get("/api/properties")
    assert res.status_code == 401
    assert res.json() == {"detail": "authentication required"}

    res = anonymous.get("/api/properties", headers={"Authorization": "Bearer not-a-session"})
    assert res.status_code == 401


def test_register_login_and_logout() -> None:
    email = f"login-{uuid4().hex[:8]}@example.com"
    reg = client.post("/api/auth/register", json={"email": email, "password": "Secret123!"})
    assert reg.status_code == 201
    assert reg.json()["orgId"]

    duplicate = client.post("/api/auth/register", json={"email": email, "password": "Secret123!"})
    assert duplicate.status_code == 409

    bad = client.post("/api/auth/login", json={"email": email, "password": "WrongPass1"})
    assert bad.status_code == 401

    login = client.post("/api/auth/login", json={"email": email.upper(), "password": "Secret123!"})
    assert login.status_code == 200
    token = login.json()["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == email

    out = client.post("/api/auth/logout", headers={"Authorization": f"Bearer {token}"})
    assert out.status_code == 200
    fresh = TestClient(app)
    assert fresh.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_property_crud_is_scoped_to_organization() -> None:
    owner = _register()
    other = _register("Someone Else")

    created = client.post("/api/properties", json=_property_payload(), headers=_headers(owner))
    assert created.status_code == 201
    property_id = created.json()["id"]
    assert created.json()["country"] == "US"

    listed = client.get("/api/properties", headers=_headers(owner))
    assert [p["id"] for p in listed.json()] == [property_id]
    assert client.get("/api/properties", headers=_headers(other)).json() == []

    forbidden = client.patch(f"/api/properties/{property_id}", json={"name": "Hijack"}, headers=_headers(other))
    assert forbidden.status_code == 403

    missing = client.patch(f"/api/properties/{uuid4()}", json={"name": "Nope"}, headers=_headers(owner))
    assert missing.status_code == 404

    renamed = client.patch(f"/api/properties/{property_id}", json={"name": "Maple Court East"}, headers=_headers(owner))
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Maple Court East"

    unit = client.post(
        "/api/units",
        json={"propertyId": property_id, "label": "1A", "bedrooms": 2, "rentAmount": 1450},
        headers=_headers(owner),
    )
    assert unit.status_code == 201
    units = client.get("/api/units", params={"propertyId": property_id}, headers=_headers(owner))
    assert [u["label"] for u in units.json()] == ["1A"]

    deleted = client.delete(f"/api/properties/{property_id}", headers=_headers(owner))
    assert deleted.status_code == 200
    assert client.get("/api/properties", headers=_headers(owner)).json() == []


def test_customers_and_categories() -> None:
    auth = _register()
    headers = _headers(auth)

    customer = client.post(
        "/api/customers",
        json={"name": "Jordan Lee", "email": "Jordan@Example.com", "company": "Lee Rentals"},
        headers=headers,
    )
    assert customer.status_code == 201
    assert customer.json()["email"] == "jordan@example.com"
    assert len(client.get("/api/customers", headers=headers).json()) == 1
    assert client.delete(f"/api/customers/{customer.json()['id']}", headers=headers).status_code == 200
    assert client.get("/api/customers", headers=headers).json() == []

    category = client.post("/api/categories", json={"name": "Plumbers", "color": "#112233"}, headers=headers)
    assert category.status_code == 201
    assert category.json()["isActive"] is True
    category_id = category.json()["id"]

    updated = client.patch(f"/api/categories/{category_id}", json={"isActive": False}, headers=headers)
    assert updated.json()["isActive"] is False
    assert client.delete(f"/api/categories/{category_id}", headers=headers).status_code == 200
    assert client.get("/api/categories", headers=headers).json() == []


def test_transaction_unit_changes_are_checked() -> None:
    owner = _register()
    other = _register("Someone Else")
    property_id = client.post("/api/properties", json=_property_payload(), headers=_headers(owner)).json()["id"]
    second_property = client.post(
        "/api/properties", json=_property_payload("Birch Flats"), headers=_headers(owner)
    ).json()["id"]
    unit_id = client.post(
        "/api/units", json={"propertyId": property_id, "label": "2B"}, headers=_headers(owner)
    ).json()["id"]

    other_property = client.post("/api/properties", json=_property_payload(), headers=_headers(other)).json()["id"]
    operational = client.post(
        "/api/expenses",
        json={"scope": "operational", "entityId": str(uuid4()), "amount": 40, "date": "2026-03-01T12:00:00Z"},
        headers=_headers(other),
    ).json()
    foreign_owner = client.post(
        "/api/expenses",
        json={"propertyId": other_property, "amount": 40, "date": "2026-03-01T12:00:00Z"},
        headers=_headers(other),
    ).json()

    res = client.put(f"/api/expenses/{operational['id']}", json={"unitId": unit_id}, headers=_headers(other))
    assert res.status_code == 400
    res = client.put(f"/api/expenses/{foreign_owner['id']}", json={"unitId": unit_id}, headers=_headers(other))
    assert res.status_code == 403
    assert all(r["unitId"] is None for r in client.get("/api/transactions", headers=_headers(other)).json())

    mismatched = client.post(
        "/api/expenses",
        json={"propertyId": second_property, "amount": 15, "date": "2026-03-01T12:00:00Z"},
        headers=_headers(owner),
    ).json()
    res = client.put(f"/api/expenses/{mismatched['id']}", json={"unitId": unit_id}, headers=_headers(owner))
    assert res.status_code == 400
    assert res.json()["detail"] == "unit does not belong to property"

    series = client.post(
        "/api/expenses",
        json={
            "propertyId": other_property,
            "amount": 60,
            "date": "2026-03-01T12:00:00Z",
            "isRecurring": True,
            "recurringFrequency": "months",
            "recurringEndDate": "2026-05-02T00:00:00Z",
        },
        headers=_headers(other),
    ).json()
    res = client.put(
        f"/api/expenses/{series['id']}/recurring",
        params={"mode": "all"},
        json={"unitId": unit_id},
        headers=_headers(other),
    )
    assert res.status_code == 403

    matching = client.post(
        "/api/expenses",
        json={"propertyId": property_id, "amount": 15, "date": "2026-03-01T12:00:00Z"},
        headers=_headers(owner),
    ).json()
    res = client.put(f"/api/expenses/{matching['id']}", json={"unitId": unit_id}, headers=_headers(owner))
    assert res.status_code == 200
    assert res.json()["unitId"] == unit_id
