"""
Route tests for payment events, user packages and clients.
"""


def _payment(client_id, price_id, status="completed", reference="pay_1"):
    return {
        "client_id": client_id,
        "package_price_id": price_id,
        "status": status,
        "payment_reference": reference,
    }


def test_completed_payment_issues_package(client, catalog, active_client):
    r = client.post(
        "/api/v1/payments/confirmed", json=_payment(active_client.id, catalog.individual_price.id)
    )

    assert r.status_code == 200
    body = r.json()
    assert body["processed"] is True
    package = body["user_package"]
    assert package["sessions_remaining"] == 5
    assert package["sessions_used"] == 0
    assert package["price_paid"] == 500.0
    assert package["is_active"] is True

    r = client.get(f"/api/v1/packages/{package['id']}")
    assert r.status_code == 200
    assert r.json()["payment_reference"] == "pay_1"


def test_repeated_payment_event_returns_same_package(client, catalog, active_client):
    payload = _payment(active_client.id, catalog.individual_price.id)

    first = client.post("/api/v1/payments/confirmed", json=payload).json()
    second = client.post("/api/v1/payments/confirmed", json=payload).json()

    assert first["user_package"]["id"] == second["user_package"]["id"]
    listed = client.get(f"/api/v1/clients/{active_client.id}/packages").json()
    assert len(listed) == 1


def test_pending_payment_is_acknowledged_without_package(client, catalog, active_client):
    r = client.post(
        "/api/v1/payments/confirmed",
        json=_payment(active_client.id, catalog.individual_price.id, status="pending"),
    )

    assert r.status_code == 200
    assert r.json() == {"processed": False, "user_package": None}
    assert client.get(f"/api/v1/clients/{active_client.id}/packages").json() == []


def test_payment_for_unknown_client_is_404(client, catalog):
    r = client.post(
        "/api/v1/payments/confirmed",
        json=_payment("01ARZ3NDEKTSV4RRFFQ69G5FAV", catalog.individual_price.id),
    )

    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"


def test_deactivated_package_rejects_bookings(client, catalog, active_client, buy_package, make_slot):
    package = buy_package(catalog.individual_price)

    r = client.post(f"/api/v1/packages/{package.id}/deactivate")
    assert r.status_code == 200
    assert r.json()["is_active"] is False
    assert r.json()["deactivation_reason"] == "manual"

    r = client.post(
        "/api/v1/bookings",
        json={
            "client_id": active_client.id,
            "user_package_id": package.id,
            "schedule_slot_id": make_slot().id,
        },
    )
    assert r.status_code == 422
    assert r.json()["code"] == "PackageInactive"

    active = client.get(
        f"/api/v1/clients/{active_client.id}/packages", params={"active_only": True}
    ).json()
    assert active == []


def test_register_client(client):
    r = client.post("/api/v1/clients", json={"email": "Linus@Example.com", "name": "Linus"})

    assert r.status_code == 201
    body = r.json()
    assert body["email"] == "linus@example.com"
    assert body["status"] == "active"

    assert client.get(f"/api/v1/clients/{body['id']}").json() == body


def test_duplicate_email_is_rejected(client, active_client):
    r = client.post("/api/v1/clients", json={"email": "ada@example.com"})

    assert r.status_code == 400
    assert r.json()["code"] == "InvalidCatalogEntry"


def test_malformed_email_fails_validation(client):
    r = client.post("/api/v1/clients", json={"email": "not-an-email"})

    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"


def test_inactive_client_cannot_book(client, catalog, active_client, buy_package, make_slot):
    package = buy_package(catalog.individual_price)

    r = client.patch(f"/api/v1/clients/{active_client.id}/status", json={"status": "inactive"})
    assert r.status_code == 200
    assert r.json()["status"] == "inactive"

    r = client.post(
        "/api/v1/bookings",
        json={
            "client_id": active_client.id,
            "user_package_id": package.id,
            "schedule_slot_id": make_slot().id,
        },
    )
    assert r.status_code == 422
    assert r.json()["code"] == "ClientInactive"


def test_client_bookings_filtered_by_status(client, catalog, active_client, buy_package, make_slot):
    package = buy_package(catalog.individual_price)
    ids = []
    for _ in range(2):
        r = client.post(
            "/api/v1/bookings",
            json={
                "client_id": active_client.id,
                "user_package_id": package.id,
                "schedule_slot_id": make_slot().id,
            },
        )
        ids.append(r.json()["id"])
    client.patch(f"/api/v1/bookings/{ids[0]}", json={"status": "cancelled"})

    url = f"/api/v1/clients/{active_client.id}/bookings"
    assert len(client.get(url).json()) == 2
    pending = client.get(url, params={"status": "pending"}).json()
    assert [b["id"] for b in pending] == [ids[1]]


def test_unknown_client_is_404(client):
    r = client.get("/api/v1/clients/01ARZ3NDEKTSV4RRFFQ69G5FAV")

    assert r.status_code == 404
