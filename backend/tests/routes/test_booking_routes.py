"""
Route tests for /api/v1/bookings.
"""

import pytest


@pytest.fixture
def booking_request(make_slot, catalog, active_client, buy_package):
    def _request(**overrides):
        slot = overrides.pop("slot", None) or make_slot(capacity=3)
        package = overrides.pop("package", None) or buy_package(catalog.individual_price)
        payload = {
            "client_id": active_client.id,
            "user_package_id": package.id,
            "schedule_slot_id": slot.id,
        }
        payload.update(overrides)
        return payload

    return _request


def test_create_booking(client, booking_request):
    r = client.post("/api/v1/bookings", json=booking_request(notes="  first session  "))

    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "pending"
    assert body["group_size"] == 1
    assert body["total_amount"] == 100.0
    assert body["notes"] == "first session"


def test_rejection_is_problem_document_with_code(client, booking_request):
    r = client.post("/api/v1/bookings", json=booking_request(booking_type="group", group_size=2))

    assert r.status_code == 400
    assert r.headers["content-type"].startswith("application/problem+json")
    body = r.json()
    assert body["code"] == "PackageTypeMismatch"
    assert body["errors"] == {"package_type": "individual", "booking_type": "group"}


def test_slot_full_is_conflict(client, booking_request, make_slot, catalog, buy_package):
    slot = make_slot(capacity=3)
    group_package = buy_package(catalog.group_price)

    r = client.post(
        "/api/v1/bookings",
        json=booking_request(slot=slot, package=group_package, booking_type="group", group_size=4),
    )

    assert r.status_code == 409
    assert r.json()["code"] == "SlotFull"
    assert client.get(f"/api/v1/slots/{slot.id}").json()["booked_count"] == 0


def test_group_size_zero_fails_validation(client, booking_request):
    r = client.post("/api/v1/bookings", json=booking_request(group_size=0))

    assert r.status_code == 422


def test_status_flow_and_history(client, booking_request):
    booking = client.post("/api/v1/bookings", json=booking_request()).json()
    url = f"/api/v1/bookings/{booking['id']}"

    r = client.patch(url, json={"status": "confirmed"}, headers={"X-Actor-Id": "admin"})
    assert r.status_code == 200
    assert r.json()["status"] == "confirmed"

    r = client.patch(url, json={"status": "cancelled", "reason": "sick"})
    assert r.status_code == 200
    assert r.json()["cancellation_reason"] == "sick"
    assert r.json()["session_restored"] is True

    r = client.patch(url, json={"status": "completed"})
    assert r.status_code == 422
    assert r.json()["code"] == "InvalidTransition"

    history = client.get(f"{url}/history").json()
    assert history["booking_id"] == booking["id"]
    assert [(c["from_status"], c["to_status"]) for c in history["changes"]] == [
        (None, "pending"),
        ("pending", "confirmed"),
        ("confirmed", "cancelled"),
    ]
    assert history["changes"][1]["actor_id"] == "admin"


def test_cannot_patch_back_to_pending(client, booking_request):
    booking = client.post("/api/v1/bookings", json=booking_request()).json()

    r = client.patch(f"/api/v1/bookings/{booking['id']}", json={"status": "pending"})

    assert r.status_code == 422


def test_no_show(client, booking_request):
    booking = client.post("/api/v1/bookings", json=booking_request()).json()

    r = client.patch(f"/api/v1/bookings/{booking['id']}", json={"status": "no-show"})

    assert r.status_code == 200
    assert r.json()["status"] == "no-show"
    assert r.json()["capacity_released"] is True
    assert r.json()["session_restored"] is False


def test_unknown_booking(client):
    r = client.get("/api/v1/bookings/01ARZ3NDEKTSV4RRFFQ69G5FAV")

    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"
