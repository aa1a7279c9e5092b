"""HTTP tests through FastAPI's TestClient against the module-level app"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

import main
from main import app
from infrastructure.security import create_access_token

TODAY = datetime.now(timezone.utc).date()
NEXT_FRIDAY = TODAY + timedelta(days=(4 - TODAY.weekday()) % 7 + 7)


@pytest.fixture(autouse=True)
def fresh_store():
    main.uow.database.clear()
    main.notifier.sent.clear()
    yield
    main.uow.database.clear()


@pytest.fixture
def client():
    """FastAPI test client"""
    return TestClient(app)


def login(client, username, password):
    response = client.post("/token", data={"username": username, "password": password})
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def auth_headers(client):
    """Get authentication headers with valid admin token"""
    return login(client, "admin", "admin123")


@pytest.fixture
def seaside(client, auth_headers):
    """Property, Deluxe room type at 5000 PHP and room 101, created through the API"""
    bu = client.post("/api/business-units", headers=auth_headers, json={
        "name": "seaside", "display_name": "Seaside Hotel", "primary_currency": "PHP", "timezone": "UTC",
    })
    assert bu.status_code == 201
    bu_id = bu.json()["business_unit_id"]

    room_type = client.post("/api/room-types", headers=auth_headers, json={
        "business_unit_id": bu_id, "name": "deluxe", "display_name": "Deluxe",
        "category": "DELUXE", "max_occupancy": 3, "max_adults": 2, "max_children": 1,
        "base_rate": "5000",
    })
    assert room_type.status_code == 201
    room_type_id = room_type.json()["room_type_id"]

    room = client.post("/api/rooms", headers=auth_headers, json={
        "business_unit_id": bu_id, "room_type_id": room_type_id, "room_number": "101", "floor": 1,
    })
    assert room.status_code == 201
    return {"business_unit_id": bu_id, "room_type_id": room_type_id, "room_id": room.json()["room_id"]}


def reservation_body(seaside, check_in, nights=2, with_room=True, **extra):
    room = {"room_type_id": seaside["room_type_id"]}
    if with_room:
        room["room_id"] = seaside["room_id"]
    body = {
        "business_unit_id": seaside["business_unit_id"],
        "guest_id": str(uuid4()),
        "check_in": check_in.isoformat(),
        "check_out": (check_in + timedelta(days=nights)).isoformat(),
        "rooms": [room],
        "adults": 2,
    }
    body.update(extra)
    return body


# ============================================================================
# AUTH, HEALTH & ENUMS
# ============================================================================

class TestAuthenticationAPI:

    @pytest.mark.api
    def test_login_success(self, client):
        response = client.post("/token", data={"username": "admin", "password": "admin123"})
        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"

    @pytest.mark.api
    @pytest.mark.security
    def test_login_wrong_password(self, client):
        response = client.post("/token", data={"username": "admin", "password": "wrong"})
        assert response.status_code == 401
        assert "Incorrect username or password" in response.json()["detail"]

    @pytest.mark.api
    @pytest.mark.security
    def test_protected_endpoint_without_token(self, client):
        assert client.get("/api/reservations").status_code == 401

    @pytest.mark.api
    @pytest.mark.security
    def test_protected_endpoint_with_invalid_token(self, client):
        headers = {"Authorization": "Bearer invalid_token_12345"}
        assert client.get("/api/reservations", headers=headers).status_code == 401

    @pytest.mark.api
    @pytest.mark.security
    def test_token_with_stale_role_is_refused(self, client):
        token = create_access_token({"sub": "frontdesk", "role": "ADMIN"})
        response = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.api
    def test_read_users_me(self, client, auth_headers):
        response = client.get("/users/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["role"] == "ADMIN"

    @pytest.mark.api
    @pytest.mark.security
    def test_front_desk_cannot_edit_catalog(self, client, seaside):
        headers = login(client, "frontdesk", "frontdesk123")
        response = client.post("/api/rooms", headers=headers, json={
            "business_unit_id": seaside["business_unit_id"],
            "room_type_id": seaside["room_type_id"],
            "room_number": "102",
        })
        assert response.status_code == 403
        assert response.json()["code"] == "PERMISSION_DENIED"


class TestHealthAndEnumsAPI:

    @pytest.mark.api
    def test_health_check(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.api
    @pytest.mark.parametrize("path, expected", [
        ("reservation-status", "WALKED_IN"),
        ("reservation-source", "WALK_IN"),
        ("request-type", "HIGH_FLOOR"),
        ("room-status", "OUT_OF_ORDER"),
        ("housekeeping-status", "INSPECTED"),
        ("room-category", "SUITE"),
        ("payment-status", "PARTIALLY_REFUNDED"),
        ("payment-method", "GCASH"),
    ])
    def test_enum_values(self, client, path, expected):
        response = client.get(f"/api/enums/{path}")
        assert response.status_code == 200
        assert expected in response.json()["values"]


# ============================================================================
# CATALOG & PRICING
# ============================================================================

class TestCatalogAPI:

    @pytest.mark.api
    def test_weekend_special_quote(self, client, auth_headers, seaside):
        weekdays = {day: day in ("friday", "saturday", "sunday") for day in (
            "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")}
        rate = client.post("/api/room-rates", headers=auth_headers, json={
            "room_type_id": seaside["room_type_id"], "name": "Weekend Special",
            "base_rate": "4000", "valid_from": "2024-01-01", **weekdays,
        })
        assert rate.status_code == 201
        assert rate.json()["weekdays"]["monday"] is False

        weekend = client.post("/api/pricing/quote", headers=auth_headers, json={
            "room_type_id": seaside["room_type_id"],
            "check_in": NEXT_FRIDAY.isoformat(),
            "check_out": (NEXT_FRIDAY + timedelta(days=3)).isoformat(),
        })
        assert weekend.status_code == 200
        assert [Decimal(n["amount"]) for n in weekend.json()["nightly_rates"]] == [Decimal("4000")] * 3

        monday = NEXT_FRIDAY + timedelta(days=3)
        weekdays_quote = client.post("/api/pricing/quote", headers=auth_headers, json={
            "room_type_id": seaside["room_type_id"],
            "check_in": monday.isoformat(),
            "check_out": (monday + timedelta(days=3)).isoformat(),
        })
        nights = weekdays_quote.json()["nightly_rates"]
        assert [Decimal(n["amount"]) for n in nights] == [Decimal("5000")] * 3
        assert {n["source"] for n in nights} == {"BASE_RATE"}

    @pytest.mark.api
    @pytest.mark.edge_case
    def test_rate_without_weekdays_is_rejected(self, client, auth_headers, seaside):
        no_days = {day: False for day in (
            "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")}
        response = client.post("/api/room-rates", headers=auth_headers, json={
            "room_type_id": seaside["room_type_id"], "name": "Never",
            "base_rate": "1000", "valid_from": "2024-01-01", **no_days,
        })
        assert response.status_code == 400
        assert response.json()["code"] == "RATE_CONFIGURATION"

    @pytest.mark.api
    def test_set_default_rate(self, client, auth_headers, seaside):
        ids = []
        for name in ("Rack", "Rack 2025"):
            response = client.post("/api/room-rates", headers=auth_headers, json={
                "room_type_id": seaside["room_type_id"], "name": name,
                "base_rate": "5200", "valid_from": "2024-01-01" if name == "Rack" else "2025-01-01",
            })
            ids.append(response.json()["rate_id"])

        for rate_id in ids:
            assert client.post(f"/api/room-rates/{rate_id}/default", headers=auth_headers).status_code == 200

        rates = client.get("/api/room-rates", headers=auth_headers, params={"room_type_id": seaside["room_type_id"]})
        assert [r["rate_id"] for r in rates.json() if r["is_default"]] == [ids[-1]]

    @pytest.mark.api
    def test_room_type_with_rooms_cannot_be_deleted(self, client, auth_headers, seaside):
        response = client.delete(f"/api/room-types/{seaside['room_type_id']}", headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "REFERENTIAL_INTEGRITY"

    @pytest.mark.api
    def test_update_room_type(self, client, auth_headers, seaside):
        response = client.put(
            f"/api/room-types/{seaside['room_type_id']}", headers=auth_headers,
            json={"display_name": "Deluxe Sea View", "base_rate": "5500"},
        )
        assert response.status_code == 200
        assert response.json()["display_name"] == "Deluxe Sea View"
        assert Decimal(response.json()["base_rate"]["amount"]) == Decimal("5500")

    @pytest.mark.api
    def test_unknown_room_type(self, client, auth_headers):
        response = client.get(f"/api/room-types/{uuid4()}", headers=auth_headers)
        assert response.status_code == 404


# ============================================================================
# RESERVATIONS
# ============================================================================

class TestReservationAPI:

    @pytest.mark.api
    def test_cancel_confirmed_reservation_flow(self, client, auth_headers, seaside):
        created = client.post(
            "/api/reservations", headers=auth_headers,
            json=reservation_body(seaside, TODAY + timedelta(days=10), special_requests=[
                {"type": "QUIET_ROOM", "description": "Light sleeper"},
            ]),
        )
        assert created.status_code == 201
        reservation = created.json()
        assert reservation["status"] == "PENDING"
        assert reservation["allowed_actions"] == ["CONFIRM", "CANCEL"]
        assert Decimal(reservation["total_amount"]) == Decimal("10000")
        rid = reservation["reservation_id"]

        by_code = client.get(f"/api/reservations/code/{reservation['confirmation_number']}", headers=auth_headers)
        assert by_code.json()["reservation_id"] == rid

        confirmed = client.post(f"/api/reservations/{rid}/confirm", headers=auth_headers)
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "CONFIRMED"
        assert confirmed.json()["allowed_actions"] == ["CHECK_IN", "CANCEL", "NO_SHOW"]
        room = client.get(f"/api/rooms/{seaside['room_id']}", headers=auth_headers).json()
        assert room["status"] == "RESERVED"

        payment = client.post("/api/payments", headers=auth_headers, json={
            "business_unit_id": seaside["business_unit_id"], "reservation_id": rid,
            "amount": reservation["total_amount"], "method": "GCASH",
        })
        assert payment.status_code == 201
        payment_id = payment.json()["payment_id"]
        settled = client.post(f"/api/payments/{payment_id}/status", headers=auth_headers, json={"status": "SUCCEEDED"})
        assert settled.json()["status"] == "SUCCEEDED"

        cancelled = client.post(f"/api/reservations/{rid}/cancel", headers=auth_headers, json={"reason": "guest request"})
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "CANCELLED"
        assert cancelled.json()["allowed_actions"] == []
        room = client.get(f"/api/rooms/{seaside['room_id']}", headers=auth_headers).json()
        assert room["status"] == "AVAILABLE"

        eligibility = client.get(f"/api/reservations/{rid}/refund-eligibility", headers=auth_headers).json()
        assert eligibility["eligible"] is True
        assert eligibility["payment_ids"] == [payment_id]

        refunded = client.post(f"/api/payments/{payment_id}/refund", headers=auth_headers, json={"reason": "guest request"})
        assert refunded.status_code == 200
        assert refunded.json()["status"] == "REFUNDED"
        assert client.get(f"/api/reservations/{rid}", headers=auth_headers).json()["payment_status"] == "REFUNDED"

    @pytest.mark.api
    def test_constraint_violations_return_422(self, client, auth_headers, seaside):
        client.post("/api/room-rates", headers=auth_headers, json={
            "room_type_id": seaside["room_type_id"], "name": "Advance Saver",
            "base_rate": "3500", "valid_from": "2024-01-01", "min_advance": 3,
        })
        response = client.post(
            "/api/reservations", headers=auth_headers, json=reservation_body(seaside, TODAY + timedelta(days=1)),
        )
        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "CONSTRAINT_VIOLATION"
        assert [v["kind"] for v in body["violations"]] == ["TOO_EARLY"]
        assert client.get("/api/reservations", headers=auth_headers).json() == []

    @pytest.mark.api
    @pytest.mark.edge_case
    def test_check_out_before_check_in_is_400(self, client, auth_headers, seaside):
        body = reservation_body(seaside, TODAY + timedelta(days=5))
        body["check_out"] = (TODAY + timedelta(days=3)).isoformat()
        response = client.post("/api/reservations", headers=auth_headers, json=body)
        assert response.status_code == 400

    @pytest.mark.api
    def test_invalid_transition_returns_409(self, client, auth_headers, seaside):
        rid = client.post(
            "/api/reservations", headers=auth_headers, json=reservation_body(seaside, TODAY + timedelta(days=5)),
        ).json()["reservation_id"]
        response = client.post(f"/api/reservations/{rid}/check-out", headers=auth_headers)
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INVALID_TRANSITION"
        assert body["from"] == "PENDING"
        assert body["to"] == "CHECKED_OUT"

    @pytest.mark.api
    def test_confirm_twice_succeeds(self, client, auth_headers, seaside):
        rid = client.post(
            "/api/reservations", headers=auth_headers, json=reservation_body(seaside, TODAY + timedelta(days=5)),
        ).json()["reservation_id"]
        first = client.post(f"/api/reservations/{rid}/confirm", headers=auth_headers)
        second = client.post(f"/api/reservations/{rid}/confirm", headers=auth_headers)
        assert first.status_code == second.status_code == 200
        assert first.json()["version"] == second.json()["version"]
        assert len(main.notifier.sent) == 1

    @pytest.mark.api
    def test_overlapping_booking_conflicts(self, client, auth_headers, seaside):
        rid = client.post(
            "/api/reservations", headers=auth_headers, json=reservation_body(seaside, TODAY + timedelta(days=5), nights=3),
        ).json()["reservation_id"]
        client.post(f"/api/reservations/{rid}/confirm", headers=auth_headers)

        response = client.post(
            "/api/reservations", headers=auth_headers, json=reservation_body(seaside, TODAY + timedelta(days=6)),
        )
        assert response.status_code == 409
        body = response.json()
        assert body["retryable"] is True
        assert body["conflicting_reservation_id"] == rid

    @pytest.mark.api
    def test_check_in_and_out_today(self, client, auth_headers, seaside):
        rid = client.post(
            "/api/reservations", headers=auth_headers, json=reservation_body(seaside, TODAY),
        ).json()["reservation_id"]
        client.post(f"/api/reservations/{rid}/confirm", headers=auth_headers)

        checked_in = client.post(f"/api/reservations/{rid}/check-in", headers=auth_headers)
        assert checked_in.json()["status"] == "CHECKED_IN"
        stats = client.get("/api/reservations/stats", headers=auth_headers, params={"business_unit_id": seaside["business_unit_id"]})
        assert stats.json()["in_house"] == 1

        checked_out = client.post(f"/api/reservations/{rid}/check-out", headers=auth_headers)
        assert checked_out.json()["status"] == "CHECKED_OUT"
        room = client.get(f"/api/rooms/{seaside['room_id']}", headers=auth_headers).json()
        assert room["status"] == "CLEANING" and room["housekeeping"] == "DIRTY"

        housekeeping = login(client, "housekeeping", "housekeeping123")
        cleaned = client.post(
            f"/api/rooms/{seaside['room_id']}/housekeeping", headers=housekeeping, json={"housekeeping": "CLEAN"},
        )
        # Built-in housekeeping account is not scoped to this property
        assert cleaned.status_code == 403
        cleaned = client.post(
            f"/api/rooms/{seaside['room_id']}/housekeeping", headers=auth_headers, json={"housekeeping": "INSPECTED"},
        )
        assert cleaned.json()["status"] == "AVAILABLE"

    @pytest.mark.api
    def test_special_requests_and_notes(self, client, auth_headers, seaside):
        rid = client.post(
            "/api/reservations", headers=auth_headers, json=reservation_body(seaside, TODAY + timedelta(days=5)),
        ).json()["reservation_id"]
        added = client.post(f"/api/reservations/{rid}/special-requests", headers=auth_headers, json={
            "request_type": "EXTRA_BED", "description": "For a child",
        })
        assert added.json()["special_requests"][0]["request_type"] == "EXTRA_BED"
        noted = client.post(f"/api/reservations/{rid}/notes", headers=auth_headers, json={"internal_notes": "VIP"})
        assert noted.json()["internal_notes"] == "VIP"

    @pytest.mark.api
    def test_assign_room_after_booking(self, client, auth_headers, seaside):
        created = client.post(
            "/api/reservations", headers=auth_headers,
            json=reservation_body(seaside, TODAY + timedelta(days=5), with_room=False),
        ).json()
        rid = created["reservation_id"]
        assert client.post(f"/api/reservations/{rid}/confirm", headers=auth_headers).status_code == 409

        assigned = client.post(f"/api/reservations/{rid}/rooms", headers=auth_headers, json={
            "stay_id": created["room_stays"][0]["stay_id"], "room_id": seaside["room_id"],
        })
        assert assigned.status_code == 200
        assert assigned.json()["room_stays"][0]["room_id"] == seaside["room_id"]

    @pytest.mark.api
    def test_unknown_reservation(self, client, auth_headers):
        assert client.get(f"/api/reservations/{uuid4()}", headers=auth_headers).status_code == 404
        assert client.post(f"/api/reservations/{uuid4()}/confirm", headers=auth_headers).status_code == 404


# ============================================================================
# ROOMS
# ============================================================================

class TestRoomAPI:

    @pytest.mark.api
    def test_override_needs_force(self, client, auth_headers, seaside):
        rid = client.post(
            "/api/reservations", headers=auth_headers, json=reservation_body(seaside, TODAY + timedelta(days=5)),
        ).json()["reservation_id"]
        client.post(f"/api/reservations/{rid}/confirm", headers=auth_headers)

        path = f"/api/rooms/{seaside['room_id']}/status"
        rejected = client.post(path, headers=auth_headers, json={"status": "MAINTENANCE"})
        assert rejected.status_code == 409
        assert rejected.json()["code"] == "INVENTORY_CONFLICT"

        forced = client.post(path, headers=auth_headers, json={"status": "MAINTENANCE", "force": True, "reason": "leak"})
        assert forced.status_code == 200
        assert forced.json()["status"] == "MAINTENANCE"

    @pytest.mark.api
    @pytest.mark.edge_case
    def test_reserved_cannot_be_set_by_hand(self, client, auth_headers, seaside):
        response = client.post(f"/api/rooms/{seaside['room_id']}/status", headers=auth_headers, json={"status": "RESERVED"})
        assert response.status_code == 400

    @pytest.mark.api
    def test_out_of_order_sweep(self, client, auth_headers, seaside):
        until = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
        response = client.post(f"/api/rooms/{seaside['room_id']}/status", headers=auth_headers, json={
            "status": "OUT_OF_ORDER", "out_of_order_until": until,
        })
        assert response.json()["status"] == "OUT_OF_ORDER"

        swept = client.post("/api/rooms/out-of-order/sweep", headers=auth_headers)
        assert swept.status_code == 200
        assert swept.json() == {"released": 0, "room_ids": []}

    @pytest.mark.api
    def test_list_rooms(self, client, auth_headers, seaside):
        response = client.get("/api/rooms", headers=auth_headers, params={"business_unit_id": seaside["business_unit_id"]})
        assert [r["room_number"] for r in response.json()] == ["101"]

    @pytest.mark.api
    def test_update_room_clears_floor_with_null(self, client, auth_headers, seaside):
        path = f"/api/rooms/{seaside['room_id']}"
        response = client.put(path, headers=auth_headers, json={"floor": None, "notes": "quiet side"})
        assert response.status_code == 200
        assert response.json()["floor"] is None
        assert response.json()["notes"] == "quiet side"
        assert response.json()["room_number"] == "101"

        response = client.put(path, headers=auth_headers, json={"room_number": None})
        assert response.status_code == 400
