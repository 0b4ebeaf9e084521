"""Tests for the booking HTTP routes."""

from datetime import timedelta

import httpx
import pytest

from barber_booking_platform.main import create_app
from barber_booking_platform.utils.effects import NonCriticalEffects

from conftest import FIXED_NOW, at, fixed_clock


def iso(value) -> str:
    return value.isoformat().replace("+00:00", "Z")


@pytest.fixture
async def app(settings, db_manager, cache_invalidator):
    app = create_app(settings)
    # Lifespan does not run under ASGITransport
    app.state.db_manager = db_manager
    app.state.effects = NonCriticalEffects()
    app.state.cache_invalidator = cache_invalidator
    app.state.clock = fixed_clock
    yield app
    await app.state.effects.drain(timeout=5)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def booking_payload(catalog, start=None, duration=30, **overrides):
    payload = {
        "barber_id": catalog.barber_id,
        "service_id": catalog.haircut_id,
        "start_time": iso(start or at(hours=2)),
        "duration_minutes": duration,
        "customer_id": 42,
    }
    payload.update(overrides)
    return payload


async def create(client, catalog, **kwargs):
    response = await client.post("/api/v1/bookings/", json=booking_payload(catalog, **kwargs), headers={"X-User-ID": "42"})
    assert response.status_code == 201, response.text
    return response.json()


class TestCreate:
    async def test_created(self, client, catalog):
        body = await create(client, catalog)

        assert body["status"] == "pending"
        assert body["booking_number"].startswith("BK20300603")
        assert body["total_price"] == "27.00"
        assert body["can_reschedule"] is True
        assert body["can_cancel"] is True
        assert body["allowed_transitions"] == [
            "cancelled_by_barber", "cancelled_by_customer", "confirmed", "rejected"
        ]
        assert body["time_until"] == "2 hours"

    async def test_conflict(self, client, catalog):
        await create(client, catalog)

        response = await client.post("/api/v1/bookings/", json=booking_payload(catalog, start=at(hours=2.25)))

        assert response.status_code == 409
        assert response.json()["error"]["error_code"] == "SLOT_UNAVAILABLE"

    async def test_invalid_duration(self, client, catalog):
        response = await client.post("/api/v1/bookings/", json=booking_payload(catalog, duration=10))

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["error_code"] == "INVALID_TIME_SLOT"
        assert error["details"]["kind"] == "duration_out_of_range"

    async def test_inactive_barber(self, client, catalog):
        response = await client.post(
            "/api/v1/bookings/", json=booking_payload(catalog, barber_id=catalog.inactive_barber_id)
        )
        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "BARBER_UNAVAILABLE"

    async def test_malformed_body(self, client, catalog):
        response = await client.post("/api/v1/bookings/", json={"barber_id": catalog.barber_id})
        assert response.status_code == 422

    async def test_request_id_header(self, client, catalog):
        response = await client.post(
            "/api/v1/bookings/", json=booking_payload(catalog), headers={"X-Request-ID": "req-123"}
        )
        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Process-Time" in response.headers


class TestLookups:
    async def test_get_by_id_uuid_and_number(self, client, catalog):
        body = await create(client, catalog)

        for path in (
            f"/api/v1/bookings/{body['id']}",
            f"/api/v1/bookings/uuid/{body['uuid']}",
            f"/api/v1/bookings/number/{body['booking_number']}",
        ):
            response = await client.get(path)
            assert response.status_code == 200
            assert response.json()["id"] == body["id"]

    async def test_not_found(self, client, catalog):
        response = await client.get("/api/v1/bookings/9999")

        assert response.status_code == 404
        assert response.json()["error"]["error_code"] == "NOT_FOUND"

    async def test_availability(self, client, catalog):
        await create(client, catalog)
        params = {"barber_id": catalog.barber_id, "duration_minutes": 30}

        busy = await client.get("/api/v1/bookings/availability", params={**params, "start_time": iso(at(hours=2))})
        free = await client.get("/api/v1/bookings/availability", params={**params, "start_time": iso(at(hours=3))})

        assert busy.json()["available"] is False
        assert free.json()["available"] is True
        assert free.json()["end_time"].startswith("2030-06-03T12:30:00")

    async def test_availability_with_buffer(self, client, catalog):
        await create(client, catalog)
        params = {
            "barber_id": catalog.barber_id,
            "duration_minutes": 30,
            "start_time": iso(at(hours=2.5)),
        }

        plain = await client.get("/api/v1/bookings/availability", params=params)
        buffered = await client.get("/api/v1/bookings/availability", params={**params, "buffer_minutes": 15})
        negative = await client.get("/api/v1/bookings/availability", params={**params, "buffer_minutes": -1})

        assert plain.json()["available"] is True
        assert buffered.json()["available"] is False
        assert negative.status_code == 422

    async def test_barber_and_customer_listings(self, client, catalog):
        await create(client, catalog)
        await create(client, catalog, start=at(days=1, hours=2), customer_id=7)

        barber = await client.get(f"/api/v1/bookings/barber/{catalog.barber_id}")
        customer = await client.get("/api/v1/bookings/customer/7")

        assert barber.json()["total"] == 2
        assert len(customer.json()["bookings"]) == 1
        assert customer.json()["bookings"][0]["customer_id"] == 7

    async def test_barber_stats(self, client, catalog):
        await create(client, catalog)
        response = await client.get(
            f"/api/v1/bookings/barber/{catalog.barber_id}/stats",
            params={"start_date": iso(FIXED_NOW), "end_date": iso(at(days=1))},
        )

        assert response.status_code == 200
        assert response.json()["total_bookings"] == 1
        assert response.json()["status_counts"]["pending"] == 1


class TestLifecycle:
    async def test_status_change_and_transitions(self, client, catalog):
        body = await create(client, catalog)

        response = await client.patch(f"/api/v1/bookings/{body['id']}/status", json={"status": "confirmed"})
        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"

        transitions = (await client.get(f"/api/v1/bookings/{body['id']}/transitions")).json()
        assert transitions["current_status"] == "confirmed"
        assert transitions["is_terminal"] is False
        assert "in_progress" in transitions["allowed_transitions"]

    async def test_illegal_transition(self, client, catalog):
        body = await create(client, catalog)

        response = await client.patch(f"/api/v1/bookings/{body['id']}/status", json={"status": "completed"})

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["error_code"] == "INVALID_STATUS_TRANSITION"
        assert error["details"]["current_status"] == "pending"
        assert "confirmed" in error["details"]["allowed_transitions"]

    async def test_cancel_completed_booking(self, client, catalog):
        body = await create(client, catalog)
        for status in ("confirmed", "in_progress", "completed"):
            await client.patch(f"/api/v1/bookings/{body['id']}/status", json={"status": status})

        response = await client.post(f"/api/v1/bookings/{body['id']}/cancel", json={"reason": "too late"})

        assert response.status_code == 409
        assert response.json()["error"]["error_code"] == "BOOKING_TERMINAL"

    async def test_cancel_records_actor(self, client, catalog):
        body = await create(client, catalog)

        response = await client.post(
            f"/api/v1/bookings/{body['id']}/cancel",
            json={"reason": "double booked", "is_by_customer": False},
            headers={"X-User-ID": "7"},
        )

        assert response.status_code == 200
        cancelled = response.json()
        assert cancelled["status"] == "cancelled_by_barber"
        assert cancelled["cancelled_by"] == 7
        assert cancelled["cancellation_reason"] == "double booked"
        assert cancelled["can_cancel"] is False

    async def test_reschedule_conflict_keeps_times(self, client, catalog):
        first = await create(client, catalog)
        second = await create(client, catalog, start=at(hours=4))

        response = await client.post(
            f"/api/v1/bookings/{second['id']}/reschedule",
            json={"new_start_time": first["scheduled_start_time"]},
        )
        assert response.status_code == 409

        stored = (await client.get(f"/api/v1/bookings/{second['id']}")).json()
        assert stored["scheduled_start_time"] == second["scheduled_start_time"]

    async def test_reschedule(self, client, catalog):
        body = await create(client, catalog)
        new_start = at(days=2, hours=1)

        response = await client.post(
            f"/api/v1/bookings/{body['id']}/reschedule",
            json={"new_start_time": iso(new_start), "duration_minutes": 45},
        )

        assert response.status_code == 200
        assert response.json()["duration_minutes"] == 45
        assert response.json()["scheduled_end_time"].startswith(
            (new_start + timedelta(minutes=45)).strftime("%Y-%m-%dT%H:%M:%S")
        )

    async def test_update_details_and_history(self, client, app, catalog):
        body = await create(client, catalog)
        await app.state.effects.drain()

        response = await client.patch(
            f"/api/v1/bookings/{body['id']}",
            json={"special_requests": "quiet chair"},
            headers={"X-User-ID": "42"},
        )
        assert response.status_code == 200
        assert response.json()["special_requests"] == "quiet chair"
        await app.state.effects.drain()

        history = (await client.get(f"/api/v1/bookings/{body['id']}/history")).json()
        assert [entry["change_type"] for entry in history] == ["created", "updated"]
        assert history[0]["delta"]["change_type"] == "created"
        assert history[1]["delta"]["new"] == {"special_requests": "quiet chair"}
        assert history[1]["changed_by"] == 42


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
