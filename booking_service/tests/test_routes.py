from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from booking_service.app.config import Settings
from booking_service.app.main import create_app
from booking_service.app.models.registration import Registration
from booking_service.app.services.booking_coordinator import (
    BookingCoordinator,
    get_booking_coordinator,
)
from booking_service.app.services.bookings_service import BookingsService, get_bookings_service
from booking_service.app.services.capacity_gate import CapacityGate
from booking_service.app.services.event_publisher import EventPublisher
from booking_service.app.services.ledger_service import LedgerService, get_ledger_service
from booking_service.app.services.slot_generator import SlotGenerator, get_slot_generator
from booking_service.app.services.sunday_service import SundayService, get_sunday_service
from booking_service.tests.fakes import (
    FakeBookingRepository,
    FakeCreditRepository,
    FakeCreditTransactionRepository,
    FakeEventBus,
    FakeRegistrationRepository,
    FakeSlotRepository,
    build_config,
)


OWNER = "owner-1"
REGISTRATION = "reg-1"
CRON_SECRET = "s3cret"


@dataclass
class ApiFixture:
    client: TestClient
    credit_repo: FakeCreditRepository
    slot_repo: FakeSlotRepository
    bus: FakeEventBus


@pytest.fixture
def api() -> ApiFixture:
    config = build_config()
    credit_repo = FakeCreditRepository()
    slot_repo = FakeSlotRepository()
    booking_repo = FakeBookingRepository()
    registrations = FakeRegistrationRepository(
        Registration(
            id=REGISTRATION,
            owner_id=OWNER,
            player_name="Alex Tremblay",
            player_category="M9",
            program_type="group",
            payment_status="succeeded",
        )
    )
    bus = FakeEventBus()
    ledger = LedgerService(credit_repo, FakeCreditTransactionRepository(credit_repo), config.ledger)
    coordinator = BookingCoordinator(
        registrations,
        booking_repo,
        slot_repo,
        CapacityGate(slot_repo, config.capacity),
        ledger,
        EventPublisher(bus),
        config,
    )

    app = create_app()
    app.state.config = config
    app.state.settings = Settings(
        mongo_uri="mongodb://localhost:27017",
        mongo_db_name=None,
        port=8004,
        scheduler_enabled=False,
        cron_secret=CRON_SECRET,
    )
    app.dependency_overrides[get_booking_coordinator] = lambda: coordinator
    app.dependency_overrides[get_ledger_service] = lambda: ledger
    app.dependency_overrides[get_bookings_service] = lambda: BookingsService(
        booking_repo, registrations
    )
    app.dependency_overrides[get_sunday_service] = lambda: SundayService(
        registrations, booking_repo, slot_repo, config
    )
    app.dependency_overrides[get_slot_generator] = lambda: SlotGenerator(
        slot_repo, config.slots, config.tz
    )

    # lifespan(Mongo 연결)을 타지 않도록 컨텍스트 매니저 없이 사용한다.
    return ApiFixture(TestClient(app), credit_repo, slot_repo, bus)


def _future_date(days: int = 30) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def _give_credits(api: ApiFixture, credits: int) -> None:
    api.credit_repo.add_lot(
        OWNER,
        credits,
        datetime.now(timezone.utc) + timedelta(days=365),
        created_at=datetime.now(timezone.utc) - timedelta(days=1),
    )


def _book_payload(**overrides) -> dict:
    payload = {
        "owner_id": OWNER,
        "registration_id": REGISTRATION,
        "session_type": "group",
        "session_date": _future_date(),
        "time_slot": "5:45 PM",
    }
    payload.update(overrides)
    return payload


def test_health_reports_starting_without_storage(api: ApiFixture) -> None:
    response = api.client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "starting", "service": "booking-service"}


def test_book_session_returns_created(api: ApiFixture) -> None:
    _give_credits(api, 5)

    response = api.client.post("/api/v1/bookings", json=_book_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["credits_remaining"] == 4
    assert body["booking"]["status"] == "booked"
    assert body["booking"]["credit_allocations"] == [{"lot_id": "lot-1", "amount": 1}]
    assert "X-Request-Id" in response.headers


def test_book_session_without_credits_is_payment_required(api: ApiFixture) -> None:
    response = api.client.post("/api/v1/bookings", json=_book_payload())

    assert response.status_code == 402
    body = response.json()
    assert body["code"] == "INSUFFICIENT_CREDITS"
    assert body["credits_required"] == 1
    assert body["credits_available"] == 0
    assert "error" in body


def test_direct_payment_session_returns_redirect(api: ApiFixture) -> None:
    response = api.client.post("/api/v1/bookings", json=_book_payload(session_type="sunday"))

    assert response.status_code == 400
    assert response.json()["code"] == "DIRECT_PAYMENT_REQUIRED"
    assert response.json()["redirect"] == "/api/purchase-session"


def test_missing_fields_are_reported(api: ApiFixture) -> None:
    response = api.client.post("/api/v1/bookings", json={"owner_id": OWNER})

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INVALID_INPUT"
    assert {"registration_id", "session_type", "session_date", "time_slot"} <= {
        f["field"] for f in body["fields"]
    }


def test_duplicate_booking_is_conflict(api: ApiFixture) -> None:
    _give_credits(api, 5)
    assert api.client.post("/api/v1/bookings", json=_book_payload()).status_code == 201

    response = api.client.post("/api/v1/bookings", json=_book_payload())

    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_BOOKING"


def test_unknown_registration_is_not_found(api: ApiFixture) -> None:
    _give_credits(api, 5)

    response = api.client.post("/api/v1/bookings", json=_book_payload(registration_id="reg-x"))

    assert response.status_code == 404
    assert response.json()["code"] == "REGISTRATION_NOT_FOUND"


def test_method_not_allowed_uses_error_shape(api: ApiFixture) -> None:
    response = api.client.delete("/api/v1/bookings")

    assert response.status_code == 405
    assert response.json()["code"] == "METHOD_NOT_ALLOWED"


def test_cancel_refunds_and_lists_bookings(api: ApiFixture) -> None:
    _give_credits(api, 5)
    booking_id = api.client.post("/api/v1/bookings", json=_book_payload()).json()["booking"]["id"]

    response = api.client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"owner_id": OWNER})

    assert response.status_code == 200
    body = response.json()
    assert body["credits_refunded"] == 1
    assert body["credits_remaining"] == 5
    assert body["credit_restored"] is True
    assert body["seat_released"] is True

    listing = api.client.get("/api/v1/bookings", params={"owner_id": OWNER, "status": "cancelled"})
    assert listing.status_code == 200
    items = listing.json()["items"]
    assert [item["id"] for item in items] == [booking_id]
    assert items[0]["player_name"] == "Alex Tremblay"
    assert listing.json()["has_next"] is False


def test_list_bookings_rejects_unknown_status(api: ApiFixture) -> None:
    response = api.client.get("/api/v1/bookings", params={"owner_id": OWNER, "status": "lost"})

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


def test_credit_balance_and_grant(api: ApiFixture) -> None:
    granted = api.client.post(f"/api/v1/credits/{OWNER}/lots", json={"package_type": "10_pack"})
    assert granted.status_code == 201
    assert granted.json()["total_credits"] == 10

    response = api.client.get(f"/api/v1/credits/{OWNER}")

    assert response.status_code == 200
    body = response.json()
    assert body["total_credits"] == 10
    assert body["lots"][0]["credits_remaining"] == 10
    assert body["expiring_soon"] == 0


def test_credit_history_is_paginated(api: ApiFixture) -> None:
    api.client.post(f"/api/v1/credits/{OWNER}/lots", json={"package_type": "single"})

    response = api.client.get(f"/api/v1/credits/{OWNER}/history")

    assert response.status_code == 200
    assert response.json()["total"] == 1
    assert response.json()["items"][0]["type"] == "grant"


def test_reconcile_reports_drift(api: ApiFixture) -> None:
    _give_credits(api, 3)
    api.credit_repo.balances[OWNER] = 5

    response = api.client.post(f"/api/v1/credits/{OWNER}/reconcile")

    assert response.status_code == 200
    assert response.json() == {
        "owner_id": OWNER,
        "previous_balance": 5,
        "total_credits": 3,
        "drift": -2,
    }


def test_generate_slots_requires_cron_secret(api: ApiFixture) -> None:
    response = api.client.post("/api/v1/internal/generate-slots")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized", "code": "UNAUTHORIZED"}


def test_generate_slots_with_secret(api: ApiFixture) -> None:
    response = api.client.post(
        "/api/v1/internal/generate-slots",
        json={"weeks_ahead": 2},
        headers={"Authorization": f"Bearer {CRON_SECRET}"},
    )

    assert response.status_code == 200
    assert response.json()["slots_created"] == 4
    assert len(response.json()["dates_created"]) == 2


def test_generate_slots_rejects_too_many_weeks(api: ApiFixture) -> None:
    response = api.client.post(
        "/api/v1/internal/generate-slots",
        json={"weeks_ahead": 52},
        headers={"Authorization": f"Bearer {CRON_SECRET}"},
    )

    assert response.status_code == 400


def test_next_slot_validates_registration_id(api: ApiFixture) -> None:
    response = api.client.get(
        "/api/v1/sunday/next-slot", params={"registration_id": "bad id", "owner_id": OWNER}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


def test_roster_without_slots_is_not_found(api: ApiFixture) -> None:
    response = api.client.get("/api/v1/sunday/roster", params={"date": _future_date()})

    assert response.status_code == 404
    assert response.json()["code"] == "NO_SLOTS_FOUND"
