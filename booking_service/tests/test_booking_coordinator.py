from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

import pytest

from booking_service.app.exceptions import (
    CompensationError,
    ConflictError,
    DuplicateBookingError,
    InsufficientCreditsError,
    NotFoundError,
    PaymentRedirectError,
    StorageError,
    ValidationError,
)
from booking_service.app.models.registration import Registration
from booking_service.app.services.booking_coordinator import BookingCoordinator
from booking_service.app.services.capacity_gate import CapacityGate
from booking_service.app.services.event_publisher import EventPublisher
from booking_service.app.services.ledger_service import LedgerService
from booking_service.tests.fakes import (
    NOW,
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
GROUP_DATE = date(2026, 3, 10)
GROUP_SLOT = "5:45 PM"
SUNDAY_DATE = date(2026, 3, 8)
SUNDAY_SLOT = "07:30-08:30"


@dataclass
class CoordinatorFixture:
    coordinator: BookingCoordinator
    credit_repo: FakeCreditRepository
    slot_repo: FakeSlotRepository
    booking_repo: FakeBookingRepository
    bus: FakeEventBus


def _build_fixture(credits: int = 10) -> CoordinatorFixture:
    config = build_config()
    credit_repo = FakeCreditRepository()
    if credits:
        credit_repo.add_lot(OWNER, credits, NOW + timedelta(days=180))
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
        ),
        Registration(id="reg-2", owner_id=OWNER, player_name="Sam Tremblay", player_category="M11"),
        Registration(id="reg-other", owner_id="owner-2", player_category="M9"),
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
    return CoordinatorFixture(coordinator, credit_repo, slot_repo, booking_repo, bus)


def _book(fx: CoordinatorFixture, **overrides):
    params = {
        "owner_id": OWNER,
        "registration_id": REGISTRATION,
        "session_type": "group",
        "slot_date": GROUP_DATE,
        "time_slot": GROUP_SLOT,
        "now": NOW,
    }
    params.update(overrides)
    return fx.coordinator.book_session(**params)


# ----------------------------------------------------------------------
# 크레딧 예약
# ----------------------------------------------------------------------
def test_book_session_deducts_reserves_and_records_receipt() -> None:
    fx = _build_fixture(credits=10)

    result = _book(fx)

    assert result.credits_remaining == 9
    assert result.booking.status == "booked"
    assert result.booking.credits_used == 1
    assert result.booking.credit_lot_ref == "lot-1"
    assert [a.amount for a in result.booking.credit_allocations] == [1]
    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 1
    assert fx.bus.types() == ["booking.confirmed"]


def test_book_session_emits_low_credit_event() -> None:
    fx = _build_fixture(credits=3)

    result = _book(fx)

    assert result.credits_remaining == 2
    assert fx.bus.types() == ["booking.confirmed", "credit.low"]


def test_insufficient_credits_releases_reserved_seat() -> None:
    fx = _build_fixture(credits=0)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        _book(fx)

    assert exc_info.value.credits_available == 0
    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 0
    assert fx.booking_repo.bookings == {}
    assert fx.bus.published == []


def test_full_slot_is_rejected_before_any_deduction() -> None:
    fx = _build_fixture()
    fx.slot_repo.add_slot(GROUP_DATE, GROUP_SLOT, "group", max_capacity=6, current_bookings=6)

    with pytest.raises(ConflictError) as exc_info:
        _book(fx)

    assert exc_info.value.code == "SLOT_FULL"
    assert fx.credit_repo.get_balance(OWNER) == 10
    assert fx.credit_repo.transactions == []


def test_direct_payment_session_redirects() -> None:
    fx = _build_fixture()

    with pytest.raises(PaymentRedirectError) as exc_info:
        _book(fx, session_type="private")

    assert exc_info.value.redirect == "/api/purchase-session"
    assert exc_info.value.to_body()["redirect"] == "/api/purchase-session"
    assert fx.slot_repo.slots == {}


def test_unknown_session_type_is_invalid() -> None:
    fx = _build_fixture()

    with pytest.raises(ValidationError):
        _book(fx, session_type="yoga")


def test_registration_of_another_owner_is_not_found() -> None:
    fx = _build_fixture()

    with pytest.raises(NotFoundError) as exc_info:
        _book(fx, registration_id="reg-other")

    assert exc_info.value.code == "REGISTRATION_NOT_FOUND"


def test_existing_booking_is_rejected_without_side_effects() -> None:
    fx = _build_fixture()
    _book(fx)

    with pytest.raises(DuplicateBookingError):
        _book(fx)

    assert fx.credit_repo.get_balance(OWNER) == 9
    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 1


def test_duplicate_detected_on_insert_restores_credit_and_seat() -> None:
    fx = _build_fixture()
    fx.booking_repo.insert_error = DuplicateBookingError("duplicate")

    with pytest.raises(DuplicateBookingError) as exc_info:
        _book(fx)

    assert exc_info.value.credit_restored is True
    assert fx.credit_repo.get_balance(OWNER) == 10
    assert fx.credit_repo.active_sum(OWNER) == 10
    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 0


def test_insert_failure_compensates_and_reports_storage_error() -> None:
    fx = _build_fixture()
    fx.booking_repo.insert_error = RuntimeError("connection reset")

    with pytest.raises(StorageError) as exc_info:
        _book(fx)

    assert not isinstance(exc_info.value, CompensationError)
    assert exc_info.value.to_body()["credit_restored"] is True
    assert fx.credit_repo.get_balance(OWNER) == 10
    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 0


def test_failed_refund_during_compensation_is_surfaced() -> None:
    fx = _build_fixture()
    fx.booking_repo.insert_error = RuntimeError("connection reset")
    fx.credit_repo.refund_error = RuntimeError("transaction aborted")

    with pytest.raises(CompensationError) as exc_info:
        _book(fx)

    body = exc_info.value.to_body()
    assert body["code"] == "COMPENSATION_FAILED"
    assert body["credit_restored"] is False
    assert body["receipt"]["owner_id"] == OWNER
    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 0


def test_failed_seat_release_after_refund_keeps_credit_restored() -> None:
    fx = _build_fixture()
    fx.booking_repo.insert_error = RuntimeError("connection reset")
    fx.slot_repo.release_error = RuntimeError("network timeout")

    with pytest.raises(CompensationError) as exc_info:
        _book(fx)

    assert exc_info.value.credit_restored is True
    assert fx.credit_repo.get_balance(OWNER) == 10


def test_deduction_failure_releases_seat() -> None:
    fx = _build_fixture()
    fx.credit_repo.deduct_error = RuntimeError("write conflict")

    with pytest.raises(StorageError):
        _book(fx)

    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 0
    assert fx.booking_repo.bookings == {}


def test_last_seat_race_admits_exactly_one_player() -> None:
    fx = _build_fixture()
    fx.slot_repo.add_slot(GROUP_DATE, GROUP_SLOT, "group", max_capacity=6, current_bookings=5)

    _book(fx)
    with pytest.raises(ConflictError) as exc_info:
        _book(fx, registration_id="reg-2")

    assert exc_info.value.code == "SLOT_FULL"
    assert fx.credit_repo.get_balance(OWNER) == 9


# ----------------------------------------------------------------------
# 직접 결제 예약
# ----------------------------------------------------------------------
def _confirm_sunday(fx: CoordinatorFixture, **overrides):
    params = {
        "owner_id": OWNER,
        "registration_id": REGISTRATION,
        "session_type": "sunday",
        "slot_date": SUNDAY_DATE,
        "time_slot": SUNDAY_SLOT,
        "payment_ref": "pi_123",
        "now": NOW,
    }
    params.update(overrides)
    return fx.coordinator.confirm_paid_booking(**params)


def test_paid_sunday_booking_uses_generated_slot() -> None:
    fx = _build_fixture()
    fx.slot_repo.add_slot(
        SUNDAY_DATE, SUNDAY_SLOT, "sunday", max_capacity=12, min_category="M7", max_category="M11"
    )

    result = _confirm_sunday(fx)

    assert result.credits_remaining is None
    assert result.booking.credits_used == 0
    assert result.booking.payment_ref == "pi_123"
    assert fx.slot_repo.seats(SUNDAY_DATE, SUNDAY_SLOT, "sunday") == 1
    assert fx.credit_repo.get_balance(OWNER) == 10


def test_paid_booking_for_credit_session_is_rejected() -> None:
    fx = _build_fixture()

    with pytest.raises(ValidationError) as exc_info:
        _confirm_sunday(fx, session_type="group", time_slot=GROUP_SLOT)

    assert exc_info.value.code == "CREDIT_BOOKING_REQUIRED"


def test_paid_sunday_booking_requires_existing_slot() -> None:
    fx = _build_fixture()

    with pytest.raises(NotFoundError) as exc_info:
        _confirm_sunday(fx)

    assert exc_info.value.code == "SLOT_NOT_FOUND"


def test_paid_sunday_booking_checks_category_range() -> None:
    fx = _build_fixture()
    fx.slot_repo.add_slot(
        SUNDAY_DATE, "08:30-09:30", "sunday", max_capacity=10, min_category="M13", max_category="M15"
    )

    with pytest.raises(ValidationError) as exc_info:
        _confirm_sunday(fx, time_slot="08:30-09:30")

    assert exc_info.value.code == "CATEGORY_MISMATCH"


def test_one_sunday_booking_per_player_per_date() -> None:
    fx = _build_fixture()
    fx.slot_repo.add_slot(
        SUNDAY_DATE, SUNDAY_SLOT, "sunday", max_capacity=12, min_category="M7", max_category="M11"
    )
    fx.slot_repo.add_slot(SUNDAY_DATE, "09:30-10:30", "sunday", max_capacity=12)
    _confirm_sunday(fx)

    with pytest.raises(ConflictError) as exc_info:
        _confirm_sunday(fx, time_slot="09:30-10:30")

    assert exc_info.value.code == "ALREADY_BOOKED"


# ----------------------------------------------------------------------
# 취소
# ----------------------------------------------------------------------
def test_cancel_within_window_refunds_receipt_and_frees_seat() -> None:
    fx = _build_fixture()
    booking = _book(fx).booking

    result = fx.coordinator.cancel_booking(OWNER, booking.id, now=NOW + timedelta(hours=1))

    assert result.refund_eligible is True
    assert result.credits_refunded == 1
    assert result.credits_remaining == 10
    assert result.booking.status == "cancelled"
    assert result.booking.cancellation_reason == "User cancelled (refund eligible)"
    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 0
    assert fx.bus.types()[-1] == "booking.cancelled"


def test_late_cancellation_keeps_credit() -> None:
    fx = _build_fixture()
    # 2026-03-03 07:00 America/Toronto == 12:00 UTC, 21시간 전
    booking = _book(fx, slot_date=date(2026, 3, 3), time_slot="7:00 AM").booking

    result = fx.coordinator.cancel_booking(OWNER, booking.id, now=NOW)

    assert result.refund_eligible is False
    assert result.credits_refunded == 0
    assert result.credits_remaining == 9
    assert result.booking.cancellation_reason == "User cancelled (late cancellation)"
    assert fx.slot_repo.seats(date(2026, 3, 3), "7:00 AM", "group") == 0


def test_cancel_twice_is_a_conflict() -> None:
    fx = _build_fixture()
    booking = _book(fx).booking
    fx.coordinator.cancel_booking(OWNER, booking.id, now=NOW)

    with pytest.raises(ConflictError) as exc_info:
        fx.coordinator.cancel_booking(OWNER, booking.id, now=NOW)

    assert exc_info.value.code == "ALREADY_CANCELLED"
    assert fx.credit_repo.get_balance(OWNER) == 10


def test_cancel_booking_of_another_owner_is_not_found() -> None:
    fx = _build_fixture()
    booking = _book(fx).booking

    with pytest.raises(NotFoundError):
        fx.coordinator.cancel_booking("owner-2", booking.id, now=NOW)


def test_cancel_after_attendance_is_rejected() -> None:
    fx = _build_fixture()
    booking = _book(fx).booking
    fx.booking_repo.transition(
        booking.id, from_status="booked", to_status="attended", fields={}, now=NOW
    )

    with pytest.raises(ConflictError) as exc_info:
        fx.coordinator.cancel_booking(OWNER, booking.id, now=NOW)

    assert exc_info.value.code == "SESSION_OCCURRED"


def test_refund_failure_still_cancels() -> None:
    fx = _build_fixture()
    booking = _book(fx).booking
    fx.credit_repo.refund_error = RuntimeError("transaction aborted")

    result = fx.coordinator.cancel_booking(OWNER, booking.id, now=NOW)

    assert result.booking.status == "cancelled"
    assert result.refund_failed is True
    assert result.credits_refunded == 0
    assert result.credits_remaining == 9


def test_seat_release_failure_still_refunds() -> None:
    fx = _build_fixture(credits=10)
    booking = _book(fx).booking
    fx.slot_repo.release_error = RuntimeError("slot update timed out")

    result = fx.coordinator.cancel_booking(OWNER, booking.id, now=NOW + timedelta(hours=1))

    assert result.booking.status == "cancelled"
    assert result.seat_release_failed is True
    assert result.refund_failed is False
    assert result.credits_refunded == 1
    assert result.credits_remaining == 10
    assert fx.credit_repo.get_balance(OWNER) == 10
    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 1
    assert fx.bus.types()[-1] == "booking.cancelled"


def test_rebooking_after_cancellation_is_allowed() -> None:
    fx = _build_fixture()
    booking = _book(fx).booking
    fx.coordinator.cancel_booking(OWNER, booking.id, now=NOW)

    again = _book(fx)

    assert again.booking.id != booking.id
    assert fx.slot_repo.seats(GROUP_DATE, GROUP_SLOT, "group") == 1
