"""예약 사가 코디네이터.

크레딧 예약 흐름 (book_session):

    소유권 확인 -> 필요 크레딧 결정 -> 중복 확인 -> 좌석 확보(Gate) -> 크레딧 차감(Ledger) -> 예약 저장

좌석은 크레딧보다 먼저 확보한다 (만석 슬롯 때문에 크레딧이 빠지는 일이 없도록).
예약 저장이 실패하면 영수증 그대로 환불하고 좌석을 반환한 뒤 실패를 알린다.
보상 자체가 실패하면 CompensationError 로 구분해서 알리고, 운영자가 수동 정산할 수 있도록 ERROR 로그를 남긴다.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from fastapi import Depends
from pymongo.database import Database

from common.mongo.client import get_database

from ..config import SESSION_TYPES, AppConfig, get_app_config
from ..exceptions import (
    CompensationError,
    ConflictError,
    DuplicateBookingError,
    InsufficientCreditsError,
    NotFoundError,
    PaymentRedirectError,
    StorageError,
    ValidationError,
)
from ..models.booking import Booking, BookingResult, CancellationResult
from ..models.credit import CreditReceipt
from ..models.registration import Registration
from ..models.slot import SlotKey, parse_slot_start
from ..repositories.booking_repository import BookingRepository
from ..repositories.interfaces import (
    BookingRepositoryInterface,
    RegistrationRepositoryInterface,
    SlotRepositoryInterface,
)
from ..repositories.registration_repository import RegistrationRepository
from .capacity_gate import CapacityGate, Reservation, get_capacity_gate, get_slot_repository
from .eligibility import fits_slot, ineligibility_reason
from .event_publisher import EventPublisher, get_event_publisher
from .ledger_service import LedgerService, get_ledger_service


logger = logging.getLogger(__name__)

DIRECT_PAYMENT_REDIRECT = "/api/purchase-session"


class BookingCoordinator:
    """예약 생성/취소 비즈니스 로직."""

    def __init__(
        self,
        registration_repo: RegistrationRepositoryInterface,
        booking_repo: BookingRepositoryInterface,
        slot_repo: SlotRepositoryInterface,
        gate: CapacityGate,
        ledger: LedgerService,
        events: EventPublisher,
        config: AppConfig,
    ) -> None:
        self._registration_repo = registration_repo
        self._booking_repo = booking_repo
        self._slot_repo = slot_repo
        self._gate = gate
        self._ledger = ledger
        self._events = events
        self._config = config

    # ------------------------------------------------------------------
    # 크레딧 예약
    # ------------------------------------------------------------------
    def book_session(
        self,
        owner_id: str,
        registration_id: str,
        session_type: str,
        slot_date: date,
        time_slot: str,
        now: datetime | None = None,
    ) -> BookingResult:
        now = now or datetime.now(timezone.utc)
        self._validate_request(session_type, time_slot)

        self._get_owned_registration(owner_id, registration_id)

        credits_required = self._config.ledger.credits_required(session_type)
        if credits_required == 0:
            raise PaymentRedirectError(
                f"{session_type} sessions are purchased directly. Use {DIRECT_PAYMENT_REDIRECT} endpoint.",
                redirect=DIRECT_PAYMENT_REDIRECT,
            )

        key = SlotKey(date=slot_date, time_slot=time_slot, session_type=session_type)
        log_extra = {"owner_id": owner_id, "registration_id": registration_id, "slot_key": str(key)}

        if self._booking_repo.find_active(registration_id, slot_date, time_slot, session_type):
            raise DuplicateBookingError("This player is already booked for this session.")

        if self._gate.check_and_reserve(key, now=now) is Reservation.FULL:
            raise ConflictError("This time slot is full.", code="SLOT_FULL")
        logger.info("capacity reserved", extra=log_extra)

        try:
            receipt, balance = self._ledger.deduct(
                owner_id, credits_required, f"{session_type} session booking", now
            )
        except InsufficientCreditsError:
            self._release_after_rejection(key, now, log_extra)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("credit deduction failed", extra=log_extra)
            self._release_after_rejection(key, now, log_extra)
            raise StorageError("Failed to deduct credits.") from exc
        logger.info("credits deducted for booking", extra={**log_extra, "receipt": receipt.model_dump()})

        booking = Booking(
            owner_id=owner_id,
            registration_id=registration_id,
            session_type=session_type,
            date=slot_date,
            time_slot=time_slot,
            credits_used=credits_required,
            credit_lot_ref=receipt.primary_lot_id,
            credit_allocations=list(receipt.allocations),
            status="booked",
            created_at=now,
            updated_at=now,
        )
        try:
            created = self._booking_repo.insert(booking)
        except DuplicateBookingError as exc:
            self._compensate(receipt, key, now, log_extra)
            raise DuplicateBookingError(
                "This player is already booked for this session. Your credit has been restored.",
                credit_restored=True,
            ) from exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("booking insert failed after credit deduction", extra=log_extra)
            self._compensate(receipt, key, now, log_extra)
            raise StorageError(
                "Failed to create booking. Your credit has been restored.",
                credit_restored=True,
            ) from exc

        logger.info("booking committed", extra={**log_extra, "booking_id": created.id})
        self._events.booking_confirmed(created, balance)
        if balance < self._ledger.low_credit_threshold:
            self._events.credit_low(owner_id, balance, self._ledger.low_credit_threshold)
        return BookingResult(booking=created, credits_remaining=balance)

    # ------------------------------------------------------------------
    # 직접 결제 예약 (결제 완료 후 결제 연동이 호출)
    # ------------------------------------------------------------------
    def confirm_paid_booking(
        self,
        owner_id: str,
        registration_id: str,
        session_type: str,
        slot_date: date,
        time_slot: str,
        payment_ref: str | None = None,
        now: datetime | None = None,
    ) -> BookingResult:
        now = now or datetime.now(timezone.utc)
        self._validate_request(session_type, time_slot)
        if self._config.ledger.credits_required(session_type) > 0:
            raise ValidationError(
                f"{session_type} sessions are booked with credits.", code="CREDIT_BOOKING_REQUIRED"
            )

        registration = self._get_owned_registration(owner_id, registration_id)
        key = SlotKey(date=slot_date, time_slot=time_slot, session_type=session_type)
        log_extra = {"owner_id": owner_id, "registration_id": registration_id, "slot_key": str(key)}

        max_capacity: int | None = None
        if session_type == self._config.slots.session_type:
            max_capacity = self._check_recurring_slot(registration, key)

        if self._booking_repo.find_active(registration_id, slot_date, time_slot, session_type):
            raise DuplicateBookingError("This player is already booked for this session.")

        if self._gate.check_and_reserve(key, max_capacity, now) is Reservation.FULL:
            raise ConflictError("This time slot is full.", code="SLOT_FULL")

        booking = Booking(
            owner_id=owner_id,
            registration_id=registration_id,
            session_type=session_type,
            date=slot_date,
            time_slot=time_slot,
            credits_used=0,
            payment_ref=payment_ref,
            status="booked",
            created_at=now,
            updated_at=now,
        )
        try:
            created = self._booking_repo.insert(booking)
        except DuplicateBookingError:
            self._release_after_rejection(key, now, log_extra)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("paid booking insert failed", extra=log_extra)
            self._release_after_rejection(key, now, log_extra)
            raise StorageError("Failed to create booking.") from exc

        logger.info("paid booking committed", extra={**log_extra, "booking_id": created.id})
        self._events.booking_confirmed(created, None)
        return BookingResult(booking=created, credits_remaining=None)

    def _check_recurring_slot(self, registration: Registration, key: SlotKey) -> int:
        reason = ineligibility_reason(registration)
        if reason is not None:
            raise ValidationError(reason, code="NOT_ELIGIBLE")
        slot = self._slot_repo.find(key.date, key.time_slot, key.session_type)
        if slot is None or not slot.is_active:
            raise NotFoundError("Slot not found.", code="SLOT_NOT_FOUND")
        if not fits_slot(registration, slot):
            raise ValidationError(
                "Player category does not match this slot.", code="CATEGORY_MISMATCH"
            )
        if self._booking_repo.find_active_on_date(registration.id, key.date, key.session_type):
            raise ConflictError(
                "This player already has a booking on this date.", code="ALREADY_BOOKED"
            )
        return slot.max_capacity

    # ------------------------------------------------------------------
    # 취소
    # ------------------------------------------------------------------
    def cancel_booking(
        self,
        owner_id: str,
        booking_id: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> CancellationResult:
        now = now or datetime.now(timezone.utc)
        booking = self._booking_repo.get(booking_id)
        if booking is None or booking.owner_id != owner_id:
            raise NotFoundError(
                "Booking not found or does not belong to this user", code="BOOKING_NOT_FOUND"
            )
        if booking.status == "cancelled":
            raise ConflictError("This booking has already been cancelled", code="ALREADY_CANCELLED")
        if booking.status in ("attended", "no_show"):
            raise ConflictError(
                "Cannot cancel a session that has already occurred", code="SESSION_OCCURRED"
            )

        refund_eligible = self._is_refund_eligible(booking, now)
        if reason is None:
            reason = (
                "User cancelled (refund eligible)"
                if refund_eligible
                else "User cancelled (late cancellation)"
            )
        cancelled = self._booking_repo.transition(
            booking_id,
            from_status="booked",
            to_status="cancelled",
            fields={"cancelled_at": now, "cancellation_reason": reason},
            now=now,
        )
        if cancelled is None:
            raise ConflictError("This booking can no longer be cancelled", code="BOOKING_NOT_CANCELLABLE")

        key = SlotKey(date=booking.date, time_slot=booking.time_slot, session_type=booking.session_type)
        log_extra = {"owner_id": owner_id, "booking_id": booking_id, "slot_key": str(key)}

        # 환불은 좌석 반환보다 먼저 처리한다.
        credits_refunded = 0
        refund_failed = False
        if refund_eligible and booking.credit_allocations:
            receipt = CreditReceipt(owner_id=owner_id, allocations=booking.credit_allocations)
            try:
                credits_refunded, balance = self._ledger.refund(receipt, "booking cancelled", now)
            except Exception:  # noqa: BLE001
                # 취소 자체는 이미 반영되었으므로 되돌리지 않고, 응답과 ERROR 로그로 알린다.
                logger.exception(
                    "refund failed for cancelled booking",
                    extra={**log_extra, "receipt": receipt.model_dump()},
                )
                refund_failed = True
                balance = self._ledger.get_available_balance(owner_id)
        else:
            balance = self._ledger.get_available_balance(owner_id)

        seat_release_failed = False
        try:
            self._gate.release(key, now)
        except Exception:  # noqa: BLE001
            logger.exception(
                "seat release failed for cancelled booking",
                extra={**log_extra, "credit_restored": credits_refunded > 0},
            )
            seat_release_failed = True

        logger.info("booking cancelled", extra=log_extra)
        self._events.booking_cancelled(cancelled, credits_refunded)
        return CancellationResult(
            booking=cancelled,
            credits_refunded=credits_refunded,
            credits_remaining=balance,
            refund_eligible=refund_eligible,
            refund_failed=refund_failed,
            seat_release_failed=seat_release_failed,
        )

    def _is_refund_eligible(self, booking: Booking, now: datetime) -> bool:
        start = parse_slot_start(booking.time_slot)
        local_start = datetime.combine(
            booking.date, start or datetime.min.time(), tzinfo=self._config.tz
        )
        window = timedelta(hours=self._config.ledger.cancellation_window_hours)
        return local_start - now >= window

    # ------------------------------------------------------------------
    # 내부 헬퍼
    # ------------------------------------------------------------------
    def _validate_request(self, session_type: str, time_slot: str) -> None:
        if session_type not in SESSION_TYPES:
            raise ValidationError(
                'Invalid session_type. Must be "group", "sunday", "private", or "semi_private"'
            )
        if not time_slot.strip():
            raise ValidationError("time_slot is required")

    def _get_owned_registration(self, owner_id: str, registration_id: str) -> Registration:
        registration = self._registration_repo.find(registration_id)
        if registration is None or registration.owner_id != owner_id:
            raise NotFoundError(
                "Registration not found or does not belong to this user",
                code="REGISTRATION_NOT_FOUND",
            )
        return registration

    def _release_after_rejection(self, key: SlotKey, now: datetime, log_extra: dict) -> None:
        """크레딧이 빠지지 않은 상태에서 확보한 좌석을 되돌린다."""
        try:
            self._gate.release(key, now)
        except Exception as exc:  # noqa: BLE001
            logger.exception("seat release failed", extra=log_extra)
            raise CompensationError(
                "Booking was rejected but the reserved seat could not be released.",
                credit_restored=None,
                extra={"slot_key": str(key)},
            ) from exc
        logger.warning("reserved seat released after rejection", extra=log_extra)

    def _compensate(
        self, receipt: CreditReceipt, key: SlotKey, now: datetime, log_extra: dict
    ) -> None:
        """차감한 크레딧 환불과 좌석 반환. 둘 중 하나라도 실패하면 CompensationError."""

        refund_error: Exception | None = None
        try:
            self._ledger.refund(receipt, "booking failed", now)
        except Exception as exc:  # noqa: BLE001
            refund_error = exc
            logger.exception(
                "credit deducted but refund failed",
                extra={**log_extra, "receipt": receipt.model_dump()},
            )

        release_error: Exception | None = None
        try:
            self._gate.release(key, now)
        except Exception as exc:  # noqa: BLE001
            release_error = exc
            logger.exception("seat release failed during compensation", extra=log_extra)

        if refund_error is not None:
            raise CompensationError(
                "Credit was deducted but could not be restored. Please contact support.",
                credit_restored=False,
                extra={"receipt": receipt.model_dump()},
            ) from refund_error
        if release_error is not None:
            raise CompensationError(
                "Your credit has been restored but the reserved seat could not be released.",
                credit_restored=True,
                extra={"slot_key": str(key)},
            ) from release_error
        logger.warning("booking compensated: credit refunded and seat released", extra=log_extra)


def get_registration_repository(
    db: Database = Depends(get_database),
) -> RegistrationRepositoryInterface:
    """FastAPI DI용 RegistrationRepository 팩토리."""

    return RegistrationRepository(db)


def get_booking_repository(
    db: Database = Depends(get_database),
) -> BookingRepositoryInterface:
    """FastAPI DI용 BookingRepository 팩토리."""

    return BookingRepository(db)


def get_booking_coordinator(
    registration_repo: RegistrationRepositoryInterface = Depends(get_registration_repository),
    booking_repo: BookingRepositoryInterface = Depends(get_booking_repository),
    slot_repo: SlotRepositoryInterface = Depends(get_slot_repository),
    gate: CapacityGate = Depends(get_capacity_gate),
    ledger: LedgerService = Depends(get_ledger_service),
    events: EventPublisher = Depends(get_event_publisher),
    config: AppConfig = Depends(get_app_config),
) -> BookingCoordinator:
    """FastAPI DI용 BookingCoordinator 팩토리."""

    return BookingCoordinator(
        registration_repo, booking_repo, slot_repo, gate, ledger, events, config
    )
