"""일요일 연습 (반복 생성 슬롯) 조회/운영 서비스.

- 다음 연습일 슬롯과 참가 자격 조회
- 날짜별 명단 (슬롯 + 예약 + 선수 정보)
- 출석 체크 (booked -> attended | no_show, 한 번만)
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from fastapi import Depends
from pydantic import BaseModel

from ..config import AppConfig, get_app_config
from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..models.booking import Booking, BookingWithPlayer
from ..models.slot import Slot
from ..repositories.interfaces import (
    BookingRepositoryInterface,
    RegistrationRepositoryInterface,
    SlotRepositoryInterface,
)
from .booking_coordinator import get_booking_repository, get_registration_repository
from .bookings_service import attach_players
from .capacity_gate import get_slot_repository
from .eligibility import fits_slot, ineligibility_reason


logger = logging.getLogger(__name__)


class NextSlotResult(BaseModel):
    eligible: bool
    reason: str | None = None
    next_date: date | None = None
    already_booked: bool = False
    existing_booking: Booking | None = None
    available_slots: list[Slot] = []


class RosterSlot(BaseModel):
    slot: Slot
    bookings: list[BookingWithPlayer]


def next_weekday(today: date, weekday: int) -> date:
    """오늘이 그 요일이면 오늘, 아니면 다음 그 요일."""
    return today + timedelta(days=(weekday - today.weekday()) % 7)


class SundayService:
    def __init__(
        self,
        registration_repo: RegistrationRepositoryInterface,
        booking_repo: BookingRepositoryInterface,
        slot_repo: SlotRepositoryInterface,
        config: AppConfig,
    ) -> None:
        self._registration_repo = registration_repo
        self._booking_repo = booking_repo
        self._slot_repo = slot_repo
        self._config = config

    @property
    def session_type(self) -> str:
        return self._config.slots.session_type

    def local_today(self, now: datetime | None = None) -> date:
        now = now or datetime.now(timezone.utc)
        return now.astimezone(self._config.tz).date()

    def next_session_date(self, now: datetime | None = None) -> date:
        return next_weekday(self.local_today(now), self._config.slots.weekday)

    def get_next_slot(
        self, owner_id: str, registration_id: str, now: datetime | None = None
    ) -> NextSlotResult:
        """선수의 참가 자격과 다음 연습일의 예약 현황/예약 가능 슬롯을 반환한다."""

        registration = self._registration_repo.find(registration_id)
        if registration is None or registration.owner_id != owner_id:
            raise NotFoundError(
                "Registration not found or does not belong to this user",
                code="REGISTRATION_NOT_FOUND",
            )

        reason = ineligibility_reason(registration)
        if reason is not None:
            return NextSlotResult(eligible=False, reason=reason)

        target = self.next_session_date(now)
        existing = self._booking_repo.find_active_on_date(registration_id, target, self.session_type)
        if existing is not None:
            return NextSlotResult(
                eligible=True, next_date=target, already_booked=True, existing_booking=existing
            )

        slots = [
            slot
            for slot in self._slot_repo.list_by_date(target, self.session_type)
            if slot.available_spots > 0 and fits_slot(registration, slot)
        ]
        return NextSlotResult(eligible=True, next_date=target, available_slots=slots)

    def get_roster(self, roster_date: date | None = None, now: datetime | None = None) -> list[RosterSlot]:
        """날짜의 슬롯별 명단. 슬롯이 없으면 NotFoundError."""

        roster_date = roster_date or self.next_session_date(now)
        slots = self._slot_repo.list_by_date(roster_date, self.session_type)
        if not slots:
            raise NotFoundError(
                f"No slots found for {roster_date.isoformat()}", code="NO_SLOTS_FOUND"
            )
        slots.sort(key=lambda s: (s.start_time or s.time_slot, s.time_slot))

        bookings = self._booking_repo.list_by_date(roster_date, self.session_type)
        registrations = self._registration_repo.find_many(
            sorted({b.registration_id for b in bookings})
        )
        with_players = attach_players(bookings, registrations)

        roster: list[RosterSlot] = []
        for slot in slots:
            roster.append(
                RosterSlot(
                    slot=slot,
                    bookings=[
                        item for item in with_players if item.booking.time_slot == slot.time_slot
                    ],
                )
            )
        return roster

    def mark_attendance(
        self,
        booking_id: str,
        attended: bool,
        operator_id: str,
        now: datetime | None = None,
    ) -> Booking:
        """출석 체크. booked 상태에서 한 번만 바꿀 수 있다."""

        if not operator_id.strip():
            raise ValidationError("operator_id is required")
        now = now or datetime.now(timezone.utc)

        booking = self._booking_repo.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")
        if booking.status == "cancelled":
            raise ValidationError(
                "Cannot mark attendance for a cancelled booking", code="BOOKING_CANCELLED"
            )
        if booking.status != "booked":
            raise ConflictError(
                f"Attendance already marked as {booking.status}", code="ATTENDANCE_ALREADY_MARKED"
            )

        to_status = "attended" if attended else "no_show"
        updated = self._booking_repo.transition(
            booking_id,
            from_status="booked",
            to_status=to_status,
            fields={"attendance_marked_by": operator_id, "attendance_marked_at": now},
            now=now,
        )
        if updated is None:
            # 다른 운영자가 먼저 바꿨거나 그 사이 취소됨
            raise ConflictError(
                "Booking status changed while marking attendance", code="ATTENDANCE_ALREADY_MARKED"
            )
        logger.info(
            "attendance marked as %s",
            to_status,
            extra={"booking_id": booking_id, "owner_id": booking.owner_id},
        )
        return updated


def get_sunday_service(
    registration_repo: RegistrationRepositoryInterface = Depends(get_registration_repository),
    booking_repo: BookingRepositoryInterface = Depends(get_booking_repository),
    slot_repo: SlotRepositoryInterface = Depends(get_slot_repository),
    config: AppConfig = Depends(get_app_config),
) -> SundayService:
    """FastAPI DI용 SundayService 팩토리."""

    return SundayService(registration_repo, booking_repo, slot_repo, config)
