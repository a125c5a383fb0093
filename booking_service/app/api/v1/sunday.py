"""일요일 연습 API 라우터 (참가 자격/다음 슬롯, 명단, 출석 체크)."""

from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..schemas.bookings import BookingItem
from ..schemas.sunday import (
    AttendanceRequest,
    AttendanceResponse,
    NextSlotResponse,
    RosterBookingItem,
    RosterResponse,
    RosterSlotItem,
    SlotItem,
)
from ...services.sunday_service import SundayService, get_sunday_service


router = APIRouter(prefix="/sunday", tags=["sunday"])

# 등록 시스템의 UUID 또는 ObjectId
REGISTRATION_ID_PATTERN = (
    r"^(?:[0-9a-fA-F]{24}|[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})$"
)


@router.get("/next-slot", summary="다음 일요일 연습 슬롯과 참가 자격 조회")
def get_next_slot(
    service: Annotated[SundayService, Depends(get_sunday_service)],
    registration_id: str = Query(..., pattern=REGISTRATION_ID_PATTERN),
    owner_id: str = Query(..., min_length=1, max_length=128),
) -> NextSlotResponse:
    result = service.get_next_slot(owner_id, registration_id)
    return NextSlotResponse(
        eligible=result.eligible,
        reason=result.reason,
        next_date=result.next_date,
        already_booked=result.already_booked,
        existing_booking=(
            BookingItem.from_domain(result.existing_booking)
            if result.existing_booking is not None
            else None
        ),
        available_slots=[SlotItem.from_domain(slot) for slot in result.available_slots],
    )


@router.get("/roster", summary="일요일 연습 명단 조회 (운영자)")
def get_roster(
    service: Annotated[SundayService, Depends(get_sunday_service)],
    roster_date: date | None = Query(None, alias="date", description="YYYY-MM-DD, 기본값은 다음 연습일"),
) -> RosterResponse:
    target = roster_date or service.next_session_date()
    roster = service.get_roster(target)
    slots = [
        RosterSlotItem(
            **SlotItem.from_domain(entry.slot).model_dump(),
            capacity=f"{entry.slot.current_bookings}/{entry.slot.max_capacity}",
            bookings=[RosterBookingItem.from_domain(item) for item in entry.bookings],
        )
        for entry in roster
    ]
    return RosterResponse(
        roster_date=target,
        slots=slots,
        total_bookings=sum(len(entry.bookings) for entry in roster),
    )


@router.post("/attendance", summary="출석 체크 (운영자)")
def mark_attendance(
    body: AttendanceRequest,
    service: Annotated[SundayService, Depends(get_sunday_service)],
) -> AttendanceResponse:
    booking = service.mark_attendance(body.booking_id, body.attended, body.operator_id)
    return AttendanceResponse(
        booking_id=body.booking_id,
        status=booking.status,
        attendance_marked_by=booking.attendance_marked_by,
        attendance_marked_at=booking.attendance_marked_at,
        message=f"Attendance marked as {booking.status}.",
    )
