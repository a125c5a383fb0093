from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from .credit import CreditAllocation


BookingStatus = Literal["booked", "attended", "cancelled", "no_show"]
BOOKING_STATUSES: tuple[str, ...] = ("booked", "attended", "cancelled", "no_show")


class Booking(BaseModel):
    """세션 예약 도메인 모델.

    - 취소되지 않은 예약은 (registration_id, date, time_slot, session_type) 당 최대 1건이다.
    - 크레딧으로 결제한 예약은 차감 영수증(credit_allocations)을 함께 보관한다.
    """

    id: str | None = None
    owner_id: str
    registration_id: str
    session_type: str
    date: date
    time_slot: str
    credits_used: int = 0
    credit_lot_ref: str | None = None
    credit_allocations: list[CreditAllocation] = Field(default_factory=list)
    payment_ref: str | None = None  # 직접 결제 흐름의 결제 식별자
    status: BookingStatus = "booked"
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    attendance_marked_by: str | None = None
    attendance_marked_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status != "cancelled"


class BookingWithPlayer(BaseModel):
    """목록/명단 조회용: 예약 + 선수 정보."""

    booking: Booking
    player_name: str
    player_category: str


class BookingResult(BaseModel):
    """예약 성공 결과."""

    booking: Booking
    credits_remaining: int | None  # 크레딧 예약이 아니면 None


class CancellationResult(BaseModel):
    booking: Booking
    credits_refunded: int
    credits_remaining: int
    refund_eligible: bool
    refund_failed: bool = False
    seat_release_failed: bool = False
