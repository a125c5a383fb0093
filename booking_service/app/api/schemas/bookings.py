from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from common.types.datetime import IsoDate, UtcDateTime

from ...models.booking import Booking, BookingWithPlayer


class BookSessionRequest(BaseModel):
    """크레딧 예약 요청."""

    owner_id: str = Field(min_length=1)
    registration_id: str = Field(min_length=1)
    session_type: str = Field(min_length=1)
    session_date: date
    time_slot: str = Field(min_length=1)


class PaidBookingRequest(BookSessionRequest):
    """직접 결제 완료 후 예약 확정 요청 (결제 연동 전용)."""

    payment_ref: str | None = None


class CancelBookingRequest(BaseModel):
    owner_id: str = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=500)


class CreditAllocationItem(BaseModel):
    lot_id: str
    amount: int


class BookingItem(BaseModel):
    id: str | None
    owner_id: str
    registration_id: str
    player_name: str | None = None
    player_category: str | None = None
    session_type: str
    session_date: IsoDate
    time_slot: str
    credits_used: int
    credit_lot_ref: str | None
    credit_allocations: list[CreditAllocationItem]
    status: str
    cancelled_at: UtcDateTime | None = None
    cancellation_reason: str | None = None
    attendance_marked_by: str | None = None
    attendance_marked_at: UtcDateTime | None = None
    created_at: UtcDateTime

    @classmethod
    def from_domain(
        cls, booking: Booking, player: BookingWithPlayer | None = None
    ) -> "BookingItem":
        return cls(
            id=booking.id,
            owner_id=booking.owner_id,
            registration_id=booking.registration_id,
            player_name=player.player_name if player else None,
            player_category=player.player_category if player else None,
            session_type=booking.session_type,
            session_date=booking.date,
            time_slot=booking.time_slot,
            credits_used=booking.credits_used,
            credit_lot_ref=booking.credit_lot_ref,
            credit_allocations=[
                CreditAllocationItem(lot_id=a.lot_id, amount=a.amount)
                for a in booking.credit_allocations
            ],
            status=booking.status,
            cancelled_at=booking.cancelled_at,
            cancellation_reason=booking.cancellation_reason,
            attendance_marked_by=booking.attendance_marked_by,
            attendance_marked_at=booking.attendance_marked_at,
            created_at=booking.created_at,
        )


class BookSessionResponse(BaseModel):
    success: bool = True
    booking: BookingItem
    credits_remaining: int | None
    message: str


class CancelBookingResponse(BaseModel):
    success: bool = True
    booking: BookingItem
    credits_refunded: int
    credits_remaining: int
    refund_eligible: bool
    credit_restored: bool
    seat_released: bool = True
    message: str
