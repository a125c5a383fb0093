from __future__ import annotations

from datetime import time

from pydantic import BaseModel, Field

from common.types.datetime import IsoDate, UtcDateTime, format_time_12h

from ...models.booking import BookingWithPlayer
from ...models.slot import Slot
from .bookings import BookingItem


def _display_time(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return format_time_12h(time.fromisoformat(value))
    except ValueError:
        return value


class SlotItem(BaseModel):
    slot_id: str | None
    slot_date: IsoDate
    time_slot: str
    start_time: str | None  # "7:30 AM"
    end_time: str | None
    min_category: str | None
    max_category: str | None
    max_capacity: int
    current_bookings: int
    available_spots: int

    @classmethod
    def from_domain(cls, slot: Slot) -> "SlotItem":
        return cls(
            slot_id=slot.id,
            slot_date=slot.date,
            time_slot=slot.time_slot,
            start_time=_display_time(slot.start_time),
            end_time=_display_time(slot.end_time),
            min_category=slot.min_category,
            max_category=slot.max_category,
            max_capacity=slot.max_capacity,
            current_bookings=slot.current_bookings,
            available_spots=slot.available_spots,
        )


class NextSlotResponse(BaseModel):
    success: bool = True
    eligible: bool
    reason: str | None = None
    next_date: IsoDate | None = None
    already_booked: bool = False
    existing_booking: BookingItem | None = None
    available_slots: list[SlotItem] = []


class RosterBookingItem(BaseModel):
    booking_id: str | None
    registration_id: str
    player_name: str
    player_category: str
    status: str
    attendance_marked_by: str | None
    attendance_marked_at: UtcDateTime | None

    @classmethod
    def from_domain(cls, item: BookingWithPlayer) -> "RosterBookingItem":
        booking = item.booking
        return cls(
            booking_id=booking.id,
            registration_id=booking.registration_id,
            player_name=item.player_name,
            player_category=item.player_category,
            status=booking.status,
            attendance_marked_by=booking.attendance_marked_by,
            attendance_marked_at=booking.attendance_marked_at,
        )


class RosterSlotItem(SlotItem):
    capacity: str  # "3/12"
    bookings: list[RosterBookingItem]


class RosterResponse(BaseModel):
    success: bool = True
    roster_date: IsoDate
    slots: list[RosterSlotItem]
    total_bookings: int


class AttendanceRequest(BaseModel):
    booking_id: str = Field(min_length=1)
    attended: bool
    operator_id: str = Field(min_length=1)


class AttendanceResponse(BaseModel):
    success: bool = True
    booking_id: str
    status: str
    attendance_marked_by: str | None
    attendance_marked_at: UtcDateTime | None
    message: str
