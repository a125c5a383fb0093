"""세션 예약 관련 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class BookingEventType:
    """예약 이벤트 타입 상수."""

    BOOKING_CONFIRMED = "booking.confirmed"
    BOOKING_CANCELLED = "booking.cancelled"


@dataclass(slots=True)
class BookingConfirmedEvent:
    """예약 확정 이벤트.

    예약 레코드가 저장된 직후 발행된다. 알림 서비스가 확인 메일을 보낼 때 사용한다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    owner_id: str
    booking_id: str
    registration_id: str
    session_type: str
    session_date: str
    time_slot: str
    credits_used: int
    credits_remaining: int | None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        remaining = data.get("credits_remaining")
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            owner_id=str(data["owner_id"]),
            booking_id=str(data["booking_id"]),
            registration_id=str(data["registration_id"]),
            session_type=str(data["session_type"]),
            session_date=str(data["session_date"]),
            time_slot=str(data["time_slot"]),
            credits_used=int(data["credits_used"]),
            credits_remaining=int(remaining) if remaining is not None else None,
        )


@dataclass(slots=True)
class BookingCancelledEvent:
    """예약 취소 이벤트."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    owner_id: str
    booking_id: str
    session_type: str
    session_date: str
    time_slot: str
    credits_refunded: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            owner_id=str(data["owner_id"]),
            booking_id=str(data["booking_id"]),
            session_type=str(data["session_type"]),
            session_date=str(data["session_date"]),
            time_slot=str(data["time_slot"]),
            credits_refunded=int(data["credits_refunded"]),
        )
