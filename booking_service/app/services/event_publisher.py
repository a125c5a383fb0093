"""booking-service 도메인 이벤트 발행.

이벤트는 알림 서비스 등 외부 소비자를 위한 것이므로 발행 실패가 예약/취소 결과를 바꾸지 않는다.
실패는 로그로만 남긴다.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Protocol

from fastapi import Request

from common.eventbus.core import Event
from common.eventbus.helpers import new_event_envelope, new_json_event
from common.eventbus.topics import TOPIC_BOOKING, TOPIC_CREDIT
from common.events.booking import (
    BookingCancelledEvent,
    BookingConfirmedEvent,
    BookingEventType,
)
from common.events.credit import CreditEventType, CreditExpiredEvent, CreditLowEvent

from ..models.booking import Booking
from ..models.credit import CreditLot


logger = logging.getLogger(__name__)

EVENT_SOURCE = "booking-service"


class EventBusInterface(Protocol):
    def publish(self, topic: str, event: Event) -> None:  # pragma: no cover - Protocol
        ...


class EventPublisher:
    """도메인 이벤트를 Kafka 로 발행한다. bus 가 없으면(브로커 미설정) 아무것도 하지 않는다."""

    def __init__(self, bus: EventBusInterface | None) -> None:
        self._bus = bus

    @property
    def enabled(self) -> bool:
        return self._bus is not None

    def booking_confirmed(self, booking: Booking, credits_remaining: int | None) -> None:
        event = BookingConfirmedEvent(
            **new_event_envelope(BookingEventType.BOOKING_CONFIRMED, EVENT_SOURCE),
            owner_id=booking.owner_id,
            booking_id=booking.id or "",
            registration_id=booking.registration_id,
            session_type=booking.session_type,
            session_date=booking.date.isoformat(),
            time_slot=booking.time_slot,
            credits_used=booking.credits_used,
            credits_remaining=credits_remaining,
        )
        self._publish(TOPIC_BOOKING.base, event.id, asdict(event))

    def booking_cancelled(self, booking: Booking, credits_refunded: int) -> None:
        event = BookingCancelledEvent(
            **new_event_envelope(BookingEventType.BOOKING_CANCELLED, EVENT_SOURCE),
            owner_id=booking.owner_id,
            booking_id=booking.id or "",
            session_type=booking.session_type,
            session_date=booking.date.isoformat(),
            time_slot=booking.time_slot,
            credits_refunded=credits_refunded,
        )
        self._publish(TOPIC_BOOKING.base, event.id, asdict(event))

    def credit_low(self, owner_id: str, remaining: int, threshold: int) -> None:
        event = CreditLowEvent(
            **new_event_envelope(CreditEventType.CREDIT_LOW, EVENT_SOURCE),
            owner_id=owner_id,
            remaining=remaining,
            threshold=threshold,
        )
        self._publish(TOPIC_CREDIT.base, event.id, asdict(event))

    def credit_expired(self, lot: CreditLot) -> None:
        event = CreditExpiredEvent(
            **new_event_envelope(CreditEventType.CREDIT_EXPIRED, EVENT_SOURCE),
            owner_id=lot.owner_id,
            lot_id=lot.id or "",
            amount=lot.credits_remaining,
        )
        self._publish(TOPIC_CREDIT.base, event.id, asdict(event))

    def _publish(self, topic: str, event_id: str, payload: dict[str, Any]) -> None:
        if self._bus is None:
            return
        try:
            self._bus.publish(topic, new_json_event(payload=payload, event_id=event_id))
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to publish %s event", payload.get("type"), extra={"owner_id": payload.get("owner_id")}
            )


def get_event_publisher(request: Request) -> EventPublisher:
    """FastAPI DI용: lifespan 에서 app.state 에 올려둔 EventPublisher 를 반환한다."""

    publisher = getattr(request.app.state, "events", None)
    if publisher is None:
        return EventPublisher(None)
    return publisher
