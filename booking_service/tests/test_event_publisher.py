from __future__ import annotations

from datetime import date, timedelta

from common.eventbus.core import Event
from common.events.booking import BookingCancelledEvent, BookingConfirmedEvent
from common.events.credit import CreditExpiredEvent, CreditLowEvent

from booking_service.app.models.booking import Booking
from booking_service.app.models.credit import CreditLot
from booking_service.app.services.event_publisher import EventPublisher
from booking_service.tests.fakes import NOW, FakeEventBus


def _booking() -> Booking:
    return Booking(
        id="booking-1",
        owner_id="owner-1",
        registration_id="reg-1",
        session_type="group",
        date=date(2026, 3, 10),
        time_slot="5:45 PM",
        credits_used=1,
        created_at=NOW,
        updated_at=NOW,
    )


class _BrokenBus:
    def publish(self, topic: str, event: Event) -> None:
        raise RuntimeError("broker unavailable")


def test_booking_events_round_trip_through_the_bus() -> None:
    bus = FakeEventBus()
    publisher = EventPublisher(bus)

    publisher.booking_confirmed(_booking(), 4)
    publisher.booking_cancelled(_booking(), 1)

    (confirmed_topic, confirmed), (cancelled_topic, cancelled) = bus.published
    assert confirmed_topic == cancelled_topic == "booking-service.booking"
    parsed = BookingConfirmedEvent.from_dict(confirmed.payload)
    assert parsed.type == "booking.confirmed"
    assert parsed.session_date == "2026-03-10"
    assert parsed.credits_remaining == 4
    assert confirmed.id == parsed.id
    assert BookingCancelledEvent.from_dict(cancelled.payload).credits_refunded == 1


def test_credit_events_use_credit_topic() -> None:
    bus = FakeEventBus()
    publisher = EventPublisher(bus)
    lot = CreditLot(
        id="lot-1",
        owner_id="owner-1",
        package_type="10_pack",
        credits_total=10,
        credits_remaining=3,
        expires_at=NOW - timedelta(days=1),
        status="expired",
        created_at=NOW,
        updated_at=NOW,
    )

    publisher.credit_low("owner-1", 2, 3)
    publisher.credit_expired(lot)

    assert [topic for topic, _ in bus.published] == ["booking-service.credit"] * 2
    low = CreditLowEvent.from_dict(bus.published[0][1].payload)
    assert (low.remaining, low.threshold) == (2, 3)
    assert CreditExpiredEvent.from_dict(bus.published[1][1].payload).amount == 3


def test_publish_failure_is_not_raised() -> None:
    publisher = EventPublisher(_BrokenBus())

    publisher.booking_confirmed(_booking(), None)


def test_publisher_without_bus_is_disabled() -> None:
    publisher = EventPublisher(None)

    assert publisher.enabled is False
    publisher.credit_low("owner-1", 0, 3)
