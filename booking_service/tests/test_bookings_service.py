from __future__ import annotations

from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest

from booking_service.app.exceptions import ValidationError
from booking_service.app.models.booking import Booking
from booking_service.app.models.registration import Registration
from booking_service.app.repositories.booking_repository import BookingRepository
from booking_service.app.services.bookings_service import BookingsService
from booking_service.tests.fakes import NOW, FakeBookingRepository, FakeRegistrationRepository


OWNER = "owner-1"


def _booking(slot_date: date, time_slot: str, *, registration_id: str = "reg-1", **fields) -> Booking:
    return Booking(
        owner_id=fields.pop("owner_id", OWNER),
        registration_id=registration_id,
        session_type=fields.pop("session_type", "sunday"),
        date=slot_date,
        time_slot=time_slot,
        created_at=NOW,
        updated_at=NOW,
        **fields,
    )


@pytest.fixture
def service() -> BookingsService:
    booking_repo = FakeBookingRepository()
    # 일부러 날짜/시간 순서를 섞어서 넣는다.
    booking_repo.insert(_booking(date(2026, 3, 22), "07:30-08:30"))
    booking_repo.insert(_booking(date(2026, 3, 8), "08:30-09:30", registration_id="reg-2"))
    booking_repo.insert(_booking(date(2026, 3, 15), "07:30-08:30", status="cancelled"))
    booking_repo.insert(_booking(date(2026, 3, 8), "07:30-08:30"))
    booking_repo.insert(
        _booking(date(2026, 3, 8), "07:30-08:30", registration_id="reg-9", owner_id="owner-2")
    )
    registrations = FakeRegistrationRepository(
        Registration(id="reg-1", owner_id=OWNER, player_name="Alex Tremblay", player_category="M9"),
        Registration(id="reg-2", owner_id=OWNER, player_name="Sam Tremblay", player_category="M13"),
    )
    return BookingsService(booking_repo, registrations)


def _keys(items) -> list[tuple[date, str]]:
    return [(item.booking.date, item.booking.time_slot) for item in items]


def test_list_bookings_orders_by_date_then_time_slot(service: BookingsService) -> None:
    items, total = service.list_bookings(OWNER)

    assert total == 4
    assert _keys(items) == [
        (date(2026, 3, 8), "07:30-08:30"),
        (date(2026, 3, 8), "08:30-09:30"),
        (date(2026, 3, 15), "07:30-08:30"),
        (date(2026, 3, 22), "07:30-08:30"),
    ]
    assert items[1].player_name == "Sam Tremblay"
    assert items[1].player_category == "M13"


def test_list_bookings_filters_by_status_and_date_range(service: BookingsService) -> None:
    items, total = service.list_bookings(
        OWNER, status="booked", from_date=date(2026, 3, 9), to_date=date(2026, 3, 31)
    )

    assert total == 1
    assert _keys(items) == [(date(2026, 3, 22), "07:30-08:30")]


def test_list_bookings_status_all_includes_cancelled(service: BookingsService) -> None:
    items, total = service.list_bookings(OWNER, status="all", from_date=date(2026, 3, 15))

    assert total == 2
    assert [item.booking.status for item in items] == ["cancelled", "booked"]


def test_list_bookings_paginates_in_order(service: BookingsService) -> None:
    first, total = service.list_bookings(OWNER, page=1, page_size=3)
    second, _ = service.list_bookings(OWNER, page=2, page_size=3)

    assert total == 4
    assert len(first) == 3
    assert _keys(second) == [(date(2026, 3, 22), "07:30-08:30")]


def test_list_bookings_rejects_inverted_range(service: BookingsService) -> None:
    with pytest.raises(ValidationError):
        service.list_bookings(OWNER, from_date=date(2026, 3, 20), to_date=date(2026, 3, 1))


def test_repository_lists_oldest_first_with_date_range() -> None:
    collection = MagicMock()
    collection.count_documents.return_value = 0
    collection.find.return_value = []
    database = MagicMock()
    database.__getitem__.return_value = collection
    repo = BookingRepository(database)

    items, total = repo.list_by_owner(
        OWNER,
        status="booked",
        from_date=date(2026, 3, 1),
        to_date=date(2026, 3, 31),
        page=3,
        page_size=10,
    )

    assert (items, total) == ([], 0)
    query = collection.find.call_args.args[0]
    assert query == {
        "owner_id": OWNER,
        "status": "booked",
        "date": {
            "$gte": datetime(2026, 3, 1, tzinfo=timezone.utc),
            "$lte": datetime(2026, 3, 31, tzinfo=timezone.utc),
        },
    }
    kwargs = collection.find.call_args.kwargs
    assert kwargs["sort"] == [("date", 1), ("time_slot", 1), ("_id", 1)]
    assert (kwargs["skip"], kwargs["limit"]) == (20, 10)
    collection.count_documents.assert_called_once_with(query)
