from __future__ import annotations

from datetime import date

from fastapi import Depends

from ..exceptions import ValidationError
from ..models.booking import BOOKING_STATUSES, Booking, BookingWithPlayer
from ..models.registration import Registration
from ..repositories.interfaces import (
    BookingRepositoryInterface,
    RegistrationRepositoryInterface,
)
from .booking_coordinator import get_booking_repository, get_registration_repository


def attach_players(
    bookings: list[Booking], registrations: dict[str, Registration]
) -> list[BookingWithPlayer]:
    """예약 목록에 선수 이름/카테고리를 붙인다. 등록 정보가 없으면 Unknown."""

    items: list[BookingWithPlayer] = []
    for booking in bookings:
        registration = registrations.get(booking.registration_id)
        items.append(
            BookingWithPlayer(
                booking=booking,
                player_name=registration.player_name if registration else "Unknown",
                player_category=registration.player_category if registration else "Unknown",
            )
        )
    return items


class BookingsService:
    """계정의 예약 목록 조회."""

    def __init__(
        self,
        booking_repo: BookingRepositoryInterface,
        registration_repo: RegistrationRepositoryInterface,
    ) -> None:
        self._booking_repo = booking_repo
        self._registration_repo = registration_repo

    def list_bookings(
        self,
        owner_id: str,
        *,
        status: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[BookingWithPlayer], int]:
        """status 가 None 이나 "all" 이면 전체 상태를 조회한다."""

        if status == "all":
            status = None
        if status is not None and status not in BOOKING_STATUSES:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(BOOKING_STATUSES)}, all"
            )
        if from_date is not None and to_date is not None and from_date > to_date:
            raise ValidationError("from_date must be on or before to_date")

        bookings, total = self._booking_repo.list_by_owner(
            owner_id,
            status=status,
            from_date=from_date,
            to_date=to_date,
            page=page,
            page_size=page_size,
        )
        registrations = self._registration_repo.find_many(
            sorted({b.registration_id for b in bookings})
        )
        return attach_players(bookings, registrations), total


def get_bookings_service(
    booking_repo: BookingRepositoryInterface = Depends(get_booking_repository),
    registration_repo: RegistrationRepositoryInterface = Depends(get_registration_repository),
) -> BookingsService:
    """FastAPI DI용 BookingsService 팩토리."""

    return BookingsService(booking_repo, registration_repo)
