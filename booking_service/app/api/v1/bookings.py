"""세션 예약 API 라우터."""

from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from common.schemas.pagination import PaginatedResponse, normalize_page

from ..schemas.bookings import (
    BookingItem,
    BookSessionRequest,
    BookSessionResponse,
    CancelBookingRequest,
    CancelBookingResponse,
    PaidBookingRequest,
)
from ...services.booking_coordinator import BookingCoordinator, get_booking_coordinator
from ...services.bookings_service import BookingsService, get_bookings_service


router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="크레딧으로 세션 예약",
)
def book_session(
    body: BookSessionRequest,
    coordinator: Annotated[BookingCoordinator, Depends(get_booking_coordinator)],
) -> BookSessionResponse:
    result = coordinator.book_session(
        owner_id=body.owner_id,
        registration_id=body.registration_id,
        session_type=body.session_type,
        slot_date=body.session_date,
        time_slot=body.time_slot,
    )
    credits_used = result.booking.credits_used
    return BookSessionResponse(
        booking=BookingItem.from_domain(result.booking),
        credits_remaining=result.credits_remaining,
        message=(
            f"Session booked successfully. {credits_used} credit(s) used, "
            f"{result.credits_remaining} remaining."
        ),
    )


@router.post(
    "/paid",
    status_code=status.HTTP_201_CREATED,
    summary="직접 결제 세션 예약 확정 (결제 연동 전용)",
)
def confirm_paid_booking(
    body: PaidBookingRequest,
    coordinator: Annotated[BookingCoordinator, Depends(get_booking_coordinator)],
) -> BookSessionResponse:
    result = coordinator.confirm_paid_booking(
        owner_id=body.owner_id,
        registration_id=body.registration_id,
        session_type=body.session_type,
        slot_date=body.session_date,
        time_slot=body.time_slot,
        payment_ref=body.payment_ref,
    )
    return BookSessionResponse(
        booking=BookingItem.from_domain(result.booking),
        credits_remaining=None,
        message="Session booked successfully.",
    )


@router.get("", summary="내 예약 목록 조회")
def list_my_bookings(
    service: Annotated[BookingsService, Depends(get_bookings_service)],
    owner_id: str = Query(..., min_length=1, description="계정 ID"),
    status_filter: str | None = Query(
        None, alias="status", description="booked | attended | cancelled | no_show | all"
    ),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    page: int = Query(1, description="조회할 페이지 (1부터 시작)"),
    page_size: int = Query(20, description="페이지당 아이템 개수 (1~100)"),
) -> PaginatedResponse[BookingItem]:
    page, page_size = normalize_page(page, page_size)
    items, total = service.list_bookings(
        owner_id,
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse(
        items=[BookingItem.from_domain(item.booking, item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/{booking_id}/cancel", summary="예약 취소")
def cancel_booking(
    booking_id: str,
    body: CancelBookingRequest,
    coordinator: Annotated[BookingCoordinator, Depends(get_booking_coordinator)],
) -> CancelBookingResponse:
    result = coordinator.cancel_booking(
        owner_id=body.owner_id, booking_id=booking_id, reason=body.reason
    )
    credits_used = result.booking.credits_used
    if result.refund_failed:
        message = "Booking cancelled, but the credit refund failed. Please contact support."
    elif result.credits_refunded > 0:
        message = f"Booking cancelled. {result.credits_refunded} credit(s) have been refunded."
    elif not result.refund_eligible and credits_used > 0:
        message = (
            "Booking cancelled. Cancellation was too close to the session start, "
            "so credits cannot be refunded."
        )
    else:
        message = "Booking cancelled successfully."

    return CancelBookingResponse(
        booking=BookingItem.from_domain(result.booking),
        credits_refunded=result.credits_refunded,
        credits_remaining=result.credits_remaining,
        refund_eligible=result.refund_eligible,
        credit_restored=result.credits_refunded > 0,
        seat_released=not result.seat_release_failed,
        message=message,
    )
