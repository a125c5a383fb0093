from __future__ import annotations

from pydantic import BaseModel

from common.mongo.types import BaseDocument, MongoDate, MongoDateTime, from_object_id

from ...models.booking import Booking
from ...models.credit import CreditAllocation


class CreditAllocationRecord(BaseModel):
    lot_id: str
    amount: int


class BookingDocument(BaseDocument):
    """MongoDB bookings 컬렉션 도큐먼트 모델.

    - is_active 는 status != "cancelled" 를 저장해 둔 값으로, 부분 유니크 인덱스의 조건으로 쓰인다.
    """

    owner_id: str
    registration_id: str
    session_type: str
    date: MongoDate
    time_slot: str
    credits_used: int = 0
    credit_lot_ref: str | None = None
    credit_allocations: list[CreditAllocationRecord] = []
    payment_ref: str | None = None
    status: str = "booked"
    is_active: bool = True
    cancelled_at: MongoDateTime | None = None
    cancellation_reason: str | None = None
    attendance_marked_by: str | None = None
    attendance_marked_at: MongoDateTime | None = None

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingDocument":
        data = booking.model_dump(exclude={"id"})
        data["is_active"] = booking.is_active
        if booking.id:
            data["_id"] = booking.id
        return cls.model_validate(data)

    def to_domain(self) -> Booking:
        return Booking(
            id=from_object_id(self.id),
            owner_id=self.owner_id,
            registration_id=self.registration_id,
            session_type=self.session_type,
            date=self.date,
            time_slot=self.time_slot,
            credits_used=self.credits_used,
            credit_lot_ref=self.credit_lot_ref,
            credit_allocations=[
                CreditAllocation(lot_id=a.lot_id, amount=a.amount)
                for a in self.credit_allocations
            ],
            payment_ref=self.payment_ref,
            status=self.status,  # type: ignore[arg-type]
            cancelled_at=self.cancelled_at,
            cancellation_reason=self.cancellation_reason,
            attendance_marked_by=self.attendance_marked_by,
            attendance_marked_at=self.attendance_marked_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
