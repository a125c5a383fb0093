from __future__ import annotations

from common.mongo.types import BaseDocument, MongoDate, from_object_id

from ...models.slot import Slot


class SlotDocument(BaseDocument):
    """MongoDB session_slots 컬렉션 도큐먼트 모델.

    (date, time_slot, session_type) 조합은 유니크 인덱스로 보장된다.
    """

    date: MongoDate
    time_slot: str
    session_type: str
    start_time: str | None = None
    end_time: str | None = None
    min_category: str | None = None
    max_category: str | None = None
    max_capacity: int
    current_bookings: int = 0
    is_active: bool = True

    @classmethod
    def from_domain(cls, slot: Slot) -> "SlotDocument":
        data = slot.model_dump(exclude={"id"})
        if slot.id:
            data["_id"] = slot.id
        return cls.model_validate(data)

    def to_domain(self) -> Slot:
        return Slot(
            id=from_object_id(self.id),
            date=self.date,
            time_slot=self.time_slot,
            session_type=self.session_type,
            start_time=self.start_time,
            end_time=self.end_time,
            min_category=self.min_category,
            max_category=self.max_category,
            max_capacity=self.max_capacity,
            current_bookings=self.current_bookings,
            is_active=self.is_active,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
