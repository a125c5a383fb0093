from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pymongo import ASCENDING, DESCENDING, IndexModel, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.mongo.types import date_to_mongo, from_object_id, is_object_id, to_object_id

from .documents.booking_document import BookingDocument
from .interfaces import BookingRepositoryInterface
from ..exceptions import DuplicateBookingError
from ..models.booking import Booking


class BookingRepository(BookingRepositoryInterface):
    """bookings 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["bookings"]

    @staticmethod
    def ensure_indexes(database: Database) -> None:
        database["bookings"].create_indexes(
            [
                # 취소되지 않은 예약만 유니크 (취소 후 재예약 허용)
                IndexModel(
                    [
                        ("registration_id", ASCENDING),
                        ("date", ASCENDING),
                        ("time_slot", ASCENDING),
                        ("session_type", ASCENDING),
                    ],
                    unique=True,
                    partialFilterExpression={"is_active": True},
                    name="idx_active_booking_unique",
                ),
                IndexModel(
                    [("owner_id", ASCENDING), ("date", DESCENDING)],
                    name="idx_owner_date",
                ),
                IndexModel(
                    [("date", ASCENDING), ("session_type", ASCENDING), ("status", ASCENDING)],
                    name="idx_date_session_status",
                ),
            ]
        )

    def insert(self, booking: Booking) -> Booking:
        payload = BookingDocument.from_domain(booking).to_mongo_record()
        try:
            result = self._col.insert_one(payload)
        except DuplicateKeyError as exc:
            raise DuplicateBookingError(
                "This player is already booked for this session."
            ) from exc
        return booking.model_copy(update={"id": from_object_id(result.inserted_id)})

    def get(self, booking_id: str) -> Booking | None:
        if not is_object_id(booking_id):
            return None
        raw = self._col.find_one({"_id": to_object_id(booking_id)})
        if raw is None:
            return None
        return BookingDocument.model_validate(raw).to_domain()

    def find_active(
        self, registration_id: str, slot_date: date, time_slot: str, session_type: str
    ) -> Booking | None:
        raw = self._col.find_one(
            {
                "registration_id": registration_id,
                "date": date_to_mongo(slot_date),
                "time_slot": time_slot,
                "session_type": session_type,
                "is_active": True,
            }
        )
        if raw is None:
            return None
        return BookingDocument.model_validate(raw).to_domain()

    def find_active_on_date(
        self, registration_id: str, slot_date: date, session_type: str
    ) -> Booking | None:
        raw = self._col.find_one(
            {
                "registration_id": registration_id,
                "date": date_to_mongo(slot_date),
                "session_type": session_type,
                "is_active": True,
            }
        )
        if raw is None:
            return None
        return BookingDocument.model_validate(raw).to_domain()

    def list_by_owner(
        self,
        owner_id: str,
        *,
        status: str | None,
        from_date: date | None,
        to_date: date | None,
        page: int,
        page_size: int,
    ) -> tuple[list[Booking], int]:
        query: dict[str, Any] = {"owner_id": owner_id}
        if status:
            query["status"] = status
        date_range: dict[str, Any] = {}
        if from_date is not None:
            date_range["$gte"] = date_to_mongo(from_date)
        if to_date is not None:
            date_range["$lte"] = date_to_mongo(to_date)
        if date_range:
            query["date"] = date_range

        skip = (page - 1) * page_size
        total = self._col.count_documents(query)
        cursor = self._col.find(
            query,
            sort=[("date", ASCENDING), ("time_slot", ASCENDING), ("_id", ASCENDING)],
            skip=skip,
            limit=page_size,
        )
        items = [BookingDocument.model_validate(raw).to_domain() for raw in cursor]
        return items, total

    def list_by_date(self, slot_date: date, session_type: str) -> list[Booking]:
        cursor = self._col.find(
            {
                "date": date_to_mongo(slot_date),
                "session_type": session_type,
                "is_active": True,
            },
            sort=[("time_slot", ASCENDING), ("created_at", ASCENDING)],
        )
        return [BookingDocument.model_validate(raw).to_domain() for raw in cursor]

    def transition(
        self,
        booking_id: str,
        *,
        from_status: str,
        to_status: str,
        fields: dict,
        now: datetime,
    ) -> Booking | None:
        if not is_object_id(booking_id):
            return None
        update_fields = dict(fields)
        update_fields.update(
            {
                "status": to_status,
                "is_active": to_status != "cancelled",
                "updated_at": now,
            }
        )
        raw = self._col.find_one_and_update(
            {"_id": to_object_id(booking_id), "status": from_status},
            {"$set": update_fields},
            return_document=ReturnDocument.AFTER,
        )
        if raw is None:
            return None
        return BookingDocument.model_validate(raw).to_domain()
