"""세션 슬롯 레포지토리.

좌석 확보/반환은 조건부 find_one_and_update 한 번으로 끝난다.
읽고-판단하고-쓰는 사이에 다른 요청이 끼어들 여지가 없으므로 current_bookings 는 max_capacity 를 넘지 않는다.
"""

from __future__ import annotations

from datetime import date, datetime

from pymongo import ASCENDING, IndexModel, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from common.mongo.types import date_to_mongo

from .documents.slot_document import SlotDocument
from .interfaces import SlotRepositoryInterface
from ..models.slot import Slot


class SlotRepository(SlotRepositoryInterface):
    """session_slots 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["session_slots"]

    @staticmethod
    def ensure_indexes(database: Database) -> None:
        # date + time_slot + session_type 복합 유니크 인덱스
        database["session_slots"].create_indexes(
            [
                IndexModel(
                    [("date", ASCENDING), ("time_slot", ASCENDING), ("session_type", ASCENDING)],
                    unique=True,
                    name="idx_slot_unique",
                )
            ]
        )

    def reserve(
        self,
        slot_date: date,
        time_slot: str,
        session_type: str,
        max_capacity: int,
        now: datetime,
    ) -> Slot | None:
        """좌석 1개 확보 (Atomic).

        - 슬롯이 있고 자리가 남았으면 current_bookings 를 1 올린다.
        - 슬롯이 없으면 upsert 로 current_bookings=1 인 슬롯을 만든다.
        - 슬롯이 있는데 만석이면 필터가 매칭되지 않아 upsert 가 insert 를 시도하고,
          유니크 인덱스 충돌(DuplicateKeyError)이 난다 -> 만석.
        """

        try:
            raw = self._col.find_one_and_update(
                {
                    "date": date_to_mongo(slot_date),
                    "time_slot": time_slot,
                    "session_type": session_type,
                    "is_active": {"$ne": False},
                    "$expr": {"$lt": ["$current_bookings", "$max_capacity"]},
                },
                {
                    "$inc": {"current_bookings": 1},
                    "$set": {"updated_at": now},
                    "$setOnInsert": {
                        "max_capacity": max_capacity,
                        "is_active": True,
                        "created_at": now,
                    },
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            return None
        if raw is None:
            return None
        return SlotDocument.model_validate(raw).to_domain()

    def release(
        self, slot_date: date, time_slot: str, session_type: str, now: datetime
    ) -> Slot | None:
        raw = self._col.find_one_and_update(
            {
                "date": date_to_mongo(slot_date),
                "time_slot": time_slot,
                "session_type": session_type,
                "current_bookings": {"$gt": 0},
            },
            {"$inc": {"current_bookings": -1}, "$set": {"updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if raw is None:
            return None
        return SlotDocument.model_validate(raw).to_domain()

    def find(self, slot_date: date, time_slot: str, session_type: str) -> Slot | None:
        raw = self._col.find_one(
            {
                "date": date_to_mongo(slot_date),
                "time_slot": time_slot,
                "session_type": session_type,
            }
        )
        if raw is None:
            return None
        return SlotDocument.model_validate(raw).to_domain()

    def list_by_date(
        self, slot_date: date, session_type: str, *, active_only: bool = True
    ) -> list[Slot]:
        query: dict = {"date": date_to_mongo(slot_date), "session_type": session_type}
        if active_only:
            query["is_active"] = True
        cursor = self._col.find(query, sort=[("time_slot", ASCENDING)])
        return [SlotDocument.model_validate(raw).to_domain() for raw in cursor]

    def exists_for_date(self, slot_date: date, session_type: str) -> bool:
        found = self._col.find_one(
            {"date": date_to_mongo(slot_date), "session_type": session_type},
            {"_id": 1},
        )
        return found is not None

    def insert_if_absent(self, slot: Slot) -> bool:
        payload = SlotDocument.from_domain(slot).to_mongo_record()
        try:
            result = self._col.update_one(
                {
                    "date": payload["date"],
                    "time_slot": slot.time_slot,
                    "session_type": slot.session_type,
                },
                {"$setOnInsert": payload},
                upsert=True,
            )
        except DuplicateKeyError:
            # 동시에 같은 슬롯을 만든 쪽이 이김
            return False
        return result.upserted_id is not None
