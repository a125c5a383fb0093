from __future__ import annotations

from typing import Any

from bson import ObjectId
from pymongo.database import Database

from .documents.registration_document import RegistrationDocument
from .interfaces import RegistrationRepositoryInterface
from ..models.registration import Registration


class RegistrationRepository(RegistrationRepositoryInterface):
    """registrations 컬렉션 읽기 전용 접근 레이어.

    등록 시스템이 _id 를 UUID 문자열로 쓰는 경우와 ObjectId 로 쓰는 경우를 모두 조회한다.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["registrations"]

    @staticmethod
    def _id_candidates(registration_id: str) -> list[Any]:
        candidates: list[Any] = [registration_id]
        if ObjectId.is_valid(registration_id):
            candidates.append(ObjectId(registration_id))
        return candidates

    def find(self, registration_id: str) -> Registration | None:
        raw = self._col.find_one({"_id": {"$in": self._id_candidates(registration_id)}})
        if raw is None:
            return None
        return RegistrationDocument.model_validate(raw).to_domain()

    def find_many(self, registration_ids: list[str]) -> dict[str, Registration]:
        if not registration_ids:
            return {}
        candidates: list[Any] = []
        for registration_id in registration_ids:
            candidates.extend(self._id_candidates(registration_id))
        result: dict[str, Registration] = {}
        for raw in self._col.find({"_id": {"$in": candidates}}):
            registration = RegistrationDocument.model_validate(raw).to_domain()
            result[registration.id] = registration
        return result
