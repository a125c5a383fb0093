from __future__ import annotations

from pymongo.database import Database

from .booking_repository import BookingRepository
from .credit_repository import CreditRepository
from .slot_repository import SlotRepository


def ensure_indexes(database: Database) -> None:
    """애플리케이션 시작 시 한 번 호출된다 (MongoStorage.connect)."""

    CreditRepository.ensure_indexes(database)
    SlotRepository.ensure_indexes(database)
    BookingRepository.ensure_indexes(database)
