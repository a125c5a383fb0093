from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone

from fastapi import Depends
from pymongo.database import Database

from common.mongo.client import get_database

from ..config import AppConfig, CapacityConfig, get_app_config
from ..models.slot import SlotKey
from ..repositories.interfaces import SlotRepositoryInterface
from ..repositories.slot_repository import SlotRepository


logger = logging.getLogger(__name__)


class Reservation(enum.Enum):
    RESERVED = "reserved"
    FULL = "full"


class CapacityGate:
    """슬롯 좌석의 원자적 확보/반환.

    - check_and_reserve 는 확인과 증가를 저장소의 조건부 업데이트 한 번으로 처리한다.
    - release 는 current_bookings 를 0 아래로 내리지 않는다.
    """

    def __init__(self, slot_repo: SlotRepositoryInterface, config: CapacityConfig) -> None:
        self._slot_repo = slot_repo
        self._config = config

    def check_and_reserve(
        self,
        key: SlotKey,
        max_capacity: int | None = None,
        now: datetime | None = None,
    ) -> Reservation:
        """좌석 1개를 확보한다.

        max_capacity 는 슬롯이 아직 없을 때 새로 만들 슬롯의 정원이다.
        이미 있는 슬롯은 저장된 max_capacity 로 판단한다.
        """

        now = now or datetime.now(timezone.utc)
        capacity = max_capacity or self._config.max_capacity_for(key.session_type)
        slot = self._slot_repo.reserve(
            key.date, key.time_slot, key.session_type, capacity, now
        )
        if slot is None:
            logger.info("slot full", extra={"slot_key": str(key)})
            return Reservation.FULL
        logger.info(
            "seat reserved (%d/%d)",
            slot.current_bookings,
            slot.max_capacity,
            extra={"slot_key": str(key)},
        )
        return Reservation.RESERVED

    def release(self, key: SlotKey, now: datetime | None = None) -> bool:
        """좌석 1개를 반환한다. 반환할 좌석이 없었으면 False."""

        now = now or datetime.now(timezone.utc)
        slot = self._slot_repo.release(key.date, key.time_slot, key.session_type, now)
        if slot is None:
            logger.warning("no reserved seat to release", extra={"slot_key": str(key)})
            return False
        logger.info("seat released", extra={"slot_key": str(key)})
        return True


def get_slot_repository(
    db: Database = Depends(get_database),
) -> SlotRepositoryInterface:
    """FastAPI DI용 SlotRepository 팩토리."""

    return SlotRepository(db)


def get_capacity_gate(
    slot_repo: SlotRepositoryInterface = Depends(get_slot_repository),
    config: AppConfig = Depends(get_app_config),
) -> CapacityGate:
    return CapacityGate(slot_repo, config.capacity)
