"""크레딧 관련 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class CreditEventType:
    """크레딧 이벤트 타입 상수."""

    CREDIT_LOW = "credit.low"
    CREDIT_EXPIRED = "credit.expired"


@dataclass(slots=True)
class CreditLowEvent:
    """잔액 부족 알림 이벤트.

    예약 후 잔액이 임계값 미만이면 발행된다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    owner_id: str
    remaining: int
    threshold: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            owner_id=str(data["owner_id"]),
            remaining=int(data["remaining"]),
            threshold=int(data["threshold"]),
        )


@dataclass(slots=True)
class CreditExpiredEvent:
    """크레딧 만료 이벤트.

    만료 스윕에서 사용되지 않은 크레딧이 소멸되면 발행된다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    owner_id: str
    lot_id: str
    amount: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            owner_id=str(data["owner_id"]),
            lot_id=str(data["lot_id"]),
            amount=int(data["amount"]),
        )
