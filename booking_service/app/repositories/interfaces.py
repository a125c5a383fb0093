from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from ..models.booking import Booking
from ..models.credit import CreditLot, CreditReceipt, CreditTransaction
from ..models.registration import Registration
from ..models.slot import Slot


class CreditRepositoryInterface(Protocol):
    """크레딧 원장 저장소 계약.

    - 모든 쓰기 연산은 로트 잔량, 집계 잔액, 트랜잭션 로그를 한 단위로 반영한다.
    - 실패 시 어떤 변경도 남기지 않는다.
    """

    def list_lots(
        self, owner_id: str, *, usable_at: datetime | None = None
    ) -> list[CreditLot]:  # pragma: no cover - Protocol
        """usable_at 이 주어지면 그 시점에 사용 가능한 로트만 FIFO 순으로 반환한다."""
        ...

    def get_balance(self, owner_id: str) -> int:  # pragma: no cover - Protocol
        ...

    def deduct(
        self, owner_id: str, amount: int, reason: str, now: datetime
    ) -> tuple[CreditReceipt, int]:  # pragma: no cover - Protocol
        """(영수증, 차감 후 잔액). 부족하면 InsufficientCreditsError."""
        ...

    def refund(
        self, receipt: CreditReceipt, reason: str, now: datetime
    ) -> tuple[int, int]:  # pragma: no cover - Protocol
        """(실제로 되돌린 양, 환불 후 잔액)."""
        ...

    def grant_lot(
        self,
        owner_id: str,
        package_type: str,
        credits: int,
        expires_at: datetime,
        reason: str,
        now: datetime,
    ) -> tuple[CreditLot, int]:  # pragma: no cover - Protocol
        ...

    def expire_lots(
        self, now: datetime, owner_id: str | None = None
    ) -> list[CreditLot]:  # pragma: no cover - Protocol
        """만료 시각이 지난 active 로트를 expired 로 바꾸고, 바뀐 로트(바뀌기 전 잔량)를 반환한다."""
        ...

    def reconcile(
        self, owner_id: str, now: datetime
    ) -> tuple[int, int]:  # pragma: no cover - Protocol
        """(이전 잔액, 재계산된 잔액)."""
        ...


class CreditTransactionRepositoryInterface(Protocol):
    def list_by_owner(
        self, owner_id: str, page: int, page_size: int
    ) -> tuple[list[CreditTransaction], int]:  # pragma: no cover - Protocol
        ...


class SlotRepositoryInterface(Protocol):
    """세션 슬롯 저장소 계약.

    reserve/release 는 단일 원자적 조건부 업데이트여야 한다.
    """

    def reserve(
        self,
        slot_date: date,
        time_slot: str,
        session_type: str,
        max_capacity: int,
        now: datetime,
    ) -> Slot | None:  # pragma: no cover - Protocol
        """좌석 1개를 확보하면 갱신된 슬롯, 만석이면 None."""
        ...

    def release(
        self, slot_date: date, time_slot: str, session_type: str, now: datetime
    ) -> Slot | None:  # pragma: no cover - Protocol
        """좌석 1개를 반환한다. 0 아래로 내려가지 않으며, 반환할 좌석이 없으면 None."""
        ...

    def find(
        self, slot_date: date, time_slot: str, session_type: str
    ) -> Slot | None:  # pragma: no cover - Protocol
        ...

    def list_by_date(
        self, slot_date: date, session_type: str, *, active_only: bool = True
    ) -> list[Slot]:  # pragma: no cover - Protocol
        ...

    def exists_for_date(
        self, slot_date: date, session_type: str
    ) -> bool:  # pragma: no cover - Protocol
        ...

    def insert_if_absent(self, slot: Slot) -> bool:  # pragma: no cover - Protocol
        """새로 만들었으면 True, 이미 있으면 False."""
        ...


class BookingRepositoryInterface(Protocol):
    """예약 저장소 계약.

    - 취소되지 않은 예약은 (registration_id, date, time_slot, session_type) 당 1건으로 보장되어야 한다.
    """

    def insert(self, booking: Booking) -> Booking:  # pragma: no cover - Protocol
        """중복이면 DuplicateBookingError."""
        ...

    def get(self, booking_id: str) -> Booking | None:  # pragma: no cover - Protocol
        ...

    def find_active(
        self, registration_id: str, slot_date: date, time_slot: str, session_type: str
    ) -> Booking | None:  # pragma: no cover - Protocol
        ...

    def find_active_on_date(
        self, registration_id: str, slot_date: date, session_type: str
    ) -> Booking | None:  # pragma: no cover - Protocol
        ...

    def list_by_owner(
        self,
        owner_id: str,
        *,
        status: str | None,
        from_date: date | None,
        to_date: date | None,
        page: int,
        page_size: int,
    ) -> tuple[list[Booking], int]:  # pragma: no cover - Protocol
        ...

    def list_by_date(
        self, slot_date: date, session_type: str
    ) -> list[Booking]:  # pragma: no cover - Protocol
        """취소되지 않은 예약만."""
        ...

    def transition(
        self,
        booking_id: str,
        *,
        from_status: str,
        to_status: str,
        fields: dict,
        now: datetime,
    ) -> Booking | None:  # pragma: no cover - Protocol
        """현재 상태가 from_status 일 때만 to_status 로 바꾼다. 조건이 맞지 않으면 None."""
        ...


class RegistrationRepositoryInterface(Protocol):
    def find(self, registration_id: str) -> Registration | None:  # pragma: no cover - Protocol
        ...

    def find_many(
        self, registration_ids: list[str]
    ) -> dict[str, Registration]:  # pragma: no cover - Protocol
        ...
