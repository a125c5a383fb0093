"""크레딧 원장 도메인 모델.

계정(owner)당 여러 크레딧 로트를 가지며, 각 로트는 독립적인 만료시간과 잔량을 가진다.
계정의 집계 잔액(balance)은 사용 가능한 로트 잔량의 합과 항상 같아야 하며,
차감은 만료 임박 순(FIFO)으로 여러 로트에 걸쳐 이루어진다.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from ..exceptions import InsufficientCreditsError, StorageError


LotStatus = Literal["active", "exhausted", "expired"]
TransactionType = Literal["grant", "consume", "refund", "expire", "reconcile"]


class CreditLot(BaseModel):
    """구매 단위 크레딧 로트."""

    id: str | None = None
    owner_id: str
    package_type: str  # "single" | "10_pack" | "20_pack" | "50_pack" | "admin"
    credits_total: int
    credits_remaining: int
    expires_at: datetime
    status: LotStatus = "active"
    created_at: datetime
    updated_at: datetime

    def is_usable(self, now: datetime) -> bool:
        return (
            self.status == "active"
            and self.credits_remaining > 0
            and self.expires_at > now
        )


class CreditAllocation(BaseModel):
    """한 번의 차감에서 특정 로트가 부담한 양."""

    lot_id: str
    amount: int


class CreditReceipt(BaseModel):
    """차감 영수증. 환불은 정확히 이 영수증을 되돌린다."""

    owner_id: str
    allocations: list[CreditAllocation] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(a.amount for a in self.allocations)

    @property
    def primary_lot_id(self) -> str | None:
        return self.allocations[0].lot_id if self.allocations else None


class CreditAccount(BaseModel):
    """계정별 집계 잔액 (비정규화 카운터)."""

    owner_id: str
    balance: int
    created_at: datetime
    updated_at: datetime


class CreditBalance(BaseModel):
    """잔액 조회 결과."""

    owner_id: str
    total_credits: int  # 집계 카운터 값
    lots: list[CreditLot]  # 사용 가능한 로트 (FIFO 순)
    expiring_soon: int  # 경고 기간 안에 만료되는 크레딧 합
    next_expiry_date: datetime | None


class CreditTransaction(BaseModel):
    """크레딧 트랜잭션 로그 도메인 모델."""

    id: str | None = None
    owner_id: str
    type: TransactionType
    amount: int
    reason: str
    lot_ids: list[str] = Field(default_factory=list)
    balance_after: int | None = None
    metadata: dict | None = None
    created_at: datetime
    updated_at: datetime


class LotUpdate(BaseModel):
    """원장 변경 계획의 단위 (저장소가 조건부 업데이트로 적용한다)."""

    lot_id: str
    expected_remaining: int
    new_remaining: int
    new_status: LotStatus


class RefundPlan(BaseModel):
    updates: list[LotUpdate]
    restored: int  # 로트에 되돌린 총량
    balance_delta: int  # 사용 가능한 로트에 되돌린 양 (집계 잔액 증가분)


def fifo_key(lot: CreditLot) -> tuple[datetime, datetime, str]:
    """만료 임박 순, 같으면 먼저 구매한 순."""
    return (lot.expires_at, lot.created_at, lot.id or "")


def plan_deduction(
    owner_id: str, lots: list[CreditLot], amount: int, now: datetime
) -> tuple[CreditReceipt, list[LotUpdate]]:
    """FIFO 차감 계획을 세운다.

    사용 가능한 로트 합계가 부족하면 아무것도 바꾸지 않고 InsufficientCreditsError 를 던진다.
    """

    if amount <= 0:
        raise ValueError("amount must be positive")

    usable = sorted((lot for lot in lots if lot.is_usable(now)), key=fifo_key)
    available = sum(lot.credits_remaining for lot in usable)
    if available < amount:
        raise InsufficientCreditsError(
            f"Insufficient credits. You have {available} credit(s), but {amount} is required.",
            credits_required=amount,
            credits_available=available,
        )

    remaining_to_consume = amount
    allocations: list[CreditAllocation] = []
    updates: list[LotUpdate] = []
    for lot in usable:
        if remaining_to_consume <= 0:
            break
        if lot.id is None:
            raise StorageError("credit lot has no id; it was never persisted")
        take = min(lot.credits_remaining, remaining_to_consume)
        new_remaining = lot.credits_remaining - take
        allocations.append(CreditAllocation(lot_id=lot.id, amount=take))
        updates.append(
            LotUpdate(
                lot_id=lot.id,
                expected_remaining=lot.credits_remaining,
                new_remaining=new_remaining,
                new_status="exhausted" if new_remaining == 0 else "active",
            )
        )
        remaining_to_consume -= take

    return CreditReceipt(owner_id=owner_id, allocations=allocations), updates


def plan_refund(receipt: CreditReceipt, lots_by_id: dict[str, CreditLot]) -> RefundPlan:
    """영수증을 되돌리는 계획을 세운다.

    - 로트 잔량은 credits_total 을 넘지 않는다.
    - 이미 expired 로 정리된 로트에는 크레딧을 돌려놓되 expired 상태를 유지하고 집계 잔액에는 더하지 않는다.
    - 아직 정리되지 않은 로트는 active 로 되돌리며, 만료 시각이 지났다면 다음 만료 정리에서 함께 차감된다.
    """

    updates: list[LotUpdate] = []
    restored = 0
    balance_delta = 0
    pending: dict[str, int] = {}
    for allocation in receipt.allocations:
        pending[allocation.lot_id] = pending.get(allocation.lot_id, 0) + allocation.amount

    for lot_id, amount in pending.items():
        lot = lots_by_id.get(lot_id)
        if lot is None or lot.owner_id != receipt.owner_id:
            continue
        room = lot.credits_total - lot.credits_remaining
        give_back = max(0, min(amount, room))
        if give_back == 0:
            continue
        new_remaining = lot.credits_remaining + give_back
        expired = lot.status == "expired"
        updates.append(
            LotUpdate(
                lot_id=lot_id,
                expected_remaining=lot.credits_remaining,
                new_remaining=new_remaining,
                new_status="expired" if expired else "active",
            )
        )
        restored += give_back
        if not expired:
            balance_delta += give_back

    return RefundPlan(updates=updates, restored=restored, balance_delta=balance_delta)
