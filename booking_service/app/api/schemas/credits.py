from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime

from ...models.credit import CreditLot


class CreditLotItem(BaseModel):
    """개별 크레딧 로트 정보."""

    id: str | None
    package_type: str
    credits_total: int
    credits_remaining: int
    expires_at: UtcDateTime
    status: str
    created_at: UtcDateTime

    @classmethod
    def from_domain(cls, lot: CreditLot) -> "CreditLotItem":
        return cls(
            id=lot.id,
            package_type=lot.package_type,
            credits_total=lot.credits_total,
            credits_remaining=lot.credits_remaining,
            expires_at=lot.expires_at,
            status=lot.status,
            created_at=lot.created_at,
        )


class CreditBalanceResponse(BaseModel):
    """계정 크레딧 잔액 조회 결과."""

    owner_id: str
    total_credits: int
    lots: list[CreditLotItem]
    expiring_soon: int
    next_expiry_date: UtcDateTime | None


class GrantLotRequest(BaseModel):
    """구매 확정된 크레딧 패키지 지급 요청 (결제 연동 전용)."""

    package_type: str = Field(min_length=1)
    credits: int | None = Field(default=None, gt=0)
    expires_at: datetime | None = None
    reason: str | None = None


class GrantLotResponse(BaseModel):
    lot: CreditLotItem
    total_credits: int


class CreditTransactionItem(BaseModel):
    """크레딧 원장 이력 항목."""

    id: str | None
    type: str
    amount: int
    reason: str
    lot_ids: list[str]
    balance_after: int | None
    created_at: UtcDateTime


class ReconcileResponse(BaseModel):
    owner_id: str
    previous_balance: int
    total_credits: int
    drift: int
