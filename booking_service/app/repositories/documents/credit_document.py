"""크레딧 원장 MongoDB 도큐먼트.

- credit_lots: 구매 단위 로트 (만료된 로트도 이력 보존을 위해 삭제하지 않는다)
- credit_accounts: 계정별 집계 잔액 카운터
- credit_transactions: 원장 변경 로그
"""

from __future__ import annotations

from common.mongo.types import BaseDocument, MongoDateTime, from_object_id

from ...models.credit import CreditAccount, CreditLot, CreditTransaction


class CreditLotDocument(BaseDocument):
    """MongoDB credit_lots 컬렉션 도큐먼트 모델."""

    owner_id: str
    package_type: str
    credits_total: int
    credits_remaining: int
    expires_at: MongoDateTime
    status: str = "active"

    @classmethod
    def from_domain(cls, lot: CreditLot) -> "CreditLotDocument":
        data = lot.model_dump(exclude={"id"})
        if lot.id:
            data["_id"] = lot.id
        return cls.model_validate(data)

    def to_domain(self) -> CreditLot:
        return CreditLot(
            id=from_object_id(self.id),
            owner_id=self.owner_id,
            package_type=self.package_type,
            credits_total=self.credits_total,
            credits_remaining=self.credits_remaining,
            expires_at=self.expires_at,
            status=self.status,  # type: ignore[arg-type]
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class CreditAccountDocument(BaseDocument):
    """MongoDB credit_accounts 컬렉션 도큐먼트 모델 (owner_id 유니크)."""

    owner_id: str
    balance: int = 0

    def to_domain(self) -> CreditAccount:
        return CreditAccount(
            owner_id=self.owner_id,
            balance=self.balance,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class CreditTransactionDocument(BaseDocument):
    """MongoDB credit_transactions 컬렉션 도큐먼트 모델."""

    owner_id: str
    type: str
    amount: int
    reason: str
    lot_ids: list[str] = []
    balance_after: int | None = None
    metadata: dict | None = None

    @classmethod
    def from_domain(cls, tx: CreditTransaction) -> "CreditTransactionDocument":
        data = tx.model_dump(exclude={"id"})
        return cls.model_validate(data)

    def to_domain(self) -> CreditTransaction:
        return CreditTransaction(
            id=from_object_id(self.id),
            owner_id=self.owner_id,
            type=self.type,  # type: ignore[arg-type]
            amount=self.amount,
            reason=self.reason,
            lot_ids=list(self.lot_ids),
            balance_after=self.balance_after,
            metadata=self.metadata,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
