"""크레딧 원장 레포지토리 구현체.

로트 잔량, 계정 집계 잔액, 트랜잭션 로그는 항상 하나의 MongoDB 트랜잭션 안에서 함께 바뀐다.
(트랜잭션을 쓰므로 MongoDB 는 replica set 으로 떠 있어야 한다.)

집계 잔액 불변식: credit_accounts.balance == status 가 active 인 로트의 credits_remaining 합.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, TypeVar

from pymongo import ASCENDING, DESCENDING, IndexModel, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.database import Database

from common.mongo.types import to_object_id

from .documents.credit_document import (
    CreditAccountDocument,
    CreditLotDocument,
    CreditTransactionDocument,
)
from .interfaces import CreditRepositoryInterface, CreditTransactionRepositoryInterface
from ..exceptions import StorageError
from ..models.credit import (
    CreditLot,
    CreditReceipt,
    CreditTransaction,
    LotUpdate,
    plan_deduction,
    plan_refund,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

FIFO_SORT = [("expires_at", ASCENDING), ("created_at", ASCENDING), ("_id", ASCENDING)]


class CreditRepository(CreditRepositoryInterface):
    """credit_lots / credit_accounts / credit_transactions 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._lots = database["credit_lots"]
        self._accounts = database["credit_accounts"]
        self._transactions = database["credit_transactions"]

    @staticmethod
    def ensure_indexes(database: Database) -> None:
        database["credit_lots"].create_indexes(
            [
                IndexModel(
                    [("owner_id", ASCENDING), ("status", ASCENDING), ("expires_at", ASCENDING)],
                    name="idx_owner_status_expires",
                ),
                IndexModel(
                    [("status", ASCENDING), ("expires_at", ASCENDING)],
                    name="idx_status_expires",
                ),
            ]
        )
        database["credit_accounts"].create_indexes(
            [IndexModel([("owner_id", ASCENDING)], unique=True, name="idx_owner_unique")]
        )
        database["credit_transactions"].create_indexes(
            [
                IndexModel(
                    [("owner_id", ASCENDING), ("created_at", DESCENDING)],
                    name="idx_owner_created",
                )
            ]
        )

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------
    def list_lots(
        self,
        owner_id: str,
        *,
        usable_at: datetime | None = None,
        session: ClientSession | None = None,
    ) -> list[CreditLot]:
        query: dict[str, Any] = {"owner_id": owner_id}
        if usable_at is not None:
            query.update(
                {
                    "status": "active",
                    "credits_remaining": {"$gt": 0},
                    "expires_at": {"$gt": usable_at},
                }
            )
        cursor = self._lots.find(query, sort=FIFO_SORT, session=session)
        return [CreditLotDocument.model_validate(raw).to_domain() for raw in cursor]

    def get_balance(self, owner_id: str) -> int:
        raw = self._accounts.find_one({"owner_id": owner_id})
        if raw is None:
            return 0
        return CreditAccountDocument.model_validate(raw).balance

    # ------------------------------------------------------------------
    # 쓰기 (트랜잭션)
    # ------------------------------------------------------------------
    def deduct(
        self, owner_id: str, amount: int, reason: str, now: datetime
    ) -> tuple[CreditReceipt, int]:
        """FIFO 차감. 잔액이 부족하면 InsufficientCreditsError 가 트랜잭션 밖으로 전파된다."""

        def _callback(session: ClientSession) -> tuple[CreditReceipt, int]:
            self._expire_stale_lots(owner_id, now, session)
            lots = self.list_lots(owner_id, usable_at=now, session=session)
            receipt, updates = plan_deduction(owner_id, lots, amount, now)
            self._apply_updates(updates, now, session)
            balance = self._inc_balance(owner_id, -amount, now, session)
            self._log(
                session,
                owner_id=owner_id,
                tx_type="consume",
                amount=-amount,
                reason=reason,
                lot_ids=[a.lot_id for a in receipt.allocations],
                balance_after=balance,
                now=now,
                metadata={"allocations": [a.model_dump() for a in receipt.allocations]},
            )
            return receipt, balance

        return self._run(_callback)

    def refund(self, receipt: CreditReceipt, reason: str, now: datetime) -> tuple[int, int]:
        if not receipt.allocations:
            return 0, self.get_balance(receipt.owner_id)

        def _callback(session: ClientSession) -> tuple[int, int]:
            ids = [to_object_id(a.lot_id) for a in receipt.allocations]
            lots = {
                lot.id: lot
                for lot in (
                    CreditLotDocument.model_validate(raw).to_domain()
                    for raw in self._lots.find({"_id": {"$in": ids}}, session=session)
                )
                if lot.id is not None
            }
            plan = plan_refund(receipt, lots)
            self._apply_updates(plan.updates, now, session)
            if plan.balance_delta:
                balance = self._inc_balance(receipt.owner_id, plan.balance_delta, now, session)
            else:
                balance = self._read_balance(receipt.owner_id, session)
            if plan.restored:
                self._log(
                    session,
                    owner_id=receipt.owner_id,
                    tx_type="refund",
                    amount=plan.restored,
                    reason=reason,
                    lot_ids=[u.lot_id for u in plan.updates],
                    balance_after=balance,
                    now=now,
                    metadata={"to_expired_lots": plan.restored - plan.balance_delta},
                )
            if plan.restored != plan.balance_delta:
                logger.warning(
                    "refunded credits landed on expired lots",
                    extra={"owner_id": receipt.owner_id, "receipt": receipt.model_dump()},
                )
            return plan.restored, balance

        return self._run(_callback)

    def grant_lot(
        self,
        owner_id: str,
        package_type: str,
        credits: int,
        expires_at: datetime,
        reason: str,
        now: datetime,
    ) -> tuple[CreditLot, int]:
        def _callback(session: ClientSession) -> tuple[CreditLot, int]:
            lot = CreditLot(
                owner_id=owner_id,
                package_type=package_type,
                credits_total=credits,
                credits_remaining=credits,
                expires_at=expires_at,
                status="active",
                created_at=now,
                updated_at=now,
            )
            payload = CreditLotDocument.from_domain(lot).to_mongo_record()
            result = self._lots.insert_one(payload, session=session)
            created = lot.model_copy(update={"id": str(result.inserted_id)})
            balance = self._inc_balance(owner_id, credits, now, session)
            self._log(
                session,
                owner_id=owner_id,
                tx_type="grant",
                amount=credits,
                reason=reason,
                lot_ids=[created.id] if created.id else [],
                balance_after=balance,
                now=now,
                metadata={"package_type": package_type, "expires_at": expires_at},
            )
            return created, balance

        return self._run(_callback)

    def expire_lots(self, now: datetime, owner_id: str | None = None) -> list[CreditLot]:
        """만료 시각이 지난 active 로트를 로트 단위 트랜잭션으로 정리한다."""

        query: dict[str, Any] = {"status": "active", "expires_at": {"$lte": now}}
        if owner_id is not None:
            query["owner_id"] = owner_id
        candidates = [
            CreditLotDocument.model_validate(raw).to_domain()
            for raw in self._lots.find(query, sort=FIFO_SORT)
        ]

        expired: list[CreditLot] = []
        for lot in candidates:
            if self._run(lambda session, lot=lot: self._expire_lot(lot, now, session)):
                expired.append(lot)
        return expired

    def reconcile(self, owner_id: str, now: datetime) -> tuple[int, int]:
        """집계 잔액을 active 로트 잔량 합으로 다시 맞춘다."""

        def _callback(session: ClientSession) -> tuple[int, int]:
            self._expire_stale_lots(owner_id, now, session)
            previous = self._read_balance(owner_id, session)
            actual = sum(
                lot.credits_remaining
                for lot in self.list_lots(owner_id, session=session)
                if lot.status == "active"
            )
            if actual != previous:
                self._accounts.update_one(
                    {"owner_id": owner_id},
                    {
                        "$set": {"balance": actual, "updated_at": now},
                        "$setOnInsert": {"owner_id": owner_id, "created_at": now},
                    },
                    upsert=True,
                    session=session,
                )
                self._log(
                    session,
                    owner_id=owner_id,
                    tx_type="reconcile",
                    amount=actual - previous,
                    reason="balance reconciled from lots",
                    lot_ids=[],
                    balance_after=actual,
                    now=now,
                )
            return previous, actual

        return self._run(_callback)

    # ------------------------------------------------------------------
    # 내부 헬퍼
    # ------------------------------------------------------------------
    def _run(self, callback: Callable[[ClientSession], T]) -> T:
        with self._db.client.start_session() as session:
            return session.with_transaction(callback)

    def _apply_updates(
        self, updates: list[LotUpdate], now: datetime, session: ClientSession
    ) -> None:
        for update in updates:
            result = self._lots.update_one(
                {
                    "_id": to_object_id(update.lot_id),
                    "credits_remaining": update.expected_remaining,
                },
                {
                    "$set": {
                        "credits_remaining": update.new_remaining,
                        "status": update.new_status,
                        "updated_at": now,
                    }
                },
                session=session,
            )
            if result.matched_count != 1:
                raise StorageError(f"credit lot {update.lot_id} changed concurrently")

    def _expire_stale_lots(self, owner_id: str, now: datetime, session: ClientSession) -> None:
        cursor = self._lots.find(
            {"owner_id": owner_id, "status": "active", "expires_at": {"$lte": now}},
            session=session,
        )
        for raw in cursor:
            self._expire_lot(CreditLotDocument.model_validate(raw).to_domain(), now, session)

    def _expire_lot(self, lot: CreditLot, now: datetime, session: ClientSession) -> bool:
        result = self._lots.update_one(
            {"_id": to_object_id(lot.id), "status": "active"},
            {"$set": {"status": "expired", "updated_at": now}},
            session=session,
        )
        if result.modified_count != 1:
            return False
        balance = self._inc_balance(lot.owner_id, -lot.credits_remaining, now, session)
        self._log(
            session,
            owner_id=lot.owner_id,
            tx_type="expire",
            amount=-lot.credits_remaining,
            reason="credit lot expired",
            lot_ids=[lot.id] if lot.id else [],
            balance_after=balance,
            now=now,
        )
        return True

    def _read_balance(self, owner_id: str, session: ClientSession) -> int:
        raw = self._accounts.find_one({"owner_id": owner_id}, session=session)
        if raw is None:
            return 0
        return CreditAccountDocument.model_validate(raw).balance

    def _inc_balance(
        self, owner_id: str, delta: int, now: datetime, session: ClientSession
    ) -> int:
        raw = self._accounts.find_one_and_update(
            {"owner_id": owner_id},
            {
                "$inc": {"balance": delta},
                "$set": {"updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return CreditAccountDocument.model_validate(raw).balance

    def _log(
        self,
        session: ClientSession,
        *,
        owner_id: str,
        tx_type: str,
        amount: int,
        reason: str,
        lot_ids: list[str],
        balance_after: int,
        now: datetime,
        metadata: dict | None = None,
    ) -> None:
        tx = CreditTransaction(
            owner_id=owner_id,
            type=tx_type,  # type: ignore[arg-type]
            amount=amount,
            reason=reason,
            lot_ids=lot_ids,
            balance_after=balance_after,
            metadata=metadata,
            created_at=now,
            updated_at=now,
        )
        payload = CreditTransactionDocument.from_domain(tx).to_mongo_record()
        self._transactions.insert_one(payload, session=session)


class CreditTransactionRepository(CreditTransactionRepositoryInterface):
    """credit_transactions 컬렉션 조회 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["credit_transactions"]

    def list_by_owner(
        self, owner_id: str, page: int, page_size: int
    ) -> tuple[list[CreditTransaction], int]:
        """계정의 크레딧 트랜잭션 이력 조회 (최신순)."""
        skip = (page - 1) * page_size

        total = self._col.count_documents({"owner_id": owner_id})
        cursor = self._col.find(
            {"owner_id": owner_id},
            sort=[("created_at", -1), ("_id", -1)],
            skip=skip,
            limit=page_size,
        )

        items: list[CreditTransaction] = []
        for raw in cursor:
            items.append(CreditTransactionDocument.model_validate(raw).to_domain())

        return items, total
