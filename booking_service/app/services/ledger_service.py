"""크레딧 원장 서비스.

차감(FIFO), 영수증 기반 환불, 로트 지급, 잔액 조회, 만료 정리, 잔액 재계산, 이력 조회를 처리한다.
원자성은 레포지토리(트랜잭션)가 보장하고, 서비스는 입력 검증과 정책(유효기간, 경고 기간)을 담당한다.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from pymongo.database import Database

from common.mongo.client import get_database
from common.mongo.types import ensure_utc_datetime

from ..config import AppConfig, LedgerConfig, get_app_config
from ..exceptions import ValidationError
from ..models.credit import CreditBalance, CreditLot, CreditReceipt, CreditTransaction
from ..repositories.credit_repository import CreditRepository, CreditTransactionRepository
from ..repositories.interfaces import (
    CreditRepositoryInterface,
    CreditTransactionRepositoryInterface,
)


logger = logging.getLogger(__name__)


def add_months(value: datetime, months: int) -> datetime:
    """월 단위 더하기. 대상 월에 같은 날짜가 없으면 그 달의 마지막 날로 맞춘다."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class LedgerService:
    """크레딧 원장 비즈니스 로직."""

    def __init__(
        self,
        credit_repo: CreditRepositoryInterface,
        transaction_repo: CreditTransactionRepositoryInterface,
        config: LedgerConfig,
    ) -> None:
        self._credit_repo = credit_repo
        self._transaction_repo = transaction_repo
        self._config = config

    @property
    def low_credit_threshold(self) -> int:
        return self._config.low_credit_threshold

    def deduct(
        self, owner_id: str, amount: int, reason: str, now: datetime | None = None
    ) -> tuple[CreditReceipt, int]:
        """만료 임박 순으로 amount 만큼 차감하고 (영수증, 차감 후 잔액)을 반환한다.

        잔액이 부족하면 InsufficientCreditsError 이며 어떤 로트도 바뀌지 않는다.
        """

        if amount <= 0:
            raise ValidationError("amount must be a positive integer")
        now = now or datetime.now(timezone.utc)
        receipt, balance = self._credit_repo.deduct(owner_id, amount, reason, now)
        logger.info(
            "credits deducted",
            extra={"owner_id": owner_id, "receipt": receipt.model_dump()},
        )
        return receipt, balance

    def refund(
        self, receipt: CreditReceipt, reason: str, now: datetime | None = None
    ) -> tuple[int, int]:
        """영수증을 정확히 되돌리고 (되돌린 양, 환불 후 잔액)을 반환한다."""

        now = now or datetime.now(timezone.utc)
        restored, balance = self._credit_repo.refund(receipt, reason, now)
        if restored < receipt.total:
            logger.warning(
                "refund restored fewer credits than the receipt",
                extra={"owner_id": receipt.owner_id, "receipt": receipt.model_dump()},
            )
        else:
            logger.info(
                "credits refunded",
                extra={"owner_id": receipt.owner_id, "receipt": receipt.model_dump()},
            )
        return restored, balance

    def grant_lot(
        self,
        owner_id: str,
        package_type: str,
        *,
        credits: int | None = None,
        expires_at: datetime | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> tuple[CreditLot, int]:
        """구매 확정된 패키지를 로트로 지급한다. 계정은 필요하면 이때 만들어진다."""

        now = now or datetime.now(timezone.utc)
        package = self._config.packages.get(package_type)
        if credits is None:
            if package is None:
                raise ValidationError(f"unknown package_type: {package_type}")
            credits = package.credits
        if credits <= 0:
            raise ValidationError("credits must be a positive integer")
        if expires_at is None:
            validity_months = package.validity_months if package is not None else 12
            expires_at = add_months(now, validity_months)
        expires_at = ensure_utc_datetime(expires_at)
        if expires_at <= now:
            raise ValidationError("expires_at must be in the future")

        lot, balance = self._credit_repo.grant_lot(
            owner_id,
            package_type,
            credits,
            expires_at,
            reason or f"{package_type} purchase",
            now,
        )
        logger.info("credit lot granted", extra={"owner_id": owner_id})
        return lot, balance

    def get_balance(self, owner_id: str, now: datetime | None = None) -> CreditBalance:
        """집계 잔액과 사용 가능한 로트, 만료 임박 요약을 반환한다."""

        now = now or datetime.now(timezone.utc)
        # 만료 시각이 지난 로트를 먼저 정리해야 집계 잔액이 사용 가능한 로트 합과 맞는다.
        self._credit_repo.expire_lots(now, owner_id=owner_id)

        lots = self._credit_repo.list_lots(owner_id, usable_at=now)
        warning_cutoff = now + timedelta(days=self._config.expiry_warning_days)
        expiring_soon = sum(
            lot.credits_remaining for lot in lots if lot.expires_at <= warning_cutoff
        )
        next_expiry = min((lot.expires_at for lot in lots), default=None)
        return CreditBalance(
            owner_id=owner_id,
            total_credits=self._credit_repo.get_balance(owner_id),
            lots=lots,
            expiring_soon=expiring_soon,
            next_expiry_date=next_expiry,
        )

    def get_available_balance(self, owner_id: str) -> int:
        return self._credit_repo.get_balance(owner_id)

    def expire_lots(self, now: datetime | None = None) -> list[CreditLot]:
        """만료 시각이 지난 로트를 정리한다 (스케줄러에서 주기적으로 호출)."""

        now = now or datetime.now(timezone.utc)
        expired = self._credit_repo.expire_lots(now)
        if expired:
            logger.info(
                "expired %d credit lot(s), %d credit(s) forfeited",
                len(expired),
                sum(lot.credits_remaining for lot in expired),
            )
        return expired

    def reconcile(self, owner_id: str, now: datetime | None = None) -> tuple[int, int]:
        """집계 잔액을 로트 합으로 다시 계산한다. (이전 값, 재계산 값)."""

        now = now or datetime.now(timezone.utc)
        previous, actual = self._credit_repo.reconcile(owner_id, now)
        if previous != actual:
            logger.warning(
                "credit balance drift corrected: %d -> %d",
                previous,
                actual,
                extra={"owner_id": owner_id},
            )
        return previous, actual

    def get_history(
        self, owner_id: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[CreditTransaction], int]:
        """크레딧 원장 이력 조회."""
        return self._transaction_repo.list_by_owner(owner_id, page, page_size)


def get_credit_repository(
    db: Database = Depends(get_database),
) -> CreditRepositoryInterface:
    """FastAPI DI용 CreditRepository 팩토리."""

    return CreditRepository(db)


def get_credit_transaction_repository(
    db: Database = Depends(get_database),
) -> CreditTransactionRepositoryInterface:
    return CreditTransactionRepository(db)


def get_ledger_service(
    credit_repo: CreditRepositoryInterface = Depends(get_credit_repository),
    transaction_repo: CreditTransactionRepositoryInterface = Depends(
        get_credit_transaction_repository
    ),
    config: AppConfig = Depends(get_app_config),
) -> LedgerService:
    """FastAPI DI용 LedgerService 팩토리."""

    return LedgerService(credit_repo, transaction_repo, config.ledger)
