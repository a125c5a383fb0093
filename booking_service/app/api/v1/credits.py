"""크레딧 원장 API 라우터."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from common.schemas.pagination import PaginatedResponse, normalize_page

from ..schemas.credits import (
    CreditBalanceResponse,
    CreditLotItem,
    CreditTransactionItem,
    GrantLotRequest,
    GrantLotResponse,
    ReconcileResponse,
)
from ...services.ledger_service import LedgerService, get_ledger_service


router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/{owner_id}", summary="크레딧 잔액 조회")
def get_credit_balance(
    owner_id: str,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
) -> CreditBalanceResponse:
    """집계 잔액 + 로트별 잔량 + 만료 임박 요약."""
    balance = ledger.get_balance(owner_id)
    return CreditBalanceResponse(
        owner_id=owner_id,
        total_credits=balance.total_credits,
        lots=[CreditLotItem.from_domain(lot) for lot in balance.lots],
        expiring_soon=balance.expiring_soon,
        next_expiry_date=balance.next_expiry_date,
    )


@router.get("/{owner_id}/history", summary="크레딧 원장 이력 조회")
def get_credit_history(
    owner_id: str,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
    page: int = Query(1),
    page_size: int = Query(20),
) -> PaginatedResponse[CreditTransactionItem]:
    page, page_size = normalize_page(page, page_size)
    items, total = ledger.get_history(owner_id, page, page_size)
    return PaginatedResponse(
        items=[
            CreditTransactionItem(
                id=tx.id,
                type=tx.type,
                amount=tx.amount,
                reason=tx.reason,
                lot_ids=tx.lot_ids,
                balance_after=tx.balance_after,
                created_at=tx.created_at,
            )
            for tx in items
        ],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/{owner_id}/lots",
    status_code=status.HTTP_201_CREATED,
    summary="구매 확정된 크레딧 패키지 지급 (결제 연동 전용)",
)
def grant_credit_lot(
    owner_id: str,
    body: GrantLotRequest,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
) -> GrantLotResponse:
    lot, balance = ledger.grant_lot(
        owner_id,
        body.package_type,
        credits=body.credits,
        expires_at=body.expires_at,
        reason=body.reason,
    )
    return GrantLotResponse(lot=CreditLotItem.from_domain(lot), total_credits=balance)


@router.post("/{owner_id}/reconcile", summary="집계 잔액 재계산 (운영자)")
def reconcile_credit_balance(
    owner_id: str,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
) -> ReconcileResponse:
    previous, actual = ledger.reconcile(owner_id)
    return ReconcileResponse(
        owner_id=owner_id,
        previous_balance=previous,
        total_credits=actual,
        drift=actual - previous,
    )
