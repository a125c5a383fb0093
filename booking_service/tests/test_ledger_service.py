from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from booking_service.app.exceptions import InsufficientCreditsError, ValidationError
from booking_service.app.services.ledger_service import LedgerService, add_months
from booking_service.tests.fakes import (
    NOW,
    FakeCreditRepository,
    FakeCreditTransactionRepository,
    build_config,
)


@dataclass
class LedgerFixture:
    service: LedgerService
    credit_repo: FakeCreditRepository


def _build_fixture() -> LedgerFixture:
    credit_repo = FakeCreditRepository()
    service = LedgerService(
        credit_repo,
        FakeCreditTransactionRepository(credit_repo),
        build_config().ledger,
    )
    return LedgerFixture(service=service, credit_repo=credit_repo)


def test_deduct_returns_receipt_and_keeps_counter_in_sync() -> None:
    fx = _build_fixture()
    fx.credit_repo.add_lot("owner-1", 1, NOW + timedelta(days=10))
    fx.credit_repo.add_lot("owner-1", 3, NOW + timedelta(days=40))

    receipt, balance = fx.service.deduct("owner-1", 2, "group session booking", NOW)

    assert receipt.total == 2
    assert len(receipt.allocations) == 2
    assert balance == 2
    assert fx.credit_repo.active_sum("owner-1") == balance


def test_deduct_insufficient_changes_nothing() -> None:
    fx = _build_fixture()
    fx.credit_repo.add_lot("owner-1", 1, NOW + timedelta(days=10))

    with pytest.raises(InsufficientCreditsError):
        fx.service.deduct("owner-1", 2, "group session booking", NOW)

    assert fx.service.get_available_balance("owner-1") == 1
    assert fx.credit_repo.transactions == []


def test_deduct_rejects_non_positive_amount() -> None:
    fx = _build_fixture()

    with pytest.raises(ValidationError):
        fx.service.deduct("owner-1", 0, "noop", NOW)


def test_refund_reverses_a_receipt_exactly() -> None:
    fx = _build_fixture()
    fx.credit_repo.add_lot("owner-1", 1, NOW + timedelta(days=10))
    fx.credit_repo.add_lot("owner-1", 3, NOW + timedelta(days=40))
    receipt, _ = fx.service.deduct("owner-1", 2, "booking", NOW)

    restored, balance = fx.service.refund(receipt, "booking failed", NOW)

    assert restored == 2
    assert balance == 4
    assert sorted(lot.credits_remaining for lot in fx.credit_repo.lots.values()) == [1, 3]
    assert all(lot.status == "active" for lot in fx.credit_repo.lots.values())


def test_get_balance_expires_stale_lots_and_summarises() -> None:
    fx = _build_fixture()
    fx.credit_repo.add_lot("owner-1", 5, NOW - timedelta(hours=1))
    fx.credit_repo.add_lot("owner-1", 2, NOW + timedelta(days=7))
    fx.credit_repo.add_lot("owner-1", 4, NOW + timedelta(days=200))

    balance = fx.service.get_balance("owner-1", NOW)

    assert balance.total_credits == 6
    assert [lot.credits_remaining for lot in balance.lots] == [2, 4]
    assert balance.expiring_soon == 2
    assert balance.next_expiry_date == NOW + timedelta(days=7)


def test_get_balance_for_unknown_owner_is_zero() -> None:
    fx = _build_fixture()

    balance = fx.service.get_balance("nobody", NOW)

    assert balance.total_credits == 0
    assert balance.lots == []
    assert balance.next_expiry_date is None


def test_grant_lot_uses_package_defaults() -> None:
    fx = _build_fixture()

    lot, balance = fx.service.grant_lot("owner-1", "10_pack", now=NOW)

    assert lot.credits_total == 10
    assert lot.expires_at == add_months(NOW, 12)
    assert balance == 10


def test_grant_lot_rejects_unknown_package_without_credits() -> None:
    fx = _build_fixture()

    with pytest.raises(ValidationError):
        fx.service.grant_lot("owner-1", "mystery", now=NOW)


def test_grant_lot_rejects_past_expiry() -> None:
    fx = _build_fixture()

    with pytest.raises(ValidationError):
        fx.service.grant_lot(
            "owner-1", "admin", credits=2, expires_at=NOW - timedelta(days=1), now=NOW
        )


def test_expire_lots_returns_forfeited_lots() -> None:
    fx = _build_fixture()
    fx.credit_repo.add_lot("owner-1", 3, NOW - timedelta(days=1))
    fx.credit_repo.add_lot("owner-2", 1, NOW + timedelta(days=1))

    expired = fx.service.expire_lots(NOW)

    assert [lot.owner_id for lot in expired] == ["owner-1"]
    assert fx.service.get_available_balance("owner-1") == 0
    assert fx.service.get_available_balance("owner-2") == 1


def test_reconcile_corrects_drift() -> None:
    fx = _build_fixture()
    fx.credit_repo.add_lot("owner-1", 3, NOW + timedelta(days=30))
    fx.credit_repo.balances["owner-1"] = 7

    previous, actual = fx.service.reconcile("owner-1", NOW)

    assert (previous, actual) == (7, 3)
    assert fx.service.get_available_balance("owner-1") == 3


def test_history_is_newest_first() -> None:
    fx = _build_fixture()
    fx.service.grant_lot("owner-1", "single", now=NOW)
    fx.service.deduct("owner-1", 1, "booking", NOW + timedelta(minutes=1))

    items, total = fx.service.get_history("owner-1")

    assert total == 2
    assert [tx.type for tx in items] == ["consume", "grant"]


def test_add_months_clamps_to_month_end() -> None:
    value = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)

    assert add_months(value, 1) == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert add_months(value, 12) == datetime(2027, 1, 31, 12, 0, tzinfo=timezone.utc)
