from __future__ import annotations

import logging
import threading

from common.mongo.client import MongoStorage

from ..config import AppConfig
from ..repositories.credit_repository import CreditRepository, CreditTransactionRepository
from ..repositories.slot_repository import SlotRepository
from ..services.event_publisher import EventPublisher
from ..services.ledger_service import LedgerService
from ..services.slot_generator import SlotGenerator


logger = logging.getLogger(__name__)


_SLOT_SCHEDULER_THREAD: threading.Thread | None = None
_SLOT_SCHEDULER_STOP_EVENT: threading.Event | None = None


def run_maintenance(
    generator: SlotGenerator, ledger: LedgerService, events: EventPublisher, label: str
) -> None:
    """슬롯 생성과 크레딧 만료 정리를 한 번 실행한다. 한쪽이 실패해도 다른 쪽은 실행한다."""

    logger.info("slot maintenance starting (%s)", label)
    try:
        result = generator.generate()
        logger.info(
            "slot generation completed (%s): %d slot(s) created",
            label,
            result.slots_created,
        )
    except Exception:  # noqa: BLE001
        logger.exception("slot generation failed (%s)", label)

    try:
        for lot in ledger.expire_lots():
            events.credit_expired(lot)
    except Exception:  # noqa: BLE001
        logger.exception("credit expiry sweep failed (%s)", label)


def _run_scheduler_loop(
    stop_event: threading.Event,
    storage: MongoStorage,
    config: AppConfig,
    events: EventPublisher,
) -> None:
    interval = config.slots.interval_seconds
    logger.info("slot scheduler thread started (interval=%.0f seconds)", interval)

    db = storage.database
    generator = SlotGenerator(SlotRepository(db), config.slots, config.tz)
    ledger = LedgerService(CreditRepository(db), CreditTransactionRepository(db), config.ledger)

    try:
        # 최초 실행
        run_maintenance(generator, ledger, events, "initial run")

        # 주기적 실행
        while not stop_event.wait(interval):
            run_maintenance(generator, ledger, events, "scheduled run")
    finally:
        logger.info("slot scheduler thread stopped")


def start_slot_scheduler(storage: MongoStorage, config: AppConfig, events: EventPublisher) -> None:
    """슬롯 생성/크레딧 만료 스케줄러 스레드를 시작한다.

    FastAPI lifespan 에서 호출된다.
    """

    global _SLOT_SCHEDULER_THREAD, _SLOT_SCHEDULER_STOP_EVENT

    if _SLOT_SCHEDULER_THREAD and _SLOT_SCHEDULER_THREAD.is_alive():
        return

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_run_scheduler_loop,
        args=(stop_event, storage, config, events),
        name="slot-scheduler",
        daemon=True,
    )

    _SLOT_SCHEDULER_STOP_EVENT = stop_event
    _SLOT_SCHEDULER_THREAD = thread

    thread.start()
    logger.info("slot scheduler thread launched")


def stop_slot_scheduler() -> None:
    """스케줄러 스레드를 정지한다. FastAPI lifespan 종료 시 호출된다."""

    global _SLOT_SCHEDULER_THREAD, _SLOT_SCHEDULER_STOP_EVENT

    if _SLOT_SCHEDULER_THREAD is None or _SLOT_SCHEDULER_STOP_EVENT is None:
        return

    _SLOT_SCHEDULER_STOP_EVENT.set()
    _SLOT_SCHEDULER_THREAD.join(timeout=10.0)

    _SLOT_SCHEDULER_THREAD = None
    _SLOT_SCHEDULER_STOP_EVENT = None

    logger.info("slot scheduler thread stopped by shutdown")
