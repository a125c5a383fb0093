from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.eventbus.config import get_brokers
from common.eventbus.kafka import KafkaEventBus
from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import MongoStorage

from .api.errors import register_exception_handlers
from .api.health import router as health_router
from .api.v1 import api_router
from .config import load_config, load_settings
from .repositories.indexes import ensure_indexes
from .scheduler.slot_scheduler import start_slot_scheduler, stop_slot_scheduler
from .services.event_publisher import EventPublisher


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    settings = load_settings()
    config = load_config()

    storage = MongoStorage(
        uri=settings.mongo_uri,
        db_name=settings.mongo_db_name,
        ensure_indexes=ensure_indexes,
    ).connect()

    brokers = get_brokers()
    bus = KafkaEventBus(brokers) if brokers else None
    if bus is None:
        logger.warning("KAFKA_BOOTSTRAP_SERVERS is not set; domain events are disabled")
    events = EventPublisher(bus)

    app.state.settings = settings
    app.state.config = config
    app.state.storage = storage
    app.state.events = events

    if settings.scheduler_enabled:
        start_slot_scheduler(storage, config, events)

    try:
        yield
    finally:
        stop_slot_scheduler()
        if bus is not None:
            bus.close()
        storage.close()


def create_app() -> FastAPI:
    setup_logger()
    app = FastAPI(
        title="Booking Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "booking_service.app.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
