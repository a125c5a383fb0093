from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any

from confluent_kafka import Producer

from .config import get_message_max_bytes
from .core import Event

logger = logging.getLogger(__name__)


class KafkaEventBus:
    """Kafka 기반 EventBus 구현 (발행 전용).

    booking-service 는 이벤트를 소비하지 않고, 알림 서비스 등 외부 소비자를 위해 발행만 한다.
    """

    def __init__(self, brokers: str) -> None:
        conf: dict[str, Any] = {"bootstrap.servers": brokers}
        max_bytes = get_message_max_bytes()
        if max_bytes is not None:
            conf["message.max.bytes"] = max_bytes
        self._producer = Producer(conf)
        self._brokers = brokers

    def close(self) -> None:
        self._producer.flush()

    # 발행 -----------------------------------------------------------------
    def publish(self, topic: str, event: Event) -> None:
        payload = json.dumps(asdict(event), ensure_ascii=False, default=str).encode(
            "utf-8"
        )

        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic,
            value=payload,
            key=event.id.encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)
