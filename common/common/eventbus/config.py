from __future__ import annotations

import os


def get_brokers() -> str | None:
    """Kafka 브로커 주소를 반환한다.

    - KAFKA_BOOTSTRAP_SERVERS 가 비어 있으면 None 을 반환하고, 이벤트 발행은 비활성화된다.
    """

    value = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "").strip()
    return value or None


def get_message_max_bytes() -> int | None:
    # 비어 있거나 0 이하이면 producer 기본값을 쓴다.
    raw = os.getenv("KAFKA_MESSAGE_MAX_BYTES", "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"KAFKA_MESSAGE_MAX_BYTES must be an integer, got {raw!r}") from exc
    return value if value > 0 else None
