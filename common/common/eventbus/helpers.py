from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from .core import Event


def new_json_event(
    payload: Mapping[str, Any],
    *,
    event_id: str | None = None,
) -> Event:
    """payload 를 JSON 이벤트로 래핑한다.

    - id가 비어 있으면 고해상도 타임스탬프 기반 문자열을 생성한다.
    """
    if not event_id:
        event_id = str(time.time_ns())

    return Event(id=event_id, payload=dict(payload))


def new_event_envelope(event_type: str, source: str) -> dict[str, str]:
    """도메인 이벤트 공통 헤더(id/type/timestamp/source/version)를 만든다."""
    return {
        "id": str(uuid.uuid4()),
        "type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": source,
        "version": "1.0",
    }
