from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class Event:
    """발행 단위 이벤트. payload 는 JSON 으로 직렬화 가능한 dict 이다."""

    id: str
    payload: Any


@dataclass(frozen=True, slots=True)
class Topic:
    base: str
