from __future__ import annotations

import re
from datetime import date, datetime, time

from pydantic import BaseModel


class SlotKey(BaseModel):
    """Gate 가 좌석을 예약/반환할 때 사용하는 슬롯 식별자."""

    date: date
    time_slot: str
    session_type: str

    def __str__(self) -> str:
        return f"{self.date.isoformat()}/{self.time_slot}/{self.session_type}"


class Slot(BaseModel):
    """정원이 있는 예약 가능 단위 (날짜 + 시간대 + 세션 타입)."""

    id: str | None = None
    date: date
    time_slot: str  # "07:30-08:30" 또는 그룹 세션의 "5:45 PM"
    session_type: str
    start_time: str | None = None  # "HH:MM" (반복 생성 슬롯만)
    end_time: str | None = None
    min_category: str | None = None
    max_category: str | None = None
    max_capacity: int
    current_bookings: int = 0
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    @property
    def available_spots(self) -> int:
        return max(0, self.max_capacity - self.current_bookings)

    @property
    def key(self) -> SlotKey:
        return SlotKey(date=self.date, time_slot=self.time_slot, session_type=self.session_type)


class SlotGenerationResult(BaseModel):
    slots_created: int
    dates_created: list[date]
    dates_skipped: list[date]


_TIME_12H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
_TIME_24H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_slot_start(time_slot: str) -> time | None:
    """시간대 문자열에서 시작 시각을 읽는다.

    "07:30-08:30", "5:45 PM", "17:45" 형식을 지원하고, 읽을 수 없으면 None.
    """

    head = time_slot.split("-", 1)[0]
    match = _TIME_12H.match(head)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12 or minute > 59:
            return None
        hour = hour % 12 + (12 if meridiem == "PM" else 0)
        return time(hour, minute)
    match = _TIME_24H.match(head)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return None
        return time(hour, minute)
    return None
