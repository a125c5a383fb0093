"""반복 슬롯 생성기.

앞으로 weeks_ahead 주 동안의 대상 요일마다 템플릿 슬롯을 만든다.
이미 슬롯이 있는 날짜는 건드리지 않으며 (정원/예약 수 초기화 없음), 같은 날짜를 동시에 생성해도
(date, time_slot, session_type) 유니크 키 기준 insert-if-absent 이므로 중복이 생기지 않는다.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone, tzinfo

from fastapi import Depends

from ..config import AppConfig, SlotGeneratorConfig, get_app_config
from ..exceptions import ValidationError
from ..models.slot import Slot, SlotGenerationResult
from ..repositories.interfaces import SlotRepositoryInterface
from .capacity_gate import get_slot_repository


logger = logging.getLogger(__name__)

MAX_WEEKS_AHEAD = 26


def upcoming_weekdays(today: date, weekday: int, count: int) -> list[date]:
    """today 이후(today 제외) 대상 요일 count 개."""
    days_until = (weekday - today.weekday()) % 7 or 7
    first = today + timedelta(days=days_until)
    return [first + timedelta(weeks=i) for i in range(count)]


class SlotGenerator:
    def __init__(
        self,
        slot_repo: SlotRepositoryInterface,
        config: SlotGeneratorConfig,
        tz: tzinfo,
    ) -> None:
        self._slot_repo = slot_repo
        self._config = config
        self._tz = tz

    def generate(
        self,
        weeks_ahead: int | None = None,
        today: date | None = None,
        now: datetime | None = None,
    ) -> SlotGenerationResult:
        weeks = weeks_ahead if weeks_ahead is not None else self._config.weeks_ahead
        if weeks < 1 or weeks > MAX_WEEKS_AHEAD:
            raise ValidationError(f"weeks_ahead must be between 1 and {MAX_WEEKS_AHEAD}")
        now = now or datetime.now(timezone.utc)
        if today is None:
            today = now.astimezone(self._tz).date()

        created_count = 0
        dates_created: list[date] = []
        dates_skipped: list[date] = []
        for target in upcoming_weekdays(today, self._config.weekday, weeks):
            if self._slot_repo.exists_for_date(target, self._config.session_type):
                dates_skipped.append(target)
                continue

            created_for_date = 0
            for template in self._config.templates:
                slot = Slot(
                    date=target,
                    time_slot=template.time_slot,
                    session_type=self._config.session_type,
                    start_time=f"{template.start_time:%H:%M}",
                    end_time=f"{template.end_time:%H:%M}",
                    min_category=template.min_category,
                    max_category=template.max_category,
                    max_capacity=template.max_capacity,
                    current_bookings=0,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                )
                if self._slot_repo.insert_if_absent(slot):
                    created_for_date += 1

            if created_for_date:
                created_count += created_for_date
                dates_created.append(target)
            else:
                dates_skipped.append(target)

        logger.info(
            "slot generation finished: %d slot(s) created, %d date(s) skipped",
            created_count,
            len(dates_skipped),
        )
        return SlotGenerationResult(
            slots_created=created_count,
            dates_created=dates_created,
            dates_skipped=dates_skipped,
        )


def get_slot_generator(
    slot_repo: SlotRepositoryInterface = Depends(get_slot_repository),
    config: AppConfig = Depends(get_app_config),
) -> SlotGenerator:
    return SlotGenerator(slot_repo, config.slots, config.tz)
