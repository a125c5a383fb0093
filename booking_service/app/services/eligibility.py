"""일요일 연습 참가 자격 규칙."""

from __future__ import annotations

from ..models.registration import Registration, category_number
from ..models.slot import Slot


ELIGIBLE_PROGRAM_TYPE = "group"
MIN_ELIGIBLE_CATEGORY = 7
MAX_ELIGIBLE_CATEGORY = 15
ACTIVE_PAYMENT_STATUSES = frozenset({"succeeded", "verified", "paid"})


def ineligibility_reason(registration: Registration) -> str | None:
    """참가 자격이 없으면 사유를, 있으면 None 을 반환한다."""

    if registration.program_type != ELIGIBLE_PROGRAM_TYPE:
        return "Only Group Training players can book Sunday practice"
    number = category_number(registration.player_category)
    if number is None or not MIN_ELIGIBLE_CATEGORY <= number <= MAX_ELIGIBLE_CATEGORY:
        return "Only M7-M15 players can book Sunday practice"
    if registration.payment_status not in ACTIVE_PAYMENT_STATUSES:
        return "Active subscription required"
    return None


def fits_slot(registration: Registration, slot: Slot) -> bool:
    """선수 카테고리가 슬롯의 카테고리 범위에 들어가는지. 범위가 없는 슬롯은 모두 허용한다."""

    number = category_number(registration.player_category)
    if number is None:
        return False
    low = category_number(slot.min_category)
    high = category_number(slot.max_category)
    if low is not None and number < low:
        return False
    if high is not None and number > high:
        return False
    return True
