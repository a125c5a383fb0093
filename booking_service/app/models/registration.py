from __future__ import annotations

import re

from pydantic import BaseModel


class Registration(BaseModel):
    """계정이 소유한 선수(자녀) 등록 정보. 등록 시스템이 관리하며 여기서는 읽기만 한다."""

    id: str
    owner_id: str
    player_name: str = "Unknown"
    player_category: str = "Unknown"  # "M7" ... "M18", "M13 Elite", "Junior"
    program_type: str | None = None  # "group" | "private" | ...
    payment_status: str | None = None


_CATEGORY_PATTERN = re.compile(r"M(\d+)")

JUNIOR_CATEGORY_NUMBER = 99


def category_number(category: str | None) -> int | None:
    """'M13 Elite' -> 13, 'Junior' -> 99, 알 수 없으면 None."""
    if not category:
        return None
    if category.strip() == "Junior":
        return JUNIOR_CATEGORY_NUMBER
    match = _CATEGORY_PATTERN.search(category)
    if match is None:
        return None
    return int(match.group(1))
