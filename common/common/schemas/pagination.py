"""공통 페이지네이션 스키마."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, computed_field


T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """페이지네이션 응답 공통 스키마."""

    items: list[T]
    total: int
    page: int
    page_size: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total


def normalize_page(page: int, page_size: int, *, max_page_size: int = 100) -> tuple[int, int]:
    """잘못된 page/page_size 값을 기본값으로 보정한다."""
    if page <= 0:
        page = 1
    if page_size <= 0 or page_size > max_page_size:
        page_size = 20
    return page, page_size
