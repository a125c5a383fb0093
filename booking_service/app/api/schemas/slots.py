from __future__ import annotations

from pydantic import BaseModel, Field

from common.types.datetime import IsoDate


class GenerateSlotsRequest(BaseModel):
    weeks_ahead: int | None = Field(default=None, ge=1, le=26)


class GenerateSlotsResponse(BaseModel):
    success: bool = True
    slots_created: int
    dates_created: list[IsoDate]
    dates_skipped: list[IsoDate]
    message: str
