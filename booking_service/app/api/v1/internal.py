"""시간 트리거(cron) 전용 내부 API."""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status

from ..schemas.slots import GenerateSlotsRequest, GenerateSlotsResponse
from ...config import Settings, get_settings
from ...services.slot_generator import SlotGenerator, get_slot_generator


router = APIRouter(prefix="/internal", tags=["internal"])


def verify_cron_secret(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: str | None = Header(None),
) -> None:
    """CRON_SECRET 이 설정된 경우 Authorization: Bearer <secret> 을 요구한다."""

    if settings.cron_secret is None:
        return
    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post(
    "/generate-slots",
    summary="반복 슬롯 생성",
    dependencies=[Depends(verify_cron_secret)],
)
def generate_slots(
    generator: Annotated[SlotGenerator, Depends(get_slot_generator)],
    body: GenerateSlotsRequest | None = Body(None),
) -> GenerateSlotsResponse:
    weeks_ahead = body.weeks_ahead if body is not None else None
    result = generator.generate(weeks_ahead)
    return GenerateSlotsResponse(
        slots_created=result.slots_created,
        dates_created=result.dates_created,
        dates_skipped=result.dates_skipped,
        message=f"Generated {result.slots_created} new slot(s).",
    )
