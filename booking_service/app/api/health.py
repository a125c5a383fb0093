from __future__ import annotations

from fastapi import APIRouter, Request


router = APIRouter()


@router.get("/health", summary="헬스 체크")
def health(request: Request) -> dict[str, str]:
    """프로세스 생존 확인. 저장소 핸들이 아직 없으면 starting 으로 응답한다."""
    storage = getattr(request.app.state, "storage", None)
    return {
        "status": "ok" if storage is not None else "starting",
        "service": "booking-service",
    }
