import json
import logging
import time
import uuid
from urllib.parse import parse_qs

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from common.logger import request_id_var, span_id_var


REQUEST_ID_HEADER = "X-Request-Id"
SPAN_ID_HEADER = "X-Span-Id"

# 헬스 체크는 로그에서 제외
IGNORED_LOG_PATHS: set[str] = {"/health"}

# 요청 로그에 남기는 예약 식별 필드 (자유 입력인 reason 등은 남기지 않는다)
CONTEXT_FIELDS: tuple[str, ...] = (
    "owner_id",
    "registration_id",
    "booking_id",
    "session_type",
    "session_date",
    "time_slot",
    "package_type",
    "operator_id",
)

# 바디를 읽지 않는 경로 (cron 트리거)
BODY_SKIPPED_PATH_PREFIXES: tuple[str, ...] = ("/api/v1/internal",)


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """Request/Span ID 전파와 요청 단위 접근 로그.

    - X-Request-Id 가 없으면 새로 만들고, X-Span-Id 가 없으면 "0" 을 쓴다.
    - request.state 와 로깅 contextvar 에 두 값을 올려 두어 서비스 로그에도 같은 ID 가 찍히게 한다.
    - 쿼리/JSON 바디에서 예약 식별 필드만 골라 booking_context 로 남긴다.
    - 5xx 는 ERROR, 4xx 는 WARNING, 나머지는 INFO 로 기록한다.
    """

    def __init__(self, app, logger: logging.Logger | None = None) -> None:  # type: ignore[override]
        super().__init__(app)
        self._logger = logger or logging.getLogger("request_trace")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        span_id = request.headers.get(SPAN_ID_HEADER) or "0"

        request.state.request_id = request_id
        request.state.span_id = span_id
        request_token = request_id_var.set(request_id)
        span_token = span_id_var.set(span_id)

        try:
            traced = request.url.path not in IGNORED_LOG_PATHS
            context = await self._booking_context(request) if traced else {}
            start = time.monotonic()

            try:
                response = await call_next(request)
            except Exception:
                if traced:
                    self._logger.exception(
                        "request failed",
                        extra=self._extra(request, context, time.monotonic() - start),
                    )
                raise

            response.headers.setdefault(REQUEST_ID_HEADER, request_id)
            response.headers.setdefault(SPAN_ID_HEADER, span_id)

            if traced:
                extra = self._extra(request, context, time.monotonic() - start)
                extra["status"] = response.status_code
                self._logger.log(self._level_for(response.status_code), "completed request", extra=extra)
            return response
        finally:
            request_id_var.reset(request_token)
            span_id_var.reset(span_token)

    @staticmethod
    def _level_for(status_code: int) -> int:
        if status_code >= 500:
            return logging.ERROR
        if status_code >= 400:
            return logging.WARNING
        return logging.INFO

    async def _booking_context(self, request: Request) -> dict[str, object]:
        context: dict[str, object] = {}
        if request.url.query:
            for key, values in parse_qs(request.url.query).items():
                if key in CONTEXT_FIELDS and values:
                    context[key] = values[0]

        if request.method not in {"POST", "PUT", "PATCH"}:
            return context
        if request.url.path.startswith(BODY_SKIPPED_PATH_PREFIXES):
            return context

        body = await request.body()
        if not body:
            return context
        try:
            payload = json.loads(body)
        except ValueError:
            # 형식이 잘못된 바디는 검증 단계에서 400 으로 응답된다.
            return context
        if isinstance(payload, dict):
            for key in CONTEXT_FIELDS:
                value = payload.get(key)
                if isinstance(value, (str, int)):
                    context[key] = value
        return context

    @staticmethod
    def _extra(request: Request, context: dict[str, object], duration: float) -> dict[str, object]:
        extra: dict[str, object] = {
            "request_id": request.state.request_id,
            "span_id": request.state.span_id,
            "method": request.method,
            "path": request.url.path,
            "duration": f"{duration * 1000:.3f}ms",
        }
        if context:
            extra["booking_context"] = context
        return extra
