"""예외 -> JSON 에러 응답 변환.

모든 에러 응답은 {"error": <메시지>, "code": <고정 코드>, ...} 형태다.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..exceptions import BookingServiceError


logger = logging.getLogger(__name__)

HTTP_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


async def handle_service_error(request: Request, exc: BookingServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.code, exc.message, extra={"path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        body = dict(exc.detail)
        body.setdefault("code", HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"))
    else:
        body = {
            "error": str(exc.detail),
            "code": HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        }
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        fields.append({"field": ".".join(loc), "message": error.get("msg", "invalid value")})
    message = "Invalid or missing fields: " + ", ".join(f["field"] or "body" for f in fields)
    return JSONResponse(
        status_code=400,
        content={"error": message, "code": "INVALID_INPUT", "fields": fields},
    )


async def handle_storage_error(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.exception("storage error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={"error": "Storage error. Please try again.", "code": "STORAGE_ERROR"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingServiceError, handle_service_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, handle_http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(PyMongoError, handle_storage_error)  # type: ignore[arg-type]
