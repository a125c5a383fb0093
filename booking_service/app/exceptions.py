from __future__ import annotations

from typing import Any


class BookingServiceError(Exception):
    """booking-service 도메인 예외의 공통 베이스.

    - code: 클라이언트가 분기할 수 있는 고정 문자열
    - status_code: HTTP 응답 코드 (api.errors 에서 사용)
    - credit_restored: 크레딧 차감 이후에 실패한 경우에만 True/False 로 채운다.
    """

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        credit_restored: bool | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.credit_restored = credit_restored
        self.extra: dict[str, Any] = dict(extra or {})

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.credit_restored is not None:
            body["credit_restored"] = self.credit_restored
        body.update(self.extra)
        return body


class ValidationError(BookingServiceError):
    """잘못되었거나 누락된 입력. 상태를 변경하기 전에만 발생한다."""

    status_code = 400
    default_code = "INVALID_INPUT"


class PaymentRedirectError(ValidationError):
    """크레딧이 아닌 직접 결제로 구매해야 하는 세션 타입."""

    default_code = "DIRECT_PAYMENT_REQUIRED"

    def __init__(self, message: str, *, redirect: str) -> None:
        super().__init__(message, extra={"redirect": redirect})
        self.redirect = redirect


class NotFoundError(BookingServiceError):
    """대상이 없거나 호출자 소유가 아님."""

    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(BookingServiceError):
    """중복 예약, 정원 초과, 허용되지 않는 상태 전이."""

    status_code = 409
    default_code = "CONFLICT"


class DuplicateBookingError(ConflictError):
    """같은 선수/날짜/시간대/세션 타입에 이미 활성 예약이 있음."""

    default_code = "DUPLICATE_BOOKING"


class InsufficientCreditsError(BookingServiceError):
    """사용 가능한 크레딧 합계가 요청량보다 적음."""

    status_code = 402
    default_code = "INSUFFICIENT_CREDITS"

    def __init__(
        self,
        message: str,
        *,
        credits_required: int,
        credits_available: int,
        credit_restored: bool | None = None,
    ) -> None:
        super().__init__(
            message,
            credit_restored=credit_restored,
            extra={
                "credits_required": credits_required,
                "credits_available": credits_available,
            },
        )
        self.credits_required = credits_required
        self.credits_available = credits_available


class StorageError(BookingServiceError):
    """트랜잭션/커넥션 실패."""

    status_code = 500
    default_code = "STORAGE_ERROR"


class CompensationError(StorageError):
    """크레딧은 차감되었으나 보상(환불/좌석 반환)에 실패함. 운영자 수동 정산 대상."""

    default_code = "COMPENSATION_FAILED"

    def __init__(
        self,
        message: str,
        *,
        credit_restored: bool | None = False,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, credit_restored=credit_restored, extra=extra)


class ConfigurationError(BookingServiceError):
    """필수 런타임 설정 누락. 요청 처리 중이 아니라 기동/최초 사용 시점에만 발생한다."""

    status_code = 500
    default_code = "CONFIGURATION_ERROR"
