import enum
from typing import Optional, Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class ErrorCode(str, enum.Enum):
    NOT_FOUND = "NotFound"
    INACTIVE = "Inactive"
    EXPIRED = "Expired"
    NOT_YET_STARTED = "NotYetStarted"
    BELOW_MINIMUM = "BelowMinimum"
    LIMIT_REACHED = "LimitReached"
    PER_USER_LIMIT_REACHED = "PerUserLimitReached"
    ORDER_ALREADY_REDEEMED = "OrderAlreadyRedeemed"
    PROMO_CODE_EXISTS = "PromoCodeExists"

    ALREADY_ENROLLED = "AlreadyEnrolled"
    NOT_ELIGIBLE = "NotEligible"
    ALREADY_ISSUED = "AlreadyIssued"
    NOT_ISSUED = "NotIssued"
    COURSE_NOT_FOUND = "CourseNotFound"
    COURSE_INACTIVE = "CourseInactive"
    COURSE_FULL = "CourseFull"
    ENROLLMENT_NOT_FOUND = "EnrollmentNotFound"
    SECTION_NOT_FOUND = "SectionNotFound"
    PAYMENT_REQUIRED = "PaymentRequired"
    PAYMENT_NOT_CONFIRMED = "PaymentNotConfirmed"

    INVALID_ORDER_TOTAL = "InvalidOrderTotal"


ERROR_STATUS = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.COURSE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ENROLLMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SECTION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ALREADY_ENROLLED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_ISSUED: status.HTTP_409_CONFLICT,
    ErrorCode.PROMO_CODE_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.ORDER_ALREADY_REDEEMED: status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_REQUIRED: status.HTTP_402_PAYMENT_REQUIRED,
}

ERROR_MESSAGES = {
    ErrorCode.NOT_FOUND: "Invalid promo code",
    ErrorCode.INACTIVE: "Promo code is not active",
    ErrorCode.EXPIRED: "Promo code has expired",
    ErrorCode.NOT_YET_STARTED: "Promo code is not valid yet",
    ErrorCode.BELOW_MINIMUM: "Cart total is below the minimum order amount",
    ErrorCode.LIMIT_REACHED: "Promo code usage limit reached",
    ErrorCode.PER_USER_LIMIT_REACHED: "You have already used this promo code maximum times",
    ErrorCode.ORDER_ALREADY_REDEEMED: "A different promo code was already redeemed for this order",
    ErrorCode.PROMO_CODE_EXISTS: "Promo code already exists",
    ErrorCode.ALREADY_ENROLLED: "You are already enrolled in this course",
    ErrorCode.NOT_ELIGIBLE: "Certificate requirements not met",
    ErrorCode.ALREADY_ISSUED: "Certificate already issued",
    ErrorCode.NOT_ISSUED: "Certificate not issued",
    ErrorCode.COURSE_NOT_FOUND: "Course not found",
    ErrorCode.COURSE_INACTIVE: "Course is not active",
    ErrorCode.COURSE_FULL: "Course is full",
    ErrorCode.ENROLLMENT_NOT_FOUND: "Enrollment not found",
    ErrorCode.SECTION_NOT_FOUND: "Section does not belong to this course",
    ErrorCode.PAYMENT_REQUIRED: "Payment confirmation is required for paid courses",
    ErrorCode.PAYMENT_NOT_CONFIRMED: "Payment could not be confirmed",
    ErrorCode.INVALID_ORDER_TOTAL: "Discount cannot exceed order total",
}


class AppHttpException(HTTPException):
    def __init__(
        self,
        status_code: int,
        detail: str,
        code: Optional[ErrorCode] = None,
        errors: Optional[Any] = None,
    ):
        content = {
            "success": False,
            "detail": detail,
        }
        if code:
            content["code"] = code.value
        if errors:
            content["errors"] = errors

        super().__init__(status_code=status_code, detail=detail)
        self.status_code = status_code
        self.detail = detail
        self.code = code
        self.errors = errors
        self.content = content


class DomainError(AppHttpException):
    """Recoverable, caller-visible business rule failure."""

    def __init__(self, code: ErrorCode, detail: Optional[str] = None, errors: Optional[Any] = None):
        super().__init__(
            status_code=ERROR_STATUS.get(code, status.HTTP_400_BAD_REQUEST),
            detail=detail or ERROR_MESSAGES[code],
            code=code,
            errors=errors,
        )


class PromoError(DomainError):
    pass


class EnrollmentError(DomainError):
    pass


class OrderError(DomainError):
    pass


async def app_exception_handler(request: Request, exc: AppHttpException):
    return JSONResponse(status_code=exc.status_code, content=exc.content)
