from decimal import Decimal
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None, code: str = "CONFLICT"):
        super().__init__(message, code=code, status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None, code: str = "BAD_REQUEST"):
        super().__init__(message, code=code, status_code=status.HTTP_400_BAD_REQUEST, details=details)


# Commerce & progress outcomes. Expected, user-facing; never logged as failures.


class AlreadyPurchasedError(ConflictError):
    def __init__(self, course_id: str):
        super().__init__("Course already purchased", details={"course_id": course_id}, code="ALREADY_PURCHASED")


class AlreadyResolvedError(ConflictError):
    def __init__(self, transaction_id: str, current_status: str):
        super().__init__(
            "Top-up request already resolved",
            details={"transaction_id": transaction_id, "status": current_status},
            code="ALREADY_RESOLVED",
        )


class InsufficientFundsError(BadRequestError):
    def __init__(self, required: Decimal, available: Decimal):
        self.required = required
        self.available = available
        super().__init__(
            "Insufficient wallet balance",
            details={"required": float(required), "available": float(available)},
            code="INSUFFICIENT_FUNDS",
        )


class InvalidAmountError(BadRequestError):
    def __init__(self, amount: Any, message: str = "Amount must be greater than zero"):
        super().__init__(message, details={"amount": str(amount)}, code="INVALID_AMOUNT")


class NotPurchasedError(AppError):
    """Paid course without a completed purchase; carries only an upsell hint."""

    def __init__(self, course_id: str, price: Decimal):
        super().__init__(
            "You need to purchase this course to access lectures",
            code="NOT_PURCHASED",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"course_id": course_id, "price": float(price)},
        )


class LockedError(AppError):
    def __init__(self, lecture_id: str, required_lecture_id: str):
        super().__init__(
            "Complete the previous lecture to unlock this one",
            code="LECTURE_LOCKED",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"lecture_id": lecture_id, "required_lecture_id": required_lecture_id},
        )


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {"error": exc.to_dict()}
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from eduhive.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", path=request.url.path, exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
