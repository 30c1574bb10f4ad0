"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


# ==================== CHECKOUT PAYLOAD ERRORS ====================

PAYMENT_START_FAILED = "Unable to start payment"


class PayloadBuildError(AppException):
    """Checkout payload could not be built.

    The customer only ever sees ``PAYMENT_START_FAILED``; ``reason`` carries
    the internal cause for logs.
    """

    reason = "payload_build_failed"

    def __init__(self, order_id: str, status_code: int = status.HTTP_409_CONFLICT) -> None:
        self.order_id = order_id
        super().__init__(status_code=status_code, detail=PAYMENT_START_FAILED)


class OrderNotFoundError(PayloadBuildError):
    """Order does not exist."""

    reason = "order_not_found"

    def __init__(self, order_id: str) -> None:
        super().__init__(order_id, status_code=status.HTTP_404_NOT_FOUND)


class InvalidOrderStateError(PayloadBuildError):
    """Order is no longer pending."""

    reason = "invalid_state"

    def __init__(self, order_id: str, current_status: str) -> None:
        self.current_status = current_status
        super().__init__(order_id)


class PaymentRecordMissingError(PayloadBuildError):
    """Order has no payment record to pay against."""

    reason = "payment_record_missing"
