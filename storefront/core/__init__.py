"""Core utilities: exceptions, logging and middleware."""

from storefront.core.exceptions import (
    AppException,
    InvalidOrderStateError,
    NotFoundError,
    OrderNotFoundError,
    PayloadBuildError,
    PaymentRecordMissingError,
    ValidationError,
)

__all__ = [
    "AppException",
    "InvalidOrderStateError",
    "NotFoundError",
    "OrderNotFoundError",
    "PayloadBuildError",
    "PaymentRecordMissingError",
    "ValidationError",
]
