# Overview: Typed booking failures; every terminal failure carries a machine code and HTTP-style status.

from __future__ import annotations


class BookingError(Exception):
    """Base for booking pipeline failures."""

    code = "BOOKING_ERROR"
    status = 400

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class BookingValidationError(BookingError):
    """Malformed draft or unknown/inactive/cross-provider reference."""
    code = "VALIDATION_ERROR"
    status = 400


class NotFoundError(BookingError):
    code = "NOT_FOUND"
    status = 404


class ProviderInactiveError(BookingError):
    code = "PROVIDER_INACTIVE"
    status = 400


class SubscriptionLimitError(BookingError):
    code = "SUBSCRIPTION_LIMIT_EXCEEDED"
    status = 403


class InsufficientStockError(BookingError):
    code = "INSUFFICIENT_STOCK"
    status = 400


class MinimumOrderError(BookingError):
    code = "MINIMUM_ORDER_NOT_MET"
    status = 400


class BookingConflictError(BookingError):
    """Staff double-booking without override permission."""
    code = "CONFLICT"
    status = 409


class ResourceUnavailableError(BookingError):
    code = "RESOURCE_UNAVAILABLE"
    status = 409
