"""
Structured error types for the billing engine.

Every error carries an ErrorKind tag so callers can branch on the kind
(`err.kind is ErrorKind.NOT_FOUND`) rather than on the concrete class.

Kinds:
- NOT_FOUND: tier, user or invoice data missing. Usually recoverable and
  routes the caller to a legacy or fallback path.
- CONFLICT: duplicate provisioning attempt (409).
- VALIDATION: processor catalog data is malformed; the event is dropped.
- DOWNSTREAM: a gateway call failed.
- BAD_REQUEST / GONE: caller-side problems surfaced by the HTTP layer.
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import status


class ErrorKind(str, Enum):
    """Tag identifying the category of a billing engine error."""
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    DOWNSTREAM = "downstream"
    BAD_REQUEST = "bad_request"
    GONE = "gone"
    INTERNAL = "internal"


_HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.DOWNSTREAM: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.GONE: status.HTTP_410_GONE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class BillingEngineError(Exception):
    """Base exception for billing engine errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, kind: Optional[ErrorKind] = None, **context: Any):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.context = context

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS_BY_KIND.get(self.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "error": self.kind.value,
            "message": self.message,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind.value!r}, message={self.message!r})"


class NotFoundError(BillingEngineError):
    kind = ErrorKind.NOT_FOUND


class TierNotFoundError(NotFoundError):
    """No tier matches the requested product / tier id."""


class UserNotFoundError(NotFoundError):
    """No local user matches the requested identity."""


class InvoiceValidationError(BillingEngineError):
    """Invoice, price or product data required for provisioning is missing."""
    kind = ErrorKind.VALIDATION


class ConflictError(BillingEngineError):
    kind = ErrorKind.CONFLICT


class BadRequestError(BillingEngineError):
    kind = ErrorKind.BAD_REQUEST


class CustomerGoneError(BillingEngineError):
    """The processor customer has been deleted."""
    kind = ErrorKind.GONE


class CouponNotTrackedError(NotFoundError):
    """
    The coupon is not in the tracked-coupons table.

    Expected outcome, not a failure: callers ignore it silently.
    """

    def __init__(self, coupon_code: str):
        super().__init__(f"Coupon {coupon_code} is not being tracked", coupon_code=coupon_code)
        self.coupon_code = coupon_code


class LifetimeStackingError(BillingEngineError):
    """No lifetime tier could be determined for a stacking purchase."""
    kind = ErrorKind.INTERNAL
