"""
Payments-processor exceptions.
"""

from typing import Optional


class PaymentsError(Exception):
    """Base exception for payments-processor errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class PaymentsNotFoundError(PaymentsError):
    """Raised when a processor resource does not exist (404)."""

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, status_code=404, **kwargs)
