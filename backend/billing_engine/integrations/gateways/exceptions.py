"""
Gateway-specific exceptions for error handling.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base exception for provisioning gateway errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        gateway: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.gateway = gateway
        self.response = response or {}

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"status_code={self.status_code}, gateway={self.gateway!r})"
        )


class GatewayNotFoundError(GatewayError):
    """Raised when the gateway does not know the resource (404)."""

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, status_code=404, **kwargs)


class GatewayConflictError(GatewayError):
    """Raised when the resource is already provisioned (409)."""

    def __init__(self, message: str = "Resource already exists", **kwargs):
        super().__init__(message, status_code=409, **kwargs)


class GatewayConnectionError(GatewayError):
    """Raised when network/connection errors occur."""

    def __init__(self, message: str = "Connection error - unable to reach gateway", **kwargs):
        super().__init__(message, **kwargs)
