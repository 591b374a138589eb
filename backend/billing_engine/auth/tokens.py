"""
Bearer-token verification for the internal and end-user endpoints.

- Gateway tokens: RS256, signed by internal tooling, verified with the
  base64-encoded PEM public key in GATEWAY_PUBLIC_KEY.
- User tokens: HS256 with JWT_SECRET, carrying the user's `uuid` claim.
"""

import logging
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from billing_engine.integrations.gateways.base import decode_key

logger = logging.getLogger(__name__)

CLOCK_SKEW_SECONDS = 30


class TokenVerificationError(Exception):
    """Exception raised when bearer token verification fails."""

    def __init__(self, message: str, error_code: str = "verification_failed"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


def _strip_bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise TokenVerificationError("Token is required", error_code="missing_token")
    if authorization.startswith("Bearer "):
        return authorization[7:]
    return authorization


def _decode(token: str, key: str, algorithm: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, key, algorithms=[algorithm], leeway=CLOCK_SKEW_SECONDS)
    except ExpiredSignatureError:
        logger.warning("Token has expired")
        raise TokenVerificationError("Token has expired", error_code="token_expired")
    except InvalidTokenError as e:
        logger.warning(f"Invalid token: {e}")
        raise TokenVerificationError(f"Invalid token: {e}", error_code="invalid_token")


def verify_gateway_token(authorization: Optional[str], encoded_public_key: Optional[str]) -> Dict[str, Any]:
    """
    Verify an internal RS256 token and return its claims.

    Raises:
        TokenVerificationError: If verification fails
    """
    if not encoded_public_key:
        raise TokenVerificationError("Gateway public key not configured", error_code="not_configured")
    return _decode(_strip_bearer(authorization), decode_key(encoded_public_key), "RS256")


def verify_user_token(authorization: Optional[str], secret: Optional[str]) -> str:
    """
    Verify an end-user HS256 token and return the user uuid.

    Raises:
        TokenVerificationError: If verification fails or the uuid claim is missing
    """
    if not secret:
        raise TokenVerificationError("User token secret not configured", error_code="not_configured")
    claims = _decode(_strip_bearer(authorization), secret, "HS256")
    user_uuid = claims.get("uuid") or (claims.get("payload") or {}).get("uuid")
    if not user_uuid:
        raise TokenVerificationError("Missing required claims: ['uuid']", error_code="missing_claims")
    return user_uuid
