"""
Shared HTTP plumbing for the provisioning gateways.

Every gateway authenticates with a short-lived RS256 token signed with a
base64-encoded PEM private key, except the legacy drive gateway which
uses basic auth.
"""

import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import httpx
import jwt

from billing_engine.integrations.gateways.exceptions import (
    GatewayConflictError,
    GatewayConnectionError,
    GatewayError,
    GatewayNotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
TOKEN_TTL = timedelta(minutes=5)


def decode_key(encoded_key: str) -> str:
    """Base64 PEM (as stored in env) to PEM text."""
    return base64.b64decode(encoded_key).decode("utf-8")


def sign_gateway_token(encoded_private_key: str, ttl: timedelta = TOKEN_TTL) -> str:
    """Empty-claims RS256 token expiring after `ttl`."""
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"iat": now, "exp": now + ttl},
        decode_key(encoded_private_key),
        algorithm="RS256",
    )


class GatewayClient:
    """
    Async JSON client for one gateway.

    SECURITY: signing keys and passwords must never be logged.
    """

    name = "gateway"

    def __init__(
        self,
        base_url: str,
        signing_key: Optional[str] = None,
        basic_auth: Optional[Tuple[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._signing_key = signing_key
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            auth=basic_auth,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _auth_headers(self) -> Dict[str, str]:
        if not self._signing_key:
            return {}
        return {"Authorization": f"Bearer {sign_gateway_token(self._signing_key)}"}

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request to the gateway.

        Returns:
            Response data as dictionary (empty for empty bodies)

        Raises:
            GatewayNotFoundError: On 404
            GatewayConflictError: On 409
            GatewayError: On any other error status
            GatewayConnectionError: On network errors
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json,
                params=params,
                headers=self._auth_headers(),
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Gateway request timed out",
                extra={"gateway": self.name, "endpoint": endpoint},
            )
            raise GatewayConnectionError(
                message=f"Request timed out: {e}", gateway=self.name
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "Gateway connection error",
                extra={"gateway": self.name, "endpoint": endpoint, "error": str(e)},
            )
            raise GatewayConnectionError(
                message=f"Connection error: {e}", gateway=self.name
            ) from e

        if response.status_code == 404:
            raise GatewayNotFoundError(
                message=f"Resource not found: {endpoint}", gateway=self.name
            )

        if response.status_code == 409:
            raise GatewayConflictError(
                message=f"Resource already exists: {endpoint}", gateway=self.name
            )

        if response.status_code >= 400:
            error_body = {}
            try:
                error_body = response.json()
            except ValueError:
                pass

            logger.error(
                "Gateway API error",
                extra={
                    "gateway": self.name,
                    "status_code": response.status_code,
                    "endpoint": endpoint,
                    "response": str(error_body)[:500],
                },
            )
            raise GatewayError(
                message=f"{self.name} error: {response.status_code}",
                status_code=response.status_code,
                gateway=self.name,
                response=error_body,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}
