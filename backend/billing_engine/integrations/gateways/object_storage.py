"""
Object storage gateway client: account lifecycle keyed by customer id.
"""

import logging

from billing_engine.integrations.gateways.base import GatewayClient

logger = logging.getLogger(__name__)


class ObjectStorageClient(GatewayClient):

    name = "object-storage"

    async def init_object_storage_user(self, email: str, customer_id: str) -> None:
        """
        Raises:
            GatewayConflictError: If the account already exists
        """
        await self._request("POST", "users", json={"email": email, "customerId": customer_id})
        logger.info("Object storage account created", extra={"customer_id": customer_id})

    async def reactivate_account(self, customer_id: str) -> None:
        await self._request("PUT", f"users/{customer_id}/reactivate", json={})

    async def suspend_account(self, customer_id: str) -> None:
        await self._request("PUT", f"users/{customer_id}/deactivate", json={})
        logger.info("Object storage account suspended", extra={"customer_id": customer_id})

    async def delete_account(self, customer_id: str) -> None:
        await self._request("DELETE", f"users/{customer_id}")
