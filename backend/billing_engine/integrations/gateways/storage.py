"""
Storage gateway clients.

- StorageGatewayClient: current drive gateway (storage, workspaces,
  user lookup, notifications), RS256 bearer tokens.
- LegacyDriveGatewayClient: legacy basic-auth endpoints used by the old
  invoice flow for products that have no tier.
"""

import logging
from typing import Any, Dict, Optional

from billing_engine.integrations.gateways.base import GatewayClient
from billing_engine.integrations.gateways.exceptions import GatewayNotFoundError

logger = logging.getLogger(__name__)


class StorageGatewayClient(GatewayClient):
    """Provisioning calls against the drive storage gateway."""

    name = "storage-gateway"
    CHANGE_STORAGE_PATH = "v2/gateway/storage/users"

    async def change_storage(self, user_uuid: str, new_storage_bytes: int) -> None:
        await self._request(
            "PUT",
            f"{self.CHANGE_STORAGE_PATH}/{user_uuid}",
            json={"bytes": int(new_storage_bytes)},
        )
        logger.info(
            "User storage changed",
            extra={"user_uuid": user_uuid, "bytes": int(new_storage_bytes)}
        )

    async def update_workspace_storage(self, owner_uuid: str, max_space_bytes: int, seats: int) -> None:
        """Set a workspace to `seats` seats of `max_space_bytes` each."""
        await self._request(
            "PUT",
            "gateway/workspaces/storage",
            json={
                "ownerId": owner_uuid,
                "maxSpaceBytes": int(max_space_bytes) * seats,
                "numberOfSeats": seats,
            },
        )

    async def initialize_workspace(
        self,
        owner_uuid: str,
        new_storage_bytes: int,
        seats: int,
        address: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> None:
        await self._request(
            "POST",
            "gateway/workspaces",
            json={
                "ownerId": owner_uuid,
                "maxSpaceBytes": int(new_storage_bytes) * seats,
                "numberOfSeats": seats,
                "address": address,
                "phoneNumber": phone_number,
            },
        )
        logger.info("Workspace initialized", extra={"user_uuid": owner_uuid, "seats": seats})

    async def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """
        Drive user for an email.

        Returns:
            {"uuid", "email"} or None when the gateway does not know it
        """
        try:
            return await self._request("GET", "gateway/users", params={"email": email})
        except GatewayNotFoundError:
            return None

    async def notify_failed_payment(self, user_uuid: str) -> None:
        await self._request("POST", f"gateway/users/{user_uuid}/failed-payment")


class LegacyDriveGatewayClient(GatewayClient):
    """Legacy drive endpoints, basic auth."""

    name = "legacy-drive-gateway"

    async def create_or_update_user(self, max_space_bytes: int, email: str) -> None:
        await self._request(
            "POST",
            "api/gateway/user/updateOrCreate",
            json={"maxSpaceBytes": str(max_space_bytes), "email": email},
        )

    async def update_user_tier(self, user_uuid: str, plan_id: str) -> None:
        await self._request(
            "PUT",
            "api/gateway/user/update/tier",
            json={"planId": plan_id, "uuid": user_uuid},
        )
