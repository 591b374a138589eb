"""
VPN gateway client: grant or revoke a VPN feature id for a user.
"""

import logging

from billing_engine.integrations.gateways.base import GatewayClient

logger = logging.getLogger(__name__)


class VpnGatewayClient(GatewayClient):

    name = "vpn-gateway"

    async def enable_vpn_tier(self, user_uuid: str, feature_id: str) -> None:
        await self._request(
            "POST",
            "gateway/users",
            json={"uuid": user_uuid, "tierId": feature_id},
        )
        logger.info("VPN tier enabled", extra={"user_uuid": user_uuid, "feature_id": feature_id})

    async def disable_vpn_tier(self, user_uuid: str, feature_id: str) -> None:
        await self._request("DELETE", f"gateway/users/{user_uuid}/tiers/{feature_id}")
        logger.info("VPN tier disabled", extra={"user_uuid": user_uuid, "feature_id": feature_id})
