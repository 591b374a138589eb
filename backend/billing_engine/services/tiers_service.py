"""
Tiers Service: catalog lookups that raise, user-tier linkage, and the
provisioning calls that apply or remove a tier's features.
"""

import logging
from typing import List, Optional

from billing_engine.constants import BillingType, FREE_PLAN_BYTES_SPACE, Service
from billing_engine.errors import TierNotFoundError
from billing_engine.integrations.gateways.exceptions import GatewayNotFoundError
from billing_engine.integrations.gateways.storage import StorageGatewayClient
from billing_engine.integrations.gateways.vpn import VpnGatewayClient
from billing_engine.models.tier import Tier
from billing_engine.repositories.tiers_repo import TiersRepository
from billing_engine.repositories.user_tiers_repo import UserTiersRepository

logger = logging.getLogger(__name__)


class TiersService:
    """
    Tier lookups and provisioning.

    apply_tier() only calls gateways; linking a tier to a user is a
    separate, explicit step (insert/update/delete_tier_*).
    """

    def __init__(
        self,
        tiers_repo: TiersRepository,
        user_tiers_repo: UserTiersRepository,
        storage_gateway: StorageGatewayClient,
        vpn_gateway: VpnGatewayClient,
        free_plan_bytes: int = FREE_PLAN_BYTES_SPACE,
        logger: Optional[logging.Logger] = None,
    ):
        self.tiers_repo = tiers_repo
        self.user_tiers_repo = user_tiers_repo
        self.storage_gateway = storage_gateway
        self.vpn_gateway = vpn_gateway
        self.free_plan_bytes = free_plan_bytes
        self.logger = logger or logging.getLogger(__name__)

    # Catalog

    def get_tier_by_product_id(
        self,
        product_id: str,
        billing_type: Optional[BillingType] = None,
    ) -> Tier:
        """
        Raises:
            TierNotFoundError: If no tier is seeded for the product
        """
        tier = self.tiers_repo.find_by_product_id(product_id, billing_type)
        if tier is None:
            raise TierNotFoundError(
                f"Tier for product {product_id} not found",
                product_id=product_id,
                billing_type=billing_type.value if billing_type else None,
            )
        return tier

    def get_tiers_by_user_id(self, user_id: str) -> List[Tier]:
        """Tiers linked to a user, first-linked first. Empty when none."""
        links = self.user_tiers_repo.find_by_user_id(user_id)
        return self.tiers_repo.find_by_ids(link.tier_id for link in links)

    def get_user_tier_by_type(self, user_id: str, business: bool) -> Optional[Tier]:
        """
        First-linked tier of the requested kind.

        business=True selects workspace-enabled tiers, False the rest.
        """
        for tier in self.get_tiers_by_user_id(user_id):
            if tier.is_business == business:
                return tier
        return None

    def get_user_lifetime_tier(self, user_id: str) -> Optional[Tier]:
        for tier in self.get_tiers_by_user_id(user_id):
            if tier.is_lifetime:
                return tier
        return None

    # Links

    def insert_tier_to_user(self, user_id: str, tier_id: str) -> None:
        self.user_tiers_repo.insert(user_id, tier_id)

    def update_tier_to_user(self, user_id: str, old_tier_id: str, new_tier_id: str) -> bool:
        updated = self.user_tiers_repo.update(user_id, old_tier_id, new_tier_id)
        if not updated:
            self.logger.warning(
                "No user-tier link to update",
                extra={"user_id": user_id, "tier_id": old_tier_id}
            )
        return updated

    def delete_tier_from_user(self, user_id: str, tier_id: str) -> bool:
        return self.user_tiers_repo.delete(user_id, tier_id)

    def upsert_user_tier(self, user_id: str, tier: Tier) -> None:
        """
        Link `tier`, replacing the user's existing tier of the same kind.

        Business tiers replace the user's workspace tier; individual tiers
        replace its non-workspace tier.
        """
        existing = self.get_user_tier_by_type(user_id, business=tier.is_business)
        if existing is None:
            self.insert_tier_to_user(user_id, tier.id)
        elif existing.id != tier.id:
            self.update_tier_to_user(user_id, existing.id, tier.id)

    # Provisioning

    async def apply_tier(
        self,
        user_uuid: str,
        tier: Tier,
        seats: int = 1,
        address: Optional[str] = None,
        phone_number: Optional[str] = None,
        max_space_bytes: Optional[int] = None,
    ) -> None:
        """
        Provision every enabled service of `tier`.

        Args:
            max_space_bytes: Stacked storage replacing the tier's own
                individual drive allocation
        """
        for service in (Service.DRIVE, Service.VPN):
            if not tier.features_for(service).get("enabled"):
                continue
            if service == Service.DRIVE:
                await self.apply_drive_features(
                    user_uuid, tier, seats, address, phone_number, max_space_bytes
                )
            else:
                await self.apply_vpn_features(user_uuid, tier)

        self.logger.info(
            "Tier applied",
            extra={"user_uuid": user_uuid, "tier_id": tier.id, "product_id": tier.product_id}
        )

    async def apply_drive_features(
        self,
        user_uuid: str,
        tier: Tier,
        seats: int = 1,
        address: Optional[str] = None,
        phone_number: Optional[str] = None,
        max_space_bytes: Optional[int] = None,
    ) -> None:
        if tier.is_business:
            per_seat = int(tier.workspaces.get("maxSpaceBytesPerSeat") or 0)
            try:
                await self.storage_gateway.update_workspace_storage(user_uuid, per_seat, seats)
            except GatewayNotFoundError:
                await self.storage_gateway.initialize_workspace(
                    user_uuid, per_seat, seats, address=address, phone_number=phone_number
                )
            return

        await self.storage_gateway.change_storage(user_uuid, max_space_bytes or tier.max_space_bytes)

    async def apply_vpn_features(self, user_uuid: str, tier: Tier) -> None:
        feature_id = tier.features_for(Service.VPN).get("featureId")
        if feature_id:
            await self.vpn_gateway.enable_vpn_tier(user_uuid, feature_id)

    async def remove_tier(
        self,
        user_uuid: str,
        product_id: str,
        billing_type: Optional[BillingType] = None,
    ) -> Tier:
        """
        Revert a product's tier: drive back to the free plan, VPN revoked.

        Raises:
            TierNotFoundError: If the product has no tier
        """
        tier = self.get_tier_by_product_id(product_id, billing_type)

        if tier.drive.get("enabled"):
            await self.storage_gateway.change_storage(user_uuid, self.free_plan_bytes)

        feature_id = tier.features_for(Service.VPN).get("featureId")
        if tier.features_for(Service.VPN).get("enabled") and feature_id:
            await self.vpn_gateway.disable_vpn_tier(user_uuid, feature_id)

        self.logger.info(
            "Tier removed",
            extra={"user_uuid": user_uuid, "tier_id": tier.id, "product_id": product_id}
        )
        return tier
