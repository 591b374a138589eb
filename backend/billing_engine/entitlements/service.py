"""
Entitlement Resolver: single entry point for a user's effective features.

Provides:
- get_applicable_tier_for_user(user_uuid, owners) -> EffectiveEntitlement
- merge_features(tiers, overrides)
- invalidate(user_uuid)

Resolution:
    1. Collect the user's own tiers plus the workspace tiers of every owner
       supplied (unknown owners skipped, duplicates dropped).
    2. No tiers at all: the catalog's free tier.
    3. Lifetime user holding a lifetime tier: that tier as-is.
    4. Otherwise the per-service merge (entitlements/merge.py).
Overrides apply on top of every branch.
"""

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from billing_engine.constants import FREE_TIER_PRODUCT_ID
from billing_engine.entitlements.merge import entitlement_from_tier, merge_features
from billing_engine.entitlements.models import EffectiveEntitlement
from billing_engine.models.tier import Tier
from billing_engine.repositories.feature_overrides_repo import FeatureOverridesRepository
from billing_engine.repositories.users_repo import UsersRepository
from billing_engine.services.tiers_service import TiersService

if TYPE_CHECKING:
    from billing_engine.services.cache_service import CacheService

logger = logging.getLogger(__name__)


class EntitlementResolver:
    """Computes EffectiveEntitlement from user-tier links and overrides."""

    def __init__(
        self,
        users_repo: UsersRepository,
        tiers_service: TiersService,
        overrides_repo: FeatureOverridesRepository,
        cache: Optional["CacheService"] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.users_repo = users_repo
        self.tiers_service = tiers_service
        self.overrides_repo = overrides_repo
        self.cache = cache
        self.logger = logger or logging.getLogger(__name__)

    def get_free_tier(self) -> Tier:
        """
        Raises:
            TierNotFoundError: If the free tier is not seeded. Fatal: every
                user must resolve to some entitlement.
        """
        return self.tiers_service.get_tier_by_product_id(FREE_TIER_PRODUCT_ID)

    def merge_features(
        self,
        tiers: List[Tier],
        overrides: Optional[Dict[str, Dict[str, bool]]] = None,
    ) -> EffectiveEntitlement:
        """Merge tiers, falling back to the free tier for an empty list."""
        if not tiers:
            return entitlement_from_tier(self.get_free_tier(), overrides)
        return merge_features(tiers, overrides)

    def collect_available_tiers(
        self,
        user_id: Optional[str],
        owner_uuids: Iterable[str] = (),
    ) -> List[Tier]:
        """User's own tiers then owners' workspace tiers, deduplicated by id."""
        available: List[Tier] = []
        if user_id is not None:
            available.extend(self.tiers_service.get_tiers_by_user_id(user_id))

        for owner_uuid in owner_uuids:
            owner = self.users_repo.find_by_uuid(owner_uuid)
            if owner is None:
                self.logger.info("Skipping unknown workspace owner", extra={"owner_uuid": owner_uuid})
                continue
            available.extend(
                tier for tier in self.tiers_service.get_tiers_by_user_id(owner.id)
                if tier.is_business
            )

        unique: Dict[str, Tier] = {}
        for tier in available:
            unique.setdefault(tier.id, tier)
        return list(unique.values())

    def get_applicable_tier_for_user(
        self,
        user_uuid: str,
        owner_uuids: Optional[List[str]] = None,
    ) -> EffectiveEntitlement:
        """
        Effective entitlement for a user, optionally across workspace owners.

        Only owner-less resolutions are cached; they are keyed by user uuid.
        """
        owner_uuids = [uuid for uuid in (owner_uuids or []) if uuid and uuid != user_uuid]
        use_cache = self.cache is not None and not owner_uuids

        if use_cache:
            cached = self.cache.get_user_tier(user_uuid)
            if cached is not None:
                return cached

        user = self.users_repo.find_by_uuid(user_uuid)
        overrides = None
        if user is not None:
            record = self.overrides_repo.find_by_user_id(user.id)
            overrides = record.features_per_service if record else None

        tiers = self.collect_available_tiers(user.id if user else None, owner_uuids)

        lifetime_tier = None
        if user is not None and user.lifetime:
            lifetime_tier = next((tier for tier in tiers if tier.is_lifetime), None)

        if lifetime_tier is not None:
            entitlement = entitlement_from_tier(lifetime_tier, overrides)
        else:
            entitlement = self.merge_features(tiers, overrides)

        if use_cache:
            self.cache.set_user_tier(user_uuid, entitlement)
        return entitlement

    def invalidate(self, user_uuid: str) -> None:
        if self.cache is not None:
            self.cache.clear_user_tier(user_uuid)

