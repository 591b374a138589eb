"""
Entitlement resolution: merging every tier a user holds into one
effective feature set.
"""

from billing_engine.entitlements.merge import entitlement_from_tier, merge_features
from billing_engine.entitlements.models import (
    EffectiveEntitlement,
    FeatureSource,
    ServiceEntitlement,
)
from billing_engine.entitlements.overrides import UserFeatureOverridesService
from billing_engine.entitlements.service import EntitlementResolver

__all__ = [
    "EffectiveEntitlement",
    "FeatureSource",
    "ServiceEntitlement",
    "EntitlementResolver",
    "UserFeatureOverridesService",
    "entitlement_from_tier",
    "merge_features",
]
