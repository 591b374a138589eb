"""
Per-service feature merging across every tier a user holds.

Policies:
- drive: business (workspace-enabled) tiers always win over individual
  ones. Among business tiers the largest maxSpaceBytesPerSeat wins,
  otherwise the individual tier with the largest maxSpaceBytes wins.
- mail / meet: largest addressesPerUser / paxPerCall among enabled tiers.
- vpn: first enabled tier.
- antivirus / backups / cleaner: first enabled tier; an override with
  enabled=True fills the service when no tier supplies it.

Ties always keep the first-seen tier, so callers must pass tiers in a
stable order (user-tier links are read by linked_at, id).
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from billing_engine.constants import Service
from billing_engine.entitlements.models import (
    BOOLEAN_SERVICES,
    EffectiveEntitlement,
    FeatureSource,
    MERGED_SERVICES,
    ServiceEntitlement,
)
from billing_engine.errors import TierNotFoundError
from billing_engine.models.tier import Tier


def _number(features: Mapping[str, Any], key: str) -> int:
    return int(features.get(key) or 0)


def _max_by(tiers: Iterable[Tier], service: Service, key) -> Optional[Tier]:
    """Strict-greater reduce so the first-seen tier wins ties."""
    best = None
    best_value = None
    for tier in tiers:
        value = key(tier.features_for(service))
        if best is None or value > best_value:
            best, best_value = tier, value
    return best


def select_drive(tiers: List[Tier]) -> ServiceEntitlement:
    """
    Pick the drive record.

    Raises:
        TierNotFoundError: If `tiers` is empty
    """
    business = [tier for tier in tiers if tier.is_business]
    if business:
        winner = _max_by(
            business,
            Service.DRIVE,
            lambda drive: _number(drive.get("workspaces") or {}, "maxSpaceBytesPerSeat"),
        )
    else:
        winner = _max_by(tiers, Service.DRIVE, lambda drive: _number(drive, "maxSpaceBytes"))

    if winner is None:
        raise TierNotFoundError("No drive tiers available")

    return ServiceEntitlement(
        service=Service.DRIVE,
        features=dict(winner.drive),
        source_tier_id=winner.id,
    )


def _select_max_enabled(tiers: List[Tier], service: Service, key: str) -> ServiceEntitlement:
    enabled = [tier for tier in tiers if tier.features_for(service).get("enabled")]
    winner = _max_by(enabled, service, lambda features: _number(features, key))
    if winner is None:
        return ServiceEntitlement.disabled(service)
    return ServiceEntitlement(
        service=service,
        features=dict(winner.features_for(service)),
        source_tier_id=winner.id,
    )


def _select_first_enabled(tiers: List[Tier], service: Service) -> ServiceEntitlement:
    for tier in tiers:
        features = tier.features_for(service)
        if features.get("enabled"):
            return ServiceEntitlement(
                service=service,
                features=dict(features),
                source_tier_id=tier.id,
            )
    return ServiceEntitlement.disabled(service)


def apply_overrides(
    entitlement: EffectiveEntitlement,
    overrides: Optional[Mapping[str, Mapping[str, Any]]],
) -> EffectiveEntitlement:
    """Fill boolean services that no tier supplies from enabled overrides."""
    if not overrides:
        return entitlement

    services = dict(entitlement.services)
    for service in BOOLEAN_SERVICES:
        override = overrides.get(service.value) or {}
        if override.get("enabled") is True and not entitlement.get(service).enabled:
            services[service] = ServiceEntitlement(
                service=service,
                features={"enabled": True},
                source=FeatureSource.OVERRIDE,
            )
    return EffectiveEntitlement(services=services)


def merge_features(
    tiers: List[Tier],
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> EffectiveEntitlement:
    """
    Merge a non-empty, ordered list of tiers into one entitlement.

    Args:
        tiers: Tiers held by the user (and its workspace owners), first-seen first
        overrides: Optional manual overrides, service -> {"enabled": bool}

    Raises:
        TierNotFoundError: If `tiers` is empty (callers resolve the free tier)
    """
    services = {Service.DRIVE: select_drive(tiers)}
    services[Service.MAIL] = _select_max_enabled(tiers, Service.MAIL, "addressesPerUser")
    services[Service.MEET] = _select_max_enabled(tiers, Service.MEET, "paxPerCall")
    services[Service.VPN] = _select_first_enabled(tiers, Service.VPN)
    for service in BOOLEAN_SERVICES:
        services[service] = _select_first_enabled(tiers, service)

    return apply_overrides(EffectiveEntitlement(services=services), overrides)


def entitlement_from_tier(
    tier: Tier,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> EffectiveEntitlement:
    """Every service taken as-is from a single tier (free tier, lifetime tier)."""
    services = {
        service: ServiceEntitlement(
            service=service,
            features=dict(tier.features_for(service)),
            source_tier_id=tier.id,
        )
        for service in MERGED_SERVICES
    }
    return apply_overrides(EffectiveEntitlement(services=services), overrides)
