"""
Entitlement models: the computed, never-persisted effective feature set.

Provides:
- FeatureSource: where a service's winning record came from
- ServiceEntitlement: one service's winning feature record + source tier
- EffectiveEntitlement: the merged per-service entitlement for a user

EffectiveEntitlement is recomputed on demand and only cached for a short
TTL (see services/cache_service.py).
"""

import json
from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from billing_engine.constants import Service


# Services carried by an effective entitlement, in serialisation order
MERGED_SERVICES = (
    Service.DRIVE,
    Service.MAIL,
    Service.MEET,
    Service.VPN,
    Service.ANTIVIRUS,
    Service.BACKUPS,
    Service.CLEANER,
)

BOOLEAN_SERVICES = (Service.ANTIVIRUS, Service.BACKUPS, Service.CLEANER)


def empty_features(service: Service) -> Dict[str, Any]:
    """Disabled feature record for a service, with zeroed limits."""
    if service == Service.DRIVE:
        return {
            "enabled": False,
            "maxSpaceBytes": 0,
            "workspaces": {
                "enabled": False,
                "minimumSeats": 0,
                "maximumSeats": 0,
                "maxSpaceBytesPerSeat": 0,
            },
        }
    if service == Service.MAIL:
        return {"enabled": False, "addressesPerUser": 0}
    if service == Service.MEET:
        return {"enabled": False, "paxPerCall": 0}
    if service == Service.VPN:
        return {"enabled": False, "featureId": ""}
    return {"enabled": False}


class FeatureSource(str, Enum):
    TIER = "tier"
    OVERRIDE = "override"
    NONE = "none"


@dataclass(frozen=True)
class ServiceEntitlement:
    """Winning feature record for a single service."""

    service: Service
    features: Dict[str, Any]
    source_tier_id: Optional[str] = None
    source: FeatureSource = FeatureSource.TIER

    @property
    def enabled(self) -> bool:
        return bool(self.features.get("enabled"))

    @classmethod
    def disabled(cls, service: Service) -> "ServiceEntitlement":
        return cls(service=service, features=empty_features(service), source=FeatureSource.NONE)

    def to_dict(self) -> Dict[str, Any]:
        data = deepcopy(self.features)
        if self.source_tier_id is not None:
            data["sourceTierId"] = self.source_tier_id
        return data


@dataclass(frozen=True)
class EffectiveEntitlement:
    """
    Merged entitlement for a user at a point in time.

    `services` always holds an entry for every service in MERGED_SERVICES.
    """

    services: Dict[Service, ServiceEntitlement] = field(default_factory=dict)

    def get(self, service: Service) -> ServiceEntitlement:
        return self.services.get(service) or ServiceEntitlement.disabled(service)

    @property
    def drive(self) -> ServiceEntitlement:
        return self.get(Service.DRIVE)

    @property
    def max_space_bytes(self) -> int:
        return int(self.drive.features.get("maxSpaceBytes") or 0)

    def source_tier_id(self, service: Service) -> Optional[str]:
        return self.get(service).source_tier_id

    def to_dict(self) -> Dict[str, Any]:
        """Response shape: service name -> feature record (+ sourceTierId)."""
        return {service.value: self.get(service).to_dict() for service in MERGED_SERVICES}

    def to_json(self) -> str:
        payload = {
            service.value: {
                "features": self.get(service).features,
                "sourceTierId": self.get(service).source_tier_id,
                "source": self.get(service).source.value,
            }
            for service in MERGED_SERVICES
        }
        return json.dumps(payload)

    @classmethod
    def from_json(cls, data: str) -> "EffectiveEntitlement":
        payload = json.loads(data)
        services = {}
        for service in MERGED_SERVICES:
            entry = payload.get(service.value)
            if entry is None:
                continue
            services[service] = ServiceEntitlement(
                service=service,
                features=entry["features"],
                source_tier_id=entry.get("sourceTierId"),
                source=FeatureSource(entry.get("source", FeatureSource.TIER.value)),
            )
        return cls(services=services)
