"""
Tier model: catalog entry bundling per-service feature limits.

Tiers are GLOBAL and read-only from the engine's point of view. They are
seeded out-of-band (see scripts/seed_tiers.py) and looked up by
(product_id, billing_type) or by id.
"""

from copy import deepcopy
from typing import Any, Dict

from sqlalchemy import JSON, Column, Enum, String, UniqueConstraint

from billing_engine.constants import BillingType, Service
from billing_engine.models.base import Base, TimestampMixin, generate_uuid


class Tier(Base, TimestampMixin):
    """
    A bundle of per-service feature records keyed by processor product.

    features_per_service example:
        {
            "drive": {
                "enabled": true,
                "maxSpaceBytes": 2000000000,
                "foreignTierId": "...",
                "workspaces": {
                    "enabled": false,
                    "minimumSeats": 0,
                    "maximumSeats": 0,
                    "maxSpaceBytesPerSeat": 0
                }
            },
            "mail": {"enabled": true, "addressesPerUser": 5},
            "meet": {"enabled": true, "paxPerCall": 10},
            "vpn": {"enabled": true, "featureId": "..."},
            "antivirus": {"enabled": true},
            ...
        }
    """

    __tablename__ = "tiers"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    product_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Payments-processor product id"
    )
    label = Column(
        String(100),
        nullable=False,
        comment="Display label"
    )
    billing_type = Column(
        Enum(
            *[billing_type.value for billing_type in BillingType],
            name="tier_billing_type",
        ),
        nullable=False,
        default=BillingType.SUBSCRIPTION.value,
    )
    features_per_service = Column(
        JSON,
        nullable=False,
        default=dict,
        comment="Service name -> feature record"
    )

    __table_args__ = (
        UniqueConstraint("product_id", "billing_type", name="uq_tiers_product_billing_type"),
    )

    def features_for(self, service: Service) -> Dict[str, Any]:
        """Feature record for a service; disabled record when absent."""
        features = (self.features_per_service or {}).get(service.value)
        if features is None:
            return {"enabled": False}
        return features

    @property
    def drive(self) -> Dict[str, Any]:
        return self.features_for(Service.DRIVE)

    @property
    def max_space_bytes(self) -> int:
        return int(self.drive.get("maxSpaceBytes") or 0)

    @property
    def workspaces(self) -> Dict[str, Any]:
        return self.drive.get("workspaces") or {}

    @property
    def is_business(self) -> bool:
        return bool(self.workspaces.get("enabled"))

    @property
    def is_lifetime(self) -> bool:
        return self.billing_type == BillingType.LIFETIME.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "productId": self.product_id,
            "label": self.label,
            "billingType": self.billing_type,
            "featuresPerService": deepcopy(self.features_per_service or {}),
        }

    def __repr__(self) -> str:
        return f"<Tier(id={self.id}, product_id={self.product_id}, billing_type={self.billing_type})>"
