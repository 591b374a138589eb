"""
Tiers Repository: read-only catalog lookups.

Tiers are global entities seeded out-of-band. The engine never mutates
them, so this repository exposes reads only.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from billing_engine.constants import BillingType
from billing_engine.models.tier import Tier

logger = logging.getLogger(__name__)


class TiersRepository:
    """Catalog lookups by product id and tier id."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def find_by_product_id(
        self,
        product_id: str,
        billing_type: Optional[BillingType] = None,
    ) -> Optional[Tier]:
        """
        Get the tier for a processor product.

        Without a billing type, a product seeded for both billing types
        resolves to its subscription tier, then its lifetime tier.

        Args:
            product_id: Processor product id
            billing_type: Optional billing type filter

        Returns:
            Tier if found, None otherwise
        """
        query = self.db.query(Tier).filter(Tier.product_id == product_id)

        if billing_type is not None:
            return query.filter(Tier.billing_type == BillingType(billing_type).value).first()

        subscription_first = case(
            (Tier.billing_type == BillingType.SUBSCRIPTION.value, 0),
            else_=1,
        )
        return query.order_by(subscription_first, Tier.id).first()

    def find_by_ids(self, tier_ids: Iterable[str]) -> List[Tier]:
        """
        Get tiers by id, preserving the order of `tier_ids`.

        Unknown ids are skipped.
        """
        tier_ids = list(tier_ids)
        if not tier_ids:
            return []

        by_id = {
            tier.id: tier
            for tier in self.db.query(Tier).filter(Tier.id.in_(tier_ids)).all()
        }
        missing = [tier_id for tier_id in tier_ids if tier_id not in by_id]
        if missing:
            logger.warning(
                "User-tier links reference unknown tiers",
                extra={"tier_ids": missing}
            )
        return [by_id[tier_id] for tier_id in tier_ids if tier_id in by_id]
