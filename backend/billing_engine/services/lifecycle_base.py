"""
Shared pieces of the lifecycle handlers.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from billing_engine.services.components import BillingComponents

logger = logging.getLogger(__name__)


@dataclass
class WebhookProcessingResult:
    """Result of webhook processing."""
    processed: bool
    message: str
    event_type: Optional[str] = None
    user_uuid: Optional[str] = None
    tier_id: Optional[str] = None
    skipped_reason: Optional[str] = None
    error: Optional[str] = None


class LifecycleHandler:
    """Base for one billing-event transition."""

    def __init__(self, components: BillingComponents, logger: Optional[logging.Logger] = None):
        self.components = components
        self.logger = logger or logging.getLogger(type(self).__module__)

    @property
    def payments(self):
        return self.components.payments

    @property
    def tiers_service(self):
        return self.components.tiers_service

    @property
    def users_service(self):
        return self.components.users_service

    @property
    def best_effort(self):
        return self.components.best_effort

    def invalidate_caches(self, customer_id: str, user_uuid: Optional[str] = None) -> None:
        """Detached cache invalidation; failures only reach the error sink."""
        self.best_effort.spawn(
            "invalidate_caches",
            self._invalidate_caches(customer_id, user_uuid),
        )

    async def _invalidate_caches(self, customer_id: str, user_uuid: Optional[str]) -> None:
        cache = self.components.cache
        cache.clear_subscription(customer_id)
        cache.clear_used_user_promo_codes(customer_id)
        if user_uuid:
            cache.clear_user_tier(user_uuid)
        self.logger.info(
            "Caches invalidated",
            extra={"customer_id": customer_id, "user_uuid": user_uuid}
        )
