"""
Subscription updated / deleted transitions.
"""

from typing import Any, Dict, Optional, Tuple

from billing_engine.constants import BillingType, UserType
from billing_engine.errors import TierNotFoundError
from billing_engine.models.user import User
from billing_engine.services.invoice_context import parse_bytes, resource_id
from billing_engine.services.lifecycle_base import LifecycleHandler, WebhookProcessingResult


def first_subscription_item(subscription: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """(item, price) of the subscription's first item; empty dicts when absent."""
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return {}, {}
    return items[0], items[0].get("price") or {}


class _SubscriptionHandler(LifecycleHandler):

    async def is_object_storage(self, price: Dict[str, Any]) -> bool:
        """Subscription items name their product by id unless expanded."""
        product = price.get("product")
        if product and not isinstance(product, dict):
            product = await self.payments.get_product(product)
        return ((product or {}).get("metadata") or {}).get("type") == UserType.OBJECT_STORAGE.value

    def _find_user(self, subscription: Dict[str, Any]) -> Optional[User]:
        customer_id = resource_id(subscription.get("customer"))
        user = self.components.users_repo.find_by_customer_id(customer_id)
        if user is None:
            self.logger.warning(
                "No local user for subscription customer",
                extra={"customer_id": customer_id, "subscription_id": subscription.get("id")}
            )
        return user


class SubscriptionUpdatedHandler(_SubscriptionHandler):
    """Re-apply the entitlement of the subscription's current product."""

    async def handle(self, subscription: Dict[str, Any]) -> WebhookProcessingResult:
        item, price = first_subscription_item(subscription)
        if await self.is_object_storage(price):
            return WebhookProcessingResult(
                processed=False, message="Object storage subscription", skipped_reason="object_storage"
            )

        user = self._find_user(subscription)
        if user is None:
            return WebhookProcessingResult(
                processed=False, message="User not found", skipped_reason="user_not_found"
            )

        product_id = resource_id(price.get("product"))
        tier = None
        try:
            tier = self.tiers_service.get_tier_by_product_id(product_id, BillingType.SUBSCRIPTION)
        except TierNotFoundError:
            max_space_bytes = parse_bytes((price.get("metadata") or {}).get("maxSpaceBytes"))
            if not max_space_bytes:
                self.logger.error(
                    "Subscription price has no storage metadata",
                    extra={"subscription_id": subscription.get("id"), "price_id": price.get("id")}
                )
                return WebhookProcessingResult(
                    processed=False, message="Missing storage metadata", skipped_reason="invalid_price"
                )
            await self.components.gateways.storage.change_storage(user.uuid, max_space_bytes)
        else:
            await self.tiers_service.apply_tier(user.uuid, tier, seats=int(item.get("quantity") or 1))
            self.tiers_service.upsert_user_tier(user.id, tier)

        self.invalidate_caches(user.customer_id, user.uuid)
        return WebhookProcessingResult(
            processed=True,
            message="Subscription entitlement re-applied",
            user_uuid=user.uuid,
            tier_id=tier.id if tier else None,
        )


class SubscriptionDeletedHandler(_SubscriptionHandler):
    """Downgrade to the free plan when a subscription ends."""

    async def handle(self, subscription: Dict[str, Any]) -> WebhookProcessingResult:
        _, price = first_subscription_item(subscription)
        if await self.is_object_storage(price):
            return WebhookProcessingResult(
                processed=False, message="Object storage subscription", skipped_reason="object_storage"
            )

        user = self._find_user(subscription)
        if user is None:
            return WebhookProcessingResult(
                processed=False, message="User not found", skipped_reason="user_not_found"
            )

        product_id = resource_id(price.get("product"))

        # Lifetime purchases cancel the subscription they replace; the
        # lifetime storage must survive that cancellation.
        if user.lifetime:
            self._unlink_subscription_tier(user, product_id)
            self.invalidate_caches(user.customer_id, user.uuid)
            return WebhookProcessingResult(
                processed=True,
                message="Lifetime user keeps its storage",
                user_uuid=user.uuid,
                skipped_reason="lifetime_user",
            )

        tier_id = None
        try:
            tier = (
                await self.tiers_service.remove_tier(user.uuid, product_id, BillingType.SUBSCRIPTION)
                if product_id else None
            )
        except TierNotFoundError:
            tier = None

        if tier is not None:
            tier_id = tier.id
            self.tiers_service.delete_tier_from_user(user.id, tier.id)
        else:
            await self.components.gateways.storage.change_storage(user.uuid, self.components.free_plan_bytes)

        self.invalidate_caches(user.customer_id, user.uuid)
        return WebhookProcessingResult(
            processed=True,
            message="Downgraded to free plan",
            user_uuid=user.uuid,
            tier_id=tier_id,
        )

    def _unlink_subscription_tier(self, user: User, product_id: Optional[str]) -> None:
        if not product_id:
            return
        try:
            tier = self.tiers_service.get_tier_by_product_id(product_id, BillingType.SUBSCRIPTION)
        except TierNotFoundError:
            return
        self.tiers_service.delete_tier_from_user(user.id, tier.id)
