"""
Refund and lost-dispute transitions.

Subscribers lose their subscription. Lifetime users are downgraded: the
refunded product's tier is removed and storage reverts to the free plan.
A refunded product with no tier falls back to clearing the lifetime flag
and setting free-plan storage directly.
"""

from typing import Any, Dict, Optional

from billing_engine.constants import BillingType
from billing_engine.errors import TierNotFoundError
from billing_engine.integrations.payments.resources import (
    invoice_subscription_id,
    line_item_product_id,
    resource_id,
)
from billing_engine.models.user import User
from billing_engine.services.lifecycle_base import LifecycleHandler, WebhookProcessingResult


class RefundHandler(LifecycleHandler):

    async def handle_charge_refunded(self, charge: Dict[str, Any]) -> WebhookProcessingResult:
        if not charge.get("refunded"):
            return WebhookProcessingResult(
                processed=False, message="Charge partially refunded", skipped_reason="partial_refund"
            )
        return await self._revert_charge(charge)

    async def handle_dispute_closed(self, dispute: Dict[str, Any]) -> WebhookProcessingResult:
        if dispute.get("status") != "lost":
            return WebhookProcessingResult(
                processed=False, message="Dispute not lost", skipped_reason="dispute_not_lost"
            )
        charge = await self.payments.get_charge(resource_id(dispute.get("charge")))
        return await self._revert_charge(charge)

    async def charge_invoice_id(self, charge: Dict[str, Any]) -> Optional[str]:
        """Invoice a charge paid; current charges only reach it through their payment intent."""
        invoice_id = resource_id(charge.get("invoice"))
        if invoice_id:
            return invoice_id
        payment_intent_id = resource_id(charge.get("payment_intent"))
        if not payment_intent_id:
            return None
        return await self.payments.get_invoice_id_for_payment_intent(payment_intent_id)

    async def _revert_charge(self, charge: Dict[str, Any]) -> WebhookProcessingResult:
        customer_id = resource_id(charge.get("customer"))
        user = self.components.users_repo.find_by_customer_id(customer_id)
        if user is None:
            self.logger.warning(
                "No local user for reverted charge",
                extra={"charge_id": charge.get("id"), "customer_id": customer_id}
            )
            return WebhookProcessingResult(
                processed=False, message="User not found", skipped_reason="user_not_found"
            )

        if user.lifetime:
            return await self.handle_lifetime_refunded(charge, user)

        invoice_id = await self.charge_invoice_id(charge)
        if not invoice_id:
            self.logger.info(
                "Reverted charge has no invoice, no subscription to cancel",
                extra={"charge_id": charge.get("id"), "customer_id": customer_id}
            )
            return WebhookProcessingResult(
                processed=False, message="No invoice for charge", skipped_reason="no_invoice"
            )

        invoice = await self.payments.get_invoice(invoice_id)
        subscription_id = invoice_subscription_id(invoice)
        if subscription_id:
            await self.best_effort.run(
                "cancel_subscription", self.payments.cancel_subscription, subscription_id
            )
        self.invalidate_caches(customer_id, user.uuid)
        return WebhookProcessingResult(
            processed=True, message="Subscription canceled", user_uuid=user.uuid
        )

    async def handle_lifetime_refunded(self, charge: Dict[str, Any], user: User) -> WebhookProcessingResult:
        payment_intent_id = resource_id(charge.get("payment_intent"))
        if not payment_intent_id:
            self.logger.info(
                "Charge has no payment intent, skipping",
                extra={"charge_id": charge.get("id"), "user_uuid": user.uuid}
            )
            return WebhookProcessingResult(
                processed=False, message="No payment intent", skipped_reason="no_payment_intent"
            )

        invoice_id = await self.charge_invoice_id(charge)
        if not invoice_id:
            self.logger.info(
                "No invoice for refunded payment, skipping",
                extra={"charge_id": charge.get("id"), "user_uuid": user.uuid}
            )
            return WebhookProcessingResult(
                processed=False, message="No invoice for payment", skipped_reason="no_invoice"
            )

        line_items = await self.payments.get_invoice_line_items(invoice_id)
        product_id = line_item_product_id(line_items[0]) if line_items else None

        self.logger.info(
            "Reverting lifetime purchase",
            extra={"user_uuid": user.uuid, "customer_id": user.customer_id, "product_id": product_id}
        )

        try:
            tier_id = await self.handle_cancel_plan(user, product_id)
        except TierNotFoundError:
            self.logger.warning(
                "No tier for refunded product, applying free plan",
                extra={"user_uuid": user.uuid, "product_id": product_id}
            )
            self.users_service.update_lifetime(user.customer_id, False)
            await self.components.gateways.storage.change_storage(user.uuid, self.components.free_plan_bytes)
            tier_id = None

        # Only once the downgrade is written
        self.invalidate_caches(user.customer_id, user.uuid)

        return WebhookProcessingResult(
            processed=True,
            message="Lifetime purchase reverted",
            user_uuid=user.uuid,
            tier_id=tier_id,
        )

    async def handle_cancel_plan(self, user: User, product_id: Optional[str]) -> str:
        """
        Remove the product's lifetime tier and clear the lifetime flag.

        A product seeded only as a subscription tier is removed through
        that tier instead.

        Raises:
            TierNotFoundError: If the product has no tier
        """
        if not product_id:
            raise TierNotFoundError("Refunded invoice has no product", user_uuid=user.uuid)

        try:
            tier = await self.tiers_service.remove_tier(user.uuid, product_id, BillingType.LIFETIME)
        except TierNotFoundError:
            tier = await self.tiers_service.remove_tier(user.uuid, product_id)
        self.tiers_service.delete_tier_from_user(user.id, tier.id)
        self.users_service.update_lifetime(user.customer_id, False)
        return tier.id
