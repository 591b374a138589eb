"""
Invoice paid: the primary lifecycle transition.

Flow:
    1. Unpaid invoices are a no-op.
    2. Parse the invoice into an InvoiceContext; malformed catalog data
       drops the event.
    3. Object storage products only reactivate the account.
    4. Resolve the purchaser (email, then customer id).
    5/6. Lifetime purchases go through LifetimeStackingResolver (cancels a
       superseded subscription, stacks storage for lifetime users).
    7. Apply the tier, or the legacy flow for products without one.
    8. Upsert the local user and its lifetime flag.
    9. Link the tier to the user.
    10. Track the coupon, if it is a tracked one.
    11. Invalidate caches.

Every step converges on replay: the same invoice delivered twice leaves
one link, the same lifetime flag and the same storage.
"""

from typing import Any, Dict, Optional

from billing_engine.constants import BillingType
from billing_engine.errors import (
    BillingEngineError,
    CouponNotTrackedError,
    ErrorKind,
    InvoiceValidationError,
    TierNotFoundError,
)
from billing_engine.models.tier import Tier
from billing_engine.models.user import User
from billing_engine.services.invoice_context import InvoiceContext, build_invoice_context
from billing_engine.services.lifecycle_base import LifecycleHandler, WebhookProcessingResult
from billing_engine.services.object_storage_handler import handle_object_storage_invoice_completed
from billing_engine.services.old_invoice_flow import handle_old_invoice_completed_flow


class InvoicePaidHandler(LifecycleHandler):

    async def handle(self, invoice: Dict[str, Any]) -> WebhookProcessingResult:
        invoice_id = invoice.get("id")
        if invoice.get("status") != "paid":
            self.logger.error(
                "Invoice not paid, processed without action",
                extra={"invoice_id": invoice_id, "status": invoice.get("status")}
            )
            return WebhookProcessingResult(
                processed=False,
                message="Invoice is not paid",
                skipped_reason="invoice_not_paid",
            )

        try:
            ctx = await build_invoice_context(invoice, self.payments)
        except InvoiceValidationError as e:
            self.logger.error(
                "Invoice dropped: missing provisioning data",
                extra={"invoice_id": invoice_id, "error": e.message}
            )
            return WebhookProcessingResult(
                processed=False,
                message=e.message,
                skipped_reason="invalid_invoice",
                error=e.kind.value,
            )

        if ctx.is_object_storage:
            await handle_object_storage_invoice_completed(
                ctx, self.components.gateways.object_storage, self.logger
            )
            return WebhookProcessingResult(processed=True, message="Object storage invoice handled")

        user_uuid = await self.users_service.resolve_user_uuid(ctx.customer_email, ctx.customer_id)
        existing_user = self.components.users_repo.find_by_uuid(user_uuid)

        tier, stacked_bytes = await self._resolve_tier(ctx, user_uuid, existing_user)

        if tier is not None:
            await self.tiers_service.apply_tier(
                user_uuid,
                tier,
                seats=ctx.seats,
                address=(ctx.customer.get("address") or {}).get("line1"),
                phone_number=ctx.customer.get("phone"),
                max_space_bytes=stacked_bytes,
            )
        else:
            self.logger.info(
                "No tier for product, using the old flow",
                extra={"invoice_id": ctx.invoice_id, "product_id": ctx.product_id, "user_uuid": user_uuid}
            )
            await handle_old_invoice_completed_flow(
                ctx,
                user_uuid,
                self.components.gateways.storage,
                self.components.gateways.legacy_drive,
                self.logger,
            )

        # Business purchases do not define individual lifetime status
        if ctx.is_business and existing_user is not None:
            lifetime = existing_user.lifetime
        else:
            lifetime = ctx.is_lifetime
        local_user = self.users_service.upsert_user_by_uuid(user_uuid, ctx.customer_id, lifetime)

        if tier is not None:
            self._link_tier(local_user, tier, ctx)

        if ctx.coupon_code:
            await self.best_effort.run(
                "store_coupon_used_by_user", self._store_coupon, local_user, ctx.coupon_code
            )

        self.invalidate_caches(ctx.customer_id, user_uuid)

        return WebhookProcessingResult(
            processed=True,
            message="Invoice provisioned",
            user_uuid=user_uuid,
            tier_id=tier.id if tier else None,
        )

    async def _resolve_tier(
        self,
        ctx: InvoiceContext,
        user_uuid: str,
        existing_user: Optional[User],
    ):
        """
        Tier to apply and the stacked storage overriding its drive size.

        Returns:
            (tier, stacked_bytes); tier is None for old products
        """
        if not ctx.is_lifetime:
            try:
                tier = self.tiers_service.get_tier_by_product_id(ctx.product_id, BillingType.SUBSCRIPTION)
            except TierNotFoundError:
                return None, None
            return tier, None

        purchaser = existing_user or User(uuid=user_uuid, customer_id=ctx.customer_id, lifetime=False)
        try:
            conditions = await self.components.lifetime_stacking.determine(purchaser, ctx.product_id)
        except TierNotFoundError:
            return None, None

        return conditions.tier, conditions.max_space_bytes if conditions.stacked else None

    def _link_tier(self, user: User, tier: Tier, ctx: InvoiceContext) -> None:
        try:
            self.tiers_service.upsert_user_tier(user.id, tier)
        except BillingEngineError as e:
            if e.kind not in (ErrorKind.NOT_FOUND, ErrorKind.CONFLICT):
                raise
            self.logger.warning(
                "User-tier link not updated",
                extra={"user_uuid": user.uuid, "tier_id": tier.id, "invoice_id": ctx.invoice_id}
            )

    def _store_coupon(self, user: User, coupon_code: str) -> None:
        try:
            self.users_service.store_coupon_used_by_user(user, coupon_code)
        except CouponNotTrackedError:
            pass
