"""
Lifetime stacking: storage and tier for a user buying lifetime products.

The same person may own several processor customers under one email
(re-signups). Every paid, non-refunded, non-disputed lifetime invoice
across all of them counts:

    total storage = sum of the admitted invoices' price maxSpaceBytes
    granted tier  = largest lifetime tier among the user's current
                    lifetime tier and the admitted invoices' products
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from billing_engine.constants import (
    BillingType,
    FREE_PLAN_BYTES_SPACE,
    PlanType,
    SubscriptionKind,
    UserType,
)
from billing_engine.errors import LifetimeStackingError, TierNotFoundError
from billing_engine.integrations.payments.base import PaymentsClient
from billing_engine.integrations.payments.resources import (
    invoice_charge_id,
    invoice_is_paid,
    invoice_lines,
    invoice_paid_out_of_band,
    invoice_payment_intent_id,
    line_item_product_id,
    resource_id,
)
from billing_engine.models.tier import Tier
from billing_engine.models.user import User
from billing_engine.services.best_effort import BestEffortRunner
from billing_engine.services.invoice_context import fetch_line_item_price, parse_bytes
from billing_engine.services.tiers_service import TiersService
from billing_engine.services.users_service import UsersService

logger = logging.getLogger(__name__)

INVOICES_PAGE_SIZE = 100


@dataclass(frozen=True)
class LifetimeConditions:
    """Tier to grant and the storage to provision with it."""
    tier: Tier
    max_space_bytes: int
    stacked: bool = False


class LifetimeStackingResolver:
    """
    Decides tier and storage for a lifetime purchase.

    Usage:
        conditions = await resolver.determine(user, product_id)
        await tiers_service.apply_tier(user.uuid, conditions.tier,
                                       max_space_bytes=conditions.max_space_bytes)
    """

    def __init__(
        self,
        payments: PaymentsClient,
        tiers_service: TiersService,
        users_service: UsersService,
        best_effort: Optional[BestEffortRunner] = None,
        free_plan_bytes: int = FREE_PLAN_BYTES_SPACE,
        logger: Optional[logging.Logger] = None,
    ):
        self.payments = payments
        self.tiers_service = tiers_service
        self.users_service = users_service
        self.best_effort = best_effort or BestEffortRunner()
        self.free_plan_bytes = free_plan_bytes
        self.logger = logger or logging.getLogger(__name__)

    async def determine(self, user: User, product_id: str) -> LifetimeConditions:
        """
        Resolve the lifetime tier and storage for `user` buying `product_id`.

        Free users and subscribers get the purchased tier's own storage;
        a subscriber's recurring subscription is canceled first. Users who
        are already lifetime get the stacked storage.

        Raises:
            TierNotFoundError: If the product has no lifetime tier (old
                product: callers take the legacy provisioning path)
            LifetimeStackingError: If no tier can be determined when stacking
        """
        tier = self.tiers_service.get_tier_by_product_id(product_id, BillingType.LIFETIME)

        if user.lifetime:
            return await self.handle_stacking_lifetime(user)

        subscription = await self.users_service.get_user_subscription(user.customer_id, UserType.INDIVIDUAL)
        if subscription.get("type") == SubscriptionKind.SUBSCRIPTION.value:
            subscription_id = subscription.get("subscriptionId")
            self.logger.info(
                "Canceling subscription superseded by lifetime purchase",
                extra={"user_uuid": user.uuid, "subscription_id": subscription_id}
            )
            await self.best_effort.run(
                "cancel_superseded_subscription",
                self.payments.cancel_subscription,
                subscription_id,
            )

        return LifetimeConditions(tier=tier, max_space_bytes=tier.max_space_bytes)

    async def handle_stacking_lifetime(self, user: User) -> LifetimeConditions:
        customer = await self.payments.get_customer(user.customer_id)
        if customer.get("deleted"):
            raise LifetimeStackingError(
                f"Customer {user.customer_id} for user {user.uuid} is deleted",
                user_uuid=user.uuid,
            )

        related_customers = await self.payments.get_customers_by_email(customer.get("email"))
        customer_ids = list(dict.fromkeys(
            related["id"] for related in related_customers if not related.get("deleted")
        ))
        if user.customer_id not in customer_ids:
            customer_ids.append(user.customer_id)

        total_max_space_bytes = 0
        product_ids: List[str] = []
        for customer_id in customer_ids:
            invoices = await self.payments.get_invoices(customer_id, limit=INVOICES_PAGE_SIZE)
            for invoice, price in await self.get_paid_invoices(customer_id, invoices):
                total_max_space_bytes += parse_bytes((price.get("metadata") or {}).get("maxSpaceBytes"))
                product_id = resource_id(price.get("product")) or line_item_product_id(invoice_lines(invoice)[0])
                if product_id:
                    product_ids.append(product_id)

        final_tier = self.get_higher_tier(
            product_ids, self.tiers_service.get_user_lifetime_tier(user.id)
        )
        if final_tier is None:
            raise LifetimeStackingError(
                f"Tier not found for user {user.uuid} when stacking lifetime",
                user_uuid=user.uuid,
            )

        if total_max_space_bytes == 0:
            self.logger.warning(
                "No admitted lifetime invoices, falling back to free plan storage",
                extra={"user_uuid": user.uuid, "customer_ids": customer_ids}
            )

        self.logger.info(
            "Lifetime storage stacked",
            extra={
                "user_uuid": user.uuid,
                "tier_id": final_tier.id,
                "max_space_bytes": total_max_space_bytes,
                "customers": len(customer_ids),
            }
        )
        return LifetimeConditions(
            tier=final_tier,
            max_space_bytes=total_max_space_bytes or self.free_plan_bytes,
            stacked=True,
        )

    async def get_paid_invoices(
        self,
        customer_id: str,
        invoices: List[Dict[str, Any]],
    ) -> List[Tuple[Dict[str, Any], Dict[str, Any]]]:
        """(invoice, price) pairs passing the admission test, in their original order."""
        prices = await asyncio.gather(
            *(self.admitted_price(customer_id, invoice) for invoice in invoices)
        )
        return [(invoice, price) for invoice, price in zip(invoices, prices) if price is not None]

    async def admit_invoice(self, customer_id: str, invoice: Dict[str, Any]) -> bool:
        return await self.admitted_price(customer_id, invoice) is not None

    async def admitted_price(self, customer_id: str, invoice: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Price of a paid lifetime invoice that was either settled out of band
        with no processor charge, or whose charge is neither refunded nor
        disputed. None when the invoice is not admitted.
        """
        lines = invoice_lines(invoice)
        price = await fetch_line_item_price(lines[0], self.payments) if lines else None
        if not price or not price.get("metadata"):
            self.logger.warning(
                "Invoice has no price metadata",
                extra={"invoice_id": invoice.get("id"), "customer_id": customer_id}
            )
            return None

        is_lifetime = price["metadata"].get("planType") == PlanType.ONE_TIME.value
        if not (is_lifetime and invoice_is_paid(invoice)):
            return None

        charge_id = await self.get_invoice_charge_id(invoice)
        if not charge_id:
            return price if invoice_paid_out_of_band(invoice) else None

        charge = await self.payments.get_charge(charge_id)
        if charge.get("refunded") or charge.get("disputed"):
            return None
        return price

    async def get_invoice_charge_id(self, invoice: Dict[str, Any]) -> Optional[str]:
        """Charge on the invoice, else the latest charge of its payment intent."""
        charge_id = invoice_charge_id(invoice)
        if charge_id:
            return charge_id
        payment_intent_id = invoice_payment_intent_id(invoice)
        if not payment_intent_id:
            return None
        payment_intent = await self.payments.get_payment_intent(payment_intent_id)
        return resource_id(payment_intent.get("latest_charge"))

    def get_higher_tier(self, product_ids: List[str], current_tier: Optional[Tier]) -> Optional[Tier]:
        """Largest lifetime tier by drive maxSpaceBytes; first seen wins ties."""
        final_tier = current_tier
        for product_id in dict.fromkeys(product_ids):
            try:
                tier = self.tiers_service.get_tier_by_product_id(product_id, BillingType.LIFETIME)
            except TierNotFoundError:
                continue
            if final_tier is None or final_tier.max_space_bytes < tier.max_space_bytes:
                final_tier = tier
        return final_tier
