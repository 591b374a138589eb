"""
Stripe implementation of the payments-processor port.

The stripe SDK is synchronous; every call runs in a worker thread so the
event loop stays free while a webhook waits on the processor. Every request
is pinned to STRIPE_API_VERSION, the payload shape the readers in
resources.py expect.

Documentation: https://docs.stripe.com/api
"""

import asyncio
import json
import logging
import re
from functools import partial
from typing import Any, Callable, Dict, List, Optional

import stripe

from billing_engine.constants import SubscriptionKind, UserType
from billing_engine.integrations.payments.base import PaymentsClient
from billing_engine.integrations.payments.exceptions import (
    PaymentsError,
    PaymentsNotFoundError,
)
from billing_engine.integrations.payments.resources import STRIPE_API_VERSION

logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")
INVOICE_ID_PATTERN = re.compile(r"^in_[a-zA-Z0-9]+$")


def _to_dict(resource: Any) -> Dict[str, Any]:
    if resource is None:
        return {}
    if isinstance(resource, dict) and not isinstance(resource, stripe.StripeObject):
        return resource
    return resource.to_dict()


def _first_item_price(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return (items[0].get("price") if items else None) or {}


class StripePaymentsClient(PaymentsClient):
    """
    Async facade over the stripe SDK.

    SECURITY: the secret key is passed per request and never logged.
    """

    def __init__(self, api_key: str, api_version: str = STRIPE_API_VERSION):
        if not api_key:
            raise ValueError(
                "Stripe secret key is required. Set STRIPE_SECRET_KEY environment variable."
            )
        self._api_key = api_key
        self._api_version = api_version

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run a stripe SDK call in a thread and map its errors.

        Raises:
            PaymentsNotFoundError: On 404 responses
            PaymentsError: On any other stripe error
        """
        kwargs["api_key"] = self._api_key
        kwargs["stripe_version"] = self._api_version
        try:
            return await asyncio.to_thread(partial(fn, *args, **kwargs))
        except stripe.InvalidRequestError as e:
            if e.http_status == 404:
                raise PaymentsNotFoundError(
                    message=f"Stripe resource not found during {operation}",
                    code=e.code,
                ) from e
            logger.error(
                "Stripe request rejected",
                extra={"operation": operation, "status_code": e.http_status, "code": e.code},
            )
            raise PaymentsError(
                message=f"Stripe request rejected during {operation}",
                status_code=e.http_status,
                code=e.code,
            ) from e
        except stripe.StripeError as e:
            logger.error(
                "Stripe API error",
                extra={"operation": operation, "status_code": e.http_status, "error": str(e)},
            )
            raise PaymentsError(
                message=f"Stripe API error during {operation}",
                status_code=e.http_status,
                code=e.code,
            ) from e

    async def get_customer(self, customer_id: str) -> Dict[str, Any]:
        customer = await self._call("get_customer", stripe.Customer.retrieve, customer_id)
        return _to_dict(customer)

    async def get_customers_by_email(self, email: str) -> List[Dict[str, Any]]:
        result = await self._call("get_customers_by_email", stripe.Customer.list, email=email)
        return [_to_dict(customer) for customer in result.data]

    async def get_invoices(self, customer_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        result = await self._call(
            "get_invoices",
            stripe.Invoice.list,
            customer=customer_id,
            limit=limit,
            expand=["data.payments"],
        )
        return [_to_dict(invoice) for invoice in result.data]

    async def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        invoice = await self._call("get_invoice", stripe.Invoice.retrieve, invoice_id)
        return _to_dict(invoice)

    async def get_invoice_line_items(self, invoice_id: str) -> List[Dict[str, Any]]:
        result = await self._call(
            "get_invoice_line_items",
            stripe.Invoice.list_lines,
            invoice_id,
            expand=["data.discounts"],
        )
        return [_to_dict(line) for line in result.data]

    async def get_product(self, product_id: str) -> Dict[str, Any]:
        return _to_dict(await self._call("get_product", stripe.Product.retrieve, product_id))

    async def get_price(self, price_id: str) -> Dict[str, Any]:
        return _to_dict(
            await self._call("get_price", stripe.Price.retrieve, price_id, expand=["product"])
        )

    async def get_charge(self, charge_id: str) -> Dict[str, Any]:
        return _to_dict(await self._call("get_charge", stripe.Charge.retrieve, charge_id))

    async def _active_subscriptions(self, customer_id: str) -> List[Dict[str, Any]]:
        result = await self._call(
            "list_subscriptions",
            stripe.Subscription.list,
            customer=customer_id,
        )
        subscriptions = [_to_dict(subscription) for subscription in result.data]
        return [s for s in subscriptions if s.get("status") in ACTIVE_SUBSCRIPTION_STATUSES]

    async def get_user_subscription(
        self,
        customer_id: str,
        user_type: UserType = UserType.INDIVIDUAL,
    ) -> Dict[str, Any]:
        user_type = UserType(user_type)
        for subscription in await self._active_subscriptions(customer_id):
            price = _first_item_price(subscription)
            product = price.get("product")
            if product and not isinstance(product, dict):
                product = await self.get_product(product)
            product = product or {}
            product_type = (product.get("metadata") or {}).get("type") or UserType.INDIVIDUAL.value
            if user_type == UserType.INDIVIDUAL:
                matches = product_type not in (UserType.BUSINESS.value, UserType.OBJECT_STORAGE.value)
            else:
                matches = product_type == user_type.value
            if not matches:
                continue

            return {
                "type": SubscriptionKind.SUBSCRIPTION.value,
                "subscriptionId": subscription["id"],
                "priceId": price.get("id"),
                "productId": product.get("id"),
                "userType": user_type.value,
            }

        return {"type": SubscriptionKind.FREE.value}

    async def cancel_subscription(self, subscription_id: str) -> None:
        await self._call("cancel_subscription", stripe.Subscription.cancel, subscription_id)
        logger.info("Subscription canceled", extra={"subscription_id": subscription_id})

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        subscription = await self._call(
            "create_subscription",
            stripe.Subscription.create,
            customer=customer_id,
            items=[{"price": price_id}],
            metadata=metadata or {},
        )
        return _to_dict(subscription)

    async def get_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        return _to_dict(
            await self._call("get_payment_intent", stripe.PaymentIntent.retrieve, payment_intent_id)
        )

    async def cancel_payment_intent(self, payment_intent_id: str) -> None:
        await self._call("cancel_payment_intent", stripe.PaymentIntent.cancel, payment_intent_id)

    async def get_invoice_id_for_payment_intent(self, payment_intent_id: str) -> Optional[str]:
        result = await self._call(
            "get_invoice_payment",
            stripe.InvoicePayment.list,
            payment={"type": "payment_intent", "payment_intent": payment_intent_id},
            limit=1,
        )
        if not result.data:
            return None
        invoice = _to_dict(result.data[0]).get("invoice")
        if isinstance(invoice, dict):
            return invoice.get("id")
        return invoice

    async def mark_invoice_paid(self, invoice_id: str) -> None:
        if not INVOICE_ID_PATTERN.match(invoice_id or ""):
            raise ValueError(f"Invalid invoice id {invoice_id}")
        await self._call("mark_invoice_paid", stripe.Invoice.pay, invoice_id, paid_out_of_band=True)


def construct_event(
    payload: bytes,
    signature: str,
    webhook_secret: str,
    tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
) -> Dict[str, Any]:
    """
    Verify a webhook signature and parse the event as plain dicts.

    Raises:
        ValueError: Invalid payload
        stripe.SignatureVerificationError: Invalid or stale signature
    """
    body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    stripe.WebhookSignature.verify_header(body, signature, webhook_secret, tolerance)
    return json.loads(body)
