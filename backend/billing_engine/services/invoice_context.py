"""
Invoice context: the paid invoice parsed once at the engine boundary.

build_invoice_context() resolves customer, first line item, price and
product from the processor and validates the metadata provisioning needs.
Handlers work on the typed InvoiceContext and never dig into raw
processor payloads again.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from billing_engine.constants import BillingType, PlanType, UserType
from billing_engine.errors import InvoiceValidationError
from billing_engine.integrations.payments.base import PaymentsClient
from billing_engine.integrations.payments.resources import (
    discount_coupon_id,
    line_item_price,
    line_item_product_id,
    resource_id,
)

logger = logging.getLogger(__name__)


def parse_bytes(value: Any) -> int:
    """Byte counts arrive as metadata strings."""
    if value in (None, ""):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class InvoiceContext:
    """A paid invoice with everything provisioning needs, validated."""

    invoice_id: str
    customer_id: str
    customer_email: str
    customer: Dict[str, Any]
    price: Dict[str, Any]
    product: Dict[str, Any]
    line_item: Dict[str, Any]
    product_type: UserType
    is_lifetime: bool
    seats: int
    max_space_bytes: int
    line_count: int = 1
    coupon_code: Optional[str] = None
    invoice: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def product_id(self) -> str:
        return self.product["id"]

    @property
    def price_id(self) -> Optional[str]:
        return self.price.get("id")

    @property
    def billing_type(self) -> BillingType:
        return BillingType.LIFETIME if self.is_lifetime else BillingType.SUBSCRIPTION

    @property
    def is_business(self) -> bool:
        return self.product_type == UserType.BUSINESS

    @property
    def is_object_storage(self) -> bool:
        return self.product_type == UserType.OBJECT_STORAGE


def _first_coupon_code(line_item: Dict[str, Any]) -> Optional[str]:
    discounts = line_item.get("discounts") or []
    if not discounts:
        return None
    return discount_coupon_id(discounts[0])


async def fetch_line_item_price(line_item: Dict[str, Any], payments: PaymentsClient) -> Optional[Dict[str, Any]]:
    """
    Price of a line item with its metadata.

    Current line items only carry the price id, so the price is fetched;
    an already expanded price is used as is.
    """
    price = line_item_price(line_item)
    if isinstance(price, dict):
        return price
    if not price:
        return None
    return await payments.get_price(price)


async def build_invoice_context(invoice: Dict[str, Any], payments: PaymentsClient) -> InvoiceContext:
    """
    Parse and validate a paid invoice.

    Raises:
        InvoiceValidationError: If the invoice is unpaid, the customer was
            deleted, or price/product metadata is missing
    """
    invoice_id = invoice.get("id")
    if invoice.get("status") != "paid":
        raise InvoiceValidationError(
            f"Invoice {invoice_id} is not paid (status={invoice.get('status')})",
            invoice_id=invoice_id,
        )

    customer_id = resource_id(invoice.get("customer"))
    if not customer_id:
        raise InvoiceValidationError(f"Invoice {invoice_id} has no customer", invoice_id=invoice_id)

    customer = await payments.get_customer(customer_id)
    if customer.get("deleted"):
        raise InvoiceValidationError(
            f"Customer {customer_id} from invoice {invoice_id} has been deleted",
            invoice_id=invoice_id,
            customer_id=customer_id,
        )

    line_items = await payments.get_invoice_line_items(invoice_id)
    line_item = line_items[0] if line_items else None
    price = await fetch_line_item_price(line_item, payments) if line_item else None
    if not price:
        raise InvoiceValidationError(
            f"Invoice {invoice_id} has no price in its line items",
            invoice_id=invoice_id,
        )

    product = price.get("product") or line_item_product_id(line_item)
    if not isinstance(product, dict):
        product = await payments.get_product(product) if product else None
    if not product:
        raise InvoiceValidationError(f"Invoice {invoice_id} has no product", invoice_id=invoice_id)

    price_metadata = price.get("metadata") or {}
    product_metadata = product.get("metadata") or {}

    raw_type = product_metadata.get("type")
    try:
        product_type = UserType(raw_type) if raw_type else UserType.INDIVIDUAL
    except ValueError:
        raise InvoiceValidationError(
            f"Product {product.get('id')} has unknown type {raw_type!r}",
            invoice_id=invoice_id,
        )

    if product_type != UserType.OBJECT_STORAGE:
        missing = [key for key in ("maxSpaceBytes", "planType") if not price_metadata.get(key)]
        if missing:
            raise InvoiceValidationError(
                f"Price {price.get('id')} is missing metadata: {', '.join(missing)}",
                invoice_id=invoice_id,
                price_id=price.get("id"),
            )

    context = InvoiceContext(
        invoice_id=invoice_id,
        customer_id=customer_id,
        customer_email=(customer.get("email") or invoice.get("customer_email") or "").lower(),
        customer=customer,
        price=price,
        product=product,
        line_item=line_item,
        product_type=product_type,
        is_lifetime=price_metadata.get("planType") == PlanType.ONE_TIME.value,
        seats=int(line_item.get("quantity") or 1),
        max_space_bytes=parse_bytes(price_metadata.get("maxSpaceBytes")),
        line_count=len(line_items),
        coupon_code=_first_coupon_code(line_item),
        invoice=invoice,
    )

    logger.debug(
        "Invoice context built",
        extra={"invoice_id": invoice_id, "customer_id": customer_id, "product_id": context.product_id}
    )
    return context
