"""
Readers for processor invoice and line item payloads.

Requests are pinned to STRIPE_API_VERSION, where a line item names its
price under `pricing.price_details` and an invoice reaches its charge
through `payments` -> payment intent -> `latest_charge`. Webhook
endpoints registered on an older API version still deliver the previous
shape (`line.price`, `invoice.paid`, `invoice.charge`,
`invoice.subscription`), so every reader accepts both. Discounts name
their coupon under `source.coupon` where older payloads carry `coupon`.
"""

from typing import Any, Dict, List, Optional

STRIPE_API_VERSION = "2025-08-27.basil"


def resource_id(value: Any) -> Optional[str]:
    """Id of a processor reference that may be expanded or a bare id."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def invoice_lines(invoice: Dict[str, Any]) -> List[Dict[str, Any]]:
    return (invoice.get("lines") or {}).get("data") or []


def _price_details(line_item: Dict[str, Any]) -> Dict[str, Any]:
    return (line_item.get("pricing") or {}).get("price_details") or {}


def line_item_price(line_item: Dict[str, Any]) -> Any:
    """Price of a line item: an expanded dict, a bare id, or None."""
    price = line_item.get("price")
    if price:
        return price
    return _price_details(line_item).get("price")


def line_item_product_id(line_item: Dict[str, Any]) -> Optional[str]:
    product = _price_details(line_item).get("product")
    if product:
        return resource_id(product)
    price = line_item.get("price")
    if isinstance(price, dict):
        return resource_id(price.get("product"))
    return None


def invoice_is_paid(invoice: Dict[str, Any]) -> bool:
    return invoice.get("status") == "paid"


def invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    if details.get("subscription"):
        return resource_id(details["subscription"])
    return resource_id(invoice.get("subscription"))


def _invoice_payments(invoice: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    """Expanded invoice payments, None when the list was not expanded."""
    payments = invoice.get("payments")
    if payments is None:
        return None
    return payments.get("data") or []


def invoice_payment_intent_id(invoice: Dict[str, Any]) -> Optional[str]:
    """Payment intent of the invoice's first recorded payment."""
    for entry in _invoice_payments(invoice) or []:
        payment = entry.get("payment") or {}
        if payment.get("type") == "payment_intent" and payment.get("payment_intent"):
            return resource_id(payment["payment_intent"])
    return resource_id(invoice.get("payment_intent"))


def invoice_charge_id(invoice: Dict[str, Any]) -> Optional[str]:
    """
    Charge recorded on the invoice itself.

    An explicit `chargeId` in the invoice metadata wins over any charge the
    processor attached.
    """
    charge_id = (invoice.get("metadata") or {}).get("chargeId")
    if charge_id:
        return charge_id
    for entry in _invoice_payments(invoice) or []:
        payment = entry.get("payment") or {}
        if payment.get("type") == "charge" and payment.get("charge"):
            return resource_id(payment["charge"])
    return resource_id(invoice.get("charge"))


def invoice_paid_out_of_band(invoice: Dict[str, Any]) -> bool:
    """Paid invoice settled outside the processor, with no recorded payment."""
    if "paid_out_of_band" in invoice:
        return bool(invoice["paid_out_of_band"])
    payments = _invoice_payments(invoice)
    if payments is None or not invoice_is_paid(invoice):
        return False
    return not any(
        (entry.get("payment") or {}).get("type") in ("payment_intent", "charge")
        for entry in payments
    )


def discount_coupon_id(discount: Any) -> Optional[str]:
    """Coupon behind an expanded line item discount."""
    if not isinstance(discount, dict):
        return None
    source = discount.get("source") or {}
    if source.get("coupon"):
        return resource_id(source["coupon"])
    return resource_id(discount.get("coupon"))
