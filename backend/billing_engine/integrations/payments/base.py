"""
Payments-processor read/write port consumed by the lifecycle engine.

Processor objects are passed around as plain dicts shaped like the
processor's API resources (invoice, customer, charge, ...). Parsing into
typed values happens once, at the engine boundary
(see services/invoice_context.py).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from billing_engine.constants import UserType


class PaymentsClient(ABC):
    """Operations the engine needs from the payments processor."""

    @abstractmethod
    async def get_customer(self, customer_id: str) -> Dict[str, Any]:
        """Customer by id; deleted customers carry `deleted: True`."""

    @abstractmethod
    async def get_customers_by_email(self, email: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def get_invoices(self, customer_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Invoices of a customer, with their line items' prices."""

    @abstractmethod
    async def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get_invoice_line_items(self, invoice_id: str) -> List[Dict[str, Any]]:
        """Line items with `price.product` and `discounts` expanded."""

    @abstractmethod
    async def get_product(self, product_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get_price(self, price_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get_charge(self, charge_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get_user_subscription(
        self,
        customer_id: str,
        user_type: UserType = UserType.INDIVIDUAL,
    ) -> Dict[str, Any]:
        """
        Live subscription view.

        Returns {"type": "free"} when there is no active subscription of
        `user_type`, otherwise {"type": "subscription", "subscriptionId",
        "priceId", "productId"}.
        """

    @abstractmethod
    async def cancel_subscription(self, subscription_id: str) -> None:
        ...

    @abstractmethod
    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def cancel_payment_intent(self, payment_intent_id: str) -> None:
        ...

    @abstractmethod
    async def get_invoice_id_for_payment_intent(self, payment_intent_id: str) -> Optional[str]:
        """Invoice paid by a payment intent, None when it paid no invoice."""

    @abstractmethod
    async def mark_invoice_paid(self, invoice_id: str) -> None:
        """Mark an invoice as paid out of band."""
