"""
Funds captured: manual-capture verification for object storage.

A card is verified with a small hold. Once it is authorized the hold is
canceled, the real subscription created and the account provisioned.
"""

from typing import Any, Dict

from billing_engine.constants import SubscriptionKind, UserType
from billing_engine.errors import BadRequestError, ConflictError, CustomerGoneError
from billing_engine.integrations.gateways.exceptions import GatewayConflictError
from billing_engine.services.invoice_context import resource_id
from billing_engine.services.lifecycle_base import LifecycleHandler, WebhookProcessingResult


class FundsCapturedHandler(LifecycleHandler):

    def should_skip(self, payment_intent: Dict[str, Any]) -> bool:
        metadata = payment_intent.get("metadata") or {}
        return (
            metadata.get("type") != UserType.OBJECT_STORAGE.value
            or not metadata.get("priceId")
            or payment_intent.get("amount_received") == self.components.verification_charge
        )

    async def handle(self, payment_intent: Dict[str, Any]) -> WebhookProcessingResult:
        """
        Raises:
            CustomerGoneError: The customer was deleted
            BadRequestError: The customer has no email
            ConflictError: The object storage account already exists
        """
        if self.should_skip(payment_intent):
            return WebhookProcessingResult(
                processed=False,
                message="Not an object storage verification",
                skipped_reason="not_object_storage",
            )

        customer_id = resource_id(payment_intent.get("customer"))
        customer = await self.payments.get_customer(customer_id)
        if customer.get("deleted"):
            raise CustomerGoneError(f"Customer {customer_id} has been deleted", customer_id=customer_id)
        email = customer.get("email")
        if not email:
            raise BadRequestError(f"Customer {customer_id} has no email", customer_id=customer_id)

        self.logger.info(
            "Initializing object storage",
            extra={"customer_id": customer_id, "payment_intent_id": payment_intent.get("id")}
        )

        if payment_intent.get("status") != "canceled":
            await self.payments.cancel_payment_intent(payment_intent["id"])

        view = await self.payments.get_user_subscription(customer_id, UserType.OBJECT_STORAGE)
        if view.get("type") != SubscriptionKind.SUBSCRIPTION.value:
            await self.payments.create_subscription(
                customer_id,
                payment_intent["metadata"]["priceId"],
                metadata={"type": UserType.OBJECT_STORAGE.value},
            )

        try:
            await self.components.gateways.object_storage.init_object_storage_user(email, customer_id)
        except GatewayConflictError as e:
            self.logger.info(
                "Object storage account already active",
                extra={"customer_id": customer_id}
            )
            raise ConflictError(e.message, customer_id=customer_id) from e

        return WebhookProcessingResult(processed=True, message="Object storage initialized")
