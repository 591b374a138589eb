"""
Invoice payment failed: suspend object storage, notify everyone else.
"""

from typing import Any, Dict, Optional

from billing_engine.constants import UserType
from billing_engine.integrations.payments.resources import invoice_lines, line_item_product_id, resource_id
from billing_engine.services.lifecycle_base import LifecycleHandler, WebhookProcessingResult


class PaymentFailedHandler(LifecycleHandler):

    async def find_object_storage_line(self, invoice: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for line in invoice_lines(invoice):
            product_id = line_item_product_id(line)
            if not product_id:
                continue
            product = await self.payments.get_product(product_id)
            if (product.get("metadata") or {}).get("type") == UserType.OBJECT_STORAGE.value:
                return line
        return None

    async def handle(self, invoice: Dict[str, Any]) -> WebhookProcessingResult:
        customer_id = resource_id(invoice.get("customer"))

        if await self.find_object_storage_line(invoice) is not None:
            await self.components.gateways.object_storage.suspend_account(customer_id)
            return WebhookProcessingResult(processed=True, message="Object storage account suspended")

        user = self.components.users_repo.find_by_customer_id(customer_id)
        if user is None:
            return WebhookProcessingResult(
                processed=False, message="User not found", skipped_reason="user_not_found"
            )

        await self.best_effort.run(
            "notify_failed_payment", self.users_service.notify_failed_payment, user.uuid
        )
        self.logger.info(
            "Payment failure notification sent",
            extra={"customer_id": customer_id, "user_uuid": user.uuid}
        )
        return WebhookProcessingResult(
            processed=True, message="Payment failure notified", user_uuid=user.uuid
        )
