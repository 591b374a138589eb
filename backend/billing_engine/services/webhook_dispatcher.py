"""
Webhook dispatcher: routes a verified processor event to its transition.

There is no event-id deduplication. Every transition is an idempotent
upsert, so at-least-once and out-of-order delivery converge.
"""

import logging
from typing import Any, Dict, Optional

from billing_engine.constants import WebhookEventType
from billing_engine.services.components import BillingComponents
from billing_engine.services.funds_captured_handler import FundsCapturedHandler
from billing_engine.services.invoice_paid_handler import InvoicePaidHandler
from billing_engine.services.lifecycle_base import WebhookProcessingResult
from billing_engine.services.payment_failed_handler import PaymentFailedHandler
from billing_engine.services.refund_handlers import RefundHandler
from billing_engine.services.subscription_handlers import (
    SubscriptionDeletedHandler,
    SubscriptionUpdatedHandler,
)

logger = logging.getLogger(__name__)


class WebhookDispatcher:

    def __init__(self, components: BillingComponents, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        refunds = RefundHandler(components, self.logger)
        self._routes = {
            WebhookEventType.INVOICE_PAID: InvoicePaidHandler(components, self.logger).handle,
            WebhookEventType.INVOICE_PAYMENT_FAILED: PaymentFailedHandler(components, self.logger).handle,
            WebhookEventType.SUBSCRIPTION_UPDATED: SubscriptionUpdatedHandler(components, self.logger).handle,
            WebhookEventType.SUBSCRIPTION_DELETED: SubscriptionDeletedHandler(components, self.logger).handle,
            WebhookEventType.DISPUTE_CLOSED: refunds.handle_dispute_closed,
            WebhookEventType.CHARGE_REFUNDED: refunds.handle_charge_refunded,
            WebhookEventType.FUNDS_CAPTURED: FundsCapturedHandler(components, self.logger).handle,
        }

    async def dispatch(self, event: Dict[str, Any]) -> WebhookProcessingResult:
        """
        Run the transition for `event`.

        Errors from critical steps propagate so the processor redelivers.
        """
        event_type = event.get("type")
        try:
            route = self._routes[WebhookEventType(event_type)]
        except (ValueError, KeyError):
            self.logger.info("No handler for event", extra={"event_type": event_type})
            return WebhookProcessingResult(
                processed=False,
                message=f"Unhandled event type {event_type}",
                event_type=event_type,
                skipped_reason="unhandled_event_type",
            )

        data_object = (event.get("data") or {}).get("object") or {}
        self.logger.info(
            "Processing webhook event",
            extra={"event_type": event_type, "event_id": event.get("id"), "object_id": data_object.get("id")}
        )
        result = await route(data_object)
        result.event_type = event_type
        return result
