"""
Payments-processor webhook endpoint.

SECURITY: every event MUST pass signature verification before the
lifecycle engine sees it.

Errors from critical steps propagate as non-2xx responses so the
processor redelivers the event. Every transition is idempotent.
"""

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from billing_engine.api.dependencies import AppClients, get_clients, get_components
from billing_engine.integrations.payments.stripe_client import construct_event
from billing_engine.services.components import BillingComponents
from billing_engine.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Standard webhook response."""
    received: bool = True
    status: str = "processed"
    message: Optional[str] = None


@router.post("/webhook", response_model=WebhookResponse)
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    clients: AppClients = Depends(get_clients),
    components: BillingComponents = Depends(get_components),
):
    webhook_secret = clients.settings.stripe_webhook_secret
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook handler not configured",
        )

    body = await request.body()

    if not stripe_signature:
        logger.warning("Webhook received without signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        event = construct_event(body, stripe_signature, webhook_secret)
    except stripe.SignatureVerificationError:
        logger.warning("Webhook signature verification failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )
    except ValueError as e:
        logger.error(f"Invalid JSON in webhook payload: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload",
        )

    logger.info(
        "Received webhook",
        extra={"event_type": event.get("type"), "event_id": event.get("id")}
    )

    result = await WebhookDispatcher(components).dispatch(event)

    logger.info(
        "Processed webhook",
        extra={
            "event_type": result.event_type,
            "processed": result.processed,
            "skipped_reason": result.skipped_reason,
        }
    )

    return WebhookResponse(
        received=True,
        status="processed" if result.processed else "skipped",
        message=result.message,
    )
