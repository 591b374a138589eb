"""Payments-processor port and its Stripe adapter."""

from billing_engine.integrations.payments.base import PaymentsClient
from billing_engine.integrations.payments.exceptions import PaymentsError, PaymentsNotFoundError
from billing_engine.integrations.payments.resources import STRIPE_API_VERSION
from billing_engine.integrations.payments.stripe_client import StripePaymentsClient, construct_event

__all__ = [
    "PaymentsClient",
    "PaymentsError",
    "PaymentsNotFoundError",
    "STRIPE_API_VERSION",
    "StripePaymentsClient",
    "construct_event",
]
