"""API routes."""
from billing_engine.api.routes import gateway, health, products, webhooks_stripe

__all__ = ["gateway", "health", "products", "webhooks_stripe"]
