"""Liveness endpoint."""

from fastapi import APIRouter, Depends

from billing_engine.api.dependencies import AppClients, get_clients

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(clients: AppClients = Depends(get_clients)):
    return {
        "status": "healthy",
        "redis_available": clients.cache.redis_available,
        "webhook_secret_configured": bool(clients.settings.stripe_webhook_secret),
    }
