"""
FastAPI dependencies.

Long-lived clients (payments, gateways, cache, best-effort runner) live on
`app.state.clients`, created in the application lifespan. Components bound
to the request's DB session are built per request.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from billing_engine.auth.tokens import TokenVerificationError, verify_gateway_token, verify_user_token
from billing_engine.config import Settings
from billing_engine.database.session import get_db_session
from billing_engine.integrations.gateways.object_storage import ObjectStorageClient
from billing_engine.integrations.gateways.storage import LegacyDriveGatewayClient, StorageGatewayClient
from billing_engine.integrations.gateways.vpn import VpnGatewayClient
from billing_engine.integrations.payments.base import PaymentsClient
from billing_engine.integrations.payments.stripe_client import StripePaymentsClient
from billing_engine.services.best_effort import BestEffortRunner
from billing_engine.services.cache_service import CacheService, RedisClient
from billing_engine.services.components import BillingComponents, Gateways, build_components

logger = logging.getLogger(__name__)


@dataclass
class AppClients:
    settings: Settings
    payments: PaymentsClient
    gateways: Gateways
    cache: CacheService
    best_effort: BestEffortRunner

    async def close(self) -> None:
        await self.best_effort.drain()
        await self.gateways.close()
        self.cache.close()


def create_clients(settings: Settings) -> AppClients:
    """Build the process-wide clients from settings."""
    legacy_auth = None
    if settings.drive_gateway_user and settings.drive_gateway_password:
        legacy_auth = (settings.drive_gateway_user, settings.drive_gateway_password)

    gateways = Gateways(
        storage=StorageGatewayClient(settings.storage_gateway_url, signing_key=settings.storage_gateway_secret),
        legacy_drive=LegacyDriveGatewayClient(settings.drive_gateway_url, basic_auth=legacy_auth),
        vpn=VpnGatewayClient(settings.vpn_gateway_url, signing_key=settings.vpn_gateway_secret),
        object_storage=ObjectStorageClient(settings.object_storage_url, signing_key=settings.object_storage_secret),
    )
    cache = CacheService(
        RedisClient(settings.redis_url),
        subscription_ttl=settings.subscription_cache_ttl,
        used_coupons_ttl=settings.used_coupons_cache_ttl,
        user_tier_ttl=settings.user_tier_cache_ttl,
    )
    return AppClients(
        settings=settings,
        payments=StripePaymentsClient(settings.stripe_secret_key or ""),
        gateways=gateways,
        cache=cache,
        best_effort=BestEffortRunner(),
    )


def get_clients(request: Request) -> AppClients:
    return request.app.state.clients


def get_components(
    clients: AppClients = Depends(get_clients),
    db: Session = Depends(get_db_session),
) -> BillingComponents:
    return build_components(
        db,
        clients.payments,
        clients.gateways,
        clients.cache,
        best_effort=clients.best_effort,
        free_plan_bytes=clients.settings.free_plan_bytes,
        verification_charge=clients.settings.verification_charge_cents,
    )


def require_gateway_token(
    authorization: Optional[str] = Header(None),
    clients: AppClients = Depends(get_clients),
) -> Dict[str, Any]:
    try:
        return verify_gateway_token(authorization, clients.settings.gateway_public_key)
    except TokenVerificationError as e:
        logger.warning("Gateway token rejected", extra={"error_code": e.error_code})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)


def require_user_uuid(
    authorization: Optional[str] = Header(None),
    clients: AppClients = Depends(get_clients),
) -> str:
    try:
        return verify_user_token(authorization, clients.settings.jwt_secret)
    except TokenVerificationError as e:
        logger.warning("User token rejected", extra={"error_code": e.error_code})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
