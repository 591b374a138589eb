"""
Wiring for the lifecycle engine.

BillingComponents bundles every collaborator a handler needs. It is
built once per request (repositories are bound to the request's DB
session) from long-lived clients created at process start.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from billing_engine.constants import FREE_PLAN_BYTES_SPACE, VERIFICATION_CHARGE
from billing_engine.entitlements.overrides import UserFeatureOverridesService
from billing_engine.entitlements.service import EntitlementResolver
from billing_engine.integrations.gateways.object_storage import ObjectStorageClient
from billing_engine.integrations.gateways.storage import (
    LegacyDriveGatewayClient,
    StorageGatewayClient,
)
from billing_engine.integrations.gateways.vpn import VpnGatewayClient
from billing_engine.integrations.payments.base import PaymentsClient
from billing_engine.repositories.coupons_repo import CouponsRepository
from billing_engine.repositories.feature_overrides_repo import FeatureOverridesRepository
from billing_engine.repositories.tiers_repo import TiersRepository
from billing_engine.repositories.user_tiers_repo import UserTiersRepository
from billing_engine.repositories.users_repo import UsersRepository
from billing_engine.services.best_effort import BestEffortRunner
from billing_engine.services.cache_service import CacheService
from billing_engine.services.lifetime_stacking import LifetimeStackingResolver
from billing_engine.services.tiers_service import TiersService
from billing_engine.services.users_service import UsersService


@dataclass
class Gateways:
    """Long-lived outbound HTTP clients."""
    storage: StorageGatewayClient
    legacy_drive: LegacyDriveGatewayClient
    vpn: VpnGatewayClient
    object_storage: ObjectStorageClient

    async def close(self) -> None:
        for client in (self.storage, self.legacy_drive, self.vpn, self.object_storage):
            await client.close()


@dataclass
class BillingComponents:
    payments: PaymentsClient
    gateways: Gateways
    cache: CacheService
    best_effort: BestEffortRunner
    users_repo: UsersRepository
    tiers_service: TiersService
    users_service: UsersService
    lifetime_stacking: LifetimeStackingResolver
    entitlements: EntitlementResolver
    feature_overrides: UserFeatureOverridesService
    free_plan_bytes: int = FREE_PLAN_BYTES_SPACE
    verification_charge: int = VERIFICATION_CHARGE


def build_components(
    db_session: Session,
    payments: PaymentsClient,
    gateways: Gateways,
    cache: CacheService,
    best_effort: Optional[BestEffortRunner] = None,
    free_plan_bytes: int = FREE_PLAN_BYTES_SPACE,
    verification_charge: int = VERIFICATION_CHARGE,
    logger: Optional[logging.Logger] = None,
) -> BillingComponents:
    best_effort = best_effort or BestEffortRunner()
    users_repo = UsersRepository(db_session)
    overrides_repo = FeatureOverridesRepository(db_session)

    tiers_service = TiersService(
        TiersRepository(db_session),
        UserTiersRepository(db_session),
        gateways.storage,
        gateways.vpn,
        free_plan_bytes=free_plan_bytes,
        logger=logger,
    )
    users_service = UsersService(
        users_repo,
        CouponsRepository(db_session),
        gateways.storage,
        payments,
        cache=cache,
        logger=logger,
    )

    return BillingComponents(
        payments=payments,
        gateways=gateways,
        cache=cache,
        best_effort=best_effort,
        users_repo=users_repo,
        tiers_service=tiers_service,
        users_service=users_service,
        lifetime_stacking=LifetimeStackingResolver(
            payments,
            tiers_service,
            users_service,
            best_effort=best_effort,
            free_plan_bytes=free_plan_bytes,
            logger=logger,
        ),
        entitlements=EntitlementResolver(
            users_repo, tiers_service, overrides_repo, cache=cache, logger=logger
        ),
        feature_overrides=UserFeatureOverridesService(users_repo, overrides_repo, cache=cache),
        free_plan_bytes=free_plan_bytes,
        verification_charge=verification_charge,
    )
