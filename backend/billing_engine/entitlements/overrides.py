"""
Manual feature overrides requested by support tooling.

Only boolean services can be overridden. `cli` is accepted and ignored
because it is activated elsewhere.
"""

import logging
from typing import TYPE_CHECKING, Optional

from billing_engine.constants import Service
from billing_engine.errors import BadRequestError, UserNotFoundError
from billing_engine.models.feature_override import UserFeatureOverride
from billing_engine.repositories.feature_overrides_repo import FeatureOverridesRepository
from billing_engine.repositories.users_repo import UsersRepository

if TYPE_CHECKING:
    from billing_engine.services.cache_service import CacheService

logger = logging.getLogger(__name__)

OVERRIDABLE_SERVICES = frozenset({Service.ANTIVIRUS, Service.BACKUPS, Service.CLEANER})
IGNORED_SERVICES = frozenset({Service.CLI})


class UserFeatureOverridesService:

    def __init__(
        self,
        users_repo: UsersRepository,
        overrides_repo: FeatureOverridesRepository,
        cache: Optional["CacheService"] = None,
    ):
        self.users_repo = users_repo
        self.overrides_repo = overrides_repo
        self.cache = cache

    def upsert_custom_user_features(self, user_uuid: str, service: str) -> Optional[UserFeatureOverride]:
        """
        Enable `service` for a user regardless of its tiers.

        Raises:
            UserNotFoundError: Unknown user
            BadRequestError: Service cannot be overridden
        """
        try:
            requested = Service(service)
        except ValueError:
            raise BadRequestError(f"Unknown service {service}", service=service)

        if requested not in OVERRIDABLE_SERVICES and requested not in IGNORED_SERVICES:
            raise BadRequestError(f"Service {service} cannot be overridden", service=service)

        user = self.users_repo.find_by_uuid(user_uuid)
        if user is None:
            raise UserNotFoundError(f"User {user_uuid} not found", user_uuid=user_uuid)

        if requested in IGNORED_SERVICES:
            logger.info("Override request ignored", extra={"user_uuid": user_uuid, "service": service})
            return self.overrides_repo.find_by_user_id(user.id)

        record = self.overrides_repo.upsert(user.id, {requested.value: {"enabled": True}})
        if self.cache is not None:
            self.cache.clear_user_tier(user_uuid)
        return record
