"""
Users Service: local user identity, coupon tracking, the cached
subscription view and user-facing gateway calls.
"""

import logging
from typing import Any, Dict, List, Optional

from billing_engine.constants import UserType
from billing_engine.errors import CouponNotTrackedError, UserNotFoundError
from billing_engine.integrations.gateways.storage import StorageGatewayClient
from billing_engine.integrations.payments.base import PaymentsClient
from billing_engine.models.user import User
from billing_engine.repositories.coupons_repo import CouponsRepository
from billing_engine.repositories.users_repo import UsersRepository
from billing_engine.services.cache_service import CacheService

logger = logging.getLogger(__name__)


class UsersService:

    def __init__(
        self,
        users_repo: UsersRepository,
        coupons_repo: CouponsRepository,
        storage_gateway: StorageGatewayClient,
        payments: PaymentsClient,
        cache: Optional[CacheService] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.users_repo = users_repo
        self.coupons_repo = coupons_repo
        self.storage_gateway = storage_gateway
        self.payments = payments
        self.cache = cache
        self.logger = logger or logging.getLogger(__name__)

    async def resolve_user_uuid(self, email: Optional[str], customer_id: str) -> str:
        """
        Identity of the purchaser: by email through the drive gateway,
        then by processor customer id in the local store.

        Raises:
            UserNotFoundError: If neither lookup succeeds
        """
        if email:
            drive_user = await self.storage_gateway.find_user_by_email(email.lower())
            if drive_user and drive_user.get("uuid"):
                return drive_user["uuid"]

        user = self.users_repo.find_by_customer_id(customer_id)
        if user is not None:
            return user.uuid

        raise UserNotFoundError(
            f"No user found for customer {customer_id}",
            customer_id=customer_id,
        )

    def upsert_user_by_uuid(self, user_uuid: str, customer_id: str, lifetime: bool) -> User:
        return self.users_repo.upsert_by_uuid(user_uuid, customer_id, lifetime)

    def update_lifetime(self, customer_id: str, lifetime: bool) -> bool:
        return self.users_repo.set_lifetime(customer_id, lifetime)

    async def get_user_subscription(
        self,
        customer_id: str,
        user_type: UserType = UserType.INDIVIDUAL,
    ) -> Dict[str, Any]:
        """Processor subscription view, read through the cache."""
        if self.cache is not None:
            cached = self.cache.get_subscription(customer_id, user_type)
            if cached is not None:
                return cached

        view = await self.payments.get_user_subscription(customer_id, user_type)
        if self.cache is not None:
            self.cache.set_subscription(customer_id, user_type, view)
        return view

    def get_used_coupon_codes(self, user: User) -> List[str]:
        """Coupon codes the user redeemed, read through the cache."""
        if self.cache is not None:
            cached = self.cache.get_used_user_promo_codes(user.customer_id)
            if cached is not None:
                return cached

        codes = self.coupons_repo.find_codes_by_user_id(user.id)
        if self.cache is not None:
            self.cache.set_used_user_promo_codes(user.customer_id, codes)
        return codes

    def store_coupon_used_by_user(self, user: User, coupon_code: str) -> None:
        """
        Record a tracked coupon; a code already recorded is left alone.

        Raises:
            CouponNotTrackedError: If the coupon is not tracked
        """
        if coupon_code in self.get_used_coupon_codes(user):
            return

        coupon = self.coupons_repo.find_by_code(coupon_code)
        if coupon is None:
            raise CouponNotTrackedError(coupon_code)
        self.coupons_repo.record_use(user.id, coupon.id)
        if self.cache is not None:
            self.cache.clear_used_user_promo_codes(user.customer_id)
        self.logger.info(
            "Coupon use recorded",
            extra={"user_uuid": user.uuid, "coupon_code": coupon_code}
        )

    async def notify_failed_payment(self, user_uuid: str) -> None:
        await self.storage_gateway.notify_failed_payment(user_uuid)
