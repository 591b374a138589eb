"""
Tests for UsersService.

Tests cover:
- Subscription view read through the cache
- Used coupon codes read through the cache
- Coupon tracking (repeats, untracked codes)
- Purchaser identity resolution
"""

from unittest.mock import MagicMock

import pytest

from billing_engine.constants import UserType
from billing_engine.errors import CouponNotTrackedError, UserNotFoundError
from billing_engine.models.coupon import Coupon


@pytest.fixture
def users_service(components):
    return components.users_service


@pytest.fixture
def tracked_coupon(db_session):
    coupon = Coupon(code="SPRING")
    db_session.add(coupon)
    db_session.commit()
    return coupon


class TestSubscriptionView:

    @pytest.mark.asyncio
    async def test_view_is_fetched_once_and_cached(self, users_service, payments, cache):
        payments.get_user_subscription.return_value = {"type": "subscription", "subscriptionId": "sub_1"}

        first = await users_service.get_user_subscription("cus_1", UserType.INDIVIDUAL)
        second = await users_service.get_user_subscription("cus_1", UserType.INDIVIDUAL)

        assert first == second == {"type": "subscription", "subscriptionId": "sub_1"}
        payments.get_user_subscription.assert_awaited_once_with("cus_1", UserType.INDIVIDUAL)
        assert cache.get_subscription("cus_1", UserType.INDIVIDUAL) == first

    @pytest.mark.asyncio
    async def test_views_are_cached_per_user_type(self, users_service, payments):
        await users_service.get_user_subscription("cus_1", UserType.INDIVIDUAL)
        await users_service.get_user_subscription("cus_1", UserType.BUSINESS)

        assert payments.get_user_subscription.await_count == 2

    @pytest.mark.asyncio
    async def test_cleared_view_is_fetched_again(self, users_service, payments, cache):
        await users_service.get_user_subscription("cus_1")
        cache.clear_subscription("cus_1")
        await users_service.get_user_subscription("cus_1")

        assert payments.get_user_subscription.await_count == 2


class TestCoupons:

    def test_used_codes_are_cached(self, users_service, cache, make_user, tracked_coupon):
        user = make_user(customer_id="cus_1")
        users_service.coupons_repo.record_use(user.id, tracked_coupon.id)

        assert users_service.get_used_coupon_codes(user) == ["SPRING"]
        assert cache.get_used_user_promo_codes("cus_1") == ["SPRING"]

    def test_cached_codes_are_served_without_the_store(self, users_service, cache, make_user):
        user = make_user(customer_id="cus_1")
        cache.set_used_user_promo_codes("cus_1", ["CACHED"])
        users_service.coupons_repo = MagicMock(wraps=users_service.coupons_repo)

        assert users_service.get_used_coupon_codes(user) == ["CACHED"]
        users_service.coupons_repo.find_codes_by_user_id.assert_not_called()

    def test_recording_a_coupon_clears_the_cached_codes(self, users_service, cache, make_user, tracked_coupon):
        user = make_user(customer_id="cus_1")
        assert users_service.get_used_coupon_codes(user) == []

        users_service.store_coupon_used_by_user(user, "SPRING")

        assert cache.get_used_user_promo_codes("cus_1") is None
        assert users_service.get_used_coupon_codes(user) == ["SPRING"]

    def test_already_used_code_is_not_recorded_again(self, users_service, cache, make_user, tracked_coupon):
        user = make_user(customer_id="cus_1")
        users_service.store_coupon_used_by_user(user, "SPRING")
        users_service.coupons_repo = MagicMock(wraps=users_service.coupons_repo)

        users_service.store_coupon_used_by_user(user, "SPRING")

        users_service.coupons_repo.record_use.assert_not_called()
        assert users_service.get_used_coupon_codes(user) == ["SPRING"]

    def test_untracked_coupon_raises(self, users_service, make_user):
        user = make_user(customer_id="cus_1")

        with pytest.raises(CouponNotTrackedError):
            users_service.store_coupon_used_by_user(user, "UNKNOWN")


class TestResolveUserUuid:

    @pytest.mark.asyncio
    async def test_email_lookup_wins(self, users_service, gateways, make_user):
        make_user("local-uuid", "cus_1")
        gateways.storage.find_user_by_email.return_value = {"uuid": "drive-uuid"}

        assert await users_service.resolve_user_uuid("User@Example.com", "cus_1") == "drive-uuid"
        gateways.storage.find_user_by_email.assert_awaited_once_with("user@example.com")

    @pytest.mark.asyncio
    async def test_falls_back_to_customer_id(self, users_service, make_user):
        make_user("local-uuid", "cus_1")

        assert await users_service.resolve_user_uuid("user@example.com", "cus_1") == "local-uuid"

    @pytest.mark.asyncio
    async def test_unknown_purchaser_raises(self, users_service):
        with pytest.raises(UserNotFoundError):
            await users_service.resolve_user_uuid(None, "cus_missing")
