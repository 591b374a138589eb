"""
Tests for LifetimeStackingResolver.

Tests cover:
- Storage stacking across every customer sharing the user's email
- Invoice admission (refunded, disputed, out-of-band, non-lifetime)
- Superseded subscription cancellation
- Highest tier selection
"""

import pytest

from billing_engine.constants import BillingType, PlanType, UserType
from billing_engine.errors import LifetimeStackingError, TierNotFoundError
from billing_engine.integrations.payments.exceptions import PaymentsError

GB = 1000 * 1000 * 1000


@pytest.fixture
def resolver(components):
    return components.lifetime_stacking


@pytest.fixture
def lifetime_price(make_price):
    def _make(product_id: str, max_space_bytes: int) -> dict:
        return make_price(product_id, max_space_bytes, plan_type=PlanType.ONE_TIME)
    return _make


@pytest.fixture
def charges(payments):
    """Register processor charges by id."""
    registry = {}
    payments.get_charge.side_effect = lambda charge_id: registry[charge_id]
    return registry


class TestStackingAcrossCustomers:

    @pytest.mark.asyncio
    async def test_sums_admitted_invoices_of_every_customer(
        self, resolver, payments, charges, make_tier, make_user, make_invoice, lifetime_price, make_price
    ):
        make_tier("prod_1", BillingType.LIFETIME, max_space_bytes=1 * GB)
        two = make_tier("prod_2", BillingType.LIFETIME, max_space_bytes=2 * GB)
        make_tier("prod_5", BillingType.LIFETIME, max_space_bytes=5 * GB)
        user = make_user(customer_id="cus_a", lifetime=True)

        payments.get_customer.return_value = {"id": "cus_a", "email": "user@example.com"}
        payments.get_customers_by_email.return_value = [
            {"id": "cus_a"},
            {"id": "cus_b"},
            {"id": "cus_deleted", "deleted": True},
        ]
        invoices = {
            "cus_a": [make_invoice("cus_a", lifetime_price("prod_1", 1 * GB), charge="ch_1")],
            "cus_b": [
                make_invoice("cus_b", lifetime_price("prod_2", 2 * GB), charge="ch_2"),
                make_invoice("cus_b", lifetime_price("prod_5", 5 * GB), charge="ch_refunded"),
                make_invoice("cus_b", lifetime_price("prod_5", 5 * GB), charge="ch_disputed"),
                make_invoice("cus_b", make_price("prod_sub", 10 * GB), charge="ch_sub"),
            ],
        }
        payments.get_invoices.side_effect = lambda customer_id, limit=100: invoices[customer_id]
        charges.update({
            "ch_1": {"id": "ch_1"},
            "ch_2": {"id": "ch_2"},
            "ch_refunded": {"id": "ch_refunded", "refunded": True},
            "ch_disputed": {"id": "ch_disputed", "disputed": True},
            "ch_sub": {"id": "ch_sub"},
        })

        conditions = await resolver.handle_stacking_lifetime(user)

        assert conditions.max_space_bytes == 3 * GB
        assert conditions.tier.id == two.id
        assert conditions.stacked is True
        fetched = [call.args[0] for call in payments.get_invoices.call_args_list]
        assert fetched == ["cus_a", "cus_b"]

    @pytest.mark.asyncio
    async def test_users_own_customer_is_always_included(
        self, resolver, payments, charges, make_tier, make_user, make_invoice, lifetime_price
    ):
        tier = make_tier("prod_1", BillingType.LIFETIME, max_space_bytes=1 * GB)
        user = make_user(customer_id="cus_a", lifetime=True)
        payments.get_customer.return_value = {"id": "cus_a", "email": "user@example.com"}
        payments.get_customers_by_email.return_value = []
        payments.get_invoices.return_value = [
            make_invoice("cus_a", lifetime_price("prod_1", 1 * GB), charge="ch_1"),
        ]
        charges["ch_1"] = {"id": "ch_1"}

        conditions = await resolver.handle_stacking_lifetime(user)

        assert conditions.max_space_bytes == 1 * GB
        assert conditions.tier.id == tier.id

    @pytest.mark.asyncio
    async def test_current_lifetime_tier_kept_when_larger(
        self, resolver, payments, charges, make_tier, make_user, link_tier, make_invoice, lifetime_price
    ):
        big = make_tier("prod_10", BillingType.LIFETIME, max_space_bytes=10 * GB)
        make_tier("prod_1", BillingType.LIFETIME, max_space_bytes=1 * GB)
        user = make_user(customer_id="cus_a", lifetime=True)
        link_tier(user, big)
        payments.get_customer.return_value = {"id": "cus_a", "email": "user@example.com"}
        payments.get_invoices.return_value = [
            make_invoice("cus_a", lifetime_price("prod_1", 1 * GB), charge="ch_1"),
        ]
        charges["ch_1"] = {"id": "ch_1"}

        conditions = await resolver.handle_stacking_lifetime(user)

        assert conditions.tier.id == big.id
        assert conditions.max_space_bytes == 1 * GB

    @pytest.mark.asyncio
    async def test_no_tier_at_all_raises(self, resolver, payments, make_user):
        user = make_user(customer_id="cus_a", lifetime=True)
        payments.get_customer.return_value = {"id": "cus_a", "email": "user@example.com"}

        with pytest.raises(LifetimeStackingError):
            await resolver.handle_stacking_lifetime(user)

    @pytest.mark.asyncio
    async def test_deleted_customer_raises(self, resolver, payments, make_user):
        user = make_user(customer_id="cus_a", lifetime=True)
        payments.get_customer.return_value = {"id": "cus_a", "deleted": True}

        with pytest.raises(LifetimeStackingError):
            await resolver.handle_stacking_lifetime(user)

    @pytest.mark.asyncio
    async def test_failed_charge_lookup_fails_the_resolution(
        self, resolver, payments, make_tier, make_user, make_invoice, lifetime_price
    ):
        make_tier("prod_1", BillingType.LIFETIME, max_space_bytes=1 * GB)
        user = make_user(customer_id="cus_a", lifetime=True)
        payments.get_customer.return_value = {"id": "cus_a", "email": "user@example.com"}
        payments.get_invoices.return_value = [
            make_invoice("cus_a", lifetime_price("prod_1", 1 * GB), charge="ch_1"),
            make_invoice("cus_a", lifetime_price("prod_1", 1 * GB), charge="ch_2"),
        ]
        payments.get_charge.side_effect = PaymentsError("processor unavailable", status_code=503)

        with pytest.raises(PaymentsError):
            await resolver.handle_stacking_lifetime(user)


class TestInvoiceAdmission:

    @pytest.mark.asyncio
    async def test_out_of_band_invoice_without_charge_is_admitted(self, resolver, make_invoice, lifetime_price):
        invoice = make_invoice("cus_a", lifetime_price("prod_1", GB), paid_out_of_band=True)

        assert await resolver.admit_invoice("cus_a", invoice) is True

    @pytest.mark.asyncio
    async def test_invoice_without_charge_or_out_of_band_is_rejected(self, resolver, make_invoice, lifetime_price):
        invoice = make_invoice("cus_a", lifetime_price("prod_1", GB))

        assert await resolver.admit_invoice("cus_a", invoice) is False

    @pytest.mark.asyncio
    async def test_charge_id_from_metadata_takes_precedence(
        self, resolver, charges, make_invoice, lifetime_price
    ):
        invoice = make_invoice("cus_a", lifetime_price("prod_1", GB), charge="ch_refunded")
        invoice["metadata"] = {"chargeId": "ch_ok"}
        charges.update({"ch_ok": {"id": "ch_ok"}, "ch_refunded": {"id": "ch_refunded", "refunded": True}})

        assert await resolver.admit_invoice("cus_a", invoice) is True

    @pytest.mark.asyncio
    async def test_unpaid_and_subscription_invoices_are_rejected(
        self, resolver, payments, make_invoice, lifetime_price, make_price
    ):
        unpaid = make_invoice("cus_a", lifetime_price("prod_1", GB), status="open", paid_out_of_band=True)
        subscription = make_invoice("cus_a", make_price("prod_1", GB), paid_out_of_band=True)

        assert await resolver.admit_invoice("cus_a", unpaid) is False
        assert await resolver.admit_invoice("cus_a", subscription) is False
        payments.get_charge.assert_not_called()

    @pytest.mark.asyncio
    async def test_invoice_without_price_metadata_is_rejected(self, resolver, make_invoice):
        invoice = make_invoice("cus_a", {"id": "price_1", "product": "prod_1"}, paid_out_of_band=True)

        assert await resolver.admit_invoice("cus_a", invoice) is False

    @pytest.mark.asyncio
    async def test_charge_is_reached_through_the_payment_intent(
        self, resolver, payments, charges, make_invoice, lifetime_price
    ):
        invoice = make_invoice("cus_a", lifetime_price("prod_1", GB), charge="ch_1")
        charges["ch_1"] = {"id": "ch_1", "refunded": True}

        assert await resolver.admit_invoice("cus_a", invoice) is False
        payments.get_payment_intent.assert_awaited_once_with("pi_ch_1")
        payments.get_charge.assert_awaited_once_with("ch_1")

    @pytest.mark.asyncio
    async def test_older_invoice_payload_is_admitted(self, resolver, payments, charges, lifetime_price):
        invoice = {
            "id": "in_old",
            "status": "paid",
            "paid": True,
            "customer": "cus_a",
            "charge": "ch_1",
            "lines": {"data": [{"price": lifetime_price("prod_1", GB), "quantity": 1}]},
        }
        charges["ch_1"] = {"id": "ch_1"}

        assert await resolver.admit_invoice("cus_a", invoice) is True
        payments.get_price.assert_not_called()
        payments.get_payment_intent.assert_not_called()


class TestDetermine:

    @pytest.mark.asyncio
    async def test_free_user_gets_tier_storage(self, resolver, payments, make_tier, make_user):
        tier = make_tier("prod_life", BillingType.LIFETIME, max_space_bytes=2 * GB)
        user = make_user(customer_id="cus_a")

        conditions = await resolver.determine(user, "prod_life")

        assert conditions.tier.id == tier.id
        assert conditions.max_space_bytes == 2 * GB
        assert conditions.stacked is False
        payments.cancel_subscription.assert_not_called()

    @pytest.mark.asyncio
    async def test_subscriber_subscription_is_canceled(self, resolver, payments, make_tier, make_user):
        make_tier("prod_life", BillingType.LIFETIME, max_space_bytes=2 * GB)
        user = make_user(customer_id="cus_a")
        payments.get_user_subscription.return_value = {
            "type": "subscription",
            "subscriptionId": "sub_1",
            "priceId": "price_1",
            "productId": "prod_sub",
        }

        await resolver.determine(user, "prod_life")

        payments.cancel_subscription.assert_awaited_once_with("sub_1")

    @pytest.mark.asyncio
    async def test_cancellation_failure_does_not_fail_the_purchase(self, resolver, payments, make_tier, make_user):
        make_tier("prod_life", BillingType.LIFETIME, max_space_bytes=2 * GB)
        user = make_user(customer_id="cus_a")
        payments.get_user_subscription.return_value = {"type": "subscription", "subscriptionId": "sub_1"}
        payments.cancel_subscription.side_effect = PaymentsError("already canceled", status_code=400)

        conditions = await resolver.determine(user, "prod_life")

        assert conditions.max_space_bytes == 2 * GB

    @pytest.mark.asyncio
    async def test_product_without_lifetime_tier_raises(self, resolver, make_tier, make_user):
        make_tier("prod_sub", BillingType.SUBSCRIPTION, max_space_bytes=2 * GB)

        with pytest.raises(TierNotFoundError):
            await resolver.determine(make_user(), "prod_sub")

    @pytest.mark.asyncio
    async def test_cached_subscription_view_is_used(self, resolver, payments, cache, make_tier, make_user):
        make_tier("prod_life", BillingType.LIFETIME, max_space_bytes=2 * GB)
        user = make_user(customer_id="cus_a")
        cache.set_subscription("cus_a", UserType.INDIVIDUAL, {"type": "subscription", "subscriptionId": "sub_cached"})

        await resolver.determine(user, "prod_life")

        payments.get_user_subscription.assert_not_called()
        payments.cancel_subscription.assert_awaited_once_with("sub_cached")
