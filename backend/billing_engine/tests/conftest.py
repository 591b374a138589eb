"""
Root test configuration and fixtures.

Provides:
- db_engine / db_session: SQLite in-memory database, fresh per test
- make_tier / make_user / link_tier: catalog and user factories
- payments / gateways: MagicMock collaborators (async methods are AsyncMock)
- cache / best_effort / components: the wired engine
- processor_objects: prices and payment intents served by the payments mock
- make_price / make_invoice: processor payload builders
"""

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Generator
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")

from billing_engine.constants import (
    BillingType,
    FREE_PLAN_BYTES_SPACE,
    FREE_TIER_PRODUCT_ID,
    PlanType,
    UserType,
)
from billing_engine.db_base import Base
from billing_engine.integrations.gateways.object_storage import ObjectStorageClient
from billing_engine.integrations.gateways.storage import LegacyDriveGatewayClient, StorageGatewayClient
from billing_engine.integrations.gateways.vpn import VpnGatewayClient
from billing_engine.integrations.payments.base import PaymentsClient
from billing_engine.models.tier import Tier
from billing_engine.models.user import User
from billing_engine.models.user_tier import UserTier
from billing_engine.services.best_effort import BestEffortRunner
from billing_engine.services.cache_service import CacheService, RedisClient
from billing_engine.services.components import Gateways, build_components

GB = 1000 * 1000 * 1000


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_engine():
    """SQLite in-memory engine with every model table created."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    import billing_engine.models  # noqa: F401 - registers model metadata

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


# =============================================================================
# Catalog and users
# =============================================================================

def tier_features(
    max_space_bytes: int = 0,
    business: bool = False,
    max_space_bytes_per_seat: int = 0,
    vpn_feature_id: str = None,
    addresses_per_user: int = None,
    pax_per_call: int = None,
    antivirus: bool = False,
    backups: bool = False,
    cleaner: bool = False,
) -> dict:
    features = {
        "drive": {
            "enabled": True,
            "maxSpaceBytes": max_space_bytes,
            "workspaces": {
                "enabled": business,
                "minimumSeats": 3 if business else 0,
                "maximumSeats": 100 if business else 0,
                "maxSpaceBytesPerSeat": max_space_bytes_per_seat,
            },
        },
        "antivirus": {"enabled": antivirus},
        "backups": {"enabled": backups},
        "cleaner": {"enabled": cleaner},
    }
    if vpn_feature_id:
        features["vpn"] = {"enabled": True, "featureId": vpn_feature_id}
    if addresses_per_user is not None:
        features["mail"] = {"enabled": True, "addressesPerUser": addresses_per_user}
    if pax_per_call is not None:
        features["meet"] = {"enabled": True, "paxPerCall": pax_per_call}
    return features


@pytest.fixture
def make_tier(db_session):
    """Factory persisting a tier. Extra kwargs go to tier_features()."""
    def _make(product_id: str, billing_type: BillingType = BillingType.SUBSCRIPTION, label: str = None, **kwargs) -> Tier:
        tier = Tier(
            product_id=product_id,
            label=label or product_id,
            billing_type=BillingType(billing_type).value,
            features_per_service=tier_features(**kwargs),
        )
        db_session.add(tier)
        db_session.commit()
        return tier
    return _make


@pytest.fixture
def build_tier():
    """Factory for unsaved tiers with explicit ids, for pure merge tests."""
    def _build(tier_id: str, billing_type: BillingType = BillingType.SUBSCRIPTION, **kwargs) -> Tier:
        return Tier(
            id=tier_id,
            product_id=f"prod_{tier_id}",
            label=tier_id,
            billing_type=BillingType(billing_type).value,
            features_per_service=tier_features(**kwargs),
        )
    return _build


@pytest.fixture
def free_tier(make_tier) -> Tier:
    return make_tier(FREE_TIER_PRODUCT_ID, label="Free", max_space_bytes=FREE_PLAN_BYTES_SPACE)


@pytest.fixture
def make_user(db_session):
    def _make(user_uuid: str = None, customer_id: str = None, lifetime: bool = False) -> User:
        user = User(
            uuid=user_uuid or str(uuid.uuid4()),
            customer_id=customer_id or f"cus_{uuid.uuid4().hex[:10]}",
            lifetime=lifetime,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def link_tier(db_session):
    """Link tiers with strictly increasing linked_at, in call order."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _link(user: User, tier: Tier) -> UserTier:
        counter["n"] += 1
        link = UserTier(user_id=user.id, tier_id=tier.id, linked_at=base + timedelta(seconds=counter["n"]))
        db_session.add(link)
        db_session.commit()
        return link
    return _link


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def payments():
    """Processor client; every method is an AsyncMock."""
    client = MagicMock(spec=PaymentsClient)
    client.get_user_subscription.return_value = {"type": "free"}
    client.get_customers_by_email.return_value = []
    client.get_invoices.return_value = []
    client.get_invoice_line_items.return_value = []
    client.get_invoice_id_for_payment_intent.return_value = None
    return client


@pytest.fixture
def gateways():
    storage = MagicMock(spec=StorageGatewayClient)
    storage.find_user_by_email.return_value = None
    return Gateways(
        storage=storage,
        legacy_drive=MagicMock(spec=LegacyDriveGatewayClient),
        vpn=MagicMock(spec=VpnGatewayClient),
        object_storage=MagicMock(spec=ObjectStorageClient),
    )


@pytest.fixture
def cache() -> CacheService:
    """In-memory cache (no REDIS_URL)."""
    return CacheService(RedisClient())


@pytest.fixture
def best_effort() -> BestEffortRunner:
    return BestEffortRunner()


@pytest.fixture
def components(db_session, payments, gateways, cache, best_effort):
    return build_components(db_session, payments, gateways, cache, best_effort=best_effort)


# =============================================================================
# Processor payloads
# =============================================================================

@pytest.fixture
def make_price():
    def _make(
        product_id: str,
        max_space_bytes: int = None,
        plan_type: PlanType = PlanType.SUBSCRIPTION,
        product_type: UserType = UserType.INDIVIDUAL,
        price_id: str = None,
    ) -> dict:
        metadata = {"planType": PlanType(plan_type).value}
        if max_space_bytes is not None:
            metadata["maxSpaceBytes"] = str(max_space_bytes)
        return {
            "id": price_id or f"price_{uuid.uuid4().hex[:10]}",
            "product": {"id": product_id, "metadata": {"type": UserType(product_type).value}},
            "metadata": metadata,
        }
    return _make


@pytest.fixture
def processor_objects(payments):
    """Prices and payment intents served by id through the payments mock."""
    registry = {"prices": {}, "payment_intents": {}}
    payments.get_price.side_effect = lambda price_id: registry["prices"][price_id]
    payments.get_payment_intent.side_effect = lambda intent_id: registry["payment_intents"][intent_id]
    return registry


@pytest.fixture
def make_invoice(processor_objects):
    """
    Invoice in the pinned API shape: the line names its price by id under
    `pricing.price_details`, and a charge is reached through the expanded
    `payments` list and the payment intent's `latest_charge`.

    Without a charge or paid_out_of_band the payments list is left
    unexpanded.
    """
    def _make(
        customer_id: str,
        price: dict,
        invoice_id: str = None,
        status: str = "paid",
        quantity: int = 1,
        charge: str = None,
        paid_out_of_band: bool = False,
        coupon: str = None,
        extra_lines: int = 0,
    ) -> dict:
        processor_objects["prices"][price["id"]] = price
        product = price.get("product")
        line = {
            "object": "line_item",
            "quantity": quantity,
            "pricing": {
                "type": "price_details",
                "price_details": {
                    "price": price["id"],
                    "product": product.get("id") if isinstance(product, dict) else product,
                },
            },
        }
        if coupon:
            line["discounts"] = [{"id": f"di_{coupon}", "source": {"type": "coupon", "coupon": coupon}}]

        invoice = {
            "id": invoice_id or f"in_{uuid.uuid4().hex[:12]}",
            "object": "invoice",
            "status": status,
            "customer": customer_id,
            "parent": None,
            "metadata": {},
            "lines": {"data": [line] + [dict(line) for _ in range(extra_lines)]},
        }
        if charge:
            intent_id = f"pi_{charge}"
            processor_objects["payment_intents"][intent_id] = {"id": intent_id, "latest_charge": charge}
            invoice["payments"] = {"data": [{
                "id": f"inpay_{charge}",
                "status": "paid",
                "payment": {"type": "payment_intent", "payment_intent": intent_id},
            }]}
        elif paid_out_of_band:
            invoice["payments"] = {"data": []}
        return invoice
    return _make


@pytest.fixture
def processor_invoice(payments):
    """
    Register an invoice with the payments mock so build_invoice_context
    resolves its customer and line items.
    """
    def _register(invoice: dict, email: str = "user@example.com", customer: dict = None) -> dict:
        payments.get_customer.return_value = customer or {
            "id": invoice["customer"],
            "email": email,
            "address": {"line1": "Main St 1"},
            "phone": "+34600000000",
        }
        payments.get_invoice_line_items.return_value = invoice["lines"]["data"]
        return invoice
    return _register
