"""Repository layer over the SQLAlchemy models."""

from billing_engine.repositories.tiers_repo import TiersRepository
from billing_engine.repositories.user_tiers_repo import UserTiersRepository
from billing_engine.repositories.feature_overrides_repo import FeatureOverridesRepository
from billing_engine.repositories.users_repo import UsersRepository
from billing_engine.repositories.coupons_repo import CouponsRepository

__all__ = [
    "TiersRepository",
    "UserTiersRepository",
    "FeatureOverridesRepository",
    "UsersRepository",
    "CouponsRepository",
]
