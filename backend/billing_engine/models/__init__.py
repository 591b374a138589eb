"""
Database models for tiers, users, user-tier links, overrides and coupons.
"""

from billing_engine.models.base import TimestampMixin
from billing_engine.models.tier import Tier
from billing_engine.models.user import User
from billing_engine.models.user_tier import UserTier
from billing_engine.models.feature_override import UserFeatureOverride
from billing_engine.models.coupon import Coupon, UserCoupon

__all__ = [
    "TimestampMixin",
    "Tier",
    "User",
    "UserTier",
    "UserFeatureOverride",
    "Coupon",
    "UserCoupon",
]
