"""
Coupon models.

Only coupons present in `coupons` are tracked; redemptions of tracked
coupons are recorded per user in `users_coupons`.
"""

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint

from billing_engine.models.base import Base, TimestampMixin, generate_uuid


class Coupon(Base, TimestampMixin):
    """A trackable processor coupon."""

    __tablename__ = "coupons"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    code = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Processor coupon id"
    )


class UserCoupon(Base, TimestampMixin):
    """A tracked coupon redeemed by a user."""

    __tablename__ = "users_coupons"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    coupon_id = Column(
        String(36),
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "coupon_id", name="uq_users_coupons_user_coupon"),
    )
