"""
UserTier model: many-to-many link between users and tiers.

Reads are ordered by (linked_at, id). That order is the "first-seen"
order used by every first-match tiebreak in entitlement merging.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, UniqueConstraint

from billing_engine.models.base import Base, generate_uuid, utc_now


class UserTier(Base):
    """A tier currently attached to a user."""

    __tablename__ = "users_tiers"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    tier_id = Column(
        String(36),
        ForeignKey("tiers.id", ondelete="RESTRICT"),
        nullable=False,
    )
    linked_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        comment="Ordering key for first-seen tiebreaks"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "tier_id", name="uq_users_tiers_user_tier"),
        Index("ix_users_tiers_user_linked", "user_id", "linked_at"),
    )

    def __repr__(self) -> str:
        return f"<UserTier(user_id={self.user_id}, tier_id={self.tier_id})>"
