"""
UserFeatureOverride model: manual per-user, per-service overrides.

Granted out-of-band by support tooling and independent of billing events.
Overrides survive tier changes.
"""

from sqlalchemy import JSON, Column, String

from billing_engine.models.base import Base, TimestampMixin, generate_uuid


class UserFeatureOverride(Base, TimestampMixin):
    """
    features_per_service is a partial mapping:
        {"antivirus": {"enabled": true}, "backups": {"enabled": true}}
    """

    __tablename__ = "user_feature_overrides"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    user_id = Column(
        String(36),
        nullable=False,
        unique=True,
        index=True,
    )
    features_per_service = Column(
        JSON,
        nullable=False,
        default=dict,
    )

    def __repr__(self) -> str:
        return f"<UserFeatureOverride(user_id={self.user_id})>"
