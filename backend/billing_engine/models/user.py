"""
User model: local projection of an identity known to the payments processor.
"""

from sqlalchemy import Boolean, Column, String

from billing_engine.models.base import Base, TimestampMixin, generate_uuid


class User(Base, TimestampMixin):
    """
    Local user record.

    `lifetime` is sticky: true once a lifetime purchase has been applied,
    and only reverted by a refund / lost dispute downgrade.
    """

    __tablename__ = "users"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    uuid = Column(
        String(36),
        nullable=False,
        unique=True,
        index=True,
        comment="Processor-independent identity"
    )
    customer_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Payments-processor customer id"
    )
    lifetime = Column(
        Boolean,
        nullable=False,
        default=False,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, uuid={self.uuid}, lifetime={self.lifetime})>"
