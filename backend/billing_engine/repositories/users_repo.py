"""
Users Repository: local user records keyed by uuid and customer id.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from billing_engine.models.user import User

logger = logging.getLogger(__name__)


class UsersRepository:
    """Find-or-create access to local users."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def find_by_uuid(self, uuid: str) -> Optional[User]:
        return self.db.query(User).filter(User.uuid == uuid).first()

    def find_by_customer_id(self, customer_id: str) -> Optional[User]:
        return self.db.query(User).filter(
            User.customer_id == customer_id
        ).order_by(User.created_at.asc(), User.id.asc()).first()

    def upsert_by_uuid(self, uuid: str, customer_id: str, lifetime: bool) -> User:
        """
        Create the user or update its customer id and lifetime flag.

        Read-then-write so replays converge on the same row.
        """
        user = self.find_by_uuid(uuid)
        if user is None:
            user = User(uuid=uuid, customer_id=customer_id, lifetime=lifetime)
            self.db.add(user)
        else:
            user.customer_id = customer_id
            user.lifetime = lifetime

        try:
            self.db.commit()
        except IntegrityError:
            # Another delivery created the row first
            self.db.rollback()
            user = self.find_by_uuid(uuid)
            user.customer_id = customer_id
            user.lifetime = lifetime
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to upsert user", extra={"user_uuid": uuid, "error": str(e)})
            raise

        self.db.refresh(user)
        return user

    def set_lifetime(self, customer_id: str, lifetime: bool) -> bool:
        """
        Update the lifetime flag of the user owning a customer id.

        Returns:
            False if no user matched
        """
        user = self.find_by_customer_id(customer_id)
        if user is None:
            return False
        user.lifetime = lifetime
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to update lifetime flag",
                extra={"customer_id": customer_id, "error": str(e)}
            )
            raise
        return True
