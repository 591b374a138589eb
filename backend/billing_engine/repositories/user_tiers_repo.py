"""
User-Tier Relation Repository.

Rows are written exclusively by the subscription lifecycle engine.
`update` and `delete` return False when no row matched; that is a normal
outcome callers branch on (insert-vs-update), not an error.
"""

import logging
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from billing_engine.models.user_tier import UserTier

logger = logging.getLogger(__name__)


class UserTiersRepository:
    """CRUD over the users_tiers join table."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def _commit(self, operation: str, **context) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "User-tier write failed",
                extra={"operation": operation, "error": str(e), **context}
            )
            raise

    def _find(self, user_id: str, tier_id: str):
        return self.db.query(UserTier).filter(
            UserTier.user_id == user_id,
            UserTier.tier_id == tier_id,
        ).first()

    def insert(self, user_id: str, tier_id: str) -> UserTier:
        """
        Attach a tier to a user.

        Inserting an existing (user, tier) pair returns the existing link.
        """
        existing = self._find(user_id, tier_id)
        if existing is not None:
            return existing

        link = UserTier(user_id=user_id, tier_id=tier_id)
        self.db.add(link)
        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent insert of the same pair won the race
            self.db.rollback()
            return self._find(user_id, tier_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "User-tier write failed",
                extra={"operation": "insert", "error": str(e), "user_id": user_id, "tier_id": tier_id}
            )
            raise

        logger.info("Tier attached to user", extra={"user_id": user_id, "tier_id": tier_id})
        return link

    def update(self, user_id: str, old_tier_id: str, new_tier_id: str) -> bool:
        """
        Replace old_tier_id with new_tier_id for a user.

        When the user already holds new_tier_id, the old link is dropped
        instead so the pair stays unique.

        Returns:
            False if the user had no link to old_tier_id
        """
        old_link = self._find(user_id, old_tier_id)
        if old_link is None:
            return False

        if old_tier_id == new_tier_id:
            return True

        if self._find(user_id, new_tier_id) is not None:
            self.db.delete(old_link)
        else:
            old_link.tier_id = new_tier_id

        self._commit("update", user_id=user_id, tier_id=new_tier_id)
        logger.info(
            "User tier replaced",
            extra={"user_id": user_id, "old_tier_id": old_tier_id, "new_tier_id": new_tier_id}
        )
        return True

    def delete(self, user_id: str, tier_id: str) -> bool:
        """
        Detach a tier from a user.

        Returns:
            False if no link matched
        """
        deleted = self.db.query(UserTier).filter(
            UserTier.user_id == user_id,
            UserTier.tier_id == tier_id,
        ).delete(synchronize_session=False)
        self._commit("delete", user_id=user_id, tier_id=tier_id)
        return deleted > 0

    def delete_all(self, user_id: str) -> int:
        """Detach every tier from a user."""
        deleted = self.db.query(UserTier).filter(
            UserTier.user_id == user_id
        ).delete(synchronize_session=False)
        self._commit("delete_all", user_id=user_id)
        return deleted

    def find_by_user_id(self, user_id: str) -> List[UserTier]:
        """Links for a user in first-seen order."""
        return self.db.query(UserTier).filter(
            UserTier.user_id == user_id
        ).order_by(UserTier.linked_at.asc(), UserTier.id.asc()).all()
