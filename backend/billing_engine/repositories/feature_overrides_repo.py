"""
Feature Override Repository.

Upsert MERGES: services absent from the payload keep their stored value,
and an empty payload leaves the record untouched.
"""

import logging
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_engine.models.feature_override import UserFeatureOverride

logger = logging.getLogger(__name__)


class FeatureOverridesRepository:
    """Per-user manual feature overrides."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def find_by_user_id(self, user_id: str) -> Optional[UserFeatureOverride]:
        return self.db.query(UserFeatureOverride).filter(
            UserFeatureOverride.user_id == user_id
        ).first()

    def upsert(
        self,
        user_id: str,
        features_per_service: Optional[Dict[str, Dict[str, bool]]],
    ) -> Optional[UserFeatureOverride]:
        """
        Merge `features_per_service` into the stored overrides for a user.

        Args:
            user_id: Local user id
            features_per_service: Partial mapping service -> {"enabled": bool}

        Returns:
            The stored record (None if nothing was ever stored and the
            payload was empty)
        """
        existing = self.find_by_user_id(user_id)
        if not features_per_service:
            return existing

        if existing is None:
            existing = UserFeatureOverride(
                user_id=user_id,
                features_per_service=dict(features_per_service),
            )
            self.db.add(existing)
        else:
            merged = dict(existing.features_per_service or {})
            merged.update(features_per_service)
            # Reassign so the JSON column is flagged dirty
            existing.features_per_service = merged

        try:
            self.db.commit()
            self.db.refresh(existing)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to upsert feature overrides",
                extra={"user_id": user_id, "error": str(e)}
            )
            raise

        logger.info(
            "Feature overrides merged",
            extra={"user_id": user_id, "services": sorted(features_per_service)}
        )
        return existing
