"""
Coupons Repository: tracked coupons and per-user redemptions.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_engine.models.coupon import Coupon, UserCoupon

logger = logging.getLogger(__name__)


class CouponsRepository:
    """Tracked coupon lookups and redemption history."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def find_by_code(self, code: str) -> Optional[Coupon]:
        return self.db.query(Coupon).filter(Coupon.code == code).first()

    def record_use(self, user_id: str, coupon_id: str) -> UserCoupon:
        """Record a redemption; replays return the existing row."""
        existing = self.db.query(UserCoupon).filter(
            UserCoupon.user_id == user_id,
            UserCoupon.coupon_id == coupon_id,
        ).first()
        if existing is not None:
            return existing

        entry = UserCoupon(user_id=user_id, coupon_id=coupon_id)
        self.db.add(entry)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self.db.query(UserCoupon).filter(
                UserCoupon.user_id == user_id,
                UserCoupon.coupon_id == coupon_id,
            ).first()
        return entry

    def find_codes_by_user_id(self, user_id: str) -> List[str]:
        """Distinct tracked coupon codes redeemed by a user."""
        rows = self.db.query(Coupon.code).join(
            UserCoupon, UserCoupon.coupon_id == Coupon.id
        ).filter(UserCoupon.user_id == user_id).distinct().all()
        return sorted(code for (code,) in rows)
