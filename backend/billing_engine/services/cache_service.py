"""
Cache Service - Redis-backed cache for processor views and resolved tiers.

Provides:
- RedisClient: thin redis-py wrapper that degrades to "unavailable"
- InMemoryCache: per-entry TTL fallback when REDIS_URL is unset
- CacheService: typed get/set/clear for the three cached views

Keys:
    subscription-{customerId}-{userType}   processor subscription view
    used-promotion-codes-{customerId}      coupon codes a customer redeemed
    user-tier-{userUuid}                   serialised EffectiveEntitlement

A miss (or any Redis failure) returns None and callers recompute.
Writes are unconditional overwrites with a TTL.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

import redis

from billing_engine.constants import (
    FIFTEEN_MINS_EXPIRATION_IN_SECONDS,
    FOUR_HOURS_EXPIRATION_IN_SECONDS,
    UserType,
)
from billing_engine.entitlements.models import EffectiveEntitlement

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Redis client wrapper with graceful degradation.

    Constructed once at process start and injected; there is no module
    level instance.
    """

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self._redis = client
        self._available = client is not None
        if client is None and redis_url:
            self._connect(redis_url)

    def _connect(self, redis_url: str) -> None:
        try:
            self._redis = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
            self._redis.ping()
            self._available = True
            logger.info("Redis connection established for billing cache")
        except redis.RedisError as e:
            logger.warning("Redis connection failed - caching in memory", extra={"error": str(e)})
            self._available = False

    @property
    def available(self) -> bool:
        return self._available and self._redis is not None

    def get(self, key: str) -> Optional[str]:
        if not self.available:
            return None
        try:
            return self._redis.get(key)
        except redis.RedisError as e:
            logger.warning("Redis GET failed", extra={"key": key, "error": str(e)})
            return None

    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        if not self.available:
            return False
        try:
            self._redis.setex(key, ttl_seconds, value)
            return True
        except redis.RedisError as e:
            logger.warning("Redis SET failed", extra={"key": key, "error": str(e)})
            return False

    def delete(self, *keys: str) -> int:
        if not self.available or not keys:
            return 0
        try:
            return self._redis.delete(*keys)
        except redis.RedisError as e:
            logger.warning("Redis DELETE failed", extra={"keys": list(keys), "error": str(e)})
            return 0

    def close(self) -> None:
        if self._redis is not None:
            self._redis.close()


class InMemoryCache:
    """
    In-memory fallback cache.

    Thread-safe; each entry carries its own expiry.
    """

    def __init__(self, max_size: int = 10000):
        self._cache: Dict[str, Tuple[str, datetime]] = {}
        self._lock = Lock()
        self._max_size = max_size

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if datetime.now(timezone.utc) >= expires_at:
                del self._cache[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_size:
                soonest = min(self._cache, key=lambda k: self._cache[k][1])
                del self._cache[soonest]
            self._cache[key] = (value, datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


class CacheService:
    """
    Typed cache for the billing engine.

    Uses Redis when available, falls back to in-memory cache.

    Usage:
        cache = CacheService(RedisClient(settings.redis_url))

        view = cache.get_subscription(customer_id, UserType.INDIVIDUAL)
        if view is None:
            view = await payments.get_user_subscription(customer_id, UserType.INDIVIDUAL)
            cache.set_subscription(customer_id, UserType.INDIVIDUAL, view)
    """

    def __init__(
        self,
        redis_client: Optional[RedisClient] = None,
        subscription_ttl: int = FIFTEEN_MINS_EXPIRATION_IN_SECONDS,
        used_coupons_ttl: int = FOUR_HOURS_EXPIRATION_IN_SECONDS,
        user_tier_ttl: int = FIFTEEN_MINS_EXPIRATION_IN_SECONDS,
    ):
        self._redis = redis_client or RedisClient()
        self._memory = InMemoryCache()
        self.subscription_ttl = subscription_ttl
        self.used_coupons_ttl = used_coupons_ttl
        self.user_tier_ttl = user_tier_ttl

    @property
    def redis_available(self) -> bool:
        return self._redis.available

    def close(self) -> None:
        self._redis.close()
        self._memory.clear()

    @staticmethod
    def _subscription_key(customer_id: str, user_type: UserType) -> str:
        return f"subscription-{customer_id}-{UserType(user_type).value}"

    @staticmethod
    def _used_promo_codes_key(customer_id: str) -> str:
        return f"used-promotion-codes-{customer_id}"

    @staticmethod
    def _user_tier_key(user_uuid: str) -> str:
        return f"user-tier-{user_uuid}"

    def _get(self, key: str) -> Optional[str]:
        if self._redis.available:
            return self._redis.get(key)
        return self._memory.get(key)

    def _set(self, key: str, value: str, ttl_seconds: int) -> None:
        if self._redis.available:
            self._redis.set(key, value, ttl_seconds)
        else:
            self._memory.set(key, value, ttl_seconds)

    def _delete(self, key: str) -> None:
        if self._redis.available:
            self._redis.delete(key)
        self._memory.delete(key)

    def _get_json(self, key: str) -> Optional[Any]:
        data = self._get(key)
        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError:
            logger.warning("Discarding undecodable cache entry", extra={"key": key})
            self._delete(key)
            return None

    # Subscription view

    def get_subscription(self, customer_id: str, user_type: UserType = UserType.INDIVIDUAL) -> Optional[Dict[str, Any]]:
        return self._get_json(self._subscription_key(customer_id, user_type))

    def set_subscription(
        self,
        customer_id: str,
        user_type: UserType,
        subscription: Dict[str, Any],
    ) -> None:
        self._set(
            self._subscription_key(customer_id, user_type),
            json.dumps(subscription),
            self.subscription_ttl,
        )

    def clear_subscription(self, customer_id: str, user_type: Optional[UserType] = None) -> None:
        """Drop the subscription view; every user type when none is given."""
        user_types = [user_type] if user_type is not None else list(UserType)
        for kind in user_types:
            self._delete(self._subscription_key(customer_id, kind))

    # Used promotion codes

    def get_used_user_promo_codes(self, customer_id: str) -> Optional[List[str]]:
        return self._get_json(self._used_promo_codes_key(customer_id))

    def set_used_user_promo_codes(self, customer_id: str, codes: List[str]) -> None:
        self._set(self._used_promo_codes_key(customer_id), json.dumps(codes), self.used_coupons_ttl)

    def clear_used_user_promo_codes(self, customer_id: str) -> None:
        self._delete(self._used_promo_codes_key(customer_id))

    # Resolved user tier

    def get_user_tier(self, user_uuid: str) -> Optional[EffectiveEntitlement]:
        data = self._get(self._user_tier_key(user_uuid))
        if data is None:
            return None
        try:
            return EffectiveEntitlement.from_json(data)
        except (ValueError, KeyError) as e:
            logger.warning(
                "Discarding undecodable cached entitlement",
                extra={"user_uuid": user_uuid, "error": str(e)}
            )
            self._delete(self._user_tier_key(user_uuid))
            return None

    def set_user_tier(self, user_uuid: str, entitlement: EffectiveEntitlement) -> None:
        self._set(self._user_tier_key(user_uuid), entitlement.to_json(), self.user_tier_ttl)

    def clear_user_tier(self, user_uuid: str) -> None:
        self._delete(self._user_tier_key(user_uuid))
