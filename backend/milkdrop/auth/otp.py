"""One-time passcodes for email login.

Codes live in an injected :class:`OTPStore` (get/set/delete with TTL) rather
than process memory, so several API instances can share them through Redis.
"""

import hmac
import logging
import secrets
import time
from abc import ABC, abstractmethod
from functools import lru_cache

import redis.asyncio as redis

from milkdrop.config import settings

logger = logging.getLogger(__name__)

OTP_KEY_PREFIX = "otp:"


class OTPError(Exception):
    """The submitted code is unknown, expired, or wrong."""


class OTPStore(ABC):
    """Key/value store with per-key expiry."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for ``key`` or None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""


class InMemoryOTPStore(OTPStore):
    """Single-process store, for tests and local development."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._items: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            self._items.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._items[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)


class RedisOTPStore(OTPStore):
    """Redis-backed store shared by all API instances."""

    def __init__(self, redis_url: str | None = None) -> None:
        self.redis_url = redis_url or settings.redis_url
        self._redis: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis:
        """Lazy Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
        return self._redis

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.client.setex(key, ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


@lru_cache
def get_otp_store() -> OTPStore:
    """FastAPI dependency returning the configured OTP store."""
    if settings.otp_backend == "redis":
        return RedisOTPStore(settings.redis_url)
    return InMemoryOTPStore()


def generate_otp() -> str:
    """Six-digit numeric code."""
    return f"{secrets.randbelow(900000) + 100000}"


def _key(email: str) -> str:
    return f"{OTP_KEY_PREFIX}{email.strip().lower()}"


async def issue_otp(store: OTPStore, email: str, ttl_seconds: int | None = None) -> str:
    """Generate a code for ``email``, replacing any outstanding one."""
    code = generate_otp()
    await store.set(_key(email), code, ttl_seconds or settings.otp_ttl_seconds)
    logger.info("Issued OTP for %s", email)
    return code


async def verify_otp(store: OTPStore, email: str, code: str) -> None:
    """Check ``code`` for ``email`` and consume it on success.

    Raises:
        OTPError: If no code is outstanding (never issued or expired) or the
            code does not match. A wrong guess does not consume the code.
    """
    key = _key(email)
    stored = await store.get(key)
    if stored is None:
        raise OTPError("OTP not found or expired")
    if not hmac.compare_digest(stored, code.strip()):
        raise OTPError("Invalid OTP")
    await store.delete(key)
