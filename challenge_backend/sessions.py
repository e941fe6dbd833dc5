"""
Key-value store for login sessions and password-reset tokens.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Tuple

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)

SESSION_PREFIX = "sess:"
FORGOT_PASSWORD_PREFIX = "forgot-password:"
RESET_TOKEN_TTL_SECONDS = 60 * 60 * 24 * 3


class KeyValueStore(Protocol):
    """Minimal expiring string store."""

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    def get(self, key: str) -> Optional[str]:
        ...

    def delete(self, key: str) -> None:
        ...


@dataclass
class InMemoryKeyValueStore:
    """Dictionary with per-key expiry for testing/dev."""

    items: Dict[str, Tuple[str, float]] = field(default_factory=dict)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.items[key] = (value, time.time() + ttl_seconds)

    def get(self, key: str) -> Optional[str]:
        item = self.items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if time.time() >= expires_at:
            del self.items[key]
            return None
        return value

    def delete(self, key: str) -> None:
        self.items.pop(key, None)


@dataclass
class RedisKeyValueStore:
    """Redis-backed store using SET EX / GET / DEL."""

    url: str

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url, decode_responses=True)

    def _reconnect(self, action: str, key: str) -> None:
        # Connection resets can happen on managed Redis.
        logger.warning("Redis connection lost while %s %s", action, key)
        self.client = redis.Redis.from_url(self.url, decode_responses=True)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.set(key, value, ex=ttl_seconds)
        except redis_exceptions.ConnectionError:
            self._reconnect("writing", key)
            self.client.set(key, value, ex=ttl_seconds)

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis_exceptions.ConnectionError:
            # Treat the key as missing and use the new connection next time.
            self._reconnect("reading", key)
            return None

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis_exceptions.ConnectionError:
            self._reconnect("deleting", key)
            self.client.delete(key)


class SessionManager:
    """Issues and resolves opaque tokens that map to user ids."""

    def __init__(
        self,
        store: KeyValueStore,
        max_age_seconds: int,
        reset_ttl_seconds: int = RESET_TOKEN_TTL_SECONDS,
    ):
        self.store = store
        self.max_age_seconds = max_age_seconds
        self.reset_ttl_seconds = reset_ttl_seconds

    def _lookup(self, key: str) -> Optional[int]:
        value = self.store.get(key)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("Discarding malformed token entry %s", key)
            return None

    def create_session(self, user_id: int) -> str:
        token = uuid.uuid4().hex
        self.store.set(SESSION_PREFIX + token, str(user_id), self.max_age_seconds)
        return token

    def resolve(self, token: Optional[str]) -> Optional[int]:
        if not token:
            return None
        return self._lookup(SESSION_PREFIX + token)

    def destroy(self, token: Optional[str]) -> None:
        if token:
            self.store.delete(SESSION_PREFIX + token)

    def issue_reset_token(self, user_id: int) -> str:
        token = uuid.uuid4().hex
        self.store.set(
            FORGOT_PASSWORD_PREFIX + token, str(user_id), self.reset_ttl_seconds
        )
        return token

    def reset_token_user(self, token: str) -> Optional[int]:
        return self._lookup(FORGOT_PASSWORD_PREFIX + token)

    def consume_reset_token(self, token: str) -> None:
        self.store.delete(FORGOT_PASSWORD_PREFIX + token)
