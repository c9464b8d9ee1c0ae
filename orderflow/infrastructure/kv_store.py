import json
import logging
import threading
import time
from typing import Callable, Optional, Set

import redis
from redis.exceptions import RedisError

from orderflow.core.config import settings
from orderflow.interfaces.IKeyValueStore import IKeyValueStore

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore(IKeyValueStore):
    """
    RAM store with Redis-like TTL semantics: an expired key reads as missing.
    Expired keys are dropped lazily on access, never by a background sweep.
    Used in tests and as the fallback when Redis is unreachable.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._values = {}  # key -> (value, expires_at)
        self._sets = {}
        self._lock = threading.Lock()

    def put(self, key: str, value: dict, ttl_seconds: int) -> None:
        with self._lock:
            # Round-trip through JSON so callers never share mutable state with the store.
            self._values[key] = (json.loads(json.dumps(value)), self.clock() + ttl_seconds)

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            entry = self._values.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self.clock() >= expires_at:
                del self._values[key]
                return None
            return json.loads(json.dumps(value))

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def add_member(self, set_name: str, member: str) -> None:
        with self._lock:
            self._sets.setdefault(set_name, set()).add(member)

    def remove_member(self, set_name: str, member: str) -> None:
        with self._lock:
            self._sets.get(set_name, set()).discard(member)

    def members(self, set_name: str) -> Set[str]:
        with self._lock:
            return set(self._sets.get(set_name, set()))


class RedisKeyValueStore(IKeyValueStore):
    def __init__(self, url: str = settings.REDIS_URL):
        # 1. Primary (Redis)
        try:
            self.redis = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=1  # Fail fast if Redis is down
            )
            self.redis.ping()
            self.redis_available = True
            logger.info("✅ KeyValueStore: Connected to Redis.")
        except RedisError as e:
            logger.warning(f"⚠️ KeyValueStore: Redis unreachable ({e}). Using RAM fallback.")
            self.redis_available = False

        # 2. Fallback (RAM). Only coherent for a single worker process.
        self._memory = InMemoryKeyValueStore()

    def put(self, key: str, value: dict, ttl_seconds: int) -> None:
        if self.redis_available:
            try:
                self.redis.setex(key, ttl_seconds, json.dumps(value))
            except RedisError as e:
                self._handle_redis_error(e)

        # Always write to RAM so a mid-request Redis failure still has the data.
        self._memory.put(key, value, ttl_seconds)

    def get(self, key: str) -> Optional[dict]:
        if self.redis_available:
            try:
                data = self.redis.get(key)
                return json.loads(data) if data else None
            except RedisError as e:
                self._handle_redis_error(e)
        return self._memory.get(key)

    def delete(self, key: str) -> None:
        if self.redis_available:
            try:
                self.redis.delete(key)
            except RedisError as e:
                self._handle_redis_error(e)
        self._memory.delete(key)

    def add_member(self, set_name: str, member: str) -> None:
        if self.redis_available:
            try:
                self.redis.sadd(set_name, member)
            except RedisError as e:
                self._handle_redis_error(e)
        self._memory.add_member(set_name, member)

    def remove_member(self, set_name: str, member: str) -> None:
        if self.redis_available:
            try:
                self.redis.srem(set_name, member)
            except RedisError as e:
                self._handle_redis_error(e)
        self._memory.remove_member(set_name, member)

    def members(self, set_name: str) -> Set[str]:
        if self.redis_available:
            try:
                return set(self.redis.smembers(set_name))
            except RedisError as e:
                self._handle_redis_error(e)
        return self._memory.members(set_name)

    def _handle_redis_error(self, e):
        """Log and stop trying Redis; RAM serves from here on."""
        logger.error(f"❌ Redis Error: {e}. Switching to RAM mode.")
        self.redis_available = False
