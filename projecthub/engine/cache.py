"""
ProjectHub Redis Layer — local key-value fallback for the file list.

The backend is the owner of every row. Redis only holds a serialized copy of
the file list, written after each successful load or local file mutation and
read back when the backend is unreachable or unconfigured.

Key layout (prefix "projecthub:"):
    files:all           file list seen by a manager
    files:<project_id>  file list scoped to one project view
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional

logger = logging.getLogger("projecthub.engine.cache")


class RedisCache:
    """
    Redis wrapper with JSON helpers and a circuit breaker.

    Every operation degrades to a miss (None / False) when Redis is down, so
    callers never have to guard against connection errors themselves.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "projecthub:",
        default_ttl: int = 7 * 24 * 3600,
        db: int = 0,
    ):
        self._redis_url = redis_url
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._db = db
        self._client = None
        self._available = False

        # Circuit breaker state
        self._failure_count = 0
        self._failure_threshold = 5
        self._failure_window = 30  # seconds
        self._first_failure_time = 0.0
        self._circuit_open = False

    def connect(self) -> bool:
        """Initialize Redis connection."""
        try:
            import redis
            self._client = redis.Redis.from_url(
                self._redis_url,
                db=self._db,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
            self._client.ping()
            self._available = True
            self._circuit_open = False
            self._failure_count = 0
            logger.info(f"Redis connected: DB {self._db} ({self._prefix})")
            return True
        except Exception as e:
            logger.warning(f"Redis connection failed (DB {self._db}): {e}")
            self._available = False
            return False

    def _check_circuit(self) -> bool:
        if self._circuit_open:
            if time.time() - self._first_failure_time > self._failure_window:
                self._circuit_open = False
                self._failure_count = 0
                return self.connect()
            return False
        return self._available

    def _record_failure(self) -> None:
        now = time.time()
        if self._failure_count == 0:
            self._first_failure_time = now

        self._failure_count += 1

        if self._failure_count >= self._failure_threshold:
            elapsed = now - self._first_failure_time
            if elapsed <= self._failure_window:
                self._circuit_open = True
                logger.error(
                    f"Redis circuit breaker OPEN: {self._failure_count} failures in {elapsed:.1f}s"
                )

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    # ── Core Operations ──

    def get(self, key: str) -> Optional[str]:
        """Get a value. Returns None on miss or failure."""
        if not self._check_circuit():
            return None
        try:
            return self._client.get(self._make_key(key))
        except Exception as e:
            self._record_failure()
            logger.debug(f"Redis GET failed: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set a value with optional TTL. Returns False on failure."""
        if not self._check_circuit():
            return False
        try:
            self._client.set(self._make_key(key), value, ex=ttl or self._default_ttl)
            return True
        except Exception as e:
            self._record_failure()
            logger.debug(f"Redis SET failed: {e}")
            return False

    def delete(self, key: str) -> bool:
        if not self._check_circuit():
            return False
        try:
            self._client.delete(self._make_key(key))
            return True
        except Exception:
            self._record_failure()
            return False

    # ── JSON Operations ──

    def get_json(self, key: str) -> Optional[Any]:
        """Get and deserialize a JSON value."""
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Serialize and set a JSON value."""
        try:
            return self.set(key, json.dumps(value, default=str), ttl=ttl)
        except (TypeError, ValueError):
            return False

    # ── Health & Management ──

    def ping(self) -> bool:
        if not self._client:
            return False
        try:
            return self._client.ping()
        except Exception:
            return False

    def close(self) -> None:
        """Close the Redis connection and release resources."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.debug(f"Redis close failed: {e}")
            self._client = None
        self._available = False
        self._circuit_open = False
        self._failure_count = 0

    @property
    def is_available(self) -> bool:
        return self._available and not self._circuit_open

    @property
    def is_circuit_open(self) -> bool:
        return self._circuit_open


# ---------------------------------------------------------------------------
# File list store — the persisted local fallback
# ---------------------------------------------------------------------------

class FileListStore:
    """
    Serialized file list kept under ``files:<scope>``.

    Scope is ``all`` without a signed-in user, else ``<role>:<user_id>``
    so one user never reads the list cached for another. Values are the
    plain dicts produced by ``File.model_dump(mode="json")``.
    """

    def __init__(self, cache: RedisCache):
        self._cache = cache

    @staticmethod
    def _key(scope: Optional[str]) -> str:
        return f"files:{scope or 'all'}"

    def load(self, scope: Optional[str] = None) -> Optional[List[Dict[str, Any]]]:
        """Return the stored list, or None when nothing usable is stored."""
        data = self._cache.get_json(self._key(scope))
        if not isinstance(data, list):
            return None
        return data

    def save(self, files: List[Dict[str, Any]], scope: Optional[str] = None) -> bool:
        return self._cache.set_json(self._key(scope), files)

    def clear(self, scope: Optional[str] = None) -> bool:
        return self._cache.delete(self._key(scope))

    @property
    def is_available(self) -> bool:
        return self._cache.is_available


def create_file_list_store(redis_url: str, db: int = 0, ttl: int = 7 * 24 * 3600) -> FileListStore:
    """Create and connect the file list store."""
    cache = RedisCache(redis_url=redis_url, prefix="projecthub:", default_ttl=ttl, db=db)
    cache.connect()
    return FileListStore(cache)
