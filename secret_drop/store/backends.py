"""
Store Backends — TTL-capable key-value collaborators for the secret store.

Every backend exposes three independently atomic operations and nothing
else: ``put`` with a TTL and metadata, ``get_with_metadata`` and an
idempotent ``delete``. There is no cross-operation transaction.

Security Note:
    Backends only ever see ciphertext envelopes. Never log stored values.
"""
import time
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, NamedTuple, Optional

import orjson
import redis.asyncio as redis
from redis.exceptions import RedisError

from ..exceptions import StorageFailure
from .config import DEFAULT_KEY_PREFIX

logger = logging.getLogger("secret_drop.store")

MIN_BACKEND_TTL = 60


class StoredValue(NamedTuple):
    """Result of a lookup; ``value`` is None when the key is absent."""

    value: Optional[str]
    metadata: Optional[dict] = None


class KVBackend(ABC):
    """Minimal TTL key-value store contract."""

    @abstractmethod
    async def put(
        self,
        key: str,
        value: str,
        *,
        expiration_ttl: int,
        metadata: Optional[dict] = None,
    ) -> None:
        """Store value under key, evicted after expiration_ttl seconds."""

    @abstractmethod
    async def get_with_metadata(self, key: str) -> StoredValue:
        """Return the live value and metadata for key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Deleting an absent key is a no-op."""

    async def close(self) -> None:
        """Release backend resources."""


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class MemoryBackend(KVBackend):
    """Process-local backend with lazy TTL eviction.

    Suitable for tests and single-process deployments; records do not
    survive a restart.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, tuple[float, str, Optional[dict]]] = {}

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def ttl(self, key: str) -> Optional[float]:
        """Return remaining seconds for key, or None if absent."""
        row = self._data.get(key)
        if row is None:
            return None
        return row[0] - self._clock()

    def _drop(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def put(
        self,
        key: str,
        value: str,
        *,
        expiration_ttl: int,
        metadata: Optional[dict] = None,
    ) -> None:
        if expiration_ttl < MIN_BACKEND_TTL:
            raise StorageFailure(
                f"expiration_ttl must be at least {MIN_BACKEND_TTL}s, "
                f"got {expiration_ttl}"
            )
        expires_at = self._clock() + expiration_ttl
        self._data[key] = (expires_at, value, dict(metadata or {}))

    async def get_with_metadata(self, key: str) -> StoredValue:
        row = self._data.get(key)
        if row is None:
            return StoredValue(None)
        expires_at, value, metadata = row
        if expires_at <= self._clock():
            self._drop(key)
            return StoredValue(None)
        return StoredValue(value, dict(metadata))

    async def delete(self, key: str) -> None:
        self._drop(key)

    def sweep(self) -> int:
        """Evict every expired record.

        Returns:
            Number of evicted records.
        """
        now = self._clock()
        expired = [k for k, row in self._data.items() if row[0] <= now]
        for key in expired:
            self._drop(key)
        if expired:
            logger.debug("Memory backend evicted %d expired record(s)", len(expired))
        return len(expired)


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------

class RedisBackend(KVBackend):
    """Redis backend; value and metadata share one key with a native TTL.

    Stored format: orjson ``{"value": <envelope>, "metadata": {...}}``.
    """

    def __init__(self, client: Any, key_prefix: str = DEFAULT_KEY_PREFIX):
        self._redis = client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = DEFAULT_KEY_PREFIX) -> "RedisBackend":
        """Build a backend over a new ``redis.asyncio`` client."""
        return cls(redis.from_url(url), key_prefix=key_prefix)

    def _redis_key(self, key: str) -> str:
        """Build Redis key."""
        return f"{self._prefix}{key}"

    async def put(
        self,
        key: str,
        value: str,
        *,
        expiration_ttl: int,
        metadata: Optional[dict] = None,
    ) -> None:
        if expiration_ttl < MIN_BACKEND_TTL:
            raise StorageFailure(
                f"expiration_ttl must be at least {MIN_BACKEND_TTL}s, "
                f"got {expiration_ttl}"
            )
        blob = orjson.dumps({"value": value, "metadata": metadata or {}})
        try:
            await self._redis.set(self._redis_key(key), blob, ex=expiration_ttl)
        except RedisError as err:
            raise StorageFailure(f"Redis put failed: {err}") from err

    async def get_with_metadata(self, key: str) -> StoredValue:
        try:
            blob = await self._redis.get(self._redis_key(key))
        except RedisError as err:
            raise StorageFailure(f"Redis get failed: {err}") from err
        if blob is None:
            return StoredValue(None)
        try:
            row = orjson.loads(blob)
        except orjson.JSONDecodeError as err:
            raise StorageFailure(f"Corrupt record under key={key}") from err
        if not isinstance(row, dict):
            raise StorageFailure(f"Corrupt record under key={key}")
        return StoredValue(row.get("value"), row.get("metadata"))

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(self._redis_key(key))
        except RedisError as err:
            raise StorageFailure(f"Redis delete failed: {err}") from err

    async def close(self) -> None:
        await self._redis.aclose()
