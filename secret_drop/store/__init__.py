"""Secret Store — Ephemeral, TTL-bound storage of ciphertext envelopes."""

from .secret_store import SecretStore, SecretRecord, SecretMetadata, generate_id
from .backends import KVBackend, MemoryBackend, RedisBackend, StoredValue
from .config import StoreConfig
from .lifetime import RecordLifetime, EXPIRY_OPTIONS

__all__ = [
    "SecretStore",
    "SecretRecord",
    "SecretMetadata",
    "generate_id",
    "KVBackend",
    "MemoryBackend",
    "RedisBackend",
    "StoredValue",
    "StoreConfig",
    "RecordLifetime",
    "EXPIRY_OPTIONS",
]
