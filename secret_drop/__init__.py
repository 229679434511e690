"""Secret Drop — Password-encrypted secrets that expire or burn after reading.

Security Note (Threat Model):
    Messages are encrypted on the client (see ``secret_drop.envelope``) and
    only the ciphertext envelope reaches the store. The secret identifier is
    the sole access control to the envelope; the password is the sole access
    control to the plaintext. Read-once records are best-effort single-read:
    overlapping fetches may both succeed (see ``secret_drop.store``).
"""

from .version import __version__
from .envelope import Envelope, PlaintextRecord, encrypt, decrypt
from .store import (
    SecretStore,
    SecretRecord,
    StoreConfig,
    MemoryBackend,
    RedisBackend,
)
from .exceptions import (
    SecretDropError,
    ValidationError,
    PayloadRequired,
    PayloadTooLarge,
    InvalidId,
    InvalidPlaintext,
    AuthenticationFailed,
    MalformedEnvelope,
    InvalidPadding,
    MalformedPayload,
    NotFound,
    StorageFailure,
)

__all__ = [
    "__version__",
    "Envelope",
    "PlaintextRecord",
    "encrypt",
    "decrypt",
    "SecretStore",
    "SecretRecord",
    "StoreConfig",
    "MemoryBackend",
    "RedisBackend",
    "SecretDropError",
    "ValidationError",
    "PayloadRequired",
    "PayloadTooLarge",
    "InvalidId",
    "InvalidPlaintext",
    "AuthenticationFailed",
    "MalformedEnvelope",
    "InvalidPadding",
    "MalformedPayload",
    "NotFound",
    "StorageFailure",
]
