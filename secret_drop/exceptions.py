"""Exceptions raised by the envelope codec, the secret store and its backends.

Every exception carries the HTTP ``status_code`` the web layer answers with.
"""
from typing import Optional


class SecretDropError(Exception):
    """Base exception for Secret Drop."""

    status_code: int = 500

    def __init__(self, message: str, *, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


# ---------------------------------------------------------------------------
# Validation (client fault)
# ---------------------------------------------------------------------------

class ValidationError(SecretDropError, ValueError):
    """Malformed or oversized input."""

    status_code = 400


class InvalidPayload(ValidationError):
    """Encrypted payload is not a usable string."""


class PayloadRequired(InvalidPayload):
    """Encrypted payload is missing or empty."""


class PayloadTooLarge(InvalidPayload):
    """Encrypted payload exceeds the configured maximum size."""


class InvalidId(ValidationError):
    """Secret identifier has an invalid shape."""


class InvalidPlaintext(ValidationError):
    """Message or expiry cannot be sealed in an envelope."""


# ---------------------------------------------------------------------------
# Envelope codec
# ---------------------------------------------------------------------------

class EnvelopeError(SecretDropError):
    """Base exception for envelope decoding and decryption."""

    status_code = 400


class AuthenticationFailed(EnvelopeError):
    """MAC mismatch: wrong password or tampered envelope."""

    status_code = 403


class MalformedEnvelope(EnvelopeError):
    """Envelope does not have four base64 fields."""


class InvalidPadding(EnvelopeError):
    """Decrypted ciphertext carries invalid block padding."""


class MalformedPayload(EnvelopeError):
    """Decrypted plaintext is not a well-formed record."""


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class NotFound(SecretDropError):
    """Secret is absent, expired or already consumed."""

    status_code = 404


class StorageFailure(SecretDropError):
    """Underlying key-value store failed."""

    status_code = 500
