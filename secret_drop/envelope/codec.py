"""
Envelope Codec — Password-based authenticated encryption of secret messages.

Envelope format (ASCII)::

    base64(salt 16B) . base64(iv 16B) . base64(ciphertext N*16B) . base64(mac 32B)

The ciphertext seals a canonical JSON record ``{"message": ..., "expiry": ...}``
so the expiry cannot be changed independently of the message.

Security Note:
    The MAC is always verified before any decryption is attempted.
    The codec does not enforce expiry; callers check
    :meth:`PlaintextRecord.is_expired` after a successful decrypt.
"""
import math
import time
import base64
import binascii
import logging
from typing import Any, Optional, Union
from dataclasses import dataclass

import orjson

from ..exceptions import InvalidPlaintext, MalformedEnvelope, MalformedPayload
from .crypto import (
    derive_keys,
    generate_salt,
    generate_iv,
    encrypt_cbc,
    decrypt_cbc,
    compute_mac,
    verify_mac,
)

logger = logging.getLogger("secret_drop.envelope")

ENVELOPE_DELIMITER = "."
ENVELOPE_FIELDS = 4

Timestamp = Union[int, float]


def _valid_expiry(expiry: Any) -> bool:
    """An expiry is null or a finite JSON number (booleans excluded)."""
    if expiry is None:
        return True
    if isinstance(expiry, bool) or not isinstance(expiry, (int, float)):
        return False
    return math.isfinite(expiry)


@dataclass(frozen=True)
class PlaintextRecord:
    """Message and optional expiry (epoch milliseconds) sealed in an envelope."""

    message: str
    expiry: Optional[Timestamp] = None

    def to_bytes(self) -> bytes:
        """Return the canonical record form.

        Raises:
            InvalidPlaintext: If message is not valid Unicode text or the
                expiry is not a finite number.
        """
        if not isinstance(self.message, str):
            raise InvalidPlaintext("Message must be text")
        if not _valid_expiry(self.expiry):
            raise InvalidPlaintext(
                "Expiry must be epoch milliseconds as a finite number or None"
            )
        try:
            return orjson.dumps({"message": self.message, "expiry": self.expiry})
        except orjson.JSONEncodeError as err:
            raise InvalidPlaintext("Message is not valid Unicode text") from err

    @classmethod
    def from_bytes(cls, data: bytes) -> "PlaintextRecord":
        """Parse the canonical record form.

        Raises:
            MalformedPayload: If data is not a JSON object with a string
                ``message`` and a numeric or null ``expiry``.
        """
        try:
            parsed: Any = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise MalformedPayload("Decrypted payload is not valid JSON") from err
        if not isinstance(parsed, dict):
            raise MalformedPayload("Decrypted payload is not a JSON object")
        message = parsed.get("message")
        expiry = parsed.get("expiry")
        if not isinstance(message, str):
            raise MalformedPayload("Decrypted payload has no text message")
        if not _valid_expiry(expiry):
            raise MalformedPayload("Decrypted payload has an invalid expiry")
        return cls(message=message, expiry=expiry)

    def is_expired(self, now_ms: Optional[Timestamp] = None) -> bool:
        """Return True when the sealed expiry has passed."""
        if self.expiry is None:
            return False
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return now_ms >= self.expiry


@dataclass(frozen=True)
class Envelope:
    """Parsed salt / iv / ciphertext / mac bundle."""

    salt: bytes
    iv: bytes
    ciphertext: bytes
    mac: bytes

    def serialize(self) -> str:
        return ENVELOPE_DELIMITER.join(
            base64.b64encode(part).decode("ascii")
            for part in (self.salt, self.iv, self.ciphertext, self.mac)
        )

    @classmethod
    def parse(cls, text: str) -> "Envelope":
        """Split and base64-decode a serialized envelope.

        Field lengths are not checked here; a wrong-sized field fails
        MAC verification like any other tampering.

        Raises:
            MalformedEnvelope: If text is not exactly four strict base64
                fields joined by ``.``.
        """
        if not isinstance(text, str):
            raise MalformedEnvelope("Envelope must be a string")
        fields = text.split(ENVELOPE_DELIMITER)
        if len(fields) != ENVELOPE_FIELDS:
            raise MalformedEnvelope(
                f"Envelope must have {ENVELOPE_FIELDS} fields, got {len(fields)}"
            )
        try:
            parts = [base64.b64decode(field, validate=True) for field in fields]
        except (binascii.Error, ValueError) as err:
            raise MalformedEnvelope("Envelope field is not valid base64") from err
        return cls(*parts)


def encrypt(
    message: str,
    password: str,
    expiry: Optional[Timestamp] = None,
) -> str:
    """Encrypt a message under a password.

    Args:
        message: Secret text.
        password: Password the recipient will need.
        expiry: Optional expiry as epoch milliseconds, sealed with the message.

    Returns:
        Serialized envelope string.

    Raises:
        InvalidPlaintext: If message or expiry cannot be sealed; raised
            before any key derivation.
    """
    plaintext = PlaintextRecord(message=message, expiry=expiry).to_bytes()
    salt = generate_salt()
    keys = derive_keys(password, salt)
    iv = generate_iv()
    ciphertext = encrypt_cbc(keys.encryption_key, iv, plaintext)
    mac = compute_mac(keys.mac_key, iv, ciphertext)
    return Envelope(salt, iv, ciphertext, mac).serialize()


def decrypt(envelope: str, password: str) -> PlaintextRecord:
    """Verify and decrypt an envelope.

    Args:
        envelope: Serialized envelope string.
        password: Password used at encryption time.

    Returns:
        The sealed PlaintextRecord.

    Raises:
        MalformedEnvelope: Envelope cannot be split/decoded.
        AuthenticationFailed: Wrong password or tampered envelope.
        InvalidPadding: MAC verified but padding is malformed.
        MalformedPayload: Decrypted text is not a valid record.
    """
    parsed = Envelope.parse(envelope)
    keys = derive_keys(password, parsed.salt)
    verify_mac(keys.mac_key, parsed.iv, parsed.ciphertext, parsed.mac)
    plaintext = decrypt_cbc(keys.encryption_key, parsed.iv, parsed.ciphertext)
    return PlaintextRecord.from_bytes(plaintext)
