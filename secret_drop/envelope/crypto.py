"""
Envelope Crypto Core — Key derivation, block encryption and authentication.

Primitives behind the envelope codec:
- Key derivation: PBKDF2-SHA256(password, salt, 100k) → 64 bytes → [aes_key 32B][mac_key 32B]
- Confidentiality: AES-256-CBC with PKCS#7 padding
- Integrity: HMAC-SHA256 over [iv][ciphertext] (encrypt-then-MAC)

Security Note:
    Never log passwords, derived keys, plaintext or ciphertext values.
    Salt and IV come from independent os.urandom() calls.
"""
import os
import logging
from typing import NamedTuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import AuthenticationFailed, InvalidPadding

logger = logging.getLogger("secret_drop.envelope")

SALT_SIZE = 16  # 128-bit salt
IV_SIZE = 16  # one AES block
MAC_SIZE = 32  # HMAC-SHA256 digest
BLOCK_SIZE = 16  # AES block, in bytes
KEY_LENGTH = 32  # AES-256 / HMAC key
DERIVED_KEY_SIZE = KEY_LENGTH * 2
PBKDF2_ITERATIONS = 100_000


class DerivedKeys(NamedTuple):
    """Encryption and authentication halves of one PBKDF2 derivation."""

    encryption_key: bytes
    mac_key: bytes


def generate_salt() -> bytes:
    """Return a fresh random salt."""
    return os.urandom(SALT_SIZE)


def generate_iv() -> bytes:
    """Return a fresh random CBC initialization vector."""
    return os.urandom(IV_SIZE)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_keys(password: str, salt: bytes) -> DerivedKeys:
    """Derive the encryption and MAC keys from a password.

    A single 512-bit PBKDF2-SHA256 output is split in two: the first
    32 bytes key AES, the last 32 bytes key HMAC.

    Args:
        password: Sender-chosen password (UTF-8 encoded before stretching).
        salt: Per-envelope random salt.

    Returns:
        DerivedKeys(encryption_key, mac_key).
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=DERIVED_KEY_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    material = kdf.derive(password.encode("utf-8"))
    return DerivedKeys(material[:KEY_LENGTH], material[KEY_LENGTH:])


# ---------------------------------------------------------------------------
# AES-256-CBC
# ---------------------------------------------------------------------------

def encrypt_cbc(key: bytes, iv: bytes, plaintext: bytes) -> bytes:
    """PKCS#7-pad and encrypt plaintext with AES-256-CBC.

    Returns:
        Ciphertext, a whole number of 16-byte blocks.
    """
    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt_cbc(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    """Decrypt AES-256-CBC ciphertext and strip PKCS#7 padding.

    Only call this after :func:`verify_mac` has accepted the ciphertext.

    Raises:
        InvalidPadding: If the ciphertext is not block-aligned, the IV has
            the wrong size, or the padding bytes are malformed.
    """
    if not ciphertext or len(ciphertext) % BLOCK_SIZE:
        raise InvalidPadding(
            f"ciphertext length {len(ciphertext)} is not a positive "
            f"multiple of {BLOCK_SIZE}"
        )
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as err:
        raise InvalidPadding("Invalid block padding") from err


# ---------------------------------------------------------------------------
# HMAC-SHA256 (encrypt-then-MAC)
# ---------------------------------------------------------------------------

def compute_mac(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    """Return HMAC-SHA256 over [iv][ciphertext]."""
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(iv + ciphertext)
    return h.finalize()


def verify_mac(key: bytes, iv: bytes, ciphertext: bytes, mac: bytes) -> None:
    """Verify the MAC in constant time.

    Raises:
        AuthenticationFailed: If the MAC does not match.
    """
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(iv + ciphertext)
    try:
        h.verify(mac)
    except InvalidSignature as err:
        raise AuthenticationFailed(
            "Authentication failed - wrong password or tampered envelope"
        ) from err
