"""Envelope Codec — Password-based encrypt-then-MAC envelopes.

Security Note (Threat Model):
    Envelopes are produced and opened on the client. The server only ever
    stores the serialized envelope; the password never leaves the client.
    The password is the weak link: PBKDF2 iterations raise the cost of
    offline guessing but cannot rescue a low-entropy password.
"""

from .codec import Envelope, PlaintextRecord, encrypt, decrypt
from .crypto import derive_keys, DerivedKeys

__all__ = [
    "Envelope",
    "PlaintextRecord",
    "encrypt",
    "decrypt",
    "derive_keys",
    "DerivedKeys",
]
