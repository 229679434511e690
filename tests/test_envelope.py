"""
Tests for the envelope codec.

Tests cover:
- Encrypt/decrypt round-trip with and without expiry
- Envelope shape (field count, decoded sizes, block alignment)
- Wrong password and tamper detection (MAC verified before decryption)
- Malformed envelopes, invalid padding and malformed payloads
- PlaintextRecord canonical form and expiry check
"""
import time
import base64
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from secret_drop.envelope import Envelope, PlaintextRecord, encrypt, decrypt
from secret_drop.envelope.crypto import (
    BLOCK_SIZE,
    IV_SIZE,
    MAC_SIZE,
    SALT_SIZE,
    compute_mac,
    derive_keys,
    encrypt_cbc,
)
from secret_drop.exceptions import (
    AuthenticationFailed,
    InvalidPadding,
    InvalidPlaintext,
    MalformedEnvelope,
    MalformedPayload,
    ValidationError,
)

PASSWORD = "correct horse battery staple"


# --- Test Fixtures ---

@pytest.fixture(scope="module")
def sealed():
    """A valid envelope shared by read-only tests."""
    return encrypt("the launch code is 0000", PASSWORD, expiry=1_900_000_000_000)


def _flip_bit(data: bytes, bit: int) -> bytes:
    buf = bytearray(data)
    buf[bit // 8] ^= 1 << (bit % 8)
    return bytes(buf)


def _seal_raw(plaintext_blocks: bytes, password: str = PASSWORD) -> str:
    """Build an envelope with a valid MAC around arbitrary raw ciphertext input."""
    salt = b"\x01" * SALT_SIZE
    iv = b"\x02" * IV_SIZE
    keys = derive_keys(password, salt)
    encryptor = Cipher(algorithms.AES(keys.encryption_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(plaintext_blocks) + encryptor.finalize()
    mac = compute_mac(keys.mac_key, iv, ciphertext)
    return Envelope(salt, iv, ciphertext, mac).serialize()


def _seal_plaintext(plaintext: bytes, password: str = PASSWORD) -> str:
    """Build a correctly padded, authenticated envelope around plaintext."""
    salt = b"\x03" * SALT_SIZE
    iv = b"\x04" * IV_SIZE
    keys = derive_keys(password, salt)
    ciphertext = encrypt_cbc(keys.encryption_key, iv, plaintext)
    mac = compute_mac(keys.mac_key, iv, ciphertext)
    return Envelope(salt, iv, ciphertext, mac).serialize()


# --- Test Round-Trip ---

class TestRoundTrip:
    """Tests for encrypt followed by decrypt."""

    def test_message_and_expiry(self, sealed):
        """Test decrypt recovers both message and expiry."""
        record = decrypt(sealed, PASSWORD)
        assert record.message == "the launch code is 0000"
        assert record.expiry == 1_900_000_000_000

    def test_without_expiry(self):
        """Test expiry defaults to None."""
        record = decrypt(encrypt("no expiry", "pw"), "pw")
        assert record == PlaintextRecord(message="no expiry", expiry=None)

    def test_unicode_message_and_password(self):
        """Test non-ASCII message and password survive the round-trip."""
        message = "contraseña: ñandú 🔐 密码"
        record = decrypt(encrypt(message, "pässwörd🔑"), "pässwörd🔑")
        assert record.message == message

    def test_empty_message(self):
        """Test an empty message still produces one padded block."""
        envelope = encrypt("", "pw")
        assert decrypt(envelope, "pw").message == ""

    def test_multiline_message(self):
        """Test message with newlines, quotes and delimiters."""
        message = 'line one\nline "two"\tand a . dot\n'
        assert decrypt(encrypt(message, "pw"), "pw").message == message

    @pytest.mark.parametrize("expiry", [
        1_900_000_000_000.5,
        1_700_000_000_123.25,
        0,
        -1,
    ])
    def test_numeric_expiry(self, expiry):
        """Test fractional and edge numeric expiries survive the round-trip."""
        record = decrypt(encrypt("hi", "pw", expiry=expiry), "pw")
        assert record == PlaintextRecord("hi", expiry)

    def test_wall_clock_expiry(self):
        """Test an expiry built from time.time() * 1000 round-trips."""
        expiry = time.time() * 1000 + 60_000
        record = decrypt(encrypt("hi", "pw", expiry=expiry), "pw")
        assert record.expiry == expiry
        assert record.is_expired() is False


# --- Test Plaintext Validation ---

class TestPlaintextValidation:
    """Tests for inputs encrypt refuses to seal."""

    @pytest.mark.parametrize("expiry", [
        True,
        "tomorrow",
        datetime(2030, 1, 1, tzinfo=timezone.utc),
        float("nan"),
        float("inf"),
    ])
    def test_invalid_expiry(self, expiry):
        """Test non-numeric or non-finite expiries are rejected up front."""
        with pytest.raises(InvalidPlaintext) as exc:
            encrypt("hi", "pw", expiry=expiry)
        assert isinstance(exc.value, ValidationError)

    def test_lone_surrogate(self):
        """Test a message that is not valid Unicode text is rejected."""
        with pytest.raises(InvalidPlaintext):
            encrypt("\ud800", "pw")

    def test_non_text_message(self):
        """Test a non-string message is rejected."""
        with pytest.raises(InvalidPlaintext):
            encrypt(b"bytes", "pw")

    def test_rejected_before_key_derivation(self, monkeypatch):
        """Test invalid plaintext never reaches the key derivation."""
        derive = Mock()
        monkeypatch.setattr("secret_drop.envelope.codec.derive_keys", derive)
        with pytest.raises(InvalidPlaintext):
            encrypt("\ud800", "pw")
        derive.assert_not_called()


# --- Test Envelope Shape ---

class TestEnvelopeShape:
    """Tests for the serialized envelope format."""

    def test_four_fields(self, sealed):
        """Test envelope has exactly four dot-separated fields."""
        assert len(sealed.split(".")) == 4

    def test_decoded_sizes(self, sealed):
        """Test decoded salt/iv/mac sizes and ciphertext alignment."""
        salt, iv, ciphertext, mac = (
            base64.b64decode(part, validate=True) for part in sealed.split(".")
        )
        assert len(salt) == SALT_SIZE == 16
        assert len(iv) == IV_SIZE == 16
        assert len(mac) == MAC_SIZE == 32
        assert ciphertext
        assert len(ciphertext) % BLOCK_SIZE == 0

    def test_fresh_salt_and_iv(self):
        """Test two encryptions of the same input never share salt or iv."""
        first = Envelope.parse(encrypt("same", "pw"))
        second = Envelope.parse(encrypt("same", "pw"))
        assert first.salt != second.salt
        assert first.iv != second.iv
        assert first.salt != first.iv
        assert first.ciphertext != second.ciphertext

    def test_parse_serialize_identity(self, sealed):
        """Test parse then serialize reproduces the envelope text."""
        assert Envelope.parse(sealed).serialize() == sealed


# --- Test Authentication ---

class TestAuthentication:
    """Tests for wrong passwords and tampering."""

    def test_wrong_password(self, sealed):
        """Test a wrong password fails authentication."""
        with pytest.raises(AuthenticationFailed):
            decrypt(sealed, PASSWORD + "!")

    def test_empty_password_is_wrong(self, sealed):
        """Test an empty password fails authentication."""
        with pytest.raises(AuthenticationFailed):
            decrypt(sealed, "")

    @pytest.mark.parametrize("bit", [0, 7, 64, 130, -1])
    def test_ciphertext_bit_flip(self, sealed, bit):
        """Test flipping a ciphertext bit fails authentication, not padding."""
        env = Envelope.parse(sealed)
        bit = bit % (len(env.ciphertext) * 8)
        tampered = Envelope(env.salt, env.iv, _flip_bit(env.ciphertext, bit), env.mac)
        with pytest.raises(AuthenticationFailed):
            decrypt(tampered.serialize(), PASSWORD)

    @pytest.mark.parametrize("bit", [0, 100, 255])
    def test_mac_bit_flip(self, sealed, bit):
        """Test flipping a MAC bit fails authentication."""
        env = Envelope.parse(sealed)
        tampered = Envelope(env.salt, env.iv, env.ciphertext, _flip_bit(env.mac, bit))
        with pytest.raises(AuthenticationFailed):
            decrypt(tampered.serialize(), PASSWORD)

    def test_iv_bit_flip(self, sealed):
        """Test the iv is covered by the MAC."""
        env = Envelope.parse(sealed)
        tampered = Envelope(env.salt, _flip_bit(env.iv, 3), env.ciphertext, env.mac)
        with pytest.raises(AuthenticationFailed):
            decrypt(tampered.serialize(), PASSWORD)

    def test_salt_bit_flip(self, sealed):
        """Test a modified salt derives different keys and fails."""
        env = Envelope.parse(sealed)
        tampered = Envelope(_flip_bit(env.salt, 9), env.iv, env.ciphertext, env.mac)
        with pytest.raises(AuthenticationFailed):
            decrypt(tampered.serialize(), PASSWORD)

    def test_truncated_mac(self, sealed):
        """Test a short MAC field fails authentication, not parsing."""
        env = Envelope.parse(sealed)
        tampered = Envelope(env.salt, env.iv, env.ciphertext, env.mac[:16])
        with pytest.raises(AuthenticationFailed):
            decrypt(tampered.serialize(), PASSWORD)

    def test_truncated_ciphertext(self, sealed):
        """Test dropping a ciphertext block fails authentication."""
        env = Envelope.parse(sealed)
        tampered = Envelope(env.salt, env.iv, env.ciphertext[:-BLOCK_SIZE], env.mac)
        with pytest.raises(AuthenticationFailed):
            decrypt(tampered.serialize(), PASSWORD)


# --- Test Malformed Envelopes ---

class TestMalformedEnvelope:
    """Tests for structurally invalid envelope text."""

    @pytest.mark.parametrize("text", [
        "",
        "AAAA",
        "AAAA.AAAA.AAAA",
        "AAAA.AAAA.AAAA.AAAA.AAAA",
    ])
    def test_wrong_field_count(self, text):
        """Test envelopes without exactly four fields are rejected."""
        with pytest.raises(MalformedEnvelope):
            decrypt(text, PASSWORD)

    def test_invalid_base64(self, sealed):
        """Test a field with characters outside the base64 alphabet."""
        salt, iv, ciphertext, mac = sealed.split(".")
        with pytest.raises(MalformedEnvelope):
            decrypt(".".join([salt, iv, "@@" + ciphertext, mac]), PASSWORD)

    def test_bad_base64_padding(self, sealed):
        """Test a field with broken base64 padding."""
        salt, iv, ciphertext, mac = sealed.split(".")
        with pytest.raises(MalformedEnvelope):
            decrypt(".".join([salt, iv[:-1], ciphertext, mac]), PASSWORD)

    def test_not_a_string(self):
        """Test non-string envelopes are rejected."""
        with pytest.raises(MalformedEnvelope):
            Envelope.parse(b"AAAA.AAAA.AAAA.AAAA")

    def test_malformed_is_not_authentication_failure(self):
        """Test structural errors are reported distinctly from MAC errors."""
        with pytest.raises(MalformedEnvelope) as exc:
            decrypt("a.b", PASSWORD)
        assert not isinstance(exc.value, AuthenticationFailed)


# --- Test Post-Authentication Failures ---

class TestDecryptedContent:
    """Tests for envelopes whose MAC verifies but whose content is bad."""

    def test_invalid_padding(self):
        """Test authenticated ciphertext with invalid PKCS#7 padding."""
        envelope = _seal_raw(b"A" * 15 + b"\x00")
        with pytest.raises(InvalidPadding):
            decrypt(envelope, PASSWORD)

    def test_unaligned_ciphertext(self):
        """Test authenticated ciphertext that is not block-aligned."""
        salt, iv = b"\x05" * SALT_SIZE, b"\x06" * IV_SIZE
        keys = derive_keys(PASSWORD, salt)
        ciphertext = b"\x07" * 10
        mac = compute_mac(keys.mac_key, iv, ciphertext)
        envelope = Envelope(salt, iv, ciphertext, mac).serialize()
        with pytest.raises(InvalidPadding):
            decrypt(envelope, PASSWORD)

    @pytest.mark.parametrize("plaintext", [
        b"not json at all",
        b"[1, 2, 3]",
        b'{"expiry": null}',
        b'{"message": 42, "expiry": null}',
        b'{"message": "hi", "expiry": "tomorrow"}',
        b'{"message": "hi", "expiry": true}',
        b"\xff\xfe\xfd",
    ])
    def test_malformed_payload(self, plaintext):
        """Test authenticated plaintext that is not a valid record."""
        with pytest.raises(MalformedPayload):
            decrypt(_seal_plaintext(plaintext), PASSWORD)

    def test_fractional_expiry_accepted(self):
        """Test a record sealed elsewhere with a fractional expiry decodes."""
        record = decrypt(
            _seal_plaintext(b'{"message":"hi","expiry":1.9e12}'), PASSWORD,
        )
        assert record == PlaintextRecord("hi", 1.9e12)

    def test_missing_expiry_is_none(self):
        """Test a record without the expiry key decodes with expiry None."""
        record = decrypt(_seal_plaintext(b'{"message": "hi"}'), PASSWORD)
        assert record == PlaintextRecord("hi", None)


# --- Test PlaintextRecord ---

class TestPlaintextRecord:
    """Tests for the sealed record form."""

    def test_canonical_form(self):
        """Test compact JSON with message first and expiry second."""
        assert PlaintextRecord("hi").to_bytes() == b'{"message":"hi","expiry":null}'
        assert (
            PlaintextRecord("hi", 5).to_bytes()
            == b'{"message":"hi","expiry":5}'
        )

    def test_from_bytes(self):
        """Test parsing the canonical form."""
        record = PlaintextRecord.from_bytes(b'{"message":"hi","expiry":5}')
        assert record.message == "hi"
        assert record.expiry == 5

    def test_no_expiry_never_expires(self):
        """Test a record without expiry is never expired."""
        assert PlaintextRecord("hi").is_expired(now_ms=10**15) is False

    def test_is_expired(self):
        """Test expiry comparison against an explicit clock."""
        record = PlaintextRecord("hi", expiry=1_000)
        assert record.is_expired(now_ms=999) is False
        assert record.is_expired(now_ms=1_000) is True
        assert record.is_expired(now_ms=5_000) is True

    def test_is_expired_uses_wall_clock(self):
        """Test the default clock treats a past expiry as expired."""
        assert PlaintextRecord("hi", expiry=1).is_expired() is True
