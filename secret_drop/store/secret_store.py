"""
SecretStore — Ephemeral storage of ciphertext envelopes.

Provides the public API for the Secret Store:
- ``create(payload, read_once, expiry_option)`` — persist an envelope, return its id
- ``fetch(secret_id)`` — return the envelope and metadata, burning read-once records
- ``drain()`` / ``close()`` — wait for pending burns, release the backend

Single-read guarantee (accepted weak spot):
    The backend offers get and delete as separate atomic operations with no
    conditional read-and-delete. Two fetches of the same read-once id that
    overlap before the delete lands can both succeed; each schedules an
    idempotent delete. Within one process a local tombstone rejects any
    fetch that starts after the first one returned. A strict at-most-once
    reader needs a backend with an atomic get-and-delete primitive.

Security Note:
    The store never sees plaintext. Only log ids, TTLs and operations,
    never the envelope itself.
"""
import time
import string
import asyncio
import secrets
import logging
from functools import partial
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as ModelValidationError

from ..exceptions import (
    InvalidId,
    InvalidPayload,
    NotFound,
    PayloadRequired,
    PayloadTooLarge,
    StorageFailure,
)
from .backends import KVBackend
from .config import StoreConfig
from .lifetime import RecordLifetime

logger = logging.getLogger("secret_drop.store")

ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits

_system_random = secrets.SystemRandom()


def generate_id(length: int = 16, rng: Any = None) -> str:
    """Return a random identifier drawn uniformly from ``ID_ALPHABET``.

    Args:
        length: Number of characters (16 gives ~95 bits of entropy).
        rng: Object with a ``choice`` method; defaults to the system CSPRNG.
    """
    rng = rng or _system_random
    return "".join(rng.choice(ID_ALPHABET) for _ in range(length))


class SecretMetadata(BaseModel):
    """Metadata stored beside each envelope."""

    read_once: bool = Field(default=False, alias="readOnce")
    creation_time: Optional[int] = Field(default=None, alias="creationTime")
    user_expiry_option: Optional[str] = Field(default=None, alias="userExpiryOption")

    model_config = {"populate_by_name": True}


class SecretRecord(BaseModel):
    """Envelope and metadata returned by :meth:`SecretStore.fetch`."""

    encrypted_payload: str = Field(alias="encryptedPayload")
    metadata: Optional[SecretMetadata] = None

    model_config = {"populate_by_name": True}

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class SecretStore:
    """Ephemeral secret store over a TTL-capable key-value backend.

    Records end either when the backend TTL elapses or, for read-once
    records, when the first fetch schedules their deletion.
    """

    def __init__(
        self,
        backend: KVBackend,
        config: Optional[StoreConfig] = None,
        rng: Any = None,
        clock: Callable[[], float] = time.time,
    ):
        self._backend = backend
        self._config = config or StoreConfig()
        self._rng = rng
        self._clock = clock
        self._pending: set[asyncio.Task] = set()
        self._consumed: dict[str, float] = {}  # id -> tombstone expiry

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def backend(self) -> KVBackend:
        return self._backend

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_payload(self, payload: Any) -> None:
        """Validate an encrypted payload before any write.

        Raises:
            PayloadRequired: If payload is missing or empty.
            InvalidPayload: If payload is not a string.
            PayloadTooLarge: If payload exceeds max_payload_size.
        """
        if not payload:
            raise PayloadRequired("Encrypted payload is required")
        if not isinstance(payload, str):
            raise InvalidPayload("Invalid payload or payload too large")
        if len(payload) > self._config.max_payload_size:
            raise PayloadTooLarge(
                "Invalid payload or payload too large",
                details=f"{len(payload)} > {self._config.max_payload_size} characters",
            )

    def _validate_id(self, secret_id: Any) -> None:
        """Raise InvalidId unless secret_id is a non-empty bounded string."""
        if (
            not isinstance(secret_id, str)
            or not secret_id
            or len(secret_id) > self._config.max_id_length
        ):
            raise InvalidId("Invalid secret ID format")

    # ------------------------------------------------------------------
    # Burn-after-read
    # ------------------------------------------------------------------

    def _prune_consumed(self) -> None:
        now = self._clock()
        for secret_id in [k for k, until in self._consumed.items() if until <= now]:
            del self._consumed[secret_id]

    def _burn(self, secret_id: str) -> None:
        """Tombstone secret_id and schedule its deletion without awaiting it."""
        self._consumed[secret_id] = self._clock() + self._config.read_once_ttl
        task = asyncio.create_task(self._backend.delete(secret_id))
        self._pending.add(task)
        task.add_done_callback(partial(self._burned, secret_id))

    def _burned(self, secret_id: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Burn of secret id=%s was cancelled", secret_id)
            return
        err = task.exception()
        if err is not None:
            # tombstone stays until the backend TTL would have evicted it
            logger.warning("Burn of secret id=%s failed: %s", secret_id, err)
            return
        self._consumed.pop(secret_id, None)
        logger.debug("Burned read-once secret id=%s", secret_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(
        self,
        payload: Any,
        read_once: bool = False,
        expiry_option: Optional[str] = None,
    ) -> str:
        """Persist an encrypted envelope.

        Args:
            payload: Serialized envelope (opaque to the store).
            read_once: Delete the record after its first fetch.
            expiry_option: One of ``EXPIRY_OPTIONS``; unknown values get the
                default TTL. Ignored for read-once records.

        Returns:
            The new secret identifier.

        Raises:
            ValidationError: If payload is missing, not a string or too large.
            StorageFailure: If the backend write fails.
        """
        self._validate_payload(payload)
        secret_id = generate_id(self._config.id_length, self._rng)
        lifetime = RecordLifetime.resolve(read_once, expiry_option, self._config)
        metadata = SecretMetadata(
            read_once=lifetime.read_once,
            creation_time=int(self._clock() * 1000),
            user_expiry_option=expiry_option if isinstance(expiry_option, str) else None,
        )
        await self._backend.put(
            secret_id,
            payload,
            expiration_ttl=lifetime.ttl,
            metadata=metadata.model_dump(by_alias=True),
        )
        logger.info(
            "Secret created: id=%s ttl=%ds read_once=%s",
            secret_id, lifetime.ttl, lifetime.read_once,
        )
        return secret_id

    async def fetch(self, secret_id: str) -> SecretRecord:
        """Return a stored envelope, burning it if it is read-once.

        Args:
            secret_id: Identifier returned by :meth:`create`.

        Returns:
            SecretRecord with the envelope and its metadata.

        Raises:
            InvalidId: If secret_id is empty, not a string or too long.
            NotFound: If the secret is absent, expired or already consumed.
            StorageFailure: If the backend read fails.
        """
        self._validate_id(secret_id)
        self._prune_consumed()
        if secret_id in self._consumed:
            raise NotFound("Secret not found or expired")

        stored = await self._backend.get_with_metadata(secret_id)
        if not stored.value:
            raise NotFound("Secret not found or expired")

        metadata = None
        if stored.metadata is not None:
            try:
                metadata = SecretMetadata.model_validate(stored.metadata)
            except ModelValidationError as err:
                raise StorageFailure(
                    f"Corrupt metadata for secret id={secret_id}"
                ) from err
        record = SecretRecord(encrypted_payload=stored.value, metadata=metadata)

        if metadata is not None and metadata.read_once:
            self._burn(secret_id)
        logger.debug("Secret fetched: id=%s", secret_id)
        return record

    async def drain(self) -> None:
        """Wait for every scheduled burn to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Drain pending burns and close the backend."""
        await self.drain()
        await self._backend.close()
