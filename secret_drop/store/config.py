"""
Store Configuration — Validated settings for the secret store.

Reads overrides from environment variables:
    SECRETS_REDIS_URL = <redis connection url>
    SECRETS_KEY_PREFIX = <prefix for every stored key>
    SECRETS_MAX_PAYLOAD_SIZE = <maximum envelope length, in characters>
    SECRETS_MIN_TTL = <smallest TTL the backing store accepts, in seconds>
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("secret_drop.store")

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_KEY_PREFIX = "secret:"
ONE_DAY = 24 * 60 * 60


class StoreConfig(BaseModel):
    """Validated secret store configuration."""

    redis_url: str = Field(default=DEFAULT_REDIS_URL)
    key_prefix: str = Field(default=DEFAULT_KEY_PREFIX)
    max_payload_size: int = Field(default=2_000_000, ge=1)
    id_length: int = Field(default=16, ge=8)
    max_id_length: int = Field(default=32, ge=1)
    min_ttl: int = Field(default=60, ge=60)
    default_ttl: int = Field(default=ONE_DAY, ge=1)
    read_once_ttl: int = Field(default=ONE_DAY, ge=1)

    @field_validator("key_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Reject prefixes that would collide with generated identifiers."""
        if v and v[-1].isalnum():
            raise ValueError(
                f"key_prefix must end with a separator, got {v!r}"
            )
        return v

    @model_validator(mode="after")
    def validate_bounds(self) -> "StoreConfig":
        """Ensure TTLs respect min_ttl and ids fit the accepted length."""
        if self.id_length > self.max_id_length:
            raise ValueError(
                f"id_length {self.id_length} exceeds "
                f"max_id_length {self.max_id_length}"
            )
        for name in ("default_ttl", "read_once_ttl"):
            if getattr(self, name) < self.min_ttl:
                raise ValueError(
                    f"{name} must be at least min_ttl ({self.min_ttl}s)"
                )
        return self

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Create StoreConfig from environment overrides.

        Returns:
            Populated StoreConfig instance.
        """
        values: dict = {}
        if "SECRETS_REDIS_URL" in os.environ:
            values["redis_url"] = os.environ["SECRETS_REDIS_URL"]
        if "SECRETS_KEY_PREFIX" in os.environ:
            values["key_prefix"] = os.environ["SECRETS_KEY_PREFIX"]
        if "SECRETS_MAX_PAYLOAD_SIZE" in os.environ:
            values["max_payload_size"] = int(os.environ["SECRETS_MAX_PAYLOAD_SIZE"])
        if "SECRETS_MIN_TTL" in os.environ:
            values["min_ttl"] = int(os.environ["SECRETS_MIN_TTL"])
        config = cls(**values)
        logger.debug(
            "Store config loaded: prefix=%s max_payload_size=%d min_ttl=%d",
            config.key_prefix, config.max_payload_size, config.min_ttl,
        )
        return config
