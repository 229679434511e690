"""
Record Lifetime — How long a stored secret lives and what ends it.

A record ends by one of two triggers that share the backend's ``delete``:
- time: the backend evicts the record once its TTL elapses
- consumption: a read-once record is deleted after its first fetch
"""
from typing import Mapping, Optional
from dataclasses import dataclass

from .config import StoreConfig

EXPIRY_OPTIONS: Mapping[str, int] = {
    "5min": 5 * 60,
    "30min": 30 * 60,
    "1hour": 60 * 60,
    "6hour": 6 * 60 * 60,
    "1day": 24 * 60 * 60,
}


@dataclass(frozen=True)
class RecordLifetime:
    """Effective TTL (seconds) and burn-after-read flag of one record."""

    ttl: int
    read_once: bool = False

    @property
    def burns_on_read(self) -> bool:
        return self.read_once

    @classmethod
    def resolve(
        cls,
        read_once: bool,
        expiry_option: Optional[str],
        config: StoreConfig,
        options: Mapping[str, int] = EXPIRY_OPTIONS,
    ) -> "RecordLifetime":
        """Compute the lifetime for a new record.

        Read-once records get ``config.read_once_ttl`` regardless of the
        requested option, so a link that is never opened still expires.
        Unknown options fall back to ``config.default_ttl``. The result is
        clamped up to ``config.min_ttl``.
        """
        if read_once:
            ttl = config.read_once_ttl
        elif isinstance(expiry_option, str):
            ttl = options.get(expiry_option, config.default_ttl)
        else:
            ttl = config.default_ttl
        return cls(ttl=max(ttl, config.min_ttl), read_once=bool(read_once))
