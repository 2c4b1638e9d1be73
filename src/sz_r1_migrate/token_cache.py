"""Expiring bearer-token storage.

Tokens are stored per credential fingerprint with an absolute expiry.
Expiry is enforced on read; nothing evicts entries eagerly. The clock is
injectable so tests can move time forward.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from sz_r1_migrate.credentials import write_private_json

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class CachedToken:
    """A bearer token and the moment it stops being usable."""

    value: str
    fingerprint: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "expires_at": self.expires_at}

    @classmethod
    def from_dict(cls, fingerprint: str, data: dict[str, Any]) -> CachedToken:
        return cls(
            value=str(data["value"]),
            fingerprint=fingerprint,
            expires_at=float(data["expires_at"]),
        )


class TokenCache(Protocol):
    """Storage interface used by the token manager."""

    def get(self, fingerprint: str) -> str | None: ...

    def set(self, fingerprint: str, token: str, ttl_seconds: float) -> None: ...

    def delete(self, fingerprint: str) -> None: ...


class MemoryTokenCache:
    """In-process token cache."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, CachedToken] = {}

    def get(self, fingerprint: str) -> str | None:
        entry = self._entries.get(fingerprint)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[fingerprint]
            return None
        return entry.value

    def set(self, fingerprint: str, token: str, ttl_seconds: float) -> None:
        expires_at = self._clock() + max(0.0, ttl_seconds)
        self._entries[fingerprint] = CachedToken(token, fingerprint, expires_at)

    def delete(self, fingerprint: str) -> None:
        self._entries.pop(fingerprint, None)

    def __len__(self) -> int:
        return len(self._entries)


class FileTokenCache:
    """Token cache persisted to a JSON file so tokens survive between runs.

    Expired entries are dropped whenever the file is rewritten.
    """

    def __init__(self, path: str | Path, clock: Clock = time.time) -> None:
        self.path = Path(path)
        self._clock = clock

    def _load(self) -> dict[str, CachedToken]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable token cache %s: %s", self.path, e)
            return {}
        if not isinstance(raw, dict):
            return {}

        entries: dict[str, CachedToken] = {}
        for fingerprint, data in raw.items():
            try:
                entries[fingerprint] = CachedToken.from_dict(fingerprint, data)
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed token cache entry %s", fingerprint)
        return entries

    def _save(self, entries: dict[str, CachedToken]) -> None:
        now = self._clock()
        live = {k: v.to_dict() for k, v in entries.items() if not v.is_expired(now)}
        write_private_json(self.path, live)

    def get(self, fingerprint: str) -> str | None:
        entry = self._load().get(fingerprint)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry.value

    def set(self, fingerprint: str, token: str, ttl_seconds: float) -> None:
        entries = self._load()
        expires_at = self._clock() + max(0.0, ttl_seconds)
        entries[fingerprint] = CachedToken(token, fingerprint, expires_at)
        self._save(entries)

    def delete(self, fingerprint: str) -> None:
        entries = self._load()
        if entries.pop(fingerprint, None) is not None:
            self._save(entries)
