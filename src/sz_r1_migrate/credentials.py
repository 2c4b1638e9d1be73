"""Credential model and local persistence.

Credentials are kept as a single JSON entry under a fixed key, read back
with per-field defaults and overwritten on every edit (last write wins).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Literal
from urllib.parse import quote

from sz_r1_migrate.config import DEFAULT_REGION, REGION_ORIGINS

logger = logging.getLogger(__name__)

# Key of the single stored credential entry
CREDENTIALS_KEY = "sz_r1_credentials"

Mode = Literal["regular", "msp"]
MODES: tuple[str, ...] = ("regular", "msp")

# Owner read/write only; the file holds the client secret
PRIVATE_FILE_MODE = 0o600


def write_private_json(path: Path, data: Any) -> None:
    """Write JSON to a file that only its owner can read.

    A new file is created with PRIVATE_FILE_MODE, never with the umask
    default; an existing file is narrowed before it is rewritten.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        try:
            path.chmod(PRIVATE_FILE_MODE)
        except OSError:
            logger.debug("Could not restrict permissions on %s", path)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, PRIVATE_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)


@dataclass(frozen=True)
class Credentials:
    """RUCKUS One API credentials plus the venue being targeted.

    Attributes:
        tenant_id: Tenant the client credentials belong to.
        client_id: OAuth2 client id.
        client_secret: OAuth2 client secret.
        mode: "regular" or "msp" (managing customer tenants).
        msp_id: MSP identifier sent as the MSP scope header.
        target_tenant_id: Customer tenant addressed in MSP mode.
        venue_id: Venue that receives uploaded APs.
        region: API region ("na", "eu", "asia").
    """

    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    mode: Mode = "regular"
    msp_id: str = ""
    target_tenant_id: str = ""
    venue_id: str = ""
    region: str = DEFAULT_REGION

    @property
    def fingerprint(self) -> str:
        """Cache key scoping tokens to tenant, client and region."""
        region = self.region or DEFAULT_REGION
        tenant = quote(self.tenant_id, safe="")
        client = quote(self.client_id, safe="")
        return f"r1tk:{tenant}:{client}:{region}"

    def missing_fields(self, *names: str) -> list[str]:
        """Return which of the named fields are blank."""
        return [name for name in names if not getattr(self, name)]

    def merge(self, **updates: Any) -> Credentials:
        """Return a copy with every non-None update applied."""
        return replace(self, **{k: v for k, v in updates.items() if v is not None})

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credentials:
        """Create from dictionary, defaulting every missing or invalid field."""
        mode = data.get("mode") or "regular"
        if mode not in MODES:
            logger.warning("Ignoring unknown credential mode '%s'", mode)
            mode = "regular"
        region = data.get("region") or DEFAULT_REGION
        if region not in REGION_ORIGINS:
            logger.warning("Ignoring unknown region '%s'", region)
            region = DEFAULT_REGION
        return cls(
            tenant_id=str(data.get("tenant_id") or ""),
            client_id=str(data.get("client_id") or ""),
            client_secret=str(data.get("client_secret") or ""),
            mode=mode,
            msp_id=str(data.get("msp_id") or ""),
            target_tenant_id=str(data.get("target_tenant_id") or ""),
            venue_id=str(data.get("venue_id") or ""),
            region=region,
        )

    def __repr__(self) -> str:
        secret = "***" if self.client_secret else ""
        return (
            f"Credentials(tenant_id={self.tenant_id!r}, client_id={self.client_id!r}, "
            f"client_secret={secret!r}, mode={self.mode!r}, region={self.region!r}, "
            f"venue_id={self.venue_id!r})"
        )


class CredentialStore:
    """JSON-file backed store for one Credentials entry.

    Example:
        >>> store = CredentialStore(Path("~/.sz-r1-migrate/credentials.json"))
        >>> store.save(Credentials(tenant_id="t1", client_id="c1"))
        >>> store.load().tenant_id
        't1'
        >>> store.clear()
        >>> store.load().tenant_id
        ''
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load credentials from %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed credential file %s", self.path)
            return {}
        return data

    def load(self) -> Credentials:
        """Load stored credentials, or defaults if none are stored."""
        entry = self._read().get(CREDENTIALS_KEY)
        if not isinstance(entry, dict):
            return Credentials()
        return Credentials.from_dict(entry)

    def save(self, credentials: Credentials) -> None:
        """Persist credentials, replacing whatever was stored.

        Raises:
            OSError: If the file cannot be written.
        """
        data = self._read()
        data[CREDENTIALS_KEY] = credentials.to_dict()
        write_private_json(self.path, data)
        logger.debug("Saved credentials for tenant %s", credentials.tenant_id)

    def clear(self) -> None:
        """Remove the stored credential entry."""
        data = self._read()
        if CREDENTIALS_KEY not in data:
            return
        del data[CREDENTIALS_KEY]
        write_private_json(self.path, data)
        logger.debug("Cleared stored credentials")
