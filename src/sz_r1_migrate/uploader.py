"""Bulk AP creation against a RUCKUS One venue.

An upload runs through a fixed sequence of phases: acquire a token, fetch
the venue's AP groups, check that every group the batch references exists,
then create APs one at a time in input order. The group check happens
before any create call, and the first failed create aborts the batch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sz_r1_migrate.adapters import DEFAULT_GROUP_NAME, ApGroup
from sz_r1_migrate.api_client import APIError, RuckusOneClient
from sz_r1_migrate.csv_parser import ConvertedRecord

logger = logging.getLogger(__name__)

VENUE_LEVEL_TARGET = "venue level (no AP Group)"


class UploadState(str, Enum):
    """Phases of one upload run."""

    IDLE = "idle"
    ACQUIRING_TOKEN = "acquiring_token"
    FETCHING_GROUPS = "fetching_groups"
    VALIDATING_GROUPS = "validating_groups"
    CREATING = "creating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadProgress:
    """A progress update; percent never decreases within one run."""

    state: UploadState
    percent: int
    message: str
    completed: int = 0
    total: int = 0


@dataclass
class UploadResult:
    """Outcome of a successful upload."""

    venue_id: str
    created: list[Any] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.created)

    @property
    def message(self) -> str:
        return (
            f"Successfully uploaded {self.count} AP records to RUCKUS One venue "
            f"{self.venue_id}. APs with AP Groups were assigned to their groups, "
            "others were uploaded to venue level."
        )


class PreflightError(Exception):
    """Raised when the batch references AP groups the venue does not have."""

    def __init__(self, missing: list[str], venue_id: str) -> None:
        self.missing = list(missing)
        self.venue_id = venue_id
        super().__init__(
            f"The following AP Groups do not exist in venue {venue_id}: "
            f"{', '.join(self.missing)}. Please create these AP Groups first."
        )


class UploadError(Exception):
    """Raised when creating one AP fails; the rest of the batch is skipped.

    Attributes:
        ap_name: AP that failed.
        target: Human-readable destination (AP group or venue level).
        completed: APs created before the failure.
        cause: The underlying API error.
    """

    def __init__(self, ap_name: str, target: str, completed: int, cause: APIError) -> None:
        self.ap_name = ap_name
        self.target = target
        self.completed = completed
        self.cause = cause
        super().__init__(f'Failed to upload AP "{ap_name}" to {target}: {cause}')


ProgressCallback = Callable[[UploadProgress], None]


class ApGroupLookup:
    """Resolves AP group names (or literal ids) to group ids.

    A group with no name that is flagged as the default is filed under
    "Default". When two groups share a key the later one wins.
    """

    def __init__(self, groups: Iterable[ApGroup]) -> None:
        self._by_name: dict[str, str] = {}
        self._ids: set[str] = set()

        for group in groups:
            if group.id:
                self._ids.add(group.id)
            key = group.name or (DEFAULT_GROUP_NAME if group.is_default else "")
            if not key:
                continue
            previous = self._by_name.get(key)
            if previous is not None and previous != group.id:
                logger.warning(
                    "AP group name '%s' maps to several groups; using %s over %s",
                    key,
                    group.id,
                    previous,
                )
            self._by_name[key] = group.id

    def resolve(self, name: str) -> str | None:
        """Return the group id for a name or id, or None if unknown."""
        name = name.strip()
        if name in self._by_name:
            return self._by_name[name]
        if name in self._ids:
            return name
        return None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None

    def missing(self, names: Iterable[str]) -> list[str]:
        """Return distinct non-blank names that do not resolve, in order."""
        result: dict[str, None] = {}
        for name in names:
            name = name.strip()
            if name and name not in self:
                result[name] = None
        return list(result)


def build_ap_payload(record: ConvertedRecord) -> dict[str, Any]:
    """Build the create-AP request body for one record.

    ``deviceGps`` is included only when both coordinates are present.
    """
    payload: dict[str, Any] = {
        "name": record.ap_name,
        "description": record.description or None,
        "serialNumber": record.serial_number,
        "model": None,
        "tags": [tag for tag in record.tags if tag.strip()],
    }
    if record.latitude and record.longitude:
        payload["deviceGps"] = {
            "latitude": record.latitude,
            "longitude": record.longitude,
        }
    return payload


def creation_percent(index: int, total: int) -> int:
    """Progress after creating the AP at ``index`` (0-based) of ``total``."""
    return 60 + ((index + 1) * 30) // total


class ApUploader:
    """
    Uploads converted AP records to one venue.

    Example:
        >>> uploader = ApUploader(client, venue_id, on_progress=print)
        >>> result = await uploader.upload(records)
        >>> result.count
    """

    def __init__(
        self,
        client: RuckusOneClient,
        venue_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.client = client
        self.venue_id = venue_id
        self.on_progress = on_progress
        self.state = UploadState.IDLE
        self.failed_state: UploadState | None = None
        self._percent = 0
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def _report(
        self,
        state: UploadState,
        percent: int,
        message: str,
        completed: int = 0,
        total: int = 0,
    ) -> None:
        self.state = state
        self._percent = max(self._percent, percent)
        if self.on_progress is not None:
            self.on_progress(
                UploadProgress(
                    state=state,
                    percent=self._percent,
                    message=message,
                    completed=completed,
                    total=total,
                )
            )

    async def upload(self, records: Sequence[ConvertedRecord]) -> UploadResult:
        """
        Run one upload.

        Args:
            records: Converted records, created in this order.

        Returns:
            UploadResult with one created response per record.

        Raises:
            RuntimeError: If this uploader is already running.
            ValueError: If no venue id is set.
            AuthenticationError: If no token can be obtained.
            APIError: If the AP group list cannot be fetched.
            PreflightError: If referenced AP groups are missing.
            UploadError: If an AP create call fails.
        """
        if self._active:
            raise RuntimeError("An upload is already in progress")
        if not self.venue_id:
            raise ValueError("Venue ID is required for upload")

        self._active = True
        self.failed_state = None
        self._percent = 0
        try:
            return await self._run(records)
        except Exception as e:
            self.failed_state = self.state
            self._report(UploadState.FAILED, self._percent, f"Upload failed: {e}")
            raise
        finally:
            self._active = False

    async def _run(self, records: Sequence[ConvertedRecord]) -> UploadResult:
        total = len(records)

        self._report(UploadState.ACQUIRING_TOKEN, 10, "Acquiring access token", total=total)
        await self.client.get_token()

        self._report(
            UploadState.FETCHING_GROUPS,
            30,
            f"Fetching AP groups for venue {self.venue_id}",
            total=total,
        )
        groups = await self.client.list_ap_groups(self.venue_id)
        lookup = ApGroupLookup(groups)

        self._report(
            UploadState.VALIDATING_GROUPS,
            40,
            f"Validating AP groups against {len(groups)} existing groups",
            total=total,
        )
        missing = lookup.missing(record.ap_group for record in records)
        if missing:
            raise PreflightError(missing, self.venue_id)

        self._report(UploadState.VALIDATING_GROUPS, 50, "AP groups validated", total=total)
        payloads = [build_ap_payload(record) for record in records]
        self._report(UploadState.CREATING, 60, f"Creating {total} APs", total=total)

        created: list[Any] = []
        for index, (record, payload) in enumerate(zip(records, payloads)):
            group_name = record.ap_group.strip()
            group_id = lookup.resolve(group_name) if group_name else None
            target = f'AP Group "{group_name}"' if group_name else VENUE_LEVEL_TARGET

            try:
                response = await self.client.create_ap(self.venue_id, payload, group_id)
            except APIError as e:
                raise UploadError(record.ap_name, target, len(created), e) from e

            created.append(response)
            logger.info("Created AP %s (%s) in %s", record.ap_name, record.serial_number, target)
            self._report(
                UploadState.CREATING,
                creation_percent(index, total),
                f"Created {record.ap_name}",
                completed=len(created),
                total=total,
            )

        result = UploadResult(venue_id=self.venue_id, created=created)
        self._report(UploadState.SUCCEEDED, 100, result.message, completed=total, total=total)
        logger.info("Uploaded %d APs to venue %s", result.count, self.venue_id)
        return result
