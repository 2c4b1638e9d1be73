"""Normalization of RUCKUS One response shapes.

Upstream payloads name the same field several ways depending on endpoint and
API version. Everything past this module works with ApGroup and AccessPoint.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

ACCESS_POINT_CSV_HEADERS = ("serial number", "name", "type", "ip address", "status")

DEFAULT_GROUP_NAME = "Default"


def unwrap_collection(payload: Any) -> list[Any]:
    """Return the item list of a collection response.

    Lists are returned as-is and ``{"data": [...]}`` wrappers are unwrapped.
    Anything else yields an empty list.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list):
            return data
    logger.debug("Unrecognized collection payload of type %s", type(payload).__name__)
    return []


def _first(obj: dict[str, Any], *keys: str) -> Any:
    """Return the first present, non-empty value among keys."""
    for key in keys:
        value = obj.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class ApGroup:
    """An AP group inside a venue."""

    id: str
    name: str
    is_default: bool = False

    @classmethod
    def from_api(cls, obj: dict[str, Any]) -> ApGroup:
        return cls(
            id=_text(_first(obj, "id", "apGroupId")),
            name=_text(obj.get("name")).strip(),
            is_default=bool(_first(obj, "isDefault", "default")),
        )


@dataclass(frozen=True)
class AccessPoint:
    """An access point as listed by the inventory endpoints."""

    serial_number: str
    name: str
    model: str
    ip_address: str
    status: str = "unknown"

    @classmethod
    def from_api(cls, obj: dict[str, Any]) -> AccessPoint:
        return cls(
            serial_number=_text(_first(obj, "serialNumber", "serial", "serial_no", "mac", "macAddress")),
            name=_text(_first(obj, "name", "hostname", "id")),
            model=_text(_first(obj, "model", "deviceModel", "type")),
            ip_address=_text(_first(obj, "ipAddress", "ip")),
            status=_text(_first(obj, "status", "state")) or "unknown",
        )

    def to_row(self) -> list[str]:
        """Cells in ACCESS_POINT_CSV_HEADERS order."""
        return [self.serial_number, self.name, self.model, self.ip_address, self.status]


def parse_ap_groups(payload: Any) -> list[ApGroup]:
    """Adapt an AP-group list response, skipping non-object items."""
    return [ApGroup.from_api(item) for item in unwrap_collection(payload) if isinstance(item, dict)]


def parse_access_points(payload: Any) -> list[AccessPoint]:
    """Adapt an AP inventory response, skipping non-object items."""
    return [
        AccessPoint.from_api(item) for item in unwrap_collection(payload) if isinstance(item, dict)
    ]


def access_points_to_csv(access_points: Iterable[AccessPoint]) -> str:
    """Render access points as CSV, quoting cells that need it."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(ACCESS_POINT_CSV_HEADERS)
    for ap in access_points:
        writer.writerow(ap.to_row())
    return buffer.getvalue()
