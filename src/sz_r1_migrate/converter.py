"""SmartZone export to RUCKUS One bulk-import conversion.

Conversion is all-or-nothing: every row is validated, every violation is
collected, and output is produced only when the batch is clean.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field

from sz_r1_migrate.csv_parser import TARGET_HEADERS, ConvertedRecord

logger = logging.getLogger(__name__)

# Source column positions used when the header does not name the column
AP_NAME_COLUMN = 1
DESCRIPTION_COLUMN = 2

AP_NAME_HEADERS = frozenset(["ap name", "name"])
DESCRIPTION_HEADERS = frozenset(["description"])

AP_NAME_MIN_LENGTH = 2
AP_NAME_MAX_LENGTH = 32
DESCRIPTION_MAX_LENGTH = 180
MAX_COORDINATE_DECIMALS = 6

# Anything outside letters, digits, space and the allowed punctuation
INVALID_AP_NAME_CHARS = re.compile(r"[^a-zA-Z0-9 !\"#$%'()*+,\-./:;<=>?@\[\]^_{|}~]")
FORBIDDEN_AP_NAME_SEQUENCES = ("$(",)

SERIAL_COLUMN_MISSING = "Serial column not found — enable it in the source export."


class ConversionValidationError(Exception):
    """Raised when a batch fails validation.

    Attributes:
        errors: Every violation found, in report order.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(
            "Validation errors found:\n" + "\n".join(f"• {err}" for err in self.errors)
        )


@dataclass(frozen=True)
class ConversionSettings:
    """Batch-level values applied to every converted row."""

    ap_group: str = ""
    latitude: str = ""
    longitude: str = ""


@dataclass
class ConversionResult:
    """Converted bulk-import rows with the fixed header order."""

    headers: list[str] = field(default_factory=lambda: list(TARGET_HEADERS))
    rows: list[list[str]] = field(default_factory=list)

    def to_records(self) -> list[ConvertedRecord]:
        """Return the rows as ConvertedRecord objects."""
        return [ConvertedRecord.from_row(row) for row in self.rows]


@dataclass(frozen=True)
class SourceColumns:
    """Column indexes of the fields read from a source row."""

    ap_name: int
    description: int
    serial: int


def find_serial_column(headers: list[str]) -> int | None:
    """Return the index of the first header containing 'serial', if any."""
    for index, header in enumerate(headers):
        if "serial" in header.lower():
            return index
    return None


def _find_named_column(headers: list[str], names: frozenset[str], default: int) -> int:
    for index, header in enumerate(headers):
        if header.strip().lower() in names:
            return index
    return default


def locate_columns(headers: list[str]) -> SourceColumns | None:
    """Resolve the AP name, description and serial columns.

    The serial column is found by substring match. AP name and description
    use an exact header match when the export names them and otherwise
    fall back to the SmartZone positions (1 and 2).

    Returns:
        SourceColumns, or None when no serial column exists.
    """
    serial = find_serial_column(headers)
    if serial is None:
        return None
    return SourceColumns(
        ap_name=_find_named_column(headers, AP_NAME_HEADERS, AP_NAME_COLUMN),
        description=_find_named_column(headers, DESCRIPTION_HEADERS, DESCRIPTION_COLUMN),
        serial=serial,
    )


def _cell(row: list[str], index: int) -> str:
    return row[index] if index < len(row) else ""


def _invalid_name_tokens(ap_name: str) -> list[str]:
    """Return offending characters and sequences, each once, in order found."""
    found = INVALID_AP_NAME_CHARS.findall(ap_name)
    found.extend(seq for seq in FORBIDDEN_AP_NAME_SEQUENCES if seq in ap_name)
    return list(dict.fromkeys(found))


def _validate_row(index: int, ap_name: str, description: str, serial: str) -> list[str]:
    errors: list[str] = []
    label = f"Row {index + 1}"

    if not ap_name:
        errors.append(f"{label}: AP name is mandatory")
    elif not AP_NAME_MIN_LENGTH <= len(ap_name) <= AP_NAME_MAX_LENGTH:
        errors.append(
            f"{label}: AP name must be between {AP_NAME_MIN_LENGTH} and "
            f"{AP_NAME_MAX_LENGTH} characters"
        )
    else:
        invalid = _invalid_name_tokens(ap_name)
        if invalid:
            errors.append(f"{label}: AP name contains invalid characters: {', '.join(invalid)}")

    if description and len(description) > DESCRIPTION_MAX_LENGTH:
        errors.append(
            f"{label}: Description exceeds maximum length of {DESCRIPTION_MAX_LENGTH} characters"
        )

    if not serial:
        errors.append(f"{label}: Serial number is mandatory")

    return errors


def _find_duplicates(values: list[str]) -> list[str]:
    """Return non-blank values seen more than once, in order of first repeat."""
    seen: set[str] = set()
    duplicates: dict[str, None] = {}
    for value in values:
        if not value:
            continue
        if value in seen:
            duplicates[value] = None
        else:
            seen.add(value)
    return list(duplicates)


def validate_coordinate(value: str, label: str, limit: float) -> list[str]:
    """Validate a latitude or longitude string.

    Blank values are allowed. Otherwise the value must parse as a finite
    number within [-limit, limit] and carry at most six decimal digits.

    Args:
        value: Raw value as typed by the operator.
        label: "Latitude" or "Longitude", used in messages.
        limit: 90 for latitude, 180 for longitude.

    Returns:
        List of error messages (empty when valid).
    """
    if not value:
        return []

    try:
        number = float(value)
    except ValueError:
        return [f"{label} must be a number, got '{value}'."]
    if not math.isfinite(number):
        return [f"{label} must be a number, got '{value}'."]

    errors: list[str] = []
    if number < -limit or number > limit:
        errors.append(f"{label} must be between -{limit:g} and {limit:g} degrees.")

    if "." in value:
        decimals = value.split(".", 1)[1]
        if len(decimals) > MAX_COORDINATE_DECIMALS:
            errors.append(
                f"{label} can contain a maximum of {MAX_COORDINATE_DECIMALS} decimal digits."
            )

    return errors


def validate_settings(settings: ConversionSettings) -> list[str]:
    """Validate the batch-level latitude and longitude."""
    return validate_coordinate(settings.latitude.strip(), "Latitude", 90) + validate_coordinate(
        settings.longitude.strip(), "Longitude", 180
    )


def validate(
    headers: list[str],
    rows: list[list[str]],
    settings: ConversionSettings,
) -> list[str]:
    """Collect every validation error for a batch without converting it.

    A missing serial column short-circuits with a single error, since no
    row can be checked without it.

    Returns:
        List of human-readable errors; empty means the batch converts.
    """
    columns = locate_columns(headers)
    if columns is None:
        return [SERIAL_COLUMN_MISSING]

    errors: list[str] = []
    ap_names: list[str] = []
    serials: list[str] = []

    for index, row in enumerate(rows):
        ap_name = _cell(row, columns.ap_name)
        description = _cell(row, columns.description)
        serial = _cell(row, columns.serial)
        ap_names.append(ap_name)
        serials.append(serial)
        errors.extend(_validate_row(index, ap_name, description, serial))

    duplicate_names = _find_duplicates(ap_names)
    if duplicate_names:
        errors.append(f"Duplicate AP names: {', '.join(duplicate_names)}")

    duplicate_serials = _find_duplicates(serials)
    if duplicate_serials:
        errors.append(f"Duplicate serial numbers: {', '.join(duplicate_serials)}")

    errors.extend(validate_settings(settings))
    return errors


def convert(
    headers: list[str],
    rows: list[list[str]],
    settings: ConversionSettings | None = None,
) -> ConversionResult:
    """Convert SmartZone export rows into RUCKUS One bulk-import rows.

    Output rows map 1:1 and in order to input rows. AP Group, Latitude and
    Longitude come from the batch settings; Tags is always left blank.

    Args:
        headers: Source header cells.
        rows: Source data rows.
        settings: Batch-level AP group and coordinates.

    Returns:
        ConversionResult with TARGET_HEADERS and the converted rows.

    Raises:
        ConversionValidationError: If any row, duplicate or setting check fails.
    """
    settings = settings or ConversionSettings()
    errors = validate(headers, rows, settings)
    columns = locate_columns(headers)
    if errors or columns is None:
        logger.info("Conversion rejected with %d validation errors", len(errors))
        raise ConversionValidationError(errors or [SERIAL_COLUMN_MISSING])

    ap_group = settings.ap_group.strip()
    latitude = settings.latitude.strip()
    longitude = settings.longitude.strip()

    converted = [
        [
            _cell(row, columns.ap_name),
            _cell(row, columns.description),
            _cell(row, columns.serial),
            ap_group,
            "",
            latitude,
            longitude,
        ]
        for row in rows
    ]

    logger.info("Converted %d AP records", len(converted))
    return ConversionResult(headers=list(TARGET_HEADERS), rows=converted)
