"""CSV reading and writing for SmartZone exports and RUCKUS One imports.

SmartZone AP exports are read positionally: cells are split on commas and
stripped of double quotes, with no support for quoted commas. The converted
bulk-import file is written with the fixed RUCKUS One header and an optional
block of comment lines describing each field's constraints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

# Output column order for the RUCKUS One bulk import
TARGET_HEADERS: tuple[str, ...] = (
    "AP Name",
    "Description",
    "Serial Number",
    "AP Group",
    "Tags",
    "Latitude",
    "Longitude",
)

# Comment block RUCKUS One expects above the header of a downloadable file
TARGET_COMMENT_LINES: tuple[str, ...] = (
    "# AP name is mandatory. The name can only contain between 2 and 32 characters. "
    "Only the following characters are allowed: 'a-z', 'A-Z', '0-9', space and other "
    "special characters (!\"\"#$%'()*+,-./:;<=>?@[]^_{|}~) except &,` or $(",
    "# Description - maximal length is 180 characters",
    "# Serial number is mandatory",
    "# AP Group - must match an existing AP group",
    "# Tags - separated by semicolon ';'",
    "# Latitude - between -90 and 90, and contains a maximum of 6-digit decimal",
    "# Longitude - between -180 and 180, and contains a maximum of 6-digit decimal",
)

TAG_SEPARATOR = ";"


class CSVParserError(Exception):
    """Base exception for CSV parsing errors."""

    pass


class CSVFileNotFoundError(CSVParserError):
    """Raised when a CSV file is not found."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"CSV file not found: {path}")


class ParseError(CSVParserError):
    """Raised when CSV parsing fails."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        self.message = message
        prefix = f"Failed to parse {path}: " if path is not None else ""
        super().__init__(f"{prefix}{message}")


@dataclass
class SourceCsv:
    """A parsed SmartZone export.

    Attributes:
        headers: Header cells in file order.
        rows: Data rows; each row is a list of cells in column order.
    """

    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)


@dataclass
class ConvertedRecord:
    """One AP row of a RUCKUS One bulk-import file."""

    ap_name: str
    description: str
    serial_number: str
    ap_group: str = ""
    tags: list[str] = field(default_factory=list)
    latitude: str = ""
    longitude: str = ""

    @classmethod
    def from_row(cls, row: list[str]) -> ConvertedRecord:
        """Build a record from a positional target row.

        Missing trailing cells read as blank.
        """

        def cell(index: int) -> str:
            return row[index].strip() if index < len(row) else ""

        tags_raw = cell(4)
        tags = [t.strip() for t in tags_raw.split(TAG_SEPARATOR) if t.strip()]
        return cls(
            ap_name=cell(0),
            description=cell(1),
            serial_number=cell(2),
            ap_group=cell(3),
            tags=tags,
            latitude=cell(5),
            longitude=cell(6),
        )

    def to_row(self) -> list[str]:
        """Return the record as cells in TARGET_HEADERS order."""
        return [
            self.ap_name,
            self.description,
            self.serial_number,
            self.ap_group,
            TAG_SEPARATOR.join(self.tags),
            self.latitude,
            self.longitude,
        ]


def _split_line(line: str) -> list[str]:
    return [cell.strip().replace('"', "") for cell in line.split(",")]


def parse_source_csv(text: str) -> SourceCsv:
    """Parse SmartZone export text.

    Blank lines are dropped before the header is taken, so they never count
    as rows.

    Args:
        text: Raw CSV text.

    Returns:
        SourceCsv with the header row and all data rows.

    Raises:
        ParseError: If the text holds no non-blank lines.
    """
    lines = [line for line in text.split("\n") if line.strip() != ""]
    if not lines:
        raise ParseError("CSV file is empty")

    headers = _split_line(lines[0])
    rows = [_split_line(line) for line in lines[1:]]
    return SourceCsv(headers=headers, rows=rows)


def read_text(path: Path) -> str:
    """Read a CSV file as text.

    Handles UTF-8 with BOM (common in Windows exports) and falls back to
    latin-1 for legacy exports.

    Raises:
        CSVFileNotFoundError: If the file does not exist.
        ParseError: If the path is not a readable file.
    """
    if not path.exists():
        raise CSVFileNotFoundError(path)
    if not path.is_file():
        raise ParseError("Expected a file, not a directory", path=path)

    try:
        return path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError:
        return path.read_text(encoding="latin-1")
    except OSError as e:
        raise ParseError(str(e), path=path) from e


def read_source_csv(path: Path) -> SourceCsv:
    """Read and parse a SmartZone export file.

    Raises:
        CSVFileNotFoundError: If the file does not exist.
        ParseError: If the file is empty or unreadable.
    """
    try:
        return parse_source_csv(read_text(path))
    except ParseError as e:
        if e.path is None:
            raise ParseError(e.message, path=path) from None
        raise


def parse_target_csv(text: str) -> list[ConvertedRecord]:
    """Parse a RUCKUS One bulk-import file back into records.

    Comment lines (starting with ``#``) and blank lines are skipped. The
    first remaining line must be the TARGET_HEADERS header (case and
    surrounding spaces are ignored), which rejects raw SmartZone exports.

    Raises:
        ParseError: If no header line is present or it is not the
            bulk-import header.
    """
    lines = [
        line
        for line in text.split("\n")
        if line.strip() != "" and not line.lstrip().startswith("#")
    ]
    if not lines:
        raise ParseError("CSV file is empty")

    header = [cell.lower() for cell in _split_line(lines[0])]
    if header != [name.lower() for name in TARGET_HEADERS]:
        raise ParseError(
            "Not a RUCKUS One bulk-import file; expected header: " + ",".join(TARGET_HEADERS)
        )

    return [ConvertedRecord.from_row(_split_line(line)) for line in lines[1:]]


def read_target_csv(path: Path) -> list[ConvertedRecord]:
    """Read a converted bulk-import file from disk."""
    try:
        return parse_target_csv(read_text(path))
    except ParseError as e:
        if e.path is None:
            raise ParseError(e.message, path=path) from None
        raise


def format_target_csv(
    headers: list[str] | tuple[str, ...],
    rows: list[list[str]],
    include_comments: bool = True,
) -> str:
    """Render headers and rows as bulk-import CSV text.

    Cells are joined with plain commas, matching how the source was split.

    Args:
        headers: Header cells.
        rows: Row cells.
        include_comments: Prepend the field-constraint comment block and a
            blank separator line.
    """
    lines: list[str] = []
    if include_comments:
        lines.extend(TARGET_COMMENT_LINES)
        lines.append("")
    lines.append(",".join(headers))
    lines.extend(",".join(row) for row in rows)
    return "\n".join(lines)


def write_target_csv(
    path: Path,
    headers: list[str] | tuple[str, ...],
    rows: list[list[str]],
    include_comments: bool = True,
) -> None:
    """Write bulk-import CSV text to a file (UTF-8).

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(format_target_csv(headers, rows, include_comments), encoding="utf-8")
