"""Progress reporting and logging for AP uploads.

Two reporters consume the UploadProgress stream of an ApUploader: a live
Rich panel for terminals and a line-per-phase printer for pipes and CI
logs. Both can mirror what they see into a log file.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Self

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from sz_r1_migrate.uploader import UploadProgress, UploadResult, UploadState

if TYPE_CHECKING:
    from types import TracebackType

# Package logger that --log-file output is attached to
PACKAGE_LOGGER = "sz_r1_migrate"

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Warnings and errors kept visible in the live panel
LIVE_MESSAGE_TAIL = 3

PHASE_LABELS: dict[UploadState, str] = {
    UploadState.IDLE: "Waiting",
    UploadState.ACQUIRING_TOKEN: "Acquiring token",
    UploadState.FETCHING_GROUPS: "Fetching AP groups",
    UploadState.VALIDATING_GROUPS: "Validating AP groups",
    UploadState.CREATING: "Creating APs",
    UploadState.SUCCEEDED: "Done",
    UploadState.FAILED: "Failed",
}


@dataclass
class UploadSummary:
    """What a reporter has seen of one upload run."""

    venue_id: str = ""
    state: UploadState = UploadState.IDLE
    percent: int = 0
    completed: int = 0
    total: int = 0
    message: str = ""
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None

    @property
    def elapsed_seconds(self) -> float:
        return ((self.end_time or datetime.now()) - self.started_at).total_seconds()

    @property
    def succeeded(self) -> bool:
        return self.state == UploadState.SUCCEEDED


def format_duration(seconds: float) -> str:
    """Render an elapsed time as ``5.0s``, ``2m 5s`` or ``1h 2m``."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def attach_file_logging(log_path: Path, level: str = "DEBUG") -> logging.Handler:
    """Send package log records at ``level`` and above to a file.

    Returns:
        The handler, so the caller can detach it.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG)

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    package_logger.addHandler(handler)
    return handler


def detach_file_logging(handler: logging.Handler) -> None:
    logging.getLogger(PACKAGE_LOGGER).removeHandler(handler)
    handler.close()


class _BaseReporter(ABC):
    """Summary tracking, file logging and message handling shared by both reporters.

    Subclasses decide how things appear on screen through ``start``,
    ``stop``, ``handle`` and ``_show``.
    """

    def __init__(
        self,
        console: Console | None = None,
        log_file: Path | str | None = None,
        verbose: bool = False,
        log_level: str = "DEBUG",
    ) -> None:
        """Initialize the reporter.

        Args:
            console: Rich console to draw on (a new one if None).
            log_file: Optional file that receives package log records.
            verbose: If True, show a line per created AP.
            log_level: Minimum level written to the log file.
        """
        self.console = console or Console()
        self.verbose = verbose
        self._summary = UploadSummary()
        self._logger = logging.getLogger(f"{PACKAGE_LOGGER}.progress")
        self._handler: logging.Handler | None = (
            attach_file_logging(Path(log_file), log_level) if log_file else None
        )

    def _log(self, message: str, level: str = "INFO") -> None:
        self._logger.log(logging.getLevelName(level.upper()), message)

    @abstractmethod
    def _show(self, message: str, style: str) -> None:
        """Put a warning, error or info line on screen."""

    @abstractmethod
    def start(self) -> None:
        """Begin drawing progress."""

    @abstractmethod
    def handle(self, progress: UploadProgress) -> None:
        """Progress callback for ApUploader."""

    def _record(self, progress: UploadProgress) -> bool:
        """Store an update; return True when it starts a new phase."""
        summary = self._summary
        new_phase = progress.state != summary.state
        summary.state = progress.state
        summary.percent = max(summary.percent, progress.percent)
        summary.completed = progress.completed
        summary.total = progress.total or summary.total
        summary.message = progress.message

        if new_phase:
            self._log(f"{PHASE_LABELS[progress.state]} ({summary.percent}%): {progress.message}")
        elif self.verbose:
            self._log(f"{progress.message} ({summary.completed}/{summary.total})")
        return new_phase

    def begin(self, venue_id: str, total: int) -> None:
        """Reset state for a new upload."""
        self._summary = UploadSummary(venue_id=venue_id, total=total)
        self._log(f"Upload of {total} APs to venue {venue_id} started")

    def finish(self) -> None:
        self._summary.end_time = datetime.now()
        self._log(f"Upload finished in state {self._summary.state.value}")
        if self._handler is not None:
            detach_file_logging(self._handler)
            self._handler = None

    def stop(self) -> None:
        self.finish()

    def warning(self, message: str) -> None:
        self._summary.warnings.append(message)
        self._log(f"Warning: {message}", level="WARNING")
        self._show(f"Warning: {message}", "yellow")

    def error(self, message: str) -> None:
        self._summary.errors.append(message)
        self._log(f"Error: {message}", level="ERROR")
        self._show(f"Error: {message}", "red")

    def info(self, message: str) -> None:
        self._log(message)
        self._show(message, "dim")

    def get_summary(self) -> UploadSummary:
        return self._summary

    def print_final_summary(self, result: UploadResult | None = None) -> None:
        """Print the outcome table, collected warnings and errors, and a closing line."""
        summary = self._summary

        table = Table(title="Upload Summary", show_header=True, header_style="bold")
        table.add_column("Venue", style="cyan")
        table.add_column("Records", justify="right")
        table.add_column("Created", justify="right", style="green")
        table.add_column("Status")
        table.add_column("Duration", justify="right", style="dim")
        table.add_row(
            summary.venue_id,
            str(summary.total),
            str(result.count if result is not None else summary.completed),
            "[green]OK[/green]" if summary.succeeded else "[red]failed[/red]",
            format_duration(summary.elapsed_seconds),
        )
        self.console.print()
        self.console.print(table)

        for title, style, items in (
            ("Warnings", "yellow", summary.warnings),
            ("Errors", "red", summary.errors),
        ):
            if not items:
                continue
            self.console.print()
            self.console.print(Text(f"{title} ({len(items)}):", style=f"{style} bold"))
            for item in items:
                self.console.print(Text(f"  - {item}", style=style))

        self.console.print()
        if result is not None:
            self.console.print(Text(result.message, style="green bold"))
        else:
            self.console.print(Text("Upload did not complete.", style="red bold"))

    def __enter__(self) -> Self:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()


class ProgressReporter(_BaseReporter):
    """Live Rich panel with phase, percentage bar and recent problems."""

    def __init__(
        self,
        console: Console | None = None,
        log_file: Path | str | None = None,
        verbose: bool = False,
        log_level: str = "DEBUG",
    ) -> None:
        super().__init__(
            console=console, log_file=log_file, verbose=verbose, log_level=log_level
        )
        self._live: Live | None = None

    def _render(self) -> Panel:
        summary = self._summary
        grid = Table.grid(padding=(0, 1))
        grid.add_column(justify="left")

        heading = Text()
        heading.append(f"{PHASE_LABELS[summary.state]}: ", style="bold")
        heading.append(f"{summary.percent}%", style="bold cyan")
        if summary.total:
            heading.append(f"  ({summary.completed}/{summary.total} APs)", style="dim")
        grid.add_row(heading)
        grid.add_row(ProgressBar(total=100, completed=summary.percent, width=40))

        if summary.message:
            grid.add_row(Text.assemble(("Current: ", "dim"), (summary.message, "italic")))

        for title, style, items in (
            ("Warnings", "yellow", summary.warnings),
            ("Errors", "red", summary.errors),
        ):
            if items:
                grid.add_row("")
                grid.add_row(Text(f"{title}:", style=f"{style} bold"))
                for item in items[-LIVE_MESSAGE_TAIL:]:
                    grid.add_row(Text(f"  - {item}", style=style))

        grid.add_row("")
        grid.add_row(Text(f"Elapsed: {format_duration(summary.elapsed_seconds)}", style="dim"))

        title = Text.assemble(("AP Upload", "bold"), " ", (summary.venue_id, "dim"))
        return Panel(grid, title=title, border_style="blue")

    def _redraw(self) -> None:
        if self._live is not None:
            self._live.update(self._render())

    def _show(self, message: str, style: str) -> None:
        # The panel lists warnings and errors itself
        self._redraw()

    def start(self) -> None:
        self._live = Live(
            self._render(),
            console=self.console,
            refresh_per_second=4,
            transient=False,
        )
        self._live.start()

    def stop(self) -> None:
        if self._live is not None:
            self._live.update(self._render())
            self._live.stop()
            self._live = None
        super().stop()

    def handle(self, progress: UploadProgress) -> None:
        """Progress callback for ApUploader."""
        self._record(progress)
        self._redraw()


class SimpleProgressReporter(_BaseReporter):
    """Prints one line per phase; suited to pipes, CI logs and tests."""

    def _show(self, message: str, style: str) -> None:
        self.console.print(Text(f"  {message}", style=style))

    def start(self) -> None:
        self.console.print("[bold blue]AP Upload[/bold blue]")
        self.console.print()

    def handle(self, progress: UploadProgress) -> None:
        """Progress callback for ApUploader."""
        if self._record(progress):
            label = PHASE_LABELS[progress.state]
            self.console.print(f"[cyan]\\[{self._summary.percent:>3}%][/cyan] {label}...")
        elif self.verbose:
            self.console.print(Text(f"  {progress.message}", style="dim"))


def create_progress_reporter(
    console: Console | None = None,
    log_file: Path | str | None = None,
    verbose: bool = False,
    simple: bool = False,
    log_level: str = "DEBUG",
) -> ProgressReporter | SimpleProgressReporter:
    """Pick the reporter for the current output.

    Args:
        console: Rich console to draw on.
        log_file: Optional file that receives package log records.
        verbose: If True, show a line per created AP.
        simple: Use SimpleProgressReporter instead of the live panel.
        log_level: Minimum level written to the log file.
    """
    reporter_class = SimpleProgressReporter if simple else ProgressReporter
    return reporter_class(
        console=console, log_file=log_file, verbose=verbose, log_level=log_level
    )
