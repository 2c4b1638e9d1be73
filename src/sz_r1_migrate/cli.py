"""CLI module for the SmartZone to RUCKUS One migration tool.

This module provides the command-line interface using Typer:
- convert: Turn a SmartZone AP export into a RUCKUS One bulk-import CSV
- upload: Create the APs of a converted CSV in a RUCKUS One venue
- test-connection: Check that stored credentials can reach the API
- assets: Export the tenant's APs or networks
- credentials: Show, set or clear the stored credentials
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sz_r1_migrate.adapters import access_points_to_csv
from sz_r1_migrate.api_client import APIError, RuckusOneClient
from sz_r1_migrate.auth import AuthenticationError, TokenManager
from sz_r1_migrate.config import REGION_ORIGINS, Settings, get_settings
from sz_r1_migrate.converter import ConversionSettings, ConversionValidationError, convert
from sz_r1_migrate.credentials import MODES, CredentialStore, Credentials
from sz_r1_migrate.csv_parser import (
    TARGET_HEADERS,
    CSVParserError,
    ConvertedRecord,
    read_source_csv,
    read_target_csv,
    write_target_csv,
)
from sz_r1_migrate.progress import create_progress_reporter
from sz_r1_migrate.token_cache import FileTokenCache
from sz_r1_migrate.uploader import ApUploader, PreflightError, UploadError, UploadResult

# Create Typer app
app = typer.Typer(
    name="sz-r1-migrate",
    help="SmartZone to RUCKUS One AP Migration Tool",
    no_args_is_help=True,
)
credentials_app = typer.Typer(help="Manage stored RUCKUS One credentials", no_args_is_help=True)
app.add_typer(credentials_app, name="credentials")

# Rich console for output
console = Console()
error_console = Console(stderr=True)

# Rows shown in the conversion preview table
PREVIEW_ROWS = 10


class AssetKind(str, Enum):
    APS = "aps"
    NETWORKS = "networks"


class OutputFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


TenantOption = Annotated[
    str | None, typer.Option("--tenant-id", help="RUCKUS One tenant ID")
]
ClientIdOption = Annotated[
    str | None, typer.Option("--client-id", help="OAuth2 client ID")
]
ClientSecretOption = Annotated[
    str | None,
    typer.Option(
        "--client-secret",
        help="OAuth2 client secret",
        envvar="SZ_R1_CLIENT_SECRET",
        show_envvar=True,
    ),
]
ModeOption = Annotated[
    str | None, typer.Option("--mode", help="Account type: regular or msp")
]
MspIdOption = Annotated[str | None, typer.Option("--msp-id", help="MSP ID (msp mode)")]
TargetTenantOption = Annotated[
    str | None,
    typer.Option("--target-tenant-id", help="Customer tenant to act on (msp mode)"),
]
VenueOption = Annotated[
    str | None, typer.Option("--venue-id", help="Venue that receives the APs")
]
RegionOption = Annotated[
    str | None, typer.Option("--region", "-r", help="API region: na, eu or asia")
]
VerboseOption = Annotated[
    bool, typer.Option("--verbose", "-v", help="Show detailed progress")
]


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(name)s - %(levelname)s - %(message)s",
        )


def _resolve_credentials(
    settings: Settings,
    tenant_id: str | None = None,
    client_id: str | None = None,
    client_secret: str | None = None,
    mode: str | None = None,
    msp_id: str | None = None,
    target_tenant_id: str | None = None,
    venue_id: str | None = None,
    region: str | None = None,
) -> Credentials:
    """Merge command-line values over the stored credentials and save them.

    Raises:
        typer.Exit: If a mode or region value is invalid or saving fails.
    """
    if mode is not None and mode not in MODES:
        error_console.print(f"[red]Error:[/red] Invalid mode '{mode}'. Use regular or msp.")
        raise typer.Exit(1)
    if region is not None and region not in REGION_ORIGINS:
        error_console.print(
            f"[red]Error:[/red] Invalid region '{region}'. "
            f"Use one of: {', '.join(REGION_ORIGINS)}."
        )
        raise typer.Exit(1)

    store = CredentialStore(settings.credentials_file)
    credentials = store.load().merge(
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
        mode=mode,
        msp_id=msp_id,
        target_tenant_id=target_tenant_id,
        venue_id=venue_id,
        region=region,
    )

    try:
        store.save(credentials)
    except OSError as e:
        error_console.print(f"[red]Error:[/red] Failed to save credentials: {e}")
        raise typer.Exit(1) from None
    return credentials


def _require(credentials: Credentials, *names: str) -> None:
    missing = credentials.missing_fields(*names)
    if missing:
        options = ", ".join(f"--{name.replace('_', '-')}" for name in missing)
        error_console.print(f"[red]Error:[/red] Missing required credentials: {options}")
        raise typer.Exit(1)


def _token_manager(settings: Settings) -> TokenManager:
    return TokenManager(
        FileTokenCache(settings.token_cache_file),
        timeout=settings.request_timeout,
    )


def _mask(value: str) -> str:
    if not value:
        return "[dim]-[/dim]"
    if len(value) <= 4:
        return "****"
    return "*" * (len(value) - 4) + value[-4:]


def _credentials_table(credentials: Credentials) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Tenant ID", credentials.tenant_id or "[dim]-[/dim]")
    table.add_row("Client ID", credentials.client_id or "[dim]-[/dim]")
    table.add_row("Client secret", _mask(credentials.client_secret))
    table.add_row("Mode", credentials.mode)
    table.add_row("MSP ID", credentials.msp_id or "[dim]-[/dim]")
    table.add_row("Target tenant", credentials.target_tenant_id or "[dim]-[/dim]")
    table.add_row("Venue ID", credentials.venue_id or "[dim]-[/dim]")
    table.add_row("Region", f"{credentials.region} ({REGION_ORIGINS[credentials.region]})")
    return table


def _display_conversion(rows: list[list[str]]) -> None:
    table = Table(title="Converted APs", show_header=True, header_style="bold")
    for header in TARGET_HEADERS:
        table.add_column(header)
    for row in rows[:PREVIEW_ROWS]:
        table.add_row(*(Text(cell) for cell in row))
    console.print(table)
    if len(rows) > PREVIEW_ROWS:
        console.print(f"[dim]... and {len(rows) - PREVIEW_ROWS} more rows[/dim]")


@app.command("convert")
def convert_command(
    source: Annotated[
        Path,
        typer.Argument(
            help="SmartZone AP export CSV",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output file (default: <source>_ruckus_one.csv next to the source)",
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ] = None,
    ap_group: Annotated[
        str, typer.Option("--ap-group", "-g", help="AP group assigned to every AP")
    ] = "",
    latitude: Annotated[str, typer.Option("--latitude", help="Latitude for every AP")] = "",
    longitude: Annotated[str, typer.Option("--longitude", help="Longitude for every AP")] = "",
    no_comments: Annotated[
        bool,
        typer.Option("--no-comments", help="Omit the field-constraint comment lines"),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Convert a SmartZone AP export into a RUCKUS One bulk-import CSV.

    Every row is validated first; if anything fails, all errors are listed
    and no file is written.
    """
    _configure_logging(verbose)

    try:
        source_csv = read_source_csv(source)
    except CSVParserError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    settings = ConversionSettings(ap_group=ap_group, latitude=latitude, longitude=longitude)
    try:
        result = convert(source_csv.headers, source_csv.rows, settings)
    except ConversionValidationError as e:
        error_console.print("[red]Error:[/red] Validation errors found:")
        for error in e.errors:
            error_console.print(f"  - {error}")
        raise typer.Exit(1) from None

    output_path = output or source.with_name(f"{source.stem}_ruckus_one.csv")
    try:
        write_target_csv(output_path, result.headers, result.rows, include_comments=not no_comments)
    except OSError as e:
        error_console.print(f"[red]Error:[/red] Failed to write output file: {e}")
        raise typer.Exit(1) from None

    _display_conversion(result.rows)
    console.print()
    console.print(
        Panel(
            f"[green]Converted {len(result.rows)} APs.[/green]\n\nOutput: {output_path}",
            title="Done",
            border_style="green",
        )
    )


async def _run_upload(
    credentials: Credentials,
    settings: Settings,
    records: list[ConvertedRecord],
    reporter: Any,
) -> UploadResult:
    async with RuckusOneClient(
        credentials, _token_manager(settings), timeout=settings.request_timeout
    ) as client:
        uploader = ApUploader(client, credentials.venue_id, on_progress=reporter.handle)
        return await uploader.upload(records)


@app.command()
def upload(
    csv_file: Annotated[
        Path,
        typer.Argument(
            help="Converted RUCKUS One bulk-import CSV",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
    tenant_id: TenantOption = None,
    client_id: ClientIdOption = None,
    client_secret: ClientSecretOption = None,
    mode: ModeOption = None,
    msp_id: MspIdOption = None,
    target_tenant_id: TargetTenantOption = None,
    venue_id: VenueOption = None,
    region: RegionOption = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            "-l",
            help="Write a detailed log to this file",
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Create the APs of a converted CSV in a RUCKUS One venue.

    Every AP group the file references must already exist in the venue;
    otherwise nothing is created. The first failed AP stops the upload.
    """
    _configure_logging(verbose)
    settings = get_settings()

    credentials = _resolve_credentials(
        settings,
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
        mode=mode,
        msp_id=msp_id,
        target_tenant_id=target_tenant_id,
        venue_id=venue_id,
        region=region,
    )
    _require(credentials, "tenant_id", "client_id", "client_secret", "venue_id")

    try:
        records = read_target_csv(csv_file)
    except CSVParserError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    if not records:
        error_console.print(f"[red]Error:[/red] No AP rows found in {csv_file}")
        raise typer.Exit(1)

    console.print(Panel("RUCKUS One AP Upload", style="bold blue"))
    console.print(f"[bold]File:[/bold] {csv_file}")
    console.print(f"[bold]Venue:[/bold] {credentials.venue_id}")
    console.print(f"[bold]Region:[/bold] {credentials.region}")
    console.print(f"[bold]APs:[/bold] {len(records)}")
    console.print()

    reporter = create_progress_reporter(
        console=console,
        log_file=log_file,
        verbose=verbose,
        simple=not console.is_terminal,
        log_level=settings.log_level,
    )
    reporter.begin(credentials.venue_id, len(records))

    result: UploadResult | None = None
    failure: Exception | None = None
    with reporter:
        reporter.info(f"Uploading {len(records)} APs from {csv_file.name}")
        try:
            result = asyncio.run(_run_upload(credentials, settings, records, reporter))
        except UploadError as e:
            reporter.error(str(e))
            failure = e
            if e.completed:
                reporter.warning(f"{e.completed} APs were created before the failure")
        except (AuthenticationError, PreflightError, APIError, ValueError) as e:
            reporter.error(str(e))
            failure = e

    reporter.print_final_summary(result)

    if failure is not None:
        error_console.print(f"[red]Error:[/red] Upload failed: {failure}")
        raise typer.Exit(1)


async def _test_connection(credentials: Credentials, settings: Settings) -> Any:
    async with RuckusOneClient(
        credentials, _token_manager(settings), timeout=settings.request_timeout
    ) as client:
        return await client.test_connection()


@app.command("test-connection")
def test_connection(
    tenant_id: TenantOption = None,
    client_id: ClientIdOption = None,
    client_secret: ClientSecretOption = None,
    mode: ModeOption = None,
    msp_id: MspIdOption = None,
    target_tenant_id: TargetTenantOption = None,
    region: RegionOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Obtain a token and fetch the tenant to verify the credentials."""
    _configure_logging(verbose)
    settings = get_settings()
    credentials = _resolve_credentials(
        settings,
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
        mode=mode,
        msp_id=msp_id,
        target_tenant_id=target_tenant_id,
        region=region,
    )
    _require(credentials, "tenant_id", "client_id", "client_secret")

    console.print(f"Connecting to {REGION_ORIGINS[credentials.region]}...")
    try:
        tenant = asyncio.run(_test_connection(credentials, settings))
    except (AuthenticationError, APIError) as e:
        error_console.print(f"[red]Error:[/red] Connection failed: {e}")
        raise typer.Exit(1) from None

    name = tenant.get("name") if isinstance(tenant, dict) else None
    suffix = f" ({name})" if name else ""
    console.print(f"[green]Connected to tenant {credentials.tenant_id}{suffix}[/green]")


async def _fetch_assets(credentials: Credentials, settings: Settings, kind: AssetKind) -> Any:
    async with RuckusOneClient(
        credentials, _token_manager(settings), timeout=settings.request_timeout
    ) as client:
        if kind == AssetKind.APS:
            return await client.list_access_points()
        return await client.list_networks()


@app.command()
def assets(
    kind: Annotated[AssetKind, typer.Argument(help="What to export")],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Write to this file instead of stdout",
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ] = None,
    output_format: Annotated[
        OutputFormat,
        typer.Option("--format", "-f", help="Output format (csv only for aps)"),
    ] = OutputFormat.JSON,
    tenant_id: TenantOption = None,
    client_id: ClientIdOption = None,
    client_secret: ClientSecretOption = None,
    mode: ModeOption = None,
    msp_id: MspIdOption = None,
    target_tenant_id: TargetTenantOption = None,
    region: RegionOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Export the tenant's access points or networks."""
    _configure_logging(verbose)

    if output_format == OutputFormat.CSV and kind != AssetKind.APS:
        error_console.print("[red]Error:[/red] CSV output is only available for aps")
        raise typer.Exit(1)

    settings = get_settings()
    credentials = _resolve_credentials(
        settings,
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
        mode=mode,
        msp_id=msp_id,
        target_tenant_id=target_tenant_id,
        region=region,
    )
    _require(credentials, "tenant_id", "client_id", "client_secret")

    try:
        items = asyncio.run(_fetch_assets(credentials, settings, kind))
    except (AuthenticationError, APIError) as e:
        error_console.print(f"[red]Error:[/red] Failed to fetch {kind.value}: {e}")
        raise typer.Exit(1) from None

    if output_format == OutputFormat.CSV:
        text = access_points_to_csv(items)
    elif kind == AssetKind.APS:
        text = json.dumps([asdict(ap) for ap in items], indent=2)
    else:
        text = json.dumps(items, indent=2)

    if output is None:
        console.print(text, markup=False, highlight=False)
        return

    try:
        output.write_text(text, encoding="utf-8")
    except OSError as e:
        error_console.print(f"[red]Error:[/red] Failed to write output file: {e}")
        raise typer.Exit(1) from None
    console.print(f"[green]Wrote {len(items)} {kind.value} to {output}[/green]")


@credentials_app.command("show")
def credentials_show() -> None:
    """Show the stored credentials (secret masked)."""
    settings = get_settings()
    credentials = CredentialStore(settings.credentials_file).load()
    console.print(Panel(_credentials_table(credentials), title="Stored credentials"))
    console.print(f"[dim]{settings.credentials_file}[/dim]")


@credentials_app.command("set")
def credentials_set(
    tenant_id: TenantOption = None,
    client_id: ClientIdOption = None,
    client_secret: ClientSecretOption = None,
    mode: ModeOption = None,
    msp_id: MspIdOption = None,
    target_tenant_id: TargetTenantOption = None,
    venue_id: VenueOption = None,
    region: RegionOption = None,
) -> None:
    """Update stored credentials; options left out keep their stored value."""
    settings = get_settings()
    credentials = _resolve_credentials(
        settings,
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
        mode=mode,
        msp_id=msp_id,
        target_tenant_id=target_tenant_id,
        venue_id=venue_id,
        region=region,
    )
    console.print(Panel(_credentials_table(credentials), title="Saved credentials"))


@credentials_app.command("clear")
def credentials_clear() -> None:
    """Remove stored credentials and any cached token for them."""
    settings = get_settings()
    store = CredentialStore(settings.credentials_file)
    credentials = store.load()
    _token_manager(settings).invalidate(credentials)
    store.clear()
    console.print("[green]Credentials cleared[/green]")


if __name__ == "__main__":
    app()
