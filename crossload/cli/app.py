"""
Crossload CLI Application - Built with Click.

Locations use the transfer-path convention ``<type>:<locationId>/<path>``,
for example ``local:data/projects`` or ``s3:archive/2024``. Items ending in
``/`` are directories, everything else is a file.
"""

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn, TransferSpeedColumn
from rich.table import Table

from crossload.core.config import TransferConfig
from crossload.core.exceptions import CrossloadError
from crossload.core.logger import configure_default_logging
from crossload.core.paths import parse_transfer_path
from crossload.transfer.conflicts import format_bytes
from crossload.transfer.service import TransferService
from crossload.types import ConflictResolution, JobStatus, LocationType

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def parse_location(value: str) -> dict[str, str]:
    """``"s3:archive/2024"`` -> ``{"type": "s3", "locationId": "archive", "path": "2024"}``"""
    if ":" in value and "/" not in value.partition(":")[2]:
        value = f"{value}/"
    try:
        location_type, location_id, path = parse_transfer_path(value)
        LocationType.parse(location_type)
    except CrossloadError as e:
        raise click.BadParameter(e.message) from e
    return {"type": location_type, "locationId": location_id, "path": path}


def parse_items(values: tuple[str, ...]) -> list[dict[str, str]]:
    return [
        {"path": v.rstrip("/"), "type": "directory" if v.endswith("/") else "file"}
        for v in values
    ]


def load_config(config_path: str | None) -> TransferConfig:
    if config_path:
        return TransferConfig.from_file(config_path)
    return TransferConfig.from_env()


def _fail(error: CrossloadError) -> None:
    console.print(f"[bold red]{error.error_type}:[/bold red] {error.message}")
    if error.path:
        console.print(f"  path: {error.path}")
    sys.exit(1)


def _run(coro):
    try:
        return asyncio.run(coro)
    except CrossloadError as e:
        _fail(e)


# ============================================================================
# CLI Group
# ============================================================================


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(version="0.1.0", prog_name="crossload")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML configuration file (default: CROSSLOAD_* environment variables)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx, config_path, verbose, json_logs):
    """
    Crossload - move files between object storage and filesystems.

    \b
    Commands:
        scan     Enumerate a directory tree
        check    Detect conflicts before a transfer
        copy     Transfer files and follow progress
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    configure_default_logging(
        level=logging.DEBUG if verbose else logging.WARNING, json_output=json_logs
    )


# ============================================================================
# crossload scan
# ============================================================================


@cli.command()
@click.argument("location")
@click.option("--files", "show_files", is_flag=True, help="List every file")
@click.pass_context
def scan(ctx, location, show_files):
    """
    Enumerate every file under LOCATION.

    \b
    Example:
        crossload scan s3:archive/2024
    """
    config = load_config(ctx.obj["config_path"])
    target = parse_location(location)

    async def _scan():
        async with TransferService.from_config(config) as service:
            return await service.scanner.scan(
                LocationType.parse(target["type"]), target["locationId"], target["path"]
            )

    listing = _run(_scan())

    table = Table(title=f"Scan of {location}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Files", str(listing.file_count))
    table.add_row("Total size", format_bytes(listing.total_size))
    table.add_row("Empty directories", str(len(listing.empty_directories)))
    table.add_row("Skipped symlinks", str(len(listing.skipped_symlinks)))
    console.print(table)

    if show_files:
        for record in listing.files:
            console.print(f"  {record.path}  [dim]{format_bytes(record.size)}[/dim]")
    for directory in listing.empty_directories:
        console.print(f"  [yellow]empty[/yellow] {directory}/")
    for link in listing.skipped_symlinks:
        console.print(f"  [dim]symlink skipped[/dim] {link}")


# ============================================================================
# crossload check
# ============================================================================


@cli.command()
@click.argument("source")
@click.argument("destination")
@click.argument("items", nargs=-1, required=True)
@click.pass_context
def check(ctx, source, destination, items):
    """
    Show which ITEMS already exist at DESTINATION.

    \b
    Example:
        crossload check local:data/projects s3:archive/2024 models/ README.md
    """
    config = load_config(ctx.obj["config_path"])
    request = {
        "source": parse_location(source),
        "destination": parse_location(destination),
        "items": parse_items(items),
    }

    async def _check():
        async with TransferService.from_config(config) as service:
            return await service.check_conflicts(request)

    report = _run(_check())

    console.print(
        f"[green]{len(report['nonConflicting'])} new[/green], "
        f"[yellow]{len(report['conflicts'])} conflicting[/yellow]"
    )
    for path in report["conflicts"]:
        console.print(f"  [yellow]exists[/yellow] {path}")
    if "warning" in report:
        console.print(f"[bold yellow]Warning:[/bold yellow] {report['warning']['message']}")


# ============================================================================
# crossload copy
# ============================================================================


@cli.command()
@click.argument("source")
@click.argument("destination")
@click.argument("items", nargs=-1, required=True)
@click.option(
    "--on-conflict",
    type=click.Choice([r.value for r in ConflictResolution]),
    default=ConflictResolution.OVERWRITE.value,
    show_default=True,
    help="What to do when a destination file already exists",
)
@click.pass_context
def copy(ctx, source, destination, items, on_conflict):
    """
    Copy ITEMS from SOURCE to DESTINATION.

    \b
    Example:
        crossload copy local:data/projects s3:archive/2024 models/ --on-conflict skip
    """
    config = load_config(ctx.obj["config_path"])
    request = {
        "source": parse_location(source),
        "destination": parse_location(destination),
        "items": parse_items(items),
        "conflictResolution": on_conflict,
    }

    job = _run(_copy(config, request))

    failed = [f for f in job["files"] if f["status"] == "error"]
    for entry in failed:
        console.print(f"  [red]failed[/red] {entry['destinationPath']}: {entry['error']}")

    progress = job["progress"]
    console.print(
        f"Job {job['jobId']} {job['status']}: "
        f"{progress['completedFiles']}/{progress['totalFiles']} files, "
        f"{progress['failedFiles']} failed"
    )
    if job["status"] != JobStatus.COMPLETED.value:
        sys.exit(1)


async def _copy(config: TransferConfig, request: dict) -> dict:
    async with TransferService.from_config(config) as service:
        response = await service.start_transfer(request)
        job_id = response["jobId"]

        with Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=console,
            transient=True,
        ) as bar:
            task_id = bar.add_task(
                f"{response['fileCount']} file(s)", total=response["totalSize"] or None
            )
            try:
                async for event in service.progress_stream(job_id):
                    loaded = sum(f["loaded"] for f in event["files"])
                    bar.update(task_id, completed=loaded)
            except asyncio.CancelledError:
                service.cancel(job_id)
                raise

        await service.queue.wait(job_id)
        return service.get_job(job_id)
