"""Update command: bring a local client up to the server's latest version."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)
from rich.markup import escape
from rich.table import Table

from rappelz_updater.core.config import AppConfig, UpdaterConfig
from rappelz_updater.core.events import StatusUpdate, TransferProgress, TransferStarted
from rappelz_updater.core.types import MessageType, UpdateResult
from rappelz_updater.core.updater import ClientUpdater

logger = structlog.get_logger()

_STATUS_STYLES = {
    MessageType.INFORMATION: "dim",
    MessageType.WARNING: "yellow",
    MessageType.ERROR: "red",
    MessageType.SUCCESS: "green",
}


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    debug: bool = ctx.obj["debug"]
    return config, console, verbose, debug


def server_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that talks to the patch server."""
    options = [
        click.option("--host", "-H", help="Patch server host"),
        click.option("--port", "-p", type=int, help="Patch server port"),
        click.option(
            "--client-path",
            type=click.Path(file_okay=False, path_type=Path),
            help="Game client installation directory",
        ),
        click.option("--locale", "-l", help="Content locale (e.g., us)"),
        click.option("--fingerprint", help="Client credential (defaults to a host fingerprint)"),
        click.option("--timeout", type=float, help="Socket timeout in seconds"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_updater_config(app_config: AppConfig, **overrides: Any) -> UpdaterConfig:
    """Merge CLI overrides onto the configured session settings.

    Raises:
        click.ClickException: If the merged settings are invalid
    """
    data: dict[str, Any] = {}
    if app_config.updater is not None:
        data.update(app_config.updater.model_dump(exclude_unset=True))
    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return UpdaterConfig(**data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise click.ClickException(f"Invalid updater settings: {errors}") from e


class ProgressReporter:
    """Renders updater notifications on a rich console."""

    def __init__(self, console: Console, progress: Progress | None, verbose: bool) -> None:
        self.console = console
        self.progress = progress
        self.verbose = verbose
        self._task: TaskID | None = None

    def attach(self, updater: ClientUpdater) -> None:
        updater.events.status.subscribe(self.on_status)
        updater.events.transfer_started.subscribe(self.on_started)
        updater.events.transfer_progress.subscribe(self.on_progress)

    def on_status(self, update: StatusUpdate) -> None:
        if update.message_type is MessageType.INFORMATION and not self.verbose:
            return
        style = _STATUS_STYLES[update.message_type]
        self.console.print(f"[{style}]{escape(update.message)}[/{style}]")

    def on_started(self, started: TransferStarted) -> None:
        if self.progress is None or not started.file_name:
            return
        if self._task is not None:
            self.progress.remove_task(self._task)
        self._task = self.progress.add_task(started.file_name, total=started.total)

    def on_progress(self, update: TransferProgress) -> None:
        if self.progress is None or self._task is None:
            return
        self.progress.update(self._task, completed=update.received)


def render_result(console: Console, result: UpdateResult, output_format: str) -> None:
    """Print the session result in the selected output format."""
    if output_format == "json":
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    table = Table(title="Update Session")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Outcome", result.outcome.value)
    table.add_row("Start Version", str(result.start_version))
    table.add_row("Final Version", str(result.final_version))
    table.add_row("Server Version", str(result.target_version))
    table.add_row("Versions Applied", ", ".join(map(str, result.versions_applied)) or "-")
    if result.error:
        table.add_row("Error", escape(result.error))
    console.print(table)


@click.command()
@server_options
@click.option(
    "--operational-path",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for downloaded manifests and patch files",
)
@click.option("--buffer-size", type=int, help="Bytes read per transfer chunk")
@click.option(
    "--segmented/--full",
    default=None,
    help="Walk every intermediate version or ask for the full gap at once",
)
@click.option(
    "--keep-files/--no-keep-files",
    default=None,
    help="Keep raw patch files after importing them",
)
@click.pass_context
def update(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    client_path: Path | None,
    locale: str | None,
    fingerprint: str | None,
    timeout: float | None,
    operational_path: Path | None,
    buffer_size: int | None,
    segmented: bool | None,
    keep_files: bool | None,
) -> None:
    """Update the game client to the latest server version."""
    app_config, console, verbose, _ = _get_context_objects(ctx)

    updater_config = build_updater_config(
        app_config,
        host=host,
        port=port,
        client_path=client_path,
        locale=locale,
        fingerprint=fingerprint,
        timeout=timeout,
        operational_path=operational_path,
        buffer_size=buffer_size,
        segmented_update=segmented,
        keep_update_files=keep_files,
    )

    show_progress = app_config.output_format == "rich"
    progress = (
        Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=console,
            transient=True,
        )
        if show_progress
        else None
    )

    with ClientUpdater(updater_config) as updater:
        ProgressReporter(console, progress, verbose).attach(updater)
        if progress is not None:
            with progress:
                result = updater.run()
        else:
            result = updater.run()

    render_result(console, result, app_config.output_format)

    if not result.succeeded:
        raise click.ClickException(result.error or f"Update failed: {result.outcome.value}")
