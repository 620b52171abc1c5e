"""Seek command: show the versions a patch server advertises."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from rappelz_updater.commands.update import _get_context_objects, build_updater_config, server_options
from rappelz_updater.core.errors import LocalIOFailure, PatchSyncError
from rappelz_updater.core.updater import ClientUpdater
from rappelz_updater.core.version_store import load_local_version


@click.command()
@server_options
@click.pass_context
def seek(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    client_path: Path | None,
    locale: str | None,
    fingerprint: str | None,
    timeout: float | None,
) -> None:
    """Authenticate and list the latest version per locale."""
    app_config, console, verbose, _ = _get_context_objects(ctx)

    if client_path is None and app_config.updater is None:
        client_path = Path.cwd()

    updater_config = build_updater_config(
        app_config,
        host=host,
        port=port,
        client_path=client_path,
        locale=locale,
        fingerprint=fingerprint,
        timeout=timeout,
    )

    try:
        local: int | None = load_local_version(updater_config.client_path)
    except LocalIOFailure:
        local = None

    with ClientUpdater(updater_config) as updater:
        try:
            with console.status(f"Querying {updater_config.host}:{updater_config.port}..."):
                updater.connect_and_authenticate()
                versions = updater.fetch_server_versions()
        except PatchSyncError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise click.ClickException(f"Failed to query patch server: {e}") from e

    if app_config.output_format == "json":
        print(json.dumps({"local_version": local, "locale": updater_config.locale, "versions": versions}, indent=2))
        return

    table = Table(title=f"Patch Server {updater_config.host}:{updater_config.port}")
    table.add_column("Locale", style="cyan")
    table.add_column("Version", justify="right", style="green")
    table.add_column("Status", style="yellow")

    for name, server_version in sorted(versions.items()):
        status = ""
        if name == updater_config.locale and local is not None:
            status = "up to date" if server_version <= local else f"update available (local {local})"
        table.add_row(escape(name), str(server_version), status)

    console.print(table)
    if verbose:
        console.print(f"Tracked locale: {escape(updater_config.locale)}")
