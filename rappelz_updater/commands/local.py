"""Commands that inspect local updater state without touching the network."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from rappelz_updater.commands.update import _get_context_objects
from rappelz_updater.core.errors import PatchSyncError
from rappelz_updater.core.version_store import load_local_version
from rappelz_updater.protocol.patch_manifest import load_patch_manifest


@click.command(name="local-version")
@click.argument("client_path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def local_version(ctx: click.Context, client_path: Path) -> None:
    """Show the installed client version."""
    app_config, console, _, _ = _get_context_objects(ctx)

    try:
        version = load_local_version(client_path)
    except PatchSyncError as e:
        raise click.ClickException(str(e)) from e

    if app_config.output_format == "json":
        print(json.dumps({"client_path": str(client_path), "version": version}, indent=2))
    else:
        console.print(f"Installed version: [green]{version}[/green]")


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--limit", "-n", type=int, default=0, help="Show at most this many entries (0 = all)")
@click.pass_context
def manifest(ctx: click.Context, path: Path, limit: int) -> None:
    """Show the entries of a saved patch manifest (.tpf)."""
    app_config, console, _, _ = _get_context_objects(ctx)

    try:
        patch_manifest = load_patch_manifest(path)
    except PatchSyncError as e:
        raise click.ClickException(str(e)) from e

    entries = patch_manifest.entries[:limit] if limit > 0 else patch_manifest.entries

    if app_config.output_format == "json":
        data = patch_manifest.model_dump(mode="json")
        data["entries"] = [entry.model_dump(mode="json") for entry in entries]
        print(json.dumps(data, indent=2))
        return

    table = Table(title=f"Patch Manifest {escape(patch_manifest.locale.upper())} v{patch_manifest.version}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Storage Name", style="cyan")
    table.add_column("Path", style="yellow")
    table.add_column("Download Key", style="green")

    for entry in entries:
        table.add_row(
            entry.sequence,
            escape(entry.storage_name),
            escape(entry.path_fragment),
            escape(entry.download_key(patch_manifest.locale)),
        )

    console.print(table)
    console.print(f"{len(patch_manifest.entries)} entries")
