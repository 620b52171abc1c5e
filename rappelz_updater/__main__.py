"""Main entry point for rappelz-updater CLI."""

from __future__ import annotations

import json
import logging
import platform
import sys
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console

from rappelz_updater import __version__
from rappelz_updater.commands.local import local_version, manifest
from rappelz_updater.commands.seek import seek
from rappelz_updater.commands.update import update
from rappelz_updater.core.config import AppConfig
from rappelz_updater.protocol.constants import DEFAULT_BUFFER_SIZE, DEFAULT_PORT


def configure_logging(level: str | None = None, colors: bool | None = None) -> None:
    """Route structlog through stdlib logging.

    Args:
        level: Root log level; left untouched when None
        colors: Force colored output on or off; None lets the renderer
            decide from the terminal
    """
    if level is not None:
        logging.basicConfig(format="%(message)s", stream=sys.stderr)
        logging.getLogger().setLevel(getattr(logging, level))

    renderer = (
        structlog.dev.ConsoleRenderer()
        if colors is None
        else structlog.dev.ConsoleRenderer(colors=colors)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


configure_logging()
logger = structlog.get_logger()


@click.group()
@click.version_option(version=__version__, prog_name="rappelz-updater")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json", "plain"], case_sensitive=False),
    default="rich",
    help="Output format",
)
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    verbose: bool,
    debug: bool,
    output: str,
) -> None:
    """Patch synchronization client for the Rappelz game client."""
    ctx.ensure_object(dict)

    try:
        app_config = AppConfig.load(config)
    except (OSError, ValueError) as e:
        logger.error("config_load_failed", path=str(config) if config else None, error=str(e))
        sys.exit(1)

    if verbose or debug:
        app_config.log_level = "DEBUG" if debug else "INFO"
    if output:
        app_config.output_format = output.lower()

    configure_logging(app_config.log_level, colors=True if debug else None)

    console = Console(
        force_terminal=output == "rich",
        no_color=output != "rich",
        width=None if output == "rich" else 120,
    )

    ctx.obj["config"] = app_config
    ctx.obj["console"] = console
    ctx.obj["verbose"] = verbose or debug
    ctx.obj["debug"] = debug

    logger.debug("cli_initialized", config=app_config.model_dump(mode="json"))


@main.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version and protocol defaults."""
    console: Console = ctx.obj["console"]
    config: AppConfig = ctx.obj["config"]

    info = {
        "name": "rappelz-updater",
        "version": __version__,
        "python_version": platform.python_version(),
        "platform": sys.platform,
        "default_port": DEFAULT_PORT,
        "default_buffer_size": DEFAULT_BUFFER_SIZE,
    }

    if config.output_format == "json":
        print(json.dumps(info, indent=2))
        return

    console.print(f"rappelz-updater {__version__}")
    if ctx.obj["verbose"]:
        console.print(f"Python {info['python_version']} on {info['platform']}")
        console.print(f"Defaults: port {DEFAULT_PORT}, buffer {DEFAULT_BUFFER_SIZE} bytes")


main.add_command(update)
main.add_command(seek)
main.add_command(local_version)
main.add_command(manifest)


def handle_exception(exc_type: type[BaseException], exc_value: BaseException, exc_traceback: Any) -> None:
    """Log uncaught exceptions instead of printing a bare traceback."""
    if issubclass(exc_type, KeyboardInterrupt):
        logger.info("cancelled_by_user")
        sys.exit(1)

    logger.error("uncaught_exception", exc_info=(exc_type, exc_value, exc_traceback))
    sys.exit(1)


def run() -> None:
    """Console script entry point."""
    sys.excepthook = handle_exception
    main()


if __name__ == "__main__":
    run()
