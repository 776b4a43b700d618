"""Typer CLI for resolving capabilities and syncing build assets.

Example:
    stage-assets --config stage-assets.yaml sync assets.yaml --root apps/stage-web
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .errors import StageAssetsError, UserConfigError
from .host import BuildHost, HostConfig, build_plugins, load_manifest
from .io.extraction import extract_zip
from .logging_utils import setup_logging
from .plugins import resolve_default_capabilities
from .settings import StageAssetsSettings, load_settings

_console = Console()
_err_console = Console(stderr=True)

app = typer.Typer(
    name="stage-assets",
    help="Resolve optional asset plugins and fetch build-time assets",
    no_args_is_help=True,
)


@dataclass
class CliContext:
    settings: StageAssetsSettings
    console: Console


def _fail(message: str) -> None:
    _err_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if value:
        _console.print(f"stage-assets {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="STAGEASSETS_CONFIG",
        help="Path to a YAML settings file",
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override the configured log level"
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Load settings and configure logging for every subcommand."""

    try:
        settings = load_settings(config)
    except UserConfigError as exc:
        _fail(str(exc))
        return

    logging_cfg = settings.logging
    setup_logging(
        level=log_level or logging_cfg.level,
        json_output=json_logs or logging_cfg.json_output,
        log_dir=logging_cfg.log_dir,
        max_log_size_mb=logging_cfg.max_log_size_mb,
    )
    ctx.obj = CliContext(settings=settings, console=_console)


@app.command()
def capabilities(ctx: typer.Context) -> None:
    """Show which source satisfied each capability."""

    context: CliContext = ctx.obj
    resolved = resolve_default_capabilities(context.settings)

    table = Table(title="Capabilities")
    table.add_column("Capability")
    table.add_column("Source")
    table.add_column("Failed attempts")
    for identifier, capability in resolved.items():
        failures = "\n".join(
            f"{attempt.source}: {attempt.error}" for attempt in capability.attempts if not attempt.ok
        )
        table.add_row(identifier, capability.source, failures or "-")
    context.console.print(table)


@app.command()
def sync(
    ctx: typer.Context,
    manifest: Path = typer.Argument(..., help="YAML manifest listing the assets"),
    root: Path = typer.Option(Path("."), "--root", "-r", help="Project root"),
) -> None:
    """Fetch every asset in MANIFEST into the cache and public directories."""

    context: CliContext = ctx.obj
    try:
        asset_manifest = load_manifest(manifest)
        resolved = resolve_default_capabilities(context.settings)
        plugins = build_plugins(asset_manifest, resolved)
        config = HostConfig.from_root(root, context.settings)
        asyncio.run(BuildHost(plugins).run(config))
    except (StageAssetsError, UserConfigError, OSError) as exc:
        _fail(str(exc))
        return

    context.console.print(
        f"[green]Synced {len(plugins)} asset plugin(s)[/green] into {config.public_dir}"
    )


@app.command()
def extract(
    ctx: typer.Context,
    archive: Path = typer.Argument(..., exists=True, dir_okay=False, help="ZIP archive"),
    destination: Path = typer.Argument(..., help="Directory receiving the extracted tree"),
) -> None:
    """Extract a local ZIP archive."""

    context: CliContext = ctx.obj
    try:
        result = asyncio.run(
            extract_zip(
                archive.read_bytes(),
                destination,
                max_parallel_writes=context.settings.extraction.max_parallel_writes,
            )
        )
    except (StageAssetsError, OSError) as exc:
        _fail(str(exc))
        return

    context.console.print(
        f"Extracted {len(result.files)} file(s) and "
        f"{len(result.directories)} director(ies) into {destination}"
    )


if __name__ == "__main__":  # pragma: no cover
    app()
