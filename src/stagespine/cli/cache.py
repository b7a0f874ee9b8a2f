"""
CLI: ``stagespine cache`` -- inspect and clear the persistent stage cache.
"""

from __future__ import annotations

from pathlib import Path

import typer

from stagespine.cli.utils import console, output_data
from stagespine.core.settings import get_settings
from stagespine.pipeline.cache import FileStageCache

app = typer.Typer(no_args_is_help=True)


def _cache(directory: Path | None) -> FileStageCache:
    return FileStageCache(directory or get_settings().cache_dir)


@app.command("info")
def cache_info(
    directory: Path | None = typer.Option(None, "--dir", "-d", help="Cache directory."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show entry count and size of the stage cache."""
    cache = _cache(directory)
    info = {
        "directory": str(cache.root),
        "entries": sum(1 for _ in cache.entries()),
        "size_bytes": cache.size_bytes(),
    }
    output_data(info, as_json=json_out, title="Stage cache")


@app.command("clear")
def cache_clear(
    directory: Path | None = typer.Option(None, "--dir", "-d", help="Cache directory."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Delete every persisted stage artifact."""
    cache = _cache(directory)
    if not yes:
        typer.confirm(f"Delete all cached stage artifacts in {cache.root}?", abort=True)
    removed = cache.clear()
    console.print(f"[green]✓[/green] Removed {removed} cache entries from {cache.root}")
