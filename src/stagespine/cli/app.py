"""
Root Typer application for the stagespine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from stagespine.core.logging import configure_logging
from stagespine.core.settings import get_settings

app = Typer(
    name="stagespine",
    help="stagespine: incremental stage pipelines with source provenance.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("stagespine")
        except PackageNotFoundError:
            from stagespine import __version__ as v
        typer.echo(f"stagespine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """stagespine CLI: inspect stage caches and provenance mappings."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")


# ── Sub-command registration ─────────────────────────────────────────────

from stagespine.cli.cache import app as cache_app  # noqa: E402
from stagespine.cli.provenance import app as provenance_app  # noqa: E402

app.add_typer(cache_app, name="cache", help="Persistent stage cache.")
app.add_typer(provenance_app, name="provenance", help="Provenance mapping queries.")
