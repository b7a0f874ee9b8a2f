"""stagespine command-line interface (typer + rich)."""

from stagespine.cli.app import app

__all__ = ["app"]
