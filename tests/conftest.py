"""
Shared pytest fixtures and configuration for stagespine tests.

This module provides:
- Settings cache isolation (every test starts from a fresh StageSpineSettings)
- A small four-stage graph whose stages count their own executions
- Overlay mapping payloads used by the provenance and program tests

Usage:
    Fixtures are auto-discovered by pytest; request them by name.

    def test_something(counting_graph):
        ...
"""

from __future__ import annotations

import sys
from collections import Counter
from pathlib import Path
from typing import Any

import pytest
import structlog

# Ensure stagespine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stagespine.core.settings import clear_settings_cache
from stagespine.pipeline.graph import StageDefinition, StageGraph


# =============================================================================
# Settings isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Drop cached settings, STAGESPINE_* env vars and logging config around every test."""
    import os

    for key in list(os.environ):
        if key.startswith("STAGESPINE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()
    structlog.reset_defaults()


# =============================================================================
# Stage graph fixtures
# =============================================================================


class StageCounter(Counter):
    """Counts stage executions by key."""


@pytest.fixture
def stage_runs() -> StageCounter:
    return StageCounter()


def build_counting_graph(runs: Counter, *, versions: dict[str, str] | None = None) -> StageGraph:
    """Build a lower -> link -> bind -> emit chain that records every run in ``runs``."""
    versions = versions or {}

    def lower(ctx: Any) -> dict[str, Any]:
        runs["10-lower"] += 1
        return {"tokens": ctx.option("text").split()}

    def link(ctx: Any) -> dict[str, Any]:
        runs["20-link"] += 1
        return {"linked": [t.upper() for t in ctx.require("10-lower")["tokens"]]}

    def bind(ctx: Any) -> dict[str, Any]:
        runs["30-bind"] += 1
        return {"scope": len(ctx.require("20-link")["linked"]), "strict": ctx.option("strict", False)}

    def emit(ctx: Any) -> dict[str, Any]:
        runs["60-emit"] += 1
        lowered = ctx.require("10-lower")
        bound = ctx.require("30-bind")
        return {"text": " ".join(lowered["tokens"]), "scope": bound["scope"]}

    return StageGraph(
        [
            StageDefinition(
                key="10-lower",
                version=versions.get("10-lower", "1"),
                fingerprint=lambda ctx: {"text": ctx.option("text")},
                run=lower,
                required_options=("text",),
            ),
            StageDefinition(
                key="20-link",
                version=versions.get("20-link", "1"),
                deps=("10-lower",),
                fingerprint=lambda ctx: None,
                run=link,
            ),
            StageDefinition(
                key="30-bind",
                version=versions.get("30-bind", "1"),
                deps=("20-link",),
                fingerprint=lambda ctx: {"strict": ctx.option("strict", False)},
                run=bind,
            ),
            StageDefinition(
                key="60-emit",
                version=versions.get("60-emit", "1"),
                deps=("10-lower", "30-bind"),
                fingerprint=lambda ctx: None,
                run=emit,
            ),
        ]
    )


@pytest.fixture
def counting_graph(stage_runs: StageCounter) -> StageGraph:
    return build_counting_graph(stage_runs)


# =============================================================================
# Provenance fixtures
# =============================================================================

SOURCE_URI = "file:///app/home.html"
GENERATED_URI = "file:///app/home.html.overlay.ts"


@pytest.fixture
def simple_mapping() -> dict[str, Any]:
    """One expression: generated [20,30] <-> source [110,120]."""
    return {
        "entries": [
            {
                "exprId": "e1",
                "sourceSpan": {"start": 110, "end": 120},
                "generatedSpan": {"start": 20, "end": 30},
            }
        ]
    }


@pytest.fixture
def member_mapping() -> dict[str, Any]:
    """``user.name`` expression with a root member and a nested member segment."""
    return {
        "entries": [
            {
                "exprId": "e1",
                "sourceSpan": {"start": 100, "end": 109},
                "generatedSpan": {"start": 40, "end": 54},
                "segments": [
                    {
                        "path": "user",
                        "sourceSpan": {"start": 100, "end": 109},
                        "generatedSpan": {"start": 40, "end": 54},
                    },
                    {
                        "path": "user.name",
                        "sourceSpan": {"start": 105, "end": 109},
                        "generatedSpan": {"start": 50, "end": 54},
                    },
                ],
            }
        ]
    }


@pytest.fixture
def graph_factory(stage_runs: StageCounter):
    """Build the counting graph with per-stage version overrides."""

    def factory(versions: dict[str, str] | None = None) -> StageGraph:
        return build_counting_graph(stage_runs, versions=versions)

    return factory


@pytest.fixture
def source_uri() -> str:
    return SOURCE_URI


@pytest.fixture
def generated_uri() -> str:
    return GENERATED_URI
