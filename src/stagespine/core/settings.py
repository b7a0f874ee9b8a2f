"""Centralized settings for stagespine.

Manifesto:
    Cache persistence, cache location and logging are environment concerns,
    not code concerns. ``StageSpineSettings`` reads them from ``STAGESPINE_*``
    environment variables and ``.env`` files, validated once and cached.

Examples:
    >>> from stagespine.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.cache_persist
    False

Tags:
    settings, configuration, pydantic, environment, stagespine

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StageSpineSettings(BaseSettings):
    """stagespine configuration.

    Fields
    ──────
    cache_enabled    : Master switch for persistent stage caching
    cache_persist    : Persist stage artifacts to ``cache_dir``
    cache_dir        : Directory for the file-backed stage cache
    generated_suffix : Suffix appended to a source URI to name its overlay
    log_level        : Structlog log level
    log_format       : ``json`` or ``console``
    """

    model_config = SettingsConfigDict(
        env_prefix="STAGESPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Stage cache ──────────────────────────────────────────────
    cache_enabled: bool = Field(default=True)
    cache_persist: bool = Field(default=False)
    cache_dir: Path = Field(
        default_factory=lambda: Path.cwd() / ".stagespine-cache",
        description="Directory for persisted stage artifacts",
    )

    # ── Program ──────────────────────────────────────────────────
    generated_suffix: str = Field(default=".overlay.ts")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got {value!r}")
        return value

    @property
    def persistence_active(self) -> bool:
        return self.cache_enabled and self.cache_persist


_settings_cache: dict[str, StageSpineSettings] = {}


def get_settings(*, _force_reload: bool = False) -> StageSpineSettings:
    """Load, validate, and cache a :class:`StageSpineSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = StageSpineSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings (for testing)."""
    _settings_cache.clear()


__all__ = [
    "StageSpineSettings",
    "get_settings",
    "clear_settings_cache",
]
