"""stagespine core -- primitives shared by the pipeline, provenance and program layers.

Architecture::

    errors.py      Structured error hierarchy (StageSpineError, ConfigError, ...)
    hashing.py     Canonicalization + stable content hashing
    logging.py     structlog configuration and bound loggers
    settings.py    StageSpineSettings (pydantic-settings, STAGESPINE_*)
    spans.py       Half-open Span primitive
    uris.py        Canonical document URIs
"""

from stagespine.core.errors import (
    ConfigError,
    StageSpineError,
    ValidationError,
)
from stagespine.core.hashing import canonicalize, compute_hash, stable_hash
from stagespine.core.spans import Span
from stagespine.core.uris import canonical_uri

__all__ = [
    "ConfigError",
    "Span",
    "StageSpineError",
    "ValidationError",
    "canonical_uri",
    "canonicalize",
    "compute_hash",
    "stable_hash",
]
