"""
Structured error types for stagespine.

Provides a typed error hierarchy with category metadata and structured
context, so pipeline and provenance failures can be logged and classified
without string matching.

Manifesto:
    - **Typed Error Hierarchy:** Configuration, pipeline, cache, validation
      and program errors are distinct types
    - **Fail fast:** Configuration errors (unknown stage, dependency cycle,
      missing option) are raised immediately and never retried
    - **Rich Context:** Errors carry stage/document/cache-key metadata
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      StageSpineError                             │
        │               (category, context, cause)                         │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError             PipelineError       CacheError          │
        │  (CONFIG)                (PIPELINE)          (CACHE)             │
        │     │                        │                   │               │
        │  UnknownStageError       EngineInvariant     CacheCorruption     │
        │  DuplicateStageError                                             │
        │  DependencyCycleError                                            │
        │  MissingOptionError                                              │
        │  UndeclaredDependency                                            │
        │                                                                  │
        │  ValidationError         ProgramError                            │
        │  (VALIDATION)            (PROGRAM)                               │
        │     │                        │                                   │
        │  InvalidSpanError        DocumentNotFoundError                   │
        │  MappingValidationError                                          │
        │  UnhashableValueError                                            │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = UnknownStageError("30-bind")
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> error.to_dict()["stage"]
    '30-bind'

Guardrails:
    ❌ DON'T: Raise CacheCorruptionError out of a session (it becomes a miss)
    ✅ DO: Raise ConfigError subclasses for anything a caller must fix

    ❌ DON'T: Return an error for a provenance miss
    ✅ DO: Return ``None`` / ``[]`` for queries outside any mapping

Tags:
    error-handling, exception-hierarchy, error-context, stagespine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Attributes:
        CONFIG: Unknown stage, dependency cycle, missing option
        PIPELINE: Engine invariant violations during resolution
        CACHE: Unreadable or inconsistent cache entries
        VALIDATION: Malformed spans, mappings or unhashable values
        PROGRAM: Document lifecycle errors
        INTERNAL: Bugs, unexpected state
    """

    CONFIG = "CONFIG"
    PIPELINE = "PIPELINE"
    CACHE = "CACHE"
    VALIDATION = "VALIDATION"
    PROGRAM = "PROGRAM"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        stage: Stage key involved in the failure
        document: Document URI involved in the failure
        cache_key: Cache key being loaded or stored
        metadata: Additional key-value pairs
    """

    stage: str | None = None
    document: str | None = None
    cache_key: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["stage", "document", "cache_key"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StageSpineError(Exception):
    """
    Base exception for all stagespine errors.

    Every error carries a category, an :class:`ErrorContext` and an optional
    chained cause. Subclasses set ``default_category``.

    Examples:
        >>> error = StageSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(stage="10-lower").context.stage
        '10-lower'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StageSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise MissingOptionError("text").with_context(stage="10-lower")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(StageSpineError):
    """
    Configuration error.

    Never retried - the stage graph or session options must be fixed.
    """

    default_category = ErrorCategory.CONFIG


class UnknownStageError(ConfigError):
    """Stage key is not registered in the stage graph."""

    def __init__(self, stage: str, message: str | None = None):
        self.stage = stage
        super().__init__(message or f"Unknown stage '{stage}'", context=ErrorContext(stage=stage))

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["stage"] = self.stage
        return result


class DuplicateStageError(ConfigError):
    """A stage with the same key is already registered."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Stage '{stage}' is already registered", context=ErrorContext(stage=stage))


class DependencyCycleError(ConfigError):
    """The declared stage dependencies contain a cycle."""

    def __init__(self, stages: list[str]):
        self.stages = list(stages)
        super().__init__(f"Dependency cycle detected among stages: {self.stages}")


class MissingOptionError(ConfigError):
    """A stage requires a session option that was not supplied."""

    def __init__(self, option: str, *, stage: str | None = None):
        self.option = option
        target = f" required by stage '{stage}'" if stage else ""
        super().__init__(
            f"Missing required option '{option}'{target}",
            context=ErrorContext(stage=stage),
        )


class UndeclaredDependencyError(ConfigError):
    """A stage required an artifact it does not declare as a dependency."""

    def __init__(self, stage: str, dependency: str):
        self.stage = stage
        self.dependency = dependency
        super().__init__(
            f"Stage '{stage}' requires '{dependency}' which is not a declared dependency",
            context=ErrorContext(stage=stage),
        )


# =============================================================================
# PIPELINE ERRORS
# =============================================================================


class PipelineError(StageSpineError):
    """Pipeline execution error."""

    default_category = ErrorCategory.PIPELINE


class EngineInvariantError(PipelineError):
    """The engine reached a state its resolution order should make impossible."""

    pass


# =============================================================================
# CACHE ERRORS
# =============================================================================


class CacheError(StageSpineError):
    """Stage cache error."""

    default_category = ErrorCategory.CACHE


class CacheCorruptionError(CacheError):
    """A persisted cache entry could not be decoded."""

    def __init__(self, cache_key: str, *, cause: Exception | None = None):
        self.cache_key = cache_key
        super().__init__(
            f"Corrupt cache entry: {cache_key}",
            context=ErrorContext(cache_key=cache_key),
            cause=cause,
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(StageSpineError):
    """
    Data validation error.

    Never retried - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class InvalidSpanError(ValidationError):
    """Span bounds violate ``0 <= start <= end``."""

    pass


class MappingValidationError(ValidationError):
    """An overlay mapping payload does not match the ingestion contract."""

    pass


class UnhashableValueError(ValidationError):
    """A value has no canonical structural form."""

    def __init__(self, message: str, *, value_type: str | None = None):
        self.value_type = value_type
        super().__init__(message, field="value_type", value=value_type)


# =============================================================================
# PROGRAM ERRORS
# =============================================================================


class ProgramError(StageSpineError):
    """Document lifecycle error."""

    default_category = ErrorCategory.PROGRAM


class DocumentNotFoundError(ProgramError):
    """The document has no snapshot in the program."""

    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(
            f"No document for {uri}. Call upsert() first.",
            context=ErrorContext(document=uri),
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, StageSpineError):
        return error.category
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StageSpineError",
    # Config
    "ConfigError",
    "UnknownStageError",
    "DuplicateStageError",
    "DependencyCycleError",
    "MissingOptionError",
    "UndeclaredDependencyError",
    # Pipeline
    "PipelineError",
    "EngineInvariantError",
    # Cache
    "CacheError",
    "CacheCorruptionError",
    # Validation
    "ValidationError",
    "InvalidSpanError",
    "MappingValidationError",
    "UnhashableValueError",
    # Program
    "ProgramError",
    "DocumentNotFoundError",
    # Utilities
    "categorize_error",
]
