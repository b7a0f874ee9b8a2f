"""Pydantic models for overlay mapping artifacts.

An emission stage produces a mapping describing which generated span came
from which source span. The index validates it with these models and then
expands it into provenance edges.

Wire shape (camelCase or snake_case keys are both accepted)::

    {
      "entries": [
        {
          "exprId": "e1",
          "sourceSpan": {"start": 110, "end": 120, "document": "file:///app/home.html"},
          "generatedSpan": {"start": 20, "end": 30},
          "segments": [
            {"path": "user.name",
             "sourceSpan": {"start": 110, "end": 119},
             "generatedSpan": {"start": 20, "end": 29},
             "degradation": {"reason": "missing-html-member-span", "projection": "proportional"}}
          ]
        }
      ]
    }

Tags:
    stagespine, provenance, mapping, pydantic, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from stagespine.core.errors import MappingValidationError
from stagespine.core.spans import Span
from stagespine.provenance.models import DegradedEvidence


class _MappingModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class MappingSpan(_MappingModel):
    """A ``{start, end}`` pair, optionally naming the document it lives in."""

    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    document: str | None = None

    @model_validator(mode="after")
    def _ordered(self) -> MappingSpan:
        if self.end < self.start:
            raise ValueError(f"span end {self.end} precedes start {self.start}")
        return self

    def to_span(self) -> Span:
        return Span(self.start, self.end)


class MappingDegradation(_MappingModel):
    reason: str
    projection: str = "proportional"

    def to_evidence(self) -> DegradedEvidence:
        return DegradedEvidence(reason=self.reason, projection=self.projection)


class MappingSegment(_MappingModel):
    """A member sub-expression inside one entry."""

    path: str = Field(..., min_length=1)
    source_span: MappingSpan
    generated_span: MappingSpan
    degradation: MappingDegradation | None = None


class MappingEntry(_MappingModel):
    """One expression: its full source span and its full generated span."""

    expr_id: str
    source_span: MappingSpan
    generated_span: MappingSpan
    segments: list[MappingSegment] = Field(default_factory=list)


class MappingArtifact(_MappingModel):
    """Declarative source-to-generated mapping for one document."""

    entries: list[MappingEntry] = Field(default_factory=list)

    @classmethod
    def parse(cls, data: MappingArtifact | Mapping[str, Any]) -> MappingArtifact:
        """Validate ``data``; raises :class:`MappingValidationError` on bad input."""
        if isinstance(data, MappingArtifact):
            return data
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise MappingValidationError(
                f"Invalid mapping artifact: {first.get('msg', str(exc))}",
                field=location or None,
                value=first.get("input"),
                cause=exc,
            ) from exc

    @classmethod
    def from_json_file(cls, path: str | Path) -> MappingArtifact:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise MappingValidationError(
                f"Mapping file {path} is not valid JSON: {exc.msg}",
                field="entries",
                cause=exc,
            ) from exc
        return cls.parse(data)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = [
    "MappingArtifact",
    "MappingDegradation",
    "MappingEntry",
    "MappingSegment",
    "MappingSpan",
]
