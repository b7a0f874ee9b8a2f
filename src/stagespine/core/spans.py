"""Half-open integer spans over document text.

A :class:`Span` is ``[start, end)``; ``start == end`` denotes a zero-width
position (a cursor). Spans are immutable and validated at construction.

Tags:
    spans, offsets, stagespine

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from stagespine.core.errors import InvalidSpanError


@dataclass(frozen=True, order=True)
class Span:
    """Half-open ``[start, end)`` range of character offsets."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise InvalidSpanError(
                f"Invalid span [{self.start}, {self.end}): expected 0 <= start <= end",
                field="span",
                value=(self.start, self.end),
            )

    @classmethod
    def point(cls, offset: int) -> Span:
        """Zero-width span at ``offset``."""
        return cls(offset, offset)

    @classmethod
    def coerce(cls, value: Span | Mapping[str, Any] | tuple[int, int]) -> Span:
        """Build a span from a ``Span``, a ``{start, end}`` mapping or a pair."""
        if isinstance(value, Span):
            return value
        if isinstance(value, Mapping):
            return cls(int(value["start"]), int(value["end"]))
        start, end = value
        return cls(int(start), int(end))

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def touches(self, offset: int) -> bool:
        """True when a cursor at ``offset`` sits inside or on the edge of this span."""
        return self.start <= offset <= self.end

    def contains(self, other: Span) -> bool:
        return self.start <= other.start and other.end <= self.end

    def overlap(self, other: Span) -> int:
        """Overlap length; a zero-width ``other`` touching this span counts as 1."""
        length = min(self.end, other.end) - max(self.start, other.start)
        if length > 0:
            return length
        if other.is_empty and self.touches(other.start):
            return 1
        if self.is_empty and other.touches(self.start):
            return 1
        return 0

    def clamp(self, offset: int) -> int:
        return min(max(offset, self.start), self.end)

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}

    def __repr__(self) -> str:
        return f"Span({self.start}, {self.end})"


__all__ = ["Span"]
