"""Provenance statistics.

Tags:
    stagespine, provenance, stats

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from stagespine.provenance.models import ProvenanceKind


class RuntimeProvenanceStatus(str, Enum):
    """How runtime-kind edges attached to a source/overlay pair resolve."""

    TRACKED = "tracked"
    SYNTHESIS_NOT_IMPLEMENTED = "unsupported/runtime-synthesis-not-implemented"
    EDGES_WITHOUT_URI = "unsupported/runtime-edges-without-uri"
    EDGES_AMBIGUOUS_URI = "unsupported/runtime-edges-ambiguous-uri"

    @classmethod
    def classify(cls, runtime_edges: int, external_uris: set[str]) -> RuntimeProvenanceStatus:
        if runtime_edges == 0:
            return cls.SYNTHESIS_NOT_IMPLEMENTED
        if not external_uris:
            return cls.EDGES_WITHOUT_URI
        if len(external_uris) > 1:
            return cls.EDGES_AMBIGUOUS_URI
        return cls.TRACKED


def zeroed_kind_counts() -> dict[ProvenanceKind, int]:
    return {kind: 0 for kind in ProvenanceKind}


@dataclass
class DocumentEdgeCounts:
    uri: str
    edges: int = 0
    by_kind: dict[ProvenanceKind, int] = field(default_factory=zeroed_kind_counts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "edges": self.edges,
            "by_kind": {kind.value: count for kind, count in self.by_kind.items()},
        }


@dataclass
class ProvenanceStats:
    """Global edge counts, split by kind and by document."""

    total_edges: int = 0
    by_kind: dict[ProvenanceKind, int] = field(default_factory=zeroed_kind_counts)
    documents: list[DocumentEdgeCounts] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_edges": self.total_edges,
            "by_kind": {kind.value: count for kind, count in self.by_kind.items()},
            "documents": [doc.to_dict() for doc in self.documents],
        }


@dataclass(frozen=True)
class DocumentProvenanceStats:
    """Per-source view: overlay coverage and runtime classification.

    Attributes:
        source_uri: Canonical source URI
        generated_uri: Overlay URI, if a mapping was ingested
        runtime_uri: The single external runtime URI when ``runtime_status`` is tracked
        total_edges: Edges touching the source or its overlay
        overlay_edges: ``overlay_*`` edges among them
        runtime_edges: ``runtime_*`` edges among them
        runtime_status: Exactly one :class:`RuntimeProvenanceStatus`
    """

    source_uri: str
    generated_uri: str | None
    runtime_uri: str | None
    total_edges: int
    overlay_edges: int
    runtime_edges: int
    runtime_status: RuntimeProvenanceStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_uri": self.source_uri,
            "generated_uri": self.generated_uri,
            "runtime_uri": self.runtime_uri,
            "total_edges": self.total_edges,
            "overlay_edges": self.overlay_edges,
            "runtime_edges": self.runtime_edges,
            "runtime_status": self.runtime_status.value,
        }


__all__ = [
    "DocumentEdgeCounts",
    "DocumentProvenanceStats",
    "ProvenanceStats",
    "RuntimeProvenanceStatus",
    "zeroed_kind_counts",
]
