"""stagespine provenance -- span-to-span edges between source and generated documents.

Architecture::

    models.py      ProvenanceKind, EdgeEnd, ProvenanceEdge, evidence, hits
    mapping.py     Pydantic models for ingested overlay mappings
    projection.py  Edge ranking and proportional projection
    index.py       ProvenanceIndex (bidirectional adjacency index)
    stats.py       Global and per-document statistics
    policy.py      Fallback rules for editor-facing callers
"""

from stagespine.provenance.index import ProvenanceIndex
from stagespine.provenance.mapping import MappingArtifact
from stagespine.provenance.models import (
    DegradedEvidence,
    DocumentSpan,
    EdgeEnd,
    ExactEvidence,
    ProjectionHit,
    ProvenanceEdge,
    ProvenanceHit,
    ProvenanceKind,
)
from stagespine.provenance.projection import path_depth
from stagespine.provenance.stats import (
    DocumentProvenanceStats,
    ProvenanceStats,
    RuntimeProvenanceStatus,
)

__all__ = [
    "DegradedEvidence",
    "DocumentProvenanceStats",
    "DocumentSpan",
    "EdgeEnd",
    "ExactEvidence",
    "MappingArtifact",
    "ProjectionHit",
    "ProvenanceEdge",
    "ProvenanceHit",
    "ProvenanceIndex",
    "ProvenanceKind",
    "ProvenanceStats",
    "RuntimeProvenanceStatus",
    "path_depth",
]
