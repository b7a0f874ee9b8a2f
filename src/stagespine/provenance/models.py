"""Provenance edge and query-result types.

Edges are directed: ``from_`` is the generated side (overlay or runtime
artifact), ``to`` is the authored source side. Both ends are plain frozen
dataclasses so edges can be filed under two URI keys without any shared
mutable state.

Tags:
    stagespine, provenance, edges, evidence

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Literal

from stagespine.core.spans import Span


class ProvenanceKind(str, Enum):
    """Closed set of edge kinds.

    ``overlay_*`` edges come from ingested overlay mappings and are reliable;
    ``runtime_*`` edges are best-effort links to further artifacts.
    """

    OVERLAY_EXPR = "overlay_expr"
    OVERLAY_MEMBER = "overlay_member"
    RUNTIME_EXPR = "runtime_expr"
    RUNTIME_MEMBER = "runtime_member"
    RUNTIME_NODE = "runtime_node"
    CUSTOM = "custom"

    @property
    def is_member(self) -> bool:
        return self in (ProvenanceKind.OVERLAY_MEMBER, ProvenanceKind.RUNTIME_MEMBER)

    @property
    def is_expr(self) -> bool:
        return self in (ProvenanceKind.OVERLAY_EXPR, ProvenanceKind.RUNTIME_EXPR)

    @property
    def is_overlay(self) -> bool:
        return self in (ProvenanceKind.OVERLAY_EXPR, ProvenanceKind.OVERLAY_MEMBER)

    @property
    def is_runtime(self) -> bool:
        return self in (
            ProvenanceKind.RUNTIME_EXPR,
            ProvenanceKind.RUNTIME_MEMBER,
            ProvenanceKind.RUNTIME_NODE,
        )


# Lower tier wins a point lookup
KIND_TIER: dict[ProvenanceKind, int] = {
    ProvenanceKind.OVERLAY_MEMBER: 0,
    ProvenanceKind.OVERLAY_EXPR: 1,
    ProvenanceKind.RUNTIME_MEMBER: 2,
    ProvenanceKind.RUNTIME_EXPR: 3,
    ProvenanceKind.RUNTIME_NODE: 4,
    ProvenanceKind.CUSTOM: 5,
}


@dataclass(frozen=True)
class ExactEvidence:
    """The edge is an exact structural correspondence."""

    level: ClassVar[Literal["exact"]] = "exact"

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level}


@dataclass(frozen=True)
class DegradedEvidence:
    """The edge's source span was synthesized rather than observed.

    Attributes:
        reason: Why no exact span was available (e.g. "missing-html-member-span")
        projection: How the span was synthesized (e.g. "proportional")
    """

    reason: str
    projection: str
    level: ClassVar[Literal["degraded"]] = "degraded"

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "reason": self.reason, "projection": self.projection}


Evidence = ExactEvidence | DegradedEvidence

EXACT = ExactEvidence()


@dataclass(frozen=True)
class EdgeEnd:
    """One endpoint of an edge: a span in a document, optionally tied to an expression or node."""

    uri: str
    span: Span
    expr_id: str | None = None
    node_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"uri": self.uri, "span": self.span.to_dict()}
        if self.expr_id is not None:
            data["expr_id"] = self.expr_id
        if self.node_id is not None:
            data["node_id"] = self.node_id
        return data


@dataclass(frozen=True)
class ProvenanceEdge:
    """Directed span-to-span mapping from a generated document to its source.

    Attributes:
        kind: Edge kind (see :class:`ProvenanceKind`)
        from_: Generated-side endpoint
        to: Source-side endpoint
        path: Member path for member edges (e.g. "user.name", "items[0]")
        evidence: Exact or degraded correspondence
    """

    kind: ProvenanceKind
    from_: EdgeEnd
    to: EdgeEnd
    path: str | None = None
    evidence: Evidence = field(default=EXACT)

    @property
    def expr_id(self) -> str | None:
        return self.from_.expr_id if self.from_.expr_id is not None else self.to.expr_id

    @property
    def node_id(self) -> str | None:
        return self.to.node_id if self.to.node_id is not None else self.from_.node_id

    @property
    def is_degraded(self) -> bool:
        return isinstance(self.evidence, DegradedEvidence)

    def end(self, side: Side) -> EdgeEnd:
        return self.from_ if side == "from" else self.to

    def other(self, side: Side) -> EdgeEnd:
        return self.to if side == "from" else self.from_

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "from": self.from_.to_dict(),
            "to": self.to.to_dict(),
            "evidence": self.evidence.to_dict(),
        }
        if self.path is not None:
            data["path"] = self.path
        return data


Side = Literal["from", "to"]


@dataclass(frozen=True)
class ProvenanceHit:
    """Best single edge at a point, plus its resolved member path."""

    edge: ProvenanceEdge
    expr_id: str | None = None
    node_id: str | None = None
    member_path: str | None = None


@dataclass(frozen=True)
class ProjectionHit:
    """Result of projecting a span across an edge.

    ``uri``/``span`` are the projected location on the other side; ``edge``
    is the unmodified edge the projection went through.
    """

    uri: str
    span: Span
    edge: ProvenanceEdge
    expr_id: str | None = None
    node_id: str | None = None
    member_path: str | None = None

    @property
    def evidence(self) -> Evidence:
        return self.edge.evidence

    def to_document_span(self) -> DocumentSpan:
        return DocumentSpan(
            uri=self.uri,
            span=self.span,
            expr_id=self.expr_id,
            node_id=self.node_id,
            member_path=self.member_path,
        )


@dataclass(frozen=True)
class DocumentSpan:
    """A location in a document, as handed to editor-facing callers."""

    uri: str
    span: Span
    expr_id: str | None = None
    node_id: str | None = None
    member_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"uri": self.uri, "span": self.span.to_dict()}
        for key in ("expr_id", "node_id", "member_path"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


__all__ = [
    "KIND_TIER",
    "DegradedEvidence",
    "DocumentSpan",
    "EdgeEnd",
    "Evidence",
    "ExactEvidence",
    "ProjectionHit",
    "ProvenanceEdge",
    "ProvenanceHit",
    "ProvenanceKind",
    "Side",
]
