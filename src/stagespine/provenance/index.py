"""
Bidirectional provenance index.

Every edge is filed twice: under its generated-side URI in
``_edges_by_from`` and under its source-side URI in ``_edges_by_to``. Both
tables hold plain lists in insertion order, so removal is a filter over the
global edge list followed by a rebuild, and an edge can never outlive the
pruning of either endpoint.

Manifesto:
    - **Deterministic:** Overlapping edges resolve by an explicit ranking, never by dict order
    - **Misses are data:** Queries outside any mapping return ``None`` or ``[]``
    - **Degradation is data:** Evidence rides on the edge; arithmetic ignores it
    - **Exact where it matters:** Projecting a full edge span returns the full other span

Architecture:
    ::

        add_overlay_mapping(src, gen, mapping)
            │  MappingArtifact.parse (camelCase / snake_case)
            ▼
        expand ─► overlay_expr edge per entry
                  overlay_member edge per segment (must overlap its entry)
            │
            ▼
        _edges ──► _edges_by_from[gen] ──► find_by_generated / lookup_generated /
               │                             project_generated_span
               └─► _edges_by_to[src]   ──► find_by_source / lookup_source /
                                             project_source_span

Examples:
    >>> index = ProvenanceIndex()
    >>> index.add_overlay_mapping("file:///a.html", "file:///a.html.overlay.ts", {
    ...     "entries": [{"exprId": "e1",
    ...                  "sourceSpan": {"start": 110, "end": 120},
    ...                  "generatedSpan": {"start": 20, "end": 30}}]})
    >>> index.project_generated_span("file:///a.html.overlay.ts", Span(21, 26)).span
    Span(111, 116)

Tags:
    provenance, source-map, index, projection, stagespine

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from typing import Any

from stagespine.core.logging import get_logger
from stagespine.core.spans import Span
from stagespine.core.uris import canonical_uri
from stagespine.provenance.mapping import MappingArtifact, MappingEntry
from stagespine.provenance.models import (
    EXACT,
    EdgeEnd,
    ProjectionHit,
    ProvenanceEdge,
    ProvenanceHit,
    ProvenanceKind,
    Side,
)
from stagespine.provenance.projection import (
    edges_touching,
    pick_best,
    path_depth,
    pick_for_span,
    project_span,
    rank_edges,
)
from stagespine.provenance.stats import (
    DocumentEdgeCounts,
    DocumentProvenanceStats,
    ProvenanceStats,
    RuntimeProvenanceStatus,
)

logger = get_logger(__name__)

# Reverse projection only goes through edges with a generated counterpart span
_REVERSE_KINDS = frozenset(
    {
        ProvenanceKind.OVERLAY_EXPR,
        ProvenanceKind.OVERLAY_MEMBER,
        ProvenanceKind.RUNTIME_EXPR,
        ProvenanceKind.RUNTIME_MEMBER,
    }
)


@dataclass(frozen=True)
class _OverlayRecord:
    source_uri: str
    generated_uri: str
    mapping: MappingArtifact
    edges: tuple[ProvenanceEdge, ...]


def expand_overlay_mapping(
    source_uri: str, generated_uri: str, mapping: MappingArtifact
) -> Iterator[ProvenanceEdge]:
    """Yield one expr edge per entry and one member edge per overlapping segment."""
    for entry in mapping.entries:
        entry_source = _entry_document(entry, source_uri)
        generated_span = entry.generated_span.to_span()
        yield ProvenanceEdge(
            kind=ProvenanceKind.OVERLAY_EXPR,
            from_=EdgeEnd(generated_uri, generated_span, expr_id=entry.expr_id),
            to=EdgeEnd(entry_source, entry.source_span.to_span(), expr_id=entry.expr_id),
        )
        for segment in entry.segments:
            segment_span = segment.generated_span.to_span()
            if generated_span.overlap(segment_span) == 0:
                logger.debug(
                    "provenance.segment_skipped",
                    expr_id=entry.expr_id,
                    path=segment.path,
                    generated_span=segment_span.to_dict(),
                )
                continue
            segment_source = (
                canonical_uri(segment.source_span.document) if segment.source_span.document else entry_source
            )
            yield ProvenanceEdge(
                kind=ProvenanceKind.OVERLAY_MEMBER,
                from_=EdgeEnd(generated_uri, segment_span, expr_id=entry.expr_id),
                to=EdgeEnd(segment_source, segment.source_span.to_span(), expr_id=entry.expr_id),
                path=segment.path,
                evidence=segment.degradation.to_evidence() if segment.degradation else EXACT,
            )


def _entry_document(entry: MappingEntry, default: str) -> str:
    return canonical_uri(entry.source_span.document) if entry.source_span.document else default


class ProvenanceIndex:
    """In-memory, per-document bidirectional edge index."""

    def __init__(self) -> None:
        self._edges: list[ProvenanceEdge] = []
        self._edges_by_from: dict[str, list[ProvenanceEdge]] = {}
        self._edges_by_to: dict[str, list[ProvenanceEdge]] = {}
        self._overlays: dict[str, _OverlayRecord] = {}

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def add_edges(self, edges: Iterable[ProvenanceEdge]) -> int:
        """Add out-of-band edges (typically runtime kinds). Returns the number added."""
        count = 0
        for edge in edges:
            self._store(self._normalize(edge))
            count += 1
        return count

    def add_overlay_mapping(
        self,
        source_uri: str,
        generated_uri: str,
        mapping: MappingArtifact | Mapping[str, Any],
    ) -> MappingArtifact:
        """Validate ``mapping`` and index it, replacing any earlier mapping for ``source_uri``."""
        source = canonical_uri(source_uri)
        generated = canonical_uri(generated_uri)
        artifact = MappingArtifact.parse(mapping)

        previous = self._overlays.pop(source, None)
        if previous is not None:
            stale = {id(edge) for edge in previous.edges}
            self._rebuild([edge for edge in self._edges if id(edge) not in stale])

        edges = tuple(expand_overlay_mapping(source, generated, artifact))
        for edge in edges:
            self._store(edge)
        self._overlays[source] = _OverlayRecord(source, generated, artifact, edges)

        logger.info(
            "provenance.mapping_ingested",
            source_uri=source,
            generated_uri=generated,
            entries=len(artifact.entries),
            edges=len(edges),
            replaced=previous is not None,
        )
        return artifact

    # ------------------------------------------------------------------
    # Point queries
    # ------------------------------------------------------------------

    def find_by_generated(self, uri: str, offset: int) -> list[ProvenanceEdge]:
        """All edges whose generated span touches ``offset``, best first."""
        return self._find(uri, offset, "from")

    def find_by_source(self, uri: str, offset: int) -> list[ProvenanceEdge]:
        """All edges whose source span touches ``offset``, best first."""
        return self._find(uri, offset, "to")

    def lookup_generated(self, uri: str, offset: int) -> ProvenanceHit | None:
        return self._lookup(uri, offset, "from")

    def lookup_source(self, uri: str, offset: int) -> ProvenanceHit | None:
        return self._lookup(uri, offset, "to")

    def _find(self, uri: str, offset: int, side: Side) -> list[ProvenanceEdge]:
        return rank_edges(edges_touching(self._candidates(uri, side), offset, side), side)

    def _lookup(self, uri: str, offset: int, side: Side) -> ProvenanceHit | None:
        edge = pick_best(edges_touching(self._candidates(uri, side), offset, side), side)
        if edge is None:
            return None
        return ProvenanceHit(
            edge=edge,
            expr_id=edge.expr_id,
            node_id=edge.node_id,
            member_path=edge.path if edge.kind.is_member else None,
        )

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def project_generated_span(self, uri: str, span: Span | tuple[int, int]) -> ProjectionHit | None:
        """Map a generated sub-range onto the source."""
        return self._project(uri, Span.coerce(span), "from", self._candidates(uri, "from"))

    def project_generated_offset(self, uri: str, offset: int) -> ProjectionHit | None:
        return self.project_generated_span(uri, Span.point(offset))

    def project_source_span(self, uri: str, span: Span | tuple[int, int]) -> ProjectionHit | None:
        """Map a source sub-range onto its generated counterpart."""
        candidates = [edge for edge in self._candidates(uri, "to") if edge.kind in _REVERSE_KINDS]
        return self._project(uri, Span.coerce(span), "to", candidates)

    def project_source_offset(self, uri: str, offset: int) -> ProjectionHit | None:
        return self.project_source_span(uri, Span.point(offset))

    def _project(
        self, uri: str, query: Span, side: Side, candidates: list[ProvenanceEdge]
    ) -> ProjectionHit | None:
        edge = pick_for_span(candidates, query, side)
        if edge is None:
            return None
        return ProjectionHit(
            uri=edge.other(side).uri,
            span=project_span(edge, query, side),
            edge=edge,
            expr_id=edge.expr_id,
            node_id=edge.node_id,
            member_path=self._member_path(candidates, edge, query, side),
        )

    @staticmethod
    def _member_path(
        candidates: list[ProvenanceEdge], edge: ProvenanceEdge, query: Span, side: Side
    ) -> str | None:
        if edge.kind.is_member:
            return edge.path
        if not edge.kind.is_expr or edge.expr_id is None:
            return None
        members = [c for c in candidates if c.kind.is_member and c.expr_id == edge.expr_id]
        edge_span = edge.end(side).span
        if edge_span == query:
            chosen = pick_best([m for m in members if m.end(side).span == edge_span], side)
            if chosen is None:
                # No member covers the whole expression: take the shallowest one it overlaps.
                overlapping = [m for m in members if m.end(side).span.overlap(query) > 0]
                chosen = min(overlapping, key=lambda m: path_depth(m.path), default=None)
        else:
            chosen = pick_best([m for m in members if m.end(side).span.contains(query)], side)
        return chosen.path if chosen is not None else None

    # ------------------------------------------------------------------
    # Overlay records
    # ------------------------------------------------------------------

    def get_overlay_mapping(self, source_uri: str) -> MappingArtifact | None:
        record = self._overlays.get(canonical_uri(source_uri))
        return record.mapping if record else None

    def get_generated_uri(self, source_uri: str) -> str | None:
        record = self._overlays.get(canonical_uri(source_uri))
        return record.generated_uri if record else None

    def get_source_uri_for_generated(self, generated_uri: str) -> str | None:
        generated = canonical_uri(generated_uri)
        for record in self._overlays.values():
            if record.generated_uri == generated:
                return record.source_uri
        return None

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove_document(self, uri: str) -> int:
        """Drop every edge touching ``uri`` or its paired overlay/source. Returns edges removed."""
        canonical = canonical_uri(uri)
        to_drop = {canonical}
        for source, record in list(self._overlays.items()):
            if canonical in (source, record.generated_uri):
                to_drop.update((source, record.generated_uri))
                del self._overlays[source]

        keep = [
            edge for edge in self._edges if edge.from_.uri not in to_drop and edge.to.uri not in to_drop
        ]
        removed = len(self._edges) - len(keep)
        self._rebuild(keep)
        logger.info("provenance.document_removed", uri=canonical, dropped=sorted(to_drop), edges=removed)
        return removed

    def clear(self) -> None:
        self._rebuild([])
        self._overlays.clear()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> ProvenanceStats:
        result = ProvenanceStats(total_edges=len(self._edges))
        documents: dict[str, DocumentEdgeCounts] = {}
        for edge in self._edges:
            result.by_kind[edge.kind] += 1
            for uri in dict.fromkeys((edge.from_.uri, edge.to.uri)):
                counts = documents.setdefault(uri, DocumentEdgeCounts(uri))
                counts.edges += 1
                counts.by_kind[edge.kind] += 1
        result.documents = list(documents.values())
        return result

    def document_stats(self, source_uri: str) -> DocumentProvenanceStats:
        """Overlay coverage and runtime classification for one source document."""
        source = canonical_uri(source_uri)
        record = self._overlays.get(source)
        generated = record.generated_uri if record else None
        tracked = {source} if generated is None else {source, generated}

        total = overlay = runtime = 0
        external: set[str] = set()
        for edge in self._edges:
            if edge.from_.uri not in tracked and edge.to.uri not in tracked:
                continue
            total += 1
            if edge.kind.is_overlay:
                overlay += 1
            elif edge.kind.is_runtime:
                runtime += 1
                external.update(uri for uri in (edge.from_.uri, edge.to.uri) if uri not in tracked)

        status = RuntimeProvenanceStatus.classify(runtime, external)
        return DocumentProvenanceStats(
            source_uri=source,
            generated_uri=generated,
            runtime_uri=next(iter(external)) if status is RuntimeProvenanceStatus.TRACKED else None,
            total_edges=total,
            overlay_edges=overlay,
            runtime_edges=runtime,
            runtime_status=status,
        )

    def edges(self) -> list[ProvenanceEdge]:
        return list(self._edges)

    def __len__(self) -> int:
        return len(self._edges)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _candidates(self, uri: str, side: Side) -> list[ProvenanceEdge]:
        table = self._edges_by_from if side == "from" else self._edges_by_to
        return table.get(canonical_uri(uri), [])

    @staticmethod
    def _normalize(edge: ProvenanceEdge) -> ProvenanceEdge:
        return replace(
            edge,
            from_=replace(edge.from_, uri=canonical_uri(edge.from_.uri)),
            to=replace(edge.to, uri=canonical_uri(edge.to.uri)),
        )

    def _store(self, edge: ProvenanceEdge) -> None:
        self._edges.append(edge)
        self._edges_by_from.setdefault(edge.from_.uri, []).append(edge)
        self._edges_by_to.setdefault(edge.to.uri, []).append(edge)

    def _rebuild(self, edges: list[ProvenanceEdge]) -> None:
        self._edges = []
        self._edges_by_from = {}
        self._edges_by_to = {}
        for edge in edges:
            self._store(edge)


__all__ = ["ProvenanceIndex", "expand_overlay_mapping"]
