"""Edge ranking and proportional span projection.

Pure functions over :class:`ProvenanceEdge` lists; the index hands in the
per-document candidate list (insertion order) and the side being queried.

Ranking key, lowest wins:
    1. kind tier (overlay member < overlay expr < runtime member < runtime expr
       < runtime node < custom)
    2. width of the queried-side span
    3. structural path depth, deepest first
    4. position in the candidate list

Projection maps each endpoint of a slice through ``frac = (p - start) / len``
into the other side and rounds half up, so ``[20,30] -> [110,120]`` maps
``[21,26]`` to ``[111,116]``.

Tags:
    stagespine, provenance, ranking, projection

Doc-Types:
    technical-design
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence

from stagespine.core.spans import Span
from stagespine.provenance.models import KIND_TIER, ProvenanceEdge, Side

_PATH_TOKEN = re.compile(r"[^.\[\]]+|\[[^\]]*\]")


def path_depth(path: str | None) -> int:
    """Count member and index segments: ``a[0].b`` is 3, ``abcdefghijkl.mnop`` is 2."""
    if not path:
        return 0
    return len(_PATH_TOKEN.findall(path.replace("?", "")))


def rank_key(edge: ProvenanceEdge, side: Side, position: int) -> tuple[int, int, int, int]:
    return (
        KIND_TIER[edge.kind],
        edge.end(side).span.length,
        -path_depth(edge.path),
        position,
    )


def rank_edges(edges: Iterable[ProvenanceEdge], side: Side) -> list[ProvenanceEdge]:
    """Order ``edges`` best-first; input order is the final tie-break."""
    indexed = list(enumerate(edges))
    indexed.sort(key=lambda pair: rank_key(pair[1], side, pair[0]))
    return [edge for _, edge in indexed]


def pick_best(edges: Sequence[ProvenanceEdge], side: Side) -> ProvenanceEdge | None:
    if not edges:
        return None
    return rank_edges(edges, side)[0]


def edges_touching(edges: Iterable[ProvenanceEdge], offset: int, side: Side) -> list[ProvenanceEdge]:
    return [edge for edge in edges if edge.end(side).span.touches(offset)]


def pick_for_span(edges: Sequence[ProvenanceEdge], query: Span, side: Side) -> ProvenanceEdge | None:
    """Choose the edge a span projects through.

    An edge whose queried-side span equals ``query`` wins outright (expr kinds
    before members). Otherwise the best-ranked edge containing ``query`` wins;
    failing that, the edge with greatest overlap.
    """
    exact = [edge for edge in edges if edge.end(side).span == query]
    if exact:
        exprs = [edge for edge in exact if edge.kind.is_expr]
        return pick_best(exprs or exact, side)

    containing = [edge for edge in edges if edge.end(side).span.contains(query)]
    if containing:
        return pick_best(containing, side)

    overlapping = [(edge.end(side).span.overlap(query), edge) for edge in edges]
    overlapping = [(amount, edge) for amount, edge in overlapping if amount > 0]
    if not overlapping:
        return None
    widest = max(amount for amount, _ in overlapping)
    return pick_best([edge for amount, edge in overlapping if amount == widest], side)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def project_span(edge: ProvenanceEdge, query: Span, side: Side) -> Span:
    """Project ``query`` (on ``side``) proportionally onto the other side of ``edge``."""
    src = edge.end(side).span
    dst = edge.other(side).span
    if src.length == 0 or query == src:
        return dst

    def project(point: int) -> int:
        frac = (src.clamp(point) - src.start) / src.length
        return dst.clamp(_round_half_up(dst.start + frac * dst.length))

    start = project(query.start)
    end = project(query.end)
    return Span(min(start, end), max(start, end))


__all__ = [
    "edges_touching",
    "path_depth",
    "pick_best",
    "pick_for_span",
    "project_span",
    "rank_edges",
    "rank_key",
]
