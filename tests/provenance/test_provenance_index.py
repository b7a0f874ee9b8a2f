"""
Tests for stagespine.provenance.index module.

Covers:
- Overlay ingestion and edge expansion
- Point lookups and ranking (kind tier, width, path depth)
- Forward and reverse span projection, member paths
- Document removal and mapping replacement
- Global and per-document statistics, runtime classification
"""

import pytest

from stagespine.core.errors import MappingValidationError
from stagespine.core.spans import Span
from stagespine.provenance.index import ProvenanceIndex
from stagespine.provenance.models import (
    DegradedEvidence,
    EdgeEnd,
    ProvenanceEdge,
    ProvenanceKind,
)
from stagespine.provenance.stats import RuntimeProvenanceStatus

RUNTIME_URI = "file:///build/home.js"


def member_edge(uri, span, path, target="file:///app/home.html", target_span=(0, 1)):
    return ProvenanceEdge(
        kind=ProvenanceKind.OVERLAY_MEMBER,
        from_=EdgeEnd(uri, Span.coerce(span), expr_id="e"),
        to=EdgeEnd(target, Span.coerce(target_span), expr_id="e"),
        path=path,
    )


def runtime_edge(from_uri, to_uri, kind=ProvenanceKind.RUNTIME_NODE):
    return ProvenanceEdge(
        kind=kind,
        from_=EdgeEnd(from_uri, Span(0, 4), node_id="n1"),
        to=EdgeEnd(to_uri, Span(0, 4), node_id="n1"),
    )


@pytest.fixture
def index():
    return ProvenanceIndex()


@pytest.fixture
def simple_index(index, source_uri, generated_uri, simple_mapping):
    index.add_overlay_mapping(source_uri, generated_uri, simple_mapping)
    return index


@pytest.fixture
def member_index(index, source_uri, generated_uri, member_mapping):
    index.add_overlay_mapping(source_uri, generated_uri, member_mapping)
    return index


class TestIngestion:
    def test_expr_edge_per_entry(self, simple_index, source_uri, generated_uri):
        (edge,) = simple_index.edges()
        assert edge.kind is ProvenanceKind.OVERLAY_EXPR
        assert edge.from_ == EdgeEnd(generated_uri, Span(20, 30), expr_id="e1")
        assert edge.to == EdgeEnd(source_uri, Span(110, 120), expr_id="e1")

    def test_member_edges_per_segment(self, member_index):
        kinds = [edge.kind for edge in member_index.edges()]
        assert kinds == [
            ProvenanceKind.OVERLAY_EXPR,
            ProvenanceKind.OVERLAY_MEMBER,
            ProvenanceKind.OVERLAY_MEMBER,
        ]
        assert [edge.path for edge in member_index.edges()][1:] == ["user", "user.name"]

    def test_non_overlapping_segment_skipped(self, index, source_uri, generated_uri):
        index.add_overlay_mapping(
            source_uri,
            generated_uri,
            {
                "entries": [
                    {
                        "exprId": "e1",
                        "sourceSpan": {"start": 0, "end": 5},
                        "generatedSpan": {"start": 10, "end": 20},
                        "segments": [
                            {
                                "path": "stray",
                                "sourceSpan": {"start": 0, "end": 5},
                                "generatedSpan": {"start": 40, "end": 50},
                            }
                        ],
                    }
                ]
            },
        )
        assert len(index) == 1

    def test_segment_document_override(self, index, source_uri, generated_uri):
        index.add_overlay_mapping(
            source_uri,
            generated_uri,
            {
                "entries": [
                    {
                        "exprId": "e1",
                        "sourceSpan": {"start": 0, "end": 5},
                        "generatedSpan": {"start": 10, "end": 20},
                        "segments": [
                            {
                                "path": "user",
                                "sourceSpan": {"start": 2, "end": 4, "document": "file:///app/./user.ts"},
                                "generatedSpan": {"start": 10, "end": 14},
                            }
                        ],
                    }
                ]
            },
        )
        member = index.edges()[1]
        assert member.to.uri == "file:///app/user.ts"

    def test_degradation_becomes_evidence(self, index, source_uri, generated_uri):
        index.add_overlay_mapping(
            source_uri,
            generated_uri,
            {
                "entries": [
                    {
                        "exprId": "e1",
                        "sourceSpan": {"start": 0, "end": 5},
                        "generatedSpan": {"start": 10, "end": 20},
                        "segments": [
                            {
                                "path": "user",
                                "sourceSpan": {"start": 0, "end": 5},
                                "generatedSpan": {"start": 10, "end": 14},
                                "degradation": {"reason": "missing-html-member-span"},
                            }
                        ],
                    }
                ]
            },
        )
        member = index.edges()[1]
        assert member.is_degraded
        assert member.evidence == DegradedEvidence("missing-html-member-span", "proportional")

    def test_invalid_mapping_rejected(self, index, source_uri, generated_uri):
        with pytest.raises(MappingValidationError):
            index.add_overlay_mapping(source_uri, generated_uri, {"entries": [{"exprId": "e1"}]})
        assert len(index) == 0

    def test_overlay_records(self, simple_index, source_uri, generated_uri):
        assert simple_index.get_generated_uri(source_uri) == generated_uri
        assert simple_index.get_source_uri_for_generated(generated_uri) == source_uri
        assert simple_index.get_overlay_mapping(source_uri).entries[0].expr_id == "e1"
        assert simple_index.get_generated_uri("file:///other.html") is None

    def test_uris_are_canonicalized(self, simple_index):
        hit = simple_index.lookup_generated("file:///app/./home.html.overlay.ts", 25)
        assert hit is not None
        assert hit.expr_id == "e1"


class TestPointLookup:
    def test_inside(self, simple_index, generated_uri):
        hit = simple_index.lookup_generated(generated_uri, 25)
        assert hit.edge.kind is ProvenanceKind.OVERLAY_EXPR
        assert hit.member_path is None

    @pytest.mark.parametrize("offset", [20, 30])
    def test_endpoints_touch(self, simple_index, generated_uri, offset):
        assert simple_index.lookup_generated(generated_uri, offset) is not None

    @pytest.mark.parametrize("offset", [0, 19, 31])
    def test_miss(self, simple_index, generated_uri, offset):
        assert simple_index.lookup_generated(generated_uri, offset) is None
        assert simple_index.find_by_generated(generated_uri, offset) == []

    def test_unknown_document(self, simple_index):
        assert simple_index.find_by_source("file:///nowhere.html", 0) == []

    def test_lookup_source(self, simple_index, source_uri):
        hit = simple_index.lookup_source(source_uri, 115)
        assert hit.edge.from_.span == Span(20, 30)

    def test_member_beats_expr(self, member_index, generated_uri):
        hit = member_index.lookup_generated(generated_uri, 45)
        assert hit.edge.kind is ProvenanceKind.OVERLAY_MEMBER
        assert hit.member_path == "user"

    def test_narrowest_member_wins(self, member_index, generated_uri):
        hit = member_index.lookup_generated(generated_uri, 52)
        assert hit.member_path == "user.name"
        ranked = member_index.find_by_generated(generated_uri, 52)
        assert [edge.path for edge in ranked] == ["user.name", "user", None]

    def test_narrowest_width_wins(self, index, generated_uri):
        wide = ProvenanceEdge(
            kind=ProvenanceKind.OVERLAY_EXPR,
            from_=EdgeEnd(generated_uri, Span(0, 25), expr_id="wide"),
            to=EdgeEnd("file:///app/home.html", Span(0, 25), expr_id="wide"),
        )
        narrow = ProvenanceEdge(
            kind=ProvenanceKind.OVERLAY_EXPR,
            from_=EdgeEnd(generated_uri, Span(5, 15), expr_id="narrow"),
            to=EdgeEnd("file:///app/home.html", Span(5, 15), expr_id="narrow"),
        )
        index.add_edges([wide, narrow])
        assert index.lookup_generated(generated_uri, 10).expr_id == "narrow"

    def test_deeper_path_wins_equal_width(self, index, generated_uri):
        index.add_edges(
            [
                member_edge(generated_uri, (0, 10), "abcdefghijkl.mnop"),
                member_edge(generated_uri, (0, 10), "a.b.c"),
            ]
        )
        assert index.lookup_generated(generated_uri, 5).member_path == "a.b.c"

    def test_insertion_order_breaks_remaining_ties(self, index, generated_uri):
        index.add_edges(
            [
                member_edge(generated_uri, (0, 10), "first.x"),
                member_edge(generated_uri, (0, 10), "second.y"),
            ]
        )
        assert index.lookup_generated(generated_uri, 5).member_path == "first.x"

    def test_overlay_beats_runtime(self, simple_index, generated_uri):
        simple_index.add_edges(
            [
                ProvenanceEdge(
                    kind=ProvenanceKind.RUNTIME_MEMBER,
                    from_=EdgeEnd(generated_uri, Span(24, 26), expr_id="r"),
                    to=EdgeEnd(RUNTIME_URI, Span(0, 2), expr_id="r"),
                    path="x",
                )
            ]
        )
        assert simple_index.lookup_generated(generated_uri, 25).edge.kind is ProvenanceKind.OVERLAY_EXPR


class TestForwardProjection:
    def test_sub_span(self, simple_index, generated_uri, source_uri):
        hit = simple_index.project_generated_span(generated_uri, Span(21, 26))
        assert hit.uri == source_uri
        assert hit.span == Span(111, 116)
        assert hit.expr_id == "e1"

    def test_offset(self, simple_index, generated_uri):
        assert simple_index.project_generated_offset(generated_uri, 22).span == Span(112, 112)

    def test_full_span_is_exact(self, simple_index, generated_uri):
        assert simple_index.project_generated_span(generated_uri, (20, 30)).span == Span(110, 120)

    def test_partial_overlap_clamps(self, simple_index, generated_uri):
        assert simple_index.project_generated_span(generated_uri, (15, 25)).span == Span(110, 115)

    def test_miss(self, simple_index, generated_uri):
        assert simple_index.project_generated_span(generated_uri, (0, 5)) is None

    def test_exact_member_span(self, member_index, generated_uri):
        hit = member_index.project_generated_span(generated_uri, (50, 54))
        assert hit.span == Span(105, 109)
        assert hit.member_path == "user.name"

    def test_exact_expr_span_prefers_expr(self, member_index, generated_uri):
        hit = member_index.project_generated_span(generated_uri, (40, 54))
        assert hit.edge.kind is ProvenanceKind.OVERLAY_EXPR
        assert hit.span == Span(100, 109)
        assert hit.member_path == "user"

    def test_full_expr_without_covering_member_takes_shallowest(self, index, source_uri, generated_uri):
        mapping = {
            "entries": [
                {
                    "exprId": "e1",
                    "sourceSpan": {"start": 100, "end": 109},
                    "generatedSpan": {"start": 40, "end": 54},
                    "segments": [
                        {
                            "path": "user.name.first",
                            "sourceSpan": {"start": 106, "end": 109},
                            "generatedSpan": {"start": 51, "end": 54},
                        },
                        {
                            "path": "user.name",
                            "sourceSpan": {"start": 105, "end": 109},
                            "generatedSpan": {"start": 50, "end": 54},
                        },
                    ],
                }
            ]
        }
        index.add_overlay_mapping(source_uri, generated_uri, mapping)
        hit = index.project_generated_span(generated_uri, (40, 54))
        assert hit.edge.kind is ProvenanceKind.OVERLAY_EXPR
        assert hit.member_path == "user.name"
        assert index.project_source_span(source_uri, (100, 109)).member_path == "user.name"

    def test_unequal_lengths_round_half_up(self, member_index, generated_uri):
        hit = member_index.project_generated_span(generated_uri, (41, 45))
        assert hit.member_path == "user"
        assert hit.span == Span(101, 103)

    def test_to_document_span(self, simple_index, generated_uri, source_uri):
        location = simple_index.project_generated_span(generated_uri, (21, 26)).to_document_span()
        assert location.to_dict() == {
            "uri": source_uri,
            "span": {"start": 111, "end": 116},
            "expr_id": "e1",
        }


class TestReverseProjection:
    def test_sub_span(self, simple_index, generated_uri, source_uri):
        hit = simple_index.project_source_span(source_uri, (111, 116))
        assert hit.uri == generated_uri
        assert hit.span == Span(21, 26)

    def test_offset(self, simple_index, source_uri):
        assert simple_index.project_source_offset(source_uri, 112).span == Span(22, 22)

    def test_member_span(self, member_index, source_uri):
        hit = member_index.project_source_span(source_uri, (105, 109))
        assert hit.span == Span(50, 54)
        assert hit.member_path == "user.name"

    def test_full_expr(self, member_index, source_uri):
        hit = member_index.project_source_span(source_uri, (100, 109))
        assert hit.span == Span(40, 54)
        assert hit.member_path == "user"

    def test_runtime_node_edges_ignored(self, index, source_uri):
        index.add_edges([runtime_edge(RUNTIME_URI, source_uri)])
        assert index.project_source_span(source_uri, (0, 4)) is None
        assert index.lookup_source(source_uri, 2) is not None


class TestRemoval:
    def test_remove_by_source(self, member_index, source_uri, generated_uri):
        assert member_index.remove_document(source_uri) == 3
        assert len(member_index) == 0
        assert member_index.lookup_generated(generated_uri, 45) is None
        assert member_index.get_overlay_mapping(source_uri) is None

    def test_remove_by_generated_drops_pair(self, simple_index, source_uri, generated_uri):
        assert simple_index.remove_document(generated_uri) == 1
        assert simple_index.lookup_source(source_uri, 115) is None
        assert simple_index.get_source_uri_for_generated(generated_uri) is None

    def test_remove_drops_runtime_edges_touching_document(self, simple_index, source_uri):
        simple_index.add_edges([runtime_edge(RUNTIME_URI, source_uri)])
        assert simple_index.remove_document(source_uri) == 2

    def test_remove_unknown_document(self, simple_index):
        assert simple_index.remove_document("file:///other.html") == 0
        assert len(simple_index) == 1

    def test_reingest_replaces_overlay_edges(self, simple_index, source_uri, generated_uri, member_mapping):
        simple_index.add_edges([runtime_edge(RUNTIME_URI, source_uri)])
        simple_index.add_overlay_mapping(source_uri, generated_uri, member_mapping)
        assert len(simple_index) == 4
        assert simple_index.lookup_generated(generated_uri, 25) is None
        assert simple_index.lookup_generated(generated_uri, 45) is not None

    def test_remove_then_reingest_restores_both_directions(
        self, member_index, source_uri, generated_uri, member_mapping
    ):
        member_index.remove_document(source_uri)
        assert member_index.project_source_span(source_uri, (105, 109)) is None

        member_index.add_overlay_mapping(source_uri, generated_uri, member_mapping)
        assert len(member_index) == 3
        assert member_index.get_generated_uri(source_uri) == generated_uri
        assert member_index.get_source_uri_for_generated(generated_uri) == source_uri
        assert member_index.lookup_generated(generated_uri, 52).member_path == "user.name"
        assert member_index.lookup_source(source_uri, 107).member_path == "user.name"
        forward = member_index.project_generated_span(generated_uri, (50, 54))
        assert forward.uri == source_uri
        assert forward.span == Span(105, 109)
        reverse = member_index.project_source_span(source_uri, (105, 109))
        assert reverse.uri == generated_uri
        assert reverse.span == Span(50, 54)
        assert reverse.member_path == "user.name"

    def test_clear(self, simple_index, source_uri):
        simple_index.clear()
        assert len(simple_index) == 0
        assert simple_index.get_generated_uri(source_uri) is None


class TestStats:
    def test_global_stats(self, simple_index, source_uri, generated_uri):
        stats = simple_index.stats()
        assert stats.total_edges == 1
        assert stats.by_kind[ProvenanceKind.OVERLAY_EXPR] == 1
        assert stats.by_kind[ProvenanceKind.RUNTIME_NODE] == 0
        assert {doc.uri: doc.edges for doc in stats.documents} == {generated_uri: 1, source_uri: 1}

    def test_stats_to_dict(self, member_index):
        data = member_index.stats().to_dict()
        assert data["total_edges"] == 3
        assert data["by_kind"]["overlay_member"] == 2

    def test_document_stats_without_runtime(self, member_index, source_uri, generated_uri):
        stats = member_index.document_stats(source_uri)
        assert stats.generated_uri == generated_uri
        assert stats.total_edges == 3
        assert stats.overlay_edges == 3
        assert stats.runtime_edges == 0
        assert stats.runtime_status is RuntimeProvenanceStatus.SYNTHESIS_NOT_IMPLEMENTED
        assert stats.runtime_uri is None

    def test_runtime_tracked(self, simple_index, source_uri):
        simple_index.add_edges([runtime_edge(RUNTIME_URI, source_uri)])
        stats = simple_index.document_stats(source_uri)
        assert stats.runtime_status is RuntimeProvenanceStatus.TRACKED
        assert stats.runtime_uri == RUNTIME_URI
        assert stats.runtime_edges == 1

    def test_runtime_without_uri(self, simple_index, source_uri, generated_uri):
        simple_index.add_edges([runtime_edge(generated_uri, source_uri, ProvenanceKind.RUNTIME_EXPR)])
        stats = simple_index.document_stats(source_uri)
        assert stats.runtime_status is RuntimeProvenanceStatus.EDGES_WITHOUT_URI
        assert stats.runtime_uri is None

    def test_runtime_ambiguous(self, simple_index, source_uri):
        simple_index.add_edges(
            [runtime_edge(RUNTIME_URI, source_uri), runtime_edge("file:///build/other.js", source_uri)]
        )
        stats = simple_index.document_stats(source_uri)
        assert stats.runtime_status is RuntimeProvenanceStatus.EDGES_AMBIGUOUS_URI
        assert stats.runtime_uri is None

    def test_unknown_document_stats(self, index):
        stats = index.document_stats("file:///nowhere.html")
        assert stats.generated_uri is None
        assert stats.total_edges == 0
        assert stats.to_dict()["runtime_status"] == "unsupported/runtime-synthesis-not-implemented"
