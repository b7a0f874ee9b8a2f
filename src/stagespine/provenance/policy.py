"""Projection policy for editor-facing callers.

Decides what to do when provenance cannot answer directly: whether to
materialize the overlay and retry, where to put a diagnostic that has no
mapped location, and whether an unmapped generated reference is dropped,
passed through, or pinned to the source document.

Every decision carries a machine-readable ``reason`` so callers can log
and test the path taken.

Default policy:
    - source-to-generated misses materialize the overlay and retry
    - unmapped diagnostics fall back to the source URI
    - unmapped generated references are dropped
    - overlay edit batches are all-or-nothing

Tags:
    stagespine, provenance, policy, diagnostics, references

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from stagespine.core.errors import StageSpineError
from stagespine.core.logging import get_logger
from stagespine.core.spans import Span
from stagespine.core.uris import canonical_uri
from stagespine.provenance.index import ProvenanceIndex
from stagespine.provenance.models import DocumentSpan, ProjectionHit

logger = get_logger(__name__)

SourceProjectionReason = Literal[
    "mapped",
    "provenance-miss",
    "provenance-miss-after-materialization",
    "overlay-materialization-failed",
]

DiagnosticLocationReason = Literal[
    "mapped",
    "overlay-template-fallback",
    "passthrough-related-location",
    "missing-location",
]

GeneratedReferenceReason = Literal[
    "mapped",
    "mapped-degraded",
    "overlay-unmapped-drop",
    "overlay-template-fallback",
    "passthrough-generated-location",
    "missing-location",
]


@dataclass(frozen=True)
class SourceToGeneratedPolicy:
    materialize_on_miss: bool = True


@dataclass(frozen=True)
class DiagnosticsPolicy:
    unmapped_location: Literal["template-uri", "missing-location"] = "template-uri"


@dataclass(frozen=True)
class EditsPolicy:
    require_full_mapping_for_atomic_edit: bool = True


@dataclass(frozen=True)
class ReferencesPolicy:
    unmapped_location: Literal["drop", "template-uri", "passthrough-generated"] = "drop"
    require_exact_mapped_span: bool = False


@dataclass(frozen=True)
class ProjectionPolicy:
    source_to_generated: SourceToGeneratedPolicy = field(default_factory=SourceToGeneratedPolicy)
    diagnostics: DiagnosticsPolicy = field(default_factory=DiagnosticsPolicy)
    edits: EditsPolicy = field(default_factory=EditsPolicy)
    references: ReferencesPolicy = field(default_factory=ReferencesPolicy)


DEFAULT_POLICY = ProjectionPolicy()


@dataclass(frozen=True)
class SourceProjectionDecision:
    hit: ProjectionHit | None
    reason: SourceProjectionReason


@dataclass(frozen=True)
class LocationDecision:
    location: DocumentSpan | None
    reason: DiagnosticLocationReason | GeneratedReferenceReason


@dataclass(frozen=True)
class EditBatchSummary:
    """Counts describing a batch of edits that touch the overlay."""

    require_overlay_mapping: bool
    overlay_edits: int
    mapped_overlay_edits: int
    unmapped_overlay_edits: int


def project_source_span_with_policy(
    provenance: ProvenanceIndex,
    uri: str,
    span: Span | tuple[int, int],
    *,
    materialize: Callable[[], object] | None = None,
    policy: ProjectionPolicy = DEFAULT_POLICY,
) -> SourceProjectionDecision:
    """Project a source span to the overlay, materializing once on a miss if allowed."""
    query = Span.coerce(span)
    canonical = canonical_uri(uri)
    direct = provenance.project_source_span(canonical, query)
    if direct is not None:
        return SourceProjectionDecision(direct, "mapped")
    if not policy.source_to_generated.materialize_on_miss or materialize is None:
        return SourceProjectionDecision(None, "provenance-miss")
    try:
        materialize()
    except StageSpineError as exc:
        logger.warning("policy.materialization_failed", uri=canonical, **exc.to_dict())
        return SourceProjectionDecision(None, "overlay-materialization-failed")
    retried = provenance.project_source_span(canonical, query)
    if retried is not None:
        return SourceProjectionDecision(retried, "mapped")
    return SourceProjectionDecision(None, "provenance-miss-after-materialization")


def project_source_offset_with_policy(
    provenance: ProvenanceIndex,
    uri: str,
    offset: int,
    *,
    materialize: Callable[[], object] | None = None,
    policy: ProjectionPolicy = DEFAULT_POLICY,
) -> SourceProjectionDecision:
    return project_source_span_with_policy(
        provenance, uri, Span.point(offset), materialize=materialize, policy=policy
    )


def resolve_diagnostic_location(
    generated_span: Span | None,
    mapped: DocumentSpan | None,
    source_uri: str,
    *,
    policy: ProjectionPolicy = DEFAULT_POLICY,
) -> LocationDecision:
    """Where to report a diagnostic raised against the overlay."""
    if mapped is not None:
        return LocationDecision(mapped, "mapped")
    if generated_span is None:
        return LocationDecision(None, "missing-location")
    if policy.diagnostics.unmapped_location == "template-uri":
        return LocationDecision(
            DocumentSpan(uri=canonical_uri(source_uri), span=generated_span),
            "overlay-template-fallback",
        )
    return LocationDecision(None, "missing-location")


def resolve_related_diagnostic_location(
    related_uri: str,
    related_span: Span | None,
    mapped: DocumentSpan | None,
    overlay_uri: str,
    source_uri: str,
    *,
    related_source_uri: str | None = None,
    policy: ProjectionPolicy = DEFAULT_POLICY,
) -> LocationDecision:
    """Where to report a related location attached to an overlay diagnostic.

    Related locations inside the overlay (or inside another generated
    document whose source is given as ``related_source_uri``) fall back to
    the source document like primary diagnostics do. Locations in any other
    document pass through unchanged.
    """
    if mapped is not None:
        return LocationDecision(mapped, "mapped")
    if related_span is None:
        return LocationDecision(None, "missing-location")
    related = canonical_uri(related_uri)
    if related_source_uri is not None:
        fallback = canonical_uri(related_source_uri)
    elif related == canonical_uri(overlay_uri):
        fallback = canonical_uri(source_uri)
    else:
        return LocationDecision(DocumentSpan(uri=related, span=related_span), "passthrough-related-location")
    if policy.diagnostics.unmapped_location == "template-uri":
        return LocationDecision(DocumentSpan(uri=fallback, span=related_span), "overlay-template-fallback")
    return LocationDecision(None, "missing-location")


def resolve_generated_reference_location(
    provenance: ProvenanceIndex,
    generated_uri: str,
    generated_span: Span | None,
    *,
    policy: ProjectionPolicy = DEFAULT_POLICY,
) -> LocationDecision:
    """Map a reference found in a generated document back to an authored location.

    The generated span is projected through ``provenance``; a hit through a
    degraded edge is reported as ``mapped-degraded`` (or rejected when the
    policy requires exact spans).
    """
    generated = canonical_uri(generated_uri)
    hit = provenance.project_generated_span(generated, generated_span) if generated_span is not None else None
    if hit is not None and (not policy.references.require_exact_mapped_span or not hit.edge.is_degraded):
        return LocationDecision(hit.to_document_span(), "mapped-degraded" if hit.edge.is_degraded else "mapped")

    if generated_span is None:
        return LocationDecision(None, "missing-location")

    source = provenance.get_source_uri_for_generated(generated)
    if source is None:
        return LocationDecision(DocumentSpan(uri=generated, span=generated_span), "passthrough-generated-location")

    unmapped = policy.references.unmapped_location
    if unmapped == "template-uri":
        return LocationDecision(DocumentSpan(uri=source, span=generated_span), "overlay-template-fallback")
    if unmapped == "passthrough-generated":
        return LocationDecision(DocumentSpan(uri=generated, span=generated_span), "passthrough-generated-location")
    return LocationDecision(None, "overlay-unmapped-drop")


def should_reject_edit_batch(summary: EditBatchSummary, policy: ProjectionPolicy = DEFAULT_POLICY) -> bool:
    if not summary.require_overlay_mapping or summary.overlay_edits == 0:
        return False
    if not policy.edits.require_full_mapping_for_atomic_edit:
        return summary.mapped_overlay_edits == 0
    return summary.unmapped_overlay_edits > 0 or summary.mapped_overlay_edits == 0


__all__ = [
    "DEFAULT_POLICY",
    "DiagnosticsPolicy",
    "EditBatchSummary",
    "EditsPolicy",
    "LocationDecision",
    "ProjectionPolicy",
    "ReferencesPolicy",
    "SourceProjectionDecision",
    "SourceToGeneratedPolicy",
    "project_source_offset_with_policy",
    "project_source_span_with_policy",
    "resolve_diagnostic_location",
    "resolve_related_diagnostic_location",
    "resolve_generated_reference_location",
    "should_reject_edit_batch",
]
