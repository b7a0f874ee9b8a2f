"""
Program orchestrator: one session and one provenance entry per document.

The program is the only place that mutates a document's
``{session, provenance}`` pair, and it always mutates both together:
editing, invalidating or closing a document drops its session *and* its
provenance edges; materializing a document ingests its mapping *before*
the session is recorded, so a failed ingestion leaves neither behind.

Manifesto:
    - **Lockstep:** Session and provenance are cleared together, populated together
    - **Versioned edits:** Stale versions are ignored, identical text is a no-op
    - **Cheap invalidation:** Source text survives ``invalidate``; the persistent
      stage cache makes the rerun cheap
    - **Lazy:** Nothing runs until a caller asks for an artifact

Architecture:
    ::

        upsert(uri, text, version) ──► sources.set ──► drop session + provenance
                                                        │
        materialize(uri) ◄──────────────────────────────┘ (on next request)
            │  session = engine.create_session({**base, uri, text, version})
            │  artifact = session.run(target_stage)
            │  mapping  = mapping_from(artifact)
            │  provenance.add_overlay_mapping(uri, generated_uri(uri), mapping)
            └─ sessions[uri] = session

        invalidate(uri)  → drop session + provenance, keep text
        close(uri)       → drop session + provenance + text

Examples:
    >>> program = Program(engine, "60-emit-overlay")
    >>> program.upsert("file:///app/home.html", "<p>${user.name}</p>", version=1)
    True
    >>> program.materialize("file:///app/home.html")
    >>> program.provenance.lookup_generated(program.generated_uri("file:///app/home.html"), 21)

Tags:
    program, orchestration, lifecycle, incremental, stagespine

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from stagespine.core.errors import DocumentNotFoundError, UnknownStageError
from stagespine.core.logging import LogContext, get_logger
from stagespine.core.settings import StageSpineSettings, get_settings
from stagespine.core.uris import canonical_uri
from stagespine.pipeline.graph import StageKey
from stagespine.pipeline.session import ArtifactSource, PipelineEngine, PipelineSession
from stagespine.program.sources import DocumentSnapshot, InMemorySourceStore
from stagespine.provenance.index import ProvenanceIndex
from stagespine.provenance.mapping import MappingArtifact

logger = get_logger(__name__)

MappingExtractor = Callable[[Any], "MappingArtifact | Mapping[str, Any] | None"]


def default_mapping_from(artifact: Any) -> MappingArtifact | Mapping[str, Any] | None:
    """Read ``mapping`` from a target artifact (mapping key or attribute)."""
    if isinstance(artifact, Mapping):
        return artifact.get("mapping")
    return getattr(artifact, "mapping", None)


@dataclass(frozen=True)
class DocumentCacheStats:
    uri: str
    version: int
    materialized: bool
    computed: list[str] = field(default_factory=list)
    cached: list[str] = field(default_factory=list)
    seeded: list[str] = field(default_factory=list)
    provenance_edges: int = 0
    overlay_edges: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "version": self.version,
            "materialized": self.materialized,
            "stages": {"computed": self.computed, "cached": self.cached, "seeded": self.seeded},
            "provenance": {"total_edges": self.provenance_edges, "overlay_edges": self.overlay_edges},
        }


@dataclass(frozen=True)
class ProgramCacheStats:
    documents: list[DocumentCacheStats]
    sources: int
    sessions: int
    provenance_edges: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "documents": [doc.to_dict() for doc in self.documents],
            "totals": {
                "sources": self.sources,
                "sessions": self.sessions,
                "provenance_edges": self.provenance_edges,
            },
        }


class Program:
    """Tracks documents and keeps each one's session and provenance in lockstep."""

    def __init__(
        self,
        engine: PipelineEngine,
        target_stage: StageKey,
        *,
        mapping_from: MappingExtractor = default_mapping_from,
        base_options: Mapping[str, Any] | None = None,
        settings: StageSpineSettings | None = None,
        provenance: ProvenanceIndex | None = None,
        sources: InMemorySourceStore | None = None,
    ) -> None:
        if target_stage not in engine.graph:
            raise UnknownStageError(target_stage)
        self.engine = engine
        self.target_stage = target_stage
        self.mapping_from = mapping_from
        self.base_options: dict[str, Any] = dict(base_options or {})
        self.settings = settings or get_settings()
        self.provenance = provenance if provenance is not None else ProvenanceIndex()
        self.sources = sources if sources is not None else InMemorySourceStore()
        self._sessions: dict[str, PipelineSession] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def upsert(self, uri: str, text: str, version: int | None = None) -> bool:
        """Store new text for ``uri``. Returns False when the edit was ignored."""
        canonical = canonical_uri(uri)
        previous = self.sources.get(canonical)
        if previous is not None:
            if version is not None and version < previous.version:
                logger.debug(
                    "program.stale_version", uri=canonical, version=version, current=previous.version
                )
                return False
            same_version = version is None or version == previous.version
            if same_version and previous.text == text:
                return False
        snapshot = self.sources.set(canonical, text, version)
        self._drop(canonical)
        logger.debug("program.upserted", uri=canonical, version=snapshot.version)
        return True

    def invalidate(self, uri: str) -> None:
        """Drop session and provenance for ``uri``; keep its text."""
        self._drop(canonical_uri(uri))

    def invalidate_all(self) -> None:
        for uri in list(self._sessions):
            self._drop(uri)

    def close(self, uri: str) -> None:
        """Forget ``uri`` entirely."""
        canonical = canonical_uri(uri)
        self._drop(canonical)
        self.sources.delete(canonical)
        logger.debug("program.closed", uri=canonical)

    def _drop(self, uri: str) -> None:
        self._sessions.pop(uri, None)
        self.provenance.remove_document(uri)

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def materialize(self, uri: str) -> Any:
        """Run the target stage for ``uri`` and ingest its mapping."""
        canonical = canonical_uri(uri)
        session = self._sessions.get(canonical)
        if session is not None:
            return session.run(self.target_stage)

        snapshot = self._snapshot(canonical)
        session = self.engine.create_session(self._session_options(snapshot))
        with LogContext(document=canonical):
            artifact = session.run(self.target_stage)
            mapping = self.mapping_from(artifact)
            if mapping is not None:
                self.provenance.add_overlay_mapping(canonical, self.generated_uri(canonical), mapping)
            self._sessions[canonical] = session

            resolved = session.resolved()
            logger.info(
                "program.materialized",
                version=snapshot.version,
                computed=sum(1 for meta in resolved if meta.source is ArtifactSource.RUN),
                cached=sum(1 for meta in resolved if meta.source is ArtifactSource.CACHE),
                mapped=mapping is not None,
            )
        return artifact

    def run(self, uri: str, stage: StageKey) -> Any:
        """Artifact of any stage from ``uri``'s session."""
        canonical = canonical_uri(uri)
        self.materialize(canonical)
        return self._sessions[canonical].run(stage)

    def session(self, uri: str) -> PipelineSession | None:
        return self._sessions.get(canonical_uri(uri))

    def get_mapping(self, uri: str) -> MappingArtifact | None:
        canonical = canonical_uri(uri)
        self.materialize(canonical)
        return self.provenance.get_overlay_mapping(canonical)

    def generated_uri(self, uri: str) -> str:
        return canonical_uri(uri) + self.settings.generated_suffix

    def _snapshot(self, uri: str) -> DocumentSnapshot:
        snapshot = self.sources.get(uri)
        if snapshot is None:
            raise DocumentNotFoundError(uri)
        return snapshot

    def _session_options(self, snapshot: DocumentSnapshot) -> dict[str, Any]:
        return {
            **self.base_options,
            "uri": snapshot.uri,
            "text": snapshot.text,
            "version": snapshot.version,
        }

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def cache_stats(self, uri: str | None = None) -> ProgramCacheStats:
        if uri is not None:
            snapshots = [self._snapshot(canonical_uri(uri))]
        else:
            snapshots = list(self.sources.all())
        documents = [self._document_stats(snapshot) for snapshot in snapshots]
        return ProgramCacheStats(
            documents=documents,
            sources=len(self.sources),
            sessions=len(self._sessions),
            provenance_edges=len(self.provenance),
        )

    def _document_stats(self, snapshot: DocumentSnapshot) -> DocumentCacheStats:
        session = self._sessions.get(snapshot.uri)
        resolved = session.resolved() if session else []
        provenance = self.provenance.document_stats(snapshot.uri)
        return DocumentCacheStats(
            uri=snapshot.uri,
            version=snapshot.version,
            materialized=session is not None,
            computed=[meta.key for meta in resolved if meta.source is ArtifactSource.RUN],
            cached=[meta.key for meta in resolved if meta.source is ArtifactSource.CACHE],
            seeded=[meta.key for meta in resolved if meta.source is ArtifactSource.SEED],
            provenance_edges=provenance.total_edges,
            overlay_edges=provenance.overlay_edges,
        )


__all__ = [
    "DocumentCacheStats",
    "MappingExtractor",
    "Program",
    "ProgramCacheStats",
    "default_mapping_from",
]
