"""
Incremental pipeline engine and per-execution sessions.

A :class:`PipelineSession` is one execution window over a
:class:`~stagespine.pipeline.graph.StageGraph` and a fixed set of options.
Each stage runs at most once per session; its cache key is derived from
its own fingerprint plus the *content hashes* of its dependencies, so
structurally identical sessions agree on every key and a persistent
:class:`~stagespine.pipeline.cache.StageCache` can serve them.

Manifesto:
    - **Deps before fingerprint:** A stage's key needs its deps' artifact hashes
    - **Content, not identity:** Dependencies contribute by hash, never by object
    - **Version-guarded:** A cached entry is accepted only for the current version
    - **Seedable:** Caller-supplied artifacts look exactly like computed ones

Architecture:
    ::

        session.run("40-typecheck")
            │
            ├─ graph.resolution_order(key, resolved) → unresolved closure, deps first
            │
            └─ for each unresolved stage:
                 required options present?           (MissingOptionError)
                 fingerprint = def.fingerprint(ctx)
                 cache_key   = stable_hash({key, version, deps[], fingerprint})
                 cache.load(cache_key) ─ hit + same version → meta(from_cache=True)
                                       └ miss → def.run(ctx) → meta(from_cache=False)
                                                 cache.store(cache_key, entry)

Examples:
    >>> engine = PipelineEngine(graph, cache=InMemoryStageCache())
    >>> session = engine.create_session({"text": "<div></div>"})
    >>> session.run("20-link")
    >>> session.meta("20-link").from_cache
    False

Guardrails:
    ❌ DON'T: Read inputs in ``run`` that ``fingerprint`` does not describe
    ✅ DO: Fingerprint every option a stage reads (stale-cache risk otherwise)

    ❌ DON'T: Share one session between threads
    ✅ DO: Create one session per execution; share the StageCache instead

Tags:
    pipeline, incremental, memoization, cache-key, stagespine

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from stagespine.core.errors import (
    EngineInvariantError,
    MissingOptionError,
    UndeclaredDependencyError,
    UnknownStageError,
)
from stagespine.core.hashing import stable_hash
from stagespine.core.logging import get_logger
from stagespine.pipeline.cache import NullStageCache, StageCache, StageCacheEntry
from stagespine.pipeline.graph import StageDefinition, StageGraph, StageKey

logger = get_logger(__name__)


class ArtifactSource(str, Enum):
    """Where a session artifact came from."""

    RUN = "run"
    CACHE = "cache"
    SEED = "seed"


@dataclass(frozen=True)
class StageArtifactMeta:
    """Per-session record of one resolved stage."""

    key: StageKey
    version: str
    cache_key: str
    artifact_hash: str
    from_cache: bool
    source: ArtifactSource = ArtifactSource.RUN

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "version": self.version,
            "cache_key": self.cache_key,
            "artifact_hash": self.artifact_hash,
            "from_cache": self.from_cache,
            "source": self.source.value,
        }


class StageContext:
    """What a stage may see: session options and its declared, resolved dependencies."""

    def __init__(self, session: PipelineSession, definition: StageDefinition) -> None:
        self._session = session
        self._definition = definition

    @property
    def options(self) -> Mapping[str, Any]:
        return self._session.options

    @property
    def stage(self) -> StageKey:
        return self._definition.key

    def option(self, name: str, default: Any = ...) -> Any:
        """Return option ``name``; without a default a missing option is a config error."""
        if name in self._session.options:
            return self._session.options[name]
        if default is ...:
            raise MissingOptionError(name, stage=self._definition.key)
        return default

    def require(self, key: StageKey) -> Any:
        """Return the artifact of declared dependency ``key``."""
        if key not in self._definition.deps:
            raise UndeclaredDependencyError(self._definition.key, key)
        if key not in self._session._results:
            raise EngineInvariantError(
                f"Dependency '{key}' of '{self._definition.key}' was not resolved before use"
            ).with_context(stage=self._definition.key)
        return self._session._results[key]

    def meta(self, key: StageKey) -> StageArtifactMeta | None:
        return self._session.meta(key)


class PipelineSession:
    """One execution window with memoized stage results."""

    def __init__(
        self,
        graph: StageGraph,
        options: Mapping[str, Any] | None = None,
        *,
        cache: StageCache | None = None,
        seed: Mapping[StageKey, Any] | None = None,
    ) -> None:
        self._graph = graph
        self._options: dict[str, Any] = dict(options or {})
        self._cache: StageCache = cache if cache is not None else NullStageCache()
        self._persist = not isinstance(self._cache, NullStageCache)
        self._results: dict[StageKey, Any] = {}
        self._meta: dict[StageKey, StageArtifactMeta] = {}

        for key, artifact in (seed or {}).items():
            self._seed(key, artifact)

    def _seed(self, key: StageKey, artifact: Any) -> None:
        definition = self._graph.get(key)
        artifact_hash = stable_hash(artifact)
        cache_key = stable_hash({"seed": key, "artifact_hash": artifact_hash, "version": definition.version})
        self._results[key] = artifact
        self._meta[key] = StageArtifactMeta(
            key=key,
            version=definition.version,
            cache_key=cache_key,
            artifact_hash=artifact_hash,
            from_cache=False,
            source=ArtifactSource.SEED,
        )
        logger.debug("stage.seeded", stage=key, artifact_hash=artifact_hash)

    @property
    def options(self) -> Mapping[str, Any]:
        return self._options

    @property
    def persistent(self) -> bool:
        return self._persist

    def peek(self, key: StageKey) -> Any | None:
        """Artifact for ``key`` if already resolved in this session."""
        return self._results.get(key)

    def meta(self, key: StageKey) -> StageArtifactMeta | None:
        return self._meta.get(key)

    def resolved(self) -> list[StageArtifactMeta]:
        """Meta of every resolved stage, in resolution order."""
        return list(self._meta.values())

    def run(self, key: StageKey) -> Any:
        """Return the artifact of stage ``key``, resolving dependencies first."""
        if key in self._results:
            return self._results[key]
        for node in self._graph.resolution_order(key, resolved=self._results.keys()):
            self._resolve(self._graph.get(node))
        return self._results[key]

    def _resolve(self, definition: StageDefinition) -> None:
        key = definition.key
        for option in definition.required_options:
            if option not in self._options:
                raise MissingOptionError(option, stage=key)

        dep_meta = []
        for dep in definition.deps:
            meta = self._meta.get(dep)
            if meta is None:
                raise EngineInvariantError(
                    f"Missing metadata for dependency '{dep}' required by '{key}'"
                ).with_context(stage=key)
            dep_meta.append({"key": meta.key, "version": meta.version, "artifact_hash": meta.artifact_hash})

        ctx = StageContext(self, definition)
        fingerprint = definition.fingerprint(ctx)
        cache_key = stable_hash(
            {"key": key, "version": definition.version, "deps": dep_meta, "fingerprint": fingerprint}
        )

        if self._persist and self._load_cached(definition, cache_key):
            return

        started = time.perf_counter()
        artifact = definition.run(ctx)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        meta = StageArtifactMeta(
            key=key,
            version=definition.version,
            cache_key=cache_key,
            artifact_hash=stable_hash(artifact),
            from_cache=False,
            source=ArtifactSource.RUN,
        )
        self._meta[key] = meta
        self._results[key] = artifact
        logger.debug("stage.computed", stage=key, cache_key=cache_key, duration_ms=duration_ms)

        if self._persist:
            self._cache.store(cache_key, StageCacheEntry(meta=meta, artifact=artifact))

    def _load_cached(self, definition: StageDefinition, cache_key: str) -> bool:
        entry = self._cache.load(cache_key)
        if entry is None:
            return False
        if entry.meta.version != definition.version:
            logger.debug(
                "stage.cache_version_mismatch",
                stage=definition.key,
                cached_version=entry.meta.version,
                version=definition.version,
            )
            return False
        self._meta[definition.key] = replace(
            entry.meta,
            key=definition.key,
            cache_key=cache_key,
            from_cache=True,
            source=ArtifactSource.CACHE,
        )
        self._results[definition.key] = entry.artifact
        logger.debug("stage.cache_hit", stage=definition.key, cache_key=cache_key)
        return True


class PipelineEngine:
    """Validated stage graph plus the cache shared by the sessions it creates."""

    def __init__(self, graph: StageGraph, *, cache: StageCache | None = None) -> None:
        graph.validate()
        self._graph = graph
        self._cache: StageCache = cache if cache is not None else NullStageCache()

    @property
    def graph(self) -> StageGraph:
        return self._graph

    @property
    def cache(self) -> StageCache:
        return self._cache

    def create_session(
        self,
        options: Mapping[str, Any] | None = None,
        seed: Mapping[StageKey, Any] | None = None,
    ) -> PipelineSession:
        return PipelineSession(self._graph, options, cache=self._cache, seed=seed)

    def run(
        self,
        key: StageKey,
        options: Mapping[str, Any] | None = None,
        seed: Mapping[StageKey, Any] | None = None,
    ) -> Any:
        if key not in self._graph:
            raise UnknownStageError(key)
        return self.create_session(options, seed).run(key)


__all__ = [
    "ArtifactSource",
    "StageArtifactMeta",
    "StageContext",
    "PipelineSession",
    "PipelineEngine",
]
