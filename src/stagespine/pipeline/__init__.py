"""stagespine pipeline -- incremental, content-addressed stage execution.

Architecture::

    graph.py      StageDefinition + StageGraph (DAG registry, validation)
    session.py    PipelineEngine, PipelineSession, StageContext, StageArtifactMeta
    cache.py      StageCache protocol + Null / InMemory / File backends
"""

from stagespine.pipeline.cache import (
    FileStageCache,
    InMemoryStageCache,
    NullStageCache,
    StageCache,
    StageCacheEntry,
    create_stage_cache,
)
from stagespine.pipeline.graph import StageDefinition, StageGraph, StageKey
from stagespine.pipeline.session import (
    ArtifactSource,
    PipelineEngine,
    PipelineSession,
    StageArtifactMeta,
    StageContext,
)

__all__ = [
    "ArtifactSource",
    "FileStageCache",
    "InMemoryStageCache",
    "NullStageCache",
    "PipelineEngine",
    "PipelineSession",
    "StageArtifactMeta",
    "StageCache",
    "StageCacheEntry",
    "StageContext",
    "StageDefinition",
    "StageGraph",
    "StageKey",
    "create_stage_cache",
]
