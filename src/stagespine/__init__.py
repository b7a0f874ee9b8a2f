"""
stagespine -- incremental, content-addressed stage pipelines with
bidirectional source provenance.

Architecture::

    stagespine.core        hashing, spans, uris, errors, logging, settings
    stagespine.pipeline    StageGraph, PipelineEngine/Session, StageCache
    stagespine.provenance  ProvenanceIndex, mapping models, projection policy
    stagespine.program     Program orchestrator (session + provenance per document)
    stagespine.cli         typer CLI
"""

__version__ = "0.1.0"

from stagespine.pipeline import (
    FileStageCache,
    InMemoryStageCache,
    NullStageCache,
    PipelineEngine,
    PipelineSession,
    StageDefinition,
    StageGraph,
)
from stagespine.program import Program
from stagespine.provenance import ProvenanceIndex

__all__ = [
    "__version__",
    "FileStageCache",
    "InMemoryStageCache",
    "NullStageCache",
    "PipelineEngine",
    "PipelineSession",
    "Program",
    "ProvenanceIndex",
    "StageDefinition",
    "StageGraph",
]
