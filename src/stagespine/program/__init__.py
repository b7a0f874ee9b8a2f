"""stagespine program -- document lifecycle over the pipeline and provenance index."""

from stagespine.program.program import Program, ProgramCacheStats, default_mapping_from
from stagespine.program.sources import DocumentSnapshot, InMemorySourceStore

__all__ = [
    "DocumentSnapshot",
    "InMemorySourceStore",
    "Program",
    "ProgramCacheStats",
    "default_mapping_from",
]
