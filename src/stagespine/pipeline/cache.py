"""
Content-addressed stage cache with pluggable backends.

A cache key already encodes a stage's key, version, dependency artifact
hashes and fingerprint, so backends only need ``load``/``store`` by key.
Stores are idempotent: storing under an existing key is a no-op.

Manifesto:
    - **Protocol-based:** ``StageCache`` defines the contract
    - **Disabled by default:** ``NullStageCache`` always misses
    - **Full fidelity:** ``FileStageCache`` pickles artifacts as produced
    - **Never fatal:** unreadable entries are logged and reported as misses

Architecture:
    ::

        StageCache (Protocol)
        ├── NullStageCache      — always misses, discards writes
        ├── InMemoryStageCache  — process-local dict
        └── FileStageCache      — <dir>/<key[:2]>/<key>.pkl, atomic writes

        API: load(cache_key) → StageCacheEntry | None
             store(cache_key, entry)

Examples:
    >>> from stagespine.pipeline.cache import FileStageCache
    >>> cache = FileStageCache("/tmp/stagespine-cache")
    >>> cache.load("0" * 64) is None
    True

Guardrails:
    ❌ DON'T: Trust an entry's version without re-checking it against the stage
    ✅ DO: Let PipelineSession compare ``entry.meta.version``

Tags:
    cache, content-addressed, pickle, stagespine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import os
import pickle
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from stagespine.core.errors import CacheCorruptionError
from stagespine.core.logging import get_logger

if TYPE_CHECKING:
    from stagespine.core.settings import StageSpineSettings
    from stagespine.pipeline.session import StageArtifactMeta

logger = get_logger(__name__)


@dataclass(frozen=True)
class StageCacheEntry:
    """A persisted stage result: the meta recorded at compute time plus the artifact."""

    meta: StageArtifactMeta
    artifact: Any


class StageCache(Protocol):
    """Protocol for stage cache backends."""

    def load(self, cache_key: str) -> StageCacheEntry | None:
        """Return the entry stored under ``cache_key``, or ``None`` on a miss."""
        ...

    def store(self, cache_key: str, entry: StageCacheEntry) -> None:
        """Store ``entry`` under ``cache_key``. Repeated stores are idempotent."""
        ...


class NullStageCache:
    """Cache that never hits and discards every write."""

    def load(self, cache_key: str) -> StageCacheEntry | None:
        return None

    def store(self, cache_key: str, entry: StageCacheEntry) -> None:
        return None


class InMemoryStageCache:
    """Process-local stage cache.

    Useful for sharing artifacts between sessions in one process (tests,
    long-running language servers) without touching disk.
    """

    def __init__(self) -> None:
        self._entries: dict[str, StageCacheEntry] = {}

    def load(self, cache_key: str) -> StageCacheEntry | None:
        return self._entries.get(cache_key)

    def store(self, cache_key: str, entry: StageCacheEntry) -> None:
        self._entries.setdefault(cache_key, entry)

    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class FileStageCache:
    """Directory-backed stage cache.

    Entries live at ``<root>/<key[:2]>/<key>.pkl``. Writes go to a temporary
    file in the same directory and are moved into place with ``os.replace``,
    so concurrent sessions sharing the directory never observe a partial
    entry.

    Attributes:
        root: Cache directory (created on first store)
    """

    suffix = ".pkl"

    def __init__(self, root: str | os.PathLike[str]):
        self.root = Path(root)

    def _path_for(self, cache_key: str) -> Path:
        return self.root / cache_key[:2] / f"{cache_key}{self.suffix}"

    def load(self, cache_key: str) -> StageCacheEntry | None:
        path = self._path_for(cache_key)
        if not path.is_file():
            return None
        try:
            return self._read(cache_key, path)
        except CacheCorruptionError as exc:
            logger.warning("cache.corrupt_entry", **exc.to_dict())
            return None

    def _read(self, cache_key: str, path: Path) -> StageCacheEntry:
        try:
            with path.open("rb") as fh:
                entry = pickle.load(fh)
        except Exception as exc:
            raise CacheCorruptionError(cache_key, cause=exc) from exc
        if not isinstance(entry, StageCacheEntry):
            raise CacheCorruptionError(cache_key)
        return entry

    def store(self, cache_key: str, entry: StageCacheEntry) -> None:
        path = self._path_for(cache_key)
        if path.is_file():
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=self.suffix)
        try:
            with os.fdopen(fd, "wb") as fh:
                pickle.dump(entry, fh, protocol=pickle.HIGHEST_PROTOCOL)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("cache.stored", cache_key=cache_key, stage=entry.meta.key)

    def entries(self) -> Iterator[Path]:
        """Iterate over persisted entry files."""
        if not self.root.is_dir():
            return
        yield from sorted(self.root.glob(f"*/*{self.suffix}"))

    def size_bytes(self) -> int:
        return sum(path.stat().st_size for path in self.entries())

    def clear(self) -> int:
        """Delete every persisted entry. Returns the number of entries removed.

        Only entry files are unlinked; other files in the directory are left
        alone, and shard directories are removed once empty.
        """
        removed = 0
        shards = set()
        for path in list(self.entries()):
            path.unlink(missing_ok=True)
            shards.add(path.parent)
            removed += 1
        for shard in shards:
            if not any(shard.iterdir()):
                shard.rmdir()
        return removed


def create_stage_cache(settings: StageSpineSettings) -> StageCache:
    """Pick a cache backend from settings.

    Persistence requires both ``cache_enabled`` and ``cache_persist``;
    anything else yields a :class:`NullStageCache`.
    """
    if settings.persistence_active:
        return FileStageCache(settings.cache_dir)
    return NullStageCache()


__all__ = [
    "StageCacheEntry",
    "StageCache",
    "NullStageCache",
    "InMemoryStageCache",
    "FileStageCache",
    "create_stage_cache",
]
