"""Versioned source text for tracked documents."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from stagespine.core.hashing import compute_hash
from stagespine.core.uris import canonical_uri


@dataclass(frozen=True)
class DocumentSnapshot:
    """Text of one document at one version."""

    uri: str
    text: str
    version: int
    content_hash: str


class InMemorySourceStore:
    """URI-keyed snapshot store.

    A ``set`` without an explicit version bumps the previous version by one
    (new documents start at 0).
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, DocumentSnapshot] = {}

    def get(self, uri: str) -> DocumentSnapshot | None:
        return self._snapshots.get(canonical_uri(uri))

    def set(self, uri: str, text: str, version: int | None = None) -> DocumentSnapshot:
        canonical = canonical_uri(uri)
        if version is None:
            previous = self._snapshots.get(canonical)
            version = previous.version + 1 if previous else 0
        snapshot = DocumentSnapshot(canonical, text, version, compute_hash(text))
        self._snapshots[canonical] = snapshot
        return snapshot

    def delete(self, uri: str) -> bool:
        return self._snapshots.pop(canonical_uri(uri), None) is not None

    def all(self) -> Iterator[DocumentSnapshot]:
        return iter(list(self._snapshots.values()))

    def __contains__(self, uri: object) -> bool:
        return isinstance(uri, str) and canonical_uri(uri) in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)


__all__ = ["DocumentSnapshot", "InMemorySourceStore"]
