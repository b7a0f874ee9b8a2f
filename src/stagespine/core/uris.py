"""Canonical document URIs.

Provenance edges and program documents are keyed by URI, so every entry
point canonicalizes first. Canonicalization only normalizes spelling: it
lowercases the scheme, converts backslashes to forward slashes and
collapses ``.``/``..`` segments in the path. It never touches the
filesystem.

Examples:
    >>> canonical_uri("file:///app/./src/../home.html")
    'file:///app/home.html'
    >>> canonical_uri("C:\\\\app\\\\home.html")
    'C:/app/home.html'
"""

from __future__ import annotations

import posixpath
import re

_SCHEME = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]+):(//)?")


def canonical_uri(uri: str) -> str:
    """Return the canonical spelling of ``uri``."""
    text = str(uri).strip().replace("\\", "/")
    match = _SCHEME.match(text)
    if match:
        scheme = match.group(1).lower()
        slashes = match.group(2) or ""
        rest = text[match.end():]
        return f"{scheme}:{slashes}{_normalize_path(rest)}"
    return _normalize_path(text)


def _normalize_path(path: str) -> str:
    if not path:
        return path
    normalized = posixpath.normpath(path)
    # posixpath keeps a leading '//' as-is; anything else collapses
    if path.endswith("/") and not normalized.endswith("/"):
        normalized += "/"
    return normalized


__all__ = ["canonical_uri"]
