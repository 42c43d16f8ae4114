"""Helpers for script paths, file URLs and source-map comments."""

from __future__ import annotations

import sys

__all__ = [
    "normalize_url",
    "to_file_url",
    "strip_file_scheme",
    "paths_match",
    "basename",
    "extract_source_map_url",
]

_CASE_INSENSITIVE = sys.platform == "win32"
_SOURCE_MAP_MARKERS = ("//# sourceMappingURL=", "//@ sourceMappingURL=")
_SOURCE_MAP_WINDOW = 4096


def normalize_url(path: str) -> str:
    """Replace backslashes with forward slashes."""
    return path.replace("\\", "/")


def to_file_url(path: str) -> str:
    """Turn an absolute path into a ``file://`` URL; leave other paths alone."""
    norm = normalize_url(path)
    if norm.startswith("file://"):
        return norm
    if norm and (norm[0] == "/" or (len(norm) >= 3 and norm[1] == ":")):
        if norm[0] != "/":
            norm = "/" + norm
        return "file://" + norm
    return norm


def strip_file_scheme(url: str) -> str:
    """Drop a leading ``file:///`` or ``file://`` from a URL."""
    if url.startswith("file:///"):
        return url[8:]
    if url.startswith("file://"):
        return url[7:]
    return url


def paths_match(a: str, b: str) -> bool:
    """Compare two paths, ignoring case on Windows."""
    if _CASE_INSENSITIVE:
        return a.lower() == b.lower()
    return a == b


def basename(path: str) -> str:
    """Return the part of ``path`` after its last forward slash."""
    return path.rpartition("/")[2]


def extract_source_map_url(source: str) -> str:
    """Return the ``sourceMappingURL`` comment value near the end of ``source``.

    Only the last 4096 characters are searched; the legacy ``//@`` form is
    used when no ``//#`` comment is found. Returns an empty string if none.
    """
    start = max(len(source) - _SOURCE_MAP_WINDOW, 0)
    for marker in _SOURCE_MAP_MARKERS:
        pos = source.find(marker, start)
        if pos != -1:
            break
    else:
        return ""
    pos += len(marker)
    ends = [index for index in (source.find("\r", pos), source.find("\n", pos)) if index != -1]
    end = min(ends) if ends else len(source)
    return source[pos:end].rstrip()