"""Breakpoint records and the thread-safe registry that matches them."""

from __future__ import annotations

import re
import threading
from collections.abc import Iterator
from dataclasses import dataclass

from .paths import basename, normalize_url, paths_match, to_file_url

__all__ = ["Breakpoint", "BreakpointRegistry"]

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class Breakpoint:
    """A breakpoint on a 1-based line of a script path or URL pattern."""

    id: int
    url: str
    line: int
    column: int = 0
    enabled: bool = True
    is_regex: bool = False
    condition: str = ""

    def matches(self, filename: str) -> bool:
        """Tell whether this breakpoint's location refers to ``filename``.

        Regex breakpoints are searched case-insensitively in both the file
        URL and the raw path; a pattern that does not compile falls back to
        plain path matching, as url breakpoints always use.
        """
        norm_file = normalize_url(filename)
        if self.is_regex:
            try:
                pattern = re.compile(self.url, re.IGNORECASE)
            except re.error:
                pass
            else:
                if pattern.search(to_file_url(norm_file)) or pattern.search(norm_file):
                    return True

        lower_file = norm_file.lower()
        lower_url = self.url.lower()
        return (
            paths_match(norm_file, self.url)
            or paths_match(basename(norm_file), basename(self.url))
            or lower_url in lower_file
            or lower_file in lower_url
        )


class BreakpointRegistry:
    """Holds breakpoints by id and answers which one a location hits."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._breakpoints: dict[int, Breakpoint] = {}
        self._next_id = 1
        self._active = True

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakpoints)

    def __iter__(self) -> Iterator[Breakpoint]:
        with self._lock:
            return iter(list(self._breakpoints.values()))

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active

    def add(self, url: str, line: int, column: int = 0, is_regex: bool = False,
            condition: str = "") -> Breakpoint:
        """Register a breakpoint at 1-based ``line`` and return it.

        Plain URLs are normalised to forward slashes; regex patterns are
        kept as given.
        """
        with self._lock:
            breakpoint = Breakpoint(
                id=self._next_id,
                url=url if is_regex else normalize_url(url),
                line=line,
                column=column,
                is_regex=is_regex,
                condition=condition,
            )
            self._next_id += 1
            self._breakpoints[breakpoint.id] = breakpoint
            return breakpoint

    def remove(self, breakpoint_id: str | int) -> bool:
        """Remove a breakpoint by number or by a ``"N:line:col"`` id string."""
        if isinstance(breakpoint_id, int):
            number = breakpoint_id
        else:
            match = _LEADING_INT.match(breakpoint_id)
            if match is None:
                return False
            number = int(match.group(1))
        with self._lock:
            return self._breakpoints.pop(number, None) is not None

    def set_active(self, active: bool) -> None:
        """Turn all breakpoints on or off without removing them."""
        with self._lock:
            self._active = active

    def find_match(self, filename: str, line: int) -> Breakpoint | None:
        """Return the lowest-numbered enabled breakpoint hit at ``filename:line``."""
        with self._lock:
            if not self._active:
                return None
            candidates = sorted(self._breakpoints.items())
        for _, breakpoint in candidates:
            if breakpoint.enabled and breakpoint.line == line and breakpoint.matches(filename):
                return breakpoint
        return None

    def check(self, filename: str, line: int) -> bool:
        """Tell whether any active breakpoint is hit at ``filename:line``."""
        return self.find_match(filename, line) is not None