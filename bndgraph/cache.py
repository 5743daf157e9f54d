"""Flat-text cache of discovered dependency edges, one ``source -> target`` per line."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator

from bndgraph.errors import CacheError

logger = logging.getLogger(__name__)

SEPARATOR = " -> "


def format_edge(source: str, target: str) -> str:
    return f"{source}{SEPARATOR}{target}"


def format_edges(edges: Iterable[tuple[str, str]]) -> str:
    """Render edges as cache text, sorted, with a trailing newline."""
    lines = [format_edge(source, target) for source, target in sorted(set(edges))]
    return "".join(line + "\n" for line in lines)


def parse_line(line: str) -> tuple[str, str] | None:
    """Split one cache line into ``(source, target)``, or None if malformed."""
    tokens = line.strip().split(SEPARATOR)
    if len(tokens) != 2:
        return None
    source, target = (token.strip() for token in tokens)
    if not source or not target:
        return None
    return source, target


class EdgeCache:
    """The cache file at *path*; reads and full rewrites only."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"EdgeCache({str(self.path)!r})"

    def exists(self) -> bool:
        return self.path.is_file()

    def mtime(self) -> float:
        try:
            return self.path.stat().st_mtime
        except OSError as e:
            raise CacheError(f"Could not stat dependency cache {self.path}: {e}") from e

    def is_fresh(self, timestamps: Iterable[float]) -> bool:
        """True if the cache exists and nothing in *timestamps* is newer."""
        if not self.exists():
            return False
        written = self.mtime()
        return all(ts <= written for ts in timestamps)

    def read(self) -> Iterator[tuple[int, str]]:
        """Yield ``(line_number, line)`` for every non-blank line."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise CacheError(f"Could not read dependency cache {self.path}: {e}") from e
        for lineno, line in enumerate(text.splitlines(), start=1):
            if line.strip():
                yield lineno, line

    def write(self, edges: Iterable[tuple[str, str]]) -> int:
        """Replace the cache contents with *edges*; returns the record count."""
        text = format_edges(edges)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise CacheError(f"Could not write dependency cache {self.path}: {e}") from e
        count = text.count("\n")
        logger.debug("wrote %d edges to %s", count, self.path)
        return count

