"""Read the static fields of a project's bnd.bnd descriptor."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Iterator

from bndgraph.errors import DescriptorError
from bndgraph.models import DESCRIPTOR_FILE, Project

logger = logging.getLogger(__name__)

SYMBOLIC_NAME = "Bundle-SymbolicName"
BUILD_PATH = "-buildpath"
TEST_PATH = "-testpath"
NO_BUNDLES = "-nobundles"
PUBLISH_DISABLED = "publish.wlp.jar.disabled"

_TRUTHY = {"true", "yes", "on", "1"}
_KEY_END = re.compile(r"(?<!\\)[=:\s]")
_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def _logical_lines(lines: Iterable[str]) -> Iterator[str]:
    """Join backslash-continued physical lines, dropping comments and blanks."""
    pending = ""
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not pending:
            stripped = line.lstrip()
            if not stripped or stripped[0] in "#!":
                continue
            line = stripped
        else:
            line = line.lstrip()
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending += line[:-1]
            continue
        yield pending + line
        pending = ""
    if pending:
        yield pending


def _unescape(text: str) -> str:
    out: list[str] = []
    chars = iter(text)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_ESCAPES.get(nxt, nxt))
        else:
            out.append(ch)
    return "".join(out)


def parse_properties(text: str) -> dict[str, str]:
    """Parse Java-properties style text (the syntax bnd files use).

    Supports ``key: value``, ``key=value`` and ``key value`` separators,
    ``#``/``!`` comments and backslash continuation lines. Later keys win.
    """
    props: dict[str, str] = {}
    for line in _logical_lines(text.splitlines()):
        m = _KEY_END.search(line)
        if not m:
            props[_unescape(line)] = ""
            continue
        key = line[:m.start()]
        rest = line[m.start():].lstrip(" \t\f")
        if rest[:1] in ("=", ":"):
            rest = rest[1:].lstrip(" \t\f")
        props[_unescape(key)] = _unescape(rest)
    return props


def is_truthy(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUTHY


def split_path_entries(value: str | None) -> list[str]:
    """Split a bnd path header into bare entry names.

    ``a;version=latest, b ,c;strategy=lowest`` -> ``['a', 'b', 'c']``
    """
    if not value:
        return []
    entries = []
    for part in value.split(","):
        name = part.split(";", 1)[0].strip()
        if name:
            entries.append(name)
    return entries


def read_properties(file_path: Path) -> dict[str, str]:
    try:
        text = file_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise DescriptorError(f"Could not read {file_path}: {e}") from e
    return parse_properties(text)


def last_modified(file_path: Path) -> float:
    """Modification time of a regular file, or 0.0 if there is none."""
    try:
        if file_path.is_file():
            return file_path.stat().st_mtime
    except OSError:
        pass
    return 0.0


def is_project_dir(path: Path) -> bool:
    return path.is_dir() and (path / DESCRIPTOR_FILE).is_file()


def read_project(root: Path) -> Project:
    """Build a Project from the descriptor in *root*."""
    descriptor = root / DESCRIPTOR_FILE
    props = read_properties(descriptor)
    name = root.name
    symbolic = props.get(SYMBOLIC_NAME, "").split(";", 1)[0].strip() or name
    deps = split_path_entries(props.get(BUILD_PATH)) + split_path_entries(props.get(TEST_PATH))
    project = Project(
        name=name,
        root=root,
        symbolic_name=symbolic,
        initial_deps=frozenset(deps),
        is_no_bundle=is_truthy(props.get(NO_BUNDLES)),
        publish_disabled=is_truthy(props.get(PUBLISH_DISABLED)),
        timestamp=last_modified(descriptor),
    )
    logger.debug("read project %s (%d declared deps)", name, len(project.initial_deps))
    return project
