"""Boundary to the external build tool that knows a project's real dependencies."""

from __future__ import annotations

import copy
import logging
import re
from pathlib import Path
from typing import Callable, Iterable, Protocol

from bndgraph.descriptor import (
    BUILD_PATH,
    TEST_PATH,
    read_properties,
    split_path_entries,
)
from bndgraph.errors import DescriptorError, OracleError
from bndgraph.models import DESCRIPTOR_FILE, Project

logger = logging.getLogger(__name__)

DEPENDS_ON = "-dependson"
WORKSPACE_DEFAULTS = Path("cnf") / "build.bnd"

_MACRO = re.compile(r"\$\{([^{}]+)\}")
_MAX_EXPANSION_DEPTH = 20


class BuildTool(Protocol):
    def build_dependencies(self, name: str) -> Iterable[str]: ...

    def test_dependencies(self, name: str) -> Iterable[str]: ...


class OracleAdapter:
    """Ask the build tool for a project's build and test dependencies.

    The two sub-queries fail independently: an error in one is logged and
    contributes nothing, while the other's result is still used. Names the
    catalog does not know are dropped. Nothing is cached here.
    """

    def __init__(
        self,
        build_tool: BuildTool,
        lookup: Callable[[str], Project | None] | None = None,
        log: logging.Logger | None = None,
    ):
        self.build_tool = build_tool
        self.lookup = lookup
        self.log = log or logger

    def bind(self, lookup: Callable[[str], Project | None]) -> OracleAdapter:
        """Return a copy of this adapter that resolves names with *lookup*."""
        bound = copy.copy(self)
        bound.lookup = lookup
        return bound

    def get_build_and_test_dependencies(self, project: Project) -> set[Project]:
        if self.lookup is None:
            raise RuntimeError("OracleAdapter used before being bound to a catalog")
        names = self._query("build", self.build_tool.build_dependencies, project)
        names |= self._query("test", self.build_tool.test_dependencies, project)
        found = set()
        for name in names:
            dep = self.lookup(name)
            if dep is not None:
                found.add(dep)
        return found

    def _query(self, kind: str, fetch: Callable[[str], Iterable[str]], project: Project) -> set[str]:
        try:
            return set(fetch(project.name))
        except Exception as e:
            self.log.warning(
                "Unable to retrieve %s dependencies from bnd for project %s: %s",
                kind, project.name, e,
            )
            return set()


class BndWorkspaceTool:
    """Resolve dependencies the way a bnd workspace declares them.

    Reads the project's full descriptor on top of the workspace defaults in
    ``cnf/build.bnd``, expands ``${macro}`` references, and reports
    ``-buildpath`` plus ``-dependson`` as build dependencies and
    ``-testpath`` as test dependencies. File references (jars, paths) are
    not projects and are skipped, as are entries left holding a macro bnd
    would compute itself (``${repo;...}``, ``${workspace}``). Each header is
    evaluated on its own, so a bad ``-dependson`` still leaves ``-buildpath``.
    """

    def __init__(self, workspace: Path):
        self.workspace = Path(workspace)
        self._defaults: dict[str, str] | None = None

    def build_dependencies(self, name: str) -> list[str]:
        props = self._properties(name)
        return self._entries(props, BUILD_PATH) + self._entries(props, DEPENDS_ON)

    def test_dependencies(self, name: str) -> list[str]:
        return self._entries(self._properties(name), TEST_PATH)

    def _workspace_defaults(self) -> dict[str, str]:
        if self._defaults is None:
            defaults_file = self.workspace / WORKSPACE_DEFAULTS
            if defaults_file.is_file():
                try:
                    self._defaults = read_properties(defaults_file)
                except DescriptorError as e:
                    raise OracleError(str(e)) from e
            else:
                self._defaults = {}
        return self._defaults

    def _properties(self, name: str) -> dict[str, str]:
        descriptor = self.workspace / name / DESCRIPTOR_FILE
        if not descriptor.is_file():
            raise OracleError(f"No bnd project named {name!r} in {self.workspace}")
        try:
            own = read_properties(descriptor)
        except DescriptorError as e:
            raise OracleError(str(e)) from e
        props = {**self._workspace_defaults(), **own}
        props.setdefault("project.name", name)
        props.setdefault("p", name)
        return props

    def _entries(self, props: dict[str, str], key: str) -> list[str]:
        value = props.get(key)
        if not value:
            return []
        try:
            expanded = expand_macros(value, props)
        except OracleError as e:
            logger.warning("Ignoring %s of project %s: %s", key, props.get("project.name"), e)
            return []
        return [
            entry for entry in split_path_entries(expanded)
            if not entry.endswith(".jar") and "/" not in entry and "${" not in entry
        ]


def expand_macros(value: str, props: dict[str, str], depth: int = 0) -> str:
    """Replace ``${key}`` with its value from *props*, recursively.

    Keys *props* does not define, including bnd functions such as
    ``${repo;bsn;latest}``, are left in place.
    """
    if depth > _MAX_EXPANSION_DEPTH:
        raise OracleError(f"Macro expansion too deep in {value!r}")

    def substitute(m: re.Match[str]) -> str:
        key = m.group(1)
        if key not in props:
            logger.debug("Leaving undefined macro ${%s} in %r", key, value)
            return m.group(0)
        return expand_macros(props[key], props, depth + 1)

    return _MACRO.sub(substitute, value)
