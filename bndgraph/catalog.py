"""Dependency catalog over every bnd project in a workspace.

The graph is built from cheap static metadata at construction time. The
authoritative build and test dependencies come from the build-tool oracle,
which is consulted at most once per catalog (unless :meth:`BndCatalog.reanalyze`
is called) and whose answers are kept in a flat cache file between runs.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable

from bndgraph.cache import EdgeCache, parse_line
from bndgraph.descriptor import is_project_dir, read_project
from bndgraph.errors import (
    CacheError,
    CatalogConstructionError,
    DescriptorError,
    ProjectNotFoundError,
)
from bndgraph.globbing import glob_match
from bndgraph.graph import ProjectGraph
from bndgraph.models import EnrichmentState, Project, ProjectMatch
from bndgraph.oracle import OracleAdapter

logger = logging.getLogger(__name__)

CONFIG_ROOT = "cnf"
BUILD_IMAGE = "build.image"


class BndCatalog:
    """Projects of a bnd workspace and the dependency edges between them.

    Args:
        workspace: Directory whose immediate subdirectories are projects.
        oracle: Source of authoritative build/test dependencies. Without
            one, the catalog only knows declared and conventional edges.
        cache: Where discovered oracle edges are persisted between runs.
        config_root: Project every other project depends on.
        build_image: Project every bundle-producing project depends on.
        log: Logger for warnings and debug output; defaults to this module's.
    """

    def __init__(
        self,
        workspace: Path,
        oracle: OracleAdapter | None = None,
        cache: EdgeCache | None = None,
        *,
        config_root: str = CONFIG_ROOT,
        build_image: str = BUILD_IMAGE,
        log: logging.Logger | None = None,
    ):
        self.workspace = Path(workspace)
        self.oracle = oracle.bind(self._maybe_find) if oracle else None
        self.cache = cache
        self.config_root = config_root
        self.build_image = build_image
        self.log = log or logger

        self._lock = threading.Lock()
        self._state = EnrichmentState.UNENRICHED
        self._oracle_edges: set[tuple[int, int]] = set()

        # add the vertices
        self._static = ProjectGraph()
        for project in self._scan():
            self._static.add_vertex(project)

        # index projects by name and symbolic name
        self._name_index: dict[str, Project] = {}
        for project in self._static.vertices:
            self._name_index[project.name] = project
        for project in self._static.vertices:
            if project.symbolic_name_differs():
                self._name_index.setdefault(project.symbolic_name, project)

        # index by directory name, and by every name as if it were a path,
        # so that glob patterns can match either
        self._path_index: dict[str, set[Project]] = {}
        for project in self._static.vertices:
            self._path_index.setdefault(project.root.name, set()).add(project)
        for name, project in self._name_index.items():
            self._path_index.setdefault(name, set()).add(project)

        self._root_index = {project.root.name: project for project in self._static.vertices}

        self._add_declared_edges()
        self._add_synthetic_edges()
        self._graph = self._static.copy()
        self.log.debug(
            "catalog of %d projects with %d static edges",
            len(self._static), self._static.edge_count(),
        )

        self._restore_cache()

    def __repr__(self) -> str:
        return f"BndCatalog({str(self.workspace)!r}, projects={len(self._static)}, state={self._state.value})"

    # ── Construction ────────────────────────────────────────

    def _scan(self) -> list[Project]:
        try:
            candidates = sorted(p for p in self.workspace.iterdir() if is_project_dir(p))
        except OSError as e:
            raise CatalogConstructionError(
                f"Could not list bnd workspace {self.workspace}: {e}"
            ) from e
        try:
            return [read_project(path) for path in candidates]
        except DescriptorError as e:
            raise CatalogConstructionError(str(e)) from e

    def _add_declared_edges(self) -> None:
        for project in self._static.vertices:
            source = self._static.index[project.name]
            for dep_name in sorted(project.initial_deps):
                dep = self._name_index.get(dep_name)
                if dep is None:
                    self.log.debug("%s: ignoring dependency on unknown project %s", project.name, dep_name)
                    continue
                self._static.add_edge(source, self._static.index[dep.name])

    def _add_synthetic_edges(self) -> None:
        config_root = self._static.index.get(self.config_root)
        build_image = self._static.index.get(self.build_image)
        for idx, project in enumerate(self._static.vertices):
            # the config root is where the graph bottoms out
            if idx == config_root:
                continue
            if config_root is not None:
                self._static.add_edge(idx, config_root)
            if build_image is not None and not (project.is_no_bundle or project.publish_disabled):
                self._static.add_edge(idx, build_image)

    def _restore_cache(self) -> None:
        if self.cache is None or not self.cache.exists():
            return
        try:
            if not self.cache.is_fresh(p.timestamp for p in self._static.vertices):
                self.log.info("Dependency cache %s is out of date and will be rebuilt", self.cache.path)
                return
            restored: set[tuple[int, int]] = set()
            for lineno, line in self.cache.read():
                parsed = parse_line(line)
                if parsed is None:
                    self.log.warning("Skipping malformed line %d in %s: %r", lineno, self.cache.path, line)
                    continue
                edge = self._resolve_edge(*parsed)
                if edge is not None:
                    restored.add(edge)
        except CacheError as e:
            self.log.warning("Ignoring dependency cache: %s", e)
            return

        graph = self._static.copy()
        for source, target in restored:
            graph.add_edge(source, target)
        self._oracle_edges = restored
        self._graph = graph
        self._state = EnrichmentState.ENRICHED
        self.log.debug("restored %d dependency edges from %s", len(restored), self.cache.path)

    def _resolve_edge(self, source_name: str, target_name: str) -> tuple[int, int] | None:
        source = self._name_index.get(source_name)
        target = self._name_index.get(target_name)
        if source is None or target is None or source == target:
            return None
        return self._static.index[source.name], self._static.index[target.name]

    # ── Enrichment ──────────────────────────────────────────

    @property
    def state(self) -> EnrichmentState:
        return self._state

    def ensure_enriched(self) -> None:
        """Merge the oracle's dependencies into the graph, once."""
        if self._state is EnrichmentState.ENRICHED:
            return
        with self._lock:
            if self._state is EnrichmentState.ENRICHED:
                return
            self._enrich(self._graph)

    def reanalyze(self) -> None:
        """Forget every oracle edge and query the oracle again from scratch."""
        with self._lock:
            self._state = EnrichmentState.UNENRICHED
            self._enrich(self._static, known=set())

    def _enrich(self, base: ProjectGraph, known: set[tuple[int, int]] | None = None) -> None:
        # caller holds self._lock; nothing is published unless the sweep completes
        self._state = EnrichmentState.ENRICHING
        try:
            graph = base.copy()
            discovered = set(self._oracle_edges if known is None else known)
            if self.oracle is not None:
                for project in sorted(graph.vertices):
                    source = graph.index[project.name]
                    for dep in self.oracle.get_build_and_test_dependencies(project):
                        target = graph.index[dep.name]
                        if source == target:
                            continue
                        discovered.add((source, target))
                        graph.add_edge(source, target)
        except BaseException:
            self._state = EnrichmentState.UNENRICHED
            raise
        self._oracle_edges = discovered
        self._graph = graph
        self._state = EnrichmentState.ENRICHED
        self.log.info(
            "Analyzed %d projects: %d dependency edges",
            len(graph), graph.edge_count(),
        )
        self._write_cache()

    def _write_cache(self) -> None:
        if self.cache is None or self.oracle is None:
            return
        try:
            self.cache.write(self.oracle_edges())
        except CacheError as e:
            self.log.warning("Could not save dependency cache: %s", e)

    def oracle_edges(self) -> set[tuple[str, str]]:
        """Edges discovered by (or restored from) the oracle, as name pairs."""
        vertices = self._static.vertices
        return {(vertices[s].name, vertices[t].name) for s, t in self._oracle_edges}

    def dependency_names(self, name: str) -> set[str]:
        """Names of the direct dependencies of *name* in the current graph."""
        self.ensure_enriched()
        graph = self._graph
        return {graph.vertices[t].name for t in graph.successors(graph.index[self.get_project(name).name])}

    # ── Lookup ──────────────────────────────────────────────

    def _maybe_find(self, name: str) -> Project | None:
        return self._name_index.get(name)

    def has_project(self, name: str) -> bool:
        return name in self._name_index

    def get_project(self, name: str) -> Project:
        project = self._name_index.get(name)
        if project is None:
            raise ProjectNotFoundError(f'No project found with name "{name}"')
        return project

    def get_project_path(self, name: str) -> Path:
        return self.get_project(name).root

    def describe_project(self, name: str) -> str:
        return self.get_project(name).describe()

    def all_project_paths(self) -> list[Path]:
        return sorted({project.root for project in self._static.vertices})

    def project_for_path(self, path: Path) -> Project:
        project = self._root_index.get(Path(path).name)
        if project is None:
            raise ProjectNotFoundError(f'No project found at "{path}"')
        return project

    def _match(self, pattern: str) -> set[Path]:
        return {
            project.root
            for key, projects in self._path_index.items()
            if glob_match(pattern, key)
            for project in projects
        }

    def find_projects(self, pattern: str) -> list[Path]:
        """Roots of all projects matching *pattern*; raises if there are none."""
        found = self._match(pattern)
        if not found:
            raise ProjectNotFoundError(f'No project found matching pattern "{pattern}"')
        return sorted(found)

    def collect_projects(self, patterns: Iterable[str]) -> ProjectMatch:
        """Union of every pattern's matches; unmatched patterns are warned about."""
        found: set[Path] = set()
        result = ProjectMatch()
        for pattern in patterns:
            matched = self._match(pattern)
            if not matched:
                self.log.warning('No project found matching pattern "%s"', pattern)
                result.unmatched.append(pattern)
            found |= matched
        result.paths = sorted(found)
        return result

    # ── Graph queries ───────────────────────────────────────

    def get_leaves_of_subset(self, subset: Iterable[Path], limit: int | None = None) -> list[Path]:
        """Members of *subset* that depend on no other member of it.

        A leaf may still depend on projects outside the subset. Results are
        sorted by path and capped at *limit* when one is given.
        """
        if limit is not None and limit <= 0:
            raise ValueError(f"limit must be positive, not {limit}")
        self.ensure_enriched()
        graph = self._graph
        members = {graph.index[self.project_for_path(path).name] for path in subset}
        leaves = sorted(
            graph.vertices[idx].root
            for idx in members
            if graph.out_degree_within(idx, members) == 0
        )
        if limit is not None:
            leaves = leaves[:limit]
        self.log.debug("get_leaves_of_subset() found %d leaf projects", len(leaves))
        return leaves

    def get_project_and_dependency_subgraph(self, names: Iterable[str]) -> set[Project]:
        """The named projects plus everything they depend on, transitively.

        Names that match no project are dropped.
        """
        self.ensure_enriched()
        return {self._graph.vertices[idx] for idx in self._closure(self._graph, names)}

    def _closure(self, graph: ProjectGraph, names: Iterable[str]) -> set[int]:
        start = set()
        for name in names:
            project = self._maybe_find(name)
            if project is None:
                self.log.debug("ignoring unknown project %s", name)
                continue
            start.add(graph.index[project.name])
        return graph.reachable_from(start)

    def get_required_project_paths(self, names: Iterable[str]) -> list[Path]:
        """Named projects and all their dependencies, dependencies first."""
        self.ensure_enriched()
        graph = self._graph
        order = graph.topological_order(self._closure(graph, names))
        return [graph.vertices[idx].root for idx in order]

    def get_dependent_project_paths(self, names: Iterable[str]) -> list[Path]:
        """Projects that directly depend on any of the named projects."""
        self.ensure_enriched()
        graph = self._graph
        seen: dict[Path, None] = {}
        for name in names:
            target = graph.index[self.get_project(name).name]
            for source in sorted(graph.predecessors(target)):
                seen.setdefault(graph.vertices[source].root, None)
        return list(seen)

    def in_topological_order(self, paths: Iterable[Path]) -> list[Path]:
        """Order the given projects so dependencies precede dependents."""
        self.ensure_enriched()
        graph = self._graph
        members = {graph.index[self.project_for_path(path).name] for path in paths}
        return [graph.vertices[idx].root for idx in graph.topological_order(members)]
