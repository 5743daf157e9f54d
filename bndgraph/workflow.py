"""Set manipulations used to decide what to import into the IDE next."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Collection, Iterable

from bndgraph.catalog import BndCatalog
from bndgraph.errors import DependencyCycleError
from bndgraph.log import LOG

logger = logging.getLogger(__name__)


def project_names(paths: Iterable[Path]) -> list[str]:
    return [Path(p).name for p in paths]


def add_dependencies(catalog: BndCatalog, projects: set[Path]) -> set[Path]:
    projects.update(catalog.get_required_project_paths(project_names(projects)))
    return projects


def add_dependents(catalog: BndCatalog, projects: set[Path]) -> set[Path]:
    projects.update(catalog.get_dependent_project_paths(project_names(projects)))
    return projects


def remove_imported(projects: set[Path], imported: Collection[Path]) -> set[Path]:
    """Remove (and return) the projects already imported into the IDE."""
    removed = {p for p in projects if p in imported}
    projects -= removed
    return removed


def remove_leaves(catalog: BndCatalog, projects: set[Path], limit: int | None = None) -> set[Path]:
    """Remove (and return) the projects depending on no other member of *projects*."""
    leaves = set(catalog.get_leaves_of_subset(projects, limit))
    projects -= leaves
    return leaves


def find_projects(catalog: BndCatalog, patterns: Iterable[str], include_users: bool = False) -> set[Path]:
    result: set[Path] = set()
    for pattern in patterns:
        result.update(catalog.find_projects(pattern))
    if include_users:
        add_dependents(catalog, result)
    return result


def plan_import(
    catalog: BndCatalog,
    patterns: Iterable[str],
    imported: Collection[Path] = (),
    include_users: bool = False,
    limit: int | None = None,
) -> list[list[Path]]:
    """Split everything needed for *patterns* into importable batches.

    Each batch only depends on earlier batches and on already imported
    projects, so batches can be imported in order.
    """
    projects = find_projects(catalog, patterns, include_users)
    add_dependencies(catalog, projects)
    skipped = remove_imported(projects, imported)
    if skipped:
        logger.info("%d project(s) already imported", len(skipped))

    batches: list[list[Path]] = []
    while projects:
        batch = remove_leaves(catalog, projects, limit)
        if not batch:
            raise DependencyCycleError(project_names(projects))
        batches.append(sorted(batch))
        logger.log(LOG, "batch %d: %d project(s)", len(batches), len(batch))
    return batches
