"""Exception hierarchy for bndgraph."""

from __future__ import annotations


class BndGraphError(Exception):
    """Base class for every error raised by bndgraph."""


class CatalogConstructionError(BndGraphError):
    """The workspace could not be scanned into a catalog."""


class DescriptorError(BndGraphError):
    """A project descriptor (bnd.bnd) could not be read."""


class ProjectNotFoundError(BndGraphError, LookupError):
    """A project name, path or pattern matched nothing."""


class DependencyCycleError(BndGraphError):
    """Projects that were asked to be ordered depend on each other in a cycle."""

    def __init__(self, names: list[str]):
        self.names = sorted(names)
        super().__init__(
            "Dependency cycle among projects: " + ", ".join(self.names)
        )


class OracleError(BndGraphError):
    """The build tool could not compute dependencies for a project."""


class CacheError(BndGraphError):
    """The dependency cache file could not be read or written."""


class ConfigError(BndGraphError):
    """The settings file is unreadable or invalid."""
