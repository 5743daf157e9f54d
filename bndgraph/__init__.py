"""bndgraph: dependency catalog for importing bnd workspace projects into an IDE."""

from bndgraph.cache import EdgeCache
from bndgraph.catalog import BndCatalog
from bndgraph.errors import (
    BndGraphError,
    CatalogConstructionError,
    DependencyCycleError,
    ProjectNotFoundError,
)
from bndgraph.models import EnrichmentState, Project, ProjectMatch
from bndgraph.oracle import BndWorkspaceTool, OracleAdapter

__all__ = [
    "BndCatalog",
    "BndGraphError",
    "BndWorkspaceTool",
    "CatalogConstructionError",
    "DependencyCycleError",
    "EdgeCache",
    "EnrichmentState",
    "OracleAdapter",
    "Project",
    "ProjectMatch",
    "ProjectNotFoundError",
]
