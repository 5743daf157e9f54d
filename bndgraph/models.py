"""Data models for the project dependency catalog."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path


DESCRIPTOR_FILE = "bnd.bnd"


class EnrichmentState(enum.Enum):
    UNENRICHED = "unenriched"
    ENRICHING = "enriching"
    ENRICHED = "enriched"


@dataclass(frozen=True, eq=False)
class Project:
    """Static metadata of one workspace project, read once from its descriptor.

    Identity is by ``name``: two projects with the same name compare equal
    regardless of their other fields.
    """
    name: str
    root: Path
    symbolic_name: str = ""
    initial_deps: frozenset[str] = field(default_factory=frozenset)
    is_no_bundle: bool = False
    publish_disabled: bool = False
    timestamp: float = 0.0

    def __post_init__(self):
        if not self.symbolic_name:
            object.__setattr__(self, "symbolic_name", self.name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Project):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __lt__(self, other: Project) -> bool:
        return self.name < other.name

    @property
    def descriptor(self) -> Path:
        return self.root / DESCRIPTOR_FILE

    def symbolic_name_differs(self) -> bool:
        return self.symbolic_name != self.name

    def describe(self) -> str:
        """Human-readable multi-line summary of the project."""
        lines = [f"{self.name}"]
        if self.symbolic_name_differs():
            lines.append(f"  symbolic name: {self.symbolic_name}")
        lines.append(f"  root: {self.root}")
        flags = [
            flag for flag, on in (
                ("no-bundle", self.is_no_bundle),
                ("publish-disabled", self.publish_disabled),
            ) if on
        ]
        if flags:
            lines.append(f"  flags: {', '.join(flags)}")
        if self.initial_deps:
            lines.append("  declared dependencies:")
            lines.extend(f"    {dep}" for dep in sorted(self.initial_deps))
        return "\n".join(lines)


@dataclass
class ProjectMatch:
    """Result of a lenient pattern lookup."""
    paths: list[Path] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unmatched
