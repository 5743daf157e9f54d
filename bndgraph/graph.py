"""Directed project graph: vertices in an arena, edges as integer adjacency sets."""

from __future__ import annotations

import heapq
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from bndgraph.errors import DependencyCycleError
from bndgraph.models import Project


@dataclass
class ProjectGraph:
    """Simple directed graph over projects.

    An edge ``a -> b`` means *a* requires *b* to build or test. Vertices are
    addressed by their position in ``vertices``; at most one edge exists per
    ordered pair and self-loops are never stored.
    """
    vertices: list[Project] = field(default_factory=list)
    index: dict[str, int] = field(default_factory=dict)  # project name -> vertex
    forward: list[set[int]] = field(default_factory=list)  # source -> {targets}
    reverse: list[set[int]] = field(default_factory=list)  # target -> {sources}

    def __len__(self) -> int:
        return len(self.vertices)

    def add_vertex(self, project: Project) -> int:
        existing = self.index.get(project.name)
        if existing is not None:
            return existing
        idx = len(self.vertices)
        self.vertices.append(project)
        self.index[project.name] = idx
        self.forward.append(set())
        self.reverse.append(set())
        return idx

    def add_edge(self, source: int, target: int) -> bool:
        """Add ``source -> target``; returns False for self-loops and duplicates."""
        if source == target or target in self.forward[source]:
            return False
        self.forward[source].add(target)
        self.reverse[target].add(source)
        return True

    def has_edge(self, source: int, target: int) -> bool:
        return target in self.forward[source]

    def successors(self, idx: int) -> set[int]:
        return self.forward[idx]

    def predecessors(self, idx: int) -> set[int]:
        return self.reverse[idx]

    def edges(self) -> Iterator[tuple[int, int]]:
        for source, targets in enumerate(self.forward):
            for target in targets:
                yield source, target

    def edge_count(self) -> int:
        return sum(len(targets) for targets in self.forward)

    def copy(self) -> ProjectGraph:
        """Copy sharing the (immutable) vertices but not the edge sets."""
        return ProjectGraph(
            vertices=list(self.vertices),
            index=dict(self.index),
            forward=[set(targets) for targets in self.forward],
            reverse=[set(sources) for sources in self.reverse],
        )

    def reachable_from(self, start: Iterable[int]) -> set[int]:
        """Breadth-first forward closure, including the start vertices."""
        visited = set(start)
        queue = deque(visited)
        while queue:
            current = queue.popleft()
            for neighbor in self.forward[current]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)
        return visited

    def out_degree_within(self, idx: int, subset: set[int]) -> int:
        return sum(1 for target in self.forward[idx] if target in subset)

    def topological_order(self, subset: Iterable[int]) -> list[int]:
        """Order *subset* so every vertex follows all of its dependencies.

        Only edges with both ends inside the subset count. Among vertices
        that are ready at the same time, the one with the smallest project
        name comes first.
        """
        members = set(subset)
        pending = {idx: self.out_degree_within(idx, members) for idx in members}
        ready = [(self.vertices[idx].name, idx) for idx, count in pending.items() if count == 0]
        heapq.heapify(ready)

        order: list[int] = []
        while ready:
            _, idx = heapq.heappop(ready)
            order.append(idx)
            for dependent in self.reverse[idx]:
                if dependent not in members:
                    continue
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    heapq.heappush(ready, (self.vertices[dependent].name, dependent))

        if len(order) != len(members):
            placed = set(order)
            raise DependencyCycleError(
                [self.vertices[idx].name for idx in members if idx not in placed]
            )
        return order
