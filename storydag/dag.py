"""DAG data structures for story graphs.

A StoryDag is the skeleton of an interactive story: nodes are story beats
placed on levels, edges are reader choices. Edges only ever run from one
level to a strictly deeper one, so the graph is acyclic by construction.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


class DagSealedError(RuntimeError):
    """Attempt to mutate a DAG after it was sealed."""

    pass


def _guard_setattr(obj: Any, name: str, value: Any) -> None:
    if getattr(obj, "_sealed", False):
        raise DagSealedError(
            f"{type(obj).__name__} is sealed, cannot set '{name}'"
        )
    object.__setattr__(obj, name, value)


@dataclass
class StoryNode:
    """A story beat placeholder.

    Nodes are identified by their `id` field. Two nodes with the same id
    are considered equal regardless of other fields.
    """

    id: str
    level: int
    choice_ids: list[str] = field(default_factory=list)  # outgoing, in order
    is_start: bool = False
    is_end: bool = False
    is_convergence: bool = False
    track: int | None = None  # ParallelPaths track index
    _sealed: bool = field(default=False, init=False, repr=False, compare=False)

    __setattr__ = _guard_setattr

    def _freeze(self) -> None:
        self.choice_ids = tuple(self.choice_ids)
        self._sealed = True

    def __hash__(self) -> int:
        """Hash by id only."""
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        """Equality by id only."""
        if not isinstance(other, StoryNode):
            return NotImplemented
        return self.id == other.id


@dataclass(frozen=True)
class StoryEdge:
    """A reader choice leading from one node to another."""

    source_id: str
    target_id: str
    choice_id: str


@dataclass
class StoryDag:
    """The complete story graph.

    - Nodes are story beats placed on levels (distance from the start)
    - Edges are choices between consecutive-or-deeper levels
    - Every node is reachable from start_id
    """

    seed: int
    nodes: dict[str, StoryNode] = field(default_factory=dict)
    edges: list[StoryEdge] = field(default_factory=list)
    start_id: str = ""
    _sealed: bool = field(default=False, repr=False, compare=False)

    __setattr__ = _guard_setattr

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Freeze the graph after validation.

        Edges and every node's choice_ids become tuples, nodes becomes a
        read-only mapping, and setting any attribute on the DAG or one of its
        nodes raises DagSealedError, as do add_node, add_edge and
        refresh_flags.
        """
        if self._sealed:
            return
        for node in self.nodes.values():
            node._freeze()
        self.edges = tuple(self.edges)
        self.nodes = MappingProxyType(dict(self.nodes))
        self._sealed = True

    def _check_mutable(self) -> None:
        if self._sealed:
            raise DagSealedError("StoryDag is sealed and can no longer change")

    def add_node(self, node: StoryNode) -> None:
        """Add a node to the DAG."""
        self._check_mutable()
        self.nodes[node.id] = node

    def add_edge(self, source_id: str, target_id: str, choice_id: str) -> StoryEdge:
        """Add a choice edge and record it on the source node.

        Args:
            source_id: ID of the source node
            target_id: ID of the target node
            choice_id: Unique id of the choice

        Returns:
            The new edge.
        """
        self._check_mutable()
        edge = StoryEdge(source_id, target_id, choice_id)
        self.edges.append(edge)
        source = self.nodes.get(source_id)
        if source is not None:
            source.choice_ids.append(choice_id)
        return edge

    def get_node(self, node_id: str) -> StoryNode | None:
        """Get a node by id, or None if not found."""
        return self.nodes.get(node_id)

    def get_outgoing_edges(self, node_id: str) -> list[StoryEdge]:
        """Get all edges originating from a node."""
        return [e for e in self.edges if e.source_id == node_id]

    def get_incoming_edges(self, node_id: str) -> list[StoryEdge]:
        """Get all edges targeting a node."""
        return [e for e in self.edges if e.target_id == node_id]

    def in_degree(self, node_id: str) -> int:
        return sum(1 for e in self.edges if e.target_id == node_id)

    def out_degree(self, node_id: str) -> int:
        return sum(1 for e in self.edges if e.source_id == node_id)

    @property
    def convergence_points(self) -> list[str]:
        """Ids of nodes with in-degree >= 2, ordered by (level, id)."""
        counts: dict[str, int] = {}
        for edge in self.edges:
            counts[edge.target_id] = counts.get(edge.target_id, 0) + 1
        merged = [
            self.nodes[node_id]
            for node_id, count in counts.items()
            if count >= 2 and node_id in self.nodes
        ]
        return [n.id for n in sorted(merged, key=lambda n: (n.level, n.id))]

    @property
    def end_ids(self) -> list[str]:
        """Ids of nodes without outgoing edges, ordered by (level, id)."""
        sources = {e.source_id for e in self.edges}
        ends = [n for n in self.nodes.values() if n.id not in sources]
        return [n.id for n in sorted(ends, key=lambda n: (n.level, n.id))]

    def max_level(self) -> int:
        """Deepest level in the graph (-1 when empty)."""
        return max((n.level for n in self.nodes.values()), default=-1)

    def total_nodes(self) -> int:
        """Return the total number of nodes in the DAG."""
        return len(self.nodes)

    def nodes_at(self, level: int) -> list[StoryNode]:
        """Nodes on a level, ordered by id."""
        return sorted(
            (n for n in self.nodes.values() if n.level == level), key=lambda n: n.id
        )

    def count_paths(self) -> int:
        """Count distinct start-to-end paths.

        Uses dynamic programming over levels instead of enumeration, since a
        wide tree can hold a very large number of paths.

        Returns:
            Number of paths, or 0 if start_id is missing.
        """
        if not self.start_id or self.start_id not in self.nodes:
            return 0

        paths_to: dict[str, int] = {self.start_id: 1}
        total = 0
        for node in sorted(self.nodes.values(), key=lambda n: n.level):
            count = paths_to.get(node.id, 0)
            if count == 0:
                continue
            outgoing = self.get_outgoing_edges(node.id)
            if not outgoing:
                total += count
            for edge in outgoing:
                paths_to[edge.target_id] = paths_to.get(edge.target_id, 0) + count
        return total

    def path_lengths(self) -> tuple[int, int]:
        """Shortest and longest start-to-end path length, in edges.

        Returns:
            (shortest, longest), or (0, 0) if start_id is missing.
        """
        if not self.start_id or self.start_id not in self.nodes:
            return (0, 0)

        shortest: dict[str, int] = {self.start_id: 0}
        longest: dict[str, int] = {self.start_id: 0}
        ends: list[str] = []
        for node in sorted(self.nodes.values(), key=lambda n: n.level):
            if node.id not in shortest:
                continue
            outgoing = self.get_outgoing_edges(node.id)
            if not outgoing:
                ends.append(node.id)
            for edge in outgoing:
                target = edge.target_id
                near = shortest[node.id] + 1
                far = longest[node.id] + 1
                shortest[target] = min(shortest.get(target, near), near)
                longest[target] = max(longest.get(target, far), far)
        if not ends:
            return (0, 0)
        return (min(shortest[e] for e in ends), max(longest[e] for e in ends))

    def reachable_from(self, node_id: str) -> set[str]:
        """Find all nodes reachable from node_id (including itself) via BFS."""
        if node_id not in self.nodes:
            return set()
        reachable: set[str] = {node_id}
        queue: deque[str] = deque([node_id])
        while queue:
            current = queue.popleft()
            for edge in self.get_outgoing_edges(current):
                if edge.target_id not in reachable:
                    reachable.add(edge.target_id)
                    queue.append(edge.target_id)
        return reachable

    def refresh_flags(self) -> None:
        """Recompute is_start, is_end and is_convergence from the edges."""
        self._check_mutable()
        in_counts: dict[str, int] = {}
        sources: set[str] = set()
        for edge in self.edges:
            in_counts[edge.target_id] = in_counts.get(edge.target_id, 0) + 1
            sources.add(edge.source_id)
        for node in self.nodes.values():
            node.is_start = node.id == self.start_id
            node.is_end = node.id not in sources
            node.is_convergence = in_counts.get(node.id, 0) >= 2
