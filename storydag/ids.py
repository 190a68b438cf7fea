"""Node identifier allocation and level bookkeeping.

The generator allocates every node id here, and the validator rebuilds the
same bookkeeping from a finished DAG to group nodes by level.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from storydag.dag import StoryDag


class NodeIdAllocator:
    """Issue unique node and choice ids and track each node's level.

    Node ids are "<prefix>_<n>" in allocation order. Choice ids are
    "<node_id>_choice_<k>", numbered per source node.
    """

    def __init__(self, prefix: str = "node") -> None:
        self.prefix = prefix
        self._next = 0
        self._levels: dict[str, int] = {}
        self._by_level: dict[int, list[str]] = defaultdict(list)
        self._choices: dict[str, int] = defaultdict(int)

    def allocate(self, level: int) -> str:
        """Allocate a fresh node id at the given level."""
        node_id = f"{self.prefix}_{self._next}"
        while node_id in self._levels:
            self._next += 1
            node_id = f"{self.prefix}_{self._next}"
        self._next += 1
        self.register(node_id, level)
        return node_id

    def register(self, node_id: str, level: int) -> None:
        """Record an existing node id at a level.

        Raises:
            ValueError: If the id is already known or the level is negative.
        """
        if node_id in self._levels:
            raise ValueError(f"Duplicate node id: '{node_id}'")
        if level < 0:
            raise ValueError(f"Level must be non-negative, got {level}")
        self._levels[node_id] = level
        self._by_level[level].append(node_id)

    def next_choice_id(self, node_id: str) -> str:
        """Return the next choice id for an outgoing edge of node_id."""
        index = self._choices[node_id]
        self._choices[node_id] = index + 1
        return f"{node_id}_choice_{index}"

    def level_of(self, node_id: str) -> int:
        """Level of a registered node.

        Raises:
            KeyError: If the node id is unknown.
        """
        return self._levels[node_id]

    def ids_at(self, level: int) -> list[str]:
        """Node ids at a level, in registration order."""
        return list(self._by_level.get(level, []))

    @property
    def depth(self) -> int:
        """Deepest populated level (-1 when empty)."""
        return max(self._by_level, default=-1)

    def levels(self) -> list[int]:
        """Populated levels in ascending order."""
        return sorted(level for level, ids in self._by_level.items() if ids)

    def __len__(self) -> int:
        return len(self._levels)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._levels

    @classmethod
    def from_dag(cls, dag: StoryDag) -> NodeIdAllocator:
        """Rebuild bookkeeping from a DAG's nodes (sorted by level, then id)."""
        allocator = cls()
        for node in sorted(dag.nodes.values(), key=lambda n: (n.level, n.id)):
            allocator.register(node.id, node.level)
        for node in dag.nodes.values():
            allocator._choices[node.id] = len(node.choice_ids)
        return allocator
