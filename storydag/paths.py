"""Path statistics for story DAGs.

Summarises how much real choice a generated graph offers: how many distinct
routes a reader can take, how many endings exist, and how long routes are.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from storydag.dag import StoryDag


@dataclass
class PathStats:
    """Statistics about paths through a story DAG.

    Attributes:
        path_count: Number of distinct start-to-end paths
        ending_count: Number of end nodes
        shortest: Shortest path length in edges (0 if no paths)
        longest: Longest path length in edges (0 if no paths)
        convergence_count: Number of convergence points
    """

    path_count: int
    ending_count: int
    shortest: int
    longest: int
    convergence_count: int

    @classmethod
    def from_dag(cls, dag: StoryDag) -> PathStats:
        """Compute path statistics from a DAG.

        Args:
            dag: The DAG to analyze

        Returns:
            PathStats with computed statistics
        """
        shortest, longest = dag.path_lengths()
        return cls(
            path_count=dag.count_paths(),
            ending_count=len(dag.end_ids),
            shortest=shortest,
            longest=longest,
            convergence_count=len(dag.convergence_points),
        )

    @property
    def length_spread(self) -> int:
        return self.longest - self.shortest


def report_paths(dag: StoryDag) -> str:
    """Generate a human-readable path report.

    Args:
        dag: The DAG to analyze

    Returns:
        Multi-line string report
    """
    stats = PathStats.from_dag(dag)
    lines: list[str] = []

    lines.append("=" * 50)
    lines.append("Path Analysis Report")
    lines.append("=" * 50)
    lines.append("")

    lines.append("Path Statistics:")
    lines.append(f"  Total paths: {stats.path_count}")
    lines.append(f"  Endings: {stats.ending_count}")
    if stats.path_count:
        lines.append(f"  Shortest path: {stats.shortest} choices")
        lines.append(f"  Longest path: {stats.longest} choices")
        lines.append(f"  Length spread: {stats.length_spread}")
    lines.append(f"  Convergence points: {stats.convergence_count}")
    lines.append("")

    if dag.convergence_points:
        lines.append("Convergence Points:")
        for node_id in dag.convergence_points:
            node = dag.nodes[node_id]
            lines.append(
                f"  {node_id} (level {node.level}, {dag.in_degree(node_id)} incoming)"
            )
        lines.append("")

    return "\n".join(lines)
