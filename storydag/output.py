"""Output module for story DAG export.

This module provides functions to export a generated DAG to:
- JSON format for the content-generation collaborator
- A human-readable, level-by-level outline
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from storydag.dag import StoryDag
from storydag.paths import PathStats
from storydag.resolver import Provenance
from storydag.topology import TopologySpec

FORMAT_VERSION = "1.0"


def dag_to_dict(
    dag: StoryDag,
    spec: TopologySpec | None = None,
    provenance: Provenance | None = None,
) -> dict[str, Any]:
    """Convert a DAG to a JSON-serializable dictionary.

    Args:
        dag: The DAG to convert
        spec: Optional topology spec to embed
        provenance: Optional provenance of the spec

    Returns:
        Dictionary with the following structure:
        - version: format version string
        - seed: int
        - start_node_id, total_levels, total_nodes, total_paths: metadata
        - convergence_points, end_node_ids: lists of node ids
        - nodes: dict of node_id -> {level, choice_ids, flags, track}
        - edges: list of {from, to, choice_id}
        - topology / provenance: only when given
    """
    nodes: dict[str, dict[str, Any]] = {}
    for node in sorted(dag.nodes.values(), key=lambda n: (n.level, n.id)):
        entry: dict[str, Any] = {
            "level": node.level,
            "choice_ids": list(node.choice_ids),
            "is_start": node.is_start,
            "is_end": node.is_end,
            "is_convergence": node.is_convergence,
        }
        if node.track is not None:
            entry["track"] = node.track
        nodes[node.id] = entry

    data: dict[str, Any] = {
        "version": FORMAT_VERSION,
        "seed": dag.seed,
        "start_node_id": dag.start_id,
        "total_levels": dag.max_level() + 1,
        "total_nodes": dag.total_nodes(),
        "total_paths": dag.count_paths(),
        "convergence_points": dag.convergence_points,
        "end_node_ids": dag.end_ids,
        "nodes": nodes,
        "edges": [
            {"from": e.source_id, "to": e.target_id, "choice_id": e.choice_id}
            for e in dag.edges
        ],
    }
    if spec is not None:
        data["topology"] = spec.to_dict()
    if provenance is not None:
        data["provenance"] = str(provenance)
    return data


def export_json(
    dag: StoryDag,
    output_path: Path,
    spec: TopologySpec | None = None,
    provenance: Provenance | None = None,
) -> None:
    """Export a DAG to a JSON file.

    Args:
        dag: The DAG to export
        output_path: Path to write the JSON file
        spec: Optional topology spec to embed
        provenance: Optional provenance of the spec
    """
    data = dag_to_dict(dag, spec, provenance)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def order_levels(dag: StoryDag) -> list[list[str]]:
    """Group node ids by level, ordered to reduce edge crossings.

    The first level is sorted by id; each later level is sorted by the
    average position of its parents on the previous level.

    Returns:
        One list of node ids per populated level, shallowest first.
    """
    nodes_by_level: dict[int, list[str]] = {}
    for node_id, node in dag.nodes.items():
        nodes_by_level.setdefault(node.level, []).append(node_id)
    sorted_levels = sorted(nodes_by_level)
    if not sorted_levels:
        return []

    parents: dict[str, list[str]] = {nid: [] for nid in dag.nodes}
    for edge in dag.edges:
        if edge.target_id in parents:
            parents[edge.target_id].append(edge.source_id)

    nodes_by_level[sorted_levels[0]] = sorted(nodes_by_level[sorted_levels[0]])

    def make_sort_key(prev_pos: dict[str, int]) -> Callable[[str], tuple[float, str]]:
        def sort_key(node_id: str) -> tuple[float, str]:
            node_parents = [p for p in parents[node_id] if p in prev_pos]
            if not node_parents:
                barycenter = float("inf")
            else:
                barycenter = sum(prev_pos[p] for p in node_parents) / len(
                    node_parents
                )
            return (barycenter, node_id)

        return sort_key

    for prev_level, level in zip(sorted_levels, sorted_levels[1:]):
        prev_pos = {nid: idx for idx, nid in enumerate(nodes_by_level[prev_level])}
        nodes_by_level[level] = sorted(
            nodes_by_level[level], key=make_sort_key(prev_pos)
        )

    return [nodes_by_level[level] for level in sorted_levels]


def _node_label(dag: StoryDag, node_id: str) -> str:
    node = dag.nodes[node_id]
    marks = []
    if node.is_start:
        marks.append("start")
    if node.is_convergence:
        marks.append("merge")
    if node.is_end:
        marks.append("end")
    if node.track is not None:
        marks.append(f"track {node.track}")
    return f"{node_id} [{', '.join(marks)}]" if marks else node_id


def export_outline(
    dag: StoryDag,
    output_path: Path,
    spec: TopologySpec | None = None,
    provenance: Provenance | None = None,
) -> None:
    """Export a human-readable outline of the DAG, one level at a time.

    Args:
        dag: The DAG to export
        output_path: Path to write the outline
        spec: Optional topology spec to describe in the header
        provenance: Optional provenance of the spec
    """
    stats = PathStats.from_dag(dag)
    lines: list[str] = []

    lines.append("=" * 60)
    lines.append(f"STORY OUTLINE (seed: {dag.seed})")
    lines.append(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append("=" * 60)
    if spec is not None:
        source = f" [{provenance}]" if provenance is not None else ""
        lines.append(f"Topology: {spec.describe()}{source}")
    lines.append(f"Total nodes: {dag.total_nodes()}")
    lines.append(f"Total paths: {stats.path_count}")
    lines.append(f"Endings: {stats.ending_count}")
    lines.append("")

    outgoing: dict[str, list[tuple[str, str]]] = {}
    for edge in dag.edges:
        outgoing.setdefault(edge.source_id, []).append(
            (edge.choice_id, edge.target_id)
        )

    for level, node_ids in enumerate(order_levels(dag)):
        lines.append(f"Level {level}:")
        for node_id in node_ids:
            lines.append(f"  {_node_label(dag, node_id)}")
            for choice_id, target_id in outgoing.get(node_id, []):
                lines.append(f"    {choice_id} -> {target_id}")
        lines.append("")

    with open(output_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
