"""Story DAG validation.

This module validates candidate graphs against the structural invariants a
TopologySpec promises, distinguishing between violations (blocking, they
trigger regeneration) and warnings (informational).
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum, auto

from storydag.dag import StoryDag
from storydag.ids import NodeIdAllocator
from storydag.planner import contraction_start, merge_levels, track_count
from storydag.topology import ConvergencePattern, TopologySpec


class ViolationKind(Enum):
    """Category of a broken graph invariant."""

    MISSING_START = auto()
    ROOT_COUNT = auto()
    DANGLING_EDGE = auto()
    LEVEL_ORDER = auto()
    DUPLICATE_CHOICE = auto()
    NODE_COUNT = auto()
    DEPTH_EXCEEDED = auto()
    OUT_DEGREE = auto()
    UNREACHABLE = auto()
    DEAD_END = auto()
    FLAG_MISMATCH = auto()
    CONVERGENCE = auto()
    TRACK_CROSSING = auto()
    CAPACITY = auto()


class GraphInvariantViolation(Exception):
    """A candidate graph broke one structural invariant.

    Attributes:
        kind: Which invariant failed.
        message: Human-readable detail.
    """

    def __init__(self, kind: ViolationKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(f"{kind.name}: {message}")


@dataclass
class ValidationResult:
    """Result of graph validation.

    Attributes:
        is_valid: True if the graph passes all required checks.
        violations: Blocking invariant failures.
        warnings: Informational issues that don't block validation.
    """

    is_valid: bool
    violations: list[GraphInvariantViolation] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        """Violation messages, prefixed with their kind."""
        return [str(v) for v in self.violations]

    @property
    def kinds(self) -> set[ViolationKind]:
        return {v.kind for v in self.violations}


def validate_dag(dag: StoryDag, spec: TopologySpec) -> ValidationResult:
    """Validate a graph against its topology spec.

    Checks:
    - Single root: the start node, at level 0, is the only in-degree 0 node
    - Edges reference existing nodes and strictly increase level
    - No duplicate choice between the same pair of nodes
    - Node count, depth and out-degree bounds
    - Every node reachable from the start
    - End flags match out-degree, other flags match the edges
    - Convergence count and placement match the pattern
    - ParallelPaths tracks never cross

    Args:
        dag: The graph to validate.
        spec: Topology spec it was generated from.

    Returns:
        ValidationResult with violations and warnings.
    """
    violations: list[GraphInvariantViolation] = []
    warnings: list[str] = []

    _check_root(dag, violations)
    _check_edges(dag, violations)
    _check_bounds(dag, spec, violations)
    _check_reachability(dag, violations)
    _check_flags(dag, violations)
    _check_convergence(dag, spec, violations)
    if spec.convergence_pattern is ConvergencePattern.PARALLEL_PATHS:
        _check_tracks(dag, spec, violations)

    if not violations and dag.count_paths() == 1:
        warnings.append("Only one path from start to end (no real choice)")

    return ValidationResult(
        is_valid=len(violations) == 0,
        violations=violations,
        warnings=warnings,
    )


def _check_root(dag: StoryDag, violations: list[GraphInvariantViolation]) -> None:
    start = dag.get_node(dag.start_id) if dag.start_id else None
    if start is None:
        violations.append(
            GraphInvariantViolation(
                ViolationKind.MISSING_START,
                f"Start node '{dag.start_id}' not found in nodes",
            )
        )
    elif start.level != 0:
        violations.append(
            GraphInvariantViolation(
                ViolationKind.MISSING_START,
                f"Start node '{start.id}' is at level {start.level}, expected 0",
            )
        )

    targets = {e.target_id for e in dag.edges}
    roots = sorted(node_id for node_id in dag.nodes if node_id not in targets)
    if roots != [dag.start_id]:
        violations.append(
            GraphInvariantViolation(
                ViolationKind.ROOT_COUNT,
                f"Expected exactly one in-degree 0 node '{dag.start_id}', "
                f"found {roots}",
            )
        )


def _check_edges(dag: StoryDag, violations: list[GraphInvariantViolation]) -> None:
    pairs: Counter[tuple[str, str]] = Counter()
    choices: Counter[str] = Counter()

    for edge in dag.edges:
        pairs[(edge.source_id, edge.target_id)] += 1
        choices[edge.choice_id] += 1

        missing = [
            node_id
            for node_id in (edge.source_id, edge.target_id)
            if node_id not in dag.nodes
        ]
        if missing:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.DANGLING_EDGE,
                    f"Edge '{edge.choice_id}' references missing node(s) {missing}",
                )
            )
            continue

        source_level = dag.nodes[edge.source_id].level
        target_level = dag.nodes[edge.target_id].level
        if source_level >= target_level:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.LEVEL_ORDER,
                    f"Edge from '{edge.source_id}' (level {source_level}) "
                    f"to '{edge.target_id}' (level {target_level}) "
                    f"does not go deeper",
                )
            )

    for (source_id, target_id), count in pairs.items():
        if count > 1:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.DUPLICATE_CHOICE,
                    f"{count} choices from '{source_id}' to '{target_id}'",
                )
            )
    for choice_id, count in choices.items():
        if count > 1:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.DUPLICATE_CHOICE,
                    f"Choice id '{choice_id}' used {count} times",
                )
            )


def _check_bounds(
    dag: StoryDag, spec: TopologySpec, violations: list[GraphInvariantViolation]
) -> None:
    if dag.total_nodes() != spec.node_count:
        violations.append(
            GraphInvariantViolation(
                ViolationKind.NODE_COUNT,
                f"Graph has {dag.total_nodes()} nodes, expected {spec.node_count}",
            )
        )

    depth = dag.max_level()
    if depth > spec.max_depth:
        violations.append(
            GraphInvariantViolation(
                ViolationKind.DEPTH_EXCEEDED,
                f"Graph reaches level {depth}, max_depth is {spec.max_depth}",
            )
        )

    out_degrees = Counter(e.source_id for e in dag.edges)
    for node_id in sorted(out_degrees):
        if out_degrees[node_id] > spec.branching_factor:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.OUT_DEGREE,
                    f"Node '{node_id}' has {out_degrees[node_id]} choices, "
                    f"branching_factor is {spec.branching_factor}",
                )
            )


def _check_reachability(
    dag: StoryDag, violations: list[GraphInvariantViolation]
) -> None:
    if dag.start_id not in dag.nodes:
        return
    reachable = dag.reachable_from(dag.start_id)
    for node_id in sorted(dag.nodes):
        if node_id not in reachable:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.UNREACHABLE,
                    f"Node '{node_id}' is unreachable from start",
                )
            )


def _check_flags(dag: StoryDag, violations: list[GraphInvariantViolation]) -> None:
    in_degrees = Counter(e.target_id for e in dag.edges)
    outgoing: dict[str, list[str]] = {}
    for edge in dag.edges:
        outgoing.setdefault(edge.source_id, []).append(edge.choice_id)

    for node in sorted(dag.nodes.values(), key=lambda n: (n.level, n.id)):
        choice_ids = outgoing.get(node.id, [])
        if node.is_end and choice_ids:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.DEAD_END,
                    f"End node '{node.id}' has {len(choice_ids)} choices",
                )
            )
        elif not node.is_end and not choice_ids:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.DEAD_END,
                    f"Node '{node.id}' has no choices but is not an end",
                )
            )

        if node.is_start != (node.id == dag.start_id):
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.FLAG_MISMATCH,
                    f"Node '{node.id}' has is_start={node.is_start}",
                )
            )
        if node.is_convergence != (in_degrees[node.id] >= 2):
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.FLAG_MISMATCH,
                    f"Node '{node.id}' has is_convergence={node.is_convergence} "
                    f"with in-degree {in_degrees[node.id]}",
                )
            )
        if list(node.choice_ids) != choice_ids:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.FLAG_MISMATCH,
                    f"Node '{node.id}' lists choices {list(node.choice_ids)}, "
                    f"edges give {choice_ids}",
                )
            )


def _check_convergence(
    dag: StoryDag, spec: TopologySpec, violations: list[GraphInvariantViolation]
) -> None:
    pattern = spec.convergence_pattern
    points = dag.convergence_points
    depth = dag.max_level()
    levels = [dag.nodes[node_id].level for node_id in points]

    def fail(message: str) -> None:
        violations.append(
            GraphInvariantViolation(ViolationKind.CONVERGENCE, message)
        )

    if pattern is ConvergencePattern.SINGLE_CONVERGENCE:
        planned = merge_levels(spec, max(depth, 2))[0]
        if len(points) != 1:
            fail(f"Expected exactly 1 convergence point, found {len(points)}")
        elif abs(levels[0] - planned) > 1:
            fail(
                f"Convergence point '{points[0]}' at level {levels[0]}, "
                f"expected within one level of {planned}"
            )

    elif pattern is ConvergencePattern.MULTIPLE_CONVERGENCE:
        planned_levels = merge_levels(spec, max(depth, 2))
        per_level = Counter(levels)
        for level in planned_levels:
            if per_level[level] != 1:
                fail(
                    f"Expected 1 convergence point at level {level}, "
                    f"found {per_level[level]}"
                )
        stray = sorted(set(per_level) - set(planned_levels))
        if stray:
            fail(f"Unplanned convergence points at levels {stray}")

    elif pattern is ConvergencePattern.END_ONLY:
        start = contraction_start(spec, max(depth, 2))
        assert start is not None
        if not points:
            fail("Expected at least 1 convergence point, found none")
        early = [
            node_id for node_id, level in zip(points, levels) if level < start
        ]
        if early:
            fail(f"Convergence points {early} before contraction level {start}")

    elif points:
        fail(f"{pattern.value} allows no convergence points, found {points}")


def _check_tracks(
    dag: StoryDag, spec: TopologySpec, violations: list[GraphInvariantViolation]
) -> None:
    expected = track_count(spec)
    allocator = NodeIdAllocator.from_dag(dag)
    first_level = allocator.ids_at(1)

    start_choices = dag.out_degree(dag.start_id) if dag.start_id in dag.nodes else 0
    if start_choices != expected:
        violations.append(
            GraphInvariantViolation(
                ViolationKind.TRACK_CROSSING,
                f"Start node has {start_choices} choices, expected {expected} tracks",
            )
        )

    tracks = [dag.nodes[node_id].track for node_id in first_level]
    if len(set(tracks)) != len(tracks) or None in tracks:
        violations.append(
            GraphInvariantViolation(
                ViolationKind.TRACK_CROSSING,
                f"Level 1 nodes must start distinct tracks, got {tracks}",
            )
        )

    for edge in dag.edges:
        if edge.source_id == dag.start_id:
            continue
        source = dag.get_node(edge.source_id)
        target = dag.get_node(edge.target_id)
        if source is None or target is None:
            continue
        if source.track is None or source.track != target.track:
            violations.append(
                GraphInvariantViolation(
                    ViolationKind.TRACK_CROSSING,
                    f"Edge from '{source.id}' (track {source.track}) "
                    f"to '{target.id}' (track {target.track}) crosses tracks",
                )
            )
