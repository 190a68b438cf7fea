"""Level planning for story DAG generation.

Works out how many levels a graph gets, where convergence happens, and how
many nodes sit on each level. Everything here is a pure function of the
TopologySpec (plus an rng for the size distribution), so the validator can
recompute the same plan from a finished graph.

Level size bounds, given the previous level's size p and branching factor B:

- tree level: B * p (every child has one parent)
- merge level: B * p - 1 (one parent must keep a spare choice)
- contraction level: p (sizes never grow, and may drop to a single node)
- final contraction level: also below the width w of the level before the
  contraction starts, so somewhere from the start on at least two branches
  meet
- ParallelPaths level 1: exactly min(B, node_count - 1) tracks

Only the level before the contraction start needs two nodes; the rest of the
contraction can end as a linear tail.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field

from storydag.topology import ConvergencePattern, TopologySpec


class CapacityError(ValueError):
    """Node count cannot be laid out within the planned levels."""

    pass


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (for non-negatives)."""
    return math.floor(value + 0.5)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def min_levels(spec: TopologySpec) -> int:
    """Fewest levels a pattern needs (a merge needs two levels below start)."""
    return 2 if spec.convergence_pattern.uses_ratio else 1


def track_count(spec: TopologySpec) -> int:
    """Number of parallel tracks (0 unless the pattern is ParallelPaths)."""
    if spec.convergence_pattern is not ConvergencePattern.PARALLEL_PATHS:
        return 0
    return min(spec.branching_factor, spec.node_count - 1)


def merge_levels(spec: TopologySpec, depth: int) -> list[int]:
    """Levels that receive one injected convergence node.

    Args:
        spec: Topology spec.
        depth: Planned level count.

    Returns:
        Ascending merge levels (empty for patterns without merges).
    """
    pattern = spec.convergence_pattern
    if pattern is ConvergencePattern.SINGLE_CONVERGENCE:
        target = round_half_up(spec.node_count * spec.ratio)
        return [_clamp(target, 2, depth)]

    if pattern is ConvergencePattern.MULTIPLE_CONVERGENCE:
        levels: list[int] = []
        if spec.ratio > 0:
            interval = max(1, round_half_up(1 / spec.ratio))
            levels = list(range(max(2, interval), depth + 1, interval))
        if not levels:
            levels = [_clamp(round_half_up(depth / 2), 2, depth)]
        return levels

    return []


def contraction_start(spec: TopologySpec, depth: int) -> int | None:
    """First contracting level for EndOnly, None for other patterns."""
    if spec.convergence_pattern is not ConvergencePattern.END_ONLY:
        return None
    return _clamp(round_half_up(spec.max_depth * spec.ratio), 2, depth)


@dataclass
class LevelPlan:
    """Shape of one candidate graph.

    Attributes:
        depth: Number of levels below the start.
        sizes: Node count per level, index 0 is the start level.
        merge_levels: Levels with an injected convergence node.
        contraction_start: First contracting level (EndOnly only).
        tracks: Parallel track count (ParallelPaths only, else 0).
    """

    depth: int
    sizes: list[int]
    merge_levels: list[int] = field(default_factory=list)
    contraction_start: int | None = None
    tracks: int = 0

    def contracts(self, level: int) -> bool:
        """True if level is part of the EndOnly contraction."""
        return self.contraction_start is not None and level >= self.contraction_start

    def is_merge(self, level: int) -> bool:
        return level in self.merge_levels


def _upper_bound(
    spec: TopologySpec,
    level: int,
    sizes: list[int],
    depth: int,
    merges: list[int],
    start: int | None,
    tracks: int,
) -> int:
    """Bound for level, given sizes of every level above it."""
    previous = sizes[level - 1]
    if tracks and level == 1:
        return tracks
    if start is not None and level >= start:
        if level == depth:
            return min(previous, sizes[start - 1] - 1)
        return previous
    if level in merges:
        return spec.branching_factor * previous - 1
    return spec.branching_factor * previous


def minimum_sizes(spec: TopologySpec, depth: int) -> list[int]:
    """Smallest size each level may take, index 0 is the start level."""
    sizes = [1] * (depth + 1)
    tracks = track_count(spec)
    if tracks:
        sizes[1] = tracks
    for level in merge_levels(spec, depth):
        sizes[level - 1] = max(sizes[level - 1], 2)
    start = contraction_start(spec, depth)
    if start is not None:
        sizes[start - 1] = max(sizes[start - 1], 2)
    # start level always holds exactly one node
    sizes[0] = 1
    return sizes


def maximum_sizes(spec: TopologySpec, depth: int) -> list[int]:
    """Largest size each level can reach, capped at node_count."""
    merges = merge_levels(spec, depth)
    start = contraction_start(spec, depth)
    tracks = track_count(spec)
    sizes = [1]
    for level in range(1, depth + 1):
        bound = _upper_bound(spec, level, sizes, depth, merges, start, tracks)
        sizes.append(min(bound, spec.node_count))
    return sizes


def capacity(spec: TopologySpec, depth: int) -> int:
    """Most non-start nodes that fit in depth levels."""
    return sum(maximum_sizes(spec, depth)[1:])


def _fits(spec: TopologySpec, depth: int) -> bool:
    needed = spec.node_count - 1
    return sum(minimum_sizes(spec, depth)[1:]) <= needed <= capacity(spec, depth)


def level_count(spec: TopologySpec) -> int:
    """Pick the number of levels below the start.

    Starts from the under-filled geometric bound
    min(max_depth, max(ceil((node_count - 1) / branching_factor), min_levels))
    and goes deeper, up to max_depth, until the node count fits. Returns the
    starting bound unchanged if no depth fits.
    """
    base = min(
        spec.max_depth,
        max(math.ceil((spec.node_count - 1) / spec.branching_factor), min_levels(spec)),
    )
    for depth in range(base, spec.max_depth + 1):
        if _fits(spec, depth):
            return depth
    return base


def is_feasible(spec: TopologySpec) -> bool:
    """True if the spec can be laid out at some depth up to max_depth."""
    return _fits(spec, level_count(spec))


def plan_level_sizes(spec: TopologySpec, depth: int, rng: random.Random) -> list[int]:
    """Distribute node_count nodes over levels 0..depth.

    Starts from the minimum sizes and adds the remaining nodes one at a time
    to a random level that still has room under its bound.

    Raises:
        CapacityError: If the minimum sizes already exceed node_count or
            every level is full before all nodes are placed.
    """
    merges = merge_levels(spec, depth)
    start = contraction_start(spec, depth)
    tracks = track_count(spec)
    sizes = minimum_sizes(spec, depth)

    remaining = spec.node_count - sum(sizes)
    if remaining < 0:
        raise CapacityError(
            f"{spec.node_count} nodes cannot cover the minimum of "
            f"{sum(sizes)} nodes over {depth} levels"
        )

    while remaining > 0:
        open_levels = [
            level
            for level in range(1, depth + 1)
            if sizes[level]
            < _upper_bound(spec, level, sizes, depth, merges, start, tracks)
        ]
        if not open_levels:
            raise CapacityError(
                f"{spec.node_count} nodes do not fit in {depth} levels "
                f"with branching factor {spec.branching_factor}"
            )
        sizes[rng.choice(open_levels)] += 1
        remaining -= 1

    return sizes


def plan_levels(spec: TopologySpec, rng: random.Random) -> LevelPlan:
    """Build the full LevelPlan for one candidate graph."""
    depth = level_count(spec)
    return LevelPlan(
        depth=depth,
        sizes=plan_level_sizes(spec, depth, rng),
        merge_levels=merge_levels(spec, depth),
        contraction_start=contraction_start(spec, depth),
        tracks=track_count(spec),
    )
