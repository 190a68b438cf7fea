"""Tests for level planning."""

import random

import pytest

from storydag.planner import (
    CapacityError,
    capacity,
    contraction_start,
    is_feasible,
    level_count,
    maximum_sizes,
    merge_levels,
    minimum_sizes,
    plan_level_sizes,
    plan_levels,
    round_half_up,
    track_count,
)
from storydag.topology import ConvergencePattern, TopologySpec


def make_spec(
    node_count: int = 16,
    pattern: ConvergencePattern = ConvergencePattern.SINGLE_CONVERGENCE,
    ratio: float | None = 0.5,
    max_depth: int = 10,
    branching_factor: int = 2,
) -> TopologySpec:
    """Helper to create a TopologySpec; ratio is dropped when not used."""
    return TopologySpec(
        node_count=node_count,
        convergence_pattern=pattern,
        max_depth=max_depth,
        branching_factor=branching_factor,
        convergence_point_ratio=ratio if pattern.uses_ratio else None,
    )


class TestRounding:
    """Tests for round_half_up."""

    def test_halves_round_up(self):
        """Halves go up, unlike Python's banker's rounding."""
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(4.5) == 5

    def test_other_values(self):
        assert round_half_up(2.0) == 2
        assert round_half_up(1.4999) == 1
        assert round_half_up(1.6667) == 2
        assert round_half_up(0.0) == 0


class TestLevelCount:
    """Tests for level_count."""

    def test_under_filled_geometric_bound(self):
        """8 nodes, branching 2: ceil(7/2) = 4 levels."""
        spec = make_spec(8, ratio=0.25, max_depth=5)
        assert level_count(spec) == 4

    def test_capped_by_max_depth(self):
        spec = make_spec(40, ConvergencePattern.PURE_BRANCHING, max_depth=5)
        assert level_count(spec) == 5

    def test_ratio_patterns_need_two_levels(self):
        spec = make_spec(4, ConvergencePattern.SINGLE_CONVERGENCE, max_depth=3,
                         branching_factor=4)
        assert level_count(spec) == 2

    def test_pure_branching_may_use_one_level(self):
        spec = make_spec(4, ConvergencePattern.PURE_BRANCHING, max_depth=3,
                         branching_factor=4)
        assert level_count(spec) == 1

    def test_goes_deeper_when_needed(self):
        """A contraction that caps capacity pushes the level count past the base."""
        spec = make_spec(13, ConvergencePattern.END_ONLY, ratio=0.0, max_depth=10,
                         branching_factor=3)
        # base ceil(12/3) = 4 holds only 3 + 3 + 3 + 2 = 11 nodes
        assert capacity(spec, 4) == 11
        assert level_count(spec) == 5
        assert is_feasible(spec)

    @pytest.mark.parametrize(
        "node_count, ratio, max_depth, expected",
        [
            (5, 0.2, 10, 3),
            (7, 0.1, 20, 4),
            (4, 0.0, 3, 2),
            (9, 0.05, 20, 5),
        ],
    )
    def test_small_end_only_fits(self, node_count, ratio, max_depth, expected):
        """A merge right after the start followed by a linear tail fits."""
        spec = make_spec(node_count, ConvergencePattern.END_ONLY, ratio=ratio,
                         max_depth=max_depth)
        assert level_count(spec) == expected
        assert is_feasible(spec)

    def test_infeasible_returns_base(self):
        spec = make_spec(100, ConvergencePattern.PURE_BRANCHING, max_depth=3,
                         branching_factor=4)
        assert level_count(spec) == 3
        assert not is_feasible(spec)


class TestConvergencePlacement:
    """Tests for merge_levels and contraction_start."""

    def test_single_convergence(self):
        spec = make_spec(8, ratio=0.25, max_depth=5)
        assert merge_levels(spec, 4) == [2]

    def test_single_convergence_clamped(self):
        assert merge_levels(make_spec(16, ratio=1.0), 8) == [8]
        assert merge_levels(make_spec(16, ratio=0.0), 8) == [2]

    def test_multiple_interval(self):
        """interval = max(1, round(1/ratio))."""
        pattern = ConvergencePattern.MULTIPLE_CONVERGENCE
        assert merge_levels(make_spec(pattern=pattern, ratio=0.6), 8) == [2, 4, 6, 8]
        assert merge_levels(make_spec(pattern=pattern, ratio=0.3), 8) == [3, 6]
        assert merge_levels(make_spec(pattern=pattern, ratio=1.0), 5) == [2, 3, 4, 5]

    def test_multiple_fallback(self):
        """With no level fitting, or ratio 0, merge once at the middle."""
        pattern = ConvergencePattern.MULTIPLE_CONVERGENCE
        assert merge_levels(make_spec(pattern=pattern, ratio=0.1), 8) == [4]
        assert merge_levels(make_spec(pattern=pattern, ratio=0.0), 8) == [4]
        assert merge_levels(make_spec(pattern=pattern, ratio=0.0), 3) == [2]

    @pytest.mark.parametrize(
        "pattern",
        [
            ConvergencePattern.END_ONLY,
            ConvergencePattern.PURE_BRANCHING,
            ConvergencePattern.PARALLEL_PATHS,
        ],
    )
    def test_no_merges_for_other_patterns(self, pattern):
        assert merge_levels(make_spec(pattern=pattern), 8) == []

    def test_contraction_start(self):
        """EndOnly contraction starts at round(max_depth * ratio)."""
        spec = make_spec(24, ConvergencePattern.END_ONLY, ratio=0.9, max_depth=12)
        assert contraction_start(spec, 12) == 11
        assert contraction_start(spec, 6) == 6
        early = make_spec(24, ConvergencePattern.END_ONLY, ratio=0.0, max_depth=12)
        assert contraction_start(early, 12) == 2

    def test_no_contraction_for_other_patterns(self):
        assert contraction_start(make_spec(), 8) is None

    def test_track_count(self):
        pattern = ConvergencePattern.PARALLEL_PATHS
        assert track_count(make_spec(16, pattern, branching_factor=3)) == 3
        assert track_count(make_spec(4, pattern, branching_factor=4)) == 3
        assert track_count(make_spec(16)) == 0


class TestSizeBounds:
    """Tests for minimum_sizes, maximum_sizes and capacity."""

    def test_minimum_before_merge(self):
        spec = make_spec(8, ratio=0.25, max_depth=5)
        assert minimum_sizes(spec, 4) == [1, 2, 1, 1, 1]

    def test_minimum_contraction(self):
        spec = make_spec(24, ConvergencePattern.END_ONLY, ratio=0.5, max_depth=8)
        # contraction starts at level 4: only level 3 needs two branches
        assert minimum_sizes(spec, 8) == [1, 1, 1, 2, 1, 1, 1, 1, 1]

    def test_minimum_parallel_tracks(self):
        spec = make_spec(16, ConvergencePattern.PARALLEL_PATHS, branching_factor=3)
        assert minimum_sizes(spec, 4) == [1, 3, 1, 1, 1]

    def test_maximum_tree(self):
        spec = make_spec(100, ConvergencePattern.PURE_BRANCHING, max_depth=3,
                         branching_factor=4)
        assert maximum_sizes(spec, 3) == [1, 4, 16, 64]
        assert capacity(spec, 3) == 84

    def test_maximum_contraction_shrinks(self):
        spec = make_spec(12, ConvergencePattern.END_ONLY, ratio=0.5, max_depth=6)
        # contraction from level 3; final level loses one
        assert maximum_sizes(spec, 4) == [1, 2, 4, 4, 3]

    def test_final_level_narrower_than_pre_contraction(self):
        """The last level stays below the width before the contraction."""
        spec = make_spec(12, ConvergencePattern.END_ONLY, ratio=0.0, max_depth=6)
        # contraction from level 2, level 1 holds at most 2
        assert maximum_sizes(spec, 4) == [1, 2, 2, 2, 1]

    def test_maximum_merge_level(self):
        spec = make_spec(30, ratio=0.25, max_depth=5)
        # merge level round(30 * 0.25) = 8 clamps to 3
        assert maximum_sizes(spec, 3) == [1, 2, 4, 7]


class TestPlanLevelSizes:
    """Tests for plan_level_sizes and plan_levels."""

    @pytest.mark.parametrize(
        "spec",
        [
            make_spec(8, ratio=0.25, max_depth=5),
            make_spec(16, ConvergencePattern.MULTIPLE_CONVERGENCE, ratio=0.6),
            make_spec(24, ConvergencePattern.END_ONLY, ratio=0.9, max_depth=12),
            make_spec(16, ConvergencePattern.PURE_BRANCHING, branching_factor=3),
            make_spec(20, ConvergencePattern.PARALLEL_PATHS, branching_factor=3),
            make_spec(100, ConvergencePattern.PURE_BRANCHING, max_depth=20,
                      branching_factor=4),
        ],
    )
    def test_sizes_within_bounds(self, spec):
        """Sizes sum to node_count and stay between the minimum and maximum."""
        depth = level_count(spec)
        low = minimum_sizes(spec, depth)
        high = maximum_sizes(spec, depth)
        for seed in range(20):
            sizes = plan_level_sizes(spec, depth, random.Random(seed))
            assert sum(sizes) == spec.node_count
            assert sizes[0] == 1
            assert len(sizes) == depth + 1
            for level in range(depth + 1):
                assert low[level] <= sizes[level] <= max(high[level], low[level])

    def test_deterministic_for_seed(self):
        spec = make_spec(30, ConvergencePattern.PURE_BRANCHING, branching_factor=3)
        depth = level_count(spec)
        first = plan_level_sizes(spec, depth, random.Random(7))
        second = plan_level_sizes(spec, depth, random.Random(7))
        assert first == second

    def test_overflow_raises(self):
        spec = make_spec(100, ConvergencePattern.PURE_BRANCHING, max_depth=3,
                         branching_factor=4)
        with pytest.raises(CapacityError):
            plan_level_sizes(spec, 3, random.Random(1))

    def test_underflow_raises(self):
        """Minimum sizes larger than node_count raise CapacityError."""
        spec = make_spec(4, ConvergencePattern.END_ONLY, ratio=1.0, max_depth=3)
        with pytest.raises(CapacityError):
            plan_level_sizes(spec, 3, random.Random(1))

    def test_plan_levels(self):
        spec = make_spec(16, ConvergencePattern.MULTIPLE_CONVERGENCE, ratio=0.6)
        plan = plan_levels(spec, random.Random(3))
        assert plan.depth == 8
        assert plan.merge_levels == [2, 4, 6, 8]
        assert plan.is_merge(4)
        assert not plan.is_merge(3)
        assert plan.contraction_start is None
        assert not plan.contracts(8)
        assert sum(plan.sizes) == 16

    @pytest.mark.parametrize("seed", range(5))
    def test_end_only_linear_tail(self, seed):
        """Five nodes: two branches, one merge, then a single ending."""
        spec = make_spec(5, ConvergencePattern.END_ONLY, ratio=0.2, max_depth=10)
        plan = plan_levels(spec, random.Random(seed))
        assert plan.sizes == [1, 2, 1, 1]
        assert plan.contraction_start == 2

    def test_plan_levels_end_only(self):
        spec = make_spec(24, ConvergencePattern.END_ONLY, ratio=0.9, max_depth=12)
        plan = plan_levels(spec, random.Random(3))
        assert plan.contraction_start == 11
        assert plan.contracts(11)
        assert plan.contracts(12)
        assert not plan.contracts(10)
