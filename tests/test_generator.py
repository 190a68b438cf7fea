"""Tests for story DAG generation logic."""

import logging
import random

import pytest

from storydag.dag import DagSealedError, StoryDag, StoryNode
from storydag.generator import (
    MAX_GENERATION_ATTEMPTS,
    GenerationError,
    GenerationExhausted,
    _interleave_by_track,
    _stable_shuffle,
    generate_dag,
    generate_with_retry,
)
from storydag.planner import level_count, merge_levels
from storydag.topology import ConvergencePattern, TopologySpec
from storydag.validator import GraphInvariantViolation, ViolationKind, validate_dag


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


def in_degrees(dag: StoryDag) -> dict[str, int]:
    counts = {node_id: 0 for node_id in dag.nodes}
    for edge in dag.edges:
        counts[edge.target_id] += 1
    return counts


def make_infeasible() -> TopologySpec:
    """100 nodes cannot fit in 3 levels of branching factor 4."""
    return make_spec(
        100, ConvergencePattern.PURE_BRANCHING, max_depth=3, branching_factor=4
    )


# =============================================================================
# Helper tests
# =============================================================================


class TestShuffleHelpers:
    """Tests for ordering helpers."""

    def test_stable_shuffle_preferred_first(self):
        nodes = [StoryNode(id=f"n{i}", level=1) for i in range(6)]
        first = {"n1", "n4"}
        result = _stable_shuffle(nodes, first, random.Random(3))
        assert {n.id for n in result[:2]} == first
        assert {n.id for n in result} == {n.id for n in nodes}

    def test_interleave_by_track(self):
        """Parents alternate tracks so round-robin spreads children."""
        parents = [
            StoryNode(id="a0", level=1, track=0),
            StoryNode(id="a1", level=1, track=0),
            StoryNode(id="b0", level=1, track=1),
            StoryNode(id="c0", level=1, track=2),
        ]
        order = _interleave_by_track(parents, random.Random(1))
        assert [n.track for n in order] == [0, 1, 2, 0]

    def test_interleave_without_tracks(self):
        parents = [StoryNode(id=f"n{i}", level=1) for i in range(4)]
        order = _interleave_by_track(parents, random.Random(1))
        assert sorted(n.id for n in order) == ["n0", "n1", "n2", "n3"]


# =============================================================================
# generate_dag tests
# =============================================================================


class TestGenerateDag:
    """Tests for single-candidate generation."""

    def test_exact_node_count_and_single_root(self):
        spec = make_spec(16)
        dag = generate_dag(spec, 42)
        assert dag.total_nodes() == 16
        roots = [nid for nid, count in in_degrees(dag).items() if count == 0]
        assert roots == [dag.start_id]
        assert dag.nodes[dag.start_id].level == 0
        assert dag.nodes[dag.start_id].is_start

    def test_edges_go_deeper(self):
        dag = generate_dag(make_spec(30, ConvergencePattern.MULTIPLE_CONVERGENCE), 5)
        for edge in dag.edges:
            assert dag.nodes[edge.source_id].level < dag.nodes[edge.target_id].level

    def test_reproducible(self):
        """The same seed yields the same graph."""
        spec = make_spec(24, ConvergencePattern.END_ONLY, ratio=0.75, max_depth=12)
        first = generate_dag(spec, 1234)
        second = generate_dag(spec, 1234)
        assert first.edges == second.edges
        assert sorted(first.nodes) == sorted(second.nodes)

    def test_different_seeds_vary(self):
        spec = make_spec(40, ConvergencePattern.PURE_BRANCHING, branching_factor=3)
        shapes = set()
        for seed in range(10):
            dag = generate_dag(spec, seed)
            shapes.add(tuple((e.source_id, e.target_id) for e in dag.edges))
        assert len(shapes) > 1

    def test_seed_recorded(self):
        assert generate_dag(make_spec(), 77).seed == 77

    def test_not_sealed(self):
        assert not generate_dag(make_spec(), 1).sealed

    def test_choice_ids_unique(self):
        spec = make_spec(
            50,
            ConvergencePattern.MULTIPLE_CONVERGENCE,
            ratio=0.4,
            max_depth=15,
            branching_factor=3,
        )
        dag = generate_dag(spec, 9)
        choice_ids = [e.choice_id for e in dag.edges]
        assert len(choice_ids) == len(set(choice_ids))
        for node in dag.nodes.values():
            assert node.choice_ids == [
                e.choice_id for e in dag.get_outgoing_edges(node.id)
            ]

    def test_capacity_failure(self):
        with pytest.raises(GraphInvariantViolation) as exc_info:
            generate_dag(make_infeasible(), 1)
        assert exc_info.value.kind is ViolationKind.CAPACITY


class TestPatterns:
    """Tests for the shape of each convergence pattern."""

    @pytest.mark.parametrize("seed", range(15))
    def test_pure_branching_is_tree(self, seed):
        spec = make_spec(30, ConvergencePattern.PURE_BRANCHING, branching_factor=3)
        dag = generate_dag(spec, seed)
        assert max(in_degrees(dag).values()) <= 1
        assert dag.convergence_points == []

    @pytest.mark.parametrize("seed", range(15))
    def test_single_convergence(self, seed):
        spec = make_spec(16, ratio=0.25)
        dag = generate_dag(spec, seed)
        assert len(dag.convergence_points) == 1
        level = dag.nodes[dag.convergence_points[0]].level
        assert abs(level - 4) <= 1

    @pytest.mark.parametrize("seed", range(10))
    def test_multiple_convergence_levels(self, seed):
        spec = make_spec(16, ConvergencePattern.MULTIPLE_CONVERGENCE, ratio=0.6)
        dag = generate_dag(spec, seed)
        levels = [dag.nodes[nid].level for nid in dag.convergence_points]
        assert levels == merge_levels(spec, level_count(spec))

    @pytest.mark.parametrize("seed", range(10))
    def test_end_only_merges_late(self, seed):
        spec = make_spec(24, ConvergencePattern.END_ONLY, ratio=0.9, max_depth=12)
        dag = generate_dag(spec, seed)
        levels = [dag.nodes[nid].level for nid in dag.convergence_points]
        assert levels
        assert min(levels) >= 11

    def test_end_only_small_graph(self):
        """Five nodes: start, two branches, one merge, one ending."""
        spec = make_spec(5, ConvergencePattern.END_ONLY, ratio=0.2, max_depth=10)
        result = generate_with_retry(spec, seed=7)
        dag = result.dag
        assert result.attempts == 1
        assert [len(dag.nodes_at(level)) for level in range(4)] == [1, 2, 1, 1]
        assert [dag.nodes[nid].level for nid in dag.convergence_points] == [2]
        assert len(dag.end_ids) == 1

    @pytest.mark.parametrize("seed", range(10))
    def test_end_only_tail_after_merge(self, seed):
        spec = make_spec(7, ConvergencePattern.END_ONLY, ratio=0.1, max_depth=20)
        result = generate_with_retry(spec, seed=seed)
        dag = result.dag
        assert result.attempts == 1
        assert dag.total_nodes() == 7
        assert dag.max_level() == 4
        assert dag.convergence_points
        assert all(dag.nodes[nid].level >= 2 for nid in dag.convergence_points)

    @pytest.mark.parametrize("seed", range(10))
    def test_parallel_paths_tracks(self, seed):
        spec = make_spec(20, ConvergencePattern.PARALLEL_PATHS, branching_factor=3)
        dag = generate_dag(spec, seed)
        assert dag.out_degree(dag.start_id) == 3
        first = sorted(n.track for n in dag.nodes_at(1))
        assert first == [0, 1, 2]
        for edge in dag.edges:
            if edge.source_id == dag.start_id:
                continue
            assert dag.nodes[edge.source_id].track == dag.nodes[edge.target_id].track
        assert dag.convergence_points == []


# =============================================================================
# generate_with_retry tests
# =============================================================================


class TestGenerateWithRetry:
    """Tests for bounded regeneration."""

    def test_fixed_seed_first_attempt(self):
        result = generate_with_retry(make_spec(), seed=42)
        assert result.seed == 42
        assert result.attempts == 1
        assert result.validation.is_valid
        assert result.dag.total_nodes() == 16

    def test_result_is_sealed(self):
        result = generate_with_retry(make_spec(), seed=42)
        assert result.dag.sealed
        with pytest.raises(DagSealedError):
            result.dag.add_node(StoryNode(id="extra", level=1))

    def test_sealed_result_still_validates(self):
        spec = make_spec()
        result = generate_with_retry(spec, seed=42)
        assert validate_dag(result.dag, spec).is_valid

    def test_random_seed(self):
        result = generate_with_retry(make_spec())
        assert 1 <= result.seed <= 999999999
        assert validate_dag(result.dag, make_spec()).is_valid

    def test_reproducible(self):
        spec = make_spec(40, ConvergencePattern.PURE_BRANCHING, branching_factor=3)
        first = generate_with_retry(spec, seed=8)
        second = generate_with_retry(spec, seed=8)
        assert first.dag.edges == second.dag.edges

    def test_exhausted_after_ten_attempts(self):
        """An infeasible but valid spec fails after exactly 10 attempts."""
        with pytest.raises(GenerationExhausted) as exc_info:
            generate_with_retry(make_infeasible(), seed=7)
        error = exc_info.value
        assert isinstance(error, GenerationError)
        assert error.attempts == MAX_GENERATION_ATTEMPTS == 10
        assert len(error.violations) == 10
        assert {v.kind for v in error.violations} == {ViolationKind.CAPACITY}
        assert "10 attempts" in str(error)

    def test_custom_attempt_bound(self):
        with pytest.raises(GenerationExhausted) as exc_info:
            generate_with_retry(make_infeasible(), max_attempts=3)
        assert exc_info.value.attempts == 3

    def test_failures_logged(self, caplog):
        caplog.set_level(logging.WARNING, logger="storydag.generator")
        with pytest.raises(GenerationExhausted):
            generate_with_retry(make_infeasible(), seed=7)
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(warnings) == 10
        assert "seed 7 failed" in warnings[0].getMessage()
        assert len(errors) == 1
