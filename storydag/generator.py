"""Story DAG generation algorithm.

Builds a candidate graph level by level from a LevelPlan:
- Tree levels: every child gets exactly one parent (round-robin)
- Merge levels: one child receives extra choices from spare parents
- Contraction levels (EndOnly): sizes shrink, branches merge toward the end
- ParallelPaths: the start fans out into tracks that never cross
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from storydag.dag import StoryDag, StoryNode
from storydag.ids import NodeIdAllocator
from storydag.planner import CapacityError, LevelPlan, plan_levels
from storydag.topology import TopologySpec
from storydag.validator import (
    GraphInvariantViolation,
    ValidationResult,
    ViolationKind,
    validate_dag,
)

logger = logging.getLogger(__name__)

MAX_GENERATION_ATTEMPTS = 10

# Chance that a contracting parent offers a second choice
EXTRA_CHOICE_PROBABILITY = 0.5


class GenerationError(Exception):
    """Error during DAG generation."""

    pass


class GenerationExhausted(GenerationError):
    """Every regeneration attempt produced an invalid graph.

    Attributes:
        attempts: Number of attempts made.
        violations: Violations from every failed attempt, in order.
    """

    def __init__(
        self, attempts: int, violations: list[GraphInvariantViolation]
    ) -> None:
        self.attempts = attempts
        self.violations = list(violations)
        kinds = sorted({v.kind.name for v in self.violations})
        super().__init__(
            f"Failed to generate a valid DAG after {attempts} attempts "
            f"(violations: {', '.join(kinds) or 'none'})"
        )


@dataclass
class GenerationResult:
    """Result of DAG generation.

    Attributes:
        dag: The generated, sealed DAG.
        seed: The actual seed used for generation.
        validation: Validation result (with any warnings).
        attempts: Number of generation attempts made.
    """

    dag: StoryDag
    seed: int
    validation: ValidationResult
    attempts: int


def _stable_shuffle(
    nodes: list[StoryNode], first: set[str], rng: random.Random
) -> list[StoryNode]:
    """Shuffle nodes with those whose id is in `first` placed first.

    Within each group, order is randomized.
    """
    preferred = [n for n in nodes if n.id in first]
    rest = [n for n in nodes if n.id not in first]
    rng.shuffle(preferred)
    rng.shuffle(rest)
    return preferred + rest


def _interleave_by_track(
    parents: list[StoryNode], rng: random.Random
) -> list[StoryNode]:
    """Shuffle parents, then interleave them track by track.

    Round-robin over the result spreads children evenly across tracks, so
    no track ends early while another still has room.
    """
    by_track: dict[int | None, list[StoryNode]] = {}
    for parent in parents:
        by_track.setdefault(parent.track, []).append(parent)
    groups = [by_track[t] for t in sorted(by_track, key=lambda t: (t is None, t))]
    for group in groups:
        rng.shuffle(group)

    order: list[StoryNode] = []
    for index in range(max((len(g) for g in groups), default=0)):
        for group in groups:
            if index < len(group):
                order.append(group[index])
    return order


def _connect(
    dag: StoryDag, ids: NodeIdAllocator, source: StoryNode, target: StoryNode
) -> None:
    dag.add_edge(source.id, target.id, ids.next_choice_id(source.id))


def _build_tree_level(
    dag: StoryDag,
    ids: NodeIdAllocator,
    parents: list[StoryNode],
    children: list[StoryNode],
    rng: random.Random,
) -> None:
    """Give every child exactly one parent, round-robin over shuffled parents."""
    order = _interleave_by_track(parents, rng)
    for index, child in enumerate(children):
        parent = order[index % len(order)]
        if child.track is None and parent.track is not None:
            child.track = parent.track
        _connect(dag, ids, parent, child)


def _inject_merge(
    dag: StoryDag,
    ids: NodeIdAllocator,
    parents: list[StoryNode],
    children: list[StoryNode],
    branching_factor: int,
    rng: random.Random,
) -> None:
    """Turn one child into a convergence point with extra incoming choices.

    Raises:
        GraphInvariantViolation: If no parent has a spare choice.
    """
    donors = [p for p in parents if dag.out_degree(p.id) < branching_factor]
    parent_of = {
        child.id: dag.get_incoming_edges(child.id)[0].source_id for child in children
    }
    targets = [
        child
        for child in children
        if any(d.id != parent_of[child.id] for d in donors)
    ]
    if not targets:
        raise GraphInvariantViolation(
            ViolationKind.CONVERGENCE,
            f"No merge target at level {children[0].level}: no spare parent choices",
        )

    target = rng.choice(targets)
    eligible = [d for d in donors if d.id != parent_of[target.id]]
    childless = {d.id for d in eligible if dag.out_degree(d.id) == 0}
    count = rng.randint(1, len(eligible))
    for donor in _stable_shuffle(eligible, childless, rng)[:count]:
        _connect(dag, ids, donor, target)


def _build_contraction_level(
    dag: StoryDag,
    ids: NodeIdAllocator,
    parents: list[StoryNode],
    children: list[StoryNode],
    branching_factor: int,
    rng: random.Random,
) -> None:
    """Every parent continues; children never outnumber parents."""
    order = list(children)
    rng.shuffle(order)
    shuffled_parents = list(parents)
    rng.shuffle(shuffled_parents)

    for index, parent in enumerate(shuffled_parents):
        _connect(dag, ids, parent, order[index % len(order)])

    if len(children) < 2:
        return
    for parent in shuffled_parents:
        if dag.out_degree(parent.id) >= branching_factor:
            continue
        if rng.random() >= EXTRA_CHOICE_PROBABILITY:
            continue
        linked = {e.target_id for e in dag.get_outgoing_edges(parent.id)}
        options = [c for c in children if c.id not in linked]
        if options:
            _connect(dag, ids, parent, rng.choice(options))


def build_dag(
    spec: TopologySpec, plan: LevelPlan, seed: int, rng: random.Random
) -> StoryDag:
    """Lay out nodes and edges for a LevelPlan.

    Args:
        spec: Topology spec being generated.
        plan: Level sizes and convergence placement.
        seed: Seed recorded on the DAG.
        rng: Request-scoped random source.

    Returns:
        Candidate DAG with flags refreshed (not yet validated).
    """
    dag = StoryDag(seed=seed)
    ids = NodeIdAllocator()

    levels: list[list[StoryNode]] = []
    for level, size in enumerate(plan.sizes):
        nodes = [StoryNode(id=ids.allocate(level), level=level) for _ in range(size)]
        for node in nodes:
            dag.add_node(node)
        levels.append(nodes)
    dag.start_id = levels[0][0].id

    if plan.tracks:
        for index, node in enumerate(levels[1]):
            node.track = index

    for level in range(1, plan.depth + 1):
        parents, children = levels[level - 1], levels[level]
        if plan.contracts(level):
            _build_contraction_level(
                dag, ids, parents, children, spec.branching_factor, rng
            )
            continue
        _build_tree_level(dag, ids, parents, children, rng)
        if plan.is_merge(level):
            _inject_merge(dag, ids, parents, children, spec.branching_factor, rng)

    dag.refresh_flags()
    return dag


def generate_dag(spec: TopologySpec, seed: int) -> StoryDag:
    """Generate one candidate DAG.

    Args:
        spec: Validated topology spec.
        seed: Seed for the request-scoped random generator.

    Returns:
        Candidate DAG (call validate_dag before trusting it).

    Raises:
        GraphInvariantViolation: If the node count cannot be laid out.
    """
    rng = random.Random(seed)
    try:
        plan = plan_levels(spec, rng)
    except CapacityError as e:
        raise GraphInvariantViolation(ViolationKind.CAPACITY, str(e)) from e
    return build_dag(spec, plan, seed, rng)


def generate_with_retry(
    spec: TopologySpec,
    seed: int | None = None,
    max_attempts: int = MAX_GENERATION_ATTEMPTS,
) -> GenerationResult:
    """Generate and validate a DAG, regenerating on failure.

    With a seed, attempt 1 uses it and later attempts draw seeds from
    random.Random(seed), so the whole sequence is reproducible. Without one,
    every attempt draws from a fresh random.Random().

    Args:
        spec: Validated topology spec.
        seed: Optional seed for reproducible generation.
        max_attempts: Maximum number of attempts.

    Returns:
        GenerationResult with the sealed DAG, seed, validation, and attempt count.

    Raises:
        GenerationExhausted: If no attempt produced a valid graph.
    """
    base_rng = random.Random(seed)
    failures: list[GraphInvariantViolation] = []

    for attempt in range(1, max_attempts + 1):
        if seed is not None and attempt == 1:
            attempt_seed = seed
        else:
            attempt_seed = base_rng.randint(1, 999999999)

        try:
            dag = generate_dag(spec, attempt_seed)
        except GraphInvariantViolation as e:
            logger.warning("Attempt %d: seed %d failed - %s", attempt, attempt_seed, e)
            failures.append(e)
            continue

        validation = validate_dag(dag, spec)
        if not validation.is_valid:
            logger.warning(
                "Attempt %d: seed %d failed - %s",
                attempt,
                attempt_seed,
                "; ".join(validation.errors),
            )
            failures.extend(validation.violations)
            continue

        dag.seal()
        return GenerationResult(
            dag=dag,
            seed=attempt_seed,
            validation=validation,
            attempts=attempt,
        )

    logger.error(
        "Giving up after %d attempts for %s", max_attempts, spec.describe()
    )
    raise GenerationExhausted(max_attempts, failures)
