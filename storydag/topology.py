"""Topology specification for story DAG generation.

A TopologySpec is the five-field contract that fixes the shape class of a
generated story graph. Specs are validated on construction, so every
instance in the system satisfies all rules below.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

NODE_COUNT_RANGE = (4, 100)
MAX_DEPTH_RANGE = (3, 20)
BRANCHING_FACTOR_RANGE = (2, 4)
RATIO_RANGE = (0.0, 1.0)

SPEC_FIELDS = (
    "node_count",
    "convergence_pattern",
    "convergence_point_ratio",
    "max_depth",
    "branching_factor",
)


class ConvergencePattern(str, Enum):
    """How divergent branches are allowed to merge back together."""

    SINGLE_CONVERGENCE = "SingleConvergence"
    MULTIPLE_CONVERGENCE = "MultipleConvergence"
    END_ONLY = "EndOnly"
    PURE_BRANCHING = "PureBranching"
    PARALLEL_PATHS = "ParallelPaths"

    @property
    def uses_ratio(self) -> bool:
        """True if this pattern requires a convergence_point_ratio."""
        return self in _RATIO_PATTERNS

    def __str__(self) -> str:
        return self.value


_RATIO_PATTERNS = frozenset(
    {
        ConvergencePattern.SINGLE_CONVERGENCE,
        ConvergencePattern.MULTIPLE_CONVERGENCE,
        ConvergencePattern.END_ONLY,
    }
)


@dataclass(frozen=True)
class FieldViolation:
    """A single rule failure on one topology field."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ValidationError(ValueError):
    """A topology candidate broke one or more rules.

    All violations are collected before raising, so callers see every
    failed rule at once.
    """

    def __init__(self, violations: list[FieldViolation]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(str(v) for v in self.violations))

    @property
    def fields(self) -> list[str]:
        """Names of the fields that failed, in rule order."""
        return [v.field for v in self.violations]


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_int_range(
    candidate: Mapping[str, Any],
    name: str,
    bounds: tuple[int, int],
    violations: list[FieldViolation],
) -> None:
    value = candidate.get(name)
    low, high = bounds
    if value is None:
        violations.append(FieldViolation(name, "is required"))
    elif not _is_integer(value):
        violations.append(
            FieldViolation(name, f"must be an integer, got {value!r}")
        )
    elif not low <= value <= high:
        violations.append(
            FieldViolation(name, f"must be between {low} and {high}, got {value}")
        )


def _parse_pattern(value: Any) -> ConvergencePattern | None:
    if isinstance(value, ConvergencePattern):
        return value
    if isinstance(value, str):
        try:
            return ConvergencePattern(value)
        except ValueError:
            return None
    return None


def collect_violations(candidate: Mapping[str, Any]) -> list[FieldViolation]:
    """Check a topology candidate against every rule.

    Rules run in a fixed order and never stop early:
    node_count, convergence_pattern, convergence_point_ratio, max_depth,
    branching_factor, then unknown keys.

    Args:
        candidate: Mapping of field name to raw value.

    Returns:
        List of violations (empty if the candidate is valid).
    """
    violations: list[FieldViolation] = []

    _check_int_range(candidate, "node_count", NODE_COUNT_RANGE, violations)

    raw_pattern = candidate.get("convergence_pattern")
    pattern = _parse_pattern(raw_pattern)
    if raw_pattern is None:
        violations.append(FieldViolation("convergence_pattern", "is required"))
    elif pattern is None:
        valid = ", ".join(p.value for p in ConvergencePattern)
        violations.append(
            FieldViolation(
                "convergence_pattern",
                f"must be one of {valid}, got {raw_pattern!r}",
            )
        )

    ratio = candidate.get("convergence_point_ratio")
    if pattern is not None and not pattern.uses_ratio:
        if ratio is not None:
            violations.append(
                FieldViolation(
                    "convergence_point_ratio",
                    f"must be absent for {pattern.value} pattern",
                )
            )
    elif ratio is None:
        if pattern is not None:
            violations.append(
                FieldViolation(
                    "convergence_point_ratio",
                    f"is required for {pattern.value} pattern",
                )
            )
    elif not _is_number(ratio):
        violations.append(
            FieldViolation(
                "convergence_point_ratio", f"must be a number, got {ratio!r}"
            )
        )
    elif not RATIO_RANGE[0] <= ratio <= RATIO_RANGE[1]:
        violations.append(
            FieldViolation(
                "convergence_point_ratio",
                f"must be between 0.0 and 1.0, got {ratio}",
            )
        )

    _check_int_range(candidate, "max_depth", MAX_DEPTH_RANGE, violations)
    _check_int_range(
        candidate, "branching_factor", BRANCHING_FACTOR_RANGE, violations
    )

    for key in candidate:
        if key not in SPEC_FIELDS:
            violations.append(
                FieldViolation(str(key), "is not a recognised topology field")
            )

    return violations


@dataclass(frozen=True)
class TopologySpec:
    """Resolved generation contract for one story graph.

    Attributes:
        node_count: Total number of story nodes (4-100).
        convergence_pattern: How branches merge.
        max_depth: Longest permissible path from the start, in edges (3-20).
        branching_factor: Maximum choices per node (2-4).
        convergence_point_ratio: Position ratio (0.0-1.0), present only for
            patterns that take one.
    """

    node_count: int
    convergence_pattern: ConvergencePattern
    max_depth: int
    branching_factor: int
    convergence_point_ratio: float | None = None

    def __post_init__(self) -> None:
        """Reject any combination that breaks a topology rule."""
        violations = collect_violations(
            {
                "node_count": self.node_count,
                "convergence_pattern": self.convergence_pattern,
                "convergence_point_ratio": self.convergence_point_ratio,
                "max_depth": self.max_depth,
                "branching_factor": self.branching_factor,
            }
        )
        if violations:
            raise ValidationError(violations)
        # frozen: normalise str patterns and int ratios in place
        object.__setattr__(
            self, "convergence_pattern", ConvergencePattern(self.convergence_pattern)
        )
        if self.convergence_point_ratio is not None:
            object.__setattr__(
                self, "convergence_point_ratio", float(self.convergence_point_ratio)
            )

    @property
    def ratio(self) -> float:
        """Convergence ratio for patterns that take one.

        Raises:
            ValueError: If the pattern carries no ratio.
        """
        if self.convergence_point_ratio is None:
            raise ValueError(
                f"{self.convergence_pattern.value} pattern has no convergence ratio"
            )
        return self.convergence_point_ratio

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TopologySpec:
        """Create a spec from a raw mapping (e.g. parsed JSON)."""
        return validate_spec(data)

    def to_dict(self) -> dict[str, Any]:
        """Return the canonical five-field mapping."""
        return {
            "node_count": self.node_count,
            "convergence_pattern": self.convergence_pattern.value,
            "convergence_point_ratio": self.convergence_point_ratio,
            "max_depth": self.max_depth,
            "branching_factor": self.branching_factor,
        }

    def describe(self) -> str:
        """One-line human summary used in logs and the CLI."""
        ratio = (
            f", ratio={self.convergence_point_ratio}"
            if self.convergence_point_ratio is not None
            else ""
        )
        return (
            f"{self.node_count} nodes, {self.convergence_pattern.value}{ratio}, "
            f"max_depth={self.max_depth}, branching_factor={self.branching_factor}"
        )


def validate_spec(candidate: Mapping[str, Any] | TopologySpec) -> TopologySpec:
    """Validate a raw topology candidate and build its TopologySpec.

    Args:
        candidate: Mapping with the five topology fields, or an existing spec.

    Returns:
        The validated TopologySpec.

    Raises:
        ValidationError: With every violated rule if the candidate is invalid.
    """
    if isinstance(candidate, TopologySpec):
        return candidate

    violations = collect_violations(candidate)
    if violations:
        raise ValidationError(violations)

    pattern = _parse_pattern(candidate["convergence_pattern"])
    assert pattern is not None
    ratio = candidate.get("convergence_point_ratio")
    return TopologySpec(
        node_count=candidate["node_count"],
        convergence_pattern=pattern,
        max_depth=candidate["max_depth"],
        branching_factor=candidate["branching_factor"],
        convergence_point_ratio=float(ratio) if ratio is not None else None,
    )
