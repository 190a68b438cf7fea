"""Service configuration parsing for storydag."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from storydag.topology import TopologySpec, validate_spec

# Use tomllib (Python 3.11+) with fallback to tomli
if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError as e:
        raise ImportError(
            "tomli is required for Python < 3.11. Install with: pip install tomli"
        ) from e


@dataclass
class DagConfig:
    """Service-wide default topology (the [dag] section)."""

    default_node_count: int = 16
    convergence_pattern: str = "SingleConvergence"
    convergence_point_ratio: float | None = 0.5
    max_depth: int = 10
    branching_factor: int = 2

    def to_topology_spec(self) -> TopologySpec:
        """Convert to a validated TopologySpec.

        The ratio is dropped for patterns that do not take one, so the
        stock 0.5 never invalidates a PureBranching or ParallelPaths default.

        Raises:
            ValidationError: If the section breaks any topology rule.
        """
        candidate: dict[str, Any] = {
            "node_count": self.default_node_count,
            "convergence_pattern": self.convergence_pattern,
            "max_depth": self.max_depth,
            "branching_factor": self.branching_factor,
        }
        if self.convergence_pattern not in ("PureBranching", "ParallelPaths"):
            candidate["convergence_point_ratio"] = self.convergence_point_ratio
        return validate_spec(candidate)


@dataclass
class GenerationConfig:
    """Generation settings (the [generation] section)."""

    seed: int = 0  # 0 = fresh random seed per request
    max_attempts: int = 10

    def __post_init__(self) -> None:
        """Validate generation settings."""
        if self.seed < 0:
            raise ValueError(f"seed must be >= 0, got {self.seed}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @property
    def effective_seed(self) -> int | None:
        """Seed to pass to the generator, None for a fresh random seed."""
        return self.seed or None


@dataclass
class OutputConfig:
    """Output settings (the [output] section)."""

    output_dir: str = "./output"


@dataclass
class Config:
    """Main configuration container."""

    dag: DagConfig = field(default_factory=DagConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """Create Config from a dictionary (e.g., parsed TOML)."""
        dag_section = data.get("dag", {})
        generation_section = data.get("generation", {})
        output_section = data.get("output", {})

        return cls(
            dag=DagConfig(
                default_node_count=dag_section.get("default_node_count", 16),
                convergence_pattern=dag_section.get(
                    "convergence_pattern", "SingleConvergence"
                ),
                convergence_point_ratio=dag_section.get("convergence_point_ratio", 0.5),
                max_depth=dag_section.get("max_depth", 10),
                branching_factor=dag_section.get("branching_factor", 2),
            ),
            generation=GenerationConfig(
                seed=generation_section.get("seed", 0),
                max_attempts=generation_section.get("max_attempts", 10),
            ),
            output=OutputConfig(
                output_dir=output_section.get("output_dir", "./output"),
            ),
        )

    @classmethod
    def from_toml(cls, path: str | Path) -> Config:
        """Load configuration from a TOML file."""
        path = Path(path)
        with path.open("rb") as f:
            data = tomllib.load(f)
        return cls.from_dict(data)


def load_config(path: str | Path) -> Config:
    """Load configuration from a TOML file.

    This is a convenience function that wraps Config.from_toml().

    Args:
        path: Path to the TOML configuration file.

    Returns:
        Parsed Config object.
    """
    return Config.from_toml(path)
