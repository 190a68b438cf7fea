"""Named story structure presets.

Each preset maps to a complete TopologySpec covering a common storytelling
shape:

- guided: mostly linear story with one merge point
- adventure: branching paths with several merge points
- epic: wide branching that only converges near the end
- choose_your_path: pure branching tree with many endings
"""

from __future__ import annotations

from storydag.topology import ConvergencePattern, TopologySpec

PRESETS: dict[str, TopologySpec] = {
    "guided": TopologySpec(
        node_count=12,
        convergence_pattern=ConvergencePattern.SINGLE_CONVERGENCE,
        convergence_point_ratio=0.5,
        max_depth=8,
        branching_factor=2,
    ),
    "adventure": TopologySpec(
        node_count=16,
        convergence_pattern=ConvergencePattern.MULTIPLE_CONVERGENCE,
        convergence_point_ratio=0.6,
        max_depth=10,
        branching_factor=2,
    ),
    "epic": TopologySpec(
        node_count=24,
        convergence_pattern=ConvergencePattern.END_ONLY,
        convergence_point_ratio=0.9,
        max_depth=12,
        branching_factor=2,
    ),
    "choose_your_path": TopologySpec(
        node_count=16,
        convergence_pattern=ConvergencePattern.PURE_BRANCHING,
        max_depth=10,
        branching_factor=3,
    ),
}


class UnknownPresetError(LookupError):
    """Requested story_structure preset does not exist."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Unknown story_structure preset: '{name}'. "
            f"Valid options: {', '.join(preset_names())}"
        )


def preset_names() -> list[str]:
    """Return all preset names, in registry order."""
    return list(PRESETS)


def lookup(name: str) -> TopologySpec:
    """Find a preset by name (case-insensitive).

    Args:
        name: Preset name, e.g. "guided" or "GUIDED".

    Returns:
        The preset's TopologySpec.

    Raises:
        UnknownPresetError: If no preset has that name.
    """
    spec = PRESETS.get(name.lower())
    if spec is None:
        raise UnknownPresetError(name)
    return spec
