"""Topology resolution for generation requests.

Three sources can describe the graph shape, in strict priority order:

1. story_structure preset (authoritative when present)
2. dag_config custom spec (validated before use)
3. service-wide default (validated once at startup)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from storydag.presets import lookup
from storydag.topology import SPEC_FIELDS, TopologySpec, validate_spec

if TYPE_CHECKING:
    from storydag.request import GenerationRequest

logger = logging.getLogger(__name__)


class Source(Enum):
    """Where a resolved topology came from."""

    PRESET = "Preset"
    CUSTOM = "Custom"
    DEFAULT = "Default"


@dataclass(frozen=True)
class Provenance:
    """Tagged origin of a resolved spec: Preset(name), Custom or Default."""

    source: Source
    preset: str | None = None

    @classmethod
    def from_preset(cls, name: str) -> Provenance:
        return cls(Source.PRESET, name)

    def __str__(self) -> str:
        if self.source is Source.PRESET:
            return f"Preset({self.preset})"
        return self.source.value


@dataclass(frozen=True)
class ConfigConflict:
    """Non-fatal notice: a preset won over a custom spec.

    Attributes:
        preset: Name of the preset that was used.
        discarded_fields: Custom spec fields that were ignored.
    """

    preset: str
    discarded_fields: tuple[str, ...]

    @property
    def message(self) -> str:
        fields = ", ".join(self.discarded_fields) or "(empty)"
        return (
            f"Both story_structure and dag_config provided; using preset "
            f"'{self.preset}' and discarding dag_config fields: {fields}"
        )


@dataclass(frozen=True)
class Resolution:
    """Effective topology for one request.

    Attributes:
        spec: The validated spec to generate from.
        provenance: Which source supplied it.
        conflict: Set when a custom spec was discarded in favour of a preset.
    """

    spec: TopologySpec
    provenance: Provenance
    conflict: ConfigConflict | None = None


def _present_fields(custom_spec: Mapping[str, Any] | TopologySpec) -> tuple[str, ...]:
    """List the fields a custom spec actually supplied, known fields first."""
    if isinstance(custom_spec, TopologySpec):
        data = custom_spec.to_dict()
    else:
        data = dict(custom_spec)
    known = [name for name in SPEC_FIELDS if data.get(name) is not None]
    extra = sorted(str(key) for key in data if key not in SPEC_FIELDS)
    return tuple(known + extra)


def resolve_topology(
    preset_name: str | None,
    custom_spec: Mapping[str, Any] | TopologySpec | None,
    service_default: TopologySpec,
) -> Resolution:
    """Pick the effective TopologySpec for a request.

    Args:
        preset_name: Optional preset name (case-insensitive).
        custom_spec: Optional custom topology mapping.
        service_default: Pre-validated service default spec.

    Returns:
        Resolution with the spec, its provenance and any conflict notice.

    Raises:
        UnknownPresetError: If preset_name is not a known preset.
        ValidationError: If the custom spec breaks any topology rule.
    """
    conflict: ConfigConflict | None = None

    if preset_name is not None:
        spec = lookup(preset_name)
        provenance = Provenance.from_preset(preset_name.lower())
        if custom_spec is not None:
            conflict = ConfigConflict(
                preset=preset_name.lower(),
                discarded_fields=_present_fields(custom_spec),
            )
            logger.warning(conflict.message)
    elif custom_spec is not None:
        spec = validate_spec(custom_spec)
        provenance = Provenance(Source.CUSTOM)
    else:
        spec = service_default
        provenance = Provenance(Source.DEFAULT)

    logger.info("Resolved topology from %s: %s", provenance, spec.describe())
    return Resolution(spec=spec, provenance=provenance, conflict=conflict)


def resolve_request(
    request: GenerationRequest, service_default: TopologySpec
) -> Resolution:
    """Resolve the topology for a GenerationRequest."""
    return resolve_topology(
        request.story_structure, request.dag_config, service_default
    )
