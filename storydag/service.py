"""Structure service: request in, validated story DAG out."""

from __future__ import annotations

from dataclasses import dataclass

from storydag.config import Config
from storydag.dag import StoryDag
from storydag.generator import (
    MAX_GENERATION_ATTEMPTS,
    GenerationResult,
    generate_with_retry,
)
from storydag.request import GenerationRequest
from storydag.resolver import Resolution, resolve_request
from storydag.topology import TopologySpec


@dataclass
class StructureResult:
    """Outcome of one request.

    Attributes:
        request: The request that was served.
        resolution: Effective spec and its provenance.
        generation: Generated DAG with seed and validation details.
    """

    request: GenerationRequest
    resolution: Resolution
    generation: GenerationResult

    @property
    def dag(self) -> StoryDag:
        return self.generation.dag


class StructureService:
    """Resolve topology for each request and generate its graph.

    The default spec is validated once, at construction; each request then
    resolves, validates and generates independently, sharing no state.
    """

    def __init__(
        self,
        default_spec: TopologySpec,
        max_attempts: int = MAX_GENERATION_ATTEMPTS,
    ) -> None:
        self.default_spec = default_spec
        self.max_attempts = max_attempts

    @classmethod
    def from_config(cls, config: Config) -> StructureService:
        """Build a service from the [dag] and [generation] sections.

        Raises:
            ValidationError: If the [dag] section is invalid.
        """
        return cls(
            config.dag.to_topology_spec(),
            max_attempts=config.generation.max_attempts,
        )

    def resolve(self, request: GenerationRequest) -> Resolution:
        """Resolve the effective topology (no generation work)."""
        return resolve_request(request, self.default_spec)

    def generate(
        self, request: GenerationRequest, seed: int | None = None
    ) -> StructureResult:
        """Resolve and generate the DAG for a request.

        Args:
            request: Story brief.
            seed: Optional seed for reproducible generation.

        Raises:
            UnknownPresetError: If the preset name is unknown.
            ValidationError: If the custom spec is invalid.
            GenerationExhausted: If no valid graph was produced.
        """
        resolution = self.resolve(request)
        generation = generate_with_retry(
            resolution.spec, seed=seed, max_attempts=self.max_attempts
        )
        return StructureResult(
            request=request, resolution=resolution, generation=generation
        )
