"""storydag - topology engine for interactive story DAGs."""

__version__ = "0.1.0"

from storydag.config import (
    Config,
    DagConfig,
    GenerationConfig,
    OutputConfig,
    load_config,
)
from storydag.dag import DagSealedError, StoryDag, StoryEdge, StoryNode
from storydag.generator import (
    GenerationError,
    GenerationExhausted,
    GenerationResult,
    generate_dag,
    generate_with_retry,
)
from storydag.ids import NodeIdAllocator
from storydag.output import dag_to_dict, export_json, export_outline
from storydag.paths import PathStats, report_paths
from storydag.presets import PRESETS, UnknownPresetError, lookup, preset_names
from storydag.request import GenerationRequest, RequestError, load_request
from storydag.resolver import (
    ConfigConflict,
    Provenance,
    Resolution,
    resolve_request,
    resolve_topology,
)
from storydag.service import StructureResult, StructureService
from storydag.topology import (
    ConvergencePattern,
    FieldViolation,
    TopologySpec,
    ValidationError,
    validate_spec,
)
from storydag.validator import (
    GraphInvariantViolation,
    ValidationResult,
    ViolationKind,
    validate_dag,
)

__all__ = [
    # Topology
    "ConvergencePattern",
    "FieldViolation",
    "TopologySpec",
    "ValidationError",
    "validate_spec",
    # Presets
    "PRESETS",
    "UnknownPresetError",
    "lookup",
    "preset_names",
    # Resolver
    "ConfigConflict",
    "Provenance",
    "Resolution",
    "resolve_request",
    "resolve_topology",
    # Request
    "GenerationRequest",
    "RequestError",
    "load_request",
    # Config
    "Config",
    "DagConfig",
    "GenerationConfig",
    "OutputConfig",
    "load_config",
    # DAG
    "DagSealedError",
    "NodeIdAllocator",
    "StoryDag",
    "StoryEdge",
    "StoryNode",
    # Generator
    "GenerationError",
    "GenerationExhausted",
    "GenerationResult",
    "generate_dag",
    "generate_with_retry",
    # Validator
    "GraphInvariantViolation",
    "ValidationResult",
    "ViolationKind",
    "validate_dag",
    # Service
    "StructureResult",
    "StructureService",
    # Paths
    "PathStats",
    "report_paths",
    # Output
    "dag_to_dict",
    "export_json",
    "export_outline",
]
