"""storydag CLI entry point."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from storydag.config import Config, load_config
from storydag.generator import GenerationExhausted
from storydag.output import export_json, export_outline
from storydag.paths import PathStats, report_paths
from storydag.presets import UnknownPresetError, preset_names
from storydag.request import GenerationRequest, RequestError, load_request
from storydag.service import StructureService
from storydag.topology import ValidationError


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the storydag command."""
    parser = argparse.ArgumentParser(
        description="storydag - Generate interactive story DAG skeletons",
    )
    parser.add_argument(
        "config",
        type=Path,
        nargs="?",
        default=None,
        help="Path to config.toml (optional, uses defaults if not provided)",
    )
    parser.add_argument(
        "--request",
        type=Path,
        default=None,
        help="Generation request file (JSON, or YAML for .yaml/.yml)",
    )
    parser.add_argument(
        "--preset",
        default=None,
        help=f"Story structure preset (overrides request): {', '.join(preset_names())}",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed (overrides config, 0 = fresh random seed)",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Max generation attempts (default: config's max_attempts)",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output directory (default: config's output_dir). "
        "Files are written to <output>/<seed>/",
    )
    parser.add_argument(
        "--outline",
        action="store_true",
        help="Also write a human-readable outline.txt",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Load or create config
    try:
        if args.config:
            config = load_config(args.config)
            if args.verbose:
                print(f"Loaded config from {args.config}")
        else:
            config = Config()
            if args.verbose:
                print("Using default configuration")
    except FileNotFoundError:
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        service = StructureService.from_config(config)
    except ValidationError as e:
        print(f"Error: Invalid [dag] section: {e}", file=sys.stderr)
        return 1
    if args.max_attempts is not None:
        if args.max_attempts < 1:
            print("Error: --max-attempts must be >= 1", file=sys.stderr)
            return 1
        service.max_attempts = args.max_attempts

    # Load request
    if args.request:
        try:
            request = load_request(args.request)
        except FileNotFoundError:
            print(f"Error: Request file not found: {args.request}", file=sys.stderr)
            return 1
        except RequestError as e:
            print(f"Error: Invalid request: {e}", file=sys.stderr)
            return 1
    else:
        request = GenerationRequest()
    if args.preset is not None:
        request.story_structure = args.preset

    # Override seed if provided
    if args.seed is not None:
        if args.seed < 0:
            print(f"Error: seed must be >= 0, got {args.seed}", file=sys.stderr)
            return 1
        seed = args.seed or None
    else:
        seed = config.generation.effective_seed

    try:
        result = service.generate(request, seed=seed)
    except UnknownPresetError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"Error: Invalid dag_config: {e}", file=sys.stderr)
        for violation in e.violations:
            print(f"  - {violation}", file=sys.stderr)
        return 1
    except GenerationExhausted as e:
        print(f"Error: Generation failed: {e}", file=sys.stderr)
        return 2

    dag = result.dag
    resolution = result.resolution
    actual_seed = result.generation.seed

    if resolution.conflict is not None:
        print(f"Warning: {resolution.conflict.message}", file=sys.stderr)

    if args.verbose and result.generation.validation.warnings:
        print("Validation warnings:")
        for warning in result.generation.validation.warnings:
            print(f"  - {warning}")

    stats = PathStats.from_dag(dag)
    print(f"Generated story DAG with seed {actual_seed} ({resolution.provenance})")
    print(f"  Topology: {resolution.spec.describe()}")
    print(f"  Levels: {dag.max_level() + 1}")
    print(f"  Nodes: {dag.total_nodes()}")
    print(f"  Paths: {stats.path_count}")
    print(f"  Attempts: {result.generation.attempts}")

    if args.verbose:
        print()
        print(report_paths(dag))

    # Determine output directory: CLI > config
    if args.output is not None:
        output_dir = args.output
    else:
        output_dir = Path(config.output.output_dir)
    seed_dir = output_dir / str(actual_seed)
    seed_dir.mkdir(parents=True, exist_ok=True)

    json_path = seed_dir / "story_dag.json"
    export_json(dag, json_path, resolution.spec, resolution.provenance)
    print(f"Written: {json_path}")

    if args.outline:
        outline_path = seed_dir / "outline.txt"
        export_outline(dag, outline_path, resolution.spec, resolution.provenance)
        print(f"Written: {outline_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
