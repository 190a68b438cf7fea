"""Generation request model.

A GenerationRequest carries the story brief handed over by the gateway.
Only `story_structure` and `dag_config` influence the graph shape; the
remaining fields travel with the result for the content collaborator.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


class RequestError(ValueError):
    """Malformed generation request document."""

    pass


def _string_list(data: Mapping[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise RequestError(f"{key} must be a list of strings, got {value!r}")
    return list(value)


def _optional_string(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise RequestError(f"{key} must be a string, got {value!r}")
    return value


@dataclass
class GenerationRequest:
    """Story brief for one generation run.

    Attributes:
        story_structure: Optional preset name (case-insensitive).
        dag_config: Optional custom topology mapping.
    """

    theme: str = ""
    age_group: str = ""
    language: str = "en"
    educational_goals: list[str] = field(default_factory=list)
    vocabulary_level: str = ""
    required_elements: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    story_structure: str | None = None
    dag_config: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GenerationRequest:
        """Create a request from a parsed JSON/YAML document.

        Raises:
            RequestError: If a field has the wrong type.
        """
        dag_config = data.get("dag_config")
        if dag_config is not None and not isinstance(dag_config, Mapping):
            raise RequestError(f"dag_config must be a mapping, got {dag_config!r}")

        return cls(
            theme=_optional_string(data, "theme") or "",
            age_group=_optional_string(data, "age_group") or "",
            language=_optional_string(data, "language") or "en",
            educational_goals=_string_list(data, "educational_goals"),
            vocabulary_level=_optional_string(data, "vocabulary_level") or "",
            required_elements=_string_list(data, "required_elements"),
            tags=_string_list(data, "tags"),
            story_structure=_optional_string(data, "story_structure"),
            dag_config=dict(dag_config) if dag_config is not None else None,
        )


def load_request(path: str | Path) -> GenerationRequest:
    """Load a generation request from a JSON or YAML file.

    Files ending in .yaml or .yml are parsed as YAML, anything else as JSON.

    Args:
        path: Path to the request document.

    Returns:
        Parsed GenerationRequest.

    Raises:
        RequestError: If the document is not a mapping or cannot be parsed.
    """
    path = Path(path)
    with path.open(encoding="utf-8") as f:
        try:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise RequestError(f"Could not parse {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise RequestError(f"{path}: request document must be a mapping")
    return GenerationRequest.from_dict(data)
