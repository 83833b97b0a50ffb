""" Load and validate a WorkflowSpecification from model output (YAML or JSON). """

import re
from typing import Any, Dict

import yaml

from ..errors import GenerationFailure
from ..integrations.n8n.codec import from_engine_json
from .schema import WorkflowSpecification, validate_specification

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n```\s*$", re.DOTALL)


def parse_structured(text: str) -> Dict[str, Any]:
    """
    Parse a YAML/JSON object out of raw model text.
    JSON is a subset of YAML, so one loader covers both. Markdown code fences are stripped.
    """
    if text is None or not text.strip():
        raise ValueError("Empty model output")
    body = text.strip()
    match = _FENCE.match(body)
    if match:
        body = match.group(1)
    try:
        data = yaml.safe_load(body)
    except yaml.YAMLError as e:
        raise ValueError(f"Model output is not valid YAML/JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at top level, got {type(data).__name__}")
    return data


def load_specification(text: str) -> WorkflowSpecification:
    """
    Load a WorkflowSpecification from model output.
    Accepts the engine-agnostic shape, the same wrapped in {"workflow": ...}, or an n8n
    workflow export (nodes carrying "type", connections keyed by node name).
    """
    try:
        data = parse_structured(text)
    except ValueError as e:
        raise GenerationFailure(str(e), raw=text) from e

    if set(data) == {"workflow"} and isinstance(data["workflow"], dict):
        data = data["workflow"]

    try:
        if _looks_like_engine_json(data):
            return from_engine_json(data)
        return validate_specification(data)
    except Exception as e:
        raise GenerationFailure(f"Model output does not match the workflow shape: {e}", raw=text) from e


def _looks_like_engine_json(data: Dict[str, Any]) -> bool:
    nodes = data.get("nodes") or []
    if not nodes or not isinstance(nodes[0], dict):
        return False
    return "type" in nodes[0] and "kind" not in nodes[0]
