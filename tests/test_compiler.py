"""Tests for workflow compiler (loading specifications from model output)."""

import json

import pytest

from clixen.errors import GenerationFailure
from clixen.integrations.n8n.codec import to_engine_json
from clixen.workflow.compiler import load_specification, parse_structured
from clixen.workflow.schema import WorkflowSpecification

from conftest import digest_spec


def test_load_specification_from_valid_yaml():
    """Test loading a valid specification from YAML."""
    yaml_text = """
name: hourly_ping
nodes:
  - id: tick
    name: Every Hour
    kind: n8n-nodes-base.scheduleTrigger
    parameters:
      rule: { interval: [{ field: hours, hoursInterval: 1 }] }
  - id: ping
    kind: n8n-nodes-base.httpRequest
    parameters: { url: "https://status.example.com/ping" }
connections:
  tick: [ping]
"""
    spec = load_specification(yaml_text)

    assert spec.name == "hourly_ping"
    assert spec.node_ids() == ["tick", "ping"]
    assert spec.node("ping").name == "ping"
    assert spec.connections["tick"][0].node == "ping"


def test_load_specification_from_fenced_json():
    """Model output wrapped in a markdown fence is accepted."""
    text = "```json\n" + json.dumps({"workflow": digest_spec()}) + "\n```"
    spec = load_specification(text)
    assert spec.name == "Daily email digest"
    assert len(spec.nodes) == 3


def test_load_specification_from_engine_json():
    """An n8n export is recognised and mapped back to node ids."""
    engine_json = to_engine_json(WorkflowSpecification.model_validate(digest_spec()))
    spec = load_specification(json.dumps(engine_json))
    assert spec.node_ids() == ["every_morning", "fetch_news", "send_digest"]
    assert spec.connections["fetch_news"][0].node == "send_digest"


@pytest.mark.parametrize("text", ["", "just some prose", "[1, 2, 3]", "name: [unclosed"])
def test_unparseable_output_is_generation_failure(text):
    """Anything that is not a mapping becomes a GenerationFailure carrying the raw text."""
    with pytest.raises(GenerationFailure) as exc:
        load_specification(text)
    assert exc.value.raw == text


def test_wrong_shape_is_generation_failure():
    """A mapping that does not fit the specification shape is rejected."""
    with pytest.raises(GenerationFailure, match="does not match the workflow shape"):
        load_specification(json.dumps({"name": "x", "nodes": [{"id": "a"}]}))


def test_parse_structured_requires_mapping():
    """parse_structured only returns dicts."""
    assert parse_structured('{"a": 1}') == {"a": 1}
    with pytest.raises(ValueError, match="Expected a mapping"):
        parse_structured("- a\n- b")


def _empty_shorthand():
    raw = digest_spec()
    raw["connections"] = {"every_morning": [[]]}
    return raw


TRIGGER = {"name": "T", "type": "n8n-nodes-base.manualTrigger"}


@pytest.mark.parametrize("data", [
    _empty_shorthand(),
    {"nodes": [TRIGGER], "connections": {"T": []}},
    {"nodes": [TRIGGER, "oops"], "connections": {}},
    {"nodes": [TRIGGER], "connections": {"T": {"main": ["B"]}}},
    {"nodes": [TRIGGER], "connections": {"T": {"main": [[{"index": 0}]]}}},
    {"nodes": [TRIGGER], "connections": ["T"]},
])
def test_malformed_structure_is_generation_failure(data):
    """Badly nested nodes or connections are reported as GenerationFailure, never a bare Python error."""
    text = json.dumps(data)
    with pytest.raises(GenerationFailure) as exc:
        load_specification(text)
    assert exc.value.raw == text
