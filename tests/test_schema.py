"""Tests for the workflow specification model and per-kind node configuration."""

import pytest
from pydantic import ValidationError

from clixen.workflow import node_kinds
from clixen.workflow.schema import Connection, Node, WorkflowSpecification, validate_specification

from conftest import digest_spec


def test_valid_specification_loads():
    """A well-formed specification validates and keeps node order."""
    spec = validate_specification(digest_spec())
    assert spec.node_ids() == ["every_morning", "fetch_news", "send_digest"]
    assert [n.id for n in spec.trigger_nodes()] == ["every_morning"]
    assert spec.active is False
    assert spec.node("send_digest").credential.type == "smtp"


def test_duplicate_node_ids_rejected():
    """Node ids must be unique."""
    raw = digest_spec()
    raw["nodes"][1]["id"] = "every_morning"
    raw["nodes"][1]["name"] = "Another"
    with pytest.raises(ValueError, match="Duplicate node id"):
        validate_specification(raw)


def test_duplicate_node_names_rejected():
    """The engine keys connections by name, so names must be unique too."""
    raw = digest_spec()
    raw["nodes"][2]["name"] = "Fetch News"
    with pytest.raises(ValueError, match="Duplicate node name"):
        validate_specification(raw)


def test_unknown_parameter_for_known_kind_rejected():
    """Known kinds have a closed configuration shape."""
    with pytest.raises(ValidationError):
        Node(id="mail", kind="n8n-nodes-base.emailSend", parameters={"recipient": "x@example.com"})


def test_wrong_parameter_value_rejected():
    """Literal fields are checked at construction time."""
    with pytest.raises(ValidationError):
        Node(id="hook", kind="n8n-nodes-base.webhook", parameters={"path": "x", "httpMethod": "FETCH"})


def test_unregistered_kind_accepts_any_parameters():
    """Kinds without a dedicated shape fall back to the generic configuration."""
    node = Node(id="pg", kind="n8n-nodes-base.someNewNode", parameters={"anything": 1})
    assert isinstance(node.config, node_kinds.GenericConfig)
    assert node.name == "pg"


def test_typed_config_exposed():
    """Node.config returns the kind's configuration model."""
    node = Node(id="hook", kind="n8n-nodes-base.webhook", parameters={"path": "orders"})
    assert isinstance(node.config, node_kinds.WebhookConfig)
    assert node.config.httpMethod == "POST"
    assert node.is_trigger


def test_connection_shorthands():
    """Connections accept a bare target id or a [target, index] pair."""
    assert Connection.model_validate("b") == Connection(node="b")
    assert Connection.model_validate(["b", 1]) == Connection(node="b", index=1)


def test_unknown_top_level_field_rejected():
    """Specifications are closed: stray keys are an error."""
    raw = digest_spec()
    raw["owner"] = "someone"
    with pytest.raises(ValueError, match="Specification validation error"):
        validate_specification(raw)


def test_trigger_kind_detection():
    """Registered trigger kinds and n8n-style trigger names count as triggers."""
    assert node_kinds.is_trigger_kind("n8n-nodes-base.scheduleTrigger")
    assert node_kinds.is_trigger_kind("n8n-nodes-base.rssFeedReadTrigger")
    assert not node_kinds.is_trigger_kind("n8n-nodes-base.httpRequest")


def test_snapshot_is_plain_json():
    """Snapshots are JSON-compatible dicts for the audit log."""
    spec = WorkflowSpecification.model_validate(digest_spec())
    snap = spec.snapshot()
    assert snap["nodes"][0]["id"] == "every_morning"
    assert snap["connections"]["every_morning"][0]["node"] == "fetch_news"


def test_default_allow_list_is_registered():
    """Every kind offered to the builder by default has a registered configuration shape."""
    from clixen.config import DEFAULT_NODE_KINDS
    assert set(DEFAULT_NODE_KINDS) <= set(node_kinds.registered_kinds())
    assert not set(DEFAULT_NODE_KINDS) & set(node_kinds.BLOCKED_KINDS)
    email = node_kinds.get_kind("n8n-nodes-base.emailSend")
    assert email.credential_types == ("smtp",) and email.produces_output
    assert node_kinds.get_kind("n8n-nodes-base.nothing") is None
