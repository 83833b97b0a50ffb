"""
Deterministic repairs for common blocking violations.

Only used by the retry controller's auto-correct step when `auto_repair` is
enabled. Returns a new specification; the input is never modified.
"""
import re
from typing import List, Tuple

from .models import Violation
from .schema import WorkflowSpecification

DEFAULT_SCHEDULE_RULE = {"interval": [{"field": "hours", "hoursInterval": 1}]}
DEFAULT_JS_CODE = "return $input.all();"


def heal(spec: WorkflowSpecification, violations: List[Violation]) -> Tuple[WorkflowSpecification, List[str]]:
    """
    Apply the known fixes for `violations`.
    Returns (repaired spec, list of applied fixes). An empty list means nothing could be fixed.
    """
    data = spec.snapshot()
    fixes: List[str] = []
    rule_ids = {v.rule_id for v in violations}
    node_ids = {v.node_id for v in violations if v.node_id}

    if "connection-targets" in rule_ids:
        fixes.extend(_drop_dangling_connections(data))

    if "trigger-required" in rule_ids and data["nodes"]:
        fixes.append(_add_manual_trigger(data))

    if "blocked-node" in rule_ids:
        fixes.extend(_replace_gmail(data, node_ids))

    for node in data["nodes"]:
        params = node["parameters"]
        if node["kind"] == "n8n-nodes-base.webhook" and not params.get("path"):
            params["path"] = _slug(node["id"])
            params.setdefault("httpMethod", "POST")
            fixes.append(f"Set webhook path for '{node['name']}'")
        elif node["kind"] == "n8n-nodes-base.scheduleTrigger" and not params.get("rule"):
            params["rule"] = DEFAULT_SCHEDULE_RULE
            fixes.append(f"Set hourly schedule for '{node['name']}'")
        elif node["kind"] == "n8n-nodes-base.code" and not (params.get("jsCode") or params.get("pythonCode")):
            params["jsCode"] = DEFAULT_JS_CODE
            fixes.append(f"Added pass-through code to '{node['name']}'")

    if not fixes:
        return spec, []
    return WorkflowSpecification.model_validate(data), fixes


def _drop_dangling_connections(data) -> List[str]:
    ids = {n["id"] for n in data["nodes"]}
    fixes = []
    for src in list(data["connections"]):
        if src not in ids:
            del data["connections"][src]
            fixes.append(f"Removed connections from unknown node '{src}'")
            continue
        kept = [c for c in data["connections"][src] if c["node"] in ids]
        if len(kept) != len(data["connections"][src]):
            fixes.append(f"Removed dangling connections from '{src}'")
            data["connections"][src] = kept
    return fixes


def _add_manual_trigger(data) -> str:
    targets = {c["node"] for conns in data["connections"].values() for c in conns}
    entries = [n["id"] for n in data["nodes"] if n["id"] not in targets]
    trigger_id = "manual_trigger"
    while any(n["id"] == trigger_id for n in data["nodes"]):
        trigger_id += "_"
    data["nodes"].insert(0, {
        "id": trigger_id,
        "name": "Manual Trigger" if all(n["name"] != "Manual Trigger" for n in data["nodes"]) else trigger_id,
        "kind": "n8n-nodes-base.manualTrigger",
        "position": None,
        "parameters": {},
        "credential": None,
        "type_version": 1,
    })
    data["connections"][trigger_id] = [{"node": e, "index": 0, "output": 0} for e in entries]
    return "Added manual trigger"


def _replace_gmail(data, node_ids) -> List[str]:
    fixes = []
    for node in data["nodes"]:
        if node["kind"] != "n8n-nodes-base.gmail" or node["id"] not in node_ids:
            continue
        old = node["parameters"]
        node["kind"] = "n8n-nodes-base.emailSend"
        node["type_version"] = None
        node["parameters"] = {
            "toEmail": old.get("sendTo") or old.get("toEmail") or "",
            "subject": old.get("subject") or "",
            "text": old.get("message") or old.get("text") or "",
        }
        node["credential"] = {"type": "smtp", "id": None, "name": None}
        fixes.append(f"Replaced Gmail node '{node['name']}' with SMTP email")
    return fixes


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9-]+", "-", text.lower()).strip("-") or "hook"
