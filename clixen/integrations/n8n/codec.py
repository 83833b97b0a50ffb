import json
from pathlib import Path
from typing import Dict, Any, List, Tuple

from ...workflow.node_kinds import default_type_version
from ...workflow.schema import WorkflowSpecification, Node, validate_specification


def auto_layout(nodes: List[Node]) -> Dict[str, Tuple[int, int]]:
    """
    Very simple layout: trigger at [250, 300], then left to right.
    Nodes that already carry a position keep it.
    Returns a mapping from node.id -> (x, y).
    """
    positions = {}
    x = 250
    y = 300
    dx = 200
    for node in nodes:
        positions[node.id] = node.position or (x, y)
        x += dx
    return positions


def to_engine_json(spec: WorkflowSpecification) -> Dict[str, Any]:
    """
    Convert a WorkflowSpecification into an n8n workflow JSON dict.
    n8n keys connections by node *name*; specifications key them by node id.
    """
    positions = auto_layout(spec.nodes)
    id_to_name = {n.id: n.name for n in spec.nodes}

    n8n_nodes: List[Dict[str, Any]] = []
    for node in spec.nodes:
        x, y = positions[node.id]
        n8n_node = {
            "id": node.id,
            "name": node.name,
            "type": node.kind,
            "typeVersion": node.type_version or default_type_version(node.kind),
            "position": [x, y],
            "parameters": dict(node.parameters),
        }
        if node.credential:
            n8n_node["credentials"] = {
                node.credential.type: {
                    k: v for k, v in (("id", node.credential.id), ("name", node.credential.name)) if v is not None
                }
            }
        n8n_nodes.append(n8n_node)

    n8n_connections: Dict[str, Any] = {}
    for src, conn in spec.edges():
        # dangling references are kept as-is so the validator, not the codec, reports them
        src_name = id_to_name.get(src, src)
        outputs = n8n_connections.setdefault(src_name, {"main": []})["main"]
        while len(outputs) <= conn.output:
            outputs.append([])
        outputs[conn.output].append(
            {
                "node": id_to_name.get(conn.node, conn.node),
                "type": "main",
                "index": conn.index,
            }
        )

    workflow = {
        "name": spec.name,
        "nodes": n8n_nodes,
        "connections": n8n_connections,
        "settings": dict(spec.settings),
    }
    return workflow


def from_engine_json(data: Dict[str, Any]) -> WorkflowSpecification:
    """ Parse an n8n workflow JSON dict back into a WorkflowSpecification. """
    raw_nodes = data.get("nodes") or []
    if not isinstance(raw_nodes, list):
        raise ValueError("Workflow nodes must be a list")
    name_to_id = {}
    nodes = []
    for raw in raw_nodes:
        if not isinstance(raw, dict):
            raise ValueError(f"Workflow node must be an object, got {type(raw).__name__}")
        node_id = str(raw.get("id") or raw["name"])
        name_to_id[raw["name"]] = node_id
        credential = None
        creds = raw.get("credentials") or {}
        if creds:
            cred_type, cred_ref = next(iter(creds.items()))
            cred_ref = cred_ref or {}
            credential = {"type": cred_type, "id": cred_ref.get("id"), "name": cred_ref.get("name")}
        position = raw.get("position")
        nodes.append({
            "id": node_id,
            "name": raw["name"],
            "kind": raw["type"],
            "position": tuple(position) if position else None,
            "parameters": raw.get("parameters") or {},
            "credential": credential,
            "type_version": raw.get("typeVersion"),
        })

    connections: Dict[str, List[Dict[str, Any]]] = {}
    raw_connections = data.get("connections") or {}
    if not isinstance(raw_connections, dict):
        raise ValueError("Workflow connections must be an object keyed by node name")
    for src_name, by_type in raw_connections.items():
        if not isinstance(by_type, dict):
            raise ValueError(f"Connections of '{src_name}' must be an object keyed by connection type")
        src_id = name_to_id.get(src_name, src_name)
        for output_index, group in enumerate(by_type.get("main") or []):
            if group is None:
                continue
            if not isinstance(group, list):
                raise ValueError(f"Output {output_index} of '{src_name}' must be a list of targets")
            for target in group:
                if not isinstance(target, dict) or "node" not in target:
                    raise ValueError(f"Connection target of '{src_name}' must name a node")
                connections.setdefault(src_id, []).append({
                    "node": name_to_id.get(target["node"], target["node"]),
                    "index": target.get("index", 0),
                    "output": output_index,
                })

    raw_spec = {
        "name": data.get("name") or "Untitled workflow",
        "nodes": nodes,
        "connections": connections,
        "active": bool(data.get("active", False)),
        "settings": data.get("settings") or {"executionOrder": "v1"},
    }
    return validate_specification(raw_spec)


def export_json(spec: WorkflowSpecification, json_path: Path) -> None:
    """
    Convert a specification to n8n JSON and write it to disk (for import through the n8n UI).
    """
    n8n_workflow = to_engine_json(spec)
    json_path.write_text(json.dumps(n8n_workflow, indent=2))
