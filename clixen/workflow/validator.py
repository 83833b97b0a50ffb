"""
Constraint validator: checks a built specification against platform limits and
structural rules. Pure, no I/O.

Rules run in declaration order (RULES) and violations come back in that order,
then in node order within a rule, so repeated runs give identical diagnostics.
"""

import logging
from collections import deque
from typing import Callable, List, Set, Tuple

from .models import PlatformLimits, Severity, ValidationResult, Violation
from .node_kinds import BLOCKED_KINDS, produces_output, required_credentials
from .schema import WorkflowSpecification

logger = logging.getLogger(__name__)

Rule = Callable[[WorkflowSpecification, PlatformLimits], List[Violation]]


def _max_nodes(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    if len(spec.nodes) > limits.max_nodes:
        return [Violation(
            "max-nodes",
            f"Workflow has {len(spec.nodes)} nodes; the limit for this plan is {limits.max_nodes}",
        )]
    return []


def _trigger_required(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    if not spec.trigger_nodes():
        return [Violation("trigger-required", "Workflow must have at least one trigger node (webhook, schedule or manual)")]
    return []


def _connection_targets(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    ids = set(spec.node_ids())
    out = []
    for src, targets in spec.connections.items():
        if src not in ids:
            out.append(Violation("connection-targets", f"Connection source '{src}' does not exist", node_id=src))
            continue
        for conn in targets:
            if conn.node not in ids:
                out.append(Violation(
                    "connection-targets",
                    f"Connection from '{src}' targets unknown node '{conn.node}'",
                    node_id=src,
                ))
    return out


def _unreachable_nodes(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    entries = [n.id for n in spec.trigger_nodes()]
    if not entries:
        return []   # already reported by trigger-required
    reachable = _reachable_from(spec, entries)
    return [
        Violation("unreachable-node", f"Node '{n.name}' is not reachable from any trigger",
                  severity=limits.orphan_severity, node_id=n.id)
        for n in spec.nodes if n.id not in reachable
    ]


def _credentials(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    out = []
    available = limits.credential_types
    for node in spec.nodes:
        accepted = required_credentials(node.kind)
        if not accepted:
            continue
        if node.credential is None:
            out.append(Violation(
                "credentials",
                f"Node '{node.name}' ({node.kind}) needs a credential of type {' or '.join(accepted)}",
                node_id=node.id,
            ))
            continue
        if node.credential.type not in accepted:
            out.append(Violation(
                "credentials",
                f"Node '{node.name}' uses credential type '{node.credential.type}', expected {' or '.join(accepted)}",
                node_id=node.id,
            ))
        elif available is None:
            out.append(Violation(
                "credentials",
                f"Could not verify that credential type '{node.credential.type}' is configured",
                severity=Severity.ADVISORY, node_id=node.id,
            ))
        elif node.credential.type not in available:
            out.append(Violation(
                "credentials",
                f"Credential type '{node.credential.type}' is not configured for this workspace",
                node_id=node.id,
            ))
    return out


def _blocked_nodes(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    out = []
    for node in spec.nodes:
        if node.kind in BLOCKED_KINDS:
            alternative = BLOCKED_KINDS[node.kind]
            hint = f"; use {alternative} instead" if alternative else ""
            out.append(Violation(
                "blocked-node",
                f"Node type '{node.kind}' requires per-user OAuth and is not supported{hint}",
                node_id=node.id,
            ))
    return out


def _node_kind_allowed(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    if limits.allowed_node_kinds is None:
        return []
    return [
        Violation("node-kind-allowed", f"Node type '{n.kind}' is not in the verified list",
                  severity=Severity.ADVISORY, node_id=n.id)
        for n in spec.nodes
        if n.kind not in limits.allowed_node_kinds and n.kind not in BLOCKED_KINDS
    ]


def _required_parameters(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    out = []
    for node in spec.nodes:
        p = node.parameters
        if node.kind == "n8n-nodes-base.httpRequest" and not p.get("url"):
            out.append(Violation("required-parameters", f"HTTP Request node '{node.name}' requires a url", node_id=node.id))
        elif node.kind == "n8n-nodes-base.emailSend" and not p.get("toEmail"):
            out.append(Violation("required-parameters", f"Email node '{node.name}' requires toEmail", node_id=node.id))
        elif node.kind == "n8n-nodes-base.code" and not (p.get("jsCode") or p.get("pythonCode")):
            out.append(Violation("required-parameters", f"Code node '{node.name}' has no code", node_id=node.id))
        elif node.kind == "n8n-nodes-base.function" and not p.get("functionCode"):
            out.append(Violation("required-parameters", f"Function node '{node.name}' has no code", node_id=node.id))
        elif node.kind == "n8n-nodes-base.webhook" and not p.get("path"):
            out.append(Violation("required-parameters", f"Webhook node '{node.name}' should set a path",
                                 severity=Severity.ADVISORY, node_id=node.id))
        elif node.kind == "n8n-nodes-base.scheduleTrigger" and not p.get("rule"):
            out.append(Violation("required-parameters", f"Schedule node '{node.name}' has no rule",
                                 severity=Severity.ADVISORY, node_id=node.id))
    return out


def _too_simple(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    if len(spec.nodes) < 2:
        return [Violation("too-simple", "Workflow has less than 2 nodes", severity=Severity.ADVISORY)]
    return []


def _has_output(spec: WorkflowSpecification, limits: PlatformLimits) -> List[Violation]:
    if spec.nodes and not any(produces_output(n.kind) for n in spec.nodes):
        return [Violation("has-output", "Workflow has no apparent output action", severity=Severity.ADVISORY)]
    return []


RULES: Tuple[Tuple[str, Rule], ...] = (
    ("max-nodes", _max_nodes),
    ("trigger-required", _trigger_required),
    ("connection-targets", _connection_targets),
    ("unreachable-node", _unreachable_nodes),
    ("credentials", _credentials),
    ("blocked-node", _blocked_nodes),
    ("node-kind-allowed", _node_kind_allowed),
    ("required-parameters", _required_parameters),
    ("too-simple", _too_simple),
    ("has-output", _has_output),
)

RULE_IDS = tuple(rule_id for rule_id, _ in RULES)


def validate(spec: WorkflowSpecification, limits: PlatformLimits) -> ValidationResult:
    violations: List[Violation] = []
    for rule_id, rule in RULES:
        found = rule(spec, limits)
        if found:
            logger.debug("[VALIDATE] %s: %d violation(s)", rule_id, len(found))
        violations.extend(found)
    return ValidationResult(violations=violations)


def _reachable_from(spec: WorkflowSpecification, entries: List[str]) -> Set[str]:
    """BFS over connections; dangling targets are ignored."""
    ids = set(spec.node_ids())
    seen = set(entries)
    queue = deque(entries)
    while queue:
        current = queue.popleft()
        for conn in spec.connections.get(current, []):
            if conn.node in ids and conn.node not in seen:
                seen.add(conn.node)
                queue.append(conn.node)
    return seen