""" Specification builder: RequirementSummary -> WorkflowSpecification. """

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Union

from ..errors import GenerationFailure
from ..integrations.n8n.codec import auto_layout
from ..llm_api import BUILD_PROMPT, BUILD_SCHEMA_HINT, LLMClient
from .compiler import load_specification
from .models import RequirementSummary, Violation
from .node_kinds import TRIGGER_KINDS, default_type_version
from .schema import WorkflowSpecification

logger = logging.getLogger(__name__)

# How to address each rule when a regeneration is fed the previous violations
RULE_HINTS = {
    "max-nodes": "Use fewer nodes: merge steps and drop optional ones to stay within the node limit.",
    "trigger-required": "Start the workflow with exactly one trigger node (webhook, schedule or manual).",
    "connection-targets": "Every connection must point at a node id that exists in the node list.",
    "unreachable-node": "Connect every node so it is reachable from the trigger, or remove it.",
    "credentials": "Give every node that needs credentials a credential of an available type.",
    "blocked-node": "Replace OAuth-only nodes (Gmail, Slack, Sheets...) with emailSend or httpRequest.",
    "node-kind-allowed": "Only use node kinds from the allowed list.",
    "required-parameters": "Fill required parameters (url, toEmail, code, webhook path, schedule rule).",
    "too-simple": "Add the steps the request asks for; a single node rarely does anything useful.",
    "has-output": "End the workflow with an output node (email, HTTP request or webhook response).",
}

NodeKindSource = Union[Sequence[str], Callable[[], Iterable[str]]]


class SpecificationBuilder:
    """
    Turns a requirement summary into a workflow specification with a single model call.

    The node-kind allow-list is an input (a list, or a callable such as
    CapabilityDiscovery.list_available_node_kinds) so it can follow the engine.
    """

    def __init__(self, llm: LLMClient, node_kinds: NodeKindSource):
        self.llm = llm
        self._node_kinds = node_kinds

    def allowed_kinds(self) -> List[str]:
        source = self._node_kinds() if callable(self._node_kinds) else self._node_kinds
        return list(source)

    def build(self, summary: RequirementSummary,
              prior_violations: Optional[Sequence[Violation]] = None) -> WorkflowSpecification:
        kinds = self.allowed_kinds()
        prompt = self.render_prompt(summary, kinds, prior_violations)
        logger.info("[BUILD] generating specification (corrections=%d)", len(prior_violations or []))
        try:
            raw = self.llm.infer(prompt, BUILD_SCHEMA_HINT, task="build")
        except Exception as e:
            raise GenerationFailure(f"Specification generation failed: {e}") from e

        spec = load_specification(raw)

        invented = sorted({n.kind for n in spec.nodes if n.kind not in kinds})
        if invented:
            raise GenerationFailure(f"Generated unknown node kinds: {', '.join(invented)}", raw=raw)
        return _finalise(spec)

    def render_prompt(self, summary: RequirementSummary, kinds: Sequence[str],
                      prior_violations: Optional[Sequence[Violation]] = None) -> str:
        actions = "\n".join(f"- {a}" for a in summary.action_descriptions) or "- (none stated)"
        return BUILD_PROMPT.format(
            trigger_type=TRIGGER_KINDS.get(summary.trigger_type, summary.trigger_type),
            trigger=summary.trigger_description,
            actions=actions,
            integrations=", ".join(sorted(summary.integration_tags)) or "(none)",
            tier=summary.complexity_tier.value,
            kinds="\n".join(f"- {k}" for k in kinds),
            corrections=self._corrections(prior_violations),
        )

    def _corrections(self, prior_violations: Optional[Sequence[Violation]]) -> str:
        if not prior_violations:
            return ""
        lines = ["", "The previous attempt was rejected. Fix every problem below:"]
        for v in prior_violations:
            hint = RULE_HINTS.get(v.rule_id, "")
            lines.append(f"- [{v.rule_id}] {v.message}. {hint}".rstrip())
        return "\n".join(lines) + "\n"


def _finalise(spec: WorkflowSpecification) -> WorkflowSpecification:
    """Pin positions and type versions so the engine JSON round-trips exactly."""
    positions = auto_layout(spec.nodes)
    nodes = [
        n.model_copy(update={
            "position": positions[n.id],
            "type_version": n.type_version or default_type_version(n.kind),
        })
        for n in spec.nodes
    ]
    return spec.model_copy(update={"nodes": nodes})
