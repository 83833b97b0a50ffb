"""
Deployment adapter: validated WorkflowSpecification -> live n8n workflow.

The adapter does not re-validate. It only refuses input that is obviously
unusable, namespaces the workflow name with the owner tag, creates, then
activates. A workflow that was created but not activated stays on the engine.
"""
import logging
from typing import Optional

from ...errors import PreconditionFailure
from ...workflow.models import DeploymentResult
from ...workflow.schema import WorkflowSpecification
from .codec import to_engine_json

logger = logging.getLogger(__name__)

WEBHOOK_KIND = "n8n-nodes-base.webhook"


def namespaced_name(name: str, owner_tag: str) -> str:
    prefix = f"[{owner_tag}] "
    return name if name.startswith(prefix) else prefix + name


def entry_endpoint(spec: WorkflowSpecification, workflow_id: str, public_url: str) -> Optional[str]:
    """ Production URL of the first webhook trigger, or None when the workflow has none. """
    for node in spec.nodes:
        if node.kind == WEBHOOK_KIND:
            path = str(node.parameters.get("path") or workflow_id).strip("/")
            return f"{public_url.rstrip('/')}/webhook/{path}"
    return None


class N8nDeployer:
    def __init__(self, client, owner_tag: str, public_url: Optional[str] = None):
        self.client = client
        self.owner_tag = owner_tag
        self.public_url = public_url or getattr(client, "public_url", "")

    def deploy(self, spec: WorkflowSpecification) -> DeploymentResult:
        if not spec.nodes:
            raise PreconditionFailure("Refusing to deploy a workflow without nodes")

        # work on a copy; the caller's specification is never touched
        tagged = spec.model_copy(deep=True, update={"name": namespaced_name(spec.name, self.owner_tag)})
        payload = to_engine_json(tagged)

        logger.info("[DEPLOY] creating '%s' (%d nodes)", tagged.name, len(tagged.nodes))
        created = self.client.create_workflow(payload)
        workflow_id = str(created["id"])

        logger.info("[DEPLOY] activating workflow %s", workflow_id)
        self.client.activate_workflow(workflow_id)

        return DeploymentResult(
            engine_workflow_id=workflow_id,
            entry_endpoint=entry_endpoint(tagged, workflow_id, self.public_url),
            activated=True,
            workflow_name=tagged.name,
        )
