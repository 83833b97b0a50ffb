"""
Entry point: utterance -> deployed n8n workflow.

The pipeline follows this cycle:
1. Classify the request into a RequirementSummary (retried with backoff)
2. Generate a specification and validate it against the owner's limits,
   feeding violations back into regeneration (bounded)
3. Deploy to n8n under the owner's namespace (creation retried, bounded)
4. Probe the entry endpoint once (advisory)

Cancellation is checked between phases, never during a network call.
`run_pipeline` never raises for pipeline failures: the caller gets a
PipelineResult with either a deployment or an ordered explanation.
"""

import dataclasses
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .audit import AuditLog, InMemoryAuditLog
from .capabilities import CapabilityDiscovery
from .config import Settings, load_settings
from .errors import (
    ActivationFailure, ClassificationFailure, ClixenError, ExhaustedRetries,
    PipelineCancelled, PreconditionFailure,
)
from .integrations.n8n.client import N8nClient
from .integrations.n8n.deployer import N8nDeployer
from .integrations.n8n.smoke import SmokeTester
from .llm_api import LLMClient, OpenAIChatClient
from .namespace import NamespaceAllocator, StaticNamespaceAllocator
from .workflow.builder import SpecificationBuilder
from .workflow.classifier import IntentClassifier
from .workflow.context import CancellationToken, PipelineContext
from .workflow.models import (
    AttemptPhase, AttemptRecord, ComplexityTier, ConversationTurn, OwnerContext,
    PipelineResult, PlatformLimits, RequirementSummary, Severity, reliability_score,
)
from .workflow.retry import DeploymentController, GenerationController

logger = logging.getLogger(__name__)

HistoryItem = Union[ConversationTurn, Dict[str, Any]]


class ClixenPipeline:
    """
    Wires the collaborators together. One instance can serve many invocations:
    every run gets its own context and controllers, so nothing mutable is shared
    between runs except the audit log and the engine.
    """

    def __init__(self, settings: Settings, llm: LLMClient, engine, *,
                 audit_log: Optional[AuditLog] = None,
                 allocator: Optional[NamespaceAllocator] = None,
                 capabilities: Optional[CapabilityDiscovery] = None,
                 smoke: Optional[SmokeTester] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.engine = engine
        self.audit_log = audit_log or InMemoryAuditLog()
        self.allocator = allocator or StaticNamespaceAllocator(
            node_ceilings=settings.limits.node_ceilings(),
            max_workflows=settings.limits.max_workflows,
            orphan_severity=settings.pipeline.orphan_severity,
        )
        self.capabilities = capabilities or CapabilityDiscovery(
            engine,
            default_node_kinds=settings.node_kinds,
            default_credential_types=settings.credential_types,
            ttl_s=settings.pipeline.capability_ttl_s,
        )
        self.smoke = smoke or SmokeTester(settings.smoke.timeout_s, settings.smoke.method)
        self.sleep = sleep

        self.classifier = IntentClassifier(
            llm,
            max_chars=settings.pipeline.max_utterance_chars,
            truncate=settings.pipeline.truncate_long_utterances,
        )
        self.builder = SpecificationBuilder(llm, self.capabilities.list_available_node_kinds)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, *, llm: Optional[LLMClient] = None,
                      transport=None, **kwargs) -> "ClixenPipeline":
        """Build the production wiring. `transport` is handed to every httpx client (tests pass a MockTransport)."""
        settings = settings or load_settings()
        if llm is None:
            llm = OpenAIChatClient(
                api_key=settings.llm.api_key,
                model=settings.llm.model,
                base_url=settings.llm.base_url,
                temperature=settings.llm.temperature,
                timeout=settings.llm.timeout_s,
                transport=transport,
            )
        engine = N8nClient(
            settings.n8n.api_url,
            settings.n8n.api_key,
            public_url=settings.n8n.public_url,
            timeout=settings.n8n.timeout_s,
            transport=transport,
        )
        kwargs.setdefault("smoke", SmokeTester(settings.smoke.timeout_s, settings.smoke.method, transport=transport))
        return cls(settings, llm, engine, **kwargs)

    def run(self, utterance: str, history: Optional[Sequence[HistoryItem]], owner: OwnerContext,
            token: Optional[CancellationToken] = None) -> PipelineResult:
        ctx = PipelineContext(owner=owner, token=token)
        result = PipelineResult(success=False, execution_log=ctx.execution_log)
        generation: Optional[GenerationController] = None
        deployment: Optional[DeploymentController] = None
        ctx.log(f"[PIPELINE] run for {owner.key}")

        try:
            summary = self._classify(utterance, _turns(history), ctx)
            ctx.checkpoint("generation")

            limits = self._limits(owner, summary.complexity_tier)
            ctx.log(f"[BUILD] tier={summary.complexity_tier.value} max_nodes={limits.max_nodes}")
            generation = GenerationController(
                self.builder, self.audit_log,
                auto_repair=self.settings.pipeline.auto_repair, context=ctx,
            )
            spec = generation.generate_validated(summary, limits, self.settings.pipeline.max_generation_attempts)
            result.violations = list(generation.attempts[-1].violations)
            result.reliability_score = reliability_score(result.violations)
            ctx.checkpoint("deployment")

            remaining = self.allocator.workflows_remaining(owner)
            if remaining is not None and remaining <= 0:
                raise PreconditionFailure(f"Workflow quota of {limits.max_workflows} reached")

            deployer = N8nDeployer(self.engine, self.allocator.owner_tag(owner))
            deployment = DeploymentController(
                deployer, self.audit_log,
                retries=self.settings.pipeline.deployment_retries, session_key=owner.key,
            )
            deployed = deployment.deploy(spec)
            result.deployment_result = deployed
            result.success = True
            ctx.log(f"[DEPLOY] '{deployed.workflow_name}' is live as {deployed.engine_workflow_id}")

            if self.settings.smoke.enabled:
                result.smoke_ok = self.smoke.probe(deployed)
                if not result.smoke_ok:
                    result.warnings.append(
                        f"Smoke test did not get a successful response from {deployed.entry_endpoint}"
                    )
                ctx.log(f"[SMOKE] ok={result.smoke_ok}")

        except PipelineCancelled as e:
            result.cancelled = True
            result.explanation.append(str(e))
        except ClassificationFailure as e:
            result.explanation.append(f"Could not understand the request: {e}")
        except ExhaustedRetries as e:
            if deployment is None:
                result.violations = e.violations
            result.explanation.append(str(e))
        except ActivationFailure as e:
            result.explanation.append(
                f"Workflow {e.workflow_id} was created but could not be activated; it was left in place"
            )
        except ClixenError as e:
            result.explanation.append(str(e))
        except Exception as e:
            logger.exception("Unexpected pipeline error")
            result.explanation.append(f"Internal error ({type(e).__name__})")

        for controller in (generation, deployment):
            if controller is not None:
                result.attempts.extend(controller.attempts)
        result.explanation = _explain(result.attempts) + result.explanation
        if result.success:
            result.warnings.extend(
                f"{v.rule_id}: {v.message}" for v in result.violations if v.severity is Severity.ADVISORY
            )
        ctx.log(f"[PIPELINE] done success={result.success} attempts={len(result.attempts)}")
        return result

    def _classify(self, utterance: str, history: List[ConversationTurn], ctx: PipelineContext) -> RequirementSummary:
        """Classification with exponential backoff. Input errors are not retried."""
        tries = self.settings.pipeline.classification_attempts
        delay = self.settings.pipeline.classification_backoff_s
        for attempt in range(1, tries + 1):
            try:
                summary = self.classifier.classify(utterance, history)
                ctx.log(f"[CLASSIFY] {summary.trigger_type} trigger, {len(summary.action_descriptions)} action(s)")
                return summary
            except ClassificationFailure as e:
                if attempt == tries or not e.retryable:
                    raise
                ctx.log(f"[CLASSIFY] attempt {attempt} failed, retrying in {delay:.1f}s: {e}")
                self.sleep(delay)
                delay *= 2

    def _limits(self, owner: OwnerContext, tier: ComplexityTier) -> PlatformLimits:
        credential_types = self.capabilities.list_available_credential_types()
        return dataclasses.replace(
            self.allocator.platform_limits(owner, tier),
            allowed_node_kinds=frozenset(self.capabilities.list_available_node_kinds()),
            credential_types=None if credential_types is None else frozenset(credential_types),
        )

    def close(self) -> None:
        for client in (self.engine, self.classifier.llm):
            close = getattr(client, "close", None)
            if close is not None:
                close()


def run_pipeline(utterance: str, history: Optional[Sequence[HistoryItem]], owner: OwnerContext, *,
                 settings: Optional[Settings] = None, pipeline: Optional[ClixenPipeline] = None,
                 token: Optional[CancellationToken] = None, **kwargs) -> PipelineResult:
    """
    Single public entry point. Pass `pipeline` to reuse wiring across calls;
    otherwise one is built from `settings` and closed afterwards.
    """
    if pipeline is not None:
        return pipeline.run(utterance, history, owner, token=token)
    pipeline = ClixenPipeline.from_settings(settings, **kwargs)
    try:
        return pipeline.run(utterance, history, owner, token=token)
    finally:
        pipeline.close()


def _turns(history: Optional[Sequence[HistoryItem]]) -> List[ConversationTurn]:
    turns = []
    for item in history or []:
        if isinstance(item, ConversationTurn):
            turns.append(item)
        else:
            turns.append(ConversationTurn(role=str(item.get("role", "user")), content=str(item.get("content", ""))))
    return turns


def _explain(attempts: Sequence[AttemptRecord]) -> List[str]:
    """One line per attempt, in order. Raw model output never reaches the caller."""
    lines = []
    for r in attempts:
        if r.phase is AttemptPhase.GENERATION:
            outcome = "no usable workflow was generated"
        elif r.error is None:
            outcome = "succeeded"
        elif r.phase is AttemptPhase.VALIDATION:
            blocking = [v for v in r.violations if v.severity is Severity.BLOCKING]
            outcome = "rejected: " + "; ".join(v.message for v in blocking)
        else:
            outcome = f"failed: {r.error}"
        lines.append(f"{r.phase.value.capitalize()} attempt {r.attempt}: {outcome}")
    return lines
