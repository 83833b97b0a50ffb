"""Tests for the retry/recovery controllers."""

import json

import pytest

from clixen.audit import InMemoryAuditLog
from clixen.errors import (
    ActivationFailure, CreationFailure, ExhaustedRetries, GenerationFailure,
    PipelineCancelled, PreconditionFailure, ValidationFailure,
)
from clixen.llm_api import PinnedLLMClient
from clixen.workflow.builder import SpecificationBuilder
from clixen.workflow.context import CancellationToken, PipelineContext
from clixen.workflow.models import (
    AttemptPhase, ComplexityTier, DeploymentResult, OwnerContext, RequirementSummary,
)
from clixen.workflow.retry import DeploymentController, GenerationController
from clixen.workflow.schema import WorkflowSpecification

from conftest import digest_spec, wide_spec

SUMMARY = RequirementSummary(trigger_description="every day at 9am", trigger_type="schedule")


def _invalid_spec():
    raw = digest_spec()
    raw["nodes"] = raw["nodes"][1:]   # no trigger
    raw["connections"] = {"fetch_news": [{"node": "send_digest"}]}
    return WorkflowSpecification.model_validate(raw)


def _valid_spec():
    return WorkflowSpecification.model_validate(digest_spec())


class StubBuilder:
    """Serves queued results (specs or exceptions); the last one repeats. Records prior violations."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def build(self, summary, prior_violations=None):
        self.calls.append(prior_violations)
        result = self.results[min(len(self.calls) - 1, len(self.results) - 1)]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.mark.parametrize("max_attempts", [1, 3, 5])
def test_always_invalid_exhausts_after_exactly_max_attempts(max_attempts, limits):
    """An always-invalid builder stops after max_attempts, with one record per attempt."""
    builder = StubBuilder(_invalid_spec())
    audit = InMemoryAuditLog()
    controller = GenerationController(builder, audit)

    with pytest.raises(ExhaustedRetries) as exc:
        controller.generate_validated(SUMMARY, limits, max_attempts)

    assert len(builder.calls) == max_attempts
    assert len(exc.value.attempts) == max_attempts
    assert [r.attempt for r in exc.value.attempts] == list(range(1, max_attempts + 1))
    assert audit.records() == exc.value.attempts
    assert all(r.phase is AttemptPhase.VALIDATION and r.error for r in exc.value.attempts)
    assert isinstance(exc.value.__cause__, ValidationFailure)


def test_invalid_then_valid_succeeds_on_second_attempt(limits):
    """Attempt 1's violations are fed into attempt 2, which succeeds."""
    builder = StubBuilder(_invalid_spec(), _valid_spec())
    audit = InMemoryAuditLog()
    controller = GenerationController(builder, audit)

    spec = controller.generate_validated(SUMMARY, limits, 3)

    assert spec == _valid_spec()
    assert len(builder.calls) == 2
    assert builder.calls[0] is None
    first, second = audit.records()
    assert builder.calls[1] == first.violations
    assert "trigger-required" in [v.rule_id for v in builder.calls[1]]
    assert first.error is not None and first.spec_snapshot is not None
    assert second.succeeded and second.attempt == 2


def test_records_written_even_on_success(limits):
    """A first-time success still leaves one record."""
    audit = InMemoryAuditLog()
    GenerationController(StubBuilder(_valid_spec()), audit).generate_validated(SUMMARY, limits)
    records = audit.records()
    assert len(records) == 1
    assert records[0].succeeded
    assert records[0].spec_snapshot["name"] == "Daily email digest"


def test_generation_error_restarts_fresh(limits):
    """A generation failure counts as an attempt and the next build gets no prior violations."""
    builder = StubBuilder(_invalid_spec(), GenerationFailure("garbled"), _valid_spec())
    controller = GenerationController(builder, InMemoryAuditLog())

    controller.generate_validated(SUMMARY, limits, 3)

    assert builder.calls[1] is not None
    assert builder.calls[2] is None
    assert [r.phase for r in controller.attempts] == [
        AttemptPhase.VALIDATION, AttemptPhase.GENERATION, AttemptPhase.VALIDATION,
    ]
    assert controller.attempts[1].error == "garbled"
    assert controller.attempts[1].spec_snapshot is None


def test_only_generation_errors_exhaust(limits):
    """Exhaustion through generation errors is chained from the last GenerationFailure."""
    controller = GenerationController(StubBuilder(GenerationFailure("nope")), InMemoryAuditLog())
    with pytest.raises(ExhaustedRetries) as exc:
        controller.generate_validated(SUMMARY, limits, 2)
    assert len(exc.value.attempts) == 2
    assert isinstance(exc.value.__cause__, GenerationFailure)
    assert exc.value.violations == []


def test_max_attempts_must_be_positive(limits):
    """Zero attempts is a programming error."""
    with pytest.raises(ValueError):
        GenerationController(StubBuilder(_valid_spec()), InMemoryAuditLog()).generate_validated(SUMMARY, limits, 0)


def test_twelve_integrations_over_ceiling_exhaust_with_node_limit_breach(limits):
    """12 integrations at the advanced tier with an 8-node ceiling never validates."""
    summary = RequirementSummary(
        trigger_description="when I click run",
        integration_tags=frozenset(f"service{i}" for i in range(12)),
        complexity_tier=ComplexityTier.ADVANCED,
    )
    llm = PinnedLLMClient({"build": json.dumps(wide_spec(12))})
    builder = SpecificationBuilder(llm, sorted(limits.allowed_node_kinds))
    controller = GenerationController(builder, InMemoryAuditLog())

    with pytest.raises(ExhaustedRetries) as exc:
        controller.generate_validated(summary, limits, 3)

    assert len(exc.value.attempts) == 3
    for record in exc.value.attempts:
        assert "max-nodes" in [v.rule_id for v in record.violations]
    # every regeneration was told about the ceiling
    for call in llm.calls_for("build")[1:]:
        assert "[max-nodes]" in call.prompt


def test_auto_repair_fixes_within_the_same_attempt(limits):
    """With auto-repair on, a missing trigger is added and the attempt succeeds."""
    builder = StubBuilder(_invalid_spec())
    controller = GenerationController(builder, InMemoryAuditLog(), auto_repair=True)

    spec = controller.generate_validated(SUMMARY, limits, 3)

    assert len(builder.calls) == 1
    assert spec.trigger_nodes()[0].kind == "n8n-nodes-base.manualTrigger"
    assert len(controller.attempts) == 1 and controller.attempts[0].succeeded


def test_cancellation_checked_between_attempts(limits):
    """A cancelled session stops before the next generation attempt."""
    token = CancellationToken()
    ctx = PipelineContext(owner=OwnerContext("u1"), token=token)
    builder = StubBuilder(_invalid_spec())

    def build_then_cancel(summary, prior_violations=None):
        token.cancel()
        return StubBuilder.build(builder, summary, prior_violations)

    builder.build = build_then_cancel
    controller = GenerationController(builder, InMemoryAuditLog(), context=ctx)

    with pytest.raises(PipelineCancelled, match="generation attempt 2"):
        controller.generate_validated(SUMMARY, limits, 3)
    assert len(controller.attempts) == 1
    assert controller.attempts[0].session_key == "u1"


# ----- deployment loop -----

class StubDeployer:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def deploy(self, spec):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


DEPLOYED = DeploymentResult(engine_workflow_id="wf1", activated=True, workflow_name="[USR-u1] Daily email digest")


def test_creation_failure_retried_once():
    """One transient creation failure is absorbed by the default single retry."""
    deployer = StubDeployer(CreationFailure("502", status_code=502), DEPLOYED)
    audit = InMemoryAuditLog()
    result = DeploymentController(deployer, audit, session_key="u1").deploy(_valid_spec())
    assert result == DEPLOYED
    assert deployer.calls == 2
    assert [(r.phase, r.succeeded) for r in audit.records("u1")] == [
        (AttemptPhase.DEPLOYMENT, False), (AttemptPhase.DEPLOYMENT, True),
    ]


def test_creation_failures_exhaust():
    """Repeated creation failures surface as ExhaustedRetries chained from the last CreationFailure."""
    deployer = StubDeployer(CreationFailure("down"))
    controller = DeploymentController(deployer, InMemoryAuditLog(), retries=2)
    with pytest.raises(ExhaustedRetries) as exc:
        controller.deploy(_valid_spec())
    assert deployer.calls == 3
    assert len(exc.value.attempts) == 3
    assert isinstance(exc.value.__cause__, CreationFailure)


@pytest.mark.parametrize("error", [
    ActivationFailure("refused", workflow_id="wf9"),
    PreconditionFailure("no nodes"),
])
def test_activation_and_precondition_failures_not_retried(error):
    """Only creation failures are retried."""
    deployer = StubDeployer(error, DEPLOYED)
    audit = InMemoryAuditLog()
    with pytest.raises(type(error)):
        DeploymentController(deployer, audit, retries=3).deploy(_valid_spec())
    assert deployer.calls == 1
    assert len(audit.records()) == 1
