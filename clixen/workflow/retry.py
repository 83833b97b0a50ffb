"""
Retry/Recovery Controller.

Two independently bounded loops:

* GenerationController: build -> validate -> auto-correct, as an explicit state
  machine. Each pass through ATTEMPTING costs one attempt, whether it fails at
  generation or at validation, and leaves exactly one AttemptRecord in the
  audit log before the next attempt starts.
* DeploymentController: wraps only the deployment adapter. Creation failures
  are retried with the same specification; everything else surfaces at once.
"""
import logging
from enum import Enum
from typing import List, Optional, Sequence

from ..errors import (
    ActivationFailure, ClixenError, CreationFailure, ExhaustedRetries, GenerationFailure,
    PreconditionFailure, ValidationFailure,
)
from .healer import heal
from .models import AttemptPhase, AttemptRecord, DeploymentResult, PlatformLimits, RequirementSummary, Violation
from .schema import WorkflowSpecification
from .validator import validate

logger = logging.getLogger(__name__)


class GenerationState(str, Enum):
    ATTEMPTING = "attempting"
    VALIDATING = "validating"
    AUTO_CORRECT = "auto_correct"
    DONE = "done"
    EXHAUSTED = "exhausted"


class GenerationController:
    """
    ATTEMPTING --ok--> VALIDATING --valid--> DONE
        |                  |
        | GenerationFailure| invalid
        v                  v
    (fresh) ATTEMPTING <-- AUTO_CORRECT (violations fed back)

    Any transition back to ATTEMPTING goes to EXHAUSTED instead once the
    attempt budget is spent.
    """

    def __init__(self, builder, audit_log, *, auto_repair: bool = False, context=None):
        self.builder = builder
        self.audit_log = audit_log
        self.auto_repair = auto_repair
        self.context = context
        self.attempts: List[AttemptRecord] = []

    def generate_validated(self, summary: RequirementSummary, limits: PlatformLimits,
                           max_attempts: int = 3) -> WorkflowSpecification:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.attempts = []
        state = GenerationState.ATTEMPTING
        attempt = 0
        prior: Optional[Sequence[Violation]] = None
        spec: Optional[WorkflowSpecification] = None
        result = None
        last_failure: Optional[ClixenError] = None

        while True:
            if state is GenerationState.ATTEMPTING:
                attempt += 1
                self._log(f"[BUILD] attempt {attempt}/{max_attempts}")
                try:
                    spec = self.builder.build(summary, prior)
                except GenerationFailure as e:
                    last_failure = e
                    self._record(AttemptRecord(attempt, AttemptPhase.GENERATION, error=str(e)))
                    prior = None   # next build starts fresh
                    state = self._after_failure(attempt, max_attempts)
                    continue
                state = GenerationState.VALIDATING

            elif state is GenerationState.VALIDATING:
                result = validate(spec, limits)
                self._log(f"[VALIDATE] attempt {attempt}: {len(result.blocking)} blocking, "
                          f"{len(result.advisory)} advisory")
                if result.is_valid:
                    self._record(AttemptRecord(attempt, AttemptPhase.VALIDATION,
                                               spec_snapshot=spec.snapshot(), violations=result.advisory))
                    state = GenerationState.DONE
                else:
                    state = GenerationState.AUTO_CORRECT

            elif state is GenerationState.AUTO_CORRECT:
                if self.auto_repair:
                    repaired, fixes = heal(spec, result.blocking)
                    if fixes:
                        repaired_result = validate(repaired, limits)
                        self._log(f"[VALIDATE] auto-repair applied {len(fixes)} fix(es): {'; '.join(fixes)}")
                        if repaired_result.is_valid:
                            spec, result = repaired, repaired_result
                            self._record(AttemptRecord(attempt, AttemptPhase.VALIDATION,
                                                       spec_snapshot=spec.snapshot(),
                                                       violations=result.advisory))
                            state = GenerationState.DONE
                            continue

                self._record(AttemptRecord(
                    attempt, AttemptPhase.VALIDATION,
                    error=f"{len(result.blocking)} blocking violation(s): {', '.join(dict.fromkeys(v.rule_id for v in result.blocking))}",
                    spec_snapshot=spec.snapshot(),
                    violations=list(result.violations),
                ))
                prior = list(result.violations)
                last_failure = ValidationFailure(self.attempts[-1].error, result.violations)
                state = self._after_failure(attempt, max_attempts)

            elif state is GenerationState.DONE:
                self._log(f"[VALIDATE] specification accepted on attempt {attempt}")
                return spec

            elif state is GenerationState.EXHAUSTED:
                self._log(f"[VALIDATE] giving up after {attempt} attempt(s)")
                raise ExhaustedRetries(f"No valid specification after {attempt} attempt(s)", self.attempts) from last_failure

    def _after_failure(self, attempt: int, max_attempts: int) -> GenerationState:
        if attempt >= max_attempts:
            return GenerationState.EXHAUSTED
        if self.context is not None:
            self.context.checkpoint(f"generation attempt {attempt + 1}")
        return GenerationState.ATTEMPTING

    def _record(self, record: AttemptRecord) -> None:
        if self.context is not None:
            record.session_key = self.context.owner.key
        self.attempts.append(record)
        self.audit_log.append(record)

    def _log(self, message: str) -> None:
        if self.context is not None:
            self.context.log(message)
        else:
            logger.info(message)


class DeploymentController:
    """ Deployment loop: `retries` extra tries for CreationFailure only. """

    def __init__(self, deployer, audit_log, retries: int = 1, session_key: str = ""):
        if retries < 0:
            raise ValueError("retries must not be negative")
        self.deployer = deployer
        self.audit_log = audit_log
        self.retries = retries
        self.session_key = session_key
        self.attempts: List[AttemptRecord] = []

    def deploy(self, spec: WorkflowSpecification) -> DeploymentResult:
        self.attempts = []
        last_error: Optional[CreationFailure] = None
        for attempt in range(1, self.retries + 2):
            try:
                result = self.deployer.deploy(spec)
            except CreationFailure as e:
                logger.warning("[DEPLOY] attempt %d: creation failed: %s", attempt, e)
                self._record(attempt, spec, str(e))
                last_error = e
                continue
            except (ActivationFailure, PreconditionFailure) as e:
                logger.warning("[DEPLOY] attempt %d: %s", attempt, e)
                self._record(attempt, spec, str(e))
                raise
            self._record(attempt, spec, None)
            logger.info("[DEPLOY] workflow %s deployed on attempt %d", result.engine_workflow_id, attempt)
            return result

        raise ExhaustedRetries(
            f"Deployment failed after {len(self.attempts)} attempt(s)", self.attempts
        ) from last_error

    def _record(self, attempt: int, spec: WorkflowSpecification, error: Optional[str]) -> None:
        record = AttemptRecord(attempt, AttemptPhase.DEPLOYMENT, error=error,
                               spec_snapshot=spec.snapshot(), session_key=self.session_key)
        self.attempts.append(record)
        self.audit_log.append(record)
