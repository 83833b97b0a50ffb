""" Exception taxonomy for the workflow generation pipeline. """

from typing import List, Optional


class ClixenError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(ClixenError):
    """Settings file or environment could not be turned into valid Settings."""


class ClassificationFailure(ClixenError):
    """
    The intent classifier could not derive a requirement summary.
    `retryable` is False for input problems, where asking the model again cannot help.
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class GenerationFailure(ClixenError):
    """The specification builder failed or produced unparseable output."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class ValidationFailure(ClixenError):
    """A specification has blocking violations."""

    def __init__(self, message: str, violations: Optional[List] = None):
        super().__init__(message)
        self.violations = list(violations or [])


class PreconditionFailure(ClixenError):
    """Deployment input is obviously malformed; nothing was sent to the engine."""


class CreationFailure(ClixenError):
    """The engine did not create the workflow."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ActivationFailure(ClixenError):
    """
    The workflow was created but the engine refused to activate it.
    The created workflow is left in place; `workflow_id` identifies it.
    """

    def __init__(self, message: str, workflow_id: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.workflow_id = workflow_id
        self.status_code = status_code


class EngineUnavailable(ClixenError):
    """The engine API could not be reached for a read-only lookup."""


class ExhaustedRetries(ClixenError):
    """
    Terminal failure of a bounded retry loop.
    Carries every AttemptRecord so callers never have to guess the root cause
    from a single message.
    """

    def __init__(self, message: str, attempts: List):
        super().__init__(message)
        self.attempts = list(attempts)

    @property
    def violations(self) -> List:
        out: List = []
        for record in self.attempts:
            out.extend(record.violations)
        return out


class SmokeTestInconclusive(ClixenError):
    """Post-deployment probe failed. Never raised out of the smoke tester; logged only."""


class PipelineCancelled(ClixenError):
    """The invoking session cancelled the run between two phases."""

    def __init__(self, phase: str):
        super().__init__(f"Pipeline cancelled before {phase}")
        self.phase = phase
