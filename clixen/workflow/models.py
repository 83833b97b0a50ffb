""" Data models shared by the generation / validation / deployment pipeline """

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple, FrozenSet


class ComplexityTier(str, Enum):
    SIMPLE = "simple"
    STANDARD = "standard"
    ADVANCED = "advanced"

    @classmethod
    def from_count(cls, distinct_items: int) -> "ComplexityTier":
        """Tier from the number of distinct actions + integrations (never model-chosen)."""
        if distinct_items <= 3:
            return cls.SIMPLE
        if distinct_items <= 6:
            return cls.STANDARD
        return cls.ADVANCED


class Severity(str, Enum):
    BLOCKING = "blocking"   # must be fixed before deploy
    ADVISORY = "advisory"   # reported, never blocks


class AttemptPhase(str, Enum):
    GENERATION = "generation"
    VALIDATION = "validation"
    DEPLOYMENT = "deployment"


@dataclass(frozen=True)
class ConversationTurn:
    role: str       # "user" | "assistant"
    content: str


@dataclass(frozen=True)
class RequirementSummary:
    """ Structured extraction of user intent. Immutable once handed to the builder. """
    trigger_description: str
    action_descriptions: Tuple[str, ...] = ()
    integration_tags: FrozenSet[str] = frozenset()
    complexity_tier: ComplexityTier = ComplexityTier.SIMPLE
    trigger_type: str = "manual"    # webhook | schedule | manual
    utterance: str = ""


@dataclass(frozen=True)
class Violation:
    rule_id: str
    message: str
    severity: Severity = Severity.BLOCKING
    node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "message": self.message,
            "severity": self.severity.value,
            "node_id": self.node_id,
        }


def reliability_score(violations: List[Violation]) -> int:
    """100, minus 20 per blocking and 5 per advisory violation, clamped to 0..100."""
    score = 100
    for v in violations:
        score -= 20 if v.severity is Severity.BLOCKING else 5
    return max(0, min(100, score))


@dataclass
class ValidationResult:
    violations: List[Violation] = field(default_factory=list)

    @property
    def blocking(self) -> List[Violation]:
        return [v for v in self.violations if v.severity is Severity.BLOCKING]

    @property
    def advisory(self) -> List[Violation]:
        return [v for v in self.violations if v.severity is Severity.ADVISORY]

    @property
    def is_valid(self) -> bool:
        return not self.blocking

    @property
    def reliability_score(self) -> int:
        return reliability_score(self.violations)

    def rule_ids(self) -> List[str]:
        return [v.rule_id for v in self.violations]


@dataclass
class AttemptRecord:
    """ One row per generation / validation / deployment attempt, appended to the audit log. """
    attempt: int
    phase: AttemptPhase
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    spec_snapshot: Optional[Dict[str, Any]] = None
    violations: List[Violation] = field(default_factory=list)
    session_key: str = ""

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        data["violations"] = [v.to_dict() for v in self.violations]
        return data


@dataclass(frozen=True)
class DeploymentResult:
    engine_workflow_id: str
    entry_endpoint: Optional[str] = None
    activated: bool = False
    workflow_name: str = ""


@dataclass(frozen=True)
class PlatformLimits:
    max_nodes: int = 8
    max_workflows: Optional[int] = None
    orphan_severity: Severity = Severity.BLOCKING
    # None means "do not restrict" for node kinds, and "lookup unavailable" for credentials
    allowed_node_kinds: Optional[FrozenSet[str]] = None
    credential_types: Optional[FrozenSet[str]] = None


@dataclass(frozen=True)
class OwnerContext:
    user_id: str
    project_id: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def key(self) -> str:
        return ":".join(p for p in (self.user_id, self.project_id, self.session_id) if p)


@dataclass
class PipelineResult:
    success: bool
    deployment_result: Optional[DeploymentResult] = None
    violations: List[Violation] = field(default_factory=list)
    attempts: List[AttemptRecord] = field(default_factory=list)
    explanation: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    smoke_ok: Optional[bool] = None
    reliability_score: Optional[int] = None     # of the accepted specification
    cancelled: bool = False
    execution_log: List[Dict[str, Any]] = field(default_factory=list)
