"""
Namespace allocator: owner tag, platform limits and per-workflow static data.

Read-only from the pipeline's point of view. Quotas and namespace assignment
belong to the allocator; the pipeline only consumes what it hands out.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from .workflow.models import ComplexityTier, OwnerContext, PlatformLimits, Severity

DEFAULT_NODE_CEILINGS = {
    ComplexityTier.SIMPLE: 8,
    ComplexityTier.STANDARD: 8,
    ComplexityTier.ADVANCED: 12,
}


class NamespaceAllocator(ABC):

    @abstractmethod
    def owner_tag(self, owner: OwnerContext) -> str:
        raise NotImplementedError()

    @abstractmethod
    def platform_limits(self, owner: OwnerContext, tier: ComplexityTier) -> PlatformLimits:
        raise NotImplementedError()

    def workflows_remaining(self, owner: OwnerContext) -> Optional[int]:
        """None means the allocator does not track a quota for this owner."""
        return None

    @abstractmethod
    def static_data(self, workflow_id: str) -> Dict[str, Any]:
        """Scheduler state owned by one workflow (never shared between workflows)."""
        raise NotImplementedError()


class StaticNamespaceAllocator(NamespaceAllocator):
    """ Allocator backed by configuration: same ceilings and quota for every owner. """

    def __init__(self, node_ceilings: Optional[Mapping[ComplexityTier, int]] = None,
                 max_workflows: Optional[int] = None,
                 orphan_severity: Severity = Severity.BLOCKING,
                 workflow_counts: Optional[Mapping[str, int]] = None):
        self.node_ceilings = dict(node_ceilings or DEFAULT_NODE_CEILINGS)
        self.max_workflows = max_workflows
        self.orphan_severity = orphan_severity
        self._workflow_counts = dict(workflow_counts or {})
        self._static: Dict[str, Dict[str, Any]] = {}

    def owner_tag(self, owner: OwnerContext) -> str:
        return f"USR-{owner.user_id}"

    def platform_limits(self, owner: OwnerContext, tier: ComplexityTier) -> PlatformLimits:
        return PlatformLimits(
            max_nodes=self.node_ceilings[tier],
            max_workflows=self.max_workflows,
            orphan_severity=self.orphan_severity,
        )

    def workflows_remaining(self, owner: OwnerContext) -> Optional[int]:
        if self.max_workflows is None:
            return None
        return max(self.max_workflows - self._workflow_counts.get(owner.user_id, 0), 0)

    def static_data(self, workflow_id: str) -> Dict[str, Any]:
        return self._static.setdefault(workflow_id, {})
