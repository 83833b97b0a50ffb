""" Per-invocation context: owner, cooperative cancellation and the execution log. """
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import PipelineCancelled
from .models import OwnerContext

logger = logging.getLogger(__name__)


class CancellationToken:
    """Set by the invoking session when it ends or a newer request supersedes this one."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class PipelineContext:
    owner: OwnerContext
    token: Optional[CancellationToken] = None
    execution_log: List[Dict[str, Any]] = field(default_factory=list)

    def log(self, message: str) -> None:
        """Add a message to the execution log."""
        self.execution_log.append({"timestamp": time.time(), "message": message})
        logger.info(message)

    def checkpoint(self, phase: str) -> None:
        """Raise PipelineCancelled if the session asked to stop. Only called between phases."""
        if self.token is not None and self.token.cancelled:
            self.log(f"[CANCEL] stopping before {phase}")
            raise PipelineCancelled(phase)
