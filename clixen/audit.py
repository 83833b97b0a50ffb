""" Audit/error log store: append-only AttemptRecords keyed by user/session. """
import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

from .workflow.models import AttemptPhase, AttemptRecord, Severity, Violation


class AuditLog(ABC):
    @abstractmethod
    def append(self, record: AttemptRecord) -> None:
        raise NotImplementedError()

    @abstractmethod
    def records(self, session_key: Optional[str] = None) -> List[AttemptRecord]:
        """Records in append order, optionally only those of one user/session key."""
        raise NotImplementedError()


class InMemoryAuditLog(AuditLog):
    def __init__(self):
        self._records: List[AttemptRecord] = []
        self._lock = threading.Lock()

    def append(self, record: AttemptRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self, session_key: Optional[str] = None) -> List[AttemptRecord]:
        with self._lock:
            return [r for r in self._records if session_key is None or r.session_key == session_key]


class JsonlAuditLog(AuditLog):
    """
    One JSON object per line. Each append is written and flushed before it
    returns, so a concurrent reader never sees attempt N without attempt N-1.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, record: AttemptRecord) -> None:
        line = json.dumps(record.to_dict(), default=str)
        with self._lock, self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
            fh.flush()

    def records(self, session_key: Optional[str] = None) -> List[AttemptRecord]:
        if not self.path.exists():
            return []
        out = []
        with self._lock, self.path.open(encoding="utf-8") as fh:
            for line in fh:
                if not line.strip():
                    continue
                record = _from_dict(json.loads(line))
                if session_key is None or record.session_key == session_key:
                    out.append(record)
        return out


def _from_dict(data) -> AttemptRecord:
    return AttemptRecord(
        attempt=data["attempt"],
        phase=AttemptPhase(data["phase"]),
        error=data.get("error"),
        timestamp=data.get("timestamp", 0.0),
        spec_snapshot=data.get("spec_snapshot"),
        violations=[
            Violation(v["rule_id"], v["message"], Severity(v["severity"]), v.get("node_id"))
            for v in data.get("violations") or []
        ],
        session_key=data.get("session_key", ""),
    )
