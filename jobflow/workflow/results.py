""" Per-job and per-run execution results. """

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import JobKind


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class JobResult:
    job_id: str
    kind: JobKind
    label: str = ""
    status: JobStatus = JobStatus.PENDING
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    result: Any = None
    error: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    def log(self, message: str) -> str:
        line = f"[{timestamp()}] {message}"
        self.logs.append(line)
        return line

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "kind": self.kind.value,
            "label": self.label,
            "status": self.status.value,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "result": self.result,
            "error": self.error,
            "logs": list(self.logs),
        }


@dataclass
class WorkflowResult:
    id: str
    status: WorkflowStatus = WorkflowStatus.RUNNING
    started_at: str = field(default_factory=timestamp)
    ended_at: Optional[str] = None
    job_results: Dict[str, JobResult] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    executed: List[str] = field(default_factory=list)   # in dispatch-completion order
    skipped: List[str] = field(default_factory=list)    # proven unreachable this run

    def log(self, message: str) -> str:
        line = f"[{timestamp()}] {message}"
        self.logs.append(line)
        return line

    def _with_status(self, status: JobStatus) -> List[JobResult]:
        return [r for r in self.job_results.values() if r.status == status]

    def failed_jobs(self) -> List[JobResult]:
        return self._with_status(JobStatus.FAILED)

    def completed_jobs(self) -> List[JobResult]:
        return self._with_status(JobStatus.COMPLETED)

    def pending_jobs(self) -> List[JobResult]:
        return self._with_status(JobStatus.PENDING)

    def to_dict(self) -> Dict[str, Any]:
        """ Transport form: job results become an ordered list. """
        return {
            "id": self.id,
            "status": self.status.value,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "job_results": [r.to_dict() for r in self.job_results.values()],
            "logs": list(self.logs),
            "executed": list(self.executed),
            "skipped": list(self.skipped),
        }
