""" Observer hooks notified of job and run state transitions. """
import logging
from typing import Callable, Optional, Protocol

from .results import JobResult, WorkflowResult

logger = logging.getLogger(__name__)


class Observer(Protocol):
    def on_job_update(self, job_result: JobResult) -> None: ...

    def on_workflow_update(self, workflow_result: WorkflowResult) -> None: ...


class NullObserver:
    def on_job_update(self, job_result: JobResult) -> None:
        pass

    def on_workflow_update(self, workflow_result: WorkflowResult) -> None:
        pass


class CallbackObserver:
    """ Adapts two plain callables to the Observer shape. """

    def __init__(
        self,
        on_job_update: Optional[Callable[[JobResult], None]] = None,
        on_workflow_update: Optional[Callable[[WorkflowResult], None]] = None,
    ):
        self._on_job_update = on_job_update
        self._on_workflow_update = on_workflow_update

    def on_job_update(self, job_result: JobResult) -> None:
        if self._on_job_update:
            self._on_job_update(job_result)

    def on_workflow_update(self, workflow_result: WorkflowResult) -> None:
        if self._on_workflow_update:
            self._on_workflow_update(workflow_result)


class LoggingObserver:
    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def on_job_update(self, job_result: JobResult) -> None:
        self.log.info(
            "job %s (%s) -> %s",
            job_result.job_id, job_result.kind.value, job_result.status.value,
            extra={"job_id": job_result.job_id, "job_kind": job_result.kind.value},
        )

    def on_workflow_update(self, workflow_result: WorkflowResult) -> None:
        self.log.info(
            "run %s -> %s", workflow_result.id, workflow_result.status.value,
            extra={"run_id": workflow_result.id},
        )
