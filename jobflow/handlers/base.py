from abc import ABC, abstractmethod

from ..workflow.context import ExecutionContext
from ..workflow.models import Job
from ..workflow.results import JobResult, timestamp


class BaseHandler(ABC):
    """ Abstract base class for all job handlers. """

    # handlers that touch the outside world return a placeholder on dry runs
    has_side_effects = False

    @abstractmethod
    async def execute(self, job: Job, job_result: JobResult, context: ExecutionContext) -> None:
        """
        Run the job and set job_result.result. Must be implemented by
        subclasses; failures are raised as JobExecutionError.
        """
        pass

    async def dry_run(self, job: Job, job_result: JobResult, context: ExecutionContext) -> None:
        """
        Simulate execution without side effects.
        """
        if not self.has_side_effects:
            await self.execute(job, job_result, context)
            return
        job_result.log(f"Dry run: {job.kind.value} job not executed")
        job_result.result = {
            "dry_run": True,
            "job_id": job.id,
            "kind": job.kind.value,
            "timestamp": timestamp(),
        }
