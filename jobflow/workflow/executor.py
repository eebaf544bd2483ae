"""
Asynchronous execution engine for compiled workflows.

Traversal starts at the Start job and follows connections. A job runs once
all of its dependencies are resolved: executed (successfully or not) or
proven unreachable in this run. Sibling branches run concurrently and are
joined without cancelling each other when one of them fails.
"""
import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

import httpx

from ..config import Settings, get_settings
from ..handlers.base import BaseHandler
from .compiler import compile_workflow, load_jobs_document
from .context import CancellationToken, ExecutionContext
from .errors import JobNotFoundError, MissingStartNodeError, WorkflowEngineError
from .factory import default_handlers
from .models import DEFAULT_CONDITIONS, CompiledWorkflow, Job, JobKind, Workflow
from .observer import NullObserver, Observer
from .results import JobResult, JobStatus, WorkflowResult, WorkflowStatus, timestamp

logger = logging.getLogger(__name__)

WorkflowInput = Union[CompiledWorkflow, Workflow, Dict[str, Any], str]


class WorkflowExecutor:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        observer: Optional[Observer] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        send_email: Optional[Callable[..., Any]] = None,
        handlers: Optional[Dict[JobKind, BaseHandler]] = None,
        dry_run: bool = False,
    ):
        self.settings = settings or get_settings()
        self.observer = observer or NullObserver()
        self.http_client = http_client
        self.send_email = send_email
        self.handlers = default_handlers()
        if handlers:
            self.handlers.update(handlers)
        self.dry_run = dry_run
        self._token: Optional[CancellationToken] = None

    @property
    def is_running(self) -> bool:
        return self._token is not None

    def cancel(self) -> None:
        """Stop dispatching new jobs. In-flight handlers poll the same token."""
        if self._token is not None:
            self._token.cancel()

    async def run(self, workflow: WorkflowInput, variables: Optional[Dict[str, Any]] = None) -> WorkflowResult:
        if isinstance(workflow, Workflow):
            workflow = compile_workflow(workflow)
        elif not isinstance(workflow, CompiledWorkflow):
            workflow = load_jobs_document(workflow)

        token = CancellationToken()
        self._token = token
        try:
            return await _WorkflowRun(self, workflow, variables or {}, token).execute()
        finally:
            self._token = None


class _WorkflowRun:
    """State of a single run: result table plus the scheduling sets."""

    def __init__(self, executor: WorkflowExecutor, workflow: CompiledWorkflow,
                 variables: Dict[str, Any], token: CancellationToken):
        self.executor = executor
        self.workflow = workflow
        self.jobs = workflow.job_map()
        self.token = token
        self.result = WorkflowResult(id=f"run_{uuid.uuid4().hex[:12]}")
        self.context = ExecutionContext(
            settings=executor.settings,
            variables=dict(variables),
            jobs=self.jobs,
            job_results=self.result.job_results,
            token=token,
            http_client=executor.http_client,
            send_email=executor.send_email,
            executed=self.result.executed,
        )

        self.executed: Set[str] = set()
        self.in_flight: Set[str] = set()
        self.skipped: Set[str] = set()
        self.waiting: Set[str] = set()
        self.routed: Dict[str, Set[str]] = {}   # job id -> targets it activated

    # -------------------------
    # RUN LIFECYCLE
    # -------------------------

    async def execute(self) -> WorkflowResult:
        name = self.workflow.name or self.result.id
        self._log(f"Starting workflow execution: {name}")
        for job in self.workflow.jobs:
            self.result.job_results[job.id] = JobResult(job_id=job.id, kind=job.kind, label=job.label)
        self._notify_workflow()

        try:
            start_id = self.workflow.execution_flow.start_node
            if not start_id or start_id not in self.jobs:
                raise MissingStartNodeError()
            self._log(f"Starting execution from job: {start_id}")
            await self._traverse([start_id])
        except WorkflowEngineError as e:
            self.result.status = WorkflowStatus.FAILED
            self.result.ended_at = timestamp()
            self._log(f"Workflow execution failed: {e}")
            self._notify_workflow()
            raise

        self.result.skipped = [job.id for job in self.workflow.jobs if job.id in self.skipped]
        if self.waiting:
            self._log(f"Jobs left waiting on dependencies: {', '.join(sorted(self.waiting))}")

        if self.token.cancelled:
            self.result.status = WorkflowStatus.CANCELLED
            self._log("Workflow execution cancelled")
        else:
            self.result.status = WorkflowStatus.COMPLETED
            failed = self.result.failed_jobs()
            if failed:
                self._log(
                    f"Workflow completed with {len(failed)} failed job(s): "
                    + ", ".join(f"{r.job_id} ({r.error})" for r in failed)
                )
            else:
                self._log("Workflow execution completed successfully")

        self.result.ended_at = timestamp()
        self._notify_workflow()
        return self.result

    async def _traverse(self, job_ids: Iterable[str]) -> None:
        job_ids = list(dict.fromkeys(job_ids))
        if not job_ids:
            return
        outcomes = await asyncio.gather(*(self._visit(i) for i in job_ids), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    # -------------------------
    # SCHEDULING
    # -------------------------

    def _job(self, job_id: str) -> Job:
        job = self.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id, list(self.jobs))
        return job

    def _resolved(self, job_id: str) -> bool:
        return job_id in self.executed or job_id in self.skipped

    def _activated(self, job: Job) -> bool:
        return any(job.id in self.routed.get(d.source_id, ()) for d in job.dependencies)

    async def _visit(self, job_id: str) -> None:
        if job_id in self.executed or job_id in self.in_flight or job_id in self.skipped:
            return
        job = self._job(job_id)
        for dep in job.dependencies:
            self._job(dep.source_id)
        if self.token.cancelled:
            return

        job_result = self.result.job_results[job_id]
        pending = [d.source_id for d in job.dependencies if not self._resolved(d.source_id)]
        if pending:
            if job_id not in self.waiting:
                self.waiting.add(job_id)
                job_result.log(f"Waiting for dependencies: {', '.join(pending)}")
                self._notify_job(job_result)
            return
        self.waiting.discard(job_id)

        for dep in job.dependencies:
            dep_result = self.result.job_results.get(dep.source_id)
            if dep_result is not None and dep_result.status == JobStatus.FAILED:
                job_result.log(f"Warning: dependency {dep.source_id} failed, continuing anyway")
                self._notify_job(job_result)

        # claimed before the first await so no other branch dispatches it
        self.in_flight.add(job_id)
        await self._dispatch(job, job_result)
        self.in_flight.discard(job_id)
        self.executed.add(job_id)
        self.result.executed.append(job_id)

        next_ids = self._next_jobs(job, job_result)
        self.routed[job_id] = set(next_ids)
        for connection in job.connections:
            if connection.target_id not in self.routed[job_id]:
                self._eliminate(connection.target_id)

        await self._traverse(next_ids + self._ready_waiting())

    def _next_jobs(self, job: Job, job_result: JobResult) -> List[str]:
        if job.is_conditional:
            outcome = job_result.result if isinstance(job_result.result, dict) else {}
            if job_result.status != JobStatus.COMPLETED or "condition_result" not in outcome:
                return []
            branch = "true" if outcome["condition_result"] else "false"
            job_result.log(f"Following '{branch}' branch")
            return [c.target_id for c in job.connections if c.condition == branch]

        if job_result.status == JobStatus.FAILED and job.continue_on_error is False:
            job_result.log("continue_on_error is false: downstream jobs will not run")
            return []
        return [c.target_id for c in job.connections if c.condition in DEFAULT_CONDITIONS]

    def _eliminate(self, job_id: str) -> None:
        """
        Mark a job skipped when every dependency is resolved and none of
        them routed to it, then try the same on its own targets.
        """
        stack = [job_id]
        while stack:
            current = stack.pop()
            if current in self.executed or current in self.in_flight or current in self.skipped:
                continue
            job = self._job(current)
            if not all(self._resolved(d.source_id) for d in job.dependencies):
                continue
            if self._activated(job):
                continue
            self.skipped.add(current)
            self.waiting.discard(current)
            self.result.job_results[current].log("Skipped: no dependency routed to this job")
            self._log(f"Job {current} skipped (branch not taken)")
            stack.extend(c.target_id for c in job.connections)

    def _ready_waiting(self) -> List[str]:
        ready = [
            job_id for job_id in sorted(self.waiting)
            if all(self._resolved(d.source_id) for d in self.jobs[job_id].dependencies)
        ]
        self.waiting.difference_update(ready)
        return ready

    # -------------------------
    # DISPATCH
    # -------------------------

    async def _dispatch(self, job: Job, job_result: JobResult) -> None:
        handler = self.executor.handlers[job.kind]
        job_result.status = JobStatus.RUNNING
        job_result.started_at = timestamp()
        job_result.log(f"Starting {job.kind.value} job: {job.label or job.id}")
        self._log(f"Executing job {job.id} ({job.kind.value})")
        self._notify_job(job_result)

        try:
            if self.executor.dry_run:
                await handler.dry_run(job, job_result, self.context)
            else:
                await handler.execute(job, job_result, self.context)
        except Exception as e:
            job_result.status = JobStatus.FAILED
            job_result.error = str(e) or type(e).__name__
            job_result.log(f"Job failed: {job_result.error}")
            self._log(f"Job {job.id} failed: {job_result.error}")
        else:
            job_result.status = JobStatus.COMPLETED
            job_result.log("Job completed successfully")
            self._log(f"Job {job.id} completed")
        finally:
            job_result.ended_at = timestamp()
        self._notify_job(job_result)

    # -------------------------
    # LOGGING / OBSERVER
    # -------------------------

    def _log(self, message: str) -> None:
        self.result.log(message)
        logger.info(message, extra={"run_id": self.result.id})

    def _notify_job(self, job_result: JobResult) -> None:
        try:
            self.executor.observer.on_job_update(job_result)
        except Exception:
            logger.exception("Observer failed on job update for %s", job_result.job_id)

    def _notify_workflow(self) -> None:
        try:
            self.executor.observer.on_workflow_update(self.result)
        except Exception:
            logger.exception("Observer failed on workflow update for %s", self.result.id)


def run_workflow(workflow: WorkflowInput, variables: Optional[Dict[str, Any]] = None, **options) -> WorkflowResult:
    """
    Synchronous entry point. Options are passed to WorkflowExecutor
    (settings, observer, http_client, send_email, handlers, dry_run).
    """
    return asyncio.run(WorkflowExecutor(**options).run(workflow, variables))
