""" Execution context shared by the engine and job handlers. """
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..config import Settings
from .errors import JobCancelledError
from .models import Job
from .results import JobResult, JobStatus


class CancellationToken:
    """
    Cooperative cancellation flag for one run.

    The engine checks it before dispatching a job; handlers that await I/O
    poll it through run_cancellable. Nothing else is interrupted.
    """

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


async def run_cancellable(
    awaitable: Awaitable[Any],
    token: Optional[CancellationToken] = None,
    *,
    timeout: Optional[float] = None,
    poll_interval: float = 0.05,
) -> Any:
    """
    Await `awaitable`, giving up when `timeout` seconds elapse
    (asyncio.TimeoutError) or the token is set (JobCancelledError).
    The inner task is cancelled on either exit.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(awaitable)
    deadline = None if timeout is None else loop.time() + timeout
    try:
        while True:
            wait = poll_interval
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                wait = min(wait, remaining)
            done, _ = await asyncio.wait({task}, timeout=wait)
            if done:
                return task.result()
            if token is not None and token.cancelled:
                raise JobCancelledError("Operation cancelled")
    finally:
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


@dataclass
class ExecutionContext:
    settings: Settings
    variables: Dict[str, Any] = field(default_factory=dict)
    jobs: Dict[str, Job] = field(default_factory=dict)
    job_results: Dict[str, JobResult] = field(default_factory=dict)
    token: CancellationToken = field(default_factory=CancellationToken)
    http_client: Optional[httpx.AsyncClient] = None
    send_email: Optional[Callable[..., Any]] = None
    executed: List[str] = field(default_factory=list)   # completion order, shared with the run

    @property
    def poll_interval(self) -> float:
        return self.settings.cancel_poll_interval_ms / 1000

    def job_outputs(self) -> Dict[str, Any]:
        """
        Results of prior jobs keyed by job id and by "<kind>_result".
        When several jobs share a kind, the one that finished last wins the
        kind key. Without a completion order, document order is used.
        """
        order = self.executed or list(self.job_results)
        outputs: Dict[str, Any] = {}
        for job_id in order:
            job_result = self.job_results.get(job_id)
            if job_result is None or job_result.status != JobStatus.COMPLETED or job_result.result is None:
                continue
            outputs[job_id] = job_result.result
            outputs[job_result.kind.result_key] = job_result.result
        return outputs

    def condition_context(self) -> Dict[str, Any]:
        data = dict(self.variables)
        data.update(self.job_outputs())
        return data
