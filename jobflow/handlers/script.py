import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

from .base import BaseHandler
from ..workflow.context import run_cancellable
from ..workflow.errors import JobExecutionError, JobTimeoutError

logger = logging.getLogger(__name__)

SANDBOX = Path(__file__).with_name("script_sandbox.py")
STREAM_LIMIT = 16 * 1024 * 1024   # one JSON line per event


class ScriptHandler(BaseHandler):
    """
    Runs Python code through RestrictedPython in a child interpreter.

    The child is killed when the timeout elapses or the run is cancelled.
    This bounds run time; it is not a security boundary.
    """

    has_side_effects = True

    async def execute(self, job, job_result, context):
        attrs = job.attributes
        if attrs.language != "python":
            raise JobExecutionError(
                f"Script language '{attrs.language}' not supported. Only Python is supported."
            )

        timeout_ms = attrs.timeout or context.settings.script_timeout_ms
        payload = json.dumps({
            "code": attrs.code,
            "variables": attrs.variables,
            "job_results": context.job_outputs(),
        }, default=str).encode()

        job_result.log(f"Executing python script ({len(attrs.code)} characters, timeout {timeout_ms}ms)")

        console: List[str] = []
        events: Dict[str, Dict[str, Any]] = {}

        def on_line(raw: bytes) -> None:
            try:
                event = json.loads(raw)
            except ValueError:
                event = {"type": "log", "source": "stdout", "message": raw.decode(errors="replace").rstrip()}
            kind = event.get("type")
            if kind == "log":
                message = str(event.get("message", ""))
                console.append(message)
                prefix = "Script Log" if event.get("source") == "log" else "Script Console"
                job_result.log(f"{prefix}: {message}")
            else:
                events[kind] = event

        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                context.settings.script_python, str(SANDBOX),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise JobExecutionError(f"Script interpreter could not be started: {e}") from e

        try:
            returncode, stderr = await run_cancellable(
                self._communicate(proc, payload, on_line),
                context.token,
                timeout=timeout_ms / 1000,
                poll_interval=context.poll_interval,
            )
        except asyncio.TimeoutError as e:
            message = f"Script execution timed out after {timeout_ms}ms"
            job_result.log(message)
            raise JobTimeoutError(message, timeout_ms) from e
        finally:
            if proc.returncode is None:
                logger.debug("killing script process %s for job %s", proc.pid, job.id)
                proc.kill()
                await proc.wait()

        elapsed_ms = int((time.monotonic() - started) * 1000)

        if "error" in events:
            raise JobExecutionError(f"Script execution failed: {events['error'].get('error')}")
        if "result" not in events:
            tail = stderr.strip().splitlines()[-1:]
            detail = f": {tail[0]}" if tail else ""
            raise JobExecutionError(f"Script execution failed: interpreter exited with code {returncode}{detail}")

        outcome = events["result"]
        job_result.result = {
            "success": True,
            "exit_code": returncode,
            "execution_time_ms": elapsed_ms,
            "language": attrs.language,
            "script_result": outcome.get("result"),
            "console_output": "\n".join(console),
            "variables": outcome.get("variables", {}),
        }
        job_result.log(f"Script executed successfully in {elapsed_ms}ms")

    async def _communicate(
        self, proc, payload: bytes, on_line: Callable[[bytes], None]
    ) -> Tuple[int, str]:
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        try:
            try:
                proc.stdin.write(payload)
                await proc.stdin.drain()
                proc.stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("script process closed stdin early")   # stderr says why
            async for raw in proc.stdout:
                on_line(raw)
            returncode = await proc.wait()
            stderr = await stderr_task
            return returncode, stderr.decode(errors="replace")
        finally:
            if not stderr_task.done():
                stderr_task.cancel()
