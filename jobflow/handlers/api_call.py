import asyncio
import time
from typing import Any, Dict

import httpx

from .base import BaseHandler
from ..workflow.context import run_cancellable
from ..workflow.errors import JobExecutionError, JobTimeoutError
from ..workflow.results import timestamp

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class APICallHandler(BaseHandler):
    """
    Issues one HTTP request with httpx.

    Uses the executor's shared AsyncClient when one was injected, otherwise
    a client per call. Timeout, unreachable server and non-2xx responses
    fail the job with distinct messages.
    """

    has_side_effects = True

    async def execute(self, job, job_result, context):
        attrs = job.attributes
        timeout_ms = attrs.timeout or context.settings.api_timeout_ms
        headers = {**DEFAULT_HEADERS, **attrs.headers}
        request: Dict[str, Any] = {"headers": headers}
        if attrs.body is not None and attrs.method != "GET":
            if isinstance(attrs.body, (str, bytes)):
                request["content"] = attrs.body
            else:
                request["json"] = attrs.body

        job_result.log(f"Making {attrs.method} request to: {attrs.url}")
        job_result.log(f"Headers: {headers}")
        if attrs.body is not None:
            job_result.log(f"Body: {attrs.body}")

        started = time.monotonic()
        try:
            response = await run_cancellable(
                self._send(context, attrs.method, attrs.url, timeout_ms / 1000, request),
                context.token,
                timeout=timeout_ms / 1000,
                poll_interval=context.poll_interval,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            message = f"API call timed out after {timeout_ms}ms"
            job_result.log(message)
            raise JobTimeoutError(message, timeout_ms) from e
        except httpx.TransportError as e:
            message = f"Network error: server unreachable. URL: {attrs.url}"
            job_result.log(f"{message} ({e})")
            raise JobExecutionError(message) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            job_result.log(f"API call error: {e}")
            raise JobExecutionError(f"API call failed: {e}") from e
        elapsed_ms = int((time.monotonic() - started) * 1000)

        job_result.log(f"Response received in {elapsed_ms}ms with status {response.status_code}")

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                data = response.json()
            except ValueError as e:
                job_result.log(f"Warning: Failed to parse JSON response: {e}")
                data = response.text
        else:
            data = response.text

        if not response.is_success:
            message = f"API call failed with status {response.status_code}: {response.reason_phrase}"
            job_result.log(message)
            job_result.log(f"Response: {data}")
            raise JobExecutionError(message)

        job_result.result = {
            "success": True,
            "status_code": response.status_code,
            "status_text": response.reason_phrase,
            "data": data,
            "headers": dict(response.headers),
            "execution_details": {
                "duration_ms": elapsed_ms,
                "url": attrs.url,
                "method": attrs.method,
                "timestamp": timestamp(),
                "content_type": content_type or "unknown",
            },
        }
        job_result.log(f"API call successful with status {response.status_code}")

    async def _send(self, context, method, url, timeout_s, request):
        if context.http_client is not None:
            return await context.http_client.request(method, url, timeout=timeout_s, **request)
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            return await client.request(method, url, **request)
