"""Shared fixtures for workflow tests."""

import asyncio

import pytest

from jobflow.config import Settings, reset_settings
from jobflow.handlers.base import BaseHandler


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings():
    return Settings(api_timeout_ms=2000, script_timeout_ms=5000, cancel_poll_interval_ms=10)


class RecordingHandler(BaseHandler):
    """Handler that records which jobs it ran, in order."""

    def __init__(self, calls, fail_on=(), result=None):
        self.calls = calls
        self.fail_on = set(fail_on)
        self.result = result

    async def execute(self, job, job_result, context):
        self.calls.append(job.id)
        await asyncio.sleep(0)   # let sibling branches interleave
        if job.id in self.fail_on:
            raise RuntimeError(f"boom in {job.id}")
        job_result.result = self.result if self.result is not None else {"ran": job.id}


@pytest.fixture
def calls():
    return []


@pytest.fixture
def recording(calls):
    def make(**kwargs):
        return RecordingHandler(calls, **kwargs)
    return make
