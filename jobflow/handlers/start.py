from .base import BaseHandler
from ..workflow.results import timestamp


class StartHandler(BaseHandler):
    """Records the trigger of a run."""

    async def execute(self, job, job_result, context):
        job_result.log("Workflow started")
        job_result.result = {
            "started": True,
            "timestamp": timestamp(),
            "trigger_on_start": job.attributes.trigger_on_start,
        }
