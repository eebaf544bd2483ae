from .base import BaseHandler
from ..workflow.results import timestamp


class EndHandler(BaseHandler):
    async def execute(self, job, job_result, context):
        if job.attributes.log_completion:
            job_result.log("Workflow termination initiated")
        job_result.result = {
            "message": "Workflow completed successfully",
            "terminated_at": timestamp(),
            "final_status": "completed",
        }
        if job.attributes.log_completion:
            job_result.log("Workflow terminated gracefully")
