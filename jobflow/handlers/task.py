import json
import uuid

from .base import BaseHandler
from ..workflow.results import timestamp


class TaskHandler(BaseHandler):
    """
    Builds a task payload from the job attributes. There is no task
    backend behind it: the payload is what would be submitted to one.
    """

    async def execute(self, job, job_result, context):
        attrs = job.attributes
        task = {
            "title": attrs.title,
            "description": attrs.description or "Task created by workflow execution",
            "assignee": attrs.assignee,
            "priority": attrs.priority,
            "due_date": attrs.due_date,
            "tags": list(attrs.tags),
        }
        job_result.log(f"Creating task: {task['title']}")
        job_result.log(f"Task data: {json.dumps(task)}")

        job_result.result = {
            "task_id": f"task_{uuid.uuid4().hex[:12]}",
            **task,
            "status": "created",
            "created_at": timestamp(),
        }
        job_result.log(f"Task placeholder created: {job_result.result['task_id']}")
