""" Error hierarchy for graph validation, engine and job failures. """

from typing import List, Optional


class JobflowError(Exception):
    pass


class GraphInvariantError(JobflowError):
    """ Raised when a graph fails validation; no run is started. """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid workflow graph: " + "; ".join(self.errors))


class WorkflowEngineError(JobflowError):
    """ Engine-level failure that aborts the whole run. """


class MissingStartNodeError(WorkflowEngineError):
    def __init__(self, message: str = "No start node found in workflow"):
        super().__init__(message)


class JobNotFoundError(WorkflowEngineError):
    def __init__(self, job_id: str, available: Optional[List[str]] = None):
        self.job_id = job_id
        self.available = list(available or [])
        super().__init__(
            f"Job with ID {job_id} not found. Available jobs: {', '.join(self.available)}"
        )


class JobExecutionError(JobflowError):
    """ Failure local to a single job. Recorded on its JobResult. """


class JobTimeoutError(JobExecutionError):
    def __init__(self, message: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(message)


class JobCancelledError(JobExecutionError):
    pass


class UnknownOperatorError(JobExecutionError):
    def __init__(self, operator: str):
        self.operator = operator
        super().__init__(f"Unknown operator: {operator}")
