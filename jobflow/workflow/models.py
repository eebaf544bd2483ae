""" Data models for workflow graphs and compiled jobs """

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any


class JobKind(str, Enum):
    START = "Start"
    TASK = "Task"
    CONDITION = "Condition"
    API_CALL = "APICall"
    SCRIPT = "Script"
    SEND_EMAIL = "SendEmail"
    END = "End"

    @property
    def result_key(self) -> str:
        """ Context key under which this kind's latest result is exposed. """
        return f"{self.value.lower()}_result"


class PortDirection(str, Enum):
    INPUT = "input"
    OUTPUT = "output"


# Output port ids that carry an unconditional flow
DEFAULT_CONDITIONS = ("out", "default")
BRANCH_PORTS = ("true", "false")


@dataclass(frozen=True)
class Port:
    id: str
    direction: PortDirection
    required: bool = False
    label: str = ""


@dataclass
class Node:
    id: str
    kind: JobKind
    label: str = ""
    attributes: Any = None   # typed record from schema.ATTRIBUTE_MODELS
    ports: List[Port] = field(default_factory=list)

    def port(self, port_id: str, direction: PortDirection) -> Optional[Port]:
        for p in self.ports:
            if p.id == port_id and p.direction == direction:
                return p
        return None

    @property
    def input_ports(self) -> List[Port]:
        return [p for p in self.ports if p.direction == PortDirection.INPUT]

    @property
    def output_ports(self) -> List[Port]:
        return [p for p in self.ports if p.direction == PortDirection.OUTPUT]


@dataclass
class Edge:
    id: str
    source: str
    target: str
    source_port: str = "out"
    target_port: str = "in"


@dataclass
class Workflow:
    name: str
    description: str = ""
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)

    def node(self, node_id: str) -> Optional[Node]:
        return next((n for n in self.nodes if n.id == node_id), None)


# -------------------------
# COMPILED REPRESENTATION
# -------------------------

@dataclass(frozen=True)
class JobConnection:
    target_id: str
    condition: str = "default"


@dataclass(frozen=True)
class JobDependency:
    source_id: str
    condition: str = "default"


@dataclass
class Job:
    id: str
    kind: JobKind
    label: str = ""
    attributes: Any = None
    connections: List[JobConnection] = field(default_factory=list)
    dependencies: List[JobDependency] = field(default_factory=list)
    is_conditional: bool = False

    @property
    def continue_on_error(self) -> Optional[bool]:
        return getattr(self.attributes, "continue_on_error", None)


@dataclass
class ExecutionFlow:
    start_node: Optional[str]
    total_jobs: int
    has_conditional_flow: bool


@dataclass
class CompiledWorkflow:
    jobs: List[Job]
    execution_flow: ExecutionFlow
    name: str = ""

    def job_map(self) -> Dict[str, Job]:
        return {job.id: job for job in self.jobs}

    def to_document(self) -> Dict[str, Any]:
        """ Serialize into the job document exchanged with external callers. """
        jobs = []
        for job in self.jobs:
            attributes = job.attributes.model_dump(by_alias=True, exclude_none=True) if job.attributes is not None else {}
            attributes["nodeId"] = job.id
            attributes["label"] = job.label
            jobs.append({
                "type": job.kind.value,
                "attributes": attributes,
                "connections": [
                    {"targetJobId": c.target_id, "condition": c.condition} for c in job.connections
                ],
                "dependencies": [
                    {"sourceJobId": d.source_id, "condition": d.condition} for d in job.dependencies
                ],
                "isConditional": job.is_conditional,
            })
        return {
            "name": self.name,
            "jobs": jobs,
            "executionFlow": {
                "startNode": self.execution_flow.start_node,
                "totalJobs": self.execution_flow.total_jobs,
                "hasConditionalFlow": self.execution_flow.has_conditional_flow,
            },
        }
