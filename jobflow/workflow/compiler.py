""" Load Workflow definitions from YAML and compile them into jobs. """

import logging
from typing import Any, Dict, List, Union

import yaml

from .errors import GraphInvariantError
from .models import (
    CompiledWorkflow,
    Edge,
    ExecutionFlow,
    Job,
    JobConnection,
    JobDependency,
    JobKind,
    Node,
    Workflow,
)
from .schema import default_ports, parse_attributes, parse_kind, validate_jobs_document, validate_workflow
from .validator import validate_graph

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "nodes", "edges")


def load_workflow(yaml_text: str) -> Workflow:
    """
    Load a Workflow from a YAML string.

    Attributes are checked against the record for each node kind; graph
    invariants are left to compile_workflow.
    """
    data = yaml.safe_load(yaml_text)
    if not isinstance(data, dict):
        raise ValueError("Workflow YAML must be a mapping")
    return workflow_from_dict(data)


def workflow_from_dict(data: Dict[str, Any]) -> Workflow:
    # basic validation
    for key in REQUIRED_FIELDS:
        if key not in data:
            raise ValueError(f"Missing required top-level field: {key}")

    spec, _ = validate_workflow(data)

    nodes = []
    for node_spec in spec.nodes:
        kind = parse_kind(node_spec.kind)
        attributes = parse_attributes(kind, node_spec.attributes)
        nodes.append(Node(
            id=node_spec.id,
            kind=kind,
            label=node_spec.label or attributes.label or node_spec.id,
            attributes=attributes,
            ports=default_ports(kind),
        ))

    edges = []
    for edge_spec in spec.edges:
        edges.append(Edge(
            id=edge_spec.id or f"{edge_spec.src}:{edge_spec.output}->{edge_spec.dest}",
            source=edge_spec.src,
            target=edge_spec.dest,
            source_port=edge_spec.output,
            target_port=edge_spec.input,
        ))

    return Workflow(
        name=spec.name,
        description=spec.description or "",
        nodes=nodes,
        edges=edges,
    )


def compile_jobs(workflow: Workflow) -> CompiledWorkflow:
    """
    Flatten a graph into jobs with explicit connections and dependencies.

    Performs no validation: callers hand in a graph that already passed
    validate_graph (see compile_workflow).
    """
    outgoing: Dict[str, List[Edge]] = {}
    incoming: Dict[str, List[Edge]] = {}
    for edge in workflow.edges:
        outgoing.setdefault(edge.source, []).append(edge)
        incoming.setdefault(edge.target, []).append(edge)

    jobs = []
    for node in workflow.nodes:
        jobs.append(Job(
            id=node.id,
            kind=node.kind,
            label=node.label,
            attributes=node.attributes,
            connections=[
                JobConnection(target_id=e.target, condition=e.source_port or "default")
                for e in outgoing.get(node.id, [])
            ],
            dependencies=[
                JobDependency(source_id=e.source, condition=e.source_port or "default")
                for e in incoming.get(node.id, [])
            ],
            is_conditional=node.kind == JobKind.CONDITION,
        ))

    start = next((job.id for job in jobs if job.kind == JobKind.START), None)
    flow = ExecutionFlow(
        start_node=start,
        total_jobs=len(jobs),
        has_conditional_flow=any(job.is_conditional for job in jobs),
    )
    return CompiledWorkflow(jobs=jobs, execution_flow=flow, name=workflow.name)


def compile_workflow(workflow: Workflow) -> CompiledWorkflow:
    """Validate the graph, then compile it. Raises GraphInvariantError."""
    result = validate_graph(workflow.nodes, workflow.edges)
    if not result.valid:
        raise GraphInvariantError(result.errors)
    for warning in result.warnings:
        logger.warning("Workflow %s: %s", workflow.name, warning)
    return compile_jobs(workflow)


def load_jobs_document(raw: Union[Dict[str, Any], str]) -> CompiledWorkflow:
    """
    Build a CompiledWorkflow from a job document, either as a dict or as
    JSON/YAML text. Inverse of CompiledWorkflow.to_document().
    """
    if isinstance(raw, str):
        raw = yaml.safe_load(raw)
    if not isinstance(raw, dict):
        raise ValueError("Job document must be a mapping")

    spec = validate_jobs_document(raw)

    jobs = []
    for index, job_spec in enumerate(spec.jobs):
        kind = parse_kind(job_spec.type)
        attrs = dict(job_spec.attributes)
        job_id = attrs.pop("nodeId", None)
        if not job_id:
            raise ValueError(f"Job #{index} is missing attributes.nodeId")
        attributes = parse_attributes(kind, attrs)
        jobs.append(Job(
            id=job_id,
            kind=kind,
            label=attrs.get("label") or job_id,
            attributes=attributes,
            connections=[
                JobConnection(target_id=c.target_job_id, condition=c.condition or "default")
                for c in job_spec.connections
            ],
            dependencies=[
                JobDependency(source_id=d.source_job_id, condition=d.condition or "default")
                for d in job_spec.dependencies
            ],
            is_conditional=(
                job_spec.is_conditional if job_spec.is_conditional is not None
                else kind == JobKind.CONDITION
            ),
        ))

    flow_spec = spec.execution_flow
    flow = ExecutionFlow(
        start_node=flow_spec.start_node or next((j.id for j in jobs if j.kind == JobKind.START), None),
        total_jobs=flow_spec.total_jobs if flow_spec.total_jobs is not None else len(jobs),
        has_conditional_flow=(
            flow_spec.has_conditional_flow if flow_spec.has_conditional_flow is not None
            else any(j.is_conditional for j in jobs)
        ),
    )
    return CompiledWorkflow(jobs=jobs, execution_flow=flow, name=spec.name)
