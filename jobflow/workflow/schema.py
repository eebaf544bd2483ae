from typing import List, Optional, Dict, Any, Tuple, Type, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import JobKind, Port, PortDirection


# -------------------------
# JOB KINDS AND PORTS
# -------------------------

# UI node type names accepted in documents
_KIND_ALIASES: Dict[str, JobKind] = {
    "StartNode": JobKind.START,
    "AddTask": JobKind.TASK,
    "AddTaskNode": JobKind.TASK,
    "ConditionNode": JobKind.CONDITION,
    "APICallNode": JobKind.API_CALL,
    "ScriptNode": JobKind.SCRIPT,
    "SendEmailNode": JobKind.SEND_EMAIL,
    "EndNode": JobKind.END,
}


def parse_kind(value: Any) -> JobKind:
    if isinstance(value, JobKind):
        return value
    if value in _KIND_ALIASES:
        return _KIND_ALIASES[value]
    try:
        return JobKind(value)
    except ValueError:
        raise ValueError(f"Unsupported job kind: {value}")


_IN = Port("in", PortDirection.INPUT, required=True, label="Input")
_OUT = Port("out", PortDirection.OUTPUT, label="Output")

DEFAULT_PORTS: Dict[JobKind, List[Port]] = {
    JobKind.START: [Port("out", PortDirection.OUTPUT, label="Start")],
    JobKind.TASK: [_IN, _OUT],
    JobKind.CONDITION: [
        _IN,
        Port("true", PortDirection.OUTPUT, label="Yes"),
        Port("false", PortDirection.OUTPUT, label="No"),
    ],
    JobKind.API_CALL: [_IN, _OUT],
    JobKind.SCRIPT: [_IN, _OUT],
    JobKind.SEND_EMAIL: [_IN, _OUT],
    JobKind.END: [_IN],
}


def default_ports(kind: JobKind) -> List[Port]:
    return list(DEFAULT_PORTS[kind])


# -------------------------
# TYPED ATTRIBUTES
# -------------------------

class Attributes(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    label: str = ""
    description: str = ""
    continue_on_error: Optional[bool] = Field(default=None, alias="continueOnError")


class StartAttributes(Attributes):
    trigger_on_start: bool = Field(default=True, alias="triggerOnStart")


class TaskAttributes(Attributes):
    title: str = "Workflow Generated Task"
    assignee: str = ""
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    due_date: str = Field(default="", alias="dueDate")
    tags: List[str] = Field(default_factory=lambda: ["workflow"])


class ConditionRule(BaseModel):
    field: str = Field(min_length=1)
    operator: str = "equals"   # checked when the job runs
    value: Any = ""


class ConditionAttributes(Attributes):
    conditions: List[ConditionRule] = Field(min_length=1)
    logic: Literal["AND", "OR"] = "AND"

    @field_validator("logic", mode="before")
    @classmethod
    def normalize_logic(cls, v):
        return v.upper() if isinstance(v, str) else v


class APICallAttributes(Attributes):
    url: str = Field(min_length=1)
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None
    timeout: Optional[int] = Field(default=None, gt=0)   # milliseconds

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v):
        return v.upper() if isinstance(v, str) else v


class ScriptAttributes(Attributes):
    code: str = Field(min_length=1, validation_alias=AliasChoices("code", "script"))
    language: str = "python"
    timeout: Optional[int] = Field(default=None, gt=0)   # milliseconds
    variables: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("variables", "environment")
    )

    @field_validator("language", mode="before")
    @classmethod
    def normalize_language(cls, v):
        return v.lower() if isinstance(v, str) else v


def _as_address_list(v):
    if v is None or v == "":
        return []
    if isinstance(v, str):
        return [part.strip() for part in v.split(",") if part.strip()]
    return v


class SendEmailAttributes(Attributes):
    to: List[str] = Field(min_length=1)
    cc: List[str] = Field(default_factory=list)
    bcc: List[str] = Field(default_factory=list)
    subject: str = "Workflow Email Notification"
    body: str = "This email was sent from a workflow execution."
    is_html: bool = Field(default=False, alias="isHtml")
    from_email: Optional[str] = Field(default=None, alias="fromEmail")
    provider: Optional[str] = None
    template_id: Optional[str] = Field(default=None, alias="templateId")
    template_name: Optional[str] = Field(default=None, alias="templateName")

    @field_validator("to", "cc", "bcc", mode="before")
    @classmethod
    def split_addresses(cls, v):
        return _as_address_list(v)


class EndAttributes(Attributes):
    finalize_workflow: bool = Field(default=True, alias="finalizeWorkflow")
    log_completion: bool = Field(default=True, alias="logCompletion")


ATTRIBUTE_MODELS: Dict[JobKind, Type[Attributes]] = {
    JobKind.START: StartAttributes,
    JobKind.TASK: TaskAttributes,
    JobKind.CONDITION: ConditionAttributes,
    JobKind.API_CALL: APICallAttributes,
    JobKind.SCRIPT: ScriptAttributes,
    JobKind.SEND_EMAIL: SendEmailAttributes,
    JobKind.END: EndAttributes,
}


def parse_attributes(kind: JobKind, raw: Optional[Dict[str, Any]]) -> Attributes:
    """Validate a raw attribute dict against the record for its job kind."""
    model = ATTRIBUTE_MODELS[kind]
    try:
        return model.model_validate(raw or {})
    except ValidationError as e:
        raise ValueError(f"Invalid attributes for {kind.value} node: {e}")


# -------------------------
# DOCUMENT SCHEMAS
# -------------------------

class NodeSpec(BaseModel):
    id: str
    kind: str = Field(validation_alias=AliasChoices("kind", "type"))
    label: Optional[str] = None
    attributes: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("attributes", "config")
    )


class EdgeSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    src: str = Field(validation_alias=AliasChoices("from", "source", "src"))
    dest: str = Field(validation_alias=AliasChoices("to", "target", "dest"))
    output: str = Field(default="out", validation_alias=AliasChoices("output", "sourcePort"))
    input: str = Field(default="in", validation_alias=AliasChoices("input", "targetPort"))


class WorkflowSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")   # unexpected keys in the YAML

    name: str
    description: Optional[str] = None
    version: Optional[int] = None
    nodes: List[NodeSpec] = Field(default_factory=list)
    edges: List[EdgeSpec] = Field(default_factory=list)


class ConnectionSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_job_id: str = Field(alias="targetJobId")
    condition: str = "default"


class DependencySpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_job_id: str = Field(alias="sourceJobId")
    condition: str = "default"


class ExecutionFlowSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_node: Optional[str] = Field(default=None, alias="startNode")
    total_jobs: Optional[int] = Field(default=None, alias="totalJobs")
    has_conditional_flow: Optional[bool] = Field(default=None, alias="hasConditionalFlow")


class JobSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    connections: List[ConnectionSpec] = Field(default_factory=list)
    dependencies: List[DependencySpec] = Field(default_factory=list)
    is_conditional: Optional[bool] = Field(default=None, alias="isConditional")


class JobsDocumentSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    jobs: List[JobSpec] = Field(default_factory=list)
    execution_flow: ExecutionFlowSpec = Field(default_factory=ExecutionFlowSpec, alias="executionFlow")


def validate_workflow(raw: Dict[str, Any]) -> Tuple[WorkflowSpec, Dict[str, Any]]:
    """Validate a raw YAML dict against WorkflowSpec."""
    try:
        spec = WorkflowSpec.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"YAML validation error: {e}")
    return spec, spec.model_dump()


def validate_jobs_document(raw: Dict[str, Any]) -> JobsDocumentSpec:
    """Validate a compiled job document (jobs + executionFlow)."""
    try:
        return JobsDocumentSpec.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Job document validation error: {e}")
