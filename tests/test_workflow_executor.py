"""Tests for workflow execution."""

import httpx
import pytest
from jobflow.workflow.compiler import load_workflow
from jobflow.workflow.errors import GraphInvariantError, JobNotFoundError, MissingStartNodeError
from jobflow.workflow.executor import WorkflowExecutor, run_workflow
from jobflow.workflow.models import JobKind
from jobflow.workflow.observer import CallbackObserver
from jobflow.workflow.results import JobStatus, WorkflowStatus


ROUTING_YAML = """
name: routing_workflow
nodes:
  - id: start
    type: Start
  - id: check
    type: Condition
    attributes:
      conditions:
        - { field: x, operator: equals, value: "1" }
  - id: approved
    type: SendEmail
    attributes: { to: approved@example.com, subject: approved }
  - id: rejected
    type: SendEmail
    attributes: { to: rejected@example.com, subject: rejected }
edges:
  - { from: start, to: check }
  - { from: check, to: approved, output: "true" }
  - { from: check, to: rejected, output: "false" }
"""

MERGE_YAML = """
name: branch_merge
nodes:
  - { id: start, type: Start }
  - id: check
    type: Condition
    attributes:
      conditions:
        - { field: flag, operator: equals, value: "on" }
  - { id: t, type: Task }
  - { id: m, type: Task }
  - { id: done, type: End }
edges:
  - { from: start, to: check }
  - { from: check, to: t, output: "true" }
  - { from: t, to: m }
  - { from: check, to: m, output: "false" }
  - { from: m, to: done }
"""

API_YAML = """
name: continue_on_failure
nodes:
  - { id: start, type: Start }
  - id: call
    type: APICall
    attributes: { url: "http://unreachable.invalid/api" %s }
  - { id: end, type: End }
edges:
  - { from: start, to: call }
  - { from: call, to: end }
"""

LINEAR_YAML = """
name: linear
nodes:
  - { id: start, type: Start }
  - { id: a, type: Task }
  - { id: b, type: Task }
  - { id: end, type: End }
edges:
  - { from: start, to: a }
  - { from: a, to: b }
  - { from: b, to: end }
"""

DIAMOND = {
    "name": "diamond",
    "jobs": [
        {"type": "Start", "attributes": {"nodeId": "a"},
         "connections": [{"targetJobId": "b", "condition": "out"}, {"targetJobId": "c", "condition": "out"}]},
        {"type": "Task", "attributes": {"nodeId": "b"},
         "connections": [{"targetJobId": "d", "condition": "out"}],
         "dependencies": [{"sourceJobId": "a", "condition": "out"}]},
        {"type": "Task", "attributes": {"nodeId": "c"},
         "connections": [{"targetJobId": "d", "condition": "out"}],
         "dependencies": [{"sourceJobId": "a", "condition": "out"}]},
        {"type": "Task", "attributes": {"nodeId": "d"},
         "dependencies": [{"sourceJobId": "b", "condition": "out"}, {"sourceJobId": "c", "condition": "out"}]},
    ],
    "executionFlow": {"startNode": "a", "totalJobs": 4, "hasConditionalFlow": False},
}


def unreachable_client():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_run_linear_workflow(settings):
    """Test executing a simple linear workflow."""
    result = run_workflow(load_workflow(LINEAR_YAML), settings=settings)

    assert result.status == WorkflowStatus.COMPLETED
    assert result.executed == ["start", "a", "b", "end"]
    assert all(r.status == JobStatus.COMPLETED for r in result.job_results.values())
    assert result.job_results["end"].result["final_status"] == "completed"
    assert result.ended_at is not None


def test_condition_scenario_follows_true_branch_only(settings):
    """Condition on x == "1" runs the true branch and never the false one."""
    sent = []

    result = run_workflow(
        load_workflow(ROUTING_YAML), {"x": "1"},
        settings=settings, send_email=lambda message: sent.append(message.subject) or {"id": message.subject},
    )

    assert result.job_results["check"].result["condition_result"] is True
    assert set(result.executed) == {"start", "check", "approved"}
    assert sent == ["approved"]
    assert result.job_results["rejected"].status == JobStatus.PENDING
    assert result.skipped == ["rejected"]


def test_condition_follows_false_branch(settings):
    sent = []

    result = run_workflow(
        load_workflow(ROUTING_YAML), {"x": "2"},
        settings=settings, send_email=lambda message: sent.append(message.subject) or {},
    )

    assert result.job_results["check"].result["condition_result"] is False
    assert sent == ["rejected"]
    assert "approved" not in result.executed


@pytest.mark.asyncio
async def test_diamond_runs_join_exactly_once(settings, calls, recording):
    """The join of a diamond runs once and only after both parents."""
    finished = []
    seen_before_join = []

    def track(job_result):
        if job_result.status == JobStatus.COMPLETED:
            finished.append(job_result.job_id)
        elif job_result.job_id == "d" and job_result.status == JobStatus.RUNNING:
            seen_before_join.extend(finished)

    executor = WorkflowExecutor(
        settings=settings,
        handlers={JobKind.TASK: recording()},
        observer=CallbackObserver(on_job_update=track),
    )
    result = await executor.run(DIAMOND)

    assert calls.count("d") == 1
    assert calls.index("d") > calls.index("b")
    assert calls.index("d") > calls.index("c")
    assert {"b", "c"} <= set(seen_before_join)
    assert result.executed[-1] == "d"
    assert result.status == WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_continuation_on_failure(settings):
    """A failed APICall does not stop End from running."""
    async with unreachable_client() as client:
        executor = WorkflowExecutor(settings=settings, http_client=client)
        result = await executor.run(load_workflow(API_YAML % ""))

    assert result.status == WorkflowStatus.COMPLETED
    assert result.job_results["call"].status == JobStatus.FAILED
    assert "Network error: server unreachable" in result.job_results["call"].error
    assert result.job_results["end"].status == JobStatus.COMPLETED
    assert any("Warning: dependency call failed" in line for line in result.job_results["end"].logs)
    assert any("1 failed job(s)" in line for line in result.logs)
    assert [r.job_id for r in result.failed_jobs()] == ["call"]


@pytest.mark.asyncio
async def test_continue_on_error_false_prunes_downstream(settings):
    async with unreachable_client() as client:
        executor = WorkflowExecutor(settings=settings, http_client=client)
        result = await executor.run(load_workflow(API_YAML % ", continueOnError: false"))

    assert result.status == WorkflowStatus.COMPLETED
    assert result.job_results["call"].status == JobStatus.FAILED
    assert result.job_results["end"].status == JobStatus.PENDING
    assert result.skipped == ["end"]
    assert [r.job_id for r in result.pending_jobs()] == ["end"]


@pytest.mark.parametrize("flag, expected", [("on", ["t", "m"]), ("off", ["m"])])
def test_branch_merge_runs_once(settings, calls, recording, flag, expected):
    """The merge node runs once whichever branch is taken."""
    result = run_workflow(
        load_workflow(MERGE_YAML), {"flag": flag},
        settings=settings, handlers={JobKind.TASK: recording()},
    )

    assert calls == expected
    assert result.job_results["done"].status == JobStatus.COMPLETED
    assert result.status == WorkflowStatus.COMPLETED
    assert result.skipped == ([] if flag == "on" else ["t"])


def test_run_workflow_dry_run_mode(settings):
    """Dry runs produce placeholders and still route conditions."""
    yaml_text = """
name: dry_run_test
nodes:
  - { id: start, type: Start }
  - id: call
    type: APICall
    attributes: { url: "https://api.example.com/orders", method: POST, body: { id: 1 } }
  - id: check
    type: Condition
    attributes:
      conditions: [ { field: x, operator: equals, value: go } ]
  - id: mail
    type: SendEmail
    attributes: { to: team@example.com }
  - { id: stop, type: End }
edges:
  - { from: start, to: call }
  - { from: call, to: check }
  - { from: check, to: mail, output: "true" }
  - { from: check, to: stop, output: "false" }
"""
    result = run_workflow(load_workflow(yaml_text), {"x": "go"}, settings=settings, dry_run=True)

    assert result.status == WorkflowStatus.COMPLETED
    assert result.failed_jobs() == []
    assert result.job_results["call"].result["dry_run"] is True
    assert result.job_results["mail"].result["dry_run"] is True
    assert result.job_results["check"].result["condition_result"] is True
    assert result.skipped == ["stop"]


@pytest.mark.asyncio
async def test_cancellation_stops_dispatch(settings):
    executor = WorkflowExecutor(settings=settings)

    def cancel_when_a_runs(job_result):
        if job_result.job_id == "a" and job_result.status == JobStatus.RUNNING:
            executor.cancel()

    executor.observer = CallbackObserver(on_job_update=cancel_when_a_runs)
    result = await executor.run(load_workflow(LINEAR_YAML))

    assert result.status == WorkflowStatus.CANCELLED
    assert result.executed == ["start", "a"]
    assert result.job_results["a"].status == JobStatus.COMPLETED
    assert result.job_results["b"].status == JobStatus.PENDING
    assert result.job_results["end"].status == JobStatus.PENDING
    assert executor.is_running is False


def test_missing_start_aborts_run(settings):
    statuses = []
    document = {"jobs": [{"type": "Task", "attributes": {"nodeId": "t"}}], "executionFlow": {}}

    with pytest.raises(MissingStartNodeError, match="No start node found in workflow"):
        run_workflow(document, settings=settings,
                     observer=CallbackObserver(on_workflow_update=lambda r: statuses.append(r.status)))

    assert statuses[-1] == WorkflowStatus.FAILED


def test_unknown_job_reference_aborts_run(settings):
    document = {
        "jobs": [
            {"type": "Start", "attributes": {"nodeId": "s"}, "connections": [{"targetJobId": "ghost"}]},
        ],
        "executionFlow": {"startNode": "s"},
    }

    with pytest.raises(JobNotFoundError, match="Job with ID ghost not found. Available jobs: s"):
        run_workflow(document, settings=settings)


def test_invalid_graph_never_runs(settings, calls, recording):
    yaml_text = """
name: two_parents
nodes:
  - { id: start, type: Start }
  - { id: a, type: Task }
  - { id: b, type: Task }
  - { id: c, type: Task }
edges:
  - { from: start, to: a }
  - { from: start, to: b }
  - { from: a, to: c }
  - { from: b, to: c }
"""
    with pytest.raises(GraphInvariantError, match="multiple parents"):
        run_workflow(load_workflow(yaml_text), settings=settings, handlers={JobKind.TASK: recording()})

    assert calls == []


def test_observer_errors_do_not_break_run(settings):
    def explode(_):
        raise RuntimeError("observer bug")

    result = run_workflow(
        load_workflow(LINEAR_YAML), settings=settings,
        observer=CallbackObserver(on_job_update=explode, on_workflow_update=explode),
    )

    assert result.status == WorkflowStatus.COMPLETED


def test_result_serializes_job_results_as_list(settings):
    result = run_workflow(load_workflow(LINEAR_YAML), settings=settings)

    data = result.to_dict()

    assert [r["job_id"] for r in data["job_results"]] == ["start", "a", "b", "end"]
    assert data["status"] == "completed"
    assert data["job_results"][0]["kind"] == "Start"
    assert all(line.startswith("[") for line in data["logs"])


def test_kind_key_holds_last_finished_job(settings):
    """task_result refers to the Task that finished last, not the last one listed."""
    document = {
        "name": "kind_key",
        "jobs": [
            {"type": "Start", "attributes": {"nodeId": "s"}, "connections": [{"targetJobId": "first"}]},
            {"type": "Task", "attributes": {"nodeId": "second", "title": "second"},
             "connections": [{"targetJobId": "check"}], "dependencies": [{"sourceJobId": "first"}]},
            {"type": "Task", "attributes": {"nodeId": "first", "title": "first"},
             "connections": [{"targetJobId": "second"}], "dependencies": [{"sourceJobId": "s"}]},
            {"type": "Condition", "attributes": {
                "nodeId": "check",
                "conditions": [{"field": "task_result.title", "operator": "equals", "value": "second"}],
            }, "dependencies": [{"sourceJobId": "second"}]},
        ],
        "executionFlow": {"startNode": "s"},
    }

    result = run_workflow(document, settings=settings)

    assert result.executed == ["s", "first", "second", "check"]
    assert result.job_results["check"].result["condition_result"] is True


def test_condition_routes_between_two_end_jobs(settings):
    """Start -> Condition(x equals "1") -> true End / false End."""
    document = {
        "name": "end_routing",
        "jobs": [
            {"type": "Start", "attributes": {"nodeId": "S"}, "connections": [{"targetJobId": "A"}]},
            {"type": "Condition", "attributes": {
                "nodeId": "A",
                "conditions": [{"field": "x", "operator": "equals", "value": "1"}],
            },
             "connections": [{"targetJobId": "T", "condition": "true"}, {"targetJobId": "F", "condition": "false"}],
             "dependencies": [{"sourceJobId": "S"}]},
            {"type": "End", "attributes": {"nodeId": "T"}, "dependencies": [{"sourceJobId": "A", "condition": "true"}]},
            {"type": "End", "attributes": {"nodeId": "F"}, "dependencies": [{"sourceJobId": "A", "condition": "false"}]},
        ],
        "executionFlow": {"startNode": "S"},
    }

    result = run_workflow(document, {"x": "1"}, settings=settings)

    assert result.status == WorkflowStatus.COMPLETED
    assert result.executed == ["S", "A", "T"]
    assert result.job_results["A"].result["condition_result"] is True
    assert result.job_results["T"].status == JobStatus.COMPLETED
    assert result.job_results["F"].status == JobStatus.PENDING
    assert result.skipped == ["F"]
