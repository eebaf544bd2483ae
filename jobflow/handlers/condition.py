from .base import BaseHandler
from ..workflow.errors import JobExecutionError
from ..workflow.guards import combine, evaluate_condition, is_missing, resolve_field
from ..workflow.results import timestamp


class ConditionHandler(BaseHandler):
    """
    Evaluates the job's predicates against run variables and prior job
    results, and stores the boolean under "condition_result" for routing.
    """

    async def execute(self, job, job_result, context):
        attrs = job.attributes
        job_result.log(f"Evaluating {len(attrs.conditions)} condition(s) with {attrs.logic} logic")

        data = context.condition_context()
        results = []
        for index, rule in enumerate(attrs.conditions, start=1):
            field_value = resolve_field(data, rule.field)
            if is_missing(field_value):
                job_result.log(f"Warning: Field '{rule.field}' not found in context, using null")
                field_value = None
            try:
                ok = evaluate_condition(field_value, rule.operator, rule.value)
            except JobExecutionError as e:
                job_result.log(f"Error evaluating condition {index}: {e}")
                raise JobExecutionError(f"Condition evaluation failed: {e}") from e
            job_result.log(f"Condition {index}: {rule.field} ({field_value!r}) {rule.operator} {rule.value!r} -> {ok}")
            results.append(ok)

        outcome = combine(results, attrs.logic)
        job_result.result = {
            "condition_result": outcome,
            "evaluated_conditions": len(results),
            "logic": attrs.logic,
            "results": results,
            "timestamp": timestamp(),
        }
        job_result.log(f"Condition evaluation result: {outcome}")
