""" Example: load a YAML workflow, compile it and run it end to end. """
from pathlib import Path

from jobflow.config import setup_logging
from jobflow.workflow import compiler, executor
from jobflow.workflow.observer import LoggingObserver


def print_email(message):
    # Stand-in for a real mail provider
    print(f"[email] to={', '.join(message.to)} subject={message.subject!r}")
    return {"email_id": f"local-{message.subject.lower().replace(' ', '-')}"}


def main():
    setup_logging()

    yaml_path = Path(__file__).parent / "yaml" / "order_review.yaml"
    wf = compiler.load_workflow(yaml_path.read_text())

    result = executor.run_workflow(wf, observer=LoggingObserver(), send_email=print_email)

    print("Status:", result.status.value)
    print("Executed:", " -> ".join(result.executed))
    if result.skipped:
        print("Skipped:", ", ".join(result.skipped))
    for job_result in result.failed_jobs():
        print(f"Failed: {job_result.job_id}: {job_result.error}")


if __name__ == "__main__":
    main()
