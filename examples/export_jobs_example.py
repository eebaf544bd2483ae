""" Example: compile a YAML workflow into the JSON job document. """
import json
from pathlib import Path

from jobflow.workflow.compiler import compile_workflow, load_workflow


def main():
    yaml_path = Path(__file__).parent / "yaml" / "order_review.yaml"
    out_json_path = "order_review_jobs.json"

    compiled = compile_workflow(load_workflow(yaml_path.read_text()))
    Path(out_json_path).write_text(json.dumps(compiled.to_document(), indent=2))
    print(f"Wrote {compiled.execution_flow.total_jobs} jobs to: {out_json_path}")


if __name__ == '__main__':
    main()
