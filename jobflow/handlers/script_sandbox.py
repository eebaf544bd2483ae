"""
Child program for Script jobs.

Reads {"code", "variables", "job_results"} as JSON from stdin, compiles the
code with RestrictedPython and runs it. Progress is reported on stdout as
JSON lines:

    {"type": "log", "source": "print" | "log", "message": ...}
    {"type": "result", "result": ..., "variables": {...}}
    {"type": "error", "error": "..."}

Runs as a standalone script, so it imports nothing from jobflow.
"""
import datetime as _datetime
import json as _json
import math
import operator
import sys
import time
from types import SimpleNamespace

import httpx
from RestrictedPython import compile_restricted_function, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)

ENTRYPOINT = "workflow_script"

_INPLACE = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "|=": operator.ior,
    "^=": operator.ixor,
}

_EXTRA_BUILTINS = {
    "list": list, "dict": dict, "set": set, "sum": sum, "min": min, "max": max,
    "enumerate": enumerate, "any": any, "all": all, "map": map, "filter": filter,
    "reversed": reversed, "NameError": NameError,
}


def emit(kind, **payload):
    sys.stdout.write(_json.dumps({"type": kind, **payload}, default=str) + "\n")
    sys.stdout.flush()


def _format(objects, sep=" "):
    return sep.join(str(o) for o in objects)


class _PrintCollector:
    """Target of print() inside restricted code; forwards lines as log events."""

    def __init__(self, _getattr_=None):
        self.lines = []

    def _call_print(self, *objects, **kwargs):
        message = _format(objects, kwargs.get("sep", " "))
        self.lines.append(message)
        emit("log", source="print", message=message)

    def __call__(self):
        return "\n".join(self.lines)


def _inplacevar_(op, x, y):
    func = _INPLACE.get(op)
    if func is None:
        raise SyntaxError(f"Unsupported in-place operator: {op}")
    return func(x, y)


def _apply_(func, *args, **kwargs):
    return func(*args, **kwargs)


def log(*objects):
    emit("log", source="log", message=_format(objects))


def fetch(url, method="GET", headers=None, body=None, timeout=10.0):
    """Blocking HTTP request; returns a plain dict so scripts avoid attribute access."""
    kwargs = {"headers": headers or {}, "timeout": timeout}
    if isinstance(body, (dict, list)):
        kwargs["json"] = body
    elif body is not None:
        kwargs["content"] = body
    response = httpx.request(method.upper(), url, **kwargs)
    try:
        data = response.json()
    except ValueError:
        data = None
    return {
        "ok": response.is_success,
        "status_code": response.status_code,
        "headers": dict(response.headers),
        "text": response.text,
        "json": data,
    }


def _helpers():
    return {
        "math": math,
        "json": SimpleNamespace(loads=_json.loads, dumps=_json.dumps),
        "datetime": SimpleNamespace(
            datetime=_datetime.datetime,
            date=_datetime.date,
            timedelta=_datetime.timedelta,
            timezone=_datetime.timezone,
            now=lambda: _datetime.datetime.now(_datetime.timezone.utc),
        ),
        "log": log,
        "fetch": fetch,
        "sleep": time.sleep,
    }


RESULT_FALLBACK = (
    "\n"
    "try:\n"
    "    return result\n"
    "except NameError:\n"
    "    return None\n"
)


def compile_script(code):
    """
    Compile the user code as the body of a function so that `return` works
    at top level. The body is placed in the function at the AST level, which
    leaves multi-line string literals untouched.
    """
    compiled = compile_restricted_function(
        p="", body=code + RESULT_FALLBACK, name=ENTRYPOINT, filename="<workflow_script>",
    )
    if compiled.errors:
        raise SyntaxError("; ".join(compiled.errors))
    return compiled.code


def run(payload):
    variables = payload.get("variables") or {}
    builtins = dict(safe_builtins)
    builtins.update(_EXTRA_BUILTINS)

    glb = {
        "__builtins__": builtins,
        "__name__": ENTRYPOINT,
        "__metaclass__": type,
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_write_": full_write_guard,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_inplacevar_": _inplacevar_,
        "_apply_": _apply_,
        "_print_": _PrintCollector,
        "variables": variables,
        "job_results": payload.get("job_results") or {},
    }
    glb.update(_helpers())

    byte_code = compile_script(payload["code"])
    exec(byte_code, glb)
    result = glb[ENTRYPOINT]()
    return result, variables


def main():
    payload = _json.load(sys.stdin)
    try:
        result, variables = run(payload)
    except SyntaxError as e:
        emit("error", error=f"Syntax error: {e}")
        return 1
    except Exception as e:
        emit("error", error=f"{type(e).__name__}: {e}")
        return 1
    emit("result", result=result, variables=variables)
    return 0


if __name__ == "__main__":
    sys.exit(main())
