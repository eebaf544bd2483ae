""" Factory for creating handler instances based on job kind. """
from typing import Dict, Type

from ..handlers.api_call import APICallHandler
from ..handlers.base import BaseHandler
from ..handlers.condition import ConditionHandler
from ..handlers.end import EndHandler
from ..handlers.script import ScriptHandler
from ..handlers.send_email import SendEmailHandler
from ..handlers.start import StartHandler
from ..handlers.task import TaskHandler
from .models import JobKind

_HANDLER_MAP: Dict[JobKind, Type[BaseHandler]] = {
    JobKind.START: StartHandler,
    JobKind.TASK: TaskHandler,
    JobKind.CONDITION: ConditionHandler,
    JobKind.API_CALL: APICallHandler,
    JobKind.SCRIPT: ScriptHandler,
    JobKind.SEND_EMAIL: SendEmailHandler,
    JobKind.END: EndHandler,
}

_unmapped = set(JobKind) - set(_HANDLER_MAP)
if _unmapped:
    raise RuntimeError(f"No handler registered for job kinds: {sorted(k.value for k in _unmapped)}")


def make_handler(kind: JobKind) -> BaseHandler:
    return _HANDLER_MAP[kind]()


def default_handlers() -> Dict[JobKind, BaseHandler]:
    """One handler instance per job kind."""
    return {kind: cls() for kind, cls in _HANDLER_MAP.items()}
