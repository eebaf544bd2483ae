import inspect
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .base import BaseHandler
from ..workflow.errors import JobExecutionError
from ..workflow.results import timestamp


@dataclass
class EmailMessage:
    """ Payload handed to the injected send_email collaborator. """
    to: List[str]
    subject: str
    body: str
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    is_html: bool = False
    from_email: Optional[str] = None
    provider: Optional[str] = None
    template_id: Optional[str] = None
    template_name: Optional[str] = None
    related_id: str = ""
    related_class: str = "workflow"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SendEmailHandler(BaseHandler):
    has_side_effects = True

    async def execute(self, job, job_result, context):
        attrs = job.attributes
        message = EmailMessage(
            to=list(attrs.to),
            cc=list(attrs.cc),
            bcc=list(attrs.bcc),
            subject=attrs.subject,
            body=attrs.body,
            is_html=attrs.is_html,
            from_email=attrs.from_email,
            provider=attrs.provider,
            template_id=attrs.template_id,
            template_name=attrs.template_name,
            related_id=f"workflow_{uuid.uuid4().hex[:12]}",
        )
        job_result.log(f"Preparing email for: {', '.join(message.to)}")
        job_result.log(f"Subject: {message.subject}")

        if context.send_email is None:
            raise JobExecutionError("Email send function not provided to executor. Cannot send emails.")

        started = time.monotonic()
        try:
            sent = context.send_email(message)
            if inspect.isawaitable(sent):
                sent = await sent
        except Exception as e:
            raise JobExecutionError(f"Failed to send email: {e}") from e
        elapsed_ms = int((time.monotonic() - started) * 1000)

        details = dict(sent) if isinstance(sent, dict) else {"response": sent}
        details["execution_details"] = {
            "processing_time_ms": elapsed_ms,
            "timestamp": timestamp(),
            "recipients": {"to": len(message.to), "cc": len(message.cc), "bcc": len(message.bcc)},
            "subject": message.subject,
            "body_length": len(message.body),
        }
        job_result.result = details
        job_result.log(f"Email sent successfully in {elapsed_ms}ms")
        email_id = details.get("id") or details.get("email_id") or "unknown"
        job_result.log(f"Email ID: {email_id}")
