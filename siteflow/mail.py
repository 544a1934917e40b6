"""Email sender collaborator used by the ``send_email`` action."""

from __future__ import annotations

import abc
import html
import logging
from typing import List, Optional, Tuple

import httpx
from pydantic import BaseModel

from .config import EmailConfig

logger = logging.getLogger(__name__)


class WorkflowEmail(BaseModel):
    subject: str
    body: str
    cta_text: Optional[str] = None
    cta_url: Optional[str] = None


class EmailResult(BaseModel):
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


def render_workflow_email(email: WorkflowEmail) -> str:
    """Wrap the authored body in a minimal HTML document.

    The body is inserted as-is since site owners author it as HTML. The
    call-to-action button is only rendered when both text and URL are set.
    """
    cta = ""
    if email.cta_text and email.cta_url:
        cta = (
            '<p style="text-align: center;">'
            f'<a href="{html.escape(email.cta_url, quote=True)}" class="button">'
            f"{html.escape(email.cta_text)}</a></p>"
        )
    return (
        "<!DOCTYPE html><html><body>"
        f'<div class="header"><h1>{html.escape(email.subject)}</h1></div>'
        f"<div>{email.body}</div>"
        f"{cta}"
        "</body></html>"
    )


class EmailSender(metaclass=abc.ABCMeta):
    """Delivers one workflow email to one recipient."""

    @abc.abstractmethod
    async def send(self, recipient: str, email: WorkflowEmail) -> EmailResult:
        raise NotImplementedError


class OutboxEmailSender(EmailSender):
    """Keeps sent messages in memory instead of delivering them."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, WorkflowEmail]] = []

    async def send(self, recipient: str, email: WorkflowEmail) -> EmailResult:
        self.sent.append((recipient, email))
        logger.info(f"Outbox email to={recipient} subject={email.subject!r}")
        return EmailResult(success=True, id=f"outbox-{len(self.sent)}")


class ResendEmailSender(EmailSender):
    """Sends through the Resend HTTP API."""

    def __init__(
        self,
        api_key: Optional[str],
        from_address: str = "noreply@example.com",
        api_url: str = "https://api.resend.com/emails",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.from_address = from_address
        self.api_url = api_url
        self.timeout = timeout
        self._client = client

    async def send(self, recipient: str, email: WorkflowEmail) -> EmailResult:
        if not self.api_key:
            logger.warning("Email not sent - Resend is not configured")
            return EmailResult(success=False, error="Email service not configured")

        payload = {
            "from": self.from_address,
            "to": [recipient],
            "subject": email.subject,
            "html": render_workflow_email(email),
            "tags": [{"name": "type", "value": "workflow"}],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            if self._client is not None:
                response = await self._client.post(
                    self.api_url, json=payload, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.api_url, json=payload, headers=headers
                    )
        except httpx.HTTPError as e:
            logger.error(f"Email error to={recipient}: {e}")
            return EmailResult(success=False, error=str(e))

        if not response.is_success:
            logger.error(
                f"Failed to send email to={recipient}: HTTP {response.status_code}"
            )
            return EmailResult(success=False, error=f"HTTP {response.status_code}")

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        return EmailResult(success=True, id=message_id)


def get_email_sender(
    config: EmailConfig, client: Optional[httpx.AsyncClient] = None
) -> EmailSender:
    """Factory function to get the configured email sender."""

    if config.backend == "outbox":
        return OutboxEmailSender()
    elif config.backend == "resend":
        return ResendEmailSender(
            api_key=config.api_key,
            from_address=config.from_address,
            api_url=config.api_url,
            client=client,
            timeout=config.timeout,
        )
    else:
        raise ValueError(f"Unsupported email backend: {config.backend}")
