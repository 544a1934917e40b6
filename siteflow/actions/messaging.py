"""Outbound communication actions: email, webhook and in-app notification."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from ..contracts import ActionType, StepResult, WorkflowContext
from ..mail import WorkflowEmail
from .base import BaseAction


class SendEmail(BaseAction):
    """Send one templated email to each configured recipient.

    The step succeeds only when every recipient was delivered to.
    """

    action_type = ActionType.SEND_EMAIL

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        to = config.get("to")
        recipients = to if isinstance(to, list) else [to]
        addresses = [self.render(r, context) for r in recipients]
        if not addresses or not all(a and a.strip() for a in addresses):
            return StepResult.failure("No recipients configured")

        email = WorkflowEmail(
            subject=self.render(config.get("subject", ""), context),
            body=self.render(config.get("body", ""), context),
            cta_text=config.get("ctaText"),
            cta_url=self.render(config.get("ctaUrl"), context)
            if config.get("ctaUrl")
            else None,
        )

        results: List[Dict[str, Any]] = []
        for address in addresses:
            sent = await self.services.email_sender.send(address, email)
            entry: Dict[str, Any] = {"to": address, "success": sent.success}
            if sent.error:
                entry["error"] = sent.error
            results.append(entry)

        all_sent = all(r["success"] for r in results)
        return StepResult(
            success=all_sent,
            output={"sent": all_sent, "recipients": results, "subject": email.subject},
            error=None if all_sent else "Some emails failed to send",
        )


class SendWebhook(BaseAction):
    """Call an external HTTP endpoint with an interpolated JSON body."""

    action_type = ActionType.SEND_WEBHOOK

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        url = self.render(config["url"], context)
        method = str(config.get("method") or "POST").upper()
        headers = {"Content-Type": "application/json", **(config.get("headers") or {})}

        body = config.get("body")
        content = (
            self.render(json.dumps(body), context) if body is not None else None
        )

        response = await self.services.http_client.request(
            method,
            url,
            headers=headers,
            content=content,
            timeout=self.services.engine.webhook_timeout,
        )
        try:
            data = response.json()
        except ValueError:
            data = None

        return StepResult(
            success=response.is_success,
            output={"status": response.status_code, "data": data},
            error=None if response.is_success else f"HTTP {response.status_code}",
        )


class SendNotification(BaseAction):
    action_type = ActionType.SEND_NOTIFICATION

    async def execute(
        self, config: Dict[str, Any], context: WorkflowContext
    ) -> StepResult:
        notification = await self.repository.create_notification(
            site_id=context.site_id,
            user_id=self.render(config.get("userId"), context),
            title=self.render(config.get("title", ""), context),
            message=self.render(config.get("message", ""), context),
            type=config.get("type") or "info",
        )
        return StepResult(success=True, output={"notificationId": notification.id})
