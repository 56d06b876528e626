"""Message-sending step."""

from __future__ import annotations

import logging
from typing import Optional

from ..contracts import ExecutionContext, SendMessageConfig
from ..errors import StepExecutionError
from ..integrations.base import MessagingClient
from ..templates import render_template
from .base import StepExecutor, StepResult

logger = logging.getLogger(__name__)

DEFAULT_EMAIL_SUBJECT = "Automated Message"


class SendMessageExecutor(StepExecutor[SendMessageConfig]):
    kind = "send_message"

    def __init__(self, messaging: Optional[MessagingClient]) -> None:
        self._messaging = messaging

    async def execute(
        self, config: SendMessageConfig, context: ExecutionContext
    ) -> StepResult:
        if self._messaging is None:
            raise StepExecutionError("No messaging client configured")

        content = render_template(config.message, context.contact)
        subject = None
        if config.channel == "email":
            subject = render_template(
                config.subject or DEFAULT_EMAIL_SUBJECT, context.contact
            )

        result = await self._messaging.send(
            context.contact_id, config.channel, content, subject
        )
        logger.debug(
            f"Sent {config.channel} message {result.get('id')} to contact {context.contact_id}"
        )
        return StepResult(
            output={"messageId": result.get("id"), "status": result.get("status")}
        )
