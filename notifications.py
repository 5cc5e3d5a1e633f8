"""Preview delivery for newly created newsletter issues.

    compose_preview_message:   builds the preview EmailMessage from an issue
    WebhookEmailService:       EmailService that POSTs each message as JSON
    email_service_from_config: WebhookEmailService for PREVIEW_WEBHOOK_URL

Delivery failures raise here; the orchestrator decides that a failed
preview never fails a run.
"""

import asyncio
import logging

import aiohttp

from config import Config
from errors import HeraldError
from models.email import EmailEnvelope, EmailMessage
from models.newsletter import Newsletter

logger = logging.getLogger(__name__)

PREVIEW_SUBJECT_PREFIX = "[Preview]"
WEBHOOK_TIMEOUT_SECONDS = 10


class EmailDeliveryError(HeraldError):
    """An email could not be handed to the delivery endpoint."""


def compose_preview_message(newsletter: Newsletter, envelope: EmailEnvelope) -> EmailMessage:
    """Preview email for an issue: prefixed subject, issue HTML, short text body."""
    return EmailMessage(
        **envelope.model_dump(by_alias=True),
        subject=f"{PREVIEW_SUBJECT_PREFIX} {newsletter.title}",
        html=newsletter.html_body,
        text=f"{newsletter.title}\n\nIssue #{newsletter.issue_order} - {newsletter.date}",
    )


class WebhookEmailService:
    """EmailService that forwards messages to an HTTP endpoint.

    The endpoint receives the message as JSON (field `from` for the sender)
    and is expected to answer 2xx once it has accepted it.

    Example:
        >>> service = WebhookEmailService(config.preview_webhook_url)
        >>> await service.send(message)
    """

    def __init__(self, url: str, timeout: float = WEBHOOK_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    async def send(self, message: EmailMessage) -> None:
        payload = message.model_dump(mode="json", by_alias=True, exclude_none=True)

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url, json=payload, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status >= 300:
                        raise EmailDeliveryError(
                            f"Email webhook rejected message (status={resp.status})",
                            {"url": self.url, "subject": message.subject},
                        )
        except asyncio.TimeoutError as e:
            raise EmailDeliveryError(
                "Email webhook timed out", {"url": self.url, "subject": message.subject}
            ) from e

        logger.debug("Email sent | subject=%s", message.subject[:60])


def email_service_from_config(config: Config) -> WebhookEmailService | None:
    """WebhookEmailService for PREVIEW_WEBHOOK_URL, or None when it is unset.

    Example:
        >>> preview = PreviewOptions(fetch_newsletter, email_service_from_config(config), envelope)
    """
    if not config.preview_webhook_url:
        return None
    return WebhookEmailService(config.preview_webhook_url)
