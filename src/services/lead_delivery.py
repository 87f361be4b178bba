"""Lead notification e-mail delivery through Amazon SES.

The dispatcher calls ``SesLeadNotifier.send`` only after the lease manager
has granted ownership of the conversation. The notifier composes a plain
text e-mail from the caller-supplied summary (the body is never generated
here) and sends it with the SES v2 API. Every botocore failure becomes a
DeliveryError so the dispatcher can move the lease to ``error``.
"""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.cli.config import DeliveryConfig
from src.errors.domain import DeliveryError
from src.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_LABEL = "craigs.autos"


@dataclass(frozen=True)
class LeadNotification:
    """Everything needed to render one lead notification e-mail."""

    conversation_id: str
    reason: str
    subject: str
    summary: str
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    sms_draft: str | None = None
    locale: str | None = None
    page_url: str | None = None
    sms_link: str | None = None
    google_voice_link: str | None = None


def _source_label(page_url: str | None) -> str:
    if page_url:
        try:
            host = urlsplit(page_url).netloc
        except ValueError:
            host = ""
        if host:
            return host
    return DEFAULT_SOURCE_LABEL


def compose_lead_email_text(notification: LeadNotification) -> str:
    """Render the plain-text e-mail body.

    Sections, in order: at a glance, summary, quick links, drafts,
    diagnostics. Empty sections are omitted.
    """
    n = notification
    parts: list[str] = [f"New chat lead from {_source_label(n.page_url)}", ""]

    glance = []
    if n.customer_name:
        glance.append(f"Customer: {n.customer_name}")
    if n.customer_phone:
        glance.append(f"Phone: {n.customer_phone}")
    if n.customer_email:
        glance.append(f"Email: {n.customer_email}")
    if glance:
        parts.append("At a glance")
        parts.extend(glance)
        parts.append("")

    if n.summary:
        parts.append("Summary")
        parts.append(n.summary)
        parts.append("")

    links = []
    if n.sms_link:
        links.append(f"Send via SMS link:\n{n.sms_link}")
    if n.google_voice_link:
        links.append(f"Google Voice link:\n{n.google_voice_link}")
    if links:
        parts.append("Quick links")
        parts.extend(links)
        parts.append("")

    if n.customer_phone and n.sms_draft:
        parts.append("Drafts")
        parts.append(f"Text message:\n{n.sms_draft}")
        parts.append("")

    parts.append("Diagnostics")
    parts.append(f"Thread: {n.conversation_id}")
    parts.append(f"Trigger: {n.reason}")
    if n.locale:
        parts.append(f"Locale: {n.locale}")
    if n.page_url:
        parts.append(f"Page: {n.page_url}")

    return "\n\n".join(parts)


class SesLeadNotifier:
    """Sends lead notifications with the SES v2 SendEmail API."""

    def __init__(self, config: DeliveryConfig, client: Any | None = None) -> None:
        """Initialize the notifier.

        Args:
            config: Delivery settings (addresses, region, timeouts).
            client: Pre-built sesv2 client. Built lazily when omitted.
        """
        self._config = config
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "sesv2",
                region_name=self._config.aws_region or None,
                config=Config(
                    connect_timeout=self._config.timeout_seconds,
                    read_timeout=self._config.timeout_seconds,
                    retries={"max_attempts": self._config.max_attempts, "mode": "standard"},
                ),
            )
        return self._client

    def send(self, notification: LeadNotification) -> str:
        """Send one lead notification.

        Args:
            notification: Rendered lead content.

        Returns:
            The SES message id.

        Raises:
            DeliveryError: Delivery is not configured or SES rejected or
                failed the request.
        """
        if not self._config.lead_to_email or not self._config.lead_from_email:
            raise DeliveryError("lead e-mail delivery is not configured")

        request: dict[str, Any] = {
            "FromEmailAddress": self._config.lead_from_email,
            "Destination": {"ToAddresses": [self._config.lead_to_email]},
            "Content": {
                "Simple": {
                    "Subject": {"Data": notification.subject, "Charset": "UTF-8"},
                    "Body": {
                        "Text": {
                            "Data": compose_lead_email_text(notification),
                            "Charset": "UTF-8",
                        }
                    },
                }
            },
        }
        if notification.customer_email:
            request["ReplyToAddresses"] = [notification.customer_email]

        try:
            response = self._get_client().send_email(**request)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            detail = sanitize_error_message(str(exc), max_length=300)
            logger.error(
                "SES rejected lead e-mail for %s: %s %s",
                notification.conversation_id,
                code,
                detail,
            )
            raise DeliveryError(f"SES {code}: {detail}") from exc
        except BotoCoreError as exc:
            detail = sanitize_error_message(str(exc), max_length=300)
            logger.error(
                "SES call failed for %s: %s", notification.conversation_id, detail
            )
            raise DeliveryError(f"SES unavailable: {detail}") from exc

        message_id = response.get("MessageId", "")
        logger.info("Lead e-mail sent for %s (message %s)", notification.conversation_id, message_id)
        return message_id
