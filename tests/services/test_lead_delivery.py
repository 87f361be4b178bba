"""Tests for SES lead notification delivery."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from src.cli.config import DeliveryConfig
from src.errors import DeliveryError
from src.services.lead_delivery import (
    LeadNotification,
    SesLeadNotifier,
    compose_lead_email_text,
)


@pytest.fixture
def delivery_config() -> DeliveryConfig:
    return DeliveryConfig(
        lead_to_email="shop@example.com",
        lead_from_email="leads@example.com",
        aws_region="us-west-2",
        timeout_seconds=20,
    )


@pytest.fixture
def notification() -> LeadNotification:
    return LeadNotification(
        conversation_id="cthr_1",
        reason="chat_idle",
        subject="New lead: seat repair",
        summary="Customer wants a torn driver seat repaired.",
        customer_name="Dana",
        customer_phone="+14081234567",
        customer_email="dana@example.com",
        sms_draft="Hi Dana, this is the shop.",
        locale="en",
        page_url="https://craigs.autos/en/contact",
        sms_link="https://craigs.autos/message/?token=abc",
        google_voice_link="https://craigs.autos/message/?token=abc&channel=google_voice",
    )


class TestComposeLeadEmailText:
    """Plain-text body layout."""

    def test_sections_in_order(self, notification):
        text = compose_lead_email_text(notification)

        assert text.startswith("New chat lead from craigs.autos")
        positions = [
            text.index(section)
            for section in ("At a glance", "Summary", "Quick links", "Drafts", "Diagnostics")
        ]
        assert positions == sorted(positions)

    def test_includes_links_and_diagnostics(self, notification):
        text = compose_lead_email_text(notification)

        assert "https://craigs.autos/message/?token=abc&channel=google_voice" in text
        assert "Thread: cthr_1" in text
        assert "Trigger: chat_idle" in text
        assert "Page: https://craigs.autos/en/contact" in text

    def test_omits_empty_sections(self):
        text = compose_lead_email_text(
            LeadNotification(
                conversation_id="cthr_2",
                reason="manual",
                subject="Lead",
                summary="Short summary",
            )
        )

        assert "At a glance" not in text
        assert "Quick links" not in text
        assert "Drafts" not in text
        assert "Summary" in text


class TestSesLeadNotifier:
    """SES v2 send_email calls and error mapping."""

    def test_send_returns_message_id(self, delivery_config, notification):
        client = MagicMock()
        client.send_email.return_value = {"MessageId": "msg-123"}

        message_id = SesLeadNotifier(delivery_config, client=client).send(notification)

        assert message_id == "msg-123"
        kwargs = client.send_email.call_args.kwargs
        assert kwargs["FromEmailAddress"] == "leads@example.com"
        assert kwargs["Destination"] == {"ToAddresses": ["shop@example.com"]}
        assert kwargs["ReplyToAddresses"] == ["dana@example.com"]
        assert kwargs["Content"]["Simple"]["Subject"]["Data"] == "New lead: seat repair"
        assert "torn driver seat" in kwargs["Content"]["Simple"]["Body"]["Text"]["Data"]

    def test_no_reply_to_without_customer_email(self, delivery_config):
        client = MagicMock()
        client.send_email.return_value = {"MessageId": "msg-1"}

        SesLeadNotifier(delivery_config, client=client).send(
            LeadNotification(conversation_id="c", reason="r", subject="s", summary="x")
        )

        assert "ReplyToAddresses" not in client.send_email.call_args.kwargs

    def test_client_error_becomes_delivery_error(self, delivery_config, notification):
        client = MagicMock()
        client.send_email.side_effect = ClientError(
            {"Error": {"Code": "MessageRejected", "Message": "Email address is not verified."}},
            "SendEmail",
        )

        with pytest.raises(DeliveryError) as exc_info:
            SesLeadNotifier(delivery_config, client=client).send(notification)
        assert "MessageRejected" in str(exc_info.value)
        assert exc_info.value.status_code == 502

    def test_connection_error_becomes_delivery_error(self, delivery_config, notification):
        client = MagicMock()
        client.send_email.side_effect = EndpointConnectionError(
            endpoint_url="https://email.us-west-2.amazonaws.com"
        )

        with pytest.raises(DeliveryError):
            SesLeadNotifier(delivery_config, client=client).send(notification)

    def test_unconfigured_addresses_fail_without_calling_ses(self, notification):
        client = MagicMock()

        with pytest.raises(DeliveryError):
            SesLeadNotifier(DeliveryConfig(), client=client).send(notification)
        client.send_email.assert_not_called()

    def test_client_built_with_bounded_timeouts(self, delivery_config):
        with patch("src.services.lead_delivery.boto3.client") as mock_client:
            SesLeadNotifier(delivery_config)._get_client()

        args, kwargs = mock_client.call_args
        assert args == ("sesv2",)
        assert kwargs["region_name"] == "us-west-2"
        config = kwargs["config"]
        assert config.connect_timeout == 20
        assert config.read_timeout == 20
        assert config.retries == {"max_attempts": 2, "mode": "standard"}
