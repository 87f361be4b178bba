"""Tests for CLI output formatting."""

import json

from src.cli.config import LeadRelayConfig
from src.cli.output import (
    describe_lease_state,
    format_config,
    format_epoch,
    format_lease_record,
    format_token_payload,
)
from src.db.models import LeaseStatus
from src.services.message_link import TokenPayload
from src.services.record_store import LeaseRecord


def _record(**overrides) -> LeaseRecord:
    fields = {
        "conversation_id": "cthr_out",
        "status": LeaseStatus.leased,
        "lease_id": "lease-1",
        "lease_expires_at": 1_120,
        "record_expiry_at": 1_000_000,
        "created_at": 1_000,
        "updated_at": 1_000,
        "attempts": 1,
        "last_reason": "chat_idle",
    }
    fields.update(overrides)
    return LeaseRecord(**fields)


class TestFormatEpoch:
    def test_formats_utc(self):
        assert format_epoch(0) == "1970-01-01 00:00:00Z"

    def test_none_returns_dash(self):
        assert format_epoch(None) == "—"


class TestDescribeLeaseState:
    """Effective state accounts for elapsed lease and cooldown windows."""

    def test_active_lease_shows_time_left(self):
        assert describe_lease_state(_record(), 1_100) == "leased (20s left)"

    def test_expired_lease_is_acquirable(self):
        assert describe_lease_state(_record(), 1_120) == "leased (lease expired, acquirable)"

    def test_cooling_down_error(self):
        record = _record(status=LeaseStatus.error, lease_expires_at=None, error_cooldown_until=1_300)
        assert describe_lease_state(record, 1_200) == "error (cooling down, 100s left)"

    def test_cooldown_over(self):
        record = _record(status=LeaseStatus.error, lease_expires_at=None, error_cooldown_until=1_300)
        assert describe_lease_state(record, 1_300) == "error (cooldown over, acquirable)"

    def test_sent_is_terminal(self):
        assert describe_lease_state(_record(status=LeaseStatus.sent), 5_000) == "sent"

    def test_past_retention_reads_as_none(self):
        assert describe_lease_state(_record(), 1_000_000) == "expired (reads as none)"


class TestFormatLeaseRecord:
    def test_json_output(self):
        data = json.loads(format_lease_record(_record(), 1_100, as_json=True))
        assert data["conversation_id"] == "cthr_out"
        assert data["status"] == "leased"
        assert data["attempts"] == 1

    def test_panel_output(self):
        output = format_lease_record(_record(last_error="SES Throttling"), 1_100)
        assert "cthr_out" in output
        assert "chat_idle" in output
        assert "SES Throttling" in output


class TestFormatTokenPayload:
    """Phone numbers are masked unless explicitly revealed."""

    payload = TokenPayload(to_phone="+14081234567", body="Hello from test")

    def test_masks_phone_by_default(self):
        data = json.loads(format_token_payload(self.payload, as_json=True))
        assert data == {"ok": True, "to_phone": "***4567", "body": "Hello from test"}

    def test_reveal_shows_full_phone(self):
        data = json.loads(format_token_payload(self.payload, reveal=True, as_json=True))
        assert data["to_phone"] == "+14081234567"

    def test_table_output(self):
        output = format_token_payload(self.payload)
        assert "***4567" in output
        assert "+14081234567" not in output


def test_format_config_lists_sections():
    output = format_config(LeadRelayConfig())
    assert "lease" in output
    assert "message_link" in output
    assert "craigs.autos" in output
