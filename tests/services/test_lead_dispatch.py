"""Tests for lead dispatch orchestration."""

from unittest.mock import MagicMock

import pytest

from src.cli.config import LeaseConfig, MessageLinkConfig
from src.db.models import LeaseStatus
from src.errors import DeliveryError, TransientStoreError
from src.services.lead_dispatch import DispatchOutcome, LeadDispatcher, LeadRequest
from src.services.lead_lease import LeadLeaseManager
from src.services.message_link import MessageLinkIssuer, resolve_token
from src.services.record_store import InMemoryRecordStore

T0 = 1_000_000


def _request(**overrides) -> LeadRequest:
    values = dict(
        conversation_id="cthr_1",
        reason="chat_idle",
        subject="New lead",
        summary="Customer wants a seat repaired.",
        customer_phone="+14081234567",
        sms_draft="Hi, this is the shop.",
        page_url="https://craigs.autos/en/contact",
    )
    values.update(overrides)
    return LeadRequest(**values)


@pytest.fixture
def memory() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def notifier() -> MagicMock:
    mock = MagicMock()
    mock.send.return_value = "msg-123"
    return mock


@pytest.fixture
def dispatcher(memory, notifier) -> LeadDispatcher:
    return LeadDispatcher(
        LeadLeaseManager(memory, LeaseConfig()),
        MessageLinkIssuer(memory, MessageLinkConfig()),
        notifier,
        clock=lambda: T0 + 2,
    )


class TestDispatch:
    """acquire, link, deliver, then commit or fail."""

    def test_first_dispatch_delivers_and_commits(self, dispatcher, memory, notifier):
        result = dispatcher.dispatch(_request(), T0)

        assert result.outcome is DispatchOutcome.delivered
        assert result.sent
        assert result.message_id == "msg-123"
        notifier.send.assert_called_once()
        record = memory.get("cthr_1")
        assert record.status is LeaseStatus.sent
        assert record.message_id == "msg-123"
        assert record.sent_at == T0 + 2

    def test_second_dispatch_is_already_handled(self, dispatcher, notifier):
        dispatcher.dispatch(_request(), T0)

        result = dispatcher.dispatch(_request(), T0 + 10)

        assert result.outcome is DispatchOutcome.already_handled
        assert not result.sent
        assert notifier.send.call_count == 1

    def test_in_flight_lease_defers(self, dispatcher, memory, notifier):
        LeadLeaseManager(memory).acquire("cthr_1", T0)

        result = dispatcher.dispatch(_request(), T0 + 5)

        assert result.outcome is DispatchOutcome.deferred
        assert result.retry_after == 115
        notifier.send.assert_not_called()

    def test_customer_links_are_issued(self, dispatcher, memory, notifier):
        dispatcher.dispatch(_request(), T0)

        notification = notifier.send.call_args.args[0]
        assert notification.sms_link.startswith("https://craigs.autos/message/?token=")
        assert notification.google_voice_link == f"{notification.sms_link}&channel=google_voice"

        token = notification.sms_link.split("token=")[1]
        payload = resolve_token(memory, token, now=T0 + 60)
        assert payload.to_phone == "+14081234567"
        assert payload.body == "Hi, this is the shop."

    def test_no_links_without_phone(self, dispatcher, notifier):
        dispatcher.dispatch(_request(customer_phone=None), T0)

        notification = notifier.send.call_args.args[0]
        assert notification.sms_link is None
        assert notification.google_voice_link is None

    def test_token_store_failure_still_delivers(self, memory, notifier):
        class NoTokenStore(InMemoryRecordStore):
            def put_token_if_absent(self, record):
                raise TransientStoreError("token insert failed")

        store = NoTokenStore()
        dispatcher = LeadDispatcher(
            LeadLeaseManager(store), MessageLinkIssuer(store), notifier, clock=lambda: T0
        )

        result = dispatcher.dispatch(_request(), T0)

        assert result.outcome is DispatchOutcome.delivered
        assert notifier.send.call_args.args[0].sms_link is None


class TestDeliveryFailure:
    """A failed send moves the lease to error and re-raises."""

    def test_delivery_error_fails_lease(self, dispatcher, memory, notifier):
        notifier.send.side_effect = DeliveryError("SES Throttling")

        with pytest.raises(DeliveryError):
            dispatcher.dispatch(_request(), T0)

        record = memory.get("cthr_1")
        assert record.status is LeaseStatus.error
        assert record.error_cooldown_until == T0 + 2 + 300
        assert "Throttling" in record.last_error

    def test_retry_during_cooldown_is_deferred(self, dispatcher, notifier):
        notifier.send.side_effect = DeliveryError("SES Throttling")
        with pytest.raises(DeliveryError):
            dispatcher.dispatch(_request(), T0)

        result = dispatcher.dispatch(_request(), T0 + 60)

        assert result.outcome is DispatchOutcome.deferred
        assert result.cooling_down is True
        assert notifier.send.call_count == 1

    def test_retry_after_cooldown_delivers(self, dispatcher, notifier):
        notifier.send.side_effect = [DeliveryError("SES Throttling"), "msg-456"]
        with pytest.raises(DeliveryError):
            dispatcher.dispatch(_request(), T0)

        result = dispatcher.dispatch(_request(), T0 + 400)

        assert result.outcome is DispatchOutcome.delivered
        assert result.message_id == "msg-456"


class TestCommitFailure:
    """A commit that cannot be written after a send still reports delivered."""

    def test_commit_store_error_is_logged_not_raised(self, notifier):
        class FlakyCommitStore(InMemoryRecordStore):
            writes = 0

            def put_if_absent_or_status_equals(self, *args, **kwargs):
                self.writes += 1
                if self.writes > 1:
                    raise TransientStoreError("conditional update failed")
                return super().put_if_absent_or_status_equals(*args, **kwargs)

        store = FlakyCommitStore()
        dispatcher = LeadDispatcher(
            LeadLeaseManager(store), MessageLinkIssuer(store), notifier, clock=lambda: T0
        )

        result = dispatcher.dispatch(_request(), T0)

        assert result.outcome is DispatchOutcome.delivered
        assert store.get("cthr_1").status is LeaseStatus.leased

    def test_acquire_store_error_propagates(self, notifier):
        class DownStore(InMemoryRecordStore):
            def get(self, key):
                raise TransientStoreError("store get failed")

        store = DownStore()
        dispatcher = LeadDispatcher(LeadLeaseManager(store), MessageLinkIssuer(store), notifier)

        with pytest.raises(TransientStoreError):
            dispatcher.dispatch(_request(), T0)
        notifier.send.assert_not_called()
