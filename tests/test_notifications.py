import json

import httpx
import pytest
import respx

from conftest import START, RecordingEmailSender, RecordingNotifier
from ticketflow.notifications.application import EmailKind, INotifier, NotificationDispatcher
from ticketflow.notifications.infrastructure import (
    CircuitBreaker,
    CircuitState,
    EmailRelayClient,
    WebhookNotifier,
    render_email,
)
from ticketflow.sla.domain import SLAConfig
from ticketflow.tickets.domain import TicketStateMachine

WEBHOOK_URL = "https://hooks.example.test/tickets"
RELAY_URL = "https://mail.example.test/send"


@pytest.fixture
def ticket():
    return TicketStateMachine(SLAConfig()).create(
        ticket_id="5b0f1c7e-3d1a-4c55-9e61-0a1b2c3d4e5f",
        subject="Refund not received",
        description="It has been two weeks",
        priority="high",
        now=START,
        customer_email="casey@example.com",
    )


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class TestWebhookNotifier:
    @pytest.mark.asyncio
    async def test_delivers_event_envelope(self):
        sleep = FakeSleep()
        notifier = WebhookNotifier(WEBHOOK_URL, sleep=sleep)

        async with respx.mock() as respx_mock:
            route = respx_mock.post(WEBHOOK_URL).mock(return_value=httpx.Response(204))

            assert await notifier.notify("ticket.created", {"id": "t-1"})

            assert route.call_count == 1
            body = json.loads(route.calls.last.request.content)
            assert body["event"] == "ticket.created"
            assert body["data"] == {"id": "t-1"}
            assert "sent_at" in body
        assert sleep.calls == []
        await notifier.close()

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        sleep = FakeSleep()
        notifier = WebhookNotifier(WEBHOOK_URL, sleep=sleep)

        async with respx.mock() as respx_mock:
            route = respx_mock.post(WEBHOOK_URL).mock(
                side_effect=[httpx.Response(503), httpx.Response(200)]
            )

            assert await notifier.notify("ticket.updated", {})

            assert route.call_count == 2
        assert sleep.calls == [1.0]
        await notifier.close()

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self):
        sleep = FakeSleep()
        notifier = WebhookNotifier(WEBHOOK_URL, sleep=sleep)

        async with respx.mock() as respx_mock:
            route = respx_mock.post(WEBHOOK_URL).mock(return_value=httpx.Response(500))

            assert not await notifier.notify("ticket.sla_breached", {})

            assert route.call_count == 3
        assert sleep.calls == [1.0, 2.0]
        await notifier.close()

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self):
        sleep = FakeSleep()
        notifier = WebhookNotifier(WEBHOOK_URL, max_attempts=2, backoff_base_seconds=0.5, sleep=sleep)

        async with respx.mock() as respx_mock:
            route = respx_mock.post(WEBHOOK_URL).mock(side_effect=httpx.ConnectError("refused"))

            assert not await notifier.notify("ticket.created", {})

            assert route.call_count == 2
        assert sleep.calls == [0.5]
        await notifier.close()

    @pytest.mark.asyncio
    async def test_no_url_is_a_successful_noop(self):
        notifier = WebhookNotifier(None)

        async with respx.mock(assert_all_called=False) as respx_mock:
            route = respx_mock.post(WEBHOOK_URL)

            assert await notifier.notify("ticket.created", {})

            assert not route.called

    @pytest.mark.asyncio
    async def test_open_circuit_skips_delivery(self):
        sleep = FakeSleep()
        breaker = CircuitBreaker(failure_threshold=1)
        notifier = WebhookNotifier(WEBHOOK_URL, max_attempts=1, sleep=sleep, circuit_breaker=breaker)

        async with respx.mock() as respx_mock:
            route = respx_mock.post(WEBHOOK_URL).mock(return_value=httpx.Response(500))

            assert not await notifier.notify("ticket.created", {})
            assert breaker.state == CircuitState.OPEN
            assert not await notifier.notify("ticket.updated", {})

            assert route.call_count == 1
        await notifier.close()


class TestCircuitBreaker:
    def test_half_open_after_recovery_timeout(self):
        now = [100.0]
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, time_func=lambda: now[0])

        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        breaker.record_failure()
        assert not breaker.allow_request()

        now[0] += 30
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED


class TestEmailRelay:
    @pytest.mark.asyncio
    async def test_posts_rendered_message(self, ticket):
        client = EmailRelayClient(RELAY_URL, sender="support@ticketflow.test")

        async with respx.mock() as respx_mock:
            route = respx_mock.post(RELAY_URL).mock(return_value=httpx.Response(202))

            assert await client.send_email(EmailKind.TICKET_CREATED, "casey@example.com", ticket)

            message = json.loads(route.calls.last.request.content)
            assert message["from"] == "support@ticketflow.test"
            assert message["to"] == "casey@example.com"
            assert message["subject"] == "Ticket #3d4e5f Created - Refund not received"
        await client.close()

    @pytest.mark.asyncio
    async def test_single_attempt_failure_returns_false(self, ticket):
        client = EmailRelayClient(RELAY_URL, sender="support@ticketflow.test")

        async with respx.mock() as respx_mock:
            route = respx_mock.post(RELAY_URL).mock(return_value=httpx.Response(502))

            assert not await client.send_email(EmailKind.TICKET_REPLY, "casey@example.com", ticket)

            assert route.call_count == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self, ticket):
        client = EmailRelayClient(RELAY_URL, sender="support@ticketflow.test")

        async with respx.mock() as respx_mock:
            respx_mock.post(RELAY_URL).mock(side_effect=httpx.ReadTimeout("slow"))

            assert not await client.send_email(EmailKind.TICKET_REPLY, "casey@example.com", ticket)
        await client.close()

    @pytest.mark.asyncio
    async def test_without_relay_emails_are_skipped(self, ticket):
        assert await EmailRelayClient(None, sender="x@y.test").send_email(
            EmailKind.TICKET_CREATED, "casey@example.com", ticket
        )


class TestRenderEmail:
    def test_reference_uses_short_id(self, ticket):
        rendered = render_email(EmailKind.TICKET_RESOLVED, ticket)
        assert rendered["subject"] == "Ticket #3d4e5f - Resolved"

    def test_agent_breach_mail_names_customer_and_deadline(self, ticket):
        text = render_email(EmailKind.SLA_BREACH_AGENT, ticket)["text"]
        assert "Customer: casey@example.com" in text
        assert f"SLA Due: {ticket.sla_due_at.isoformat()}" in text

    def test_latest_message_included(self, ticket):
        text = render_email(EmailKind.TICKET_REPLY, ticket)["text"]
        assert text.endswith("Latest message (customer): It has been two weeks")


class ExplodingNotifier(INotifier):
    async def notify(self, event_name, payload):
        raise RuntimeError("boom")


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_failures_stay_inside_delivery_task(self, ticket):
        emails = RecordingEmailSender()
        dispatcher = NotificationDispatcher(ExplodingNotifier(), emails)

        dispatcher.notify("ticket.created", {})
        dispatcher.send_email(EmailKind.TICKET_CREATED, "casey@example.com", ticket)
        await dispatcher.drain()

        assert dispatcher.pending == 0
        assert emails.sent == [(EmailKind.TICKET_CREATED, "casey@example.com", ticket.id)]

    @pytest.mark.asyncio
    async def test_missing_recipient_skipped(self, ticket):
        emails = RecordingEmailSender()
        dispatcher = NotificationDispatcher(RecordingNotifier(), emails)

        dispatcher.send_email(EmailKind.TICKET_ASSIGNED, None, ticket)
        await dispatcher.drain()

        assert emails.sent == []
