"""
Notification External Service Integrations
==========================================

HTTP delivery for notifications:
- Webhook notifier with bounded exponential-backoff retry and circuit breaker
- Email relay client posting templated messages to an HTTP relay
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ticketflow.notifications.application import EmailKind, IEmailSender, INotifier
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.tickets.domain import Ticket

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failed deliveries, reject requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        time_func: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._time = time_func
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._time() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._time()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookNotifier(INotifier):
    """
    Webhook client with bounded retry.

    Each event is attempted ``max_attempts`` times; after a failed attempt
    it sleeps ``backoff_base * 2 ** attempt`` seconds (1s, 2s, ... by
    default) unless it was the last one. No URL configured means every
    event is a successful no-op.
    """

    def __init__(
        self,
        url: Optional[str],
        timeout_seconds: float = 5.0,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        sleep: Sleep = asyncio.sleep,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._url = url
        self._timeout = timeout_seconds
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_seconds
        self._sleep = sleep
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker or CircuitBreaker()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def notify(self, event_name: str, payload: Dict[str, Any]) -> bool:
        if not self._url:
            logger.debug("Webhook URL not configured, skipping", extra={"event": event_name})
            return True

        if not self._circuit_breaker.allow_request():
            logger.warning("Circuit breaker open, skipping webhook", extra={"event": event_name})
            return False

        body = {
            "event": event_name,
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "data": payload,
        }

        for attempt in range(self._max_attempts):
            try:
                client = await self._get_client()
                response = await client.post(self._url, json=body)
                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Webhook delivered",
                        extra={"event": event_name, "attempt": attempt + 1}
                    )
                    return True
                logger.warning(
                    "Webhook returned non-2xx",
                    extra={
                        "event": event_name,
                        "status_code": response.status_code,
                        "attempt": attempt + 1
                    }
                )
            except Exception as e:
                logger.warning(
                    "Webhook attempt failed",
                    extra={"event": event_name, "error": str(e), "attempt": attempt + 1}
                )

            if attempt < self._max_attempts - 1:
                await self._sleep(self._backoff_base * 2 ** attempt)

        self._circuit_breaker.record_failure()
        logger.error(
            "Webhook failed after retries",
            extra={"event": event_name, "attempts": self._max_attempts, "payload": payload}
        )
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


def _short_id(ticket: Ticket) -> str:
    return ticket.id.replace("-", "")[-6:]


def render_email(kind: str, ticket: Ticket) -> Dict[str, str]:
    """Subject and plain-text body for an email kind."""
    ref = f"Ticket #{_short_id(ticket)}"
    subjects = {
        EmailKind.TICKET_CREATED: f"{ref} Created - {ticket.subject}",
        EmailKind.TICKET_ASSIGNED: f"{ref} - Agent Assigned",
        EmailKind.TICKET_STATUS: f"{ref} - Status Updated to {ticket.status}",
        EmailKind.TICKET_REPLY: f"{ref} - New Reply",
        EmailKind.TICKET_RESOLVED: f"{ref} - Resolved",
        EmailKind.SLA_BREACH_CUSTOMER: f"{ref} - We apologize for the delay",
        EmailKind.SLA_BREACH_AGENT: f"SLA BREACH - {ref}",
    }

    lines = [
        f"Ticket ID: {ticket.id}",
        f"Subject: {ticket.subject}",
        f"Status: {ticket.status}",
        f"Priority: {ticket.priority}",
    ]
    if kind == EmailKind.SLA_BREACH_AGENT:
        lines.append(f"Customer: {ticket.customer_email or 'unknown'}")
        lines.append(f"SLA Due: {ticket.sla_due_at.isoformat() if ticket.sla_due_at else 'n/a'}")
        lines.append("This ticket has breached its SLA. Please respond immediately.")
    elif kind == EmailKind.SLA_BREACH_CUSTOMER:
        lines.append(
            "Your support ticket has exceeded our expected response time. "
            "We are prioritizing your request."
        )
    elif ticket.messages:
        latest = ticket.messages[-1]
        lines.append(f"Latest message ({latest.role}): {latest.content}")

    return {
        "subject": subjects.get(kind, f"{ref} Updated"),
        "text": "\n".join(lines),
    }


class EmailRelayClient(IEmailSender):
    """
    Sends templated emails through an HTTP mail relay.

    Single attempt, best-effort. Without a relay URL emails are skipped.
    """

    def __init__(
        self,
        relay_url: Optional[str],
        sender: str,
        timeout_seconds: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._relay_url = relay_url
        self._sender = sender
        self._timeout = timeout_seconds
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def send_email(self, kind: str, recipient: str, ticket: Ticket) -> bool:
        if not self._relay_url:
            logger.debug("Email relay not configured, skipping", extra={"kind": kind})
            return True

        message = {"from": self._sender, "to": recipient, **render_email(kind, ticket)}
        try:
            client = await self._get_client()
            response = await client.post(self._relay_url, json=message)
        except Exception as e:
            logger.error(
                "Email send failed",
                extra={"kind": kind, "ticket_id": ticket.id, "error": str(e)}
            )
            return False

        if not response.is_success:
            logger.error(
                "Email relay rejected message",
                extra={"kind": kind, "ticket_id": ticket.id, "status_code": response.status_code}
            )
            return False

        logger.info("Email sent", extra={"kind": kind, "ticket_id": ticket.id})
        return True

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
