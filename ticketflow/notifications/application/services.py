"""
Notification Application Services
=================================

Delivery contracts plus the dispatcher the engine talks to.

The dispatcher schedules each delivery as a background task and returns
immediately; delivery failures are logged inside the task.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, Optional, Set

from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.tickets.domain import Ticket

logger = get_logger(__name__)


class NotificationEvent:
    """Webhook event names."""
    TICKET_CREATED = "ticket.created"
    TICKET_UPDATED = "ticket.updated"
    TICKET_REPLIED = "ticket.replied"
    TICKET_REASSIGNED = "ticket.reassigned"
    TICKET_SLA_BREACHED = "ticket.sla_breached"
    AGENT_DEACTIVATED = "agent.deactivated"


class EmailKind:
    """Email templates understood by email senders."""
    TICKET_CREATED = "ticket_created"
    TICKET_ASSIGNED = "ticket_assigned"
    TICKET_STATUS = "ticket_status"
    TICKET_REPLY = "ticket_reply"
    TICKET_RESOLVED = "ticket_resolved"
    SLA_BREACH_CUSTOMER = "sla_breach_customer"
    SLA_BREACH_AGENT = "sla_breach_agent"


# ========== Delivery Interfaces ==========

class INotifier(ABC):
    """Webhook-style event delivery."""

    @abstractmethod
    async def notify(self, event_name: str, payload: Dict[str, Any]) -> bool:
        """
        Deliver one event, retrying internally.

        Returns whether delivery ultimately succeeded. Must not raise.
        """


class IEmailSender(ABC):
    """Best-effort email delivery."""

    @abstractmethod
    async def send_email(self, kind: str, recipient: str, ticket: Ticket) -> bool:
        """Send one templated email about ``ticket``. Must not raise."""


# ========== Dispatcher ==========

class NotificationDispatcher:
    """
    Facade the engine calls after committing a mutation.

    ``notify`` and ``send_email`` schedule work and return at once. Tasks are
    kept referenced until done so they are not garbage collected mid-flight;
    ``drain`` waits for everything scheduled so far.
    """

    def __init__(self, notifier: INotifier, email_sender: IEmailSender):
        self._notifier = notifier
        self._email_sender = email_sender
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def notify(self, event_name: str, payload: Dict[str, Any]) -> None:
        self._spawn(
            self._notifier.notify(event_name, payload),
            {"event": event_name},
        )

    def send_email(self, kind: str, recipient: Optional[str], ticket: Ticket) -> None:
        if not recipient:
            logger.debug(
                "No recipient, email skipped",
                extra={"kind": kind, "ticket_id": ticket.id}
            )
            return
        self._spawn(
            self._email_sender.send_email(kind, recipient, ticket),
            {"email_kind": kind, "ticket_id": ticket.id},
        )

    def _spawn(self, delivery: Awaitable[bool], context: Dict[str, Any]) -> None:
        task = asyncio.create_task(self._run(delivery, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run(delivery: Awaitable[bool], context: Dict[str, Any]) -> None:
        try:
            delivered = await delivery
        except Exception as e:
            # Senders should not raise; a buggy one must still not escape
            logger.error("Notification raised", extra={**context, "error": str(e)})
            return
        if not delivered:
            logger.warning("Notification not delivered", extra=context)

    async def drain(self) -> None:
        """Wait for every delivery scheduled so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
