"""
SLA Application Services
========================

SLA configuration access and the periodic breach sweep.

The sweeper only reads and writes breach state; it never touches
assignment or agent load.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional

from ticketflow.audit.application import SYSTEM_ACTOR, AuditAction, AuditSeverity, IAuditSink, TargetRef
from ticketflow.notifications.application import EmailKind, NotificationDispatcher, NotificationEvent
from ticketflow.shared.infrastructure.clock import Clock
from ticketflow.shared.infrastructure.logging import get_logger, log_latency
from ticketflow.sla.domain import SLAConfig
from ticketflow.tickets.domain import Ticket, TicketStateMachine

if TYPE_CHECKING:
    from ticketflow.agents.application import IAgentRepository
    from ticketflow.tickets.application import ITicketRepository

logger = get_logger(__name__)


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class StaticSLAConfigProvider(ISLAConfigProvider):
    """Fixed configuration; used where no file is watched."""

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self._config


class SLASweeper:
    """
    One pass over active tickets looking for missed deadlines.

    Breach flags are committed before any notification is scheduled, so a
    failing webhook or mail relay can never undo a flag.
    """

    def __init__(
        self,
        ticket_repository: "ITicketRepository",
        agent_repository: "IAgentRepository",
        config_provider: ISLAConfigProvider,
        dispatcher: NotificationDispatcher,
        audit_sink: IAuditSink,
        clock: Clock,
    ):
        self._tickets = ticket_repository
        self._agents = agent_repository
        self._config_provider = config_provider
        self._dispatcher = dispatcher
        self._audit = audit_sink
        self._clock = clock

    async def sweep(self) -> int:
        """Flag every overdue non-terminal ticket. Returns how many were flagged."""
        now = self._clock.now()
        machine = TicketStateMachine(self._config_provider.get_config())

        breached: List[Ticket] = []
        for ticket in await self._tickets.list_breach_candidates(now):
            if machine.mark_breached(ticket, now):
                await self._tickets.save(ticket)
                breached.append(ticket)

        await self._tickets.commit()

        # Breach flags are committed; each announcement stands alone
        for ticket in breached:
            try:
                await self._announce(ticket)
            except Exception as e:
                logger.error(
                    "SLA breach announcement failed",
                    extra={"ticket_id": ticket.id, "error": str(e)},
                )

        if breached:
            logger.warning("SLA breaches detected", extra={"count": len(breached)})
        return len(breached)

    async def _announce(self, ticket: Ticket) -> None:
        self._dispatcher.notify(NotificationEvent.TICKET_SLA_BREACHED, ticket.to_payload())
        self._dispatcher.send_email(EmailKind.SLA_BREACH_CUSTOMER, ticket.customer_email, ticket)

        if ticket.assigned_agent_id:
            agent = await self._agents.get_by_id(ticket.assigned_agent_id)
            if agent is not None and agent.email:
                self._dispatcher.send_email(EmailKind.SLA_BREACH_AGENT, agent.email, ticket)

        await self._audit.record(
            AuditAction.TICKET_SLA_BREACHED,
            SYSTEM_ACTOR,
            TargetRef(type="ticket", id=ticket.id, name=ticket.subject),
            f"SLA breached for ticket: {ticket.subject}",
            {
                "sla_due_at": ticket.sla_due_at,
                "priority": ticket.priority,
                "assigned_agent_id": ticket.assigned_agent_id,
            },
            severity=AuditSeverity.WARNING,
        )


class SweepRunner:
    """
    Serialises sweeps.

    A sweep requested while another is still running is skipped, not
    queued. Shared by the scheduler job and the manual trigger endpoint.
    """

    def __init__(self, sweep: Callable[[], Awaitable[int]]):
        self._sweep = sweep
        self._lock = asyncio.Lock()
        self.last_result: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> Optional[int]:
        """Run a sweep unless one is in flight. None means skipped."""
        if self._lock.locked():
            logger.info("SLA sweep already running, skipping")
            return None

        async with self._lock:
            with log_latency(logger, "sla_sweep"):
                try:
                    self.last_result = await self._sweep()
                except Exception as e:
                    logger.error("SLA sweep failed", extra={"error": str(e)})
                    raise
            return self.last_result
