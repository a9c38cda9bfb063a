"""
Ticket Application Services
===========================

The ticket lifecycle service: every ticket mutation (create, reply, status,
priority, category and assignment changes) goes through here.

Each operation runs as one unit of work: the ticket row, its new messages
and any agent load change are committed together. Audit events and
notifications are produced only after the commit.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional, Tuple
from uuid import uuid4

from ticketflow.agents.application import AgentRegistry, AssignmentRouter
from ticketflow.agents.domain import Agent
from ticketflow.audit.application import (
    SYSTEM_ACTOR,
    ActorRef,
    AuditAction,
    IAuditSink,
    TargetRef,
)
from ticketflow.config import (
    DEFAULT_CATEGORY,
    DEFAULT_PRIORITY,
    ActorRole,
    MessageRole,
    TicketStatus,
    is_terminal_status,
)
from ticketflow.core.exceptions import (
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from ticketflow.notifications.application import EmailKind, NotificationDispatcher, NotificationEvent
from ticketflow.shared.infrastructure.clock import Clock
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.sla.application import ISLAConfigProvider
from ticketflow.sla.domain import SLADeadline
from ticketflow.tickets.domain import (
    LoadEffect,
    Ticket,
    TicketStateMachine,
    Transition,
    TransitionResult,
)

if TYPE_CHECKING:
    from ticketflow.tickets.application.reassignment import ReassignmentCoordinator

logger = get_logger(__name__)

MAX_REMARK_LENGTH = 500


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket (with its conversation) by ID."""

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket and its messages."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """Write ticket fields and insert messages appended since load."""

    @abstractmethod
    async def list(
        self,
        filters: Dict[str, Any],
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets with filters, newest first."""

    @abstractmethod
    async def count(self, filters: Dict[str, Any]) -> int:
        """Number of tickets matching ``filters``."""

    @abstractmethod
    async def list_active_by_agent(self, agent_id: str) -> List[Ticket]:
        """Non-terminal tickets assigned to ``agent_id``, oldest first."""

    @abstractmethod
    async def list_breach_candidates(self, now: datetime) -> List[Ticket]:
        """Non-terminal, not yet breached tickets whose deadline is before ``now``."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit the unit of work."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard the unit of work."""


@asynccontextmanager
async def unit_of_work(tickets: ITicketRepository) -> AsyncIterator[None]:
    """Commit on success, roll back (and re-raise) on any error."""
    try:
        yield
    except Exception:
        await tickets.rollback()
        raise
    await tickets.commit()


def ticket_target(ticket: Ticket) -> TargetRef:
    return TargetRef(type="ticket", id=ticket.id, name=ticket.subject)


def message_role_for(actor: ActorRef) -> str:
    if actor.role == ActorRole.CUSTOMER:
        return MessageRole.CUSTOMER
    if actor.role in (ActorRole.AGENT, ActorRole.ADMIN):
        return MessageRole.AGENT
    raise ValidationException(f"Actors with role '{actor.role}' cannot post messages")


@dataclass
class _UpdateOutcome:
    changes: List[str] = field(default_factory=list)
    status: Optional[TransitionResult] = None
    sla: Optional[SLADeadline] = None
    previous_priority: Optional[str] = None
    assignment: Optional[Tuple[Optional[Agent], Agent]] = None


# ========== Application Services ==========

class TicketLifecycleService:
    """
    Orchestrates the ticket state machine, agent registry and router.

    Callers serialise operations on the same ticket; there is no per-ticket
    locking here.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        registry: AgentRegistry,
        router: AssignmentRouter,
        coordinator: "ReassignmentCoordinator",
        config_provider: ISLAConfigProvider,
        dispatcher: NotificationDispatcher,
        audit_sink: IAuditSink,
        clock: Clock,
    ):
        self._tickets = ticket_repository
        self._registry = registry
        self._router = router
        self._coordinator = coordinator
        self._config_provider = config_provider
        self._dispatcher = dispatcher
        self._audit = audit_sink
        self._clock = clock

    def _machine(self) -> TicketStateMachine:
        return TicketStateMachine(self._config_provider.get_config())

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def list_tickets(
        self,
        *,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        category: Optional[str] = None,
        assigned_agent_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        sla_breached: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Ticket], int]:
        """Page of tickets (newest first) and the total number matching."""
        filters = {
            key: value
            for key, value in {
                "status": status,
                "priority": priority,
                "category": category,
                "assigned_agent_id": assigned_agent_id,
                "customer_id": customer_id,
                "sla_breached": sla_breached,
            }.items()
            if value is not None
        }
        tickets = await self._tickets.list(filters, limit=limit, offset=offset)
        return tickets, await self._tickets.count(filters)

    # ----- create -----

    async def create_ticket(
        self,
        subject: str,
        description: str,
        customer: ActorRef,
        priority: Optional[str] = None,
        category: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Ticket:
        """
        Open a ticket and try to route it.

        The ticket insert and the chosen agent's load increment share one
        transaction: either both land or neither does.
        """
        now = self._clock.now()
        machine = self._machine()

        async with unit_of_work(self._tickets):
            ticket = machine.create(
                ticket_id=str(uuid4()),
                subject=subject,
                description=description,
                priority=priority or DEFAULT_PRIORITY,
                category=category,
                customer_id=customer.id,
                customer_email=customer_email or customer.email,
                now=now,
            )
            agent = await self._router.auto_assign_ticket(ticket, now)
            await self._tickets.add(ticket)

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "priority": ticket.priority,
                "category": ticket.category,
                "assigned_agent_id": ticket.assigned_agent_id,
            }
        )

        await self._audit.record(
            AuditAction.TICKET_CREATED,
            customer,
            ticket_target(ticket),
            f"Ticket created: {ticket.subject}",
            {"priority": ticket.priority, "category": ticket.category, "sla_due_at": ticket.sla_due_at},
        )
        self._dispatcher.notify(NotificationEvent.TICKET_CREATED, ticket.to_payload())
        self._dispatcher.send_email(EmailKind.TICKET_CREATED, ticket.customer_email, ticket)

        if agent is not None:
            await self._audit.record(
                AuditAction.TICKET_ASSIGNED,
                SYSTEM_ACTOR,
                ticket_target(ticket),
                f"Ticket assigned to {agent.name}: {ticket.subject}",
                {"agent_id": agent.id, "agent_name": agent.name, "auto": True},
            )
            self._dispatcher.send_email(EmailKind.TICKET_ASSIGNED, agent.email, ticket)

        return ticket

    # ----- messages -----

    async def add_message(self, ticket_id: str, actor: ActorRef, content: str) -> Ticket:
        """
        Record a customer or agent reply.

        Replying to a resolved ticket reopens it; replying to a closed one is
        rejected.
        """
        role = message_role_for(actor)
        now = self._clock.now()
        machine = self._machine()

        async with unit_of_work(self._tickets):
            ticket = await self.get_ticket(ticket_id)
            result = machine.record_message(
                ticket,
                role,
                content,
                now,
                agent_email=actor.email,
                author_name=actor.name,
            )
            await self._apply_load_effect(ticket, result, now)
            await self._tickets.save(ticket)

        is_agent = role == MessageRole.AGENT
        await self._audit.record(
            AuditAction.TICKET_AGENT_REPLIED if is_agent else AuditAction.TICKET_MESSAGE_ADDED,
            actor,
            ticket_target(ticket),
            f"{'Agent replied to' if is_agent else 'Customer added message to'} ticket: {ticket.subject}",
            {"message_length": len(content), "ticket_status": ticket.status},
        )
        if result.reopened:
            await self._record_reopen(ticket, actor, result)

        self._dispatcher.notify(
            NotificationEvent.TICKET_REPLIED,
            {"ticket": ticket.to_payload(), "role": role},
        )
        if is_agent:
            self._dispatcher.send_email(EmailKind.TICKET_REPLY, ticket.customer_email, ticket)

        return ticket

    # ----- field updates -----

    async def change_status(self, ticket_id: str, status: str, actor: ActorRef) -> Ticket:
        ticket = await self.get_ticket(ticket_id)
        if ticket.status == status:
            raise InvalidTransitionException(
                f"Ticket is already {status}",
                {"ticket_id": ticket_id, "status": status}
            )
        return await self._apply_update(ticket_id, actor, status=status)

    async def change_priority(self, ticket_id: str, priority: str, actor: ActorRef) -> Ticket:
        return await self._apply_update(ticket_id, actor, priority=priority)

    async def change_category(self, ticket_id: str, category: str, actor: ActorRef) -> Ticket:
        return await self._apply_update(ticket_id, actor, category=category)

    async def assign_ticket(self, ticket_id: str, agent_id: str, actor: ActorRef) -> Ticket:
        """Assign an unassigned ticket, or move an assigned one, to ``agent_id``."""
        return await self._apply_update(ticket_id, actor, assigned_agent_id=agent_id)

    async def update_ticket(
        self,
        ticket_id: str,
        actor: ActorRef,
        *,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        category: Optional[str] = None,
        assigned_agent_id: Optional[str] = None,
        remark: Optional[str] = None,
    ) -> Ticket:
        """
        Apply several field changes with one summarising system note.

        Agents must explain their update in ``remark`` (at most 500
        characters). Fields equal to the current value are ignored; an
        update that changes nothing is rejected.
        """
        remark = remark.strip() if remark else None
        if remark and len(remark) > MAX_REMARK_LENGTH:
            raise ValidationException(
                f"Remark must be at most {MAX_REMARK_LENGTH} characters",
                {"length": len(remark)}
            )
        if actor.is_agent and not remark:
            raise ValidationException("A remark is required when an agent updates a ticket")

        return await self._apply_update(
            ticket_id,
            actor,
            status=status,
            priority=priority,
            category=category,
            assigned_agent_id=assigned_agent_id,
            remark=remark,
        )

    async def _apply_update(
        self,
        ticket_id: str,
        actor: ActorRef,
        *,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        category: Optional[str] = None,
        assigned_agent_id: Optional[str] = None,
        remark: Optional[str] = None,
    ) -> Ticket:
        now = self._clock.now()
        machine = self._machine()
        outcome = _UpdateOutcome()

        async with unit_of_work(self._tickets):
            ticket = await self.get_ticket(ticket_id)
            before = ticket.snapshot()

            if category is not None and machine.change_category(ticket, category, now):
                outcome.changes.append(f"Category: {before['category'] or 'none'} → {category}")

            wants_status = status is not None and status != ticket.status
            # Reopen before (re)assigning; reassign before resolving
            status_first = wants_status and not is_terminal_status(status)

            if status_first:
                await self._change_status(machine, ticket, status, now, outcome)

            if assigned_agent_id is not None and assigned_agent_id != ticket.assigned_agent_id:
                machine.ensure_reassignable(ticket)
                target = await self._registry.get_agent(assigned_agent_id)
                source = await self._coordinator.transfer(ticket, target)
                outcome.assignment = (source, target)
                outcome.changes.append(
                    f"Assigned agent: {source.name if source else 'unassigned'} → {target.name}"
                )

            if wants_status and not status_first:
                await self._change_status(machine, ticket, status, now, outcome)

            if priority is not None and priority != ticket.priority:
                outcome.previous_priority = ticket.priority
                outcome.sla = machine.change_priority(ticket, priority, now)
                outcome.changes.append(f"Priority: {outcome.previous_priority} → {priority}")

            if not outcome.changes:
                raise ValidationException("No changes to apply", {"ticket_id": ticket_id})

            note = f"{actor.display_name} updated ticket: {'; '.join(outcome.changes)}"
            if remark:
                note += f". Remark: {remark}"
            ticket.add_system_note(note, now)
            await self._tickets.save(ticket)

        await self._after_update(ticket, actor, before, outcome, remark)
        return ticket

    async def _change_status(
        self,
        machine: TicketStateMachine,
        ticket: Ticket,
        status: str,
        now: datetime,
        outcome: _UpdateOutcome,
    ) -> None:
        result = machine.change_status(ticket, status, now)
        await self._apply_load_effect(ticket, result, now)
        outcome.status = result
        outcome.changes.append(f"Status: {result.from_status} → {result.to_status}")

    async def _apply_load_effect(self, ticket: Ticket, result: TransitionResult, now: datetime) -> None:
        if result.load_effect == LoadEffect.RELEASE:
            await self._registry.decrement_load(result.load_agent_id)
        elif result.load_effect == LoadEffect.ACQUIRE:
            owner = await self._registry.find_agent(result.load_agent_id)
            if owner is None or not owner.is_active:
                await self._reroute_reopened(ticket, result, now)
                return
            # Re-acquiring a released slot is not capacity-gated
            await self._registry.increment_load(result.load_agent_id)

    async def _reroute_reopened(self, ticket: Ticket, result: TransitionResult, now: datetime) -> None:
        """Reopened ticket whose agent is gone: route it afresh or leave it unassigned."""
        previous_agent_id = result.load_agent_id
        agent = await self._router.acquire_agent(
            ticket.category or DEFAULT_CATEGORY, exclude_agent_id=previous_agent_id
        )
        if agent is not None:
            ticket.assigned_agent_id = agent.id
            ticket.add_system_note(
                f"Ticket reassigned to {agent.name} on reopen, previous agent inactive", now
            )
        else:
            ticket.assigned_agent_id = None
            ticket.add_system_note(
                "Ticket marked as unassigned on reopen - previous agent inactive and no available agents",
                now,
            )
        result.load_agent_id = ticket.assigned_agent_id

        logger.info(
            "Reopened ticket rerouted away from inactive agent",
            extra={
                "ticket_id": ticket.id,
                "previous_agent_id": previous_agent_id,
                "new_agent_id": ticket.assigned_agent_id,
            }
        )

    # ----- post-commit side effects -----

    async def _after_update(
        self,
        ticket: Ticket,
        actor: ActorRef,
        before: Dict[str, Any],
        outcome: _UpdateOutcome,
        remark: Optional[str],
    ) -> None:
        target = ticket_target(ticket)
        await self._audit.record(
            AuditAction.TICKET_UPDATED,
            actor,
            target,
            f"Ticket updated: {ticket.subject}",
            {"changes": outcome.changes, "before": before, "after": ticket.snapshot(), "remark": remark},
        )

        status = outcome.status
        if status is not None:
            if status.reopened:
                await self._record_reopen(ticket, actor, status)
            if Transition.RESOLVE in status.transitions:
                await self._audit.record(
                    AuditAction.TICKET_RESOLVED,
                    actor,
                    target,
                    f"Ticket {status.to_status}: {ticket.subject}",
                    {"resolved_at": ticket.resolved_at, "released_agent_id": status.load_agent_id},
                )
            kind = EmailKind.TICKET_RESOLVED if status.to_status == TicketStatus.RESOLVED else EmailKind.TICKET_STATUS
            self._dispatcher.send_email(kind, ticket.customer_email, ticket)

        if outcome.previous_priority is not None:
            await self._audit.record(
                AuditAction.TICKET_SLA_RECALCULATED,
                actor,
                target,
                f"SLA recalculated for ticket: {ticket.subject}",
                {
                    "old_priority": outcome.previous_priority,
                    "new_priority": ticket.priority,
                    "old_sla_due_at": outcome.sla.previous_deadline if outcome.sla else before["sla_due_at"],
                    "new_sla_due_at": ticket.sla_due_at,
                    "sla_breached_cleared": bool(outcome.sla and outcome.sla.breach_cleared),
                },
            )

        if outcome.assignment is not None:
            source, agent = outcome.assignment
            await self._audit.record(
                AuditAction.TICKET_REASSIGNED if source else AuditAction.TICKET_ASSIGNED,
                actor,
                target,
                f"Ticket assigned to {agent.name}: {ticket.subject}",
                {
                    "agent_id": agent.id,
                    "agent_name": agent.name,
                    "previous_agent_id": source.id if source else None,
                },
            )
            self._dispatcher.send_email(EmailKind.TICKET_ASSIGNED, agent.email, ticket)

        self._dispatcher.notify(
            NotificationEvent.TICKET_UPDATED,
            {"ticket": ticket.to_payload(), "changes": outcome.changes},
        )

    async def _record_reopen(self, ticket: Ticket, actor: ActorRef, result: TransitionResult) -> None:
        await self._audit.record(
            AuditAction.TICKET_REOPENED,
            actor,
            ticket_target(ticket),
            f"Ticket reopened: {ticket.subject}",
            {
                "transition": result.transitions[0],
                "reopen_count": ticket.reopen_count,
                "new_sla_due_at": ticket.sla_due_at,
                "priority": ticket.priority,
                "sla_breached_cleared": bool(result.sla and result.sla.breach_cleared),
            },
        )

