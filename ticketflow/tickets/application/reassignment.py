"""
Reassignment Coordinator
========================

Moves ticket ownership between agents while keeping both load counters
consistent: manual reassignment of one ticket, and mass reassignment when
an agent is deactivated.
"""

from typing import Optional

from ticketflow.agents.application import AgentRegistry, AssignmentRouter
from ticketflow.agents.domain import Agent, ReassignedTicket, ReassignmentResult
from ticketflow.audit.application import (
    SYSTEM_ACTOR,
    ActorRef,
    AuditAction,
    AuditSeverity,
    IAuditSink,
    TargetRef,
)
from ticketflow.config import DEFAULT_CATEGORY
from ticketflow.core.exceptions import (
    InactiveAgentException,
    InvalidTransitionException,
    NoCapacityException,
    ResourceNotFoundException,
)
from ticketflow.notifications.application import EmailKind, NotificationDispatcher, NotificationEvent
from ticketflow.shared.infrastructure.clock import Clock
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.sla.application import ISLAConfigProvider
from ticketflow.tickets.application.services import ITicketRepository, ticket_target, unit_of_work
from ticketflow.tickets.domain import Ticket, TicketStateMachine

logger = get_logger(__name__)


def agent_target(agent: Agent) -> TargetRef:
    return TargetRef(type="agent", id=agent.id, name=agent.name)


class ReassignmentCoordinator:
    """
    Owns every change of ``assigned_agent_id`` after creation.

    The target's slot is claimed with the conditional increment before the
    source is released, so a rejected move leaves both counters untouched.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        registry: AgentRegistry,
        router: AssignmentRouter,
        config_provider: ISLAConfigProvider,
        dispatcher: NotificationDispatcher,
        audit_sink: IAuditSink,
        clock: Clock,
    ):
        self._tickets = ticket_repository
        self._registry = registry
        self._router = router
        self._config_provider = config_provider
        self._dispatcher = dispatcher
        self._audit = audit_sink
        self._clock = clock

    async def _load_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def claim(self, target: Agent) -> None:
        """
        Take one slot on ``target`` or fail without side effects.

        Activity and capacity are judged on fresh storage state, not on the
        possibly stale ``target`` snapshot.
        """
        if await self._registry.try_increment_load(target.id):
            return

        fresh = await self._registry.get_agent(target.id)
        if not fresh.is_active:
            raise InactiveAgentException(fresh.id)
        raise NoCapacityException(fresh.id, fresh.current_load, fresh.max_load)

    async def transfer(self, ticket: Ticket, target: Agent) -> Optional[Agent]:
        """
        Give ``ticket`` to ``target``, releasing its current agent if any.

        Returns the previous agent (None if the ticket was unassigned or its
        agent no longer exists). Does not commit.
        """
        if not target.is_active:
            raise InactiveAgentException(target.id)

        source_id = ticket.assigned_agent_id
        await self.claim(target)

        source = None
        if source_id is not None:
            source = await self._registry.find_agent(source_id)
            await self._registry.decrement_load(source_id)

        ticket.assigned_agent_id = target.id
        return source

    # ----- manual -----

    async def manual_reassign(
        self,
        ticket_id: str,
        from_agent_id: str,
        to_agent_id: str,
        actor: ActorRef = SYSTEM_ACTOR,
    ) -> Ticket:
        """
        Move one ticket from ``from_agent_id`` to ``to_agent_id``.

        Raises NotFound for an unknown ticket or agent, InvalidTransition for
        a terminal ticket or one not owned by the source agent,
        InactiveAgent or NoCapacity for an unusable target.
        """
        now = self._clock.now()
        machine = TicketStateMachine(self._config_provider.get_config())

        async with unit_of_work(self._tickets):
            ticket = await self._load_ticket(ticket_id)
            source = await self._registry.get_agent(from_agent_id)
            target = await self._registry.get_agent(to_agent_id)

            machine.ensure_reassignable(ticket)
            if ticket.assigned_agent_id != source.id:
                raise InvalidTransitionException(
                    f"Ticket is not assigned to agent '{source.id}'",
                    {"ticket_id": ticket.id, "assigned_agent_id": ticket.assigned_agent_id}
                )
            if source.id == target.id:
                raise InvalidTransitionException(
                    "Ticket is already assigned to this agent",
                    {"ticket_id": ticket.id, "agent_id": target.id}
                )

            await self.transfer(ticket, target)
            ticket.add_system_note(
                f"Ticket manually reassigned from {source.name} to {target.name}", now
            )
            await self._tickets.save(ticket)

        logger.info(
            "Ticket reassigned",
            extra={"ticket_id": ticket.id, "from_agent_id": source.id, "to_agent_id": target.id}
        )
        await self._audit.record(
            AuditAction.TICKET_REASSIGNED,
            actor,
            ticket_target(ticket),
            f"Ticket reassigned from {source.name} to {target.name}: {ticket.subject}",
            {
                "previous_agent_id": source.id,
                "previous_agent_name": source.name,
                "agent_id": target.id,
                "agent_name": target.name,
            },
        )
        self._dispatcher.notify(
            NotificationEvent.TICKET_REASSIGNED,
            {"ticket": ticket.to_payload(), "from_agent_id": source.id, "to_agent_id": target.id},
        )
        self._dispatcher.send_email(EmailKind.TICKET_ASSIGNED, target.email, ticket)
        return ticket

    # ----- mass reassignment -----

    async def _reassign_all(self, agent_id: str) -> ReassignmentResult:
        now = self._clock.now()
        result = ReassignmentResult(agent_id=agent_id)

        for ticket in await self._tickets.list_active_by_agent(agent_id):
            candidate = await self._router.acquire_agent(
                ticket.category or DEFAULT_CATEGORY,
                exclude_agent_id=agent_id,
            )
            if candidate is not None:
                ticket.assigned_agent_id = candidate.id
                ticket.add_system_note(
                    f"Ticket reassigned to {candidate.name} due to previous agent deactivation", now
                )
                result.reassigned.append(ReassignedTicket(
                    ticket_id=ticket.id,
                    new_agent_id=candidate.id,
                    new_agent_name=candidate.name,
                ))
            else:
                ticket.assigned_agent_id = None
                ticket.add_system_note(
                    "Ticket marked as unassigned - previous agent deactivated and no available agents",
                    now,
                )
                result.unassigned.append(ticket.id)
            await self._tickets.save(ticket)

        # Unconditional: whatever the per-ticket bookkeeping did, the agent
        # ends with no load
        await self._registry.reset_load(agent_id)
        return result

    async def reassign_agent_tickets(self, agent_id: str) -> ReassignmentResult:
        """
        Move every open ticket off ``agent_id``.

        Each ticket goes to the best other agent for its category, or is
        left unassigned when nobody has capacity. The agent's load is reset
        to zero afterwards.
        """
        async with unit_of_work(self._tickets):
            await self._registry.get_agent(agent_id)
            result = await self._reassign_all(agent_id)

        logger.info(
            "Agent tickets reassigned",
            extra={
                "agent_id": agent_id,
                "reassigned": len(result.reassigned),
                "unassigned": len(result.unassigned),
            }
        )
        return result

    async def deactivate_agent(self, agent_id: str, actor: ActorRef = SYSTEM_ACTOR) -> ReassignmentResult:
        """Mark the agent inactive and redistribute its open tickets in one transaction."""
        async with unit_of_work(self._tickets):
            agent = await self._registry.get_agent(agent_id)
            if not agent.is_active:
                raise InvalidTransitionException(
                    f"Agent '{agent_id}' is already inactive",
                    {"agent_id": agent_id}
                )
            agent = await self._registry.update_agent(agent_id, is_active=False)
            result = await self._reassign_all(agent_id)

        logger.warning(
            "Agent deactivated",
            extra={
                "agent_id": agent_id,
                "reassigned": len(result.reassigned),
                "unassigned": len(result.unassigned),
            }
        )
        await self._record_deactivation(agent, actor, result)
        self._dispatcher.notify(NotificationEvent.AGENT_DEACTIVATED, result.to_dict())
        return result

    async def _record_deactivation(
        self,
        agent: Agent,
        actor: ActorRef,
        result: ReassignmentResult,
    ) -> None:
        await self._audit.record(
            AuditAction.AGENT_DEACTIVATED,
            actor,
            agent_target(agent),
            f"Agent deactivated: {agent.name}",
            {"reassigned": len(result.reassigned), "unassigned": len(result.unassigned)},
            severity=AuditSeverity.WARNING,
        )

        for item in result.reassigned:
            await self._audit.record(
                AuditAction.TICKET_REASSIGNED,
                actor,
                TargetRef(type="ticket", id=item.ticket_id),
                f"Ticket reassigned to {item.new_agent_name} after {agent.name} was deactivated",
                {
                    "previous_agent_id": agent.id,
                    "agent_id": item.new_agent_id,
                    "agent_name": item.new_agent_name,
                    "reason": "agent_deactivated",
                },
            )
        for ticket_id in result.unassigned:
            await self._audit.record(
                AuditAction.TICKET_UNASSIGNED,
                actor,
                TargetRef(type="ticket", id=ticket_id),
                f"Ticket unassigned after {agent.name} was deactivated, no agent available",
                {"previous_agent_id": agent.id, "reason": "agent_deactivated"},
                severity=AuditSeverity.WARNING,
            )
