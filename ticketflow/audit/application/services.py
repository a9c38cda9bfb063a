"""
Audit Application Contracts
===========================

The audit sink interface and the value objects callers pass to it.

Audit writes are best-effort: a sink logs its own failures and never raises
into the operation that produced the event.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ticketflow.config import ActorRole


class AuditAction:
    """Audit action names; the prefix before the dot is the category."""
    TICKET_CREATED = "ticket.created"
    TICKET_UPDATED = "ticket.updated"
    TICKET_ASSIGNED = "ticket.assigned"
    TICKET_REASSIGNED = "ticket.reassigned"
    TICKET_UNASSIGNED = "ticket.unassigned"
    TICKET_RESOLVED = "ticket.resolved"
    TICKET_REOPENED = "ticket.reopened"
    TICKET_MESSAGE_ADDED = "ticket.message_added"
    TICKET_AGENT_REPLIED = "ticket.agent_replied"
    TICKET_SLA_RECALCULATED = "ticket.sla_recalculated"
    TICKET_SLA_BREACHED = "ticket.sla_breached"
    AGENT_CREATED = "agent.created"
    AGENT_UPDATED = "agent.updated"
    AGENT_DEACTIVATED = "agent.deactivated"
    AGENT_LOADS_RECONCILED = "agent.loads_reconciled"


class AuditSeverity:
    INFO = "info"
    WARNING = "warning"


def action_category(action: str) -> str:
    return action.split(".", 1)[0]


@dataclass(frozen=True)
class ActorRef:
    """Who performed an action."""
    id: Optional[str] = None
    role: str = ActorRole.SYSTEM
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id or self.role

    @property
    def is_agent(self) -> bool:
        return self.role == ActorRole.AGENT


SYSTEM_ACTOR = ActorRef(id="system", role=ActorRole.SYSTEM, name="System")


@dataclass(frozen=True)
class TargetRef:
    """What an action was performed on."""
    type: str
    id: str
    name: Optional[str] = None


class IAuditSink(ABC):
    """Write-only audit event sink."""

    @abstractmethod
    async def record(
        self,
        action: str,
        actor: ActorRef,
        target: TargetRef,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        severity: str = AuditSeverity.INFO,
    ) -> None:
        """Persist one event. Must not raise."""
