"""
Ticket Domain Entities
======================

Pure Python domain entities for the ticket lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ticketflow.config import MessageRole, is_terminal_status


@dataclass
class TicketMessage:
    """
    One entry of a ticket's conversation.

    System entries form the human-readable audit trail of the ticket; the
    list is append-only.
    """

    role: str
    content: str
    created_at: datetime
    agent_email: Optional[str] = None
    id: Optional[str] = None  # None until persisted

    @property
    def is_persisted(self) -> bool:
        return self.id is not None


@dataclass
class Ticket:
    """
    Support ticket entity.

    Status, assignment and SLA fields are mutated only by the ticket state
    machine and the reassignment coordinator.
    """

    # Core attributes
    id: str
    subject: str
    description: str
    priority: str
    status: str
    category: Optional[str]

    # Timestamps
    created_at: datetime
    updated_at: datetime

    customer_id: Optional[str] = None
    customer_email: Optional[str] = None

    # Assignment
    assigned_agent_id: Optional[str] = None

    # SLA tracking fields
    sla_due_at: Optional[datetime] = None
    sla_breached: bool = False
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    # Reopen bookkeeping
    reopen_count: int = 0
    reopened_at: Optional[datetime] = None

    # Set when the AI reply pipeline failed on this ticket
    needs_manual_review: bool = False

    messages: List[TicketMessage] = field(default_factory=list)

    def __post_init__(self):
        """Validate ticket on initialization."""
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")
        if self.reopen_count < 0:
            raise ValueError("reopen_count cannot be negative")

    @property
    def is_terminal(self) -> bool:
        """Resolved or closed."""
        return is_terminal_status(self.status)

    @property
    def is_assigned(self) -> bool:
        return self.assigned_agent_id is not None

    @property
    def pending_messages(self) -> List[TicketMessage]:
        """Messages appended since the ticket was loaded."""
        return [m for m in self.messages if not m.is_persisted]

    def add_message(
        self,
        role: str,
        content: str,
        timestamp: datetime,
        agent_email: Optional[str] = None,
    ) -> TicketMessage:
        message = TicketMessage(
            role=role,
            content=content,
            created_at=timestamp,
            agent_email=agent_email,
        )
        self.messages.append(message)
        self.touch(timestamp)
        return message

    def add_system_note(self, content: str, timestamp: datetime) -> TicketMessage:
        return self.add_message(MessageRole.SYSTEM, content, timestamp)

    def touch(self, timestamp: datetime) -> None:
        if timestamp > self.updated_at:
            self.updated_at = timestamp

    def mark_first_response(self, timestamp: datetime) -> None:
        """Record the first agent-authored response; later calls are no-ops."""
        if self.first_response_at is None:
            self.first_response_at = timestamp

    def snapshot(self) -> dict:
        """Fields recorded as before/after values in audit events."""
        return {
            "status": self.status,
            "priority": self.priority,
            "category": self.category,
            "assigned_agent_id": self.assigned_agent_id,
            "sla_due_at": self.sla_due_at.isoformat() if self.sla_due_at else None,
            "sla_breached": self.sla_breached,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "reopen_count": self.reopen_count,
            "needs_manual_review": self.needs_manual_review,
        }

    def to_payload(self) -> dict:
        """Serializable view sent with notification events."""
        return {
            "id": self.id,
            "subject": self.subject,
            "customer_id": self.customer_id,
            "customer_email": self.customer_email,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            **self.snapshot(),
        }
