"""
Ticket State Machine
====================

Owns every ticket status transition, SLA deadline computation and breach
flag bookkeeping.

``STATUS_TRANSITIONS`` is the single source of truth for what an explicit
status change does; ``MESSAGE_TRANSITIONS`` covers what an incoming reply
does to the status it finds. The machine mutates the ticket entity and
reports the agent-load effect of the transition; applying that effect to the
agent registry is the caller's job, inside the same unit of work.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ticketflow.config import (
    DEFAULT_CATEGORY,
    VALID_CATEGORIES,
    VALID_PRIORITIES,
    VALID_STATUSES,
    MessageRole,
    TicketStatus,
    is_terminal_status,
)
from ticketflow.core.exceptions import InvalidTransitionException, ValidationException
from ticketflow.sla.domain import SLACalculator, SLAConfig, SLADeadline
from ticketflow.tickets.domain.entities import Ticket, TicketMessage


class Transition:
    """Named transitions of the ticket lifecycle."""
    START_PROGRESS = "start_progress"
    REQUEUE = "requeue"
    RESOLVE = "resolve"
    SWITCH_TERMINAL = "switch_terminal"
    REOPEN = "reopen"
    REOPEN_ON_REPLY = "reopen_on_reply"


class LoadEffect:
    """What a transition does to the assigned agent's load counter."""
    NONE = "none"
    ACQUIRE = "acquire"
    RELEASE = "release"


@dataclass(frozen=True)
class TransitionRule:
    name: str
    load_effect: str = LoadEffect.NONE
    reopens: bool = False


_OPEN = TicketStatus.OPEN
_IN_PROGRESS = TicketStatus.IN_PROGRESS
_RESOLVED = TicketStatus.RESOLVED
_CLOSED = TicketStatus.CLOSED

_RESOLVE = TransitionRule(Transition.RESOLVE, LoadEffect.RELEASE)
_REOPEN = TransitionRule(Transition.REOPEN, LoadEffect.ACQUIRE, reopens=True)

# (from, to) -> rule. Pairs missing here (same status) are invalid.
STATUS_TRANSITIONS: Dict[Tuple[str, str], TransitionRule] = {
    (_OPEN, _IN_PROGRESS): TransitionRule(Transition.START_PROGRESS),
    (_OPEN, _RESOLVED): _RESOLVE,
    (_OPEN, _CLOSED): _RESOLVE,
    (_IN_PROGRESS, _OPEN): TransitionRule(Transition.REQUEUE),
    (_IN_PROGRESS, _RESOLVED): _RESOLVE,
    (_IN_PROGRESS, _CLOSED): _RESOLVE,
    (_RESOLVED, _CLOSED): TransitionRule(Transition.SWITCH_TERMINAL),
    (_CLOSED, _RESOLVED): TransitionRule(Transition.SWITCH_TERMINAL),
    (_RESOLVED, _OPEN): _REOPEN,
    (_RESOLVED, _IN_PROGRESS): _REOPEN,
    (_CLOSED, _OPEN): _REOPEN,
    (_CLOSED, _IN_PROGRESS): _REOPEN,
}

# Current status -> rule applied before a reply is recorded.
# Closed tickets accept no replies.
MESSAGE_TRANSITIONS: Dict[str, Optional[TransitionRule]] = {
    _OPEN: None,
    _IN_PROGRESS: None,
    _RESOLVED: TransitionRule(
        Transition.REOPEN_ON_REPLY, LoadEffect.ACQUIRE, reopens=True
    ),
}


@dataclass
class TransitionResult:
    """
    What a state machine call did to a ticket.

    ``load_effect`` is already narrowed to the ticket's assignment: it is
    ``NONE`` whenever the ticket has no agent.
    """
    from_status: str
    to_status: str
    transitions: List[str] = field(default_factory=list)
    load_effect: str = LoadEffect.NONE
    load_agent_id: Optional[str] = None
    sla: Optional[SLADeadline] = None
    message: Optional[TicketMessage] = None

    @property
    def reopened(self) -> bool:
        return (
            Transition.REOPEN in self.transitions
            or Transition.REOPEN_ON_REPLY in self.transitions
        )


class TicketStateMachine:
    """
    Applies lifecycle transitions to ticket entities.

    Stateless apart from the SLA table, so a fresh instance per operation
    picks up hot-reloaded SLA hours.
    """

    def __init__(self, sla_config: SLAConfig):
        self._sla_config = sla_config

    # ========== Create ==========

    def create(
        self,
        *,
        ticket_id: str,
        subject: str,
        description: str,
        priority: str,
        now: datetime,
        category: Optional[str] = None,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Ticket:
        """New ``open`` ticket with its SLA deadline and the first customer message."""
        self._validate_priority(priority)
        if category is not None:
            self._validate_category(category)
        if not description or not description.strip():
            raise ValidationException("Ticket description must not be empty")

        ticket = Ticket(
            id=ticket_id,
            subject=subject,
            description=description,
            priority=priority,
            status=TicketStatus.OPEN,
            category=category,
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            customer_email=customer_email,
            sla_due_at=self._sla_config.deadline_for(priority, now),
        )
        ticket.add_message(MessageRole.CUSTOMER, description, now)
        return ticket

    # ========== Status ==========

    def change_status(self, ticket: Ticket, target: str, now: datetime) -> TransitionResult:
        """
        Explicit status change.

        Terminal to non-terminal goes through reopen (landing on ``open``)
        and then moves on to the requested status.
        """
        if target not in VALID_STATUSES:
            raise ValidationException(
                f"Invalid status '{target}'",
                {"allowed": list(VALID_STATUSES)}
            )

        rule = STATUS_TRANSITIONS.get((ticket.status, target))
        if rule is None:
            raise InvalidTransitionException(
                f"Ticket is already {ticket.status}",
                {"ticket_id": ticket.id, "status": ticket.status}
            )

        result = TransitionResult(from_status=ticket.status, to_status=target)
        result.transitions.append(rule.name)

        if rule.reopens:
            result.sla = self._reopen(ticket, now)
            if target != TicketStatus.OPEN:
                result.transitions.append(Transition.START_PROGRESS)
        elif rule.load_effect == LoadEffect.RELEASE:
            ticket.resolved_at = now
            ticket.needs_manual_review = False

        ticket.status = target
        ticket.touch(now)
        self._attach_load_effect(result, rule, ticket)
        return result

    # ========== Messages ==========

    def record_message(
        self,
        ticket: Ticket,
        role: str,
        content: str,
        now: datetime,
        agent_email: Optional[str] = None,
        author_name: Optional[str] = None,
    ) -> TransitionResult:
        """
        Append a customer or agent reply.

        A reply on a resolved ticket reopens it first. Only agent replies
        move the ticket to ``in-progress``.
        """
        if role not in (MessageRole.CUSTOMER, MessageRole.AGENT):
            raise ValidationException(f"Invalid message role '{role}'")
        if not content or not content.strip():
            raise ValidationException("Message content must not be empty")
        if ticket.status not in MESSAGE_TRANSITIONS:
            raise InvalidTransitionException(
                "Cannot add a message to a closed ticket",
                {"ticket_id": ticket.id, "status": ticket.status}
            )

        result = TransitionResult(from_status=ticket.status, to_status=ticket.status)
        rule = MESSAGE_TRANSITIONS[ticket.status]
        if rule is not None:
            result.transitions.append(rule.name)
            result.sla = self._reopen(ticket, now)
            ticket.status = TicketStatus.OPEN
            who = f"{role} reply" if not author_name else f"{role} reply from {author_name}"
            ticket.add_system_note(f"Ticket reopened due to {who}", now)
            self._attach_load_effect(result, rule, ticket)

        result.message = ticket.add_message(
            role,
            content,
            now,
            agent_email=agent_email if role == MessageRole.AGENT else None,
        )

        # Customer replies keep the current status; only agent replies start progress
        if role == MessageRole.AGENT:
            ticket.mark_first_response(now)
            ticket.needs_manual_review = False
            if ticket.status != TicketStatus.IN_PROGRESS:
                result.transitions.append(Transition.START_PROGRESS)
                ticket.status = TicketStatus.IN_PROGRESS

        result.to_status = ticket.status
        return result

    # ========== Priority / category ==========

    def change_priority(
        self,
        ticket: Ticket,
        priority: str,
        now: datetime,
    ) -> Optional[SLADeadline]:
        """
        Set a new priority.

        Non-terminal tickets get a fresh deadline; terminal tickets keep
        their SLA fields untouched. Returns the recomputed deadline, if any.
        """
        self._validate_priority(priority)
        if priority == ticket.priority:
            return None

        ticket.priority = priority
        ticket.touch(now)
        if ticket.is_terminal:
            return None
        return self._recompute_deadline(ticket, now)

    def change_category(self, ticket: Ticket, category: str, now: datetime) -> bool:
        self._validate_category(category)
        if category == ticket.category:
            return False
        ticket.category = category
        ticket.touch(now)
        return True

    # ========== Assignment guards ==========

    def ensure_reassignable(self, ticket: Ticket) -> None:
        """Reassignment is forbidden once a ticket is terminal."""
        if ticket.is_terminal:
            raise InvalidTransitionException(
                f"Cannot reassign a {ticket.status} ticket",
                {"ticket_id": ticket.id, "status": ticket.status}
            )

    # ========== SLA breach ==========

    def mark_breached(self, ticket: Ticket, now: datetime) -> bool:
        """Flag an overdue non-terminal ticket. Returns False if nothing changed."""
        if ticket.sla_breached or ticket.is_terminal:
            return False
        if not SLACalculator.is_overdue(ticket.sla_due_at, now):
            return False

        ticket.sla_breached = True
        ticket.add_system_note(
            f"SLA BREACHED - Ticket was due at {ticket.sla_due_at.isoformat()}", now
        )
        return True

    # ========== Internals ==========

    def _reopen(self, ticket: Ticket, now: datetime) -> SLADeadline:
        ticket.resolved_at = None
        ticket.reopen_count += 1
        ticket.reopened_at = now
        ticket.status = TicketStatus.OPEN
        ticket.touch(now)
        return self._recompute_deadline(ticket, now)

    def _recompute_deadline(self, ticket: Ticket, now: datetime) -> SLADeadline:
        previous = ticket.sla_due_at
        ticket.sla_due_at = self._sla_config.deadline_for(ticket.priority, now)

        cleared = False
        if ticket.sla_breached and ticket.sla_due_at > now:
            ticket.sla_breached = False
            cleared = True

        return SLADeadline(
            ticket_id=ticket.id,
            priority=ticket.priority,
            previous_deadline=previous,
            deadline=ticket.sla_due_at,
            computed_at=now,
            breach_cleared=cleared,
        )

    @staticmethod
    def _attach_load_effect(result: TransitionResult, rule: TransitionRule, ticket: Ticket) -> None:
        if rule.load_effect != LoadEffect.NONE and ticket.is_assigned:
            result.load_effect = rule.load_effect
            result.load_agent_id = ticket.assigned_agent_id

    @staticmethod
    def _validate_priority(priority: str) -> None:
        if priority not in VALID_PRIORITIES:
            raise ValidationException(
                f"Invalid priority '{priority}'",
                {"allowed": list(VALID_PRIORITIES)}
            )

    @staticmethod
    def _validate_category(category: str) -> None:
        if category not in VALID_CATEGORIES:
            raise ValidationException(
                f"Invalid category '{category}'",
                {"allowed": list(VALID_CATEGORIES), "default": DEFAULT_CATEGORY}
            )


def resolved_at_consistent(ticket: Ticket) -> bool:
    """``resolved_at`` is set exactly when the status is terminal."""
    return (ticket.resolved_at is not None) == is_terminal_status(ticket.status)
