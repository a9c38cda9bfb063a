"""
Tickets Domain Layer
====================

Contains:
- Entities: Ticket, TicketMessage
- State machine: TicketStateMachine and its transition table

Pure Python business logic, no infrastructure dependencies.
"""

from ticketflow.tickets.domain.entities import Ticket, TicketMessage
from ticketflow.tickets.domain.state_machine import (
    MESSAGE_TRANSITIONS,
    STATUS_TRANSITIONS,
    LoadEffect,
    TicketStateMachine,
    Transition,
    TransitionResult,
    TransitionRule,
    resolved_at_consistent,
)

__all__ = [
    # Entities
    "Ticket",
    "TicketMessage",
    # State machine
    "TicketStateMachine",
    "Transition",
    "TransitionRule",
    "TransitionResult",
    "LoadEffect",
    "STATUS_TRANSITIONS",
    "MESSAGE_TRANSITIONS",
    "resolved_at_consistent",
]
