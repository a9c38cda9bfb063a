"""
Ticket Application Layer
========================

Contains:
- Services: TicketLifecycleService, ReassignmentCoordinator
- Interfaces: ITicketRepository
- DTOs: request/response models for the ticket API
"""

from ticketflow.tickets.application.reassignment import ReassignmentCoordinator, agent_target
from ticketflow.tickets.application.services import (
    MAX_REMARK_LENGTH,
    ITicketRepository,
    TicketLifecycleService,
    message_role_for,
    ticket_target,
    unit_of_work,
)

__all__ = [
    # Services
    "TicketLifecycleService",
    "ReassignmentCoordinator",
    # Interfaces
    "ITicketRepository",
    # Helpers
    "unit_of_work",
    "ticket_target",
    "agent_target",
    "message_role_for",
    "MAX_REMARK_LENGTH",
]
