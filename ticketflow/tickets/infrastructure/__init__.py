"""
Ticket Infrastructure Layer
===========================

ORM models and the SQLAlchemy ticket repository.
"""

from ticketflow.tickets.infrastructure.models import TicketMessageModel, TicketModel
from ticketflow.tickets.infrastructure.repositories import SQLAlchemyTicketRepository

__all__ = ["TicketModel", "TicketMessageModel", "SQLAlchemyTicketRepository"]
