"""
Ticket Interfaces Layer
=======================

FastAPI router for the ticket lifecycle.
"""

from ticketflow.tickets.interfaces.controllers import router as tickets_router

__all__ = ["tickets_router"]
