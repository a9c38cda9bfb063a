"""
Agent Interfaces Layer
======================

FastAPI router for agent administration.
"""

from ticketflow.agents.interfaces.controllers import router as agents_router

__all__ = ["agents_router"]
