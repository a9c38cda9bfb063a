"""
SLA Interfaces Layer
====================

FastAPI router for SLA configuration and sweeps.
"""

from ticketflow.sla.interfaces.controllers import router as sla_router

__all__ = ["sla_router"]
