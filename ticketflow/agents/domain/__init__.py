"""
Agent Domain Layer
==================

Entities for the agents module. No infrastructure dependencies.
"""

from ticketflow.agents.domain.entities import (
    Agent,
    AgentWorkload,
    LoadCorrection,
    ReassignedTicket,
    ReassignmentResult,
)

__all__ = [
    "Agent",
    "AgentWorkload",
    "LoadCorrection",
    "ReassignedTicket",
    "ReassignmentResult",
]
