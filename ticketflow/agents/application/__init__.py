"""
Agent Application Layer
=======================

Contains:
- Services: AgentRegistry, AssignmentRouter, LoadReconciler, AgentManagementService
- Interfaces: IAgentRepository, IClassifier
- DTOs: request/response models for the agent API

Depends on the domain layer, the audit contract and repository interfaces.
"""

from ticketflow.agents.application.management import AgentManagementService
from ticketflow.agents.application.services import (
    MAX_MAX_LOAD,
    MIN_MAX_LOAD,
    AgentRegistry,
    AssignmentRouter,
    IAgentRepository,
    IClassifier,
    LoadReconciler,
    clamp_max_load,
    normalize_categories,
)

__all__ = [
    # Services
    "AgentRegistry",
    "AssignmentRouter",
    "LoadReconciler",
    "AgentManagementService",
    # Interfaces
    "IAgentRepository",
    "IClassifier",
    # Helpers
    "normalize_categories",
    "clamp_max_load",
    "MIN_MAX_LOAD",
    "MAX_MAX_LOAD",
]
