"""
Agent Infrastructure Layer
==========================

Concrete implementations for the agents module:
- ORM models and the SQLAlchemy agent repository
- Keyword classifier (default IClassifier)
"""

from ticketflow.agents.infrastructure.classifier import CATEGORY_KEYWORDS, KeywordClassifier
from ticketflow.agents.infrastructure.models import AgentCategoryModel, AgentModel
from ticketflow.agents.infrastructure.repositories import SQLAlchemyAgentRepository

__all__ = [
    "AgentModel",
    "AgentCategoryModel",
    "SQLAlchemyAgentRepository",
    "KeywordClassifier",
    "CATEGORY_KEYWORDS",
]
