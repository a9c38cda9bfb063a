"""
Audit Infrastructure Layer
==========================

SQLAlchemy model and sink for audit events.
"""

from ticketflow.audit.infrastructure.models import AuditLogModel
from ticketflow.audit.infrastructure.repositories import SQLAlchemyAuditSink

__all__ = ["AuditLogModel", "SQLAlchemyAuditSink"]
