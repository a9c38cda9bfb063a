"""
Audit Application Layer
=======================

Contracts for recording audit events.
"""

from ticketflow.audit.application.services import (
    SYSTEM_ACTOR,
    ActorRef,
    AuditAction,
    AuditSeverity,
    IAuditSink,
    TargetRef,
    action_category,
)

__all__ = [
    "ActorRef",
    "TargetRef",
    "SYSTEM_ACTOR",
    "AuditAction",
    "AuditSeverity",
    "IAuditSink",
    "action_category",
]
