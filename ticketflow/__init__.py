"""
Ticketflow
==========

Ticket lifecycle and agent assignment engine for a support platform.

Bounded contexts:
- tickets: ticket state machine and lifecycle operations
- agents: agent registry, assignment routing and reassignment
- sla: SLA deadline policy and the periodic breach sweeper
- notifications: webhook/email delivery with retry
- audit: write-only audit event sink
"""

__version__ = "1.0.0"
