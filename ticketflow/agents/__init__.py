"""
Agents Module
=============

Bounded Context for agent capacity and ticket routing.

Responsibilities:
- Agent registry with atomic load counters
- Assignment routing (category specialist, then generalist)
- Manual and mass reassignment of tickets between agents
- Load reconciliation against actual ticket ownership
"""
