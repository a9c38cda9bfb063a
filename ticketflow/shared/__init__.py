"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(tickets, agents, sla, notifications, audit).

Architecture Pattern: Modular Monolith
- Each module is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add ticket or agent business logic to the shared kernel.
"""
