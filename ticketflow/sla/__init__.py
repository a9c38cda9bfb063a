"""
SLA Monitoring Module
=====================

Bounded Context for service level agreement tracking.

Responsibilities:
- Map ticket priority to an SLA window (hot-reloadable YAML table)
- Periodically sweep active tickets for missed deadlines
- Flag breaches and notify customer and assigned agent
"""
