"""
SLA Domain Layer
================

Value objects and stateless calculations for SLA deadlines.

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from ticketflow.sla.domain.value_objects import (
    SLACalculator,
    SLAConfig,
    SLADeadline,
)

__all__ = [
    "SLACalculator",
    "SLAConfig",
    "SLADeadline",
]
