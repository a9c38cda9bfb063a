"""
SLA Application Layer
=====================

Contains:
- ISLAConfigProvider: access to the live SLA hours table
- SLASweeper: one breach-detection pass
- SweepRunner: skip-if-running wrapper shared by scheduler and API
"""

from ticketflow.sla.application.services import (
    ISLAConfigProvider,
    SLASweeper,
    StaticSLAConfigProvider,
    SweepRunner,
)

__all__ = [
    "ISLAConfigProvider",
    "StaticSLAConfigProvider",
    "SLASweeper",
    "SweepRunner",
]
