"""
SLA Infrastructure Layer
========================

Hot-reloading YAML config provider and the APScheduler sweep job.
"""

from ticketflow.sla.infrastructure.external import ConfigFileHandler, SLAConfigManager, SweepScheduler

__all__ = ["SLAConfigManager", "ConfigFileHandler", "SweepScheduler"]
