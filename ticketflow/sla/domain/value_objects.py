"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ticketflow.config import DEFAULT_PRIORITY, DEFAULT_SLA_HOURS, VALID_PRIORITIES


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class: all deadline arithmetic lives here.
    """

    @staticmethod
    def calculate_deadline(start: datetime, sla_hours: float) -> datetime:
        """Deadline ``sla_hours`` after ``start``."""
        return start + timedelta(hours=sla_hours)

    @staticmethod
    def is_overdue(deadline: Optional[datetime], current_time: datetime) -> bool:
        """True once the deadline lies strictly in the past."""
        if deadline is None:
            return False
        return deadline < current_time


class SLAConfig(BaseModel):
    """
    SLA configuration loaded from YAML.

    Maps each priority to its response window in hours. Priorities missing
    from the file fall back to the documented defaults.
    """

    model_config = ConfigDict(frozen=True)

    sla_hours: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SLA_HOURS),
        description="SLA window in hours by priority"
    )

    @field_validator("sla_hours")
    @classmethod
    def validate_sla_hours(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Fill missing priorities and reject unknown or non-positive entries."""
        hours = dict(v)
        for priority in hours:
            if priority not in VALID_PRIORITIES:
                raise ValueError(f"unknown priority in sla_hours: {priority}")
        for priority in VALID_PRIORITIES:
            hours.setdefault(priority, DEFAULT_SLA_HOURS[priority])
        for priority, value in hours.items():
            if value <= 0:
                raise ValueError(f"sla_hours[{priority}] must be positive")
        return hours

    def get_sla_hours(self, priority: str) -> float:
        """SLA window for ``priority``; unknown priorities use the medium window."""
        return self.sla_hours.get(priority, self.sla_hours[DEFAULT_PRIORITY])

    def deadline_for(self, priority: str, start: datetime) -> datetime:
        return SLACalculator.calculate_deadline(start, self.get_sla_hours(priority))


@dataclass(frozen=True)
class SLADeadline:
    """
    Immutable value object describing a (re)computed deadline.

    Produced by the state machine whenever a transition recalculates SLA so
    the audit trail can record before/after values.
    """
    ticket_id: str
    priority: str
    previous_deadline: Optional[datetime]
    deadline: datetime
    computed_at: datetime
    breach_cleared: bool = False
