"""
Agent Domain Entities
=====================

Pure Python domain entities for the agent registry and assignment routing.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Agent:
    """
    Support agent that tickets are routed to.

    ``current_load`` counts the non-terminal tickets the agent owns. It is
    only ever changed through the registry's atomic load primitives, so the
    value on an entity is a snapshot, not the source of truth.
    """

    id: str
    name: str
    email: Optional[str]
    categories: List[str] = field(default_factory=list)
    is_active: bool = True
    max_load: int = 10
    current_load: int = 0

    def __post_init__(self):
        if self.max_load < 1:
            raise ValueError("max_load must be a positive integer")

    @property
    def has_capacity(self) -> bool:
        return self.current_load < self.max_load

    @property
    def remaining_capacity(self) -> int:
        return max(0, self.max_load - self.current_load)

    def serves(self, category: str) -> bool:
        """True if the agent handles ``category`` directly."""
        return category in self.categories


@dataclass
class AgentWorkload:
    """Counter snapshot next to the number of tickets the agent really holds."""

    agent_id: str
    name: str
    current_load: int
    max_load: int
    open_tickets: int
    is_active: bool

    @property
    def is_consistent(self) -> bool:
        return self.current_load == self.open_tickets


@dataclass
class LoadCorrection:
    """One counter fixed by the load reconciler."""

    agent_id: str
    previous_load: int
    corrected_load: int


@dataclass
class ReassignedTicket:
    ticket_id: str
    new_agent_id: str
    new_agent_name: str


@dataclass
class ReassignmentResult:
    """Outcome of moving every open ticket off a deactivated agent."""

    agent_id: str
    reassigned: List[ReassignedTicket] = field(default_factory=list)
    unassigned: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.reassigned) + len(self.unassigned)

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "reassigned": [
                {
                    "ticket_id": item.ticket_id,
                    "new_agent_id": item.new_agent_id,
                    "new_agent_name": item.new_agent_name,
                }
                for item in self.reassigned
            ],
            "unassigned": [{"ticket_id": ticket_id} for ticket_id in self.unassigned],
        }
