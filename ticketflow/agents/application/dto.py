"""
Agent Application DTOs
======================

Pydantic models for the agent API: request validation and response
serialization.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ticketflow.agents.domain import Agent, AgentWorkload, LoadCorrection, ReassignmentResult


CategoryStr = Literal["account", "billing", "technical", "gameplay", "security", "general"]


# ========== Request DTOs ==========

class AgentCreateRequest(BaseModel):
    """Request model for registering an agent."""
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255, description="Contact address for alerts")
    categories: List[CategoryStr] = Field(default_factory=lambda: ["general"])
    max_load: int = Field(default=10, ge=1, le=100)
    is_active: bool = True


class AgentUpdateRequest(BaseModel):
    """
    Partial update. ``max_load`` outside 1..100 is clamped rather than rejected.

    Setting ``is_active`` to false moves the agent's open tickets to other
    agents.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    categories: Optional[List[CategoryStr]] = None
    max_load: Optional[int] = None
    is_active: Optional[bool] = None


class ManualReassignRequest(BaseModel):
    """Move one ticket from its current agent to another."""
    from_agent_id: str = Field(..., min_length=1)
    to_agent_id: str = Field(..., min_length=1)


# ========== Response DTOs ==========

class AgentResponse(BaseModel):
    id: str
    name: str
    email: Optional[str]
    categories: List[str]
    is_active: bool
    max_load: int
    current_load: int
    remaining_capacity: int

    @classmethod
    def from_entity(cls, agent: Agent) -> "AgentResponse":
        return cls(
            id=agent.id,
            name=agent.name,
            email=agent.email,
            categories=list(agent.categories),
            is_active=agent.is_active,
            max_load=agent.max_load,
            current_load=agent.current_load,
            remaining_capacity=agent.remaining_capacity,
        )


class WorkloadResponse(BaseModel):
    agent_id: str
    name: str
    current_load: int
    max_load: int
    open_tickets: int
    is_active: bool
    is_consistent: bool

    @classmethod
    def from_entity(cls, workload: AgentWorkload) -> "WorkloadResponse":
        return cls(
            agent_id=workload.agent_id,
            name=workload.name,
            current_load=workload.current_load,
            max_load=workload.max_load,
            open_tickets=workload.open_tickets,
            is_active=workload.is_active,
            is_consistent=workload.is_consistent,
        )


class LoadCorrectionResponse(BaseModel):
    agent_id: str
    previous_load: int
    corrected_load: int

    @classmethod
    def from_entity(cls, correction: LoadCorrection) -> "LoadCorrectionResponse":
        return cls(
            agent_id=correction.agent_id,
            previous_load=correction.previous_load,
            corrected_load=correction.corrected_load,
        )


class ReassignedTicketResponse(BaseModel):
    ticket_id: str
    new_agent_id: str
    new_agent_name: str


class UnassignedTicketResponse(BaseModel):
    ticket_id: str


class ReassignmentResponse(BaseModel):
    """Outcome of moving a deactivated agent's tickets."""
    agent_id: str
    reassigned: List[ReassignedTicketResponse] = Field(default_factory=list)
    unassigned: List[UnassignedTicketResponse] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ReassignmentResult) -> "ReassignmentResponse":
        return cls(**result.to_dict())


class AgentUpdateResponse(BaseModel):
    agent: AgentResponse
    reassignment: Optional[ReassignmentResponse] = None
