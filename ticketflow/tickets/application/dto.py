"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket API layer.

These Pydantic models handle request validation and response
serialization. Lifecycle rules live in the state machine, not here.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ticketflow.tickets.domain import Ticket, TicketMessage


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["low", "medium", "high", "urgent"]
CategoryStr = Literal["account", "billing", "technical", "gameplay", "security", "general"]
TicketStatusStr = Literal["open", "in-progress", "resolved", "closed"]
MessageRoleStr = Literal["customer", "agent", "system"]


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request model for opening a ticket. Without a category the classifier picks one."""
    subject: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)
    priority: Optional[PriorityStr] = Field(None, description="Defaults to medium")
    category: Optional[CategoryStr] = None
    customer_email: Optional[str] = Field(None, max_length=255)

    @field_validator("subject", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class MessageRequest(BaseModel):
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class TicketUpdateRequest(BaseModel):
    """
    Composite update. Agents must supply ``remark``.

    At least one field must be present.
    """
    status: Optional[TicketStatusStr] = None
    priority: Optional[PriorityStr] = None
    category: Optional[CategoryStr] = None
    assigned_agent_id: Optional[str] = Field(None, min_length=1)
    remark: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def has_changes(self) -> "TicketUpdateRequest":
        if all(v is None for v in (self.status, self.priority, self.category, self.assigned_agent_id)):
            raise ValueError("at least one of status, priority, category, assigned_agent_id is required")
        return self


class StatusRequest(BaseModel):
    status: TicketStatusStr


class PriorityRequest(BaseModel):
    priority: PriorityStr


class CategoryRequest(BaseModel):
    category: CategoryStr


class AssignRequest(BaseModel):
    agent_id: str = Field(..., min_length=1)


class TicketListQuery(BaseModel):
    """Query parameters for listing tickets."""
    status: Optional[TicketStatusStr] = None
    priority: Optional[PriorityStr] = None
    category: Optional[CategoryStr] = None
    assigned_agent_id: Optional[str] = None
    customer_id: Optional[str] = None
    sla_breached: Optional[bool] = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


# ========== Response DTOs ==========

class MessageResponse(BaseModel):
    id: Optional[str]
    role: MessageRoleStr
    content: str
    agent_email: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_entity(cls, message: TicketMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            role=message.role,
            content=message.content,
            agent_email=message.agent_email,
            created_at=message.created_at,
        )


class TicketResponse(BaseModel):
    """Response model for a ticket with its conversation."""
    id: str
    subject: str
    description: str
    priority: PriorityStr
    status: TicketStatusStr
    category: Optional[CategoryStr]
    customer_id: Optional[str]
    customer_email: Optional[str]
    assigned_agent_id: Optional[str]

    # SLA information
    sla_due_at: Optional[datetime]
    sla_breached: bool
    first_response_at: Optional[datetime]
    resolved_at: Optional[datetime]

    reopen_count: int
    reopened_at: Optional[datetime]
    needs_manual_review: bool

    created_at: datetime
    updated_at: datetime
    messages: List[MessageResponse] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, ticket: Ticket, include_messages: bool = True) -> "TicketResponse":
        return cls(
            id=ticket.id,
            subject=ticket.subject,
            description=ticket.description,
            priority=ticket.priority,
            status=ticket.status,
            category=ticket.category,
            customer_id=ticket.customer_id,
            customer_email=ticket.customer_email,
            assigned_agent_id=ticket.assigned_agent_id,
            sla_due_at=ticket.sla_due_at,
            sla_breached=ticket.sla_breached,
            first_response_at=ticket.first_response_at,
            resolved_at=ticket.resolved_at,
            reopen_count=ticket.reopen_count,
            reopened_at=ticket.reopened_at,
            needs_manual_review=ticket.needs_manual_review,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            messages=[MessageResponse.from_entity(m) for m in ticket.messages] if include_messages else [],
        )


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    total: int
    limit: int
    offset: int
