"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the ticket lifecycle.

Controllers are thin - they delegate to application services.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.agents.application import AgentRegistry, AssignmentRouter
from ticketflow.agents.infrastructure import SQLAlchemyAgentRepository
from ticketflow.audit.application import ActorRef
from ticketflow.infrastructure.database import get_session
from ticketflow.shared.api.dependencies import get_actor, rate_limit, require_staff
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.tickets.application import ReassignmentCoordinator, TicketLifecycleService
from ticketflow.tickets.application.dto import (
    AssignRequest,
    CategoryRequest,
    MessageRequest,
    PriorityRequest,
    StatusRequest,
    TicketCreateRequest,
    TicketListQuery,
    TicketListResponse,
    TicketResponse,
    TicketUpdateRequest,
)
from ticketflow.tickets.infrastructure import SQLAlchemyTicketRepository

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Dependencies ==========

def build_coordinator(request: Request, session: AsyncSession) -> ReassignmentCoordinator:
    """Reassignment coordinator bound to the request's session."""
    state = request.app.state
    agent_repo = SQLAlchemyAgentRepository(session)
    registry = AgentRegistry(agent_repo)
    return ReassignmentCoordinator(
        SQLAlchemyTicketRepository(session),
        registry,
        AssignmentRouter(agent_repo, registry, state.classifier),
        state.config_provider,
        state.dispatcher,
        state.audit_sink,
        state.clock,
    )


def build_lifecycle_service(request: Request, session: AsyncSession) -> TicketLifecycleService:
    state = request.app.state
    agent_repo = SQLAlchemyAgentRepository(session)
    registry = AgentRegistry(agent_repo)
    return TicketLifecycleService(
        SQLAlchemyTicketRepository(session),
        registry,
        AssignmentRouter(agent_repo, registry, state.classifier),
        build_coordinator(request, session),
        state.config_provider,
        state.dispatcher,
        state.audit_sink,
        state.clock,
    )


async def get_lifecycle_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> TicketLifecycleService:
    """Get ticket lifecycle service instance."""
    return build_lifecycle_service(request, session)


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a ticket",
    dependencies=[Depends(rate_limit)],
)
async def create_ticket(
    body: TicketCreateRequest,
    actor: ActorRef = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    """
    Open a ticket, compute its SLA deadline and route it.

    Without a category the classifier picks one from subject and
    description. When no agent has capacity the ticket stays unassigned.
    """
    ticket = await service.create_ticket(
        subject=body.subject,
        description=body.description,
        customer=actor,
        priority=body.priority,
        category=body.category,
        customer_email=body.customer_email,
    )
    return TicketResponse.from_entity(ticket)


@router.get("", response_model=TicketListResponse, summary="List tickets")
async def list_tickets(
    query: TicketListQuery = Depends(),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    tickets, total = await service.list_tickets(**query.model_dump())
    return TicketListResponse(
        tickets=[TicketResponse.from_entity(t, include_messages=False) for t in tickets],
        total=total,
        limit=query.limit,
        offset=query.offset,
    )


@router.get("/{ticket_id}", response_model=TicketResponse, summary="Get a ticket with its conversation")
async def get_ticket(
    ticket_id: str,
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    return TicketResponse.from_entity(await service.get_ticket(ticket_id))


@router.post(
    "/{ticket_id}/messages",
    response_model=TicketResponse,
    summary="Reply to a ticket",
    dependencies=[Depends(rate_limit)],
)
async def add_message(
    ticket_id: str,
    body: MessageRequest,
    actor: ActorRef = Depends(get_actor),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    """
    Add a customer or agent message.

    A reply on a resolved ticket reopens it; a reply on a closed ticket is
    rejected with 409.
    """
    ticket = await service.add_message(ticket_id, actor, body.content)
    return TicketResponse.from_entity(ticket)


@router.patch(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Update status, priority, category or assignment",
    dependencies=[Depends(rate_limit)],
)
async def update_ticket(
    ticket_id: str,
    body: TicketUpdateRequest,
    actor: ActorRef = Depends(require_staff),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    ticket = await service.update_ticket(ticket_id, actor, **body.model_dump())
    return TicketResponse.from_entity(ticket)


@router.put(
    "/{ticket_id}/status",
    response_model=TicketResponse,
    dependencies=[Depends(rate_limit)],
)
async def change_status(
    ticket_id: str,
    body: StatusRequest,
    actor: ActorRef = Depends(require_staff),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    return TicketResponse.from_entity(await service.change_status(ticket_id, body.status, actor))


@router.put(
    "/{ticket_id}/priority",
    response_model=TicketResponse,
    dependencies=[Depends(rate_limit)],
)
async def change_priority(
    ticket_id: str,
    body: PriorityRequest,
    actor: ActorRef = Depends(require_staff),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    """Changing priority on an active ticket recomputes its SLA deadline from now."""
    return TicketResponse.from_entity(await service.change_priority(ticket_id, body.priority, actor))


@router.put(
    "/{ticket_id}/category",
    response_model=TicketResponse,
    dependencies=[Depends(rate_limit)],
)
async def change_category(
    ticket_id: str,
    body: CategoryRequest,
    actor: ActorRef = Depends(require_staff),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    return TicketResponse.from_entity(await service.change_category(ticket_id, body.category, actor))


@router.put(
    "/{ticket_id}/assignment",
    response_model=TicketResponse,
    dependencies=[Depends(rate_limit)],
)
async def assign_ticket(
    ticket_id: str,
    body: AssignRequest,
    actor: ActorRef = Depends(require_staff),
    service: TicketLifecycleService = Depends(get_lifecycle_service),
):
    return TicketResponse.from_entity(await service.assign_ticket(ticket_id, body.agent_id, actor))
