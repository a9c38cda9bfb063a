"""
Agent Controllers (API Routes)
==============================

FastAPI routes for agent administration, workload inspection and ticket
reassignment.

Controllers are thin - they delegate to application services.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.agents.application import AgentManagementService, AgentRegistry, LoadReconciler
from ticketflow.agents.application.dto import (
    AgentCreateRequest,
    AgentResponse,
    AgentUpdateRequest,
    AgentUpdateResponse,
    LoadCorrectionResponse,
    ManualReassignRequest,
    ReassignmentResponse,
    WorkloadResponse,
)
from ticketflow.agents.infrastructure import SQLAlchemyAgentRepository
from ticketflow.audit.application import ActorRef
from ticketflow.infrastructure.database import get_session
from ticketflow.shared.api.dependencies import rate_limit, require_admin, require_staff
from ticketflow.tickets.application import ReassignmentCoordinator
from ticketflow.tickets.application.dto import TicketResponse
from ticketflow.tickets.interfaces.controllers import build_coordinator

router = APIRouter(prefix="/agents", tags=["Agents"])


# ========== Dependencies ==========

async def get_registry(session: AsyncSession = Depends(get_session)) -> AgentRegistry:
    return AgentRegistry(SQLAlchemyAgentRepository(session))


async def get_coordinator(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> ReassignmentCoordinator:
    return build_coordinator(request, session)


async def get_management_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> AgentManagementService:
    agent_repo = SQLAlchemyAgentRepository(session)
    return AgentManagementService(
        AgentRegistry(agent_repo),
        LoadReconciler(agent_repo),
        build_coordinator(request, session),
        request.app.state.audit_sink,
    )


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=AgentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit)],
)
async def register_agent(
    body: AgentCreateRequest,
    actor: ActorRef = Depends(require_admin),
    service: AgentManagementService = Depends(get_management_service),
):
    agent = await service.register_agent(
        name=body.name,
        email=body.email,
        categories=body.categories,
        max_load=body.max_load,
        is_active=body.is_active,
        actor=actor,
    )
    return AgentResponse.from_entity(agent)


@router.get("", response_model=List[AgentResponse])
async def list_agents(
    active_only: bool = Query(False),
    available_for: Optional[str] = Query(None, description="Only agents with capacity for this category"),
    registry: AgentRegistry = Depends(get_registry),
):
    if available_for is not None:
        agents = await registry.list_available_agents(available_for)
    else:
        agents = await registry.list_agents(active_only=active_only)
    return [AgentResponse.from_entity(a) for a in agents]


@router.get("/workloads", response_model=List[WorkloadResponse], summary="Load counters vs. held tickets")
async def get_workloads(
    _: ActorRef = Depends(require_staff),
    registry: AgentRegistry = Depends(get_registry),
):
    return [WorkloadResponse.from_entity(w) for w in await registry.get_workloads()]


@router.post(
    "/reconcile-loads",
    response_model=List[LoadCorrectionResponse],
    summary="Recompute load counters from ticket ownership",
)
async def reconcile_loads(
    actor: ActorRef = Depends(require_admin),
    service: AgentManagementService = Depends(get_management_service),
):
    corrections = await service.reconcile_loads(actor)
    return [LoadCorrectionResponse.from_entity(c) for c in corrections]


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(
    agent_id: str,
    registry: AgentRegistry = Depends(get_registry),
):
    return AgentResponse.from_entity(await registry.get_agent(agent_id))


@router.patch(
    "/{agent_id}",
    response_model=AgentUpdateResponse,
    dependencies=[Depends(rate_limit)],
)
async def update_agent(
    agent_id: str,
    body: AgentUpdateRequest,
    actor: ActorRef = Depends(require_admin),
    service: AgentManagementService = Depends(get_management_service),
):
    """
    Update an agent's profile.

    Deactivating an agent moves each of its open tickets to the best other
    agent for the ticket's category, or leaves it unassigned.
    """
    agent, reassignment = await service.update_agent(
        agent_id,
        actor,
        **body.model_dump(exclude_none=True),
    )
    return AgentUpdateResponse(
        agent=AgentResponse.from_entity(agent),
        reassignment=ReassignmentResponse.from_result(reassignment) if reassignment else None,
    )


@router.post(
    "/{agent_id}/reassign-tickets",
    response_model=ReassignmentResponse,
    summary="Move every open ticket off an agent",
    dependencies=[Depends(rate_limit)],
)
async def reassign_agent_tickets(
    agent_id: str,
    _: ActorRef = Depends(require_admin),
    coordinator: ReassignmentCoordinator = Depends(get_coordinator),
):
    return ReassignmentResponse.from_result(await coordinator.reassign_agent_tickets(agent_id))


@router.post(
    "/tickets/{ticket_id}/reassign",
    response_model=TicketResponse,
    summary="Manually move one ticket between agents",
    dependencies=[Depends(rate_limit)],
)
async def manual_reassign(
    ticket_id: str,
    body: ManualReassignRequest,
    actor: ActorRef = Depends(require_staff),
    coordinator: ReassignmentCoordinator = Depends(get_coordinator),
):
    ticket = await coordinator.manual_reassign(ticket_id, body.from_agent_id, body.to_agent_id, actor)
    return TicketResponse.from_entity(ticket)
