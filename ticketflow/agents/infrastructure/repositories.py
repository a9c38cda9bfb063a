"""
Agent Infrastructure Repositories
=================================

SQLAlchemy implementation of the agent repository.

Load counters are only ever changed with single UPDATE statements whose
WHERE clause carries the guard (``current_load > 0``, ``current_load <
max_load``), so concurrent callers cannot lose each other's updates. Reads
use ``populate_existing`` because those UPDATEs bypass the identity map.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.agents.application import IAgentRepository
from ticketflow.agents.domain import Agent
from ticketflow.agents.infrastructure.models import AgentCategoryModel, AgentModel
from ticketflow.config import ACTIVE_STATUSES, VALID_CATEGORIES
from ticketflow.core import RepositoryException, ResourceNotFoundException
from ticketflow.infrastructure.database import parse_uuid
from ticketflow.tickets.infrastructure.models import TicketModel


def _category_order(category: str) -> int:
    return VALID_CATEGORIES.index(category) if category in VALID_CATEGORIES else len(VALID_CATEGORIES)


class SQLAlchemyAgentRepository(IAgentRepository):
    """
    SQLAlchemy implementation of agent repository.

    Shares its session (and so its transaction) with the ticket repository
    of the same request.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: AgentModel) -> Agent:
        return Agent(
            id=str(model.id),
            name=model.name,
            email=model.email,
            categories=sorted((c.category for c in model.categories), key=_category_order),
            is_active=model.is_active,
            max_load=model.max_load,
            current_load=model.current_load,
        )

    async def _get_model(self, agent_id: str) -> Optional[AgentModel]:
        agent_uuid = parse_uuid(agent_id)
        if agent_uuid is None:
            return None

        stmt = (
            select(AgentModel)
            .where(AgentModel.id == agent_uuid)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, agent_id: str) -> Optional[Agent]:
        model = await self._get_model(agent_id)
        return self._to_entity(model) if model else None

    async def create(self, agent: Agent) -> Agent:
        agent_uuid = parse_uuid(agent.id)
        if agent_uuid is None:
            raise RepositoryException(f"Invalid agent ID: {agent.id}")

        model = AgentModel(
            id=agent_uuid,
            name=agent.name,
            email=agent.email,
            is_active=agent.is_active,
            max_load=agent.max_load,
            current_load=agent.current_load,
            categories=[AgentCategoryModel(category=c) for c in agent.categories],
        )
        self._session.add(model)
        await self._session.flush()
        return self._to_entity(model)

    async def update(self, agent: Agent) -> Agent:
        """Write profile fields. ``current_load`` is deliberately not written."""
        model = await self._get_model(agent.id)
        if model is None:
            raise ResourceNotFoundException("Agent", agent.id)

        model.name = agent.name
        model.email = agent.email
        model.is_active = agent.is_active
        model.max_load = agent.max_load
        model.updated_at = datetime.now(timezone.utc)

        # Keep rows for retained categories; the primary key is (agent, category)
        existing = {c.category: c for c in model.categories}
        model.categories = [
            existing.get(category) or AgentCategoryModel(category=category)
            for category in agent.categories
        ]

        await self._session.flush()
        return self._to_entity(model)

    async def list(self, active_only: bool = False) -> List[Agent]:
        stmt = select(AgentModel).execution_options(populate_existing=True)
        if active_only:
            stmt = stmt.where(AgentModel.is_active.is_(True))
        stmt = stmt.order_by(AgentModel.name.asc(), AgentModel.id.asc())

        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def find_available(
        self,
        category: str,
        exclude_agent_id: Optional[str] = None
    ) -> List[Agent]:
        stmt = (
            select(AgentModel)
            .join(AgentCategoryModel, AgentCategoryModel.agent_id == AgentModel.id)
            .where(
                AgentCategoryModel.category == category,
                AgentModel.is_active.is_(True),
                AgentModel.current_load < AgentModel.max_load,
            )
            .order_by(AgentModel.current_load.asc(), AgentModel.id.asc())
            .execution_options(populate_existing=True)
        )

        if exclude_agent_id is not None:
            excluded = parse_uuid(exclude_agent_id)
            if excluded is not None:
                stmt = stmt.where(AgentModel.id != excluded)

        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def _apply_load_update(self, agent_id: str, *conditions, value) -> bool:
        agent_uuid = parse_uuid(agent_id)
        if agent_uuid is None:
            return False

        stmt = (
            update(AgentModel)
            .where(AgentModel.id == agent_uuid, *conditions)
            .values(current_load=value)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def increment_load(self, agent_id: str) -> bool:
        return await self._apply_load_update(agent_id, value=AgentModel.current_load + 1)

    async def try_increment_load(self, agent_id: str) -> bool:
        return await self._apply_load_update(
            agent_id,
            AgentModel.is_active.is_(True),
            AgentModel.current_load < AgentModel.max_load,
            value=AgentModel.current_load + 1,
        )

    async def decrement_load(self, agent_id: str) -> bool:
        return await self._apply_load_update(
            agent_id,
            AgentModel.current_load > 0,
            value=AgentModel.current_load - 1,
        )

    async def set_load(self, agent_id: str, value: int) -> bool:
        return await self._apply_load_update(agent_id, value=max(0, value))

    async def open_ticket_counts(self) -> Dict[str, int]:
        stmt = (
            select(TicketModel.assigned_agent_id, func.count(TicketModel.id))
            .where(
                TicketModel.assigned_agent_id.is_not(None),
                TicketModel.status.in_(ACTIVE_STATUSES),
            )
            .group_by(TicketModel.assigned_agent_id)
        )
        result = await self._session.execute(stmt)
        return {str(agent_id): count for agent_id, count in result.all()}

    async def commit(self) -> None:
        await self._session.commit()
