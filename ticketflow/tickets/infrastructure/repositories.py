"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy implementation of the ticket repository.

Messages are append-only: ``save`` inserts the entries added since the
ticket was loaded and never rewrites existing rows.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import and_, false, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import ACTIVE_STATUSES
from ticketflow.core import RepositoryException, ResourceNotFoundException
from ticketflow.infrastructure.database import parse_uuid
from ticketflow.shared.infrastructure.clock import ensure_utc
from ticketflow.tickets.application.services import ITicketRepository
from ticketflow.tickets.domain import Ticket, TicketMessage
from ticketflow.tickets.infrastructure.models import TicketMessageModel, TicketModel


def _optional_uuid(value: Optional[str], field_name: str):
    if value is None:
        return None
    parsed = parse_uuid(value)
    if parsed is None:
        raise RepositoryException(f"Invalid {field_name}: {value}")
    return parsed


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    # ----- mapping -----

    @staticmethod
    def _message_to_entity(model: TicketMessageModel) -> TicketMessage:
        return TicketMessage(
            id=str(model.id),
            role=model.role,
            content=model.content,
            agent_email=model.agent_email,
            created_at=ensure_utc(model.created_at),
        )

    @classmethod
    def _to_entity(cls, model: TicketModel) -> Ticket:
        return Ticket(
            id=str(model.id),
            subject=model.subject,
            description=model.description,
            priority=model.priority,
            status=model.status,
            category=model.category,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
            customer_id=model.customer_id,
            customer_email=model.customer_email,
            assigned_agent_id=str(model.assigned_agent_id) if model.assigned_agent_id else None,
            sla_due_at=ensure_utc(model.sla_due_at),
            sla_breached=model.sla_breached,
            first_response_at=ensure_utc(model.first_response_at),
            resolved_at=ensure_utc(model.resolved_at),
            reopen_count=model.reopen_count,
            reopened_at=ensure_utc(model.reopened_at),
            needs_manual_review=model.needs_manual_review,
            messages=[cls._message_to_entity(m) for m in model.messages],
        )

    @staticmethod
    def _write_fields(model: TicketModel, ticket: Ticket) -> None:
        model.subject = ticket.subject
        model.description = ticket.description
        model.priority = ticket.priority
        model.status = ticket.status
        model.category = ticket.category
        model.customer_id = ticket.customer_id
        model.customer_email = ticket.customer_email
        model.assigned_agent_id = _optional_uuid(ticket.assigned_agent_id, "agent ID")
        model.sla_due_at = ticket.sla_due_at
        model.sla_breached = ticket.sla_breached
        model.first_response_at = ticket.first_response_at
        model.resolved_at = ticket.resolved_at
        model.reopen_count = ticket.reopen_count
        model.reopened_at = ticket.reopened_at
        model.needs_manual_review = ticket.needs_manual_review
        model.updated_at = ticket.updated_at

    @staticmethod
    def _append_pending(model: TicketModel, ticket: Ticket) -> List[tuple]:
        added = []
        position = len(model.messages)
        for message in ticket.pending_messages:
            row = TicketMessageModel(
                position=position,
                role=message.role,
                content=message.content,
                agent_email=message.agent_email,
                created_at=message.created_at,
            )
            model.messages.append(row)
            added.append((message, row))
            position += 1
        return added

    async def _get_model(self, ticket_id: str) -> Optional[TicketModel]:
        ticket_uuid = parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = (
            select(TicketModel)
            .where(TicketModel.id == ticket_uuid)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    # ----- ITicketRepository -----

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        model = await self._get_model(ticket_id)
        return self._to_entity(model) if model else None

    async def add(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            id=_optional_uuid(ticket.id, "ticket ID"),
            created_at=ticket.created_at,
            messages=[],
        )
        self._write_fields(model, ticket)
        added = self._append_pending(model, ticket)

        self._session.add(model)
        await self._session.flush()

        for message, row in added:
            message.id = str(row.id)
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        model = await self._get_model(ticket.id)
        if model is None:
            raise ResourceNotFoundException("Ticket", ticket.id)

        self._write_fields(model, ticket)
        added = self._append_pending(model, ticket)
        await self._session.flush()

        for message, row in added:
            message.id = str(row.id)
        return ticket

    @staticmethod
    def _conditions(filters: Dict[str, Any]) -> list:
        conditions = []
        if "status" in filters:
            status = filters["status"]
            if isinstance(status, list):
                conditions.append(TicketModel.status.in_(status))
            else:
                conditions.append(TicketModel.status == status)

        if "priority" in filters:
            conditions.append(TicketModel.priority == filters["priority"])

        if "category" in filters:
            conditions.append(TicketModel.category == filters["category"])

        if "customer_id" in filters:
            conditions.append(TicketModel.customer_id == filters["customer_id"])

        if "sla_breached" in filters:
            conditions.append(TicketModel.sla_breached.is_(bool(filters["sla_breached"])))

        if "assigned_agent_id" in filters:
            agent_uuid = parse_uuid(filters["assigned_agent_id"])
            # Unknown agent id matches nothing
            conditions.append(TicketModel.assigned_agent_id == agent_uuid if agent_uuid else false())

        return conditions

    async def list(
        self,
        filters: Dict[str, Any],
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        stmt = select(TicketModel)

        conditions = self._conditions(filters)
        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(TicketModel.created_at.desc(), TicketModel.id.asc())
        stmt = stmt.limit(limit).offset(offset)

        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(self, filters: Dict[str, Any]) -> int:
        stmt = select(func.count(TicketModel.id))
        conditions = self._conditions(filters)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def list_active_by_agent(self, agent_id: str) -> List[Ticket]:
        agent_uuid = parse_uuid(agent_id)
        if agent_uuid is None:
            return []

        stmt = (
            select(TicketModel)
            .where(
                TicketModel.assigned_agent_id == agent_uuid,
                TicketModel.status.in_(ACTIVE_STATUSES),
            )
            .order_by(TicketModel.created_at.asc(), TicketModel.id.asc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_breach_candidates(self, now) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(
                TicketModel.sla_breached.is_(False),
                TicketModel.status.in_(ACTIVE_STATUSES),
                TicketModel.sla_due_at.is_not(None),
                TicketModel.sla_due_at < now,
            )
            .order_by(TicketModel.sla_due_at.asc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
