"""
Agent Application Services
==========================

Agent registry (atomic load primitives), assignment routing and load
reconciliation.

Following SOLID principles:
- Single Responsibility: registry owns counters, router owns agent choice
- Dependency Inversion: services depend on IAgentRepository, not SQLAlchemy
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from ticketflow.agents.domain import Agent, AgentWorkload, LoadCorrection
from ticketflow.config import DEFAULT_CATEGORY, VALID_CATEGORIES, TicketCategory
from ticketflow.core.exceptions import ResourceNotFoundException, ValidationException
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MIN_MAX_LOAD = 1
MAX_MAX_LOAD = 100


# ========== Repository Interfaces (Dependency Inversion) ==========

class IAgentRepository(ABC):
    """Interface for agent data access."""

    @abstractmethod
    async def get_by_id(self, agent_id: str) -> Optional[Agent]:
        """Get agent by ID, re-reading counters from storage."""

    @abstractmethod
    async def create(self, agent: Agent) -> Agent:
        """Persist a new agent."""

    @abstractmethod
    async def update(self, agent: Agent) -> Agent:
        """Persist profile fields (name, email, categories, max_load, is_active)."""

    @abstractmethod
    async def list(self, active_only: bool = False) -> List[Agent]:
        """List agents ordered by name."""

    @abstractmethod
    async def find_available(
        self,
        category: str,
        exclude_agent_id: Optional[str] = None
    ) -> List[Agent]:
        """
        Active agents serving ``category`` with spare capacity.

        Ordered by (current_load, id) ascending.
        """

    @abstractmethod
    async def increment_load(self, agent_id: str) -> bool:
        """Single-statement ``current_load + 1``. False if the agent is missing."""

    @abstractmethod
    async def try_increment_load(self, agent_id: str) -> bool:
        """Increment only if active and below ``max_load``. True if applied."""

    @abstractmethod
    async def decrement_load(self, agent_id: str) -> bool:
        """Single-statement ``current_load - 1`` guarded by ``current_load > 0``."""

    @abstractmethod
    async def set_load(self, agent_id: str, value: int) -> bool:
        """Overwrite the counter. False if the agent is missing."""

    @abstractmethod
    async def open_ticket_counts(self) -> Dict[str, int]:
        """Number of non-terminal tickets held by each agent."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit the unit of work this repository takes part in."""


class IClassifier(ABC):
    """
    Maps free text to a routing category.

    Must be pure and must return a member of ``VALID_CATEGORIES``.
    """

    @abstractmethod
    def classify(self, text: str) -> str:
        """Category for ``text``; ``general`` when nothing matches."""


# ========== Agent Registry ==========

def normalize_categories(categories: Optional[Sequence[str]]) -> List[str]:
    """Validate, de-duplicate and default an agent's category list."""
    if not categories:
        return [DEFAULT_CATEGORY]

    normalized: List[str] = []
    for category in categories:
        value = category.strip().lower()
        if value not in VALID_CATEGORIES:
            raise ValidationException(
                f"Invalid category '{category}'",
                {"allowed": list(VALID_CATEGORIES)}
            )
        if value not in normalized:
            normalized.append(value)
    return normalized


def clamp_max_load(value: int) -> int:
    return max(MIN_MAX_LOAD, min(MAX_MAX_LOAD, int(value)))


class AgentRegistry:
    """
    Holds agent capacity and utilisation.

    ``current_load`` is changed only through the primitives below, each a
    single conditional UPDATE at the storage layer. Nothing here reads a
    counter, modifies it in Python and writes it back.
    """

    def __init__(self, agent_repository: IAgentRepository):
        self._agents = agent_repository

    # ----- load primitives -----

    async def increment_load(self, agent_id: str) -> None:
        """Unconditionally add one to the agent's load."""
        if not await self._agents.increment_load(agent_id):
            logger.warning("Load increment for unknown agent", extra={"agent_id": agent_id})

    async def decrement_load(self, agent_id: str) -> None:
        """
        Subtract one from the agent's load, never going below zero.

        A counter already at (or below) zero is clamped to zero and a
        warning is logged: it means a release was double-counted elsewhere.
        """
        if await self._agents.decrement_load(agent_id):
            return

        if await self._agents.set_load(agent_id, 0):
            logger.warning(
                "Load decrement on agent with no load, clamped to 0",
                extra={"agent_id": agent_id}
            )
        else:
            logger.warning("Load decrement for unknown agent", extra={"agent_id": agent_id})

    async def try_increment_load(self, agent_id: str) -> bool:
        """Claim one slot if the agent is active and below capacity."""
        return await self._agents.try_increment_load(agent_id)

    async def has_capacity(self, agent_id: str) -> bool:
        """Point-in-time check; no slot is reserved."""
        agent = await self._agents.get_by_id(agent_id)
        return agent is not None and agent.has_capacity

    async def reset_load(self, agent_id: str) -> None:
        if not await self._agents.set_load(agent_id, 0):
            logger.warning("Load reset for unknown agent", extra={"agent_id": agent_id})

    # ----- profile management -----

    async def register_agent(
        self,
        name: str,
        email: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
        max_load: int = 10,
        is_active: bool = True,
        agent_id: Optional[str] = None,
    ) -> Agent:
        if not name or not name.strip():
            raise ValidationException("Agent name must not be empty")
        if max_load < MIN_MAX_LOAD:
            raise ValidationException("max_load must be a positive integer")

        agent = Agent(
            id=agent_id or str(uuid4()),
            name=name.strip(),
            email=email,
            categories=normalize_categories(categories),
            is_active=is_active,
            max_load=clamp_max_load(max_load),
            current_load=0,
        )
        created = await self._agents.create(agent)
        logger.info(
            "Agent registered",
            extra={"agent_id": created.id, "categories": created.categories}
        )
        return created

    async def get_agent(self, agent_id: str) -> Agent:
        agent = await self._agents.get_by_id(agent_id)
        if agent is None:
            raise ResourceNotFoundException("Agent", agent_id)
        return agent

    async def find_agent(self, agent_id: str) -> Optional[Agent]:
        return await self._agents.get_by_id(agent_id)

    async def list_agents(self, active_only: bool = False) -> List[Agent]:
        return await self._agents.list(active_only=active_only)

    async def list_available_agents(self, category: Optional[str] = None) -> List[Agent]:
        """Active agents with spare capacity, optionally for one category."""
        if category is not None:
            return await self._agents.find_available(category)
        return [a for a in await self._agents.list(active_only=True) if a.has_capacity]

    async def update_agent(
        self,
        agent_id: str,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
        max_load: Optional[int] = None,
        is_active: Optional[bool] = None,
    ) -> Agent:
        """
        Update profile fields. ``max_load`` is clamped to 1..100.

        Deactivation through here does not move tickets; use the
        reassignment coordinator for that.
        """
        agent = await self.get_agent(agent_id)

        if name is not None:
            if not name.strip():
                raise ValidationException("Agent name must not be empty")
            agent.name = name.strip()
        if email is not None:
            agent.email = email
        if categories is not None:
            agent.categories = normalize_categories(categories)
        if max_load is not None:
            agent.max_load = clamp_max_load(max_load)
        if is_active is not None:
            agent.is_active = is_active

        return await self._agents.update(agent)

    async def get_workloads(self) -> List[AgentWorkload]:
        """Each agent's counter next to the tickets it really holds."""
        counts = await self._agents.open_ticket_counts()
        return [
            AgentWorkload(
                agent_id=agent.id,
                name=agent.name,
                current_load=agent.current_load,
                max_load=agent.max_load,
                open_tickets=counts.get(agent.id, 0),
                is_active=agent.is_active,
            )
            for agent in await self._agents.list()
        ]

    async def commit(self) -> None:
        await self._agents.commit()


# ========== Assignment Router ==========

class AssignmentRouter:
    """
    Chooses the agent for a ticket category.

    Specialists are tried first, then ``general`` agents. Among candidates
    the lowest ``current_load`` wins, ties broken by id.
    """

    def __init__(
        self,
        agent_repository: IAgentRepository,
        registry: AgentRegistry,
        classifier: IClassifier,
    ):
        self._agents = agent_repository
        self._registry = registry
        self._classifier = classifier

    @staticmethod
    def _tiers(category: str) -> List[str]:
        if category == TicketCategory.GENERAL:
            return [TicketCategory.GENERAL]
        return [category, TicketCategory.GENERAL]

    async def find_available_agent(
        self,
        category: str,
        exclude_agent_id: Optional[str] = None,
    ) -> Optional[Agent]:
        """
        Best candidate for ``category`` or None.

        No agent available is a normal outcome; the ticket stays unassigned.
        """
        for tier in self._tiers(category):
            candidates = await self._agents.find_available(tier, exclude_agent_id)
            if candidates:
                return candidates[0]
        return None

    async def acquire_agent(
        self,
        category: str,
        exclude_agent_id: Optional[str] = None,
    ) -> Optional[Agent]:
        """
        Find a candidate and claim a slot on it in one step.

        A candidate whose last slot was taken concurrently is skipped and the
        next one in routing order is tried.
        """
        for tier in self._tiers(category):
            for agent in await self._agents.find_available(tier, exclude_agent_id):
                if await self._registry.try_increment_load(agent.id):
                    agent.current_load += 1
                    return agent
                logger.info(
                    "Agent filled up before assignment, trying next candidate",
                    extra={"agent_id": agent.id, "category": category}
                )
        return None

    def resolve_category(self, text: str) -> str:
        category = self._classifier.classify(text)
        if category not in VALID_CATEGORIES:
            logger.warning(
                "Classifier returned unknown category, using fallback",
                extra={"category": category}
            )
            return DEFAULT_CATEGORY
        return category

    async def auto_assign_ticket(self, ticket, now: datetime) -> Optional[Agent]:
        """
        Route a ticket that is about to be persisted.

        Classifies the ticket when it has no category, claims a slot on the
        chosen agent and appends a system note. The caller persists the
        ticket in the same transaction as the load increment.
        """
        if ticket.category is None:
            ticket.category = self.resolve_category(f"{ticket.subject} {ticket.description}")

        agent = await self.acquire_agent(ticket.category)
        if agent is None:
            logger.info(
                "No agent available, ticket left unassigned",
                extra={"ticket_id": ticket.id, "category": ticket.category}
            )
            return None

        ticket.assigned_agent_id = agent.id
        role = f"{ticket.category} specialist" if agent.serves(ticket.category) else "generalist"
        ticket.add_system_note(f"Ticket auto-assigned to {agent.name} ({role})", now)
        logger.info(
            "Ticket auto-assigned",
            extra={"ticket_id": ticket.id, "agent_id": agent.id, "category": ticket.category}
        )
        return agent


# ========== Load Reconciler ==========

class LoadReconciler:
    """
    Recomputes load counters from ticket ownership.

    Compensating path for counters that drifted, e.g. after a crash between
    a load change and the write that should have accompanied it. Operations
    running concurrently with a reconcile can still shift a counter by one.
    """

    def __init__(self, agent_repository: IAgentRepository):
        self._agents = agent_repository

    async def reconcile_loads(self) -> List[LoadCorrection]:
        counts = await self._agents.open_ticket_counts()
        corrections: List[LoadCorrection] = []

        for agent in await self._agents.list():
            expected = counts.get(agent.id, 0)
            if agent.current_load == expected:
                continue
            await self._agents.set_load(agent.id, expected)
            corrections.append(LoadCorrection(
                agent_id=agent.id,
                previous_load=agent.current_load,
                corrected_load=expected,
            ))
            logger.warning(
                "Agent load corrected",
                extra={"agent_id": agent.id, "previous": agent.current_load, "corrected": expected}
            )

        await self._agents.commit()
        logger.info("Load reconciliation finished", extra={"corrections": len(corrections)})
        return corrections
