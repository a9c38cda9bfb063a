"""
Agent Management
================

Administrative agent operations with their audit trail: registration,
profile updates (including deactivation with ticket redistribution) and
load reconciliation.
"""

from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from ticketflow.agents.application.services import AgentRegistry, LoadReconciler
from ticketflow.agents.domain import Agent, LoadCorrection, ReassignmentResult
from ticketflow.audit.application import (
    SYSTEM_ACTOR,
    ActorRef,
    AuditAction,
    AuditSeverity,
    IAuditSink,
    TargetRef,
)
from ticketflow.core.exceptions import ValidationException
from ticketflow.shared.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from ticketflow.tickets.application import ReassignmentCoordinator

logger = get_logger(__name__)


def _profile(agent: Agent) -> dict:
    return {
        "name": agent.name,
        "email": agent.email,
        "categories": list(agent.categories),
        "max_load": agent.max_load,
        "is_active": agent.is_active,
    }


class AgentManagementService:
    """Agent administration; every mutation is committed and audited."""

    def __init__(
        self,
        registry: AgentRegistry,
        reconciler: LoadReconciler,
        coordinator: "ReassignmentCoordinator",
        audit_sink: IAuditSink,
    ):
        self._registry = registry
        self._reconciler = reconciler
        self._coordinator = coordinator
        self._audit = audit_sink

    async def register_agent(
        self,
        name: str,
        email: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
        max_load: int = 10,
        is_active: bool = True,
        actor: ActorRef = SYSTEM_ACTOR,
    ) -> Agent:
        agent = await self._registry.register_agent(
            name=name,
            email=email,
            categories=categories,
            max_load=max_load,
            is_active=is_active,
        )
        await self._registry.commit()

        await self._audit.record(
            AuditAction.AGENT_CREATED,
            actor,
            TargetRef(type="agent", id=agent.id, name=agent.name),
            f"Agent registered: {agent.name}",
            _profile(agent),
        )
        return agent

    async def update_agent(
        self,
        agent_id: str,
        actor: ActorRef = SYSTEM_ACTOR,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
        max_load: Optional[int] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[Agent, Optional[ReassignmentResult]]:
        """
        Apply profile changes.

        Turning ``is_active`` off on an active agent also moves its open
        tickets; the reassignment outcome is returned alongside the agent.
        """
        if all(v is None for v in (name, email, categories, max_load, is_active)):
            raise ValidationException("No changes to apply", {"agent_id": agent_id})

        before = await self._registry.get_agent(agent_id)
        deactivating = is_active is False and before.is_active

        agent = before
        if any(v is not None for v in (name, email, categories, max_load)) or (
            is_active is not None and not deactivating
        ):
            agent = await self._registry.update_agent(
                agent_id,
                name=name,
                email=email,
                categories=categories,
                max_load=max_load,
                is_active=None if deactivating else is_active,
            )
            await self._registry.commit()
            await self._audit.record(
                AuditAction.AGENT_UPDATED,
                actor,
                TargetRef(type="agent", id=agent.id, name=agent.name),
                f"Agent updated: {agent.name}",
                {"before": _profile(before), "after": _profile(agent)},
            )

        reassignment = None
        if deactivating:
            reassignment = await self._coordinator.deactivate_agent(agent_id, actor)
            agent = await self._registry.get_agent(agent_id)

        return agent, reassignment

    async def reconcile_loads(self, actor: ActorRef = SYSTEM_ACTOR) -> List[LoadCorrection]:
        corrections = await self._reconciler.reconcile_loads()
        if corrections:
            await self._audit.record(
                AuditAction.AGENT_LOADS_RECONCILED,
                actor,
                TargetRef(type="agent", id="*", name="all agents"),
                f"Agent loads reconciled: {len(corrections)} corrected",
                {
                    "corrections": [
                        {
                            "agent_id": c.agent_id,
                            "previous_load": c.previous_load,
                            "corrected_load": c.corrected_load,
                        }
                        for c in corrections
                    ]
                },
                severity=AuditSeverity.WARNING,
            )
        return corrections
