"""
Audit Infrastructure Repositories
=================================

SQLAlchemy audit sink. Each event is written in its own short session so a
failed audit insert can never roll back (or be rolled back with) the
business transaction that produced it.
"""

import json
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketflow.audit.application import (
    ActorRef,
    AuditSeverity,
    IAuditSink,
    TargetRef,
    action_category,
)
from ticketflow.audit.infrastructure.models import AuditLogModel
from ticketflow.shared.infrastructure.clock import Clock, SystemClock
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _jsonable(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # Datetimes and UUIDs become strings
    return json.loads(json.dumps(metadata or {}, default=str))


class SQLAlchemyAuditSink(IAuditSink):
    """Audit sink writing to the 'audit_logs' table."""

    def __init__(
        self,
        session_factory: Callable[[], async_sessionmaker[AsyncSession]],
        clock: Optional[Clock] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    async def record(
        self,
        action: str,
        actor: ActorRef,
        target: TargetRef,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        severity: str = AuditSeverity.INFO,
    ) -> None:
        try:
            model = AuditLogModel(
                action=action,
                category=action_category(action),
                severity=severity,
                actor_id=actor.id,
                actor_role=actor.role,
                actor_name=actor.name,
                actor_email=actor.email,
                target_type=target.type,
                target_id=target.id,
                target_name=target.name,
                description=description,
                event_metadata=_jsonable(metadata),
                created_at=self._clock.now(),
            )
            session_maker = self._session_factory()
            async with session_maker() as session:
                session.add(model)
                await session.commit()
        except Exception as e:
            logger.error(
                "Audit write failed",
                extra={"action": action, "target_id": target.id, "error": str(e)}
            )
