"""
Shared fixtures: in-memory SQLite database, a controllable clock, and
recording doubles for the notifier, email sender and audit sink.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from ticketflow.agents.application import AgentRegistry, AssignmentRouter, LoadReconciler
from ticketflow.agents.infrastructure import KeywordClassifier, SQLAlchemyAgentRepository
from ticketflow.audit.application import ActorRef, IAuditSink, TargetRef
from ticketflow.config import ActorRole
from ticketflow.infrastructure.database import close_database, create_tables, get_session_maker, init_database
from ticketflow.notifications.application import IEmailSender, INotifier, NotificationDispatcher
from ticketflow.shared.infrastructure.clock import Clock
from ticketflow.sla.application import SLASweeper, StaticSLAConfigProvider
from ticketflow.tickets.application import ReassignmentCoordinator, TicketLifecycleService
from ticketflow.tickets.infrastructure import SQLAlchemyTicketRepository

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock(Clock):
    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingNotifier(INotifier):
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.events: List[tuple] = []

    async def notify(self, event_name: str, payload: Dict[str, Any]) -> bool:
        self.events.append((event_name, payload))
        return self.succeed

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


class RecordingEmailSender(IEmailSender):
    def __init__(self):
        self.sent: List[tuple] = []

    async def send_email(self, kind: str, recipient: str, ticket) -> bool:
        self.sent.append((kind, recipient, ticket.id))
        return True

    def kinds_to(self, recipient: str) -> List[str]:
        return [kind for kind, to, _ in self.sent if to == recipient]


@dataclass
class AuditEvent:
    action: str
    actor: ActorRef
    target: TargetRef
    description: str
    metadata: Dict[str, Any]
    severity: str


class RecordingAuditSink(IAuditSink):
    def __init__(self):
        self.events: List[AuditEvent] = []

    async def record(
        self,
        action: str,
        actor: ActorRef,
        target: TargetRef,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        severity: str = "info",
    ) -> None:
        self.events.append(AuditEvent(action, actor, target, description, metadata or {}, severity))

    def actions(self) -> List[str]:
        return [e.action for e in self.events]


CUSTOMER = ActorRef(id="cust-1", role=ActorRole.CUSTOMER, name="Casey", email="casey@example.com")
AGENT_ACTOR = ActorRef(id="agent-actor", role=ActorRole.AGENT, name="Sam Support", email="sam@support.test")
ADMIN = ActorRef(id="admin-1", role=ActorRole.ADMIN, name="Alex Admin")


@dataclass
class Engine:
    """Every service wired against one session, as a request would see them."""
    session: Any
    clock: FakeClock
    tickets: SQLAlchemyTicketRepository
    agents: SQLAlchemyAgentRepository
    registry: AgentRegistry
    router: AssignmentRouter
    coordinator: ReassignmentCoordinator
    lifecycle: TicketLifecycleService
    reconciler: LoadReconciler
    sweeper: SLASweeper
    dispatcher: NotificationDispatcher
    notifier: RecordingNotifier
    emails: RecordingEmailSender
    audit: RecordingAuditSink
    config_provider: StaticSLAConfigProvider

    async def add_agent(self, name: str, categories, max_load: int = 10, email: Optional[str] = None):
        agent = await self.registry.register_agent(
            name=name, email=email, categories=categories, max_load=max_load
        )
        await self.registry.commit()
        return agent

    async def agent(self, agent_id: str):
        return await self.registry.get_agent(agent_id)

    async def ticket(self, ticket_id: str):
        return await self.lifecycle.get_ticket(ticket_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def database():
    init_database("sqlite+aiosqlite://")
    await create_tables()
    yield get_session_maker()
    await close_database()


@pytest_asyncio.fixture
async def session(database):
    async with database() as session:
        yield session


@pytest_asyncio.fixture
async def engine(session, clock) -> Engine:
    notifier = RecordingNotifier()
    emails = RecordingEmailSender()
    audit = RecordingAuditSink()
    dispatcher = NotificationDispatcher(notifier, emails)
    config_provider = StaticSLAConfigProvider()

    tickets = SQLAlchemyTicketRepository(session)
    agents = SQLAlchemyAgentRepository(session)
    registry = AgentRegistry(agents)
    router = AssignmentRouter(agents, registry, KeywordClassifier())
    coordinator = ReassignmentCoordinator(
        tickets, registry, router, config_provider, dispatcher, audit, clock
    )
    lifecycle = TicketLifecycleService(
        tickets, registry, router, coordinator, config_provider, dispatcher, audit, clock
    )
    sweeper = SLASweeper(tickets, agents, config_provider, dispatcher, audit, clock)

    yield Engine(
        session=session,
        clock=clock,
        tickets=tickets,
        agents=agents,
        registry=registry,
        router=router,
        coordinator=coordinator,
        lifecycle=lifecycle,
        reconciler=LoadReconciler(agents),
        sweeper=sweeper,
        dispatcher=dispatcher,
        notifier=notifier,
        emails=emails,
        audit=audit,
        config_provider=config_provider,
    )
    await dispatcher.drain()
