"""
Ticketflow - Main Application
=============================

Ticket lifecycle and agent assignment engine.

Modules:
- Tickets: state machine, lifecycle operations, reassignment
- Agents: registry, routing, workload administration
- SLA: deadline policy and the periodic breach sweep

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, state machine
- Infrastructure: Database, HTTP clients, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from ticketflow.config import Settings, settings
from ticketflow.core import ApplicationException

# Infrastructure
from ticketflow.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    get_session_maker,
    init_database,
)

# Bounded contexts
from ticketflow.agents.application import IClassifier
from ticketflow.agents.infrastructure import KeywordClassifier, SQLAlchemyAgentRepository
from ticketflow.agents.interfaces import agents_router
from ticketflow.audit.application import IAuditSink
from ticketflow.audit.infrastructure import SQLAlchemyAuditSink
from ticketflow.notifications.application import IEmailSender, INotifier, NotificationDispatcher
from ticketflow.notifications.infrastructure import EmailRelayClient, WebhookNotifier
from ticketflow.sla.application import ISLAConfigProvider, SLASweeper, SweepRunner
from ticketflow.sla.infrastructure import SLAConfigManager, SweepScheduler
from ticketflow.sla.interfaces import sla_router
from ticketflow.tickets.infrastructure import SQLAlchemyTicketRepository
from ticketflow.tickets.interfaces import tickets_router

# Shared
from ticketflow.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from ticketflow.shared.infrastructure.clock import Clock, SystemClock
from ticketflow.shared.infrastructure.logging import get_logger, setup_logging
from ticketflow.shared.infrastructure.rate_limit import SlidingWindowRateLimiter

logger = get_logger(__name__)


def build_sweep(
    config_provider: ISLAConfigProvider,
    dispatcher: NotificationDispatcher,
    audit_sink: IAuditSink,
    clock: Clock,
) -> Callable[[], Awaitable[int]]:
    """Sweep job: one fresh session per run."""

    async def sweep() -> int:
        async with get_session_context() as session:
            sweeper = SLASweeper(
                SQLAlchemyTicketRepository(session),
                SQLAlchemyAgentRepository(session),
                config_provider,
                dispatcher,
                audit_sink,
                clock,
            )
            return await sweeper.sweep()

    return sweep


def wire_components(
    app: FastAPI,
    *,
    app_settings: Settings,
    config_provider: ISLAConfigProvider,
    notifier: INotifier,
    email_sender: IEmailSender,
    clock: Optional[Clock] = None,
    audit_sink: Optional[IAuditSink] = None,
    classifier: Optional[IClassifier] = None,
) -> None:
    """
    Store process-wide components on ``app.state`` for the routers.

    The database must be initialised first.
    """
    clock = clock or SystemClock()
    dispatcher = NotificationDispatcher(notifier, email_sender)
    audit_sink = audit_sink or SQLAlchemyAuditSink(get_session_maker, clock)

    app.state.settings = app_settings
    app.state.clock = clock
    app.state.config_provider = config_provider
    app.state.notifier = notifier
    app.state.email_sender = email_sender
    app.state.dispatcher = dispatcher
    app.state.audit_sink = audit_sink
    app.state.classifier = classifier or KeywordClassifier()
    app.state.rate_limiter = SlidingWindowRateLimiter(
        limit=app_settings.rate_limit_per_minute,
        window_seconds=60,
        clock=clock,
        max_actors=app_settings.rate_limit_max_actors,
    )
    app.state.sweep_runner = SweepRunner(build_sweep(config_provider, dispatcher, audit_sink, clock))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA configuration and watch it
    4. Build notification clients and services
    5. Start the SLA sweep scheduler

    SHUTDOWN:
    1. Stop the scheduler and config watcher
    2. Wait for in-flight notifications, close HTTP clients
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Ticketflow", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()
    try:
        await create_tables()
    except Exception as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    logger.info("Loading SLA configuration")
    sla_config_manager = SLAConfigManager()
    sla_config_manager.load(settings.sla_config_path)
    sla_config_manager.start_watching()

    notifier = WebhookNotifier(
        settings.webhook_url,
        timeout_seconds=settings.webhook_timeout_seconds,
        max_attempts=settings.webhook_max_retries,
        backoff_base_seconds=settings.webhook_backoff_base_seconds,
    )
    email_sender = EmailRelayClient(
        settings.email_relay_url,
        sender=settings.email_from,
        timeout_seconds=settings.webhook_timeout_seconds,
    )

    wire_components(
        app,
        app_settings=settings,
        config_provider=sla_config_manager,
        notifier=notifier,
        email_sender=email_sender,
    )

    sweep_scheduler = SweepScheduler(interval_seconds=settings.sla_sweep_interval_seconds)
    await sweep_scheduler.start(app.state.sweep_runner.run_once)
    app.state.sweep_scheduler = sweep_scheduler

    logger.info("Ticketflow started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Ticketflow")

    await sweep_scheduler.stop()
    sla_config_manager.stop_watching()

    await app.state.dispatcher.drain()
    await notifier.close()
    await email_sender.close()

    await close_database()
    logger.info("Ticketflow shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Ticketflow API",
    description="""
    ## Ticket Lifecycle & Agent Assignment Engine

    - **Tickets**: open, reply, change status/priority/category, assign
    - **Agents**: register, update, deactivate (with ticket redistribution), workloads
    - **SLA**: per-priority deadlines, periodic breach sweep

    Callers identify themselves with `X-Actor-Id`, `X-Actor-Role`
    (`customer`, `agent`, `admin`), `X-Actor-Name` and `X-Actor-Email`.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(tickets_router)
app.include_router(agents_router)
app.include_router(sla_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns SLA configuration and scheduler state.
    """
    state = request.app.state
    scheduler = getattr(state, "sweep_scheduler", None)
    config_provider = getattr(state, "config_provider", None)

    checks = {
        "sla_config": "loaded" if config_provider is not None else "not_loaded",
        "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "pending_notifications": state.dispatcher.pending if hasattr(state, "dispatcher") else 0,
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Ticketflow",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "tickets": {"prefix": "/tickets"},
            "agents": {"prefix": "/agents"},
            "sla": {"prefix": "/sla"},
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ticketflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
