from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ticketflow.api.routes import automation, metrics, ping, queue, tickets
from ticketflow.automation.actions import ActionExecutor
from ticketflow.automation.conditions import ConditionEvaluator
from ticketflow.automation.engine import AutomationEngine
from ticketflow.automation.locks import TicketLockRegistry
from ticketflow.automation.repository import AutomationRepository
from ticketflow.automation.service import AutomationService
from ticketflow.core.config import get_settings
from ticketflow.core.logging import configure_logging, init_tracer, shutdown_tracer
from ticketflow.metrics import metrics_registry
from ticketflow.middleware import RBACMiddleware
from ticketflow.queue import QueuePrioritizer
from ticketflow.services.directory import DirectoryService
from ticketflow.services.notifications import NotificationService
from ticketflow.services.postgres import PostgresConnectionTester
from ticketflow.sla import SlaConfigRepository, SlaMonitor, SlaPolicy, SlaScheduler
from ticketflow.tickets.repository import TicketRepository
from ticketflow.tickets.service import TicketService


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.metrics_registry = metrics_registry
    app.state.queue_prioritizer = QueuePrioritizer()

    postgres_tester = PostgresConnectionTester(dsn=settings.postgres_dsn)
    app.state.postgres_tester = postgres_tester
    app.state.ticket_service = None
    app.state.automation_service = None

    db_engine = None
    scheduler: SlaScheduler | None = None
    try:
        db_engine = create_async_engine(settings.async_postgres_dsn, future=True)
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)

        ticket_repository = TicketRepository(session_factory, engine=db_engine)
        await ticket_repository.ensure_schema()

        locks = TicketLockRegistry()
        directory = DirectoryService(session_factory, ticket_repository)
        notifications = NotificationService(session_factory)
        automation_repository = AutomationRepository(session_factory)
        engine = AutomationEngine(
            automation_repository,
            ActionExecutor(ticket_repository, directory, notifications),
            evaluator=ConditionEvaluator(strict=settings.automation_strict_conditions),
            locks=locks,
        )

        app.state.ticket_service = TicketService(
            ticket_repository,
            directory,
            notifications,
            sla_policy=SlaPolicy(SlaConfigRepository(session_factory)),
            triggers=engine,
            locks=locks,
        )
        app.state.automation_service = AutomationService(automation_repository)
        app.state.automation_engine = engine

        if settings.sla_scheduler_enabled:
            monitor = SlaMonitor(
                ticket_repository,
                notifications,
                triggers=engine,
                locks=locks,
                warning_hours=settings.sla_warning_hours,
            )
            scheduler = SlaScheduler(
                monitor,
                warning_interval_minutes=settings.sla_warning_interval_minutes,
                breach_interval_minutes=settings.sla_breach_interval_minutes,
            )
            scheduler.start()
    except Exception:  # pragma: no cover - service initialisation best effort
        logger.exception("Service initialisation failed; ticket endpoints will answer 503")
        app.state.ticket_service = None
        app.state.automation_service = None
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop()
        if db_engine is not None:
            await db_engine.dispose()
        await postgres_tester.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RBACMiddleware)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(queue.router)
    app.include_router(automation.router)
    app.include_router(metrics.router)
    return app


app = create_app()
