"""
Casetrack SLA Worker
=====================

Background worker that keeps complaint and service-application SLAs
up to date.

Modules:
- SLA Engine: Deadlines, escalation levels, warnings and breaches

Clean Architecture Layers:
- Application: Services and DTOs
- Domain: Entities, value objects and the pure SLA engine
- Infrastructure: Database, YAML rule catalog, scheduler

STARTUP:
1. Setup structured logging
2. Initialize database and create tables
3. Load the SLA rule catalog (YAML with hot reload, or database)
4. Start the evaluation scheduler

SHUTDOWN (SIGINT / SIGTERM):
1. Stop the scheduler
2. Stop the rule catalog watcher
3. Close database connections
"""

import asyncio
import signal
from typing import Optional

from casetrack.config import Settings, get_settings
from casetrack.infrastructure.database import (
    close_database, create_tables, get_session_maker, init_database
)
from casetrack.shared.infrastructure.logging import get_logger, setup_logging
from casetrack.sla.application import (
    IRuleCatalogProvider,
    SLAEvaluationService,
    SLAService,
    SystemClock,
    SystemDefaultRules,
)
from casetrack.sla.domain import SLAStateMachine
from casetrack.sla.infrastructure import (
    LoggingEventDispatcher,
    RuleCatalogManager,
    SLAScheduler,
    SQLAlchemyCaseRepository,
    SQLAlchemyRuleCatalogProvider,
    YAMLRuleCatalogProvider,
)

logger = get_logger(__name__)


def build_rule_catalog(settings: Settings) -> tuple[IRuleCatalogProvider, Optional[RuleCatalogManager]]:
    """Rule catalog for the configured source, plus its file watcher if any."""
    if settings.sla_rules_source == "database":
        return SQLAlchemyRuleCatalogProvider(get_session_maker()), None

    provider = YAMLRuleCatalogProvider(settings.sla_rules_path)
    return provider, RuleCatalogManager(provider)


def build_evaluation_service(
    settings: Settings,
    rule_catalog: IRuleCatalogProvider
) -> SLAEvaluationService:
    sla_service = SLAService(
        rule_catalog=rule_catalog,
        clock=SystemClock(),
        fallback=SystemDefaultRules(settings),
        state_machine=SLAStateMachine(settings.calendar_max_lookahead_days),
        auto_escalation_enabled=settings.auto_escalation_enabled,
    )
    return SLAEvaluationService(
        sla_service=sla_service,
        case_repository=SQLAlchemyCaseRepository(get_session_maker()),
        rule_catalog=rule_catalog,
        event_dispatcher=LoggingEventDispatcher(),
        batch_size=settings.evaluation_batch_size,
        concurrency=settings.evaluation_concurrency,
        stale_retry_attempts=settings.stale_retry_attempts,
    )


async def run_worker(stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the SLA worker until ``stop_event`` is set or a signal arrives."""
    settings = get_settings()

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SLA worker", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "rules_source": settings.sla_rules_source,
    })

    logger.info("Initializing database")
    init_database()

    # Development convenience - use migrations in production
    await create_tables()

    logger.info("Loading SLA rule catalog")
    rule_catalog, catalog_manager = build_rule_catalog(settings)
    if catalog_manager is not None:
        catalog_manager.start_watching()

    evaluation_service = build_evaluation_service(settings, rule_catalog)

    async def sla_evaluation_job():
        """Background SLA evaluation job."""
        await evaluation_service.evaluate_open_cases()

    scheduler = SLAScheduler(interval_seconds=settings.sla_evaluation_interval_seconds)
    await scheduler.start(sla_evaluation_job)

    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    logger.info("SLA worker started")

    try:
        await stop_event.wait()
    finally:
        # === SHUTDOWN ===
        logger.info("Shutting down SLA worker")
        await scheduler.stop()
        if catalog_manager is not None:
            catalog_manager.stop_watching()
        await close_database()
        logger.info("SLA worker shutdown complete")


def main() -> None:
    """Console entry point."""
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
