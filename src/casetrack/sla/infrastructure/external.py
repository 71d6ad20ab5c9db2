"""
SLA External Service Integrations
==================================

External services around the SLA engine:
- YAML rule catalog file watcher (hot reload)
- APScheduler for the periodic evaluation pass
- Event dispatch to the notification side
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from casetrack.shared.infrastructure.logging import get_logger
from casetrack.sla.application import IEventDispatcher
from casetrack.sla.domain import SLAEvent
from casetrack.sla.infrastructure.repositories import YAMLRuleCatalogProvider

logger = get_logger(__name__)


class RuleFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA rule catalog changes."""

    def __init__(self, manager: "RuleCatalogManager", config_path: Path):
        self.manager = manager
        self.config_path = config_path
        super().__init__()

    def _is_catalog(self, path: str) -> bool:
        return Path(path).resolve() == self.config_path.resolve()

    def on_modified(self, event):
        if event.is_directory:
            return
        if self._is_catalog(event.src_path):
            logger.info("SLA rule catalog changed", extra={"path": event.src_path})
            self.manager.reload()

    def on_created(self, event):
        self.on_modified(event)

    def on_moved(self, event):
        # Editors often save by writing a temp file and renaming it over the catalog
        if not event.is_directory and self._is_catalog(event.dest_path):
            logger.info("SLA rule catalog replaced", extra={"path": event.dest_path})
            self.manager.reload()


class RuleCatalogManager:
    """
    Hot-reload support for the YAML rule catalog.

    Uses watchdog to monitor the catalog file and reload rules without
    restarting the worker. Reloads take effect from the next evaluation
    pass; cases keep the rule snapshot taken when they were opened.
    """

    def __init__(self, provider: YAMLRuleCatalogProvider):
        self._provider = provider
        self._observer = None

    @property
    def provider(self) -> YAMLRuleCatalogProvider:
        return self._provider

    def reload(self) -> bool:
        reloaded = self._provider.reload()
        if reloaded:
            logger.info("SLA rule catalog reloaded successfully")
        return reloaded

    def start_watching(self) -> None:
        """
        Start watching the catalog's directory for changes.

        Skips watching if the directory doesn't exist, or if the platform
        has no file notification support (some containers).
        """
        path = self._provider.path
        if not path.parent.exists():
            logger.info(
                "Rule catalog directory doesn't exist, skipping file watch",
                extra={"path": str(path)}
            )
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                RuleFileHandler(self, path),
                str(path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching SLA rule catalog", extra={"path": str(path)})
        except OSError as e:
            logger.warning(
                "File watching not available, using static rule catalog",
                extra={"error": str(e)}
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None


class LoggingEventDispatcher(IEventDispatcher):
    """
    Writes each SLA event as a structured log record.

    Delivery to citizens and officers is owned by the notification
    service, which consumes these records.
    """

    async def dispatch(self, events: Sequence[SLAEvent]) -> None:
        for event in events:
            payload = event.to_dict()
            logger.info(
                f"SLA {payload['event_type']} event",
                extra=payload
            )


class SLAScheduler:
    """
    Wrapper for APScheduler for the background SLA evaluation pass.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(self, interval_seconds: int = 6 * 3600, run_immediately: bool = True):
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        job_kwargs = {}
        if self.run_immediately:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)

        # One pass at a time; a slow pass delays the next instead of overlapping
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_evaluation",
            name="SLA Evaluation Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            **job_kwargs
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
