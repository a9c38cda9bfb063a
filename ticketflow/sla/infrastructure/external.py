"""
SLA External Service Integrations
=================================

Infrastructure for SLA monitoring:
- YAML config file watcher (hot reload of the SLA hours table)
- APScheduler job running the periodic breach sweep
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ticketflow.core.exceptions import ConfigurationException
from ticketflow.shared.infrastructure.clock import Clock, SystemClock
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.sla.application import ISLAConfigProvider
from ticketflow.sla.domain import SLAConfig

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("SLA config file changed", extra={"path": event.src_path})
            self.config_manager.reload()

    on_created = on_modified


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration with hot reload.

    A reload that fails to parse or validate keeps the previous table.
    Deadlines already stored on tickets are not recomputed on reload.
    """

    def __init__(self):
        self._config: Optional[SLAConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """Initial configuration load. A missing file means defaults."""
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    @staticmethod
    def _load_from_file(path: Path) -> SLAConfig:
        if not path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(path)})
            return SLAConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return SLAConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid SLA config file: {path}",
                {"error": str(e)}
            ) from e

    def reload(self) -> bool:
        """Re-read the file. Returns False (keeping the old table) on error."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error("Failed to reload SLA config", extra={"error": e.details.get("error")})
            return False

        with self._lock:
            self._config = new_config
        logger.info("SLA configuration reloaded", extra={"sla_hours": new_config.sla_hours})
        return True

    def start_watching(self) -> None:
        """
        Start watching the config file for changes.

        Skipped when the file does not exist or the platform cannot watch
        files (e.g. some containers).
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "SLA config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching SLA config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Safe to call even if not watching."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    def get_config(self) -> SLAConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config


class SweepScheduler:
    """
    Wrapper for APScheduler running the SLA sweep on an interval.

    ``max_instances=1`` keeps APScheduler itself from overlapping runs; the
    sweep job should additionally skip when a manual sweep is in flight.
    """

    def __init__(self, interval_seconds: int = 300, clock: Optional[Clock] = None):
        self.interval_seconds = interval_seconds
        self._clock = clock or SystemClock()
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def enabled(self) -> bool:
        return self.interval_seconds > 0

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        """Schedule ``job_func``; the first run happens immediately."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return
        if not self.enabled:
            logger.info("SLA sweep interval is 0, scheduler disabled")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_sweep",
            name="SLA Breach Sweep",
            next_run_time=self._clock.now(),
            misfire_grace_time=60,
            coalesce=True,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
