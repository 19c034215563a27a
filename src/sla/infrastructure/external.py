"""
SLA External Service Integrations
==================================

External services for SLA tracking:
- YAML default-calendar loader with watchdog hot reload
- APScheduler for the background breach scan
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from src.core import ConfigurationException
from src.shared.infrastructure.logging import get_logger
from src.sla.application import ICalendarProvider
from src.sla.domain import DEFAULT_CALENDAR, BusinessCalendar

logger = get_logger(__name__)


class CalendarFileHandler(FileSystemEventHandler):
    """Watchdog event handler for default calendar file changes."""

    def __init__(self, manager: "CalendarConfigManager", path: Path):
        self.manager = manager
        self.path = path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.path.resolve():
            logger.info("Calendar file changed", extra={"path": str(event.src_path)})
            self.manager.reload()


class CalendarConfigManager(ICalendarProvider):
    """
    Thread-safe default business calendar with hot-reload support.

    File format:

        working_hours:
          start: 9
          end: 17
        holidays:
          - 2026-12-25

    A missing file means the built-in default (09-17, no holidays).
    """

    def __init__(self):
        self._calendar: Optional[BusinessCalendar] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> BusinessCalendar:
        """
        Initial calendar load.

        Raises:
            ConfigurationException: the file exists but is not a valid calendar
        """
        self._path = Path(path)
        calendar = self._load_from_file(self._path)
        with self._lock:
            self._calendar = calendar
        return calendar

    def _load_from_file(self, path: Path) -> BusinessCalendar:
        if not path.exists():
            logger.warning("Calendar file not found, using defaults", extra={"path": str(path)})
            return DEFAULT_CALENDAR

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(f"Malformed YAML in {path}") from e

        try:
            return BusinessCalendar.model_validate(data)
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid business calendar in {path}",
                details={"errors": e.errors(include_url=False)}
            ) from e

    def reload(self) -> bool:
        """Reload from file; keeps the previous calendar on failure."""
        if self._path is None:
            return False

        try:
            calendar = self._load_from_file(self._path)
        except (ConfigurationException, OSError) as e:
            logger.error("Failed to reload calendar", extra={"error": str(e)})
            return False

        with self._lock:
            self._calendar = calendar
        logger.info(
            "Calendar reloaded",
            extra={"holidays": len(calendar.holidays)}
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching the calendar file for changes.

        Skips watching when the file does not exist or the platform has no
        file notification support.
        """
        if self._path is None:
            raise RuntimeError("Calendar not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("Calendar file doesn't exist, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                CalendarFileHandler(self, self._path),
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching calendar file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static calendar", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_calendar(self) -> BusinessCalendar:
        with self._lock:
            if self._calendar is None:
                raise RuntimeError("Calendar not loaded")
            return self._calendar


class SLAScheduler:
    """
    Wrapper for APScheduler running the breach scan.

    Manages the lifecycle of the scheduler and its single job.
    """

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_breach_scan",
            name="SLA Breach Scan",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

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
        return self._running
