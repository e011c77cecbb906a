"""Periodic processing jobs.

``TaskRegistry`` owns named recurring tasks, each a daemon thread that sleeps
on an Event between runs so ``stop`` takes effect immediately.
``ScheduledProcessor`` registers the batch-update, realtime-sync and daily
score-history cleanup jobs on it;
the app creates one processor at startup and stops it at shutdown.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from theme_api.core.config import settings
from theme_api.core.database import session_scope
from theme_api.services.edge_functions import run_processing_operation
from theme_api.services.score_history import cleanup_old_score_history

log = logging.getLogger(__name__)

BATCH_PROCESSING = "batch_processing"
REALTIME_SYNC = "realtime_sync"
SCORE_HISTORY_CLEANUP = "score_history_cleanup"
CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60


@dataclass
class _Task:
    name: str
    interval_seconds: float
    func: Callable[[], object]
    stop_event: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None
    runs: int = 0
    failures: int = 0


class TaskRegistry:
    """Recurring tasks keyed by name; start/stop are idempotent per name."""

    def __init__(self, join_timeout: float = 5.0):
        self._tasks: dict[str, _Task] = {}
        self._lock = threading.Lock()
        self._join_timeout = join_timeout

    def start(self, name: str, interval_seconds: float, func: Callable[[], object], run_immediately: bool = False) -> bool:
        """Start ``func`` every ``interval_seconds``. Returns False if ``name`` is already running."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        with self._lock:
            existing = self._tasks.get(name)
            if existing and existing.thread and existing.thread.is_alive():
                log.info("[scheduler] %s already running; start ignored", name)
                return False
            task = _Task(name=name, interval_seconds=interval_seconds, func=func)
            task.thread = threading.Thread(
                target=self._loop,
                args=(task, run_immediately),
                name=f"scheduler-{name}",
                daemon=True,
            )
            self._tasks[name] = task
            task.thread.start()
        log.info("[scheduler] Started %s every %.0fs", name, interval_seconds)
        return True

    def _loop(self, task: _Task, run_immediately: bool) -> None:
        if run_immediately:
            self._run_once(task)
        while not task.stop_event.wait(task.interval_seconds):
            self._run_once(task)

    def _run_once(self, task: _Task) -> None:
        task.runs += 1
        try:
            task.func()
        except Exception as e:
            task.failures += 1
            log.exception("[scheduler] %s run failed: %s", task.name, e)

    def stop(self, name: Optional[str] = None) -> list[str]:
        """Stop one task, or every task when ``name`` is None. Returns the names stopped."""
        with self._lock:
            if name is None:
                targets = list(self._tasks.values())
                self._tasks.clear()
            else:
                task = self._tasks.pop(name, None)
                targets = [task] if task else []

        for task in targets:
            task.stop_event.set()
        current = threading.current_thread()
        for task in targets:
            if task.thread and task.thread is not current:
                task.thread.join(timeout=self._join_timeout)
            log.info("[scheduler] Stopped %s", task.name)
        return [task.name for task in targets]

    def is_running(self, name: str) -> bool:
        with self._lock:
            task = self._tasks.get(name)
            return bool(task and task.thread and task.thread.is_alive())

    def running(self) -> list[str]:
        with self._lock:
            return sorted(name for name, task in self._tasks.items() if task.thread and task.thread.is_alive())

    def stats(self, name: str) -> Optional[dict]:
        with self._lock:
            task = self._tasks.get(name)
            if not task:
                return None
            return {"runs": task.runs, "failures": task.failures, "interval_seconds": task.interval_seconds}


def _run_operation(operation: str, options: dict) -> None:
    with session_scope() as session:
        run_processing_operation(session, operation, {}, options)


class ScheduledProcessor:
    """Registers the periodic edge-function jobs on a TaskRegistry."""

    def __init__(self, registry: Optional[TaskRegistry] = None):
        self.registry = registry or TaskRegistry()

    def run_batch_processing(self) -> None:
        log.info("[scheduler] Starting scheduled batch processing")
        _run_operation("batch_update", {
            "batchSize": settings.SCHEDULED_BATCH_SIZE,
            "forceUpdate": False,
            "notifyUsers": True,
        })
        log.info("[scheduler] Scheduled batch processing completed")

    def run_realtime_sync(self) -> None:
        _run_operation("realtime_sync", {"notifyUsers": True, "broadcastChanges": True})

    def start_batch_processing(self, interval_minutes: Optional[float] = None) -> bool:
        minutes = interval_minutes or settings.BATCH_INTERVAL_MINUTES
        return self.registry.start(BATCH_PROCESSING, minutes * 60, self.run_batch_processing)

    def start_realtime_sync(self, interval_minutes: Optional[float] = None) -> bool:
        minutes = interval_minutes or settings.REALTIME_SYNC_INTERVAL_MINUTES
        return self.registry.start(REALTIME_SYNC, minutes * 60, self.run_realtime_sync)

    def run_score_history_cleanup(self) -> int:
        with session_scope() as session:
            removed = cleanup_old_score_history(session, settings.SCORE_HISTORY_RETENTION_DAYS)
        log.info("[scheduler] Removed %d score history rows", removed)
        return removed

    def start_score_history_cleanup(self) -> bool:
        return self.registry.start(SCORE_HISTORY_CLEANUP, CLEANUP_INTERVAL_SECONDS, self.run_score_history_cleanup)

    def start(self) -> None:
        self.start_batch_processing()
        self.start_realtime_sync()
        self.start_score_history_cleanup()

    def stop(self, name: Optional[str] = None) -> list[str]:
        return self.registry.stop(name)
