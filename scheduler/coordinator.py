"""
Poll cycle orchestration.

This module provides:
- One fetch, diff, deadline check, save and notify cycle per course
- Serialization of all cycles through a single lock
- Containment of source, store and sink failures inside the cycle
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import List, Optional

import structlog

from courses.models import Course, Item, leaves
from courses.source import CourseSource, SourceUnavailableError
from courses.store import SnapshotStore, SnapshotStoreError
from scheduler.alerting import NotificationSink
from scheduler.deadlines import due_soon
from scheduler.differ import diff
from scheduler.models import CycleResult, CycleStatus, EventKind, SchedulerConfig
from utilities.logger import CycleLogger

logger = structlog.get_logger(__name__)


class PollCoordinator:
    """Runs poll cycles for courses, one at a time."""

    def __init__(
        self,
        config: SchedulerConfig,
        source: CourseSource,
        store: SnapshotStore,
        sink: NotificationSink
    ):
        """
        Initialize the poll coordinator.

        Args:
            config: Scheduler configuration
            source: Produces the current course trees
            store: Keeps the last known course trees
            sink: Receives new item and deadline events
        """
        self.config = config
        self.source = source
        self.store = store
        self.sink = sink
        self.logger = logger.bind(component="poll_coordinator")
        self._lock = asyncio.Lock()

    def before_check(self, course: Course, cycle_logger: CycleLogger) -> None:
        """Called before a course is fetched."""
        cycle_logger.log_cycle_start(course.name)

    def after_check(self, course: Course, result: CycleResult) -> None:
        """Called once a cycle has finished, whatever its outcome."""
        self.logger.debug("Course check finished", course_id=course.id, status=result.status.value)

    async def run_cycle(self, course: Course, now: Optional[datetime] = None) -> CycleResult:
        """
        Run one poll cycle for a course.

        Args:
            course: Course to poll
            now: Reference time, the current time by default

        Returns:
            CycleResult describing what happened
        """
        async with self._lock:
            return await self._run_cycle(course, now or datetime.now(timezone.utc))

    async def _run_cycle(self, course: Course, now: datetime) -> CycleResult:
        started = time.monotonic()
        result = CycleResult(course_id=course.id, course_name=course.name, started_at=now)
        cycle_logger = CycleLogger("poll_cycle").bind_context(course_id=course.id)

        self.before_check(course, cycle_logger)

        previous = self.store.load(course)

        try:
            current = await asyncio.wait_for(
                self.source.fetch(course), timeout=self.config.fetch_timeout_seconds
            )
        except SourceUnavailableError as e:
            return self._skip(course, result, cycle_logger, str(e), started)
        except asyncio.TimeoutError:
            return self._skip(course, result, cycle_logger, "fetch timed out", started)
        except Exception as e:
            return self._skip(course, result, cycle_logger, f"unexpected fetch error: {e}", started)

        result.bytes_fetched = getattr(self.source, "last_fetch_bytes", 0)

        new_tree = diff(current, previous, symmetric=False)
        new_items = leaves(new_tree) if new_tree is not None else []
        due = due_soon(previous, now, self.config.deadline_window)

        try:
            self.store.save(course, current)
            cycle_logger.log_store_operation("save", True)
        except SnapshotStoreError as e:
            result.status = CycleStatus.SAVE_FAILED
            result.errors.append(str(e))
            cycle_logger.log_store_operation("save", False, error=str(e))

        if new_items:
            result.new_items = len(new_items)
            await self._emit(EventKind.NEW_ITEMS, course, new_items, result, cycle_logger)
        else:
            self.logger.debug("No new items", course_id=course.id)

        if due:
            result.deadline_items = len(due)
            await self._emit(EventKind.DEADLINES, course, due, result, cycle_logger)
        else:
            self.logger.debug("No new critical deadlines", course_id=course.id)

        result.duration_seconds = time.monotonic() - started
        cycle_logger.log_cycle_complete(
            result.new_items, result.deadline_items, result.bytes_fetched, result.duration_seconds
        )
        self.after_check(course, result)
        return result

    async def _emit(
        self,
        event: EventKind,
        course: Course,
        items: List[Item],
        result: CycleResult,
        cycle_logger: CycleLogger
    ) -> None:
        """Deliver one event; failures are recorded but never propagated."""
        method = self.sink.notify_new_items if event == EventKind.NEW_ITEMS else self.sink.notify_deadlines
        try:
            await asyncio.wait_for(
                method(course, items), timeout=self.config.alert_config.delivery_timeout_seconds
            )
            result.notified.append(event)
        except asyncio.TimeoutError:
            result.errors.append(f"{event.value}: timed out")
            cycle_logger.log_notification_error(event.value, "timed out")
        except Exception as e:
            result.errors.append(f"{event.value}: {e}")
            cycle_logger.log_notification_error(event.value, str(e))

    def _skip(
        self,
        course: Course,
        result: CycleResult,
        cycle_logger: CycleLogger,
        reason: str,
        started: float
    ) -> CycleResult:
        result.status = CycleStatus.SKIPPED
        result.errors.append(reason)
        result.duration_seconds = time.monotonic() - started
        cycle_logger.log_cycle_skipped(reason)
        self.after_check(course, result)
        return result
