"""
Main scheduler service for course polling.

This module provides:
- Staggered fixed-rate polling with APScheduler
- One job per course, never overlapping with itself
- Run once mode for a single pass over all courses
- Graceful shutdown on signals
"""

import asyncio
import signal
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from courses.models import Course
from scheduler.coordinator import PollCoordinator
from scheduler.models import CycleResult, SchedulerConfig

logger = structlog.get_logger(__name__)


def stagger_offsets(count: int, interval: int) -> List[int]:
    """
    Start offsets spreading ``count`` courses evenly over one interval.

    Offsets use integer division, so 3 courses at 300 seconds start at
    0, 100 and 200 seconds.
    """
    if count <= 0:
        return []
    step = interval // count
    return [step * index for index in range(count)]


class SchedulerService:
    """Scheduler driving the poll coordinator for every course."""

    def __init__(self, config: SchedulerConfig, coordinator: PollCoordinator, courses: List[Course]):
        """
        Initialize scheduler service.

        Args:
            config: Scheduler configuration
            coordinator: Runs the individual poll cycles
            courses: Registered courses, in polling order
        """
        self.config = config
        self.coordinator = coordinator
        self.courses = list(courses)
        self.scheduler = AsyncIOScheduler(timezone=config.timezone)
        self.logger = logger.bind(component="scheduler_service")
        self._stopped = asyncio.Event()

        self._setup_scheduler_listeners()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, shutting down gracefully...")
            self.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _setup_scheduler_listeners(self) -> None:
        """Setup scheduler event listeners."""
        def job_executed_listener(event):
            retval = event.retval or {}
            self.logger.info(
                "Job executed successfully",
                job_id=event.job_id,
                status=retval.get('status'),
                duration=retval.get('duration', 0)
            )

        def job_error_listener(event):
            self.logger.error(
                "Job execution failed",
                job_id=event.job_id,
                error=str(event.exception)
            )

        self.scheduler.add_listener(job_executed_listener, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)

    async def start(self, run_once: bool = False) -> None:
        """Start the scheduler service and block until it is stopped."""
        if run_once:
            self.logger.info("Starting scheduler service in RUN ONCE MODE", courses=len(self.courses))
            await self.run_once()
            self.logger.info("Run once mode completed. Exiting...")
            return

        self.logger.info("Starting scheduler service", courses=len(self.courses))
        self._setup_signal_handlers()

        try:
            self.add_course_jobs()
            self.scheduler.start()
            self.logger.info(
                "Scheduler service started",
                timezone=self.config.timezone,
                poll_interval_seconds=self.config.poll_interval_seconds
            )
        except Exception as e:
            self.logger.error("Failed to start scheduler service", error=str(e))
            raise

        await self._stopped.wait()

    def stop(self) -> None:
        """Stop the scheduler service."""
        try:
            self.logger.info("Stopping scheduler service")

            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)

            self.logger.info("Scheduler service stopped")

        except Exception as e:
            self.logger.error(
                "Error stopping scheduler service",
                error=str(e)
            )
        finally:
            self._stopped.set()

    def add_course_jobs(self, base_time: Optional[datetime] = None) -> None:
        """
        Add one interval job per course.

        Course ``i`` first runs at ``base_time + offset_i`` and then every
        poll interval, independent of the other courses.
        """
        base_time = base_time or datetime.now(timezone.utc)
        interval = self.config.poll_interval_seconds

        for course, offset in zip(self.courses, stagger_offsets(len(self.courses), interval)):
            first_run = base_time + timedelta(seconds=offset)
            self.scheduler.add_job(
                func=self._poll_course_job,
                trigger=IntervalTrigger(seconds=interval, start_date=first_run, timezone=self.config.timezone),
                args=[course],
                id=f'poll_course_{course.id}',
                name=f'Poll {course.name}',
                next_run_time=first_run,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=interval,
                replace_existing=True
            )
            self.logger.info(
                "Added course polling job",
                course_id=course.id,
                course_name=course.name,
                offset_seconds=offset,
                interval_seconds=interval
            )

    async def _poll_course_job(self, course: Course) -> Dict:
        """Scheduled job polling a single course."""
        result = await self.coordinator.run_cycle(course)
        return {
            'job_id': f'poll_course_{course.id}',
            'success': result.success,
            'status': result.status.value,
            'new_items': result.new_items,
            'deadline_items': result.deadline_items,
            'duration': result.duration_seconds
        }

    async def run_once(self) -> List[CycleResult]:
        """Poll every course once, in registration order."""
        results = []
        for course in self.courses:
            results.append(await self.coordinator.run_cycle(course))
        return results

    def get_scheduler_status(self) -> Dict:
        """Get current scheduler status."""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run_time = getattr(job, 'next_run_time', None)
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run_time': next_run_time.isoformat() if next_run_time else None,
                'trigger': str(job.trigger)
            })

        return {
            'running': self.scheduler.running,
            'timezone': self.config.timezone,
            'courses': [course.id for course in self.courses],
            'jobs': jobs,
            'job_count': len(jobs)
        }
