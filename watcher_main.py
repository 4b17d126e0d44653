"""
Main entry point for the course watcher.

Polls the configured courses, reports newly uploaded items and deadlines
that are about to end.

Usage: python watcher_main.py [-i SECONDS] [--once] [--webhook-url URL] COURSE_ID...
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from pydantic import ValidationError

from courses.source import HttpCourseSource, resolve_courses
from courses.store import SnapshotStore
from scheduler.alerting import AlertManager
from scheduler.coordinator import PollCoordinator
from scheduler.models import AlertConfig, SchedulerConfig
from scheduler.scheduler_service import SchedulerService
from utilities.config import WatcherConfig
from utilities.logger import get_logger, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="watcher_main.py",
        description="Watch courses for new files and upcoming deadlines."
    )
    parser.add_argument("courses", nargs="*", type=int, help="Ids of the courses to watch")
    parser.add_argument(
        "-i", "--interval", type=int, default=None,
        help="Interval in seconds between two checks of the same course. Default is 300"
    )
    parser.add_argument("--once", action="store_true", help="Check every course once and exit")
    parser.add_argument("--webhook-url", default=None, help="Chat webhook receiving notifications")
    return parser


def build_settings(args: argparse.Namespace) -> WatcherConfig:
    """Environment settings with command line overrides applied."""
    overrides = {}
    if args.courses:
        overrides["course_ids"] = args.courses
    if args.interval is not None:
        overrides["poll_interval_seconds"] = args.interval
    if args.webhook_url:
        overrides["webhook_url"] = args.webhook_url
    return WatcherConfig(**overrides)


def build_scheduler_config(settings: WatcherConfig) -> SchedulerConfig:
    alert_config = AlertConfig(
        enabled=settings.alerting_enabled,
        log_enabled=settings.log_enabled,
        webhook_url=settings.webhook_url,
        notify_timeout_seconds=settings.notify_timeout_seconds,
        max_items_per_message=settings.max_items_per_message
    )
    return SchedulerConfig(
        poll_interval_seconds=settings.poll_interval_seconds,
        deadline_window_hours=settings.deadline_window_hours,
        fetch_timeout_seconds=settings.fetch_timeout_seconds,
        timezone=settings.timezone,
        alert_config=alert_config
    )


async def main(argv=None) -> int:
    """Main function to start the watcher."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    if not settings.course_ids:
        parser.print_usage(sys.stderr)
        print("error: no courses given, pass course ids or set COURSE_IDS", file=sys.stderr)
        return 1

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        debug=settings.debug
    )
    logger = get_logger(__name__)

    try:
        scheduler_config = build_scheduler_config(settings)
        source = HttpCourseSource(settings)
        store = SnapshotStore(str(settings.get_store_file_path()))
        alert_manager = AlertManager(scheduler_config.alert_config, tz=settings.timezone)
        coordinator = PollCoordinator(scheduler_config, source, store, alert_manager)

        courses = await resolve_courses(source, settings.course_ids, settings.course_url_template)
        logger.info(
            "Courses registered",
            courses=[{"id": course.id, "name": course.name} for course in courses],
            poll_interval_seconds=scheduler_config.poll_interval_seconds,
            deadline_window_hours=scheduler_config.deadline_window_hours
        )

        service = SchedulerService(scheduler_config, coordinator, courses)
        await service.start(run_once=args.once)

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    except Exception as e:
        logger.error("Failed to start watcher", error=str(e))
        return 1

    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
