"""
Alerting system for course change notifications.

This module provides:
- Notification sink interface
- Log-based sink
- Chat webhook sink posting embed messages
- Fan-out with per-sink timeouts and error isolation
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx
import structlog

from courses.models import Course, Item
from scheduler.models import AlertConfig, EventKind

logger = structlog.get_logger(__name__)

EMBED_COLOR = 0xF47F22
ZERO_WIDTH_SPACE = "\u200b"

SIMPLE_TYPE_NAMES = {
    "pdf": "File",
    "page": "Page",
    "url": "Page",
    "folder": "Folder",
    "sourcecode": "File",
    "archive": "File",
    "task": "Assignment",
    "test": "Test",
}

HEADLINES = {
    EventKind.NEW_ITEMS: ("New file uploaded:", "New files uploaded:"),
    EventKind.DEADLINES: ("Deadline ending soon:", "Deadlines ending soon:"),
}


class NotificationError(Exception):
    """Raised when at least one sink failed to deliver an event."""


def simple_type_name(kind: str) -> str:
    """Display name for an item kind."""
    return SIMPLE_TYPE_NAMES.get(kind, "File")


def format_deadline(deadline: datetime, tz: str = "UTC") -> str:
    """Format a deadline as "Monday, 3. 11. 23:59" in the given timezone."""
    local = deadline.astimezone(ZoneInfo(tz))
    return f"{local:%A}, {local.day}. {local.month}. {local:%H:%M}"


def markdown_description(item: Item, tz: str = "UTC") -> str:
    """Markdown body describing one item, without its title."""
    lines = []
    if item.location_ref is not None:
        lines.append(f"[Open {simple_type_name(item.kind)}]({item.location_ref})")
    if item.description is not None:
        lines.append(item.description)
    if item.has_deadline:
        lines.append(f"Due {format_deadline(item.deadline, tz)}")
    lines.append(ZERO_WIDTH_SPACE)
    return "\n".join(lines)


def build_embed(
    course: Course,
    items: List[Item],
    event: EventKind,
    max_items: int = 25,
    tz: str = "UTC"
) -> Dict[str, Any]:
    """
    Build a chat embed for an event.

    Only the first ``max_items`` items are included.
    """
    shown = items[:max_items]
    singular, plural = HEADLINES[event]
    return {
        "title": course.name,
        "url": course.url,
        "color": EMBED_COLOR,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "description": (singular if len(shown) == 1 else plural) + "\n" + ZERO_WIDTH_SPACE,
        "fields": [
            {"name": item.name, "value": markdown_description(item, tz), "inline": False}
            for item in shown
        ],
    }


class NotificationSink(ABC):
    """Consumer of change events."""

    name = "sink"

    @abstractmethod
    async def notify_new_items(self, course: Course, items: List[Item]) -> None:
        """Deliver newly discovered leaves of a course."""

    @abstractmethod
    async def notify_deadlines(self, course: Course, items: List[Item]) -> None:
        """Deliver leaves whose deadline just entered the window."""


class LogSink(NotificationSink):
    """Sink writing events to the structured log."""

    name = "log"

    def __init__(self, tz: str = "UTC"):
        self.tz = tz
        self.logger = logger.bind(component="log_sink")

    async def notify_new_items(self, course: Course, items: List[Item]) -> None:
        self.logger.warning(
            "New course items",
            course_id=course.id,
            course_name=course.name,
            items_count=len(items),
            items=[item.name for item in items]
        )

    async def notify_deadlines(self, course: Course, items: List[Item]) -> None:
        self.logger.warning(
            "Deadlines ending soon",
            course_id=course.id,
            course_name=course.name,
            items_count=len(items),
            items=[f"{item.name} ({format_deadline(item.deadline, self.tz)})" for item in items]
        )


class WebhookSink(NotificationSink):
    """Sink posting embed messages to a chat webhook."""

    name = "webhook"

    def __init__(self, webhook_url: str, max_items: int = 25, tz: str = "UTC", timeout: float = 30.0):
        self.webhook_url = webhook_url
        self.max_items = max_items
        self.tz = tz
        self.timeout = timeout
        self.logger = logger.bind(component="webhook_sink")

    async def _post(self, course: Course, items: List[Item], event: EventKind) -> None:
        payload = {"embeds": [build_embed(course, items, event, self.max_items, self.tz)]}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()

        if len(items) > self.max_items:
            self.logger.info(
                "Notification truncated",
                course_id=course.id,
                shown=self.max_items,
                total=len(items)
            )

    async def notify_new_items(self, course: Course, items: List[Item]) -> None:
        await self._post(course, items, EventKind.NEW_ITEMS)

    async def notify_deadlines(self, course: Course, items: List[Item]) -> None:
        await self._post(course, items, EventKind.DEADLINES)


class AlertManager(NotificationSink):
    """Manager fanning events out to the configured sinks."""

    name = "alert_manager"

    def __init__(self, alert_config: AlertConfig, sinks: Optional[List[NotificationSink]] = None, tz: str = "UTC"):
        """
        Initialize alert manager.

        Args:
            alert_config: Alert configuration
            sinks: Explicit sinks, built from the configuration if omitted
            tz: Timezone used to display deadlines
        """
        self.config = alert_config
        self.logger = logger.bind(component="alert_manager")
        self.sinks = sinks if sinks is not None else self._build_sinks(tz)

    def _build_sinks(self, tz: str) -> List[NotificationSink]:
        sinks: List[NotificationSink] = []
        if self.config.log_enabled:
            sinks.append(LogSink(tz=tz))
        if self.config.webhook_url:
            sinks.append(WebhookSink(
                self.config.webhook_url,
                max_items=self.config.max_items_per_message,
                tz=tz,
                timeout=self.config.notify_timeout_seconds
            ))
        return sinks

    async def notify_new_items(self, course: Course, items: List[Item]) -> None:
        await self._dispatch(EventKind.NEW_ITEMS, course, items)

    async def notify_deadlines(self, course: Course, items: List[Item]) -> None:
        await self._dispatch(EventKind.DEADLINES, course, items)

    async def _dispatch(self, event: EventKind, course: Course, items: List[Item]) -> None:
        """
        Deliver an event to every sink.

        Sinks run concurrently, a failing sink does not stop the others.

        Raises:
            NotificationError: If any sink failed or timed out
        """
        if not self.config.enabled:
            self.logger.debug("Alerting is disabled")
            return

        outcomes = await asyncio.gather(*(self._deliver(sink, event, course, items) for sink in self.sinks))
        failed = [sink.name for sink, delivered in zip(self.sinks, outcomes) if not delivered]

        if failed:
            raise NotificationError(f"{event.value} delivery failed for: {', '.join(failed)}")

        self.logger.info(
            "Processed course alerts",
            notification=event.value,
            course_id=course.id,
            items_count=len(items),
            sinks=len(self.sinks)
        )

    async def _deliver(self, sink: NotificationSink, event: EventKind, course: Course, items: List[Item]) -> bool:
        """Deliver to a single sink, returning whether it succeeded."""
        method = sink.notify_new_items if event == EventKind.NEW_ITEMS else sink.notify_deadlines
        try:
            await asyncio.wait_for(method(course, items), timeout=self.config.notify_timeout_seconds)
            return True
        except asyncio.TimeoutError:
            self.logger.error("Sink timed out", sink=sink.name, notification=event.value, course_id=course.id)
        except Exception as e:
            self.logger.error(
                "Failed to deliver notification",
                sink=sink.name,
                notification=event.value,
                course_id=course.id,
                error=str(e)
            )
        return False
