"""
Course sources.
Fetches the current item tree of a course and resolves course names.
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog
from asyncio_throttle import Throttler
from bs4 import BeautifulSoup

from .models import Course, Item
from utilities.config import WatcherConfig, config

logger = structlog.get_logger(__name__)

TITLE_TAG_PATTERN = re.compile(r'^\([A-Z]+\)')


class SourceUnavailableError(Exception):
    """Raised when a course snapshot cannot be fetched right now."""


class CourseSource(ABC):
    """Produces the current snapshot of a course on demand."""

    # Bytes received by the most recent fetch
    last_fetch_bytes: int = 0

    @abstractmethod
    async def fetch(self, course: Course) -> Item:
        """
        Fetch the current tree of a course.

        Raises:
            SourceUnavailableError: On transient failures
        """

    @abstractmethod
    async def resolve_course_name(self, course_id: int) -> str:
        """Look up the display name of a course."""


def parse_course_title(page: str) -> str:
    """
    Extract the course name from a course page.

    "(WS) Linear Algebra: Resources" becomes "Linear Algebra".
    """
    soup = BeautifulSoup(page, 'html.parser')
    if soup.title is None or soup.title.string is None:
        raise ValueError("course page has no title")
    title = TITLE_TAG_PATTERN.sub('', soup.title.string.strip())
    title = title.split(':', 1)[0]
    return title.strip()


def stamp_checked(item: Item, now: datetime) -> Item:
    """Return a copy with last_checked_at set on every item carrying a deadline."""
    update: Dict[str, Any] = {}
    if item.deadline is not None:
        update["last_checked_at"] = now
    if item.children:
        update["children"] = [stamp_checked(child, now) for child in item.children]
    return item.model_copy(update=update) if update else item


def build_course_tree(course: Course, payload: Any, now: datetime) -> Item:
    """
    Turn a snapshot payload into the course tree.

    The payload is either a list of item records or an object with a
    "children" list. The root always carries the course identity.
    """
    if isinstance(payload, dict):
        records = payload.get("children") or []
    elif isinstance(payload, list):
        records = payload
    else:
        raise ValueError(f"unexpected snapshot payload: {type(payload).__name__}")

    children: List[Item] = [stamp_checked(Item.from_record(record), now) for record in records]
    return course.root_folder(children)


class HttpCourseSource(CourseSource):
    """
    Course source backed by a JSON snapshot endpoint and the course pages.
    """

    def __init__(self, settings: Optional[WatcherConfig] = None):
        """
        Initialize the source.

        Args:
            settings: Watcher configuration, the global one by default
        """
        self.settings = settings or config
        self.throttler = Throttler(rate_limit=self.settings.rate_limit_per_second)
        self.logger = logger.bind(component="course_source")
        self.last_fetch_bytes = 0

        self.client_config = {
            "timeout": self.settings.request_timeout,
            "headers": self.settings.get_headers(),
            "cookies": self.settings.get_cookies(),
            "follow_redirects": True,
        }

    async def fetch(self, course: Course) -> Item:
        """Fetch and parse the course snapshot."""
        url = self.settings.snapshot_url_template.format(id=course.id)
        self.last_fetch_bytes = 0

        try:
            async with httpx.AsyncClient(**self.client_config) as client:
                response = await self._make_request_with_retry(client, url)
        except httpx.HTTPError as e:
            raise SourceUnavailableError(f"Failed to fetch course {course.id}: {e}") from e

        self.last_fetch_bytes = len(response.content)

        try:
            payload = json.loads(response.text)
            return build_course_tree(course, payload, datetime.now(timezone.utc))
        except (KeyError, TypeError, ValueError) as e:
            raise SourceUnavailableError(f"Invalid snapshot for course {course.id}: {e}") from e

    async def resolve_course_name(self, course_id: int) -> str:
        """Read the course name from the title of its resources page."""
        url = self.settings.course_resources_url_template.format(id=course_id)
        async with httpx.AsyncClient(**self.client_config) as client:
            response = await self._make_request_with_retry(client, url)
        return parse_course_title(response.text)

    async def _make_request_with_retry(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        """
        Make HTTP request with retry logic and exponential backoff.

        Args:
            client: HTTP client instance
            url: URL to request

        Returns:
            HTTP response
        """
        attempts = self.settings.retry_attempts

        for attempt in range(attempts + 1):
            try:
                async with self.throttler:
                    response = await client.get(url)
                response.raise_for_status()
                return response

            except httpx.HTTPError as e:
                if attempt >= attempts:
                    self.logger.error("Request failed", url=url, attempts=attempts + 1, error=str(e))
                    raise

                delay = self.settings.retry_delay * (2 ** attempt)
                self.logger.warning(
                    "Retrying request",
                    url=url,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    delay_seconds=delay
                )
                await asyncio.sleep(delay)


async def resolve_courses(
    source: CourseSource,
    course_ids: List[int],
    url_template: str
) -> List[Course]:
    """
    Register courses, resolving each name once.

    A course whose name cannot be resolved is still registered under a
    generic name so that it keeps being polled.
    """
    courses = []
    for course_id in course_ids:
        try:
            name = await source.resolve_course_name(course_id)
        except (httpx.HTTPError, ValueError) as e:
            name = f"Course {course_id}"
            logger.warning("Failed to resolve course name", course_id=course_id, fallback=name, error=str(e))
        courses.append(Course.create(course_id, name, url_template))
    return courses
