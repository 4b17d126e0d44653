"""
Deadline window tracking.

A leaf is reported once, in the cycle in which its deadline enters the
look-ahead window. Later cycles skip it because the source refreshes
``last_checked_at`` on every poll.
"""

from datetime import datetime, timedelta
from typing import List

from courses.models import Item, leaves

DEFAULT_WINDOW = timedelta(hours=16)


def is_due_soon(item: Item, now: datetime, window: timedelta = DEFAULT_WINDOW) -> bool:
    """Check whether a single leaf's deadline has newly entered the window."""
    if not item.has_deadline:
        return False
    if not (now <= item.deadline <= now + window):
        return False
    if item.last_checked_at is None:
        return True
    return item.deadline > item.last_checked_at + window


def due_soon(previous_tree: Item, now: datetime, window: timedelta = DEFAULT_WINDOW) -> List[Item]:
    """
    Find leaves of the stored tree whose deadline just entered the window.

    Args:
        previous_tree: Tree as stored before the current poll
        now: Reference time of the current cycle
        window: Look-ahead window

    Returns:
        Matching leaves in depth-first order
    """
    return [item for item in leaves(previous_tree) if is_due_soon(item, now, window)]
