"""
JSON-file snapshot store.
Keeps the last known item tree per course and merges new snapshots into
the stored ones instead of replacing them.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

from .models import Course, Item

logger = structlog.get_logger(__name__)


class SnapshotStoreError(Exception):
    """Raised when the snapshot file cannot be written."""


def _local_key(record: Dict[str, Any]) -> Tuple:
    return tuple(record.get(key) for key in ("name", "type", "url", "description", "deadline"))


def merge_records(new: Dict[str, Any], old: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Overlay ``new`` onto ``old``: new values win, old values fill the gaps.

    Children are paired by their local key (name, type, url, description,
    deadline), first match wins. Paired children are merged recursively,
    unpaired new children are kept as they are and unpaired old children
    are appended so history is never dropped. A node whose description or
    deadline changed is therefore stored in its new form, next to the old
    one, and keeps matching later fetches.
    """
    if not old:
        return dict(new)

    merged = dict(new)
    for key, value in old.items():
        if key != "children" and key not in merged:
            merged[key] = value

    new_children: List[Dict[str, Any]] = list(new.get("children") or [])
    old_children: List[Dict[str, Any]] = list(old.get("children") or [])
    if not new_children and not old_children:
        return merged

    children = []
    for child in new_children:
        for index, candidate in enumerate(old_children):
            if _local_key(child) == _local_key(candidate):
                del old_children[index]
                children.append(merge_records(child, candidate))
                break
        else:
            children.append(dict(child))
    children.extend(old_children)
    merged["children"] = children
    return merged


class SnapshotStore:
    """
    File-backed mapping from course id to its last known tree.
    """

    def __init__(self, path: str = "files.json"):
        """
        Initialize the snapshot store.

        Args:
            path: Location of the JSON document
        """
        self.path = Path(path)
        self.logger = logger.bind(component="snapshot_store", path=str(self.path))

    def _read(self) -> Dict[str, Any]:
        """Read the whole document; any failure counts as an empty store."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("snapshot document is not an object")
            return data
        except (OSError, ValueError) as e:
            self.logger.warning("Failed to read snapshot store, starting empty", error=str(e))
            return {}

    def _write(self, data: Dict[str, Any]) -> None:
        """Replace the document atomically."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise SnapshotStoreError(f"Failed to write {self.path}: {e}") from e

    def load(self, course: Course) -> Item:
        """
        Return the stored tree for a course.

        A course without an entry gets an empty placeholder folder, which
        is persisted before it is returned.
        """
        data = self._read()
        record = data.get(course.key)
        if record is not None:
            try:
                if not isinstance(record, dict):
                    raise TypeError(f"snapshot entry is a {type(record).__name__}, not an object")
                return Item.from_record(record)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self.logger.warning(
                    "Stored snapshot is invalid, replacing with placeholder",
                    course_id=course.id,
                    error=str(e)
                )

        placeholder = course.root_folder()
        data[course.key] = placeholder.to_record()
        try:
            self._write(data)
            self.logger.info("Created snapshot placeholder", course_id=course.id)
        except SnapshotStoreError as e:
            self.logger.error("Failed to persist snapshot placeholder", course_id=course.id, error=str(e))
        return placeholder

    def save(self, course: Course, tree: Item) -> Dict[str, Any]:
        """
        Merge a freshly fetched tree into the stored entry and persist it.

        Returns:
            The merged record that was written

        Raises:
            SnapshotStoreError: If the document cannot be written
        """
        data = self._read()
        merged = merge_records(tree.to_record(), data.get(course.key))
        data[course.key] = merged
        self._write(data)
        self.logger.debug("Saved snapshot", course_id=course.id)
        return merged

