"""
Pydantic models for course snapshots.
Implements the Item tree, the Course identity and the record format
used by the snapshot store.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Serializes to -1: the item is known to have no deadline
NO_DEADLINE = EPOCH - timedelta(milliseconds=1)

FOLDER = "folder"

DEFAULT_COURSE_URL_TEMPLATE = "https://moodle.rwth-aachen.de/course/view.php?id={id}"


def to_millis(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_millis(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=int(value))


class Item(BaseModel):
    """
    One node of a course snapshot: a file, task, test, page or folder.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Display name of the item")
    kind: str = Field(..., alias="type", description="Item kind (folder, pdf, task, test, page, ...)")
    location_ref: Optional[str] = Field(default=None, alias="url", description="Where the content can be retrieved")
    description: Optional[str] = Field(default=None, description="Free-text description")
    deadline: Optional[datetime] = Field(default=None, description="Absolute deadline, NO_DEADLINE if none")
    last_checked_at: Optional[datetime] = Field(
        default=None, alias="lastCheck", description="When the deadline was last observed by a poll"
    )
    children: List["Item"] = Field(default_factory=list, description="Child items (folders only)")

    @field_validator('deadline', 'last_checked_at')
    @classmethod
    def ensure_aware(cls, v):
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode='after')
    def validate_leaf_children(self):
        """Only folders may carry children."""
        if self.children and self.kind != FOLDER:
            raise ValueError(f"item of kind '{self.kind}' cannot have children")
        return self

    @property
    def has_deadline(self) -> bool:
        """True when a real deadline is set (neither unset nor NO_DEADLINE)."""
        return self.deadline is not None and self.deadline != NO_DEADLINE

    def local_key(self) -> Tuple:
        """Fields that make two nodes "the same node", ignoring descendants."""
        return (self.name, self.kind, self.location_ref, self.description, self.deadline)

    def to_record(self) -> Dict[str, Any]:
        """
        Serialize to the nested record format of the snapshot file.

        Timestamps become epoch milliseconds, unset fields and empty
        children are omitted.
        """
        record: Dict[str, Any] = {"name": self.name, "type": self.kind}
        if self.location_ref is not None:
            record["url"] = self.location_ref
        if self.description is not None:
            record["description"] = self.description
        if self.deadline is not None:
            record["deadline"] = to_millis(self.deadline)
        if self.last_checked_at is not None:
            record["lastCheck"] = to_millis(self.last_checked_at)
        if self.children:
            record["children"] = [child.to_record() for child in self.children]
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Item":
        """Build an item tree from a snapshot record."""
        deadline = record.get("deadline")
        if deadline == "-":
            deadline = -1
        last_check = record.get("lastCheck")
        return cls(
            name=record["name"],
            kind=record.get("type", FOLDER),
            location_ref=record.get("url"),
            description=record.get("description"),
            deadline=from_millis(deadline) if deadline is not None else None,
            last_checked_at=from_millis(last_check) if last_check is not None else None,
            children=[cls.from_record(child) for child in record.get("children") or []],
        )


class Course(BaseModel):
    """Identity of a polled course."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, description="Course id")
    name: str = Field(..., description="Human readable course name")
    url: str = Field(..., description="Course page URL, derived from the id")

    @classmethod
    def create(cls, course_id: int, name: str, url_template: str = DEFAULT_COURSE_URL_TEMPLATE) -> "Course":
        """Create a course whose URL is derived from its id."""
        return cls(id=course_id, name=name, url=url_template.format(id=course_id))

    @property
    def key(self) -> str:
        """Snapshot store key."""
        return str(self.id)

    def root_folder(self, children: Optional[List[Item]] = None) -> Item:
        """Root node of this course's tree, carrying the course identity."""
        return Item(
            name=self.name,
            kind=FOLDER,
            location_ref=self.url,
            description=str(self.id),
            children=list(children or []),
        )


Item.model_rebuild()


def local_equal(a: Item, b: Item) -> bool:
    """Compare two nodes ignoring children and last_checked_at."""
    return a.local_key() == b.local_key()


def full_equal(a: Item, b: Item) -> bool:
    """
    Local equality plus order-independent multiset equality of children,
    applied recursively.
    """
    if not local_equal(a, b) or len(a.children) != len(b.children):
        return False
    unmatched = list(b.children)
    for child in a.children:
        for index, candidate in enumerate(unmatched):
            if full_equal(child, candidate):
                del unmatched[index]
                break
        else:
            return False
    return True


def leaves(tree: Item) -> List[Item]:
    """Every item without children, depth-first."""
    if not tree.children:
        return [tree]
    result: List[Item] = []
    for child in tree.children:
        result.extend(leaves(child))
    return result

