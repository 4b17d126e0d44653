"""
Unit tests for course and item models.
Tests equality semantics, leaf flattening and record serialization.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from courses.models import (
    NO_DEADLINE, Course, Item, from_millis, full_equal, leaves, local_equal, to_millis
)


class TestItem:
    """Test cases for the Item model."""

    def test_create_with_record_aliases(self):
        """Test that record field names are accepted."""
        item = Item(name="sheet.pdf", type="pdf", url="https://example.com/sheet.pdf")

        assert item.kind == "pdf"
        assert item.location_ref == "https://example.com/sheet.pdf"
        assert item.children == []

    def test_non_folder_cannot_have_children(self, make_file):
        """Test that only folders carry children."""
        with pytest.raises(ValidationError):
            Item(name="sheet.pdf", kind="pdf", children=[make_file("nested.pdf")])

    def test_naive_deadline_is_utc(self):
        """Test that naive timestamps are interpreted as UTC."""
        item = Item(name="Task", kind="task", deadline=datetime(2024, 1, 1, 12, 0))

        assert item.deadline == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_has_deadline(self, now):
        """Test distinction between unset, no deadline and a real deadline."""
        assert not Item(name="a", kind="task").has_deadline
        assert not Item(name="b", kind="task", deadline=NO_DEADLINE).has_deadline
        assert Item(name="c", kind="task", deadline=now).has_deadline


class TestMillis:
    """Test cases for epoch millisecond conversion."""

    def test_no_deadline_is_minus_one(self):
        """Test that the no-deadline sentinel serializes to -1."""
        assert to_millis(NO_DEADLINE) == -1
        assert from_millis(-1) == NO_DEADLINE

    def test_millisecond_precision(self):
        """Test exact conversion of a real timestamp."""
        value = datetime(2024, 11, 4, 12, 0, 0, 123000, tzinfo=timezone.utc)

        assert to_millis(value) == 1730721600123
        assert from_millis(1730721600123) == value


class TestRecords:
    """Test cases for record serialization."""

    def test_to_record_omits_unset_fields(self, make_file):
        """Test that absent fields and empty children are left out."""
        record = make_file("notes.pdf").to_record()

        assert record == {
            "name": "notes.pdf",
            "type": "pdf",
            "url": "https://moodle.example.com/mod/resource/notes.pdf",
        }

    def test_record_round_trip(self, sample_tree):
        """Test that a tree survives serialization unchanged."""
        restored = Item.from_record(sample_tree.to_record())

        assert full_equal(restored, sample_tree)
        assert restored.children[1].last_checked_at == sample_tree.children[1].last_checked_at

    def test_from_record_dash_deadline(self):
        """Test that "-" is read as no deadline."""
        item = Item.from_record({"name": "Quiz", "type": "test", "deadline": "-"})

        assert item.deadline == NO_DEADLINE

    def test_from_record_defaults_to_folder(self):
        """Test that a record without type is a folder."""
        item = Item.from_record({"name": "Course", "children": [{"name": "a.pdf", "type": "pdf"}]})

        assert item.kind == "folder"
        assert item.children[0].name == "a.pdf"


class TestCourse:
    """Test cases for the Course model."""

    def test_url_derived_from_id(self):
        """Test URL derivation from the default template."""
        course = Course.create(123, "Analysis")

        assert course.url == "https://moodle.rwth-aachen.de/course/view.php?id=123"
        assert course.key == "123"

    def test_custom_template(self):
        """Test URL derivation from a custom template."""
        course = Course.create(7, "Analysis", "https://lms.example.com/c/{id}")

        assert course.url == "https://lms.example.com/c/7"

    def test_root_folder_identity(self, course, make_file):
        """Test that the root folder carries the course identity."""
        root = course.root_folder([make_file("a.pdf")])

        assert root.name == "Linear Algebra"
        assert root.kind == "folder"
        assert root.location_ref == course.url
        assert root.description == "4242"
        assert len(root.children) == 1

    def test_course_is_immutable(self, course):
        """Test that courses cannot be modified after registration."""
        with pytest.raises(ValidationError):
            course.name = "Other"


class TestEquality:
    """Test cases for local and full equality."""

    def test_local_equal_ignores_children_and_last_check(self, make_folder, make_file, now):
        """Test that local equality only looks at the node itself."""
        a = make_folder("Week 1", [make_file("a.pdf")], last_checked_at=now)
        b = make_folder("Week 1", [make_file("b.pdf")])

        assert local_equal(a, b)
        assert not full_equal(a, b)

    def test_local_equal_detects_deadline_change(self, make_file, now):
        """Test that a moved deadline makes nodes different."""
        a = make_file("Sheet", kind="task", deadline=now)
        b = make_file("Sheet", kind="task", deadline=now + timedelta(hours=1))

        assert not local_equal(a, b)

    def test_full_equal_is_order_independent(self, make_folder, make_file):
        """Test multiset semantics of children."""
        a = make_folder("Week 1", [make_file("a.pdf"), make_file("b.pdf")])
        b = make_folder("Week 1", [make_file("b.pdf"), make_file("a.pdf")])

        assert full_equal(a, b)

    def test_full_equal_respects_multiplicity(self, make_folder, make_file):
        """Test that duplicate children are counted."""
        a = make_folder("Week 1", [make_file("a.pdf"), make_file("a.pdf")])
        b = make_folder("Week 1", [make_file("a.pdf"), make_file("b.pdf")])

        assert not full_equal(a, b)


class TestLeaves:
    """Test cases for leaf flattening."""

    def test_depth_first_order(self, sample_tree):
        """Test that leaves come out depth-first."""
        names = [item.name for item in leaves(sample_tree)]

        assert names == ["lecture01.pdf", "lecture02.pdf", "Exercise Sheet 1", "Quiz 1"]

    def test_empty_folder_is_leaf(self, course, make_folder):
        """Test that an empty folder counts as a leaf."""
        tree = course.root_folder([make_folder("Empty")])

        assert [item.name for item in leaves(tree)] == ["Empty"]

    def test_childless_root(self, course):
        """Test that a childless root yields itself."""
        root = course.root_folder()

        assert leaves(root) == [root]
