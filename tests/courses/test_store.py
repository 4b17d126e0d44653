"""
Unit tests for the JSON snapshot store.
Tests placeholder creation, merge-on-save and failure handling.
"""

import json
import os
from unittest.mock import patch

import pytest

from courses.models import Item, full_equal
from courses.store import SnapshotStore, SnapshotStoreError, merge_records


class TestMergeRecords:
    """Test cases for merge_records."""

    def test_no_old_value(self):
        """Test that a missing old value returns the new one."""
        new = {"name": "A", "type": "folder"}

        assert merge_records(new, None) == new

    def test_new_wins_old_fills_gaps(self):
        """Test scalar overlay semantics."""
        new = {"name": "Sheet", "type": "task", "url": "u", "deadline": 2000}
        old = {"name": "Sheet", "type": "task", "url": "u", "deadline": 1000, "description": "old text"}

        merged = merge_records(new, old)

        assert merged["deadline"] == 2000
        assert merged["description"] == "old text"

    def test_children_merged_by_local_key(self):
        """Test that matching children are merged and keep old-only fields."""
        new = {"name": "A", "type": "folder", "children": [
            {"name": "Sheet", "type": "task", "url": "us", "deadline": 5000},
        ]}
        old = {"name": "A", "type": "folder", "children": [
            {"name": "Sheet", "type": "task", "url": "us", "deadline": 5000, "lastCheck": 1000},
        ]}

        merged = merge_records(new, old)

        assert merged["children"] == [
            {"name": "Sheet", "type": "task", "url": "us", "deadline": 5000, "lastCheck": 1000}
        ]

    def test_removed_description_not_refilled(self):
        """Test that a child whose description vanished is stored as fetched."""
        new = {"name": "A", "type": "folder", "children": [
            {"name": "x.pdf", "type": "pdf", "url": "ux"},
        ]}
        old = {"name": "A", "type": "folder", "children": [
            {"name": "x.pdf", "type": "pdf", "url": "ux", "description": "kept"},
        ]}

        merged = merge_records(new, old)

        assert merged["children"] == [
            {"name": "x.pdf", "type": "pdf", "url": "ux"},
            {"name": "x.pdf", "type": "pdf", "url": "ux", "description": "kept"},
        ]

    def test_removed_deadline_not_refilled(self):
        """Test that a child whose deadline vanished is stored as fetched."""
        new = {"name": "A", "type": "folder", "children": [{"name": "Sheet", "type": "task", "url": "us"}]}
        old = {"name": "A", "type": "folder", "children": [
            {"name": "Sheet", "type": "task", "url": "us", "deadline": 5000, "lastCheck": 1000},
        ]}

        merged = merge_records(new, old)

        assert merged["children"][0] == {"name": "Sheet", "type": "task", "url": "us"}
        assert merged["children"][1]["deadline"] == 5000

    def test_unmatched_old_children_are_appended(self):
        """Test that items missing from a fetch are not dropped."""
        new = {"name": "A", "type": "folder", "children": [{"name": "y.pdf", "type": "pdf", "url": "uy"}]}
        old = {"name": "A", "type": "folder", "children": [{"name": "x.pdf", "type": "pdf", "url": "ux"}]}

        merged = merge_records(new, old)

        assert [child["name"] for child in merged["children"]] == ["y.pdf", "x.pdf"]

    def test_inputs_not_mutated(self):
        """Test that merging is pure."""
        new = {"name": "A", "type": "folder", "children": [{"name": "y.pdf", "type": "pdf"}]}
        old = {"name": "A", "type": "folder", "description": "1", "children": [{"name": "x.pdf", "type": "pdf"}]}
        new_copy = json.loads(json.dumps(new))
        old_copy = json.loads(json.dumps(old))

        merge_records(new, old)

        assert new == new_copy
        assert old == old_copy


class TestSnapshotStore:
    """Test cases for SnapshotStore."""

    def test_load_creates_placeholder(self, store, course):
        """Test that a new course gets a persisted placeholder."""
        tree = store.load(course)

        assert full_equal(tree, course.root_folder())
        data = json.loads(store.path.read_text())
        assert data["4242"] == {
            "name": "Linear Algebra",
            "type": "folder",
            "url": course.url,
            "description": "4242",
        }

    def test_corrupt_file_is_empty_store(self, store, course):
        """Test that an unreadable document does not break loading."""
        store.path.write_text("{not json")

        tree = store.load(course)

        assert tree.children == []
        assert json.loads(store.path.read_text())["4242"]["name"] == "Linear Algebra"

    def test_non_object_document_is_empty_store(self, store, course):
        """Test that a document of the wrong shape is ignored."""
        store.path.write_text("[1, 2, 3]")

        assert store.load(course).children == []

    def test_save_then_load(self, store, course, sample_tree):
        """Test that load returns what save merged."""
        store.load(course)
        merged = store.save(course, sample_tree)

        loaded = store.load(course)

        assert full_equal(loaded, Item.from_record(merged))
        assert full_equal(loaded, sample_tree)

    def test_save_is_idempotent(self, store, course, sample_tree):
        """Test that saving the same tree twice changes nothing."""
        first = store.save(course, sample_tree)
        second = store.save(course, sample_tree)

        assert first == second

    def test_save_preserves_absent_fields(self, store, course, make_file):
        """Test that the old version of a changed item survives next to the new one."""
        store.save(course, course.root_folder([make_file("x.pdf", description="slides")]))
        store.save(course, course.root_folder([make_file("x.pdf"), make_file("y.pdf")]))

        loaded = store.load(course)

        assert [(child.name, child.description) for child in loaded.children] == [
            ("x.pdf", None),
            ("y.pdf", None),
            ("x.pdf", "slides"),
        ]

    def test_non_object_entry_is_replaced(self, store, course):
        """Test that an entry of the wrong shape counts as no prior snapshot."""
        store.path.write_text(json.dumps({"4242": ["not", "a", "record"], "1717": {"name": "B"}}))

        tree = store.load(course)

        assert full_equal(tree, course.root_folder())
        data = json.loads(store.path.read_text())
        assert data["4242"]["description"] == "4242"
        assert data["1717"] == {"name": "B"}

    def test_malformed_children_are_replaced(self, store, course):
        """Test that children of the wrong shape count as no prior snapshot."""
        store.path.write_text(json.dumps({"4242": {"name": "A", "type": "folder", "children": ["x.pdf"]}}))

        tree = store.load(course)

        assert tree.children == []

    def test_save_leaves_other_courses(self, store, course, other_course, make_file):
        """Test that only the saved course entry changes."""
        store.save(other_course, other_course.root_folder([make_file("graph.pdf")]))
        store.save(course, course.root_folder([make_file("x.pdf")]))

        data = json.loads(store.path.read_text())
        assert data["1717"]["children"][0]["name"] == "graph.pdf"
        assert data["4242"]["children"][0]["name"] == "x.pdf"

    def test_write_failure_raises(self, store, course, sample_tree):
        """Test that write errors surface as SnapshotStoreError."""
        with patch("courses.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(SnapshotStoreError):
                store.save(course, sample_tree)

        leftovers = [name for name in os.listdir(store.path.parent) if name.endswith(".tmp")]
        assert leftovers == []

    def test_placeholder_write_failure_is_not_fatal(self, store, course):
        """Test that load still returns a placeholder when it cannot be stored."""
        with patch("courses.store.os.replace", side_effect=OSError("read-only")):
            tree = store.load(course)

        assert tree.description == "4242"

    def test_creates_parent_directory(self, tmp_path, course):
        """Test that the store directory is created on first write."""
        store = SnapshotStore(str(tmp_path / "state" / "files.json"))

        store.load(course)

        assert (tmp_path / "state" / "files.json").exists()
