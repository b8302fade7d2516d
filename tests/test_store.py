"""
Tests for the document stores.
"""

import pytest

from intakeflow.errors import ConcurrentUpdateError, NotFoundError, StoreUnavailableError
from intakeflow.workflow import MemoryDocumentStore, SQLiteDocumentStore, apply_field_paths

from conftest import run


DOC = {
    "userId": "user_001",
    "modules": [{"id": "recon"}],
    "progressTracking": {"overallProgress": 0, "milestones": []},
}


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryDocumentStore()
    return SQLiteDocumentStore(tmp_path / "dashboards.db")


class TestApplyFieldPaths:
    def test_replaces_nested_key_only(self):
        updated = apply_field_paths(DOC, {"progressTracking.overallProgress": 40})
        assert updated["progressTracking"] == {"overallProgress": 40, "milestones": []}
        assert updated["modules"] == DOC["modules"]

    def test_does_not_mutate_input(self):
        apply_field_paths(DOC, {"modules": []})
        assert DOC["modules"] == [{"id": "recon"}]

    def test_creates_intermediate_objects(self):
        updated = apply_field_paths({}, {"a.b.c": 1})
        assert updated == {"a": {"b": {"c": 1}}}


class TestDocumentStore:
    """Behavior shared by every store implementation."""

    def test_get_missing(self, any_store):
        assert run(any_store.get("nobody")) is None

    def test_create_once(self, any_store):
        assert run(any_store.create("user_001", DOC)) is True
        assert run(any_store.create("user_001", {"other": True})) is False

        stored = run(any_store.get("user_001"))
        assert stored.data == DOC
        assert stored.revision == 1

    def test_update_bumps_revision(self, any_store):
        run(any_store.create("user_001", DOC))
        revision = run(any_store.update(
            "user_001", {"progressTracking.overallProgress": 10}, expected_revision=1
        ))

        stored = run(any_store.get("user_001"))
        assert revision == 2
        assert stored.revision == 2
        assert stored.data["progressTracking"]["overallProgress"] == 10
        assert stored.data["modules"] == DOC["modules"]

    def test_update_stale_revision(self, any_store):
        run(any_store.create("user_001", DOC))
        run(any_store.update("user_001", {"modules": []}))

        with pytest.raises(ConcurrentUpdateError):
            run(any_store.update("user_001", {"modules": [{"id": "x"}]}, expected_revision=1))
        assert run(any_store.get("user_001")).data["modules"] == []

    def test_update_missing(self, any_store):
        with pytest.raises(NotFoundError):
            run(any_store.update("nobody", {"modules": []}))

    def test_set_replaces_document(self, any_store):
        run(any_store.create("user_001", DOC))
        assert run(any_store.set("user_001", {"userId": "user_001"})) == 2
        assert run(any_store.get("user_001")).data == {"userId": "user_001"}

    def test_set_creates(self, any_store):
        assert run(any_store.set("user_002", DOC, expected_revision=0)) == 1

    def test_set_stale_revision(self, any_store):
        run(any_store.create("user_001", DOC))
        with pytest.raises(ConcurrentUpdateError):
            run(any_store.set("user_001", DOC, expected_revision=5))


class TestMemoryDocumentStore:
    def test_counts_writes(self):
        store = MemoryDocumentStore()
        run(store.create("user_001", DOC))
        run(store.create("user_001", DOC))
        run(store.update("user_001", {"modules": []}))
        assert store.write_count == 2

    def test_returns_copies(self):
        store = MemoryDocumentStore()
        run(store.create("user_001", DOC))
        run(store.get("user_001")).data["modules"].clear()
        assert run(store.get("user_001")).data["modules"] == [{"id": "recon"}]


class TestSQLiteDocumentStore:
    def test_persists_across_instances(self, tmp_path):
        db_path = tmp_path / "dashboards.db"
        run(SQLiteDocumentStore(db_path).create("user_001", DOC))

        stored = run(SQLiteDocumentStore(db_path).get("user_001"))
        assert stored.data == DOC

    def test_creates_parent_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "dashboards.db"
        SQLiteDocumentStore(db_path)
        assert db_path.exists()

    def test_unusable_path(self, tmp_path):
        with pytest.raises(StoreUnavailableError):
            SQLiteDocumentStore(tmp_path)
