"""Tests for the task storage backends."""

import sqlite3

import pytest

from yabu.errors import StorageError
from yabu.models.task import Priority, Task, TaskId
from yabu.services.storage import InMemoryTaskStore, SqliteTaskStore, create_task_store


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Each test in TestTaskStore runs against both backends."""
    if request.param == "memory":
        return InMemoryTaskStore()
    return SqliteTaskStore(tmp_path / "tasks.db")


class TestTaskStore:
    """Behaviour shared by every backend."""

    def test_empty(self, store):
        assert store.all() == []
        assert store.get(TaskId(1)) is None

    def test_insert_assigns_increasing_ids(self, store, sample_tasks_bulk):
        ids = [store.insert(task) for task in sample_tasks_bulk]

        assert ids == [1, 2, 3]
        assert [t.id for t in store.all()] == [1, 2, 3]

    def test_insert_round_trips_every_field(self, store, sample_task):
        task_id = store.insert(sample_task)
        stored = store.get(task_id)

        assert stored.id == task_id
        assert stored.description == "buy milk"
        assert stored.priority == Priority.HIGH
        assert stored.complete is False
        assert stored.due_date == sample_task.due_date
        assert stored.due_date.utcoffset() == sample_task.due_date.utcoffset()

    def test_put_replaces_row(self, store, sample_task):
        task_id = store.insert(sample_task)
        store.put(task_id, sample_task.model_copy(update={"complete": True, "due_date": None}))

        stored = store.get(task_id)
        assert stored.complete is True
        assert stored.due_date is None

    def test_delete(self, store, sample_tasks_bulk):
        ids = [store.insert(task) for task in sample_tasks_bulk]
        store.delete(ids[1])

        assert store.get(ids[1]) is None
        assert [t.description for t in store.all()] == ["Task 1", "Task 3"]

    def test_delete_missing_is_noop(self, store):
        store.delete(TaskId(99))

        assert store.all() == []

    def test_ids_are_never_reused(self, store, sample_tasks_bulk):
        first = store.insert(sample_tasks_bulk[0])
        second = store.insert(sample_tasks_bulk[1])
        store.delete(second)

        third = store.insert(sample_tasks_bulk[2])

        assert first == 1
        assert third == 3


class TestSqliteTaskStore:
    """SQLite-specific behaviour."""

    def test_persists_across_instances(self, tmp_path, sample_task):
        path = tmp_path / "tasks.db"
        task_id = SqliteTaskStore(path).insert(sample_task)

        reopened = SqliteTaskStore(path)
        assert reopened.get(task_id).description == "buy milk"
        assert reopened.count() == 1

    def test_creates_parent_directory(self, tmp_path):
        store = SqliteTaskStore(tmp_path / "nested" / "dir" / "tasks.db")

        assert store.db_path.parent.is_dir()

    def test_priority_stored_as_rank(self, sqlite_store):
        task_id = sqlite_store.insert(Task(description="x", priority=Priority.CRITICAL))

        with sqlite3.connect(sqlite_store.db_path) as conn:
            (rank,) = conn.execute("SELECT priority FROM tasks WHERE task_id = ?", (task_id,)).fetchone()
        assert rank == 4

    def test_corrupt_priority_is_storage_error(self, sqlite_store):
        task_id = sqlite_store.insert(Task(description="x"))
        with sqlite3.connect(sqlite_store.db_path) as conn:
            conn.execute("UPDATE tasks SET priority = 9 WHERE task_id = ?", (task_id,))

        with pytest.raises(StorageError, match="corrupt task row"):
            sqlite_store.get(task_id)

    def test_corrupt_due_date_is_storage_error(self, sqlite_store):
        task_id = sqlite_store.insert(Task(description="x"))
        with sqlite3.connect(sqlite_store.db_path) as conn:
            conn.execute("UPDATE tasks SET due_date = 'someday' WHERE task_id = ?", (task_id,))

        with pytest.raises(StorageError):
            sqlite_store.all()

    def test_unopenable_database_is_storage_error(self, tmp_path):
        # A directory cannot be opened as a database file
        (tmp_path / "db").mkdir()

        with pytest.raises(StorageError):
            SqliteTaskStore(tmp_path / "db")


class TestCreateTaskStore:
    """Test backend selection from settings."""

    def test_memory(self, test_settings):
        assert isinstance(create_task_store(test_settings), InMemoryTaskStore)

    def test_sqlite(self, test_settings):
        settings = test_settings.model_copy(update={"storage_backend": "sqlite"})
        store = create_task_store(settings)

        assert isinstance(store, SqliteTaskStore)
        assert store.db_path == test_settings.database_path
