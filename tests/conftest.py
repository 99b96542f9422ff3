"""Shared test fixtures and configuration for the test suite."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add the parent directory to the path for imports
import sys

sys.path.append(str(Path(__file__).parent.parent))

from yabu.config import Settings
from yabu.models.task import Priority, Task
from yabu.services.storage import InMemoryTaskStore, SqliteTaskStore
from yabu.services.task_service import TaskService


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings backed by a temporary database."""
    return Settings(
        server_host="127.0.0.1",
        server_port=0,
        server_url="yabu://127.0.0.1:11180",
        storage_backend="memory",
        database_path=tmp_path / "yabuserver.db",
        connection_pool_size=2,
        log_level="DEBUG",
    )


@pytest.fixture
def due_date() -> datetime:
    """A due date with a non-UTC offset."""
    return datetime(2024, 5, 1, 17, 30, tzinfo=timezone(timedelta(hours=2)))


@pytest.fixture
def sample_task(due_date) -> Task:
    """Create a sample task for testing."""
    return Task(description="buy milk", priority=Priority.HIGH, due_date=due_date)


@pytest.fixture
def memory_store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def sqlite_store(tmp_path) -> SqliteTaskStore:
    """Create an SQLite store in a temporary directory."""
    return SqliteTaskStore(tmp_path / "tasks.db")


@pytest.fixture
def task_service(memory_store) -> TaskService:
    """Create a task service instance for testing."""
    return TaskService(memory_store)


# Test data fixtures
@pytest.fixture
def sample_tasks_bulk():
    """Sample bulk tasks data for testing."""
    return [
        Task(description="Task 1"),
        Task(description="Task 2", priority=Priority.LOW),
        Task(description="Task 3", complete=True, priority=Priority.CRITICAL),
    ]
