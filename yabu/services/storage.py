"""Task storage backends.

The server only needs row-level operations keyed by task id; both backends
below expose the same ``TaskStore`` interface.
"""

import contextlib
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Dict, Iterator, List, Optional, Protocol, Union

from ..config import Settings
from ..errors import StorageError
from ..models.task import Priority, Task, TaskId

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """Row operations the task service relies on.

    Every method may raise ``StorageError``; none of them raise business
    errors.
    """

    def insert(self, task: Task) -> TaskId: ...

    def get(self, task_id: TaskId) -> Optional[Task]: ...

    def all(self) -> List[Task]: ...

    def put(self, task_id: TaskId, task: Task) -> None: ...

    def delete(self, task_id: TaskId) -> None: ...


class InMemoryTaskStore:
    """Process-local store; ids increase monotonically and are never reused."""

    def __init__(self):
        self._tasks: Dict[TaskId, Task] = {}
        self._next_id = 1
        self._lock = Lock()
        logger.info("Task store initialized with in-memory storage")

    def insert(self, task: Task) -> TaskId:
        with self._lock:
            task_id = TaskId(self._next_id)
            self._next_id += 1
            self._tasks[task_id] = task.model_copy(update={"id": task_id})
            return task_id

    def get(self, task_id: TaskId) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    def all(self) -> List[Task]:
        with self._lock:
            return list(self._tasks.values())

    def put(self, task_id: TaskId, task: Task) -> None:
        with self._lock:
            self._tasks[task_id] = task.model_copy(update={"id": task_id})

    def delete(self, task_id: TaskId) -> None:
        with self._lock:
            self._tasks.pop(task_id, None)


class SqliteTaskStore:
    """
    SQLite task store.

    Thread-safety:
    - each method opens its own SQLite connection
    - ids come from AUTOINCREMENT, so a deleted id is never handed out again
    """

    def __init__(self, db_path: Union[str, Path] = "yabuserver.db"):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info(f"Task store ready db={self._db_path} total={self.count()}")

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StorageError(f"could not open database {self._db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("PRAGMA journal_mode=WAL")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"database error: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    complete INTEGER NOT NULL CHECK(complete IN (0, 1)),
                    description TEXT NOT NULL,
                    priority INTEGER NOT NULL,
                    due_date TEXT
                )
                """
            )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        try:
            due_text = row["due_date"]
            return Task(
                id=TaskId(row["task_id"]),
                complete=bool(row["complete"]),
                description=str(row["description"]),
                priority=Priority.from_rank(int(row["priority"])),
                due_date=datetime.fromisoformat(due_text) if due_text is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise StorageError(f"corrupt task row {row['task_id']}: {e}") from e

    @staticmethod
    def _task_params(task: Task) -> tuple:
        return (
            int(task.complete),
            task.description,
            task.priority.rank,
            task.due_date.isoformat() if task.due_date is not None else None,
        )

    # ---- public API ----

    def count(self) -> int:
        with self._connect() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def insert(self, task: Task) -> TaskId:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO tasks (complete, description, priority, due_date) VALUES (?, ?, ?, ?)",
                self._task_params(task),
            )
            return TaskId(cur.lastrowid)

    def get(self, task_id: TaskId) -> Optional[Task]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE task_id = ?", (int(task_id),)).fetchone()
        return self._row_to_task(row) if row else None

    def all(self) -> List[Task]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM tasks ORDER BY task_id ASC").fetchall()
        return [self._row_to_task(r) for r in rows]

    def put(self, task_id: TaskId, task: Task) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE tasks
                SET complete = ?, description = ?, priority = ?, due_date = ?
                WHERE task_id = ?
                """,
                (*self._task_params(task), int(task_id)),
            )

    def delete(self, task_id: TaskId) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM tasks WHERE task_id = ?", (int(task_id),))


def create_task_store(settings: Settings) -> TaskStore:
    """Build the storage backend named in the settings."""
    if settings.storage_backend == "memory":
        return InMemoryTaskStore()
    if settings.storage_backend == "sqlite":
        return SqliteTaskStore(settings.database_path)
    raise ValueError(f"unknown storage backend {settings.storage_backend!r}")
