"""Task service: applies protocol requests to the task store."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Iterator, List, Optional

from ..models.task import Task, TaskDelta, TaskId
from ..schemas import (
    AddRequest,
    ErrorResponse,
    ListRequest,
    Message,
    NothingResponse,
    RemoveRequest,
    Response,
    TaskDoesntExist,
    TasksResponse,
    UpdateRequest,
)
from .storage import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class _RowLock:
    lock: Lock = field(default_factory=Lock)
    users: int = 0


class TaskService:
    """Dispatches requests to a ``TaskStore``.

    Updates to the same task id are serialized so a read-modify-write cycle
    can never lose another connection's update; different ids never wait on
    each other. Storage failures are not caught here.
    """

    def __init__(self, store: TaskStore):
        """Initialize the task service.

        Args:
            store: Storage backend shared by every connection
        """
        self._store = store
        self._row_locks: Dict[int, _RowLock] = {}
        self._row_locks_guard = Lock()
        logger.info(f"Task service initialized with {type(store).__name__}")

    @property
    def store(self) -> TaskStore:
        return self._store

    @contextmanager
    def _locked_row(self, task_id: TaskId) -> Iterator[None]:
        with self._row_locks_guard:
            row_lock = self._row_locks.get(task_id)
            if row_lock is None:
                row_lock = self._row_locks[task_id] = _RowLock()
            row_lock.users += 1

        try:
            with row_lock.lock:
                yield
        finally:
            with self._row_locks_guard:
                row_lock.users -= 1
                if row_lock.users == 0:
                    del self._row_locks[task_id]

    def add_task(self, task: Task) -> TaskId:
        """Store a new task, ignoring any id it already carries.

        Returns:
            The id assigned by the store
        """
        task_id = self._store.insert(task.model_copy(update={"id": None}))
        logger.info(f"Created task {task_id}: {task.description}")
        return task_id

    def list_tasks(self) -> List[Task]:
        tasks = self._store.all()
        logger.debug(f"Listed {len(tasks)} tasks")
        return tasks

    def update_task(self, task_id: TaskId, delta: TaskDelta) -> Optional[Task]:
        """Apply a delta to a stored task.

        Args:
            task_id: Task ID
            delta: Fields to change

        Returns:
            Updated task if found, None otherwise
        """
        with self._locked_row(task_id):
            task = self._store.get(task_id)
            if task is None:
                logger.warning(f"Task {task_id} not found for update")
                return None

            updated = delta.apply_to(task)
            self._store.put(task_id, updated)

        logger.info(f"Updated task {task_id}: changed {', '.join(delta.changed_fields()) or 'nothing'}")
        return updated

    def remove_task(self, task_id: TaskId) -> None:
        """Delete a task; deleting a missing id is not an error."""
        with self._locked_row(task_id):
            self._store.delete(task_id)
        logger.info(f"Removed task {task_id}")

    def handle(self, message: Message) -> Response:
        """Produce exactly one response for one request."""
        if isinstance(message, AddRequest):
            self.add_task(message.task)
            return NothingResponse()
        if isinstance(message, ListRequest):
            return TasksResponse(tasks=self.list_tasks())
        if isinstance(message, UpdateRequest):
            if self.update_task(message.task_id, message.delta) is None:
                return ErrorResponse(error=TaskDoesntExist(task_id=message.task_id))
            return NothingResponse()
        if isinstance(message, RemoveRequest):
            self.remove_task(message.task_id)
            return NothingResponse()
        raise TypeError(f"not a request: {message!r}")


# Global task service instance - initialized when the server starts
_task_service: Optional[TaskService] = None


def get_task_service() -> Optional[TaskService]:
    """Get the global task service instance.

    Returns:
        Task service instance or None if not initialized
    """
    return _task_service


def initialize_task_service(store: TaskStore) -> TaskService:
    """Initialize the global task service instance.

    Args:
        store: Storage backend the service writes to

    Returns:
        Initialized task service
    """
    global _task_service
    _task_service = TaskService(store)
    return _task_service
