"""Request/response schemas: the TCP wire vocabulary and the HTTP API."""

from datetime import datetime
from typing import ClassVar, List, Optional, Union

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from .models.task import Changed, Priority, Task, TaskDelta, TaskId


# Business errors that may cross the wire
class TaskDoesntExist(BaseModel):
    """The task named in an update does not exist."""
    model_config = ConfigDict(frozen=True)
    tag: ClassVar[str] = "TaskDoesntExist"

    task_id: TaskId

    def __str__(self) -> str:
        return f"task {self.task_id} does not exist"


class UnknownPriority(BaseModel):
    """A priority name could not be parsed."""
    model_config = ConfigDict(frozen=True)
    tag: ClassVar[str] = "UnknownPriority"

    priority: str

    def __str__(self) -> str:
        return f"unknown priority {self.priority}"


RpcError = Union[TaskDoesntExist, UnknownPriority]


# Requests
class AddRequest(BaseModel):
    """Store a new task; the server assigns its id."""
    model_config = ConfigDict(frozen=True)
    tag: ClassVar[str] = "Add"

    task: Task


class ListRequest(BaseModel):
    """Fetch every stored task."""
    model_config = ConfigDict(frozen=True)
    tag: ClassVar[str] = "List"


class UpdateRequest(BaseModel):
    """Apply a partial update to one task."""
    model_config = ConfigDict(frozen=True)
    tag: ClassVar[str] = "Update"

    task_id: TaskId
    delta: TaskDelta = Field(default_factory=TaskDelta)


class RemoveRequest(BaseModel):
    """Delete one task."""
    model_config = ConfigDict(frozen=True)
    tag: ClassVar[str] = "Remove"

    task_id: TaskId


Message = Union[AddRequest, ListRequest, UpdateRequest, RemoveRequest]


# Responses
class NothingResponse(BaseModel):
    """The request succeeded and there is nothing to return."""
    model_config = ConfigDict(frozen=True)
    tag: ClassVar[str] = "Nothing"


class TasksResponse(BaseModel):
    """The stored tasks, in storage order."""
    model_config = ConfigDict(frozen=True)
    tag: ClassVar[str] = "Tasks"

    tasks: List[Task] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """The request failed for a business reason."""
    model_config = ConfigDict(frozen=True)
    tag: ClassVar[str] = "Error"

    error: RpcError


Response = Union[NothingResponse, TasksResponse, ErrorResponse]


# HTTP API schemas
class TaskCreate(BaseModel):
    """Schema for creating a new task."""
    description: str = Field(..., min_length=1, description="Task description")
    priority: Optional[str] = Field(None, description="Priority name, e.g. 'high'")
    due_date: Optional[AwareDatetime] = Field(None, description="Due date with a UTC offset")

    def to_task(self) -> Task:
        """Build the task to send; raises ``UnknownPriorityError``."""
        priority = Priority.parse(self.priority) if self.priority is not None else Priority.MEDIUM
        return Task(description=self.description, priority=priority, due_date=self.due_date)


class TaskUpdate(BaseModel):
    """Schema for updating an existing task.

    Fields left out of the request body are not touched. ``due_date`` may be
    sent as ``null`` to clear it.
    """
    complete: Optional[bool] = Field(None, description="Mark the task done or not done")
    description: Optional[str] = Field(None, min_length=1, description="Task description")
    priority: Optional[str] = Field(None, description="Priority name, e.g. 'high'")
    due_date: Optional[AwareDatetime] = Field(None, description="Due date, or null to clear it")

    def to_delta(self) -> TaskDelta:
        """Build the delta to send.

        Raises:
            ValueError: If a field other than ``due_date`` is explicitly null
            UnknownPriorityError: If the priority name is not recognised
        """
        changes = {}
        for name in ("complete", "description", "priority"):
            if name not in self.model_fields_set:
                continue
            value = getattr(self, name)
            if value is None:
                raise ValueError(f"{name} cannot be null")
            changes[name] = Changed(Priority.parse(value) if name == "priority" else value)

        if "due_date" in self.model_fields_set:
            changes["due_date"] = Changed(self.due_date)

        return TaskDelta(**changes)


class TaskResponse(BaseModel):
    """Schema for task API responses."""
    id: int = Field(..., description="Task identifier")
    complete: bool = Field(..., description="Whether the task is done")
    description: str = Field(..., description="Task description")
    priority: str = Field(..., description="Priority name")
    due_date: Optional[datetime] = Field(None, description="Due date")

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id_or_error(),
            complete=task.complete,
            description=task.description,
            priority=str(task.priority),
            due_date=task.due_date,
        )


class TaskListResponse(BaseModel):
    """Schema for task list API responses."""
    tasks: List[TaskResponse] = Field(..., description="List of tasks")
    total: int = Field(..., description="Total number of tasks")


class HealthResponse(BaseModel):
    """Schema for health check responses."""
    status: str = Field(default="healthy", description="Service health status")
    version: str = Field(..., description="Application version")
    server_url: str = Field(..., description="Task server the site talks to")
    open_connections: int = Field(..., description="Connections the site holds open to the server")
