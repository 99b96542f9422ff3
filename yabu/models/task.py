"""Domain models for the task tracker."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from typing import Any, Generic, List, Optional, TypeVar, get_args, get_origin

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic_core import CoreSchema, core_schema

from ..errors import InvalidTaskIdError, TaskHasNoIdError, UnknownPriorityError

T = TypeVar("T")


class TaskId(int):
    """Identifier of a persisted task, always in ``1..=2**32 - 1``."""

    MAX = 0xFFFF_FFFF

    def __new__(cls, value: Any) -> "TaskId":
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise InvalidTaskIdError(value)
        try:
            number = int(value)
        except (TypeError, ValueError) as e:
            raise InvalidTaskIdError(value) from e
        if not 0 < number <= cls.MAX:
            raise InvalidTaskIdError(value)
        return super().__new__(cls, number)

    def __repr__(self) -> str:
        return f"TaskId({int(self)})"

    def __str__(self) -> str:
        return str(int(self))

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: GetCoreSchemaHandler) -> CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.int_schema(),
            serialization=core_schema.plain_serializer_function_ser_schema(
                int, return_schema=core_schema.int_schema()
            ),
        )


@total_ordering
class Priority(Enum):
    """Task priority, ordered from least to most urgent."""

    LOWEST = "Lowest"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return list(Priority).index(self)

    @classmethod
    def from_rank(cls, rank: int) -> "Priority":
        members = list(cls)
        if not 0 <= rank < len(members):
            raise ValueError(f"can't convert {rank} to a priority")
        return members[rank]

    @classmethod
    def parse(cls, text: str) -> "Priority":
        """Parse the case-insensitive name of a priority."""
        lowered = text.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        raise UnknownPriorityError(text)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank < other.rank

    def __str__(self) -> str:
        return self.value.lower()


class Delta(ABC, Generic[T]):
    """Either leave a field alone or replace its value outright.

    There are exactly two variants, ``Unchanged`` and ``Changed(value)``. On
    the wire they are ``"Unchanged"`` and ``{"Changed": value}``.
    """

    @abstractmethod
    def apply(self, old: T) -> T:
        """Return the field value after this delta is applied to `old`."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: GetCoreSchemaHandler) -> CoreSchema:
        if get_origin(source) is None:
            value_schema = core_schema.any_schema()
        else:
            value_schema = handler.generate_schema(get_args(source)[0])

        unchanged_schema = core_schema.no_info_after_validator_function(
            lambda _: Unchanged(),
            core_schema.literal_schema(["Unchanged"]),
        )
        changed_schema = core_schema.no_info_after_validator_function(
            lambda data: Changed(data["Changed"]),
            core_schema.typed_dict_schema(
                {"Changed": core_schema.typed_dict_field(value_schema)},
                extra_behavior="forbid",
            ),
        )
        return core_schema.json_or_python_schema(
            json_schema=core_schema.union_schema([unchanged_schema, changed_schema]),
            # Existing Changed instances are unwrapped so their value is validated too.
            python_schema=core_schema.no_info_before_validator_function(
                _unwrap_delta,
                core_schema.union_schema([unchanged_schema, changed_schema]),
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(_serialize_delta),
        )


@dataclass(frozen=True)
class Unchanged(Delta[T]):
    def apply(self, old: T) -> T:
        return old


@dataclass(frozen=True)
class Changed(Delta[T]):
    value: T

    def apply(self, old: T) -> T:
        return self.value


def _unwrap_delta(value: Any) -> Any:
    if isinstance(value, Delta):
        return _serialize_delta(value)
    return value


def _serialize_delta(delta: Delta) -> Any:
    if isinstance(delta, Changed):
        return {"Changed": delta.value}
    if isinstance(delta, Unchanged):
        return "Unchanged"
    raise TypeError(f"not a delta: {delta!r}")


class Task(BaseModel):
    """A single todo item.

    ``id`` is ``None`` until the server has stored the task.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[TaskId] = Field(default=None, description="Identifier assigned by the server")
    complete: bool = Field(default=False, description="Whether the task is done")
    description: str = Field(..., description="What needs doing")
    priority: Priority = Field(default=Priority.MEDIUM, description="How urgent the task is")
    due_date: Optional[AwareDatetime] = Field(default=None, description="When the task is due")

    def id_or_error(self) -> TaskId:
        if self.id is None:
            raise TaskHasNoIdError()
        return self.id

    def apply_delta(self, delta: "TaskDelta") -> "Task":
        return delta.apply_to(self)


class TaskDelta(BaseModel):
    """Partial update of a task; every field defaults to ``Unchanged``."""

    model_config = ConfigDict(frozen=True)

    complete: Delta[bool] = Field(default_factory=Unchanged)
    description: Delta[str] = Field(default_factory=Unchanged)
    priority: Delta[Priority] = Field(default_factory=Unchanged)
    # Changed(None) clears the due date.
    due_date: Delta[Optional[AwareDatetime]] = Field(default_factory=Unchanged)

    def apply_to(self, task: Task) -> Task:
        return task.model_copy(
            update={
                "complete": self.complete.apply(task.complete),
                "description": self.description.apply(task.description),
                "priority": self.priority.apply(task.priority),
                "due_date": self.due_date.apply(task.due_date),
            }
        )

    def changed_fields(self) -> List[str]:
        return [name for name in type(self).model_fields if isinstance(getattr(self, name), Changed)]
