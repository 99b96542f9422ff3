"""Task routes backed by the task server."""

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..connection import ConnectionPool
from ..deps import get_connection_pool
from ..errors import RemoteError, TransportError, UnexpectedResponseError, UnknownPriorityError
from ..models.task import TaskId
from ..schemas import TaskCreate, TaskDoesntExist, TaskListResponse, TaskResponse, TaskUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _raise_upstream(action: str, exc: Exception) -> NoReturn:
    """Translate a task server failure into an HTTP error."""
    if isinstance(exc, RemoteError):
        code = (
            status.HTTP_404_NOT_FOUND
            if isinstance(exc.error, TaskDoesntExist)
            else status.HTTP_400_BAD_REQUEST
        )
        logger.warning(f"Task server rejected {action}: {exc}")
        raise HTTPException(status_code=code, detail=str(exc)) from exc

    logger.error(f"Task server failure while {action}: {exc}")
    raise HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Task server failure while {action}",
    ) from exc


def _task_id(raw: int) -> TaskId:
    try:
        return TaskId(raw)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.get("/", response_model=TaskListResponse)
async def list_tasks(pool: ConnectionPool = Depends(get_connection_pool)) -> TaskListResponse:
    """List every task in server order."""
    try:
        async with pool.connection() as conn:
            tasks = await conn.list_tasks()
    except (RemoteError, TransportError, UnexpectedResponseError) as e:
        _raise_upstream("listing tasks", e)

    logger.debug(f"Listed {len(tasks)} tasks")
    responses = [TaskResponse.from_task(task) for task in tasks]
    return TaskListResponse(tasks=responses, total=len(responses))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    pool: ConnectionPool = Depends(get_connection_pool),
) -> Response:
    """Create a new task.

    The task server does not report the id it assigns, so the body is empty.
    """
    try:
        task = task_data.to_task()
    except UnknownPriorityError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    logger.info(f"Creating new task: {task.description}")
    try:
        async with pool.connection() as conn:
            await conn.add_task(task)
    except (RemoteError, TransportError, UnexpectedResponseError) as e:
        _raise_upstream("creating a task", e)

    return Response(status_code=status.HTTP_201_CREATED)


@router.patch("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_task(
    task_id: int,
    task_data: TaskUpdate,
    pool: ConnectionPool = Depends(get_connection_pool),
) -> Response:
    """Update the fields present in the request body."""
    try:
        delta = task_data.to_delta()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    checked_id = _task_id(task_id)
    logger.info(f"Updating task {task_id}: {', '.join(delta.changed_fields()) or 'no changes'}")
    try:
        async with pool.connection() as conn:
            await conn.update_task(checked_id, delta)
    except (RemoteError, TransportError, UnexpectedResponseError) as e:
        _raise_upstream(f"updating task {task_id}", e)

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: int,
    pool: ConnectionPool = Depends(get_connection_pool),
) -> Response:
    """Delete a task. Deleting a task that does not exist is not an error."""
    checked_id = _task_id(task_id)
    logger.info(f"Deleting task {task_id}")
    try:
        async with pool.connection() as conn:
            await conn.remove_task(checked_id)
    except (RemoteError, TransportError, UnexpectedResponseError) as e:
        _raise_upstream(f"deleting task {task_id}", e)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
