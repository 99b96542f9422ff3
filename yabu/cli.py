"""Command-line client (``yabu``)."""

import argparse
import asyncio
import sys
from datetime import datetime
from typing import List, Optional

from .config import settings
from .connection import ClientConnection, ServerAddress, parse_server_url
from .errors import InvalidServerUrlError, InvalidTaskIdError, RemoteError, UnknownPriorityError, YabuError
from .models.task import Changed, Priority, Task, TaskDelta, TaskId

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REJECTED = 2

DATE_FORMAT = "%Y-%m-%d %I:%M%p"


def _parse_server(text: str) -> ServerAddress:
    try:
        return parse_server_url(text)
    except InvalidServerUrlError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _parse_task_id(text: str) -> TaskId:
    try:
        return TaskId(text)
    except InvalidTaskIdError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _parse_priority(text: str) -> Priority:
    try:
        return Priority.parse(text)
    except UnknownPriorityError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def parse_due_date(text: str) -> datetime:
    """Parse an ISO-8601 date or date-time; naive values use the local time zone."""
    try:
        value = datetime.fromisoformat(text.strip())
    except ValueError as e:
        raise argparse.ArgumentTypeError(
            f"Invalid date '{text}'. Use YYYY-MM-DD or YYYY-MM-DD HH:MM[+HH:MM]."
        ) from e
    if value.tzinfo is None:
        value = value.astimezone()
    return value


def format_tasks(tasks: List[Task]) -> str:
    if not tasks:
        return "No tasks found."

    lines = [f"{'TASK':>5}  {'FIN':^3}  {'PRIORITY':<8}  {'DUE DATE':<18}  DESCRIPTION"]
    for t in tasks:
        done = "X" if t.complete else " "
        due = t.due_date.strftime(DATE_FORMAT).lower() if t.due_date else ""
        lines.append(f"{t.id_or_error():>5}  {done:^3}  {str(t.priority):<8}  {due:<18}  {t.description}")
    return "\n".join(lines)


def build_delta(ns: argparse.Namespace) -> TaskDelta:
    changes = {}
    if ns.complete is not None:
        changes["complete"] = Changed(ns.complete)
    if ns.description is not None:
        changes["description"] = Changed(ns.description)
    if ns.priority is not None:
        changes["priority"] = Changed(ns.priority)
    if ns.clear_due:
        changes["due_date"] = Changed(None)
    elif ns.due_date is not None:
        changes["due_date"] = Changed(ns.due_date)
    return TaskDelta(**changes)


async def cmd_add(conn: ClientConnection, ns: argparse.Namespace) -> int:
    task = Task(description=ns.description, priority=ns.priority, due_date=ns.due_date)
    await conn.add_task(task)
    print(f"Added task: {ns.description}")
    return EXIT_OK


async def cmd_list(conn: ClientConnection, ns: argparse.Namespace) -> int:
    print(format_tasks(await conn.list_tasks()))
    return EXIT_OK


async def cmd_update(conn: ClientConnection, ns: argparse.Namespace) -> int:
    delta = build_delta(ns)
    if not delta.changed_fields():
        print("Nothing to update.", file=sys.stderr)
        return EXIT_FAILURE
    await conn.update_task(ns.task_id, delta)
    print(f"Updated task #{ns.task_id}.")
    return EXIT_OK


async def cmd_remove(conn: ClientConnection, ns: argparse.Namespace) -> int:
    await conn.remove_task(ns.task_id)
    print(f"Removed task #{ns.task_id}.")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="yabu", description="yabu: a small client-server todo list.")
    p.add_argument(
        "-s",
        "--server",
        type=_parse_server,
        default=None,
        help=f"Server URL (default: YABU_SERVER_URL or {settings.server_url})",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("add", aliases=["new"], help="Add a new task.")
    s.add_argument("description", help="What needs doing.")
    s.add_argument("-p", "--priority", type=_parse_priority, default=Priority.MEDIUM,
                   help="lowest, low, medium, high or critical (default: medium).")
    s.add_argument("-d", "--due-date", type=parse_due_date, help="Due date, e.g. 2024-05-01 or 2024-05-01T17:30.")
    s.set_defaults(func=cmd_add)

    s = sub.add_parser("list", help="List tasks.")
    s.set_defaults(func=cmd_list)

    s = sub.add_parser("update", help="Change some fields of a task.")
    s.add_argument("task_id", type=_parse_task_id, help="Task ID.")
    g = s.add_mutually_exclusive_group()
    g.add_argument("--complete", dest="complete", action="store_const", const=True, help="Mark the task done.")
    g.add_argument("--incomplete", dest="complete", action="store_const", const=False, help="Mark the task not done.")
    s.add_argument("--description", help="New description.")
    s.add_argument("-p", "--priority", type=_parse_priority, help="New priority.")
    g = s.add_mutually_exclusive_group()
    g.add_argument("-d", "--due-date", type=parse_due_date, help="New due date.")
    g.add_argument("--clear-due", action="store_true", help="Remove the due date.")
    s.set_defaults(func=cmd_update)

    s = sub.add_parser("remove", aliases=["rm"], help="Remove a task.")
    s.add_argument("task_id", type=_parse_task_id, help="Task ID.")
    s.set_defaults(func=cmd_remove)

    return p


async def run(ns: argparse.Namespace) -> int:
    address = ns.server or parse_server_url(settings.server_url)
    async with await ClientConnection.open(address) as conn:
        return await ns.func(conn, ns)


def print_error_chain(err: BaseException) -> None:
    print("error:", file=sys.stderr)
    seen = set()
    current: Optional[BaseException] = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        print(f"    {current}", file=sys.stderr)
        current = current.__cause__ or current.__context__


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    try:
        return asyncio.run(run(ns))
    except RemoteError as e:
        print(f"server rejected the request: {e}", file=sys.stderr)
        return EXIT_REJECTED
    except YabuError as e:
        print_error_chain(e)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
