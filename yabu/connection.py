"""Client side of the task protocol."""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, NamedTuple, Optional, Type, TypeVar, Union
from urllib.parse import urlsplit

from .codec import read_response, write_message
from .config import DEFAULT_SERVER_PORT, URL_SCHEME
from .errors import (
    ConnectionFailedError,
    InvalidServerUrlError,
    PayloadTooLargeError,
    RemoteError,
    TransportError,
    UnexpectedResponseError,
)
from .models.task import Task, TaskDelta, TaskId
from .schemas import (
    AddRequest,
    ErrorResponse,
    ListRequest,
    Message,
    NothingResponse,
    RemoveRequest,
    Response,
    TasksResponse,
    UpdateRequest,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", NothingResponse, TasksResponse)


class ServerAddress(NamedTuple):
    host: str
    port: int

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{URL_SCHEME}://{host}:{self.port}"


def default_server_url() -> str:
    return f"{URL_SCHEME}://127.0.0.1:{DEFAULT_SERVER_PORT}"


def parse_server_url(text: str) -> ServerAddress:
    """Parse a server URL, filling in the scheme and port when left out.

    Accepts ``yabu://host:port``, ``yabu://host``, ``host:port`` and ``host``.

    Raises:
        InvalidServerUrlError: If the scheme is not ``yabu``, the port is not
            a number, or there is no host
    """
    text = text.strip()
    if not text:
        raise InvalidServerUrlError("server URL is empty")
    if "://" not in text:
        text = f"{URL_SCHEME}://{text}"

    parts = urlsplit(text)
    if parts.scheme != URL_SCHEME:
        raise InvalidServerUrlError(
            f"server URL has an incorrect scheme (expected {URL_SCHEME}, got {parts.scheme})"
        )
    try:
        port = parts.port
    except ValueError as e:
        raise InvalidServerUrlError(f"server URL ({text}) has an invalid port") from e
    if not parts.hostname:
        raise InvalidServerUrlError(f"server URL ({text}) does not have a host")

    return ServerAddress(parts.hostname, port if port is not None else DEFAULT_SERVER_PORT)


def _expect(response: Response, expected: Type[R]) -> R:
    if isinstance(response, ErrorResponse):
        raise RemoteError(response.error)
    if not isinstance(response, expected):
        raise UnexpectedResponseError(
            f"got {type(response).__name__} from the server, expected {expected.__name__}"
        )
    return response


class ClientConnection:
    """One connection to a task server.

    Requests are never pipelined: ``send`` holds a lock from writing the
    request until the response has been read.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        address: Optional[ServerAddress] = None,
    ):
        self._reader = reader
        self._writer = writer
        self._lock = asyncio.Lock()
        self.address = address
        self.broken = False

    @classmethod
    async def open(cls, address: Union[ServerAddress, str]) -> "ClientConnection":
        if isinstance(address, str):
            address = parse_server_url(address)
        try:
            reader, writer = await asyncio.open_connection(address.host, address.port)
        except OSError as e:
            raise ConnectionFailedError(f"could not connect to {address}: {e}") from e
        logger.debug(f"Connected to {address}")
        return cls(reader, writer, address)

    async def send(self, message: Message) -> Response:
        """Send one request and wait for its response.

        An ``ErrorResponse`` is returned like any other response. Transport
        failures raise ``TransportError`` and leave the connection unusable; so
        does cancelling a request after it was written.
        """
        async with self._lock:
            try:
                await write_message(self._writer, message)
                return await read_response(self._reader)
            except PayloadTooLargeError:
                raise
            except TransportError:
                self.broken = True
                raise
            except OSError as e:
                self.broken = True
                raise ConnectionFailedError(f"connection to {self.address} failed: {e}") from e
            except asyncio.CancelledError:
                # The reply may still arrive, so the stream is out of step.
                self.broken = True
                raise

    async def list_tasks(self) -> List[Task]:
        return _expect(await self.send(ListRequest()), TasksResponse).tasks

    async def add_task(self, task: Task) -> None:
        _expect(await self.send(AddRequest(task=task)), NothingResponse)

    async def update_task(self, task_id: TaskId, delta: TaskDelta) -> None:
        _expect(await self.send(UpdateRequest(task_id=task_id, delta=delta)), NothingResponse)

    async def remove_task(self, task_id: TaskId) -> None:
        _expect(await self.send(RemoveRequest(task_id=task_id)), NothingResponse)

    async def close(self) -> None:
        self._writer.close()
        with contextlib.suppress(ConnectionError):
            await self._writer.wait_closed()

    async def __aenter__(self) -> "ClientConnection":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class ConnectionPool:
    """A fixed number of server connections shared by concurrent callers.

    Connections are opened on first use, and an open connection is handed
    out again before an empty slot is. One that failed with a transport error
    or was cancelled mid-request is closed when it comes back to the pool.
    """

    def __init__(self, address: ServerAddress, size: int):
        if size < 1:
            raise ValueError("connection pool size must be at least 1")
        self.address = address
        self.size = size
        self._slots: "asyncio.LifoQueue[Optional[ClientConnection]]" = asyncio.LifoQueue()
        for _ in range(size):
            self._slots.put_nowait(None)
        self._open = 0

    @property
    def open_connections(self) -> int:
        return self._open

    async def _discard(self, conn: ClientConnection) -> None:
        self._open -= 1
        await conn.close()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[ClientConnection]:
        conn = await self._slots.get()
        try:
            if conn is not None and conn.broken:
                await self._discard(conn)
                conn = None
            if conn is None:
                conn = await ClientConnection.open(self.address)
                self._open += 1
            yield conn
        finally:
            if conn is not None and conn.broken:
                logger.warning(f"Dropping broken connection to {self.address}")
                await self._discard(conn)
                conn = None
            self._slots.put_nowait(conn)

    async def close(self) -> None:
        while not self._slots.empty():
            conn = self._slots.get_nowait()
            if conn is not None:
                await self._discard(conn)
