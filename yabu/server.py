"""TCP task server: one request/response session per accepted connection."""

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path
from typing import Optional, Set

from .codec import read_message, write_response
from .config import Settings, settings as default_settings
from .errors import ConnectionClosedError
from .services.storage import create_task_store
from .services.task_service import TaskService, initialize_task_service
from .utils.logging import log_shutdown_info, log_startup_info, setup_logging

logger = logging.getLogger(__name__)


async def handle_connection(
    service: TaskService,
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
) -> None:
    """Serve requests on one connection until the peer closes it.

    A clean close between frames returns normally. Any other failure
    (truncated or malformed frame, socket error, storage error) is raised to
    the caller; the connection is closed either way.
    """
    peer = writer.get_extra_info("peername")
    logger.debug(f"Accepted connection from {peer}")
    try:
        while True:
            try:
                message = await read_message(reader)
            except ConnectionClosedError:
                logger.debug(f"Connection from {peer} closed by peer")
                return

            # Storage calls block, so keep them off the event loop.
            response = await asyncio.to_thread(service.handle, message)
            await write_response(writer, response)
    finally:
        writer.close()
        with contextlib.suppress(ConnectionError):
            await writer.wait_closed()


class TaskServer:
    """Accepts connections and runs an independent session for each."""

    def __init__(self, service: TaskService, host: str = "127.0.0.1", port: int = 0):
        """Initialize the server.

        Args:
            service: Task service shared by every connection
            host: Address to listen on
            port: Port to listen on; 0 picks a free port
        """
        self.service = service
        self.host = host
        self.port = port
        self._server: Optional[asyncio.Server] = None
        self._writers: Set[asyncio.StreamWriter] = set()

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._on_connect, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info(f"Task server listening on {self.host}:{self.port}")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        await self._server.serve_forever()

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for writer in list(self._writers):
            writer.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Task server stopped")

    async def __aenter__(self) -> "TaskServer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _on_connect(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        self._writers.add(writer)
        try:
            await handle_connection(self.service, reader, writer)
        except Exception as e:
            # One failed session never takes the server down with it.
            logger.error(f"Error while processing connection from {peer}: {e}", exc_info=True)
        finally:
            self._writers.discard(writer)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="yabuserver", description="Task server for the yabu todo list.")
    p.add_argument("-a", "--listen-address", help="Address to listen on (default: YABU_SERVER_HOST or 0.0.0.0)")
    p.add_argument("-p", "--port", type=int, help="Port to serve on (default: YABU_SERVER_PORT or 11180)")
    g = p.add_mutually_exclusive_group()
    g.add_argument("--database", help="SQLite database path (default: YABU_DATABASE_PATH or yabuserver.db)")
    g.add_argument("--memory", action="store_true", help="Keep tasks in memory only.")
    return p


def settings_from_args(ns: argparse.Namespace, base: Settings) -> Settings:
    update = {}
    if ns.listen_address:
        update["server_host"] = ns.listen_address
    if ns.port is not None:
        update["server_port"] = ns.port
    if ns.database:
        update["database_path"] = Path(ns.database).expanduser()
        update["storage_backend"] = "sqlite"
    if ns.memory:
        update["storage_backend"] = "memory"
    return base.model_copy(update=update)


async def serve(service: TaskService, host: str, port: int) -> None:
    async with TaskServer(service, host, port) as server:
        await server.serve_forever()


def main(argv: Optional[list] = None) -> int:
    ns = build_parser().parse_args(argv)
    settings = settings_from_args(ns, default_settings)

    setup_logging(settings)
    log_startup_info("yabuserver", settings, f"{settings.server_host}:{settings.server_port}")

    try:
        service = initialize_task_service(create_task_store(settings))
        asyncio.run(serve(service, settings.server_host, settings.server_port))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.critical(f"yabuserver failed: {e}", exc_info=True)
        return 1
    finally:
        log_shutdown_info("yabuserver")
    return 0


if __name__ == "__main__":
    sys.exit(main())
