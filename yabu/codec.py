"""Frame codec for the task protocol.

A frame is the payload length as an unsigned 16-bit little-endian integer
followed by that many bytes of UTF-8 JSON. Requests and responses use the same
framing; their JSON is an externally tagged union: unit variants are bare
strings (``"List"``) and data variants are single-key objects
(``{"Remove": 3}``).
"""

import asyncio
import json
import logging
import struct
from typing import Any, Tuple

from pydantic import ValidationError

from .errors import (
    ConnectionClosedError,
    MalformedMessageError,
    PayloadTooLargeError,
    TruncatedFrameError,
)
from .models.task import Task, TaskDelta
from .schemas import (
    AddRequest,
    ErrorResponse,
    ListRequest,
    Message,
    NothingResponse,
    RemoveRequest,
    Response,
    TaskDoesntExist,
    TasksResponse,
    UnknownPriority,
    UpdateRequest,
)

logger = logging.getLogger(__name__)

LENGTH_PREFIX = struct.Struct("<H")
MAX_PAYLOAD_SIZE = 0xFFFF
ENCODING = "utf-8"

# Marks a bare-string variant, which has no payload at all (not even null).
_NO_PAYLOAD = object()


def _frame(wire: Any) -> bytes:
    payload = json.dumps(wire, separators=(",", ":"), ensure_ascii=False).encode(ENCODING)
    if len(payload) > MAX_PAYLOAD_SIZE:
        raise PayloadTooLargeError(len(payload), MAX_PAYLOAD_SIZE)
    return LENGTH_PREFIX.pack(len(payload)) + payload


def _unframe(frame: bytes) -> bytes:
    if not frame:
        raise ConnectionClosedError()
    if len(frame) < LENGTH_PREFIX.size:
        raise TruncatedFrameError(LENGTH_PREFIX.size, len(frame))

    (length,) = LENGTH_PREFIX.unpack_from(frame)
    payload = frame[LENGTH_PREFIX.size:]
    if len(payload) < length:
        raise TruncatedFrameError(length, len(payload))
    if len(payload) > length:
        raise MalformedMessageError(f"{len(payload) - length} trailing bytes after frame")
    return payload


def _parse_payload(payload: bytes) -> Tuple[str, Any]:
    try:
        wire = json.loads(payload.decode(ENCODING))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessageError(f"payload is not valid JSON: {e}") from e

    if isinstance(wire, str):
        return wire, _NO_PAYLOAD
    if isinstance(wire, dict) and len(wire) == 1:
        ((tag, value),) = wire.items()
        return tag, value
    raise MalformedMessageError(f"expected a tagged value, got {wire!r}")


def _expect_unit(tag: str, value: Any) -> None:
    if value is not _NO_PAYLOAD:
        raise MalformedMessageError(f"{tag} does not take a payload")


def _expect_payload(tag: str, value: Any) -> Any:
    if value is _NO_PAYLOAD:
        raise MalformedMessageError(f"{tag} requires a payload")
    return value


# Requests
def message_to_wire(message: Message) -> Any:
    """Convert a request into its JSON-compatible tagged form."""
    if isinstance(message, AddRequest):
        return {AddRequest.tag: message.task.model_dump(mode="json")}
    if isinstance(message, ListRequest):
        return ListRequest.tag
    if isinstance(message, UpdateRequest):
        return {UpdateRequest.tag: [int(message.task_id), message.delta.model_dump(mode="json")]}
    if isinstance(message, RemoveRequest):
        return {RemoveRequest.tag: int(message.task_id)}
    raise TypeError(f"not a request: {message!r}")


def message_from_wire(tag: str, value: Any) -> Message:
    try:
        if tag == AddRequest.tag:
            return AddRequest(task=Task.model_validate(_expect_payload(tag, value)))
        if tag == ListRequest.tag:
            _expect_unit(tag, value)
            return ListRequest()
        if tag == UpdateRequest.tag:
            value = _expect_payload(tag, value)
            if not isinstance(value, list) or len(value) != 2:
                raise MalformedMessageError("Update expects [task_id, delta]")
            task_id, delta = value
            return UpdateRequest(task_id=task_id, delta=TaskDelta.model_validate(delta))
        if tag == RemoveRequest.tag:
            return RemoveRequest(task_id=_expect_payload(tag, value))
    except ValidationError as e:
        raise MalformedMessageError(f"invalid {tag} request: {e}") from e
    raise MalformedMessageError(f"unknown request {tag!r}")


# Responses
def response_to_wire(response: Response) -> Any:
    """Convert a response into its JSON-compatible tagged form."""
    if isinstance(response, NothingResponse):
        return NothingResponse.tag
    if isinstance(response, TasksResponse):
        return {TasksResponse.tag: [task.model_dump(mode="json") for task in response.tasks]}
    if isinstance(response, ErrorResponse):
        return {ErrorResponse.tag: _error_to_wire(response.error)}
    raise TypeError(f"not a response: {response!r}")


def _error_to_wire(error) -> Any:
    if isinstance(error, TaskDoesntExist):
        return {TaskDoesntExist.tag: int(error.task_id)}
    if isinstance(error, UnknownPriority):
        return {UnknownPriority.tag: error.priority}
    raise TypeError(f"not an rpc error: {error!r}")


def response_from_wire(tag: str, value: Any) -> Response:
    try:
        if tag == NothingResponse.tag:
            _expect_unit(tag, value)
            return NothingResponse()
        if tag == TasksResponse.tag:
            value = _expect_payload(tag, value)
            if not isinstance(value, list):
                raise MalformedMessageError("Tasks expects a list")
            return TasksResponse(tasks=[Task.model_validate(task) for task in value])
        if tag == ErrorResponse.tag:
            error_tag, error_value = _expect_tagged(_expect_payload(tag, value))
            if error_tag == TaskDoesntExist.tag:
                return ErrorResponse(error=TaskDoesntExist(task_id=error_value))
            if error_tag == UnknownPriority.tag:
                return ErrorResponse(error=UnknownPriority(priority=error_value))
            raise MalformedMessageError(f"unknown rpc error {error_tag!r}")
    except ValidationError as e:
        raise MalformedMessageError(f"invalid {tag} response: {e}") from e
    raise MalformedMessageError(f"unknown response {tag!r}")


def _expect_tagged(value: Any) -> Tuple[str, Any]:
    if isinstance(value, dict) and len(value) == 1:
        ((tag, inner),) = value.items()
        return tag, inner
    raise MalformedMessageError(f"expected a tagged value, got {value!r}")


# Whole frames in memory
def encode_message(message: Message) -> bytes:
    return _frame(message_to_wire(message))


def encode_response(response: Response) -> bytes:
    return _frame(response_to_wire(response))


def decode_message(frame: bytes) -> Message:
    return message_from_wire(*_parse_payload(_unframe(frame)))


def decode_response(frame: bytes) -> Response:
    return response_from_wire(*_parse_payload(_unframe(frame)))


# Streams
async def read_frame(reader: asyncio.StreamReader) -> bytes:
    """Read exactly one frame and return its payload.

    Raises:
        ConnectionClosedError: If the stream ended before any byte arrived
        TruncatedFrameError: If the stream ended part-way through the frame
    """
    try:
        header = await reader.readexactly(LENGTH_PREFIX.size)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            raise ConnectionClosedError() from None
        raise TruncatedFrameError(LENGTH_PREFIX.size, len(e.partial)) from e

    (length,) = LENGTH_PREFIX.unpack(header)
    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise TruncatedFrameError(length, len(e.partial)) from e


async def read_message(reader: asyncio.StreamReader) -> Message:
    payload = await read_frame(reader)
    message = message_from_wire(*_parse_payload(payload))
    logger.debug(f"Received request {type(message).__name__} ({len(payload)} bytes)")
    return message


async def read_response(reader: asyncio.StreamReader) -> Response:
    payload = await read_frame(reader)
    return response_from_wire(*_parse_payload(payload))


async def write_message(writer: asyncio.StreamWriter, message: Message) -> None:
    writer.write(encode_message(message))
    await writer.drain()


async def write_response(writer: asyncio.StreamWriter, response: Response) -> None:
    writer.write(encode_response(response))
    await writer.drain()
