"""Tests for frame encoding and decoding."""

import asyncio
import json

import pytest

from yabu.codec import (
    MAX_PAYLOAD_SIZE,
    decode_message,
    decode_response,
    encode_message,
    encode_response,
    read_frame,
    read_message,
    read_response,
)
from yabu.errors import (
    ConnectionClosedError,
    MalformedMessageError,
    PayloadTooLargeError,
    TransportError,
    TruncatedFrameError,
)
from yabu.models.task import Changed, Priority, Task, TaskDelta, TaskId
from yabu.schemas import (
    AddRequest,
    ErrorResponse,
    ListRequest,
    NothingResponse,
    RemoveRequest,
    TaskDoesntExist,
    TasksResponse,
    UnknownPriority,
    UpdateRequest,
)


def frame(payload) -> bytes:
    """Frame a payload (str or JSON-compatible value) by hand."""
    if not isinstance(payload, (bytes, str)):
        payload = json.dumps(payload, separators=(",", ":"))
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return len(payload).to_bytes(2, "little") + payload


def wire_json(encoded: bytes):
    return json.loads(encoded[2:].decode("utf-8"))


def reader_with(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class TestFraming:
    """Test the length prefix."""

    def test_unit_variant_is_a_bare_string(self):
        assert encode_message(ListRequest()) == b'\x06\x00"List"'
        assert encode_response(NothingResponse()) == b'\x09\x00"Nothing"'

    def test_length_is_little_endian(self):
        encoded = encode_message(RemoveRequest(task_id=TaskId(3)))

        assert encoded == b'\x0c\x00{"Remove":3}'

    def test_payload_too_large(self):
        task = Task(description="x" * (MAX_PAYLOAD_SIZE + 1))

        with pytest.raises(PayloadTooLargeError) as exc_info:
            encode_message(AddRequest(task=task))
        assert exc_info.value.limit == MAX_PAYLOAD_SIZE

    def test_non_ascii_description_counts_bytes(self):
        encoded = encode_message(AddRequest(task=Task(description="café")))

        assert int.from_bytes(encoded[:2], "little") == len(encoded) - 2


class TestWireShapes:
    """Test the externally tagged JSON for each variant."""

    def test_add(self, sample_task):
        assert wire_json(encode_message(AddRequest(task=sample_task))) == {
            "Add": {
                "id": None,
                "complete": False,
                "description": "buy milk",
                "priority": "High",
                "due_date": "2024-05-01T17:30:00+02:00",
            }
        }

    def test_update(self):
        delta = TaskDelta(complete=Changed(True))

        assert wire_json(encode_message(UpdateRequest(task_id=TaskId(1), delta=delta))) == {
            "Update": [
                1,
                {
                    "complete": {"Changed": True},
                    "description": "Unchanged",
                    "priority": "Unchanged",
                    "due_date": "Unchanged",
                },
            ]
        }

    def test_tasks_response(self):
        tasks = [Task(id=TaskId(1), description="a"), Task(id=TaskId(2), description="b", complete=True)]
        wire = wire_json(encode_response(TasksResponse(tasks=tasks)))

        assert [t["id"] for t in wire["Tasks"]] == [1, 2]
        assert wire["Tasks"][1]["complete"] is True

    def test_error_responses(self):
        assert wire_json(encode_response(ErrorResponse(error=TaskDoesntExist(task_id=TaskId(9))))) == {
            "Error": {"TaskDoesntExist": 9}
        }
        assert wire_json(encode_response(ErrorResponse(error=UnknownPriority(priority="urgent")))) == {
            "Error": {"UnknownPriority": "urgent"}
        }


class TestDecode:
    """Test decoding of whole frames."""

    def test_round_trip_update(self, due_date):
        message = UpdateRequest(
            task_id=TaskId(4),
            delta=TaskDelta(priority=Changed(Priority.LOWEST), due_date=Changed(due_date)),
        )
        decoded = decode_message(encode_message(message))

        assert isinstance(decoded, UpdateRequest)
        assert decoded.task_id == 4
        assert decoded.delta.priority == Changed(Priority.LOWEST)
        assert decoded.delta.due_date == Changed(due_date)
        assert decoded.delta.description.apply("kept") == "kept"

    def test_round_trip_tasks(self, sample_task):
        stored = sample_task.model_copy(update={"id": TaskId(1)})
        decoded = decode_response(encode_response(TasksResponse(tasks=[stored])))

        assert isinstance(decoded, TasksResponse)
        assert [t.model_dump() for t in decoded.tasks] == [stored.model_dump()]

    def test_decode_error_response(self):
        decoded = decode_response(frame({"Error": {"TaskDoesntExist": 3}}))

        assert isinstance(decoded, ErrorResponse)
        assert decoded.error == TaskDoesntExist(task_id=TaskId(3))

    def test_update_with_missing_delta_fields(self):
        decoded = decode_message(frame({"Update": [2, {"complete": {"Changed": True}}]}))

        assert decoded.delta.changed_fields() == ["complete"]

    def test_empty_frame_is_connection_closed(self):
        with pytest.raises(ConnectionClosedError):
            decode_message(b"")

    def test_short_header_is_truncated(self):
        with pytest.raises(TruncatedFrameError):
            decode_message(b"\x06")

    def test_short_payload_is_truncated(self):
        with pytest.raises(TruncatedFrameError) as exc_info:
            decode_message(b'\x06\x00"Lis')
        assert exc_info.value.expected == 6
        assert exc_info.value.received == 4

    def test_trailing_bytes_are_malformed(self):
        with pytest.raises(MalformedMessageError):
            decode_message(b'\x06\x00"List"xx')

    @pytest.mark.parametrize(
        "payload",
        [
            "hello",
            '"Frobnicate"',
            '{"List":null}',
            '{"Remove":0}',
            '{"Remove":"three"}',
            '{"Add":{"priority":"High"}}',
            '{"Update":[1]}',
            '{"Add":{"description":"x"},"Remove":1}',
            "[1,2]",
        ],
    )
    def test_malformed_requests(self, payload):
        with pytest.raises(MalformedMessageError):
            decode_message(frame(payload))

    @pytest.mark.parametrize(
        "payload",
        ['"List"', '{"Error":"TaskDoesntExist"}', '{"Error":{"Unknown":1}}', '{"Tasks":{}}'],
    )
    def test_malformed_responses(self, payload):
        with pytest.raises(MalformedMessageError):
            decode_response(frame(payload))

    def test_codec_errors_are_transport_errors(self):
        for error in (ConnectionClosedError, TruncatedFrameError, MalformedMessageError, PayloadTooLargeError):
            assert issubclass(error, TransportError)


class TestStreams:
    """Test reading frames from a stream."""

    @pytest.mark.asyncio
    async def test_reads_consecutive_frames(self):
        reader = reader_with(encode_message(ListRequest()) + encode_message(RemoveRequest(task_id=TaskId(2))))

        assert isinstance(await read_message(reader), ListRequest)
        second = await read_message(reader)
        assert isinstance(second, RemoveRequest)
        assert second.task_id == 2

    @pytest.mark.asyncio
    async def test_eof_before_frame_is_connection_closed(self):
        with pytest.raises(ConnectionClosedError):
            await read_frame(reader_with(b""))

    @pytest.mark.asyncio
    async def test_eof_inside_header_is_truncated(self):
        with pytest.raises(TruncatedFrameError):
            await read_frame(reader_with(b"\x06"))

    @pytest.mark.asyncio
    async def test_eof_inside_payload_is_truncated(self):
        with pytest.raises(TruncatedFrameError):
            await read_frame(reader_with(b'\x06\x00"Li'))

    @pytest.mark.asyncio
    async def test_read_response(self):
        response = await read_response(reader_with(encode_response(NothingResponse())))

        assert isinstance(response, NothingResponse)
