"""Local error types.

Nothing in here is ever serialized to a peer. Business-level failures that do
cross the wire are modelled as ``RpcError`` values in ``yabu.schemas``.
"""


class YabuError(Exception):
    """Base class for all local yabu errors."""


class InvalidTaskIdError(YabuError, ValueError):
    """Raised when a value cannot be turned into a task id."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"invalid task id {value!r}: must be an integer in 1..4294967295")


class TaskHasNoIdError(YabuError):
    """Raised when asking for the id of a task that was never persisted."""

    def __init__(self):
        super().__init__("tried to get the id of a task that didn't have one")


class UnknownPriorityError(YabuError, ValueError):
    """Raised when a priority name cannot be parsed."""

    def __init__(self, priority: str):
        self.priority = priority
        super().__init__(f"unknown priority {priority}")


class InvalidServerUrlError(YabuError, ValueError):
    """Raised when a server URL cannot be understood."""


class StorageError(YabuError):
    """The storage engine failed for reasons unrelated to business logic."""


class TransportError(YabuError):
    """Base class for failures reading or writing frames."""


class ConnectionClosedError(TransportError):
    """The peer closed the stream before sending any byte of a new frame."""

    def __init__(self, message: str = "connection closed by peer"):
        super().__init__(message)


class TruncatedFrameError(TransportError):
    """The stream ended in the middle of a frame."""

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(f"truncated frame: expected {expected} bytes, got {received}")


class MalformedMessageError(TransportError):
    """A frame was received but its payload could not be decoded."""


class PayloadTooLargeError(TransportError):
    """A serialized payload does not fit in the 16-bit length prefix."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"payload of {size} bytes exceeds the {limit} byte frame limit")


class ConnectionFailedError(TransportError):
    """Could not open or keep a connection to the server."""


class UnexpectedResponseError(YabuError):
    """The server answered with a response of the wrong kind."""


class RemoteError(YabuError):
    """Client-side wrapper for an ``RpcError`` received from the server."""

    def __init__(self, error):
        self.error = error
        super().__init__(str(error))
