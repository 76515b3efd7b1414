import socket
from typing import List, Optional, Tuple, Union
from unittest import mock

import pytest

Reply = Union[bytes, BaseException]


def pytest_configure(config: pytest.Config) -> None:
    for marker in ("util", "protocol", "error", "connection", "client", "server", "cli"):
        config.addinivalue_line("markers", f"{marker}: tests of the {marker} layer")


class FakeSocket:
    """Stands in for the PLC side of a TCP connection.

    Replies are handed out in order, each one possibly spread over several
    ``recv_into`` calls. An exception in the list is raised instead of
    returning data. Once the list is used up the peer behaves as closed.
    """

    def __init__(self) -> None:
        self.replies: List[Reply] = []
        self.sent: List[bytes] = []
        self.timeouts: List[Optional[float]] = []
        self.options: List[Tuple[int, int, int]] = []
        self.send_error: Optional[BaseException] = None
        self.closed = False
        self._pending = b""

    def settimeout(self, timeout: Optional[float]) -> None:
        self.timeouts.append(timeout)

    def setsockopt(self, level: int, option: int, value: int) -> None:
        self.options.append((level, option, value))

    def sendall(self, data: bytes) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(bytes(data))

    def recv_into(self, buffer: memoryview, nbytes: int = 0) -> int:
        if not self._pending:
            if not self.replies:
                return 0
            reply = self.replies.pop(0)
            if isinstance(reply, BaseException):
                raise reply
            self._pending = reply
        size = min(nbytes or len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_socket():
    """Every TCP connection opened during the test ends up at the same fake PLC."""
    fake = FakeSocket()
    with mock.patch.object(socket, "create_connection", return_value=fake) as create_connection:
        fake.create_connection = create_connection  # type: ignore[attr-defined]
        yield fake
