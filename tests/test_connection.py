"""
Tests for the ISO on TCP transport, against a scripted fake socket.
"""

import socket
from unittest import mock

import pytest

from s7client.connection import ISOTCPConnection
from s7client.error import (
    S7InvalidEndpointError,
    S7MalformedResponseError,
    S7StreamError,
    S7TcpConnectError,
    S7TimeoutError,
)

frame = bytes.fromhex("0300001611d00001000100c0010ac1020100c2020101")


@pytest.mark.connection
class TestOpenClose:
    def test_open(self, fake_socket) -> None:
        connection = ISOTCPConnection("192.168.0.1", connect_timeout=1.5)
        connection.open()

        assert connection.is_open
        fake_socket.create_connection.assert_called_once_with(("192.168.0.1", 102), timeout=1.5)
        assert (socket.IPPROTO_TCP, socket.TCP_NODELAY, 1) in fake_socket.options

    def test_close_twice(self, fake_socket) -> None:
        connection = ISOTCPConnection("192.168.0.1")
        connection.open()
        connection.close()
        connection.close()

        assert fake_socket.closed
        assert not connection.is_open

    def test_context_manager(self, fake_socket) -> None:
        with ISOTCPConnection("192.168.0.1") as connection:
            connection.open()
        assert fake_socket.closed

    def test_nodelay_failure(self, fake_socket) -> None:
        fake_socket.setsockopt = mock.Mock(side_effect=OSError(22, "Invalid argument"))
        connection = ISOTCPConnection("192.168.0.1")
        with pytest.raises(S7StreamError) as excinfo:
            connection.open()
        assert excinfo.value.error_code == 3
        # closing stays with the caller
        assert connection.is_open
        connection.close()
        assert fake_socket.closed

    @pytest.mark.parametrize("host, port", [("", 102), (None, 102), ("plc", 0), ("plc", 70000), ("plc", True)])
    def test_invalid_endpoint(self, host, port) -> None:
        connection = ISOTCPConnection(host, port)
        with pytest.raises(S7InvalidEndpointError) as excinfo:
            connection.open()
        assert excinfo.value.error_code == 1
        assert not connection.is_open

    def test_unresolvable_host(self) -> None:
        with mock.patch.object(socket, "create_connection", side_effect=socket.gaierror(-2, "Name or service not known")):
            with pytest.raises(S7InvalidEndpointError):
                ISOTCPConnection("no-such-plc.invalid").open()

    def test_connection_refused(self) -> None:
        with mock.patch.object(socket, "create_connection", side_effect=ConnectionRefusedError()):
            with pytest.raises(S7TcpConnectError) as excinfo:
                ISOTCPConnection("192.168.0.1").open()
        assert excinfo.value.error_code == 2
        assert excinfo.value.tcp_port == 102

    def test_connect_timeout(self) -> None:
        with mock.patch.object(socket, "create_connection", side_effect=socket.timeout()):
            with pytest.raises(S7TcpConnectError):
                ISOTCPConnection("192.168.0.1").open()


@pytest.mark.connection
class TestFrames:
    def open(self, **timeouts) -> ISOTCPConnection:
        connection = ISOTCPConnection("192.168.0.1", **timeouts)
        connection.open()
        return connection

    def test_send(self, fake_socket) -> None:
        connection = self.open(send_timeout=0.25)
        connection.send(frame)
        assert fake_socket.sent == [frame]
        assert fake_socket.timeouts[-1] == 0.25

    def test_send_not_open(self) -> None:
        with pytest.raises(S7StreamError):
            ISOTCPConnection("192.168.0.1").send(frame)

    def test_send_timeout(self, fake_socket) -> None:
        fake_socket.send_error = socket.timeout()
        connection = self.open()
        with pytest.raises(S7TimeoutError) as excinfo:
            connection.send(frame)
        assert excinfo.value.error_code == 13

    def test_send_broken_pipe(self, fake_socket) -> None:
        fake_socket.send_error = BrokenPipeError()
        connection = self.open()
        with pytest.raises(S7StreamError) as excinfo:
            connection.send(frame)
        assert excinfo.value.error_code == 3

    def test_recv_frame(self, fake_socket) -> None:
        fake_socket.replies.append(frame)
        connection = self.open(recv_timeout=0.5)
        assert connection.recv_frame() == frame
        assert fake_socket.timeouts[-1] == 0.5

    def test_recv_frame_in_pieces(self, fake_socket) -> None:
        fake_socket.replies.extend([frame[:2], frame[2:9], frame[9:]])
        connection = self.open()
        assert connection.recv_frame() == frame

    def test_recv_consecutive_frames(self, fake_socket) -> None:
        other = bytes.fromhex("0300001602f0803203000005000002000100000501ff")
        fake_socket.replies.append(frame + other)
        connection = self.open()
        assert connection.recv_frame() == frame
        assert connection.recv_frame() == other

    def test_recv_peer_closed(self, fake_socket) -> None:
        fake_socket.replies.append(frame[:10])
        connection = self.open()
        with pytest.raises(S7StreamError):
            connection.recv_frame()

    def test_recv_timeout(self, fake_socket) -> None:
        fake_socket.replies.extend([frame[:4], socket.timeout()])
        connection = self.open()
        with pytest.raises(S7TimeoutError) as excinfo:
            connection.recv_frame()
        assert excinfo.value.error_code == 13

    def test_recv_reset(self, fake_socket) -> None:
        fake_socket.replies.append(ConnectionResetError())
        connection = self.open()
        with pytest.raises(S7StreamError):
            connection.recv_frame()

    def test_recv_bad_version(self, fake_socket) -> None:
        fake_socket.replies.append(b"\x02" + frame[1:])
        connection = self.open()
        with pytest.raises(S7MalformedResponseError) as excinfo:
            connection.recv_frame()
        assert excinfo.value.error_code == 12

    @pytest.mark.parametrize("length", [0, 6, 2049])
    def test_recv_bad_length(self, fake_socket, length) -> None:
        fake_socket.replies.append(b"\x03\x00" + length.to_bytes(2, "big"))
        connection = self.open()
        with pytest.raises(S7MalformedResponseError):
            connection.recv_frame()
