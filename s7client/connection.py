"""
ISO on TCP transport (RFC 1006).

Owns the TCP socket of a client and moves complete TPKT frames over it. The
frames themselves (COTP and S7 headers) are built by :mod:`s7client.protocol`;
this layer only knows the 4 byte TPKT header, which carries the frame length.
"""

import socket
import struct
import logging
from typing import Optional

from .error import (
    S7InvalidEndpointError,
    S7MalformedResponseError,
    S7StreamError,
    S7TcpConnectError,
    S7TimeoutError,
)

logger = logging.getLogger(__name__)

isoTcpVersion = 3  # RFC 1006
isoTcpPort = 102  # RFC 1006
tpkt_header_size = 4
min_frame_size = 7  # TPKT header plus the shortest COTP header
receive_buffer_size = 2048


class ISOTCPConnection:
    """
    ISO on TCP connection implementation.

    Handles the transport layer for S7 communication including:
    - TCP socket management
    - TPKT framing (RFC 1006)
    - send and receive timeouts
    """

    def __init__(
        self,
        host: str,
        port: int = isoTcpPort,
        connect_timeout: float = 2.0,
        send_timeout: float = 2.0,
        recv_timeout: float = 2.0,
    ):
        """
        Initialize ISO TCP connection.

        Args:
            host: Target PLC IP address or host name
            port: TCP port (default 102 for S7)
            connect_timeout: TCP connect timeout in seconds
            send_timeout: Send timeout in seconds
            recv_timeout: Receive timeout in seconds
        """
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.send_timeout = send_timeout
        self.recv_timeout = recv_timeout
        self.socket: Optional[socket.socket] = None
        # Reused for every received frame, never shared between two frames in flight
        self.buffer = bytearray(receive_buffer_size)

    @property
    def is_open(self) -> bool:
        return self.socket is not None

    def open(self) -> None:
        """Open the TCP connection."""
        self._check_endpoint()
        try:
            self.socket = socket.create_connection((self.host, self.port), timeout=self.connect_timeout)
        except socket.gaierror as e:
            raise S7InvalidEndpointError(self.host, self.port, f"Hostname or port is not valid. ({e})")
        except (ValueError, OverflowError, TypeError) as e:
            raise S7InvalidEndpointError(self.host, self.port, f"Hostname or port is not valid. ({e})")
        except OSError as e:
            raise S7TcpConnectError(self.host, self.port, f"Tcp connection failed. ({self.host}:{self.port}: {e})")

        # Important to set TCP_NODELAY to avoid delays in the communication with the PLC
        try:
            self.socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as e:
            raise S7StreamError(f"Network stream failed. (setsockopt: {e})")
        logger.debug(f"TCP connected to {self.host}:{self.port}")

    def close(self) -> None:
        """Close the TCP connection. Safe to call when it is not open."""
        if self.socket is None:
            return
        try:
            self.socket.close()
        except OSError as e:
            logger.debug(f"Ignoring error while closing socket to {self.host}:{self.port}: {e}")
        finally:
            self.socket = None
        logger.debug(f"TCP connection to {self.host}:{self.port} closed")

    def send(self, frame: bytes) -> None:
        """
        Send one complete frame.

        Args:
            frame: TPKT frame to send
        """
        sock = self._require_socket()
        try:
            sock.settimeout(self.send_timeout)
            sock.sendall(frame)
        except socket.timeout:
            raise S7TimeoutError("Send timeout")
        except OSError as e:
            raise S7StreamError(f"Network stream failed. (send: {e})")
        logger.debug(f"Sent {len(frame)} bytes: {frame.hex()}")

    def recv_frame(self) -> bytes:
        """
        Receive one complete TPKT frame.

        Returns:
            The frame, TPKT header included

        Raises:
            S7MalformedResponseError: If the TPKT header is not valid
            S7StreamError: If the connection is lost
            S7TimeoutError: If no complete frame arrives in time
        """
        self._recv_exact(0, tpkt_header_size)
        version, _, length = struct.unpack_from(">BBH", self.buffer, 0)

        if version != isoTcpVersion:
            raise S7MalformedResponseError(f"Invalid TPKT version: {version}")
        if length < min_frame_size or length > len(self.buffer):
            raise S7MalformedResponseError(
                f"Invalid TPKT length: {length}", expected_length=min_frame_size, actual_length=length
            )

        self._recv_exact(tpkt_header_size, length - tpkt_header_size)
        frame = bytes(self.buffer[:length])
        logger.debug(f"Received {length} bytes: {frame.hex()}")
        return frame

    def _check_endpoint(self) -> None:
        if not isinstance(self.host, str) or not self.host:
            raise S7InvalidEndpointError(self.host, self.port)
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise S7InvalidEndpointError(self.host, self.port)

    def _require_socket(self) -> socket.socket:
        if self.socket is None:
            raise S7StreamError("Network stream failed. (socket is closed)")
        return self.socket

    def _recv_exact(self, start: int, size: int) -> None:
        """
        Receive exactly ``size`` bytes into the buffer at ``start``.

        Raises:
            S7StreamError: If connection is lost
            S7TimeoutError: If timeout occurs
        """
        sock = self._require_socket()
        view = memoryview(self.buffer)
        received = 0
        try:
            sock.settimeout(self.recv_timeout)
            while received < size:
                count = sock.recv_into(view[start + received : start + size], size - received)
                if count == 0:
                    raise S7StreamError("Network stream failed. (connection closed by peer)")
                received += count
        except socket.timeout:
            raise S7TimeoutError("Receive timeout")
        except OSError as e:
            raise S7StreamError(f"Network stream failed. (receive: {e})")

    def __enter__(self) -> "ISOTCPConnection":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
