"""
Snap7-style client for reading and writing PLC data blocks.
"""

import logging
import threading
from contextlib import contextmanager
from types import TracebackType
from typing import Iterator, Optional, Type, Union

from . import protocol
from .connection import ISOTCPConnection, isoTcpPort
from .error import (
    S7ClientBusyError,
    S7MalformedResponseError,
    S7NotConnectedError,
    S7ReadByteCountError,
    S7StreamError,
    S7TimeoutError,
    S7WriteByteCountError,
)
from .type import ConnTypePG, ConnectionState, Parameter

logger = logging.getLogger(__name__)


class Client:
    """
    A S7 client reading and writing data block bytes over ISO on TCP.

    Only one operation runs at a time: a call made while another one is in
    progress (from another thread) fails with :class:`S7ClientBusyError`
    instead of waiting.

    Examples:
        >>> import s7client
        >>> client = s7client.Client("192.168.0.1", rack=0, slot=1)
        >>> client.connect()
        True
        >>> data = client.db_read(1, 0, 4)
        >>> s7client.util.get_word(data, 0)
        42
        >>> client.close()
        True
    """

    def __init__(self, address: str, rack: int = 0, slot: int = 1, tcp_port: int = isoTcpPort) -> None:
        """Creates a new `Client` instance.

        Args:
            address: IP address or host name of the PLC.
            rack: rack number where the PLC is located, 0 to 7.
            slot: slot number where the CPU is located, 0 to 31.
            tcp_port: port of the PLC.
        """
        if not 0 <= rack <= 7:
            raise ValueError(f"Rack {rack} is out of range 0..7")
        if not 0 <= slot <= 31:
            raise ValueError(f"Slot {slot} is out of range 0..31")

        self._address = address
        self._rack = rack
        self._slot = slot
        self._tcp_port = tcp_port

        self._ping_timeout = 2000
        self._send_timeout = 2000
        self._recv_timeout = 2000
        self._pdu_request = protocol.default_pdu_request

        self._lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._pdu_length = 0
        self._connection: Optional[ISOTCPConnection] = None

    def __repr__(self) -> str:
        return f"<s7client.Client {self._address}:{self._tcp_port} rack {self._rack} slot {self._slot} {self._state.name}>"

    @property
    def address(self) -> str:
        return self._address

    @property
    def rack(self) -> int:
        return self._rack

    @property
    def slot(self) -> int:
        return self._slot

    @property
    def tcp_port(self) -> int:
        return self._tcp_port

    @property
    def remote_tsap(self) -> int:
        """Remote TSAP: connection type PG in the high byte, rack and slot in the low byte."""
        return (ConnTypePG << 8) | (self._rack * 0x20 + self._slot)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def pdu_length(self) -> int:
        """PDU length negotiated by the last successful :meth:`connect`."""
        return self._pdu_length

    def get_connected(self) -> bool:
        """Returns the connection status

        Returns:
            True if is connected, otherwise false.
        """
        return self.connected

    def get_pdu_length(self) -> int:
        """Returns info about the PDU length (requested and negotiated).

        Returns:
            PDU length.
        """
        return self._pdu_length

    @contextmanager
    def _operation(self, name: str, busy_code: int = 10) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise S7ClientBusyError(name, busy_code)
        try:
            yield
        finally:
            self._lock.release()

    def _new_connection(self) -> ISOTCPConnection:
        return ISOTCPConnection(
            self._address,
            self._tcp_port,
            connect_timeout=self._ping_timeout / 1000.0,
            send_timeout=self._send_timeout / 1000.0,
            recv_timeout=self._recv_timeout / 1000.0,
        )

    def connect(self) -> bool:
        """Connects to the PLC and negotiates the PDU length.

        On failure the client is left disconnected, but the TCP connection is
        kept open; call :meth:`close` to release it.

        Returns:
            True once connected.

        Raises:
            S7ClientBusyError: another operation is running.
            S7ConnectionError: the connection or the negotiation failed.
        """
        with self._operation("connect"):
            if self._connection is not None and self._connection.is_open:
                logger.info(f"Closing previous connection to {self._address}:{self._tcp_port}")
                self._connection.close()

            self._state = ConnectionState.CONNECTING
            self._pdu_length = 0
            self._connection = self._new_connection()
            try:
                self._connection.open()
                self._iso_connect(self._connection)
                self._pdu_length = self._negotiate_pdu_length(self._connection)
            except Exception:
                self._state = ConnectionState.DISCONNECTED
                raise

            self._state = ConnectionState.CONNECTED
            logger.info(
                f"Connected to {self._address}:{self._tcp_port} rack {self._rack} slot {self._slot}, "
                f"PDU length {self._pdu_length}"
            )
            return True

    def _iso_connect(self, connection: ISOTCPConnection) -> None:
        connection.send(protocol.build_connection_request(self.remote_tsap))
        protocol.parse_connection_confirm(connection.recv_frame())
        logger.debug(f"ISO connection established, remote TSAP {self.remote_tsap:#06x}")

    def _negotiate_pdu_length(self, connection: ISOTCPConnection) -> int:
        connection.send(protocol.build_negotiation_request(self._pdu_request))
        pdu_length = protocol.parse_negotiation_response(connection.recv_frame())
        logger.debug(f"Negotiated PDU length {pdu_length} (requested {self._pdu_request})")
        return pdu_length

    def close(self) -> bool:
        """Closes the connection. Safe to call at any time when not busy.

        Returns:
            True.
        """
        with self._operation("close", busy_code=0):
            if self._connection is not None:
                self._connection.close()
            if self._state != ConnectionState.DISCONNECTED:
                logger.info(f"Disconnected from {self._address}:{self._tcp_port}")
            self._state = ConnectionState.DISCONNECTED
            return True

    def db_read(self, db_number: int, start: int, size: int) -> bytearray:
        """Reads a part of a DB from a PLC

        Args:
            db_number: number of the DB to be read.
            start: byte index from where is start to read from.
            size: amount of bytes to be read, even and at most ``pdu_length - 18``.

        Returns:
            Buffer read.

        Example:
            >>> import s7client
            >>> client = s7client.Client("192.168.0.1", 0, 0)
            >>> client.connect()
            True
            >>> buffer = client.db_read(1, 10, 4)  # reads the db number 1 starting from the byte 10 until byte 14.
            >>> buffer
            bytearray(b'\\x00\\x00\\x00\\x00')
        """
        with self._operation("db_read"):
            connection = self._require_connection()
            limit = self._pdu_length - protocol.read_overhead
            if size < 2 or size > limit or size % 2 != 0:
                raise S7ReadByteCountError(size, limit)
            self._check_address(db_number, start)

            logger.debug(f"db_read: DB{db_number}, start={start}, size={size}")
            reply = self._exchange(connection, protocol.build_read_request(db_number, start, size))
            return protocol.parse_read_response(reply, size)

    def db_write(self, db_number: int, start: int, data: Union[bytes, bytearray]) -> bool:
        """Writes a part of a DB into a PLC.

        Args:
            db_number: number of the DB to be written.
            start: byte index to start writing to.
            data: buffer to be written, even length of at most ``pdu_length - 35``.

        Returns:
            True once the PLC acknowledged the write.

        Example:
            >>> import s7client
            >>> client = s7client.Client("192.168.0.1", 0, 0)
            >>> client.connect()
            True
            >>> buffer = bytearray([0b00000001, 0b00000000])
            >>> client.db_write(1, 10, buffer)
            True
        """
        with self._operation("db_write"):
            connection = self._require_connection()
            size = len(data)
            limit = self._pdu_length - protocol.write_overhead
            if size < 2 or size > limit or size % 2 != 0:
                raise S7WriteByteCountError(size, limit)
            self._check_address(db_number, start)

            logger.debug(f"db_write: DB{db_number}, start={start}, size={size}")
            reply = self._exchange(connection, protocol.build_write_request(db_number, start, bytes(data)))
            protocol.parse_write_response(reply)
            return True

    def _exchange(self, connection: ISOTCPConnection, request: bytes) -> bytes:
        """Send a job and receive its reply frame.

        Replies carry nothing that ties them to their job, so once a frame is
        lost or cut short the stream cannot be trusted any more: the client
        drops to DISCONNECTED and only accepts a new :meth:`connect`. The
        socket stays open until :meth:`close`.
        """
        try:
            connection.send(request)
            return connection.recv_frame()
        except (S7TimeoutError, S7StreamError, S7MalformedResponseError) as e:
            self._state = ConnectionState.DISCONNECTED
            logger.warning(f"Connection to {self._address}:{self._tcp_port} lost sync: {e}")
            raise

    def _require_connection(self) -> ISOTCPConnection:
        if self._state != ConnectionState.CONNECTED or self._connection is None:
            raise S7NotConnectedError()
        return self._connection

    @staticmethod
    def _check_address(db_number: int, start: int) -> None:
        if not 0 <= db_number <= 0xFFFF:
            raise ValueError(f"DB number {db_number} is out of range 0..65535")
        if not 0 <= start <= 0xFFFFFF:
            raise ValueError(f"Start address {start} is out of range 0..16777215")

    def get_param(self, number: Parameter) -> int:
        """Reads an internal Client object parameter.

        Args:
            number: Parameter type number

        Returns:
            Value of the param read (timeouts in milliseconds)
        """
        logger.debug(f"retrieving param number {number}")
        values = {
            Parameter.RemotePort: self._tcp_port,
            Parameter.PingTimeout: self._ping_timeout,
            Parameter.SendTimeout: self._send_timeout,
            Parameter.RecvTimeout: self._recv_timeout,
            Parameter.PDURequest: self._pdu_request,
        }
        if number not in values:
            raise ValueError(f"Unknown parameter {number}")
        return values[number]

    def set_param(self, number: Parameter, value: int) -> None:
        """Writes an internal Parameter.

        Timeouts apply from the next send or receive, the PDU request from the
        next :meth:`connect`.

        Args:
            number: Parameter type number
            value: Value to be written (timeouts in milliseconds)

        Raises:
            S7ClientBusyError: another operation is running.
        """
        with self._operation("set_param"):
            logger.debug(f"setting param number {number} to {value}")
            if number == Parameter.RemotePort:
                raise ValueError("The remote port is fixed when the client is created")
            if number == Parameter.PDURequest:
                if not 240 <= value <= 960:
                    raise ValueError(f"PDU request {value} is out of range 240..960")
                self._pdu_request = value
                return
            if number not in (Parameter.PingTimeout, Parameter.SendTimeout, Parameter.RecvTimeout):
                raise ValueError(f"Unknown parameter {number}")
            if value <= 0:
                raise ValueError(f"Timeout must be positive, got {value}")

            if number == Parameter.PingTimeout:
                self._ping_timeout = value
            elif number == Parameter.SendTimeout:
                self._send_timeout = value
            else:
                self._recv_timeout = value
            if self._connection is not None:
                self._connection.connect_timeout = self._ping_timeout / 1000.0
                self._connection.send_timeout = self._send_timeout / 1000.0
                self._connection.recv_timeout = self._recv_timeout / 1000.0

    def __enter__(self) -> "Client":
        return self

    def __exit__(
        self, exc_type: Optional[Type[BaseException]], exc_val: Optional[BaseException], exc_tb: Optional[TracebackType]
    ) -> None:
        self.close()
