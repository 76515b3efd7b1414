"""
Pure Python S7 PLC simulator.

Answers the telegrams :class:`s7client.Client` sends: the COTP connection
request, the PDU negotiation and single item Read Var / Write Var jobs on
data blocks. Used for end-to-end tests and to try the client without a PLC.
"""

import socket
import struct
import threading
import time
import logging
from enum import IntEnum
from types import TracebackType
from typing import Dict, List, Optional, Tuple, Type

from ..connection import isoTcpVersion, tpkt_header_size
from ..type import ReturnCodeSuccess, S7AreaDB

logger = logging.getLogger(__name__)

COTP_CR = 0xE0  # Connection Request
COTP_CC = 0xD0  # Connection Confirm
COTP_DT = 0xF0  # Data Transfer

S7_PROTOCOL_ID = 0x32
ROSCTR_JOB = 0x01
ROSCTR_ACK_DATA = 0x03

FUNC_READ = 0x04
FUNC_WRITE = 0x05
FUNC_SETUP_COMMUNICATION = 0xF0

RC_ADDRESS_OUT_OF_RANGE = 0x05
RC_DATA_TYPE_INCONSISTENT = 0x07
RC_OBJECT_DOES_NOT_EXIST = 0x0A

# Error class/code of a job the simulator does not implement
ERROR_CLASS_FUNCTION = 0x84
ERROR_CODE_NOT_SUPPORTED = 0x04


class ServerState(IntEnum):
    """S7 server states."""

    STOPPED = 0
    RUNNING = 1
    ERROR = 2


class Server:
    """
    Pure Python S7 server implementation.

    Emulates the data blocks of a Siemens S7 PLC for testing and development
    purposes.

    Examples:
        >>> import s7client.server
        >>> server = s7client.server.Server()
        >>> server.register_db(1, bytearray(100))
        >>> server.start(tcp_port=1102)
        >>> # ... connect clients
        >>> server.stop()
    """

    def __init__(self, max_pdu_length: int = 480) -> None:
        """
        Initialize S7 server.

        Args:
            max_pdu_length: Largest PDU length granted during negotiation
        """
        self.server_socket: Optional[socket.socket] = None
        self.server_thread: Optional[threading.Thread] = None
        self.running = False
        self.host = "0.0.0.0"
        self.port = 102
        self.max_pdu_length = max_pdu_length

        self.state = ServerState.STOPPED
        self.client_count = 0

        # Data blocks
        self.data_blocks: Dict[int, bytearray] = {}
        self.db_locks: Dict[int, threading.Lock] = {}

        # Client connections
        self.clients: List[threading.Thread] = []
        self.client_lock = threading.Lock()

    def register_db(self, db_number: int, data: bytearray) -> None:
        """
        Register a data block with the server.

        Args:
            db_number: DB number
            data: Buffer backing the data block, shared with the caller
        """
        if not 0 <= db_number <= 0xFFFF:
            raise ValueError(f"DB number {db_number} is out of range 0..65535")
        self.data_blocks[db_number] = data
        self.db_locks[db_number] = threading.Lock()
        logger.info(f"Registered DB{db_number}, size {len(data)}")

    def unregister_db(self, db_number: int) -> None:
        """Unregister a data block. Unknown numbers are ignored."""
        if db_number in self.data_blocks:
            del self.data_blocks[db_number]
            del self.db_locks[db_number]
            logger.info(f"Unregistered DB{db_number}")

    def start(self, tcp_port: int = 102, host: str = "0.0.0.0") -> None:
        """
        Start the S7 server.

        Args:
            tcp_port: TCP port to listen on, 0 picks a free port (see :attr:`port`)
            host: Address to bind to
        """
        if self.running:
            raise RuntimeError("Server is already running")

        self.host = host
        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        try:
            self.server_socket.bind((host, tcp_port))
            self.server_socket.listen(5)
        except OSError:
            self.state = ServerState.ERROR
            self.server_socket.close()
            self.server_socket = None
            raise

        self.port = self.server_socket.getsockname()[1]
        self.running = True
        self.state = ServerState.RUNNING

        self.server_thread = threading.Thread(target=self._server_loop, daemon=True)
        self.server_thread.start()
        logger.info(f"S7 Server started on {self.host}:{self.port}")

    def stop(self) -> None:
        """Stop the S7 server and wait for its threads."""
        if not self.running:
            return

        self.running = False
        self.state = ServerState.STOPPED

        if self.server_socket:
            self.server_socket.close()
            self.server_socket = None

        if self.server_thread and self.server_thread.is_alive():
            self.server_thread.join(timeout=5.0)

        with self.client_lock:
            clients = self.clients[:]
        for client_thread in clients:
            if client_thread.is_alive():
                client_thread.join(timeout=2.0)

        logger.info("S7 Server stopped")

    def get_status(self) -> Tuple[str, int]:
        """
        Get server status.

        Returns:
            Tuple of (server state name, connected clients)
        """
        return self.state.name, self.client_count

    def _server_loop(self) -> None:
        """Main server loop to accept client connections."""
        try:
            while self.running and self.server_socket:
                try:
                    self.server_socket.settimeout(1.0)
                    client_socket, address = self.server_socket.accept()
                except socket.timeout:
                    continue
                except OSError:
                    if self.running:
                        logger.warning("Server socket error in accept loop")
                    break

                logger.info(f"Client connected from {address}")
                client_thread = threading.Thread(target=self._handle_client, args=(client_socket, address), daemon=True)
                with self.client_lock:
                    self.clients.append(client_thread)
                    self.client_count += 1
                client_thread.start()
        finally:
            self.running = False
            self.state = ServerState.STOPPED

    def _handle_client(self, client_socket: socket.socket, address: Tuple[str, int]) -> None:
        """Handle a single client connection."""
        client_socket.settimeout(1.0)
        try:
            connection_request = self._receive_frame(client_socket)
            if connection_request is None:
                return
            if len(connection_request) < 11 or connection_request[5] != COTP_CR:
                logger.warning(f"Expected COTP CR from {address}")
                return
            client_socket.sendall(self._build_connection_confirm(connection_request))
            logger.info(f"ISO connection established with {address}")

            while self.running:
                request = self._receive_frame(client_socket)
                if request is None:
                    break
                response = self._process_request(request)
                client_socket.sendall(response)

        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError):
            logger.info(f"Client {address} disconnected")
        except OSError as e:
            logger.error(f"Error handling client {address}: {e}")
        finally:
            client_socket.close()
            with self.client_lock:
                current_thread = threading.current_thread()
                if current_thread in self.clients:
                    self.clients.remove(current_thread)
                self.client_count = max(0, self.client_count - 1)
            logger.info(f"Client {address} handler finished")

    def _receive_frame(self, client_socket: socket.socket) -> Optional[bytes]:
        """Receive one TPKT frame, None when the client went away or the server stops."""
        try:
            header = self._recv_exact(client_socket, tpkt_header_size)
        except ConnectionResetError:
            return None
        if header is None:
            return None

        version, _, length = struct.unpack(">BBH", header)
        if version != isoTcpVersion or length < 7:
            logger.error(f"Invalid TPKT header: {header.hex()}")
            return None
        body = self._recv_exact(client_socket, length - tpkt_header_size)
        if body is None:
            return None
        return header + body

    def _recv_exact(self, client_socket: socket.socket, size: int) -> Optional[bytes]:
        """Receive exactly the specified number of bytes, None when the server stops first.

        Bytes already received are kept when the socket times out, so a slow
        client never loses frame sync.
        """
        data = bytearray()
        while len(data) < size:
            if not self.running:
                return None
            try:
                chunk = client_socket.recv(size - len(data))
            except socket.timeout:
                continue
            if not chunk:
                raise ConnectionResetError("Connection closed by peer")
            data.extend(chunk)
        return bytes(data)

    @staticmethod
    def _build_connection_confirm(request: bytes) -> bytes:
        """COTP CC mirroring the parameters of the connection request."""
        confirm = bytearray(request)
        confirm[5] = COTP_CC
        confirm[6:8] = request[8:10]  # Dst reference: the client's source reference
        confirm[8:10] = b"\x00\x01"  # Src reference: ours
        return bytes(confirm)

    @staticmethod
    def _build_response(pdu_ref: bytes, parameters: bytes, data: bytes = b"", error: Tuple[int, int] = (0, 0)) -> bytes:
        """Wrap an ACK_DATA S7 PDU in its COTP DT and TPKT headers."""
        s7_header = struct.pack(
            ">BBH2sHHBB",
            S7_PROTOCOL_ID,
            ROSCTR_ACK_DATA,
            0x0000,  # Reserved
            pdu_ref,  # PDU reference (echo)
            len(parameters),
            len(data),
            error[0],  # Error class
            error[1],  # Error code
        )
        cotp = struct.pack(">BBB", 2, COTP_DT, 0x80)
        payload = cotp + s7_header + parameters + data
        return struct.pack(">BBH", isoTcpVersion, 0, len(payload) + tpkt_header_size) + payload

    def _process_request(self, request: bytes) -> bytes:
        """
        Process an S7 job and generate the response frame.

        Args:
            request: Complete request frame, TPKT header included

        Returns:
            Response frame
        """
        if len(request) < 18 or request[5] != COTP_DT or request[7] != S7_PROTOCOL_ID or request[8] != ROSCTR_JOB:
            logger.warning(f"Unsupported telegram: {request.hex()}")
            return self._build_response(b"\x00\x00", b"", error=(ERROR_CLASS_FUNCTION, ERROR_CODE_NOT_SUPPORTED))

        pdu_ref = request[11:13]
        function_code = request[17]
        if function_code == FUNC_SETUP_COMMUNICATION and len(request) >= 25:
            return self._handle_setup_communication(request, pdu_ref)
        elif function_code == FUNC_READ and len(request) >= 31:
            return self._handle_read(request, pdu_ref)
        elif function_code == FUNC_WRITE and len(request) >= 35:
            return self._handle_write(request, pdu_ref)

        logger.warning(f"Unsupported function {function_code:#04x}")
        return self._build_response(pdu_ref, b"", error=(ERROR_CLASS_FUNCTION, ERROR_CODE_NOT_SUPPORTED))

    def _handle_setup_communication(self, request: bytes, pdu_ref: bytes) -> bytes:
        """Handle setup communication request."""
        requested = struct.unpack_from(">H", request, 23)[0]
        pdu_length = min(requested, self.max_pdu_length)
        logger.debug(f"PDU negotiation: requested {requested}, granted {pdu_length}")
        parameters = struct.pack(
            ">BBHHH",
            FUNC_SETUP_COMMUNICATION,  # Function code
            0x00,  # Reserved
            1,  # Max AMQ caller
            1,  # Max AMQ callee
            pdu_length,
        )
        return self._build_response(pdu_ref, parameters)

    @staticmethod
    def _parse_item(request: bytes) -> Tuple[int, int, int, int]:
        """Returns (byte count, DB number, area, start) of the single request item."""
        count, db_number, area = struct.unpack_from(">HHB", request, 23)
        start = int.from_bytes(request[28:31], "big")
        return count, db_number, area, start

    def _check_item(self, count: int, db_number: int, area: int, start: int) -> int:
        if area != S7AreaDB or db_number not in self.data_blocks:
            return RC_OBJECT_DOES_NOT_EXIST
        if start + count > len(self.data_blocks[db_number]):
            return RC_ADDRESS_OUT_OF_RANGE
        return ReturnCodeSuccess

    def _handle_read(self, request: bytes, pdu_ref: bytes) -> bytes:
        """Handle read area request."""
        count, db_number, area, start = self._parse_item(request)
        return_code = self._check_item(count, db_number, area, start)
        parameters = struct.pack(">BB", FUNC_READ, 0x01)

        if return_code != ReturnCodeSuccess:
            logger.warning(f"Read DB{db_number} start {start} size {count} refused: {return_code:#04x}")
            return self._build_response(pdu_ref, parameters, struct.pack(">BBH", return_code, 0x00, 0))

        with self.db_locks[db_number]:
            payload = bytes(self.data_blocks[db_number][start : start + count])
        logger.debug(f"Read DB{db_number} start {start} size {count}")
        data = struct.pack(">BBH", ReturnCodeSuccess, 0x04, count * 8) + payload
        return self._build_response(pdu_ref, parameters, data)

    def _handle_write(self, request: bytes, pdu_ref: bytes) -> bytes:
        """Handle write area request."""
        count, db_number, area, start = self._parse_item(request)
        return_code = self._check_item(count, db_number, area, start)
        payload = request[35 : 35 + count]
        if return_code == ReturnCodeSuccess and len(payload) != count:
            return_code = RC_DATA_TYPE_INCONSISTENT

        if return_code == ReturnCodeSuccess:
            with self.db_locks[db_number]:
                self.data_blocks[db_number][start : start + count] = payload
            logger.debug(f"Wrote DB{db_number} start {start} size {count}")
        else:
            logger.warning(f"Write DB{db_number} start {start} size {count} refused: {return_code:#04x}")

        parameters = struct.pack(">BB", FUNC_WRITE, 0x01)
        return self._build_response(pdu_ref, parameters, struct.pack(">B", return_code))

    def __enter__(self) -> "Server":
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        """Context manager exit."""
        self.stop()


def mainloop(tcp_port: int = 1102, init_standard_values: bool = False) -> None:
    """
    Run a S7 server with DB1 registered until interrupted.

    Args:
        tcp_port: Port that the server will listen on
        init_standard_values: If True, initialize some default values
    """
    server = Server()

    db_data = bytearray(600)
    server.register_db(1, db_data)

    if init_standard_values:
        logger.info("Initializing with standard values")

        # words at offset 0: 42, 1
        struct.pack_into(">HH", db_data, 0, 42, 1)
        # dwords at offset 10
        struct.pack_into(">II", db_data, 10, 0x12345678, 0xFFFFFFFF)
        # reals at offset 20
        struct.pack_into(">ff", db_data, 20, 123.321, -0.5)

    server.start(tcp_port)

    try:
        logger.info(f"Pure Python S7 server running on port {tcp_port}")
        logger.info("Press Ctrl+C to stop")

        while True:
            time.sleep(1)

    except KeyboardInterrupt:
        logger.info("Stopping server...")
    finally:
        server.stop()
