"""
S7 client error handling and exception classes.

Every failure the client can report is a distinct exception class carrying a
numeric code, so callers can either catch a family (:class:`S7ConnectionError`,
:class:`S7ProtocolError`) or a single condition.
"""

from typing import Optional


class S7Error(Exception):
    """Base exception for all S7 client errors."""

    code: int = -1

    def __init__(self, message: Optional[str] = None, error_code: Optional[int] = None):
        if error_code is None:
            error_code = self.code
        if message is None:
            message = error_text(error_code)
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def __str__(self) -> str:
        return f"{self.error_code} : {self.message}"


class S7ConnectionError(S7Error):
    """Raised when the transport or the connection setup fails."""

    pass


class S7ProtocolError(S7Error):
    """Raised when a request is rejected or a reply cannot be understood."""

    pass


class S7ClientBusyError(S7Error):
    """Raised when an operation is attempted while another one is running."""

    code = 10

    def __init__(self, operation: str = "", error_code: Optional[int] = None):
        super().__init__(error_code=error_code)
        self.operation = operation


class S7InvalidEndpointError(S7ConnectionError):
    code = 1

    def __init__(self, address: object, tcp_port: object, message: Optional[str] = None):
        super().__init__(message or f"{error_text(self.code)} ({address!r}:{tcp_port!r})")
        self.address = address
        self.tcp_port = tcp_port


class S7TcpConnectError(S7ConnectionError):
    code = 2

    def __init__(self, address: str, tcp_port: int, message: Optional[str] = None):
        super().__init__(message or f"{error_text(self.code)} ({address}:{tcp_port})")
        self.address = address
        self.tcp_port = tcp_port


class S7StreamError(S7ConnectionError):
    code = 3


class S7NotConnectedError(S7ConnectionError):
    code = 11


class S7TimeoutError(S7ConnectionError):
    """Raised when sending or receiving a frame times out."""

    code = 13


class S7IsoConnectionError(S7ConnectionError):
    code = 4

    def __init__(self, actual_length: Optional[int] = None, expected_length: int = 22, message: Optional[str] = None):
        super().__init__(message)
        self.expected_length = expected_length
        self.actual_length = actual_length


class S7PduNegotiationError(S7ConnectionError):
    code = 5

    def __init__(self, actual_length: Optional[int] = None, expected_length: int = 27, message: Optional[str] = None):
        super().__init__(message)
        self.expected_length = expected_length
        self.actual_length = actual_length


class S7MalformedResponseError(S7ProtocolError):
    """Raised when a frame is too short or its header is not valid."""

    code = 12

    def __init__(
        self, message: Optional[str] = None, expected_length: Optional[int] = None, actual_length: Optional[int] = None
    ):
        super().__init__(message)
        self.expected_length = expected_length
        self.actual_length = actual_length


class _ByteCountError(S7ProtocolError):
    def __init__(self, byte_count: int, limit: int):
        super().__init__(f"{error_text(self.code)} (byte count {byte_count}, allowed 2..{limit}, even)")
        self.byte_count = byte_count
        self.limit = limit


class S7ReadByteCountError(_ByteCountError):
    code = 6


class S7WriteByteCountError(_ByteCountError):
    code = 8


class _ReplyError(S7ProtocolError):
    def __init__(self, actual_length: int, return_code: Optional[int] = None):
        message = error_text(self.code)
        if return_code is not None and return_code != 0xFF:
            message = f"{message} (return code {return_code:#04x}: {return_code_text(return_code)})"
        else:
            message = f"{message} (reply of {actual_length} bytes)"
        super().__init__(message)
        self.actual_length = actual_length
        self.return_code = return_code


class S7ReadError(_ReplyError):
    code = 7


class S7WriteError(_ReplyError):
    code = 9


client_errors = {
    0: "S7Client is busy.",
    1: "Hostname or port is not valid.",
    2: "Tcp connection failed.",
    3: "Network stream failed.",
    4: "Iso connection failed.",
    5: "Pdu negotiation failed.",
    6: "Byte count is out of range.",
    7: "Reading failed.",
    8: "Byte count is out of range.",
    9: "Writing failed.",
    10: "S7Client is busy.",
    11: "S7Client is not connected to a remote device.",
    12: "Malformed response.",
    13: "Timeout while waiting for the remote device.",
}

# Item return codes found in read/write replies
return_codes = {
    0x00: "Reserved",
    0x01: "Hardware fault",
    0x03: "Accessing the object not allowed",
    0x05: "Address out of range",
    0x06: "Data type not supported",
    0x07: "Data type inconsistent",
    0x0A: "Object does not exist",
    0xFF: "Success",
}


def error_text(error_code: int) -> str:
    """Get the human-readable message for a client error code.

    Examples:
        >>> error_text(11)
        'S7Client is not connected to a remote device.'
    """
    return client_errors.get(error_code, f"Unknown error: {error_code}")


def return_code_text(return_code: int) -> str:
    """Get the text for an item return code of a read or write reply."""
    return return_codes.get(return_code, f"Unknown return code {return_code:#04x}")
