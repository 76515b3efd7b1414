"""
Python equivalent for the S7 client state and parameter definitions.
"""

from enum import IntEnum


class ConnectionState(IntEnum):
    """Client connection states."""

    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2


class Parameter(IntEnum):
    # // PARAMS LIST
    RemotePort = 2
    PingTimeout = 3
    SendTimeout = 4
    RecvTimeout = 5
    PDURequest = 10


# Item return code of a successful read or write
ReturnCodeSuccess = 0xFF

# Connection type PG (programming device), high byte of the remote TSAP
ConnTypePG = 0x01

# Data block area code
S7AreaDB = 0x84
