"""
The s7client Python library.

Pure Python client for reading and writing data blocks of Siemens S7 PLCs
over ISO on TCP, without requiring the native Snap7 C library.
"""

from importlib.metadata import version, PackageNotFoundError

from . import util
from .client import Client
from .error import S7Error, S7ConnectionError, S7ProtocolError
from .type import ConnectionState, Parameter

__all__ = [
    "Client",
    "ConnectionState",
    "Parameter",
    "S7Error",
    "S7ConnectionError",
    "S7ProtocolError",
    "util",
]

try:
    __version__ = version("python-s7client")
except PackageNotFoundError:
    __version__ = "0.0rc0"
