"""
S7 frame encoding and decoding.

Every request this client sends has a fixed layout. Each one is described by
a :class:`FrameTemplate`: the constant bytes of the telegram plus the list of
fields that change per call. Builders fill the templates in; parsers check a
received telegram and pull the interesting fields out of it.

All offsets are counted from the first byte of the TPKT header.
"""

from typing import NamedTuple, Sequence

from .error import (
    S7IsoConnectionError,
    S7MalformedResponseError,
    S7PduNegotiationError,
    S7ReadError,
    S7WriteError,
)
from .type import ReturnCodeSuccess

COTP_CC = 0xD0  # Connection Confirm

size_CC = 22  # Connection confirm
size_PN = 27  # PDU negotiation response
size_RD = 31  # Header size when reading
size_WR = 35  # Header size when writing
size_RD_ACK = 25  # Read response header, the payload follows
min_size_RD_ACK = 27  # Shortest read response accepted
size_WR_ACK = 22  # Write response

read_overhead = 18  # PDU bytes of a read reply that are not payload
write_overhead = 35  # PDU bytes of a write request that are not payload

default_pdu_request = 960


class Field(NamedTuple):
    """A variable field of a frame, written big-endian."""

    offset: int
    width: int
    name: str


class FrameTemplate:
    """A fixed telegram header with a few variable fields."""

    def __init__(self, name: str, header: Sequence[int], fields: Sequence[Field]):
        self.name = name
        self.header = bytes(header)
        self.fields = tuple(fields)
        for field in self.fields:
            if field.offset + field.width > len(self.header):
                raise ValueError(f"Field {field.name} of {name} lies outside the header")

    def __len__(self) -> int:
        return len(self.header)

    def build(self, payload: bytes = b"", **values: int) -> bytes:
        """Build a frame from the template.

        Args:
            payload: bytes appended verbatim after the header.
            **values: one value per field name.

        Returns:
            The complete telegram.
        """
        unknown = set(values) - {field.name for field in self.fields}
        if unknown:
            raise KeyError(f"Unknown fields for {self.name}: {', '.join(sorted(unknown))}")
        frame = bytearray(self.header)
        frame += payload
        for field in self.fields:
            value = values[field.name]
            if not 0 <= value < 1 << (8 * field.width):
                raise ValueError(f"{field.name}={value} does not fit in {field.width} bytes")
            frame[field.offset : field.offset + field.width] = value.to_bytes(field.width, "big")
        return bytes(frame)


ISO_CR = FrameTemplate(
    "connection request",
    [
        # TPKT (RFC1006 Header)
        0x03,  # RFC 1006 ID (3)
        0x00,  # Reserved, always 0
        0x00,  # High part of packet length (entire frame, payload and TPDU included)
        0x16,  # Low part of packet length (entire frame, payload and TPDU included)
        # COTP (ISO 8073 Header)
        0x11,  # Length indicator (17)
        0xE0,  # CR (Connection Request) ID
        0x00,  # Dst Reference HI
        0x00,  # Dst Reference LO
        0x00,  # Src Reference HI
        0x01,  # Src Reference LO
        0x00,  # Class + Options Flags
        0xC0,  # TPDU Size Identifier
        0x01,  # TPDU Size Length
        0x0A,  # TPDU Size: 1024 bytes
        0xC1,  # Src TSAP Identifier
        0x02,  # Src TSAP Length
        0x01,  # Src TSAP HI
        0x00,  # Src TSAP LO
        0xC2,  # Dst TSAP Identifier
        0x02,  # Dst TSAP Length
        0x00,  # Dst TSAP HI
        0x00,  # Dst TSAP LO
    ],
    [Field(20, 2, "remote_tsap")],
)

S7_PN = FrameTemplate(
    "pdu negotiation",
    [
        0x03, 0x00, 0x00, 0x19,  # TPKT
        0x02, 0xF0, 0x80,  # COTP DT
        0x32,  # S7 Protocol ID
        0x01,  # Job Type
        0x00, 0x00,  # Redundancy identification
        0x04, 0x00,  # PDU Reference
        0x00, 0x08,  # Parameters Length
        0x00, 0x00,  # Data Length
        0xF0,  # Function: setup communication
        0x00,  # Reserved
        0x00, 0x01,  # Max AmQ calling
        0x00, 0x01,  # Max AmQ called
        0x00, 0x00,  # PDU Length Requested
    ],
    [Field(23, 2, "pdu_length")],
)

S7_RD = FrameTemplate(
    "read var",
    [
        0x03, 0x00, 0x00, 0x1F,  # TPKT, 31 bytes
        0x02, 0xF0, 0x80,  # COTP DT
        0x32,  # S7 Protocol ID
        0x01,  # Job Type
        0x00, 0x00,  # Redundancy identification
        0x05, 0x00,  # PDU Reference
        0x00, 0x0E,  # Parameters Length
        0x00, 0x00,  # Data Length
        0x04,  # Function 4 Read Var
        0x01,  # Items count
        0x12,  # Var spec.
        0x0A,  # Length of remaining bytes
        0x10,  # Syntax ID
        0x02,  # Transport Size: byte
        0x00, 0x00,  # Num Elements
        0x00, 0x00,  # DB Number
        0x84,  # Area Type: DB
        0x00, 0x00, 0x00,  # Area Offset
    ],
    [Field(23, 2, "byte_count"), Field(25, 2, "db_number"), Field(28, 3, "start")],
)

S7_WR = FrameTemplate(
    "write var",
    [
        0x03, 0x00, 0x00, 0x00,  # TPKT, length = 35 + data size
        0x02, 0xF0, 0x80,  # COTP DT
        0x32,  # S7 Protocol ID
        0x01,  # Job Type
        0x00, 0x00,  # Redundancy identification
        0x05, 0x00,  # PDU Reference
        0x00, 0x0E,  # Parameters Length
        0x00, 0x00,  # Data Length = data size + 4
        0x05,  # Function 5 Write Var
        0x01,  # Items count
        0x12,  # Var spec.
        0x0A,  # Length of remaining bytes
        0x10,  # Syntax ID
        0x02,  # Transport Size: byte
        0x00, 0x00,  # Num Elements
        0x00, 0x00,  # DB Number
        0x84,  # Area Type: DB
        0x00, 0x00, 0x00,  # Area Offset
        0x00,  # Reserved
        0x04,  # Transport size of the data item: byte
        0x00, 0x00,  # Data Length * 8
    ],
    [
        Field(2, 2, "frame_length"),
        Field(15, 2, "data_length"),
        Field(23, 2, "byte_count"),
        Field(25, 2, "db_number"),
        Field(28, 3, "start"),
        Field(33, 2, "bit_length"),
    ],
)


def build_connection_request(remote_tsap: int) -> bytes:
    """COTP connection request addressed to ``remote_tsap``."""
    return ISO_CR.build(remote_tsap=remote_tsap)


def build_negotiation_request(pdu_length: int = default_pdu_request) -> bytes:
    """S7 setup communication job proposing ``pdu_length``."""
    return S7_PN.build(pdu_length=pdu_length)


def build_read_request(db_number: int, start: int, byte_count: int) -> bytes:
    """Read Var job for ``byte_count`` bytes of a data block.

    Args:
        db_number: number of the data block.
        start: byte offset inside the data block, 24 bit.
        byte_count: number of bytes requested.

    Returns:
        The 31 byte telegram.
    """
    return S7_RD.build(byte_count=byte_count, db_number=db_number, start=start)


def build_write_request(db_number: int, start: int, data: bytes) -> bytes:
    """Write Var job carrying ``data`` for a data block.

    Args:
        db_number: number of the data block.
        start: byte offset inside the data block, 24 bit.
        data: bytes to write, appended verbatim.

    Returns:
        The telegram of ``35 + len(data)`` bytes.
    """
    byte_count = len(data)
    return S7_WR.build(
        bytes(data),
        frame_length=size_WR + byte_count,
        data_length=byte_count + 4,
        byte_count=byte_count,
        db_number=db_number,
        start=start,
        bit_length=byte_count * 8,
    )


def get_byte_at(frame: bytes, offset: int) -> int:
    if offset >= len(frame):
        raise S7MalformedResponseError(
            f"Frame of {len(frame)} bytes has no byte {offset}", expected_length=offset + 1, actual_length=len(frame)
        )
    return frame[offset]


def get_word_at(frame: bytes, offset: int) -> int:
    if offset + 2 > len(frame):
        raise S7MalformedResponseError(
            f"Frame of {len(frame)} bytes has no word at {offset}", expected_length=offset + 2, actual_length=len(frame)
        )
    return int.from_bytes(frame[offset : offset + 2], "big")


def parse_connection_confirm(frame: bytes) -> None:
    """Check the reply to a COTP connection request."""
    if len(frame) != size_CC or get_byte_at(frame, 5) != COTP_CC:
        raise S7IsoConnectionError(actual_length=len(frame), expected_length=size_CC)


def parse_negotiation_response(frame: bytes) -> int:
    """Check the reply to a PDU negotiation and return the negotiated length."""
    if len(frame) != size_PN or get_byte_at(frame, 17) != 0 or get_byte_at(frame, 18) != 0:
        raise S7PduNegotiationError(actual_length=len(frame), expected_length=size_PN)
    pdu_length = get_word_at(frame, 25)
    if pdu_length == 0:
        raise S7PduNegotiationError(actual_length=len(frame), message="Pdu negotiation failed. (PDU length 0)")
    return pdu_length


def parse_read_response(frame: bytes, byte_count: int) -> bytearray:
    """Check a Read Var reply and return its ``byte_count`` payload bytes."""
    return_code = get_byte_at(frame, 21) if len(frame) > 21 else None
    if len(frame) < min_size_RD_ACK or return_code != ReturnCodeSuccess:
        raise S7ReadError(actual_length=len(frame), return_code=return_code)
    end = size_RD_ACK + byte_count
    if len(frame) < end:
        raise S7MalformedResponseError(
            f"Read reply carries {len(frame) - size_RD_ACK} bytes, {byte_count} requested",
            expected_length=end,
            actual_length=len(frame),
        )
    return bytearray(frame[size_RD_ACK:end])


def parse_write_response(frame: bytes) -> None:
    """Check a Write Var reply."""
    return_code = get_byte_at(frame, 21) if len(frame) > 21 else None
    if len(frame) != size_WR_ACK or return_code != ReturnCodeSuccess:
        raise S7WriteError(actual_length=len(frame), return_code=return_code)
