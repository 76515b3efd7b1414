"""
Helpers to interpret the raw bytearray data returned by :meth:`Client.db_read`
and to prepare the data passed to :meth:`Client.db_write`.

The PLC stores every value big-endian. All functions take the buffer and the
byte index the value starts at, and check that the whole value fits in the
buffer.

example::

    data = client.db_read(1, 0, 8)
    level = get_word(data, 0)
    setpoint = get_real(data, 4)

    set_real(data, 4, setpoint + 0.5)
    client.db_write(1, 0, data)
"""

import struct


def _check_bounds(bytearray_: bytearray, byte_index: int, width: int) -> None:
    if byte_index < 0 or byte_index + width > len(bytearray_):
        raise IndexError(
            f"Cannot access {width} bytes at index {byte_index} of a buffer of {len(bytearray_)} bytes"
        )


def _check_range(value: int, width: int) -> None:
    if not 0 <= value < 1 << (8 * width):
        raise ValueError(f"Value {value} does not fit in {width} unsigned bytes")


def get_word(bytearray_: bytearray, byte_index: int) -> int:
    """Get word value from bytearray.

    Notes:
        WORD 16bit 2bytes Decimal number unsigned B#(0,0) to B#(255,255) => 0 to 65535

    Args:
        bytearray_: buffer to get the word from.
        byte_index: byte index from where start reading from.

    Returns:
        Word value.

    Examples:
        >>> get_word(bytearray([0, 100]), 0)
            100
    """
    _check_bounds(bytearray_, byte_index, 2)
    value: int = struct.unpack_from(">H", bytearray_, byte_index)[0]
    return value


def set_word(bytearray_: bytearray, byte_index: int, _int: int) -> bytearray:
    """Set value in bytearray to word

    Notes:
        Word datatype is 2 bytes long.

    Args:
        bytearray_: buffer to be written.
        byte_index: byte index to start write from.
        _int: value to write.

    Return:
        buffer with the written value
    """
    _int = int(_int)
    _check_bounds(bytearray_, byte_index, 2)
    _check_range(_int, 2)
    struct.pack_into(">H", bytearray_, byte_index, _int)
    return bytearray_


def get_dword(bytearray_: bytearray, byte_index: int) -> int:
    """Gets the dword from the buffer.

    Notes:
        Datatype `dword` consists in 4 bytes in the PLC.
        The maximum value posible is `4294967295`

    Args:
        bytearray_: buffer to read.
        byte_index: byte index from where to read.

    Returns:
        Value read.

    Examples:
        >>> data = bytearray(4)
        >>> data[:] = b"\\xFF\\xFF\\xFF\\xFF"
        >>> get_dword(data, 0)
            4294967295
    """
    _check_bounds(bytearray_, byte_index, 4)
    dword: int = struct.unpack_from(">I", bytearray_, byte_index)[0]
    return dword


def set_dword(bytearray_: bytearray, byte_index: int, dword: int) -> bytearray:
    """Set a DWORD to the buffer.

    Notes:
        Datatype `dword` consists in 4 bytes in the PLC.
        Maximum value posible is `4294967295`.
        Lower value posible is `0`.

    Args:
        bytearray_: buffer to write to.
        byte_index: byte index from where to start writing.
        dword: value to write.

    Examples:
        >>> data = bytearray(4)
        >>> set_dword(data,0, 4294967295)
        >>> data
            bytearray(b'\\xff\\xff\\xff\\xff')
    """
    dword = int(dword)
    _check_bounds(bytearray_, byte_index, 4)
    _check_range(dword, 4)
    struct.pack_into(">I", bytearray_, byte_index, dword)
    return bytearray_


def get_real(bytearray_: bytearray, byte_index: int) -> float:
    """Get real value.

    Notes:
        Datatype `real` is represented in 4 bytes in the PLC.
        The packed representation uses the `IEEE 754 binary32`.

    Args:
        bytearray_: buffer to read from.
        byte_index: byte index to reading from.

    Returns:
        Real value.

    Examples:
        >>> data = bytearray(b'B\\xf6\\xa4Z')
        >>> get_real(data, 0)
            123.32099914550781
    """
    _check_bounds(bytearray_, byte_index, 4)
    real: float = struct.unpack_from(">f", bytearray_, byte_index)[0]
    return real


def set_real(bytearray_: bytearray, byte_index: int, real: float) -> bytearray:
    """Set Real value

    Notes:
        Datatype `real` is represented in 4 bytes in the PLC.
        The packed representation uses the `IEEE 754 binary32`.

    Args:
        bytearray_: buffer to write to.
        byte_index: byte index to start writing from.
        real: value to be written.

    Returns:
        Buffer with the value written.

    Examples:
        >>> data = bytearray(4)
        >>> set_real(data, 0, 123.321)
            bytearray(b'B\\xf6\\xa4Z')
    """
    _check_bounds(bytearray_, byte_index, 4)
    struct.pack_into(">f", bytearray_, byte_index, float(real))
    return bytearray_
