import logging
import math
import pytest
import struct
import unittest

from s7client.util import get_dword, get_real, get_word, set_dword, set_real, set_word

logging.basicConfig(level=logging.WARNING)


@pytest.mark.util
class TestWord(unittest.TestCase):
    def test_get_word(self) -> None:
        data = bytearray([0x00, 0x2A, 0x00, 0x01])
        self.assertEqual(get_word(data, 0), 42)
        self.assertEqual(get_word(data, 2), 1)

    def test_get_word_big_endian(self) -> None:
        self.assertEqual(get_word(bytearray(b"\x12\x34"), 0), 0x1234)
        self.assertEqual(get_word(bytearray(b"\xff\xff"), 0), 65535)

    def test_set_word(self) -> None:
        data = bytearray(4)
        result = set_word(data, 2, 0x1234)
        self.assertIs(result, data)
        self.assertEqual(data, bytearray(b"\x00\x00\x12\x34"))

    def test_set_word_does_not_touch_neighbours(self) -> None:
        data = bytearray(b"\xaa\xbb\xcc\xdd")
        set_word(data, 1, 0)
        self.assertEqual(data, bytearray(b"\xaa\x00\x00\xdd"))

    def test_word_out_of_bounds(self) -> None:
        data = bytearray(3)
        with self.assertRaises(IndexError):
            get_word(data, 2)
        with self.assertRaises(IndexError):
            get_word(data, -1)
        with self.assertRaises(IndexError):
            set_word(data, 2, 1)

    def test_set_word_out_of_range(self) -> None:
        data = bytearray(2)
        with self.assertRaises(ValueError):
            set_word(data, 0, 65536)
        with self.assertRaises(ValueError):
            set_word(data, 0, -1)
        self.assertEqual(data, bytearray(2))


@pytest.mark.util
class TestDword(unittest.TestCase):
    def test_get_dword(self) -> None:
        self.assertEqual(get_dword(bytearray(b"\x12\x34\x56\x78"), 0), 0x12345678)
        self.assertEqual(get_dword(bytearray(b"\x00\xff\xff\xff\xff"), 1), 4294967295)

    def test_set_dword(self) -> None:
        data = bytearray(6)
        set_dword(data, 1, 0x12345678)
        self.assertEqual(data, bytearray(b"\x00\x12\x34\x56\x78\x00"))
        self.assertEqual(get_dword(data, 1), 0x12345678)

    def test_dword_out_of_bounds(self) -> None:
        with self.assertRaises(IndexError):
            get_dword(bytearray(3), 0)
        with self.assertRaises(IndexError):
            set_dword(bytearray(4), 1, 1)

    def test_set_dword_out_of_range(self) -> None:
        with self.assertRaises(ValueError):
            set_dword(bytearray(4), 0, 1 << 32)
        with self.assertRaises(ValueError):
            set_dword(bytearray(4), 0, -5)


@pytest.mark.util
class TestReal(unittest.TestCase):
    def test_get_real(self) -> None:
        self.assertEqual(get_real(bytearray(b"\x3f\x80\x00\x00"), 0), 1.0)
        self.assertEqual(get_real(bytearray(b"\x00\xbf\x00\x00\x00"), 1), -0.5)

    def test_set_real(self) -> None:
        data = bytearray(4)
        set_real(data, 0, -0.5)
        self.assertEqual(data, bytearray(b"\xbf\x00\x00\x00"))

    def test_real_single_precision(self) -> None:
        data = bytearray(8)
        set_real(data, 4, 123.321)
        self.assertAlmostEqual(get_real(data, 4), 123.321, places=4)
        self.assertEqual(data[:4], bytearray(4))

    def test_real_nan(self) -> None:
        self.assertTrue(math.isnan(get_real(bytearray(b"\x7f\xc0\x00\x00"), 0)))
        data = set_real(bytearray(4), 0, float("nan"))
        self.assertEqual(data[0] & 0x7F, 0x7F)
        self.assertTrue(math.isnan(get_real(data, 0)))

    def test_real_out_of_bounds(self) -> None:
        with self.assertRaises(IndexError):
            get_real(bytearray(4), 1)
        with self.assertRaises(IndexError):
            set_real(bytearray(2), 0, 1.0)


@pytest.mark.util
@pytest.mark.parametrize("value", [0, 1, 42, 0x1234, 0x8000, 65534, 65535])
@pytest.mark.parametrize("byte_index", [0, 3])
def test_word_round_trip(value: int, byte_index: int) -> None:
    data = bytearray(5)
    set_word(data, byte_index, value)
    assert get_word(data, byte_index) == value


@pytest.mark.util
@pytest.mark.parametrize("value", [0, 1, 0xFFFF, 0x10000, 0x12345678, 0x80000000, 0xFFFFFFFE, 0xFFFFFFFF])
@pytest.mark.parametrize("byte_index", [0, 2])
def test_dword_round_trip(value: int, byte_index: int) -> None:
    data = bytearray(6)
    set_dword(data, byte_index, value)
    assert get_dword(data, byte_index) == value


@pytest.mark.util
@pytest.mark.parametrize("value", [0.0, -0.0, 1.0, -1.0, -0.5, 2.0 ** -149, -3.4028234663852886e38, float("inf"), float("-inf")])
def test_real_round_trip(value: float) -> None:
    data = bytearray(4)
    set_real(data, 0, value)
    result = get_real(data, 0)
    assert result == value
    assert math.copysign(1.0, result) == math.copysign(1.0, value)
    assert data == bytearray(struct.pack(">f", value))


@pytest.mark.util
@pytest.mark.parametrize("pattern", [b"\x7f\xc0\x00\x00", b"\xff\xc0\x00\x00", b"\x7f\xff\xff\xff"])
def test_real_nan_round_trip(pattern: bytes) -> None:
    value = get_real(bytearray(pattern), 0)
    assert math.isnan(value)
    assert math.isnan(get_real(set_real(bytearray(4), 0, value), 0))


if __name__ == "__main__":
    unittest.main()
