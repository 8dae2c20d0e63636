import pytest
from kaitaistruct import KaitaiStream, BytesIO

import builders
import leb128
from errors import MalformedHeader, OutOfBounds


@pytest.mark.parametrize("data, expected", [
    (b"\x00", (0, 1)),
    (b"\x01", (1, 1)),
    (b"\x7f", (127, 1)),
    (b"\x80\x7f", (16256, 2)),
    (b"\xe5\x8e\x26", (624485, 3)),
    (b"\xff\xff\xff\xff\x0f", (0xFFFFFFFF, 5)),
])
def test_uleb128(data, expected):
    assert leb128.uleb128(data) == expected


@pytest.mark.parametrize("data, expected", [
    (b"\x00", (-1, 1)),
    (b"\x01", (0, 1)),
    (b"\x7f", (126, 1)),
    (b"\x80\x7f", (16255, 2)),
])
def test_uleb128p1(data, expected):
    assert leb128.uleb128p1(data) == expected


@pytest.mark.parametrize("data, expected", [
    (b"\x00", (0, 1)),
    (b"\x01", (1, 1)),
    (b"\x7f", (-1, 1)),
    (b"\x80\x7f", (-128, 2)),
    (b"\x3f", (63, 1)),
    (b"\x40", (-64, 1)),
])
def test_sleb128(data, expected):
    assert leb128.sleb128(data) == expected


def test_offset_and_trailing_bytes():
    assert leb128.uleb128(b"\xaa\xe5\x8e\x26\x99", 1) == (624485, 3)


def test_more_than_five_bytes_is_rejected():
    with pytest.raises(MalformedHeader):
        leb128.uleb128(b"\x80\x80\x80\x80\x80\x01")


def test_truncated_value():
    with pytest.raises(OutOfBounds):
        leb128.uleb128(b"\x80\x80")


def test_struct_advances_stream():
    io = KaitaiStream(BytesIO(b"\x80\x7f\x05"))
    first = leb128.Sleb128(io)
    second = leb128.Uleb128(io)
    assert (first.value, first.len) == (-128, 2)
    assert (second.value, io.pos()) == (5, 3)


@pytest.mark.parametrize("value", [0, 1, 63, 64, 127, 128, 2 ** 14 - 1, 2 ** 14, 2 ** 21, 2 ** 28 - 1, 2 ** 28,
                                   0x7FFFFFFF, 0xFFFFFFFF])
def test_uleb128_round_trip(value):
    encoded = builders.uleb(value)
    assert leb128.uleb128(encoded) == (value, len(encoded))


@pytest.mark.parametrize("value", [0, 1, -1, 63, -64, 64, -65, 2 ** 13, -2 ** 13 - 1, 2 ** 27, -2 ** 27,
                                   0x7FFFFFFF, -2 ** 31])
def test_sleb128_round_trip(value):
    encoded = builders.sleb(value)
    assert len(encoded) <= leb128.MAX_BYTES
    assert leb128.sleb128(encoded) == (value, len(encoded))
