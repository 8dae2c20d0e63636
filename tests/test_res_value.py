import pytest
from kaitaistruct import KaitaiStream, BytesIO

import builders
from errors import InvalidIndex
from res_value import Bool, IntDec, IntHex, Null, Raw, Reference, StringRef, ValueType, convert_value, typed_value
from string_pool import StringPool

NO_INDEX = 0xFFFFFFFF


@pytest.fixture
def pool():
    return StringPool(KaitaiStream(BytesIO(builders.string_pool(["raw", "typed"]))))


@pytest.mark.parametrize("data_type, data, expected, text", [
    (ValueType.NULL, 0, Null(), ""),
    (ValueType.REFERENCE, 0x7f030000, Reference(0x7f030000), "@0x7f030000"),
    (ValueType.INT_DEC, 42, IntDec(42), "42"),
    (ValueType.INT_HEX, 0x1030005, IntHex(0x1030005), "0x1030005"),
    (ValueType.INT_BOOLEAN, 0xFFFFFFFF, Bool(True), "true"),
    (ValueType.INT_BOOLEAN, 1, Bool(True), "true"),
    (ValueType.INT_BOOLEAN, 0, Bool(False), "false"),
    (ValueType.FLOAT, 0x3f800000, Raw(0x3f800000, 0x04000000), "[0x3f800000, flag=0x4000000]"),
    (ValueType.INT_COLOR_ARGB8, 0xff3366cc, Raw(0xff3366cc, 0x1c000000), "[0xff3366cc, flag=0x1c000000]"),
])
def test_typed_value(data_type, data, expected, text):
    value = typed_value(data_type, data)
    assert value == expected
    assert str(value) == text


def test_string_needs_pool(pool):
    assert typed_value(ValueType.STRING, 1) == Raw(1, 0x03000000)
    assert typed_value(ValueType.STRING, 1, strings=pool) == StringRef("typed")


def test_raw_string_wins(pool):
    assert convert_value(0, (ValueType.INT_DEC << 24) | 8, 5, pool) == StringRef("raw")


def test_convert_keeps_full_flags(pool):
    assert convert_value(NO_INDEX, (ValueType.DIMENSION << 24) | 8, 0x1001, pool) == Raw(0x1001, 0x05000008)
    assert convert_value(NO_INDEX, (ValueType.INT_DEC << 24) | 8, 7, pool) == IntDec(7)


def test_raw_string_out_of_range(pool):
    with pytest.raises(InvalidIndex):
        convert_value(9, 0x03000008, 9, pool)
