"""Typed resource values (Res_value) shared by binary XML attributes and ARSC entries."""
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from helpers import NO_INDEX
from string_pool import StringPool


class ValueType(IntEnum):
    NULL = 0x00
    REFERENCE = 0x01
    ATTRIBUTE = 0x02
    STRING = 0x03
    FLOAT = 0x04
    DIMENSION = 0x05
    FRACTION = 0x06
    INT_DEC = 0x10
    INT_HEX = 0x11
    INT_BOOLEAN = 0x12
    INT_COLOR_ARGB8 = 0x1c
    INT_COLOR_RGB8 = 0x1d
    INT_COLOR_ARGB4 = 0x1e
    INT_COLOR_RGB4 = 0x1f


class TypedValue:
    """Base of the value variants; str() gives the textual form used by dumps."""

    value: object


@dataclass(frozen=True)
class StringRef(TypedValue):
    value: str

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Reference(TypedValue):
    value: int

    def __str__(self):
        return "@0x%08x" % self.value


@dataclass(frozen=True)
class IntDec(TypedValue):
    value: int

    def __str__(self):
        return str(self.value)


@dataclass(frozen=True)
class IntHex(TypedValue):
    value: int

    def __str__(self):
        return "0x%x" % self.value


@dataclass(frozen=True)
class Bool(TypedValue):
    value: bool

    def __str__(self):
        return "true" if self.value else "false"


@dataclass(frozen=True)
class Null(TypedValue):
    value: str = ""

    def __str__(self):
        return ""


@dataclass(frozen=True)
class Raw(TypedValue):
    """Any value type without a dedicated rendering, kept as data plus full type flags."""
    value: int
    flags: int

    def __str__(self):
        return "[0x%x, flag=0x%x]" % (self.value, self.flags)


def typed_value(data_type: int, data: int, flags: Optional[int] = None,
                strings: Optional[StringPool] = None) -> TypedValue:
    """Converts a (data_type, data) pair.

    Only when `strings` is given are STRING-typed values resolved through it;
    otherwise they fall through to Raw like every other unhandled type.
    """
    if flags is None:
        flags = data_type << 24

    match data_type:
        case ValueType.NULL:
            return Null()
        case ValueType.REFERENCE:
            return Reference(data)
        case ValueType.INT_DEC:
            return IntDec(data)
        case ValueType.INT_HEX:
            return IntHex(data)
        case ValueType.INT_BOOLEAN:
            return Bool(data in (1, 0xFFFFFFFF))
        case ValueType.STRING if strings is not None:
            return StringRef(strings.string_at(data))
        case _:
            return Raw(data, flags)


def convert_value(raw_string_id: int, type_flags: int, data: int, strings: StringPool) -> TypedValue:
    """Converts a binary XML attribute; the raw string, when present, wins verbatim."""
    if raw_string_id != NO_INDEX:
        return StringRef(strings.string_at(raw_string_id))
    return typed_value(type_flags >> 24, data, type_flags)
