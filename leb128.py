"""LEB128 variable-length integers as used by the DEX format.

See https://source.android.com/docs/core/runtime/dex-format#leb128
"""
from typing import Tuple

from kaitaistruct import KaitaiStruct, KaitaiStream, BytesIO

from errors import MalformedHeader, decoding

# a 32-bit quantity never needs more than five 7-bit groups
MAX_BYTES = 5


class Uleb128(KaitaiStruct):
    """Unsigned LEB128: seven payload bits per byte, least significant group first.

    The high bit (0x80) of every byte but the last is set. A fifth byte that
    still carries the continuation bit is rejected instead of read on.
    """

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        start = self._io.pos()
        self.groups = []
        while True:
            if len(self.groups) == MAX_BYTES:
                raise MalformedHeader("LEB128 value at %#x exceeds %d bytes" % (start, MAX_BYTES), start)
            byte = self._io.read_u1()
            self.groups.append(byte)
            if byte & 0x80 == 0:
                break

        self.len = len(self.groups)
        self.value = 0
        for i, byte in enumerate(self.groups):
            self.value |= (byte & 0x7f) << (7 * i)


class Uleb128p1(Uleb128):
    """ULEB128 minus one, so that NO_INDEX (-1) fits in a single 0x00 byte."""

    def _read(self):
        super()._read()
        self.value -= 1


class Sleb128(Uleb128):
    """Signed LEB128, sign-extended from bit 0x40 of the terminating byte."""

    def _read(self):
        super()._read()
        if self.groups[-1] & 0x40:
            self.value -= 1 << (7 * self.len)


def _parse(cls, data: bytes, offset: int) -> Tuple[int, int]:
    io = KaitaiStream(BytesIO(bytes(data)))
    with decoding(cls.__name__):
        io.seek(offset)
        item = cls(io)
    return item.value, item.len


def uleb128(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Returns (value, number of bytes consumed)."""
    return _parse(Uleb128, data, offset)


def uleb128p1(data: bytes, offset: int = 0) -> Tuple[int, int]:
    return _parse(Uleb128p1, data, offset)


def sleb128(data: bytes, offset: int = 0) -> Tuple[int, int]:
    return _parse(Sleb128, data, offset)
