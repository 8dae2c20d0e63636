"""Chunk header and string pool shared by binary XML and resources.arsc.

Layouts follow frameworks/base/libs/androidfw/include/androidfw/ResourceTypes.h
(ResChunk_header, ResStringPool_header).
"""
from typing import List, NamedTuple, Optional, Tuple

from kaitaistruct import KaitaiStruct

from errors import DecodeError, InvalidIndex, MalformedHeader, OutOfBounds
from helpers import NO_INDEX
from utils import get_logger

log = get_logger(__name__)

RES_STRING_POOL_TYPE = 0x0001
RES_TABLE_TYPE = 0x0002
RES_XML_TYPE = 0x0003
RES_TABLE_PACKAGE_TYPE = 0x0200
RES_TABLE_TYPE_TYPE = 0x0201
RES_TABLE_TYPE_SPEC_TYPE = 0x0202

CHUNK_HEADER_SIZE = 8


class ChunkHeader(NamedTuple):
    type: int
    header_size: int
    size: int
    offset: int

    @property
    def payload(self) -> int:
        return self.offset + self.header_size

    @property
    def end(self) -> int:
        return self.offset + self.size


def read_chunk_header(_io, expected_type: Optional[int] = None) -> ChunkHeader:
    """Reads {type:u16, header_size:u16, size:u32} at the cursor and checks it fits the buffer."""
    offset = _io.pos()
    chunk_type = _io.read_u2le()
    header_size = _io.read_u2le()
    size = _io.read_u4le()

    if expected_type is not None and chunk_type != expected_type:
        raise MalformedHeader("expected chunk type %#06x at %#x, got %#06x" % (expected_type, offset, chunk_type),
                              offset)
    if header_size < CHUNK_HEADER_SIZE or size < header_size:
        raise MalformedHeader("chunk at %#x declares header_size=%d, size=%d" % (offset, header_size, size), offset)
    if offset + size > _io.size():
        raise OutOfBounds("chunk at %#x (size %#x) runs past end of buffer (%#x)" % (offset, size, _io.size()),
                          offset)
    return ChunkHeader(chunk_type, header_size, size, offset)


class StringPool(KaitaiStruct):
    """Ordered, index-addressable strings of a RES_STRING_POOL_TYPE chunk.

    Strings are stored either as UTF-8 (UTF8_FLAG set) with two length
    prefixes, or as UTF-16LE with one. Style spans are not decoded.
    """

    SORTED_FLAG = 1 << 0
    UTF8_FLAG = 1 << 8

    # header, string_count, style_count, flags, strings_start, styles_start
    HEADER_SIZE = 28

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.header = read_chunk_header(self._io, RES_STRING_POOL_TYPE)
        if self.header.header_size < StringPool.HEADER_SIZE:
            raise MalformedHeader("string pool header too small: %d" % self.header.header_size, self.header.offset)

        self.string_count = self._io.read_u4le()
        self.style_count = self._io.read_u4le()
        self.flags = self._io.read_u4le()
        self.strings_start = self._io.read_u4le()
        self.styles_start = self._io.read_u4le()
        self.is_utf8 = (self.flags & StringPool.UTF8_FLAG) != 0

        self._io.seek(self.header.payload)
        if self.header.payload + 4 * self.string_count > self.header.end:
            raise OutOfBounds("string pool at %#x declares %d strings, more than fit in the chunk"
                              % (self.header.offset, self.string_count), self.header.offset)
        string_offsets = [self._io.read_u4le() for _ in range(self.string_count)]

        if self.style_count:
            log.debug("Ignoring %d style spans in string pool at %#x", self.style_count, self.header.offset)

        base = self.header.offset + self.strings_start
        self.strings: List[str] = [self._read_string(base + offset) for offset in string_offsets]
        log.debug("String pool at %#x: %d %s strings", self.header.offset, self.string_count,
                  "UTF-8" if self.is_utf8 else "UTF-16")

        self._io.seek(self.header.end)

    def _read_string(self, pos: int) -> str:
        if pos >= self.header.end:
            raise OutOfBounds("string offset %#x outside pool chunk [%#x, %#x)"
                              % (pos, self.header.offset, self.header.end), pos)
        self._io.seek(pos)
        if self.is_utf8:
            # UTF-16 length first, then the UTF-8 byte length that we actually need
            self._read_length8()
            length = self._read_length8()
            encoding = "utf-8"
        else:
            length = self._read_length16() * 2
            encoding = "utf-16-le"

        if self._io.pos() + length > self.header.end:
            raise OutOfBounds("string at %#x with length %d runs past pool end %#x" % (pos, length, self.header.end),
                              pos)
        raw = self._io.read_bytes(length)
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError as ex:
            raise DecodeError("malformed %s string at %#x: %s" % (encoding, pos, ex), pos) from ex

    def _read_length8(self) -> int:
        first = self._io.read_u1()
        if first & 0x80:
            return ((first & 0x7F) << 8) | self._io.read_u1()
        return first

    def _read_length16(self) -> int:
        first = self._io.read_u2le()
        if first & 0x8000:
            return ((first & 0x7FFF) << 16) | self._io.read_u2le()
        return first

    @staticmethod
    def utf8_len(data: bytes, offset: int = 0) -> Tuple[int, int]:
        """Decodes a 1-or-2 byte length prefix, returning (length, bytes used)."""
        StringPool._check_prefix(data, offset, 1)
        first = data[offset]
        if first & 0x80:
            StringPool._check_prefix(data, offset, 2)
            return ((first & 0x7F) << 8) | data[offset + 1], 2
        return first, 1

    @staticmethod
    def utf16_len(data: bytes, offset: int = 0) -> Tuple[int, int]:
        """Decodes a 1-or-2 unit length prefix, returning (length, bytes used)."""
        StringPool._check_prefix(data, offset, 2)
        first = int.from_bytes(data[offset:offset + 2], "little")
        if first & 0x8000:
            StringPool._check_prefix(data, offset, 4)
            second = int.from_bytes(data[offset + 2:offset + 4], "little")
            return ((first & 0x7FFF) << 16) | second, 4
        return first, 2

    @staticmethod
    def _check_prefix(data: bytes, offset: int, length: int) -> None:
        if offset < 0 or offset + length > len(data):
            raise OutOfBounds("length prefix at %#x needs %d bytes, buffer has %d" % (offset, length, len(data)),
                              offset)

    def string_at(self, idx: int) -> str:
        if idx == NO_INDEX or not 0 <= idx < len(self.strings):
            raise InvalidIndex("string index %#x out of range (pool has %d strings)" % (idx, len(self.strings)))
        return self.strings[idx]

    def __getitem__(self, idx: int) -> str:
        return self.string_at(idx)

    def __len__(self) -> int:
        return len(self.strings)

    def __iter__(self):
        return iter(self.strings)
