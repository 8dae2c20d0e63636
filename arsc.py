"""Compiled resource table (resources.arsc).

Layouts follow ResTable_header, ResTable_package, ResTable_typeSpec,
ResTable_type, ResTable_config and ResTable_entry in
frameworks/base/libs/androidfw/include/androidfw/ResourceTypes.h.
"""
import re
from typing import Dict, List, Optional, Union

from kaitaistruct import KaitaiStruct

from errors import InvalidIdentifier, InvalidIndex, MalformedHeader, NotFound, OutOfBounds, UnknownChunkType, \
    decoding
from helpers import NO_ENTRY, split_bits
from res_value import TypedValue, typed_value
from string_pool import (RES_STRING_POOL_TYPE, RES_TABLE_PACKAGE_TYPE, RES_TABLE_TYPE, RES_TABLE_TYPE_SPEC_TYPE,
                         RES_TABLE_TYPE_TYPE, CHUNK_HEADER_SIZE, StringPool, read_chunk_header)
from utils import get_logger

log = get_logger(__name__)

HEX_ID_RE = re.compile(r'@?0x([0-9a-fA-F]{8})')
READABLE_ID_RE = re.compile(r'@?(\w+)/(\w+)')

# string-type lookups only; drawable and mipmap return every config's value
DRAWABLE_TYPES = ('drawable', 'mipmap')


def parse_res_id(res_id: str) -> Optional[int]:
    """Returns the integer of a "@0x7f010001" style id, or None for "@type/key" ids."""
    match = HEX_ID_RE.fullmatch(res_id)
    if match:
        return int(match.group(1), 16)
    if READABLE_ID_RE.fullmatch(res_id):
        return None
    raise InvalidIdentifier("invalid resource id %r" % res_id)


def decode_language_or_region(code: bytes, base: str, offset: Optional[int] = None) -> Optional[str]:
    if code == b"\x00\x00":
        return None
    if code[0] & 0x80 == 0:
        # two plain ASCII letters
        try:
            return code.decode("ascii").rstrip('\0')
        except UnicodeDecodeError as ex:
            raise MalformedHeader("locale code %r at %s is not ASCII" % (code, offset), offset) from ex
    # packed three letters: (MSB) 1tttttss sssfffff
    packed = (code[0] << 8) | code[1]
    return ''.join(chr(ord(base) + part) for part in split_bits(packed, 5, 5, 5))


class ResourceTable(KaitaiStruct):
    """Top-level chunk loop: the global string pool, the table header, then packages."""

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.string_pool: Optional[StringPool] = None
        self.package_count = 0
        self.packages: Dict[str, Package] = {}

        pos = 0
        while pos < self._io.size():
            self._io.seek(pos)
            header = read_chunk_header(self._io)
            self._io.seek(pos)

            _on = header.type
            if _on == RES_STRING_POOL_TYPE:
                if self.string_pool is not None:
                    log.warning("Second global string pool at %#x replaces the first", pos)
                self.string_pool = StringPool(self._io, self, self._root)
                pos += header.size
            elif _on == RES_TABLE_TYPE:
                self._io.seek(pos + CHUNK_HEADER_SIZE)
                self.package_count = self._io.read_u4le()
                # packages are siblings nested inside the table chunk
                pos += header.header_size
            elif _on == RES_TABLE_PACKAGE_TYPE:
                if self.string_pool is None:
                    raise MalformedHeader("package chunk at %#x before the global string pool" % pos, pos)
                pkg = Package(self._io, self, self._root)
                self.packages[pkg.name] = pkg
                pos += header.size
            else:
                raise UnknownChunkType(header.type, pos)

        log.debug("Decoded resource table: %d strings, packages %s",
                  len(self.strings), ', '.join(self.packages))

    @property
    def strings(self) -> List[str]:
        return self.string_pool.strings if self.string_pool is not None else []

    @property
    def first_package(self) -> "Package":
        if not self.packages:
            raise NotFound("resource table has no packages")
        return next(iter(self.packages.values()))

    def find(self, res_id: str, lang: Optional[str] = None, country: Optional[str] = None):
        return self.first_package.find(res_id, lang=lang, country=country)

    def res_readable_id(self, hex_id: Union[str, int]) -> str:
        return self.first_package.res_readable_id(hex_id)

    def res_hex_id(self, readable_id: str) -> str:
        return self.first_package.res_hex_id(readable_id)


class Package(KaitaiStruct):
    NAME_SIZE = 256

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.header = read_chunk_header(self._io, RES_TABLE_PACKAGE_TYPE)
        self.id = self._io.read_u4le()
        raw_name = self._io.read_bytes(Package.NAME_SIZE).decode("utf-16-le", "replace")
        self.name = raw_name.split('\0', 1)[0].strip()
        self.type_strings_off = self._io.read_u4le()
        self.last_public_type = self._io.read_u4le()
        self.key_strings_off = self._io.read_u4le()
        self.last_public_key = self._io.read_u4le()

        self._io.seek(self.header.offset + self.type_strings_off)
        self.type_pool = StringPool(self._io, self, self._root)
        self._io.seek(self.header.offset + self.key_strings_off)
        self.key_pool = StringPool(self._io, self, self._root)

        self.types: Dict[int, List[TableType]] = {}
        self.specs: Dict[int, List[TypeSpec]] = {}
        pos = self.key_pool.header.end
        while pos < self.header.end:
            self._io.seek(pos)
            header = read_chunk_header(self._io)
            if header.end > self.header.end:
                raise OutOfBounds("chunk at %#x runs past package end %#x" % (pos, self.header.end), pos)
            self._io.seek(pos)

            _on = header.type
            if _on == RES_TABLE_TYPE_TYPE:
                chunk = TableType(self._io, self, self._root)
                self.types.setdefault(chunk.id, []).append(chunk)
            elif _on == RES_TABLE_TYPE_SPEC_TYPE:
                spec = TypeSpec(self._io, self, self._root)
                self.specs.setdefault(spec.id, []).append(spec)
            else:
                raise UnknownChunkType(header.type, pos)
            pos += header.size

        self._build_string_buckets()
        log.debug("Package %r (id %#x): %d types, %d keys", self.name, self.id,
                  len(self.type_strings), len(self.key_strings))

    @property
    def type_strings(self) -> List[str]:
        return self.type_pool.strings

    @property
    def key_strings(self) -> List[str]:
        return self.key_pool.strings

    def type(self, type_id: int) -> str:
        """Type ids start at 1."""
        if not 1 <= type_id <= len(self.type_strings):
            raise InvalidIndex("type id %d out of range (%d types)" % (type_id, len(self.type_strings)))
        return self.type_strings[type_id - 1]

    def type_id(self, name: str) -> int:
        try:
            return self.type_strings.index(name) + 1
        except ValueError:
            raise NotFound("no resource type %r" % name) from None

    def key(self, key_id: int) -> str:
        return self.key_pool.string_at(key_id)

    def key_id(self, name: str) -> int:
        try:
            return self.key_strings.index(name)
        except ValueError:
            raise NotFound("no resource key %r" % name) from None

    def resolve(self, entry: "Entry") -> Optional[TypedValue]:
        """Value of a simple entry, with string references resolved through the global pool."""
        if entry is None or entry.value is None:
            return None
        return typed_value(entry.value.data_type, entry.value.data, strings=self._root.string_pool)

    def _build_string_buckets(self):
        self.res_strings_default: Dict[int, Optional[str]] = {}
        self.res_strings_lang: Dict[str, Dict[int, Optional[str]]] = {}
        self.res_strings_country: Dict[str, Dict[int, Optional[str]]] = {}
        try:
            tid = self.type_id('string')
        except NotFound:
            return

        for chunk in self.types.get(tid, []):
            values = {}
            for i, entry in enumerate(chunk.entries):
                value = self.resolve(entry)
                values[i] = str(value) if value is not None else None

            lang = chunk.config.locale_lang
            country = chunk.config.locale_country
            if lang is None and country is None:
                self._merge(self.res_strings_default, values)
            else:
                if lang is not None:
                    self._merge(self.res_strings_lang.setdefault(lang, {}), values)
                if country is not None:
                    self._merge(self.res_strings_country.setdefault(country, {}), values)

    @staticmethod
    def _merge(bucket: dict, values: dict):
        # first non-null value for a key wins
        for key, value in values.items():
            if bucket.get(key) is None:
                bucket[key] = value

    def _split_id(self, res_id: str):
        hex_id = parse_res_id(res_id)
        if hex_id is None:
            hex_id = int(self.res_hex_id(res_id)[3:], 16)
        return (hex_id >> 16) & 0xff, hex_id & 0xffff

    def find(self, res_id: str, lang: Optional[str] = None, country: Optional[str] = None):
        """Looks up a resource by "@0x7f040001" or "@string/app_name".

        Strings resolve in the bucket of `lang`, else `country`, else the default
        configuration, giving None when only that bucket lacks the key.
        Drawables and mipmaps return the value of every configuration that
        defines the key. Other types are not supported and give None.
        """
        tid, key = self._split_id(res_id)
        type_name = self.type_strings[tid - 1] if 1 <= tid <= len(self.type_strings) else None

        if type_name == 'string':
            return self._find_string(tid, key, lang, country)
        if type_name in DRAWABLE_TYPES:
            drawables = []
            for chunk in self.types.get(tid, []):
                value = self.resolve(chunk[key])
                if value is not None:
                    drawables.append(str(value))
            return drawables
        return None

    def _find_string(self, tid: int, key: int, lang: Optional[str], country: Optional[str]) -> Optional[str]:
        if not any(key < chunk.entry_count for chunk in self.types.get(tid, [])):
            raise NotFound("string resource %#06x not in table" % key)

        bucket = self.res_strings_default
        if lang is not None and lang in self.res_strings_lang:
            bucket = self.res_strings_lang[lang]
        elif country is not None and country in self.res_strings_country:
            bucket = self.res_strings_country[country]
        return bucket.get(key)

    def res_readable_id(self, hex_id: Union[str, int]) -> str:
        """"@0x7f040001" -> "@string/app_name"."""
        if isinstance(hex_id, str):
            match = HEX_ID_RE.fullmatch(hex_id)
            if not match:
                raise InvalidIdentifier("invalid resource id %r" % hex_id)
            hex_id = int(match.group(1), 16)
        tid = (hex_id >> 16) & 0xff
        key = hex_id & 0xffff

        for chunk in self.types.get(tid, []):
            entry = chunk[key]
            if entry is not None:
                return "@%s/%s" % (self.type(tid), self.key(entry.key))
        raise NotFound("resource %#010x not in table" % hex_id)

    def res_hex_id(self, readable_id: str) -> str:
        """"@string/app_name" -> "@0x7f040001"."""
        match = READABLE_ID_RE.fullmatch(readable_id)
        if not match:
            raise InvalidIdentifier("invalid resource id %r" % readable_id)
        type_name, key_name = match.groups()
        tid = self.type_id(type_name)
        for chunk in self.types.get(tid, []):
            if key_name in chunk.keys:
                return "@0x%02x%02x%04x" % (self.id, tid, chunk.keys[key_name])
        raise NotFound("resource %r not in table" % readable_id)

    def __repr__(self):
        return "<Package offset:%#08x, size:%#x, name:%r>" % (self.header.offset, self.header.size, self.name)


class TypeSpec(KaitaiStruct):
    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.header = read_chunk_header(self._io, RES_TABLE_TYPE_SPEC_TYPE)
        self.id = self._io.read_u1()
        self.res0 = self._io.read_u1()
        self.res1 = self._io.read_u2le()
        self.entry_count = self._io.read_u4le()

    def __repr__(self):
        return "<TypeSpec id:%d entry count:%d>" % (self.id, self.entry_count)


class TableType(KaitaiStruct):
    """One configuration's worth of entries for a single resource type."""

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.header = read_chunk_header(self._io, RES_TABLE_TYPE_TYPE)
        self.id = self._io.read_u1()
        self.flags = self._io.read_u1()
        self.reserved = self._io.read_u2le()
        self.entry_count = self._io.read_u4le()
        self.entries_start = self._io.read_u4le()
        self.config = ResTableConfig(self._io, self, self._root)
        if self._io.pos() > self.header.payload:
            raise MalformedHeader("type chunk at %#x: config overruns header (%d bytes)"
                                  % (self.header.offset, self.header.header_size), self.header.offset)

        self._io.seek(self.header.payload)
        if self.header.payload + 4 * self.entry_count > self.header.end:
            raise OutOfBounds("type chunk at %#x: %d entry offsets do not fit"
                              % (self.header.offset, self.entry_count), self.header.offset)
        offsets = [self._io.read_u4le() for _ in range(self.entry_count)]

        base = self.header.offset + self.entries_start
        self.entries: List[Optional[Entry]] = []
        self.keys: Dict[str, int] = {}
        for i, offset in enumerate(offsets):
            if offset == NO_ENTRY:
                self.entries.append(None)
                continue
            if base + offset + Entry.SIZE > self.header.end:
                raise OutOfBounds("type chunk at %#x: entry %d at %#x outside chunk"
                                  % (self.header.offset, i, base + offset), base + offset)
            self._io.seek(base + offset)
            entry = Entry(self._io, self, self._root)
            self.entries.append(entry)
            self.keys[self._parent.key(entry.key)] = i

    def __getitem__(self, index: int) -> Optional["Entry"]:
        """Entry at `index`, None for NO_ENTRY or an index past the end."""
        if 0 <= index < len(self.entries):
            return self.entries[index]
        return None

    def __repr__(self):
        return "<TableType offset:%#x, id:%d, count:%d, start:%#x>" % (
            self.header.offset, self.id, self.entry_count, self.entries_start)


class ResTableConfig(KaitaiStruct):
    """Only imsi and locale are decoded; the rest of the size-prefixed block is skipped."""

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        start = self._io.pos()
        self.size = self._io.read_u4le()
        if self.size < 12:
            raise MalformedHeader("config at %#x too small: %d" % (start, self.size), start)
        self.imsi = self._io.read_u4le()
        self.locale_lang = decode_language_or_region(self._io.read_bytes(2), 'a', start + 8)
        self.locale_country = decode_language_or_region(self._io.read_bytes(2), '0', start + 10)
        self._io.seek(start + self.size)

    @property
    def locale(self) -> Optional[str]:
        if self.locale_lang is None:
            return None
        if self.locale_country is None:
            return self.locale_lang
        return "%s-r%s" % (self.locale_lang, self.locale_country)

    def __repr__(self):
        return "<ResTableConfig size:%d, imsi:%d, la:%r cn:%r>" % (
            self.size, self.imsi, self.locale_lang, self.locale_country)


class Entry(KaitaiStruct):
    FLAG_COMPLEX = 0x01
    FLAG_PUBLIC = 0x02

    # size, flags, key
    HEADER_SIZE = 8
    # header plus a Value, or header plus parent and count
    SIZE = 16

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.size = self._io.read_u2le()
        self.flags = self._io.read_u2le()
        self.key = self._io.read_u4le()

        self.is_complex = bool(self.flags & Entry.FLAG_COMPLEX)
        self.value: Optional[Value] = None
        self.parent = None
        self.count = None
        if self.is_complex:
            # ResTable_map pairs that follow are not decoded
            self.parent = self._io.read_u4le()
            self.count = self._io.read_u4le()
        else:
            self.value = Value(self._io, self, self._root)

    def __repr__(self):
        return "<Entry size:%d, key:%d, flags:%#x>" % (self.size, self.key, self.flags)


class Value(KaitaiStruct):
    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.size = self._io.read_u2le()
        self.res0 = self._io.read_u1()
        self.data_type = self._io.read_u1()
        self.data = self._io.read_u4le()


def decode_resource_table(buf: bytes) -> ResourceTable:
    with decoding("ARSC"):
        return ResourceTable.from_bytes(buf)
