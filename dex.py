# Structure layout follows https://formats.kaitai.io/dex/; every table is decoded eagerly
# and a finished Dex never reads its stream again.
# See https://source.android.com/docs/core/runtime/dex-format
import struct
from enum import Enum
from typing import List, Optional

import kaitaistruct
from kaitaistruct import KaitaiStruct, KaitaiStream

if getattr(kaitaistruct, 'API_VERSION', (0, 9)) < (0, 9):
    raise Exception(
        "Incompatible Kaitai Struct Python API: 0.9 or later is required, but you have %s" % (kaitaistruct.__version__))

import leb128
from dex_info import ClassInfo
from errors import DecodeError, InvalidIndex, MalformedHeader, OutOfBounds, decoding
from helpers import NO_INDEX
from utils import get_logger

log = get_logger(__name__)

SUPPORTED_VERSIONS = ("035", "036", "037", "038", "039", "040", "041")

TYPE_DESCRIPTOR = {
    'V': 'void',
    'Z': 'boolean',
    'B': 'byte',
    'S': 'short',
    'C': 'short',  # char is reported as short
    'I': 'int',
    'J': 'long',
    'F': 'float',
    'D': 'double',
}


def resolve_descriptor(descriptor: str) -> str:
    """Renders a type descriptor: primitives by name, arrays as "<element>[]", objects unchanged."""
    if descriptor.startswith('['):
        return resolve_descriptor(descriptor[1:]) + "[]"
    return TYPE_DESCRIPTOR.get(descriptor, descriptor)


class Dex(KaitaiStruct):
    """Android OS applications executables are typically stored in its own
    format, optimized for more efficient execution in Dalvik virtual
    machine.

    Decoding reads the header, every ID table, class data, code items and
    their debug info in one pass.

    .. seealso::
       Source - https://source.android.com/docs/core/runtime/dex-format
    """

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.header = Dex.HeaderItem(self._io, self, self._root)
        if self.header.file_size > self._io.size():
            raise OutOfBounds("file_size %#x exceeds buffer size %#x" % (self.header.file_size, self._io.size()), 0x20)

        self.map = None
        if self.header.map_off != 0:
            self._io.seek(self.header.map_off)
            self.map = Dex.MapList(self._io, self, self._root)

        h = self.header
        self.string_ids: List[Dex.StringIdItem] = self._read_table(Dex.StringIdItem, h.string_ids_off, h.string_ids_size)
        self.strings: List[str] = [item.value.data for item in self.string_ids]
        self.type_ids: List[Dex.TypeIdItem] = self._read_table(Dex.TypeIdItem, h.type_ids_off, h.type_ids_size)
        self.proto_ids: List[Dex.ProtoIdItem] = self._read_table(Dex.ProtoIdItem, h.proto_ids_off, h.proto_ids_size)
        self.field_ids: List[Dex.FieldIdItem] = self._read_table(Dex.FieldIdItem, h.field_ids_off, h.field_ids_size)
        self.method_ids: List[Dex.MethodIdItem] = self._read_table(Dex.MethodIdItem, h.method_ids_off,
                                                                   h.method_ids_size)
        self.class_defs: List[Dex.ClassDefItem] = self._read_table(Dex.ClassDefItem, h.class_defs_off,
                                                                   h.class_defs_size)

        self.classes: List[ClassInfo] = [ClassInfo(class_def, self) for class_def in self.class_defs]
        log.debug("Decoded dex %s: %d strings, %d types, %d methods, %d classes", h.version_str,
                  len(self.string_ids), len(self.type_ids), len(self.method_ids), len(self.class_defs))

    def _read_table(self, cls, offset: int, size: int) -> list:
        if size == 0:
            return []
        if offset + size * cls.STRIDE > self._io.size():
            raise OutOfBounds("%s table at %#x with %d entries runs past end of file" % (cls.__name__, offset, size),
                              offset)
        table = [None] * size
        for i in range(size):
            self._io.seek(offset + i * cls.STRIDE)
            table[i] = cls(self._io, self, self._root)
        return table

    def string_at(self, idx: int) -> str:
        if idx == NO_INDEX or not 0 <= idx < len(self.strings):
            raise InvalidIndex("string index %#x out of range (%d strings)" % (idx, len(self.strings)))
        return self.strings[idx]

    def type_descriptor(self, type_idx: int) -> str:
        return self.string_at(self._at(self.type_ids, type_idx, "type").descriptor_idx)

    def type_resolve(self, type_idx: int) -> str:
        return resolve_descriptor(self.type_descriptor(type_idx))

    def field_id_at(self, idx: int) -> "Dex.FieldIdItem":
        return self._at(self.field_ids, idx, "field")

    def method_id_at(self, idx: int) -> "Dex.MethodIdItem":
        return self._at(self.method_ids, idx, "method")

    def proto_id_at(self, idx: int) -> "Dex.ProtoIdItem":
        return self._at(self.proto_ids, idx, "proto")

    @staticmethod
    def _at(table: list, idx: int, what: str):
        if idx == NO_INDEX or not 0 <= idx < len(table):
            raise InvalidIndex("%s index %#x out of range (%d entries)" % (what, idx, len(table)))
        return table[idx]

    def find_class(self, name: str) -> Optional[ClassInfo]:
        for cls in self.classes:
            if cls.name == name:
                return cls
        return None

    def __repr__(self):
        return "<Dex classes=%d, datasize=%d>" % (len(self.classes), self._io.size())

    class HeaderItem(KaitaiStruct):

        class EndianConstant(Enum):
            endian_constant = 305419896
            reverse_endian_constant = 2018915346

        HEADER_SIZE = 0x70

        symbols = (
            'magic', 'checksum', 'signature', 'file_size', 'header_size', 'endian_tag',
            'link_size', 'link_off', 'map_off', 'string_ids_size', 'string_ids_off',
            'type_ids_size', 'type_ids_off', 'proto_ids_size', 'proto_ids_off',
            'field_ids_size', 'field_ids_off', 'method_ids_size', 'method_ids_off',
            'class_defs_size', 'class_defs_off', 'data_size', 'data_off',
        )

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.magic = self._io.read_bytes(8)
            if not self.magic[:4] == b"\x64\x65\x78\x0A":
                raise kaitaistruct.ValidationNotEqualError(b"\x64\x65\x78\x0A", self.magic[:4], self._io,
                                                           u"/types/header_item/seq/0")
            self.version_str = (KaitaiStream.bytes_terminate(self.magic[4:], 0, False)).decode(u"utf-8", "ignore")
            if self.magic[7] != 0 or self.version_str not in SUPPORTED_VERSIONS:
                raise MalformedHeader("unsupported dex version %r" % self.magic[4:], 4)
            self.checksum = self._io.read_u4le()
            self.signature = self._io.read_bytes(20)
            self.file_size = self._io.read_u4le()
            self.header_size = self._io.read_u4le()
            if self.header_size != Dex.HeaderItem.HEADER_SIZE:
                raise MalformedHeader("header_size is %#x, expected %#x" % (self.header_size,
                                                                           Dex.HeaderItem.HEADER_SIZE), 0x24)
            self.endian_tag = KaitaiStream.resolve_enum(Dex.HeaderItem.EndianConstant, self._io.read_u4le())
            if self.endian_tag != Dex.HeaderItem.EndianConstant.endian_constant:
                raise MalformedHeader("unsupported endian tag %r" % (self.endian_tag,), 0x28)
            self.link_size = self._io.read_u4le()
            self.link_off = self._io.read_u4le()
            self.map_off = self._io.read_u4le()
            self.string_ids_size = self._io.read_u4le()
            self.string_ids_off = self._io.read_u4le()
            self.type_ids_size = self._io.read_u4le()
            self.type_ids_off = self._io.read_u4le()
            self.proto_ids_size = self._io.read_u4le()
            self.proto_ids_off = self._io.read_u4le()
            self.field_ids_size = self._io.read_u4le()
            self.field_ids_off = self._io.read_u4le()
            self.method_ids_size = self._io.read_u4le()
            self.method_ids_off = self._io.read_u4le()
            self.class_defs_size = self._io.read_u4le()
            self.class_defs_off = self._io.read_u4le()
            self.data_size = self._io.read_u4le()
            self.data_off = self._io.read_u4le()

        def __getitem__(self, name: str):
            if name not in Dex.HeaderItem.symbols:
                raise KeyError(name)
            return getattr(self, name)

    class MapList(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.size = self._io.read_u4le()
            if self._io.pos() + self.size * Dex.MapItem.STRIDE > self._io.size():
                raise OutOfBounds("map list with %d items runs past end of file" % self.size, self._io.pos())
            self.list = [None] * (self.size)
            for i in range(self.size):
                self.list[i] = Dex.MapItem(self._io, self, self._root)

    class MapItem(KaitaiStruct):

        class MapItemType(Enum):
            header_item = 0
            string_id_item = 1
            type_id_item = 2
            proto_id_item = 3
            field_id_item = 4
            method_id_item = 5
            class_def_item = 6
            call_site_id_item = 7
            method_handle_item = 8
            map_list = 4096
            type_list = 4097
            annotation_set_ref_list = 4098
            annotation_set_item = 4099
            class_data_item = 8192
            code_item = 8193
            string_data_item = 8194
            debug_info_item = 8195
            annotation_item = 8196
            encoded_array_item = 8197
            annotations_directory_item = 8198
            hiddenapi_class_data_item = 61440

        STRIDE = 12

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.type = KaitaiStream.resolve_enum(Dex.MapItem.MapItemType, self._io.read_u2le())
            self.unused = self._io.read_u2le()
            self.size = self._io.read_u4le()
            self.offset = self._io.read_u4le()

    class StringIdItem(KaitaiStruct):
        STRIDE = 4

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.string_data_off = self._io.read_u4le()
            self._io.seek(self.string_data_off)
            self.value = Dex.StringIdItem.StringDataItem(self._io, self, self._root)

        class StringDataItem(KaitaiStruct):
            """utf16_size followed by MUTF-8 bytes.

            Differs from standard UTF-8 in that NUL is written as c0 80 and
            supplementary characters as a pair of 3-byte encoded surrogates.
            """

            def __init__(self, _io, _parent=None, _root=None):
                self._io = _io
                self._parent = _parent
                self._root = _root if _root else self
                self._read()

            def _read(self):
                self.utf16_size = leb128.Uleb128(self._io)
                self.offset = self._io.pos()
                # every unit takes at least one byte
                if self.utf16_size.value > self._io.size() - self.offset:
                    raise OutOfBounds("string at %#x declares %d units, more than the %d bytes left"
                                      % (self.offset, self.utf16_size.value, self._io.size() - self.offset),
                                      self.offset)

                units = []
                for _ in range(self.utf16_size.value):
                    units.append(self._read_unit())
                self.data = self._join_surrogates(units)

            def _read_unit(self) -> int:
                a = self._io.read_u1()
                if a & 0x80 == 0x00:
                    return a
                if a & 0xe0 == 0xc0:
                    return ((a & 0x1f) << 6) | self._read_trailing()
                if a & 0xf0 == 0xe0:
                    b = self._read_trailing()
                    return ((a & 0x0f) << 12) | (b << 6) | self._read_trailing()
                raise DecodeError("bad MUTF-8 lead byte %#x in string at %#x" % (a, self.offset), self._io.pos() - 1)

            def _read_trailing(self) -> int:
                b = self._io.read_u1()
                if b & 0xc0 != 0x80:
                    raise DecodeError("bad MUTF-8 continuation byte %#x in string at %#x" % (b, self.offset),
                                      self._io.pos() - 1)
                return b & 0x3f

            def _join_surrogates(self, units: List[int]) -> str:
                chars = []
                i = 0
                while i < len(units):
                    unit = units[i]
                    i += 1
                    if 0xD800 <= unit <= 0xDBFF:
                        if i == len(units) or not 0xDC00 <= units[i] <= 0xDFFF:
                            raise DecodeError("unpaired high surrogate in string at %#x" % self.offset, self.offset)
                        unit = 0x10000 + ((unit - 0xD800) << 10) + (units[i] - 0xDC00)
                        i += 1
                    elif 0xDC00 <= unit <= 0xDFFF:
                        raise DecodeError("unpaired low surrogate in string at %#x" % self.offset, self.offset)
                    # embedded NULs are dropped
                    if unit != 0:
                        chars.append(chr(unit))
                return ''.join(chars)

    class TypeIdItem(KaitaiStruct):
        STRIDE = 4

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.descriptor_idx = self._io.read_u4le()

        @property
        def type_name(self) -> str:
            return self._root.string_at(self.descriptor_idx)

    class ProtoIdItem(KaitaiStruct):
        STRIDE = 12

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.shorty_idx = self._io.read_u4le()
            self.return_type_idx = self._io.read_u4le()
            self.parameters_off = self._io.read_u4le()
            self.params_types = None
            if self.parameters_off != 0:
                self._io.seek(self.parameters_off)
                self.params_types = Dex.TypeList(self._io, self, self._root)

        @property
        def shorty_desc(self) -> str:
            """short-form descriptor string of this prototype, as pointed to by shorty_idx."""
            return self._root.string_at(self.shorty_idx)

        @property
        def return_type(self) -> str:
            return self._root.type_descriptor(self.return_type_idx)

    class FieldIdItem(KaitaiStruct):
        STRIDE = 8

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.class_idx = self._io.read_u2le()
            self.type_idx = self._io.read_u2le()
            self.name_idx = self._io.read_u4le()

        @property
        def class_name(self) -> str:
            """the definer of this field."""
            return self._root.type_descriptor(self.class_idx)

        @property
        def type_name(self) -> str:
            return self._root.type_descriptor(self.type_idx)

        @property
        def field_name(self) -> str:
            return self._root.string_at(self.name_idx)

    class MethodIdItem(KaitaiStruct):
        STRIDE = 8

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.class_idx = self._io.read_u2le()
            self.proto_idx = self._io.read_u2le()
            self.name_idx = self._io.read_u4le()

        @property
        def class_name(self) -> str:
            """the definer of this method."""
            return self._root.type_descriptor(self.class_idx)

        @property
        def proto_id(self) -> "Dex.ProtoIdItem":
            return self._root.proto_id_at(self.proto_idx)

        @property
        def method_name(self) -> str:
            return self._root.string_at(self.name_idx)

    class ClassDefItem(KaitaiStruct):
        STRIDE = 32

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.class_idx = self._io.read_u4le()
            self.access_flags = self._io.read_u4le()
            self.superclass_idx = self._io.read_u4le()
            self.interfaces_off = self._io.read_u4le()
            self.source_file_idx = self._io.read_u4le()
            self.annotations_off = self._io.read_u4le()
            self.class_data_off = self._io.read_u4le()
            self.static_values_off = self._io.read_u4le()

            self.interfaces = None
            if self.interfaces_off != 0:
                self._io.seek(self.interfaces_off)
                self.interfaces = Dex.TypeList(self._io, self, self._root)

            self.class_data = None
            if self.class_data_off != 0:
                self._io.seek(self.class_data_off)
                self.class_data = Dex.ClassDataItem(self._io, self, self._root)

        @property
        def type_name(self) -> str:
            return self._root.type_descriptor(self.class_idx)

    class ClassDataItem(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            start = self._io.pos()
            self.static_fields_size = leb128.Uleb128(self._io)
            self.instance_fields_size = leb128.Uleb128(self._io)
            self.direct_methods_size = leb128.Uleb128(self._io)
            self.virtual_methods_size = leb128.Uleb128(self._io)

            # encoded fields take at least 2 bytes, encoded methods at least 3
            needed = 2 * (self.static_fields_size.value + self.instance_fields_size.value) + \
                3 * (self.direct_methods_size.value + self.virtual_methods_size.value)
            left = self._io.size() - self._io.pos()
            if needed > left:
                raise OutOfBounds("class data at %#x declares %d bytes of members, only %d left"
                                  % (start, needed, left), start)

            self.static_fields = self._read_list(Dex.EncodedField, self.static_fields_size.value)
            self.instance_fields = self._read_list(Dex.EncodedField, self.instance_fields_size.value)
            self.direct_methods = self._read_list(Dex.EncodedMethod, self.direct_methods_size.value)
            self.virtual_methods = self._read_list(Dex.EncodedMethod, self.virtual_methods_size.value)

        def _read_list(self, cls, count: int) -> list:
            items = []
            for _ in range(count):
                items.append(cls(self._io, self, self._root))
            return items

    class EncodedField(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.field_idx_diff = leb128.Uleb128(self._io).value
            self.access_flags = leb128.Uleb128(self._io).value

    class EncodedMethod(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.method_idx_diff = leb128.Uleb128(self._io).value
            self.access_flags = leb128.Uleb128(self._io).value
            self.code_off = leb128.Uleb128(self._io).value

            # code_off is 0 for abstract and native methods
            self.code_item = None
            if self.code_off != 0:
                _pos = self._io.pos()
                self._io.seek(self.code_off)
                self.code_item = Dex.CodeItem(self._io, self, self._root)
                self._io.seek(_pos)

    class TypeList(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.size = self._io.read_u4le()
            self.list = list(struct.unpack("<%dH" % self.size, self._io.read_bytes(2 * self.size)))

    class CodeItem(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.registers_size = self._io.read_u2le()
            self.ins_size = self._io.read_u2le()
            self.outs_size = self._io.read_u2le()
            self.tries_size = self._io.read_u2le()
            self.debug_info_off = self._io.read_u4le()
            self.insns_size = self._io.read_u4le()
            self.insns = list(struct.unpack("<%dH" % self.insns_size, self._io.read_bytes(2 * self.insns_size)))

            self.tries = []
            self.handlers = None
            if self.tries_size > 0:
                if self.insns_size % 2 == 1:
                    self._io.read_u2le()  # padding, keeps tries four-byte aligned
                self.tries = [Dex.TryItem(self._io, self, self._root) for _ in range(self.tries_size)]
                self.handlers = Dex.EncodedCatchHandlerList(self._io, self, self._root)

            self.debug_info = None
            if self.debug_info_off != 0:
                self._io.seek(self.debug_info_off)
                self.debug_info = Dex.DebugInfoItem(self._io, self, self._root)

    class TryItem(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.start_addr = self._io.read_u4le()
            self.insn_count = self._io.read_u2le()
            self.handler_off = self._io.read_u2le()

    class EncodedCatchHandlerList(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.size = leb128.Uleb128(self._io).value
            self.list = [Dex.EncodedCatchHandler(self._io, self, self._root) for _ in range(self.size)]

    class EncodedCatchHandler(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            # non-positive size means a catch-all handler follows the typed ones
            self.size = leb128.Sleb128(self._io).value
            self.handlers = [Dex.EncodedTypeAddrPair(self._io, self, self._root) for _ in range(abs(self.size))]
            self.catch_all_addr = None
            if self.size <= 0:
                self.catch_all_addr = leb128.Uleb128(self._io).value

    class EncodedTypeAddrPair(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.type_idx = leb128.Uleb128(self._io).value
            self.addr = leb128.Uleb128(self._io).value

    class DebugInfoItem(KaitaiStruct):
        """Only the parameter names are decoded; the state machine bytecode is left alone."""

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.line_start = leb128.Uleb128(self._io).value
            self.parameters_size = leb128.Uleb128(self._io).value
            self.parameter_names = [leb128.Uleb128p1(self._io).value for _ in range(self.parameters_size)]


def decode_dex(buf: bytes) -> Dex:
    with decoding("DEX"):
        return Dex.from_bytes(buf)
