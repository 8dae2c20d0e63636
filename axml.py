"""Android binary XML (AXML): AndroidManifest.xml and compiled layouts.

Record layouts follow ResXMLTree_node / ResXMLTree_attrExt / ResXMLTree_attribute
in frameworks/base/libs/androidfw/include/androidfw/ResourceTypes.h.
"""
import xml.etree.ElementTree as ET
from typing import Dict, Iterator, List, Optional, Tuple

import kaitaistruct
from kaitaistruct import KaitaiStruct

from errors import DecodeError, InvalidIndex, ReadError, decoding
from helpers import AXML_MAGIC, NO_INDEX
from res_value import TypedValue, convert_value
from string_pool import StringPool
from utils import get_logger

log = get_logger(__name__)

# tag word = (header_size << 16) | chunk type
TAG_START_DOC = 0x00100100
TAG_END_DOC = 0x00100101
TAG_START = 0x00100102
TAG_END = 0x00100103
TAG_TEXT = 0x00100104
TAG_CDSECT = 0x00100105
TAG_ENTITY_REF = 0x00100106

# tag, size, line number, comment
NODE_HEADER_SIZE = 16
ATTRIBUTE_SIZE = 20
MIN_RECORD_SIZE = {
    TAG_START: NODE_HEADER_SIZE + 20,
    TAG_END: NODE_HEADER_SIZE + 8,
    TAG_TEXT: NODE_HEADER_SIZE + 12,
}


class Text:
    def __init__(self, content: str):
        self.content = content

    def __repr__(self):
        return "Text(%r)" % self.content


class Element:
    def __init__(self, name: str, namespace: Optional[str] = None):
        self.name = name
        self.namespace = namespace
        self.attributes: List[Tuple[str, TypedValue]] = []
        self.children: List["Element"] = []
        self.text: Optional[Text] = None

    def get(self, key: str, default=None) -> Optional[TypedValue]:
        """Returns the value of attribute `key` ("prefix:name" for namespaced attributes)."""
        for name, value in self.attributes:
            if name == key:
                return value
        return default

    def find(self, name: str) -> Optional["Element"]:
        return next(self._children_named(name), None)

    def findall(self, name: str) -> List["Element"]:
        return list(self._children_named(name))

    def _children_named(self, name: str) -> Iterator["Element"]:
        return (child for child in self.children if child.name == name)

    def iter(self) -> Iterator["Element"]:
        yield self
        for child in self.children:
            yield from child.iter()

    def __repr__(self):
        return "<Element %s attrs=%d children=%d>" % (self.name, len(self.attributes), len(self.children))


class Axml(KaitaiStruct):
    """Decodes a binary XML document into an Element tree.

    The leading string pool is followed by a stream of tag records. Records
    before the first start tag (resource map, namespace starts) are skipped and
    the first END_DOCUMENT record ends the stream.
    """

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.magic = self._io.read_bytes(4)
        if not self.magic == AXML_MAGIC:
            raise kaitaistruct.ValidationNotEqualError(AXML_MAGIC, self.magic, self._io, u"/seq/0")
        self.file_size = self._io.read_u4le()
        if self.file_size > self._io.size():
            raise ReadError("declared size %#x exceeds buffer size %#x" % (self.file_size, self._io.size()), 4)

        self.string_pool = StringPool(self._io, self, self._root)
        self.namespaces: Dict[str, str] = {}
        self.root: Optional[Element] = None
        self._read_tags(self.string_pool.header.end)

        if self.root is None:
            raise ReadError("no start tag found", self.string_pool.header.end)

    @property
    def strings(self) -> List[str]:
        return self.string_pool.strings

    def _read_tags(self, pos: int):
        parents: List[Element] = []
        started = False

        while pos < self.file_size:
            self._io.seek(pos)
            tag = self._io.read_u4le()
            size = self._io.read_u4le()
            if size < 8 or pos + size > self.file_size or size < MIN_RECORD_SIZE.get(tag, 8):
                raise ReadError("pos=%d(%#x)[tag:%#x] bad record size %d" % (pos, pos, tag, size), pos)

            if not started and tag != TAG_START:
                log.debug("Skipping record %#x before first start tag at %#x", tag, pos)
                pos += size
                continue
            started = True

            self._io.seek(pos + NODE_HEADER_SIZE)
            _on = tag
            if _on == TAG_START:
                elem = self._start_tag(pos, size)
                if parents:
                    parents[-1].children.append(elem)
                elif self.root is None:
                    self.root = elem
                else:
                    raise ReadError("pos=%d(%#x) second root element <%s>" % (pos, pos, elem.name), pos)
                parents.append(elem)
            elif _on == TAG_END:
                if not parents:
                    raise ReadError("pos=%d(%#x) end tag without open element" % (pos, pos), pos)
                parents.pop()
            elif _on == TAG_END_DOC:
                break
            elif _on == TAG_TEXT:
                text = Text(self._string(self._io.read_u4le(), pos))
                if parents:
                    # last write wins
                    parents[-1].text = text
            elif _on in (TAG_START_DOC, TAG_CDSECT, TAG_ENTITY_REF):
                log.debug("Ignoring record %#x at %#x", tag, pos)
            else:
                raise ReadError("pos=%d(%#x)[tag:%#x]" % (pos, pos, tag), pos)
            pos += size

    def _start_tag(self, pos: int, size: int) -> Element:
        ns_id = self._io.read_u4le()
        name_id = self._io.read_u4le()
        attribute_start = self._io.read_u2le()
        attribute_size = self._io.read_u2le()
        attribute_count = self._io.read_u2le()
        self._io.read_u2le()  # id index
        self._io.read_u2le()  # class index
        self._io.read_u2le()  # style index

        first = pos + NODE_HEADER_SIZE + attribute_start
        if attribute_count and (attribute_size < ATTRIBUTE_SIZE
                                or first + attribute_count * attribute_size > pos + size):
            raise ReadError("pos=%d(%#x) %d attributes do not fit in start tag record"
                            % (pos, pos, attribute_count), pos)

        namespace = self._string(ns_id, pos) if ns_id != NO_INDEX else None
        elem = Element(self._string(name_id, pos), namespace)
        for i in range(attribute_count):
            self._io.seek(first + i * attribute_size)
            elem.attributes.append(self._attribute(pos))
        return elem

    def _attribute(self, pos: int) -> Tuple[str, TypedValue]:
        ns_id = self._io.read_u4le()
        name_id = self._io.read_u4le()
        raw_value_id = self._io.read_u4le()
        type_flags = self._io.read_u4le()
        data = self._io.read_u4le()

        key = self._string(name_id, pos)
        if ns_id != NO_INDEX:
            uri = self._string(ns_id, pos)
            prefix = uri.rsplit("/", 1)[-1]
            self.namespaces.setdefault(uri, prefix)
            key = "%s:%s" % (prefix, key)

        try:
            return key, convert_value(raw_value_id, type_flags, data, self.string_pool)
        except InvalidIndex as ex:
            raise ReadError("pos=%d(%#x) attribute %s: %s" % (pos, pos, key, ex), pos) from ex

    def _string(self, idx: int, pos: int) -> str:
        try:
            return self.string_pool.string_at(idx)
        except InvalidIndex as ex:
            raise ReadError("pos=%d(%#x) %s" % (pos, pos, ex), pos) from ex

    def to_element_tree(self) -> ET.Element:
        def build(node: Element) -> ET.Element:
            elem = ET.Element(node.name, {key: str(value) for key, value in node.attributes})
            if node.text is not None:
                elem.text = node.text.content
            for child in node.children:
                elem.append(build(child))
            return elem

        root = build(self.root)
        for uri, prefix in self.namespaces.items():
            root.set("xmlns:%s" % prefix, uri)
        return root

    def to_xml(self) -> str:
        return ET.tostring(self.to_element_tree(), encoding="unicode")


def decode_axml(buf: bytes) -> Axml:
    """Decodes binary XML, reporting every structural failure as ReadError."""
    try:
        with decoding("AXML"):
            return Axml.from_bytes(buf)
    except ReadError:
        raise
    except DecodeError as ex:
        raise ReadError(str(ex), ex.offset) from ex
