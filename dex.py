# Header and fixed-size id tables of a DEX file, in the style of https://formats.kaitai.io/dex/
# Only the pieces needed to walk class data are kept. Variable-length items (strings, class data)
# are decoded by symbols.py and class_data.py, each with its own cursor over Dex.raw.
import io
import logging
from typing import List

import kaitaistruct
from kaitaistruct import KaitaiStruct, KaitaiStream
from enum import Enum
from packaging.version import parse as parse_version

from errors import TruncatedRead
from utils import LogHandler

if parse_version(kaitaistruct.__version__) < parse_version('0.9'):
    raise Exception(
        "Incompatible Kaitai Struct Python API: 0.9 or later is required, but you have %s" % (kaitaistruct.__version__))

handler = LogHandler()
log = logging.getLogger(__name__)
log.addHandler(handler)
log.setLevel(logging.INFO)

HEADER_SIZE = 0x70
CHECKSUM_OFFSET = 8
SIGNATURE_OFFSET = 12
SIGNATURE_SIZE = 20

STRING_ID_SIZE = 4
TYPE_ID_SIZE = 4
PROTO_ID_SIZE = 12
FIELD_ID_SIZE = 8
METHOD_ID_SIZE = 8
CLASS_DEF_SIZE = 32


class Dex(KaitaiStruct):
    """Android OS applications executables are typically stored in its own
    format, optimized for more efficient execution in Dalvik virtual
    machine.

    The whole file is held in `raw` and never mutated; patching goes through a separate
    read-write handle (see patcher.py).

    .. seealso::
       Source - https://source.android.com/devices/tech/dalvik/dex-format
    """

    class MethodAccessFlags(Enum):
        public = 0x1
        private = 0x2
        protected = 0x4
        static = 0x8
        final = 0x10
        synchronized = 0x20
        bridge = 0x40
        varargs = 0x80
        native = 0x100
        abstract = 0x400
        strict = 0x800
        synthetic = 0x1000
        constructor = 0x10000
        declared_synchronized = 0x20000

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    @classmethod
    def from_path(cls, path) -> "Dex":
        with open(path, "rb") as fd:
            data = fd.read()
        dex = cls.from_bytes(data)
        dex.path = path
        return dex

    @classmethod
    def from_bytes(cls, buf) -> "Dex":
        dex = cls(KaitaiStream(io.BytesIO(bytes(buf))))
        dex.path = None
        return dex

    def _read(self):
        self.raw = self._io.read_bytes_full()
        self._io.seek(0)
        if len(self.raw) < HEADER_SIZE:
            raise TruncatedRead(0, HEADER_SIZE, len(self.raw))
        self.header = Dex.HeaderItem(self._io, self, self._root)
        self._check_bounds()

    def _check_bounds(self):
        h = self.header
        tables = [
            ("string_ids", h.string_ids_off, h.string_ids_size, STRING_ID_SIZE),
            ("type_ids", h.type_ids_off, h.type_ids_size, TYPE_ID_SIZE),
            ("proto_ids", h.proto_ids_off, h.proto_ids_size, PROTO_ID_SIZE),
            ("field_ids", h.field_ids_off, h.field_ids_size, FIELD_ID_SIZE),
            ("method_ids", h.method_ids_off, h.method_ids_size, METHOD_ID_SIZE),
            ("class_defs", h.class_defs_off, h.class_defs_size, CLASS_DEF_SIZE),
        ]
        for name, offset, count, entry_size in tables:
            if not count:
                continue
            length = count * entry_size
            if offset + length > len(self.raw):
                log.debug(f"{name} table at 0x{offset:X} with {count} entries runs past end of file")
                raise TruncatedRead(offset, length, max(len(self.raw) - offset, 0))

    def stream_at(self, offset: int) -> KaitaiStream:
        """A fresh cursor over the file, positioned at `offset`."""
        stream = KaitaiStream(io.BytesIO(self.raw))
        stream.seek(offset)
        return stream

    def read_at(self, offset: int, size: int) -> bytes:
        if offset < 0 or offset + size > len(self.raw):
            raise TruncatedRead(offset, size, max(len(self.raw) - offset, 0))
        return self.raw[offset:offset + size]

    class HeaderItem(KaitaiStruct):

        class EndianConstant(Enum):
            endian_constant = 305419896
            reverse_endian_constant = 2018915346

        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.magic = self._io.read_bytes(4)
            if not self.magic == b"\x64\x65\x78\x0A":
                raise kaitaistruct.ValidationNotEqualError(b"\x64\x65\x78\x0A", self.magic, self._io,
                                                           u"/types/header_item/seq/0")
            self.version_str = (KaitaiStream.bytes_terminate(self._io.read_bytes(4), 0, False)).decode(u"utf-8",
                                                                                                       "ignore")
            self.checksum = self._io.read_u4le()
            self.signature = self._io.read_bytes(20)
            self.file_size = self._io.read_u4le()
            self.header_size = self._io.read_u4le()
            self.endian_tag = KaitaiStream.resolve_enum(Dex.HeaderItem.EndianConstant, self._io.read_u4le())
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

        @property
        def magic_hex(self) -> str:
            return self._root.raw[0:8].hex()

        @property
        def checksum_hex(self) -> str:
            return "%08x" % self.checksum

    class MethodIdItem(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.class_idx = self._io.read_u2le()
            self.proto_idx = self._io.read_u2le()
            self.name_idx = self._io.read_u4le()

    class ClassDefItem(KaitaiStruct):
        def __init__(self, _io, _parent=None, _root=None):
            self._io = _io
            self._parent = _parent
            self._root = _root if _root else self
            self._read()

        def _read(self):
            self.offset = self._io.pos()
            self.class_idx = self._io.read_u4le()
            self.access_flags = self._io.read_u4le()
            self.superclass_idx = self._io.read_u4le()
            self.interfaces_off = self._io.read_u4le()
            self.source_file_idx = self._io.read_u4le()
            self.annotations_off = self._io.read_u4le()
            self.class_data_off = self._io.read_u4le()
            self.static_values_off = self._io.read_u4le()

    @property
    def class_defs(self) -> List[ClassDefItem]:
        """class definitions list.

        The classes must be ordered such that a given class's superclass and
        implemented interfaces appear in the list earlier than the referring class.
        """
        if hasattr(self, '_m_class_defs'):
            return self._m_class_defs

        stream = self.stream_at(self.header.class_defs_off)
        self._m_class_defs = [None] * (self.header.class_defs_size)
        for i in range(self.header.class_defs_size):
            self._m_class_defs[i] = Dex.ClassDefItem(stream, self, self._root)

        return self._m_class_defs
