import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from kaitaistruct import KaitaiStruct

from dex import Dex
from errors import TruncatedRead
from symbols import SymbolResolver
from leb128 import Uleb128
from utils import LogHandler

handler = LogHandler()
log = logging.getLogger(__name__)
log.addHandler(handler)
log.setLevel(logging.INFO)

DIRECT = "direct"
VIRTUAL = "virtual"


@dataclass
class MethodRecord:
    """One encoded_method of a class_data_item.

    `position` is where the method_idx_diff uleb128 starts; that is the offset the patcher
    takes. `method_idx` is the running sum of the diffs in the method's group.
    """
    position: int
    method_idx_diff: int
    access_flags: int
    code_offset: int
    method_idx: int
    name: str
    kind: str
    end: int = 0

    @property
    def span(self) -> int:
        return self.end - self.position


@dataclass
class DecodedClass:
    index: int
    class_idx: int
    name: str
    class_data_off: int
    static_fields_size: int = 0
    instance_fields_size: int = 0
    direct_methods: List[MethodRecord] = field(default_factory=list)
    virtual_methods: List[MethodRecord] = field(default_factory=list)

    @property
    def methods(self) -> List[MethodRecord]:
        return self.direct_methods + self.virtual_methods


class ClassDataItem(KaitaiStruct):
    """class_data_item: four counts followed by fields and methods, all uleb128.

    Fields are read and dropped; only their size matters to reach the methods.
    """

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.static_fields_size = Uleb128(self._io, self, self._root)
        self.instance_fields_size = Uleb128(self._io, self, self._root)
        self.direct_methods_size = Uleb128(self._io, self, self._root)
        self.virtual_methods_size = Uleb128(self._io, self, self._root)

        for _ in range(self.static_fields_size.value + self.instance_fields_size.value):
            EncodedField(self._io, self, self._root)

        self.direct_methods = [None] * (self.direct_methods_size.value)
        for i in range(self.direct_methods_size.value):
            self.direct_methods[i] = EncodedMethod(self._io, self, self._root)

        self.virtual_methods = [None] * (self.virtual_methods_size.value)
        for i in range(self.virtual_methods_size.value):
            self.virtual_methods[i] = EncodedMethod(self._io, self, self._root)


class EncodedField(KaitaiStruct):
    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.field_idx_diff = Uleb128(self._io, self, self._root)
        self.access_flags = Uleb128(self._io, self, self._root)


class EncodedMethod(KaitaiStruct):
    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.position = self._io.pos()
        self.method_idx_diff = Uleb128(self._io, self, self._root)
        self.access_flags = Uleb128(self._io, self, self._root)
        self.code_off = Uleb128(self._io, self, self._root)
        self.end = self._io.pos()


class ClassDataDecoder:
    """Walks class_defs and decodes each class_data_item into a DecodedClass.

    Iteration is lazy and single pass. Any decoding error aborts the walk: once one
    uleb128 is off, every following offset is meaningless.
    """

    def __init__(self, dex: Dex, resolver: Optional[SymbolResolver] = None):
        self.dex = dex
        self.resolver = resolver if resolver else SymbolResolver(dex)

    def decode_all(self) -> Iterator[DecodedClass]:
        for index, class_def in enumerate(self.dex.class_defs):
            yield self.decode_class(index, class_def)

    def decode_class(self, index: int, class_def: Dex.ClassDefItem) -> DecodedClass:
        decoded = DecodedClass(
            index=index,
            class_idx=class_def.class_idx,
            name=self.resolver.type_name(class_def.class_idx),
            class_data_off=class_def.class_data_off,
        )
        log.debug(f"class_def[{index}] {decoded.name} class_data_off=0x{class_def.class_data_off:X}")

        # interfaces and marker classes have no class data
        if not class_def.class_data_off:
            return decoded
        if class_def.class_data_off >= len(self.dex.raw):
            raise TruncatedRead(class_def.class_data_off, 1, 0)

        item = ClassDataItem(self.dex.stream_at(class_def.class_data_off), class_def, self.dex)
        decoded.static_fields_size = item.static_fields_size.value
        decoded.instance_fields_size = item.instance_fields_size.value
        decoded.direct_methods = self._decode_methods(item.direct_methods, DIRECT)
        decoded.virtual_methods = self._decode_methods(item.virtual_methods, VIRTUAL)
        return decoded

    def _decode_methods(self, encoded_methods: List[EncodedMethod], kind: str) -> List[MethodRecord]:
        records = []
        method_idx = 0
        for encoded in encoded_methods:
            method_idx += encoded.method_idx_diff.value
            record = MethodRecord(
                position=encoded.position,
                method_idx_diff=encoded.method_idx_diff.value,
                access_flags=encoded.access_flags.value,
                code_offset=encoded.code_off.value,
                method_idx=method_idx,
                name=self.resolver.method_name(method_idx),
                kind=kind,
                end=encoded.end,
            )
            log.debug(f"  {kind} {record.name} idx=0x{method_idx:x} position=0x{record.position:X}")
            records.append(record)
        return records


def decode_all(dex: Dex, resolver: Optional[SymbolResolver] = None) -> Iterator[DecodedClass]:
    return ClassDataDecoder(dex, resolver).decode_all()
