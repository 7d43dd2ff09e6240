import logging
from typing import Dict

from dex import Dex, STRING_ID_SIZE, TYPE_ID_SIZE, METHOD_ID_SIZE
from errors import IndexOutOfRange, TruncatedRead
from helpers import b2i, decode_mutf8
import leb128
from utils import LogHandler

handler = LogHandler()
log = logging.getLogger(__name__)
log.addHandler(handler)
log.setLevel(logging.INFO)


class SymbolResolver:
    """Turns string, type and method indices into names.

    Every lookup reads the id tables directly from the immutable file bytes with its own
    cursor, so it can be called in the middle of another walk over the same file.
    """

    def __init__(self, dex: Dex):
        self.dex = dex
        self.header = dex.header

        self._strings: Dict[int, str] = {}
        self._method_ids: Dict[int, Dex.MethodIdItem] = {}

    def _entry_offset(self, table: str, table_off: int, table_size: int, entry_size: int, idx: int) -> int:
        if idx < 0 or idx >= table_size:
            raise IndexOutOfRange(table, idx, table_size)
        return table_off + idx * entry_size

    def string_data_off(self, idx: int) -> int:
        offset = self._entry_offset("string_ids", self.header.string_ids_off, self.header.string_ids_size,
                                    STRING_ID_SIZE, idx)
        return b2i(self.dex.read_at(offset, STRING_ID_SIZE))

    def string(self, idx: int) -> str:
        if idx in self._strings:
            return self._strings[idx]

        data_off = self.string_data_off(idx)
        stream = self.dex.stream_at(data_off)
        size, consumed = leb128.decode(stream)
        chars_off = data_off + consumed
        available = len(self.dex.raw) - chars_off
        if available < size:
            raise TruncatedRead(chars_off, size, max(available, 0))

        log.debug(f"string[{idx}] at 0x{data_off:X}, {size} byte(s)")
        self._strings[idx] = decode_mutf8(self.dex.raw[chars_off:chars_off + size])
        return self._strings[idx]

    def type_name(self, idx: int) -> str:
        offset = self._entry_offset("type_ids", self.header.type_ids_off, self.header.type_ids_size,
                                    TYPE_ID_SIZE, idx)
        descriptor_idx = b2i(self.dex.read_at(offset, TYPE_ID_SIZE))
        return self.string(descriptor_idx)

    def method_id(self, idx: int) -> Dex.MethodIdItem:
        if idx in self._method_ids:
            return self._method_ids[idx]

        offset = self._entry_offset("method_ids", self.header.method_ids_off, self.header.method_ids_size,
                                    METHOD_ID_SIZE, idx)
        self._method_ids[idx] = Dex.MethodIdItem(self.dex.stream_at(offset), self.dex, self.dex)
        return self._method_ids[idx]

    def method_name(self, idx: int) -> str:
        return self.string(self.method_id(idx).name_idx)

    def method_class_name(self, idx: int) -> str:
        return self.type_name(self.method_id(idx).class_idx)

    def method_fqn(self, idx: int) -> str:
        return f"{self.method_class_name(idx)}->{self.method_name(idx)}"
