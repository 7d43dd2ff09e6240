# Unsigned LEB128, the variable length integer used all over class_data_item.
# Uleb128 mirrors the layout of the Kaitai "vlq_base128_le" type so it can be embedded in the
# struct definitions in dex.py; decode/encode are the plain functions the patcher and detector use.
import io
from typing import List, Tuple

from kaitaistruct import KaitaiStruct, KaitaiStream

from errors import MalformedVarint

# dex only stores 32-bit values in uleb128
MAX_ENCODED_SIZE = 5


def decode(stream: KaitaiStream) -> Tuple[int, int]:
    """Reads one uleb128 from the current position of `stream`.

    Returns (value, bytes_consumed). Raises MalformedVarint if the stream ends before a byte
    with the continuation bit clear.
    """
    start = stream.pos()
    value = 0
    shift = 0
    consumed = 0
    while True:
        if stream.is_eof():
            raise MalformedVarint(start, consumed)
        byte = stream.read_u1()
        consumed += 1
        value |= (byte & 0x7f) << shift
        shift += 7
        if not byte & 0x80:
            return value, consumed


def decode_at(data: bytes, offset: int) -> Tuple[int, int]:
    stream = KaitaiStream(io.BytesIO(data))
    stream.seek(offset)
    return decode(stream)


def encode(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"uleb128 cannot encode negative value {value}")

    result = bytearray()
    while True:
        byte = value & 0x7f
        value >>= 7
        if value:
            result.append(byte | 0x80)
        else:
            result.append(byte)
            return bytes(result)


def encoded_size(value: int) -> int:
    return len(encode(value))


def hexlify(value: int) -> str:
    """Encoded bytes as they appear in the file, e.g. 0x1448 -> 'c8 28'."""
    return " ".join(f"{b:02x}" for b in encode(value))


class Uleb128(KaitaiStruct):
    """A uleb128 read in place, keeping the raw groups.

    .. seealso::
       Source - https://source.android.com/devices/tech/dalvik/dex-format#leb128
    """

    def __init__(self, _io, _parent=None, _root=None):
        self._io = _io
        self._parent = _parent
        self._root = _root if _root else self
        self._read()

    def _read(self):
        self.offset = self._io.pos()
        self.groups: List[int] = []
        while True:
            if self._io.is_eof():
                raise MalformedVarint(self.offset, len(self.groups))
            byte = self._io.read_u1()
            self.groups.append(byte)
            if not byte & 0x80:
                break

    @property
    def len(self) -> int:
        return len(self.groups)

    @property
    def value(self) -> int:
        if hasattr(self, '_m_value'):
            return self._m_value

        value = 0
        for i, group in enumerate(self.groups):
            value |= (group & 0x7f) << (7 * i)
        self._m_value = value
        return self._m_value
