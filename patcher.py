# In-place rewriting of encoded_method entries and string length prefixes.
#
# Nothing here moves data around: values are written over whatever bytes are at the offset.
# If the new uleb128s are longer than the ones they replace, the next fields get clobbered and
# the dex is broken. Keeping the encoded size is up to the caller unless strict=True is passed.
import logging
import struct
from typing import BinaryIO, Optional

from errors import PatchOverflow, TruncatedRead
import leb128
from utils import LogHandler

handler = LogHandler()
log = logging.getLogger(__name__)
log.addHandler(handler)
log.setLevel(logging.INFO)


def _check_in_file(fd: BinaryIO, offset: int, size: int) -> None:
    """Raises TruncatedRead unless `size` bytes at `offset` lie inside the file."""
    file_size = fd.seek(0, 2)
    if offset < 0 or offset + size > file_size:
        raise TruncatedRead(offset, size, max(file_size - offset, 0))


def original_span(fd: BinaryIO, offset: int, count: int) -> int:
    """Byte length of the `count` uleb128 values currently stored at `offset`."""
    _check_in_file(fd, offset, 1)
    fd.seek(offset)
    chunk = fd.read(leb128.MAX_ENCODED_SIZE * count)
    span = 0
    for _ in range(count):
        _value, consumed = leb128.decode_at(chunk, span)
        span += consumed
    return span


def patch_method(fd: BinaryIO, offset: int, method_idx_diff: int, access_flags: int, code_offset: int,
                 next_method_idx_diff: Optional[int] = None, strict: bool = False) -> int:
    """Overwrites the encoded_method at `offset`, and optionally the diff of the one after it.

    Returns the number of bytes written.
    """
    values = [method_idx_diff, access_flags, code_offset]
    if next_method_idx_diff is not None:
        values.append(next_method_idx_diff)
    encoded = b"".join(leb128.encode(v) for v in values)
    _check_in_file(fd, offset, len(encoded))

    if strict:
        span = original_span(fd, offset, len(values))
        if len(encoded) > span:
            raise PatchOverflow(offset, span, len(encoded))

    log.debug(f"method patch at 0x{offset:X}: {encoded.hex(' ')}")
    fd.seek(offset)
    fd.write(encoded)
    return len(encoded)


def patch_string(fd: BinaryIO, offset: int, raw_value: int) -> int:
    """Writes a raw little-endian u16 at `offset`, typically over a string's size prefix.

    Values above 0xffff keep their low 16 bits.
    """
    data = struct.pack("<H", raw_value & 0xffff)
    _check_in_file(fd, offset, len(data))
    log.debug(f"string patch at 0x{offset:X}: {data.hex(' ')}")
    fd.seek(offset)
    fd.write(data)
    return len(data)


class PatchEngine:
    """Opens a dex read-write for the duration of a `with` block.

    Integrity fields are not touched here; run integrity.update_integrity() afterwards.
    """

    def __init__(self, path, strict: bool = False):
        self.path = path
        self.strict = strict
        self.fd: Optional[BinaryIO] = None

    def __enter__(self) -> "PatchEngine":
        self.fd = open(self.path, "r+b")
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.fd.close()
        self.fd = None

    def patch_method(self, offset: int, method_idx_diff: int, access_flags: int, code_offset: int,
                     next_method_idx_diff: Optional[int] = None) -> int:
        written = patch_method(self.fd, offset, method_idx_diff, access_flags, code_offset,
                               next_method_idx_diff, self.strict)
        log.info(f"Patched method at 0x{offset:X} ({written} bytes)")
        return written

    def patch_string(self, offset: int, raw_value: int) -> int:
        written = patch_string(self.fd, offset, raw_value)
        log.info(f"Patched string at 0x{offset:X} with 0x{raw_value & 0xffff:04X}")
        return written
