import logging
import struct
import zlib
from dataclasses import dataclass
from typing import Tuple

from Crypto.Hash import SHA1

from dex import CHECKSUM_OFFSET, SIGNATURE_OFFSET, SIGNATURE_SIZE
from utils import LogHandler

handler = LogHandler()
log = logging.getLogger(__name__)
log.addHandler(handler)
log.setLevel(logging.INFO)

# magic + checksum + signature
SIGNED_FROM = SIGNATURE_OFFSET + SIGNATURE_SIZE
# magic + checksum
CHECKSUMMED_FROM = SIGNATURE_OFFSET


def compute_signature(data: bytes) -> bytes:
    """SHA-1 over everything after the signature field."""
    return SHA1.new(data[SIGNED_FROM:]).digest()


def compute_checksum(data: bytes) -> int:
    """Adler-32 over everything after the checksum field, signature included."""
    return zlib.adler32(data[CHECKSUMMED_FROM:]) & 0xffffffff


@dataclass
class IntegrityStatus:
    stored_checksum: int
    computed_checksum: int
    stored_signature: bytes
    computed_signature: bytes

    @property
    def checksum_ok(self) -> bool:
        return self.stored_checksum == self.computed_checksum

    @property
    def signature_ok(self) -> bool:
        return self.stored_signature == self.computed_signature


def verify(data: bytes) -> IntegrityStatus:
    stored_checksum, = struct.unpack_from("<I", data, CHECKSUM_OFFSET)
    return IntegrityStatus(
        stored_checksum=stored_checksum,
        computed_checksum=compute_checksum(data),
        stored_signature=bytes(data[SIGNATURE_OFFSET:SIGNED_FROM]),
        computed_signature=compute_signature(data),
    )


def update_integrity(path) -> Tuple[str, str]:
    """Recomputes and rewrites the signature, then the checksum, of the dex at `path`.

    The signature goes first because it is part of the checksummed range. The checksum is
    displayed big-endian (like adler32 tools print it) but stored little-endian in the header.
    Returns (checksum_hex, signature_hex).
    """
    with open(path, "r+b") as fd:
        data = bytearray(fd.read())

        signature = compute_signature(data)
        data[SIGNATURE_OFFSET:SIGNED_FROM] = signature
        fd.seek(SIGNATURE_OFFSET)
        fd.write(signature)

        checksum = compute_checksum(data)
        fd.seek(CHECKSUM_OFFSET)
        fd.write(struct.pack("<I", checksum))

    checksum_hex = "%08x" % checksum
    log.debug(f"{path}: checksum {checksum_hex} signature {signature.hex()}")
    return checksum_hex, signature.hex()
