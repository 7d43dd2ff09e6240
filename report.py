import logging
from typing import Optional

from class_data import DecodedClass, MethodRecord
from detector import HidingWarning, WarningKind, in_scope
from dex import Dex
from integrity import IntegrityStatus
import leb128
from utils import LogHandler, LOG_TYPE_FINDING

handler = LogHandler()
log = logging.getLogger("hidex")
log.addHandler(handler)
log.setLevel(logging.INFO)


def describe_access_flags(flags: int) -> str:
    names = [flag.name for flag in Dex.MethodAccessFlags if flags & flag.value]
    return "|".join(names) if names else "none"


def print_header(dex: Dex, status: Optional[IntegrityStatus] = None) -> None:
    h = dex.header
    log.info(f"DEX Header of file: {dex.path}")
    log.info(f"Magic     : {h.magic_hex}")
    log.info(f"Checksum  : {h.checksum_hex}")
    log.info(f"SHA1      : {h.signature.hex()}")
    log.info(f"file size : {h.file_size} (actual {len(dex.raw)})")
    for name in ("string_ids", "type_ids", "method_ids", "class_defs"):
        offset = getattr(h, f"{name}_off")
        size = getattr(h, f"{name}_size")
        log.info(f"{name:<10}: offset=0x{offset:X} ({offset}), size={size}")
    if status is not None:
        log.info(f"Checksum is {'valid' if status.checksum_ok else 'INVALID (computed %08x)' % status.computed_checksum}")
        log.info(f"SHA1 is {'valid' if status.signature_ok else 'INVALID (computed %s)' % status.computed_signature.hex()}")


def _print_method(number: int, record: MethodRecord) -> None:
    log.info(f"   method #{number}- name={record.name} (0x{record.method_idx:x}) (position=0x{record.position:X})")
    log.info(f"     access     = 0x{record.access_flags:X} ({record.access_flags}) {describe_access_flags(record.access_flags)}")
    log.info(f"     code_offset= 0x{record.code_offset:X} ({record.code_offset}) [{leb128.hexlify(record.code_offset)}]")
    log.info(f"     idx_diff   = {record.method_idx_diff}")


def print_class(decoded: DecodedClass, class_name: Optional[str] = None, method_name: Optional[str] = None) -> None:
    """Class layout, restricted to the given class and method the way warnings are."""
    if class_name and class_name != decoded.name:
        return

    log.info(f"Class_def[{decoded.index}]:")
    log.info(f" class idx         = {decoded.name} (0x{decoded.class_idx:X})")
    log.info(f" class data offset = {decoded.class_data_off}")
    log.info(f" # static fields  = {decoded.static_fields_size}")
    log.info(f" # instance fields= {decoded.instance_fields_size}")
    log.info(f" # direct methods = {len(decoded.direct_methods)}")
    log.info(f" # virtual methods= {len(decoded.virtual_methods)}")
    for title, records in ((" direct methods:", decoded.direct_methods),
                           (" virtual methods:", decoded.virtual_methods)):
        log.info(title)
        for number, record in enumerate(records):
            if in_scope(decoded.name, record.name, class_name, method_name):
                _print_method(number, record)


def print_warning(warning: HidingWarning) -> None:
    if warning.kind == WarningKind.NEVER_REFERENCED:
        text = warning.message
    else:
        text = (f"{warning.message} (Class: {warning.class_name} Method: {warning.method_name} "
                f"Position: 0x{warning.position:X}) - possible attempt to hide a method")
    log.warning(text, extra={"type": LOG_TYPE_FINDING, "finding": warning.as_dict()})


def print_integrity(checksum_hex: str, signature_hex: str) -> None:
    log.info("Writing:")
    log.info(f"Checksum: {checksum_hex}")
    log.info(f"SHA1    : {signature_hex}")
