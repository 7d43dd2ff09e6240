#!/usr/bin/env python
import argparse
import logging
import shutil
import sys
from typing import List, Optional

from kaitaistruct import KaitaiStructError

from class_data import ClassDataDecoder
from detector import HidingDetector, HidingWarning
from dex import Dex
from errors import HidexError
from helpers import parse_hex
import integrity
from patcher import PatchEngine
import report
from symbols import SymbolResolver
from utils import LogHandler, set_level, use_json_output

handler = LogHandler()
log = logging.getLogger("main")
log.setLevel(logging.INFO)
log.addHandler(handler)


def inspect(dex: Dex, class_name: Optional[str], method_name: Optional[str], detect: bool) -> List[HidingWarning]:
    """Prints the class layout and, with `detect`, the hiding warnings. Returns the warnings."""
    resolver = SymbolResolver(dex)
    detector = HidingDetector(resolver, class_name, method_name)
    warnings = []

    for decoded in ClassDataDecoder(dex, resolver).decode_all():
        report.print_class(decoded, class_name, method_name)
        if detect:
            for warning in detector.check_class(decoded):
                report.print_warning(warning)
                warnings.append(warning)

    if detect:
        for warning in detector.check_completeness():
            report.print_warning(warning)
            warnings.append(warning)
        log.info(f"{len(warnings)} warning(s)")

    return warnings


def patch(args) -> None:
    if args.backup:
        backup_path = f"{args.DEX_FILE}.bak"
        shutil.copy2(args.DEX_FILE, backup_path)
        log.info(f"Saved a copy to {backup_path}")

    log.info("Patching DEX...")
    with PatchEngine(args.DEX_FILE, strict=args.strict) as engine:
        if args.patch_string_offset is not None:
            engine.patch_string(args.patch_string_offset, args.patch_string_data)
        if args.patch_offset is not None:
            engine.patch_method(args.patch_offset, args.patch_idx, args.patch_flag, args.patch_code,
                                args.patch_next_idx)

    checksum_hex, signature_hex = integrity.update_integrity(args.DEX_FILE)
    report.print_integrity(checksum_hex, signature_hex)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hidex",
        description="Hiding/unhiding methods in DEX files",
        epilog="Example: hidex classes.dex --patch-offset 0x2c99 --patch-idx 0 --patch-flag 1 "
               "--patch-code 0x13d8 --patch-next-idx 2",
    )
    parser.add_argument(
        "-v", "--verbose", help="Enable verbose logging", action="store_true"
    )
    parser.add_argument(
        "-j", "--json", help="Output as one JSON object per line", action="store_true"
    )
    parser.add_argument(
        "-d", "--detect", help="Detect possible attempts to hide a method", action="store_true"
    )
    parser.add_argument(
        "-c", "--class", dest="class_name",
        help="Restrict display (and warnings) to this class. Example: -c 'Lcom/fortiguard/hideandseek/MrHyde;'"
    )
    parser.add_argument(
        "-m", "--method", dest="method_name",
        help="Restrict display (and warnings) to this method. A class must be specified too"
    )

    method_patch = parser.add_argument_group("method patch", "Hide or unhide the encoded method at an offset")
    method_patch.add_argument("-p", "--patch-offset", type=parse_hex, help="Offset of the encoded method (HEX)")
    method_patch.add_argument("--patch-idx", type=parse_hex, help="New method_idx_diff (HEX)")
    method_patch.add_argument("-f", "--patch-flag", type=parse_hex, help="New access flags (HEX)")
    method_patch.add_argument("--patch-code", type=parse_hex, help="New code offset (HEX)")
    method_patch.add_argument("--patch-next-idx", type=parse_hex,
                              help="New method_idx_diff of the following method (HEX)")

    string_patch = parser.add_argument_group("string patch", "Overwrite 2 raw bytes, e.g. a string size")
    string_patch.add_argument("--patch-string-offset", type=parse_hex, help="Offset to write at (HEX)")
    string_patch.add_argument("--patch-string-data", type=parse_hex, help="16-bit value to write (HEX)")

    parser.add_argument(
        "--strict", help="Refuse method patches that do not fit in the original bytes", action="store_true"
    )
    parser.add_argument(
        "--backup", help="Copy DEX_FILE to DEX_FILE.bak before patching", action="store_true"
    )

    parser.add_argument("DEX_FILE", nargs='?')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.DEX_FILE:
        parser.print_help()
        return 0

    if args.method_name and not args.class_name:
        parser.error("--method requires --class")

    method_patch = [args.patch_offset, args.patch_idx, args.patch_flag, args.patch_code]
    if any(v is not None for v in method_patch) and not all(v is not None for v in method_patch):
        parser.error("a method patch needs --patch-offset, --patch-idx, --patch-flag and --patch-code")
    if args.patch_next_idx is not None and args.patch_offset is None:
        parser.error("--patch-next-idx only makes sense with a method patch")
    if (args.patch_string_offset is None) != (args.patch_string_data is None):
        parser.error("a string patch needs --patch-string-offset and --patch-string-data")

    if args.json:
        use_json_output()
    if args.verbose:
        set_level(logging.DEBUG)

    try:
        dex = Dex.from_path(args.DEX_FILE)
        report.print_header(dex, integrity.verify(dex.raw))
        inspect(dex, args.class_name, args.method_name, args.detect)

        if args.patch_offset is not None or args.patch_string_offset is not None:
            patch(args)
    except (HidexError, KaitaiStructError, OSError) as ex:
        log.error(f"{args.DEX_FILE}: {ex}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
