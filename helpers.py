def b2i(raw_bytes):
    return int.from_bytes(raw_bytes, "little")


def parse_hex(text: str) -> int:
    """'0x1448', '1448' and '0X1448' all give 0x1448. Signs are rejected, offsets and fields are unsigned."""
    digits = text.strip()
    if digits[:2] in ("0x", "0X"):
        digits = digits[2:]
    if "-" in digits or "+" in digits:
        raise ValueError(f"unsigned hex value expected, got {text!r}")
    return int(digits, 16)


def decode_mutf8(byte_str: bytes) -> str:
    """Decodes the "modified" UTF-8 used for dex strings.

    Plain utf-8 is tried first. Surrogate pairs encoded as two 3-byte sequences and the 2-byte
    form of NUL are not valid utf-8, so those go through the manual decoder. A multi-byte
    character cut short at the end of the buffer becomes U+FFFD.
    """
    try:
        return byte_str.decode("utf-8")
    except UnicodeDecodeError:
        pass

    result = []
    i = 0

    while i < len(byte_str):
        byte = byte_str[i]

        if byte & 0b10000000 == 0:  # 1-byte character
            result.append(chr(byte))
            i += 1
        elif byte & 0b11100000 == 0b11000000 and i + 1 < len(byte_str):  # 2-byte character
            char_code = ((byte & 0b00011111) << 6) | (byte_str[i + 1] & 0b00111111)
            result.append(chr(char_code))
            i += 2
        elif byte & 0b11110000 == 0b11100000 and i + 2 < len(byte_str):  # 3-byte character
            char_code = ((byte & 0b00001111) << 12) | ((byte_str[i + 1] & 0b00111111) << 6) | (byte_str[i + 2] & 0b00111111)
            result.append(chr(char_code))
            i += 3
        else:
            result.append("�")
            i += 1

    return ''.join(result).encode("utf-16", "surrogatepass").decode("utf-16", "replace")
