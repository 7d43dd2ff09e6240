class HidexError(Exception):
    pass


class MalformedVarint(HidexError):
    """A ULEB128 value ran past the end of the data without a terminating byte."""

    def __init__(self, offset: int, consumed: int):
        self.offset = offset
        self.consumed = consumed
        super().__init__(f"unterminated uleb128 at 0x{offset:X} after {consumed} byte(s)")


class TruncatedRead(HidexError, EOFError):
    """Fewer bytes are available than a field declares."""

    def __init__(self, offset: int, requested: int, available: int):
        self.offset = offset
        self.requested = requested
        self.available = available
        super().__init__(
            f"requested {requested} byte(s) at 0x{offset:X}, but only {available} available")


class IndexOutOfRange(HidexError, IndexError):
    def __init__(self, table: str, index: int, size: int):
        self.table = table
        self.index = index
        self.size = size
        super().__init__(f"{table}[{index}] out of range (size {size})")


class PatchOverflow(HidexError):
    """The new encoding does not fit in the span of the fields it replaces.

    Only raised when a patch is applied with strict checking enabled.
    """

    def __init__(self, offset: int, original_span: int, new_span: int):
        self.offset = offset
        self.original_span = original_span
        self.new_span = new_span
        super().__init__(
            f"patch at 0x{offset:X} needs {new_span} byte(s) but the original fields span {original_span}")
