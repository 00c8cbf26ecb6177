"""
Error taxonomy shared by every decoder.

All decode failures are raised as subclasses of DecodeError, which is itself
a ValueError so callers that only care about "bad input" can catch that.
Decoding is fail-fast: the first malformed record aborts the whole decode
and no partial result is returned.
"""


class DecodeError(ValueError):
    """Base class for all decoding failures."""

    pass


class BoundsError(DecodeError):
    """A read would extend past the end of the available bytes."""

    def __init__(self, offset: int, requested_len: int, buffer_len: int):
        self.offset = offset
        self.requested_len = requested_len
        self.buffer_len = buffer_len
        super().__init__(
            f"Read of {requested_len} bytes at offset {offset:#x} exceeds "
            f"buffer length {buffer_len:#x}"
        )


class TooShort(DecodeError):
    """Input is shorter than the minimum needed for identification."""

    def __init__(self, length: int, required: int):
        self.length = length
        self.required = required
        super().__init__(f"Input too short: {length} bytes, need at least {required}")


# =============================================================================
# Identification errors
# =============================================================================


class InvalidMagicOrClass(DecodeError):
    """An identification or interpretation-gating header field is invalid."""

    pass


class InvalidMagic(InvalidMagicOrClass):
    """Leading magic bytes do not match the expected format."""

    pass


class InvalidClass(InvalidMagicOrClass):
    """Address-width class byte is not a recognized value."""

    pass


class InvalidEndianness(InvalidMagicOrClass):
    """Byte-order indicator is not a recognized value."""

    pass


class InvalidSignature(InvalidMagicOrClass):
    """A secondary signature (e.g. PE\\0\\0) is missing or wrong."""

    pass


class InvalidHeaderField(InvalidMagicOrClass):
    """A header field that gates interpretation has an unusable value."""

    pass


# =============================================================================
# Tagged-union errors
# =============================================================================


class UnsupportedTag(DecodeError):
    """A tag was read that does not belong to the closed set for its union."""

    kind = "tag"

    def __init__(self, tag: int, offset: int):
        self.tag = tag
        self.offset = offset
        super().__init__(f"Unsupported {self.kind} {tag:#x} at offset {offset:#x}")


class UnsupportedLoadCommand(UnsupportedTag):
    kind = "load command"


class InvalidConstantTag(UnsupportedTag):
    kind = "constant pool tag"


class InvalidLuaConstantTag(UnsupportedTag):
    kind = "Lua constant tag"


class UnsupportedBlock(UnsupportedTag):
    kind = "block type"


# =============================================================================
# Content errors
# =============================================================================


class Utf8Error(DecodeError):
    """A string payload is not valid UTF-8 (or modified UTF-8 for Java)."""

    def __init__(self, offset: int, detail: str = ""):
        self.offset = offset
        msg = f"Invalid UTF-8 string at offset {offset:#x}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


InvalidUtf8 = Utf8Error


class InvalidConstantReference(DecodeError):
    """A constant pool index points outside the pool."""

    def __init__(self, index: int, pool_count: int):
        self.index = index
        self.pool_count = pool_count
        super().__init__(
            f"Constant pool index {index} out of range (pool count {pool_count})"
        )


class LimitExceeded(DecodeError):
    """A count or size in the input exceeds the configured decode limits."""

    pass


class NestingTooDeep(LimitExceeded):
    """Recursive structure nests deeper than the configured maximum."""

    def __init__(self, depth: int, limit: int):
        self.depth = depth
        self.limit = limit
        super().__init__(f"Nesting depth {depth} exceeds limit {limit}")
