"""
Bounded, endianness-aware byte reader.

Every decoder goes through ByteReader so that no read can run past the end of
the input. Offsets are always absolute positions in the original buffer; a
sub-reader created with slice() shares the buffer but narrows the readable
window, which lets a decoder bound a record's body to its declared size.
"""

import struct
from enum import Enum

from .config import DecodeLimits
from .errors import BoundsError, LimitExceeded, Utf8Error


class Endianness(Enum):
    """Byte order, valued by its struct format prefix."""

    LITTLE = "<"
    BIG = ">"

    @property
    def prefix(self) -> str:
        return self.value


class AddressWidth(Enum):
    """Native address width of a container, valued by pointer size in bytes."""

    WIDTH32 = 4
    WIDTH64 = 8

    @property
    def bits(self) -> int:
        return self.value * 8


# struct codes for runtime-selected widths
_UINT_CODES = {1: "B", 2: "H", 4: "I", 8: "Q"}
_SINT_CODES = {1: "b", 2: "h", 4: "i", 8: "q"}
_FLOAT_CODES = {4: "f", 8: "d"}


class ByteReader:
    """Cursor over an immutable byte buffer with a bounded readable window.

    Args:
        data: Input buffer (bytearray/memoryview are copied to bytes)
        offset: Initial cursor position (absolute)
        endian: Default byte order for multi-byte reads
        start: First readable absolute offset
        end: One past the last readable absolute offset (default: len(data))
    """

    def __init__(
        self,
        data: bytes | bytearray | memoryview,
        offset: int = 0,
        endian: Endianness = Endianness.LITTLE,
        start: int = 0,
        end: int | None = None,
    ):
        self._data = data if isinstance(data, bytes) else bytes(data)
        self._start = start
        self._end = len(self._data) if end is None else end
        self.endian = endian
        self.pos = offset

    # =========================================================================
    # Window accessors
    # =========================================================================

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def start(self) -> int:
        return self._start

    @property
    def end(self) -> int:
        return self._end

    @property
    def remaining(self) -> int:
        return max(0, self._end - self.pos)

    def __len__(self) -> int:
        return self._end - self._start

    # =========================================================================
    # Absolute (non-cursor) reads
    # =========================================================================

    def check(self, offset: int, length: int) -> None:
        """Raise BoundsError unless [offset, offset+length) lies in the window."""
        if offset < self._start or length < 0 or offset + length > self._end:
            raise BoundsError(offset, length, self._end)

    def read_fixed(
        self, fmt: str, offset: int, endian: Endianness | None = None
    ) -> tuple:
        """Decode a fixed-layout record at an absolute offset.

        Args:
            fmt: struct format without byte-order prefix
            offset: Absolute offset of the record
            endian: Byte order override (default: reader's)

        Returns:
            Tuple of unpacked fields

        Raises:
            BoundsError: If the record does not fit in the window
        """
        full = (endian or self.endian).prefix + fmt
        size = struct.calcsize(full)
        self.check(offset, size)
        return struct.unpack_from(full, self._data, offset)

    def read_bytes(self, offset: int, length: int) -> bytes:
        """Copy length bytes starting at an absolute offset."""
        self.check(offset, length)
        return self._data[offset : offset + length]

    def cstring_at(self, offset: int, limit: int | None = None) -> str:
        """Read a NUL-terminated UTF-8 string at an absolute offset.

        Args:
            offset: Absolute offset of the first character
            limit: Optional absolute offset the terminator must precede

        Raises:
            BoundsError: If no terminator is found before the limit
            Utf8Error: If the bytes are not valid UTF-8
        """
        stop = self._end if limit is None else min(limit, self._end)
        self.check(offset, 0)
        nul = self._data.find(b"\x00", offset, stop)
        if nul < 0:
            raise BoundsError(offset, stop - offset + 1, self._end)
        return decode_utf8(self._data[offset:nul], offset)

    def require_table(
        self,
        offset: int,
        count: int,
        stride: int,
        limits: DecodeLimits | None = None,
    ) -> None:
        """Check that a table of count records of stride bytes fits in the window.

        Raises:
            LimitExceeded: If limits are given and count exceeds max_record_count
            BoundsError: If offset + count * stride runs past the window
        """
        if limits is not None and count > limits.max_record_count:
            raise LimitExceeded(
                f"Table of {count} records at offset {offset:#x} exceeds limit "
                f"{limits.max_record_count}"
            )
        self.check(offset, count * stride)

    def require_count(
        self, count: int, min_record_size: int, limits: DecodeLimits
    ) -> None:
        """Reject an element count before any container is sized from it.

        Raises:
            LimitExceeded: If count exceeds limits.max_record_count
            BoundsError: If count records of at least min_record_size bytes
                cannot fit in what remains after the cursor
        """
        if count > limits.max_record_count:
            raise LimitExceeded(
                f"Count {count} at offset {self.pos:#x} exceeds limit "
                f"{limits.max_record_count}"
            )
        if count * min_record_size > self.remaining:
            raise BoundsError(self.pos, count * min_record_size, self._end)

    def slice(self, offset: int, size: int) -> "ByteReader":
        """Return a sub-reader bounded to [offset, offset+size)."""
        self.check(offset, size)
        return ByteReader(
            self._data, offset=offset, endian=self.endian, start=offset, end=offset + size
        )

    # =========================================================================
    # Cursor reads
    # =========================================================================

    def seek(self, offset: int) -> None:
        self.pos = offset

    def skip(self, n: int) -> None:
        self.check(self.pos, n)
        self.pos += n

    def unpack(self, fmt: str) -> tuple:
        fields = self.read_fixed(fmt, self.pos)
        self.pos += struct.calcsize(self.endian.prefix + fmt)
        return fields

    def take(self, n: int) -> bytes:
        out = self.read_bytes(self.pos, n)
        self.pos += n
        return out

    def _one(self, code: str):
        return self.unpack(code)[0]

    def u8(self) -> int:
        return self._one("B")

    def i8(self) -> int:
        return self._one("b")

    def u16(self) -> int:
        return self._one("H")

    def u32(self) -> int:
        return self._one("I")

    def i32(self) -> int:
        return self._one("i")

    def u64(self) -> int:
        return self._one("Q")

    def i64(self) -> int:
        return self._one("q")

    def f32(self) -> float:
        return self._one("f")

    def f64(self) -> float:
        return self._one("d")

    def uint(self, size: int) -> int:
        """Unsigned integer whose width is only known at run time."""
        return self._one(_UINT_CODES[size])

    def sint(self, size: int) -> int:
        """Signed integer whose width is only known at run time."""
        return self._one(_SINT_CODES[size])

    def float_of(self, size: int) -> float:
        """IEEE float of 4 or 8 bytes."""
        return self._one(_FLOAT_CODES[size])

    def length_prefixed(self, size_width: int) -> bytes:
        """Read an unsigned length of size_width bytes followed by that many bytes."""
        length = self.uint(size_width)
        return self.take(length)


def decode_utf8(raw: bytes, offset: int) -> str:
    """Strict UTF-8 decode that reports failures as Utf8Error."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise Utf8Error(offset + e.start, e.reason) from e


def same_number(a: float | int, b: float | int) -> bool:
    """Number equality that compares two floats by their IEEE bit pattern.

    A NaN equals a NaN with the same bits; 0.0 and -0.0 differ.
    """
    if isinstance(a, float) and isinstance(b, float):
        return struct.pack("<d", a) == struct.pack("<d", b)
    return type(a) is type(b) and a == b
