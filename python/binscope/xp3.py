"""
XP3 (KiriKiri archive) header decoder.

Resolves the index offset, following the version 2 cushion header when the
archive has one, and decodes the index header. Index contents are not
decompressed.
"""

import logging
from dataclasses import dataclass
from typing import ClassVar

from .config import DEFAULT_LIMITS, DecodeLimits
from .errors import InvalidHeaderField, InvalidMagic
from .format_detect import XP3_MAGIC, Format
from .reader import ByteReader, Endianness

logger = logging.getLogger(__name__)

XP3_FULL_MAGIC = XP3_MAGIC + b"\x8bg\x01"

# Version 2 archives point at a cushion header at this offset.
XP3_CUSHION_OFFSET = 0x17
XP3_CUSHION_FLAG = 0x80

INDEX_RAW = 0
INDEX_ZLIB = 1


@dataclass
class Xp3Archive:
    version: int
    index_offset: int
    compressed: bool
    index_size: int  # Stored size of the index
    original_size: int  # Size after decompression

    FORMAT: ClassVar[Format] = Format.XP3


def decode_xp3(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> Xp3Archive:
    """Decode the XP3 header and index header.

    Raises:
        InvalidMagic: If the 11-byte magic is wrong
        InvalidHeaderField: On an unknown cushion or index flag
        BoundsError: If the index lies outside the file
    """
    reader = ByteReader(data, endian=Endianness.LITTLE)
    if reader.read_bytes(0, len(XP3_FULL_MAGIC)) != XP3_FULL_MAGIC:
        raise InvalidMagic("Not an XP3 archive")

    (index_offset,) = reader.read_fixed("Q", len(XP3_FULL_MAGIC))
    version = 1
    if index_offset == XP3_CUSHION_OFFSET:
        _minor, flag, _size, index_offset = reader.read_fixed("IBQQ", XP3_CUSHION_OFFSET)
        if flag != XP3_CUSHION_FLAG:
            raise InvalidHeaderField(f"Unknown XP3 cushion flag {flag:#x}")
        version = 2

    (index_flag,) = reader.read_fixed("B", index_offset)
    if index_flag == INDEX_ZLIB:
        index_size, original_size = reader.read_fixed("QQ", index_offset + 1)
        payload = index_offset + 17
    elif index_flag == INDEX_RAW:
        (index_size,) = reader.read_fixed("Q", index_offset + 1)
        original_size = index_size
        payload = index_offset + 9
    else:
        raise InvalidHeaderField(f"Unknown XP3 index flag {index_flag:#x}")
    reader.check(payload, index_size)

    logger.debug(
        "XP3 v%d index at %#x (%d bytes, compressed=%s)",
        version,
        index_offset,
        index_size,
        index_flag == INDEX_ZLIB,
    )
    return Xp3Archive(
        version=version,
        index_offset=index_offset,
        compressed=index_flag == INDEX_ZLIB,
        index_size=index_size,
        original_size=original_size,
    )
