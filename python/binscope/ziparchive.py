"""
ZIP central directory decoder.

Locates the end-of-central-directory record by scanning backwards from the
end of the file, follows the ZIP64 locator when the classic record is
saturated, and decodes every central directory entry.
"""

import logging
from dataclasses import dataclass, field
from typing import ClassVar

from .config import DEFAULT_LIMITS, DecodeLimits
from .errors import InvalidMagic, InvalidSignature
from .format_detect import ZIP_MAGIC, Format
from .reader import ByteReader, Endianness, decode_utf8

logger = logging.getLogger(__name__)

EOCD_SIGNATURE = b"PK\x05\x06"
EOCD_SIZE = 22
MAX_COMMENT_SIZE = 0xFFFF
# Furthest back the EOCD record can start: its own size plus a full comment.
EOCD_SEARCH_SIZE = EOCD_SIZE + MAX_COMMENT_SIZE

ZIP64_LOCATOR_SIGNATURE = b"PK\x06\x07"
ZIP64_LOCATOR_SIZE = 20
ZIP64_EOCD_SIGNATURE = b"PK\x06\x06"

CENTRAL_DIRECTORY_SIGNATURE = b"PK\x01\x02"
CENTRAL_DIRECTORY_HEADER_SIZE = 46
CENTRAL_DIRECTORY_FMT = "4sHHHHHHIIIHHHHHII"

FLAG_ENCRYPTED = 0x0001
FLAG_UTF8 = 0x0800

COMPRESSION_METHOD_NAMES = {
    0: "stored",
    8: "deflate",
    9: "deflate64",
    12: "bzip2",
    14: "lzma",
    93: "zstd",
    95: "xz",
}


@dataclass
class EndOfCentralDirectory:
    offset: int
    disk_number: int
    central_directory_disk: int
    entries_on_disk: int
    total_entries: int
    central_directory_size: int
    central_directory_offset: int
    comment: bytes
    zip64: bool = False


@dataclass
class ZipEntry:
    name: str
    version_made_by: int
    version_needed: int
    flags: int
    compression_method: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    local_header_offset: int
    extra: bytes = b""
    comment: bytes = b""

    @property
    def method_name(self) -> str:
        return COMPRESSION_METHOD_NAMES.get(
            self.compression_method, f"unknown({self.compression_method})"
        )

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flags & FLAG_ENCRYPTED)

    @property
    def is_directory(self) -> bool:
        return self.name.endswith("/")


@dataclass
class ZipArchive:
    end_of_central_directory: EndOfCentralDirectory
    entries: list[ZipEntry] = field(default_factory=list)

    FORMAT: ClassVar[Format] = Format.ZIP

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.entries]


def find_end_of_central_directory(reader: ByteReader) -> int:
    """Offset of the last EOCD signature within the search window.

    Raises:
        InvalidSignature: If no EOCD record is found
    """
    data = reader.data
    lowest = max(0, len(data) - EOCD_SEARCH_SIZE)
    offset = data.rfind(EOCD_SIGNATURE, lowest, max(0, len(data) - EOCD_SIZE + 4))
    if offset < 0:
        raise InvalidSignature("End of central directory record not found")
    return offset


def _decode_zip64(
    reader: ByteReader, eocd: EndOfCentralDirectory
) -> EndOfCentralDirectory:
    locator = eocd.offset - ZIP64_LOCATOR_SIZE
    if locator < 0 or reader.read_bytes(locator, 4) != ZIP64_LOCATOR_SIGNATURE:
        return eocd
    _, _, record_offset, _ = reader.read_fixed("4sIQI", locator)
    signature, _, _, _, disk, cd_disk, on_disk, total, size, cd_offset = (
        reader.read_fixed("4sQHHIIQQQQ", record_offset)
    )
    if signature != ZIP64_EOCD_SIGNATURE:
        raise InvalidSignature(f"Invalid ZIP64 end record at {record_offset:#x}")
    return EndOfCentralDirectory(
        offset=record_offset,
        disk_number=disk,
        central_directory_disk=cd_disk,
        entries_on_disk=on_disk,
        total_entries=total,
        central_directory_size=size,
        central_directory_offset=cd_offset,
        comment=eocd.comment,
        zip64=True,
    )


def decode_end_of_central_directory(reader: ByteReader) -> EndOfCentralDirectory:
    offset = find_end_of_central_directory(reader)
    _, disk, cd_disk, on_disk, total, size, cd_offset, comment_len = (
        reader.read_fixed("4sHHHHIIH", offset)
    )
    eocd = EndOfCentralDirectory(
        offset=offset,
        disk_number=disk,
        central_directory_disk=cd_disk,
        entries_on_disk=on_disk,
        total_entries=total,
        central_directory_size=size,
        central_directory_offset=cd_offset,
        comment=reader.read_bytes(offset + EOCD_SIZE, comment_len),
    )
    if total == 0xFFFF or size == 0xFFFFFFFF or cd_offset == 0xFFFFFFFF:
        eocd = _decode_zip64(reader, eocd)
    return eocd


def _entry_name(raw: bytes, flags: int, offset: int) -> str:
    if flags & FLAG_UTF8:
        return decode_utf8(raw, offset)
    # Without the UTF-8 flag names are IBM code page 437
    return raw.decode("cp437")


def decode_zip(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> ZipArchive:
    """Decode the central directory of a ZIP archive.

    Raises:
        InvalidMagic: If the file does not start with a local file header
        InvalidSignature: If the EOCD record or a central directory entry
            signature is missing
        BoundsError: If the central directory runs past the end of the file
    """
    reader = ByteReader(data, endian=Endianness.LITTLE)
    if reader.read_bytes(0, len(ZIP_MAGIC)) != ZIP_MAGIC:
        raise InvalidMagic("Not a ZIP archive")

    eocd = decode_end_of_central_directory(reader)
    reader.seek(eocd.central_directory_offset)
    reader.require_count(eocd.total_entries, CENTRAL_DIRECTORY_HEADER_SIZE, limits)

    entries = []
    for _ in range(eocd.total_entries):
        offset = reader.pos
        (
            signature,
            made_by,
            needed,
            flags,
            method,
            _mod_time,
            _mod_date,
            crc,
            compressed,
            uncompressed,
            name_len,
            extra_len,
            comment_len,
            _disk_start,
            _internal_attr,
            _external_attr,
            local_offset,
        ) = reader.unpack(CENTRAL_DIRECTORY_FMT)
        if signature != CENTRAL_DIRECTORY_SIGNATURE:
            raise InvalidSignature(f"Invalid central directory entry at {offset:#x}")
        name = _entry_name(reader.take(name_len), flags, offset + CENTRAL_DIRECTORY_HEADER_SIZE)
        entries.append(
            ZipEntry(
                name=name,
                version_made_by=made_by,
                version_needed=needed,
                flags=flags,
                compression_method=method,
                crc32=crc,
                compressed_size=compressed,
                uncompressed_size=uncompressed,
                local_header_offset=local_offset,
                extra=reader.take(extra_len),
                comment=reader.take(comment_len),
            )
        )

    logger.debug("ZIP archive: %d entries", len(entries))
    return ZipArchive(end_of_central_directory=eocd, entries=entries)
