"""
PE/COFF decoder.

Locates the PE signature through the DOS header's e_lfanew, then decodes the
COFF file header, the optional header (PE32 or PE32+), its data directories
and the fixed-stride section table.
"""

import logging

from ..config import DEFAULT_LIMITS, DecodeLimits
from ..errors import InvalidHeaderField, InvalidMagic, InvalidSignature
from ..reader import ByteReader, Endianness, decode_utf8
from .types import (
    DOS_MAGIC,
    IMAGE_NT_OPTIONAL_HDR32_MAGIC,
    IMAGE_NT_OPTIONAL_HDR64_MAGIC,
    IMAGE_NUMBEROF_DIRECTORY_ENTRIES,
    OPTIONAL_HEADER32_FMT,
    OPTIONAL_HEADER32_SIZE,
    OPTIONAL_HEADER64_FMT,
    OPTIONAL_HEADER64_SIZE,
    PE_SIGNATURE,
    CoffHeader,
    DataDirectory,
    DosHeader,
    OptionalHeader,
    PeFile,
    SectionHeader,
)

logger = logging.getLogger(__name__)


def decode_optional_header(
    reader: ByteReader, offset: int, size: int
) -> tuple[OptionalHeader, int]:
    """Decode the optional header's fixed part.

    Args:
        reader: PE reader
        offset: File offset of the optional header
        size: SizeOfOptionalHeader from the COFF header

    Returns:
        Tuple of (canonical header, size of the fixed part)

    Raises:
        InvalidHeaderField: If the magic is not PE32/PE32+ or the declared
            size cannot hold the fixed part
    """
    (magic,) = reader.read_fixed("H", offset)
    if magic == IMAGE_NT_OPTIONAL_HDR32_MAGIC:
        fmt, fixed_size, widen = (
            OPTIONAL_HEADER32_FMT,
            OPTIONAL_HEADER32_SIZE,
            OptionalHeader.from_pe32,
        )
    elif magic == IMAGE_NT_OPTIONAL_HDR64_MAGIC:
        fmt, fixed_size, widen = (
            OPTIONAL_HEADER64_FMT,
            OPTIONAL_HEADER64_SIZE,
            OptionalHeader.from_pe32_plus,
        )
    else:
        raise InvalidHeaderField(f"Invalid optional header magic {magic:#06x}")

    if size < fixed_size:
        raise InvalidHeaderField(
            f"SizeOfOptionalHeader {size} too small for {magic:#x} header ({fixed_size})"
        )
    return widen(reader.read_fixed(fmt, offset)), fixed_size


def decode_pe(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> PeFile:
    """Decode a PE/COFF image.

    Args:
        data: Complete file contents
        limits: Upper bounds on table sizes

    Returns:
        Fully decoded PeFile

    Raises:
        InvalidMagic: If the DOS magic is missing
        InvalidSignature: If PE\\0\\0 is not at e_lfanew
        DecodeError: Any other structural violation
    """
    reader = ByteReader(data, endian=Endianness.LITTLE)

    dos = DosHeader.from_reader(reader)
    if dos.e_magic != DOS_MAGIC:
        raise InvalidMagic(f"Not a DOS/PE file (bad magic: 0x{dos.e_magic:04X})")

    pe_offset = dos.e_lfanew
    signature = reader.read_bytes(pe_offset, len(PE_SIGNATURE))
    if signature != PE_SIGNATURE:
        raise InvalidSignature(
            f"Invalid PE signature {signature!r} at offset {pe_offset:#x}"
        )

    coff_offset = pe_offset + len(PE_SIGNATURE)
    coff = CoffHeader.from_reader(reader, coff_offset)
    opt_offset = coff_offset + CoffHeader.SIZE
    logger.debug(
        "PE header at %#x: machine=%s sections=%d",
        pe_offset,
        coff.machine_name,
        coff.NumberOfSections,
    )

    optional = None
    directories = []
    if coff.SizeOfOptionalHeader > 0:
        optional, fixed_size = decode_optional_header(
            reader, opt_offset, coff.SizeOfOptionalHeader
        )
        # Directories must fit inside the declared optional header.
        room = (coff.SizeOfOptionalHeader - fixed_size) // DataDirectory.SIZE
        count = min(optional.NumberOfRvaAndSizes, IMAGE_NUMBEROF_DIRECTORY_ENTRIES, room)
        dir_offset = opt_offset + fixed_size
        reader.require_table(dir_offset, count, DataDirectory.SIZE)
        directories = [
            DataDirectory.from_reader(reader, dir_offset + i * DataDirectory.SIZE)
            for i in range(count)
        ]

    section_offset = opt_offset + coff.SizeOfOptionalHeader
    reader.require_table(
        section_offset, coff.NumberOfSections, SectionHeader.SIZE, limits
    )
    sections = []
    for i in range(coff.NumberOfSections):
        offset = section_offset + i * SectionHeader.SIZE
        section = SectionHeader(*reader.read_fixed(SectionHeader.STRUCT_FMT, offset))
        section.name = decode_utf8(section.Name.split(b"\x00", 1)[0], offset)
        sections.append(section)

    return PeFile(
        dos_header=dos,
        coff_header=coff,
        optional_header=optional,
        data_directories=directories,
        sections=sections,
    )
