"""
BMP decoder.

Decodes the 14-byte file header and the DIB header, which comes in several
revisions told apart by their leading size field.
"""

import logging
from dataclasses import dataclass
from typing import ClassVar

from .config import DEFAULT_LIMITS, DecodeLimits
from .errors import InvalidMagic, UnsupportedBlock
from .format_detect import BMP_MAGIC, Format
from .reader import ByteReader, Endianness

logger = logging.getLogger(__name__)

FILE_HEADER_SIZE = 14

BITMAPCOREHEADER_SIZE = 12
BITMAPINFOHEADER_SIZE = 40
BITMAPV2INFOHEADER_SIZE = 52
BITMAPV3INFOHEADER_SIZE = 56
BITMAPV4HEADER_SIZE = 108
BITMAPV5HEADER_SIZE = 124

DIB_HEADER_NAMES = {
    BITMAPCOREHEADER_SIZE: "BITMAPCOREHEADER",
    BITMAPINFOHEADER_SIZE: "BITMAPINFOHEADER",
    BITMAPV2INFOHEADER_SIZE: "BITMAPV2INFOHEADER",
    BITMAPV3INFOHEADER_SIZE: "BITMAPV3INFOHEADER",
    BITMAPV4HEADER_SIZE: "BITMAPV4HEADER",
    BITMAPV5HEADER_SIZE: "BITMAPV5HEADER",
}

# Compression methods
BI_RGB = 0
BI_RLE8 = 1
BI_RLE4 = 2
BI_BITFIELDS = 3
BI_JPEG = 4
BI_PNG = 5
BI_ALPHABITFIELDS = 6

COMPRESSION_NAMES = {
    BI_RGB: "BI_RGB",
    BI_RLE8: "BI_RLE8",
    BI_RLE4: "BI_RLE4",
    BI_BITFIELDS: "BI_BITFIELDS",
    BI_JPEG: "BI_JPEG",
    BI_PNG: "BI_PNG",
    BI_ALPHABITFIELDS: "BI_ALPHABITFIELDS",
    11: "BI_CMYK",
    12: "BI_CMYKRLE8",
    13: "BI_CMYKRLE4",
}


@dataclass
class BmpFileHeader:
    magic: bytes
    file_size: int
    reserved1: int
    reserved2: int
    pixel_offset: int

    STRUCT_FMT: ClassVar[str] = "2sIHHI"


@dataclass
class DibHeader:
    """Canonical DIB header; fields absent from older revisions stay None."""

    size: int
    width: int
    height: int
    planes: int
    bit_count: int
    compression: int = BI_RGB
    image_size: int = 0
    x_pels_per_meter: int = 0
    y_pels_per_meter: int = 0
    colors_used: int = 0
    colors_important: int = 0
    red_mask: int | None = None
    green_mask: int | None = None
    blue_mask: int | None = None
    alpha_mask: int | None = None
    cs_type: int | None = None
    gamma: tuple[int, int, int] | None = None
    intent: int | None = None
    profile_data: int | None = None
    profile_size: int | None = None

    @property
    def name(self) -> str:
        return DIB_HEADER_NAMES[self.size]

    @property
    def compression_name(self) -> str:
        return COMPRESSION_NAMES.get(self.compression, f"unknown({self.compression})")

    @property
    def top_down(self) -> bool:
        return self.height < 0


@dataclass
class BmpImage:
    file_header: BmpFileHeader
    dib_header: DibHeader
    color_table_entries: int

    FORMAT: ClassVar[Format] = Format.BMP


def _core_header(reader: ByteReader, offset: int) -> DibHeader:
    size, width, height, planes, bit_count = reader.read_fixed("IHHHH", offset)
    return DibHeader(size, width, height, planes, bit_count)


def _info_header(reader: ByteReader, offset: int) -> DibHeader:
    dib = DibHeader(*reader.read_fixed("IiiHHIIiiII", offset))
    if dib.size >= BITMAPV2INFOHEADER_SIZE:
        dib.red_mask, dib.green_mask, dib.blue_mask = reader.read_fixed(
            "III", offset + BITMAPINFOHEADER_SIZE
        )
    if dib.size >= BITMAPV3INFOHEADER_SIZE:
        (dib.alpha_mask,) = reader.read_fixed("I", offset + BITMAPV2INFOHEADER_SIZE)
    if dib.size >= BITMAPV4HEADER_SIZE:
        # CIEXYZTRIPLE endpoints (36 bytes) sit between cs_type and gamma
        (dib.cs_type,) = reader.read_fixed("I", offset + BITMAPV3INFOHEADER_SIZE)
        dib.gamma = reader.read_fixed("III", offset + BITMAPV3INFOHEADER_SIZE + 40)
    if dib.size >= BITMAPV5HEADER_SIZE:
        dib.intent, dib.profile_data, dib.profile_size, _ = reader.read_fixed(
            "IIII", offset + BITMAPV4HEADER_SIZE
        )
    return dib


DIB_DECODERS = {
    BITMAPCOREHEADER_SIZE: _core_header,
    BITMAPINFOHEADER_SIZE: _info_header,
    BITMAPV2INFOHEADER_SIZE: _info_header,
    BITMAPV3INFOHEADER_SIZE: _info_header,
    BITMAPV4HEADER_SIZE: _info_header,
    BITMAPV5HEADER_SIZE: _info_header,
}


def color_table_entries(dib: DibHeader) -> int:
    """Number of palette entries implied by the DIB header."""
    if dib.colors_used:
        return dib.colors_used
    if dib.bit_count <= 8:
        return 1 << dib.bit_count
    return 0


def decode_bmp(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> BmpImage:
    """Decode a Windows BMP header.

    Raises:
        InvalidMagic: If the file does not start with "BM"
        UnsupportedBlock: If the DIB header size is not a known revision
        BoundsError: If the header or colour table is truncated
    """
    reader = ByteReader(data, endian=Endianness.LITTLE)
    file_header = BmpFileHeader(*reader.read_fixed(BmpFileHeader.STRUCT_FMT, 0))
    if file_header.magic != BMP_MAGIC:
        raise InvalidMagic(f"Not a BMP file (bad magic: {file_header.magic!r})")

    (dib_size,) = reader.read_fixed("I", FILE_HEADER_SIZE)
    decoder = DIB_DECODERS.get(dib_size)
    if decoder is None:
        raise UnsupportedBlock(dib_size, FILE_HEADER_SIZE)
    dib = decoder(reader, FILE_HEADER_SIZE)

    table_offset = FILE_HEADER_SIZE + dib_size
    if dib_size == BITMAPINFOHEADER_SIZE and dib.compression == BI_BITFIELDS:
        table_offset += 12
    elif dib_size == BITMAPINFOHEADER_SIZE and dib.compression == BI_ALPHABITFIELDS:
        table_offset += 16
    entries = color_table_entries(dib)
    entry_size = 3 if dib_size == BITMAPCOREHEADER_SIZE else 4
    reader.require_table(table_offset, entries, entry_size, limits)

    logger.debug(
        "BMP %s %dx%d, %d bpp, %d palette entries",
        dib.name,
        dib.width,
        dib.height,
        dib.bit_count,
        entries,
    )
    return BmpImage(file_header=file_header, dib_header=dib, color_table_entries=entries)
