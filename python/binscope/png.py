"""
PNG chunk stream decoder.

Walks the length/type/data/CRC chunk stream from the signature to IEND.
IHDR, PLTE and the registered ancillary chunks (PNG 1.2 plus the PNGEXT
oFFs, pCAL, sCAL, gIFg, gIFx and sTER extensions) are decoded into typed
values on PngChunk.data; IDAT and unregistered chunks are recorded by type,
offset and length only.

Compressed text (zTXt, compressed iTXt) is inflated with zlib. The
compressed ICC profile in iCCP is kept as stored.
"""

import logging
import zlib
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Union

from .config import DEFAULT_LIMITS, DecodeLimits
from .errors import InvalidHeaderField, InvalidMagic, LimitExceeded
from .format_detect import PNG_MAGIC, Format
from .reader import ByteReader, Endianness, decode_utf8

logger = logging.getLogger(__name__)

CHUNK_OVERHEAD = 12  # length, type and CRC
MAX_CHUNK_LENGTH = 2**31 - 1
IHDR_SIZE = 13
MAX_KEYWORD_LENGTH = 79
# Ceiling on the inflated size of a single text chunk
MAX_INFLATED_SIZE = 64 * 1024 * 1024
COMPRESSION_DEFLATE = 0

COLOR_GRAYSCALE = 0
COLOR_TRUECOLOR = 2
COLOR_INDEXED = 3
COLOR_GRAYSCALE_ALPHA = 4
COLOR_TRUECOLOR_ALPHA = 6

COLOR_TYPE_NAMES = {
    COLOR_GRAYSCALE: "grayscale",
    COLOR_TRUECOLOR: "truecolor",
    COLOR_INDEXED: "indexed",
    COLOR_GRAYSCALE_ALPHA: "grayscale+alpha",
    COLOR_TRUECOLOR_ALPHA: "truecolor+alpha",
}

# Significant-bit channels per color type (sBIT)
SBIT_CHANNELS = {
    COLOR_GRAYSCALE: 1,
    COLOR_TRUECOLOR: 3,
    COLOR_INDEXED: 3,
    COLOR_GRAYSCALE_ALPHA: 2,
    COLOR_TRUECOLOR_ALPHA: 4,
}

RENDERING_INTENT_NAMES = {
    0: "perceptual",
    1: "relative colorimetric",
    2: "saturation",
    3: "absolute colorimetric",
}

PHYS_UNIT_NAMES = {0: "unknown", 1: "meter"}
OFFS_UNIT_NAMES = {0: "pixel", 1: "micrometer"}
SCAL_UNIT_NAMES = {1: "meter", 2: "radian"}


@dataclass
class PngHeader:
    width: int
    height: int
    bit_depth: int
    color_type: int
    compression: int
    filter: int
    interlace: int

    @property
    def color_type_name(self) -> str:
        return COLOR_TYPE_NAMES.get(self.color_type, f"unknown({self.color_type})")


# =============================================================================
# Decoded chunk bodies
# =============================================================================


@dataclass
class Palette:
    entries: list[tuple[int, int, int]]


@dataclass
class Text:
    """tEXt, zTXt or iTXt contents after any inflation."""

    keyword: str
    text: str
    compressed: bool = False
    language: str | None = None  # iTXt only
    translated_keyword: str | None = None  # iTXt only


@dataclass
class Timestamp:
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int

    def isoformat(self) -> str:
        return (
            f"{self.year:04d}-{self.month:02d}-{self.day:02d}"
            f"T{self.hour:02d}:{self.minute:02d}:{self.second:02d}"
        )


@dataclass
class PhysicalDimensions:
    pixels_per_unit_x: int
    pixels_per_unit_y: int
    unit: int

    @property
    def unit_name(self) -> str:
        return PHYS_UNIT_NAMES.get(self.unit, f"unknown({self.unit})")


@dataclass
class Gamma:
    gamma: int  # Scaled by 100000

    @property
    def value(self) -> float:
        return self.gamma / 100000


@dataclass
class Chromaticities:
    """White point and primaries, each coordinate scaled by 100000."""

    white_x: int
    white_y: int
    red_x: int
    red_y: int
    green_x: int
    green_y: int
    blue_x: int
    blue_y: int


@dataclass
class StandardRgb:
    rendering_intent: int

    @property
    def intent_name(self) -> str:
        return RENDERING_INTENT_NAMES.get(
            self.rendering_intent, f"unknown({self.rendering_intent})"
        )


@dataclass
class IccProfile:
    name: str
    compression_method: int
    compressed_profile: bytes


@dataclass
class Transparency:
    """tRNS contents; which field is set depends on the image color type."""

    gray: int | None = None
    rgb: tuple[int, int, int] | None = None
    palette_alpha: list[int] | None = None


@dataclass
class Background:
    """bKGD contents; which field is set depends on the image color type."""

    gray: int | None = None
    rgb: tuple[int, int, int] | None = None
    palette_index: int | None = None


@dataclass
class SignificantBits:
    bits: tuple[int, ...]  # One entry per channel of the color type


@dataclass
class Histogram:
    frequencies: list[int]


@dataclass
class SuggestedPaletteEntry:
    red: int
    green: int
    blue: int
    alpha: int
    frequency: int


@dataclass
class SuggestedPalette:
    name: str
    sample_depth: int
    entries: list[SuggestedPaletteEntry]


@dataclass
class ImageOffset:
    x: int
    y: int
    unit: int

    @property
    def unit_name(self) -> str:
        return OFFS_UNIT_NAMES.get(self.unit, f"unknown({self.unit})")


@dataclass
class PixelCalibration:
    name: str
    original_zero: int
    original_max: int
    equation_type: int
    unit: str
    parameters: list[str]


@dataclass
class PhysicalScale:
    unit: int
    pixel_width: str
    pixel_height: str

    @property
    def unit_name(self) -> str:
        return SCAL_UNIT_NAMES.get(self.unit, f"unknown({self.unit})")


@dataclass
class GifGraphicControl:
    disposal_method: int
    user_input: int
    delay_time: int  # Hundredths of a second


@dataclass
class GifApplication:
    application_id: bytes
    authentication_code: bytes
    data: bytes


@dataclass
class StereoMode:
    mode: int  # 0 cross-fuse, 1 diverging-fuse


ChunkData = Union[
    PngHeader,
    Palette,
    Text,
    Timestamp,
    PhysicalDimensions,
    Gamma,
    Chromaticities,
    StandardRgb,
    IccProfile,
    Transparency,
    Background,
    SignificantBits,
    Histogram,
    SuggestedPalette,
    ImageOffset,
    PixelCalibration,
    PhysicalScale,
    GifGraphicControl,
    GifApplication,
    StereoMode,
]


@dataclass
class PngChunk:
    type: str
    offset: int
    length: int
    crc: int
    crc_ok: bool
    data: ChunkData | None = None

    @property
    def is_critical(self) -> bool:
        return self.type[0].isupper()


@dataclass
class PngImage:
    header: PngHeader
    chunks: list[PngChunk] = field(default_factory=list)
    palette_entries: int = 0
    # (keyword, text) from every tEXt, zTXt and iTXt chunk, in file order
    text: list[tuple[str, str]] = field(default_factory=list)

    FORMAT: ClassVar[Format] = Format.PNG

    def chunks_of(self, chunk_type: str) -> list[PngChunk]:
        return [c for c in self.chunks if c.type == chunk_type]

    def find(self, chunk_type: str) -> ChunkData | None:
        """Decoded body of the first chunk of a type, or None."""
        for chunk in self.chunks:
            if chunk.type == chunk_type:
                return chunk.data
        return None


# =============================================================================
# Body helpers
# =============================================================================


def _chunk_type(raw: bytes, offset: int) -> str:
    if not all(0x41 <= b <= 0x5A or 0x61 <= b <= 0x7A for b in raw):
        raise InvalidHeaderField(f"Invalid chunk type {raw!r} at offset {offset:#x}")
    return raw.decode("ascii")


def _expect_length(reader: ByteReader, chunk_type: str, size: int) -> None:
    if len(reader) != size:
        raise InvalidHeaderField(
            f"{chunk_type} chunk at {reader.start:#x} has length {len(reader)}, "
            f"expected {size}"
        )


def _terminated(reader: ByteReader, chunk_type: str) -> bytes:
    """Bytes up to the next NUL inside the chunk body, consuming the NUL."""
    offset = reader.pos
    nul = reader.data.find(b"\x00", offset, reader.end)
    if nul < 0:
        raise InvalidHeaderField(
            f"{chunk_type} chunk at {offset:#x} has no keyword separator"
        )
    raw = reader.take(nul - offset)
    reader.skip(1)
    return raw


def _keyword(reader: ByteReader, chunk_type: str) -> str:
    offset = reader.pos
    raw = _terminated(reader, chunk_type)
    if not 1 <= len(raw) <= MAX_KEYWORD_LENGTH:
        raise InvalidHeaderField(
            f"{chunk_type} keyword at {offset:#x} has length {len(raw)}, "
            f"expected 1-{MAX_KEYWORD_LENGTH}"
        )
    return raw.decode("latin-1")


def _rest(reader: ByteReader) -> bytes:
    return reader.take(reader.remaining)


def _compression_method(reader: ByteReader, chunk_type: str) -> int:
    offset = reader.pos
    method = reader.u8()
    if method != COMPRESSION_DEFLATE:
        raise InvalidHeaderField(
            f"Unknown {chunk_type} compression method {method} at {offset:#x}"
        )
    return method


def inflate(raw: bytes, offset: int, chunk_type: str) -> bytes:
    """Inflate a zlib stream stored in a chunk.

    Raises:
        InvalidHeaderField: If the stream is corrupt or incomplete
        LimitExceeded: If it inflates past MAX_INFLATED_SIZE
    """
    inflater = zlib.decompressobj()
    try:
        out = inflater.decompress(raw, MAX_INFLATED_SIZE)
    except zlib.error as e:
        raise InvalidHeaderField(
            f"{chunk_type} data at {offset:#x} failed to inflate: {e}"
        ) from e
    if inflater.unconsumed_tail:
        raise LimitExceeded(
            f"{chunk_type} data at {offset:#x} inflates past {MAX_INFLATED_SIZE} bytes"
        )
    if not inflater.eof:
        raise InvalidHeaderField(f"{chunk_type} data at {offset:#x} is truncated")
    return out


# =============================================================================
# Chunk decoders
# =============================================================================


def _decode_plte(reader: ByteReader, image: PngImage) -> Palette:
    if len(reader) % 3:
        raise InvalidHeaderField(f"PLTE length {len(reader)} is not a multiple of 3")
    entries = [reader.unpack("3B") for _ in range(len(reader) // 3)]
    image.palette_entries = len(entries)
    return Palette(entries)


def _decode_text(reader: ByteReader, image: PngImage) -> Text:
    keyword = _keyword(reader, "tEXt")
    # tEXt is Latin-1 by definition
    return Text(keyword, _rest(reader).decode("latin-1"))


def _decode_ztxt(reader: ByteReader, image: PngImage) -> Text:
    keyword = _keyword(reader, "zTXt")
    _compression_method(reader, "zTXt")
    offset = reader.pos
    text = inflate(_rest(reader), offset, "zTXt").decode("latin-1")
    return Text(keyword, text, compressed=True)


def _decode_itxt(reader: ByteReader, image: PngImage) -> Text:
    keyword = _keyword(reader, "iTXt")
    flag_offset = reader.pos
    compressed, method = reader.unpack("BB")
    if compressed not in (0, 1):
        raise InvalidHeaderField(
            f"Invalid iTXt compression flag {compressed} at {flag_offset:#x}"
        )
    if compressed and method != COMPRESSION_DEFLATE:
        raise InvalidHeaderField(
            f"Unknown iTXt compression method {method} at {flag_offset + 1:#x}"
        )
    language = _terminated(reader, "iTXt").decode("ascii", errors="replace")
    translated_offset = reader.pos
    translated = decode_utf8(_terminated(reader, "iTXt"), translated_offset)
    offset = reader.pos
    raw = _rest(reader)
    if compressed:
        raw = inflate(raw, offset, "iTXt")
    return Text(
        keyword,
        decode_utf8(raw, offset),
        compressed=bool(compressed),
        language=language,
        translated_keyword=translated,
    )


def _decode_time(reader: ByteReader, image: PngImage) -> Timestamp:
    _expect_length(reader, "tIME", 7)
    return Timestamp(*reader.unpack("HBBBBB"))


def _decode_phys(reader: ByteReader, image: PngImage) -> PhysicalDimensions:
    _expect_length(reader, "pHYs", 9)
    return PhysicalDimensions(*reader.unpack("IIB"))


def _decode_gama(reader: ByteReader, image: PngImage) -> Gamma:
    _expect_length(reader, "gAMA", 4)
    return Gamma(reader.u32())


def _decode_chrm(reader: ByteReader, image: PngImage) -> Chromaticities:
    _expect_length(reader, "cHRM", 32)
    return Chromaticities(*reader.unpack("8I"))


def _decode_srgb(reader: ByteReader, image: PngImage) -> StandardRgb:
    _expect_length(reader, "sRGB", 1)
    return StandardRgb(reader.u8())


def _decode_iccp(reader: ByteReader, image: PngImage) -> IccProfile:
    name = _keyword(reader, "iCCP")
    method = _compression_method(reader, "iCCP")
    return IccProfile(name, method, _rest(reader))


def _decode_trns(reader: ByteReader, image: PngImage) -> Transparency:
    color_type = image.header.color_type
    if color_type == COLOR_GRAYSCALE:
        _expect_length(reader, "tRNS", 2)
        return Transparency(gray=reader.u16())
    if color_type == COLOR_TRUECOLOR:
        _expect_length(reader, "tRNS", 6)
        return Transparency(rgb=reader.unpack("3H"))
    if color_type == COLOR_INDEXED:
        if len(reader) > image.palette_entries:
            raise InvalidHeaderField(
                f"tRNS has {len(reader)} alpha entries for a "
                f"{image.palette_entries}-entry palette"
            )
        return Transparency(palette_alpha=list(_rest(reader)))
    raise InvalidHeaderField(f"tRNS is not allowed for color type {color_type}")


def _decode_bkgd(reader: ByteReader, image: PngImage) -> Background:
    color_type = image.header.color_type
    if color_type == COLOR_INDEXED:
        _expect_length(reader, "bKGD", 1)
        return Background(palette_index=reader.u8())
    if color_type in (COLOR_GRAYSCALE, COLOR_GRAYSCALE_ALPHA):
        _expect_length(reader, "bKGD", 2)
        return Background(gray=reader.u16())
    _expect_length(reader, "bKGD", 6)
    return Background(rgb=reader.unpack("3H"))


def _decode_sbit(reader: ByteReader, image: PngImage) -> SignificantBits:
    channels = SBIT_CHANNELS.get(image.header.color_type, 0)
    _expect_length(reader, "sBIT", channels)
    return SignificantBits(reader.unpack(f"{channels}B"))


def _decode_hist(reader: ByteReader, image: PngImage) -> Histogram:
    if len(reader) != 2 * image.palette_entries:
        raise InvalidHeaderField(
            f"hIST has {len(reader)} bytes for a {image.palette_entries}-entry palette"
        )
    return Histogram([reader.u16() for _ in range(image.palette_entries)])


def _decode_splt(reader: ByteReader, image: PngImage) -> SuggestedPalette:
    name = _keyword(reader, "sPLT")
    depth_offset = reader.pos
    sample_depth = reader.u8()
    if sample_depth == 8:
        fmt, stride = "4BH", 6
    elif sample_depth == 16:
        fmt, stride = "5H", 10
    else:
        raise InvalidHeaderField(
            f"Invalid sPLT sample depth {sample_depth} at {depth_offset:#x}"
        )
    if reader.remaining % stride:
        raise InvalidHeaderField(
            f"sPLT entries at {reader.pos:#x} are not a multiple of {stride} bytes"
        )
    entries = [
        SuggestedPaletteEntry(*reader.unpack(fmt))
        for _ in range(reader.remaining // stride)
    ]
    return SuggestedPalette(name, sample_depth, entries)


def _decode_offs(reader: ByteReader, image: PngImage) -> ImageOffset:
    _expect_length(reader, "oFFs", 9)
    return ImageOffset(*reader.unpack("iiB"))


def _decode_pcal(reader: ByteReader, image: PngImage) -> PixelCalibration:
    name = _keyword(reader, "pCAL")
    original_zero, original_max, equation_type, parameter_count = reader.unpack("iiBB")
    unit = _terminated(reader, "pCAL").decode("latin-1")
    # Parameters are NUL-separated; the last one runs to the end of the chunk
    parameters = _rest(reader).split(b"\x00") if parameter_count else []
    if len(parameters) != parameter_count:
        raise InvalidHeaderField(
            f"pCAL declares {parameter_count} parameters, found {len(parameters)}"
        )
    return PixelCalibration(
        name,
        original_zero,
        original_max,
        equation_type,
        unit,
        [p.decode("latin-1") for p in parameters],
    )


def _decode_scal(reader: ByteReader, image: PngImage) -> PhysicalScale:
    unit = reader.u8()
    width = _terminated(reader, "sCAL").decode("ascii", errors="replace")
    height = _rest(reader).decode("ascii", errors="replace")
    return PhysicalScale(unit, width, height)


def _decode_gifg(reader: ByteReader, image: PngImage) -> GifGraphicControl:
    _expect_length(reader, "gIFg", 4)
    return GifGraphicControl(*reader.unpack("BBH"))


def _decode_gifx(reader: ByteReader, image: PngImage) -> GifApplication:
    if len(reader) < 11:
        raise InvalidHeaderField(f"gIFx chunk at {reader.start:#x} is shorter than 11 bytes")
    return GifApplication(reader.take(8), reader.take(3), _rest(reader))


def _decode_ster(reader: ByteReader, image: PngImage) -> StereoMode:
    _expect_length(reader, "sTER", 1)
    return StereoMode(reader.u8())


CHUNK_DECODERS: dict[str, Callable[[ByteReader, PngImage], ChunkData]] = {
    "PLTE": _decode_plte,
    "tEXt": _decode_text,
    "zTXt": _decode_ztxt,
    "iTXt": _decode_itxt,
    "tIME": _decode_time,
    "pHYs": _decode_phys,
    "gAMA": _decode_gama,
    "cHRM": _decode_chrm,
    "sRGB": _decode_srgb,
    "iCCP": _decode_iccp,
    "tRNS": _decode_trns,
    "bKGD": _decode_bkgd,
    "sBIT": _decode_sbit,
    "hIST": _decode_hist,
    "sPLT": _decode_splt,
    "oFFs": _decode_offs,
    "pCAL": _decode_pcal,
    "sCAL": _decode_scal,
    "gIFg": _decode_gifg,
    "gIFx": _decode_gifx,
    "sTER": _decode_ster,
}


def decode_png(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> PngImage:
    """Decode the chunk layout of a PNG file.

    Raises:
        InvalidMagic: If the 8-byte signature is wrong
        InvalidHeaderField: If IHDR is not first or is malformed, a chunk
            has a bad type or length, or a registered chunk body is malformed
        LimitExceeded: On too many chunks or an oversized compressed text
        BoundsError: If the stream ends before IEND
    """
    reader = ByteReader(data, endian=Endianness.BIG)
    if reader.read_bytes(0, len(PNG_MAGIC)) != PNG_MAGIC:
        raise InvalidMagic("Not a PNG file")
    reader.seek(len(PNG_MAGIC))

    image = None

    while True:
        offset = reader.pos
        length = reader.u32()
        if length > MAX_CHUNK_LENGTH:
            raise InvalidHeaderField(f"Chunk length {length:#x} at {offset:#x} too large")
        type_raw = reader.take(4)
        chunk_type = _chunk_type(type_raw, offset + 4)
        body = reader.take(length)
        crc = reader.u32()
        chunk = PngChunk(
            type=chunk_type,
            offset=offset,
            length=length,
            crc=crc,
            crc_ok=zlib.crc32(type_raw + body) == crc,
        )

        if image is None:
            if chunk_type != "IHDR" or length != IHDR_SIZE:
                raise InvalidHeaderField(
                    f"First chunk must be a {IHDR_SIZE}-byte IHDR, got {chunk_type} ({length})"
                )
            chunk.data = PngHeader(*reader.read_fixed("IIBBBBB", offset + 8))
            image = PngImage(header=chunk.data)
        else:
            decoder = CHUNK_DECODERS.get(chunk_type)
            if decoder is not None:
                chunk.data = decoder(reader.slice(offset + 8, length), image)
                if isinstance(chunk.data, Text):
                    image.text.append((chunk.data.keyword, chunk.data.text))

        image.chunks.append(chunk)
        if len(image.chunks) > limits.max_record_count:
            raise LimitExceeded(f"More than {limits.max_record_count} PNG chunks")
        if chunk_type == "IEND":
            break

    logger.debug(
        "PNG %dx%d, %d chunks", image.header.width, image.header.height, len(image.chunks)
    )
    return image
