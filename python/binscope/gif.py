"""
GIF block stream decoder.

After the header, logical screen descriptor and optional global colour
table, a GIF is a stream of blocks chosen by a one-byte introducer: image
descriptors (0x2C), extensions (0x21, then a label) and the trailer (0x3B).
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Union

from .config import DEFAULT_LIMITS, DecodeLimits
from .errors import InvalidHeaderField, InvalidMagic, LimitExceeded, UnsupportedBlock
from .format_detect import GIF87A_MAGIC, GIF89A_MAGIC, Format
from .reader import ByteReader, Endianness

logger = logging.getLogger(__name__)

HEADER_SIZE = 6
LOGICAL_SCREEN_DESCRIPTOR_SIZE = 7

IMAGE_SEPARATOR = 0x2C
EXTENSION_INTRODUCER = 0x21
TRAILER = 0x3B

PLAIN_TEXT_LABEL = 0x01
GRAPHIC_CONTROL_LABEL = 0xF9
COMMENT_LABEL = 0xFE
APPLICATION_LABEL = 0xFF

GRAPHIC_CONTROL_BLOCK_SIZE = 4


def color_table_size(packed: int) -> int:
    """Entries in a colour table whose size bits are the low 3 of packed."""
    return 1 << ((packed & 0x07) + 1)


@dataclass
class LogicalScreenDescriptor:
    width: int
    height: int
    packed: int
    background_color_index: int
    pixel_aspect_ratio: int

    @property
    def has_global_color_table(self) -> bool:
        return bool(self.packed & 0x80)

    @property
    def color_resolution(self) -> int:
        return ((self.packed >> 4) & 0x07) + 1

    @property
    def global_color_table_entries(self) -> int:
        return color_table_size(self.packed) if self.has_global_color_table else 0


@dataclass
class ImageDescriptor:
    offset: int
    left: int
    top: int
    width: int
    height: int
    packed: int
    local_color_table_entries: int
    lzw_minimum_code_size: int
    data_size: int  # Total LZW bytes across sub-blocks

    @property
    def interlaced(self) -> bool:
        return bool(self.packed & 0x40)


@dataclass
class GraphicControlExtension:
    offset: int
    packed: int
    delay_time: int  # Hundredths of a second
    transparent_color_index: int

    @property
    def disposal_method(self) -> int:
        return (self.packed >> 2) & 0x07

    @property
    def has_transparency(self) -> bool:
        return bool(self.packed & 0x01)


@dataclass
class Extension:
    """Comment, application or plain text extension, kept undecoded."""

    offset: int
    label: int
    data: list[bytes] = field(default_factory=list)  # One entry per sub-block


GifBlock = Union[ImageDescriptor, GraphicControlExtension, Extension]


@dataclass
class GifImage:
    version: str
    screen: LogicalScreenDescriptor
    blocks: list[GifBlock] = field(default_factory=list)

    FORMAT: ClassVar[Format] = Format.GIF

    @property
    def images(self) -> list[ImageDescriptor]:
        return [b for b in self.blocks if isinstance(b, ImageDescriptor)]

    @property
    def comments(self) -> list[bytes]:
        return [
            b"".join(b.data)
            for b in self.blocks
            if isinstance(b, Extension) and b.label == COMMENT_LABEL
        ]


def read_sub_blocks(reader: ByteReader) -> list[bytes]:
    """Read size-prefixed sub-blocks up to and including the zero terminator."""
    blocks = []
    while True:
        size = reader.u8()
        if size == 0:
            return blocks
        blocks.append(reader.take(size))


def _image_descriptor(reader: ByteReader, offset: int) -> ImageDescriptor:
    left, top, width, height, packed = reader.unpack("HHHHB")
    lct_entries = color_table_size(packed) if packed & 0x80 else 0
    reader.skip(3 * lct_entries)
    min_code_size = reader.u8()
    data_size = sum(len(b) for b in read_sub_blocks(reader))
    return ImageDescriptor(
        offset=offset,
        left=left,
        top=top,
        width=width,
        height=height,
        packed=packed,
        local_color_table_entries=lct_entries,
        lzw_minimum_code_size=min_code_size,
        data_size=data_size,
    )


def _graphic_control(reader: ByteReader, offset: int) -> GraphicControlExtension:
    block_size = reader.u8()
    if block_size != GRAPHIC_CONTROL_BLOCK_SIZE:
        raise InvalidHeaderField(
            f"Graphic control block size {block_size} at {offset:#x}, expected 4"
        )
    packed, delay, transparent = reader.unpack("BHB")
    terminator = reader.u8()
    if terminator != 0:
        raise InvalidHeaderField(f"Graphic control at {offset:#x} is not terminated")
    return GraphicControlExtension(offset, packed, delay, transparent)


def _generic_extension(label: int) -> Callable[[ByteReader, int], Extension]:
    return lambda reader, offset: Extension(offset, label, read_sub_blocks(reader))


EXTENSION_DECODERS: dict[int, Callable[[ByteReader, int], GifBlock]] = {
    GRAPHIC_CONTROL_LABEL: _graphic_control,
    COMMENT_LABEL: _generic_extension(COMMENT_LABEL),
    APPLICATION_LABEL: _generic_extension(APPLICATION_LABEL),
    PLAIN_TEXT_LABEL: _generic_extension(PLAIN_TEXT_LABEL),
}


def decode_gif(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> GifImage:
    """Decode the block structure of a GIF87a or GIF89a file.

    Raises:
        InvalidMagic: If the header is neither GIF87a nor GIF89a
        UnsupportedBlock: On an unknown block introducer or extension label
        BoundsError: If the stream ends before the trailer
    """
    reader = ByteReader(data, endian=Endianness.LITTLE)
    magic = reader.read_bytes(0, HEADER_SIZE)
    if magic not in (GIF87A_MAGIC, GIF89A_MAGIC):
        raise InvalidMagic(f"Not a GIF file (bad magic: {magic!r})")

    screen = LogicalScreenDescriptor(*reader.read_fixed("HHBBB", HEADER_SIZE))
    reader.seek(HEADER_SIZE + LOGICAL_SCREEN_DESCRIPTOR_SIZE)
    reader.skip(3 * screen.global_color_table_entries)

    blocks: list[GifBlock] = []
    while True:
        offset = reader.pos
        introducer = reader.u8()
        if introducer == TRAILER:
            break
        if introducer == IMAGE_SEPARATOR:
            blocks.append(_image_descriptor(reader, offset))
        elif introducer == EXTENSION_INTRODUCER:
            label_offset = reader.pos
            label = reader.u8()
            decoder = EXTENSION_DECODERS.get(label)
            if decoder is None:
                raise UnsupportedBlock(label, label_offset)
            blocks.append(decoder(reader, offset))
        else:
            raise UnsupportedBlock(introducer, offset)
        if len(blocks) > limits.max_record_count:
            raise LimitExceeded(f"More than {limits.max_record_count} GIF blocks")

    logger.debug(
        "GIF %dx%d, %d blocks", screen.width, screen.height, len(blocks)
    )
    return GifImage(version=magic[3:].decode("ascii"), screen=screen, blocks=blocks)
