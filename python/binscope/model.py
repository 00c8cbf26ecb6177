"""
The closed set of values a decode can produce.

Each member class carries a FORMAT class attribute naming the Format the
sniffer reports for it, so callers can branch on value.FORMAT without an
isinstance chain.
"""

from dataclasses import dataclass
from typing import ClassVar, Union

from .bmp import BmpImage
from .coff.types import PeFile
from .elf.types import ElfFile
from .format_detect import Format
from .gif import GifImage
from .javaclass.types import JavaClass
from .lua.types import LuaChunk
from .macho.types import MachOFile
from .pdf import PdfDocument
from .png import PngImage
from .xp3 import Xp3Archive
from .ziparchive import ZipArchive


@dataclass
class Unknown:
    """Input whose leading bytes match no known signature."""

    FORMAT: ClassVar[Format] = Format.UNKNOWN


DecodedFormat = Union[
    ElfFile,
    MachOFile,
    PeFile,
    JavaClass,
    LuaChunk,
    PngImage,
    BmpImage,
    GifImage,
    PdfDocument,
    ZipArchive,
    Xp3Archive,
    Unknown,
]
