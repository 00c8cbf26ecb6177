"""
Binary format detection utilities.

This module sniffs the leading bytes of a buffer against a registry of magic
signatures so the engine can dispatch to the correct decoder.
"""

from enum import Enum
from pathlib import Path

from .errors import TooShort

# Bytes the sniffer needs; inputs shorter than this are rejected outright.
SNIFF_SIZE = 16


class Format(Enum):
    ELF = "elf"
    MACHO = "macho"
    PE = "pe"
    JAVA_CLASS = "javaclass"
    LUA = "lua"
    PNG = "png"
    BMP = "bmp"
    GIF = "gif"
    PDF = "pdf"
    ZIP = "zip"
    XP3 = "xp3"
    UNKNOWN = "unknown"


# Magic bytes for format detection
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
XP3_MAGIC = b"XP3\r\n \n\x1a"
GIF87A_MAGIC = b"GIF87a"
GIF89A_MAGIC = b"GIF89a"
PDF_MAGIC = b"%PDF-"
ELF_MAGIC = b"\x7fELF"
MACHO_MAGIC_32_BE = b"\xfe\xed\xfa\xce"
MACHO_MAGIC_32_LE = b"\xce\xfa\xed\xfe"
MACHO_MAGIC_64_BE = b"\xfe\xed\xfa\xcf"
MACHO_MAGIC_64_LE = b"\xcf\xfa\xed\xfe"
JAVA_CLASS_MAGIC = b"\xca\xfe\xba\xbe"
LUA_MAGIC = b"\x1bLua"
ZIP_MAGIC = b"PK\x03\x04"
BMP_MAGIC = b"BM"
DOS_MAGIC = b"MZ"
PE_SIGNATURE = b"PE\x00\x00"

# Ordered longest first so a shorter signature can never shadow a longer one.
MAGIC_SIGNATURES: tuple[tuple[bytes, Format], ...] = tuple(
    sorted(
        [
            (PNG_MAGIC, Format.PNG),
            (XP3_MAGIC, Format.XP3),
            (GIF87A_MAGIC, Format.GIF),
            (GIF89A_MAGIC, Format.GIF),
            (PDF_MAGIC, Format.PDF),
            (ELF_MAGIC, Format.ELF),
            (MACHO_MAGIC_32_BE, Format.MACHO),
            (MACHO_MAGIC_32_LE, Format.MACHO),
            (MACHO_MAGIC_64_BE, Format.MACHO),
            (MACHO_MAGIC_64_LE, Format.MACHO),
            (JAVA_CLASS_MAGIC, Format.JAVA_CLASS),
            (LUA_MAGIC, Format.LUA),
            (ZIP_MAGIC, Format.ZIP),
            (BMP_MAGIC, Format.BMP),
            (DOS_MAGIC, Format.PE),
        ],
        key=lambda entry: len(entry[0]),
        reverse=True,
    )
)


def sniff(data: bytes | bytearray | memoryview) -> Format:
    """Identify a buffer's container format from its first 16 bytes.

    PE is matched on the DOS stub magic alone; the PE\\0\\0 signature is
    verified by the PE decoder, which fails with InvalidSignature if absent.

    Args:
        data: Input buffer

    Returns:
        Matching Format, or Format.UNKNOWN if no signature matches

    Raises:
        TooShort: If fewer than 16 bytes are available
    """
    if len(data) < SNIFF_SIZE:
        raise TooShort(len(data), SNIFF_SIZE)

    prefix = bytes(data[:SNIFF_SIZE])
    for magic, fmt in MAGIC_SIGNATURES:
        if prefix.startswith(magic):
            return fmt
    return Format.UNKNOWN


def detect_file_format(path: Path) -> Format:
    """Detect the container format of a file on disk.

    Args:
        path: Path to file

    Returns:
        Matching Format, or Format.UNKNOWN

    Raises:
        TooShort: If the file is smaller than 16 bytes
        FileNotFoundError: If the file doesn't exist
    """
    with open(path, "rb") as f:
        header = f.read(SNIFF_SIZE)
    return sniff(header)


def is_elf_binary(path: Path) -> bool:
    """Check if a file is ELF format.

    Args:
        path: Path to file

    Returns:
        True if ELF, False otherwise
    """
    try:
        return detect_file_format(path) == Format.ELF
    except (TooShort, FileNotFoundError):
        return False


def is_pe_binary(path: Path) -> bool:
    """Check if a file carries a DOS/PE stub.

    Args:
        path: Path to file

    Returns:
        True if PE/COFF, False otherwise
    """
    try:
        return detect_file_format(path) == Format.PE
    except (TooShort, FileNotFoundError):
        return False
