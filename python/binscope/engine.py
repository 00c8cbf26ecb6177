"""
Format-agnostic decoding API.

decode() sniffs the input and dispatches to the matching decoder. Decoder
functions are imported on first use.

Usage:
    from binscope import decode

    value = decode(data)
    if value.FORMAT is Format.ELF:
        ...
"""

import logging
from pathlib import Path
from typing import Callable

from .config import DEFAULT_LIMITS, DecodeLimits
from .format_detect import Format, sniff
from .model import DecodedFormat, Unknown

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes, DecodeLimits], DecodedFormat]


def decoder_for(fmt: Format) -> Decoder:
    """Return the decode function for a sniffed format.

    Raises:
        KeyError: For Format.UNKNOWN, which has no decoder
    """
    if fmt == Format.ELF:
        from .elf.decoder import decode_elf

        return decode_elf
    elif fmt == Format.MACHO:
        from .macho.decoder import decode_macho

        return decode_macho
    elif fmt == Format.PE:
        from .coff.decoder import decode_pe

        return decode_pe
    elif fmt == Format.JAVA_CLASS:
        from .javaclass.decoder import decode_java_class

        return decode_java_class
    elif fmt == Format.LUA:
        from .lua.decoder import decode_lua

        return decode_lua
    elif fmt == Format.PNG:
        from .png import decode_png

        return decode_png
    elif fmt == Format.BMP:
        from .bmp import decode_bmp

        return decode_bmp
    elif fmt == Format.GIF:
        from .gif import decode_gif

        return decode_gif
    elif fmt == Format.PDF:
        from .pdf import decode_pdf

        return decode_pdf
    elif fmt == Format.ZIP:
        from .ziparchive import decode_zip

        return decode_zip
    elif fmt == Format.XP3:
        from .xp3 import decode_xp3

        return decode_xp3
    raise KeyError(f"No decoder for format {fmt.value}")


def decode(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> DecodedFormat:
    """Decode a buffer into its format-specific structure.

    The buffer is only read; the returned value holds copies of every
    string and byte payload it reports.

    Args:
        data: Complete file contents
        limits: Count and nesting ceilings for untrusted input

    Returns:
        Decoded value, or Unknown() if no signature matches

    Raises:
        TooShort: If the buffer is shorter than 16 bytes
        DecodeError: If the matched decoder finds a structural violation
    """
    data = bytes(data)
    fmt = sniff(data)
    if fmt == Format.UNKNOWN:
        logger.debug("No signature matched %r", data[:8])
        return Unknown()

    logger.debug("Sniffed %s (%d bytes)", fmt.value, len(data))
    return decoder_for(fmt)(data, limits)


def decode_file(path: Path, limits: DecodeLimits = DEFAULT_LIMITS) -> DecodedFormat:
    """Read a file and decode it.

    Raises:
        OSError: If the file cannot be read
        DecodeError: As for decode()
    """
    return decode(Path(path).read_bytes(), limits)
