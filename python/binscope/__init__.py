"""
binscope: structural decoding of binary container formats.

This package identifies a buffer by its magic bytes and decodes it into an
owned, self-contained value. It covers executable containers (ELF, Mach-O,
PE/COFF), Java class files, Lua 5.1 bytecode and several flat formats
(PNG, BMP, GIF, PDF, ZIP, XP3).

The generic API sniffs the format and dispatches to the right decoder:

    from binscope import decode, verify_decoded

    value = decode(data)
    print(value.FORMAT)

    # Structural consistency checks where a verifier exists
    result = verify_decoded(value, len(data))

For format-specific work, use the subpackages directly:

    from binscope.elf import decode_elf, ElfVerifier
    from binscope.macho import decode_macho
"""

from .config import DEFAULT_LIMITS, DecodeLimits
from .engine import decode, decode_file, decoder_for
from .errors import (
    BoundsError,
    DecodeError,
    InvalidClass,
    InvalidConstantReference,
    InvalidConstantTag,
    InvalidEndianness,
    InvalidHeaderField,
    InvalidLuaConstantTag,
    InvalidMagic,
    InvalidMagicOrClass,
    InvalidSignature,
    InvalidUtf8,
    LimitExceeded,
    NestingTooDeep,
    TooShort,
    UnsupportedBlock,
    UnsupportedLoadCommand,
    UnsupportedTag,
    Utf8Error,
)
from .export import pack_decoded, unpack_decoded
from .format_detect import (
    Format,
    detect_file_format,
    is_elf_binary,
    is_pe_binary,
    sniff,
)
from .model import DecodedFormat, Unknown
from .reader import AddressWidth, ByteReader, Endianness
from .verify import VerificationResult, verify_decoded

__all__ = [
    # Engine
    "decode",
    "decode_file",
    "decoder_for",
    "DecodedFormat",
    "Unknown",
    # Configuration
    "DecodeLimits",
    "DEFAULT_LIMITS",
    # Format detection
    "Format",
    "detect_file_format",
    "is_elf_binary",
    "is_pe_binary",
    "sniff",
    # Reader
    "AddressWidth",
    "ByteReader",
    "Endianness",
    # Export
    "pack_decoded",
    "unpack_decoded",
    # Verification
    "VerificationResult",
    "verify_decoded",
    # Errors
    "BoundsError",
    "DecodeError",
    "InvalidClass",
    "InvalidConstantReference",
    "InvalidConstantTag",
    "InvalidEndianness",
    "InvalidHeaderField",
    "InvalidLuaConstantTag",
    "InvalidMagic",
    "InvalidMagicOrClass",
    "InvalidSignature",
    "InvalidUtf8",
    "LimitExceeded",
    "NestingTooDeep",
    "TooShort",
    "UnsupportedBlock",
    "UnsupportedLoadCommand",
    "UnsupportedTag",
    "Utf8Error",
]
