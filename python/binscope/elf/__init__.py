"""
ELF decoding package for binscope.

- types: Native 32/64-bit records and their canonical forms
- decoder: decode_elf() and the per-table decoders it drives
- verify: ElfVerifier for structural consistency checks
"""

from ..verify import VerificationResult
from .decoder import (
    decode_elf,
    decode_ident,
    decode_header,
    decode_program_headers,
    decode_section_headers,
)
from .types import (
    ElfFile,
    ElfHeader,
    ElfIdent,
    ProgramHeader,
    SectionHeader,
    Symbol,
    SymbolTable,
    Relocation,
    RelocationTable,
)
from .verify import ElfVerifier

__all__ = [
    "decode_elf",
    "decode_ident",
    "decode_header",
    "decode_program_headers",
    "decode_section_headers",
    "ElfFile",
    "ElfHeader",
    "ElfIdent",
    "ProgramHeader",
    "SectionHeader",
    "Symbol",
    "SymbolTable",
    "Relocation",
    "RelocationTable",
    "ElfVerifier",
    "VerificationResult",
]
