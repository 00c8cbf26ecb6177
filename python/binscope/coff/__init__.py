"""
PE/COFF decoding package for binscope.

This package decodes Windows PE images (PE32 and PE32+):
- types: PE/COFF struct definitions and the canonical optional header
- decoder: decode_pe() for DOS stub, headers, directories and sections
- verify: CoffVerifier for structural consistency checks
"""

from .decoder import decode_optional_header, decode_pe
from .types import (
    CoffHeader,
    DataDirectory,
    DosHeader,
    OptionalHeader,
    PeFile,
    SectionHeader,
)
from .verify import CoffVerifier

__all__ = [
    "decode_optional_header",
    "decode_pe",
    "CoffHeader",
    "DataDirectory",
    "DosHeader",
    "OptionalHeader",
    "PeFile",
    "SectionHeader",
    "CoffVerifier",
]
