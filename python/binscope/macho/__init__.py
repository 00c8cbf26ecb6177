"""
Mach-O decoding package for binscope.

- types: Header, load command union and segment/section records
- decoder: decode_macho() and the load command dispatch table
- verify: MachOVerifier for structural consistency checks
"""

from .decoder import (
    LOAD_COMMAND_DECODERS,
    decode_header,
    decode_load_command,
    decode_macho,
)
from .types import (
    LoadCommand,
    MachHeader,
    MachOFile,
    Section,
    SegmentCommand,
)
from .verify import MachOVerifier

__all__ = [
    "LOAD_COMMAND_DECODERS",
    "decode_header",
    "decode_load_command",
    "decode_macho",
    "LoadCommand",
    "MachHeader",
    "MachOFile",
    "Section",
    "SegmentCommand",
    "MachOVerifier",
]
