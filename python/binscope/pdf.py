"""
PDF identification.

Only the header line and the presence of an end-of-file marker are
inspected; the object graph is not parsed.
"""

import re
from dataclasses import dataclass
from typing import ClassVar

from .config import DEFAULT_LIMITS, DecodeLimits
from .errors import InvalidHeaderField, InvalidMagic
from .format_detect import PDF_MAGIC, Format

# Versions run from 1.0 to 2.0; longer digit runs are malformed.
HEADER_PATTERN = re.compile(rb"%PDF-(\d{1,3})\.(\d{1,3})")
EOF_MARKER = b"%%EOF"
# Readers look for %%EOF within the last 1024 bytes.
EOF_SEARCH_WINDOW = 1024


@dataclass
class PdfDocument:
    major: int
    minor: int
    has_eof_marker: bool

    FORMAT: ClassVar[Format] = Format.PDF

    @property
    def version(self) -> str:
        return f"{self.major}.{self.minor}"


def decode_pdf(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> PdfDocument:
    """Read the PDF version and check for a trailing %%EOF.

    Raises:
        InvalidMagic: If the buffer does not start with %PDF-
        InvalidHeaderField: If the version is not of the form x.y
    """
    data = bytes(data)
    if not data.startswith(PDF_MAGIC):
        raise InvalidMagic("Not a PDF file")
    match = HEADER_PATTERN.match(data)
    if match is None:
        raise InvalidHeaderField(f"Malformed PDF header {data[:16]!r}")
    return PdfDocument(
        major=int(match.group(1)),
        minor=int(match.group(2)),
        has_eof_marker=EOF_MARKER in data[-EOF_SEARCH_WINDOW:],
    )
