"""
Mach-O verification utilities.

Structural consistency checks over a decoded MachOFile.
"""

from pathlib import Path
from typing import Callable

from ..verify import BinaryVerifier, VerificationResult
from .decoder import decode_macho
from .types import MachOFile


class MachOVerifier(BinaryVerifier):
    """Mach-O structural verification.

    Usage:
        result = MachOVerifier.verify(Path("a.out"))
        if not result.passed:
            print(result)
    """

    def __init__(self, macho: MachOFile, file_size: int):
        self._macho = macho
        self._file_size = file_size

    @classmethod
    def verify(cls, path: Path) -> VerificationResult:
        return cls.verify_data(path.read_bytes())

    @classmethod
    def verify_data(cls, data: bytes | bytearray) -> VerificationResult:
        return cls(decode_macho(data), len(data)).run_all_checks()

    def run_all_checks(self) -> VerificationResult:
        """Run all internal structural checks."""
        result = VerificationResult()

        checks: list[Callable[[], VerificationResult]] = [
            self.check_sizeofcmds,
            self.check_segments_in_bounds,
        ]

        for check in checks:
            result.merge(check())

        return result

    def check_sizeofcmds(self) -> VerificationResult:
        """Check that the load commands exactly fill the header's sizeofcmds."""
        result = VerificationResult()
        total = sum(lc.cmdsize for lc in self._macho.load_commands)
        if total != self._macho.header.sizeofcmds:
            result.add_error(
                f"Load commands occupy {total:#x} bytes but header declares "
                f"sizeofcmds={self._macho.header.sizeofcmds:#x}"
            )
        return result

    def check_segments_in_bounds(self) -> VerificationResult:
        """Check that segment and section file ranges lie within the file."""
        result = VerificationResult()
        for segment in self._macho.segments:
            end = segment.fileoff + segment.filesize
            if segment.filesize and end > self._file_size:
                result.add_error(
                    f"Segment {segment.segname} file range "
                    f"[{segment.fileoff:#x}, {end:#x}) exceeds file size "
                    f"{self._file_size:#x}"
                )
            for section in segment.sections:
                # Zero-fill sections carry offset 0
                if section.offset and section.offset + section.size > self._file_size:
                    result.add_warning(
                        f"Section {section.segname},{section.sectname} extends "
                        f"past end of file"
                    )
        return result
