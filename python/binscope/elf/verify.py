"""
ELF verification utilities.

The ElfVerifier class runs structural consistency checks over a decoded
ElfFile. Decoding already guarantees every table lies inside the buffer; the
checks here catch files that decode cleanly but describe an impossible
layout.
"""

from pathlib import Path
from typing import Callable

from ..verify import BinaryVerifier, VerificationResult
from .decoder import decode_elf
from .types import SHT_NOBITS, ElfFile


class ElfVerifier(BinaryVerifier):
    """ELF structural verification.

    Usage:
        result = ElfVerifier.verify(Path("libfoo.so"))
        if not result.passed:
            print(result)
    """

    def __init__(self, elf: ElfFile, file_size: int):
        """Initialize with a decoded ELF file.

        Args:
            elf: Decoded ELF container
            file_size: Size of the buffer it was decoded from
        """
        self._elf = elf
        self._file_size = file_size

    @classmethod
    def verify(cls, path: Path) -> VerificationResult:
        """Verify an ELF file on disk.

        Args:
            path: Path to ELF binary

        Returns:
            VerificationResult with any errors/warnings
        """
        return cls.verify_data(path.read_bytes())

    @classmethod
    def verify_data(cls, data: bytes | bytearray) -> VerificationResult:
        """Verify ELF data in memory.

        Args:
            data: ELF binary data

        Returns:
            VerificationResult with any errors/warnings
        """
        return cls(decode_elf(data), len(data)).run_all_checks()

    def run_all_checks(self) -> VerificationResult:
        """Run all internal structural checks."""
        result = VerificationResult()

        checks: list[Callable[[], VerificationResult]] = [
            self.check_segments_in_bounds,
            self.check_sections_in_bounds,
            self.check_no_overlapping_load_segments,
            self.check_entry_in_load_segment,
        ]

        for check in checks:
            result.merge(check())

        return result

    # =========================================================================
    # Structural Checks
    # =========================================================================

    def check_segments_in_bounds(self) -> VerificationResult:
        """Check that every segment's file range lies within the file."""
        result = VerificationResult()
        for idx, phdr in enumerate(self._elf.program_headers):
            if phdr.p_filesz and phdr.file_end > self._file_size:
                result.add_error(
                    f"Segment {idx} file range [{phdr.p_offset:#x}, "
                    f"{phdr.file_end:#x}) exceeds file size {self._file_size:#x}"
                )
            if phdr.p_filesz > phdr.p_memsz:
                result.add_warning(
                    f"Segment {idx} p_filesz {phdr.p_filesz:#x} exceeds "
                    f"p_memsz {phdr.p_memsz:#x}"
                )
        return result

    def check_sections_in_bounds(self) -> VerificationResult:
        """Check that every section with file content lies within the file."""
        result = VerificationResult()
        for section in self._elf.section_headers:
            if section.sh_type == SHT_NOBITS or section.sh_size == 0:
                continue
            if section.end_offset > self._file_size:
                result.add_error(
                    f"Section {section.name or '<unnamed>'} range "
                    f"[{section.sh_offset:#x}, {section.end_offset:#x}) exceeds "
                    f"file size {self._file_size:#x}"
                )
        return result

    def check_no_overlapping_load_segments(self) -> VerificationResult:
        """Check that no two PT_LOAD segments share file offsets."""
        result = VerificationResult()

        load_segments = [
            (idx, phdr)
            for idx, phdr in enumerate(self._elf.program_headers)
            if phdr.is_load and phdr.p_filesz > 0
        ]

        for i, (idx1, phdr1) in enumerate(load_segments):
            for idx2, phdr2 in load_segments[i + 1 :]:
                if phdr1.p_offset < phdr2.file_end and phdr2.p_offset < phdr1.file_end:
                    result.add_error(
                        f"PT_LOAD segments {idx1} and {idx2} have overlapping "
                        f"file ranges: [{phdr1.p_offset:#x}, {phdr1.file_end:#x}) "
                        f"and [{phdr2.p_offset:#x}, {phdr2.file_end:#x})"
                    )

        return result

    def check_entry_in_load_segment(self) -> VerificationResult:
        """Check that a non-zero entry point is covered by some PT_LOAD segment."""
        result = VerificationResult()
        entry = self._elf.header.e_entry
        if entry == 0 or not self._elf.program_headers:
            return result

        for phdr in self._elf.program_headers:
            if phdr.is_load and phdr.p_vaddr <= entry < phdr.vaddr_end:
                return result

        result.add_warning(f"Entry point {entry:#x} is not inside any PT_LOAD segment")
        return result
