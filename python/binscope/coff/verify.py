"""
PE/COFF verification utilities.

The CoffVerifier class runs structural consistency checks over a decoded
PeFile, catching images whose headers decode cleanly but describe a layout
the loader would reject.
"""

from pathlib import Path
from typing import Callable

from ..verify import BinaryVerifier, VerificationResult
from .decoder import decode_pe
from .types import (
    IMAGE_DIRECTORY_ENTRY_SECURITY,
    PeFile,
    SectionHeader,
    directory_name,
)


class CoffVerifier(BinaryVerifier):
    """PE/COFF structural verification.

    Usage:
        result = CoffVerifier.verify(Path("foo.dll"))
        if not result.passed:
            print(result)
    """

    def __init__(self, pe: PeFile, file_size: int):
        """Initialize with a decoded PE image.

        Args:
            pe: Decoded PE image
            file_size: Size of the buffer it was decoded from
        """
        self._pe = pe
        self._file_size = file_size

    @classmethod
    def verify(cls, path: Path) -> VerificationResult:
        """Verify a PE file on disk.

        Args:
            path: Path to PE binary

        Returns:
            VerificationResult with any errors/warnings
        """
        return cls.verify_data(path.read_bytes())

    @classmethod
    def verify_data(cls, data: bytes | bytearray) -> VerificationResult:
        """Verify PE data in memory.

        Args:
            data: PE binary data

        Returns:
            VerificationResult with any errors/warnings
        """
        return cls(decode_pe(data), len(data)).run_all_checks()

    def run_all_checks(self) -> VerificationResult:
        """Run all internal structural checks."""
        result = VerificationResult()

        checks: list[Callable[[], VerificationResult]] = [
            self.check_no_overlapping_sections,
            self.check_section_offsets_in_bounds,
            self.check_file_alignment,
            self.check_entry_point_in_section,
            self.check_section_permissions,
            self.check_directories_in_bounds,
        ]

        for check in checks:
            result.merge(check())

        return result

    # =========================================================================
    # Structural Checks
    # =========================================================================

    def _sections_with_data(self) -> list[SectionHeader]:
        return [s for s in self._pe.sections if s.SizeOfRawData > 0]

    def check_no_overlapping_sections(self) -> VerificationResult:
        """Check that no two sections have overlapping file regions."""
        result = VerificationResult()

        sections = self._sections_with_data()
        for i, sect1 in enumerate(sections):
            for sect2 in sections[i + 1 :]:
                if (
                    sect1.PointerToRawData < sect2.raw_end
                    and sect2.PointerToRawData < sect1.raw_end
                ):
                    result.add_error(
                        f"Sections {sect1.name} and {sect2.name} have overlapping "
                        f"file ranges: [{sect1.PointerToRawData:#x}, {sect1.raw_end:#x}) "
                        f"and [{sect2.PointerToRawData:#x}, {sect2.raw_end:#x})"
                    )

        return result

    def check_section_offsets_in_bounds(self) -> VerificationResult:
        """Check that section raw data is within file bounds."""
        result = VerificationResult()

        for section in self._sections_with_data():
            if section.raw_end > self._file_size:
                result.add_error(
                    f"Section {section.name} raw data extends beyond file: "
                    f"ends at 0x{section.raw_end:x}, file size is 0x{self._file_size:x}"
                )

        return result

    def check_file_alignment(self) -> VerificationResult:
        """Check FileAlignment is a power of 2 between 512 and 64K."""
        result = VerificationResult()
        if self._pe.optional_header is None:
            return result

        file_align = self._pe.optional_header.FileAlignment
        if file_align == 0 or (file_align & (file_align - 1)) != 0:
            result.add_error(f"FileAlignment 0x{file_align:x} is not a power of 2")
        elif file_align < 512:
            result.add_warning(
                f"FileAlignment 0x{file_align:x} is smaller than standard 512"
            )
        elif file_align > 65536:
            result.add_warning(
                f"FileAlignment 0x{file_align:x} is larger than standard 64K"
            )

        return result

    def check_entry_point_in_section(self) -> VerificationResult:
        """Check that a non-zero entry point RVA falls inside some section."""
        result = VerificationResult()
        if self._pe.optional_header is None:
            return result

        entry = self._pe.optional_header.AddressOfEntryPoint
        if entry == 0:
            return result

        for section in self._pe.sections:
            if section.VirtualAddress <= entry < section.virtual_end:
                return result

        result.add_warning(f"Entry point RVA {entry:#x} is not inside any section")
        return result

    def check_section_permissions(self) -> VerificationResult:
        """Check section flags for writable code and non-executable code."""
        result = VerificationResult()

        for section in self._pe.sections:
            if section.is_executable and section.is_writable:
                result.add_warning(f"Section {section.name} is both writable and executable")
            if section.is_code and not section.is_executable:
                result.add_warning(f"Section {section.name} contains code but is not executable")

        return result

    def check_directories_in_bounds(self) -> VerificationResult:
        """Check that present data directories lie inside the image.

        The security directory holds a file offset rather than an RVA, so it
        is checked against the file size instead of SizeOfImage.
        """
        result = VerificationResult()
        if self._pe.optional_header is None:
            return result

        image_size = self._pe.optional_header.SizeOfImage
        for index, directory in enumerate(self._pe.data_directories):
            if not directory.is_present:
                continue
            end = directory.VirtualAddress + directory.Size
            if index == IMAGE_DIRECTORY_ENTRY_SECURITY:
                if end > self._file_size:
                    result.add_error(
                        f"Security directory ends at file offset {end:#x}, "
                        f"file size is {self._file_size:#x}"
                    )
            elif end > image_size:
                result.add_error(
                    f"{directory_name(index)} directory ends at RVA {end:#x}, "
                    f"beyond SizeOfImage {image_size:#x}"
                )

        return result
