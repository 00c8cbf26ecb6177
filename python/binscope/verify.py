"""
Common verification utilities for decoded containers.

This module provides the base VerificationResult class and BinaryVerifier
abstract base class that the per-format verifiers extend.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class VerificationResult:
    """Result of structural verification.

    Used by every format verifier to report errors and warnings
    in a consistent format.
    """

    passed: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, msg: str) -> None:
        """Add an error (verification failed)."""
        self.errors.append(msg)
        self.passed = False

    def add_warning(self, msg: str) -> None:
        """Add a warning (verification passed but with concerns)."""
        self.warnings.append(msg)

    def merge(self, other: "VerificationResult") -> None:
        """Merge another result into this one."""
        if not other.passed:
            self.passed = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def __str__(self) -> str:
        """Human-readable summary."""
        lines = ["Verification PASSED" if self.passed else "Verification FAILED"]

        if self.errors:
            lines.append(f"Errors ({len(self.errors)}):")
            lines.extend(f"  - {e}" for e in self.errors)

        if self.warnings:
            lines.append(f"Warnings ({len(self.warnings)}):")
            lines.extend(f"  - {w}" for w in self.warnings)

        return "\n".join(lines)


class BinaryVerifier(ABC):
    """Abstract base class for structural verifiers.

    Each verifier wraps one decoded container plus the size of the buffer it
    came from, and runs a list of independent checks over it.
    """

    @classmethod
    @abstractmethod
    def verify(cls, path: Path) -> VerificationResult:
        """Decode and verify a file on disk."""
        ...

    @classmethod
    @abstractmethod
    def verify_data(cls, data: bytes | bytearray) -> VerificationResult:
        """Decode and verify a buffer in memory."""
        ...

    @abstractmethod
    def run_all_checks(self) -> VerificationResult:
        """Run all internal structural checks."""
        ...


def verify_decoded(value, file_size: int) -> VerificationResult:
    """Run the verifier matching a decoded value's format.

    Formats without a structural verifier yield an empty passing result.

    Args:
        value: Any decoded container returned by binscope.decode()
        file_size: Size of the buffer the value was decoded from

    Returns:
        VerificationResult with any errors/warnings
    """
    from .coff.types import PeFile
    from .elf.types import ElfFile
    from .javaclass.types import JavaClass
    from .macho.types import MachOFile

    if isinstance(value, ElfFile):
        from .elf.verify import ElfVerifier

        return ElfVerifier(value, file_size).run_all_checks()
    if isinstance(value, PeFile):
        from .coff.verify import CoffVerifier

        return CoffVerifier(value, file_size).run_all_checks()
    if isinstance(value, MachOFile):
        from .macho.verify import MachOVerifier

        return MachOVerifier(value, file_size).run_all_checks()
    if isinstance(value, JavaClass):
        from .javaclass.verify import JavaClassVerifier

        return JavaClassVerifier(value, file_size).run_all_checks()
    return VerificationResult()
