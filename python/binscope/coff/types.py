"""
PE/COFF type definitions for 32- and 64-bit Windows images.

The optional header exists in PE32 and PE32+ shapes; both are unpacked
natively and widened into one canonical OptionalHeader. Everything in a PE
image is little-endian.

References:
- Microsoft PE/COFF Specification
- https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
"""

from dataclasses import dataclass, field
from typing import ClassVar

from ..format_detect import Format
from ..reader import ByteReader

# =============================================================================
# Constants
# =============================================================================

# DOS Header
DOS_MAGIC = 0x5A4D  # "MZ" in little-endian

# PE Signature
PE_SIGNATURE = b"PE\x00\x00"
PE_SIGNATURE_OFFSET_LOCATION = 0x3C  # Offset in DOS header where e_lfanew lives

# Machine types
IMAGE_FILE_MACHINE_UNKNOWN = 0x0
IMAGE_FILE_MACHINE_I386 = 0x14C
IMAGE_FILE_MACHINE_ARM = 0x1C0
IMAGE_FILE_MACHINE_ARMNT = 0x1C4
IMAGE_FILE_MACHINE_IA64 = 0x200
IMAGE_FILE_MACHINE_EBC = 0xEBC
IMAGE_FILE_MACHINE_RISCV32 = 0x5032
IMAGE_FILE_MACHINE_RISCV64 = 0x5064
IMAGE_FILE_MACHINE_AMD64 = 0x8664
IMAGE_FILE_MACHINE_ARM64 = 0xAA64

MACHINE_NAMES = {
    IMAGE_FILE_MACHINE_UNKNOWN: "any",
    IMAGE_FILE_MACHINE_I386: "i386",
    IMAGE_FILE_MACHINE_ARM: "arm",
    IMAGE_FILE_MACHINE_ARMNT: "armnt",
    IMAGE_FILE_MACHINE_IA64: "ia64",
    IMAGE_FILE_MACHINE_EBC: "ebc",
    IMAGE_FILE_MACHINE_RISCV32: "riscv32",
    IMAGE_FILE_MACHINE_RISCV64: "riscv64",
    IMAGE_FILE_MACHINE_AMD64: "x64",
    IMAGE_FILE_MACHINE_ARM64: "arm64",
}

# Optional header magic
IMAGE_NT_OPTIONAL_HDR32_MAGIC = 0x10B
IMAGE_NT_OPTIONAL_HDR64_MAGIC = 0x20B  # PE32+

# Section characteristics
IMAGE_SCN_CNT_CODE = 0x00000020
IMAGE_SCN_CNT_INITIALIZED_DATA = 0x00000040
IMAGE_SCN_CNT_UNINITIALIZED_DATA = 0x00000080
IMAGE_SCN_MEM_DISCARDABLE = 0x02000000
IMAGE_SCN_MEM_SHARED = 0x10000000
IMAGE_SCN_MEM_EXECUTE = 0x20000000
IMAGE_SCN_MEM_READ = 0x40000000
IMAGE_SCN_MEM_WRITE = 0x80000000

# File characteristics
IMAGE_FILE_RELOCS_STRIPPED = 0x0001
IMAGE_FILE_EXECUTABLE_IMAGE = 0x0002
IMAGE_FILE_LARGE_ADDRESS_AWARE = 0x0020
IMAGE_FILE_32BIT_MACHINE = 0x0100
IMAGE_FILE_DEBUG_STRIPPED = 0x0200
IMAGE_FILE_SYSTEM = 0x1000
IMAGE_FILE_DLL = 0x2000

# DLL characteristics
IMAGE_DLLCHARACTERISTICS_HIGH_ENTROPY_VA = 0x0020
IMAGE_DLLCHARACTERISTICS_DYNAMIC_BASE = 0x0040  # ASLR
IMAGE_DLLCHARACTERISTICS_NX_COMPAT = 0x0100
IMAGE_DLLCHARACTERISTICS_GUARD_CF = 0x4000

# Data directory indices
IMAGE_DIRECTORY_ENTRY_EXPORT = 0
IMAGE_DIRECTORY_ENTRY_IMPORT = 1
IMAGE_DIRECTORY_ENTRY_RESOURCE = 2
IMAGE_DIRECTORY_ENTRY_EXCEPTION = 3
IMAGE_DIRECTORY_ENTRY_SECURITY = 4
IMAGE_DIRECTORY_ENTRY_BASERELOC = 5
IMAGE_DIRECTORY_ENTRY_DEBUG = 6
IMAGE_DIRECTORY_ENTRY_ARCHITECTURE = 7
IMAGE_DIRECTORY_ENTRY_GLOBALPTR = 8
IMAGE_DIRECTORY_ENTRY_TLS = 9
IMAGE_DIRECTORY_ENTRY_LOAD_CONFIG = 10
IMAGE_DIRECTORY_ENTRY_BOUND_IMPORT = 11
IMAGE_DIRECTORY_ENTRY_IAT = 12
IMAGE_DIRECTORY_ENTRY_DELAY_IMPORT = 13
IMAGE_DIRECTORY_ENTRY_COM_DESCRIPTOR = 14
IMAGE_NUMBEROF_DIRECTORY_ENTRIES = 16

DATA_DIRECTORY_NAMES = {
    IMAGE_DIRECTORY_ENTRY_EXPORT: "Export",
    IMAGE_DIRECTORY_ENTRY_IMPORT: "Import",
    IMAGE_DIRECTORY_ENTRY_RESOURCE: "Resource",
    IMAGE_DIRECTORY_ENTRY_EXCEPTION: "Exception",
    IMAGE_DIRECTORY_ENTRY_SECURITY: "Security",
    IMAGE_DIRECTORY_ENTRY_BASERELOC: "BaseReloc",
    IMAGE_DIRECTORY_ENTRY_DEBUG: "Debug",
    IMAGE_DIRECTORY_ENTRY_ARCHITECTURE: "Architecture",
    IMAGE_DIRECTORY_ENTRY_GLOBALPTR: "GlobalPtr",
    IMAGE_DIRECTORY_ENTRY_TLS: "TLS",
    IMAGE_DIRECTORY_ENTRY_LOAD_CONFIG: "LoadConfig",
    IMAGE_DIRECTORY_ENTRY_BOUND_IMPORT: "BoundImport",
    IMAGE_DIRECTORY_ENTRY_IAT: "IAT",
    IMAGE_DIRECTORY_ENTRY_DELAY_IMPORT: "DelayImport",
    IMAGE_DIRECTORY_ENTRY_COM_DESCRIPTOR: "CLR",
}


def directory_name(index: int) -> str:
    return DATA_DIRECTORY_NAMES.get(index, "Reserved")


FILE_CHARACTERISTIC_NAMES = {
    IMAGE_FILE_RELOCS_STRIPPED: "RELOCS_STRIPPED",
    IMAGE_FILE_EXECUTABLE_IMAGE: "EXECUTABLE_IMAGE",
    IMAGE_FILE_LARGE_ADDRESS_AWARE: "LARGE_ADDRESS_AWARE",
    IMAGE_FILE_32BIT_MACHINE: "32BIT_MACHINE",
    IMAGE_FILE_DEBUG_STRIPPED: "DEBUG_STRIPPED",
    IMAGE_FILE_SYSTEM: "SYSTEM",
    IMAGE_FILE_DLL: "DLL",
}

DLL_CHARACTERISTIC_NAMES = {
    IMAGE_DLLCHARACTERISTICS_HIGH_ENTROPY_VA: "HIGH_ENTROPY_VA",
    IMAGE_DLLCHARACTERISTICS_DYNAMIC_BASE: "DYNAMIC_BASE",
    IMAGE_DLLCHARACTERISTICS_NX_COMPAT: "NX_COMPAT",
    IMAGE_DLLCHARACTERISTICS_GUARD_CF: "GUARD_CF",
}

SECTION_FLAG_NAMES = {
    IMAGE_SCN_CNT_CODE: "CNT_CODE",
    IMAGE_SCN_CNT_INITIALIZED_DATA: "CNT_INITIALIZED_DATA",
    IMAGE_SCN_CNT_UNINITIALIZED_DATA: "CNT_UNINITIALIZED_DATA",
    IMAGE_SCN_MEM_DISCARDABLE: "MEM_DISCARDABLE",
    IMAGE_SCN_MEM_SHARED: "MEM_SHARED",
    IMAGE_SCN_MEM_EXECUTE: "MEM_EXECUTE",
    IMAGE_SCN_MEM_READ: "MEM_READ",
    IMAGE_SCN_MEM_WRITE: "MEM_WRITE",
}


def bit_names(value: int, names: dict[int, str]) -> list[str]:
    """Names of the bits set in value, in ascending bit order."""
    return [name for bit, name in sorted(names.items()) if value & bit]

# Structure sizes
DOS_HEADER_SIZE = 64
COFF_HEADER_SIZE = 20
DATA_DIRECTORY_SIZE = 8
SECTION_HEADER_SIZE = 40


# =============================================================================
# PE/COFF Structures
# =============================================================================


@dataclass
class DosHeader:
    """DOS MZ header (IMAGE_DOS_HEADER).

    The DOS header is 64 bytes and exists for backwards compatibility.
    The only field we really care about is e_lfanew which points to the PE signature.
    """

    e_magic: int  # "MZ" = 0x5A4D
    e_cblp: int
    e_cp: int
    e_crlc: int
    e_cparhdr: int
    e_minalloc: int
    e_maxalloc: int
    e_ss: int
    e_sp: int
    e_csum: int
    e_ip: int
    e_cs: int
    e_lfarlc: int
    e_ovno: int
    e_res: bytes  # 8 bytes reserved
    e_oemid: int
    e_oeminfo: int
    e_res2: bytes  # 20 bytes reserved
    e_lfanew: int  # Offset to PE signature

    STRUCT_FMT: ClassVar[str] = "HHHHHHHHHHHHHH8sHH20sI"
    SIZE: ClassVar[int] = DOS_HEADER_SIZE

    @classmethod
    def from_reader(cls, reader: ByteReader, offset: int = 0) -> "DosHeader":
        """Decode the DOS header at offset."""
        return cls(*reader.read_fixed(cls.STRUCT_FMT, offset))


@dataclass
class CoffHeader:
    """COFF file header (IMAGE_FILE_HEADER).

    This 20-byte header comes right after the PE signature.
    """

    Machine: int  # Target machine type (e.g., AMD64)
    NumberOfSections: int
    TimeDateStamp: int
    PointerToSymbolTable: int  # Usually 0 for executables
    NumberOfSymbols: int  # Usually 0 for executables
    SizeOfOptionalHeader: int
    Characteristics: int  # File characteristics flags

    STRUCT_FMT: ClassVar[str] = "HHIIIHH"
    SIZE: ClassVar[int] = COFF_HEADER_SIZE

    @classmethod
    def from_reader(cls, reader: ByteReader, offset: int) -> "CoffHeader":
        """Decode the COFF header at offset."""
        return cls(*reader.read_fixed(cls.STRUCT_FMT, offset))

    @property
    def machine_name(self) -> str:
        return MACHINE_NAMES.get(self.Machine, f"{self.Machine:#x}")

    @property
    def is_dll(self) -> bool:
        """Check if this is a DLL."""
        return bool(self.Characteristics & IMAGE_FILE_DLL)

    @property
    def is_executable(self) -> bool:
        """Check if this is an executable image."""
        return bool(self.Characteristics & IMAGE_FILE_EXECUTABLE_IMAGE)

    @property
    def characteristic_names(self) -> list[str]:
        return bit_names(self.Characteristics, FILE_CHARACTERISTIC_NAMES)


@dataclass
class DataDirectory:
    """Data directory entry (IMAGE_DATA_DIRECTORY).

    Each entry points to a data structure in the image.
    """

    VirtualAddress: int  # RVA of the data
    Size: int  # Size of the data

    STRUCT_FMT: ClassVar[str] = "II"
    SIZE: ClassVar[int] = DATA_DIRECTORY_SIZE

    @classmethod
    def from_reader(cls, reader: ByteReader, offset: int) -> "DataDirectory":
        return cls(*reader.read_fixed(cls.STRUCT_FMT, offset))

    @property
    def is_present(self) -> bool:
        """Check if this data directory is present."""
        return self.VirtualAddress != 0 or self.Size != 0


# Native optional header layouts (fixed part, before data directories).
# PE32 carries BaseOfData and 32-bit ImageBase/stack/heap fields;
# PE32+ drops BaseOfData and widens those fields to 64 bits.
OPTIONAL_HEADER32_FMT = "HBBIIIIIIIIIHHHHHHIIIIHHIIIIII"
OPTIONAL_HEADER32_SIZE = 96
OPTIONAL_HEADER64_FMT = "HBBIIIIIQIIHHHHHHIIIIHHQQQQII"
OPTIONAL_HEADER64_SIZE = 112


@dataclass
class OptionalHeader:
    """Canonical optional header (IMAGE_OPTIONAL_HEADER32/64).

    This header is required for executable images despite its name.
    The "optional" refers to object files which don't have it.
    BaseOfData is None for PE32+ images, which don't have the field.

    Note: Data directories are stored separately as a list.
    """

    Magic: int
    MajorLinkerVersion: int
    MinorLinkerVersion: int
    SizeOfCode: int
    SizeOfInitializedData: int
    SizeOfUninitializedData: int
    AddressOfEntryPoint: int
    BaseOfCode: int
    BaseOfData: int | None
    ImageBase: int
    SectionAlignment: int
    FileAlignment: int
    MajorOperatingSystemVersion: int
    MinorOperatingSystemVersion: int
    MajorImageVersion: int
    MinorImageVersion: int
    MajorSubsystemVersion: int
    MinorSubsystemVersion: int
    Win32VersionValue: int
    SizeOfImage: int
    SizeOfHeaders: int
    CheckSum: int
    Subsystem: int
    DllCharacteristics: int
    SizeOfStackReserve: int
    SizeOfStackCommit: int
    SizeOfHeapReserve: int
    SizeOfHeapCommit: int
    LoaderFlags: int
    NumberOfRvaAndSizes: int

    @classmethod
    def from_pe32(cls, fields: tuple) -> "OptionalHeader":
        return cls(*fields)

    @classmethod
    def from_pe32_plus(cls, fields: tuple) -> "OptionalHeader":
        # Insert the missing BaseOfData after BaseOfCode.
        return cls(*fields[:8], None, *fields[8:])

    @property
    def is_pe32_plus(self) -> bool:
        return self.Magic == IMAGE_NT_OPTIONAL_HDR64_MAGIC

    @property
    def has_aslr(self) -> bool:
        """Check if ASLR (dynamic base) is enabled."""
        return bool(self.DllCharacteristics & IMAGE_DLLCHARACTERISTICS_DYNAMIC_BASE)

    @property
    def dll_characteristic_names(self) -> list[str]:
        return bit_names(self.DllCharacteristics, DLL_CHARACTERISTIC_NAMES)


@dataclass
class SectionHeader:
    """PE/COFF section header (IMAGE_SECTION_HEADER).

    Each section header is 40 bytes.
    """

    Name: bytes  # 8 bytes, null-padded (NOT null-terminated if 8 chars)
    VirtualSize: int  # Size in memory (can be > SizeOfRawData)
    VirtualAddress: int  # RVA of section
    SizeOfRawData: int  # Size in file (rounded to FileAlignment)
    PointerToRawData: int  # File offset
    PointerToRelocations: int  # Usually 0 for executables
    PointerToLinenumbers: int  # Deprecated, usually 0
    NumberOfRelocations: int
    NumberOfLinenumbers: int
    Characteristics: int  # Section flags
    name: str = ""  # Name decoded as UTF-8 with padding removed

    STRUCT_FMT: ClassVar[str] = "8sIIIIIIHHI"
    SIZE: ClassVar[int] = SECTION_HEADER_SIZE

    @property
    def raw_end(self) -> int:
        return self.PointerToRawData + self.SizeOfRawData

    @property
    def virtual_end(self) -> int:
        return self.VirtualAddress + max(self.VirtualSize, self.SizeOfRawData)

    @property
    def flag_names(self) -> list[str]:
        return bit_names(self.Characteristics, SECTION_FLAG_NAMES)

    @property
    def is_code(self) -> bool:
        return bool(self.Characteristics & IMAGE_SCN_CNT_CODE)

    @property
    def is_executable(self) -> bool:
        return bool(self.Characteristics & IMAGE_SCN_MEM_EXECUTE)

    @property
    def is_writable(self) -> bool:
        return bool(self.Characteristics & IMAGE_SCN_MEM_WRITE)


@dataclass
class PeFile:
    """Fully decoded PE/COFF image."""

    dos_header: DosHeader
    coff_header: CoffHeader
    optional_header: OptionalHeader | None = None
    data_directories: list[DataDirectory] = field(default_factory=list)
    sections: list[SectionHeader] = field(default_factory=list)

    FORMAT: ClassVar[Format] = Format.PE

    def section_by_name(self, name: str) -> SectionHeader | None:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def directory(self, index: int) -> DataDirectory | None:
        """Data directory at an IMAGE_DIRECTORY_ENTRY_* index, if present."""
        if index < len(self.data_directories):
            entry = self.data_directories[index]
            if entry.is_present:
                return entry
        return None
