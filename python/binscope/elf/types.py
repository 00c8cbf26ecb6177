"""
ELF type definitions for 32- and 64-bit, little- and big-endian ELF.

Every record that exists in two on-disk shapes gets a native NamedTuple per
width plus a single canonical dataclass carrying 64-bit fields. Decoders
unpack into the native shape and widen immediately, so nothing downstream
needs to know the source width.
"""

from dataclasses import dataclass, field
from typing import ClassVar, NamedTuple

from ..format_detect import Format
from ..reader import AddressWidth, Endianness

# =============================================================================
# Constants
# =============================================================================

ELF_MAGIC = b"\x7fELF"
E_IDENT_SIZE = 16

# e_ident indices
EI_CLASS = 4
EI_DATA = 5
EI_VERSION = 6
EI_OSABI = 7
EI_ABIVERSION = 8

ELFCLASS32 = 1
ELFCLASS64 = 2
ELFDATA2LSB = 1
ELFDATA2MSB = 2

# ELF type (e_type)
ET_NONE = 0
ET_REL = 1
ET_EXEC = 2
ET_DYN = 3  # Shared object (or PIE executable)
ET_CORE = 4

# Program header types (p_type)
PT_NULL = 0
PT_LOAD = 1
PT_DYNAMIC = 2
PT_INTERP = 3
PT_NOTE = 4
PT_SHLIB = 5
PT_PHDR = 6
PT_TLS = 7
PT_GNU_EH_FRAME = 0x6474E550
PT_GNU_STACK = 0x6474E551
PT_GNU_RELRO = 0x6474E552

# Program header flags (p_flags)
PF_X = 0x1
PF_W = 0x2
PF_R = 0x4

# Section header types (sh_type)
SHT_NULL = 0
SHT_PROGBITS = 1
SHT_SYMTAB = 2
SHT_STRTAB = 3
SHT_RELA = 4
SHT_HASH = 5
SHT_DYNAMIC = 6
SHT_NOTE = 7
SHT_NOBITS = 8
SHT_REL = 9
SHT_SHLIB = 10
SHT_DYNSYM = 11

# Section flags (sh_flags)
SHF_WRITE = 0x1
SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4

# Special section indices
SHN_UNDEF = 0
SHN_XINDEX = 0xFFFF

# Symbol binding / type (st_info)
STB_LOCAL = 0
STB_GLOBAL = 1
STB_WEAK = 2
STT_NOTYPE = 0
STT_OBJECT = 1
STT_FUNC = 2
STT_SECTION = 3
STT_FILE = 4

ELF_TYPE_NAMES = {
    ET_NONE: "NONE",
    ET_REL: "REL",
    ET_EXEC: "EXEC",
    ET_DYN: "DYN",
    ET_CORE: "CORE",
}

PROGRAM_TYPE_NAMES = {
    PT_NULL: "NULL",
    PT_LOAD: "LOAD",
    PT_DYNAMIC: "DYNAMIC",
    PT_INTERP: "INTERP",
    PT_NOTE: "NOTE",
    PT_SHLIB: "SHLIB",
    PT_PHDR: "PHDR",
    PT_TLS: "TLS",
    PT_GNU_EH_FRAME: "GNU_EH_FRAME",
    PT_GNU_STACK: "GNU_STACK",
    PT_GNU_RELRO: "GNU_RELRO",
}

SECTION_TYPE_NAMES = {
    SHT_NULL: "NULL",
    SHT_PROGBITS: "PROGBITS",
    SHT_SYMTAB: "SYMTAB",
    SHT_STRTAB: "STRTAB",
    SHT_RELA: "RELA",
    SHT_HASH: "HASH",
    SHT_DYNAMIC: "DYNAMIC",
    SHT_NOTE: "NOTE",
    SHT_NOBITS: "NOBITS",
    SHT_REL: "REL",
    SHT_SHLIB: "SHLIB",
    SHT_DYNSYM: "DYNSYM",
}

SYMBOL_BIND_NAMES = {STB_LOCAL: "LOCAL", STB_GLOBAL: "GLOBAL", STB_WEAK: "WEAK"}
SYMBOL_TYPE_NAMES = {
    STT_NOTYPE: "NOTYPE",
    STT_OBJECT: "OBJECT",
    STT_FUNC: "FUNC",
    STT_SECTION: "SECTION",
    STT_FILE: "FILE",
}


# =============================================================================
# Native (on-disk) records
# =============================================================================
#
# Format strings exclude the byte-order prefix; the reader supplies it.


class Elf32Ehdr(NamedTuple):
    e_type: int
    e_machine: int
    e_version: int
    e_entry: int
    e_phoff: int
    e_shoff: int
    e_flags: int
    e_ehsize: int
    e_phentsize: int
    e_phnum: int
    e_shentsize: int
    e_shnum: int
    e_shstrndx: int

    FMT = "HHIIIIIHHHHHH"


class Elf64Ehdr(NamedTuple):
    e_type: int
    e_machine: int
    e_version: int
    e_entry: int
    e_phoff: int
    e_shoff: int
    e_flags: int
    e_ehsize: int
    e_phentsize: int
    e_phnum: int
    e_shentsize: int
    e_shnum: int
    e_shstrndx: int

    FMT = "HHIQQQIHHHHHH"


class Elf32Phdr(NamedTuple):
    p_type: int
    p_offset: int
    p_vaddr: int
    p_paddr: int
    p_filesz: int
    p_memsz: int
    p_flags: int
    p_align: int

    FMT = "IIIIIIII"
    SIZE = 32


class Elf64Phdr(NamedTuple):
    # p_flags moved up for alignment in the 64-bit layout
    p_type: int
    p_flags: int
    p_offset: int
    p_vaddr: int
    p_paddr: int
    p_filesz: int
    p_memsz: int
    p_align: int

    FMT = "IIQQQQQQ"
    SIZE = 56


class Elf32Shdr(NamedTuple):
    sh_name: int
    sh_type: int
    sh_flags: int
    sh_addr: int
    sh_offset: int
    sh_size: int
    sh_link: int
    sh_info: int
    sh_addralign: int
    sh_entsize: int

    FMT = "IIIIIIIIII"
    SIZE = 40


class Elf64Shdr(NamedTuple):
    sh_name: int
    sh_type: int
    sh_flags: int
    sh_addr: int
    sh_offset: int
    sh_size: int
    sh_link: int
    sh_info: int
    sh_addralign: int
    sh_entsize: int

    FMT = "IIQQQQIIQQ"
    SIZE = 64


class Elf32Sym(NamedTuple):
    st_name: int
    st_value: int
    st_size: int
    st_info: int
    st_other: int
    st_shndx: int

    FMT = "IIIBBH"
    SIZE = 16


class Elf64Sym(NamedTuple):
    st_name: int
    st_info: int
    st_other: int
    st_shndx: int
    st_value: int
    st_size: int

    FMT = "IBBHQQ"
    SIZE = 24


class Elf32Rel(NamedTuple):
    r_offset: int
    r_info: int

    FMT = "II"
    SIZE = 8


class Elf32Rela(NamedTuple):
    r_offset: int
    r_info: int
    r_addend: int

    FMT = "IIi"  # r_addend is signed
    SIZE = 12


class Elf64Rel(NamedTuple):
    r_offset: int
    r_info: int

    FMT = "QQ"
    SIZE = 16


class Elf64Rela(NamedTuple):
    r_offset: int
    r_info: int
    r_addend: int

    FMT = "QQq"  # r_addend is signed
    SIZE = 24


# Native record selection, resolved once per decode from the class byte.
NATIVE_EHDR = {AddressWidth.WIDTH32: Elf32Ehdr, AddressWidth.WIDTH64: Elf64Ehdr}
NATIVE_PHDR = {AddressWidth.WIDTH32: Elf32Phdr, AddressWidth.WIDTH64: Elf64Phdr}
NATIVE_SHDR = {AddressWidth.WIDTH32: Elf32Shdr, AddressWidth.WIDTH64: Elf64Shdr}
NATIVE_SYM = {AddressWidth.WIDTH32: Elf32Sym, AddressWidth.WIDTH64: Elf64Sym}
NATIVE_REL = {AddressWidth.WIDTH32: Elf32Rel, AddressWidth.WIDTH64: Elf64Rel}
NATIVE_RELA = {AddressWidth.WIDTH32: Elf32Rela, AddressWidth.WIDTH64: Elf64Rela}


# =============================================================================
# Canonical records
# =============================================================================


@dataclass
class ElfIdent:
    """Decoded e_ident block."""

    width: AddressWidth
    endian: Endianness
    version: int
    osabi: int
    abiversion: int


@dataclass
class ElfHeader:
    """ELF file header with every address/offset widened to 64 bits."""

    ident: ElfIdent
    e_type: int
    e_machine: int
    e_version: int
    e_entry: int  # Entry point virtual address
    e_phoff: int  # Program header table offset
    e_shoff: int  # Section header table offset
    e_flags: int
    e_ehsize: int
    e_phentsize: int
    e_phnum: int
    e_shentsize: int
    e_shnum: int
    e_shstrndx: int

    @classmethod
    def from_native(cls, ident: ElfIdent, native: Elf32Ehdr | Elf64Ehdr) -> "ElfHeader":
        return cls(ident, *native)

    @property
    def type_name(self) -> str:
        return ELF_TYPE_NAMES.get(self.e_type, f"{self.e_type:#x}")

    @property
    def is_pie_or_shared(self) -> bool:
        return self.e_type == ET_DYN


@dataclass
class ProgramHeader:
    """Program header (segment) in canonical field order."""

    p_type: int
    p_flags: int
    p_offset: int
    p_vaddr: int
    p_paddr: int
    p_filesz: int
    p_memsz: int
    p_align: int

    @classmethod
    def from_native(cls, native: Elf32Phdr | Elf64Phdr) -> "ProgramHeader":
        # Field names are shared, so widening is a by-name copy.
        return cls(**native._asdict())

    @property
    def is_load(self) -> bool:
        return self.p_type == PT_LOAD

    @property
    def file_end(self) -> int:
        return self.p_offset + self.p_filesz

    @property
    def vaddr_end(self) -> int:
        return self.p_vaddr + self.p_memsz


@dataclass
class SectionHeader:
    """Section header with its resolved name."""

    sh_name: int  # Offset into .shstrtab
    sh_type: int
    sh_flags: int
    sh_addr: int
    sh_offset: int
    sh_size: int
    sh_link: int
    sh_info: int
    sh_addralign: int
    sh_entsize: int
    name: str = ""

    @classmethod
    def from_native(cls, native: Elf32Shdr | Elf64Shdr) -> "SectionHeader":
        return cls(**native._asdict())

    @property
    def occupies_file(self) -> bool:
        return self.sh_type not in (SHT_NULL, SHT_NOBITS)

    @property
    def end_offset(self) -> int:
        return self.sh_offset + self.sh_size


@dataclass
class Symbol:
    """Symbol table entry with its resolved name."""

    st_name: int
    st_value: int
    st_size: int
    st_info: int
    st_other: int
    st_shndx: int
    name: str = ""

    @classmethod
    def from_native(cls, native: Elf32Sym | Elf64Sym, name: str = "") -> "Symbol":
        return cls(name=name, **native._asdict())

    @property
    def bind(self) -> int:
        return self.st_info >> 4

    @property
    def type(self) -> int:
        return self.st_info & 0xF


@dataclass
class Relocation:
    """REL or RELA entry with r_info already split for the source width."""

    r_offset: int
    sym: int  # Symbol table index
    type: int  # Relocation type (architecture-specific)
    r_addend: int | None = None  # None for REL entries

    # r_info layout: (symbol shift, type mask) per width
    INFO_SPLIT: ClassVar[dict[AddressWidth, tuple[int, int]]] = {
        AddressWidth.WIDTH32: (8, 0xFF),
        AddressWidth.WIDTH64: (32, 0xFFFFFFFF),
    }

    @classmethod
    def from_native(
        cls,
        native: Elf32Rel | Elf32Rela | Elf64Rel | Elf64Rela,
        width: AddressWidth,
    ) -> "Relocation":
        shift, mask = cls.INFO_SPLIT[width]
        return cls(
            r_offset=native.r_offset,
            sym=native.r_info >> shift,
            type=native.r_info & mask,
            r_addend=getattr(native, "r_addend", None),
        )


@dataclass
class SymbolTable:
    """Symbols from one SHT_SYMTAB or SHT_DYNSYM section."""

    section: str
    symbols: list[Symbol] = field(default_factory=list)


@dataclass
class RelocationTable:
    """Entries from one SHT_REL or SHT_RELA section."""

    section: str
    is_rela: bool
    entries: list[Relocation] = field(default_factory=list)


@dataclass
class ElfFile:
    """Fully decoded ELF container."""

    header: ElfHeader
    program_headers: list[ProgramHeader] = field(default_factory=list)
    section_headers: list[SectionHeader] = field(default_factory=list)
    symbol_tables: list[SymbolTable] = field(default_factory=list)
    relocation_tables: list[RelocationTable] = field(default_factory=list)
    interpreter: str | None = None

    FORMAT: ClassVar[Format] = Format.ELF

    def section_by_name(self, name: str) -> SectionHeader | None:
        for section in self.section_headers:
            if section.name == name:
                return section
        return None
