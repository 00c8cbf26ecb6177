"""
Mach-O type definitions.

The header and the segment/section/routines/encryption records exist in 32-
and 64-bit shapes; each is unpacked natively and widened into a canonical
dataclass. Load command bodies form a closed tagged union keyed by the
command's cmd value.

References:
- <mach-o/loader.h>
"""

from dataclasses import dataclass, field
from typing import ClassVar, NamedTuple, Union

from ..format_detect import Format
from ..reader import AddressWidth, Endianness, decode_utf8

# =============================================================================
# Constants
# =============================================================================

MH_MAGIC = 0xFEEDFACE
MH_MAGIC_64 = 0xFEEDFACF

# Magic as it appears on disk -> (width, file byte order)
MAGIC_LAYOUTS: dict[bytes, tuple[AddressWidth, Endianness]] = {
    b"\xfe\xed\xfa\xce": (AddressWidth.WIDTH32, Endianness.BIG),
    b"\xce\xfa\xed\xfe": (AddressWidth.WIDTH32, Endianness.LITTLE),
    b"\xfe\xed\xfa\xcf": (AddressWidth.WIDTH64, Endianness.BIG),
    b"\xcf\xfa\xed\xfe": (AddressWidth.WIDTH64, Endianness.LITTLE),
}

# File types (filetype)
MH_OBJECT = 0x1
MH_EXECUTE = 0x2
MH_FVMLIB = 0x3
MH_CORE = 0x4
MH_PRELOAD = 0x5
MH_DYLIB = 0x6
MH_DYLINKER = 0x7
MH_BUNDLE = 0x8
MH_DYLIB_STUB = 0x9
MH_DSYM = 0xA
MH_KEXT_BUNDLE = 0xB
MH_FILESET = 0xC

FILE_TYPE_NAMES = {
    MH_OBJECT: "OBJECT",
    MH_EXECUTE: "EXECUTE",
    MH_FVMLIB: "FVMLIB",
    MH_CORE: "CORE",
    MH_PRELOAD: "PRELOAD",
    MH_DYLIB: "DYLIB",
    MH_DYLINKER: "DYLINKER",
    MH_BUNDLE: "BUNDLE",
    MH_DYLIB_STUB: "DYLIB_STUB",
    MH_DSYM: "DSYM",
    MH_KEXT_BUNDLE: "KEXT_BUNDLE",
    MH_FILESET: "FILESET",
}

# Header flags (flags)
MH_NOUNDEFS = 0x1
MH_INCRLINK = 0x2
MH_DYLDLINK = 0x4
MH_BINDATLOAD = 0x8
MH_PREBOUND = 0x10
MH_SPLIT_SEGS = 0x20
MH_LAZY_INIT = 0x40
MH_TWOLEVEL = 0x80
MH_FORCE_FLAT = 0x100
MH_NOMULTIDEFS = 0x200
MH_NOFIXPREBINDING = 0x400
MH_PREBINDABLE = 0x800
MH_ALLMODSBOUND = 0x1000
MH_SUBSECTIONS_VIA_SYMBOLS = 0x2000
MH_CANONICAL = 0x4000
MH_WEAK_DEFINES = 0x8000
MH_BINDS_TO_WEAK = 0x10000
MH_ALLOW_STACK_EXECUTION = 0x20000
MH_ROOT_SAFE = 0x40000
MH_SETUID_SAFE = 0x80000
MH_NO_REEXPORTED_DYLIBS = 0x100000
MH_PIE = 0x200000
MH_DEAD_STRIPPABLE_DYLIB = 0x400000
MH_HAS_TLV_DESCRIPTORS = 0x800000
MH_NO_HEAP_EXECUTION = 0x1000000
MH_APP_EXTENSION_SAFE = 0x2000000

HEADER_FLAG_NAMES = {
    MH_NOUNDEFS: "NOUNDEFS",
    MH_INCRLINK: "INCRLINK",
    MH_DYLDLINK: "DYLDLINK",
    MH_BINDATLOAD: "BINDATLOAD",
    MH_PREBOUND: "PREBOUND",
    MH_SPLIT_SEGS: "SPLIT_SEGS",
    MH_LAZY_INIT: "LAZY_INIT",
    MH_TWOLEVEL: "TWOLEVEL",
    MH_FORCE_FLAT: "FORCE_FLAT",
    MH_NOMULTIDEFS: "NOMULTIDEFS",
    MH_NOFIXPREBINDING: "NOFIXPREBINDING",
    MH_PREBINDABLE: "PREBINDABLE",
    MH_ALLMODSBOUND: "ALLMODSBOUND",
    MH_SUBSECTIONS_VIA_SYMBOLS: "SUBSECTIONS_VIA_SYMBOLS",
    MH_CANONICAL: "CANONICAL",
    MH_WEAK_DEFINES: "WEAK_DEFINES",
    MH_BINDS_TO_WEAK: "BINDS_TO_WEAK",
    MH_ALLOW_STACK_EXECUTION: "ALLOW_STACK_EXECUTION",
    MH_ROOT_SAFE: "ROOT_SAFE",
    MH_SETUID_SAFE: "SETUID_SAFE",
    MH_NO_REEXPORTED_DYLIBS: "NO_REEXPORTED_DYLIBS",
    MH_PIE: "PIE",
    MH_DEAD_STRIPPABLE_DYLIB: "DEAD_STRIPPABLE_DYLIB",
    MH_HAS_TLV_DESCRIPTORS: "HAS_TLV_DESCRIPTORS",
    MH_NO_HEAP_EXECUTION: "NO_HEAP_EXECUTION",
    MH_APP_EXTENSION_SAFE: "APP_EXTENSION_SAFE",
}

# Load command types (cmd)
LC_REQ_DYLD = 0x80000000
LC_SEGMENT = 0x1
LC_SYMTAB = 0x2
LC_SYMSEG = 0x3
LC_THREAD = 0x4
LC_UNIXTHREAD = 0x5
LC_LOADFVMLIB = 0x6
LC_IDFVMLIB = 0x7
LC_IDENT = 0x8
LC_FVMFILE = 0x9
LC_PREPAGE = 0xA
LC_DYSYMTAB = 0xB
LC_LOAD_DYLIB = 0xC
LC_ID_DYLIB = 0xD
LC_LOAD_DYLINKER = 0xE
LC_ID_DYLINKER = 0xF
LC_PREBOUND_DYLIB = 0x10
LC_ROUTINES = 0x11
LC_SUB_FRAMEWORK = 0x12
LC_SUB_UMBRELLA = 0x13
LC_SUB_CLIENT = 0x14
LC_SUB_LIBRARY = 0x15
LC_TWOLEVEL_HINTS = 0x16
LC_PREBIND_CKSUM = 0x17
LC_LOAD_WEAK_DYLIB = 0x18 | LC_REQ_DYLD
LC_SEGMENT_64 = 0x19
LC_ROUTINES_64 = 0x1A
LC_UUID = 0x1B
LC_RPATH = 0x1C | LC_REQ_DYLD
LC_CODE_SIGNATURE = 0x1D
LC_SEGMENT_SPLIT_INFO = 0x1E
LC_REEXPORT_DYLIB = 0x1F | LC_REQ_DYLD
LC_LAZY_LOAD_DYLIB = 0x20
LC_ENCRYPTION_INFO = 0x21
LC_DYLD_INFO = 0x22
LC_DYLD_INFO_ONLY = 0x22 | LC_REQ_DYLD
LC_LOAD_UPWARD_DYLIB = 0x23 | LC_REQ_DYLD
LC_VERSION_MIN_MACOSX = 0x24
LC_VERSION_MIN_IPHONEOS = 0x25
LC_FUNCTION_STARTS = 0x26
LC_DYLD_ENVIRONMENT = 0x27
LC_MAIN = 0x28 | LC_REQ_DYLD
LC_DATA_IN_CODE = 0x29
LC_SOURCE_VERSION = 0x2A
LC_DYLIB_CODE_SIGN_DRS = 0x2B
LC_ENCRYPTION_INFO_64 = 0x2C
LC_LINKER_OPTION = 0x2D
LC_LINKER_OPTIMIZATION_HINT = 0x2E
LC_VERSION_MIN_TVOS = 0x2F
LC_VERSION_MIN_WATCHOS = 0x30
LC_NOTE = 0x31
LC_BUILD_VERSION = 0x32
LC_DYLD_EXPORTS_TRIE = 0x33 | LC_REQ_DYLD
LC_DYLD_CHAINED_FIXUPS = 0x34 | LC_REQ_DYLD
LC_FILESET_ENTRY = 0x35 | LC_REQ_DYLD

LOAD_COMMAND_NAMES = {
    value: name
    for name, value in globals().items()
    if name.startswith("LC_") and name != "LC_REQ_DYLD"
}

# Every load command is at least (cmd, cmdsize)
LOAD_COMMAND_HEADER_SIZE = 8


# =============================================================================
# Native (on-disk) records
# =============================================================================


class MachHeader32(NamedTuple):
    magic: int
    cputype: int
    cpusubtype: int
    filetype: int
    ncmds: int
    sizeofcmds: int
    flags: int

    FMT = "IIIIIII"
    SIZE = 28


class MachHeader64(NamedTuple):
    magic: int
    cputype: int
    cpusubtype: int
    filetype: int
    ncmds: int
    sizeofcmds: int
    flags: int
    reserved: int

    FMT = "IIIIIIII"
    SIZE = 32


NATIVE_HEADER = {
    AddressWidth.WIDTH32: MachHeader32,
    AddressWidth.WIDTH64: MachHeader64,
}


class SegmentCommand32(NamedTuple):
    segname: bytes
    vmaddr: int
    vmsize: int
    fileoff: int
    filesize: int
    maxprot: int
    initprot: int
    nsects: int
    flags: int

    FMT = "16sIIIIIIII"  # after cmd/cmdsize


class SegmentCommand64(NamedTuple):
    segname: bytes
    vmaddr: int
    vmsize: int
    fileoff: int
    filesize: int
    maxprot: int
    initprot: int
    nsects: int
    flags: int

    FMT = "16sQQQQIIII"  # after cmd/cmdsize


class Section32(NamedTuple):
    sectname: bytes
    segname: bytes
    addr: int
    size: int
    offset: int
    align: int
    reloff: int
    nreloc: int
    flags: int
    reserved1: int
    reserved2: int

    FMT = "16s16sIIIIIIIII"
    SIZE = 68


class Section64(NamedTuple):
    sectname: bytes
    segname: bytes
    addr: int
    size: int
    offset: int
    align: int
    reloff: int
    nreloc: int
    flags: int
    reserved1: int
    reserved2: int
    reserved3: int

    FMT = "16s16sQQIIIIIIII"
    SIZE = 80


# =============================================================================
# Canonical records
# =============================================================================


def fixed_name(raw: bytes, offset: int = 0) -> str:
    """Decode a NUL-padded 16-byte name field located at offset."""
    return decode_utf8(raw.split(b"\x00", 1)[0], offset)


@dataclass
class MachHeader:
    """Mach-O header; reserved is 0 for 32-bit files."""

    width: AddressWidth
    endian: Endianness
    magic: int
    cputype: int
    cpusubtype: int
    filetype: int
    ncmds: int
    sizeofcmds: int
    flags: int
    reserved: int = 0

    @classmethod
    def from_native(
        cls,
        width: AddressWidth,
        endian: Endianness,
        native: MachHeader32 | MachHeader64,
    ) -> "MachHeader":
        return cls(width, endian, **native._asdict())

    @property
    def filetype_name(self) -> str:
        return FILE_TYPE_NAMES.get(self.filetype, f"{self.filetype:#x}")

    @property
    def flag_names(self) -> list[str]:
        return [name for bit, name in HEADER_FLAG_NAMES.items() if self.flags & bit]


@dataclass
class Section:
    sectname: str
    segname: str
    addr: int
    size: int
    offset: int
    align: int
    reloff: int
    nreloc: int
    flags: int
    reserved1: int
    reserved2: int
    reserved3: int = 0

    @classmethod
    def from_native(cls, native: Section32 | Section64, offset: int) -> "Section":
        fields = native._asdict()
        fields["sectname"] = fixed_name(native.sectname, offset)
        fields["segname"] = fixed_name(native.segname, offset + 16)
        return cls(**fields)


@dataclass
class SegmentCommand:
    segname: str
    vmaddr: int
    vmsize: int
    fileoff: int
    filesize: int
    maxprot: int
    initprot: int
    nsects: int
    flags: int
    sections: list[Section] = field(default_factory=list)

    @classmethod
    def from_native(
        cls, native: SegmentCommand32 | SegmentCommand64, offset: int
    ) -> "SegmentCommand":
        fields = native._asdict()
        fields["segname"] = fixed_name(native.segname, offset)
        return cls(**fields)


@dataclass
class SymtabCommand:
    symoff: int
    nsyms: int
    stroff: int
    strsize: int


@dataclass
class DysymtabCommand:
    ilocalsym: int
    nlocalsym: int
    iextdefsym: int
    nextdefsym: int
    iundefsym: int
    nundefsym: int
    tocoff: int
    ntoc: int
    modtaboff: int
    nmodtab: int
    extrefsymoff: int
    nextrefsyms: int
    indirectsymoff: int
    nindirectsyms: int
    extreloff: int
    nextrel: int
    locreloff: int
    nlocrel: int


@dataclass
class DylibCommand:
    name: str
    timestamp: int
    current_version: int
    compatibility_version: int


@dataclass
class DylinkerCommand:
    name: str


@dataclass
class UuidCommand:
    uuid: bytes


@dataclass
class EntryPointCommand:
    entryoff: int
    stacksize: int


@dataclass
class VersionMinCommand:
    version: int
    sdk: int


@dataclass
class BuildToolVersion:
    tool: int
    version: int


@dataclass
class BuildVersionCommand:
    platform: int
    minos: int
    sdk: int
    tools: list[BuildToolVersion] = field(default_factory=list)


@dataclass
class SourceVersionCommand:
    version: int


@dataclass
class DyldInfoCommand:
    rebase_off: int
    rebase_size: int
    bind_off: int
    bind_size: int
    weak_bind_off: int
    weak_bind_size: int
    lazy_bind_off: int
    lazy_bind_size: int
    export_off: int
    export_size: int


@dataclass
class LinkeditDataCommand:
    dataoff: int
    datasize: int


@dataclass
class EncryptionInfoCommand:
    cryptoff: int
    cryptsize: int
    cryptid: int


@dataclass
class RpathCommand:
    path: str


@dataclass
class ThreadCommand:
    state: bytes  # flavor/count/state triples, not interpreted


@dataclass
class LinkerOptionCommand:
    options: list[str] = field(default_factory=list)


@dataclass
class SubNameCommand:
    name: str


@dataclass
class NoteCommand:
    data_owner: str
    offset: int
    size: int


@dataclass
class RoutinesCommand:
    init_address: int
    init_module: int


@dataclass
class TwolevelHintsCommand:
    offset: int
    nhints: int


@dataclass
class PrebindChecksumCommand:
    cksum: int


@dataclass
class FilesetEntryCommand:
    vmaddr: int
    fileoff: int
    entry_id: str


@dataclass
class ObsoleteCommand:
    """Recognized but obsolete command kinds; body kept as raw bytes."""

    raw: bytes


LoadCommandBody = Union[
    SegmentCommand,
    SymtabCommand,
    DysymtabCommand,
    DylibCommand,
    DylinkerCommand,
    UuidCommand,
    EntryPointCommand,
    VersionMinCommand,
    BuildVersionCommand,
    SourceVersionCommand,
    DyldInfoCommand,
    LinkeditDataCommand,
    EncryptionInfoCommand,
    RpathCommand,
    ThreadCommand,
    LinkerOptionCommand,
    SubNameCommand,
    NoteCommand,
    RoutinesCommand,
    TwolevelHintsCommand,
    PrebindChecksumCommand,
    FilesetEntryCommand,
    ObsoleteCommand,
]


@dataclass
class LoadCommand:
    cmd: int
    cmdsize: int
    offset: int  # File offset of the command
    body: LoadCommandBody

    @property
    def name(self) -> str:
        return LOAD_COMMAND_NAMES.get(self.cmd, f"{self.cmd:#x}")


@dataclass
class MachOFile:
    """Fully decoded thin Mach-O image."""

    header: MachHeader
    load_commands: list[LoadCommand] = field(default_factory=list)

    FORMAT: ClassVar[Format] = Format.MACHO

    @property
    def segments(self) -> list[SegmentCommand]:
        return [lc.body for lc in self.load_commands if isinstance(lc.body, SegmentCommand)]

    def commands_of(self, cmd: int) -> list[LoadCommand]:
        return [lc for lc in self.load_commands if lc.cmd == cmd]
