"""
Mach-O decoder.

Load commands are variable length: each one declares its own size in a
leading (cmd, cmdsize) pair. The decoder bounds every body to its declared
size and always advances by cmdsize, so trailing padding inside a command is
skipped rather than misread as the next command. An unrecognized cmd aborts
decoding since the stream can no longer be trusted.
"""

import logging
from typing import Callable

from ..config import DEFAULT_LIMITS, DecodeLimits
from ..errors import InvalidHeaderField, InvalidMagic, UnsupportedLoadCommand
from ..reader import ByteReader
from . import types as t
from .types import (
    LOAD_COMMAND_HEADER_SIZE,
    MAGIC_LAYOUTS,
    NATIVE_HEADER,
    LoadCommand,
    LoadCommandBody,
    MachHeader,
    MachOFile,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Body decoders
# =============================================================================
#
# Each body decoder receives a reader bounded to exactly one command, with
# its cursor just past (cmd, cmdsize), plus the command's file offset.


def _lc_str(cmd_reader: ByteReader, cmd_offset: int) -> str:
    """Read an lc_str: a u32 offset, relative to the command, of a NUL-terminated string."""
    rel = cmd_reader.u32()
    return cmd_reader.cstring_at(cmd_offset + rel)


def _segment(native_cls, section_cls):
    def decode(r: ByteReader, offset: int, limits: DecodeLimits) -> t.SegmentCommand:
        native = native_cls(*r.unpack(native_cls.FMT))
        segment = t.SegmentCommand.from_native(native, offset + LOAD_COMMAND_HEADER_SIZE)
        r.require_count(segment.nsects, section_cls.SIZE, limits)
        for _ in range(segment.nsects):
            sect_offset = r.pos
            segment.sections.append(
                t.Section.from_native(section_cls(*r.unpack(section_cls.FMT)), sect_offset)
            )
        return segment

    return decode


def _symtab(r, offset, limits):
    return t.SymtabCommand(*r.unpack("IIII"))


def _dysymtab(r, offset, limits):
    return t.DysymtabCommand(*r.unpack("I" * 18))


def _dylib(r, offset, limits):
    name = _lc_str(r, offset)
    timestamp, current, compat = r.unpack("III")
    return t.DylibCommand(name, timestamp, current, compat)


def _dylinker(r, offset, limits):
    return t.DylinkerCommand(_lc_str(r, offset))


def _uuid(r, offset, limits):
    return t.UuidCommand(r.take(16))


def _entry_point(r, offset, limits):
    return t.EntryPointCommand(*r.unpack("QQ"))


def _version_min(r, offset, limits):
    return t.VersionMinCommand(*r.unpack("II"))


def _build_version(r, offset, limits):
    platform, minos, sdk, ntools = r.unpack("IIII")
    r.require_count(ntools, 8, limits)
    tools = [t.BuildToolVersion(*r.unpack("II")) for _ in range(ntools)]
    return t.BuildVersionCommand(platform, minos, sdk, tools)


def _source_version(r, offset, limits):
    return t.SourceVersionCommand(r.u64())


def _dyld_info(r, offset, limits):
    return t.DyldInfoCommand(*r.unpack("I" * 10))


def _linkedit_data(r, offset, limits):
    return t.LinkeditDataCommand(*r.unpack("II"))


def _encryption_info(r, offset, limits):
    # The 64-bit variant appends a pad word that carries no information.
    return t.EncryptionInfoCommand(*r.unpack("III"))


def _rpath(r, offset, limits):
    return t.RpathCommand(_lc_str(r, offset))


def _thread(r, offset, limits):
    return t.ThreadCommand(r.take(r.remaining))


def _linker_option(r, offset, limits):
    count = r.u32()
    r.require_count(count, 1, limits)
    options = []
    for _ in range(count):
        text = r.cstring_at(r.pos)
        options.append(text)
        r.skip(len(text.encode("utf-8")) + 1)
    return t.LinkerOptionCommand(options)


def _sub_name(r, offset, limits):
    return t.SubNameCommand(_lc_str(r, offset))


def _note(r, offset, limits):
    owner_offset = r.pos
    owner, note_offset, size = r.unpack("16sQQ")
    return t.NoteCommand(t.fixed_name(owner, owner_offset), note_offset, size)


def _routines(fmt):
    def decode(r, offset, limits):
        # reserved1..6 follow and are ignored
        return t.RoutinesCommand(*r.unpack(fmt)[:2])

    return decode


def _twolevel_hints(r, offset, limits):
    return t.TwolevelHintsCommand(*r.unpack("II"))


def _prebind_cksum(r, offset, limits):
    return t.PrebindChecksumCommand(r.u32())


def _fileset_entry(r, offset, limits):
    vmaddr, fileoff = r.unpack("QQ")
    entry_id = _lc_str(r, offset)
    return t.FilesetEntryCommand(vmaddr, fileoff, entry_id)


def _obsolete(r, offset, limits):
    return t.ObsoleteCommand(r.take(r.remaining))


BodyDecoder = Callable[[ByteReader, int, DecodeLimits], LoadCommandBody]

LOAD_COMMAND_DECODERS: dict[int, BodyDecoder] = {
    t.LC_SEGMENT: _segment(t.SegmentCommand32, t.Section32),
    t.LC_SEGMENT_64: _segment(t.SegmentCommand64, t.Section64),
    t.LC_SYMTAB: _symtab,
    t.LC_DYSYMTAB: _dysymtab,
    t.LC_LOAD_DYLIB: _dylib,
    t.LC_ID_DYLIB: _dylib,
    t.LC_LOAD_WEAK_DYLIB: _dylib,
    t.LC_REEXPORT_DYLIB: _dylib,
    t.LC_LAZY_LOAD_DYLIB: _dylib,
    t.LC_LOAD_UPWARD_DYLIB: _dylib,
    t.LC_LOAD_DYLINKER: _dylinker,
    t.LC_ID_DYLINKER: _dylinker,
    t.LC_DYLD_ENVIRONMENT: _dylinker,
    t.LC_UUID: _uuid,
    t.LC_MAIN: _entry_point,
    t.LC_VERSION_MIN_MACOSX: _version_min,
    t.LC_VERSION_MIN_IPHONEOS: _version_min,
    t.LC_VERSION_MIN_TVOS: _version_min,
    t.LC_VERSION_MIN_WATCHOS: _version_min,
    t.LC_BUILD_VERSION: _build_version,
    t.LC_SOURCE_VERSION: _source_version,
    t.LC_DYLD_INFO: _dyld_info,
    t.LC_DYLD_INFO_ONLY: _dyld_info,
    t.LC_CODE_SIGNATURE: _linkedit_data,
    t.LC_SEGMENT_SPLIT_INFO: _linkedit_data,
    t.LC_FUNCTION_STARTS: _linkedit_data,
    t.LC_DATA_IN_CODE: _linkedit_data,
    t.LC_DYLIB_CODE_SIGN_DRS: _linkedit_data,
    t.LC_LINKER_OPTIMIZATION_HINT: _linkedit_data,
    t.LC_DYLD_EXPORTS_TRIE: _linkedit_data,
    t.LC_DYLD_CHAINED_FIXUPS: _linkedit_data,
    t.LC_ENCRYPTION_INFO: _encryption_info,
    t.LC_ENCRYPTION_INFO_64: _encryption_info,
    t.LC_RPATH: _rpath,
    t.LC_THREAD: _thread,
    t.LC_UNIXTHREAD: _thread,
    t.LC_LINKER_OPTION: _linker_option,
    t.LC_SUB_FRAMEWORK: _sub_name,
    t.LC_SUB_UMBRELLA: _sub_name,
    t.LC_SUB_CLIENT: _sub_name,
    t.LC_SUB_LIBRARY: _sub_name,
    t.LC_NOTE: _note,
    t.LC_ROUTINES: _routines("IIIIIIII"),
    t.LC_ROUTINES_64: _routines("QQQQQQQQ"),
    t.LC_TWOLEVEL_HINTS: _twolevel_hints,
    t.LC_PREBIND_CKSUM: _prebind_cksum,
    t.LC_FILESET_ENTRY: _fileset_entry,
    t.LC_SYMSEG: _obsolete,
    t.LC_LOADFVMLIB: _obsolete,
    t.LC_IDFVMLIB: _obsolete,
    t.LC_IDENT: _obsolete,
    t.LC_FVMFILE: _obsolete,
    t.LC_PREPAGE: _obsolete,
    t.LC_PREBOUND_DYLIB: _obsolete,
}


# =============================================================================
# Top level
# =============================================================================


def decode_header(reader: ByteReader) -> MachHeader:
    """Decode the Mach-O header, selecting width and byte order from the magic.

    Raises:
        InvalidMagic: If the first four bytes are not a thin Mach-O magic
    """
    magic = reader.read_bytes(0, 4)
    layout = MAGIC_LAYOUTS.get(magic)
    if layout is None:
        raise InvalidMagic(f"Not a Mach-O file (magic: {magic.hex()})")
    width, endian = layout

    native_cls = NATIVE_HEADER[width]
    native = native_cls(*reader.read_fixed(native_cls.FMT, 0, endian))
    return MachHeader.from_native(width, endian, native)


def decode_load_command(
    reader: ByteReader, offset: int, limits: DecodeLimits
) -> LoadCommand:
    """Decode the load command at offset.

    Raises:
        InvalidHeaderField: If cmdsize is smaller than the (cmd, cmdsize) pair
        BoundsError: If the command extends past the end of the file
        UnsupportedLoadCommand: If cmd is not a recognized command kind
    """
    cmd, cmdsize = reader.read_fixed("II", offset)
    if cmdsize < LOAD_COMMAND_HEADER_SIZE:
        raise InvalidHeaderField(
            f"Load command at {offset:#x} has cmdsize {cmdsize} "
            f"< {LOAD_COMMAND_HEADER_SIZE}"
        )

    body_decoder = LOAD_COMMAND_DECODERS.get(cmd)
    if body_decoder is None:
        raise UnsupportedLoadCommand(cmd, offset)

    cmd_reader = reader.slice(offset, cmdsize)
    cmd_reader.seek(offset + LOAD_COMMAND_HEADER_SIZE)
    body = body_decoder(cmd_reader, offset, limits)
    return LoadCommand(cmd=cmd, cmdsize=cmdsize, offset=offset, body=body)


def decode_macho(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> MachOFile:
    """Decode a thin Mach-O image.

    Args:
        data: Complete file contents
        limits: Upper bounds on command and table counts

    Returns:
        Fully decoded MachOFile

    Raises:
        DecodeError: Any structural violation (see binscope.errors)
    """
    header_reader = ByteReader(data)
    header = decode_header(header_reader)
    reader = ByteReader(header_reader.data, endian=header.endian)
    logger.debug(
        "Mach-O %d-bit %s-endian, %d load commands",
        header.width.bits,
        header.endian.name.lower(),
        header.ncmds,
    )

    header_size = NATIVE_HEADER[header.width].SIZE
    reader.seek(header_size)
    reader.require_count(header.ncmds, LOAD_COMMAND_HEADER_SIZE, limits)

    commands = []
    offset = header_size
    for _ in range(header.ncmds):
        command = decode_load_command(reader, offset, limits)
        logger.debug("%s at %#x (%d bytes)", command.name, offset, command.cmdsize)
        commands.append(command)
        offset += command.cmdsize

    return MachOFile(header=header, load_commands=commands)
