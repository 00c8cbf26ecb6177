"""
ELF container decoder.

Decoding proceeds in a fixed order: identification block, header, program
header table, section header table, section names, then the symbol and
relocation tables found through the section table. Every table is bounds
checked as a whole before its first record is read, and a malformed record
anywhere aborts the entire decode.
"""

import logging

from ..config import DEFAULT_LIMITS, DecodeLimits
from ..errors import (
    InvalidClass,
    InvalidEndianness,
    InvalidHeaderField,
    InvalidMagic,
)
from ..reader import AddressWidth, ByteReader, Endianness
from .types import (
    E_IDENT_SIZE,
    EI_ABIVERSION,
    EI_CLASS,
    EI_DATA,
    EI_OSABI,
    EI_VERSION,
    ELF_MAGIC,
    ELFCLASS32,
    ELFCLASS64,
    ELFDATA2LSB,
    ELFDATA2MSB,
    NATIVE_EHDR,
    NATIVE_PHDR,
    NATIVE_REL,
    NATIVE_RELA,
    NATIVE_SHDR,
    NATIVE_SYM,
    PT_INTERP,
    SHN_XINDEX,
    SHT_DYNSYM,
    SHT_NOBITS,
    SHT_REL,
    SHT_RELA,
    SHT_SYMTAB,
    ElfFile,
    ElfHeader,
    ElfIdent,
    ProgramHeader,
    Relocation,
    RelocationTable,
    SectionHeader,
    Symbol,
    SymbolTable,
)

logger = logging.getLogger(__name__)

_CLASS_TO_WIDTH = {ELFCLASS32: AddressWidth.WIDTH32, ELFCLASS64: AddressWidth.WIDTH64}
_DATA_TO_ENDIAN = {ELFDATA2LSB: Endianness.LITTLE, ELFDATA2MSB: Endianness.BIG}


def decode_ident(reader: ByteReader) -> ElfIdent:
    """Decode the 16-byte e_ident block.

    Raises:
        InvalidMagic: If the block does not start with \\x7fELF
        InvalidClass: If EI_CLASS is not ELFCLASS32/ELFCLASS64
        InvalidEndianness: If EI_DATA is not ELFDATA2LSB/ELFDATA2MSB
    """
    ident = reader.read_bytes(0, E_IDENT_SIZE)
    if ident[:4] != ELF_MAGIC:
        raise InvalidMagic(f"Not an ELF file (magic: {ident[:4].hex()})")

    width = _CLASS_TO_WIDTH.get(ident[EI_CLASS])
    if width is None:
        raise InvalidClass(f"Invalid EI_CLASS {ident[EI_CLASS]}")
    endian = _DATA_TO_ENDIAN.get(ident[EI_DATA])
    if endian is None:
        raise InvalidEndianness(f"Invalid EI_DATA {ident[EI_DATA]}")

    return ElfIdent(
        width=width,
        endian=endian,
        version=ident[EI_VERSION],
        osabi=ident[EI_OSABI],
        abiversion=ident[EI_ABIVERSION],
    )


def decode_header(reader: ByteReader, ident: ElfIdent) -> ElfHeader:
    """Decode the ELF header in its native width and widen it."""
    native_cls = NATIVE_EHDR[ident.width]
    native = native_cls(*reader.read_fixed(native_cls.FMT, E_IDENT_SIZE))
    return ElfHeader.from_native(ident, native)


def _check_entsize(what: str, entsize: int, native_size: int) -> None:
    if entsize < native_size:
        raise InvalidHeaderField(
            f"{what} entry size {entsize} is smaller than record size {native_size}"
        )


def decode_program_headers(
    reader: ByteReader, header: ElfHeader, limits: DecodeLimits
) -> list[ProgramHeader]:
    """Decode the program header table.

    Raises:
        InvalidHeaderField: If e_phentsize is smaller than the native record
        BoundsError: If the table extends past the end of the file
    """
    if header.e_phnum == 0:
        return []

    native_cls = NATIVE_PHDR[header.ident.width]
    _check_entsize("Program header", header.e_phentsize, native_cls.SIZE)
    reader.require_table(header.e_phoff, header.e_phnum, header.e_phentsize, limits)

    phdrs = []
    for i in range(header.e_phnum):
        offset = header.e_phoff + i * header.e_phentsize
        native = native_cls(*reader.read_fixed(native_cls.FMT, offset))
        phdrs.append(ProgramHeader.from_native(native))
    logger.debug("Decoded %d program headers at %#x", len(phdrs), header.e_phoff)
    return phdrs


def decode_section_headers(
    reader: ByteReader, header: ElfHeader, limits: DecodeLimits
) -> list[SectionHeader]:
    """Decode the section header table and resolve section names.

    Handles extended numbering: when e_shnum is 0 the real count lives in
    section 0's sh_size, and when e_shstrndx is SHN_XINDEX the real index
    lives in section 0's sh_link.

    Raises:
        InvalidHeaderField: If e_shentsize is smaller than the native record
        BoundsError: If the table or a name extends past the end of the file
    """
    if header.e_shoff == 0:
        return []

    native_cls = NATIVE_SHDR[header.ident.width]
    _check_entsize("Section header", header.e_shentsize, native_cls.SIZE)

    def read_one(index: int) -> SectionHeader:
        offset = header.e_shoff + index * header.e_shentsize
        return SectionHeader.from_native(
            native_cls(*reader.read_fixed(native_cls.FMT, offset))
        )

    count = header.e_shnum
    shstrndx = header.e_shstrndx
    if count == 0 or shstrndx == SHN_XINDEX:
        first = read_one(0)
        if count == 0:
            count = first.sh_size
        if shstrndx == SHN_XINDEX:
            shstrndx = first.sh_link

    reader.require_table(header.e_shoff, count, header.e_shentsize, limits)
    sections = [read_one(i) for i in range(count)]

    # An out-of-range string table index leaves every name empty.
    if 0 < shstrndx < len(sections) and sections[shstrndx].sh_type != SHT_NOBITS:
        strtab = sections[shstrndx]
        reader.check(strtab.sh_offset, strtab.sh_size)
        for section in sections:
            section.name = _string_at(reader, strtab, section.sh_name)
    else:
        logger.debug("Section name table index %d out of range", shstrndx)

    logger.debug("Decoded %d section headers at %#x", len(sections), header.e_shoff)
    return sections


def _string_at(reader: ByteReader, strtab: SectionHeader, index: int) -> str:
    return reader.cstring_at(strtab.sh_offset + index, limit=strtab.end_offset)


def _linked_strtab(
    sections: list[SectionHeader], section: SectionHeader
) -> SectionHeader | None:
    if 0 < section.sh_link < len(sections):
        return sections[section.sh_link]
    return None


def _entry_count(
    reader: ByteReader, section: SectionHeader, native_size: int, limits: DecodeLimits
) -> tuple[int, int]:
    """Validate a section holding a table and return (count, stride)."""
    stride = section.sh_entsize or native_size
    _check_entsize(f"Section {section.name!r}", stride, native_size)
    count = section.sh_size // stride
    reader.require_table(section.sh_offset, count, stride, limits)
    return count, stride


def decode_symbol_tables(
    reader: ByteReader,
    width: AddressWidth,
    sections: list[SectionHeader],
    limits: DecodeLimits,
) -> list[SymbolTable]:
    """Decode every SHT_SYMTAB and SHT_DYNSYM section with names from its linked strtab."""
    native_cls = NATIVE_SYM[width]
    tables = []
    for section in sections:
        if section.sh_type not in (SHT_SYMTAB, SHT_DYNSYM):
            continue

        count, stride = _entry_count(reader, section, native_cls.SIZE, limits)
        strtab = _linked_strtab(sections, section)
        if strtab is not None:
            reader.check(strtab.sh_offset, strtab.sh_size)

        table = SymbolTable(section=section.name)
        for i in range(count):
            offset = section.sh_offset + i * stride
            native = native_cls(*reader.read_fixed(native_cls.FMT, offset))
            name = ""
            if strtab is not None and native.st_name:
                name = _string_at(reader, strtab, native.st_name)
            table.symbols.append(Symbol.from_native(native, name))

        logger.debug("Decoded %d symbols from %s", count, section.name)
        tables.append(table)
    return tables


def decode_relocation_tables(
    reader: ByteReader,
    width: AddressWidth,
    sections: list[SectionHeader],
    limits: DecodeLimits,
) -> list[RelocationTable]:
    """Decode every SHT_REL and SHT_RELA section."""
    tables = []
    for section in sections:
        if section.sh_type == SHT_RELA:
            native_cls = NATIVE_RELA[width]
        elif section.sh_type == SHT_REL:
            native_cls = NATIVE_REL[width]
        else:
            continue

        count, stride = _entry_count(reader, section, native_cls.SIZE, limits)
        table = RelocationTable(
            section=section.name, is_rela=section.sh_type == SHT_RELA
        )
        for i in range(count):
            offset = section.sh_offset + i * stride
            native = native_cls(*reader.read_fixed(native_cls.FMT, offset))
            table.entries.append(Relocation.from_native(native, width))

        logger.debug("Decoded %d relocations from %s", count, section.name)
        tables.append(table)
    return tables


def decode_interpreter(reader: ByteReader, phdrs: list[ProgramHeader]) -> str | None:
    """Return the PT_INTERP path, if the file requests one."""
    for phdr in phdrs:
        if phdr.p_type == PT_INTERP:
            reader.check(phdr.p_offset, phdr.p_filesz)
            return reader.cstring_at(phdr.p_offset, limit=phdr.file_end)
    return None


def decode_elf(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> ElfFile:
    """Decode an ELF container.

    Args:
        data: Complete file contents
        limits: Upper bounds on table sizes

    Returns:
        Fully decoded ElfFile with 64-bit canonical records

    Raises:
        DecodeError: Any structural violation (see binscope.errors)
    """
    header_reader = ByteReader(data)
    ident = decode_ident(header_reader)
    reader = ByteReader(header_reader.data, endian=ident.endian)
    logger.debug("ELF %d-bit %s-endian", ident.width.bits, ident.endian.name.lower())

    header = decode_header(reader, ident)
    phdrs = decode_program_headers(reader, header, limits)
    sections = decode_section_headers(reader, header, limits)

    return ElfFile(
        header=header,
        program_headers=phdrs,
        section_headers=sections,
        symbol_tables=decode_symbol_tables(reader, ident.width, sections, limits),
        relocation_tables=decode_relocation_tables(
            reader, ident.width, sections, limits
        ),
        interpreter=decode_interpreter(reader, phdrs),
    )
