#!/usr/bin/env python3
"""
Binary inspection CLI tool.

Decodes a file, prints a plain-text summary and optionally runs the
structural verifier or exports the decoded value as msgpack.

Usage:
    python -m binscope.tools.inspect_binary <file> [--verbose] [--verify]
        [--msgpack OUT [--zstd]] [--max-depth N] [--max-records N]
"""

import argparse
import logging
import sys
from pathlib import Path

from binscope import (
    DecodeError,
    DecodeLimits,
    Format,
    decode,
    pack_decoded,
    verify_decoded,
)
from binscope.coff.types import directory_name
from binscope.elf.types import PROGRAM_TYPE_NAMES
from binscope.javaclass.types import access_flag_names


def _describe_elf(elf) -> list[str]:
    h = elf.header
    lines = [
        f"ELF{h.ident.width.bits} {h.ident.endian.name.lower()}-endian {h.type_name}",
        f"  machine: {h.e_machine:#x}  entry: {h.e_entry:#x}",
        f"  program headers: {len(elf.program_headers)}",
    ]
    for ph in elf.program_headers:
        kind = PROGRAM_TYPE_NAMES.get(ph.p_type, f"{ph.p_type:#x}")
        lines.append(
            f"    {kind:<14} off={ph.p_offset:#x} vaddr={ph.p_vaddr:#x} "
            f"filesz={ph.p_filesz:#x} memsz={ph.p_memsz:#x}"
        )
    lines.append(f"  sections: {len(elf.section_headers)}")
    for sh in elf.section_headers:
        lines.append(f"    {sh.name or '<unnamed>':<20} off={sh.sh_offset:#x} size={sh.sh_size:#x}")
    for table in elf.symbol_tables:
        lines.append(f"  {table.section}: {len(table.symbols)} symbols")
    for table in elf.relocation_tables:
        lines.append(f"  {table.section}: {len(table.entries)} relocations")
    if elf.interpreter:
        lines.append(f"  interpreter: {elf.interpreter}")
    return lines


def _describe_macho(macho) -> list[str]:
    h = macho.header
    lines = [
        f"Mach-O {h.width.bits}-bit {h.endian.name.lower()}-endian {h.filetype_name}",
        f"  cputype: {h.cputype:#x}  flags: {' '.join(h.flag_names) or '-'}",
        f"  load commands: {len(macho.load_commands)}",
    ]
    for lc in macho.load_commands:
        lines.append(f"    {lc.name:<24} size={lc.cmdsize}")
    for seg in macho.segments:
        lines.append(
            f"  segment {seg.segname or '<unnamed>'}: fileoff={seg.fileoff:#x} "
            f"filesize={seg.filesize:#x} sections={len(seg.sections)}"
        )
    return lines


def _describe_pe(pe) -> list[str]:
    coff = pe.coff_header
    lines = [
        f"PE/COFF machine={coff.machine_name} dll={coff.is_dll}",
        f"  characteristics: {' '.join(coff.characteristic_names) or '-'}",
    ]
    opt = pe.optional_header
    if opt is not None:
        kind = "PE32+" if opt.is_pe32_plus else "PE32"
        lines.append(
            f"  {kind} entry={opt.AddressOfEntryPoint:#x} image base={opt.ImageBase:#x}"
        )
        lines.append(f"  dll characteristics: {' '.join(opt.dll_characteristic_names) or '-'}")
    for i, directory in enumerate(pe.data_directories):
        if directory.is_present:
            lines.append(f"  directory {directory_name(i)}: rva={directory.VirtualAddress:#x}")
    lines.append(f"  sections: {len(pe.sections)}")
    for s in pe.sections:
        lines.append(
            f"    {s.name:<8} rva={s.VirtualAddress:#x} raw={s.PointerToRawData:#x} "
            f"size={s.SizeOfRawData:#x} {'|'.join(s.flag_names)}"
        )
    return lines


def _describe_java(cls) -> list[str]:
    return [
        f"Java class {cls.class_name} ({cls.version_name}, "
        f"{cls.major_version}.{cls.minor_version})",
        f"  super: {cls.super_class_name or '-'}",
        f"  flags: {' '.join(access_flag_names(cls.access_flags)) or '-'}",
        f"  constant pool: {cls.constant_pool.count - 1} slots",
        f"  interfaces: {len(cls.interfaces)}  fields: {len(cls.fields)}  "
        f"methods: {len(cls.methods)}  attributes: {len(cls.attributes)}",
    ]


def _describe_lua(chunk) -> list[str]:
    w = chunk.header.widths
    prototypes = list(chunk.main.walk())
    return [
        f"Lua {chunk.header.version_name} bytecode, {chunk.header.endian.name.lower()}-endian",
        f"  int={w.int_size} size_t={w.size_t_size} instruction={w.instruction_size} "
        f"number={w.number_size} integral={w.integral}",
        f"  source: {chunk.main.source or '-'}",
        f"  prototypes: {len(prototypes)}  "
        f"constants: {sum(len(p.constants) for p in prototypes)}",
    ]


def _describe_png(png) -> list[str]:
    h = png.header
    lines = [
        f"PNG {h.width}x{h.height} {h.bit_depth}-bit {h.color_type_name}",
        f"  chunks: {len(png.chunks)}",
    ]
    for chunk in png.chunks:
        crc = "ok" if chunk.crc_ok else "BAD CRC"
        lines.append(f"    {chunk.type} off={chunk.offset:#x} len={chunk.length} {crc}")
    for keyword, text in png.text:
        lines.append(f"  {keyword}: {text}")
    stamp = png.find("tIME")
    if stamp is not None:
        lines.append(f"  modified: {stamp.isoformat()}")
    phys = png.find("pHYs")
    if phys is not None:
        lines.append(
            f"  resolution: {phys.pixels_per_unit_x}x{phys.pixels_per_unit_y} "
            f"per {phys.unit_name}"
        )
    gamma = png.find("gAMA")
    if gamma is not None:
        lines.append(f"  gamma: {gamma.value:.5f}")
    return lines


def _describe_bmp(bmp) -> list[str]:
    dib = bmp.dib_header
    return [
        f"BMP {dib.width}x{dib.height} {dib.bit_count} bpp ({dib.name})",
        f"  compression: {dib.compression_name}",
        f"  palette entries: {bmp.color_table_entries}",
        f"  pixel data at {bmp.file_header.pixel_offset:#x}",
    ]


def _describe_gif(gif) -> list[str]:
    return [
        f"GIF{gif.version} {gif.screen.width}x{gif.screen.height}",
        f"  global colour table: {gif.screen.global_color_table_entries} entries",
        f"  blocks: {len(gif.blocks)}  images: {len(gif.images)}",
    ]


def _describe_pdf(pdf) -> list[str]:
    return [
        f"PDF {pdf.version}",
        f"  %%EOF marker: {'present' if pdf.has_eof_marker else 'missing'}",
    ]


def _describe_zip(archive) -> list[str]:
    lines = [f"ZIP archive, {len(archive.entries)} entries"]
    for e in archive.entries:
        lines.append(
            f"    {e.name} {e.method_name} {e.compressed_size}/{e.uncompressed_size}"
        )
    return lines


def _describe_xp3(xp3) -> list[str]:
    return [
        f"XP3 archive v{xp3.version}",
        f"  index at {xp3.index_offset:#x}, {xp3.index_size} bytes "
        f"({'zlib' if xp3.compressed else 'raw'})",
    ]


DESCRIBERS = {
    Format.ELF: _describe_elf,
    Format.MACHO: _describe_macho,
    Format.PE: _describe_pe,
    Format.JAVA_CLASS: _describe_java,
    Format.LUA: _describe_lua,
    Format.PNG: _describe_png,
    Format.BMP: _describe_bmp,
    Format.GIF: _describe_gif,
    Format.PDF: _describe_pdf,
    Format.ZIP: _describe_zip,
    Format.XP3: _describe_xp3,
}


def describe(value) -> list[str]:
    """Plain-text summary lines for a decoded value."""
    return DESCRIBERS[value.FORMAT](value)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Decode a binary container and print its structure"
    )
    parser.add_argument("file", type=Path, help="File to inspect")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--verify", action="store_true", help="Run structural consistency checks"
    )
    parser.add_argument(
        "--msgpack", type=Path, metavar="OUT", help="Write the decoded value as msgpack"
    )
    parser.add_argument(
        "--zstd", action="store_true", help="Compress --msgpack output with zstandard"
    )
    DecodeLimits.configure_argparse(parser)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )

    try:
        data = args.file.read_bytes()
        value = decode(data, DecodeLimits.from_args(args))
    except (DecodeError, OSError) as e:
        print(f"Error: {args.file}: {e}", file=sys.stderr)
        return 1

    if value.FORMAT == Format.UNKNOWN:
        print(f"{args.file}: unknown format", file=sys.stderr)
        return 1

    for line in describe(value):
        print(line)

    status = 0
    if args.verify:
        result = verify_decoded(value, len(data))
        print(result)
        if not result.passed:
            status = 1

    if args.msgpack:
        try:
            args.msgpack.write_bytes(pack_decoded(value, compress=args.zstd))
        except (OSError, RuntimeError) as e:
            print(f"Error: {args.msgpack}: {e}", file=sys.stderr)
            return 1

    return status


if __name__ == "__main__":
    sys.exit(main())
