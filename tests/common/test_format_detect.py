"""Tests for binary format detection edge cases.

These tests focus on signature matching and error handling in format
detection, using synthetic/minimal binary data rather than full files.
"""

import struct
from pathlib import Path

import pytest

from binscope.errors import TooShort
from binscope.format_detect import (
    DOS_MAGIC,
    ELF_MAGIC,
    GIF87A_MAGIC,
    MAGIC_SIGNATURES,
    PE_SIGNATURE,
    XP3_MAGIC,
    Format,
    detect_file_format,
    is_elf_binary,
    is_pe_binary,
    sniff,
)


def padded(prefix: bytes, size: int = 16) -> bytes:
    return prefix + b"\x00" * (size - len(prefix))


class TestSniff:
    """Tests for the sniff function."""

    @pytest.mark.parametrize(
        "prefix,expected",
        [
            (b"\x7fELF\x02\x01\x01", Format.ELF),
            (b"\xfe\xed\xfa\xce", Format.MACHO),
            (b"\xce\xfa\xed\xfe", Format.MACHO),
            (b"\xfe\xed\xfa\xcf", Format.MACHO),
            (b"\xcf\xfa\xed\xfe", Format.MACHO),
            (b"MZ\x90\x00", Format.PE),
            (b"\xca\xfe\xba\xbe\x00\x00\x00\x34", Format.JAVA_CLASS),
            (b"\x1bLua\x51", Format.LUA),
            (b"\x89PNG\r\n\x1a\n", Format.PNG),
            (b"BM", Format.BMP),
            (b"GIF87a", Format.GIF),
            (b"GIF89a", Format.GIF),
            (b"%PDF-1.4", Format.PDF),
            (b"PK\x03\x04", Format.ZIP),
            (b"XP3\r\n \n\x1a\x8bg\x01", Format.XP3),
        ],
    )
    def test_known_signatures(self, prefix: bytes, expected: Format):
        """Each registered magic maps to its format."""
        assert sniff(padded(prefix)) == expected

    def test_unknown_signature(self):
        """Unrecognized leading bytes yield Format.UNKNOWN."""
        assert sniff(b"hello, world!!!!") == Format.UNKNOWN

    def test_gif_version_must_match_exactly(self):
        """GIF88a is not a GIF signature."""
        assert sniff(padded(b"GIF88a")) == Format.UNKNOWN

    @pytest.mark.parametrize(
        "magic,fmt",
        MAGIC_SIGNATURES,
        ids=[f"{fmt.value}-{magic.hex()}" for magic, fmt in MAGIC_SIGNATURES],
    )
    def test_single_byte_change_never_matches(self, magic: bytes, fmt: Format):
        """Inverting any one byte of a signature leaves the input unrecognized."""
        for position in range(len(magic)):
            corrupted = bytearray(padded(magic))
            corrupted[position] ^= 0xFF
            assert sniff(corrupted) == Format.UNKNOWN, f"byte {position} of {magic!r}"

    def test_too_short_raises(self):
        """Fewer than 16 bytes raises TooShort, even with a valid magic."""
        with pytest.raises(TooShort, match="need at least 16"):
            sniff(ELF_MAGIC + b"\x02\x01")

    def test_exactly_sixteen_bytes(self):
        """Sixteen bytes is enough to identify a format."""
        assert sniff(padded(ELF_MAGIC)) == Format.ELF

    def test_accepts_memoryview(self):
        """Any buffer type can be sniffed."""
        assert sniff(memoryview(padded(GIF87A_MAGIC))) == Format.GIF

    def test_signatures_are_longest_first(self):
        """No signature is shadowed by a shorter one checked before it."""
        lengths = [len(magic) for magic, _ in MAGIC_SIGNATURES]
        assert lengths == sorted(lengths, reverse=True)

    def test_xp3_not_shadowed(self):
        """The 8-byte XP3 prefix is checked before any 2-byte signature."""
        assert sniff(padded(XP3_MAGIC)) == Format.XP3

    def test_pe_sniffed_without_signature(self):
        """PE is sniffed on the DOS magic alone."""
        assert sniff(padded(DOS_MAGIC)) == Format.PE


class TestDetectFileFormat:
    """Tests for detect_file_format function."""

    def test_detect_elf_format(self, tmp_path: Path):
        """Test that ELF format is correctly detected."""
        elf_file = tmp_path / "test.so"
        elf_file.write_bytes(ELF_MAGIC + b"\x02\x01\x01" + (b"\x00" * 57))
        assert detect_file_format(elf_file) == Format.ELF

    def test_detect_pe_format(self, tmp_path: Path):
        """Test that PE/COFF format is correctly detected."""
        pe_file = tmp_path / "test.dll"
        data = bytearray(256)
        data[0:2] = DOS_MAGIC
        struct.pack_into("<I", data, 0x3C, 0x80)
        data[0x80 : 0x80 + 4] = PE_SIGNATURE
        pe_file.write_bytes(data)
        assert detect_file_format(pe_file) == Format.PE

    def test_empty_file_raises(self, tmp_path: Path):
        """Test that empty file raises TooShort."""
        empty_file = tmp_path / "empty"
        empty_file.write_bytes(b"")
        with pytest.raises(TooShort):
            detect_file_format(empty_file)

    def test_unknown_format(self, tmp_path: Path):
        """Test that an unrecognized file is reported as unknown."""
        unknown = tmp_path / "notes.txt"
        unknown.write_bytes(b"just some plain text here")
        assert detect_file_format(unknown) == Format.UNKNOWN

    def test_missing_file_raises(self, tmp_path: Path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            detect_file_format(tmp_path / "missing")


class TestIsBinaryHelpers:
    """Tests for is_elf_binary and is_pe_binary."""

    def test_is_elf_binary(self, tmp_path: Path):
        """ELF files are recognized, others are not."""
        elf_file = tmp_path / "a.out"
        elf_file.write_bytes(padded(ELF_MAGIC, 64))
        other = tmp_path / "b.out"
        other.write_bytes(padded(DOS_MAGIC, 64))

        assert is_elf_binary(elf_file)
        assert not is_elf_binary(other)

    def test_is_pe_binary(self, tmp_path: Path):
        """DOS/PE files are recognized, others are not."""
        pe_file = tmp_path / "a.exe"
        pe_file.write_bytes(padded(DOS_MAGIC, 64))
        other = tmp_path / "a.so"
        other.write_bytes(padded(ELF_MAGIC, 64))

        assert is_pe_binary(pe_file)
        assert not is_pe_binary(other)

    def test_small_or_missing_files_are_false(self, tmp_path: Path):
        """Helpers return False instead of raising."""
        small = tmp_path / "small"
        small.write_bytes(ELF_MAGIC)

        assert not is_elf_binary(small)
        assert not is_pe_binary(tmp_path / "missing")
