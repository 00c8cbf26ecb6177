"""Tests for msgpack/zstandard export of decoded values."""

import msgpack
import pytest

from binscope import DecodeLimits, Format, decode, pack_decoded, unpack_decoded
from binscope.export import ZSTD_FRAME_MAGIC
from binary_test_utils import LuaLayout, lua_header, lua_prototype


class TestPackDecoded:
    """Tests for pack_decoded/unpack_decoded round trips."""

    def test_round_trip(self, sample_format: Format, sample_data: bytes):
        """Every format survives export as a tagged map."""
        record = unpack_decoded(pack_decoded(decode(sample_data)))
        assert record["format"] == sample_format.value
        assert isinstance(record["value"], dict)
        assert "_type" in record["value"]

    def test_compressed_round_trip(self, sample_data: bytes):
        """A zstd-wrapped export unpacks to the same record."""
        value = decode(sample_data)
        plain = unpack_decoded(pack_decoded(value))
        compressed = pack_decoded(value, compress=True)
        assert compressed.startswith(ZSTD_FRAME_MAGIC)
        assert unpack_decoded(compressed) == plain

    def test_export_is_deterministic(self, sample_data: bytes):
        value = decode(sample_data)
        assert pack_decoded(value) == pack_decoded(value)

    def test_elf_fields(self, sample_binaries):
        """Nested dataclasses and enums are exported by field name and value."""
        record = unpack_decoded(pack_decoded(decode(sample_binaries[Format.ELF])))
        elf = record["value"]
        assert elf["_type"] == "ElfFile"
        assert elf["header"]["ident"]["endian"] == "<"
        assert elf["header"]["ident"]["width"] == 8
        names = [s["name"] for s in elf["section_headers"]]
        assert ".symtab" in names
        assert elf["interpreter"].startswith("/lib64/")

    def test_bytes_stay_binary(self, sample_binaries):
        """Byte payloads are exported as msgpack bin, not text."""
        record = unpack_decoded(pack_decoded(decode(sample_binaries[Format.MACHO])))
        commands = record["value"]["load_commands"]
        uuid = next(lc["body"] for lc in commands if lc["body"]["_type"] == "UuidCommand")
        assert isinstance(uuid["uuid"], bytes)
        assert len(uuid["uuid"]) == 16

    def test_java_unusable_slot(self, sample_binaries):
        """The slot after a Long is exported as an Unusable entry."""
        record = unpack_decoded(pack_decoded(decode(sample_binaries[Format.JAVA_CLASS])))
        entries = record["value"]["constant_pool"]["entries"]
        # entries[0] is slot 1
        assert entries[7]["_type"] == "LongConstant"
        assert entries[8] == {"_type": "Unusable"}


class TestUnpackDecodedErrors:
    """Tests for malformed export blobs."""

    def test_garbage_raises(self):
        with pytest.raises(RuntimeError, match="Failed to unpack"):
            unpack_decoded(b"\xc1")

    def test_corrupt_zstd_raises(self):
        with pytest.raises(RuntimeError, match="Decompression failed"):
            unpack_decoded(ZSTD_FRAME_MAGIC + b"\x00" * 8)

    def test_non_map_raises(self):
        with pytest.raises(RuntimeError, match="expected dict"):
            unpack_decoded(msgpack.packb([1, 2, 3]))


class TestPackErrors:
    """Tests for values that cannot be exported."""

    def test_too_deep_raises_runtime_error(self):
        layout = LuaLayout()
        proto = lua_prototype(layout)
        for _ in range(999):
            proto = lua_prototype(layout, children=[proto])
        value = decode(lua_header(layout) + proto, DecodeLimits(max_nesting_depth=1000))
        with pytest.raises(RuntimeError, match="Failed to pack"):
            pack_decoded(value)
