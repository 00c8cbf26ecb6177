"""Tests for Lua 5.1 bytecode decoding."""

import math
import struct
import sys

import pytest

from binscope.config import DecodeLimits
from binscope.errors import (
    BoundsError,
    InvalidEndianness,
    InvalidHeaderField,
    InvalidLuaConstantTag,
    InvalidMagic,
    LimitExceeded,
    NestingTooDeep,
)
from binscope.lua import (
    BooleanConstant,
    LocalVariable,
    LuaWidths,
    NilConstant,
    NumberConstant,
    StringConstant,
    decode_lua,
)
from binscope.lua.decoder import read_string
from binscope.reader import ByteReader, Endianness
from binary_test_utils import LuaLayout, build_lua, lua_header, lua_prototype

DEFAULT = LuaLayout()

# With the default layout and no source name: header, source length, two
# line numbers, four flag bytes, instruction count and one instruction.
FIRST_CONSTANT_COUNT_OFFSET = 12 + 8 + 8 + 4 + 4 + 4
FIRST_CONSTANT_OFFSET = FIRST_CONSTANT_COUNT_OFFSET + 4


def nested_chunk(levels: int, layout: LuaLayout = DEFAULT) -> bytes:
    """A chain of prototypes, each with exactly one child, levels deep."""
    proto = lua_prototype(layout)
    for _ in range(levels - 1):
        proto = lua_prototype(layout, children=[proto])
    return lua_header(layout) + proto


class TestDecodeLua:
    """Tests for decode_lua on well-formed chunks."""

    @pytest.fixture
    def chunk(self):
        return decode_lua(build_lua())

    def test_header(self, chunk):
        header = chunk.header
        assert header.version_name == "5.1"
        assert header.endian == Endianness.LITTLE
        assert header.widths == LuaWidths(4, 8, 4, 8, False)

    def test_main_prototype(self, chunk):
        main = chunk.main
        assert main.source == "@hello.lua"
        assert main.instruction_count == 2
        assert main.is_vararg == 2
        assert main.line_info == [1, 1]
        assert main.constants == [
            StringConstant("print"),
            StringConstant("hello"),
            NumberConstant(42.0),
            BooleanConstant(True),
            NilConstant(),
        ]

    def test_nested_prototypes(self, chunk):
        """Children are decoded in order and own their own tables."""
        first, second = chunk.main.prototypes
        assert first.source is None
        assert (first.line_defined, first.last_line_defined) == (2, 4)
        assert first.num_params == 1
        assert first.constants == [StringConstant("x")]
        assert first.locals == [LocalVariable("x", 0, 1)]
        assert second.num_upvalues == 1
        assert second.upvalue_names == ["counter"]
        assert second.line_info == [5]

    def test_walk(self, chunk):
        assert len(list(chunk.main.walk())) == 3

    def test_big_endian(self):
        chunk = decode_lua(build_lua(LuaLayout(endian=">")))
        assert chunk.header.endian == Endianness.BIG
        assert chunk.main.source == "@hello.lua"
        assert chunk.main.constants[2] == NumberConstant(42.0)
        assert chunk.main.prototypes[1].upvalue_names == ["counter"]

    def test_integral_numbers(self):
        """An integral header turns numbers into signed integers of number_size."""
        layout = LuaLayout(number_size=4, integral=True)
        chunk = decode_lua(build_lua(layout))
        value = chunk.main.constants[2].value
        assert value == 42
        assert isinstance(value, int)

    def test_narrow_widths(self):
        layout = LuaLayout(int_size=2, size_t_size=4, number_size=4)
        chunk = decode_lua(build_lua(layout))
        assert chunk.main.constants[1] == StringConstant("hello")
        assert chunk.main.prototypes[0].locals == [LocalVariable("x", 0, 1)]

    def test_negative_line_numbers(self):
        layout = DEFAULT
        proto = lua_prototype(layout, line_info=[-1, 7])
        chunk = decode_lua(lua_header(layout) + proto)
        assert chunk.main.line_info == [-1, 7]

    def test_zero_length_string_is_absent(self):
        widths = LuaWidths(4, 8, 4, 8, False)
        assert read_string(ByteReader(bytes(8)), widths) is None
        assert read_string(ByteReader(struct.pack("<Q", 1) + b"\x00"), widths) == ""

    def test_nan_constant_is_stable(self):
        """Decoding a NaN constant twice gives equal chunks."""
        data = lua_header(DEFAULT) + lua_prototype(DEFAULT, constants=[float("nan")])
        first, second = decode_lua(data), decode_lua(data)
        assert math.isnan(first.main.constants[0].value)
        assert first == second

    def test_numbers_compare_by_bit_pattern(self):
        assert NumberConstant(0.0) != NumberConstant(-0.0)
        assert NumberConstant(1.5) == NumberConstant(1.5)
        assert NumberConstant(1) != NumberConstant(1.0)

    def test_constants_stay_with_their_prototype(self):
        """Each prototype at every level owns exactly its own constants."""
        layout = DEFAULT
        grandchild = lua_prototype(layout, constants=["grandchild", 3.0])
        first = lua_prototype(layout, constants=["first"], children=[grandchild])
        second = lua_prototype(layout, constants=["second", True])
        main = lua_prototype(layout, constants=["main", None], children=[first, second])
        chunk = decode_lua(lua_header(layout) + main)

        assert chunk.main.constants == [StringConstant("main"), NilConstant()]
        decoded_first, decoded_second = chunk.main.prototypes
        assert decoded_first.constants == [StringConstant("first")]
        assert decoded_second.constants == [StringConstant("second"), BooleanConstant(True)]
        assert decoded_second.prototypes == []
        (decoded_grandchild,) = decoded_first.prototypes
        assert decoded_grandchild.constants == [
            StringConstant("grandchild"),
            NumberConstant(3.0),
        ]
        assert decoded_grandchild.prototypes == []


class TestLuaNesting:
    """Tests for the prototype nesting limit."""

    def test_within_limit(self):
        chunk = decode_lua(nested_chunk(3), DecodeLimits(max_nesting_depth=2))
        assert len(list(chunk.main.walk())) == 3

    def test_too_deep(self):
        with pytest.raises(NestingTooDeep) as exc_info:
            decode_lua(nested_chunk(3), DecodeLimits(max_nesting_depth=1))
        assert exc_info.value.depth == 2
        assert exc_info.value.limit == 1

    def test_main_only_at_zero(self):
        """The main function itself sits at depth 0."""
        decode_lua(nested_chunk(1), DecodeLimits(max_nesting_depth=0))
        with pytest.raises(NestingTooDeep):
            decode_lua(nested_chunk(2), DecodeLimits(max_nesting_depth=0))

    def test_deeper_than_interpreter_stack(self):
        """Nesting depth is bounded only by the limit, not by the call stack."""
        levels = sys.getrecursionlimit() + 500
        chunk = decode_lua(nested_chunk(levels), DecodeLimits(max_nesting_depth=levels))
        assert sum(1 for _ in chunk.main.walk()) == levels

    def test_limit_checked_past_interpreter_stack(self):
        levels = sys.getrecursionlimit() + 500
        with pytest.raises(NestingTooDeep) as exc_info:
            decode_lua(nested_chunk(levels), DecodeLimits(max_nesting_depth=levels - 2))
        assert exc_info.value.depth == levels - 1

    def test_walk_is_depth_first(self):
        chunk = decode_lua(build_lua())
        first, second = chunk.main.prototypes
        assert list(chunk.main.walk()) == [chunk.main, first, second]


class TestLuaErrors:
    """Tests for malformed chunks."""

    def test_bad_magic(self):
        data = bytearray(build_lua())
        data[1] = ord("l")
        with pytest.raises(InvalidMagic):
            decode_lua(data)

    def test_unsupported_version(self):
        with pytest.raises(InvalidHeaderField, match="version 0x52"):
            decode_lua(lua_header(DEFAULT, version=0x52) + lua_prototype(DEFAULT))

    def test_bad_endianness_byte(self):
        data = bytearray(build_lua())
        data[6] = 2
        with pytest.raises(InvalidEndianness):
            decode_lua(data)

    def test_bad_int_width(self):
        data = bytearray(build_lua())
        data[7] = 3
        with pytest.raises(InvalidHeaderField, match="int_size"):
            decode_lua(data)

    def test_bad_float_width(self):
        data = bytearray(build_lua())
        data[10] = 2
        with pytest.raises(InvalidHeaderField, match="floating-point"):
            decode_lua(data)

    def test_unknown_constant_tag(self):
        data = bytearray(lua_header(DEFAULT) + lua_prototype(DEFAULT, constants=[None]))
        data[FIRST_CONSTANT_OFFSET] = 2
        with pytest.raises(InvalidLuaConstantTag) as exc_info:
            decode_lua(data)
        assert exc_info.value.tag == 2
        assert exc_info.value.offset == FIRST_CONSTANT_OFFSET

    def test_bad_boolean_byte(self):
        data = bytearray(lua_header(DEFAULT) + lua_prototype(DEFAULT, constants=[True]))
        data[FIRST_CONSTANT_OFFSET + 1] = 2
        with pytest.raises(InvalidHeaderField, match="boolean"):
            decode_lua(data)

    def test_hostile_constant_count(self):
        data = bytearray(lua_header(DEFAULT) + lua_prototype(DEFAULT))
        struct.pack_into("<I", data, FIRST_CONSTANT_COUNT_OFFSET, 0xFFFFFFFF)
        with pytest.raises(LimitExceeded):
            decode_lua(data)

    def test_truncated(self):
        with pytest.raises(BoundsError):
            decode_lua(build_lua()[:-1])
