"""
Lua 5.1 bytecode type definitions.

A chunk is a header followed by one function prototype; each prototype owns
its nested prototypes outright. Every integer and size field in the tree has
a width fixed once by the header, carried around as LuaWidths.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Union

from ..format_detect import Format
from ..reader import Endianness, same_number

LUA_MAGIC = b"\x1bLua"
LUA_VERSION_51 = 0x51
LUA_HEADER_SIZE = 12

# Endianness byte in the header
LUA_BIG_ENDIAN = 0
LUA_LITTLE_ENDIAN = 1

# Constant tags
LUA_TNIL = 0
LUA_TBOOLEAN = 1
LUA_TNUMBER = 3
LUA_TSTRING = 4

VALID_WIDTHS = frozenset({1, 2, 4, 8})
FLOAT_NUMBER_WIDTHS = frozenset({4, 8})


@dataclass(frozen=True)
class LuaWidths:
    """Field widths declared by the chunk header."""

    int_size: int
    size_t_size: int
    instruction_size: int
    number_size: int
    integral: bool  # lua_Number is an integer type

    @property
    def min_prototype_size(self) -> int:
        # Empty source name, two line numbers, four flag bytes and six counts
        return self.size_t_size + 2 * self.int_size + 4 + 6 * self.int_size


@dataclass
class LuaHeader:
    version: int
    format: int
    endian: Endianness
    widths: LuaWidths

    @property
    def version_name(self) -> str:
        return f"{self.version >> 4}.{self.version & 0xF}"


@dataclass
class NilConstant:
    TAG: ClassVar[int] = LUA_TNIL


@dataclass
class BooleanConstant:
    value: bool

    TAG: ClassVar[int] = LUA_TBOOLEAN


@dataclass
class NumberConstant:
    value: float | int

    TAG: ClassVar[int] = LUA_TNUMBER

    def __eq__(self, other):
        if other.__class__ is not self.__class__:
            return NotImplemented
        return same_number(self.value, other.value)


@dataclass
class StringConstant:
    value: str | None  # None for a zero-length (absent) string

    TAG: ClassVar[int] = LUA_TSTRING


LuaConstant = Union[NilConstant, BooleanConstant, NumberConstant, StringConstant]


@dataclass
class LocalVariable:
    name: str | None
    start_pc: int
    end_pc: int


@dataclass
class FunctionPrototype:
    """One compiled Lua function and the functions nested in it.

    Only the top-level prototype normally carries a source name; nested
    ones store a zero length and decode to None.
    """

    source: str | None
    line_defined: int
    last_line_defined: int
    num_upvalues: int
    num_params: int
    is_vararg: int
    max_stack_size: int
    instruction_count: int  # Instructions are skipped, not decoded
    constants: list[LuaConstant] = field(default_factory=list)
    prototypes: list["FunctionPrototype"] = field(default_factory=list)
    line_info: list[int] = field(default_factory=list)
    locals: list[LocalVariable] = field(default_factory=list)
    upvalue_names: list[str | None] = field(default_factory=list)

    def walk(self):
        """Yield this prototype and all nested ones, depth first."""
        stack = [self]
        while stack:
            prototype = stack.pop()
            yield prototype
            stack.extend(reversed(prototype.prototypes))


@dataclass
class LuaChunk:
    header: LuaHeader
    main: FunctionPrototype

    FORMAT: ClassVar[Format] = Format.LUA
