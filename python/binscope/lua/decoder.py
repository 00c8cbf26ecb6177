"""
Lua 5.1 bytecode decoder.

Decodes the chunk header, then the main function prototype tree in file
order. Each nested prototype is decoded completely before its parent
reads its own line info, locals and upvalue names.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from ..config import DEFAULT_LIMITS, DecodeLimits
from ..errors import (
    InvalidEndianness,
    InvalidHeaderField,
    InvalidLuaConstantTag,
    InvalidMagic,
    NestingTooDeep,
)
from ..reader import ByteReader, Endianness, decode_utf8
from .types import (
    FLOAT_NUMBER_WIDTHS,
    LUA_BIG_ENDIAN,
    LUA_LITTLE_ENDIAN,
    LUA_MAGIC,
    LUA_TBOOLEAN,
    LUA_TNIL,
    LUA_TNUMBER,
    LUA_TSTRING,
    LUA_VERSION_51,
    VALID_WIDTHS,
    BooleanConstant,
    FunctionPrototype,
    LocalVariable,
    LuaChunk,
    LuaConstant,
    LuaHeader,
    LuaWidths,
    NilConstant,
    NumberConstant,
    StringConstant,
)

logger = logging.getLogger(__name__)


def decode_header(reader: ByteReader) -> LuaHeader:
    """Decode and validate the 12-byte chunk header at offset 0.

    Sets reader.endian from the header and leaves the cursor after it.

    Raises:
        InvalidMagic: If the chunk does not start with ESC "Lua"
        InvalidHeaderField: On an unsupported version or width
        InvalidEndianness: If the endianness byte is not 0 or 1
    """
    magic = reader.read_bytes(0, len(LUA_MAGIC))
    if magic != LUA_MAGIC:
        raise InvalidMagic(f"Not a Lua chunk (bad magic: {magic!r})")

    (
        version,
        fmt,
        endianness,
        int_size,
        size_t_size,
        instruction_size,
        number_size,
        integral,
    ) = reader.read_fixed("8B", len(LUA_MAGIC))
    reader.seek(len(LUA_MAGIC) + 8)

    if version != LUA_VERSION_51:
        raise InvalidHeaderField(f"Unsupported Lua version {version:#x}")

    if endianness == LUA_LITTLE_ENDIAN:
        endian = Endianness.LITTLE
    elif endianness == LUA_BIG_ENDIAN:
        endian = Endianness.BIG
    else:
        raise InvalidEndianness(f"Invalid Lua endianness byte {endianness}")

    for name, width in (
        ("int_size", int_size),
        ("size_t_size", size_t_size),
        ("instruction_size", instruction_size),
        ("number_size", number_size),
    ):
        if width not in VALID_WIDTHS:
            raise InvalidHeaderField(f"Invalid {name} {width}")
    if not integral and number_size not in FLOAT_NUMBER_WIDTHS:
        raise InvalidHeaderField(f"Invalid floating-point number_size {number_size}")

    reader.endian = endian
    return LuaHeader(
        version=version,
        format=fmt,
        endian=endian,
        widths=LuaWidths(
            int_size=int_size,
            size_t_size=size_t_size,
            instruction_size=instruction_size,
            number_size=number_size,
            integral=bool(integral),
        ),
    )


def read_string(reader: ByteReader, widths: LuaWidths) -> str | None:
    """Read a size_t-prefixed string whose length counts the trailing NUL."""
    offset = reader.pos + widths.size_t_size
    raw = reader.length_prefixed(widths.size_t_size)
    if not raw:
        return None
    return decode_utf8(raw[:-1], offset)


def _read_count(
    reader: ByteReader, widths: LuaWidths, min_size: int, limits: DecodeLimits
) -> int:
    count = reader.uint(widths.int_size)
    reader.require_count(count, min_size, limits)
    return count


def _decode_boolean(reader: ByteReader, widths: LuaWidths) -> BooleanConstant:
    offset = reader.pos
    value = reader.u8()
    if value not in (0, 1):
        raise InvalidHeaderField(f"Invalid boolean byte {value} at offset {offset:#x}")
    return BooleanConstant(bool(value))


def _decode_number(reader: ByteReader, widths: LuaWidths) -> NumberConstant:
    if widths.integral:
        return NumberConstant(reader.sint(widths.number_size))
    return NumberConstant(reader.float_of(widths.number_size))


CONSTANT_DECODERS: dict[int, Callable[[ByteReader, LuaWidths], LuaConstant]] = {
    LUA_TNIL: lambda r, w: NilConstant(),
    LUA_TBOOLEAN: _decode_boolean,
    LUA_TNUMBER: _decode_number,
    LUA_TSTRING: lambda r, w: StringConstant(read_string(r, w)),
}


def decode_constant(reader: ByteReader, widths: LuaWidths) -> LuaConstant:
    """Decode one tagged constant at the cursor.

    Raises:
        InvalidLuaConstantTag: If the tag is not nil, boolean, number or string
    """
    offset = reader.pos
    tag = reader.u8()
    decoder = CONSTANT_DECODERS.get(tag)
    if decoder is None:
        raise InvalidLuaConstantTag(tag, offset)
    return decoder(reader, widths)


@dataclass
class _OpenPrototype:
    """A prototype whose nested prototypes are still being decoded."""

    prototype: FunctionPrototype
    children_left: int


def _decode_prototype_head(
    reader: ByteReader, widths: LuaWidths, depth: int, limits: DecodeLimits
) -> _OpenPrototype:
    """Decode a prototype up to and including its nested prototype count."""
    if depth > limits.max_nesting_depth:
        raise NestingTooDeep(depth, limits.max_nesting_depth)

    start = reader.pos
    source = read_string(reader, widths)
    line_defined = reader.sint(widths.int_size)
    last_line_defined = reader.sint(widths.int_size)
    num_upvalues, num_params, is_vararg, max_stack_size = reader.unpack("4B")

    instruction_count = reader.uint(widths.int_size)
    reader.skip(instruction_count * widths.instruction_size)

    constant_count = _read_count(reader, widths, 1, limits)
    constants = [decode_constant(reader, widths) for _ in range(constant_count)]

    child_count = _read_count(reader, widths, widths.min_prototype_size, limits)
    logger.debug(
        "Lua prototype at %#x depth %d: %d instructions, %d constants, %d nested",
        start,
        depth,
        instruction_count,
        constant_count,
        child_count,
    )
    prototype = FunctionPrototype(
        source=source,
        line_defined=line_defined,
        last_line_defined=last_line_defined,
        num_upvalues=num_upvalues,
        num_params=num_params,
        is_vararg=is_vararg,
        max_stack_size=max_stack_size,
        instruction_count=instruction_count,
        constants=constants,
    )
    return _OpenPrototype(prototype, child_count)


def _decode_prototype_tail(
    reader: ByteReader,
    widths: LuaWidths,
    prototype: FunctionPrototype,
    limits: DecodeLimits,
) -> None:
    """Decode the debug tables that follow a prototype's nested prototypes."""
    line_count = _read_count(reader, widths, widths.int_size, limits)
    prototype.line_info = [reader.sint(widths.int_size) for _ in range(line_count)]

    local_size = widths.size_t_size + 2 * widths.int_size
    local_count = _read_count(reader, widths, local_size, limits)
    for _ in range(local_count):
        name = read_string(reader, widths)
        start_pc = reader.sint(widths.int_size)
        end_pc = reader.sint(widths.int_size)
        prototype.locals.append(LocalVariable(name, start_pc, end_pc))

    upvalue_count = _read_count(reader, widths, widths.size_t_size, limits)
    prototype.upvalue_names = [read_string(reader, widths) for _ in range(upvalue_count)]


def decode_prototype(
    reader: ByteReader,
    widths: LuaWidths,
    depth: int = 0,
    limits: DecodeLimits = DEFAULT_LIMITS,
) -> FunctionPrototype:
    """Decode a function prototype and all of its nested prototypes.

    The tree is walked with an explicit stack rather than recursion, so
    max_nesting_depth is the only bound on how deep a chunk may nest.

    Args:
        reader: Reader with the cursor at the prototype
        widths: Field widths from the chunk header
        depth: Nesting level of this prototype (0 for the main function)
        limits: Nesting depth and count ceilings

    Raises:
        NestingTooDeep: If any prototype sits deeper than limits.max_nesting_depth
        DecodeError: Any other structural violation
    """
    root = _decode_prototype_head(reader, widths, depth, limits)
    stack = [root]
    while stack:
        top = stack[-1]
        if top.children_left:
            top.children_left -= 1
            child = _decode_prototype_head(reader, widths, depth + len(stack), limits)
            top.prototype.prototypes.append(child.prototype)
            stack.append(child)
        else:
            _decode_prototype_tail(reader, widths, top.prototype, limits)
            stack.pop()
    return root.prototype


def decode_lua(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> LuaChunk:
    """Decode a Lua 5.1 bytecode chunk.

    Args:
        data: Complete file contents
        limits: Nesting depth and count ceilings

    Returns:
        LuaChunk with the header and the main function prototype
    """
    reader = ByteReader(data)
    header = decode_header(reader)
    logger.debug(
        "Lua %s chunk, %s-endian, int=%d size_t=%d instruction=%d number=%d",
        header.version_name,
        header.endian.name.lower(),
        header.widths.int_size,
        header.widths.size_t_size,
        header.widths.instruction_size,
        header.widths.number_size,
    )
    main = decode_prototype(reader, header.widths, 0, limits)
    return LuaChunk(header=header, main=main)
