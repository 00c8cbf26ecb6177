"""
Lua 5.1 bytecode decoding package for binscope.

- types: header, widths, constants and the FunctionPrototype tree
- decoder: decode_lua() and decode_prototype()
"""

from .decoder import decode_constant, decode_header, decode_lua, decode_prototype
from .types import (
    BooleanConstant,
    FunctionPrototype,
    LocalVariable,
    LuaChunk,
    LuaHeader,
    LuaWidths,
    NilConstant,
    NumberConstant,
    StringConstant,
)

__all__ = [
    "decode_constant",
    "decode_header",
    "decode_lua",
    "decode_prototype",
    "BooleanConstant",
    "FunctionPrototype",
    "LocalVariable",
    "LuaChunk",
    "LuaHeader",
    "LuaWidths",
    "NilConstant",
    "NumberConstant",
    "StringConstant",
]
