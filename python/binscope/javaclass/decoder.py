"""
Java class file decoder.

Reads the big-endian class file layout front to back: version, constant
pool, class flags and references, interfaces, fields, methods and class
attributes. Attribute bodies are kept as raw bytes.
"""

import logging
from typing import Callable

from ..config import DEFAULT_LIMITS, DecodeLimits
from ..errors import (
    InvalidConstantTag,
    InvalidHeaderField,
    InvalidMagic,
    Utf8Error,
)
from ..reader import ByteReader, Endianness
from .types import (
    CONSTANT_CLASS,
    CONSTANT_DOUBLE,
    CONSTANT_DYNAMIC,
    CONSTANT_FIELDREF,
    CONSTANT_FLOAT,
    CONSTANT_INTEGER,
    CONSTANT_INTERFACEMETHODREF,
    CONSTANT_INVOKEDYNAMIC,
    CONSTANT_LONG,
    CONSTANT_METHODHANDLE,
    CONSTANT_METHODREF,
    CONSTANT_METHODTYPE,
    CONSTANT_MODULE,
    CONSTANT_NAMEANDTYPE,
    CONSTANT_PACKAGE,
    CONSTANT_STRING,
    CONSTANT_UTF8,
    JAVA_CLASS_MAGIC,
    POOL_REFERENCE_FIELDS,
    AttributeInfo,
    ClassConstant,
    Constant,
    ConstantPool,
    DoubleConstant,
    DynamicConstant,
    FieldrefConstant,
    FloatConstant,
    IntegerConstant,
    InterfaceMethodrefConstant,
    InvokeDynamicConstant,
    JavaClass,
    LongConstant,
    MemberInfo,
    MethodHandleConstant,
    MethodrefConstant,
    MethodTypeConstant,
    ModuleConstant,
    NameAndTypeConstant,
    PackageConstant,
    StringConstant,
    Unusable,
    Utf8Constant,
)

logger = logging.getLogger(__name__)

# Smallest encodings: a pool entry is a tag plus a u16, a member is four u16s,
# an attribute is a u16 name and a u32 length.
MIN_CONSTANT_SIZE = 3
MEMBER_HEADER_SIZE = 8
ATTRIBUTE_HEADER_SIZE = 6


def decode_modified_utf8(raw: bytes, offset: int) -> str:
    """Decode a CONSTANT_Utf8 payload.

    Java stores NUL as C0 80 and supplementary characters as a pair of
    three-byte surrogates. Both are folded back into ordinary code points.

    Raises:
        Utf8Error: On malformed sequences or unpaired surrogates
    """
    try:
        text = raw.replace(b"\xc0\x80", b"\x00").decode("utf-8", "surrogatepass")
        return text.encode("utf-16-le", "surrogatepass").decode("utf-16-le")
    except UnicodeDecodeError as e:
        # Positions from the utf-16 pass do not map back to raw bytes.
        raise Utf8Error(offset, e.reason) from e


def _utf8(r: ByteReader) -> Utf8Constant:
    payload_offset = r.pos + 2
    return Utf8Constant(decode_modified_utf8(r.length_prefixed(2), payload_offset))


CONSTANT_DECODERS: dict[int, Callable[[ByteReader], Constant]] = {
    CONSTANT_UTF8: _utf8,
    CONSTANT_INTEGER: lambda r: IntegerConstant(r.i32()),
    CONSTANT_FLOAT: lambda r: FloatConstant(r.f32()),
    CONSTANT_LONG: lambda r: LongConstant(r.i64()),
    CONSTANT_DOUBLE: lambda r: DoubleConstant(r.f64()),
    CONSTANT_CLASS: lambda r: ClassConstant(r.u16()),
    CONSTANT_STRING: lambda r: StringConstant(r.u16()),
    CONSTANT_FIELDREF: lambda r: FieldrefConstant(*r.unpack("HH")),
    CONSTANT_METHODREF: lambda r: MethodrefConstant(*r.unpack("HH")),
    CONSTANT_INTERFACEMETHODREF: lambda r: InterfaceMethodrefConstant(*r.unpack("HH")),
    CONSTANT_NAMEANDTYPE: lambda r: NameAndTypeConstant(*r.unpack("HH")),
    CONSTANT_METHODHANDLE: lambda r: MethodHandleConstant(*r.unpack("BH")),
    CONSTANT_METHODTYPE: lambda r: MethodTypeConstant(r.u16()),
    CONSTANT_DYNAMIC: lambda r: DynamicConstant(*r.unpack("HH")),
    CONSTANT_INVOKEDYNAMIC: lambda r: InvokeDynamicConstant(*r.unpack("HH")),
    CONSTANT_MODULE: lambda r: ModuleConstant(r.u16()),
    CONSTANT_PACKAGE: lambda r: PackageConstant(r.u16()),
}

WIDE_CONSTANTS = (LongConstant, DoubleConstant)


def decode_constant_pool(
    reader: ByteReader, limits: DecodeLimits = DEFAULT_LIMITS
) -> ConstantPool:
    """Decode constant_pool_count and the pool entries at the cursor.

    Raises:
        InvalidConstantTag: On a tag outside the known set
        InvalidHeaderField: If a Long or Double starts in the last slot
        InvalidConstantReference: If an entry refers outside the pool
    """
    count = reader.u16()
    reader.require_count(max(count - 1, 0), MIN_CONSTANT_SIZE, limits)
    pool = ConstantPool(count=count)

    index = 1
    while index < count:
        tag_offset = reader.pos
        tag = reader.u8()
        decoder = CONSTANT_DECODERS.get(tag)
        if decoder is None:
            raise InvalidConstantTag(tag, tag_offset)
        entry = decoder(reader)
        pool.entries.append(entry)
        index += 1

        if isinstance(entry, WIDE_CONSTANTS):
            if index >= count:
                raise InvalidHeaderField(
                    f"8-byte constant at slot {index - 1} overruns pool of {count}"
                )
            pool.entries.append(Unusable())
            index += 1

    for _, entry in pool.slots():
        for name in POOL_REFERENCE_FIELDS.get(type(entry), ()):
            pool.check_index(getattr(entry, name))

    logger.debug("Constant pool: %d slots", len(pool))
    return pool


def decode_attributes(
    reader: ByteReader, pool: ConstantPool, limits: DecodeLimits
) -> list[AttributeInfo]:
    """Decode an attributes_count-prefixed attribute list at the cursor."""
    count = reader.u16()
    reader.require_count(count, ATTRIBUTE_HEADER_SIZE, limits)
    attributes = []
    for _ in range(count):
        name_index = reader.u16()
        pool.check_index(name_index)
        attributes.append(AttributeInfo(name_index, reader.length_prefixed(4)))
    return attributes


def decode_members(
    reader: ByteReader, pool: ConstantPool, limits: DecodeLimits
) -> list[MemberInfo]:
    """Decode a fields or methods table at the cursor."""
    count = reader.u16()
    reader.require_count(count, MEMBER_HEADER_SIZE, limits)
    members = []
    for _ in range(count):
        access_flags, name_index, descriptor_index = reader.unpack("HHH")
        pool.check_index(name_index)
        pool.check_index(descriptor_index)
        members.append(
            MemberInfo(
                access_flags=access_flags,
                name_index=name_index,
                descriptor_index=descriptor_index,
                attributes=decode_attributes(reader, pool, limits),
            )
        )
    return members


def decode_java_class(
    data: bytes | bytearray | memoryview, limits: DecodeLimits = DEFAULT_LIMITS
) -> JavaClass:
    """Decode a Java class file.

    Args:
        data: Complete file contents
        limits: Upper bounds on table sizes

    Returns:
        Fully decoded JavaClass

    Raises:
        InvalidMagic: If the file does not start with CAFEBABE
        DecodeError: Any other structural violation
    """
    reader = ByteReader(data, endian=Endianness.BIG)

    magic = reader.u32()
    if magic != JAVA_CLASS_MAGIC:
        raise InvalidMagic(f"Not a Java class file (bad magic: 0x{magic:08X})")
    minor, major = reader.unpack("HH")
    logger.debug("Java class version %d.%d", major, minor)

    pool = decode_constant_pool(reader, limits)

    access_flags, this_class, super_class = reader.unpack("HHH")
    pool.check_index(this_class)
    if super_class != 0:
        pool.check_index(super_class)

    interface_count = reader.u16()
    reader.require_count(interface_count, 2, limits)
    interfaces = [reader.u16() for _ in range(interface_count)]
    for index in interfaces:
        pool.check_index(index)

    fields = decode_members(reader, pool, limits)
    methods = decode_members(reader, pool, limits)
    attributes = decode_attributes(reader, pool, limits)
    logger.debug(
        "Java class: %d interfaces, %d fields, %d methods, %d attributes",
        len(interfaces),
        len(fields),
        len(methods),
        len(attributes),
    )

    return JavaClass(
        minor_version=minor,
        major_version=major,
        constant_pool=pool,
        access_flags=access_flags,
        this_class=this_class,
        super_class=super_class,
        interfaces=interfaces,
        fields=fields,
        methods=methods,
        attributes=attributes,
    )
