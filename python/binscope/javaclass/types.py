"""
Java class file type definitions.

The constant pool is a closed tagged union of 17 entry shapes. Long and
Double entries occupy two logical slots; the slot after each one holds an
Unusable placeholder so that pool[i] always addresses logical slot i.

References:
- The Java Virtual Machine Specification, chapter 4
"""

from dataclasses import dataclass, field
from typing import ClassVar, Iterator, Union

from ..errors import InvalidConstantReference
from ..format_detect import Format
from ..reader import same_number

# =============================================================================
# Constants
# =============================================================================

JAVA_CLASS_MAGIC = 0xCAFEBABE

# Constant pool tags
CONSTANT_UTF8 = 1
CONSTANT_INTEGER = 3
CONSTANT_FLOAT = 4
CONSTANT_LONG = 5
CONSTANT_DOUBLE = 6
CONSTANT_CLASS = 7
CONSTANT_STRING = 8
CONSTANT_FIELDREF = 9
CONSTANT_METHODREF = 10
CONSTANT_INTERFACEMETHODREF = 11
CONSTANT_NAMEANDTYPE = 12
CONSTANT_METHODHANDLE = 15  # Java 7
CONSTANT_METHODTYPE = 16  # Java 7
CONSTANT_DYNAMIC = 17  # Java 11
CONSTANT_INVOKEDYNAMIC = 18  # Java 7
CONSTANT_MODULE = 19  # Java 9
CONSTANT_PACKAGE = 20  # Java 9

# Access flags (class, field and method flags share one bit space)
ACC_PUBLIC = 0x0001
ACC_PRIVATE = 0x0002
ACC_PROTECTED = 0x0004
ACC_STATIC = 0x0008
ACC_FINAL = 0x0010
ACC_SUPER = 0x0020  # Also ACC_SYNCHRONIZED on methods
ACC_BRIDGE = 0x0040  # Also ACC_VOLATILE on fields
ACC_VARARGS = 0x0080  # Also ACC_TRANSIENT on fields
ACC_NATIVE = 0x0100
ACC_INTERFACE = 0x0200
ACC_ABSTRACT = 0x0400
ACC_STRICT = 0x0800
ACC_SYNTHETIC = 0x1000
ACC_ANNOTATION = 0x2000
ACC_ENUM = 0x4000
ACC_MODULE = 0x8000

ACCESS_FLAG_NAMES = {
    ACC_PUBLIC: "ACC_PUBLIC",
    ACC_PRIVATE: "ACC_PRIVATE",
    ACC_PROTECTED: "ACC_PROTECTED",
    ACC_STATIC: "ACC_STATIC",
    ACC_FINAL: "ACC_FINAL",
    ACC_SUPER: "ACC_SUPER",
    ACC_BRIDGE: "ACC_BRIDGE",
    ACC_VARARGS: "ACC_VARARGS",
    ACC_NATIVE: "ACC_NATIVE",
    ACC_INTERFACE: "ACC_INTERFACE",
    ACC_ABSTRACT: "ACC_ABSTRACT",
    ACC_STRICT: "ACC_STRICT",
    ACC_SYNTHETIC: "ACC_SYNTHETIC",
    ACC_ANNOTATION: "ACC_ANNOTATION",
    ACC_ENUM: "ACC_ENUM",
    ACC_MODULE: "ACC_MODULE",
}


def access_flag_names(flags: int) -> list[str]:
    """Names of the ACC_* bits set in flags, lowest bit first."""
    return [name for bit, name in ACCESS_FLAG_NAMES.items() if flags & bit]


def java_version_name(major: int, minor: int) -> str:
    """Map a class file version to the Java release that introduced it."""
    if major == 45:
        return "Java 1.0.2" if minor <= 3 else "Java 1.1"
    if 46 <= major <= 48:
        return f"Java 1.{major - 44}"
    if major == 49:
        return "Java 5.0"
    if major >= 50:
        return f"Java {major - 44}"
    return "Unknown"


# =============================================================================
# Constant pool entries
# =============================================================================


@dataclass
class Utf8Constant:
    value: str

    TAG: ClassVar[int] = CONSTANT_UTF8


@dataclass
class IntegerConstant:
    value: int

    TAG: ClassVar[int] = CONSTANT_INTEGER


@dataclass
class FloatConstant:
    value: float

    TAG: ClassVar[int] = CONSTANT_FLOAT

    def __eq__(self, other):
        if other.__class__ is not self.__class__:
            return NotImplemented
        return same_number(self.value, other.value)


@dataclass
class LongConstant:
    value: int

    TAG: ClassVar[int] = CONSTANT_LONG


@dataclass
class DoubleConstant:
    value: float

    TAG: ClassVar[int] = CONSTANT_DOUBLE

    def __eq__(self, other):
        if other.__class__ is not self.__class__:
            return NotImplemented
        return same_number(self.value, other.value)


@dataclass
class ClassConstant:
    name_index: int

    TAG: ClassVar[int] = CONSTANT_CLASS


@dataclass
class StringConstant:
    string_index: int

    TAG: ClassVar[int] = CONSTANT_STRING


@dataclass
class FieldrefConstant:
    class_index: int
    name_and_type_index: int

    TAG: ClassVar[int] = CONSTANT_FIELDREF


@dataclass
class MethodrefConstant:
    class_index: int
    name_and_type_index: int

    TAG: ClassVar[int] = CONSTANT_METHODREF


@dataclass
class InterfaceMethodrefConstant:
    class_index: int
    name_and_type_index: int

    TAG: ClassVar[int] = CONSTANT_INTERFACEMETHODREF


@dataclass
class NameAndTypeConstant:
    name_index: int
    descriptor_index: int

    TAG: ClassVar[int] = CONSTANT_NAMEANDTYPE


@dataclass
class MethodHandleConstant:
    reference_kind: int
    reference_index: int

    TAG: ClassVar[int] = CONSTANT_METHODHANDLE


@dataclass
class MethodTypeConstant:
    descriptor_index: int

    TAG: ClassVar[int] = CONSTANT_METHODTYPE


@dataclass
class DynamicConstant:
    bootstrap_method_attr_index: int  # Into BootstrapMethods, not the pool
    name_and_type_index: int

    TAG: ClassVar[int] = CONSTANT_DYNAMIC


@dataclass
class InvokeDynamicConstant:
    bootstrap_method_attr_index: int  # Into BootstrapMethods, not the pool
    name_and_type_index: int

    TAG: ClassVar[int] = CONSTANT_INVOKEDYNAMIC


@dataclass
class ModuleConstant:
    name_index: int

    TAG: ClassVar[int] = CONSTANT_MODULE


@dataclass
class PackageConstant:
    name_index: int

    TAG: ClassVar[int] = CONSTANT_PACKAGE


@dataclass
class Unusable:
    """Second slot of a Long or Double entry."""

    TAG: ClassVar[int] = 0


Constant = Union[
    Utf8Constant,
    IntegerConstant,
    FloatConstant,
    LongConstant,
    DoubleConstant,
    ClassConstant,
    StringConstant,
    FieldrefConstant,
    MethodrefConstant,
    InterfaceMethodrefConstant,
    NameAndTypeConstant,
    MethodHandleConstant,
    MethodTypeConstant,
    DynamicConstant,
    InvokeDynamicConstant,
    ModuleConstant,
    PackageConstant,
    Unusable,
]

# Fields holding constant pool indices, per entry type
POOL_REFERENCE_FIELDS: dict[type, tuple[str, ...]] = {
    ClassConstant: ("name_index",),
    StringConstant: ("string_index",),
    FieldrefConstant: ("class_index", "name_and_type_index"),
    MethodrefConstant: ("class_index", "name_and_type_index"),
    InterfaceMethodrefConstant: ("class_index", "name_and_type_index"),
    NameAndTypeConstant: ("name_index", "descriptor_index"),
    MethodHandleConstant: ("reference_index",),
    MethodTypeConstant: ("descriptor_index",),
    DynamicConstant: ("name_and_type_index",),
    InvokeDynamicConstant: ("name_and_type_index",),
    ModuleConstant: ("name_index",),
    PackageConstant: ("name_index",),
}


@dataclass
class ConstantPool:
    """Constant pool addressed by logical slot (1-based).

    count is constant_pool_count from the file; valid indices are
    1..count-1. entries[0] is logical slot 1.
    """

    count: int
    entries: list[Constant] = field(default_factory=list)

    def check_index(self, index: int) -> None:
        """Raise InvalidConstantReference unless 1 <= index < count."""
        if not 1 <= index < self.count:
            raise InvalidConstantReference(index, self.count)

    def __getitem__(self, index: int) -> Constant:
        self.check_index(index)
        return self.entries[index - 1]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Constant]:
        return iter(self.entries)

    def slots(self) -> Iterator[tuple[int, Constant]]:
        """Yield (logical index, entry) pairs."""
        return enumerate(self.entries, start=1)

    def resolve_utf8(self, index: int) -> str | None:
        """Text of a Utf8 entry, or None if the slot holds another kind."""
        entry = self[index]
        return entry.value if isinstance(entry, Utf8Constant) else None

    def class_name(self, index: int) -> str | None:
        """Internal name of the class a Class entry refers to."""
        entry = self[index]
        if isinstance(entry, ClassConstant):
            return self.resolve_utf8(entry.name_index)
        return None


# =============================================================================
# Class structure
# =============================================================================


@dataclass
class AttributeInfo:
    name_index: int
    info: bytes  # Attribute body, not interpreted


@dataclass
class MemberInfo:
    """A field_info or method_info record."""

    access_flags: int
    name_index: int
    descriptor_index: int
    attributes: list[AttributeInfo] = field(default_factory=list)


@dataclass
class JavaClass:
    """Fully decoded class file."""

    minor_version: int
    major_version: int
    constant_pool: ConstantPool
    access_flags: int
    this_class: int
    super_class: int  # 0 for java/lang/Object and module-info
    interfaces: list[int] = field(default_factory=list)
    fields: list[MemberInfo] = field(default_factory=list)
    methods: list[MemberInfo] = field(default_factory=list)
    attributes: list[AttributeInfo] = field(default_factory=list)

    FORMAT: ClassVar[Format] = Format.JAVA_CLASS

    @property
    def version_name(self) -> str:
        return java_version_name(self.major_version, self.minor_version)

    @property
    def class_name(self) -> str | None:
        return self.constant_pool.class_name(self.this_class)

    @property
    def super_class_name(self) -> str | None:
        if self.super_class == 0:
            return None
        return self.constant_pool.class_name(self.super_class)

    def member_name(self, member: MemberInfo) -> str | None:
        return self.constant_pool.resolve_utf8(member.name_index)
