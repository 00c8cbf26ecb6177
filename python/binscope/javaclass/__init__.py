"""
Java class file decoding package for binscope.

- types: constant pool variants, members, attributes and JavaClass
- decoder: decode_java_class() and the modified UTF-8 decoder
- verify: JavaClassVerifier for constant pool reference kinds
"""

from .decoder import decode_constant_pool, decode_java_class, decode_modified_utf8
from .types import (
    AttributeInfo,
    ConstantPool,
    JavaClass,
    MemberInfo,
    Unusable,
    access_flag_names,
    java_version_name,
)
from .verify import JavaClassVerifier

__all__ = [
    "decode_constant_pool",
    "decode_java_class",
    "decode_modified_utf8",
    "AttributeInfo",
    "ConstantPool",
    "JavaClass",
    "MemberInfo",
    "Unusable",
    "access_flag_names",
    "java_version_name",
    "JavaClassVerifier",
]
