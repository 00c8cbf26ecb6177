"""Tests for Java class file decoding and constant pool verification."""

import math
import struct

import pytest

from binscope.config import DecodeLimits
from binscope.errors import (
    BoundsError,
    InvalidConstantReference,
    InvalidConstantTag,
    InvalidHeaderField,
    InvalidMagic,
    LimitExceeded,
    Utf8Error,
)
from binscope.javaclass import (
    JavaClassVerifier,
    Unusable,
    access_flag_names,
    decode_java_class,
    decode_modified_utf8,
    java_version_name,
)
from binscope.javaclass.types import (
    ClassConstant,
    DoubleConstant,
    FloatConstant,
    LongConstant,
    MethodrefConstant,
    StringConstant,
    Utf8Constant,
)
from binary_test_utils import (
    JAVA_CODE_ATTRIBUTE,
    JAVA_LONG_VALUE,
    JAVA_POOL_COUNT,
    build_java_class,
    java_constant,
    java_utf8,
)

# Pool entries start after magic, minor, major and constant_pool_count
POOL_OFFSET = 10


def raw_utf8(payload: bytes) -> bytes:
    return struct.pack(">BH", 1, len(payload)) + payload


def build_single_string_class(payload: bytes) -> bytes:
    """A class whose only Utf8 entry holds payload and is its own name."""
    pool = [raw_utf8(payload), java_constant(7, "H", 1)]
    return build_java_class(pool, pool_count=3, this_class=2, super_class=0, members=False)


class TestDecodeJavaClass:
    """Tests for decode_java_class on the sample class."""

    @pytest.fixture
    def java_class(self):
        return decode_java_class(build_java_class())

    def test_version(self, java_class):
        assert (java_class.major_version, java_class.minor_version) == (52, 0)
        assert java_class.version_name == "Java 8"

    def test_class_names(self, java_class):
        assert java_class.class_name == "Hello"
        assert java_class.super_class_name == "java/lang/Object"
        assert access_flag_names(java_class.access_flags) == ["ACC_PUBLIC", "ACC_SUPER"]

    def test_pool_slots(self, java_class):
        """A Long occupies two logical slots; the second is Unusable."""
        pool = java_class.constant_pool
        assert pool.count == JAVA_POOL_COUNT
        assert len(pool) == JAVA_POOL_COUNT - 1
        assert pool[8] == LongConstant(JAVA_LONG_VALUE)
        assert isinstance(pool[9], Unusable)
        assert pool[10] == Utf8Constant("answer")
        assert pool[12] == StringConstant(1)
        assert pool[14] == MethodrefConstant(2, 13)

    def test_pool_index_zero_rejected(self, java_class):
        with pytest.raises(InvalidConstantReference):
            java_class.constant_pool[0]

    def test_resolve_utf8(self, java_class):
        pool = java_class.constant_pool
        assert pool.resolve_utf8(1) == "Hello"
        assert pool.resolve_utf8(2) is None
        assert pool.class_name(4) == "java/lang/Object"
        assert pool.class_name(1) is None

    def test_members(self, java_class):
        (answer,) = java_class.fields
        assert java_class.member_name(answer) == "answer"
        assert access_flag_names(answer.access_flags) == ["ACC_STATIC", "ACC_FINAL"]
        (main,) = java_class.methods
        assert java_class.member_name(main) == "main"
        (code,) = main.attributes
        assert code.name_index == 7
        assert code.info == JAVA_CODE_ATTRIBUTE
        assert java_class.attributes == []

    def test_interfaces(self):
        java_class = decode_java_class(build_java_class(interfaces=(4,)))
        assert java_class.interfaces == [4]

    def test_no_super_class(self):
        java_class = decode_java_class(build_java_class(super_class=0))
        assert java_class.super_class_name is None

    def test_nan_constants_are_stable(self):
        """Float and Double NaN entries decode to equal values every time."""
        pool = [
            java_utf8("A"),
            java_constant(7, "H", 1),
            java_constant(4, "I", 0x7FC00000),
            java_constant(6, "Q", 0x7FF8000000000001),
        ]
        data = build_java_class(pool, pool_count=6, this_class=2, super_class=0, members=False)
        first, second = decode_java_class(data), decode_java_class(data)
        assert isinstance(first.constant_pool[3], FloatConstant)
        assert math.isnan(first.constant_pool[3].value)
        assert isinstance(first.constant_pool[4], DoubleConstant)
        assert math.isnan(first.constant_pool[4].value)
        assert first == second

    def test_floats_compare_by_bit_pattern(self):
        assert FloatConstant(0.0) != FloatConstant(-0.0)
        assert DoubleConstant(2.5) == DoubleConstant(2.5)
        assert FloatConstant(2.5) != DoubleConstant(2.5)

    @pytest.mark.parametrize(
        "major,minor,expected",
        [
            (45, 3, "Java 1.0.2"),
            (45, 4, "Java 1.1"),
            (48, 0, "Java 1.4"),
            (49, 0, "Java 5.0"),
            (65, 0, "Java 21"),
            (30, 0, "Unknown"),
        ],
    )
    def test_version_names(self, major: int, minor: int, expected: str):
        assert java_version_name(major, minor) == expected


class TestModifiedUtf8:
    """Tests for the CONSTANT_Utf8 text decoding."""

    def test_plain_ascii(self):
        java_class = decode_java_class(build_single_string_class(b"hello"))
        assert java_class.constant_pool[1] == Utf8Constant("hello")

    def test_encoded_nul(self):
        assert decode_modified_utf8(b"a\xc0\x80b", 0) == "a\x00b"

    def test_surrogate_pair(self):
        """Supplementary characters arrive as two three-byte surrogates."""
        assert decode_modified_utf8(b"\xed\xa0\xbd\xed\xb8\x80", 0) == "\U0001F600"

    def test_lone_surrogate(self):
        with pytest.raises(Utf8Error):
            decode_modified_utf8(b"\xed\xa0\xbd", 0)

    def test_invalid_pool_text(self):
        """Malformed text is reported at the payload offset."""
        with pytest.raises(Utf8Error) as exc_info:
            decode_java_class(build_single_string_class(b"ok\xff"))
        assert exc_info.value.offset == POOL_OFFSET + 3

    def test_pool_text_with_nul(self):
        java_class = decode_java_class(build_single_string_class(b"A\xc0\x80"))
        assert java_class.class_name == "A\x00"


class TestJavaClassErrors:
    """Tests for malformed class files."""

    def test_bad_magic(self):
        data = bytearray(build_java_class())
        data[0] = 0xCB
        with pytest.raises(InvalidMagic):
            decode_java_class(data)

    def test_unknown_constant_tag(self):
        pool = [java_constant(2, "H", 0)]
        with pytest.raises(InvalidConstantTag) as exc_info:
            decode_java_class(build_java_class(pool, pool_count=2, members=False))
        assert exc_info.value.tag == 2
        assert exc_info.value.offset == POOL_OFFSET

    def test_wide_constant_in_last_slot(self):
        pool = [java_utf8("A"), java_constant(6, "d", 1.5)]
        with pytest.raises(InvalidHeaderField, match="overruns pool"):
            decode_java_class(build_java_class(pool, pool_count=3, members=False))

    def test_pool_reference_out_of_range(self):
        pool = [java_utf8("A"), java_constant(7, "H", 9)]
        with pytest.raises(InvalidConstantReference) as exc_info:
            decode_java_class(build_java_class(pool, pool_count=3, members=False))
        assert exc_info.value.index == 9

    def test_this_class_out_of_range(self):
        with pytest.raises(InvalidConstantReference):
            decode_java_class(build_java_class(this_class=JAVA_POOL_COUNT))

    def test_truncated(self):
        data = build_java_class()
        with pytest.raises(BoundsError):
            decode_java_class(data[:-3])

    def test_pool_count_limit(self):
        with pytest.raises(LimitExceeded):
            decode_java_class(build_java_class(), DecodeLimits(max_record_count=10))


class TestJavaClassVerifier:
    """Tests for reference kind checks."""

    def test_verify_valid(self):
        result = JavaClassVerifier.verify_data(build_java_class())
        assert result.passed, f"Verification failed: {result}"

    def test_this_class_not_a_class(self):
        result = JavaClassVerifier.verify_data(build_java_class(this_class=1))
        assert not result.passed
        assert "this_class refers to #1 (Utf8Constant), expected ClassConstant" in result.errors

    def test_reference_to_unusable_slot(self):
        result = JavaClassVerifier.verify_data(build_java_class(super_class=9))
        assert not result.passed
        assert "super_class refers to unusable slot #9" in result.errors

    def test_pool_entry_wrong_kind(self):
        """A Class entry whose name is another Class fails the pool check."""
        pool = [java_utf8("A"), java_constant(7, "H", 1), java_constant(7, "H", 2)]
        data = build_java_class(pool, pool_count=4, this_class=2, super_class=3, members=False)
        result = JavaClassVerifier.verify_data(data)
        assert not result.passed
        assert any(e.startswith("#3 ClassConstant") for e in result.errors)

    def test_pool_check_on_valid_class(self):
        java_class = decode_java_class(build_java_class())
        assert isinstance(java_class.constant_pool[2], ClassConstant)
        assert JavaClassVerifier(java_class, 0).check_pool_references().passed
