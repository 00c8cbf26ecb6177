"""
Java class file verification utilities.

The decoder only checks that constant pool indices are in range. The
JavaClassVerifier checks that each index also names an entry of the kind
its referrer expects.
"""

from pathlib import Path
from typing import Callable

from ..verify import BinaryVerifier, VerificationResult
from .decoder import decode_java_class
from .types import (
    ClassConstant,
    FieldrefConstant,
    InterfaceMethodrefConstant,
    JavaClass,
    MemberInfo,
    MethodrefConstant,
    NameAndTypeConstant,
    StringConstant,
    Unusable,
    Utf8Constant,
)


class JavaClassVerifier(BinaryVerifier):
    """Constant pool reference verification for class files.

    Usage:
        result = JavaClassVerifier.verify(Path("Foo.class"))
        if not result.passed:
            print(result)
    """

    def __init__(self, java_class: JavaClass, file_size: int):
        self._cls = java_class
        self._pool = java_class.constant_pool
        self._file_size = file_size

    @classmethod
    def verify(cls, path: Path) -> VerificationResult:
        return cls.verify_data(path.read_bytes())

    @classmethod
    def verify_data(cls, data: bytes | bytearray) -> VerificationResult:
        return cls(decode_java_class(data), len(data)).run_all_checks()

    def run_all_checks(self) -> VerificationResult:
        """Run all reference checks."""
        result = VerificationResult()

        checks: list[Callable[[], VerificationResult]] = [
            self.check_class_references,
            self.check_member_references,
            self.check_pool_references,
        ]

        for check in checks:
            result.merge(check())

        return result

    def _expect(
        self, result: VerificationResult, index: int, kind: type, what: str
    ) -> None:
        entry = self._pool[index]
        if isinstance(entry, Unusable):
            result.add_error(f"{what} refers to unusable slot #{index}")
        elif not isinstance(entry, kind):
            result.add_error(
                f"{what} refers to #{index} ({type(entry).__name__}), "
                f"expected {kind.__name__}"
            )

    def check_class_references(self) -> VerificationResult:
        """Check this_class, super_class and interfaces name Class entries."""
        result = VerificationResult()

        self._expect(result, self._cls.this_class, ClassConstant, "this_class")
        if self._cls.super_class != 0:
            self._expect(result, self._cls.super_class, ClassConstant, "super_class")
        for i, index in enumerate(self._cls.interfaces):
            self._expect(result, index, ClassConstant, f"interfaces[{i}]")

        return result

    def _check_member(
        self, result: VerificationResult, member: MemberInfo, what: str
    ) -> None:
        self._expect(result, member.name_index, Utf8Constant, f"{what} name")
        self._expect(
            result, member.descriptor_index, Utf8Constant, f"{what} descriptor"
        )
        for attr in member.attributes:
            self._expect(result, attr.name_index, Utf8Constant, f"{what} attribute")

    def check_member_references(self) -> VerificationResult:
        """Check member and attribute names and descriptors are Utf8 entries."""
        result = VerificationResult()

        for i, member in enumerate(self._cls.fields):
            self._check_member(result, member, f"fields[{i}]")
        for i, member in enumerate(self._cls.methods):
            self._check_member(result, member, f"methods[{i}]")
        for attr in self._cls.attributes:
            self._expect(result, attr.name_index, Utf8Constant, "class attribute")

        return result

    def check_pool_references(self) -> VerificationResult:
        """Check references between constant pool entries."""
        result = VerificationResult()

        for index, entry in self._pool.slots():
            what = f"#{index} {type(entry).__name__}"
            if isinstance(entry, ClassConstant):
                self._expect(result, entry.name_index, Utf8Constant, what)
            elif isinstance(entry, StringConstant):
                self._expect(result, entry.string_index, Utf8Constant, what)
            elif isinstance(entry, NameAndTypeConstant):
                self._expect(result, entry.name_index, Utf8Constant, what)
                self._expect(result, entry.descriptor_index, Utf8Constant, what)
            elif isinstance(
                entry, (FieldrefConstant, MethodrefConstant, InterfaceMethodrefConstant)
            ):
                self._expect(result, entry.class_index, ClassConstant, what)
                self._expect(
                    result, entry.name_and_type_index, NameAndTypeConstant, what
                )

        return result
