import pathlib

import pytest

from binscope import Format
from binary_test_utils import (
    build_bmp,
    build_elf,
    build_gif,
    build_java_class,
    build_lua,
    build_macho,
    build_pdf,
    build_pe,
    build_png,
    build_xp3,
    build_zip,
)


@pytest.fixture(scope="session")
def sample_binaries() -> dict[Format, bytes]:
    """One structurally valid synthetic file per supported format."""
    return {
        Format.ELF: build_elf(),
        Format.MACHO: build_macho(),
        Format.PE: build_pe(),
        Format.JAVA_CLASS: build_java_class(),
        Format.LUA: build_lua(),
        Format.PNG: build_png(),
        Format.BMP: build_bmp(),
        Format.GIF: build_gif(),
        Format.PDF: build_pdf(),
        Format.ZIP: build_zip(),
        Format.XP3: build_xp3(),
    }


@pytest.fixture
def write_binary(tmp_path: pathlib.Path):
    """Returns a helper that writes bytes under tmp_path and returns the path."""

    def write(name: str, data: bytes) -> pathlib.Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return write
