"""
Cross-format test fixtures for common tests.

These fixtures parameterize tests by container format, allowing the same
engine, export and CLI logic to run against every supported decoder.
"""

import pytest

from binscope import Format

# Every format with a decoder
DECODABLE_FORMATS = [fmt for fmt in Format if fmt != Format.UNKNOWN]

# Formats with a structural verifier
VERIFIED_FORMATS = [Format.ELF, Format.MACHO, Format.PE, Format.JAVA_CLASS]


@pytest.fixture(params=DECODABLE_FORMATS, ids=lambda fmt: fmt.value)
def sample_format(request) -> Format:
    """Returns the format under test for parameterized tests."""
    return request.param


@pytest.fixture
def sample_data(sample_binaries: dict[Format, bytes], sample_format: Format) -> bytes:
    """Synthetic file contents for this format."""
    return sample_binaries[sample_format]


@pytest.fixture(params=VERIFIED_FORMATS, ids=lambda fmt: fmt.value)
def verified_data(sample_binaries: dict[Format, bytes], request) -> bytes:
    """Synthetic file contents for a format with a structural verifier."""
    return sample_binaries[request.param]
