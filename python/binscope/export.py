"""
MessagePack export of decoded values.

Decoded dataclasses become maps tagged with their class name under "_type",
enums become their values and byte payloads stay msgpack bin. The result
can optionally be wrapped in a zstandard frame; unpack_decoded() tells the
two apart by the frame magic.
"""

import dataclasses
from enum import Enum

import msgpack
import zstandard as zstd

from .model import DecodedFormat

ZSTD_FRAME_MAGIC = b"\x28\xb5\x2f\xfd"
DEFAULT_ZSTD_LEVEL = 3


def _encode(obj):
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        out = {"_type": type(obj).__name__}
        for f in dataclasses.fields(obj):
            out[f.name] = getattr(obj, f.name)
        return out
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Cannot export {type(obj).__name__}")


def pack_decoded(
    value: DecodedFormat, compress: bool = False, level: int = DEFAULT_ZSTD_LEVEL
) -> bytes:
    """Serialize a decoded value.

    Args:
        value: Any value returned by decode()
        compress: Wrap the msgpack bytes in a zstandard frame
        level: zstandard compression level

    Returns:
        msgpack bytes, optionally zstd-compressed

    Raises:
        RuntimeError: If the value nests too deeply to pack
    """
    record = {"format": value.FORMAT.value, "value": value}
    try:
        packed = msgpack.packb(record, default=_encode, use_bin_type=True)
    except (ValueError, RecursionError) as e:
        # msgpack refuses structures nested past its recursion limit
        raise RuntimeError(f"Failed to pack decoded value: {e}") from e
    if compress:
        return zstd.ZstdCompressor(level=level).compress(packed)
    return packed


def unpack_decoded(blob: bytes) -> dict:
    """Load an exported record back into plain Python containers.

    Returns:
        Dictionary with "format" and "value" keys

    Raises:
        RuntimeError: If the blob cannot be decompressed or unpacked
    """
    if blob.startswith(ZSTD_FRAME_MAGIC):
        try:
            blob = zstd.ZstdDecompressor().decompress(blob)
        except zstd.ZstdError as e:
            raise RuntimeError(f"Decompression failed: {e}") from e

    try:
        record = msgpack.unpackb(blob, raw=False, strict_map_key=True)
    except (msgpack.exceptions.UnpackException, ValueError) as e:
        raise RuntimeError(f"Failed to unpack exported record: {e}") from e

    if not isinstance(record, dict):
        raise RuntimeError(
            f"Invalid export record: expected dict, got {type(record).__name__}"
        )
    return record
