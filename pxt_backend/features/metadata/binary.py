"""
Byte and text primitives shared by the container locators and parsers.

Everything here is pure: integer readers, NUL-terminated strings, the packed
UTF-16 recovery used by EXIF comment fields, and an embedded-JSON scanner.
"""
import json
import logging
import struct
import zlib
from collections.abc import Iterator
from typing import Any, Optional

from ...config import MAX_METADATA_JSON_SIZE

logger = logging.getLogger(__name__)

# 50MB decompressed limit for zTXt / iTXt payloads
MAX_DECOMPRESSED_SIZE = 50 * 1024 * 1024

UNICODE_MARKER = b"UNICODE"
# "UNICODE\0" plus one pad byte ahead of the packed UTF-16 payload
UNICODE_PREFIX_LEN = 9
MIN_PACKED_UTF16_LEN = 10

_JSON_DECODER = json.JSONDecoder()


def read_u32_be(data: bytes, offset: int) -> int:
    return struct.unpack_from(">I", data, offset)[0]


def read_u32_le(data: bytes, offset: int) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def read_u16_be(data: bytes, offset: int) -> int:
    return struct.unpack_from(">H", data, offset)[0]


def read_u16_le(data: bytes, offset: int) -> int:
    return struct.unpack_from("<H", data, offset)[0]


def read_cstring(data: bytes, offset: int = 0, encoding: str = "latin-1") -> tuple[str, int]:
    """
    Read a NUL-terminated string starting at `offset`.

    Returns the decoded string and the offset just past the terminator. When no
    terminator exists the rest of the buffer is the string.
    """
    end = data.find(b"\x00", offset)
    if end < 0:
        return data[offset:].decode(encoding, errors="replace"), len(data)
    return data[offset:end].decode(encoding, errors="replace"), end + 1


def split_keyword_text(payload: bytes) -> Optional[tuple[str, bytes]]:
    """Split a `keyword\\0text` payload at the first NUL; None without a keyword."""
    null_pos = payload.find(b"\x00")
    if null_pos <= 0:
        return None
    return payload[:null_pos].decode("latin-1", errors="replace"), payload[null_pos + 1:]


def as_byte_values(value: Any) -> Optional[bytes]:
    """
    Coerce a byte-like EXIF value into bytes.

    Accepts bytes/bytearray/memoryview, sequences of ints, and mappings whose
    values are ints (index -> byte), in value order.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, dict):
        value = list(value.values())
    if isinstance(value, (list, tuple)):
        try:
            return bytes(int(v) & 0xFF for v in value)
        except (TypeError, ValueError):
            return None
    return None


def has_unicode_prefix(raw: bytes) -> bool:
    return raw.startswith(UNICODE_MARKER)


def decode_packed_utf16(raw: bytes) -> Optional[str]:
    """
    Recover text from a packed UTF-16 byte blob.

    Blobs shorter than 10 bytes are rejected. A leading "UNICODE\\0" plus pad
    is skipped; every even-indexed byte of the remainder is kept and the result
    decoded as UTF-8. NUL bytes are dropped.
    """
    if len(raw) < MIN_PACKED_UTF16_LEN:
        return None
    body = raw[UNICODE_PREFIX_LEN:] if has_unicode_prefix(raw) else raw
    kept = bytes(b for b in body[::2] if b != 0)
    return kept.decode("utf-8", errors="replace")


def decode_text_value(value: Any) -> Optional[str]:
    """Return a string EXIF value as-is, decode byte-like values as packed UTF-16."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    raw = as_byte_values(value)
    if raw is None:
        return None
    return decode_packed_utf16(raw)


def text_after_unicode_marker(buffer: bytes) -> Optional[str]:
    """Find ASCII `UNICODE` in an EXIF buffer and decode the packed text after it."""
    idx = buffer.find(UNICODE_MARKER)
    if idx < 0:
        return None
    return decode_packed_utf16(buffer[idx:])


def safe_zlib_decompress(data: bytes, max_size: int = MAX_DECOMPRESSED_SIZE) -> Optional[bytes]:
    """Decompress zlib data, giving up past `max_size` bytes of output."""
    try:
        decompressor = zlib.decompressobj()
        result = bytearray()

        chunk_size = 81920
        offset = 0
        while offset < len(data):
            chunk = decompressor.decompress(data[offset:offset + chunk_size])
            if chunk:
                result.extend(chunk)
                if len(result) > max_size:
                    return None
            offset += chunk_size

        result.extend(decompressor.flush())
        if len(result) > max_size:
            return None
        return bytes(result)
    except zlib.error:
        return None


def strip_known_json_prefix(raw: str) -> str:
    lower_raw = raw.lower()
    if lower_raw.startswith("workflow:"):
        return raw[9:].strip()
    if lower_raw.startswith("prompt:"):
        return raw[7:].strip()
    return raw


def loads_json(text: Any) -> Any:
    """
    Parse a JSON object/array from text, or return None.

    Handles "workflow:" / "prompt:" prefixes and one level of JSON-in-a-string.
    """
    if not isinstance(text, str):
        return None
    raw = strip_known_json_prefix(text.strip())
    if not raw or len(raw) > MAX_METADATA_JSON_SIZE:
        return None
    if raw[0] not in "{[\"":
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    if isinstance(parsed, str):
        try:
            parsed = json.loads(parsed)
        except ValueError:
            return None
    return parsed if isinstance(parsed, (dict, list)) else None


def iter_json_objects(text: str) -> Iterator[dict[str, Any]]:
    """
    Yield every top-level JSON object embedded in arbitrary text, in order.

    Each `{` is tried as the start of an object; on success scanning resumes
    after the decoded object, so nested objects are not yielded twice.
    """
    if not isinstance(text, str) or len(text) > MAX_METADATA_JSON_SIZE:
        return
    pos = text.find("{")
    while pos >= 0:
        try:
            obj, end = _JSON_DECODER.raw_decode(text, pos)
        except ValueError:
            pos = text.find("{", pos + 1)
            continue
        if isinstance(obj, dict):
            yield obj
        pos = text.find("{", end)


def find_json_objects(text: str) -> list[dict[str, Any]]:
    return list(iter_json_objects(text))
