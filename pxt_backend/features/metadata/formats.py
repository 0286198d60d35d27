"""
Container format detection from file extensions and leading signature bytes.
"""
from __future__ import annotations

import os
from typing import Any, Literal, Optional

from ...shared import EXTENSIONS, ContainerFormat

SignatureFormat = Literal["PNG", "JPEG", "WEBP", "MP4", "WEBM"]

# extension -> container family handled by one classifier
EXTENSION_FORMATS: dict[str, ContainerFormat] = {
    ".png": "png",
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".webp": "webp",
    **{ext: "video" for ext in sorted(EXTENSIONS["video"])},
}

# extension -> signature family that the file's bytes should show
_EXPECTED_SIGNATURE: dict[str, SignatureFormat] = {
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".webp": "WEBP",
    ".mp4": "MP4",
    ".m4v": "MP4",
    ".mov": "MP4",
    ".webm": "WEBM",
    ".mkv": "WEBM",
}

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
JPEG_MAGIC = b"\xff\xd8\xff"
EBML_MAGIC = b"\x1a\x45\xdf\xa3"

SIGNATURE_PROBE_BYTES = 16


def file_extension(path: str) -> str:
    return os.path.splitext(str(path or ""))[1].lower()


def container_format_for(path: str) -> Optional[ContainerFormat]:
    """Container family for a path, or None when the extension is not handled."""
    return EXTENSION_FORMATS.get(file_extension(path))


def supported_extensions() -> list[str]:
    return sorted(EXTENSION_FORMATS)


def is_supported_format(path: str) -> bool:
    return container_format_for(path) is not None


def detect_format_from_signature(head: bytes | bytearray | None) -> Optional[SignatureFormat]:
    """Identify a container from its first bytes; None when nothing matches."""
    if not head or len(head) < 4:
        return None
    data = bytes(head)
    if data.startswith(PNG_MAGIC):
        return "PNG"
    if data.startswith(JPEG_MAGIC):
        return "JPEG"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "WEBP"
    if len(data) >= 8 and data[4:8] == b"ftyp":
        return "MP4"
    if data.startswith(EBML_MAGIC):
        return "WEBM"
    return None


def validate_format(path: str, head: Optional[bytes] = None) -> dict[str, Any]:
    """
    Compare what the extension promises with what the bytes show.

    Without `head` only the extension is checked. `mismatch` is only ever
    True for a recognized signature that disagrees with the extension.
    """
    ext = file_extension(path)
    expected = _EXPECTED_SIGNATURE.get(ext) or (ext[1:].upper() if ext else "")
    if head is None:
        valid = is_supported_format(path)
        return {"is_valid": valid, "detected_format": expected, "expected_format": expected, "mismatch": False}

    detected = detect_format_from_signature(head)
    if detected is None:
        return {"is_valid": False, "detected_format": "unknown", "expected_format": expected, "mismatch": False}
    return {
        "is_valid": True,
        "detected_format": detected,
        "expected_format": expected,
        "mismatch": detected != expected,
    }
