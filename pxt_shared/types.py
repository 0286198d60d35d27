"""
Shared types, enums, and constants.
"""
import os
from enum import Enum
from typing import Final, Literal

# File type classifications
FileKind = Literal["image", "video", "unknown"]

# Container formats the extractors understand
ContainerFormat = Literal["png", "jpeg", "webp", "video"]

# Error severity levels, lowest first
Severity = Literal["low", "medium", "high", "critical"]


class ErrorCode(str, Enum):
    """Standardized error codes (string enum)."""

    # Client / validation
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_JSON = "INVALID_JSON"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Formats / files
    UNSUPPORTED = "UNSUPPORTED_FORMAT"
    METADATA_NOT_FOUND = "METADATA_NOT_FOUND"
    FILE_ACCESS_ERROR = "FILE_ACCESS_ERROR"

    # Tool / parsing
    TOOL_MISSING = "TOOL_MISSING"
    TIMEOUT = "TIMEOUT"
    EXTERNAL_COMMAND_ERROR = "EXTERNAL_COMMAND_ERROR"
    FFPROBE_ERROR = "FFPROBE_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    CONVERSION_FAILED = "CONVERSION_FAILED"


# File extensions by type
EXTENSIONS: Final[dict[FileKind, set[str]]] = {
    "image": {".png", ".jpg", ".jpeg", ".webp"},
    "video": {".mp4", ".mov", ".webm", ".mkv", ".m4v", ".avi"},
    "unknown": set(),
}


def classify_file(filename: str) -> FileKind:
    """
    Classify file by extension.

    Args:
        filename: File name or path

    Returns:
        File kind (image, video, unknown)
    """
    ext = os.path.splitext(filename)[1].lower()

    for kind, exts in EXTENSIONS.items():
        if ext in exts:
            return kind

    return "unknown"
