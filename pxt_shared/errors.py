"""
Extraction error hierarchy and helpers for presenting errors safely.
"""
from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from typing import Any

from .log import get_logger
from .types import ErrorCode, Severity

logger = get_logger(__name__)
_DEBUG_MODE = os.getenv("PXT_DEBUG", "").strip().lower() in ("1", "true", "yes", "on")
_WINDOWS_PATH_RE = re.compile(r"[A-Za-z]:\\[^\s]+")
_UNC_PATH_RE = re.compile(r"\\\\[^\s\\]+\\[^\s]+")
_UNIX_PATH_RE = re.compile(r"(?<![A-Za-z0-9:/?&=#%])/(?!/)[^\s#?]+")

DEFAULT_SUPPORTED_FORMATS: tuple[str, ...] = ("png", "jpg", "jpeg", "webp", "mp4", "webm", "mov")


class ExtractionError(Exception):
    """Base class for every error raised while extracting metadata."""

    def __init__(
        self,
        message: str,
        code: ErrorCode | str,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code.value if isinstance(code, ErrorCode) else str(code)
        self.file_path = file_path
        self.context = dict(context or {})
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "file_path": self.file_path,
            "context": self.context,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }


class UnsupportedFormatError(ExtractionError):
    def __init__(self, file_path: str, extension: str, supported_formats: tuple[str, ...] | list[str] = DEFAULT_SUPPORTED_FORMATS):
        supported = list(supported_formats)
        super().__init__(
            f"Unsupported file format: {extension or '<none>'}. Supported formats: {', '.join(supported)}",
            ErrorCode.UNSUPPORTED,
            file_path,
            {"extension": extension, "supported_formats": supported},
        )
        self.extension = extension
        self.supported_formats = supported


class MetadataNotFoundError(ExtractionError):
    def __init__(self, file_path: str, file_type: str, searched_fields: list[str] | None = None):
        super().__init__(
            f"No workflow metadata found in {file_type} file: {file_path}",
            ErrorCode.METADATA_NOT_FOUND,
            file_path,
            {"file_type": file_type, "searched_fields": list(searched_fields or [])},
        )
        self.file_type = file_type
        self.searched_fields = list(searched_fields or [])


class ParseError(ExtractionError):
    def __init__(
        self,
        message: str,
        original_error: BaseException | None = None,
        raw_data: str = "",
        parse_type: str = "JSON",
        file_path: str | None = None,
    ):
        super().__init__(
            f"{parse_type} parse error: {message}",
            ErrorCode.PARSE_ERROR,
            file_path,
            {
                "original_error": str(original_error) if original_error else None,
                "raw_data": (raw_data or "")[:200],
                "parse_type": parse_type,
            },
        )
        self.original_error = original_error
        self.raw_data = raw_data
        self.parse_type = parse_type


class FileAccessError(ExtractionError):
    def __init__(self, file_path: str, operation: str, system_error: BaseException):
        super().__init__(
            f"File access error during {operation}: {system_error}",
            ErrorCode.FILE_ACCESS_ERROR,
            file_path,
            {"operation": operation, "system_error": str(system_error)},
        )
        self.operation = operation
        self.system_error = system_error


class ExternalCommandError(ExtractionError):
    def __init__(
        self,
        command: str,
        args: list[str],
        exit_code: int | None,
        stderr: str,
        file_path: str | None = None,
    ):
        shown = exit_code if exit_code is not None else "unknown"
        super().__init__(
            f"External command failed: {command} (exit code: {shown})",
            ErrorCode.EXTERNAL_COMMAND_ERROR,
            file_path,
            {"command": command, "args": list(args), "exit_code": exit_code, "stderr": stderr},
        )
        self.command = command
        self.args_list = list(args)
        self.exit_code = exit_code
        self.stderr = stderr


class ValidationError(ExtractionError):
    def __init__(
        self,
        message: str,
        validation_type: str,
        details: dict[str, Any] | None = None,
        file_path: str | None = None,
    ):
        super().__init__(
            f"Validation error ({validation_type}): {message}",
            ErrorCode.VALIDATION_ERROR,
            file_path,
            {"validation_type": validation_type, "details": dict(details or {})},
        )
        self.validation_type = validation_type
        self.details = dict(details or {})


class InputError(ExtractionError, ValueError):
    """Raised when a caller hands a parser empty or non-text input."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, None, context)


_SEVERITY_BY_TYPE: tuple[tuple[type[ExtractionError], Severity], ...] = (
    (MetadataNotFoundError, "low"),
    (UnsupportedFormatError, "medium"),
    (ParseError, "medium"),
    (FileAccessError, "high"),
    (ExternalCommandError, "high"),
    (ValidationError, "medium"),
)


def get_error_severity(exc: BaseException) -> Severity:
    """Map an exception to a severity bucket; unknown errors are critical."""
    for exc_type, severity in _SEVERITY_BY_TYPE:
        if isinstance(exc, exc_type):
            return severity
    return "critical"


def format_error_message(exc: BaseException) -> str:
    """Human-readable message, suffixed with the file path when known."""
    if isinstance(exc, ExtractionError):
        if exc.file_path:
            return f"{exc.message} ({exc.file_path})"
        return exc.message
    return str(exc)


def _mask_paths(value: str) -> str:
    """Mask path-looking substrings to avoid leaking filesystem structure."""
    cleaned = _WINDOWS_PATH_RE.sub("[path]", value)
    cleaned = _UNC_PATH_RE.sub("[path]", cleaned)
    cleaned = _UNIX_PATH_RE.sub("[path]", cleaned)
    return cleaned


def sanitize_error_message(exc: Any, fallback: str) -> str:
    """
    Build a safe error message for result payloads.

    Args:
        exc: Exception or raw value to sanitize.
        fallback: Fallback message to show when nothing meaningful remains.

    Returns:
        "<fallback>: <masked detail>" or just the fallback.
    """
    if not fallback:
        fallback = "An error occurred"

    if exc is None:
        return fallback

    raw = str(exc)
    if not raw:
        return fallback

    sanitized = _mask_paths(raw.replace(os.getcwd(), "[cwd]"))
    sanitized = " ".join(sanitized.splitlines()).strip()

    if _DEBUG_MODE:
        logger.debug("Sanitized error payload: %s", sanitized)

    if sanitized:
        return f"{fallback}: {sanitized[:200]}"
    return fallback
