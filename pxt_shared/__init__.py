"""Shared utilities for the prompt extractor."""
from .errors import (
    ExternalCommandError,
    ExtractionError,
    FileAccessError,
    InputError,
    MetadataNotFoundError,
    ParseError,
    UnsupportedFormatError,
    ValidationError,
    format_error_message,
    get_error_severity,
    sanitize_error_message,
)
from .log import get_logger, log_structured, log_success, request_id_var
from .result import Result
from .time import ms, now, timer
from .types import EXTENSIONS, ContainerFormat, ErrorCode, FileKind, Severity, classify_file

__all__ = [
    "Result",
    "get_logger",
    "log_success",
    "log_structured",
    "request_id_var",
    "now",
    "ms",
    "timer",
    "FileKind",
    "ContainerFormat",
    "Severity",
    "ErrorCode",
    "EXTENSIONS",
    "classify_file",
    "ExtractionError",
    "UnsupportedFormatError",
    "MetadataNotFoundError",
    "ParseError",
    "FileAccessError",
    "ExternalCommandError",
    "ValidationError",
    "InputError",
    "get_error_severity",
    "format_error_message",
    "sanitize_error_message",
]
