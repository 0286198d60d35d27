"""Backend-facing alias for shared utilities.

Feature modules import from here so the shared package can move without
touching every import site.
"""

from __future__ import annotations

import pxt_shared as _root_shared
from pxt_shared.types import EXTENSIONS as EXTENSIONS

Result = _root_shared.Result
ErrorCode = _root_shared.ErrorCode
get_logger = _root_shared.get_logger
log_success = _root_shared.log_success
log_structured = _root_shared.log_structured
request_id_var = _root_shared.request_id_var
classify_file = _root_shared.classify_file
sanitize_error_message = _root_shared.sanitize_error_message
timer = _root_shared.timer
FileKind = _root_shared.FileKind
ContainerFormat = _root_shared.ContainerFormat

ExtractionError = _root_shared.ExtractionError
UnsupportedFormatError = _root_shared.UnsupportedFormatError
MetadataNotFoundError = _root_shared.MetadataNotFoundError
ParseError = _root_shared.ParseError
FileAccessError = _root_shared.FileAccessError
ExternalCommandError = _root_shared.ExternalCommandError
ValidationError = _root_shared.ValidationError
InputError = _root_shared.InputError

__all__ = [
    "Result",
    "ErrorCode",
    "get_logger",
    "log_success",
    "log_structured",
    "request_id_var",
    "classify_file",
    "sanitize_error_message",
    "timer",
    "FileKind",
    "ContainerFormat",
    "EXTENSIONS",
    "ExtractionError",
    "UnsupportedFormatError",
    "MetadataNotFoundError",
    "ParseError",
    "FileAccessError",
    "ExternalCommandError",
    "ValidationError",
    "InputError",
]
