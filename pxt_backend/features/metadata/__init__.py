"""Metadata extraction feature."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .classifier import ExtractionResult
    from .metadata_cache import MetadataCache

__all__ = [
    "ExtractionResult",
    "MetadataCache",
    "extract_from_bytes",
    "extract_from_file",
    "aextract_from_file",
    "extract_from_probe",
]

_SERVICE_EXPORTS = ("extract_from_bytes", "extract_from_file", "aextract_from_file", "extract_from_probe")


def __getattr__(name: str):
    if name == "ExtractionResult":
        from .classifier import ExtractionResult as _ExtractionResult

        return _ExtractionResult
    if name == "MetadataCache":
        from .metadata_cache import MetadataCache as _MetadataCache

        return _MetadataCache
    if name in _SERVICE_EXPORTS:
        from . import service

        return getattr(service, name)
    raise AttributeError(name)
