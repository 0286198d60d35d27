"""
Metadata service - reads a file, finds its candidate blobs and classifies them.

Images are read and scanned in-process. Videos go through a probe
collaborator (ffprobe by default) whose tag dictionary is cached per path.
"""
import asyncio
import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from ...adapters.tools.ffprobe import FFProbe, VideoProbe
from ...shared import (
    ExternalCommandError,
    FileAccessError,
    MetadataNotFoundError,
    Result,
    UnsupportedFormatError,
    get_logger,
    log_structured,
    request_id_var,
    timer,
)
from ...utils import basename_any
from ..geninfo.graph_builder import ConversionOptions, convert_a1111_to_comfyui, should_convert_to_comfyui
from .classifier import EMPTY_RESULT, ExtractionResult, classify_jpeg, classify_png, classify_video, classify_webp
from .formats import container_format_for, detect_format_from_signature, file_extension, supported_extensions
from .locators import jpeg_candidates, png_candidates, video_candidates, webp_candidates
from .metadata_cache import MetadataCache

logger = get_logger(__name__)

_IMAGE_PIPELINES = {
    "png": (png_candidates, classify_png),
    "jpeg": (jpeg_candidates, classify_jpeg),
    "webp": (webp_candidates, classify_webp),
}
_SIGNATURE_TO_IMAGE = {"PNG": "png", "JPEG": "jpeg", "WEBP": "webp"}


@contextmanager
def _correlated(path: str) -> Iterator[None]:
    token = request_id_var.set(basename_any(path))
    try:
        yield
    finally:
        request_id_var.reset(token)


def extract_from_bytes(data: bytes, fmt: str) -> ExtractionResult:
    """
    Run locator + classifier for an in-memory image.

    Args:
        data: Whole file contents
        fmt: "png", "jpeg" or "webp"
    """
    pipeline = _IMAGE_PIPELINES.get(fmt)
    if pipeline is None:
        raise ValueError(f"extract_from_bytes does not handle {fmt!r}")
    locate, classify = pipeline
    candidates = locate(data)
    logger.debug("%s: %d candidate blob(s)", fmt, len(candidates))
    return classify(candidates)


def extract_from_probe(probe_data: Any) -> ExtractionResult:
    """Classify the tag dictionary returned by a video probe."""
    if not isinstance(probe_data, dict):
        return EMPTY_RESULT
    return classify_video(video_candidates(probe_data))


def _unsupported(path: str) -> UnsupportedFormatError:
    return UnsupportedFormatError(path, file_extension(path), supported_extensions())


def _read_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise FileAccessError(path, "read", exc) from exc


def _image_format(path: str, data: bytes, fmt: str) -> str:
    detected = _SIGNATURE_TO_IMAGE.get(detect_format_from_signature(data[:16]) or "")
    if detected and detected != fmt:
        logger.warning("Extension says %s but content is %s: %s", fmt, detected, basename_any(path))
        return detected
    return fmt


def _probe_failure(path: str, probe: VideoProbe, result: Result[dict]) -> ExternalCommandError:
    meta = result.meta or {}
    command = str(getattr(probe, "bin", "ffprobe"))
    stderr = str(meta.get("stderr") or result.error or "")
    exit_code = meta.get("exit_code")
    log_structured(
        logger,
        logging.WARNING,
        "Video probe failed",
        file=basename_any(path),
        code=result.code,
        error=result.error,
    )
    return ExternalCommandError(
        command,
        ["-show_format", "-show_streams", path],
        exit_code if isinstance(exit_code, int) else None,
        stderr,
        path,
    )


def _accept_probe_result(path: str, probe: VideoProbe, result: Result[dict]) -> dict[str, Any]:
    if not result.ok:
        raise _probe_failure(path, probe, result)
    if not isinstance(result.data, dict):
        raise MetadataNotFoundError(path, "video", ["format.tags", "streams[].tags"])
    return result.data


def _check_readable(path: str) -> None:
    try:
        os.stat(path)
    except OSError as exc:
        raise FileAccessError(path, "stat", exc) from exc


def _extract_video(path: str, probe: Optional[VideoProbe], cache: Optional[MetadataCache]) -> ExtractionResult:
    _check_readable(path)
    tags = cache.get(path) if cache is not None else None
    if tags is None:
        probe = probe or FFProbe()
        tags = _accept_probe_result(path, probe, probe.read(path))
        if cache is not None:
            cache.put(path, tags)
    else:
        logger.debug("Probe cache hit")
    return extract_from_probe(tags)


async def _aextract_video(path: str, probe: Optional[VideoProbe], cache: Optional[MetadataCache]) -> ExtractionResult:
    _check_readable(path)
    tags = cache.get(path) if cache is not None else None
    if tags is None:
        probe = probe or FFProbe()
        tags = _accept_probe_result(path, probe, await probe.aread(path))
        if cache is not None:
            cache.put(path, tags)
    else:
        logger.debug("Probe cache hit")
    return extract_from_probe(tags)


def _extract_image(path: str, fmt: str) -> ExtractionResult:
    data = _read_bytes(path)
    return extract_from_bytes(data, _image_format(path, data, fmt))


def extract_from_file(
    path: str,
    probe: Optional[VideoProbe] = None,
    cache: Optional[MetadataCache] = None,
) -> ExtractionResult:
    """
    Extract embedded generation metadata from one file.

    Raises:
        UnsupportedFormatError: extension not handled
        FileAccessError: the file cannot be read
        ExternalCommandError: the video probe failed
        MetadataNotFoundError: the video probe produced no tag dictionary

    Finding nothing is not an error: an empty ExtractionResult is returned.
    """
    path = str(path)
    fmt = container_format_for(path)
    if fmt is None:
        raise _unsupported(path)
    with _correlated(path), timer(f"{fmt} extraction", logger):
        if fmt == "video":
            result = _extract_video(path, probe, cache)
        else:
            result = _extract_image(path, fmt)
        _log_outcome(result)
        return result


async def aextract_from_file(
    path: str,
    probe: Optional[VideoProbe] = None,
    cache: Optional[MetadataCache] = None,
) -> ExtractionResult:
    """Async variant of extract_from_file(); image parsing runs in a worker thread."""
    path = str(path)
    fmt = container_format_for(path)
    if fmt is None:
        raise _unsupported(path)
    with _correlated(path), timer(f"{fmt} extraction", logger):
        if fmt == "video":
            result = await _aextract_video(path, probe, cache)
        else:
            result = await asyncio.to_thread(_extract_image, path, fmt)
        _log_outcome(result)
        return result


def _log_outcome(result: ExtractionResult) -> None:
    if result.found:
        logger.debug("Found %s in %s", result.kind, result.source or "<unknown>")
    else:
        logger.debug("No metadata found")


def convert_parameters(result: ExtractionResult, options: Optional[ConversionOptions] = None) -> Optional[dict[str, Any]]:
    """
    Synthesize a workflow for an A1111 result.

    Returns the conversion payload, or None when the result carries no
    convertible parameters.
    """
    if result.kind != "parameters" or not should_convert_to_comfyui(result.parameters):
        return None
    return convert_a1111_to_comfyui(result.parameters, options)
