"""
Configuration for the prompt extractor.

Every knob is read once from the environment at import time; invalid values
fall back to the default with a warning, out-of-range values are clamped.
"""
import logging
import os

from .utils import env_bool

logger = logging.getLogger(__name__)


def _env_raw(*names: str, default: str | None = None) -> str | None:
    for name in names:
        if not name:
            continue
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return str(val).strip()
    return default


def _env_int(default: int, *names: str, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_float(default: float, *names: str, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid float for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_bool(default: bool, *names: str) -> bool:
    for name in names:
        if name and name in os.environ:
            return env_bool(name, default)
    return default


# External probe (video)
FFPROBE_BIN = _env_raw("PXT_FFPROBE_BIN", "FFPROBE_PATH", default="ffprobe") or "ffprobe"
FFPROBE_TIMEOUT = _env_float(10.0, "PXT_FFPROBE_TIMEOUT", min_value=1.0, max_value=120.0)

# Path -> probe output cache
METADATA_CACHE_MAX_ENTRIES = _env_int(100, "PXT_METADATA_CACHE_MAX", min_value=1, max_value=10000)

# JSON blobs larger than this are not parsed
MAX_METADATA_JSON_SIZE = _env_int(10 * 1024 * 1024, "PXT_MAX_METADATA_JSON_SIZE", min_value=1024)

# When enabled, every node record must be well formed for a payload to count as a workflow
STRICT_WORKFLOW_VALIDATION = _env_bool(False, "PXT_STRICT_WORKFLOW_VALIDATION")

# Prompt display labels are only asserted for at most this many fragments
PROMPT_DISTINCTION_MAX_FRAGMENTS = _env_int(2, "PXT_PROMPT_DISTINCTION_MAX", min_value=1, max_value=64)

# A1111 -> workflow synthesis defaults
DEFAULT_CHECKPOINT = _env_raw("PXT_DEFAULT_MODEL", default="sd_xl_base_1.0.safetensors") or "sd_xl_base_1.0.safetensors"
DEFAULT_IMAGE_SIZE = _env_raw("PXT_DEFAULT_SIZE", default="512x512") or "512x512"
