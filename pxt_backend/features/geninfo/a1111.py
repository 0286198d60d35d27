"""
Parser for A1111 / Forge style "parameters" text.

Layout tolerated:

    <positive prompt, possibly multi-line>
    Negative prompt: <negative prompt>
    Steps: 20, Sampler: DPM++ 2M Karras, CFG scale: 7, Seed: 42, Size: 512x512, ...
"""
import logging
import re
from typing import Any, Optional

from ...shared import InputError
from ...utils import to_float, to_int

logger = logging.getLogger(__name__)

# Distinct literals, tried in this order; the first one present wins.
NEGATIVE_MARKERS: tuple[str, ...] = ("Negative prompt:", "Negative:", "negative prompt:", "negative:")
# The earliest of these (by position) starts the settings block.
PARAMETER_MARKERS: tuple[str, ...] = ("Steps:", "Sampler:", "CFG scale:", "Size:", "Seed:", "Model:")

_INT_FIELDS = frozenset({"steps", "seed", "clip_skip", "hires_steps"})
_FLOAT_FIELDS = frozenset({"cfg", "denoise", "hires_denoising"})

SETTINGS_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("steps", re.compile(r"Steps:\s*(\d+)", re.IGNORECASE)),
    ("cfg", re.compile(r"CFG scale:\s*([\d.]+)", re.IGNORECASE)),
    ("sampler", re.compile(r"Sampler:\s*([^,\n]+)", re.IGNORECASE)),
    ("seed", re.compile(r"Seed:\s*(\d+)", re.IGNORECASE)),
    ("model", re.compile(r"Model:\s*([^,\n]+)", re.IGNORECASE)),
    ("size", re.compile(r"Size:\s*(\d+x\d+)", re.IGNORECASE)),
    ("denoise", re.compile(r"Denoising strength:\s*([\d.]+)", re.IGNORECASE)),
    ("clip_skip", re.compile(r"Clip skip:\s*(\d+)", re.IGNORECASE)),
    ("ensd", re.compile(r"ENSD:\s*([^,\n]+)", re.IGNORECASE)),
    ("hires_upscaler", re.compile(r"Hires upscaler:\s*([^,\n]+)", re.IGNORECASE)),
    ("hires_steps", re.compile(r"Hires steps:\s*(\d+)", re.IGNORECASE)),
    ("hires_denoising", re.compile(r"Hires denoising strength:\s*([\d.]+)", re.IGNORECASE)),
)
_HIRES_UPSCALE_RE = re.compile(r"Hires upscale:\s*([\d.]+)", re.IGNORECASE)

_FORMAT_INDICATORS: tuple[re.Pattern[str], ...] = (
    re.compile(r"Steps:\s*\d+", re.IGNORECASE),
    re.compile(r"CFG scale:\s*[\d.]+", re.IGNORECASE),
    re.compile(r"Sampler:\s*[^,\n]+", re.IGNORECASE),
    re.compile(r"Seed:\s*\d+", re.IGNORECASE),
    re.compile(r"Model:\s*[^,\n]+", re.IGNORECASE),
    re.compile(r"Size:\s*\d+x\d+", re.IGNORECASE),
    re.compile(r"Negative prompt:", re.IGNORECASE),
)

# (field, min, max) sanity ranges for a parsed record
_NUMERIC_RANGES: tuple[tuple[str, float, float], ...] = (
    ("steps", 1, 1000),
    ("cfg", 0, 30),
    ("seed", 0, 2**53 - 1),
    ("denoise", 0, 1),
    ("clip_skip", 1, 12),
)


def _find_negative_marker(text: str) -> tuple[int, int]:
    for marker in NEGATIVE_MARKERS:
        idx = text.find(marker)
        if idx != -1:
            return idx, len(marker)
    return -1, 0


def _find_parameters_start(text: str, start: int = 0) -> int:
    positions = [idx for idx in (text.find(m, start) for m in PARAMETER_MARKERS) if idx != -1]
    return min(positions) if positions else -1


def separate_prompts(text: str) -> tuple[str, str]:
    """Split text into (positive, negative); negative is "" when absent."""
    normalized = text.strip()
    neg_idx, neg_len = _find_negative_marker(normalized)
    if neg_idx != -1:
        # Only a settings marker after the negative prompt can end it
        params_idx = _find_parameters_start(normalized, neg_idx + neg_len)
        if params_idx != -1:
            return normalized[:neg_idx].strip(), normalized[neg_idx + neg_len:params_idx].strip()
        return normalized[:neg_idx].strip(), normalized[neg_idx + neg_len:].strip()

    params_idx = _find_parameters_start(normalized)
    if params_idx != -1:
        return normalized[:params_idx].strip(), ""
    return normalized, ""


def _coerce_setting(key: str, raw: str) -> Any:
    value = raw.strip()
    if key in _INT_FIELDS:
        return to_int(value)
    if key in _FLOAT_FIELDS:
        return to_float(value)
    return value or None


def extract_generation_settings(text: str) -> dict[str, Any]:
    """
    Apply the settings pattern table to `text`.

    Fields whose match is not a valid number are omitted entirely.
    """
    settings: dict[str, Any] = {}
    for key, pattern in SETTINGS_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        value = _coerce_setting(key, match.group(1))
        if value is not None:
            settings[key] = value

    if _HIRES_UPSCALE_RE.search(text):
        settings["hires_fix"] = True
    if "Restore faces" in text:
        settings["restore_faces"] = True
    return settings


def parse_a1111_parameters(text: Any) -> dict[str, Any]:
    """
    Parse one A1111 parameters blob into a record.

    Raises:
        InputError: `text` is not a string, or is empty/whitespace only.

    Any other failure degrades to {"positive_prompt": text, "raw_text": text}.
    """
    if not isinstance(text, str):
        raise InputError("Invalid input: text must be a non-empty string", {"type": type(text).__name__})
    clean = text.strip()
    if not clean:
        raise InputError("Invalid input: text cannot be empty")

    try:
        positive, negative = separate_prompts(clean)
        result: dict[str, Any] = {"positive_prompt": positive, "raw_text": clean}
        result.update(extract_generation_settings(clean))
        if negative:
            result["negative_prompt"] = negative
        return result
    except Exception as exc:
        logger.debug("A1111 parse degraded to raw text: %s", exc)
        return {"positive_prompt": clean, "raw_text": clean}


def is_a1111_parameters(text: Any) -> bool:
    """Cheap marker check used by the classifiers."""
    if not isinstance(text, str):
        return False
    return "Steps:" in text or "CFG scale:" in text or "Sampler:" in text


def validate_a1111_format(text: Any) -> bool:
    """True when any A1111 indicator pattern appears in the text."""
    if not isinstance(text, str) or not text.strip():
        return False
    normalized = text.strip()
    return any(p.search(normalized) for p in _FORMAT_INDICATORS)


def validate_a1111_parameters(params: Optional[dict[str, Any]]) -> bool:
    """Check a parsed record: string positive prompt and numerics within sane ranges."""
    if not isinstance(params, dict):
        return False
    positive = params.get("positive_prompt")
    if not isinstance(positive, str) or not positive:
        return False
    for key, low, high in _NUMERIC_RANGES:
        if key not in params:
            continue
        value = params[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not (low <= value <= high):
            return False
    return True
