"""
Container blob locators.

Each locator turns one container (raw bytes, or a probe tag dictionary for
video) into an ordered list of candidate text blobs, most likely first.
Locators never classify; they only find text and remember where it came from.
"""
from __future__ import annotations

import io
import struct
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from PIL import Image, UnidentifiedImageError

from ...shared import get_logger
from .binary import (
    decode_text_value,
    read_u32_be,
    read_u32_le,
    safe_zlib_decompress,
    split_keyword_text,
    text_after_unicode_marker,
)

logger = get_logger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
PNG_TEXT_CHUNK_TYPES = frozenset({b"tEXt", b"zTXt", b"iTXt"})

# Keywords worth looking at, highest priority first. The API-format "prompt"
# graph carries named inputs, so it is preferred over the editor "workflow".
PNG_PRIORITY_KEYWORDS: tuple[str, ...] = ("prompt", "workflow", "comfyui", "ComfyUI", "parameters")
PNG_METADATA_KEYWORDS = frozenset(
    PNG_PRIORITY_KEYWORDS
    + ("negative_prompt", "positive_prompt", "steps", "cfg_scale", "sampler", "seed", "model")
)

# Ordered EXIF fields checked for embedded text
EXIF_FIELDS: tuple[str, ...] = (
    "UserComment",
    "ImageDescription",
    "XPComment",
    "XPKeywords",
    "Software",
    "Artist",
    "Copyright",
    "Comment",
)

_IFD0_TAGS: dict[str, int] = {
    "ImageDescription": 0x010E,
    "Make": 0x010F,
    "Model": 0x0110,
    "Software": 0x0131,
    "Artist": 0x013B,
    "Copyright": 0x8298,
    "XPComment": 0x9C9C,
    "XPKeywords": 0x9C9E,
}
_EXIF_IFD_POINTER = 0x8769
_USER_COMMENT_TAG = 0x9286

# WebP EXIF fields ComfyUI writes as "workflow:{...}" / "prompt:{...}"
WEBP_EXTRA_FIELDS: tuple[str, ...] = ("Make", "Model", "ImageDescription")

VIDEO_TAG_KEYS: tuple[str, ...] = ("comment", "description", "metadata", "workflow", "comfyui", "ComfyUI")


@dataclass(frozen=True)
class CandidateBlob:
    """A span of text pulled from one metadata field, tagged with that field's name."""

    origin_tag: str
    text: str


# ---------------------------------------------------------------------------
# PNG
# ---------------------------------------------------------------------------

def is_png(data: bytes) -> bool:
    return data[: len(PNG_SIGNATURE)] == PNG_SIGNATURE


def iter_png_chunks(data: bytes) -> Iterator[tuple[bytes, bytes]]:
    """
    Walk PNG chunks after the signature, yielding (type, payload).

    Stops at IEND, at a chunk whose payload would run past the buffer, or if
    the position ever fails to advance.
    """
    pos = len(PNG_SIGNATURE)
    size = len(data)
    while pos + 8 <= size:
        length = read_u32_be(data, pos)
        chunk_type = bytes(data[pos + 4: pos + 8])
        start = pos + 8
        end = start + length
        if end > size:
            logger.debug("PNG chunk %r at %d overruns buffer (%d > %d)", chunk_type, pos, end, size)
            break
        yield chunk_type, bytes(data[start:end])
        next_pos = end + 4  # skip CRC
        if next_pos <= pos:
            break
        pos = next_pos
        if chunk_type == b"IEND":
            break


def _decode_png_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def _decode_ztxt(rest: bytes) -> str | None:
    if not rest or rest[0] != 0:
        return None
    inflated = safe_zlib_decompress(rest[1:])
    return _decode_png_text(inflated) if inflated is not None else None


def _decode_itxt(rest: bytes) -> str | None:
    if len(rest) < 2:
        return None
    compressed = rest[0] == 1
    body = rest[2:]
    # language tag, translated keyword
    for _ in range(2):
        terminator = body.find(b"\x00")
        if terminator < 0:
            return None
        body = body[terminator + 1:]
    if compressed:
        inflated = safe_zlib_decompress(body)
        if inflated is None:
            return None
        body = inflated
    return body.decode("utf-8", errors="replace")


def decode_png_text_chunk(chunk_type: bytes, payload: bytes) -> tuple[str, str] | None:
    """Return (keyword, text) for a tEXt/zTXt/iTXt payload, or None when malformed."""
    split = split_keyword_text(payload)
    if split is None:
        return None
    keyword, rest = split
    if chunk_type == b"tEXt":
        return keyword, _decode_png_text(rest)
    if chunk_type == b"zTXt":
        text = _decode_ztxt(rest)
    elif chunk_type == b"iTXt":
        text = _decode_itxt(rest)
    else:
        return None
    return (keyword, text) if text is not None else None


def png_text_chunks(data: bytes) -> list[tuple[str, str]]:
    """All (keyword, text) pairs in file order."""
    if not is_png(data):
        logger.debug("Not a PNG buffer (bad signature)")
        return []
    out: list[tuple[str, str]] = []
    for chunk_type, payload in iter_png_chunks(data):
        if chunk_type not in PNG_TEXT_CHUNK_TYPES:
            continue
        decoded = decode_png_text_chunk(chunk_type, payload)
        if decoded is not None:
            out.append(decoded)
    return out


def png_candidates(data: bytes) -> list[CandidateBlob]:
    """Metadata-keyword chunks, priority keywords first, then the rest in file order."""
    chunks = [(k, t) for k, t in png_text_chunks(data) if k in PNG_METADATA_KEYWORDS]
    ordered: list[CandidateBlob] = []
    for keyword in PNG_PRIORITY_KEYWORDS:
        ordered.extend(CandidateBlob(k, t) for k, t in chunks if k == keyword)
    ordered.extend(CandidateBlob(k, t) for k, t in chunks if k not in PNG_PRIORITY_KEYWORDS)
    return ordered


# ---------------------------------------------------------------------------
# JPEG / EXIF
# ---------------------------------------------------------------------------

def _open_image(data: bytes) -> Image.Image | None:
    try:
        return Image.open(io.BytesIO(data))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.debug("Pillow could not open buffer: %s", exc)
        return None


def _exif_raw_fields(exif: Image.Exif) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for name, tag_id in _IFD0_TAGS.items():
        if tag_id in exif:
            fields[name] = exif.get(tag_id)
    try:
        sub_ifd = exif.get_ifd(_EXIF_IFD_POINTER)
    except (KeyError, ValueError, OSError):
        sub_ifd = {}
    if _USER_COMMENT_TAG in sub_ifd:
        fields["UserComment"] = sub_ifd.get(_USER_COMMENT_TAG)
    elif _USER_COMMENT_TAG in exif:
        fields["UserComment"] = exif.get(_USER_COMMENT_TAG)
    return fields


def read_exif_fields(data: bytes) -> dict[str, Any]:
    """
    Raw values of the interesting EXIF fields of a JPEG, keyed by field name.

    Values are left as Pillow returns them (str or bytes). The JPEG COM segment
    is exposed as "Comment".
    """
    img = _open_image(data)
    if img is None:
        return {}
    with img:
        try:
            fields = _exif_raw_fields(img.getexif())
        except (OSError, ValueError, SyntaxError) as exc:
            logger.debug("EXIF read failed: %s", exc)
            fields = {}
        comment = img.info.get("comment")
        if isinstance(comment, bytes):
            comment = comment.decode("utf-8", errors="replace")
        if isinstance(comment, str) and comment:
            fields["Comment"] = comment
    return fields


def exif_candidates(fields: dict[str, Any], order: tuple[str, ...] = EXIF_FIELDS) -> list[CandidateBlob]:
    """Decode the fields in `order`; byte values go through packed UTF-16 recovery."""
    lowered = {str(k).lower(): v for k, v in fields.items()}
    out: list[CandidateBlob] = []
    for name in order:
        value = fields[name] if name in fields else lowered.get(name.lower())
        text = decode_text_value(value)
        if text is None:
            continue
        text = text.strip("\x00")
        if text.strip():
            out.append(CandidateBlob(name, text))
    return out


def jpeg_candidates(data: bytes) -> list[CandidateBlob]:
    return exif_candidates(read_exif_fields(data))


# ---------------------------------------------------------------------------
# WebP
# ---------------------------------------------------------------------------

def is_webp(data: bytes) -> bool:
    return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP"


def iter_riff_chunks(data: bytes) -> Iterator[tuple[bytes, bytes]]:
    """Walk RIFF sub-chunks of a WebP file (little-endian sizes, even padding)."""
    pos = 12
    size = len(data)
    while pos + 8 <= size:
        fourcc = bytes(data[pos: pos + 4])
        length = read_u32_le(data, pos + 4)
        start = pos + 8
        end = start + length
        if end > size:
            break
        yield fourcc, bytes(data[start:end])
        next_pos = end + (length & 1)
        if next_pos <= pos:
            break
        pos = next_pos


def webp_exif_buffer(data: bytes) -> bytes | None:
    if not is_webp(data):
        return None
    for fourcc, payload in iter_riff_chunks(data):
        if fourcc == b"EXIF":
            return payload
    return None


def _load_exif_buffer(buffer: bytes) -> dict[str, Any]:
    exif = Image.Exif()
    try:
        exif.load(buffer)
        return _exif_raw_fields(exif)
    except (OSError, ValueError, SyntaxError, struct.error) as exc:
        logger.debug("WebP EXIF parse failed: %s", exc)
        return {}


def webp_candidates(data: bytes) -> list[CandidateBlob]:
    """
    UserComment text recovered after the `UNICODE` marker, then the EXIF
    fields ComfyUI uses for its "workflow:" / "prompt:" payloads.
    """
    buffer = webp_exif_buffer(data)
    if not buffer:
        return []
    out: list[CandidateBlob] = []
    comment = text_after_unicode_marker(buffer)
    if comment and comment.strip():
        out.append(CandidateBlob("UserComment", comment))
    out.extend(exif_candidates(_load_exif_buffer(buffer), WEBP_EXTRA_FIELDS))
    return out


# ---------------------------------------------------------------------------
# Video (probe tag dictionaries)
# ---------------------------------------------------------------------------

def lookup_tag(tags: dict[str, Any], key: str) -> Any:
    """Case-insensitive tag lookup; exact key wins over other casings."""
    if key in tags:
        return tags[key]
    wanted = key.lower()
    for tag_key, value in tags.items():
        if str(tag_key).lower() == wanted:
            return value
    return None


def _tag_candidates(tags: Any, prefix: str, every_string: bool = False) -> list[CandidateBlob]:
    if not isinstance(tags, dict):
        return []
    out: list[CandidateBlob] = []
    seen: set[str] = set()
    for key in VIDEO_TAG_KEYS:
        lowered = key.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        value = lookup_tag(tags, key)
        if isinstance(value, str) and value.strip():
            out.append(CandidateBlob(f"{prefix}.{key}", value))
    if every_string:
        for key, value in tags.items():
            if str(key).lower() in seen:
                continue
            if isinstance(value, str) and value.strip():
                out.append(CandidateBlob(f"{prefix}.{key}", value))
    return out


def video_candidates(probe: dict[str, Any]) -> list[CandidateBlob]:
    """
    Container-level tags in fixed key order, then each stream's tags in stream
    order: the known keys first, then every other string tag.
    """
    if not isinstance(probe, dict):
        return []
    out: list[CandidateBlob] = []
    fmt = probe.get("format")
    if isinstance(fmt, dict):
        out.extend(_tag_candidates(fmt.get("tags"), "format"))
    streams = probe.get("streams")
    if isinstance(streams, list):
        for idx, stream in enumerate(streams):
            if isinstance(stream, dict):
                out.extend(_tag_candidates(stream.get("tags"), f"streams[{idx}]", every_string=True))
    return out
