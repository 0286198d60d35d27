import pytest

from pxt_backend.features.metadata.formats import (
    container_format_for,
    detect_format_from_signature,
    is_supported_format,
    supported_extensions,
    validate_format,
)

PNG_HEAD = b"\x89PNG\r\n\x1a\n" + b"\x00" * 8
JPEG_HEAD = b"\xff\xd8\xff\xe0" + b"\x00" * 12
WEBP_HEAD = b"RIFF\x10\x00\x00\x00WEBPVP8X"
MP4_HEAD = b"\x00\x00\x00\x18ftypisom" + b"\x00" * 4
WEBM_HEAD = b"\x1a\x45\xdf\xa3" + b"\x00" * 12


@pytest.mark.parametrize(
    "path, expected",
    [
        ("a.png", "png"),
        ("B.JPG", "jpeg"),
        ("c.jpeg", "jpeg"),
        ("d.webp", "webp"),
        ("e.mp4", "video"),
        ("f.webm", "video"),
        ("g.mov", "video"),
        ("h.gif", None),
        ("noext", None),
    ],
)
def test_container_format_for(path, expected):
    assert container_format_for(path) == expected
    assert is_supported_format(path) is (expected is not None)


def test_supported_extensions_are_sorted_and_dotted():
    exts = supported_extensions()
    assert exts == sorted(exts)
    assert {".png", ".jpg", ".jpeg", ".webp", ".mp4", ".webm"} <= set(exts)


@pytest.mark.parametrize(
    "head, expected",
    [
        (PNG_HEAD, "PNG"),
        (JPEG_HEAD, "JPEG"),
        (WEBP_HEAD, "WEBP"),
        (MP4_HEAD, "MP4"),
        (WEBM_HEAD, "WEBM"),
        (b"GIF89a\x00\x00\x00\x00", None),
        (b"\x89P", None),
        (None, None),
    ],
)
def test_detect_format_from_signature(head, expected):
    assert detect_format_from_signature(head) == expected


def test_validate_format_matching_content():
    assert validate_format("x.png", PNG_HEAD) == {
        "is_valid": True,
        "detected_format": "PNG",
        "expected_format": "PNG",
        "mismatch": False,
    }


def test_validate_format_mismatch():
    result = validate_format("x.png", JPEG_HEAD)
    assert result["is_valid"] is True
    assert result["mismatch"] is True
    assert result["detected_format"] == "JPEG"


def test_validate_format_unknown_content():
    result = validate_format("x.webp", b"\x00" * 16)
    assert result["is_valid"] is False
    assert result["detected_format"] == "unknown"
    assert result["mismatch"] is False


def test_validate_format_extension_only():
    assert validate_format("clip.mkv")["is_valid"] is True
    assert validate_format("clip.mkv")["expected_format"] == "WEBM"
    unknown = validate_format("thing.gif")
    assert unknown["is_valid"] is False
    assert unknown["expected_format"] == "GIF"
