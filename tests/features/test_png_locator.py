import struct
import zlib

from pxt_backend.features.metadata.locators import (
    PNG_SIGNATURE,
    CandidateBlob,
    iter_png_chunks,
    png_candidates,
    png_text_chunks,
)


def _chunk(kind: bytes, payload: bytes) -> bytes:
    return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload) & 0xFFFFFFFF)


def _png(*chunks: bytes) -> bytes:
    ihdr = _chunk(b"IHDR", struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0))
    return PNG_SIGNATURE + ihdr + b"".join(chunks) + _chunk(b"IEND", b"")


def _text(keyword: str, text: str) -> bytes:
    return _chunk(b"tEXt", keyword.encode("latin-1") + b"\x00" + text.encode("latin-1"))


def test_walks_chunks_until_iend():
    data = _png(_text("parameters", "a cat")) + _chunk(b"tEXt", b"after\x00ignored")
    kinds = [kind for kind, _ in iter_png_chunks(data)]
    assert kinds == [b"IHDR", b"tEXt", b"IEND"]


def test_truncated_chunk_stops_the_walk():
    good = _png(_text("prompt", "{}"))
    truncated = good[:-12] + struct.pack(">I", 9999) + b"tEXt" + b"short"
    chunks = png_text_chunks(truncated)
    assert chunks == [("prompt", "{}")]


def test_bad_signature_yields_nothing():
    assert png_text_chunks(b"GIF89a" + b"\x00" * 40) == []


def test_ztxt_and_itxt_are_decoded():
    ztxt = _chunk(b"zTXt", b"workflow\x00\x00" + zlib.compress(b'{"nodes": []}'))
    itxt_plain = _chunk(b"iTXt", b"prompt\x00\x00\x00en\x00\x00" + "{\"1\": \"é\"}".encode("utf-8"))
    itxt_packed = _chunk(b"iTXt", b"comfyui\x00\x01\x00\x00\x00" + zlib.compress(b"packed"))
    chunks = png_text_chunks(_png(ztxt, itxt_plain, itxt_packed))
    assert chunks == [("workflow", '{"nodes": []}'), ("prompt", '{"1": "é"}'), ("comfyui", "packed")]


def test_candidates_follow_keyword_priority():
    data = _png(
        _text("Software", "ignored"),
        _text("seed", "42"),
        _text("parameters", "a cat, Steps: 20"),
        _text("workflow", '{"nodes": []}'),
        _text("prompt", '{"3": {"class_type": "KSampler", "inputs": {}}}'),
    )
    tags = [c.origin_tag for c in png_candidates(data)]
    assert tags == ["prompt", "workflow", "parameters", "seed"]


def test_candidate_blob_is_immutable():
    blob = CandidateBlob("prompt", "{}")
    try:
        blob.text = "x"  # type: ignore[misc]
    except AttributeError:
        pass
    else:
        raise AssertionError("CandidateBlob should be frozen")
