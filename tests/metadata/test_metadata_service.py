import json
import struct
import zlib

import pytest

from pxt_backend.features.metadata.classifier import ExtractionResult
from pxt_backend.features.metadata.metadata_cache import MetadataCache
from pxt_backend.features.metadata.service import (
    aextract_from_file,
    convert_parameters,
    extract_from_bytes,
    extract_from_file,
    extract_from_probe,
)
from pxt_backend.shared import (
    ErrorCode,
    ExternalCommandError,
    FileAccessError,
    MetadataNotFoundError,
    Result,
    UnsupportedFormatError,
    request_id_var,
)

API_PROMPT = json.dumps({"3": {"class_type": "KSampler", "inputs": {"seed": 5, "steps": 20}}})
A1111_TEXT = "a cat\nNegative prompt: dog\nSteps: 20, Sampler: Euler a, CFG scale: 7, Seed: 9, Size: 512x512"


def _chunk(kind: bytes, payload: bytes) -> bytes:
    return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload) & 0xFFFFFFFF)


def _png(**texts: str) -> bytes:
    body = b"".join(_chunk(b"tEXt", k.encode("latin-1") + b"\x00" + v.encode("latin-1")) for k, v in texts.items())
    ihdr = _chunk(b"IHDR", struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0))
    return b"\x89PNG\r\n\x1a\n" + ihdr + body + _chunk(b"IEND", b"")


class _FakeProbe:
    bin = "fake-ffprobe"

    def __init__(self, result):
        self.result = result
        self.calls = 0

    def is_available(self):
        return True

    def read(self, path):
        self.calls += 1
        return self.result

    async def aread(self, path):
        self.calls += 1
        return self.result


def _probe_ok(comment: str) -> _FakeProbe:
    return _FakeProbe(Result.Ok({"format": {"tags": {"comment": comment}}, "streams": []}))


def test_png_workflow_from_file(write_file):
    path = write_file("render.png", _png(parameters=A1111_TEXT, prompt=API_PROMPT))
    result = extract_from_file(path)
    assert result.kind == "workflow"
    assert result.source == "prompt"
    assert request_id_var.get() == ""


def test_png_parameters_from_file(write_file):
    path = write_file("render.png", _png(parameters=A1111_TEXT))
    result = extract_from_file(path)
    assert result.kind == "parameters"
    assert result.parameters["seed"] == 9


def test_content_signature_overrides_extension(write_file):
    path = write_file("actually_png.jpg", _png(prompt=API_PROMPT))
    assert extract_from_file(path).kind == "workflow"


def test_image_without_metadata_is_empty_not_error(write_file):
    path = write_file("plain.png", _png())
    result = extract_from_file(path)
    assert not result.found
    assert result.to_dict() == {}


def test_unsupported_extension(write_file):
    path = write_file("anim.gif", b"GIF89a")
    with pytest.raises(UnsupportedFormatError) as err:
        extract_from_file(path)
    assert err.value.extension == ".gif"
    assert ".png" in err.value.supported_formats


def test_missing_image_is_file_access_error(tmp_path):
    with pytest.raises(FileAccessError) as err:
        extract_from_file(str(tmp_path / "missing.png"))
    assert err.value.operation == "read"


def test_missing_video_is_checked_before_probing(tmp_path):
    probe = _probe_ok(API_PROMPT)
    with pytest.raises(FileAccessError) as err:
        extract_from_file(str(tmp_path / "missing.mp4"), probe=probe)
    assert err.value.operation == "stat"
    assert probe.calls == 0


def test_video_workflow_from_probe(write_file):
    path = write_file("clip.mp4", b"\x00\x00\x00\x18ftypisom")
    result = extract_from_file(path, probe=_probe_ok(API_PROMPT))
    assert result.kind == "workflow"
    assert result.source == "format.comment"


def test_probe_failure_raises_external_command_error(write_file):
    path = write_file("clip.webm", b"\x1a\x45\xdf\xa3")
    probe = _FakeProbe(Result.Err(ErrorCode.FFPROBE_ERROR, "Invalid data", exit_code=1, stderr="Invalid data"))
    with pytest.raises(ExternalCommandError) as err:
        extract_from_file(path, probe=probe)
    assert err.value.command == "fake-ffprobe"
    assert err.value.exit_code == 1
    assert err.value.stderr == "Invalid data"


def test_probe_without_data_raises_not_found(write_file):
    path = write_file("clip.mov", b"x")
    with pytest.raises(MetadataNotFoundError):
        extract_from_file(path, probe=_FakeProbe(Result.Ok(None)))


def test_cache_skips_second_probe(write_file):
    path = write_file("clip.mp4", b"x")
    probe = _probe_ok(API_PROMPT)
    cache = MetadataCache()
    first = extract_from_file(path, probe=probe, cache=cache)
    second = extract_from_file(path, probe=probe, cache=cache)
    assert first == second
    assert probe.calls == 1
    assert cache.stats()["hits"] == 1


@pytest.mark.asyncio
async def test_async_image_and_video(write_file):
    png_path = write_file("render.png", _png(prompt=API_PROMPT))
    video_path = write_file("clip.mp4", b"x")
    probe = _probe_ok("no workflow here")

    image_result = await aextract_from_file(png_path)
    video_result = await aextract_from_file(video_path, probe=probe)
    assert image_result.kind == "workflow"
    assert not video_result.found
    assert probe.calls == 1


@pytest.mark.asyncio
async def test_async_unsupported_extension(write_file):
    with pytest.raises(UnsupportedFormatError):
        await aextract_from_file(write_file("notes.txt", b"hi"))


def test_extract_from_bytes_and_probe_helpers():
    assert extract_from_bytes(_png(prompt=API_PROMPT), "png").kind == "workflow"
    with pytest.raises(ValueError):
        extract_from_bytes(b"", "gif")
    assert not extract_from_probe("not a dict").found


def test_convert_parameters_only_for_parameter_results():
    params = ExtractionResult.of_parameters({"positive_prompt": "a cat", "steps": 20}, "a cat\nSteps: 20")
    converted = convert_parameters(params)
    assert converted["success"] is True
    assert converted["workflow"]["nodes"]

    assert convert_parameters(ExtractionResult.of_workflow({"1": {"class_type": "A"}})) is None
    assert convert_parameters(ExtractionResult.of_parameters({}, None)) is None
