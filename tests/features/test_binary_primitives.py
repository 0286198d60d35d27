import zlib

from pxt_backend.features.metadata import binary


def _packed(text: str, prefix: bool = True) -> bytes:
    body = b"".join(bytes([b, 0]) for b in text.encode("utf-8"))
    return (b"UNICODE\x00\x00" if prefix else b"") + body


def test_integer_readers():
    data = b"\x00\x00\x01\x02\x03\x04"
    assert binary.read_u32_be(data, 0) == 0x00000102
    assert binary.read_u32_le(data, 2) == 0x04030201
    assert binary.read_u16_be(data, 2) == 0x0102
    assert binary.read_u16_le(data, 2) == 0x0201


def test_read_cstring_and_keyword_split():
    assert binary.read_cstring(b"abc\x00def", 0) == ("abc", 4)
    assert binary.read_cstring(b"abc", 1) == ("bc", 3)
    assert binary.split_keyword_text(b"prompt\x00{}") == ("prompt", b"{}")
    assert binary.split_keyword_text(b"\x00text") is None
    assert binary.split_keyword_text(b"nokeyword") is None


def test_as_byte_values_accepts_int_sequences_and_index_maps():
    assert binary.as_byte_values([65, 66]) == b"AB"
    assert binary.as_byte_values({"0": 67, "1": 68}) == b"CD"
    assert binary.as_byte_values(bytearray(b"x")) == b"x"
    assert binary.as_byte_values(["a"]) is None
    assert binary.as_byte_values(3.5) is None


def test_decode_packed_utf16_with_and_without_prefix():
    assert binary.decode_packed_utf16(_packed("Steps: 20")) == "Steps: 20"
    assert binary.decode_packed_utf16(_packed("hello world", prefix=False)) == "hello world"


def test_decode_packed_utf16_rejects_short_blobs():
    assert binary.decode_packed_utf16(b"UNICODE\x00") is None
    assert binary.decode_packed_utf16(b"123456789") is None


def test_decode_text_value_passes_strings_through():
    assert binary.decode_text_value("plain") == "plain"
    assert binary.decode_text_value(None) is None
    assert binary.decode_text_value(list(_packed("abcdef"))) == "abcdef"


def test_text_after_unicode_marker():
    buffer = b"Exif\x00\x00II*\x00junk" + _packed("a cat, Steps: 5")
    assert binary.text_after_unicode_marker(buffer) == "a cat, Steps: 5"
    assert binary.text_after_unicode_marker(b"no marker here") is None


def test_safe_zlib_decompress_limits_output():
    payload = zlib.compress(b"a" * 1000)
    assert binary.safe_zlib_decompress(payload) == b"a" * 1000
    assert binary.safe_zlib_decompress(payload, max_size=10) is None
    assert binary.safe_zlib_decompress(b"not zlib") is None


def test_loads_json_prefixes_and_nested_strings():
    assert binary.loads_json('workflow: {"nodes": []}') == {"nodes": []}
    assert binary.loads_json('PROMPT:{"1": {}}') == {"1": {}}
    assert binary.loads_json('"{\\"a\\": 1}"') == {"a": 1}
    assert binary.loads_json("[1, 2]") == [1, 2]
    assert binary.loads_json("42") is None
    assert binary.loads_json("not json") is None
    assert binary.loads_json('{"broken": ') is None
    assert binary.loads_json(None) is None


def test_iter_json_objects_finds_top_level_objects_only():
    text = 'prefix {"a": {"inner": 1}} middle {bad json} tail {"b": 2}'
    assert binary.find_json_objects(text) == [{"a": {"inner": 1}}, {"b": 2}]
    assert binary.find_json_objects("nothing") == []
