import pytest

from pxt_backend.features.geninfo import a1111
from pxt_backend.features.geninfo.a1111 import (
    extract_generation_settings,
    is_a1111_parameters,
    parse_a1111_parameters,
    separate_prompts,
    validate_a1111_format,
    validate_a1111_parameters,
)
from pxt_shared.errors import InputError

SAMPLE = (
    "masterpiece, 1girl, <lora:detail:0.6>\n"
    "Negative prompt: lowres, bad hands\n"
    "Steps: 28, Sampler: DPM++ 2M Karras, CFG scale: 6.5, Seed: 1234567890, "
    "Size: 832x1216, Model: animagine-xl, Denoising strength: 0.45, Clip skip: 2, "
    "ENSD: 31337, Hires upscale: 1.5, Hires steps: 12, Hires upscaler: 4x-UltraSharp"
)


def test_full_record():
    params = parse_a1111_parameters(SAMPLE)
    assert params["positive_prompt"] == "masterpiece, 1girl, <lora:detail:0.6>"
    assert params["negative_prompt"] == "lowres, bad hands"
    assert params["steps"] == 28
    assert params["sampler"] == "DPM++ 2M Karras"
    assert params["cfg"] == 6.5
    assert params["seed"] == 1234567890
    assert params["size"] == "832x1216"
    assert params["model"] == "animagine-xl"
    assert params["denoise"] == 0.45
    assert params["clip_skip"] == 2
    assert params["ensd"] == "31337"
    assert params["hires_fix"] is True
    assert params["hires_steps"] == 12
    assert params["hires_upscaler"] == "4x-UltraSharp"
    assert params["raw_text"] == SAMPLE


def test_negative_prompt_omitted_when_absent():
    params = parse_a1111_parameters("a cat on a sofa\nSteps: 20, Seed: 1")
    assert params["positive_prompt"] == "a cat on a sofa"
    assert "negative_prompt" not in params


def test_multiline_positive_prompt_is_kept():
    text = "line one\nline two\nNegative prompt: ugly\nSteps: 10"
    positive, negative = separate_prompts(text)
    assert positive == "line one\nline two"
    assert negative == "ugly"


def test_negative_runs_to_end_without_settings():
    assert separate_prompts("sunset\nNegative: blurry, dark") == ("sunset", "blurry, dark")


def test_settings_marker_before_negative_does_not_cut_it():
    positive, negative = separate_prompts("Model: x prompt\nNegative prompt: noisy\nSteps: 5")
    assert positive == "Model: x prompt"
    assert negative == "noisy"


def test_prompt_without_any_marker():
    assert separate_prompts("  just words  ") == ("just words", "")


def test_invalid_number_is_omitted():
    settings = extract_generation_settings("CFG scale: 7.5.1, Steps: abc, Seed: 3")
    assert "cfg" not in settings
    assert "steps" not in settings
    assert settings["seed"] == 3


def test_restore_faces_flag():
    assert extract_generation_settings("Steps: 5, Restore faces: CodeFormer")["restore_faces"] is True


@pytest.mark.parametrize("bad", [None, 42, "", "   \n"])
def test_rejects_non_text_input(bad):
    with pytest.raises(InputError):
        parse_a1111_parameters(bad)


def test_marker_checks():
    assert is_a1111_parameters("foo\nSteps: 20")
    assert is_a1111_parameters("CFG scale: 5")
    assert not is_a1111_parameters('{"nodes": []}')
    assert not is_a1111_parameters(None)

    assert validate_a1111_format("Negative prompt: x")
    assert validate_a1111_format("Size: 512x768")
    assert not validate_a1111_format("plain words")
    assert not validate_a1111_format("")


def test_validate_parsed_record_ranges():
    assert validate_a1111_parameters({"positive_prompt": "a", "steps": 20, "cfg": 7.0, "denoise": 0.5})
    assert not validate_a1111_parameters({"positive_prompt": "", "steps": 20})
    assert not validate_a1111_parameters({"positive_prompt": "a", "steps": 0})
    assert not validate_a1111_parameters({"positive_prompt": "a", "cfg": 31})
    assert not validate_a1111_parameters({"positive_prompt": "a", "clip_skip": 13})
    assert not validate_a1111_parameters({"positive_prompt": "a", "steps": "20"})
    assert not validate_a1111_parameters(None)


def test_internal_failure_degrades_to_raw_text(monkeypatch):
    def broken(_text):
        raise KeyError("steps")

    monkeypatch.setattr(a1111, "extract_generation_settings", broken)
    assert a1111.parse_a1111_parameters("  a cat\nSteps: 20  ") == {
        "positive_prompt": "a cat\nSteps: 20",
        "raw_text": "a cat\nSteps: 20",
    }
