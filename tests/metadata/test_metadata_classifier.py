import json

from pxt_backend.features.metadata.classifier import (
    EMPTY_RESULT,
    ExtractionResult,
    classify_jpeg,
    classify_png,
    classify_video,
    classify_webp,
    find_workflow_in_text,
)
from pxt_backend.features.metadata.locators import CandidateBlob

API_PROMPT = json.dumps({"3": {"class_type": "KSampler", "inputs": {"seed": 5}}})
EDITOR_WORKFLOW = json.dumps({"nodes": [{"id": 1, "type": "KSampler"}], "links": []})
A1111_TEXT = "a cat\nNegative prompt: dog\nSteps: 20, Sampler: Euler a, CFG scale: 7, Seed: 9"


def test_png_workflow_chunk_wins():
    result = classify_png([CandidateBlob("prompt", API_PROMPT), CandidateBlob("parameters", A1111_TEXT)])
    assert result.kind == "workflow"
    assert result.source == "prompt"
    assert result.workflow["3"]["class_type"] == "KSampler"


def test_png_parameters_after_unusable_json():
    result = classify_png([CandidateBlob("prompt", "not json"), CandidateBlob("parameters", A1111_TEXT)])
    assert result.kind == "parameters"
    assert result.parameters["steps"] == 20
    assert result.raw_parameters == A1111_TEXT
    assert result.to_dict() == {"parameters": result.parameters, "raw_parameters": A1111_TEXT}


def test_png_non_workflow_json_becomes_metadata():
    result = classify_png([CandidateBlob("workflow", '{"version": 1}'), CandidateBlob("seed", "42")])
    assert result.kind == "metadata"
    assert result.metadata == '{"version": 1}'
    assert result.to_dict() == {"metadata": '{"version": 1}'}


def test_png_without_candidates_is_empty():
    result = classify_png([])
    assert result is EMPTY_RESULT
    assert not result
    assert result.to_dict() == {}


def test_jpeg_embedded_workflow_is_found():
    text = f"generated with ComfyUI {EDITOR_WORKFLOW} trailing words"
    result = classify_jpeg([CandidateBlob("UserComment", text)])
    assert result.kind == "workflow"
    assert result.workflow["nodes"][0]["type"] == "KSampler"


def test_jpeg_user_comment_parameters_beat_description():
    other = "sky\nSteps: 50, Sampler: DDIM"
    result = classify_jpeg([CandidateBlob("ImageDescription", other), CandidateBlob("UserComment", A1111_TEXT)])
    assert result.kind == "parameters"
    assert result.source == "UserComment"
    assert result.parameters["negative_prompt"] == "dog"


def test_jpeg_description_parameters_when_comment_is_plain():
    result = classify_jpeg([CandidateBlob("UserComment", "hi"), CandidateBlob("ImageDescription", A1111_TEXT)])
    assert result.kind == "parameters"
    assert result.source == "ImageDescription"


def test_jpeg_comment_mentioning_prompt():
    assert classify_jpeg([CandidateBlob("UserComment", "prompt: see notes")]).kind == "metadata"
    loose = classify_jpeg([CandidateBlob("UserComment", 'workflow: {"a": 1}')])
    assert loose.kind == "workflow"
    assert loose.workflow == {"a": 1}


def test_jpeg_plain_comment_and_nothing():
    result = classify_jpeg([CandidateBlob("UserComment", "shot on a sunny day")])
    assert result.kind == "user_comment"
    assert result.to_dict() == {"user_comment": "shot on a sunny day"}
    assert classify_jpeg([CandidateBlob("Software", "GIMP")]) is EMPTY_RESULT


def test_webp_comment_parameters():
    result = classify_webp([CandidateBlob("UserComment", A1111_TEXT)])
    assert result.kind == "parameters"
    assert result.parameters["sampler"] == "Euler a"


def test_webp_make_workflow_beats_plain_comment():
    result = classify_webp([CandidateBlob("UserComment", "hello"), CandidateBlob("Make", f"workflow:{EDITOR_WORKFLOW}")])
    assert result.kind == "workflow"
    assert result.source == "Make"


def test_webp_plain_comment():
    result = classify_webp([CandidateBlob("UserComment", "hello"), CandidateBlob("Model", "Pixel 7")])
    assert result.kind == "user_comment"
    assert result.user_comment == "hello"


def test_webp_comment_workflow():
    result = classify_webp([CandidateBlob("UserComment", API_PROMPT), CandidateBlob("Model", "Pixel 7")])
    assert result.kind == "workflow"
    assert result.workflow == json.loads(API_PROMPT)
    assert result.source == "UserComment"


def test_webp_keyword_comment_becomes_metadata():
    result = classify_webp([CandidateBlob("UserComment", "prompt: something not json")])
    assert result.kind == "metadata"
    assert result.metadata == "prompt: something not json"


def test_webp_make_workflow_beats_keyword_comment():
    result = classify_webp(
        [CandidateBlob("UserComment", "workflow lost"), CandidateBlob("Make", f"workflow:{EDITOR_WORKFLOW}")]
    )
    assert result.kind == "workflow"
    assert result.source == "Make"


def test_video_workflow_wrapper_is_unwrapped():
    wrapped = json.dumps({"workflow": EDITOR_WORKFLOW})
    result = classify_video([CandidateBlob("format.comment", wrapped)])
    assert result.kind == "workflow"
    assert result.workflow == json.loads(EDITOR_WORKFLOW)
    assert result.source == "format.comment"


def test_video_later_stream_tag():
    result = classify_video([CandidateBlob("format.comment", "Lavf encoded"), CandidateBlob("streams[0].workflow", API_PROMPT)])
    assert result.source == "streams[0].workflow"
    assert classify_video([CandidateBlob("format.comment", "nothing")]) is EMPTY_RESULT


def test_find_workflow_in_text():
    assert find_workflow_in_text(API_PROMPT) == json.loads(API_PROMPT)
    assert find_workflow_in_text('{"a": 1}') is None
    assert find_workflow_in_text("no json here") is None


def test_result_constructors():
    assert ExtractionResult.of_workflow({"1": {}}).found
    assert ExtractionResult.of_parameters({"positive_prompt": "x"}, None).to_dict() == {"parameters": {"positive_prompt": "x"}}
