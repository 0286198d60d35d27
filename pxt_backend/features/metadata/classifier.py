"""
Per-container classification of candidate blobs.

Candidates are examined in locator order. The first one that yields a
workflow or an A1111 parameter record wins and the rest are never looked at.
Weaker outcomes (opaque JSON/text, a bare user comment) are only returned
when no candidate is accepted.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional

from ...shared import InputError, get_logger
from ..geninfo.a1111 import is_a1111_parameters, parse_a1111_parameters
from ..workflow.validation import validate_workflow
from .binary import iter_json_objects, loads_json
from .locators import CandidateBlob

logger = get_logger(__name__)

ResultKind = Literal["workflow", "parameters", "metadata", "user_comment", "none"]


@dataclass(frozen=True)
class ExtractionResult:
    """Exactly one of: workflow, parameters (+raw text), metadata, user_comment, or nothing."""

    kind: ResultKind = "none"
    workflow: Any = None
    parameters: Optional[dict[str, Any]] = None
    raw_parameters: Optional[str] = None
    metadata: Optional[str] = None
    user_comment: Optional[str] = None
    source: Optional[str] = None

    @classmethod
    def of_workflow(cls, workflow: Any, source: Optional[str] = None) -> "ExtractionResult":
        return cls(kind="workflow", workflow=workflow, source=source)

    @classmethod
    def of_parameters(cls, parameters: dict[str, Any], raw: Optional[str], source: Optional[str] = None) -> "ExtractionResult":
        return cls(kind="parameters", parameters=parameters, raw_parameters=raw, source=source)

    @classmethod
    def of_metadata(cls, text: str, source: Optional[str] = None) -> "ExtractionResult":
        return cls(kind="metadata", metadata=text, source=source)

    @classmethod
    def of_user_comment(cls, text: str, source: Optional[str] = None) -> "ExtractionResult":
        return cls(kind="user_comment", user_comment=text, source=source)

    @property
    def found(self) -> bool:
        return self.kind != "none"

    def __bool__(self) -> bool:
        return self.found

    def to_dict(self) -> dict[str, Any]:
        if self.kind == "workflow":
            return {"workflow": self.workflow}
        if self.kind == "parameters":
            out: dict[str, Any] = {"parameters": self.parameters}
            if self.raw_parameters is not None:
                out["raw_parameters"] = self.raw_parameters
            return out
        if self.kind == "metadata":
            return {"metadata": self.metadata}
        if self.kind == "user_comment":
            return {"user_comment": self.user_comment}
        return {}


EMPTY_RESULT = ExtractionResult()


def _unwrap_video_workflow(parsed: Any) -> Any:
    if isinstance(parsed, dict) and "workflow" in parsed:
        inner = parsed["workflow"]
        if isinstance(inner, str):
            inner = loads_json(inner)
        return inner if inner else parsed
    return parsed


def find_workflow_in_text(text: str) -> Any:
    """
    Parse `text` as JSON and validate it as a workflow; failing that, try each
    JSON object embedded in the text. Returns the workflow or None.
    """
    parsed = loads_json(text)
    if parsed is not None:
        if validate_workflow(parsed):
            return parsed
        return None
    for obj in iter_json_objects(text):
        if validate_workflow(obj):
            return obj
    return None


def _parse_parameters(blob: CandidateBlob) -> Optional[ExtractionResult]:
    try:
        params = parse_a1111_parameters(blob.text)
    except InputError as exc:
        logger.debug("Skipping %s: %s", blob.origin_tag, exc)
        return None
    return ExtractionResult.of_parameters(params, blob.text, blob.origin_tag)


# ---------------------------------------------------------------------------
# PNG
# ---------------------------------------------------------------------------

def classify_png(candidates: list[CandidateBlob]) -> ExtractionResult:
    """
    `parameters` chunks are A1111 text; every other keyword is tried as JSON.

    JSON that is not a workflow, and non-JSON text, are kept as the fallback
    `metadata` result.
    """
    fallback: Optional[ExtractionResult] = None
    for blob in candidates:
        if blob.origin_tag == "parameters":
            result = _parse_parameters(blob)
            if result is not None:
                return result
            continue
        parsed = loads_json(blob.text)
        if parsed is not None and validate_workflow(parsed):
            return ExtractionResult.of_workflow(parsed, blob.origin_tag)
        logger.debug("PNG chunk %r is not a workflow", blob.origin_tag)
        if fallback is None and blob.text.strip():
            fallback = ExtractionResult.of_metadata(blob.text, blob.origin_tag)
    return fallback or EMPTY_RESULT


# ---------------------------------------------------------------------------
# JPEG
# ---------------------------------------------------------------------------

def _first_by_tag(candidates: list[CandidateBlob], tag: str) -> Optional[CandidateBlob]:
    return next((c for c in candidates if c.origin_tag == tag), None)


def classify_jpeg(candidates: list[CandidateBlob]) -> ExtractionResult:
    """
    Precedence:
      1. any field holding a workflow (directly or as embedded JSON), field order;
      2. A1111 text in UserComment, then ImageDescription, then the other fields;
      3. a UserComment mentioning workflow/prompt: JSON -> workflow, else metadata;
      4. any other UserComment text.
    """
    for blob in candidates:
        workflow = find_workflow_in_text(blob.text)
        if workflow is not None:
            return ExtractionResult.of_workflow(workflow, blob.origin_tag)

    preferred = [c for c in (_first_by_tag(candidates, t) for t in ("UserComment", "ImageDescription")) if c is not None]
    ordered = preferred + [c for c in candidates if c not in preferred]
    for blob in ordered:
        if is_a1111_parameters(blob.text):
            result = _parse_parameters(blob)
            if result is not None:
                return result

    comment = _first_by_tag(candidates, "UserComment")
    if comment is None:
        return EMPTY_RESULT
    if "workflow" in comment.text or "prompt" in comment.text:
        parsed = loads_json(comment.text)
        if parsed is not None:
            return ExtractionResult.of_workflow(parsed, comment.origin_tag)
        return ExtractionResult.of_metadata(comment.text, comment.origin_tag)
    return ExtractionResult.of_user_comment(comment.text, comment.origin_tag)


# ---------------------------------------------------------------------------
# WebP
# ---------------------------------------------------------------------------

def classify_webp(candidates: list[CandidateBlob]) -> ExtractionResult:
    """
    The UNICODE user comment is A1111 text, a workflow, keyword-bearing
    metadata or an opaque comment; the Make/Model/ImageDescription fields
    may hold "workflow:" / "prompt:" JSON. A workflow anywhere beats the
    comment fallbacks.
    """
    comment_result: Optional[ExtractionResult] = None
    for blob in candidates:
        if blob.origin_tag == "UserComment":
            if is_a1111_parameters(blob.text):
                result = _parse_parameters(blob)
                if result is not None:
                    return result
            workflow = find_workflow_in_text(blob.text)
            if workflow is not None:
                return ExtractionResult.of_workflow(workflow, blob.origin_tag)
            if comment_result is None and blob.text.strip():
                if "workflow" in blob.text or "prompt" in blob.text:
                    comment_result = ExtractionResult.of_metadata(blob.text, blob.origin_tag)
                else:
                    comment_result = ExtractionResult.of_user_comment(blob.text, blob.origin_tag)
            continue
        workflow = find_workflow_in_text(blob.text)
        if workflow is not None:
            return ExtractionResult.of_workflow(workflow, blob.origin_tag)
    return comment_result or EMPTY_RESULT


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------

def classify_video(candidates: list[CandidateBlob]) -> ExtractionResult:
    """First tag holding a workflow wins; a `{"workflow": ...}` wrapper is unwrapped."""
    for blob in candidates:
        workflow = find_workflow_in_text(blob.text)
        if workflow is not None:
            return ExtractionResult.of_workflow(_unwrap_video_workflow(workflow), blob.origin_tag)
        logger.debug("Video tag %r holds no workflow", blob.origin_tag)
    return EMPTY_RESULT
