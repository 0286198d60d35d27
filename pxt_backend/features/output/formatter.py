"""
Rendering of extraction results for people and for other programs.

Each entry is a plain dict: {"file": <name>, **ExtractionResult.to_dict()}.
"""
from __future__ import annotations

import json
from typing import Any, Iterable, Literal, Optional

from ...shared import get_logger
from ...utils import basename_any
from ..metadata.classifier import ExtractionResult
from ..workflow.analyzer import analyze_workflow
from ..workflow.validation import extract_workflow_info

logger = get_logger(__name__)

OutputFormat = Literal["json", "pretty", "raw"]

METADATA_PREVIEW_CHARS = 200
NODE_TYPE_PREVIEW = 5


def result_entry(file_path: str, result: ExtractionResult) -> dict[str, Any]:
    return {"file": basename_any(file_path), **result.to_dict()}


def format_output(results: Iterable[dict[str, Any]], fmt: str = "json") -> str:
    """Render `results` as "json" (indent 2), "pretty" or "raw"; unknown formats fall back to json."""
    entries = list(results)
    if fmt == "pretty":
        return _format_pretty(entries)
    if fmt == "raw":
        return _format_raw(entries)
    if fmt != "json":
        logger.debug("Unknown output format %r, using json", fmt)
    return json.dumps(entries, indent=2, ensure_ascii=False)


def _num(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _truncate(text: str, limit: int = METADATA_PREVIEW_CHARS) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _workflow_section(workflow: Any) -> list[str]:
    analysis = analyze_workflow(workflow)
    lines = ["ComfyUI Workflow:"]

    if analysis.loras:
        lines.append("\nLoRA Models:")
        for idx, lora in enumerate(analysis.loras, 1):
            lines.append(f"  {idx}. {lora['name']} (strength: {_num(lora['strength'])})")

    if analysis.prompts:
        lines.append("\nPrompts:")
        labelled = analysis.confident_distinction()
        for idx, prompt in enumerate(analysis.prompts, 1):
            if prompt.positive:
                lines.append(f"  Positive {idx}: {prompt.positive}" if labelled else f"  {idx}: {prompt.positive}")
            if prompt.negative:
                lines.append(f"\n  Negative {idx}: {prompt.negative}" if labelled else f"  {idx}: {prompt.negative}")

    settings = analysis.sampler_settings
    if settings:
        lines.append("\nSampler Settings:")
        if settings.get("steps"):
            lines.append(f"  Steps: {_num(settings['steps'])}")
        if settings.get("cfg") is not None:
            lines.append(f"  CFG Scale: {_num(settings['cfg'])}")
        if settings.get("cfg_start") is not None and settings.get("cfg_end") is not None:
            lines.append(f"  CFG Schedule: {_num(settings['cfg_start'])} → {_num(settings['cfg_end'])}")
        if settings.get("sampler_name"):
            lines.append(f"  Sampler: {settings['sampler_name']}")
        if settings.get("scheduler"):
            lines.append(f"  Scheduler: {settings['scheduler']}")
        if settings.get("seed") is not None:
            lines.append(f"  Seed: {settings['seed']}")
        if settings.get("denoise") is not None:
            lines.append(f"  Denoise: {_num(settings['denoise'])}")

    if analysis.models:
        lines.append("\nModels:")
        for idx, model in enumerate(analysis.models, 1):
            lines.append(f"  {idx}. {model}")

    info = extract_workflow_info(workflow)
    types = info["node_types"]
    more = "..." if len(types) > NODE_TYPE_PREVIEW else ""
    lines.append("\nWorkflow Stats:")
    lines.append(f"  Total Nodes: {info['node_count']}")
    lines.append(f"  Node Types: {', '.join(types[:NODE_TYPE_PREVIEW])}{more}")
    return lines


def _parameters_section(params: dict[str, Any]) -> list[str]:
    lines = ["A1111-style Parameters:"]
    if params.get("positive_prompt"):
        lines.append("\nPrompts:")
        lines.append(f"  Positive: {params['positive_prompt']}")
        if params.get("negative_prompt"):
            lines.append(f"\n  Negative: {params['negative_prompt']}")

    lines.append("\nGeneration Settings:")
    for key, label in (("steps", "Steps"), ("cfg", "CFG Scale"), ("sampler", "Sampler"), ("seed", "Seed"), ("model", "Model")):
        if params.get(key):
            lines.append(f"  {label}: {_num(params[key])}")
    return lines


def _entry_lines(entry: dict[str, Any]) -> list[str]:
    if entry.get("workflow"):
        return _workflow_section(entry["workflow"])
    if isinstance(entry.get("parameters"), dict):
        return _parameters_section(entry["parameters"])
    if entry.get("metadata"):
        return ["Metadata found:", f"  {_truncate(str(entry['metadata']))}"]
    if entry.get("user_comment"):
        return ["User comment found:", f"  {_truncate(str(entry['user_comment']))}"]
    return ["No workflow found"]


def _format_pretty(entries: list[dict[str, Any]]) -> str:
    out: list[str] = []
    for entry in entries:
        out.append(f"\n=== {entry.get('file', '')} ===\n")
        out.append("\n".join(_entry_lines(entry)) + "\n")
        out.append("\n")
    return "".join(out)


def _format_raw(entries: list[dict[str, Any]]) -> str:
    return "".join(
        f"{entry.get('file', '')}: {json.dumps(entry['workflow'], ensure_ascii=False, separators=(',', ':'))}\n"
        for entry in entries
        if entry.get("workflow")
    )


def format_single(file_path: str, result: ExtractionResult, fmt: Optional[str] = None) -> str:
    return format_output([result_entry(file_path, result)], fmt or "json")
