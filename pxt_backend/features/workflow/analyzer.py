"""
Structured facts from a workflow graph.

Works on the canonical node map produced by `normalize_workflow`, so both
encodings share every rule below:
- sampler/guider `positive` / `negative` inputs are followed back to the text
  encoders feeding them, which labels prompt polarity;
- prompt fragments are paired positive/negative;
- LoRAs come from Power Lora Loader sub-records, single loader nodes and
  inline `<lora:name:strength>` tags;
- model names come from loader nodes, reduced to a basename.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from ...config import PROMPT_DISTINCTION_MAX_FRAGMENTS
from ...shared import get_logger
from ...utils import basename_any, to_float
from .normalize import WorkflowGraph, is_link_value, normalize_workflow

logger = get_logger(__name__)

LORA_TAG_RE = re.compile(r"<lora:([^:>]+):([0-9.]+)>")
LORA_EXTENSIONS: tuple[str, ...] = (".safetensors", ".pt", ".ckpt", ".bin")

POWER_LORA_LOADER = "Power Lora Loader (rgthree)"
TEXT_NODE_TYPES = frozenset({"CLIPTextEncode", "WanVideoTextEncode", "Text Multiline", "easy showAnything"})
MODEL_LOADER_TOKENS: tuple[str, ...] = ("ModelLoader", "CheckpointLoader", "VAELoader", "UNETLoader")
MODEL_NAME_KEYS: tuple[str, ...] = ("model_name", "ckpt_name", "model", "unet_name")
TEXT_INPUT_KEYS: tuple[str, ...] = ("text", "positive_prompt")
SAMPLER_FIELD_KEYS: tuple[str, ...] = ("steps", "cfg", "shift", "seed", "noise_seed", "denoise", "denoise_strength")

# Upstream hops followed from a sampler input before giving up
MAX_CONDITIONING_DEPTH = 8


@dataclass(frozen=True)
class PromptFragment:
    positive: str = ""
    negative: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"positive": self.positive}
        if self.negative is not None:
            out["negative"] = self.negative
        return out


@dataclass(frozen=True)
class PromptConnections:
    positive: tuple[str, ...] = ()
    negative: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowAnalysis:
    loras: tuple[dict[str, Any], ...] = ()
    prompts: tuple[PromptFragment, ...] = ()
    sampler_settings: Optional[dict[str, Any]] = None
    models: tuple[str, ...] = ()
    connections: PromptConnections = field(default_factory=PromptConnections)

    def confident_distinction(self, max_fragments: Optional[int] = None) -> bool:
        return has_confident_distinction(self.prompts, max_fragments)

    def to_dict(self) -> dict[str, Any]:
        return {
            "loras": [dict(lora) for lora in self.loras],
            "prompts": [p.to_dict() for p in self.prompts],
            "sampler_settings": dict(self.sampler_settings) if self.sampler_settings is not None else None,
            "models": list(self.models),
        }


def lora_path(name: str) -> str:
    """Deterministic file name for a LoRA reference; no filesystem lookup."""
    return name if name.lower().endswith(LORA_EXTENSIONS) else f"{name}.safetensors"


def _lora(name: Any, strength: Any) -> Optional[dict[str, Any]]:
    clean = basename_any(name).strip()
    value = to_float(strength)
    if not clean or value is None:
        return None
    return {"name": clean, "strength": value, "path": lora_path(clean)}


def extract_lora_tags_from_text(text: str) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for match in LORA_TAG_RE.finditer(text or ""):
        lora = _lora(match.group(1), match.group(2))
        if lora:
            out.append(lora)
    return out


def _class_type(node: dict[str, Any]) -> str:
    value = node.get("class_type")
    return value if isinstance(value, str) else ""


def _inputs(node: dict[str, Any]) -> dict[str, Any]:
    value = node.get("inputs")
    return value if isinstance(value, dict) else {}


def is_sampler_type(class_type: str) -> bool:
    return "Sampler" in class_type


def _is_conditioning_consumer(class_type: str) -> bool:
    return is_sampler_type(class_type) or "Guider" in class_type


def is_text_node_type(class_type: str) -> bool:
    return class_type in TEXT_NODE_TYPES or "TextEncode" in class_type


def _trace_text_sources(graph: WorkflowGraph, start: Optional[str], polarity: str) -> list[str]:
    """
    Follow a conditioning edge back to the text nodes producing it.

    Intermediate nodes are crossed through their same-polarity or
    `conditioning*` inputs only.
    """
    found: list[str] = []
    frontier = [start] if start else []
    seen: set[str] = set()
    depth = 0
    while frontier and depth <= MAX_CONDITIONING_DEPTH:
        next_frontier: list[str] = []
        for node_id in frontier:
            if node_id in seen:
                continue
            seen.add(node_id)
            node = graph.nodes.get(node_id)
            if node is None:
                continue
            if is_text_node_type(_class_type(node)):
                found.append(node_id)
                continue
            for name, value in _inputs(node).items():
                if name == polarity or name.startswith("conditioning"):
                    source = graph.source_of(value)
                    if source:
                        next_frontier.append(source)
        frontier = next_frontier
        depth += 1
    return found


def find_prompt_connections(graph: WorkflowGraph) -> PromptConnections:
    """Text-node ids feeding any sampler's positive and negative inputs."""
    positive: list[str] = []
    negative: list[str] = []
    for _node_id, node in graph.ordered_items():
        if not _is_conditioning_consumer(_class_type(node)):
            continue
        inputs = _inputs(node)
        for polarity, bucket in (("positive", positive), ("negative", negative)):
            source = graph.source_of(inputs.get(polarity))
            if not source:
                continue
            traced = _trace_text_sources(graph, source, polarity) or [source]
            bucket.extend(sid for sid in traced if sid not in bucket)
    return PromptConnections(tuple(positive), tuple(negative))


def _resolve_text(graph: WorkflowGraph, value: Any) -> Optional[str]:
    """Literal text, or the literal text of a primitive/string node one link upstream."""
    if isinstance(value, str):
        return value
    if not is_link_value(value):
        return None
    source = graph.nodes.get(graph.source_of(value) or "")
    if source is None:
        return None
    src_inputs = _inputs(source)
    for key in ("text", "value", "string", "text_0"):
        candidate = src_inputs.get(key)
        if isinstance(candidate, str):
            return candidate
    return None


def _node_prompt_text(graph: WorkflowGraph, inputs: dict[str, Any]) -> Optional[str]:
    for key in TEXT_INPUT_KEYS:
        if key in inputs and inputs[key] not in (None, ""):
            text = _resolve_text(graph, inputs[key])
            return text if text and text.strip() else None
    return None


def _collect_prompt(graph: WorkflowGraph, node_id: str, inputs: dict[str, Any], connections: PromptConnections) -> Optional[PromptFragment]:
    text = _node_prompt_text(graph, inputs)
    if text is None:
        return None
    if node_id in connections.positive:
        return PromptFragment(positive=text)
    if node_id in connections.negative:
        return PromptFragment(positive="", negative=text)
    negative = inputs.get("negative_prompt", inputs.get("negative"))
    return PromptFragment(positive=text, negative=negative if isinstance(negative, str) and negative else None)


def _power_lora_entries(inputs: dict[str, Any]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for key, value in inputs.items():
        if not key.lower().startswith("lora_") or not isinstance(value, dict):
            continue
        if value.get("on") is not True or not value.get("lora") or value.get("strength") is None:
            continue
        lora = _lora(value.get("lora"), value.get("strength"))
        if lora:
            out.append(lora)
    return out


def _loader_entries(class_type: str, inputs: dict[str, Any]) -> list[dict[str, Any]]:
    if "lora" not in class_type.lower():
        return []
    out: list[dict[str, Any]] = []
    if isinstance(inputs.get("lora"), str) and inputs.get("strength") is not None:
        lora = _lora(inputs["lora"], inputs["strength"])
        if lora:
            out.append(lora)
    if isinstance(inputs.get("lora_name"), str):
        strength = inputs.get("strength_model", inputs.get("strength"))
        lora = _lora(inputs["lora_name"], strength)
        if lora:
            out.append(lora)
    return out


def _inline_tag_entries(inputs: dict[str, Any]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for value in inputs.values():
        if isinstance(value, str) and "<lora:" in value:
            out.extend(extract_lora_tags_from_text(value))
    return out


def extract_loras(class_type: str, inputs: dict[str, Any]) -> list[dict[str, Any]]:
    """All LoRA references one node carries, in shape order: power loader, single loader, inline tags."""
    loras: list[dict[str, Any]] = []
    if class_type == POWER_LORA_LOADER:
        loras.extend(_power_lora_entries(inputs))
    else:
        loras.extend(_loader_entries(class_type, inputs))
    loras.extend(_inline_tag_entries(inputs))
    return loras


def _literal(inputs: dict[str, Any], key: str) -> Any:
    value = inputs.get(key)
    return None if value is None or is_link_value(value) else value


def _sampler_settings(inputs: dict[str, Any]) -> Optional[dict[str, Any]]:
    if not any(_literal(inputs, key) is not None for key in SAMPLER_FIELD_KEYS):
        return None
    cfg = _literal(inputs, "cfg")
    if isinstance(cfg, bool) or not isinstance(cfg, (int, float)):
        cfg = _literal(inputs, "shift")
    seed = _literal(inputs, "seed")
    if seed is None:
        seed = _literal(inputs, "noise_seed")
    denoise = _literal(inputs, "denoise_strength")
    if denoise is None:
        denoise = _literal(inputs, "denoise")
    settings = {
        "steps": _literal(inputs, "steps"),
        "cfg": cfg,
        "sampler_name": _literal(inputs, "sampler_name"),
        "scheduler": _literal(inputs, "scheduler"),
        "seed": seed,
        "denoise": denoise,
    }
    return {k: v for k, v in settings.items() if v is not None}


def _model_name(class_type: str, inputs: dict[str, Any]) -> Optional[str]:
    if not any(token in class_type for token in MODEL_LOADER_TOKENS):
        return None
    for key in MODEL_NAME_KEYS:
        value = inputs.get(key)
        if isinstance(value, str) and value:
            name = basename_any(value)
            return name or None
    return None


def merge_prompt_pairs(prompts: list[PromptFragment] | tuple[PromptFragment, ...]) -> list[PromptFragment]:
    """
    Pair positives with negatives by position when both polarities exist.

    Otherwise fragments are returned as-is, minus empty ones.
    """
    positives = [p for p in prompts if p.positive]
    negatives = [p for p in prompts if p.negative]
    if positives and negatives:
        merged: list[PromptFragment] = []
        for idx in range(max(len(positives), len(negatives))):
            positive = positives[idx].positive if idx < len(positives) else ""
            negative = negatives[idx].negative if idx < len(negatives) else None
            if positive or negative:
                merged.append(PromptFragment(positive, negative))
        return merged
    return [p for p in prompts if p.positive or p.negative]


def has_confident_distinction(prompts: list[PromptFragment] | tuple[PromptFragment, ...], max_fragments: Optional[int] = None) -> bool:
    """
    Whether Positive/Negative labels may be shown.

    Requires both polarities, at most `max_fragments` fragments and a pair
    whose positive and negative texts differ.
    """
    limit = PROMPT_DISTINCTION_MAX_FRAGMENTS if max_fragments is None else max_fragments
    has_positive = any(p.positive for p in prompts)
    has_negative = any(p.negative for p in prompts)
    if not (has_positive and has_negative) or len(prompts) > limit:
        return False
    return any(p.positive and p.negative and p.positive != p.negative for p in prompts)


def analyze_graph(graph: WorkflowGraph) -> WorkflowAnalysis:
    connections = find_prompt_connections(graph)
    loras: list[dict[str, Any]] = []
    prompts: list[PromptFragment] = []
    models: list[str] = []
    sampler_settings: Optional[dict[str, Any]] = None
    cfg_schedule: dict[str, Any] = {}

    for node_id, node in graph.ordered_items():
        class_type = _class_type(node)
        inputs = _inputs(node)

        loras.extend(extract_loras(class_type, inputs))

        if is_text_node_type(class_type):
            fragment = _collect_prompt(graph, node_id, inputs, connections)
            if fragment is not None:
                prompts.append(fragment)

        if is_sampler_type(class_type):
            settings = _sampler_settings(inputs)
            if settings is not None:
                sampler_settings = settings

        if class_type == "CreateCFGScheduleFloatList":
            cfg_schedule = {
                "cfg_start": _literal(inputs, "cfg_scale_start"),
                "cfg_end": _literal(inputs, "cfg_scale_end"),
            }

        model = _model_name(class_type, inputs)
        if model:
            models.append(model)

    if cfg_schedule:
        sampler_settings = dict(sampler_settings or {})
        sampler_settings.update({k: v for k, v in cfg_schedule.items() if v is not None})

    return WorkflowAnalysis(
        loras=tuple(loras),
        prompts=tuple(merge_prompt_pairs(prompts)),
        sampler_settings=sampler_settings,
        models=tuple(models),
        connections=connections,
    )


def analyze_workflow(workflow: Any) -> WorkflowAnalysis:
    """Analyze any accepted workflow shape; unrecognized input yields an empty analysis."""
    graph = normalize_workflow(workflow)
    if graph is None:
        logger.debug("analyze_workflow: no graph found in %s", type(workflow).__name__)
        return WorkflowAnalysis()
    return analyze_graph(graph)
