"""
Normalization of the two workflow encodings into one node map.

Downstream analysis only ever sees `WorkflowGraph.nodes`, a mapping of
string node id -> {"class_type", "inputs"}. Inline Map-encoding edges stay as
`[source_id, slot]`; Array-encoding edges become `{"link": id}` placeholders
that `WorkflowGraph.source_of` resolves through the link table.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, NamedTuple, Optional

from ...shared import get_logger
from .validation import is_node_id

logger = get_logger(__name__)

Encoding = Literal["map", "array"]

# widgets_values index -> input name, per node type. None marks UI-only slots.
WIDGET_INPUT_NAMES: dict[str, tuple[Optional[str], ...]] = {
    "KSampler": ("seed", "control_after_generate", "steps", "cfg", "sampler_name", "scheduler", "denoise"),
    "KSamplerAdvanced": (
        "add_noise", "noise_seed", "control_after_generate", "steps", "cfg",
        "sampler_name", "scheduler", "start_at_step", "end_at_step", "return_with_leftover_noise",
    ),
    "WanVideoSampler": ("steps", "cfg", "shift", "seed", "control_after_generate", "force_offload", "scheduler"),
    "WanVideoTextEncode": ("positive_prompt", "negative_prompt"),
    "CLIPTextEncode": ("text",),
    "CheckpointLoaderSimple": ("ckpt_name",),
    "LoraLoader": ("lora_name", "strength_model", "strength_clip"),
    "LoraLoaderModelOnly": ("lora_name", "strength_model"),
    "UpscaleModelLoader": ("model_name",),
    "VAELoader": ("vae_name",),
    "UNETLoader": ("unet_name", "weight_dtype"),
    "EmptyLatentImage": ("width", "height", "batch_size"),
    "CreateCFGScheduleFloatList": ("steps", "cfg_scale_start", "cfg_scale_end", "interpolation"),
    "SaveImage": ("filename_prefix",),
}


class LinkRef(NamedTuple):
    """One Array-encoding link record: [id, origin, origin_slot, target, target_slot, type]."""

    link_id: int
    origin_id: str
    origin_slot: int
    target_id: str
    target_slot: int
    type_name: str


@dataclass
class WorkflowGraph:
    """A workflow in canonical node-map shape, remembering its source encoding."""

    encoding: Encoding
    nodes: dict[str, dict[str, Any]]
    links: dict[int, LinkRef] = field(default_factory=dict)

    def source_of(self, value: Any) -> Optional[str]:
        """Node id feeding an input value, or None for literals and dangling links."""
        if isinstance(value, dict) and "link" in value:
            return resolve_link(self, value.get("link"))
        if is_link_pair(value):
            return str(value[0])
        return None

    def ordered_items(self) -> list[tuple[str, dict[str, Any]]]:
        """Nodes sorted by numeric id; non-numeric ids keep their relative order at the end."""
        return sorted(self.nodes.items(), key=lambda kv: (0, int(kv[0])) if kv[0].isdigit() else (1, 0))


def _as_link_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def resolve_link(graph: WorkflowGraph, link_id: Any) -> Optional[str]:
    """Producing node id for an Array-encoding link id; None when the link is unknown."""
    ref = graph.links.get(_as_link_id(link_id))
    return ref.origin_id if ref else None


def is_link_pair(value: Any) -> bool:
    """Map-encoding inline edge: [source_node_id, output_slot]."""
    return (
        isinstance(value, list)
        and len(value) == 2
        and isinstance(value[0], (str, int))
        and not isinstance(value[0], bool)
        and is_node_id(str(value[0]))
        and isinstance(value[1], int)
    )


def is_link_value(value: Any) -> bool:
    return is_link_pair(value) or (isinstance(value, dict) and "link" in value)


def _maybe_json(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def unwrap_workflow(data: Any) -> Any:
    """
    Peel wrapper objects down to a node map, a nodes-array export or a node list.

    Handles {"prompt": <map or JSON string>}, {"workflow": ...} and
    {"extra_pnginfo": {"workflow": ...}}. The first wrapper that yields a graph wins.
    """
    for _ in range(4):
        if isinstance(data, list):
            return data
        if not isinstance(data, dict):
            return None
        if isinstance(data.get("nodes"), list) or any(is_node_id(k) for k in data):
            return data
        inner = None
        for key in ("prompt", "workflow"):
            candidate = _maybe_json(data.get(key))
            if isinstance(candidate, (dict, list)) and candidate:
                inner = candidate
                break
        if inner is None:
            extra = data.get("extra_pnginfo")
            if isinstance(extra, dict):
                inner = _maybe_json(extra.get("workflow"))
        if inner is None:
            return None
        data = inner
    return None


def build_link_table(links: Any) -> dict[int, LinkRef]:
    table: dict[int, LinkRef] = {}
    if not isinstance(links, list):
        return table
    for link in links:
        if isinstance(link, list) and len(link) >= 5:
            link_id = _as_link_id(link[0])
            if link_id is None:
                continue
            type_name = str(link[5]) if len(link) > 5 else ""
            table[link_id] = LinkRef(link_id, str(link[1]), _slot(link[2]), str(link[3]), _slot(link[4]), type_name)
        elif isinstance(link, dict) and "id" in link:
            # Newer editor exports store links as objects
            link_id = _as_link_id(link.get("id"))
            if link_id is None:
                continue
            table[link_id] = LinkRef(
                link_id,
                str(link.get("origin_id")),
                _slot(link.get("origin_slot")),
                str(link.get("target_id")),
                _slot(link.get("target_slot")),
                str(link.get("type") or ""),
            )
    return table


def _slot(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _assign_table_widgets(inputs: dict[str, Any], node_type: str, widgets: list[Any]) -> bool:
    names = WIDGET_INPUT_NAMES.get(node_type)
    if names is None:
        return False
    for idx, name in enumerate(names):
        if name is None or idx >= len(widgets) or name in inputs:
            continue
        inputs[name] = widgets[idx]
    return True


def _assign_declared_widgets(inputs: dict[str, Any], raw_inputs: list[Any], widgets: list[Any]) -> None:
    """Editor nodes declare widget-backed inputs in order; pair them with widgets_values."""
    widget_idx = 0
    for inp in raw_inputs:
        if not isinstance(inp, dict) or "widget" not in inp:
            continue
        name = inp.get("name")
        if name and name not in inputs and widget_idx < len(widgets):
            inputs[name] = widgets[widget_idx]
        widget_idx += 1


def _text_fallback_from_widgets(inputs: dict[str, Any], node_type: str, widgets: list[Any]) -> None:
    if "text" in inputs or not widgets:
        return
    lowered = node_type.lower()
    if not any(token in lowered for token in ("primitive", "string", "text", "encode")):
        return
    for value in widgets:
        if isinstance(value, str) and value.strip():
            inputs["text"] = value
            return


def _normalize_array_node(node: dict[str, Any]) -> dict[str, Any]:
    node_type = str(node.get("type") or node.get("class_type") or "")
    inputs: dict[str, Any] = {}
    raw_inputs = node.get("inputs")

    if isinstance(raw_inputs, list):
        for inp in raw_inputs:
            if not isinstance(inp, dict) or not inp.get("name"):
                continue
            link_id = _as_link_id(inp.get("link"))
            if link_id is not None:
                inputs[str(inp["name"])] = {"link": link_id}
    elif isinstance(raw_inputs, dict):
        inputs.update(raw_inputs)

    widgets = node.get("widgets_values")
    if isinstance(widgets, dict):
        for key, value in widgets.items():
            inputs.setdefault(key, value)
    elif isinstance(widgets, list):
        if not _assign_table_widgets(inputs, node_type, widgets) and isinstance(raw_inputs, list):
            _assign_declared_widgets(inputs, raw_inputs, widgets)
        _text_fallback_from_widgets(inputs, node_type, widgets)

    out: dict[str, Any] = {"class_type": node_type, "inputs": inputs}
    if node.get("title"):
        out["_meta"] = {"title": node.get("title")}
    return out


def _normalize_map_node(node: dict[str, Any]) -> dict[str, Any]:
    inputs = node.get("inputs")
    out = dict(node)
    out["class_type"] = str(node.get("class_type") or "")
    out["inputs"] = dict(inputs) if isinstance(inputs, dict) else {}
    return out


def normalize_workflow(data: Any) -> Optional[WorkflowGraph]:
    """
    Convert any accepted workflow shape into a `WorkflowGraph`.

    Returns None when nothing graph-like can be found.
    """
    target = unwrap_workflow(data)
    if target is None:
        return None

    if isinstance(target, list):
        nodes = {str(i): _normalize_map_node(n) for i, n in enumerate(target) if isinstance(n, dict) and n.get("class_type")}
        return WorkflowGraph("map", nodes) if nodes else None

    if isinstance(target.get("nodes"), list):
        nodes_map: dict[str, dict[str, Any]] = {}
        for node in target["nodes"]:
            if not isinstance(node, dict) or node.get("id") is None:
                continue
            nodes_map[str(node["id"])] = _normalize_array_node(node)
        if not nodes_map:
            return None
        graph = WorkflowGraph("array", nodes_map, build_link_table(target.get("links")))
        logger.debug("Normalized array workflow: %d nodes, %d links", len(graph.nodes), len(graph.links))
        return graph

    nodes = {k: _normalize_map_node(v) for k, v in target.items() if is_node_id(k) and isinstance(v, dict)}
    return WorkflowGraph("map", nodes) if nodes else None
