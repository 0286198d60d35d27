"""
Recognition of workflow payloads.

Two encodings are accepted: the API "prompt" map (`{"3": {"class_type": ...,
"inputs": {...}}}`) and the editor export (`{"nodes": [...], "links": [...]}`),
plus a few wrapper shapes seen in the wild.
"""
import logging
import re
from typing import Any, Optional

from ...config import STRICT_WORKFLOW_VALIDATION
from ...shared import ValidationError

logger = logging.getLogger(__name__)

_NODE_ID_RE = re.compile(r"^\d+$")
WRAPPER_KEYS: tuple[str, ...] = ("workflow", "prompt", "extra_pnginfo")


def is_node_id(key: Any) -> bool:
    return isinstance(key, str) and bool(_NODE_ID_RE.match(key))


def _is_map_node(node: Any) -> bool:
    return isinstance(node, dict) and isinstance(node.get("class_type"), str) and bool(node.get("class_type"))


def _is_array_node(node: Any) -> bool:
    return (
        isinstance(node, dict)
        and node.get("id") is not None
        and isinstance(node.get("type"), str)
        and bool(node.get("type"))
    )


def _map_node_counts(data: dict[str, Any]) -> tuple[int, int]:
    """(digit-keyed entries, entries that are well-formed nodes)."""
    total = 0
    valid = 0
    for key, node in data.items():
        if not is_node_id(key):
            continue
        total += 1
        if _is_map_node(node):
            valid += 1
    return total, valid


def _looks_like_map_encoding(data: dict[str, Any], strict: bool) -> bool:
    total, valid = _map_node_counts(data)
    if valid == 0:
        return False
    return valid == total if strict else True


def _looks_like_array_encoding(data: dict[str, Any], strict: bool) -> bool:
    nodes = data.get("nodes")
    if not isinstance(nodes, list) or not nodes:
        return False
    if strict:
        return all(_is_array_node(n) for n in nodes)
    return any(_is_array_node(n) for n in nodes)


def _has_wrapper_key(data: dict[str, Any]) -> bool:
    return any(bool(data.get(key)) for key in WRAPPER_KEYS)


def _looks_like_node_list(data: list[Any], strict: bool) -> bool:
    if not data:
        return False
    if strict:
        return all(_is_map_node(item) for item in data)
    return any(_is_map_node(item) for item in data)


def validate_workflow(data: Any, strict: Optional[bool] = None) -> bool:
    """
    True when `data` is plausibly a workflow.

    Accepted shapes: digit-keyed node map, `nodes` array, a non-empty
    `workflow` / `prompt` / `extra_pnginfo` wrapper, or a list of node dicts.
    Strict mode additionally requires every node record to be well formed.
    """
    if strict is None:
        strict = STRICT_WORKFLOW_VALIDATION
    if isinstance(data, list):
        return _looks_like_node_list(data, strict)
    if not isinstance(data, dict) or not data:
        return False
    return (
        _looks_like_map_encoding(data, strict)
        or _looks_like_array_encoding(data, strict)
        or _has_wrapper_key(data)
    )


def validate_workflow_strict(data: Any, context: Optional[str] = None) -> None:
    """
    Raise ValidationError describing why `data` is not a workflow.

    Returns None when the structure is acceptable.
    """
    if not isinstance(data, (dict, list)):
        raise ValidationError(
            "Invalid workflow data: must be an object",
            "workflow_structure",
            {"data_type": type(data).__name__, "context": context},
        )
    if not data:
        raise ValidationError("Invalid workflow data: empty object", "workflow_structure", {"context": context})

    if isinstance(data, list):
        if not _looks_like_node_list(data, strict=True):
            raise ValidationError(
                "Invalid workflow data: list entries must carry class_type",
                "workflow_nodes",
                {"node_count": len(data), "context": context},
            )
        return

    total, valid = _map_node_counts(data)
    if total:
        if valid == 0:
            raise ValidationError(
                "Invalid workflow data: no valid ComfyUI nodes found",
                "workflow_nodes",
                {"node_count": total, "context": context},
            )
        return
    if _looks_like_array_encoding(data, strict=False) or _has_wrapper_key(data):
        return
    raise ValidationError(
        "Invalid workflow data: no ComfyUI structure found",
        "workflow_structure",
        {"keys": list(data.keys())[:5], "context": context},
    )


def _flag_node_type(info: dict[str, Any], node_type: str) -> None:
    lowered = node_type.lower()
    if "prompt" in lowered or "text" in lowered:
        info["has_prompt"] = True
    if "model" in lowered or "checkpoint" in lowered:
        info["has_model"] = True


def extract_workflow_info(workflow: Any) -> dict[str, Any]:
    """Node count, distinct node types (first-seen order) and coarse content flags."""
    info: dict[str, Any] = {"node_count": 0, "node_types": [], "has_prompt": False, "has_model": False}
    if not isinstance(workflow, dict):
        return info

    seen: dict[str, None] = {}
    nodes = workflow.get("nodes")
    if isinstance(nodes, list):
        info["node_count"] = len(nodes)
        for node in nodes:
            node_type = node.get("type") if isinstance(node, dict) else None
            if isinstance(node_type, str) and node_type:
                seen.setdefault(node_type, None)
                _flag_node_type(info, node_type)
    else:
        for key, node in workflow.items():
            if not is_node_id(key) or not isinstance(node, dict):
                continue
            info["node_count"] += 1
            class_type = node.get("class_type")
            if isinstance(class_type, str) and class_type:
                seen.setdefault(class_type, None)
                _flag_node_type(info, class_type)

    info["node_types"] = list(seen)
    return info
