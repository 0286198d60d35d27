"""
A1111 parameter record -> editor (nodes/links) workflow.

Nodes and links are recorded as immutable specs in an arena while the fixed
pipeline is laid out. Slot back-references (`outputs[i].links`,
`inputs[i].link`) are only filled in by `GraphArena.resolve()` once every
link is known.
"""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from ... import config
from ...shared import get_logger, log_success, sanitize_error_message
from ...utils import parse_bool, to_float, to_int
from .samplers import convert_sampler_name

logger = get_logger(__name__)

NODE_PROPERTIES_VERSION = "0.3.43"
WORKFLOW_VERSION = 0.4

DEFAULT_STEPS = 20
DEFAULT_CFG = 7.0
DEFAULT_SAMPLER = "DPM++ 2M Karras"
DEFAULT_SEED = 42
DEFAULT_UPSCALER = "ESRGAN_4x"
DEFAULT_HIRES_STEPS = 10
DEFAULT_HIRES_DENOISE = 0.5
HIRES_SCALE = 2.0

_LORA_TAG_RE = re.compile(r"<lora:([^:>]+):([0-9.]+)>")
_LORA_STRIP_RE = re.compile(r"<lora:[^>]+>")
_SIZE_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")
_WS_RE = re.compile(r"\s+")

_ROW_STEP = 100


@dataclass(frozen=True)
class ConversionOptions:
    remove_lora_tags: bool = True
    default_model: str = field(default_factory=lambda: config.DEFAULT_CHECKPOINT)
    default_size: str = field(default_factory=lambda: config.DEFAULT_IMAGE_SIZE)
    start_node_id: int = 1


@dataclass(frozen=True)
class SlotSpec:
    name: str
    type: str


@dataclass(frozen=True)
class NodeSpec:
    id: int
    type: str
    pos: tuple[int, int]
    size: tuple[int, int]
    order: int
    inputs: tuple[SlotSpec, ...] = ()
    outputs: tuple[SlotSpec, ...] = ()
    widgets_values: tuple[Any, ...] = ()


@dataclass(frozen=True)
class LinkSpec:
    id: int
    origin_id: int
    origin_slot: int
    target_id: int
    target_slot: int
    type: str

    def to_list(self) -> list[Any]:
        return [self.id, self.origin_id, self.origin_slot, self.target_id, self.target_slot, self.type]


def _slots(*pairs: tuple[str, str]) -> tuple[SlotSpec, ...]:
    return tuple(SlotSpec(name, type_name) for name, type_name in pairs)


class GraphArena:
    """Ordered store of node/link specs with monotonically increasing ids."""

    def __init__(self, start_node_id: int = 1):
        self._start = start_node_id
        self._next_node_id = start_node_id
        self._next_link_id = 1
        self._nodes: dict[int, NodeSpec] = {}
        self._links: list[LinkSpec] = []
        self._cursor = (50, 50)

    def move_to(self, x: int, y: int) -> None:
        self._cursor = (x, y)

    def shift(self, dy: int) -> None:
        self._cursor = (self._cursor[0], self._cursor[1] + dy)

    def add_node(
        self,
        node_type: str,
        widgets_values: tuple[Any, ...] = (),
        inputs: tuple[SlotSpec, ...] = (),
        outputs: tuple[SlotSpec, ...] = (),
        size: tuple[int, int] = (315, 58),
    ) -> int:
        node_id = self._next_node_id
        self._nodes[node_id] = NodeSpec(
            id=node_id,
            type=node_type,
            pos=self._cursor,
            size=size,
            order=node_id - self._start,
            inputs=inputs,
            outputs=outputs,
            widgets_values=tuple(widgets_values),
        )
        self._next_node_id += 1
        self.shift(_ROW_STEP)
        return node_id

    def connect(self, origin_id: int, origin_slot: int, target_id: int, target_slot: int, type_name: str) -> int:
        origin = self._nodes.get(origin_id)
        target = self._nodes.get(target_id)
        if origin is None or target is None:
            raise ValueError(f"link {origin_id}->{target_id} references an unknown node")
        if origin_slot >= len(origin.outputs) or target_slot >= len(target.inputs):
            raise ValueError(f"link {origin_id}:{origin_slot}->{target_id}:{target_slot} references an unknown slot")
        link_id = self._next_link_id
        self._links.append(LinkSpec(link_id, origin_id, origin_slot, target_id, target_slot, type_name))
        self._next_link_id += 1
        return link_id

    @property
    def nodes(self) -> tuple[NodeSpec, ...]:
        return tuple(self._nodes.values())

    @property
    def links(self) -> tuple[LinkSpec, ...]:
        return tuple(self._links)

    def resolve(self) -> dict[str, Any]:
        """Render the arena as an editor workflow, computing slot back-references."""
        out_links: dict[tuple[int, int], list[int]] = {}
        in_links: dict[tuple[int, int], int] = {}
        for link in self._links:
            out_links.setdefault((link.origin_id, link.origin_slot), []).append(link.id)
            in_links[(link.target_id, link.target_slot)] = link.id

        nodes = [_render_node(spec, out_links, in_links) for spec in self._nodes.values()]
        return {
            "id": str(uuid.uuid4()),
            "revision": 0,
            "last_node_id": self._next_node_id - 1,
            "last_link_id": self._next_link_id - 1,
            "nodes": nodes,
            "links": [link.to_list() for link in self._links],
            "groups": [],
            "config": {},
            "extra": {},
            "version": WORKFLOW_VERSION,
        }


def _render_node(
    spec: NodeSpec,
    out_links: dict[tuple[int, int], list[int]],
    in_links: dict[tuple[int, int], int],
) -> dict[str, Any]:
    return {
        "id": spec.id,
        "type": spec.type,
        "pos": list(spec.pos),
        "size": list(spec.size),
        "flags": {},
        "order": spec.order,
        "mode": 0,
        "inputs": [
            {"name": slot.name, "type": slot.type, "link": in_links.get((spec.id, idx))}
            for idx, slot in enumerate(spec.inputs)
        ],
        "outputs": [
            {"name": slot.name, "type": slot.type, "links": list(out_links.get((spec.id, idx), [])), "slot_index": idx}
            for idx, slot in enumerate(spec.outputs)
        ],
        "properties": {
            "cnr_id": "comfy-core",
            "ver": NODE_PROPERTIES_VERSION,
            "Node name for S&R": spec.type,
        },
        "widgets_values": list(spec.widgets_values),
    }


# ---------------------------------------------------------------------------
# Parameter helpers
# ---------------------------------------------------------------------------

def extract_lora_tags(prompt: Any) -> list[dict[str, Any]]:
    """All `<lora:name:strength>` tags in order; `path` is name + ".safetensors"."""
    loras: list[dict[str, Any]] = []
    if not isinstance(prompt, str):
        return loras
    for match in _LORA_TAG_RE.finditer(prompt):
        strength = to_float(match.group(2))
        if strength is None:
            continue
        name = match.group(1).strip()
        loras.append({"name": name, "strength": strength, "path": f"{name}.safetensors"})
    return loras


def remove_lora_tags_from_prompt(prompt: Any) -> str:
    if not isinstance(prompt, str):
        return ""
    return _WS_RE.sub(" ", _LORA_STRIP_RE.sub("", prompt)).strip()


def _int_param(value: Any, default: int) -> int:
    parsed = to_int(value)
    if parsed is None:
        as_float = to_float(value)
        parsed = int(as_float) if as_float is not None else None
    return parsed if parsed is not None else default


def _float_param(value: Any, default: float) -> float:
    parsed = to_float(value)
    return parsed if parsed is not None else default


def extract_upscaler_info(params: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Hi-res pass settings, or None when hi-res fix is off and no upscaler is named."""
    enabled = parse_bool(params.get("hires_fix"), False)
    upscaler = params.get("hires_upscaler")
    if not enabled and not upscaler:
        return None
    return {
        "model": upscaler or DEFAULT_UPSCALER,
        "steps": _int_param(params.get("hires_steps"), DEFAULT_HIRES_STEPS),
        "denoising": _float_param(params.get("hires_denoising"), DEFAULT_HIRES_DENOISE),
        "scale": HIRES_SCALE,
    }


def should_convert_to_comfyui(params: Any) -> bool:
    if not isinstance(params, dict):
        return False
    return bool(params.get("positive_prompt") or params.get("steps") or params.get("cfg"))


def _parse_size(size: Any, fallback: str) -> tuple[int, int]:
    for candidate in (size, fallback):
        if isinstance(candidate, str):
            match = _SIZE_RE.match(candidate)
            if match:
                return int(match.group(1)), int(match.group(2))
    return 512, 512


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

_CONDITIONING_OUT = _slots(("CONDITIONING", "CONDITIONING"))
_LATENT_OUT = _slots(("LATENT", "LATENT"))
_IMAGE_OUT = _slots(("IMAGE", "IMAGE"))
_SAMPLER_IN = _slots(("model", "MODEL"), ("positive", "CONDITIONING"), ("negative", "CONDITIONING"), ("latent_image", "LATENT"))


def _add_sampler(
    arena: GraphArena,
    widgets: tuple[Any, ...],
    model_src: int,
    positive_src: int,
    negative_src: int,
    latent_src: int,
) -> int:
    node_id = arena.add_node("KSampler", widgets, _SAMPLER_IN, _LATENT_OUT, (315, 262))
    arena.connect(model_src, 0, node_id, 0, "MODEL")
    arena.connect(positive_src, 0, node_id, 1, "CONDITIONING")
    arena.connect(negative_src, 0, node_id, 2, "CONDITIONING")
    arena.connect(latent_src, 0, node_id, 3, "LATENT")
    return node_id


def build_workflow(
    *,
    positive_prompt: str,
    negative_prompt: str,
    steps: int,
    cfg: float,
    sampler: str,
    seed: int,
    model: str,
    width: int,
    height: int,
    loras: list[dict[str, Any]],
    upscaler: Optional[dict[str, Any]],
    start_node_id: int = 1,
) -> dict[str, Any]:
    """Lay out the fixed txt2img pipeline (plus optional hi-res pass) and resolve it."""
    arena = GraphArena(start_node_id)
    choice = convert_sampler_name(sampler)

    checkpoint = arena.add_node(
        "CheckpointLoaderSimple",
        (model,),
        outputs=_slots(("MODEL", "MODEL"), ("CLIP", "CLIP"), ("VAE", "VAE")),
        size=(350, 98),
    )

    model_src = checkpoint
    clip_src = checkpoint
    arena.move_to(350, 50)
    for lora in loras:
        lora_node = arena.add_node(
            "LoraLoader",
            (lora["path"], lora["strength"], lora["strength"]),
            _slots(("model", "MODEL"), ("clip", "CLIP")),
            _slots(("MODEL", "MODEL"), ("CLIP", "CLIP")),
            (315, 126),
        )
        arena.connect(model_src, 0, lora_node, 0, "MODEL")
        arena.connect(clip_src, 1, lora_node, 1, "CLIP")
        model_src = clip_src = lora_node

    arena.move_to(650, 50)
    positive = arena.add_node("CLIPTextEncode", (positive_prompt,), _slots(("clip", "CLIP")), _CONDITIONING_OUT, (422, 164))
    arena.connect(clip_src, 1, positive, 0, "CLIP")
    arena.shift(_ROW_STEP // 2)
    negative = arena.add_node("CLIPTextEncode", (negative_prompt,), _slots(("clip", "CLIP")), _CONDITIONING_OUT, (422, 164))
    arena.connect(clip_src, 1, negative, 0, "CLIP")

    arena.move_to(50, 300)
    latent = arena.add_node("EmptyLatentImage", (width, height, 1), outputs=_LATENT_OUT, size=(315, 106))

    arena.move_to(950, 50)
    final_latent = _add_sampler(
        arena,
        (seed, "randomize", steps, cfg, choice.sampler, choice.scheduler, 1.0),
        model_src, positive, negative, latent,
    )

    if upscaler:
        arena.move_to(50, 450)
        upscale_loader = arena.add_node(
            "UpscaleModelLoader", (upscaler["model"],), outputs=_slots(("UPSCALE_MODEL", "UPSCALE_MODEL"))
        )
        arena.move_to(350, 450)
        decode = arena.add_node("VAEDecode", (), _slots(("samples", "LATENT"), ("vae", "VAE")), _IMAGE_OUT, (210, 46))
        arena.connect(final_latent, 0, decode, 0, "LATENT")
        arena.connect(checkpoint, 2, decode, 1, "VAE")

        upscaled = arena.add_node(
            "ImageUpscaleWithModel", (), _slots(("upscale_model", "UPSCALE_MODEL"), ("image", "IMAGE")), _IMAGE_OUT, (315, 126)
        )
        arena.connect(upscale_loader, 0, upscaled, 0, "UPSCALE_MODEL")
        arena.connect(decode, 0, upscaled, 1, "IMAGE")

        encode = arena.add_node("VAEEncode", (), _slots(("pixels", "IMAGE"), ("vae", "VAE")), _LATENT_OUT, (210, 46))
        arena.connect(upscaled, 0, encode, 0, "IMAGE")
        arena.connect(checkpoint, 2, encode, 1, "VAE")

        final_latent = _add_sampler(
            arena,
            (seed, "randomize", upscaler["steps"], cfg, choice.sampler, choice.scheduler, upscaler["denoising"]),
            model_src, positive, negative, encode,
        )

    arena.move_to(1300, 50)
    final_decode = arena.add_node("VAEDecode", (), _slots(("samples", "LATENT"), ("vae", "VAE")), _IMAGE_OUT, (210, 46))
    arena.connect(final_latent, 0, final_decode, 0, "LATENT")
    arena.connect(checkpoint, 2, final_decode, 1, "VAE")

    save = arena.add_node("SaveImage", ("ComfyUI",), _slots(("images", "IMAGE")))
    arena.connect(final_decode, 0, save, 0, "IMAGE")

    return arena.resolve()


def convert_a1111_to_comfyui(params: Any, options: Optional[ConversionOptions] = None) -> dict[str, Any]:
    """
    Synthesize an editor workflow from an A1111 record.

    Never raises. Returns {"success": True, "workflow", "loras", "upscaler",
    "original_parameters"} or {"success": False, "error", "original_parameters"}.
    """
    opts = options or ConversionOptions()
    try:
        if not isinstance(params, dict):
            raise TypeError(f"parameters must be a mapping, got {type(params).__name__}")
        raw_positive = params.get("positive_prompt") or ""
        if not isinstance(raw_positive, str):
            raw_positive = str(raw_positive)
        loras = extract_lora_tags(raw_positive)
        upscaler = extract_upscaler_info(params)
        positive = remove_lora_tags_from_prompt(raw_positive) if opts.remove_lora_tags else raw_positive
        width, height = _parse_size(params.get("size"), opts.default_size)

        workflow = build_workflow(
            positive_prompt=positive,
            negative_prompt=str(params.get("negative_prompt") or ""),
            steps=_int_param(params.get("steps"), DEFAULT_STEPS),
            cfg=_float_param(params.get("cfg"), DEFAULT_CFG),
            sampler=str(params.get("sampler") or DEFAULT_SAMPLER),
            seed=_int_param(params.get("seed"), DEFAULT_SEED),
            model=str(params.get("model") or opts.default_model),
            width=width,
            height=height,
            loras=loras,
            upscaler=upscaler,
            start_node_id=opts.start_node_id,
        )
    except Exception as exc:
        logger.warning("A1111 conversion failed: %s", exc)
        return {
            "success": False,
            "error": sanitize_error_message(exc, "Conversion error"),
            "original_parameters": params,
        }

    log_success(
        logger,
        f"Synthesized workflow: {len(workflow['nodes'])} nodes, {len(workflow['links'])} links, {len(loras)} loras",
    )
    return {
        "success": True,
        "workflow": workflow,
        "loras": loras,
        "upscaler": upscaler,
        "original_parameters": params,
    }
