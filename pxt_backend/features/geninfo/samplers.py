"""A1111 sampler display names -> ComfyUI (sampler_name, scheduler) pairs."""

from __future__ import annotations

import re
from typing import NamedTuple


class SamplerChoice(NamedTuple):
    sampler: str
    scheduler: str

    def to_dict(self) -> dict[str, str]:
        return {"sampler": self.sampler, "scheduler": self.scheduler}


DEFAULT_SAMPLER = SamplerChoice("euler", "normal")

# Lower-cased A1111 names. Lookup prefers an exact hit, then the longest entry
# found inside the given name, so "dpm++ 2m karras" beats "dpm++ 2m".
SAMPLER_TABLE: dict[str, SamplerChoice] = {
    "euler": SamplerChoice("euler", "normal"),
    "euler a": SamplerChoice("euler_ancestral", "normal"),
    "heun": SamplerChoice("heun", "normal"),
    "lms": SamplerChoice("lms", "normal"),
    "lms karras": SamplerChoice("lms", "karras"),
    "dpm2": SamplerChoice("dpm_2", "normal"),
    "dpm2 karras": SamplerChoice("dpm_2", "karras"),
    "dpm2 a": SamplerChoice("dpm_2_ancestral", "normal"),
    "dpm2 a karras": SamplerChoice("dpm_2_ancestral", "karras"),
    "dpm fast": SamplerChoice("dpm_fast", "normal"),
    "dpm adaptive": SamplerChoice("dpm_adaptive", "normal"),
    "dpm++ 2s a": SamplerChoice("dpmpp_2s_ancestral", "normal"),
    "dpm++ 2s a karras": SamplerChoice("dpmpp_2s_ancestral", "karras"),
    "dpm++ 2s karras": SamplerChoice("dpmpp_2s_ancestral", "karras"),
    "dpm++ 2m": SamplerChoice("dpmpp_2m", "normal"),
    "dpm++ 2m karras": SamplerChoice("dpmpp_2m", "karras"),
    "dpm++ 2m sde": SamplerChoice("dpmpp_2m_sde", "normal"),
    "dpm++ 2m sde karras": SamplerChoice("dpmpp_2m_sde", "karras"),
    "dpm++ sde": SamplerChoice("dpmpp_sde", "normal"),
    "dpm++ sde karras": SamplerChoice("dpmpp_sde", "karras"),
    "ddim": SamplerChoice("ddim", "ddim_uniform"),
    "unipc": SamplerChoice("uni_pc", "normal"),
}

_BY_LENGTH = tuple(sorted(SAMPLER_TABLE, key=len, reverse=True))
_WS_RE = re.compile(r"\s+")


def _contains_words(haystack: str, needle: str) -> bool:
    return f" {needle} " in f" {haystack} "


def convert_sampler_name(name: str | None) -> SamplerChoice:
    """
    Map an A1111 sampler label onto ComfyUI's sampler/scheduler pair.

    Case and surrounding whitespace are ignored. Unknown or empty labels
    fall back to euler/normal.
    """
    if not isinstance(name, str):
        return DEFAULT_SAMPLER
    key = _WS_RE.sub(" ", name).strip().lower()
    if not key:
        return DEFAULT_SAMPLER
    exact = SAMPLER_TABLE.get(key)
    if exact is not None:
        return exact
    for candidate in _BY_LENGTH:
        if _contains_words(key, candidate):
            return SAMPLER_TABLE[candidate]
    return DEFAULT_SAMPLER
