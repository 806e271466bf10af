"""
Model metadata: context windows, display labels and transcript accounting.

Everything here is a pure function of the model id (plus the transcript for
the accounting helpers). No I/O, no caching.

Lookup order for a model id:
    1. MODEL_REGISTRY exact match
    2. Context-window hints in the id ("32k", "16k", "8k", "4k"), first match wins
    3. DEFAULT_CONTEXT_WINDOW (128k)

Labels for unregistered models are synthesized from the id:
    "llama-3.1_instruct" → "Llama 3 1 Instruct"
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ._constants import CHARS_PER_TOKEN, CONTEXT_WINDOW_HINTS, DEFAULT_CONTEXT_WINDOW


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """
    Display metadata for a model.

    Attributes:
        label: Human-readable name
        max_context_length: Input + output token budget
    """

    label: str
    max_context_length: int


# ═══════════════════════════════════════════════════════════════════════════════
# Static registry
# ═══════════════════════════════════════════════════════════════════════════════

# ORDERING: Alphabetical by model ID within each family.
# Copilot-served limits captured from the Copilot SDK (2026-02-16).
# NOTE: ids with a context hint in their name (e.g. "-16k") are left out on
# purpose so the hint rule decides their window.
MODEL_REGISTRY: dict[str, ModelInfo] = {
    # Anthropic via Copilot
    "claude-haiku-4.5": ModelInfo("Claude Haiku 4.5", 144000),
    "claude-opus-4.5": ModelInfo("Claude Opus 4.5", 200000),
    "claude-opus-4.6": ModelInfo("Claude Opus 4.6", 200000),
    "claude-opus-4.6-1m": ModelInfo("Claude Opus 4.6 (1M)", 1000000),
    "claude-sonnet-4": ModelInfo("Claude Sonnet 4", 216000),
    "claude-sonnet-4.5": ModelInfo("Claude Sonnet 4.5", 200000),
    # Google
    "gemini-3-pro-preview": ModelInfo("Gemini 3 Pro (Preview)", 128000),
    # OpenAI
    "gpt-3.5-turbo": ModelInfo("GPT-3.5 Turbo", 16385),
    "gpt-4": ModelInfo("GPT-4", 8192),
    "gpt-4-turbo": ModelInfo("GPT-4 Turbo", 128000),
    "gpt-4.1": ModelInfo("GPT-4.1", 1000000),
    "gpt-4.1-mini": ModelInfo("GPT-4.1 Mini", 1000000),
    "gpt-4.1-nano": ModelInfo("GPT-4.1 Nano", 1000000),
    "gpt-4o": ModelInfo("GPT-4o", 128000),
    "gpt-4o-mini": ModelInfo("GPT-4o Mini", 128000),
    "gpt-5": ModelInfo("GPT-5", 400000),
    "gpt-5-mini": ModelInfo("GPT-5 Mini", 264000),
    "gpt-5.1": ModelInfo("GPT-5.1", 264000),
    "gpt-5.1-codex": ModelInfo("GPT-5.1 Codex", 400000),
    "gpt-5.2": ModelInfo("GPT-5.2", 264000),
    "o1": ModelInfo("o1", 200000),
    "o1-mini": ModelInfo("o1 Mini", 128000),
    "o1-pro": ModelInfo("o1 Pro", 200000),
    "o3": ModelInfo("o3", 200000),
    "o3-mini": ModelInfo("o3 Mini", 200000),
    "o4-mini": ModelInfo("o4 Mini", 200000),
}

_LABEL_SEPARATORS = re.compile(r"[-_.]")


def context_window(model_id: str) -> int:
    """
    Return the maximum context length (in tokens) for a model.

    Examples:
        >>> context_window("o4-mini")
        200000
        >>> context_window("gpt-3.5-turbo-16k")
        16000
        >>> context_window("totally-unknown-model")
        128000
    """
    info = MODEL_REGISTRY.get(model_id)
    if info is not None:
        return info.max_context_length
    return _context_window_from_hints(model_id)


def _context_window_from_hints(model_id: str) -> int:
    lower = model_id.lower()
    for hint, window in CONTEXT_WINDOW_HINTS:
        if hint in lower:
            return window
    return DEFAULT_CONTEXT_WINDOW


def synthesize_label(model_id: str) -> str:
    """Split on ``-``, ``_`` and ``.`` and upper-case the first letter of each part."""
    parts = _LABEL_SEPARATORS.split(model_id)
    return " ".join(part[:1].upper() + part[1:] for part in parts)


def model_info(model_id: str) -> ModelInfo:
    """
    Get display metadata for a model.

    Uses the static registry when the model is known, otherwise returns a
    synthesized label paired with the context-window heuristic.
    """
    info = MODEL_REGISTRY.get(model_id)
    if info is not None:
        return info
    return ModelInfo(
        label=synthesize_label(model_id),
        max_context_length=_context_window_from_hints(model_id),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Transcript accounting
# ═══════════════════════════════════════════════════════════════════════════════


def _get(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _message_chars(content: Any) -> int:
    if isinstance(content, str):
        return len(content)
    if isinstance(content, Mapping):
        content = [content]
    if not isinstance(content, Iterable):
        return 0
    total = 0
    for part in content:
        if isinstance(part, str):
            total += len(part)
            continue
        part_type = _get(part, "type")
        if part_type in ("input_text", "output_text", "text"):
            total += len(_get(part, "text") or "")
        elif part_type == "refusal":
            total += len(_get(part, "refusal") or "")
    return total


def approximate_tokens_used(items: Iterable[Any]) -> int:
    """
    Roughly estimate the tokens a transcript occupies.

    Counts characters of message text, refusals, function-call names and
    arguments, and function-call outputs, then divides by CHARS_PER_TOKEN
    rounding up. Images and unknown item types count as zero.
    """
    chars = 0
    for item in items:
        item_type = _get(item, "type")
        if item_type == "message":
            chars += _message_chars(_get(item, "content"))
        elif item_type == "function_call":
            chars += len(_get(item, "name") or "") + len(_get(item, "arguments") or "")
        elif item_type == "function_call_output":
            output = _get(item, "output")
            chars += len(output) if isinstance(output, str) else 0
    return math.ceil(chars / CHARS_PER_TOKEN)


def context_percent_remaining(items: Iterable[Any], model_id: str) -> float:
    """Percentage (0-100) of the model's context window not yet used by ``items``."""
    used = approximate_tokens_used(items)
    window = context_window(model_id)
    remaining = max(0, window - used)
    return (remaining / window) * 100
