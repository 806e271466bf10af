"""
De-duplication of the displayed conversation transcript.

Streaming updates can deliver the same item more than once, and a user who
presses <Enter> twice quickly submits the same message twice. ``dedupe()``
removes both kinds of duplicate before the transcript is rendered.

Rules (applied in a single forward pass):
    1. Global identity: an item with a non-empty ``id`` is kept only the first
       time that id is seen, however far apart the repeats are.
    2. Adjacent collapse: a user message is dropped when the most recently
       KEPT item is also a user message with equal content. Repeated
       questions later in the conversation (after any other kept item) stay.

Items without an id are exempt from rule 1 only.

Content equality is structural: mappings compare by keys and values
regardless of key order, and lists compare element-wise, so two payloads that
differ only in serialization order are still duplicates.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ConversationItem:
    """
    One item of the conversation transcript.

    ``dedupe()`` also accepts plain mappings and any object exposing the same
    attribute names, so SDK response items can be passed through unchanged.
    """

    type: str
    role: str | None = None
    content: Any = None
    id: str | None = None


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _is_user_message(item: Any) -> bool:
    return _field(item, "type") == "message" and _field(item, "role") == "user"


def _canonical(value: Any) -> Any:
    """Normalize containers so ``==`` compares structure, not container types."""
    if isinstance(value, Mapping):
        return {key: _canonical(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(val) for val in value]
    return value


def same_content(a: Any, b: Any) -> bool:
    return _canonical(_field(a, "content")) == _canonical(_field(b, "content"))


def dedupe(items: Iterable[Any]) -> list[Any]:
    """
    Return ``items`` without duplicates, preserving order.

    The input items are never copied or mutated; the result holds the same
    objects.

    Examples:
        >>> dedupe([{"id": "a", "type": "message"}, {"id": "a", "type": "message"}])
        [{'id': 'a', 'type': 'message'}]
    """
    seen_ids: set[str] = set()
    kept: list[Any] = []

    for item in items:
        # Rule 1: first occurrence of an id wins
        item_id = _field(item, "id")
        if isinstance(item_id, str) and item_id:
            if item_id in seen_ids:
                continue
            seen_ids.add(item_id)

        # Rule 2: collapse consecutive identical user messages
        if kept and _is_user_message(item):
            previous = kept[-1]
            if _is_user_message(previous) and same_content(previous, item):
                continue

        kept.append(item)

    return kept
