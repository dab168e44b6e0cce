"""
Cell Variant Registry: one function table per section type.

A section's ``type`` decides how every cell in its row is read. Each
variant supplies three rules:

  - default payload   (what a fresh cell looks like)
  - extract_text      (one human-readable summary, used for search/AI context)
  - is_empty          (the authoritative "filled" rule used by completeness)

Payloads are plain dicts. Readers never trust the payload shape: a section
can be retyped without migrating its cells, so a ``goals`` row may still hold
``{"value": "..."}`` from its ``text`` days. Every extractor defaults on read
instead of raising.

Usage:
    from app.services.journey.cell_variants import default_payload, extract_text, is_empty

    default_payload("pain_point")             # {"value": "", "severity": 1}
    extract_text({"items": ["a", "b"]}, "goals")  # "a, b"
    is_empty({"channels": []}, "channels")    # True
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable

FALLBACK_TYPE = "text"


@dataclass(frozen=True)
class CellVariant:
    """Function table for one section type."""
    tag: str
    label: str
    default: dict
    extract_text: Callable[[dict], str]
    is_empty: Callable[[dict], bool]

    def default_payload(self) -> dict:
        return copy.deepcopy(self.default)


_REGISTRY: dict[str, CellVariant] = {}


def register_variant(variant: CellVariant) -> CellVariant:
    """Add (or replace) a variant. Returns it so callers can keep a handle."""
    _REGISTRY[variant.tag] = variant
    return variant


def get_variant(section_type: str | None) -> CellVariant:
    """Return the variant for ``section_type``; unknown tags read as text."""
    if not isinstance(section_type, str):
        return _REGISTRY[FALLBACK_TYPE]
    return _REGISTRY.get(section_type, _REGISTRY[FALLBACK_TYPE])


def is_known_type(section_type) -> bool:
    return isinstance(section_type, str) and section_type in _REGISTRY


def variant_tags() -> list[str]:
    return list(_REGISTRY)


def default_payload(section_type: str) -> dict:
    return get_variant(section_type).default_payload()


def extract_text(payload: Any, section_type: str) -> str:
    if not isinstance(payload, dict):
        return ""
    return get_variant(section_type).extract_text(payload)


def is_empty(payload: Any, section_type: str) -> bool:
    """A missing or non-dict payload is always empty."""
    if not isinstance(payload, dict) or not payload:
        return True
    return get_variant(section_type).is_empty(payload)


# ── Tolerant readers ─────────────────────────────────────────────────────


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _item_text(item: Any, *keys: str) -> str:
    """Read a list entry that may be a bare string or a dict."""
    if isinstance(item, dict):
        for key in keys:
            text = _text(item.get(key))
            if text:
                return text
        return ""
    return _text(item)


def _joined(items: list, *keys: str, sep: str = ", ") -> str:
    return sep.join(t for t in (_item_text(i, *keys) for i in items) if t)


def _has_number(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value))
    except ValueError:
        return False
    return True


# ── Rule builders (shared by several variants) ───────────────────────────


def _value_text(key: str = "value"):
    return lambda p: _text(p.get(key))


def _value_blank(key: str = "value"):
    return lambda p: not _text(p.get(key))


def _items_text(list_key: str, *keys: str, sep: str = ", "):
    return lambda p: _joined(_list(p.get(list_key)), *keys, sep=sep)


def _items_blank(list_key: str, *keys: str):
    return lambda p: not _joined(_list(p.get(list_key)), *keys)


def _scale_blank(note_key: str):
    return lambda p: not _has_number(p.get("value")) and not _text(p.get(note_key))


def _join_pair(a: str, b: str, sep: str) -> str:
    return sep.join(t for t in (a, b) if t)


# ═════════════════════════════════════════════════════════════════════════════
# Built-in variants
# ═════════════════════════════════════════════════════════════════════════════

register_variant(CellVariant(
    tag="text", label="Text",
    default={"value": ""},
    extract_text=_value_text(),
    is_empty=_value_blank(),
))

register_variant(CellVariant(
    tag="goals", label="Goals",
    default={"items": []},
    extract_text=_items_text("items", "text", "label"),
    is_empty=_items_blank("items", "text", "label"),
))

register_variant(CellVariant(
    tag="think_feel", label="Think & Feel",
    default={"thought": "", "feeling": ""},
    extract_text=lambda p: _join_pair(_text(p.get("thought")), _text(p.get("feeling")), " - "),
    is_empty=lambda p: not _text(p.get("thought")) and not _text(p.get("feeling")),
))

register_variant(CellVariant(
    tag="sentiment_graph", label="Sentiment Graph",
    default={"value": None, "note": ""},
    extract_text=_value_text("note"),
    is_empty=_scale_blank("note"),
))

register_variant(CellVariant(
    tag="emotion_curve", label="Emotion Curve",
    default={"value": None, "annotation": ""},
    extract_text=_value_text("annotation"),
    is_empty=_scale_blank("annotation"),
))

register_variant(CellVariant(
    tag="touchpoints", label="Touchpoints",
    default={"items": []},
    extract_text=_items_text("items", "label", "name"),
    is_empty=lambda p: not _list(p.get("items")),
))

register_variant(CellVariant(
    tag="pain_point", label="Pain Point",
    default={"value": "", "severity": 1},
    extract_text=_value_text(),
    is_empty=_value_blank(),
))

register_variant(CellVariant(
    tag="opportunity", label="Opportunity",
    default={"value": "", "impact": 0},
    extract_text=_value_text(),
    is_empty=_value_blank(),
))

register_variant(CellVariant(
    tag="actions", label="Actions",
    default={"items": []},
    extract_text=_items_text("items", "text"),
    is_empty=_items_blank("items", "text"),
))

register_variant(CellVariant(
    tag="barriers", label="Barriers",
    default={"items": []},
    extract_text=_items_text("items", "text"),
    is_empty=_items_blank("items", "text"),
))

register_variant(CellVariant(
    tag="motivators", label="Motivators",
    default={"items": []},
    extract_text=_items_text("items", "text"),
    is_empty=_items_blank("items", "text"),
))

register_variant(CellVariant(
    tag="channels", label="Channels",
    default={"channels": [], "note": ""},
    extract_text=_items_text("channels", "label", "id"),
    is_empty=lambda p: not _list(p.get("channels")),
))

register_variant(CellVariant(
    tag="frontstage", label="Frontstage",
    default={"items": []},
    extract_text=_items_text("items", "text"),
    is_empty=_items_blank("items", "text"),
))

register_variant(CellVariant(
    tag="backstage", label="Backstage",
    default={"items": []},
    extract_text=_items_text("items", "text"),
    is_empty=_items_blank("items", "text"),
))

register_variant(CellVariant(
    tag="kpi", label="KPI",
    default={"value": "", "label": "", "trend": "flat"},
    extract_text=lambda p: (
        f"{_text(p.get('label'))}: {_text(p.get('value'))}"
        if _text(p.get("label")) or _text(p.get("value")) else ""
    ),
    is_empty=lambda p: not _text(p.get("value")) and not _text(p.get("label")),
))

register_variant(CellVariant(
    tag="storyboard", label="Storyboard",
    default={"image": None, "caption": ""},
    extract_text=_value_text("caption"),
    is_empty=lambda p: not _text(p.get("image")) and not _text(p.get("caption")),
))

register_variant(CellVariant(
    tag="process_flow", label="Process Flow",
    default={"steps": []},
    extract_text=_items_text("steps", "text", sep=" -> "),
    is_empty=_items_blank("steps", "text"),
))

register_variant(CellVariant(
    tag="file_embed", label="File Embed",
    default={"files": []},
    extract_text=_items_text("files", "name"),
    is_empty=lambda p: not _list(p.get("files")),
))

register_variant(CellVariant(
    tag="persona", label="Persona",
    default={"name": "", "segment": ""},
    extract_text=lambda p: (
        f"{_text(p.get('name'))} ({_text(p.get('segment'))})"
        if _text(p.get("name")) and _text(p.get("segment"))
        else _text(p.get("name")) or _text(p.get("segment"))
    ),
    is_empty=lambda p: not _text(p.get("name")) and not _text(p.get("segment")),
))

BUILTIN_TYPES = tuple(variant_tags())
