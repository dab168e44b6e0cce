"""
Mutation & reorder engine for journey map documents.

Every function takes a document plus arguments and returns a new document.
The input is never modified. Rows and columns that an operation does not
touch are shared with the input (they are frozen); a touched row gets a
fresh cells map and fresh payload dicts.

Failure semantics:
    - An unknown stage/section id is a no-op: the input document is returned
      unchanged, so a stale edit racing a deletion is dropped.
    - Reorder indices outside the list are clamped to the nearest end.
    - Only malformed arguments that cannot be interpreted at all (unknown
      section type, unknown operation name) raise ValidationError.

Usage:
    from app.services.journey import mutations as m

    doc = m.add_stage(doc, name="Purchase")
    doc = m.set_cell(doc, "sec_1", "st_1", {"note": "slow checkout"})
    doc = m.reorder_stages(doc, 0, 2)
    doc = m.apply_operation(doc, {"op": "rename_stage", "stage_id": "st_1", "name": "Discover"})
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace

from app.core.exceptions import ValidationError
from app.services.journey.cell_variants import get_variant, is_known_type
from app.services.journey.document import (
    DEFAULT_STAGE_NAME,
    SECTION_ID_PREFIX,
    STAGE_ID_PREFIX,
    JourneyMapDocument,
    Section,
    Stage,
    StageStyle,
    new_id,
)

logger = logging.getLogger(__name__)

_UNSET = object()


def _noop(doc: JourneyMapDocument, op: str, **ids) -> JourneyMapDocument:
    logger.debug("Journey op %s skipped, id not in document: %s", op, ids)
    return doc


def _require_type(section_type) -> str:
    if not is_known_type(section_type):
        raise ValidationError(
            f"unknown section type {section_type!r}", details={"type": str(section_type)},
        )
    return section_type


# ═════════════════════════════════════════════════════════════════════════════
# Stages
# ═════════════════════════════════════════════════════════════════════════════


def add_stage(
    doc: JourneyMapDocument,
    name: str = DEFAULT_STAGE_NAME,
    *,
    stage_id: str | None = None,
    style: StageStyle | None = None,
) -> JourneyMapDocument:
    """Append a stage with a unique id and the default style."""
    existing = doc.stage_ids
    if not stage_id or stage_id in existing:
        stage_id = new_id(STAGE_ID_PREFIX, existing)
    stage = Stage(id=stage_id, name=name or DEFAULT_STAGE_NAME, style=style or StageStyle())
    return replace(doc, stages=doc.stages + (stage,))


def remove_stage(doc: JourneyMapDocument, stage_id: str) -> JourneyMapDocument:
    """Drop the stage from the sequence.

    Cells keyed by this stage id stay in every section's map as dead keys.
    """
    if doc.stage_index(stage_id) is None:
        return _noop(doc, "remove_stage", stage_id=stage_id)
    return replace(doc, stages=tuple(s for s in doc.stages if s.id != stage_id))


def _update_stage(doc: JourneyMapDocument, stage_id: str, op: str, **changes) -> JourneyMapDocument:
    idx = doc.stage_index(stage_id)
    if idx is None:
        return _noop(doc, op, stage_id=stage_id)
    stages = list(doc.stages)
    stages[idx] = replace(stages[idx], **changes)
    return replace(doc, stages=tuple(stages))


def rename_stage(doc: JourneyMapDocument, stage_id: str, name: str) -> JourneyMapDocument:
    return _update_stage(doc, stage_id, "rename_stage", name=name)


def restyle_stage(
    doc: JourneyMapDocument,
    stage_id: str,
    *,
    bg_color: str | None = None,
    text_color: str | None = None,
    icon=_UNSET,
) -> JourneyMapDocument:
    """Change colours and/or icon. ``icon=None`` clears the icon."""
    stage = doc.find_stage(stage_id)
    if stage is None:
        return _noop(doc, "restyle_stage", stage_id=stage_id)
    changes = {
        "style": StageStyle(
            bg_color=bg_color or stage.style.bg_color,
            text_color=text_color or stage.style.text_color,
        ),
    }
    if icon is not _UNSET:
        changes["icon"] = icon or None
    return _update_stage(doc, stage_id, "restyle_stage", **changes)


# ═════════════════════════════════════════════════════════════════════════════
# Reorder
# ═════════════════════════════════════════════════════════════════════════════


def _splice_move(items: tuple, from_index, to_index) -> tuple:
    """Remove at ``from_index``, insert at ``to_index`` of the resulting list.

    Indices are clamped into range; equal indices return ``items`` itself.
    """
    if not items:
        return items
    try:
        src, dst = int(from_index), int(to_index)
    except (TypeError, ValueError):
        logger.debug("Reorder skipped, non-integer indices: %r -> %r", from_index, to_index)
        return items
    last = len(items) - 1
    src = max(0, min(src, last))
    dst = max(0, min(dst, last))
    if src == dst:
        return items
    moved = list(items)
    item = moved.pop(src)
    moved.insert(dst, item)
    return tuple(moved)


def reorder_stages(doc: JourneyMapDocument, from_index: int, to_index: int) -> JourneyMapDocument:
    stages = _splice_move(doc.stages, from_index, to_index)
    return doc if stages is doc.stages else replace(doc, stages=stages)


def reorder_sections(doc: JourneyMapDocument, from_index: int, to_index: int) -> JourneyMapDocument:
    sections = _splice_move(doc.sections, from_index, to_index)
    return doc if sections is doc.sections else replace(doc, sections=sections)


def move_stage(doc: JourneyMapDocument, active_id: str, over_id: str) -> JourneyMapDocument:
    """Drag-drop form of reorder: move ``active_id`` to where ``over_id`` sits."""
    src, dst = doc.stage_index(active_id), doc.stage_index(over_id)
    if src is None or dst is None:
        return _noop(doc, "move_stage", active_id=active_id, over_id=over_id)
    return reorder_stages(doc, src, dst)


def move_section(doc: JourneyMapDocument, active_id: str, over_id: str) -> JourneyMapDocument:
    src, dst = doc.section_index(active_id), doc.section_index(over_id)
    if src is None or dst is None:
        return _noop(doc, "move_section", active_id=active_id, over_id=over_id)
    return reorder_sections(doc, src, dst)


# ═════════════════════════════════════════════════════════════════════════════
# Sections
# ═════════════════════════════════════════════════════════════════════════════


def add_section(
    doc: JourneyMapDocument,
    section_type: str,
    title: str | None = None,
    *,
    section_id: str | None = None,
) -> JourneyMapDocument:
    """Append a section of ``section_type`` with an empty cell map.

    Raises:
        ValidationError: ``section_type`` is not a registered variant.
    """
    _require_type(section_type)
    existing = doc.section_ids
    if not section_id or section_id in existing:
        section_id = new_id(SECTION_ID_PREFIX, existing)
    section = Section(id=section_id, type=section_type, title=title or "New Section", cells={})
    return replace(doc, sections=doc.sections + (section,))


def delete_section(doc: JourneyMapDocument, section_id: str) -> JourneyMapDocument:
    if doc.section_index(section_id) is None:
        return _noop(doc, "delete_section", section_id=section_id)
    return replace(doc, sections=tuple(s for s in doc.sections if s.id != section_id))


def _update_section(doc: JourneyMapDocument, section_id: str, op: str, **changes) -> JourneyMapDocument:
    idx = doc.section_index(section_id)
    if idx is None:
        return _noop(doc, op, section_id=section_id)
    sections = list(doc.sections)
    sections[idx] = replace(sections[idx], **changes)
    return replace(doc, sections=tuple(sections))


def rename_section(doc: JourneyMapDocument, section_id: str, title: str) -> JourneyMapDocument:
    return _update_section(doc, section_id, "rename_section", title=title)


def recolor_section(doc: JourneyMapDocument, section_id: str, theme_color: str | None) -> JourneyMapDocument:
    return _update_section(doc, section_id, "recolor_section", theme_color=theme_color or None)


def retype_section(doc: JourneyMapDocument, section_id: str, section_type: str) -> JourneyMapDocument:
    """Change the row type. Existing cell payloads are NOT migrated.

    Raises:
        ValidationError: ``section_type`` is not a registered variant.
    """
    _require_type(section_type)
    return _update_section(doc, section_id, "retype_section", type=section_type)


# ═════════════════════════════════════════════════════════════════════════════
# Cells
# ═════════════════════════════════════════════════════════════════════════════


def set_cell(
    doc: JourneyMapDocument,
    section_id: str,
    stage_id: str,
    partial: dict,
) -> JourneyMapDocument:
    """Shallow-merge ``partial`` into the payload at (section, stage).

    Keys absent from ``partial`` keep their current value, so a control can
    update ``note`` without clobbering ``value``. Array-valued keys are
    replaced wholesale, never spliced. With no existing cell, ``partial``
    becomes the whole payload.
    """
    section = doc.find_section(section_id)
    if section is None or doc.stage_index(stage_id) is None:
        return _noop(doc, "set_cell", section_id=section_id, stage_id=stage_id)
    if not isinstance(partial, dict):
        logger.debug("set_cell skipped, partial is %s not dict", type(partial).__name__)
        return doc

    current = section.cell(stage_id)
    merged = copy.deepcopy(current) if current else {}
    merged.update(copy.deepcopy(partial))

    cells = {k: copy.deepcopy(v) for k, v in section.cells.items()}
    cells[stage_id] = merged
    return _update_section(doc, section_id, "set_cell", cells=cells)


def reset_cell(doc: JourneyMapDocument, section_id: str, stage_id: str) -> JourneyMapDocument:
    """Replace the payload with the section type's default payload."""
    section = doc.find_section(section_id)
    if section is None or doc.stage_index(stage_id) is None:
        return _noop(doc, "reset_cell", section_id=section_id, stage_id=stage_id)
    cells = {k: copy.deepcopy(v) for k, v in section.cells.items()}
    cells[stage_id] = get_variant(section.type).default_payload()
    return _update_section(doc, section_id, "reset_cell", cells=cells)


def set_title(doc: JourneyMapDocument, title: str) -> JourneyMapDocument:
    return replace(doc, title=title or doc.title)


# ═════════════════════════════════════════════════════════════════════════════
# Operation dispatcher (REST surface)
# ═════════════════════════════════════════════════════════════════════════════

_OPERATIONS = {
    "add_stage": lambda d, a: add_stage(d, a.get("name") or DEFAULT_STAGE_NAME, stage_id=a.get("stage_id")),
    "remove_stage": lambda d, a: remove_stage(d, a["stage_id"]),
    "rename_stage": lambda d, a: rename_stage(d, a["stage_id"], a["name"]),
    "restyle_stage": lambda d, a: restyle_stage(
        d, a["stage_id"],
        bg_color=a.get("bg_color"),
        text_color=a.get("text_color"),
        **({"icon": a["icon"]} if "icon" in a else {}),
    ),
    "reorder_stages": lambda d, a: reorder_stages(d, a["from_index"], a["to_index"]),
    "move_stage": lambda d, a: move_stage(d, a["active_id"], a["over_id"]),
    "add_section": lambda d, a: add_section(d, a["type"], a.get("title"), section_id=a.get("section_id")),
    "delete_section": lambda d, a: delete_section(d, a["section_id"]),
    "rename_section": lambda d, a: rename_section(d, a["section_id"], a["title"]),
    "recolor_section": lambda d, a: recolor_section(d, a["section_id"], a.get("theme_color")),
    "retype_section": lambda d, a: retype_section(d, a["section_id"], a["type"]),
    "reorder_sections": lambda d, a: reorder_sections(d, a["from_index"], a["to_index"]),
    "move_section": lambda d, a: move_section(d, a["active_id"], a["over_id"]),
    "set_cell": lambda d, a: set_cell(d, a["section_id"], a["stage_id"], a.get("value") or {}),
    "reset_cell": lambda d, a: reset_cell(d, a["section_id"], a["stage_id"]),
    "set_title": lambda d, a: set_title(d, a["title"]),
}

OPERATION_NAMES = tuple(sorted(_OPERATIONS))


def apply_operation(doc: JourneyMapDocument, op: dict) -> JourneyMapDocument:
    """Apply one ``{"op": name, ...args}`` operation.

    Raises:
        ValidationError: op is not an object, the name is unknown, or a
            required argument is missing.
    """
    if not isinstance(op, dict):
        raise ValidationError("operation must be an object")
    name = op.get("op")
    handler = _OPERATIONS.get(name) if isinstance(name, str) else None
    if handler is None:
        raise ValidationError(
            f"unknown operation {name!r}", details={"op": f"one of: {', '.join(OPERATION_NAMES)}"},
        )
    try:
        return handler(doc, op)
    except KeyError as exc:
        raise ValidationError(
            f"{name}: missing argument {exc.args[0]!r}", details={exc.args[0]: "required"},
        ) from exc


def apply_operations(doc: JourneyMapDocument, ops: list) -> JourneyMapDocument:
    for op in ops:
        doc = apply_operation(doc, op)
    return doc
