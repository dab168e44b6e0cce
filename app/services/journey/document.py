"""
Journey map document model.

A document is a matrix keyed by two independent, reorderable id sequences:

    stages    : ordered columns  (Stage)
    sections  : ordered rows     (Section), each with a cells map {stage_id: payload}

Values are immutable (frozen dataclasses, tuples for ordered sequences).
The mutation engine builds new documents; nothing edits one in place.

Cell storage is keyed by stage id, never by position, so reorders never
touch cells and a removed stage leaves dead keys behind. Reads ignore dead
keys; they are never pruned.

``JourneyMapDocument.from_dict`` is the only way external data (database
rows, templates, generator output, HTTP bodies) enters the engine. It
repairs what it can (missing/duplicate ids, missing names, bad styles,
non-object cells) and rejects what it cannot with ValidationError.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field

from app.core.exceptions import ValidationError
from app.services.journey.cell_variants import get_variant, is_known_type

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Journey"
DEFAULT_STAGE_NAME = "New Stage"
DEFAULT_SECTION_TITLE = "New Section"
SEED_STAGE_NAME = "Awareness"
DEFAULT_BG_COLOR = "#f8fafc"
DEFAULT_TEXT_COLOR = "#0f172a"

STAGE_ID_PREFIX = "st"
SECTION_ID_PREFIX = "sec"


def new_id(prefix: str, existing=()) -> str:
    """Generate an id not present in ``existing``."""
    taken = set(existing)
    while True:
        candidate = f"{prefix}_{uuid.uuid4().hex[:10]}"
        if candidate not in taken:
            return candidate


# ═════════════════════════════════════════════════════════════════════════════
# Value types
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StageStyle:
    bg_color: str = DEFAULT_BG_COLOR
    text_color: str = DEFAULT_TEXT_COLOR

    def to_dict(self) -> dict:
        return {"bg_color": self.bg_color, "text_color": self.text_color}

    @classmethod
    def from_dict(cls, data) -> "StageStyle":
        if not isinstance(data, dict):
            return cls()
        bg = data.get("bg_color") or data.get("backgroundColor") or DEFAULT_BG_COLOR
        fg = data.get("text_color") or data.get("textColor") or DEFAULT_TEXT_COLOR
        return cls(bg_color=str(bg), text_color=str(fg))


@dataclass(frozen=True)
class Stage:
    """A column of the map."""
    id: str
    name: str = DEFAULT_STAGE_NAME
    style: StageStyle = field(default_factory=StageStyle)
    icon: str | None = None

    def to_dict(self) -> dict:
        d = {"id": self.id, "name": self.name, "style": self.style.to_dict()}
        if self.icon:
            d["icon"] = self.icon
        return d


@dataclass(frozen=True)
class Section:
    """A typed row of the map.

    ``cells`` may hold payloads of a stale shape (after a retype) and keys
    for stages that no longer exist. Readers go through the variant
    registry, which tolerates both.
    """
    id: str
    type: str = "text"
    title: str = DEFAULT_SECTION_TITLE
    cells: dict = field(default_factory=dict)
    theme_color: str | None = None

    def cell(self, stage_id: str) -> dict | None:
        payload = self.cells.get(stage_id)
        return payload if isinstance(payload, dict) else None

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "cells": copy.deepcopy(self.cells),
        }
        if self.theme_color:
            d["theme_color"] = self.theme_color
        return d


@dataclass(frozen=True)
class JourneyMapDocument:
    """The unit of persistence and versioning."""
    title: str = DEFAULT_TITLE
    stages: tuple[Stage, ...] = ()
    sections: tuple[Section, ...] = ()

    # ── Lookups ───────────────────────────────────────────────────────

    @property
    def stage_ids(self) -> list[str]:
        return [s.id for s in self.stages]

    @property
    def section_ids(self) -> list[str]:
        return [s.id for s in self.sections]

    def stage_index(self, stage_id: str) -> int | None:
        for idx, stage in enumerate(self.stages):
            if stage.id == stage_id:
                return idx
        return None

    def section_index(self, section_id: str) -> int | None:
        for idx, section in enumerate(self.sections):
            if section.id == section_id:
                return idx
        return None

    def find_stage(self, stage_id: str) -> Stage | None:
        idx = self.stage_index(stage_id)
        return self.stages[idx] if idx is not None else None

    def find_section(self, section_id: str) -> Section | None:
        idx = self.section_index(section_id)
        return self.sections[idx] if idx is not None else None

    def cell(self, section_id: str, stage_id: str) -> dict | None:
        section = self.find_section(section_id)
        return section.cell(stage_id) if section else None

    def orphaned_cell_keys(self) -> dict[str, list[str]]:
        """Cell keys per section that point at stages no longer in the map."""
        live = set(self.stage_ids)
        orphans = {}
        for section in self.sections:
            dead = [k for k in section.cells if k not in live]
            if dead:
                orphans[section.id] = dead
        return orphans

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "stages": [s.to_dict() for s in self.stages],
            "sections": [s.to_dict() for s in self.sections],
        }

    @classmethod
    def empty(cls, title: str = DEFAULT_TITLE) -> "JourneyMapDocument":
        return cls(title=title)

    @classmethod
    def seeded(cls, title: str = DEFAULT_TITLE) -> "JourneyMapDocument":
        """One seed stage, no sections: the shape of a freshly created map."""
        return cls(title=title, stages=(seed_stage(),))

    @classmethod
    def from_dict(cls, data, *, seed_missing_stages: bool = False) -> "JourneyMapDocument":
        """Build a document from untrusted JSON, repairing or rejecting it.

        Repairs:
            - missing, blank or duplicate stage/section ids are regenerated
            - missing stage names / section titles get defaults
            - malformed stage styles fall back to the default palette
            - non-object cell payloads are dropped
            - ``project_name`` is accepted for ``title``
            - missing ``stages`` -> [] (or one seed stage when
              ``seed_missing_stages``), missing ``sections`` -> []

        Raises:
            ValidationError: document is not an object, ``stages``/``sections``
                is not a list, an entry is not an object, or a section type is
                unknown.
        """
        if not isinstance(data, dict):
            raise ValidationError("document must be a JSON object")

        repairs: list[str] = []
        title = data.get("title") or data.get("project_name") or DEFAULT_TITLE

        raw_stages = data.get("stages")
        if raw_stages is None:
            stages = [seed_stage()] if seed_missing_stages else []
            if seed_missing_stages:
                repairs.append("stages:seeded")
        elif not isinstance(raw_stages, list):
            raise ValidationError("stages must be a list", details={"stages": type(raw_stages).__name__})
        else:
            stages = _parse_stages(raw_stages, repairs)

        raw_sections = data.get("sections")
        if raw_sections is None:
            sections = []
        elif not isinstance(raw_sections, list):
            raise ValidationError(
                "sections must be a list", details={"sections": type(raw_sections).__name__},
            )
        else:
            sections = _parse_sections(raw_sections, repairs)

        if repairs:
            logger.info(
                "Journey document repaired on load: %s", ", ".join(repairs[:20]),
                extra={"event_type": "journey_document_repaired"},
            )
        return cls(title=str(title), stages=tuple(stages), sections=tuple(sections))


def seed_stage() -> Stage:
    return Stage(id=f"{STAGE_ID_PREFIX}_1", name=SEED_STAGE_NAME)


# ── Parsing helpers ──────────────────────────────────────────────────────


def _parse_stages(raw: list, repairs: list[str]) -> list[Stage]:
    seen: set[str] = set()
    stages = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(
                f"stage #{idx} must be an object", details={"stages": f"index {idx}"},
            )
        stage_id = str(item.get("id") or "").strip()
        if not stage_id or stage_id in seen:
            stage_id = new_id(STAGE_ID_PREFIX, seen | {str(s.get("id")) for s in raw if isinstance(s, dict)})
            repairs.append(f"stage[{idx}].id")
        seen.add(stage_id)

        name = item.get("name")
        if not name:
            name = f"Stage {idx + 1}"
            repairs.append(f"stage[{idx}].name")

        style_data = item.get("style", item.get("displayStyle"))
        stages.append(Stage(
            id=stage_id,
            name=str(name),
            style=StageStyle.from_dict(style_data),
            icon=item.get("icon") or None,
        ))
    return stages


def _parse_sections(raw: list, repairs: list[str]) -> list[Section]:
    seen: set[str] = set()
    sections = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(
                f"section #{idx} must be an object", details={"sections": f"index {idx}"},
            )
        section_type = item.get("type") or "text"
        if not is_known_type(section_type):
            raise ValidationError(
                f"unknown section type {section_type!r}",
                details={"sections": f"index {idx}", "type": str(section_type)},
            )

        section_id = str(item.get("id") or "").strip()
        if not section_id or section_id in seen:
            section_id = new_id(
                SECTION_ID_PREFIX, seen | {str(s.get("id")) for s in raw if isinstance(s, dict)},
            )
            repairs.append(f"section[{idx}].id")
        seen.add(section_id)

        title = item.get("title")
        if not title:
            title = get_variant(section_type).label
            repairs.append(f"section[{idx}].title")

        raw_cells = item.get("cells")
        cells = {}
        if isinstance(raw_cells, dict):
            for key, payload in raw_cells.items():
                if isinstance(payload, dict):
                    cells[str(key)] = copy.deepcopy(payload)
                else:
                    repairs.append(f"section[{idx}].cells[{key}]")
        elif raw_cells is not None:
            repairs.append(f"section[{idx}].cells")

        sections.append(Section(
            id=section_id,
            type=section_type,
            title=str(title),
            cells=cells,
            theme_color=item.get("theme_color") or item.get("themeColor") or None,
        ))
    return sections
