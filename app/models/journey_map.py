"""
Journey Map Platform
Journey map domain models.

Models:
    - JourneyMap: one customer journey document plus its metadata
    - JourneyMapVersion: append-only snapshot written on each save
    - JourneyMapComment: note anchored to a (section, stage) coordinate
    - JourneyMapTemplate: reusable starting document (system or tenant-owned)

The document itself (stages, sections, cells) is stored as JSON in
``JourneyMap.data``; app.services.journey.document owns its structure.

Chain: JourneyMap → JourneyMapVersion / JourneyMapComment
"""

from datetime import datetime, timezone

from app.models import db
from app.models.base import TenantModel

# ── Constants ────────────────────────────────────────────────────────────────

MAP_STATUSES = {"draft", "published", "archived"}

SORT_FIELDS = {
    "updated": "updated_at",
    "created": "created_at",
    "title": "title",
}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# JourneyMap
# ═════════════════════════════════════════════════════════════════════════════


class JourneyMap(TenantModel):
    """
    A journey map document.

    ``data`` holds the serialized JourneyMapDocument; ``title`` mirrors the
    document title so listings do not have to parse JSON.
    """

    __tablename__ = "journey_maps"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False, default="Untitled Journey")
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | published | archived",
    )
    persona_id = db.Column(db.String(64), nullable=True)
    created_by = db.Column(db.String(150), nullable=True, index=True)
    tags = db.Column(db.JSON, default=list)
    data = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    versions = db.relationship(
        "JourneyMapVersion", backref="journey_map", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    comments = db.relationship(
        "JourneyMapComment", backref="journey_map", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        TenantModel.tenant_composite_index("journey_maps", "status"),
    )

    def to_dict(self, include_data=True):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description or "",
            "status": self.status,
            "persona_id": self.persona_id,
            "created_by": self.created_by,
            "tags": self.tags or [],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_data:
            result["data"] = self.data or {}
        else:
            data = self.data or {}
            result["stage_count"] = len(data.get("stages") or [])
            result["section_count"] = len(data.get("sections") or [])
        return result

    def __repr__(self):
        return f"<JourneyMap {self.id}: {self.title}>"


# ═════════════════════════════════════════════════════════════════════════════
# JourneyMapVersion
# ═════════════════════════════════════════════════════════════════════════════


class JourneyMapVersion(db.Model):
    """
    Immutable snapshot of a map's document.

    Business rules:
    - Rows are never updated or deleted individually (only with their map).
    - version_number is max(version_number) + 1 per map, never reused, so a
      restore followed by a save always yields a new highest version.
    """

    __tablename__ = "journey_map_versions"

    id = db.Column(db.Integer, primary_key=True)
    map_id = db.Column(
        db.Integer, db.ForeignKey("journey_maps.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version_number = db.Column(db.Integer, nullable=False)
    snapshot = db.Column(db.JSON, nullable=False)
    created_by = db.Column(db.String(150), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("map_id", "version_number", name="uq_journey_map_version"),
    )

    def to_dict(self, include_snapshot=False):
        result = {
            "id": self.id,
            "map_id": self.map_id,
            "version_number": self.version_number,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }
        if include_snapshot:
            result["snapshot"] = self.snapshot or {}
        return result

    def __repr__(self):
        return f"<JourneyMapVersion map={self.map_id} v{self.version_number}>"


# ═════════════════════════════════════════════════════════════════════════════
# JourneyMapComment
# ═════════════════════════════════════════════════════════════════════════════


class JourneyMapComment(db.Model):
    """Comment anchored to a cell coordinate. Independent of the cell payload."""

    __tablename__ = "journey_map_comments"

    id = db.Column(db.Integer, primary_key=True)
    map_id = db.Column(
        db.Integer, db.ForeignKey("journey_maps.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    section_id = db.Column(db.String(64), nullable=False)
    stage_id = db.Column(db.String(64), nullable=False)
    content = db.Column(db.Text, nullable=False)
    user_name = db.Column(db.String(150), nullable=True)
    resolved = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.Index("ix_journey_comment_cell", "map_id", "section_id", "stage_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "map_id": self.map_id,
            "section_id": self.section_id,
            "stage_id": self.stage_id,
            "content": self.content,
            "user_name": self.user_name,
            "resolved": bool(self.resolved),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<JourneyMapComment {self.id} map={self.map_id} {self.section_id}/{self.stage_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# JourneyMapTemplate
# ═════════════════════════════════════════════════════════════════════════════


class JourneyMapTemplate(TenantModel):
    """Reusable starting document. ``is_system`` templates are visible to every tenant."""

    __tablename__ = "journey_map_templates"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(100), default="general")
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    data = db.Column(db.JSON, nullable=False, default=dict)
    created_by = db.Column(db.String(150), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self, include_data=False):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description or "",
            "category": self.category,
            "is_system": bool(self.is_system),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }
        if include_data:
            result["data"] = self.data or {}
        return result

    def __repr__(self):
        return f"<JourneyMapTemplate {self.id}: {self.title}>"
