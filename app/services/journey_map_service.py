"""
Journey Map service layer: storage collaborator for the editing engine.

Centralises all ORM queries and mutations for JourneyMap, JourneyMapVersion,
JourneyMapComment and JourneyMapTemplate so that the blueprint stays
HTTP-only. Every db.session.commit() lives in this module.

Rules:
    - Documents enter the engine only through JourneyMapDocument.from_dict
      (repair or ValidationError).
    - Every save appends a JourneyMapVersion whose version_number is
      max + 1 for the map (never reused). A restore does not rewrite
      history: saving the restored document creates a new highest version.
    - Tenant scope: a map outside the caller's tenant is reported as
      NotFoundError, never as forbidden.
    - SQLAlchemyError is rolled back and re-raised as PersistenceError.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.models import db
from app.models.journey_map import (
    MAP_STATUSES,
    SORT_FIELDS,
    JourneyMap,
    JourneyMapComment,
    JourneyMapTemplate,
    JourneyMapVersion,
)
from app.services.journey import analytics as journey_analytics
from app.services.journey import mutations
from app.services.journey.builtin_templates import SYSTEM_TEMPLATES
from app.services.journey.document import JourneyMapDocument
from app.services.journey.session import EditingSession

logger = logging.getLogger(__name__)

_UNSET = object()


# ──────────────────────────────────────────────────────────────────────────────
# Private helpers
# ──────────────────────────────────────────────────────────────────────────────


def _commit(operation: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error(
            "Journey map %s failed: %s", operation, exc,
            extra={"event_type": "journey_persistence_error", "operation": operation},
        )
        raise PersistenceError(operation, str(exc)) from exc


def _get_map(map_id: int, tenant_id: int | None = None) -> JourneyMap:
    try:
        jm = db.session.get(JourneyMap, map_id)
    except SQLAlchemyError as exc:
        raise PersistenceError("load", str(exc)) from exc
    if jm is None or (tenant_id is not None and jm.tenant_id != tenant_id):
        raise NotFoundError(resource="JourneyMap", resource_id=map_id, tenant_id=tenant_id)
    return jm


def _parse_document(data, *, seed_missing_stages: bool = True) -> JourneyMapDocument:
    if isinstance(data, JourneyMapDocument):
        return data
    return JourneyMapDocument.from_dict(data or {}, seed_missing_stages=seed_missing_stages)


def _validate_status(status) -> str:
    if not isinstance(status, str) or status not in MAP_STATUSES:
        raise ValidationError(
            f"Invalid status {status!r}",
            details={"status": f"one of: {', '.join(sorted(MAP_STATUSES))}"},
        )
    return status


def _next_version_number(map_id: int) -> int:
    try:
        current = (
            db.session.query(func.max(JourneyMapVersion.version_number))
            .filter(JourneyMapVersion.map_id == map_id)
            .scalar()
        )
    except SQLAlchemyError as exc:
        raise PersistenceError("version_number", str(exc)) from exc
    return (current or 0) + 1


def _version_on_save() -> bool:
    return bool(current_app.config.get("JOURNEY_VERSION_ON_SAVE", True))


# ──────────────────────────────────────────────────────────────────────────────
# Maps
# ──────────────────────────────────────────────────────────────────────────────


def list_maps(
    tenant_id: int | None = None,
    *,
    search: str | None = None,
    status: str | None = None,
    sort: str = "updated",
    created_by: str | None = None,
    limit: int = 200,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """Map summaries (no document body), newest first unless ``sort="title"``.

    Returns:
        Tuple of (page of summaries, total count).
    """
    q = JourneyMap.query_for_tenant(tenant_id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(JourneyMap.title.ilike(pattern), JourneyMap.description.ilike(pattern)))
    if status and status != "all":
        q = q.filter(JourneyMap.status == _validate_status(status))
    if created_by:
        q = q.filter(JourneyMap.created_by == created_by)

    column = getattr(JourneyMap, SORT_FIELDS.get(sort, "updated_at"))
    q = q.order_by(column.asc() if sort == "title" else column.desc(), JourneyMap.id.desc())
    try:
        total = q.count()
        rows = q.limit(limit).offset(offset).all()
    except SQLAlchemyError as exc:
        raise PersistenceError("list", str(exc)) from exc
    return [jm.to_dict(include_data=False) for jm in rows], total


def create_map(data: dict, *, tenant_id: int | None = None, created_by: str | None = None) -> dict:
    """Create a map. Without a ``data`` document it starts with one seed stage.

    Raises:
        ValidationError: bad status or a document that cannot be repaired.
    """
    data = data or {}
    title = (data.get("title") or "").strip() or None
    if data.get("data") is not None:
        document = _parse_document(data["data"])
        if title:
            document = mutations.set_title(document, title)
    else:
        document = JourneyMapDocument.seeded(title) if title else JourneyMapDocument.seeded()

    jm = JourneyMap(
        tenant_id=tenant_id,
        title=document.title,
        description=data.get("description") or "",
        status=_validate_status(data.get("status") or "draft"),
        persona_id=data.get("persona_id"),
        created_by=created_by,
        tags=list(data.get("tags") or []),
        data=document.to_dict(),
    )
    db.session.add(jm)
    _commit("create")
    logger.info(
        "JourneyMap created id=%s tenant=%s", jm.id, tenant_id,
        extra={"event_type": "journey_map_created", "map_id": jm.id},
    )
    return jm.to_dict()


def get_map(map_id: int, *, tenant_id: int | None = None) -> dict:
    return _get_map(map_id, tenant_id).to_dict()


def load_document(map_id: int, *, tenant_id: int | None = None) -> JourneyMapDocument:
    """Load and repair the stored document.

    Missing stages default to one seed stage, missing sections to [].
    """
    jm = _get_map(map_id, tenant_id)
    return _parse_document(jm.data, seed_missing_stages=True)


def save_document(
    map_id: int,
    document,
    *,
    tenant_id: int | None = None,
    persona_id=_UNSET,
    created_by: str | None = None,
    create_version: bool | None = None,
) -> dict:
    """Persist a full document snapshot and append a version.

    Args:
        document: JourneyMapDocument or its dict form.
        persona_id: update the linked persona when given.
        create_version: defaults to JOURNEY_VERSION_ON_SAVE.

    Returns:
        ``{"map": ..., "version": ... | None}``
    """
    doc = _parse_document(document)
    jm = _get_map(map_id, tenant_id)
    jm.data = doc.to_dict()
    jm.title = doc.title
    if persona_id is not _UNSET:
        jm.persona_id = persona_id

    if create_version is None:
        create_version = _version_on_save()
    version = None
    if create_version:
        version = JourneyMapVersion(
            map_id=jm.id,
            version_number=_next_version_number(jm.id),
            snapshot=jm.data,
            created_by=created_by,
        )
        db.session.add(version)
    _commit("save")

    logger.info(
        "JourneyMap saved id=%s version=%s", jm.id, version.version_number if version else None,
        extra={"event_type": "journey_map_saved", "map_id": jm.id},
    )
    return {
        "map": jm.to_dict(),
        "version": version.to_dict() if version else None,
    }


def update_map(
    map_id: int,
    data: dict,
    *,
    tenant_id: int | None = None,
    updated_by: str | None = None,
) -> dict:
    """Update metadata; a ``data`` key saves the document (and versions it)."""
    data = data or {}
    jm = _get_map(map_id, tenant_id)

    if "status" in data:
        jm.status = _validate_status(data["status"])
    if "description" in data:
        jm.description = data["description"] or ""
    if "tags" in data:
        jm.tags = list(data["tags"] or [])
    if "persona_id" in data:
        jm.persona_id = data["persona_id"]

    if data.get("data") is not None:
        doc = _parse_document(data["data"])
        if data.get("title"):
            doc = mutations.set_title(doc, data["title"])
        return save_document(map_id, doc, tenant_id=tenant_id, created_by=updated_by)["map"]

    if data.get("title"):
        doc = mutations.set_title(_parse_document(jm.data), data["title"])
        jm.title = doc.title
        jm.data = doc.to_dict()
    _commit("update")
    return jm.to_dict()


def delete_map(map_id: int, *, tenant_id: int | None = None) -> None:
    """Delete a map with its versions and comments."""
    jm = _get_map(map_id, tenant_id)
    db.session.delete(jm)
    _commit("delete")
    logger.info(
        "JourneyMap deleted id=%s", map_id,
        extra={"event_type": "journey_map_deleted", "map_id": map_id},
    )


def duplicate_map(map_id: int, *, tenant_id: int | None = None, created_by: str | None = None) -> dict:
    """Copy a map as a new draft titled "<title> (Copy)". History is not copied."""
    source = _get_map(map_id, tenant_id)
    doc = _parse_document(source.data)
    doc = mutations.set_title(doc, f"{source.title} (Copy)")
    copy_ = JourneyMap(
        tenant_id=source.tenant_id,
        title=doc.title,
        description=source.description or "",
        status="draft",
        persona_id=source.persona_id,
        created_by=created_by or source.created_by,
        tags=list(source.tags or []),
        data=doc.to_dict(),
    )
    db.session.add(copy_)
    _commit("duplicate")
    return copy_.to_dict()


# ──────────────────────────────────────────────────────────────────────────────
# Versions
# ──────────────────────────────────────────────────────────────────────────────


def list_versions(map_id: int, *, tenant_id: int | None = None) -> list[dict]:
    """Version summaries, newest first."""
    _get_map(map_id, tenant_id)
    try:
        rows = (
            JourneyMapVersion.query.filter_by(map_id=map_id)
            .order_by(JourneyMapVersion.version_number.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise PersistenceError("version_list", str(exc)) from exc
    return [v.to_dict() for v in rows]


def _get_version(map_id: int, version_id: int, tenant_id: int | None) -> JourneyMapVersion:
    _get_map(map_id, tenant_id)
    try:
        version = JourneyMapVersion.query.filter_by(map_id=map_id, id=version_id).first()
    except SQLAlchemyError as exc:
        raise PersistenceError("version_fetch", str(exc)) from exc
    if version is None:
        raise NotFoundError(resource="JourneyMapVersion", resource_id=version_id, tenant_id=tenant_id)
    return version


def get_version(map_id: int, version_id: int, *, tenant_id: int | None = None) -> dict:
    return _get_version(map_id, version_id, tenant_id).to_dict(include_snapshot=True)


def restore_version(
    map_id: int,
    version_id: int,
    *,
    tenant_id: int | None = None,
    persist: bool = False,
    created_by: str | None = None,
) -> tuple[JourneyMapDocument, dict | None]:
    """Return the snapshot as a new editable document.

    With ``persist=True`` it is saved straight away, which appends a new
    highest version; older versions are never rewritten.

    Returns:
        (document, save_result or None)
    """
    version = _get_version(map_id, version_id, tenant_id)
    document = _parse_document(version.snapshot)
    saved = None
    if persist:
        saved = save_document(
            map_id, document, tenant_id=tenant_id, created_by=created_by, create_version=True,
        )
    logger.info(
        "JourneyMap %s restored from v%s (persist=%s)", map_id, version.version_number, persist,
        extra={"event_type": "journey_map_restored", "map_id": map_id},
    )
    return document, saved


# ──────────────────────────────────────────────────────────────────────────────
# Comments
# ──────────────────────────────────────────────────────────────────────────────


def list_comments(
    map_id: int,
    *,
    tenant_id: int | None = None,
    section_id: str | None = None,
    stage_id: str | None = None,
    include_resolved: bool = True,
) -> list[dict]:
    _get_map(map_id, tenant_id)
    q = JourneyMapComment.query.filter_by(map_id=map_id)
    if section_id:
        q = q.filter_by(section_id=section_id)
    if stage_id:
        q = q.filter_by(stage_id=stage_id)
    if not include_resolved:
        q = q.filter_by(resolved=False)
    try:
        rows = q.order_by(JourneyMapComment.created_at.asc(), JourneyMapComment.id.asc()).all()
    except SQLAlchemyError as exc:
        raise PersistenceError("comment_list", str(exc)) from exc
    return [c.to_dict() for c in rows]


def create_comment(
    map_id: int,
    data: dict,
    *,
    tenant_id: int | None = None,
    user_name: str | None = None,
) -> dict:
    """Anchor a comment to (section_id, stage_id).

    Raises:
        ValidationError: section_id, stage_id or content missing.
    """
    data = data or {}
    missing = {f: "required" for f in ("section_id", "stage_id", "content") if not str(data.get(f) or "").strip()}
    if missing:
        raise ValidationError("section_id, stage_id and content are required", details=missing)

    _get_map(map_id, tenant_id)
    comment = JourneyMapComment(
        map_id=map_id,
        section_id=str(data["section_id"]),
        stage_id=str(data["stage_id"]),
        content=str(data["content"]).strip(),
        user_name=data.get("user_name") or user_name,
    )
    db.session.add(comment)
    _commit("comment_create")
    return comment.to_dict()


def _get_comment(map_id: int, comment_id: int, tenant_id: int | None) -> JourneyMapComment:
    _get_map(map_id, tenant_id)
    try:
        comment = JourneyMapComment.query.filter_by(map_id=map_id, id=comment_id).first()
    except SQLAlchemyError as exc:
        raise PersistenceError("comment_fetch", str(exc)) from exc
    if comment is None:
        raise NotFoundError(resource="JourneyMapComment", resource_id=comment_id, tenant_id=tenant_id)
    return comment


def update_comment(map_id: int, comment_id: int, data: dict, *, tenant_id: int | None = None) -> dict:
    """Edit content and/or resolve / unresolve."""
    data = data or {}
    comment = _get_comment(map_id, comment_id, tenant_id)
    if "content" in data:
        content = str(data["content"] or "").strip()
        if not content:
            raise ValidationError("content cannot be empty", details={"content": "required"})
        comment.content = content
    if "resolved" in data:
        comment.resolved = bool(data["resolved"])
    _commit("comment_update")
    return comment.to_dict()


def delete_comment(map_id: int, comment_id: int, *, tenant_id: int | None = None) -> None:
    comment = _get_comment(map_id, comment_id, tenant_id)
    db.session.delete(comment)
    _commit("comment_delete")


# ──────────────────────────────────────────────────────────────────────────────
# Templates
# ──────────────────────────────────────────────────────────────────────────────


def list_templates(*, tenant_id: int | None = None) -> list[dict]:
    """System templates first, then the tenant's own, by title."""
    q = JourneyMapTemplate.query
    if tenant_id is not None:
        q = q.filter(or_(JourneyMapTemplate.tenant_id == tenant_id, JourneyMapTemplate.is_system.is_(True)))
    q = q.order_by(JourneyMapTemplate.is_system.desc(), JourneyMapTemplate.title.asc())
    try:
        rows = q.all()
    except SQLAlchemyError as exc:
        raise PersistenceError("template_list", str(exc)) from exc
    return [t.to_dict() for t in rows]


def create_template(
    data: dict,
    *,
    tenant_id: int | None = None,
    created_by: str | None = None,
) -> dict:
    """Save a template from an inline ``data`` document or an existing map (``source_map_id``)."""
    data = data or {}
    if data.get("source_map_id") is not None:
        document = load_document(int(data["source_map_id"]), tenant_id=tenant_id)
    elif data.get("data") is not None:
        document = _parse_document(data["data"], seed_missing_stages=False)
    else:
        raise ValidationError("data or source_map_id is required", details={"data": "required"})

    title = (data.get("title") or "").strip() or document.title
    try:
        duplicate = JourneyMapTemplate.query.filter_by(
            tenant_id=tenant_id, title=title, is_system=False,
        ).first()
    except SQLAlchemyError as exc:
        raise PersistenceError("template_create", str(exc)) from exc
    if duplicate:
        raise ConflictError("JourneyMapTemplate", "title", title)

    template = JourneyMapTemplate(
        tenant_id=tenant_id,
        title=title,
        description=data.get("description") or "",
        category=data.get("category") or "general",
        is_system=False,
        data=document.to_dict(),
        created_by=created_by,
    )
    db.session.add(template)
    _commit("template_create")
    return template.to_dict(include_data=True)


def create_map_from_template(
    template_id: int,
    *,
    tenant_id: int | None = None,
    created_by: str | None = None,
    title: str | None = None,
) -> dict:
    try:
        template = db.session.get(JourneyMapTemplate, template_id)
    except SQLAlchemyError as exc:
        raise PersistenceError("template_fetch", str(exc)) from exc
    if template is None or (
        tenant_id is not None and not template.is_system and template.tenant_id != tenant_id
    ):
        raise NotFoundError(resource="JourneyMapTemplate", resource_id=template_id, tenant_id=tenant_id)
    return create_map(
        {
            "title": title or template.title,
            "description": template.description,
            "data": template.data,
        },
        tenant_id=tenant_id,
        created_by=created_by,
    )


def seed_system_templates() -> int:
    """Insert missing system templates; returns how many were created."""
    try:
        existing = {t.title for t in JourneyMapTemplate.query.filter_by(is_system=True).all()}
    except SQLAlchemyError as exc:
        raise PersistenceError("template_seed", str(exc)) from exc
    created = 0
    for spec in SYSTEM_TEMPLATES:
        if spec["title"] in existing:
            continue
        document = _parse_document(spec["data"], seed_missing_stages=False)
        db.session.add(JourneyMapTemplate(
            tenant_id=None,
            title=spec["title"],
            description=spec["description"],
            category=spec["category"],
            is_system=True,
            data=document.to_dict(),
        ))
        created += 1
    if created:
        _commit("template_seed")
    return created


# ──────────────────────────────────────────────────────────────────────────────
# Analytics
# ──────────────────────────────────────────────────────────────────────────────


def map_analytics(map_id: int, *, tenant_id: int | None = None) -> dict:
    return journey_analytics.compute_analytics(load_document(map_id, tenant_id=tenant_id)).to_dict()


def portfolio_analytics(*, tenant_id: int | None = None) -> dict:
    try:
        maps = JourneyMap.query_for_tenant(tenant_id).order_by(JourneyMap.id.asc()).all()
    except SQLAlchemyError as exc:
        raise PersistenceError("portfolio", str(exc)) from exc
    records = [
        {"title": jm.title, "status": jm.status, "document": _parse_document(jm.data)}
        for jm in maps
    ]
    return journey_analytics.portfolio_analytics(records)


# ──────────────────────────────────────────────────────────────────────────────
# Editing
# ──────────────────────────────────────────────────────────────────────────────


def apply_operations(
    map_id: int,
    ops: list,
    *,
    tenant_id: int | None = None,
    created_by: str | None = None,
) -> dict:
    """Load, apply edit operations in order, save if anything changed.

    Raises:
        ValidationError: ops is not a list, exceeds JOURNEY_MAX_OPERATIONS,
            or an operation is malformed (nothing is saved in that case).
    """
    if not isinstance(ops, list):
        raise ValidationError("ops must be a list", details={"ops": "list required"})
    limit = int(current_app.config.get("JOURNEY_MAX_OPERATIONS", 200))
    if len(ops) > limit:
        raise ValidationError(
            f"Too many operations ({len(ops)} > {limit})", details={"ops": f"max {limit}"},
        )

    before = load_document(map_id, tenant_id=tenant_id)
    after = mutations.apply_operations(before, ops)
    if after == before:
        return {"document": before.to_dict(), "version": None, "changed": False}

    saved = save_document(map_id, after, tenant_id=tenant_id, created_by=created_by)
    return {"document": after.to_dict(), "version": saved["version"], "changed": True}


def open_session(
    map_id: int,
    *,
    tenant_id: int | None = None,
    created_by: str | None = None,
    clock=None,
    executor=None,
) -> EditingSession:
    """Editing session whose autosave writes through save_document().

    The default inline executor saves on the caller's thread, inside the
    caller's app context. A threaded executor needs its own app context
    around each save.
    """
    document = load_document(map_id, tenant_id=tenant_id)

    def _save(doc):
        return save_document(map_id, doc, tenant_id=tenant_id, created_by=created_by)

    kwargs = {"clock": clock} if clock is not None else {}
    return EditingSession(
        document,
        _save,
        map_id=map_id,
        debounce_seconds=float(current_app.config.get("JOURNEY_AUTOSAVE_DEBOUNCE_SECONDS", 30)),
        executor=executor,
        **kwargs,
    )
