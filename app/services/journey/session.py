"""
Editing session: one open journey map.

Glues the pieces of the editor loop together:

    operation ─▶ mutations ─▶ new document ─┬─▶ analytics (lazy, cached per document)
                                            └─▶ AutosaveController.notify_change

The session holds no storage knowledge; it receives a ``save_fn`` and an
initial document. journey_map_service.open_session() wires both to the
database.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from app.services.journey import mutations
from app.services.journey.analytics import JourneyAnalytics, compute_analytics
from app.services.journey.autosave import DEFAULT_DEBOUNCE_SECONDS, AutosaveController
from app.services.journey.document import JourneyMapDocument
from app.services.journey.sentiment_curve import SentimentCurve, section_curve

logger = logging.getLogger(__name__)


class EditingSession:
    """In-memory editing state for a single map."""

    def __init__(
        self,
        document: JourneyMapDocument,
        save_fn: Callable[[JourneyMapDocument], Any],
        *,
        map_id=None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        executor=None,
    ):
        self.map_id = map_id
        self._document = document
        self._analytics: JourneyAnalytics | None = None
        self._analytics_for: JourneyMapDocument | None = None
        self.autosave = AutosaveController(
            save_fn,
            debounce_seconds=debounce_seconds,
            clock=clock,
            executor=executor,
            saved_document=document,
            name=f"journey_map:{map_id}" if map_id is not None else "journey_map",
        )

    @property
    def document(self) -> JourneyMapDocument:
        return self._document

    def _replace(self, document: JourneyMapDocument) -> JourneyMapDocument:
        if document is self._document:
            return document
        self._document = document
        self.autosave.notify_change(document)
        return document

    # ── Editing ───────────────────────────────────────────────────────

    def edit(self, fn: Callable[..., JourneyMapDocument], *args, **kwargs) -> JourneyMapDocument:
        """Apply a mutation function, e.g. ``session.edit(mutations.add_stage, "Buy")``."""
        return self._replace(fn(self._document, *args, **kwargs))

    def apply(self, op: dict) -> JourneyMapDocument:
        return self._replace(mutations.apply_operation(self._document, op))

    def apply_many(self, ops: list) -> JourneyMapDocument:
        return self._replace(mutations.apply_operations(self._document, ops))

    def replace_document(self, document: JourneyMapDocument) -> JourneyMapDocument:
        """Swap in a whole document (e.g. a restored version).

        Treated like any other edit: autosave will persist it after the
        debounce unless ``save()`` is called first.
        """
        logger.info("Journey session %s: document replaced", self.map_id)
        return self._replace(document)

    # ── Saving ────────────────────────────────────────────────────────

    def tick(self):
        """Drive the debounce timer; call periodically from the host loop."""
        return self.autosave.poll()

    def save(self):
        """Explicit save. Returns the save Future."""
        return self.autosave.save_now(self._document)

    def close(self):
        """Flush unsaved changes, if any. Returns the save Future or None."""
        if self.autosave.has_unsaved_changes:
            return self.save()
        return None

    # ── Derived views ─────────────────────────────────────────────────

    def analytics(self) -> JourneyAnalytics:
        if self._analytics is None or self._analytics_for is not self._document:
            self._analytics = compute_analytics(self._document)
            self._analytics_for = self._document
        return self._analytics

    def curve(self, section_id: str) -> SentimentCurve | None:
        section = self._document.find_section(section_id)
        if section is None:
            return None
        return section_curve(self._document, section)

    def status(self) -> dict:
        return {"map_id": self.map_id, **self.autosave.status()}
