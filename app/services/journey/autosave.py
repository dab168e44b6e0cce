"""
Autosave controller: debounced save state machine, one per open document.

States and transitions:

    idle ──change──▶ pending ──deadline / save_now──▶ saving ──ok──▶ idle
      ▲                 │ change: re-arm timer            │ error ─▶ failed
      │                 ▼                                 │ change while saving:
      └──── change back to last saved document            └──────▶ pending (fresh cycle)

    failed ──change──▶ pending        failed ──acknowledge()──▶ idle

Rules:
  - Any change while idle/pending/failed (re)arms the debounce deadline.
  - A change arriving while a save is in flight is queued; once every
    in-flight save has resolved, a fresh debounce cycle starts.
  - save_now() is always available, cancels the deadline and saves the
    latest document immediately, even if another save is still in flight.
  - Failed saves are never retried automatically. The in-memory document
    is untouched; the next change schedules a new save.
  - In-flight saves are never cancelled. Saves carry full snapshots, so
    when two overlapping saves complete out of order the one that finished
    last is what storage holds (last write wins). This is accepted, not
    corrected.

Time comes from an injectable ``clock`` and saves run through an injectable
executor (anything with ``submit(fn, *args) -> Future``). The default
executor runs the save inline; pass a ThreadPoolExecutor to keep editing
while saving.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 30.0


class SaveState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"
    FAILED = "failed"


SAVE_TRANSITIONS = {
    SaveState.IDLE: [SaveState.PENDING, SaveState.SAVING],
    SaveState.PENDING: [SaveState.PENDING, SaveState.SAVING, SaveState.IDLE],
    SaveState.SAVING: [SaveState.SAVING, SaveState.IDLE, SaveState.FAILED, SaveState.PENDING],
    SaveState.FAILED: [SaveState.PENDING, SaveState.SAVING, SaveState.IDLE],
}


def validate_save_transition(old_state, new_state) -> bool:
    """Check if an autosave state transition is allowed."""
    return SaveState(new_state) in SAVE_TRANSITIONS.get(SaveState(old_state), [])


class InlineExecutor:
    """Runs the save on the caller's thread and hands back a finished Future."""

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


@dataclass(frozen=True)
class SaveTicket:
    seq: int
    document: Any
    explicit: bool
    started_at: float


class AutosaveController:
    """Owns the debounce timer and save lifecycle for one document.

    Args:
        save_fn: ``save_fn(document) -> Any``; raising marks the save failed.
        debounce_seconds: quiet period after the last change before saving.
        clock: monotonic time source (seconds).
        executor: where saves run; defaults to InlineExecutor.
        saved_document: the document as currently persisted (load result).
        name: label used in log records (e.g. ``"journey_map:12"``).
        on_state_change: optional ``callback(old_state, new_state)``.
    """

    def __init__(
        self,
        save_fn: Callable[[Any], Any],
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        executor=None,
        saved_document=None,
        name: str = "journey_map",
        on_state_change: Callable[[SaveState, SaveState], None] | None = None,
    ):
        self._save_fn = save_fn
        self.debounce_seconds = float(debounce_seconds)
        self._clock = clock
        self._executor = executor or InlineExecutor()
        self._name = name
        self._on_state_change = on_state_change
        self._lock = threading.RLock()

        self._state = SaveState.IDLE
        self._deadline: float | None = None
        self._latest = saved_document
        self._last_saved = saved_document
        self._dirty_during_save = False
        self._in_flight = 0
        self._seq = 0

        self.last_error: BaseException | None = None
        self.last_result: Any = None
        self.last_saved_at: float | None = None
        self.save_count = 0
        self.failure_count = 0

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def state(self) -> SaveState:
        return self._state

    @property
    def document(self):
        """Latest document handed to the controller."""
        return self._latest

    @property
    def saved_document(self):
        """Document of the most recently *completed* successful save."""
        return self._last_saved

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def has_unsaved_changes(self) -> bool:
        return self._latest != self._last_saved

    def due_in(self) -> float | None:
        """Seconds until the pending save fires, or None when nothing is armed."""
        with self._lock:
            if self._deadline is None:
                return None
            return max(0.0, self._deadline - self._clock())

    def status(self) -> dict:
        with self._lock:
            return {
                "state": self._state.value,
                "due_in": self.due_in(),
                "in_flight": self._in_flight,
                "has_unsaved_changes": self.has_unsaved_changes,
                "save_count": self.save_count,
                "failure_count": self.failure_count,
                "last_saved_at": self.last_saved_at,
                "last_error": str(self.last_error) if self.last_error else None,
            }

    # ── Inputs ────────────────────────────────────────────────────────

    def notify_change(self, document) -> SaveState:
        """Record a new document value and (re)arm or queue the save."""
        with self._lock:
            self._latest = document
            if self._state == SaveState.SAVING:
                self._dirty_during_save = True
                return self._state
            if document == self._last_saved:
                self._deadline = None
                self._transition(SaveState.IDLE)
                return self._state
            self._deadline = self._clock() + self.debounce_seconds
            self._transition(SaveState.PENDING)
            return self._state

    def poll(self) -> SaveState:
        """Fire the debounced save if its deadline has passed."""
        with self._lock:
            if self._state != SaveState.PENDING or self._deadline is None:
                return self._state
            if self._clock() < self._deadline:
                return self._state
            ticket = self._begin_save(explicit=False)
        self._dispatch(ticket)
        return self._state

    def save_now(self, document=None) -> Future | None:
        """Explicit save of ``document`` (or the latest one), skipping the debounce.

        Returns the save Future, or None when there is nothing to save.
        """
        with self._lock:
            if document is not None:
                self._latest = document
            if self._latest is None:
                return None
            ticket = self._begin_save(explicit=True)
        return self._dispatch(ticket)

    def acknowledge(self) -> SaveState:
        """Clear a failed state back to idle (indicator dismissed)."""
        with self._lock:
            if self._state == SaveState.FAILED:
                self._transition(SaveState.IDLE)
            return self._state

    # ── Internals ─────────────────────────────────────────────────────

    def _transition(self, new_state: SaveState) -> None:
        old = self._state
        if old == new_state:
            return
        if not validate_save_transition(old, new_state):
            raise RuntimeError(f"invalid autosave transition {old.value} -> {new_state.value}")
        self._state = new_state
        logger.debug("Autosave %s: %s -> %s", self._name, old.value, new_state.value)
        if self._on_state_change:
            self._on_state_change(old, new_state)

    def _begin_save(self, *, explicit: bool) -> SaveTicket:
        self._seq += 1
        self._deadline = None
        self._dirty_during_save = False
        self._in_flight += 1
        ticket = SaveTicket(
            seq=self._seq, document=self._latest, explicit=explicit, started_at=self._clock(),
        )
        self._transition(SaveState.SAVING)
        return ticket

    def _dispatch(self, ticket: SaveTicket) -> Future:
        future = self._executor.submit(self._save_fn, ticket.document)
        future.add_done_callback(lambda f: self._on_done(ticket, f))
        return future

    def _on_done(self, ticket: SaveTicket, future: Future) -> None:
        with self._lock:
            self._in_flight -= 1
            exc = future.exception()
            if exc is None:
                self._last_saved = ticket.document
                self.last_result = future.result()
                self.last_saved_at = self._clock()
                self.last_error = None
                self.save_count += 1
                logger.info(
                    "Autosave %s: save #%d completed (%s)",
                    self._name, ticket.seq, "explicit" if ticket.explicit else "debounced",
                    extra={"event_type": "journey_autosave_ok"},
                )
            else:
                self.last_error = exc
                self.failure_count += 1
                logger.warning(
                    "Autosave %s: save #%d failed: %s", self._name, ticket.seq, exc,
                    extra={"event_type": "journey_autosave_failed"},
                )

            if self._in_flight > 0:
                return
            if self._dirty_during_save:
                self._dirty_during_save = False
                self._deadline = self._clock() + self.debounce_seconds
                self._transition(SaveState.PENDING)
            elif exc is not None:
                self._transition(SaveState.FAILED)
            else:
                self._transition(SaveState.IDLE)
