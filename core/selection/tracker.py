"""Turn noisy selection-change notifications into versioned snapshots."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional

from core.display.scheduler import Scheduler, TimerSlot
from core.selection.snapshot import Anchor, SelectionSnapshot, SelectionSource

logger = logging.getLogger(__name__)

MAX_SELECTION_LENGTH = 200
SELECTION_DEBOUNCE_MS = 50

SnapshotCallback = Callable[[Optional[SelectionSnapshot]], None]


class SelectionMode(str, Enum):
    DEBOUNCE = "debounce"
    POINTER_HOLD = "pointer_hold"


class SelectionTracker:
    """Debounces selection changes and notifies observers with a snapshot or None.

    ``DEBOUNCE`` waits for a quiet period after the last notification.
    ``POINTER_HOLD`` processes immediately unless a pointer button is held, in
    which case a single flush happens on release.  In both modes a held pointer
    defers processing until it is released.
    """

    def __init__(
        self,
        source: SelectionSource,
        scheduler: Scheduler,
        *,
        mode: SelectionMode = SelectionMode.DEBOUNCE,
        debounce_ms: float = SELECTION_DEBOUNCE_MS,
        max_length: int = MAX_SELECTION_LENGTH,
        require_geometry: bool = False,
    ):
        self.source = source
        self.mode = mode
        self.debounce_ms = debounce_ms
        self.max_length = max_length
        self.require_geometry = require_geometry
        self._debounce = TimerSlot(scheduler, "selection-debounce")
        self._callbacks: List[SnapshotCallback] = []
        self._version = 0
        self._started = False
        self._pointer_down = False
        self._pending = False

    @property
    def version(self) -> int:
        return self._version

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def start(self) -> None:
        self._started = True

    def teardown(self) -> None:
        self._debounce.cancel()
        self._callbacks.clear()
        self._started = False
        self._pointer_down = False
        self._pending = False

    # platform notifications
    def notify_change(self) -> None:
        if not self._started:
            return
        if self._pointer_down:
            self._pending = True
            return
        if self.mode == SelectionMode.DEBOUNCE:
            self._debounce.start(self.debounce_ms, self.flush)
        else:
            self.flush()

    def pointer_down(self) -> None:
        self._pointer_down = True
        self._pending = False
        self._debounce.cancel()

    def pointer_up(self) -> None:
        self._pointer_down = False
        if self._started and self._pending:
            self.flush()

    def flush(self) -> None:
        """Read the selection now and notify observers."""
        self._debounce.cancel()
        self._pending = False
        snapshot = self._create_snapshot()
        for callback in list(self._callbacks):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Selection observer failed")

    def _create_snapshot(self) -> Optional[SelectionSnapshot]:
        raw = self.source.read()
        if raw is None or raw.collapsed:
            return None
        text = raw.text.strip()
        if not text:
            return None
        if self.require_geometry and (raw.rect is None or raw.rect.empty):
            return None
        self._version += 1
        return SelectionSnapshot(
            version=self._version,
            text=text[: self.max_length],
            anchor=Anchor.below(raw.rect) if raw.rect is not None and not raw.rect.empty else None,
            origin_hint=raw.origin,
        )
