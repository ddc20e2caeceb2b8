"""Overlay orchestration: selection snapshots in, rendered conversions out.

The controller owns every piece of mutable display state (settings working
copy, result cache, display state, timers, parse token, drag session) and
changes it only from inside the callback handling the triggering event.

Tooltip layout::

    IDLE --result--> PREVIEW --hover--> PINNED --leave + grace--> IDLE
                        |                                   ^
                        +-------- auto-dismiss -------------+

Escape, scroll, resize, a hidden page or a cleared selection return to IDLE
from any state.  The panel layout only has HIDDEN and SHOWN and never
auto-dismisses.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, List, Mapping, Optional

from app.schemas.settings import DEFAULT_SETTINGS, Settings, merge_with_defaults
from app.utils.origins import is_enabled_for_origin
from app.utils.tracing import traced_span
from core.convert.converter import ParseResult, convert_time, reproject, source_datetime
from core.convert.formatter import format_time
from core.display.drag import DragSession, Position, clamp_position
from core.display.scheduler import Scheduler, TimerSlot
from core.display.states import DisplayConfig, DisplayState
from core.display.view import ClipboardSink, OverlayView, PositionStore
from core.parser.cancellation import CancellationToken
from core.parser.time_parser import TimeParser
from core.selection.snapshot import Anchor, SelectionSnapshot
from core.selection.tracker import SelectionTracker
from core.tz.resolver import resolve_source_zone
from storage.cache.keys import make_position_key
from storage.cache.result_cache import CacheStatus, ResultCache
from storage.settings.store import SettingsStore, SettingsStoreError

logger = logging.getLogger(__name__)

# Settings that only change how an existing result is projected and formatted.
RENDER_ONLY_FIELDS = frozenset(
    {"primary_target_zone", "target_zones", "format_preset", "custom_format", "locale"}
)

StateListener = Callable[[DisplayState, DisplayState, str], None]


class DisplayController:
    def __init__(
        self,
        settings_store: SettingsStore,
        view: OverlayView,
        scheduler: Scheduler,
        *,
        parser: Optional[TimeParser] = None,
        tracker: Optional[SelectionTracker] = None,
        position_store: Optional[PositionStore] = None,
        clipboard: Optional[ClipboardSink] = None,
        config: Optional[DisplayConfig] = None,
        local_tz: Optional[dt.tzinfo] = None,
    ):
        self.settings_store = settings_store
        self.view = view
        self.scheduler = scheduler
        self.parser = parser or TimeParser()
        self.tracker = tracker
        self.position_store = position_store
        self.clipboard = clipboard
        self.config = config or DisplayConfig()
        self.local_tz = local_tz

        self.settings: Settings = DEFAULT_SETTINGS
        self.cache = ResultCache()
        self.state = self.config.idle_state
        self.initialized = False

        self._auto_dismiss = TimerSlot(scheduler, "auto-dismiss")
        self._grace = TimerSlot(scheduler, "leave-grace")
        self._drag = DragSession(self.config.viewport_padding)
        self._parse_token: Optional[CancellationToken] = None
        self._snapshot: Optional[SelectionSnapshot] = None
        self._result: Optional[ParseResult] = None
        self._position: Optional[Position] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._state_listeners: List[StateListener] = []

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def init(self) -> bool:
        """Load settings and start listening; False when globally disabled."""
        if self.initialized:
            return True
        try:
            self.settings = self.settings_store.load()
        except Exception:
            logger.warning("Settings unavailable; using defaults", exc_info=True)
            self.settings = DEFAULT_SETTINGS
        if not self.settings.enabled:
            logger.info("Time Lens disabled in settings; not starting")
            return False
        self.initialized = True
        self._position = self._load_position()
        self._unsubscribers.append(self.settings_store.subscribe(self.on_settings_updated))
        if self.tracker is not None:
            self._unsubscribers.append(self.tracker.subscribe(self.on_selection_change))
            self.tracker.start()
        return True

    def teardown(self) -> None:
        if not self.initialized:
            return
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self.tracker is not None:
            self.tracker.teardown()
        self._hide("teardown")
        self._call_view("destroy")
        self._snapshot = None
        self._result = None
        self.cache.invalidate()
        self.initialized = False

    def subscribe_state(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return unsubscribe

    @property
    def result(self) -> Optional[ParseResult]:
        return self._result

    @property
    def position(self) -> Position:
        return self._position or Position()

    @property
    def timers_active(self) -> bool:
        return self._auto_dismiss.active or self._grace.active

    # ------------------------------------------------------------------
    # exposed surface
    # ------------------------------------------------------------------
    def on_selection_change(self, snapshot: Optional[SelectionSnapshot]) -> None:
        if not self.initialized:
            return
        self._snapshot = snapshot
        if snapshot is None:
            self._hide("selection-cleared")
            return
        if not is_enabled_for_origin(self.settings, snapshot.origin_hint):
            self._hide("site-disabled")
            return
        result = self._evaluate(snapshot)
        if self._snapshot is not snapshot:
            return
        if result is None:
            self._hide("no-match")
            return
        self._show(result, snapshot.anchor)

    def on_settings_change(self, changes: Mapping[str, Any]) -> None:
        """Apply a change made from the overlay's own controls and persist it."""
        updated = merge_with_defaults(changes, base=self.settings)
        if updated == self.settings:
            return
        before = self.settings.model_dump()
        after = updated.model_dump()
        changed = {name for name in after if after[name] != before.get(name)}
        self.settings = updated
        try:
            self.settings_store.save(updated)
        except SettingsStoreError:
            logger.error("Could not persist overlay settings change %s", sorted(changed))
        self._refresh(render_only=changed <= RENDER_ONLY_FIELDS)

    def on_settings_updated(self, settings: Settings) -> None:
        """Store notification: settings changed elsewhere."""
        if settings == self.settings:
            return
        self.settings = settings
        if not settings.enabled:
            self.teardown()
            return
        self._refresh(render_only=False)

    def request_hide(self) -> None:
        self._hide("requested")

    def request_show(self, result: ParseResult, anchor: Optional[Anchor] = None) -> None:
        if self.initialized:
            self._show(result, anchor)

    # ------------------------------------------------------------------
    # UI events
    # ------------------------------------------------------------------
    def on_hover_enter(self) -> None:
        if not self.config.pin_on_hover:
            return
        if self.state == DisplayState.PREVIEW:
            self._auto_dismiss.cancel()
            self._set_state(DisplayState.PINNED, "hover")
        elif self.state == DisplayState.PINNED:
            self._grace.cancel()

    def on_hover_leave(self) -> None:
        if self.config.pin_on_hover and self.state == DisplayState.PINNED:
            self._grace.start(self.config.leave_grace_ms, self._on_grace_elapsed)

    def on_key_down(self, key: str) -> None:
        if key == "Escape":
            self._hide("escape")

    def on_scroll(self) -> None:
        if self.config.pin_on_hover:
            self._hide("scroll")

    def on_resize(self) -> None:
        if self.config.pin_on_hover:
            self._hide("resize")
            return
        if self.state.visible:
            clamped = self._clamped(self.position)
            if clamped is not None and clamped != self.position:
                self._position = clamped
                self._call_view("move", clamped)

    def on_visibility_change(self, hidden: bool) -> None:
        if hidden:
            self._hide("page-hidden")

    def on_drag_start(self, pointer_x: float, pointer_y: float, on_handle: bool = True) -> None:
        if not on_handle or not self.state.visible:
            return
        self._drag.begin(pointer_x, pointer_y, self.position)

    def on_drag_move(self, pointer_x: float, pointer_y: float) -> None:
        if not self._drag.active:
            return
        try:
            viewport = self.view.viewport()
            overlay = self.view.overlay_size()
        except Exception:
            logger.exception("Overlay geometry unavailable; ignoring drag move")
            return
        self._position = self._drag.move(pointer_x, pointer_y, viewport, overlay)
        self._call_view("move", self._position)

    def on_drag_end(self) -> None:
        position = self._drag.end()
        if position is None:
            return
        self._position = position
        self._save_position(position)

    def copy_local(self) -> bool:
        return self._copy(self._result.local.formatted if self._result else None)

    def copy_primary(self) -> bool:
        return self._copy(self._result.primary.formatted if self._result else None)

    def copy_parsed(self) -> bool:
        if self._result is None:
            return False
        value = source_datetime(self._result, self.local_tz)
        if value is None:
            return False
        settings = self.settings
        return self._copy(format_time(value, settings.format_preset, settings.custom_format, settings.locale))

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _evaluate(self, snapshot: SelectionSnapshot) -> Optional[ParseResult]:
        lookup = self.cache.get(snapshot.version)
        if lookup.status == CacheStatus.HIT:
            return lookup.result
        if lookup.status == CacheStatus.FAILURE:
            return None

        self._cancel_parse("superseded")
        token = CancellationToken()
        self._parse_token = token
        with traced_span("timelens.parse", version=snapshot.version):
            parsed = self.parser.parse(snapshot.text, token)
        if self._parse_token is token:
            self._parse_token = None
        if token.cancelled or self._snapshot is not snapshot:
            logger.debug("Discarding stale parse for version %s", snapshot.version)
            return None

        result = None
        if parsed is not None:
            source_zone = resolve_source_zone(
                parsed.explicit_offset,
                parsed.abbreviation,
                self.settings,
                snapshot.origin_hint,
            )
            result = convert_time(parsed, source_zone, self.settings, self.local_tz)
        if result is None:
            logger.debug("No usable time in selection version %s", snapshot.version)
        self.cache.record(snapshot.version, result)
        return result

    def _refresh(self, render_only: bool) -> None:
        snapshot = self._snapshot
        if snapshot is None or not self.state.visible:
            self.cache.invalidate()
            return
        if not is_enabled_for_origin(self.settings, snapshot.origin_hint):
            self._hide("site-disabled")
            return
        if render_only and self._result is not None:
            result = reproject(self._result, self.settings, self.local_tz)
            if result is not None:
                self.cache.record_success(snapshot.version, result)
                self._result = result
                self._call_view("update", result, self.settings)
                return
        self.cache.invalidate()
        result = self._evaluate(snapshot)
        if self._snapshot is not snapshot:
            return
        if result is None:
            self._hide("settings-change")
            return
        self._result = result
        self._call_view("update", result, self.settings)

    def _show(self, result: ParseResult, anchor: Optional[Anchor]) -> None:
        self._result = result
        if self._position is None:
            self._position = self._load_position()
        self._call_view("show", result, self.settings, anchor, self._position)
        if self.config.pin_on_hover:
            self._grace.cancel()
            self._set_state(DisplayState.PREVIEW, "result")
            self._auto_dismiss.start(self.config.auto_dismiss_ms, self._on_auto_dismiss)
        else:
            self._set_state(DisplayState.SHOWN, "result")

    def _hide(self, reason: str) -> None:
        self._auto_dismiss.cancel()
        self._grace.cancel()
        self._cancel_parse(reason)
        if self._drag.active:
            self.on_drag_end()
        if self.state.visible:
            self._call_view("hide")
        self._set_state(self.config.idle_state, reason)

    def _on_auto_dismiss(self) -> None:
        if self.state == DisplayState.PREVIEW:
            self._hide("auto-dismiss")

    def _on_grace_elapsed(self) -> None:
        if self.state == DisplayState.PINNED:
            self._hide("pointer-left")

    def _set_state(self, new_state: DisplayState, reason: str) -> None:
        if new_state == self.state:
            return
        old_state, self.state = self.state, new_state
        logger.debug("Display %s -> %s (%s)", old_state.value, new_state.value, reason)
        for listener in list(self._state_listeners):
            try:
                listener(old_state, new_state, reason)
            except Exception:
                logger.exception("Display state listener failed")

    def _cancel_parse(self, reason: str) -> None:
        if self._parse_token is not None:
            self._parse_token.cancel(reason)
            self._parse_token = None

    def _call_view(self, method: str, *args: Any) -> None:
        try:
            getattr(self.view, method)(*args)
        except Exception:
            logger.exception("Overlay view %s failed", method)

    def _clamped(self, position: Position) -> Optional[Position]:
        try:
            return clamp_position(position, self.view.viewport(), self.view.overlay_size(), self.config.viewport_padding)
        except Exception:
            logger.exception("Overlay geometry unavailable")
            return None

    def _position_key(self) -> str:
        return make_position_key(self.config.layout.value)

    def _load_position(self) -> Position:
        if self.position_store is None:
            return Position()
        try:
            stored = Position.from_dict(self.position_store.get(self._position_key()))
        except Exception:
            logger.warning("Could not read overlay position", exc_info=True)
            stored = None
        return stored or Position()

    def _save_position(self, position: Position) -> None:
        if self.position_store is None:
            return
        try:
            self.position_store.set(self._position_key(), position.to_dict())
        except Exception:
            logger.warning("Could not persist overlay position", exc_info=True)

    def _copy(self, text: Optional[str]) -> bool:
        if not text or self.clipboard is None:
            return False
        try:
            self.clipboard.write_text(text)
        except Exception:
            logger.exception("Clipboard write failed")
            return False
        return True
