from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo

from app.schemas.common import OverlayLayout
from app.schemas.settings import merge_with_defaults
from core.display.controller import DisplayController
from core.display.drag import Position, Size
from core.display.scheduler import VirtualScheduler
from core.display.states import DisplayConfig, DisplayState
from core.parser.time_parser import DateutilBackend, TimeParser
from core.selection.snapshot import Anchor, SelectionSnapshot
from storage.cache.redis_client import KeyValueStore
from storage.cache.result_cache import CacheStatus
from storage.settings.store import SettingsStore

REFERENCE = dt.datetime(2024, 1, 15, 9, 0)
ANCHOR = Anchor(60, 36)


class FakeView:
    def __init__(self):
        self.calls = []
        self._viewport = Size(1000, 800)
        self._overlay = Size(300, 200)

    def show(self, result, settings, anchor, position):
        self.calls.append(("show", result, position))

    def update(self, result, settings):
        self.calls.append(("update", result))

    def hide(self):
        self.calls.append(("hide",))

    def move(self, position):
        self.calls.append(("move", position))

    def viewport(self):
        return self._viewport

    def overlay_size(self):
        return self._overlay

    def destroy(self):
        self.calls.append(("destroy",))

    def actions(self):
        return [call[0] for call in self.calls]


class FakeClipboard:
    def __init__(self):
        self.items = []

    def write_text(self, text):
        self.items.append(text)


class CountingBackend:
    def __init__(self, hook=None):
        self.inner = DateutilBackend()
        self.calls = 0
        self.hook = hook

    def parse(self, text, reference):
        self.calls += 1
        if self.hook is not None:
            hook, self.hook = self.hook, None
            hook()
        return self.inner.parse(text, reference)


def make_controller(layout=OverlayLayout.tooltip, settings=None, backend=None, position_store=None, store=None):
    scheduler = VirtualScheduler()
    view = FakeView()
    store = store or SettingsStore()
    if settings:
        store.save(merge_with_defaults(settings))
    backend = backend or CountingBackend()
    controller = DisplayController(
        store,
        view,
        scheduler,
        parser=TimeParser(backend=backend, clock=lambda: REFERENCE),
        position_store=position_store,
        clipboard=FakeClipboard(),
        config=DisplayConfig(layout=layout),
        local_tz=ZoneInfo("UTC"),
    )
    assert controller.init()
    return controller, scheduler, view, backend


def snapshot(version, text="3pm PST", origin="https://example.com"):
    return SelectionSnapshot(version=version, text=text, anchor=ANCHOR, origin_hint=origin)


def record_states(controller):
    seen = []
    controller.subscribe_state(lambda old, new, reason: seen.append(new))
    return seen


def test_hover_pins_and_grace_hides_after_leave():
    controller, scheduler, view, _ = make_controller()
    controller.on_selection_change(snapshot(1))
    assert controller.state == DisplayState.PREVIEW
    scheduler.advance_to(1000)
    controller.on_hover_enter()
    assert controller.state == DisplayState.PINNED
    scheduler.advance_to(5000)
    controller.on_hover_leave()
    scheduler.advance_to(5200)
    assert controller.state == DisplayState.PINNED
    scheduler.advance_to(5400)
    assert controller.state == DisplayState.IDLE
    assert view.actions()[-1] == "hide"


def test_unhovered_preview_auto_dismisses():
    controller, scheduler, view, _ = make_controller()
    states = record_states(controller)
    controller.on_selection_change(snapshot(1))
    scheduler.advance_to(3999)
    assert controller.state == DisplayState.PREVIEW
    scheduler.advance_to(4000)
    assert controller.state == DisplayState.IDLE
    assert DisplayState.PINNED not in states


def test_cleared_selection_while_pinned_hides_immediately():
    controller, scheduler, view, _ = make_controller()
    controller.on_selection_change(snapshot(1))
    controller.on_hover_enter()
    controller.on_hover_leave()
    assert controller.timers_active
    controller.on_selection_change(None)
    assert controller.state == DisplayState.IDLE
    assert not controller.timers_active
    assert scheduler.pending_count == 0


def test_reentry_cancels_grace_timer():
    controller, scheduler, _, _ = make_controller()
    controller.on_selection_change(snapshot(1))
    controller.on_hover_enter()
    controller.on_hover_leave()
    scheduler.advance(100)
    controller.on_hover_enter()
    scheduler.advance(10_000)
    assert controller.state == DisplayState.PINNED


def test_superseded_parse_never_reaches_cache_or_view():
    holder = {}
    backend = CountingBackend()
    controller, scheduler, view, _ = make_controller(backend=backend)
    holder["controller"] = controller
    controller.on_selection_change(snapshot(1))
    backend.hook = lambda: holder["controller"].on_selection_change(None)
    controller.on_selection_change(snapshot(2, text="4pm EST"))
    assert controller.state == DisplayState.IDLE
    assert controller.cache.get(2).status == CacheStatus.MISS
    assert [call for call in view.calls if call[0] == "show"][-1][1].parsed.original_text == "3pm PST"
    assert controller._parse_token is None


def test_stale_parse_releases_its_token():
    holder = {}
    backend = CountingBackend()
    controller, _, view, _ = make_controller(backend=backend)
    holder["controller"] = controller
    controller.on_selection_change(snapshot(1))
    # A cached selection arrives mid-parse; it does not cancel the running token.
    backend.hook = lambda: holder["controller"].on_selection_change(snapshot(1))
    controller.on_selection_change(snapshot(2, text="4pm EST"))
    assert controller._parse_token is None
    assert controller.cache.get(2).status == CacheStatus.MISS
    assert controller.result.parsed.original_text == "3pm PST"


def test_same_version_is_parsed_once():
    controller, _, _, backend = make_controller()
    controller.on_selection_change(snapshot(1))
    controller.on_selection_change(snapshot(1))
    assert backend.calls == 1


def test_failed_parse_is_cached_as_failure():
    controller, _, view, backend = make_controller()
    controller.on_selection_change(snapshot(1, text="no time here"))
    controller.on_selection_change(snapshot(1, text="no time here"))
    assert backend.calls == 1
    assert "show" not in view.actions()


def test_source_zone_change_bypasses_cache():
    controller, _, view, backend = make_controller()
    controller.on_selection_change(snapshot(1, text="meeting at 10am"))
    first = controller.result
    controller.on_settings_change({"default_source_zone": "Asia/Tokyo"})
    assert backend.calls == 2
    assert controller.result.parsed.source_zone == "Asia/Tokyo"
    assert controller.result.parsed.iso_instant != first.parsed.iso_instant
    assert view.actions()[-1] == "update"


def test_render_only_change_reprojects_in_place():
    controller, _, view, backend = make_controller()
    controller.on_selection_change(snapshot(1))
    controller.on_settings_change({"primary_target_zone": "Asia/Tokyo", "format_preset": "iso"})
    assert backend.calls == 1
    assert controller.result.primary.zone == "Asia/Tokyo"
    assert controller.result.primary.formatted == "2024-01-16T08:00:00+09:00"
    assert controller.settings_store.load().primary_target_zone == "Asia/Tokyo"


def test_disabled_site_hides_overlay():
    controller, _, view, backend = make_controller(settings={"enabled_sites": {"https://blocked.example": False}})
    controller.on_selection_change(snapshot(1, origin="https://blocked.example"))
    assert backend.calls == 0
    assert controller.state == DisplayState.IDLE
    assert "show" not in view.actions()


def test_escape_scroll_and_hidden_page_dismiss_tooltip():
    for trigger in ("escape", "scroll", "hidden"):
        controller, _, _, _ = make_controller()
        controller.on_selection_change(snapshot(1))
        if trigger == "escape":
            controller.on_key_down("Escape")
        elif trigger == "scroll":
            controller.on_scroll()
        else:
            controller.on_visibility_change(True)
        assert controller.state == DisplayState.IDLE


def test_panel_never_auto_dismisses_and_ignores_scroll():
    controller, scheduler, view, _ = make_controller(layout=OverlayLayout.panel)
    controller.on_selection_change(snapshot(1))
    assert controller.state == DisplayState.SHOWN
    scheduler.advance(60_000)
    controller.on_scroll()
    controller.on_hover_enter()
    assert controller.state == DisplayState.SHOWN
    controller.on_key_down("Escape")
    assert controller.state == DisplayState.HIDDEN


def test_panel_resize_reclamps_position():
    controller, _, view, _ = make_controller(layout=OverlayLayout.panel)
    controller.on_selection_change(snapshot(1))
    view._viewport = Size(200, 150)
    controller.on_resize()
    assert view.calls[-1] == ("move", Position(top=8, right=8))
    assert controller.state == DisplayState.SHOWN


def test_drag_clamps_and_persists_position():
    positions = KeyValueStore(None)
    controller, _, view, _ = make_controller(position_store=positions)
    controller.on_selection_change(snapshot(1))
    controller.on_drag_start(500, 100)
    controller.on_drag_move(400, 150)
    assert view.calls[-1] == ("move", Position(top=66, right=116))
    controller.on_drag_move(-2000, 5000)
    controller.on_drag_end()
    assert positions.get("timelens:position:tooltip") == {"top": 592, "right": 692}

    again, _, second_view, _ = make_controller(position_store=positions)
    again.on_selection_change(snapshot(1))
    assert second_view.calls[0][2] == Position(top=592, right=692)


def test_drag_off_handle_is_ignored():
    controller, _, view, _ = make_controller()
    controller.on_selection_change(snapshot(1))
    controller.on_drag_start(10, 10, on_handle=False)
    controller.on_drag_move(0, 0)
    assert "move" not in view.actions()


def test_copy_actions():
    controller, _, _, _ = make_controller()
    assert not controller.copy_primary()
    controller.on_selection_change(snapshot(1))
    assert controller.copy_primary()
    assert controller.copy_parsed()
    primary, parsed = controller.clipboard.items
    assert primary == controller.result.primary.formatted
    assert parsed.replace("\u202f", " ") == "Jan 15, 2024, 3:00 PM"
    assert controller.copy_local()
    assert controller.clipboard.items[-1] == controller.result.local.formatted


def test_init_refuses_when_globally_disabled():
    store = SettingsStore()
    store.save(merge_with_defaults({"enabled": False}))
    controller = DisplayController(store, FakeView(), VirtualScheduler())
    assert not controller.init()


def test_disabling_elsewhere_tears_down():
    controller, _, view, _ = make_controller()
    controller.on_selection_change(snapshot(1))
    controller.settings_store.update({"enabled": False})
    assert not controller.initialized
    assert "destroy" in view.actions()
    assert controller.state == DisplayState.IDLE


def test_request_hide_and_show():
    controller, _, view, _ = make_controller()
    controller.on_selection_change(snapshot(1))
    result = controller.result
    controller.request_hide()
    assert controller.state == DisplayState.IDLE
    controller.request_show(result)
    assert controller.state == DisplayState.PREVIEW


def test_broken_settings_store_falls_back_to_defaults():
    class BrokenStore(SettingsStore):
        def load(self):
            raise OSError("disk gone")

    controller = DisplayController(BrokenStore(), FakeView(), VirtualScheduler())
    assert controller.init()
    assert controller.settings.primary_target_zone == "UTC"
