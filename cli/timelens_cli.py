"""Command-line front end: one-shot conversion, settings, scripted replays and a live watch loop."""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from app.deps import get_app_state, get_settings_store
from app.schemas.convert import ConvertRequest
from app.schemas.settings import merge_with_defaults
from app.services.convert_service import convert_all, convert_text
from app.utils.origins import get_origin, set_enabled_for_origin, set_source_zone_for_origin
from app.utils.zones import get_zone
from cli.console_view import ConsoleClipboard, ConsoleView, ScriptedSelectionSource
from core.display.controller import DisplayController
from core.display.drag import Size
from core.display.scheduler import AsyncioScheduler, Scheduler, VirtualScheduler
from core.display.states import DisplayConfig
from core.parser.time_parser import TimeParser
from core.selection.snapshot import Rect
from core.selection.tracker import MAX_SELECTION_LENGTH, SELECTION_DEBOUNCE_MS, SelectionMode, SelectionTracker
from storage.cache.redis_client import KeyValueStore
from storage.settings.store import SettingsStore, SettingsStoreError

logger = logging.getLogger(__name__)


def _configure_logging(level: Optional[str]) -> None:
    level_name = (level or os.getenv("TIMELENS_LOG_LEVEL") or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_value(raw: str) -> Any:
    """Interpret a CLI value as YAML so lists and booleans work ('[UTC, Asia/Tokyo]')."""
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _build_tracker(source: ScriptedSelectionSource, scheduler: Scheduler, cfg: Dict) -> SelectionTracker:
    return SelectionTracker(
        source,
        scheduler,
        mode=SelectionMode(cfg.get("mode", SelectionMode.DEBOUNCE.value)),
        debounce_ms=float(cfg.get("debounce_ms", SELECTION_DEBOUNCE_MS)),
        max_length=int(cfg.get("max_length", MAX_SELECTION_LENGTH)),
        require_geometry=bool(cfg.get("require_geometry", False)),
    )


def _viewport(cfg: Dict) -> tuple[Size, Size]:
    return (
        Size(float(cfg.get("width", 1280)), float(cfg.get("height", 800))),
        Size(float(cfg.get("overlay_width", 320)), float(cfg.get("overlay_height", 180))),
    )


def cmd_convert(args: argparse.Namespace) -> int:
    """Convert the first (or every) time expression found in the text."""
    payload = ConvertRequest(text=" ".join(args.text), origin=args.origin)
    if args.all:
        print(json.dumps(convert_all(payload).model_dump(), indent=2))
        return 0
    response = convert_text(payload)
    print(json.dumps(response.model_dump(), indent=2))
    return 0 if response.found else 1


def cmd_settings_show(_args: argparse.Namespace) -> int:
    print(json.dumps(get_settings_store().load().to_record(), indent=2))
    return 0


def cmd_settings_set(args: argparse.Namespace) -> int:
    changes: Dict[str, Any] = {}
    for item in args.assignments:
        key, sep, raw = item.partition("=")
        if not sep:
            print(f"expected key=value, got {item!r}", file=sys.stderr)
            return 2
        changes[key.strip()] = _parse_value(raw)
    try:
        settings = get_settings_store().update(changes)
    except SettingsStoreError as exc:
        print(f"could not save settings: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(settings.to_record(), indent=2))
    return 0


def cmd_sites(args: argparse.Namespace) -> int:
    store = get_settings_store()
    origin = get_origin(args.origin)
    settings = store.load()
    if args.action == "enable":
        settings = set_enabled_for_origin(settings, origin, True)
    elif args.action == "disable":
        settings = set_enabled_for_origin(settings, origin, False)
    else:
        if args.zone and get_zone(args.zone) is None:
            print(f"unknown timezone {args.zone!r}", file=sys.stderr)
            return 2
        settings = set_source_zone_for_origin(settings, origin, args.zone or None)
    try:
        store.save(settings)
    except SettingsStoreError as exc:
        print(f"could not save settings: {exc}", file=sys.stderr)
        return 1
    print(json.dumps({"origin": origin, "settings": settings.to_record()}, indent=2))
    return 0


class ReplayRunner:
    """Drives a controller through a timeline of events on a virtual clock.

    Script format (YAML)::

        now: 2024-05-01T09:00:00     # parser reference time
        local_zone: UTC              # zone standing in for the host zone
        settings: {primary_target_zone: Asia/Tokyo}
        display: {layout: tooltip}
        events:
          - {at: 0, select: "3pm PST", origin: "https://example.com"}
          - {at: 1000, hover: enter}
          - {at: 5000, hover: leave}
    """

    def __init__(self, script: Dict, base_config: Optional[Dict] = None, stream=None):
        base_config = base_config or {}
        self.script = script
        self.scheduler = VirtualScheduler()
        viewport, overlay = _viewport({**base_config.get("viewport", {}), **script.get("viewport", {})})
        self.view = ConsoleView(stream=stream, viewport=viewport, overlay=overlay, clock=lambda: self.scheduler.now_ms)
        self.clipboard = ConsoleClipboard(stream=stream)
        self.source = ScriptedSelectionSource()
        self.tracker = _build_tracker(
            self.source, self.scheduler, {**base_config.get("selection", {}), **script.get("selection", {})}
        )
        self.settings_store = SettingsStore()
        if script.get("settings"):
            self.settings_store.save(merge_with_defaults(script["settings"]))
        reference = script.get("now")
        if isinstance(reference, str):
            reference = dt.datetime.fromisoformat(reference)
        parser = TimeParser(clock=(lambda: reference) if reference else dt.datetime.now)
        local_name = script.get("local_zone")
        self.controller = DisplayController(
            self.settings_store,
            self.view,
            self.scheduler,
            parser=parser,
            tracker=self.tracker,
            position_store=KeyValueStore(None),
            clipboard=self.clipboard,
            config=DisplayConfig.from_dict({**base_config.get("display", {}), **script.get("display", {})}),
            local_tz=get_zone(local_name) if local_name else None,
        )
        self.transitions: List[Dict[str, Any]] = []
        self.controller.subscribe_state(self._record_transition)

    def _record_transition(self, old, new, reason: str) -> None:
        self.transitions.append(
            {"at_ms": self.scheduler.now_ms, "from": old.value, "to": new.value, "reason": reason}
        )

    def run(self) -> Dict[str, Any]:
        if not self.controller.init():
            return {"started": False, "transitions": [], "view": []}
        events = sorted(self.script.get("events", []), key=lambda event: float(event.get("at", 0)))
        for event in events:
            self.scheduler.advance_to(float(event.get("at", 0)))
            self.apply(event)
        self.scheduler.run_until_idle()
        return {
            "started": True,
            "final_state": self.controller.state.value,
            "transitions": self.transitions,
            "view": self.view.events,
            "copied": self.clipboard.history,
        }

    def apply(self, event: Dict[str, Any]) -> None:
        controller = self.controller
        if "select" in event:
            rect = event.get("rect")
            self.source.select(
                str(event["select"]),
                origin=get_origin(event.get("origin", "")) if event.get("origin") else "",
                rect=Rect(*rect) if rect else Rect(100, 100, 80, 16),
            )
            self.tracker.notify_change()
        elif event.get("clear"):
            self.source.clear()
            self.tracker.notify_change()
        elif "hover" in event:
            if event["hover"] == "enter":
                controller.on_hover_enter()
            else:
                controller.on_hover_leave()
        elif "key" in event:
            controller.on_key_down(str(event["key"]))
        elif event.get("scroll"):
            controller.on_scroll()
        elif "resize" in event:
            width, height = event["resize"]
            self.view.resize_viewport(width, height)
            controller.on_resize()
        elif "hidden" in event:
            controller.on_visibility_change(bool(event["hidden"]))
        elif "drag" in event:
            points = event["drag"]
            controller.on_drag_start(*points[0])
            for point in points[1:]:
                controller.on_drag_move(*point)
            controller.on_drag_end()
        elif "copy" in event:
            getattr(controller, f"copy_{event['copy']}")()
        elif "settings" in event:
            controller.on_settings_change(event["settings"])
        else:
            logger.warning("Ignoring unknown replay event %s", event)


def cmd_replay(args: argparse.Namespace) -> int:
    """Run a scripted event timeline on a virtual clock and print what happened."""
    with Path(args.script).open("r", encoding="utf-8") as handle:
        script = yaml.safe_load(handle) or {}
    runner = ReplayRunner(script, base_config=get_app_state().config, stream=sys.stdout if args.verbose else None)
    outcome = runner.run()
    print(json.dumps(outcome, indent=2, default=str))
    return 0


async def _watch(config: Dict, stream) -> None:
    loop = asyncio.get_running_loop()
    scheduler = AsyncioScheduler(loop)
    source = ScriptedSelectionSource()
    tracker = _build_tracker(source, scheduler, config.get("selection", {}))
    viewport, overlay = _viewport(config.get("viewport", {}))
    state = get_app_state()
    controller = DisplayController(
        state.settings_store,
        ConsoleView(stream=stream, viewport=viewport, overlay=overlay),
        scheduler,
        parser=state.parser,
        tracker=tracker,
        position_store=state.kv_store,
        clipboard=ConsoleClipboard(stream=stream),
        config=state.display_config,
    )
    if not controller.init():
        stream.write("Time Lens is disabled in settings.\n")
        return
    commands = {
        ":enter": controller.on_hover_enter,
        ":leave": controller.on_hover_leave,
        ":esc": lambda: controller.on_key_down("Escape"),
        ":copy": controller.copy_primary,
    }
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            text = line.rstrip("\n")
            if text in commands:
                commands[text]()
            elif text.strip():
                source.select(text, rect=Rect(100, 100, 80, 16))
                tracker.notify_change()
            else:
                source.clear()
                tracker.notify_change()
    finally:
        controller.teardown()


def cmd_watch(_args: argparse.Namespace) -> int:
    """Treat each stdin line as a new selection; a blank line clears it."""
    asyncio.run(_watch(get_app_state().config, sys.stdout))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from app.uvicorn_runner import main as serve  # noqa: WPS433

    serve(host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(prog="timelens")
    parser.add_argument("--log-level", dest="log_level", default=None)
    sub = parser.add_subparsers(dest="command")

    convert_p = sub.add_parser("convert")
    convert_p.add_argument("text", nargs="+")
    convert_p.add_argument("--origin")
    convert_p.add_argument("--all", action="store_true", help="Convert every time found")
    convert_p.set_defaults(func=cmd_convert)

    settings_p = sub.add_parser("settings")
    settings_sub = settings_p.add_subparsers(dest="settings_command")
    show_p = settings_sub.add_parser("show")
    show_p.set_defaults(func=cmd_settings_show)
    set_p = settings_sub.add_parser("set")
    set_p.add_argument("assignments", nargs="+", help="key=value pairs, values parsed as YAML")
    set_p.set_defaults(func=cmd_settings_set)

    sites_p = sub.add_parser("sites")
    sites_p.add_argument("action", choices=["enable", "disable", "zone"])
    sites_p.add_argument("origin")
    sites_p.add_argument("zone", nargs="?", default="", help="Source zone for 'zone'; omit to clear")
    sites_p.set_defaults(func=cmd_sites)

    replay_p = sub.add_parser("replay")
    replay_p.add_argument("script")
    replay_p.add_argument("--verbose", action="store_true")
    replay_p.set_defaults(func=cmd_replay)

    watch_p = sub.add_parser("watch")
    watch_p.set_defaults(func=cmd_watch)

    serve_p = sub.add_parser("serve")
    serve_p.add_argument("--host")
    serve_p.add_argument("--port", type=int)
    serve_p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point invoked via `python -m cli.timelens_cli ...`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
