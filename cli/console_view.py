"""Terminal stand-ins for the overlay, clipboard and selection source."""

from __future__ import annotations

import json
from typing import IO, Any, Dict, List, Optional

from app.schemas.settings import Settings
from core.convert.converter import ParseResult
from core.display.drag import Position, Size
from core.selection.snapshot import Anchor, RawSelection


class ConsoleView:
    """Renders overlay actions as text lines and keeps them for inspection."""

    def __init__(
        self,
        stream: Optional[IO[str]] = None,
        viewport: Size = Size(1280, 800),
        overlay: Size = Size(320, 180),
        clock=None,
    ):
        self.stream = stream
        self._viewport = viewport
        self._overlay = overlay
        self.clock = clock
        self.events: List[Dict[str, Any]] = []
        self.visible = False

    def _emit(self, action: str, **payload: Any) -> None:
        event: Dict[str, Any] = {"action": action}
        if self.clock is not None:
            event["at_ms"] = self.clock()
        event.update(payload)
        self.events.append(event)
        if self.stream is not None:
            self.stream.write(self._render_line(event) + "\n")
            self.stream.flush()

    @staticmethod
    def _render_line(event: Dict[str, Any]) -> str:
        prefix = f"[{event['at_ms']:>7.0f}ms] " if "at_ms" in event else ""
        action = event["action"]
        if action in ("show", "update"):
            rows = [f"{event['parsed']} ({event['source_zone']})"]
            rows.append(f"Local: {event['local']}")
            rows.append(f"{event['primary_label']}: {event['primary']}")
            rows.extend(f"{label}: {formatted}" for label, formatted in event["targets"])
            return prefix + f"{action}: " + " | ".join(rows)
        extra = {key: value for key, value in event.items() if key not in ("action", "at_ms")}
        return prefix + action + (f" {json.dumps(extra)}" if extra else "")

    def _describe(self, result: ParseResult) -> Dict[str, Any]:
        return {
            "parsed": result.parsed.original_text,
            "source_zone": result.parsed.source_zone,
            "local": result.local.formatted,
            "primary_label": result.primary.label,
            "primary": result.primary.formatted,
            "targets": [(target.label, target.formatted) for target in result.targets],
        }

    def show(self, result: ParseResult, settings: Settings, anchor: Optional[Anchor], position: Position) -> None:
        self.visible = True
        self._emit("show", **self._describe(result))

    def update(self, result: ParseResult, settings: Settings) -> None:
        self._emit("update", **self._describe(result))

    def hide(self) -> None:
        self.visible = False
        self._emit("hide")

    def move(self, position: Position) -> None:
        self._emit("move", **position.to_dict())

    def viewport(self) -> Size:
        return self._viewport

    def overlay_size(self) -> Size:
        return self._overlay

    def resize_viewport(self, width: float, height: float) -> None:
        self._viewport = Size(width, height)

    def destroy(self) -> None:
        self.visible = False


class ConsoleClipboard:
    def __init__(self, stream: Optional[IO[str]] = None):
        self.stream = stream
        self.history: List[str] = []

    def write_text(self, text: str) -> None:
        self.history.append(text)
        if self.stream is not None:
            self.stream.write(f"copied: {text}\n")


class ScriptedSelectionSource:
    """Selection source whose current selection is set by the driver."""

    def __init__(self) -> None:
        self.current: Optional[RawSelection] = None

    def select(self, text: str, origin: str = "", rect=None) -> None:
        self.current = RawSelection(text=text, origin=origin, rect=rect)

    def clear(self) -> None:
        self.current = None

    def read(self) -> Optional[RawSelection]:
        return self.current
