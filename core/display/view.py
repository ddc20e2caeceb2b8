"""Collaborator protocols the display controller renders through."""

from __future__ import annotations

from typing import Optional, Protocol

from app.schemas.settings import Settings
from core.convert.converter import ParseResult
from core.display.drag import Position, Size
from core.selection.snapshot import Anchor


class OverlayView(Protocol):
    """Style-isolated overlay surface; raises UI events back to the controller."""

    def show(self, result: ParseResult, settings: Settings, anchor: Optional[Anchor], position: Position) -> None:
        ...

    def update(self, result: ParseResult, settings: Settings) -> None:
        ...

    def hide(self) -> None:
        ...

    def move(self, position: Position) -> None:
        ...

    def viewport(self) -> Size:
        ...

    def overlay_size(self) -> Size:
        ...

    def destroy(self) -> None:
        ...


class ClipboardSink(Protocol):
    def write_text(self, text: str) -> None:
        ...


class PositionStore(Protocol):
    def get(self, key: str) -> object:
        ...

    def set(self, key: str, value: object) -> None:
        ...
