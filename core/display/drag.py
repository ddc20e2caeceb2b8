"""Drag-to-reposition geometry for the overlay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

VIEWPORT_PADDING = 8
DEFAULT_TOP = 16
DEFAULT_RIGHT = 16


@dataclass(frozen=True)
class Position:
    """Overlay offset from the viewport's top and right edges, in pixels."""

    top: float = DEFAULT_TOP
    right: float = DEFAULT_RIGHT

    def to_dict(self) -> Dict[str, float]:
        return {"top": self.top, "right": self.right}

    @classmethod
    def from_dict(cls, payload: Any) -> Optional["Position"]:
        if not isinstance(payload, dict):
            return None
        try:
            return cls(top=float(payload["top"]), right=float(payload["right"]))
        except (KeyError, TypeError, ValueError):
            return None


@dataclass(frozen=True)
class Size:
    width: float
    height: float


def clamp_position(position: Position, viewport: Size, overlay: Size, padding: float = VIEWPORT_PADDING) -> Position:
    """Keep the overlay fully inside the viewport, ``padding`` pixels from each edge."""
    max_top = max(padding, viewport.height - overlay.height - padding)
    max_right = max(padding, viewport.width - overlay.width - padding)
    return Position(
        top=min(max(position.top, padding), max_top),
        right=min(max(position.right, padding), max_right),
    )


class DragSession:
    """Tracks one pointer drag from handle press to release."""

    def __init__(self, padding: float = VIEWPORT_PADDING):
        self.padding = padding
        self.active = False
        self._start_x = 0.0
        self._start_y = 0.0
        self._origin = Position()
        self.position = Position()

    def begin(self, pointer_x: float, pointer_y: float, position: Position) -> None:
        self.active = True
        self._start_x = pointer_x
        self._start_y = pointer_y
        self._origin = position
        self.position = position

    def move(self, pointer_x: float, pointer_y: float, viewport: Size, overlay: Size) -> Position:
        if not self.active:
            return self.position
        # Anchored to the right edge: moving the pointer left grows ``right``.
        candidate = Position(
            top=self._origin.top + (pointer_y - self._start_y),
            right=self._origin.right + (self._start_x - pointer_x),
        )
        self.position = clamp_position(candidate, viewport, overlay, self.padding)
        return self.position

    def end(self) -> Optional[Position]:
        if not self.active:
            return None
        self.active = False
        return self.position
