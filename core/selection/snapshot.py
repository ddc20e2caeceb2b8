"""Selection records: what the platform reports and what the pipeline consumes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    width: float
    height: float

    @property
    def empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True)
class Anchor:
    """Viewport point the tooltip is placed against (below the selection centre)."""

    x: float
    y: float

    @classmethod
    def below(cls, rect: Rect) -> "Anchor":
        return cls(x=rect.left + rect.width / 2, y=rect.top + rect.height)


@dataclass(frozen=True)
class RawSelection:
    text: str
    origin: str = ""
    rect: Optional[Rect] = None
    collapsed: bool = False


@dataclass(frozen=True)
class SelectionSnapshot:
    version: int
    text: str
    anchor: Optional[Anchor]
    origin_hint: str


class SelectionSource(Protocol):
    def read(self) -> Optional[RawSelection]:
        """Return the active selection, or None when there is no range."""
        ...
