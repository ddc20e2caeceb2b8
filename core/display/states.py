from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from app.schemas.common import OverlayLayout
from core.display.drag import VIEWPORT_PADDING

AUTO_DISMISS_MS = 4000
LEAVE_GRACE_MS = 300


class DisplayState(str, Enum):
    IDLE = "IDLE"
    PREVIEW = "PREVIEW"
    PINNED = "PINNED"
    HIDDEN = "HIDDEN"
    SHOWN = "SHOWN"

    @property
    def visible(self) -> bool:
        return self in (DisplayState.PREVIEW, DisplayState.PINNED, DisplayState.SHOWN)


@dataclass(frozen=True)
class DisplayConfig:
    """Timings and layout for one overlay variant."""

    layout: OverlayLayout = OverlayLayout.tooltip
    auto_dismiss_ms: float = AUTO_DISMISS_MS
    leave_grace_ms: float = LEAVE_GRACE_MS
    viewport_padding: float = VIEWPORT_PADDING

    @property
    def pin_on_hover(self) -> bool:
        return self.layout == OverlayLayout.tooltip

    @property
    def idle_state(self) -> DisplayState:
        return DisplayState.IDLE if self.pin_on_hover else DisplayState.HIDDEN

    @classmethod
    def from_dict(cls, cfg: Dict) -> "DisplayConfig":
        return cls(
            layout=OverlayLayout(cfg.get("layout", OverlayLayout.tooltip.value)),
            auto_dismiss_ms=float(cfg.get("auto_dismiss_ms", AUTO_DISMISS_MS)),
            leave_grace_ms=float(cfg.get("leave_grace_ms", LEAVE_GRACE_MS)),
            viewport_padding=float(cfg.get("viewport_padding", VIEWPORT_PADDING)),
        )
