from __future__ import annotations

from enum import Enum


class FormatPreset(str, Enum):
    system = "system"
    iso = "iso"
    short = "short"
    long = "long"
    custom = "custom"


class OverlayLayout(str, Enum):
    tooltip = "tooltip"
    panel = "panel"
