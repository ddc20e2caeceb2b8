"""Source timezone resolution and UTC offset helpers."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Optional

from core.tz.abbreviations import TIMEZONE_ABBREVIATIONS

if TYPE_CHECKING:  # pragma: no cover
    from app.schemas.settings import Settings

LOCAL_ZONE = "local"

OFFSET_ZONE_PATTERN = re.compile(r"^([+-])(\d{2}):(\d{2})$")
RAW_OFFSET_PATTERN = re.compile(r"^([+-])(\d{1,2})(?::?(\d{2}))?$")


def is_offset(zone: str) -> bool:
    """Return True for canonical '+HH:MM' identifiers, False for named zones."""
    return bool(OFFSET_ZONE_PATTERN.match(zone or ""))


def offset_to_minutes(offset: str) -> int:
    """'+05:30' -> 330, '-08:00' -> -480.  Malformed input yields 0."""
    match = OFFSET_ZONE_PATTERN.match(offset or "")
    if not match:
        return 0
    sign = 1 if match.group(1) == "+" else -1
    return sign * (int(match.group(2)) * 60 + int(match.group(3)))


def minutes_to_offset(minutes: int) -> str:
    """330 -> '+05:30', -480 -> '-08:00', 0 -> '+00:00'."""
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(int(minutes)), 60)
    return f"{sign}{hours:02d}:{mins:02d}"


def normalize_offset(raw: str) -> Optional[str]:
    """Canonicalise '+530', '-8:00', '+3', 'Z' style offsets to '+HH:MM'."""
    token = raw.strip()
    if token.upper() == "Z":
        return "+00:00"
    match = RAW_OFFSET_PATTERN.match(token)
    if not match:
        return None
    hours = int(match.group(2))
    minutes = int(match.group(3) or 0)
    if hours > 23 or minutes > 59:
        return None
    return f"{match.group(1)}{hours:02d}:{minutes:02d}"


def resolve_source_zone(
    explicit_offset: Optional[str],
    abbreviation: Optional[str],
    settings: "Settings",
    origin: Optional[str] = None,
) -> str:
    """Pick the zone the selected text was written in.

    Precedence, highest first: an explicit offset in the text, a known
    abbreviation in the text, the per-site override for ``origin``, the global
    default source zone.  Falls back to ``"local"`` so the result is never empty.
    """
    if explicit_offset:
        return explicit_offset
    if abbreviation and abbreviation in TIMEZONE_ABBREVIATIONS:
        return TIMEZONE_ABBREVIATIONS[abbreviation]
    if origin:
        override = settings.per_site_source_zone.get(origin)
        if override:
            return override
    return settings.default_source_zone or LOCAL_ZONE


def zone_label(zone: str) -> str:
    """Human label for a zone: 'America/New_York' -> 'New York'."""
    if zone == LOCAL_ZONE:
        return "Local"
    if zone == "UTC":
        return "UTC"
    if is_offset(zone):
        return f"UTC{zone}"
    parts = zone.split("/")
    if len(parts) == 2:
        return parts[1].replace("_", " ")
    return zone
