"""Project a parsed selection into local, primary and additional target zones."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

from app.schemas.settings import Settings
from app.utils.zones import get_zone, local_zone
from core.convert.formatter import format_time
from core.parser.time_parser import ParsedTime
from core.tz.resolver import LOCAL_ZONE, is_offset, zone_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedSummary:
    """What was understood from the selection, in its source zone."""

    original_text: str
    iso_instant: str
    source_zone: str
    source_zone_explicit: bool
    abbreviation: Optional[str] = None


@dataclass(frozen=True)
class ConvertedTime:
    zone: str
    label: str
    formatted: str
    iso_instant: str


@dataclass(frozen=True)
class ParseResult:
    parsed: ParsedSummary
    local: ConvertedTime
    primary: ConvertedTime
    targets: Tuple[ConvertedTime, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["targets"] = [asdict(target) for target in self.targets]
        return payload


def build_source_instant(
    parsed: ParsedTime,
    source_zone: str,
    local_tz: Optional[dt.tzinfo] = None,
) -> Optional[dt.datetime]:
    """Return the absolute instant the selection refers to, or None if the zone is bad."""
    if parsed.explicit_offset and source_zone == parsed.explicit_offset:
        # The text carried its own offset: label the parsed instant with it, no shift.
        tzinfo = get_zone(source_zone)
    elif source_zone == LOCAL_ZONE:
        tzinfo = local_tz or local_zone()
    else:
        # Wall-clock components are reinterpreted in the source zone; this moves
        # the absolute instant.
        tzinfo = get_zone(source_zone, local_tz)
    if tzinfo is None:
        return None
    try:
        return parsed.wall_time.replace(tzinfo=tzinfo)
    except (ValueError, OverflowError):
        return None


def convert_to_zone(
    instant: dt.datetime,
    zone: str,
    local_tz: Optional[dt.tzinfo] = None,
) -> Optional[dt.datetime]:
    tzinfo = get_zone(zone, local_tz)
    if tzinfo is None:
        return None
    try:
        return instant.astimezone(tzinfo)
    except (ValueError, OverflowError):
        return None


def _converted(instant: dt.datetime, zone: str, settings: Settings) -> ConvertedTime:
    return ConvertedTime(
        zone=zone,
        label=zone_label(zone),
        formatted=format_time(instant, settings.format_preset, settings.custom_format, settings.locale),
        iso_instant=instant.isoformat(),
    )


def _project(
    summary: ParsedSummary,
    instant: dt.datetime,
    settings: Settings,
    local_tz: Optional[dt.tzinfo],
) -> Optional[ParseResult]:
    local_dt = convert_to_zone(instant, LOCAL_ZONE, local_tz)
    primary_dt = convert_to_zone(instant, settings.primary_target_zone, local_tz)
    if local_dt is None or primary_dt is None:
        logger.debug("Primary zone %r could not be applied", settings.primary_target_zone)
        return None
    targets = []
    for zone in settings.target_zones:
        target_dt = convert_to_zone(instant, zone, local_tz)
        if target_dt is None:
            logger.warning("Skipping unknown target zone %r", zone)
            continue
        targets.append(_converted(target_dt, zone, settings))
    return ParseResult(
        parsed=summary,
        local=_converted(local_dt, LOCAL_ZONE, settings),
        primary=_converted(primary_dt, settings.primary_target_zone, settings),
        targets=tuple(targets),
    )


def convert_time(
    parsed: ParsedTime,
    source_zone: str,
    settings: Settings,
    local_tz: Optional[dt.tzinfo] = None,
) -> Optional[ParseResult]:
    """Convert a parse into every configured display zone; None when invalid."""
    instant = build_source_instant(parsed, source_zone, local_tz)
    if instant is None:
        logger.debug("Invalid source zone %r for %r", source_zone, parsed.matched_text)
        return None
    summary = ParsedSummary(
        original_text=parsed.matched_text,
        iso_instant=instant.isoformat(),
        source_zone=source_zone,
        source_zone_explicit=parsed.has_explicit_timezone,
        abbreviation=parsed.abbreviation,
    )
    return _project(summary, instant, settings, local_tz)


def reproject(
    result: ParseResult,
    settings: Settings,
    local_tz: Optional[dt.tzinfo] = None,
) -> Optional[ParseResult]:
    """Re-render ``result`` for new target/format settings without re-parsing."""
    try:
        instant = dt.datetime.fromisoformat(result.parsed.iso_instant)
    except ValueError:
        return None
    return _project(result.parsed, instant, settings, local_tz)


def source_datetime(result: ParseResult, local_tz: Optional[dt.tzinfo] = None) -> Optional[dt.datetime]:
    """The parsed instant expressed in its source zone (for the 'original' row)."""
    try:
        instant = dt.datetime.fromisoformat(result.parsed.iso_instant)
    except ValueError:
        return None
    if is_offset(result.parsed.source_zone):
        return instant
    return convert_to_zone(instant, result.parsed.source_zone, local_tz)
