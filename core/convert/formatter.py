"""Render converted datetimes through locale-aware presets or a custom CLDR pattern.

Presets follow the locale's own date and time formats, as Babel ships them
from CLDR.  Custom patterns use CLDR field letters (``yyyy-MM-dd HH:mm z``)
with quoted literals (``'at'``).  A pattern with an unknown field, an
unsupported width or an unterminated quote is invalid; ``format_time`` then
falls back to the ``system`` preset instead of failing the conversion.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from functools import lru_cache
from typing import Callable, Dict, Optional

from babel.core import Locale, UnknownLocaleError
from babel.dates import format_date, format_datetime, get_datetime_format, get_timezone_name
from babel.dates import format_time as format_clock

from app.schemas.common import FormatPreset

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en_US"

# CLDR fields accepted in custom patterns and the widths each one renders.
PATTERN_FIELDS: Dict[str, range] = {
    "y": range(1, 5),
    "M": range(1, 5),
    "L": range(1, 5),
    "d": range(1, 3),
    "E": range(1, 5),
    "a": range(1, 2),
    "h": range(1, 3),
    "H": range(1, 3),
    "K": range(1, 3),
    "k": range(1, 3),
    "m": range(1, 3),
    "s": range(1, 3),
    "S": range(1, 4),
    "z": range(1, 5),
    "Z": range(1, 6),
    "x": range(1, 6),
    "X": range(1, 6),
}

QUOTED_TEXT = re.compile(r"'[^']*'")
FIELD_RUN = re.compile(r"([A-Za-z])\1*")


class FormatPatternError(ValueError):
    """Raised when a custom pattern cannot be rendered."""


@lru_cache(maxsize=64)
def validate_pattern(pattern: str) -> str:
    if not pattern.strip():
        raise FormatPatternError("Empty pattern")
    if pattern.count("'") % 2:
        raise FormatPatternError(f"Unterminated quote in {pattern!r}")
    for run in FIELD_RUN.finditer(QUOTED_TEXT.sub("", pattern)):
        field, width = run.group(1), len(run.group(0))
        if width not in PATTERN_FIELDS.get(field, ()):
            raise FormatPatternError(f"Unsupported field {run.group(0)!r} in {pattern!r}")
    return pattern


@lru_cache(maxsize=32)
def resolve_locale(name: Optional[str]) -> str:
    """Return ``name`` when Babel knows it, else the default locale."""
    if not name:
        return DEFAULT_LOCALE
    try:
        return str(Locale.parse(name.replace("-", "_")))
    except (UnknownLocaleError, ValueError, TypeError):
        logger.warning("Unknown locale %r; using %s", name, DEFAULT_LOCALE)
        return DEFAULT_LOCALE


def _combined(value: dt.datetime, width: str, locale: str, with_zone: bool = False) -> str:
    date_part = format_date(value, width, locale=locale)
    time_part = format_clock(value, "short", locale=locale)
    if with_zone:
        time_part = f"{time_part} {get_timezone_name(value, width='short', locale=locale)}"
    glue = get_datetime_format(width, locale=locale)
    return str(glue).replace("'", "").replace("{0}", time_part).replace("{1}", date_part)


def _system(value: dt.datetime, locale: str) -> str:
    return _combined(value, "medium", locale)


def _short(value: dt.datetime, locale: str) -> str:
    return _combined(value, "short", locale)


def _long(value: dt.datetime, locale: str) -> str:
    return _combined(value, "long", locale, with_zone=True)


def _iso(value: dt.datetime, locale: str) -> str:
    return value.isoformat(timespec="seconds")


FORMAT_PRESETS: Dict[FormatPreset, Callable[[dt.datetime, str], str]] = {
    FormatPreset.system: _system,
    FormatPreset.iso: _iso,
    FormatPreset.short: _short,
    FormatPreset.long: _long,
}


def format_time(
    value: dt.datetime,
    preset: FormatPreset,
    custom_format: Optional[str] = None,
    locale: Optional[str] = DEFAULT_LOCALE,
) -> str:
    """Format ``value`` with ``preset``; bad custom patterns fall back to ``system``."""
    locale = resolve_locale(locale)
    if preset == FormatPreset.custom:
        if custom_format:
            try:
                return format_datetime(value, validate_pattern(custom_format), locale=locale)
            except (ValueError, KeyError) as exc:
                logger.debug("Custom format %r rejected: %s", custom_format, exc)
        return _system(value, locale)
    return FORMAT_PRESETS.get(preset, _system)(value, locale)
