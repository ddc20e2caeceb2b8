"""Zone lookup helpers shared by the converter, the settings schema and the API.

Zone identifiers arrive from settings files, HTTP payloads and parsed text, so
every lookup here degrades to ``None`` instead of raising: callers decide
whether a missing zone means "skip this target" or "conversion failed".
"""

from __future__ import annotations

import datetime as dt
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import tz

from core.tz.resolver import LOCAL_ZONE, is_offset, offset_to_minutes


def local_zone() -> dt.tzinfo:
    """Return the host's local timezone, tracking DST transitions."""
    return tz.tzlocal()


def offset_zone(offset: str) -> dt.timezone:
    """Fixed-offset tzinfo for a canonical '+HH:MM' identifier."""
    minutes = offset_to_minutes(offset)
    return dt.timezone(dt.timedelta(minutes=minutes), f"UTC{offset}")


@lru_cache(maxsize=256)
def _named_zone(name: str) -> Optional[ZoneInfo]:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def get_zone(name: str, local_tz: Optional[dt.tzinfo] = None) -> Optional[dt.tzinfo]:
    """Resolve 'local', '+HH:MM' or an IANA name to a tzinfo, None when unknown."""
    if not name:
        return None
    if name == LOCAL_ZONE:
        return local_tz or local_zone()
    if is_offset(name):
        return offset_zone(name)
    return _named_zone(name)


def is_valid_zone(name: str) -> bool:
    return name == LOCAL_ZONE or get_zone(name) is not None
