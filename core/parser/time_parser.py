"""Natural-language time extraction on top of python-dateutil.

The parser works in two layers.  A backend turns free text into raw matches
(matched span, parsed datetime, whether the backend itself was sure about the
timezone).  ``TimeParser`` then keeps the first match, scans the tail of the
matched text for explicit timezone evidence, and honours a cancellation token
before and after the backend call, which is the expensive part.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import warnings
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Protocol, Tuple

from dateutil import parser as dateutil_parser
from dateutil.parser import UnknownTimezoneWarning

from core.parser.cancellation import CancellationToken
from core.tz.abbreviations import TIMEZONE_ABBREVIATIONS
from core.tz.resolver import minutes_to_offset, normalize_offset, offset_to_minutes

logger = logging.getLogger(__name__)

MAX_PARSE_LENGTH = 200
MAX_PARSE_ALL_LENGTH = 500

# Evidence is only looked for at the end of the matched text ("3pm PST",
# "10:00 +05:30", "3pm GMT+3", "2024-05-01T10:00Z").
ANCHORED_OFFSET_PATTERN = re.compile(r"\b(?:GMT|UTC)\s?([+-]\d{1,2}(?::?\d{2})?)\s*$", re.IGNORECASE)
NUMERIC_OFFSET_PATTERN = re.compile(r"([+-]\d{1,2}:?\d{2})\s*$")
ZULU_PATTERN = re.compile(r"(?<![A-Za-z])Z\s*$", re.IGNORECASE)
ABBREV_PATTERN = re.compile(r"\b([A-Z]{2,5}T?)\s*$")
# A numeric offset must follow a time of day or a zone name across whitespace,
# or be glued to an ISO date-time. Anything else is a date or a range.
TIME_BEFORE_OFFSET = re.compile(r"(?:\d:\d\d(?::\d\d)?|\d\s?[ap]\.?m\.?)\s+$", re.IGNORECASE)
ZONE_BEFORE_OFFSET = re.compile(r"\b([A-Z]{2,5}T?)\s+$")
ISO_BEFORE_OFFSET = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?$")

CLAUSE_BREAK = re.compile(r"[\n;|]+|\.\s+")
RELATIVE_DAY_PATTERN = re.compile(r"\b(today|tonight|tomorrow|yesterday)\b", re.IGNORECASE)
RELATIVE_DAYS = {"today": 0, "tonight": 0, "tomorrow": 1, "yesterday": -1}
BARE_NUMBER = re.compile(r"\d+")


@dataclass(frozen=True)
class ParserMatch:
    """One raw hit reported by a parser backend."""

    matched_text: str
    index: int
    instant: dt.datetime
    timezone_certain: bool


class ParserBackend(Protocol):
    def parse(self, text: str, reference: dt.datetime) -> List[ParserMatch]:
        ...


@dataclass(frozen=True)
class TimezoneEvidence:
    explicit_offset: Optional[str] = None
    abbreviation: Optional[str] = None
    # A signed number sat at the tail but was not accepted as an offset.
    offset_rejected: bool = False

    @property
    def explicit(self) -> bool:
        return bool(self.explicit_offset or self.abbreviation)


@dataclass(frozen=True)
class ParsedTime:
    """First usable match of a selection, ready for timezone resolution."""

    matched_text: str
    start_index: int
    end_index: int
    wall_time: dt.datetime
    explicit_offset: Optional[str] = None
    abbreviation: Optional[str] = None

    @property
    def has_explicit_timezone(self) -> bool:
        return bool(self.explicit_offset or self.abbreviation)

    @property
    def timezone_offset_minutes(self) -> Optional[int]:
        if self.explicit_offset is None:
            return None
        return offset_to_minutes(self.explicit_offset)


def extract_timezone_evidence(matched_text: str) -> TimezoneEvidence:
    """Scan the tail of a match for a numeric offset, else a known abbreviation.

    ``GMT+3`` and ``UTC-05:30`` read as "three hours ahead of UTC", with an
    hour-only form allowed. A bare signed number counts only after a time of
    day ("3pm -8:00"), after a zone name ("3pm PST -05:00") or glued to an ISO
    date-time ("2024-05-01T10:00-04:00"); the year of "01-15-2024" and the end
    of "9:00-17:00" are rejected.
    """
    anchored = ANCHORED_OFFSET_PATTERN.search(matched_text)
    if anchored:
        offset = normalize_offset(anchored.group(1))
        if offset:
            return TimezoneEvidence(explicit_offset=offset)
        return TimezoneEvidence(offset_rejected=True)

    rejected = False
    numeric = NUMERIC_OFFSET_PATTERN.search(matched_text)
    if numeric:
        offset = normalize_offset(numeric.group(1))
        if offset and _offset_position_ok(matched_text[: numeric.start()]):
            return TimezoneEvidence(explicit_offset=offset)
        rejected = True
    elif ZULU_PATTERN.search(matched_text):
        return TimezoneEvidence(explicit_offset="+00:00")

    abbrev_match = ABBREV_PATTERN.search(matched_text)
    if abbrev_match:
        candidate = abbrev_match.group(1).upper()
        if candidate in TIMEZONE_ABBREVIATIONS:
            return TimezoneEvidence(abbreviation=candidate, offset_rejected=rejected)
    return TimezoneEvidence(offset_rejected=rejected)


def _offset_position_ok(prefix: str) -> bool:
    if ISO_BEFORE_OFFSET.search(prefix):
        return True
    if TIME_BEFORE_OFFSET.search(prefix):
        return True
    zone = ZONE_BEFORE_OFFSET.search(prefix)
    return bool(zone and zone.group(1).upper() in TIMEZONE_ABBREVIATIONS)


def _iter_clauses(text: str) -> Iterator[Tuple[int, str]]:
    """Yield (offset, clause) pairs split on line, list and sentence breaks."""
    start = 0
    for match in CLAUSE_BREAK.finditer(text):
        if match.start() > start:
            yield start, text[start : match.start()]
        start = match.end()
    if start < len(text):
        yield start, text[start:]


def _matched_span(clause: str, skipped: Tuple[str, ...]) -> Tuple[int, int]:
    """Derive the [start, end) span dateutil consumed from its skipped tokens."""
    covered = [False] * len(clause)
    cursor = 0
    for token in skipped:
        found = clause.find(token, cursor)
        if found < 0:
            continue
        for idx in range(found, found + len(token)):
            covered[idx] = True
        cursor = found + len(token)
    kept = [idx for idx, flag in enumerate(covered) if not flag and not clause[idx].isspace()]
    if not kept:
        return 0, 0
    return kept[0], kept[-1] + 1


class DateutilBackend:
    """Fuzzy dateutil parsing applied clause by clause."""

    def parse(self, text: str, reference: dt.datetime) -> List[ParserMatch]:
        matches: List[ParserMatch] = []
        for offset, clause in _iter_clauses(text):
            match = self._parse_clause(clause, reference)
            if match is not None:
                matches.append(
                    ParserMatch(
                        matched_text=match.matched_text,
                        index=match.index + offset,
                        instant=match.instant,
                        timezone_certain=match.timezone_certain,
                    )
                )
        return matches

    def _parse_clause(self, clause: str, reference: dt.datetime) -> Optional[ParserMatch]:
        if not clause.strip():
            return None
        default = reference.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
        relative = RELATIVE_DAY_PATTERN.search(clause)
        if relative:
            default += dt.timedelta(days=RELATIVE_DAYS[relative.group(1).lower()])
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", UnknownTimezoneWarning)
                parsed, skipped = dateutil_parser.parse(clause, default=default, fuzzy_with_tokens=True)
        except (ValueError, OverflowError):
            return None
        start, end = _matched_span(clause, skipped)
        if relative:
            start = min(start, relative.start()) if end > start else relative.start()
            end = max(end, relative.end())
        matched = clause[start:end].strip()
        if not matched or BARE_NUMBER.fullmatch(matched):
            return None
        return ParserMatch(
            matched_text=matched,
            index=start,
            instant=parsed,
            timezone_certain=parsed.tzinfo is not None,
        )


class TimeParser:
    """Cancelable wrapper turning raw selection text into ``ParsedTime``."""

    def __init__(
        self,
        backend: Optional[ParserBackend] = None,
        clock: Callable[[], dt.datetime] = dt.datetime.now,
    ):
        self.backend = backend or DateutilBackend()
        self.clock = clock

    def _run_backend(self, text: str) -> List[ParserMatch]:
        try:
            return self.backend.parse(text, self.clock())
        except Exception:  # backend failures are parse misses
            logger.debug("Parser backend failed on %r", text, exc_info=True)
            return []

    def parse(self, text: str, token: Optional[CancellationToken] = None) -> Optional[ParsedTime]:
        """Return the first match in ``text`` or None."""
        if token is not None and token.cancelled:
            return None
        trimmed = text.strip()[:MAX_PARSE_LENGTH]
        if not trimmed:
            return None
        matches = self._run_backend(trimmed)
        if token is not None and token.cancelled:
            return None
        if not matches:
            return None
        return self._to_parsed(matches[0])

    def parse_all(self, text: str, token: Optional[CancellationToken] = None) -> List[ParsedTime]:
        """Return every match in ``text``; useful when one selection holds several times."""
        if token is not None and token.cancelled:
            return []
        trimmed = text.strip()[:MAX_PARSE_ALL_LENGTH]
        if not trimmed:
            return []
        matches = self._run_backend(trimmed)
        if token is not None and token.cancelled:
            return []
        return [self._to_parsed(match) for match in matches]

    @staticmethod
    def _to_parsed(match: ParserMatch) -> ParsedTime:
        evidence = extract_timezone_evidence(match.matched_text)
        explicit_offset = evidence.explicit_offset
        if not evidence.explicit and not evidence.offset_rejected and match.timezone_certain:
            utcoffset = match.instant.utcoffset()
            if utcoffset is not None:
                explicit_offset = minutes_to_offset(int(utcoffset.total_seconds()) // 60)
        return ParsedTime(
            matched_text=match.matched_text,
            start_index=match.index,
            end_index=match.index + len(match.matched_text),
            wall_time=match.instant.replace(tzinfo=None),
            explicit_offset=explicit_offset,
            abbreviation=evidence.abbreviation,
        )
