from __future__ import annotations

import datetime as dt

from core.parser.cancellation import CancellationToken
from core.parser.time_parser import (
    MAX_PARSE_LENGTH,
    ParserMatch,
    TimeParser,
    extract_timezone_evidence,
)

REFERENCE = dt.datetime(2024, 1, 15, 9, 0)


def make_parser(backend=None) -> TimeParser:
    return TimeParser(backend=backend, clock=lambda: REFERENCE)


class RecordingBackend:
    def __init__(self, matches=None, error=None, on_call=None):
        self.matches = matches or []
        self.error = error
        self.on_call = on_call
        self.calls = []

    def parse(self, text, reference):
        self.calls.append(text)
        if self.on_call:
            self.on_call()
        if self.error:
            raise self.error
        return list(self.matches)


def test_abbreviation_is_explicit_evidence():
    parsed = make_parser().parse("3pm PST")
    assert parsed is not None
    assert parsed.abbreviation == "PST"
    assert parsed.explicit_offset is None
    assert parsed.has_explicit_timezone
    assert parsed.wall_time == dt.datetime(2024, 1, 15, 15, 0)


def test_plain_time_has_no_timezone_evidence():
    parsed = make_parser().parse("meeting at 10am")
    assert parsed is not None
    assert not parsed.has_explicit_timezone
    assert "10am" in parsed.matched_text
    assert parsed.wall_time.hour == 10


def test_numeric_offset_is_normalised():
    parsed = make_parser().parse("call at 3pm +0530")
    assert parsed is not None
    assert parsed.explicit_offset == "+05:30"
    assert parsed.timezone_offset_minutes == 330


def test_iso_zulu_suffix():
    parsed = make_parser().parse("2024-05-01T10:00Z")
    assert parsed is not None
    assert parsed.explicit_offset == "+00:00"
    assert parsed.wall_time == dt.datetime(2024, 5, 1, 10, 0)


def test_tomorrow_shifts_the_date():
    parsed = make_parser().parse("tomorrow at 9am")
    assert parsed is not None
    assert parsed.wall_time == dt.datetime(2024, 1, 16, 9, 0)


def test_no_time_returns_none():
    assert make_parser().parse("nothing to see here") is None
    assert make_parser().parse("   ") is None
    assert make_parser().parse("42") is None


def test_cancelled_token_skips_backend():
    backend = RecordingBackend()
    token = CancellationToken()
    token.cancel()
    assert make_parser(backend).parse("3pm", token) is None
    assert backend.calls == []


def test_cancellation_during_backend_discards_result():
    token = CancellationToken()
    match = ParserMatch("3pm", 0, dt.datetime(2024, 1, 15, 15, 0), False)
    backend = RecordingBackend(matches=[match], on_call=token.cancel)
    assert make_parser(backend).parse("3pm", token) is None
    assert token.reason == "superseded"


def test_backend_failure_is_a_miss():
    backend = RecordingBackend(error=RuntimeError("boom"))
    assert make_parser(backend).parse("3pm") is None


def test_input_is_truncated():
    backend = RecordingBackend()
    make_parser(backend).parse("x" * (MAX_PARSE_LENGTH + 50))
    assert len(backend.calls[0]) == MAX_PARSE_LENGTH


def test_aware_backend_result_supplies_offset():
    instant = dt.datetime(2024, 1, 15, 15, 0, tzinfo=dt.timezone(dt.timedelta(hours=2)))
    backend = RecordingBackend(matches=[ParserMatch("3pm", 0, instant, True)])
    parsed = make_parser(backend).parse("3pm")
    assert parsed.explicit_offset == "+02:00"
    assert parsed.wall_time.tzinfo is None


def test_parse_all_returns_every_clause():
    parsed = make_parser().parse_all("standup 9am; review 4pm")
    assert [item.wall_time.hour for item in parsed] == [9, 16]


def test_evidence_ignores_unknown_abbreviations():
    assert not extract_timezone_evidence("3pm FOO").explicit
    assert extract_timezone_evidence("3pm JST").abbreviation == "JST"


def test_dashed_date_year_is_not_an_offset():
    parsed = make_parser().parse("Meeting on 01-15-2024")
    assert parsed is not None
    assert parsed.explicit_offset is None
    assert not parsed.has_explicit_timezone
    assert parsed.wall_time.date() == dt.date(2024, 1, 15)

    parsed = make_parser().parse("due 12-05-2024")
    assert parsed is not None
    assert parsed.explicit_offset is None
    assert parsed.wall_time.date() == dt.date(2024, 12, 5)


def test_gmt_and_utc_offsets_keep_their_sign():
    assert make_parser().parse("3pm GMT+3").explicit_offset == "+03:00"
    assert make_parser().parse("10:00 UTC+5:30").explicit_offset == "+05:30"
    assert make_parser().parse("10:00 UTC+2").explicit_offset == "+02:00"
    assert extract_timezone_evidence("9am GMT-0800").explicit_offset == "-08:00"


def test_offset_after_time_of_day():
    parsed = make_parser().parse("3pm -8:00")
    assert parsed is not None
    assert parsed.explicit_offset == "-08:00"
    assert parsed.wall_time.hour == 15


def test_offset_wins_over_preceding_abbreviation():
    parsed = make_parser().parse("3pm PST -05:00")
    assert parsed is not None
    assert parsed.explicit_offset == "-05:00"
    assert parsed.abbreviation is None


def test_iso_offset_glued_to_time():
    evidence = extract_timezone_evidence("2024-05-01T10:00:00-04:00")
    assert evidence.explicit_offset == "-04:00"


def test_ranges_and_dates_yield_no_offset():
    for text in ("9:00-17:00", "10:00-11:00", "01-15-2024", "2024-01-15", "9-5"):
        evidence = extract_timezone_evidence(text)
        assert evidence.explicit_offset is None, text


def test_rejected_offset_suppresses_aware_backend_offset():
    instant = dt.datetime(2024, 1, 15, 9, 0, tzinfo=dt.timezone(-dt.timedelta(hours=17)))
    backend = RecordingBackend(matches=[ParserMatch("9:00-17:00", 0, instant, True)])
    parsed = make_parser(backend).parse("9:00-17:00")
    assert parsed.explicit_offset is None
    assert parsed.wall_time == dt.datetime(2024, 1, 15, 9, 0)
