from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo

from app.schemas.settings import DEFAULT_SETTINGS
from core.convert.converter import convert_time
from core.parser.time_parser import ParsedTime
from storage.cache.result_cache import CacheStatus, ResultCache


def make_result():
    parsed = ParsedTime("3pm", 0, 3, dt.datetime(2024, 1, 15, 15, 0))
    return convert_time(parsed, "UTC", DEFAULT_SETTINGS, ZoneInfo("UTC"))


def test_success_hit_is_idempotent():
    cache = ResultCache()
    result = make_result()
    cache.record(3, result)
    assert cache.get(3).status == CacheStatus.HIT
    assert cache.get(3).result is result
    assert cache.hits == 2


def test_failure_is_remembered():
    cache = ResultCache()
    cache.record(4, None)
    assert cache.get(4).status == CacheStatus.FAILURE
    assert cache.get(5).status == CacheStatus.MISS


def test_recording_one_slot_clears_the_other():
    cache = ResultCache()
    cache.record_failure(1)
    cache.record_success(2, make_result())
    assert cache.get(1).status == CacheStatus.MISS
    cache.record_failure(3)
    assert cache.get(2).status == CacheStatus.MISS


def test_invalidate_forces_recompute():
    cache = ResultCache()
    cache.record_success(7, make_result())
    cache.invalidate()
    assert cache.get(7).status == CacheStatus.MISS
    assert cache.misses == 1
