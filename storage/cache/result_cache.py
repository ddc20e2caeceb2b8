"""Single-slot memo of the last parse+convert outcome, keyed by snapshot version."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.convert.converter import ParseResult

NO_VERSION = -1


class CacheStatus(str, Enum):
    HIT = "hit"
    FAILURE = "failure"
    MISS = "miss"


@dataclass(frozen=True)
class CacheLookup:
    status: CacheStatus
    result: Optional[ParseResult] = None


class ResultCache:
    """Holds at most one success and one failure; recording one clears the other."""

    def __init__(self) -> None:
        self.success_version = NO_VERSION
        self.failure_version = NO_VERSION
        self._result: Optional[ParseResult] = None
        self.hits = 0
        self.misses = 0

    def get(self, version: int) -> CacheLookup:
        if version == self.success_version and self._result is not None:
            self.hits += 1
            return CacheLookup(CacheStatus.HIT, self._result)
        if version == self.failure_version:
            self.hits += 1
            return CacheLookup(CacheStatus.FAILURE)
        self.misses += 1
        return CacheLookup(CacheStatus.MISS)

    def record_success(self, version: int, result: ParseResult) -> None:
        self.success_version = version
        self._result = result
        self.failure_version = NO_VERSION

    def record_failure(self, version: int) -> None:
        self.failure_version = version
        self.success_version = NO_VERSION
        self._result = None

    def record(self, version: int, outcome: Optional[ParseResult]) -> None:
        if outcome is None:
            self.record_failure(version)
        else:
            self.record_success(version, outcome)

    def invalidate(self) -> None:
        """Force the next lookup to recompute; used when settings change."""
        self.success_version = NO_VERSION
        self.failure_version = NO_VERSION
        self._result = None

    clear = invalidate
