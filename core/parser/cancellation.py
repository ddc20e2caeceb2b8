"""Cooperative cancellation token passed into parse attempts."""

from __future__ import annotations


class CancellationToken:
    """Flag checked at defined points; cancelling never interrupts running code."""

    __slots__ = ("_cancelled", "reason")

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "superseded") -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    def __repr__(self) -> str:
        state = f"cancelled:{self.reason}" if self._cancelled else "live"
        return f"CancellationToken({state})"
