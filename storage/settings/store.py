"""JSON-file settings store with change notification."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional

from app.schemas.settings import DEFAULT_SETTINGS, Settings, merge_with_defaults

logger = logging.getLogger(__name__)

SettingsListener = Callable[[Settings], None]


class SettingsStoreError(RuntimeError):
    """A settings write could not be completed."""


class SettingsStore:
    """Loads, saves and broadcasts ``Settings``.

    Without ``persist_path`` the store keeps the record in memory, which is what
    the tests and one-shot CLI commands use.
    """

    def __init__(self, persist_path: Optional[Path] = None):
        self.persist_path = persist_path
        self._record: Optional[dict] = None
        self._listeners: List[SettingsListener] = []

    def load(self) -> Settings:
        """Return stored settings merged with defaults; read errors yield defaults."""
        if self.persist_path is None:
            return merge_with_defaults(self._record)
        if not self.persist_path.exists():
            return DEFAULT_SETTINGS
        try:
            payload = json.loads(self.persist_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Could not read settings from %s; using defaults", self.persist_path, exc_info=True)
            return DEFAULT_SETTINGS
        if not isinstance(payload, dict):
            logger.warning("Settings file %s does not hold an object; using defaults", self.persist_path)
            return DEFAULT_SETTINGS
        return merge_with_defaults(payload)

    def save(self, settings: Settings) -> None:
        record = settings.to_record()
        if self.persist_path is not None:
            try:
                self.persist_path.parent.mkdir(parents=True, exist_ok=True)
                self.persist_path.write_text(json.dumps(record, indent=2), encoding="utf-8")
            except OSError as exc:
                logger.error("Failed to save settings to %s: %s", self.persist_path, exc)
                raise SettingsStoreError(str(exc)) from exc
        else:
            self._record = record
        self._notify(settings)

    def update(self, changes: Mapping[str, Any]) -> Settings:
        updated = merge_with_defaults(changes, base=self.load())
        self.save(updated)
        return updated

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, settings: Settings) -> None:
        for listener in list(self._listeners):
            try:
                listener(settings)
            except Exception:
                logger.exception("Settings listener failed")
