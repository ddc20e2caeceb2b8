from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

try:  # pragma: no cover - optional dependency
    import redis
except Exception:  # pragma: no cover
    redis = None

logger = logging.getLogger(__name__)


class KeyValueStore:
    """JSON values in Redis when configured, else an in-process dict.

    The dict fallback can be mirrored to ``persist_path`` so values such as the
    dragged overlay position survive restarts without Redis.
    """

    def __init__(self, url: str | None, persist_path: Optional[Path] = None):
        self.fallback: dict[str, str] = {}
        self.client = None
        self.persist_path = persist_path
        if url and redis is not None:
            try:
                self.client = redis.from_url(url)
            except Exception:
                logger.warning("Redis unavailable at %s; using local store", url)
                self.client = None
        self._load_from_disk()

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> None:
        payload = json.dumps(value)
        if self.client:
            try:
                self.client.set(key, payload, ex=ex)
                return
            except Exception:  # pragma: no cover
                logger.warning("Redis write failed for %s; using local store", key)
        self.fallback[key] = payload
        self._persist()

    def get(self, key: str) -> Any | None:
        if self.client:
            try:
                value = self.client.get(key)
                if value is not None:
                    return json.loads(value)
            except Exception:  # pragma: no cover
                logger.warning("Redis read failed for %s; using local store", key)
        payload = self.fallback.get(key)
        return json.loads(payload) if payload else None

    def delete(self, key: str) -> None:
        if self.client:
            try:
                self.client.delete(key)
            except Exception:  # pragma: no cover
                pass
        if self.fallback.pop(key, None) is not None:
            self._persist()

    def clear(self) -> None:
        if self.client:
            try:
                self.client.flushdb()
            except Exception:  # pragma: no cover
                pass
        self.fallback.clear()
        self._persist()

    def _persist(self) -> None:
        if not self.persist_path:
            return
        try:
            self.persist_path.parent.mkdir(parents=True, exist_ok=True)
            self.persist_path.write_text(json.dumps(self.fallback), encoding="utf-8")
        except OSError:
            logger.warning("Could not persist key/value store to %s", self.persist_path, exc_info=True)

    def _load_from_disk(self) -> None:
        if not self.persist_path or not self.persist_path.exists():
            return
        try:
            payload = json.loads(self.persist_path.read_text(encoding="utf-8"))
        except Exception:
            logger.warning("Ignoring unreadable key/value file %s", self.persist_path)
            return
        if isinstance(payload, dict):
            self.fallback = {str(key): str(value) for key, value in payload.items()}
