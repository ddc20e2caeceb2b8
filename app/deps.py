from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import load_dotenv

from core.display.states import DisplayConfig
from core.parser.time_parser import TimeParser
from storage.cache.redis_client import KeyValueStore
from storage.settings.store import SettingsStore

ROOT = Path(__file__).resolve().parent.parent


def _load_yaml(path: Path) -> Dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_config(path: Optional[Path] = None) -> Dict:
    return _load_yaml(path or ROOT / "config" / "timelens.yaml")


def state_dir() -> Path:
    """Directory holding settings.json and positions.json."""
    configured = os.getenv("TIMELENS_STATE_DIR")
    if configured:
        return Path(configured).expanduser()
    return ROOT / "storage" / "state"


@dataclass
class AppState:
    config: Dict
    settings_store: SettingsStore
    kv_store: KeyValueStore
    parser: TimeParser
    display_config: DisplayConfig
    applied_keys: set[str] = field(default_factory=set)


def build_app_state(config: Dict, directory: Optional[Path]) -> AppState:
    settings_path = directory / "settings.json" if directory else None
    positions_path = directory / "positions.json" if directory else None
    return AppState(
        config=config,
        settings_store=SettingsStore(settings_path),
        kv_store=KeyValueStore(os.getenv("REDIS_URL"), persist_path=positions_path),
        parser=TimeParser(),
        display_config=DisplayConfig.from_dict(config.get("display", {})),
    )


@lru_cache(maxsize=1)
def get_app_state() -> AppState:
    load_dotenv(ROOT / ".env")
    return build_app_state(load_config(), state_dir())


def get_settings_store() -> SettingsStore:
    return get_app_state().settings_store


def get_parser() -> TimeParser:
    return get_app_state().parser


def mark_applied(idempotency_key: str | None) -> bool:
    """Record ``idempotency_key``; False when it was already applied."""
    if not idempotency_key:
        return True
    state = get_app_state()
    if idempotency_key in state.applied_keys:
        return False
    state.applied_keys.add(idempotency_key)
    return True
