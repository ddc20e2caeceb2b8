"""Persistent user settings."""

from .store import SettingsStore, SettingsStoreError

__all__ = ["SettingsStore", "SettingsStoreError"]
