"""Versioned user settings and the pure merge used by every reader.

Persisted records may be partial, written by an older schema, or hand edited.
``merge_with_defaults`` always returns a complete ``Settings``: unknown keys are
dropped, legacy keys are migrated, and a field that fails validation keeps its
default instead of invalidating the whole record.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from babel.core import Locale, UnknownLocaleError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.schemas.common import FormatPreset
from app.utils.zones import is_valid_zone

logger = logging.getLogger(__name__)

SETTINGS_SCHEMA_VERSION = 2

# v1 records (camelCase, single target) map onto the current field names.
LEGACY_KEYS: Dict[str, str] = {
    "defaultTargetZone": "primary_target_zone",
}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", alias_generator=to_camel, populate_by_name=True)

    schema_version: int = SETTINGS_SCHEMA_VERSION
    enabled: bool = True
    enabled_sites: Dict[str, bool] = Field(default_factory=dict)
    sites_enabled_by_default: bool = True
    default_source_zone: str = "local"
    per_site_source_zone: Dict[str, str] = Field(default_factory=dict)
    primary_target_zone: str = "UTC"
    target_zones: List[str] = Field(
        default_factory=lambda: ["America/New_York", "Europe/London", "Asia/Tokyo"]
    )
    format_preset: FormatPreset = FormatPreset.system
    custom_format: str = "yyyy-MM-dd HH:mm z"
    locale: str = "en_US"

    @field_validator("default_source_zone", "primary_target_zone")
    @classmethod
    def _known_zone(cls, value: str) -> str:
        if not is_valid_zone(value):
            raise ValueError(f"unknown timezone {value!r}")
        return value

    @field_validator("target_zones")
    @classmethod
    def _known_zones(cls, value: List[str]) -> List[str]:
        bad = [zone for zone in value if not is_valid_zone(zone)]
        if bad:
            raise ValueError(f"unknown timezones {bad!r}")
        return value

    @field_validator("per_site_source_zone")
    @classmethod
    def _known_site_zones(cls, value: Dict[str, str]) -> Dict[str, str]:
        bad = [zone for zone in value.values() if not is_valid_zone(zone)]
        if bad:
            raise ValueError(f"unknown timezones {bad!r}")
        return value

    @field_validator("locale")
    @classmethod
    def _known_locale(cls, value: str) -> str:
        try:
            return str(Locale.parse(value.replace("-", "_")))
        except (UnknownLocaleError, ValueError) as exc:
            raise ValueError(f"unknown locale {value!r}") from exc

    def to_record(self) -> Dict[str, Any]:
        """Return the JSON-ready record written by the settings store."""
        return self.model_dump(mode="json")


DEFAULT_SETTINGS = Settings()

_FIELD_BY_KEY: Dict[str, str] = {}
for _name, _info in Settings.model_fields.items():
    _FIELD_BY_KEY[_name] = _name
    if _info.alias:
        _FIELD_BY_KEY[_info.alias] = _name


def _canonical_keys(partial: Mapping[str, Any]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for key, value in partial.items():
        if value is None:
            continue
        name = LEGACY_KEYS.get(key) or _FIELD_BY_KEY.get(key)
        if name is None:
            logger.debug("Ignoring unknown settings key %r", key)
            continue
        changes[name] = value
    return changes


def merge_with_defaults(partial: Optional[Mapping[str, Any]], base: Optional[Settings] = None) -> Settings:
    """Overlay ``partial`` on ``base`` (defaults when omitted), field by field."""
    merged = (base or DEFAULT_SETTINGS).model_dump()
    changes = _canonical_keys(partial or {})
    changes.pop("schema_version", None)
    try:
        return Settings.model_validate({**merged, **changes})
    except ValidationError:
        pass
    for name, value in changes.items():
        candidate = {**merged, name: value}
        try:
            Settings.model_validate(candidate)
        except ValidationError as exc:
            logger.warning("Dropping invalid setting %s=%r: %s", name, value, exc.errors()[0]["msg"])
            continue
        merged = candidate
    return Settings.model_validate(merged)


class SettingsPatchRequest(BaseModel):
    changes: Dict[str, Any] = Field(default_factory=dict)
    idempotency_key: Optional[str] = Field(None, description="Optional key to deduplicate PATCH requests")


class SettingsPatchResponse(BaseModel):
    settings: Dict[str, Any]
    accepted: bool


class SiteUpdateRequest(BaseModel):
    origin: str
    enabled: Optional[bool] = None
    source_zone: Optional[str] = Field(None, description="Per-site source zone override; empty string clears it")
