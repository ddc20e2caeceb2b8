from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, status

from app.deps import get_settings_store, mark_applied
from app.schemas.settings import (
    Settings,
    SettingsPatchRequest,
    SettingsPatchResponse,
    SiteUpdateRequest,
    merge_with_defaults,
)
from app.utils.origins import get_origin, set_enabled_for_origin, set_source_zone_for_origin
from app.utils.zones import is_valid_zone
from core.tz.abbreviations import COMMON_TIMEZONES
from core.tz.resolver import zone_label
from storage.settings.store import SettingsStoreError

logger = logging.getLogger(__name__)


def get_settings() -> Dict[str, Any]:
    return get_settings_store().load().to_record()


def _save(settings: Settings) -> None:
    try:
        get_settings_store().save(settings)
    except SettingsStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SETTINGS_WRITE_FAILED",
        ) from exc


def apply_settings_patch(payload: SettingsPatchRequest) -> SettingsPatchResponse:
    store = get_settings_store()
    current = store.load()
    if not mark_applied(payload.idempotency_key):
        return SettingsPatchResponse(settings=current.to_record(), accepted=False)
    updated = merge_with_defaults(payload.changes, base=current)
    if updated != current:
        _save(updated)
        logger.info("Settings updated: %s", sorted(payload.changes))
    return SettingsPatchResponse(settings=updated.to_record(), accepted=True)


def update_site(payload: SiteUpdateRequest) -> Dict[str, Any]:
    origin = get_origin(payload.origin)
    if payload.source_zone and not is_valid_zone(payload.source_zone):
        raise HTTPException(
            status_code=422,
            detail="UNKNOWN_TIMEZONE",
        )
    settings = get_settings_store().load()
    if payload.enabled is not None:
        settings = set_enabled_for_origin(settings, origin, payload.enabled)
    if payload.source_zone is not None:
        settings = set_source_zone_for_origin(settings, origin, payload.source_zone or None)
    _save(settings)
    return {"origin": origin, "settings": settings.to_record()}


def list_timezones() -> list[Dict[str, str]]:
    return [{"zone": zone, "label": zone_label(zone)} for zone in COMMON_TIMEZONES]
