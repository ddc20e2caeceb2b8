from __future__ import annotations

from fastapi import APIRouter

from app.schemas.settings import SettingsPatchRequest, SettingsPatchResponse, SiteUpdateRequest
from app.services.settings_service import apply_settings_patch, get_settings, list_timezones, update_site

router = APIRouter()


@router.get("/settings")
def settings_endpoint() -> dict:
    return get_settings()


@router.patch("/settings", response_model=SettingsPatchResponse)
def settings_patch(payload: SettingsPatchRequest) -> SettingsPatchResponse:
    return apply_settings_patch(payload)


@router.post("/settings/sites")
def settings_sites(payload: SiteUpdateRequest) -> dict:
    return update_site(payload)


@router.get("/timezones")
def timezones_endpoint() -> list:
    return list_timezones()
