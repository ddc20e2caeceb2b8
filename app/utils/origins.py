"""Per-site policy helpers keyed by page origin ('https://github.com')."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit

from app.schemas.settings import Settings, merge_with_defaults


def get_origin(url: str) -> str:
    """Reduce a URL to scheme://host[:port]; anything unparsable is returned as is."""
    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.netloc:
        return url
    return f"{parts.scheme}://{parts.netloc}".lower()


def is_enabled_for_origin(settings: Settings, origin: Optional[str]) -> bool:
    if not settings.enabled:
        return False
    if origin and origin in settings.enabled_sites:
        return settings.enabled_sites[origin]
    return settings.sites_enabled_by_default


def set_enabled_for_origin(settings: Settings, origin: str, enabled: bool) -> Settings:
    sites = dict(settings.enabled_sites)
    if enabled == settings.sites_enabled_by_default:
        # Only deviations from the default are stored.
        sites.pop(origin, None)
    else:
        sites[origin] = enabled
    return merge_with_defaults({"enabled_sites": sites}, base=settings)


def set_source_zone_for_origin(settings: Settings, origin: str, zone: Optional[str]) -> Settings:
    overrides = dict(settings.per_site_source_zone)
    if zone:
        overrides[origin] = zone
    else:
        overrides.pop(origin, None)
    return merge_with_defaults({"per_site_source_zone": overrides}, base=settings)
