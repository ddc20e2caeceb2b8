from __future__ import annotations

import logging
from typing import List, Optional

from app.deps import get_parser, get_settings_store
from app.schemas.convert import ConvertAllResponse, ConvertRequest, ConvertResponse
from app.schemas.settings import Settings
from app.utils.origins import get_origin
from app.utils.tracing import traced_span
from core.convert.converter import ParseResult, convert_time
from core.parser.time_parser import ParsedTime, TimeParser
from core.tz.resolver import resolve_source_zone

logger = logging.getLogger(__name__)


def _convert_one(parsed: ParsedTime, settings: Settings, origin: Optional[str]) -> Optional[ParseResult]:
    source_zone = resolve_source_zone(parsed.explicit_offset, parsed.abbreviation, settings, origin)
    return convert_time(parsed, source_zone, settings)


def convert_text(
    payload: ConvertRequest,
    settings: Optional[Settings] = None,
    parser: Optional[TimeParser] = None,
) -> ConvertResponse:
    settings = settings or get_settings_store().load()
    parser = parser or get_parser()
    origin = get_origin(payload.origin) if payload.origin else None
    with traced_span("timelens.convert", origin=origin):
        parsed = parser.parse(payload.text)
        if parsed is None:
            logger.debug("No time found in %r", payload.text[:40])
            return ConvertResponse(found=False)
        result = _convert_one(parsed, settings, origin)
    if result is None:
        return ConvertResponse(found=False, matched_text=parsed.matched_text)
    return ConvertResponse(found=True, result=result.to_dict(), matched_text=parsed.matched_text)


def convert_all(
    payload: ConvertRequest,
    settings: Optional[Settings] = None,
    parser: Optional[TimeParser] = None,
) -> ConvertAllResponse:
    settings = settings or get_settings_store().load()
    parser = parser or get_parser()
    origin = get_origin(payload.origin) if payload.origin else None
    results: List[dict] = []
    with traced_span("timelens.convert_all", origin=origin):
        for parsed in parser.parse_all(payload.text):
            result = _convert_one(parsed, settings, origin)
            if result is not None:
                results.append(result.to_dict())
    return ConvertAllResponse(results=results)
