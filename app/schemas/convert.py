from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.parser.time_parser import MAX_PARSE_ALL_LENGTH


class ConvertRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=MAX_PARSE_ALL_LENGTH * 4)
    origin: Optional[str] = Field(None, description="Page URL or origin the text was selected on")


class ConvertResponse(BaseModel):
    found: bool
    result: Optional[Dict[str, Any]] = None
    matched_text: Optional[str] = None


class ConvertAllResponse(BaseModel):
    results: List[Dict[str, Any]] = Field(default_factory=list)
