from __future__ import annotations

from fastapi import APIRouter

from app.schemas.convert import ConvertAllResponse, ConvertRequest, ConvertResponse
from app.services.convert_service import convert_all, convert_text

router = APIRouter()


@router.post("/convert", response_model=ConvertResponse)
def convert_endpoint(payload: ConvertRequest) -> ConvertResponse:
    return convert_text(payload)


@router.post("/convert/all", response_model=ConvertAllResponse)
def convert_all_endpoint(payload: ConvertRequest) -> ConvertAllResponse:
    return convert_all(payload)
