"""
Price Routes
============

API endpoints for the rate-sheet price updater.

Endpoints:
- GET  /prices/mapping  - Guessed column mapping for the current headers
- POST /prices/preview  - OCR a rate-sheet image and propose per-row updates
- POST /prices/apply    - Apply accepted previews (updated cells are highlighted)
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from datacleaner.api.dependencies import get_cleaning_service, get_table_service
from datacleaner.schemas.pricing import ColumnMapping
from datacleaner.schemas.requests import PriceApplyRequest, PricePreviewRequest
from datacleaner.schemas.responses import PriceApplyResponse, PricePreviewResponse
from datacleaner.services.cleaning_service import CleaningService
from datacleaner.services.price_updater import guess_column_mapping
from datacleaner.services.table_service import TableService

router = APIRouter()

CleaningServiceDep = Annotated[CleaningService, Depends(get_cleaning_service)]


@router.get(
    "/mapping",
    response_model=ColumnMapping,
    summary="Guess the column mapping",
)
async def get_mapping(
    service: Annotated[TableService, Depends(get_table_service)],
) -> ColumnMapping:
    return guess_column_mapping(service.table.headers)


@router.post(
    "/preview",
    response_model=PricePreviewResponse,
    summary="Preview price updates from a rate-sheet image",
    responses={
        400: {"description": "Missing API key or port column mapping"},
        502: {"description": "Vision call failed or response unparseable"},
    },
)
async def preview_prices(
    request: PricePreviewRequest,
    cleaning: CleaningServiceDep,
) -> PricePreviewResponse:
    mapping = request.mapping or guess_column_mapping(cleaning.table_service.table.headers)
    report = await cleaning.preview_prices(request.image_base64, mapping, request.rules)
    return PricePreviewResponse(
        status=report.status,
        mapping=mapping,
        previews=report.previews,
        ports_found=report.ports_found,
        rows_matched=report.rows_matched,
        extracted_sample=report.extracted_sample,
        table_sample=report.table_sample,
        raw_response=report.raw_response,
    )


@router.post(
    "/apply",
    response_model=PriceApplyResponse,
    summary="Apply accepted price updates",
)
async def apply_prices(
    request: PriceApplyRequest,
    cleaning: CleaningServiceDep,
) -> PriceApplyResponse:
    updated = await cleaning.apply_prices(request.previews)
    return PriceApplyResponse(updated=updated)
