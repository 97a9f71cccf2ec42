"""
Cleaning Routes
===============

API endpoints for LLM-assisted cleaning.

Endpoints:
- POST /cleaning/extract          - Extract profiles from pasted text and append new ones
- GET  /cleaning/progress         - Latest (current, total) progress of the running operation
- POST /cleaning/cancel           - Stop the running operation before its next request
- POST /cleaning/relevance        - Classify unverified rows; remove irrelevant, verify the rest
- GET  /cleaning/prompt/default   - Default relevance prompt ("restore default")
- GET  /cleaning/status-counts    - Unverified / verified row counts
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from datacleaner.api.dependencies import get_cleaning_service, get_table_service
from datacleaner.schemas.requests import ExtractRequest, RelevanceRequest
from datacleaner.schemas.responses import (
    ExtractionResponse,
    MessageResponse,
    PromptResponse,
    RelevanceResponse,
    StatusCountsResponse,
)
from datacleaner.services.cleaning_service import CleaningService, OperationProgress
from datacleaner.services.llm.prompts import SYSTEM_PROMPT_FILTER
from datacleaner.services.table_service import TableService
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

CleaningServiceDep = Annotated[CleaningService, Depends(get_cleaning_service)]


@router.post(
    "/extract",
    response_model=ExtractionResponse,
    summary="Extract profiles from text",
    description=(
        "Splits the text into overlapping line chunks, sends one request per chunk "
        "sequentially, and appends profiles whose 抖音号 is not already in the table. "
        "A failed chunk is reported in `errors` and does not stop the run."
    ),
    responses={
        400: {"description": "Missing API key"},
        409: {"description": "Cancelled, or another operation is running"},
    },
)
async def extract(request: ExtractRequest, cleaning: CleaningServiceDep) -> ExtractionResponse:
    logger.info("Extraction requested", text_length=len(request.text))
    summary = await cleaning.extract(request.text)
    result = summary.result
    return ExtractionResponse(
        status=result.status,
        total_chunks=result.total_chunks,
        succeeded_chunks=result.succeeded_chunks,
        failed_chunks=result.failed_chunks,
        extracted=len(result.profiles),
        added=summary.merge.admitted,
        duplicates_rejected=summary.merge.duplicates_rejected,
        errors=result.errors,
    )


@router.get(
    "/progress",
    response_model=OperationProgress,
    summary="Progress of the running operation",
)
async def get_progress(cleaning: CleaningServiceDep) -> OperationProgress:
    return cleaning.progress


@router.post(
    "/cancel",
    response_model=MessageResponse,
    summary="Cancel the running operation",
)
async def cancel(cleaning: CleaningServiceDep) -> MessageResponse:
    if cleaning.cancel():
        return MessageResponse(status="cancelling", message="Cancellation requested")
    return MessageResponse(status="idle", message="No operation is running")


@router.post(
    "/relevance",
    response_model=RelevanceResponse,
    summary="Relevance-filter unverified rows",
    description=(
        "Sends every unverified row to the model in one batch (or in "
        "`relevance_batch_size` batches). Rows the model names are removed, the "
        "rest become verified. Any failure leaves the table untouched."
    ),
    responses={
        400: {"description": "Missing API key"},
        502: {"description": "Remote call failed or response unparseable"},
    },
)
async def verify_relevance(
    request: RelevanceRequest,
    cleaning: CleaningServiceDep,
) -> RelevanceResponse:
    prompt = request.prompt.strip() if request.prompt else None
    summary = await cleaning.verify_relevance(prompt or None)
    return RelevanceResponse(
        status=summary.status,
        removed=summary.removed,
        verified=summary.verified,
        stale=summary.stale,
        remaining=summary.remaining,
    )


@router.get(
    "/prompt/default",
    response_model=PromptResponse,
    summary="Default relevance prompt",
)
async def get_default_prompt() -> PromptResponse:
    return PromptResponse(prompt=SYSTEM_PROMPT_FILTER)


@router.get(
    "/status-counts",
    response_model=StatusCountsResponse,
    summary="Verification state counts",
)
async def get_status_counts(
    service: Annotated[TableService, Depends(get_table_service)],
) -> StatusCountsResponse:
    return StatusCountsResponse(**service.status_counts())
