"""
Settings Routes
===============

API endpoints for the saved OpenRouter API key.

Endpoints:
- GET    /settings/api-key - Whether a key is configured (masked)
- PUT    /settings/api-key - Save a key
- DELETE /settings/api-key - Remove the saved key
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from datacleaner.api.dependencies import get_app_settings, get_credentials
from datacleaner.config.settings import Settings
from datacleaner.schemas.requests import ApiKeyRequest
from datacleaner.schemas.responses import ApiKeyStatusResponse
from datacleaner.storage.repositories import CredentialRepository, mask_key

router = APIRouter()

CredentialsDep = Annotated[CredentialRepository, Depends(get_credentials)]


async def _key_status(credentials: CredentialRepository, settings: Settings) -> ApiKeyStatusResponse:
    masked = await credentials.masked()
    if masked:
        return ApiKeyStatusResponse(configured=True, masked=masked, source="store")
    if settings.openrouter_api_key:
        return ApiKeyStatusResponse(
            configured=True,
            masked=mask_key(settings.openrouter_api_key),
            source="environment",
        )
    return ApiKeyStatusResponse(configured=False)


@router.get("/api-key", response_model=ApiKeyStatusResponse, summary="API key status")
async def get_api_key(
    credentials: CredentialsDep,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> ApiKeyStatusResponse:
    return await _key_status(credentials, settings)


@router.put("/api-key", response_model=ApiKeyStatusResponse, summary="Save the API key")
async def set_api_key(
    request: ApiKeyRequest,
    credentials: CredentialsDep,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> ApiKeyStatusResponse:
    await credentials.set(request.api_key)
    return await _key_status(credentials, settings)


@router.delete("/api-key", response_model=ApiKeyStatusResponse, summary="Remove the saved API key")
async def clear_api_key(
    credentials: CredentialsDep,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> ApiKeyStatusResponse:
    await credentials.clear()
    return await _key_status(credentials, settings)
