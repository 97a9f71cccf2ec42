"""
API Dependencies
================

Dependency providers for route handlers. The service objects are created
once in the application lifespan and kept on ``app.state``; tests replace
them through ``app.dependency_overrides``.
"""

from fastapi import Request

from datacleaner.config.settings import Settings
from datacleaner.services.cleaning_service import CleaningService
from datacleaner.services.table_service import TableService
from datacleaner.storage.repositories import CredentialRepository


def get_table_service(request: Request) -> TableService:
    """TableService owning the current table snapshot."""
    return request.app.state.table_service


def get_cleaning_service(request: Request) -> CleaningService:
    """CleaningService running remote operations."""
    return request.app.state.cleaning_service


def get_credentials(request: Request) -> CredentialRepository:
    return request.app.state.credentials


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings
