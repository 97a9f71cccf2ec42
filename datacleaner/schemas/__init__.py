"""
Schemas
=======

Pydantic models for the table domain, LLM contracts, pricing and the API.
"""

from datacleaner.schemas.domain import (
    DEFAULT_HEADERS,
    STATUS_COLUMN,
    FilterState,
    Row,
    RowMeta,
    Table,
    VerificationState,
)
from datacleaner.schemas.extraction import ChunkError, ExtractedProfile, ExtractionResult

__all__ = [
    "DEFAULT_HEADERS",
    "STATUS_COLUMN",
    "ChunkError",
    "ExtractedProfile",
    "ExtractionResult",
    "FilterState",
    "Row",
    "RowMeta",
    "Table",
    "VerificationState",
]
