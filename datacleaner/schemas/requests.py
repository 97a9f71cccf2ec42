"""
Pydantic Request Models
=======================

API request bodies for the data cleaner endpoints.
"""

from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from datacleaner.schemas.domain import CellValue
from datacleaner.schemas.pricing import AdjustmentRule, ColumnMapping, PriceUpdatePreview


class ExtractRequest(BaseModel):
    """
    Request for POST /cleaning/extract.

    Attributes:
        text: Raw pasted text; split into overlapping line chunks server-side
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"text": "示例用户A\n抖音号: dy123456\n粉丝: 10.5w\n简介: 专注欧美物流"}
        }
    )

    text: Annotated[str, Field(description="Unstructured text to extract profiles from")]


class RelevanceRequest(BaseModel):
    """Request for POST /cleaning/relevance. A blank prompt uses the default."""

    prompt: Annotated[
        Optional[str],
        Field(description="Classification instructions"),
    ] = None


class RowCreateRequest(BaseModel):
    values: Annotated[
        dict[str, CellValue],
        Field(default_factory=dict, description="Initial values; missing headers are blank"),
    ]


class CellEditRequest(BaseModel):
    """Request for PATCH /table/rows/{row_id}."""

    column: Annotated[str, Field(min_length=1, description="Header name")]
    value: Annotated[CellValue, Field(description="New cell value")] = ""


class RemoveRowsRequest(BaseModel):
    row_ids: Annotated[list[str], Field(min_length=1, description="Internal row ids")]


class ImportRequest(BaseModel):
    """
    Request for POST /table/import.

    Attributes:
        file_path: Path of a CSV/XLSX file readable by the service
        mode: replace the table, or append through duplicate detection
    """

    file_path: Annotated[str, Field(min_length=1, description="Path to CSV/XLSX file")]
    mode: Annotated[
        Literal["replace", "append"],
        Field(description="Replace the table or append to it"),
    ] = "replace"


class FilterSelectionRequest(BaseModel):
    """Working selection of normalized values ("" is the blank value)."""

    selected: Annotated[list[str], Field(description="Allowed values")]


class UniqueToggleRequest(BaseModel):
    enabled: Annotated[bool, Field(description="Unique-only mode on/off")]


class PricePreviewRequest(BaseModel):
    """
    Request for POST /prices/preview.

    Attributes:
        image_base64: Rate-sheet image, bare base64 or data URI
        mapping: Column mapping; guessed from headers when omitted
        rules: Per-tier adjustment rules (P45, P100, ...)
    """

    image_base64: Annotated[str, Field(min_length=1, description="Image payload")]
    mapping: Annotated[
        Optional[ColumnMapping],
        Field(description="Port and tier columns"),
    ] = None
    rules: Annotated[
        dict[str, AdjustmentRule],
        Field(default_factory=dict, description="Tier -> adjustment rule"),
    ]


class PriceApplyRequest(BaseModel):
    previews: Annotated[list[PriceUpdatePreview], Field(description="Accepted previews")]


class ApiKeyRequest(BaseModel):
    api_key: Annotated[str, Field(min_length=1, description="OpenRouter API key")]
