"""
Pydantic Response Models
========================

API response schemas for the data cleaner endpoints.
Ensures consistent response structure across all endpoints.
"""

from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from datacleaner.schemas.domain import CellValue, FilterState, Row
from datacleaner.schemas.extraction import ChunkError
from datacleaner.schemas.pricing import ColumnMapping, PriceUpdatePreview


class RowResponse(BaseModel):
    """
    One row as shown in the grid.

    ``values`` follows the view's column order and includes the derived
    status column when it is enabled.
    """

    id: str
    verification: str
    highlighted: list[str] = Field(default_factory=list)
    values: dict[str, CellValue]

    @classmethod
    def from_row(cls, row: Row, columns: list[str]) -> "RowResponse":
        return cls(
            id=row.internal_id,
            verification=row.verification.value,
            highlighted=sorted(row.meta.highlighted),
            values={column: row.display(column) for column in columns},
        )


class FilterStateResponse(BaseModel):
    restrictions: dict[str, list[str]] = Field(default_factory=dict)
    unique_columns: list[str] = Field(default_factory=list)
    active: bool = False

    @classmethod
    def from_state(cls, state: FilterState) -> "FilterStateResponse":
        return cls(
            restrictions={k: sorted(v) for k, v in state.restrictions.items()},
            unique_columns=list(state.unique_columns),
            active=state.is_active,
        )


class StatusCountsResponse(BaseModel):
    unverified: int = 0
    verified: int = 0


class TableViewResponse(BaseModel):
    """
    Response for GET /table.

    Attributes:
        columns: View column order (status column first when enabled)
        headers: Stored headers
        rows: Visible rows, in table order
        total_rows: Rows in the table
        visible_rows: Rows passing the current filter
    """

    columns: list[str]
    headers: list[str]
    rows: list[RowResponse]
    total_rows: int
    visible_rows: int
    filters: FilterStateResponse
    status_counts: StatusCountsResponse


class FacetValueResponse(BaseModel):
    value: str
    label: str
    count: int
    selected: bool = True


class FacetsResponse(BaseModel):
    """Distinct values of a column over the full table."""

    column: str
    values: list[FacetValueResponse]
    unique_only: bool = False


class ImportResponse(BaseModel):
    mode: Literal["replace", "append"]
    imported: int
    added: int
    duplicates_rejected: int = 0
    headers: list[str]


class ExtractionResponse(BaseModel):
    """
    Response for POST /cleaning/extract.

    ``status`` is 'empty', 'success', 'partial' or 'failed'. Failed chunks are
    listed with their diagnostics.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "partial",
                "total_chunks": 3,
                "succeeded_chunks": 2,
                "failed_chunks": 1,
                "extracted": 40,
                "added": 37,
                "duplicates_rejected": 3,
                "errors": [],
            }
        }
    )

    status: Annotated[str, Field(description="Overall extraction outcome")]
    total_chunks: int
    succeeded_chunks: int
    failed_chunks: int
    extracted: Annotated[int, Field(description="Profiles returned by the model")]
    added: Annotated[int, Field(description="Rows appended after duplicate detection")]
    duplicates_rejected: int
    errors: list[ChunkError] = Field(default_factory=list)


class RelevanceResponse(BaseModel):
    """'applied' or 'nothing_to_verify' (a no-op, not an error)."""

    status: str
    removed: int = 0
    verified: int = 0
    stale: int = 0
    remaining: int = 0


class PromptResponse(BaseModel):
    prompt: str


class PricePreviewResponse(BaseModel):
    """
    Response for POST /prices/preview.

    Diagnostics are always included so a systematic mismatch (wrong column
    mapped) can be spotted.
    """

    status: Literal["matched", "no_matches"]
    mapping: ColumnMapping
    previews: list[PriceUpdatePreview]
    ports_found: int
    rows_matched: int
    extracted_sample: list[str]
    table_sample: list[str]
    raw_response: Optional[str] = None


class PriceApplyResponse(BaseModel):
    updated: int


class ApiKeyStatusResponse(BaseModel):
    configured: bool
    masked: Optional[str] = None
    source: Optional[Literal["store", "environment"]] = None


class MessageResponse(BaseModel):
    status: str
    message: str


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    raw_response: Optional[str] = None
