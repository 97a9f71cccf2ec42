"""
Table Routes
============

API endpoints for the cleaning table and its grid filter.

Endpoints:
- GET    /table                          - Filtered view, counts and filter state
- POST   /table/rows                     - Add a row (blank unless values given)
- PATCH  /table/rows/{row_id}            - Edit one cell
- DELETE /table/rows                     - Remove rows by id
- POST   /table/import                   - Import CSV/XLSX (replace or append)
- GET    /table/export                   - Download the filtered view
- POST   /table/reset                    - Clear table, filters and progress
- GET    /table/filters/{column}/values  - Distinct values with counts
- PUT    /table/filters/{column}         - Set a column's allowed values
- DELETE /table/filters/{column}         - Drop a column's restriction
- PUT    /table/filters/{column}/unique  - Toggle unique-only mode
- DELETE /table/filters                  - Clear all filters
- POST   /table/filters/keep-visible     - Delete rows hidden by the filter
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response

from datacleaner.api.dependencies import get_cleaning_service, get_table_service
from datacleaner.schemas.requests import (
    CellEditRequest,
    FilterSelectionRequest,
    ImportRequest,
    RemoveRowsRequest,
    RowCreateRequest,
    UniqueToggleRequest,
)
from datacleaner.schemas.responses import (
    FacetsResponse,
    FacetValueResponse,
    FilterStateResponse,
    ImportResponse,
    MessageResponse,
    RowResponse,
    StatusCountsResponse,
    TableViewResponse,
)
from datacleaner.services.cleaning_service import CleaningService
from datacleaner.services.table_service import TableService
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

TableServiceDep = Annotated[TableService, Depends(get_table_service)]

_MEDIA_TYPES = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv; charset=utf-8",
}


def build_view_response(service: TableService) -> TableViewResponse:
    view = service.view()
    counts = service.status_counts()
    return TableViewResponse(
        columns=view.columns,
        headers=list(service.table.headers),
        rows=[RowResponse.from_row(row, view.columns) for row in view.rows],
        total_rows=view.total_rows,
        visible_rows=view.visible_rows,
        filters=FilterStateResponse.from_state(view.filters),
        status_counts=StatusCountsResponse(**counts),
    )


@router.get(
    "",
    response_model=TableViewResponse,
    summary="Get the filtered table view",
)
async def get_table(service: TableServiceDep) -> TableViewResponse:
    return build_view_response(service)


@router.post(
    "/rows",
    response_model=RowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a row",
)
async def add_row(
    service: TableServiceDep,
    request: RowCreateRequest | None = None,
) -> RowResponse:
    """Append a row. Without values the row is blank; it starts unverified."""
    row = await service.add_row(request.values if request is not None else None)
    return RowResponse.from_row(row, service.columns())


@router.patch(
    "/rows/{row_id}",
    response_model=RowResponse,
    summary="Edit a cell",
    responses={404: {"description": "Row not found"}},
)
async def edit_cell(
    row_id: str,
    request: CellEditRequest,
    service: TableServiceDep,
) -> RowResponse:
    row = await service.edit_cell(row_id, request.column, request.value)
    return RowResponse.from_row(row, service.columns())


@router.delete(
    "/rows",
    response_model=MessageResponse,
    summary="Remove rows",
)
async def remove_rows(request: RemoveRowsRequest, service: TableServiceDep) -> MessageResponse:
    removed = await service.remove_rows(request.row_ids)
    return MessageResponse(status="removed", message=f"Removed {removed} row(s)")


@router.post(
    "/import",
    response_model=ImportResponse,
    summary="Import a CSV/XLSX file",
    responses={
        400: {"description": "Empty or unparseable file"},
        403: {"description": "Path outside the allowed directory"},
        413: {"description": "File too large"},
    },
)
async def import_table(request: ImportRequest, service: TableServiceDep) -> ImportResponse:
    logger.info("Import requested", file_path=request.file_path, mode=request.mode)
    summary = await service.import_file(request.file_path, request.mode)
    return ImportResponse(
        mode=summary.mode,
        imported=summary.imported,
        added=summary.added,
        duplicates_rejected=summary.duplicates_rejected,
        headers=summary.headers,
    )


@router.get(
    "/export",
    summary="Export the filtered view",
    response_class=Response,
)
async def export_table(
    service: TableServiceDep,
    fmt: Annotated[Literal["xlsx", "csv"], Query(alias="format")] = "xlsx",
) -> Response:
    content = service.export(fmt)
    return Response(
        content=content,
        media_type=_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="cleaned_data.{fmt}"'},
    )


@router.post(
    "/reset",
    response_model=MessageResponse,
    summary="Clear the table (the API key is kept)",
)
async def reset_table(
    cleaning: Annotated[CleaningService, Depends(get_cleaning_service)],
) -> MessageResponse:
    await cleaning.reset()
    return MessageResponse(status="reset", message="Table cleared")


# -----------------------------------------------------------------------------
# Grid filter
# -----------------------------------------------------------------------------


@router.get(
    "/filters/{column}/values",
    response_model=FacetsResponse,
    summary="Distinct values of a column",
)
async def get_facets(column: str, service: TableServiceDep) -> FacetsResponse:
    """Counts cover the whole table, not just the filtered view."""
    allowed = service.filters.restrictions.get(column)
    return FacetsResponse(
        column=column,
        values=[
            FacetValueResponse(
                value=facet.value,
                label=facet.label,
                count=facet.count,
                selected=allowed is None or facet.value in allowed,
            )
            for facet in service.facets(column)
        ],
        unique_only=column in service.filters.unique_columns,
    )


@router.put(
    "/filters/{column}",
    response_model=TableViewResponse,
    summary="Set a column's allowed values",
)
async def set_filter(
    column: str,
    request: FilterSelectionRequest,
    service: TableServiceDep,
) -> TableViewResponse:
    service.set_filter(column, request.selected)
    return build_view_response(service)


@router.delete(
    "/filters/{column}",
    response_model=TableViewResponse,
    summary="Remove a column's restriction",
)
async def clear_filter(column: str, service: TableServiceDep) -> TableViewResponse:
    service.clear_filter(column)
    return build_view_response(service)


@router.put(
    "/filters/{column}/unique",
    response_model=TableViewResponse,
    summary="Toggle unique-only mode for a column",
)
async def set_unique(
    column: str,
    request: UniqueToggleRequest,
    service: TableServiceDep,
) -> TableViewResponse:
    service.set_unique(column, request.enabled)
    return build_view_response(service)


@router.delete(
    "/filters",
    response_model=TableViewResponse,
    summary="Clear all filters",
)
async def clear_filters(service: TableServiceDep) -> TableViewResponse:
    service.clear_filters()
    return build_view_response(service)


@router.post(
    "/filters/keep-visible",
    response_model=MessageResponse,
    summary="Delete the rows hidden by the current filter",
)
async def keep_visible(service: TableServiceDep) -> MessageResponse:
    removed = await service.keep_visible_rows()
    return MessageResponse(status="removed", message=f"Removed {removed} hidden row(s)")
