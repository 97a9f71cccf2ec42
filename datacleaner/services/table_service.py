"""
Table Service
=============

Single owner of the in-memory table and the grid filter state.

Every mutation builds a complete new Table and commits it in one step:
the snapshot is persisted, then the reference is swapped. Readers never
observe a half-updated table, and a failed save leaves the previous
snapshot in place. Filter state lives in memory only; it is reset
when the table is replaced wholesale (import, reset) or cleared by the user,
never by individual edits.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

from datacleaner.api.metrics import (
    DUPLICATES_REJECTED,
    PRICE_UPDATES_APPLIED,
    ROWS_REMOVED,
    ROWS_VERIFIED,
    TABLE_ROWS,
)
from datacleaner.config.settings import Settings, get_settings
from datacleaner.ingest import table_io
from datacleaner.schemas.domain import (
    STATUS_COLUMN,
    CellValue,
    FilterState,
    Row,
    Table,
)
from datacleaner.schemas.extraction import ExtractedProfile
from datacleaner.schemas.pricing import PriceUpdatePreview
from datacleaner.services import grid_filter
from datacleaner.services.deduplication_service import (
    DeduplicationService,
    MergeResult,
    profile_to_values,
)
from datacleaner.services.price_updater import apply_price_updates
from datacleaner.services.relevance_service import RelevanceOutcome
from datacleaner.services.verification import mark_verified, reset_on_edit
from datacleaner.storage.repositories import TableRepository
from datacleaner.utils.errors import RowNotFoundError, ValidationError
from datacleaner.utils.file_reader import validate_import_file
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

ImportMode = Literal["replace", "append"]


@dataclass
class TableView:
    """Visible subset of the table as the grid shows it."""

    columns: list[str]
    rows: list[Row]
    total_rows: int
    filters: FilterState

    @property
    def visible_rows(self) -> int:
        return len(self.rows)


@dataclass
class ImportSummary:
    mode: str
    imported: int
    added: int
    duplicates_rejected: int = 0
    headers: list[str] = field(default_factory=list)


@dataclass
class RelevanceSummary:
    status: str
    removed: int = 0
    verified: int = 0
    stale: int = 0
    remaining: int = 0


class TableService:
    """
    Owns the table snapshot; all writes go through ``_commit``.

    Example:
        service = TableService(TableRepository(store))
        await service.load()
        await service.edit_cell(row_id, "简介", "跨境物流")
        view = service.view()
    """

    def __init__(
        self,
        repository: TableRepository,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.repository = repository
        self.deduplicator = DeduplicationService(self.settings.natural_key_column)
        self._table = Table()
        self._filters = FilterState()

    # -------------------------------------------------------------------------
    # Snapshot access
    # -------------------------------------------------------------------------

    @property
    def table(self) -> Table:
        return self._table

    @property
    def filters(self) -> FilterState:
        return self._filters

    async def load(self) -> Table:
        """Load the persisted table (startup)."""
        self._table = await self.repository.load()
        self._filters = FilterState()
        TABLE_ROWS.set(len(self._table))
        return self._table

    async def _commit(self, table: Table, reason: str) -> Table:
        """Persist a new snapshot, then swap it in."""
        await self.repository.save(table)
        self._table = table
        TABLE_ROWS.set(len(table))
        logger.debug("table.committed", reason=reason, rows=len(table))
        return table

    def _require_row(self, row_id: str) -> Row:
        row = self._table.find(row_id)
        if row is None:
            raise RowNotFoundError("Row not found", details={"row_id": row_id})
        return row

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    def columns(self) -> list[str]:
        return table_io.export_columns(self._table, self.settings.show_status_column)

    def visible_rows(self) -> list[Row]:
        return grid_filter.apply_filters(self._table.rows, self._filters)

    def view(self) -> TableView:
        return TableView(
            columns=self.columns(),
            rows=self.visible_rows(),
            total_rows=len(self._table),
            filters=self._filters,
        )

    def facets(self, column: str) -> list[grid_filter.FacetValue]:
        """Distinct values of a column over the full table."""
        self._check_column(column, allow_status=True)
        return grid_filter.distinct_values(self._table.rows, column)

    def status_counts(self) -> dict[str, int]:
        return self._table.count_by_state()

    def export(self, fmt: table_io.ExportFormat = "xlsx") -> bytes:
        """Serialize the currently filtered view, in view column order."""
        view = self.view()
        logger.info("table.exported", format=fmt, rows=view.visible_rows)
        return table_io.export_rows(view.columns, view.rows, fmt)

    def _check_column(self, column: str, allow_status: bool = False) -> None:
        if allow_status and column == STATUS_COLUMN:
            return
        if column not in self._table.headers:
            raise ValidationError(f"Unknown column: {column}", details={"column": column})

    # -------------------------------------------------------------------------
    # Filter state
    # -------------------------------------------------------------------------

    def set_filter(self, column: str, selected: Iterable[str]) -> FilterState:
        self._check_column(column, allow_status=True)
        all_values = [f.value for f in grid_filter.distinct_values(self._table.rows, column)]
        self._filters = grid_filter.set_selection(self._filters, column, selected, all_values)
        return self._filters

    def clear_filter(self, column: str) -> FilterState:
        self._filters = grid_filter.clear_column(self._filters, column)
        return self._filters

    def set_unique(self, column: str, enabled: bool) -> FilterState:
        self._check_column(column, allow_status=True)
        if enabled:
            self._filters = grid_filter.enable_unique(self._filters, column)
        else:
            self._filters = grid_filter.disable_unique(self._filters, column)
        return self._filters

    def clear_filters(self) -> FilterState:
        self._filters = grid_filter.clear_filters()
        return self._filters

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    async def add_row(self, values: Optional[Mapping[str, CellValue]] = None) -> Row:
        """Append a manual row (blank unless values are given), unverified."""
        values = dict(values or {})
        for column in values:
            self._check_column(column)
        row = Row.create(values, self._table.headers)
        await self._commit(self._table.with_rows([*self._table.rows, row]), "add_row")
        return row

    async def edit_cell(self, row_id: str, column: str, value: CellValue) -> Row:
        """
        Manual edit of one cell.

        A significant column edit resets verification; the edited column leaves
        the row's highlight set.
        """
        if column == STATUS_COLUMN:
            raise ValidationError("The status column is derived and cannot be edited")
        self._check_column(column)
        current = self._require_row(row_id)

        row = current.with_values({column: value})
        row = reset_on_edit(row, column, self.settings.significant_columns)
        if column in row.meta.highlighted:
            row = row.with_meta(highlighted=row.meta.highlighted - {column})

        rows = [row if r.internal_id == row_id else r for r in self._table.rows]
        await self._commit(self._table.with_rows(rows), "edit_cell")
        if row.verification is not current.verification:
            logger.info("table.row_reset_to_unverified", row_id=row_id, column=column)
        return row

    async def remove_rows(self, row_ids: Iterable[str], reason: str = "manual") -> int:
        ids = set(row_ids)
        rows = [r for r in self._table.rows if r.internal_id not in ids]
        removed = len(self._table) - len(rows)
        if removed:
            await self._commit(self._table.with_rows(rows), f"remove_{reason}")
            ROWS_REMOVED.labels(reason=reason).inc(removed)
        return removed

    async def keep_visible_rows(self) -> int:
        """Delete every row the current filter hides, then clear the filter."""
        hidden = grid_filter.hidden_ids(self._table.rows, self._filters)
        removed = await self.remove_rows(hidden, reason="filter")
        self._filters = FilterState()
        logger.info("table.kept_visible_rows", removed=removed, remaining=len(self._table))
        return removed

    async def append_records(
        self,
        records: Iterable[Mapping[str, CellValue]],
        source: str = "extraction",
    ) -> MergeResult:
        """Append records through natural-key deduplication."""
        merge = self.deduplicator.merge(self._table, records)
        if merge.duplicates_rejected:
            DUPLICATES_REJECTED.labels(source=source).inc(merge.duplicates_rejected)
        if merge.rows:
            await self._commit(
                self._table.with_rows([*self._table.rows, *merge.rows]), f"append_{source}"
            )
        return merge

    async def append_profiles(self, profiles: Iterable[ExtractedProfile]) -> MergeResult:
        return await self.append_records((profile_to_values(p) for p in profiles), "extraction")

    async def apply_relevance(self, outcome: RelevanceOutcome) -> RelevanceSummary:
        """
        Apply a relevance decision as one commit.

        Removed rows are dropped and sent rows are marked verified. Rows deleted
        while the request was in flight are skipped. Rows whose sent values were
        edited in the meantime are left untouched and stay unverified.
        """
        if outcome.status == "nothing_to_verify":
            return RelevanceSummary(status=outcome.status, remaining=len(self._table))

        removed = set(outcome.removed_ids)
        verified = set(outcome.verified_ids)
        rows: list[Row] = []
        verified_count = 0
        stale_count = 0
        for row in self._table.rows:
            sent = outcome.sent_values.get(row.internal_id)
            if sent is not None and any(row.get(c) != v for c, v in sent.items()):
                stale_count += 1
                rows.append(row)
                continue
            if row.internal_id in removed:
                continue
            if row.internal_id in verified:
                row = mark_verified(row)
                verified_count += 1
            rows.append(row)

        removed_count = len(self._table) - len(rows)
        await self._commit(self._table.with_rows(rows), "relevance")
        ROWS_REMOVED.labels(reason="relevance").inc(removed_count)
        ROWS_VERIFIED.inc(verified_count)

        logger.info(
            "table.relevance_applied",
            removed=removed_count,
            verified=verified_count,
            stale=stale_count,
            remaining=len(rows),
        )
        return RelevanceSummary(
            status="applied",
            removed=removed_count,
            verified=verified_count,
            stale=stale_count,
            remaining=len(rows),
        )

    async def apply_price_updates(self, previews: Sequence[PriceUpdatePreview]) -> int:
        unknown = sorted(
            {c for p in previews for c in p.updates if c not in self._table.headers}
        )
        if unknown:
            raise ValidationError("Price update targets unknown columns", details={"columns": unknown})
        rows, updated = apply_price_updates(self._table.rows, previews)
        if updated:
            await self._commit(self._table.with_rows(rows), "price_update")
            PRICE_UPDATES_APPLIED.inc(updated)
        return updated

    async def import_table(self, imported: Table, mode: ImportMode = "replace") -> ImportSummary:
        """
        Replace the table with an imported one, or append its rows.

        Append merges headers (new columns go last) and routes rows through the
        deduplicator when the imported data has the natural-key column.
        """
        if mode == "replace":
            await self._commit(imported, "import_replace")
            self._filters = FilterState()
            logger.info("table.imported", mode=mode, rows=len(imported))
            return ImportSummary(
                mode=mode,
                imported=len(imported),
                added=len(imported),
                headers=list(imported.headers),
            )

        headers = list(self._table.headers)
        for header in imported.headers:
            if header not in headers:
                headers.append(header)
        widened = Table(
            headers=headers,
            rows=[
                row.with_values({h: "" for h in headers if h not in row.values})
                for row in self._table.rows
            ],
        )

        records = [row.values for row in imported.rows]
        if self.settings.natural_key_column in imported.headers:
            merge = self.deduplicator.merge(widened, records, headers=headers)
        else:
            merge = MergeResult(
                rows=[Row.create(dict(r), headers) for r in records],
                total_incoming=len(records),
            )
        if merge.duplicates_rejected:
            DUPLICATES_REJECTED.labels(source="import").inc(merge.duplicates_rejected)

        await self._commit(widened.with_rows([*widened.rows, *merge.rows]), "import_append")
        self._filters = FilterState()
        logger.info(
            "table.imported",
            mode=mode,
            rows=len(imported),
            added=merge.admitted,
            duplicates=merge.duplicates_rejected,
        )
        return ImportSummary(
            mode=mode,
            imported=len(imported),
            added=merge.admitted,
            duplicates_rejected=merge.duplicates_rejected,
            headers=headers,
        )

    async def import_file(self, file_path: str | Path, mode: ImportMode = "replace") -> ImportSummary:
        path = validate_import_file(
            file_path,
            allowed_base_dir=self.settings.allowed_import_dir,
            max_size_mb=self.settings.max_file_size_mb,
        )
        return await self.import_table(table_io.read_table(path), mode)

    async def reset(self) -> None:
        """Empty table with default headers; filters cleared."""
        await self._commit(Table(), "reset")
        self._filters = FilterState()
        logger.info("table.reset")
