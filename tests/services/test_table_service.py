"""
Tests for TableService
======================

Snapshot commits, edits, filters and imports against a file-backed store.
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from conftest import FakeLLMClient, profile
from datacleaner.config.settings import Settings
from datacleaner.schemas.domain import STATUS_COLUMN, Row, Table, VerificationState
from datacleaner.schemas.extraction import ExtractedProfile
from datacleaner.schemas.pricing import PriceUpdatePreview
from datacleaner.services.relevance_service import RelevanceFilter, RelevanceOutcome
from datacleaner.services.table_service import TableService
from datacleaner.storage.kv_store import FileKeyValueStore
from datacleaner.storage.repositories import TableRepository
from datacleaner.utils.errors import (
    IllegalTransitionError,
    RowNotFoundError,
    SecurityError,
    StorageError,
    ValidationError,
)


@pytest.fixture
async def loaded_service(table_service: TableService, sample_table: Table) -> TableService:
    await table_service.import_table(sample_table)
    return table_service


async def reloaded(service: TableService) -> Table:
    """Table as a fresh process would see it."""
    return await TableRepository(service.repository.store).load()


def removal(*ids: int) -> str:
    return json.dumps({"ids_to_remove": list(ids)})


class TestCommit:
    @pytest.mark.asyncio
    async def test_failed_save_keeps_previous_snapshot(self, loaded_service: TableService) -> None:
        before = loaded_service.table
        loaded_service.set_unique("抖音号", True)
        loaded_service.repository.store.set = AsyncMock(side_effect=StorageError("disk full"))

        with pytest.raises(StorageError):
            await loaded_service.add_row({"用户名": "x"})
        with pytest.raises(StorageError):
            await loaded_service.remove_rows([before.rows[0].internal_id])
        with pytest.raises(StorageError):
            await loaded_service.reset()

        assert loaded_service.table is before
        assert len(loaded_service.table) == 4
        assert loaded_service.filters.is_active

    @pytest.mark.asyncio
    async def test_corrupt_store_file_loads_empty_table(self, settings: Settings) -> None:
        path = Path(settings.store_path)
        path.write_text("{not json", encoding="utf-8")
        service = TableService(TableRepository(FileKeyValueStore(path)), settings)

        table = await service.load()
        row = await service.add_row({"用户名": "x"})

        assert len(table) == 0
        assert (await reloaded(service)).find(row.internal_id) is not None


    @pytest.mark.asyncio
    async def test_every_mutation_is_persisted(self, loaded_service: TableService) -> None:
        row = await loaded_service.add_row({"用户名": "新行"})

        persisted = await reloaded(loaded_service)

        assert persisted.find(row.internal_id) is not None
        assert len(persisted) == 5

    @pytest.mark.asyncio
    async def test_load_restores_persisted_table(
        self, loaded_service: TableService, table_repository: TableRepository, settings: Settings
    ) -> None:
        fresh = TableService(table_repository, settings)

        table = await fresh.load()

        assert [r.internal_id for r in table.rows] == [r.internal_id for r in loaded_service.table.rows]

    @pytest.mark.asyncio
    async def test_snapshot_is_replaced_not_mutated(self, loaded_service: TableService) -> None:
        before = loaded_service.table

        await loaded_service.remove_rows([before.rows[0].internal_id])

        assert len(before) == 4
        assert len(loaded_service.table) == 3


class TestEdits:
    @pytest.mark.asyncio
    async def test_add_row_is_blank_and_unverified(self, loaded_service: TableService) -> None:
        row = await loaded_service.add_row()

        assert all(v == "" for v in row.values.values())
        assert set(row.values) == set(loaded_service.table.headers)
        assert row.verification is VerificationState.UNVERIFIED

    @pytest.mark.asyncio
    async def test_add_row_rejects_unknown_column(self, loaded_service: TableService) -> None:
        with pytest.raises(ValidationError):
            await loaded_service.add_row({"nope": 1})

        assert len(loaded_service.table) == 4

    @pytest.mark.asyncio
    async def test_significant_edit_resets_verification(self, loaded_service: TableService) -> None:
        verified = loaded_service.table.rows[2]

        row = await loaded_service.edit_cell(verified.internal_id, "简介", "改了")

        assert row.verification is VerificationState.UNVERIFIED
        assert row.internal_id == verified.internal_id
        assert loaded_service.table.rows[2].get("简介") == "改了"

    @pytest.mark.asyncio
    async def test_other_edit_keeps_verification(self, loaded_service: TableService) -> None:
        verified = loaded_service.table.rows[2]

        row = await loaded_service.edit_cell(verified.internal_id, "粉丝数", "2w")

        assert row.verification is VerificationState.VERIFIED

    @pytest.mark.asyncio
    async def test_edit_unknown_row(self, loaded_service: TableService) -> None:
        with pytest.raises(RowNotFoundError):
            await loaded_service.edit_cell("missing", "简介", "x")

    @pytest.mark.asyncio
    async def test_status_column_not_editable(self, loaded_service: TableService) -> None:
        row_id = loaded_service.table.rows[0].internal_id

        with pytest.raises(ValidationError):
            await loaded_service.edit_cell(row_id, STATUS_COLUMN, "已验证")

    @pytest.mark.asyncio
    async def test_remove_rows_ignores_unknown_ids(self, loaded_service: TableService) -> None:
        first = loaded_service.table.rows[0].internal_id

        removed = await loaded_service.remove_rows([first, "missing"])

        assert removed == 1
        assert loaded_service.table.find(first) is None


class TestFiltersAndView:
    @pytest.mark.asyncio
    async def test_view_columns_include_status(self, loaded_service: TableService) -> None:
        view = loaded_service.view()

        assert view.columns[0] == STATUS_COLUMN
        assert view.total_rows == view.visible_rows == 4

    @pytest.mark.asyncio
    async def test_filter_survives_edits(self, loaded_service: TableService) -> None:
        loaded_service.set_filter(STATUS_COLUMN, ["待检查"])
        assert loaded_service.view().visible_rows == 3

        await loaded_service.add_row({"抖音号": "dy999"})

        assert loaded_service.filters.restrictions
        assert loaded_service.view().visible_rows == 4

    @pytest.mark.asyncio
    async def test_facets_over_full_table(self, loaded_service: TableService) -> None:
        loaded_service.set_filter("抖音号", ["dy001"])

        facets = loaded_service.facets("抖音号")

        assert len(facets) == 4
        assert facets[-1].is_blank

    @pytest.mark.asyncio
    async def test_unknown_column_rejected(self, loaded_service: TableService) -> None:
        with pytest.raises(ValidationError):
            loaded_service.set_filter("nope", ["x"])
        with pytest.raises(ValidationError):
            loaded_service.facets("nope")

    @pytest.mark.asyncio
    async def test_keep_visible_rows(self, loaded_service: TableService) -> None:
        loaded_service.set_filter("简介", ["欧美FBA头程", "双清包税"])

        removed = await loaded_service.keep_visible_rows()

        assert removed == 2
        assert [r.get("抖音号") for r in loaded_service.table.rows] == ["dy001", "dy003"]
        assert not loaded_service.filters.is_active
        assert len(await reloaded(loaded_service)) == 2

    @pytest.mark.asyncio
    async def test_unique_toggle(self, loaded_service: TableService) -> None:
        await loaded_service.add_row({"抖音号": "dy001"})

        loaded_service.set_unique("抖音号", True)
        assert loaded_service.view().visible_rows == 4

        loaded_service.set_unique("抖音号", False)
        assert loaded_service.view().visible_rows == 5

    @pytest.mark.asyncio
    async def test_export_writes_filtered_view(self, loaded_service: TableService) -> None:
        loaded_service.set_filter("抖音号", ["dy002"])

        text = loaded_service.export("csv").decode("utf-8-sig")

        lines = text.splitlines()
        assert lines[0].split(",")[0] == STATUS_COLUMN
        assert len(lines) == 2
        assert "dy002" in lines[1]


class TestRelevanceAndPrices:
    @pytest.mark.asyncio
    async def test_apply_relevance(self, loaded_service: TableService) -> None:
        rows = loaded_service.table.rows
        outcome = RelevanceOutcome(
            removed_ids=[rows[1].internal_id],
            verified_ids=[rows[0].internal_id, rows[3].internal_id],
        )

        summary = await loaded_service.apply_relevance(outcome)

        assert (summary.removed, summary.verified, summary.remaining) == (1, 2, 3)
        assert loaded_service.status_counts() == {"unverified": 0, "verified": 3}

    @pytest.mark.asyncio
    async def test_apply_relevance_skips_rows_deleted_meanwhile(self, loaded_service: TableService) -> None:
        rows = loaded_service.table.rows
        outcome = RelevanceOutcome(verified_ids=[rows[0].internal_id, rows[1].internal_id])
        await loaded_service.remove_rows([rows[1].internal_id])

        summary = await loaded_service.apply_relevance(outcome)

        assert summary.verified == 1

    @pytest.mark.asyncio
    async def test_row_edited_during_classification_stays_unverified(self, loaded_service: TableService) -> None:
        outcome = await RelevanceFilter(FakeLLMClient([removal()])).classify(loaded_service.table.rows)
        edited = loaded_service.table.rows[0]
        await loaded_service.edit_cell(edited.internal_id, "简介", "完全不同的新简介")

        summary = await loaded_service.apply_relevance(outcome)

        row = loaded_service.table.find(edited.internal_id)
        assert row.verification is VerificationState.UNVERIFIED
        assert row.get("简介") == "完全不同的新简介"
        assert (summary.verified, summary.stale) == (2, 1)
        assert loaded_service.status_counts() == {"unverified": 1, "verified": 3}

    @pytest.mark.asyncio
    async def test_row_edited_during_classification_is_not_removed(self, loaded_service: TableService) -> None:
        outcome = await RelevanceFilter(FakeLLMClient([removal(1)])).classify(loaded_service.table.rows)
        edited = loaded_service.table.rows[0]
        await loaded_service.edit_cell(edited.internal_id, "用户名", "美食博主")

        summary = await loaded_service.apply_relevance(outcome)

        assert summary.removed == 0
        assert loaded_service.table.find(edited.internal_id) is not None

    @pytest.mark.asyncio
    async def test_other_edit_during_classification_still_verifies(self, loaded_service: TableService) -> None:
        outcome = await RelevanceFilter(FakeLLMClient([removal()])).classify(loaded_service.table.rows)
        edited = loaded_service.table.rows[0]
        await loaded_service.edit_cell(edited.internal_id, "粉丝数", "3w")

        summary = await loaded_service.apply_relevance(outcome)

        assert summary.stale == 0
        assert loaded_service.table.find(edited.internal_id).verification is VerificationState.VERIFIED

    @pytest.mark.asyncio
    async def test_apply_relevance_rejects_verifying_twice(self, loaded_service: TableService) -> None:
        verified = loaded_service.table.rows[2]

        with pytest.raises(IllegalTransitionError):
            await loaded_service.apply_relevance(RelevanceOutcome(verified_ids=[verified.internal_id]))

        assert loaded_service.table.rows[2] is verified

    @pytest.mark.asyncio
    async def test_nothing_to_verify_is_a_no_op(self, loaded_service: TableService) -> None:
        before = loaded_service.table

        summary = await loaded_service.apply_relevance(RelevanceOutcome(status="nothing_to_verify"))

        assert summary.status == "nothing_to_verify"
        assert loaded_service.table is before

    @pytest.mark.asyncio
    async def test_apply_price_updates_highlights(self, loaded_service: TableService) -> None:
        row = loaded_service.table.rows[0]
        preview = PriceUpdatePreview(row_id=row.internal_id, row_index=1, port="X", updates={"粉丝数": 99})

        assert await loaded_service.apply_price_updates([preview]) == 1
        updated = loaded_service.table.rows[0]
        assert updated.get("粉丝数") == 99
        assert updated.meta.highlighted == frozenset({"粉丝数"})

        await loaded_service.edit_cell(row.internal_id, "粉丝数", 100)
        assert loaded_service.table.rows[0].meta.highlighted == frozenset()

    @pytest.mark.asyncio
    async def test_price_update_unknown_column(self, loaded_service: TableService) -> None:
        row = loaded_service.table.rows[0]
        preview = PriceUpdatePreview(row_id=row.internal_id, row_index=1, port="X", updates={"P45": 1})

        with pytest.raises(ValidationError):
            await loaded_service.apply_price_updates([preview])


class TestImport:
    @pytest.mark.asyncio
    async def test_replace_resets_filters(self, loaded_service: TableService) -> None:
        loaded_service.set_unique("抖音号", True)

        imported = Table(headers=["a"], rows=[Row.create({"a": 1}, ["a"])])

        summary = await loaded_service.import_table(imported, "replace")

        assert summary.added == 1
        assert loaded_service.table.headers == ["a"]
        assert not loaded_service.filters.is_active

    @pytest.mark.asyncio
    async def test_append_widens_headers_and_dedups(self, loaded_service: TableService) -> None:
        headers = ["抖音号", "备注"]
        imported = Table(
            headers=headers,
            rows=[
                Row.create({"抖音号": "dy001", "备注": "dup"}, headers),
                Row.create({"抖音号": "dy100", "备注": "new"}, headers),
            ],
        )

        summary = await loaded_service.import_table(imported, "append")

        assert summary.added == 1
        assert summary.duplicates_rejected == 1
        assert loaded_service.table.headers[-1] == "备注"
        assert all("备注" in r.values for r in loaded_service.table.rows)
        assert loaded_service.table.rows[-1].get("抖音号") == "dy100"

    @pytest.mark.asyncio
    async def test_import_file(self, table_service: TableService, tmp_path: Path) -> None:
        path = tmp_path / "in.csv"
        path.write_text(f"{STATUS_COLUMN},用户名,抖音号\n已验证,A,dy1\n", encoding="utf-8")

        summary = await table_service.import_file(path)

        assert summary.imported == 1
        assert table_service.table.headers == ["用户名", "抖音号"]
        assert table_service.table.rows[0].verification is VerificationState.UNVERIFIED

    @pytest.mark.asyncio
    async def test_import_outside_allowed_dir(self, table_repository, settings: Settings, tmp_path: Path) -> None:
        allowed = tmp_path / "allowed"
        allowed.mkdir()
        outside = tmp_path / "x.csv"
        outside.write_text("a\n1\n", encoding="utf-8")
        settings.allowed_import_dir = str(allowed)

        with pytest.raises(SecurityError):
            await TableService(table_repository, settings).import_file(outside)

    @pytest.mark.asyncio
    async def test_append_profiles(self, table_service: TableService) -> None:
        profiles = [ExtractedProfile.model_validate(profile("dy1")), ExtractedProfile.model_validate(profile("dy1"))]

        merge = await table_service.append_profiles(profiles)

        assert merge.admitted == 1
        assert table_service.table.rows[0].get("用户名") == "user-dy1"

    @pytest.mark.asyncio
    async def test_reset(self, loaded_service: TableService) -> None:
        loaded_service.set_unique("抖音号", True)

        await loaded_service.reset()

        assert len(loaded_service.table) == 0
        assert not loaded_service.filters.is_active
        assert len(await reloaded(loaded_service)) == 0
