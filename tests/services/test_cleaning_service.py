"""
Tests for CleaningService
=========================

Operation orchestration: single-flight guard, progress, cancellation and
credential precedence.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from conftest import FakeLLMClient, make_row, profile, profiles_json
from datacleaner.config.settings import Settings
from datacleaner.schemas.domain import DEFAULT_HEADERS, Row, Table
from datacleaner.schemas.pricing import ColumnMapping
from datacleaner.services.cleaning_service import CleaningService
from datacleaner.services.table_service import TableService
from datacleaner.storage.repositories import CredentialRepository
from datacleaner.utils.errors import (
    ConfigurationError,
    OperationCancelled,
    OperationInProgressError,
    ParseError,
    RemoteError,
    StorageError,
)


class ClientRecorder:
    """Client factory returning a prepared fake and remembering the key it was given."""

    def __init__(self, client: FakeLLMClient):
        self.client = client
        self.keys: list = []

    def __call__(self, api_key):
        self.keys.append(api_key)
        return self.client


def make_cleaning(
    table_service: TableService,
    credentials: CredentialRepository,
    settings: Settings,
    client: FakeLLMClient,
) -> tuple[CleaningService, ClientRecorder]:
    factory = ClientRecorder(client)
    return CleaningService(table_service, credentials, settings, client_factory=factory), factory


class TestExtract:
    async def test_extract_appends_and_reports(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        await table_service.import_table(Table(rows=[make_row("dy1")]))
        client = FakeLLMClient([profiles_json(profile("dy1"), profile("dy2"), profile(""))])
        cleaning, _ = make_cleaning(table_service, credentials, settings, client)

        summary = await cleaning.extract("some pasted text")

        assert summary.status == "success"
        assert summary.merge.admitted == 2
        assert summary.merge.duplicates_rejected == 1
        assert len(table_service.table) == 3
        assert cleaning.progress.state == "completed"
        assert (cleaning.progress.current, cleaning.progress.total) == (1, 1)
        assert client.closed

    async def test_partial_failure_still_appends(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        settings.chunk_size_lines = 2
        settings.chunk_overlap_lines = 0
        client = FakeLLMClient([profiles_json(profile("a")), RemoteError("boom", status_code=500)])
        cleaning, _ = make_cleaning(table_service, credentials, settings, client)

        summary = await cleaning.extract("l1\nl2\nl3\nl4")

        assert summary.status == "partial"
        assert summary.result.errors[0].error_message == "boom"
        assert len(table_service.table) == 1

    async def test_missing_credential(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        client = FakeLLMClient([], api_key=None)
        cleaning, _ = make_cleaning(table_service, credentials, settings, client)

        with pytest.raises(ConfigurationError):
            await cleaning.extract("text")

        assert cleaning.progress.state == "failed"
        assert client.calls == []
        assert client.closed

    async def test_credential_read_failure_marks_operation_failed(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        credentials.get = AsyncMock(side_effect=StorageError("Redis read failed"))
        cleaning, factory = make_cleaning(table_service, credentials, settings, FakeLLMClient())

        with pytest.raises(StorageError):
            await cleaning.extract("text")

        assert cleaning.progress.state == "failed"
        assert factory.keys == []

        credentials.get = AsyncMock(return_value="sk-saved-key-123")
        summary = await cleaning.verify_relevance()
        assert summary.status == "nothing_to_verify"

    async def test_saved_key_is_passed_to_factory(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        await credentials.set("sk-saved-key-123")
        cleaning, factory = make_cleaning(
            table_service, credentials, settings, FakeLLMClient([profiles_json()])
        )

        await cleaning.extract("text")

        assert factory.keys == ["sk-saved-key-123"]

    def test_default_client_falls_back_to_env_key(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        settings.openrouter_api_key = "env-key"
        cleaning = CleaningService(table_service, credentials, settings)

        assert cleaning._default_client(None).config.api_key == "env-key"
        assert cleaning._default_client("saved").config.api_key == "saved"


class TestSingleFlightAndCancel:
    async def test_second_operation_rejected_while_running(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        release = asyncio.Event()
        started = asyncio.Event()

        class SlowClient(FakeLLMClient):
            async def chat(self, messages, response_format=None, max_tokens=None, operation="chat"):
                started.set()
                await release.wait()
                return await super().chat(messages, response_format, max_tokens, operation)

        cleaning, _ = make_cleaning(
            table_service, credentials, settings, SlowClient([profiles_json(profile("a"))])
        )

        running = asyncio.create_task(cleaning.extract("text"))
        await started.wait()

        with pytest.raises(OperationInProgressError):
            await cleaning.verify_relevance()
        with pytest.raises(OperationInProgressError):
            await cleaning.reset()

        release.set()
        summary = await running
        assert summary.merge.admitted == 1

    async def test_cancel_stops_extraction_and_appends_nothing(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        settings.chunk_size_lines = 1
        settings.chunk_overlap_lines = 0
        cleaning: CleaningService

        def cancel_after_first(messages):
            cleaning.cancel()
            return profiles_json(profile("a"))

        cleaning, _ = make_cleaning(
            table_service,
            credentials,
            settings,
            FakeLLMClient([cancel_after_first, profiles_json(profile("b"))]),
        )

        with pytest.raises(OperationCancelled):
            await cleaning.extract("l1\nl2\nl3")

        assert cleaning.progress.state == "cancelled"
        assert len(table_service.table) == 0
        assert cleaning.cancel() is False

    def test_cancel_without_operation(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        cleaning, _ = make_cleaning(table_service, credentials, settings, FakeLLMClient())

        assert cleaning.cancel() is False


class TestRelevance:
    async def test_verify_relevance_applies_outcome(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings, sample_table: Table
    ) -> None:
        await table_service.import_table(sample_table)
        client = FakeLLMClient([json.dumps({"ids_to_remove": [2]})])
        cleaning, _ = make_cleaning(table_service, credentials, settings, client)

        summary = await cleaning.verify_relevance()

        assert (summary.removed, summary.verified, summary.remaining) == (1, 2, 3)
        assert "美食探店" not in [r.get("用户名") for r in table_service.table.rows]
        assert table_service.status_counts() == {"unverified": 0, "verified": 3}

    async def test_failed_round_changes_nothing(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings, sample_table: Table
    ) -> None:
        await table_service.import_table(sample_table)
        before = table_service.table
        client = FakeLLMClient(["not json at all"])
        cleaning, _ = make_cleaning(table_service, credentials, settings, client)

        with pytest.raises(ParseError):
            await cleaning.verify_relevance()

        assert table_service.table is before
        assert cleaning.progress.state == "failed"

    async def test_nothing_to_verify(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        await table_service.import_table(Table(rows=[make_row("dy1", verified=True)]))
        client = FakeLLMClient([])
        cleaning, _ = make_cleaning(table_service, credentials, settings, client)

        summary = await cleaning.verify_relevance()

        assert summary.status == "nothing_to_verify"
        assert client.calls == []


class TestPrices:
    async def test_mapping_checked_before_ocr(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        client = FakeLLMClient([])
        cleaning, factory = make_cleaning(table_service, credentials, settings, client)

        with pytest.raises(ConfigurationError):
            await cleaning.preview_prices("aGVsbG8=", ColumnMapping(tiers={"P45": "粉丝数"}))

        assert factory.keys == []

    async def test_preview_then_apply(
        self, table_service: TableService, credentials: CredentialRepository, settings: Settings
    ) -> None:
        headers = ["Port", "+45kg"]
        await table_service.import_table(
            Table(headers=headers, rows=[Row.create({"Port": "svo", "+45kg": 60}, headers)])
        )
        reply = json.dumps([{"ports": ["SVO"], "prices": {"P45": 70}}])
        cleaning, _ = make_cleaning(table_service, credentials, settings, FakeLLMClient([reply]))
        mapping = ColumnMapping(port="Port", tiers={"P45": "+45kg"})

        report = await cleaning.preview_prices("aGVsbG8=", mapping)

        assert table_service.table.rows[0].get("+45kg") == 60
        assert report.previews[0].previous == {"+45kg": 60}

        assert await cleaning.apply_prices(report.previews) == 1
        assert table_service.table.rows[0].get("+45kg") == 70


async def test_reset_clears_table_and_progress(
    table_service: TableService, credentials: CredentialRepository, settings: Settings
) -> None:
    await table_service.import_table(Table(rows=[make_row("dy1")]))
    await credentials.set("sk-keep-this-key")
    cleaning, _ = make_cleaning(table_service, credentials, settings, FakeLLMClient([profiles_json()]))
    await cleaning.extract("x")

    await cleaning.reset()

    assert len(table_service.table) == 0
    assert table_service.table.headers == DEFAULT_HEADERS
    assert cleaning.progress.state == "idle"
    assert await credentials.get() == "sk-keep-this-key"
