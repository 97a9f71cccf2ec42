"""
Cleaning Service
================

Orchestrates the remote operations against the table:

- extract: chunked extraction -> deduplicated append
- relevance: batch classification -> removal + verification
- price preview / apply: rate-sheet OCR -> matching -> highlighted updates

Only one remote operation runs at a time. Extraction progress is kept for
polling and a shared cancellation event stops the running operation before
its next request.
"""

import asyncio
from collections.abc import Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel

from datacleaner.config.settings import Settings, get_settings
from datacleaner.schemas.extraction import ExtractionResult
from datacleaner.schemas.pricing import (
    AdjustmentRule,
    ColumnMapping,
    PriceMatchReport,
    PriceUpdatePreview,
)
from datacleaner.services.deduplication_service import MergeResult
from datacleaner.services.extraction_service import ProfileExtractor
from datacleaner.services.llm.client import LLMClient, LLMConfig, OpenRouterClient
from datacleaner.services.price_updater import (
    PriceMatcher,
    RateSheetReader,
    validate_mapping,
)
from datacleaner.services.relevance_service import RelevanceFilter
from datacleaner.services.table_service import RelevanceSummary, TableService
from datacleaner.storage.repositories import CredentialRepository
from datacleaner.utils.errors import OperationCancelled, OperationInProgressError
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

ClientFactory = Callable[[Optional[str]], LLMClient]

ProgressState = Literal["idle", "running", "completed", "failed", "cancelled"]


class OperationProgress(BaseModel):
    """Latest progress of the running (or last) remote operation."""

    operation: Optional[str] = None
    state: ProgressState = "idle"
    current: int = 0
    total: int = 0
    message: str = ""


@dataclass
class ExtractionSummary:
    result: ExtractionResult
    merge: MergeResult

    @property
    def status(self) -> str:
        return self.result.status


class CleaningService:
    """
    Runs remote operations and applies their results to the table.

    Example:
        cleaning = CleaningService(table_service, credentials)
        summary = await cleaning.extract(pasted_text)
        print(summary.merge.admitted, summary.merge.duplicates_rejected)
    """

    def __init__(
        self,
        table_service: TableService,
        credentials: CredentialRepository,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.table_service = table_service
        self.credentials = credentials
        self._client_factory = client_factory or self._default_client
        self._busy = asyncio.Lock()
        self._cancel_event: Optional[asyncio.Event] = None
        self.progress = OperationProgress()

    def _default_client(self, api_key: Optional[str]) -> LLMClient:
        return OpenRouterClient(LLMConfig.from_settings(self.settings, api_key))

    async def _client(self) -> LLMClient:
        """Client using the saved key, falling back to the environment key."""
        api_key = await self.credentials.get()
        return self._client_factory(api_key)

    @asynccontextmanager
    async def _operation(self, name: str):
        """Single-flight guard with progress bookkeeping and client lifetime."""
        if self._busy.locked():
            raise OperationInProgressError(
                "Another operation is running",
                details={"running": self.progress.operation},
            )
        async with self._busy:
            self._cancel_event = asyncio.Event()
            self.progress = OperationProgress(operation=name, state="running")
            client: Optional[LLMClient] = None
            try:
                client = await self._client()
                yield client
            except OperationCancelled as e:
                self.progress = self.progress.model_copy(
                    update={"state": "cancelled", "message": e.message}
                )
                raise
            except Exception as e:
                self.progress = self.progress.model_copy(
                    update={"state": "failed", "message": str(e)}
                )
                raise
            else:
                self.progress = self.progress.model_copy(update={"state": "completed"})
            finally:
                self._cancel_event = None
                if client is not None:
                    await client.close()

    def cancel(self) -> bool:
        """Signal the running operation to stop. Returns False if nothing runs."""
        if self._cancel_event is None:
            return False
        self._cancel_event.set()
        logger.info("cleaning.cancel_requested", operation=self.progress.operation)
        return True

    def _on_progress(self, current: int, total: int) -> None:
        self.progress = self.progress.model_copy(update={"current": current, "total": total})

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def extract(self, text: str) -> ExtractionSummary:
        """
        Extract profiles from pasted text and append the new ones.

        Partial chunk failure still appends what was extracted; cancellation
        appends nothing.
        """
        async with self._operation("extract") as client:
            extractor = ProfileExtractor(client, settings=self.settings)
            result = await extractor.extract(
                text,
                on_progress=self._on_progress,
                cancel_event=self._cancel_event,
            )
            merge = await self.table_service.append_profiles(result.profiles)
            self.progress = self.progress.model_copy(
                update={
                    "message": (
                        f"added {merge.admitted}, duplicates {merge.duplicates_rejected}, "
                        f"failed chunks {result.failed_chunks}"
                    )
                }
            )
            logger.info(
                "cleaning.extract_finished",
                status=result.status,
                added=merge.admitted,
                duplicates=merge.duplicates_rejected,
                failed_chunks=result.failed_chunks,
            )
            return ExtractionSummary(result=result, merge=merge)

    async def verify_relevance(self, prompt: Optional[str] = None) -> RelevanceSummary:
        """Classify unverified rows and apply the decision in one commit."""
        async with self._operation("relevance") as client:
            relevance = RelevanceFilter(
                client,
                payload_columns=self.settings.relevance_payload_columns,
                batch_size=self.settings.relevance_batch_size,
            )
            outcome = await relevance.classify(
                self.table_service.table.rows,
                prompt=prompt,
                cancel_event=self._cancel_event,
            )
            summary = await self.table_service.apply_relevance(outcome)
            self.progress = self.progress.model_copy(
                update={"current": outcome.sent, "total": outcome.sent}
            )
            return summary

    async def preview_prices(
        self,
        image_b64: str,
        mapping: ColumnMapping,
        rules: Optional[Mapping[str, AdjustmentRule]] = None,
    ) -> PriceMatchReport:
        """OCR the rate sheet and propose updates. The mapping is checked first."""
        validate_mapping(mapping, self.table_service.table.headers)
        matcher = PriceMatcher(mapping, rules)
        async with self._operation("vision") as client:
            records, raw = await RateSheetReader(client).read(image_b64)
            return matcher.propose(self.table_service.table.rows, records, raw_response=raw)

    async def apply_prices(self, previews: Sequence[PriceUpdatePreview]) -> int:
        return await self.table_service.apply_price_updates(previews)

    async def reset(self) -> None:
        """Full reset: table, filters and progress. The credential is kept."""
        if self._busy.locked():
            raise OperationInProgressError("Cannot reset while an operation is running")
        await self.table_service.reset()
        self.progress = OperationProgress()
