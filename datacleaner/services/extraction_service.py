"""
Profile Extraction Service
==========================

LLM-based profile extraction from pasted text.
Implements sliding window processing for long inputs.

- One request per chunk, strictly sequential (no concurrent requests)
- A failed chunk is logged and recorded, never fatal for the run
- Progress ``(current, total)`` is reported after every chunk
- An optional cancellation event stops further requests
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Optional, Union

from datacleaner.api.metrics import CHUNKS_PROCESSED, PROFILES_EXTRACTED
from datacleaner.config.settings import Settings, get_settings
from datacleaner.ingest.chunker import TextChunk, TextChunker
from datacleaner.schemas.extraction import (
    ChunkError,
    ExtractedProfile,
    ExtractionResult,
    ProfilesPayload,
)
from datacleaner.services.llm.client import LLMClient
from datacleaner.services.llm.prompts import (
    EXTRACT_JSON_SCHEMA,
    SYSTEM_PROMPT_EXTRACT,
    json_schema_format,
)
from datacleaner.utils.errors import OperationCancelled, ParseError, RemoteError
from datacleaner.utils.json_recovery import OBJECT_STRATEGIES, recover_json
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], Union[None, Awaitable[None]]]


class ProfileExtractor:
    """
    Chunked profile extraction through an LLM client.

    Example:
        extractor = ProfileExtractor(client)
        result = await extractor.extract(text, on_progress=print)
        print(result.status, len(result.profiles))
    """

    def __init__(
        self,
        client: LLMClient,
        chunker: Optional[TextChunker] = None,
        settings: Optional[Settings] = None,
        system_prompt: str = SYSTEM_PROMPT_EXTRACT,
    ) -> None:
        """
        Initialize ProfileExtractor.

        Args:
            client: Remote LLM client
            chunker: Text chunker (default built from settings)
            settings: Application settings
            system_prompt: Extraction instructions
        """
        settings = settings or get_settings()
        self.client = client
        self.chunker = chunker or TextChunker(
            chunk_size=settings.chunk_size_lines,
            overlap=settings.chunk_overlap_lines,
        )
        self.system_prompt = system_prompt

    async def extract(
        self,
        text: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExtractionResult:
        """
        Extract profiles from the whole text.

        Args:
            text: Raw pasted text
            on_progress: Called with (current, total) after each chunk
            cancel_event: When set, no further chunk requests are issued

        Returns:
            ExtractionResult with profiles in chunk order and per-chunk errors

        Raises:
            ConfigurationError: Missing credential (before any request)
            OperationCancelled: The cancellation event was set
        """
        self.client.ensure_configured()

        chunks = self.chunker.chunk(text)
        total = len(chunks)
        result = ExtractionResult(total_chunks=total)

        if total == 0:
            logger.info("extractor.empty_input")
            return result

        logger.info(
            "extractor.started",
            chunks=total,
            chunk_size=self.chunker.chunk_size,
            overlap=self.chunker.overlap,
        )
        start_time = time.time()

        for position, chunk in enumerate(chunks, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("extractor.cancelled", completed_chunks=position - 1, total=total)
                raise OperationCancelled(
                    "Extraction cancelled",
                    details={"completed_chunks": position - 1, "total_chunks": total},
                )

            try:
                profiles = await self._extract_chunk(chunk)
            except (RemoteError, ParseError) as e:
                CHUNKS_PROCESSED.labels(outcome="failed").inc()
                logger.error(
                    "extractor.chunk_failed",
                    chunk=position,
                    total=total,
                    start_line=chunk.start_line,
                    error_type=type(e).__name__,
                    error=e.message,
                )
                result.errors.append(
                    ChunkError(
                        chunk_index=chunk.index,
                        start_line=chunk.start_line,
                        end_line=chunk.end_line,
                        error_type=type(e).__name__,
                        error_message=e.message,
                        status_code=getattr(e, "status_code", None),
                        raw_response=e.raw_payload,
                    )
                )
            else:
                CHUNKS_PROCESSED.labels(outcome="success").inc()
                PROFILES_EXTRACTED.inc(len(profiles))
                result.profiles.extend(profiles)
                result.succeeded_chunks += 1
                logger.debug(
                    "extractor.chunk_complete",
                    chunk=position,
                    total=total,
                    profiles=len(profiles),
                )

            if on_progress is not None:
                outcome = on_progress(position, total)
                if inspect.isawaitable(outcome):
                    await outcome

        logger.info(
            "extractor.finished",
            status=result.status,
            profiles=len(result.profiles),
            failed_chunks=result.failed_chunks,
            total_time_seconds=round(time.time() - start_time, 2),
        )
        return result

    async def _extract_chunk(self, chunk: TextChunk) -> list[ExtractedProfile]:
        """Send one chunk and recover its profiles."""
        response = await self.client.chat(
            [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": chunk.text},
            ],
            response_format=json_schema_format(EXTRACT_JSON_SCHEMA),
            operation="extract",
        )
        payload = recover_json(
            response.content,
            ProfilesPayload,
            strategies=OBJECT_STRATEGIES,
            context=f"extract_chunk_{chunk.index}",
        )
        return payload.profiles
