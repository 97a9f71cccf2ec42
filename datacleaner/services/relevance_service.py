"""
Relevance Filter Service
========================

Batch relevance classification of unverified rows.

Only UNVERIFIED rows are sent. Each is given a batch-local integer id
(1..n) so the model never sees internal ids; the model answers with the ids
to remove. Rows it names are removed, every other row sent is marked
verified.

A round is all-or-nothing: when any request or parse fails, nothing is
applied and the error propagates to the caller. With ``batch_size`` set,
all batches are collected before anything is decided.
"""

import asyncio
import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from datacleaner.schemas.domain import Row
from datacleaner.schemas.extraction import RemovalPayload
from datacleaner.services.llm.client import LLMClient
from datacleaner.services.llm.prompts import (
    FILTER_JSON_SCHEMA,
    SYSTEM_PROMPT_FILTER,
    json_schema_format,
)
from datacleaner.services.verification import is_pending
from datacleaner.utils.errors import OperationCancelled
from datacleaner.utils.json_recovery import OBJECT_STRATEGIES, recover_json
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RelevanceOutcome:
    """
    Decision of one relevance round.

    Attributes:
        removed_ids: Internal ids the model classified as irrelevant
        verified_ids: Internal ids sent and kept
        status: 'applied' or 'nothing_to_verify'
        unknown_ids: Batch-local ids returned by the model that were never sent
        sent_values: Payload column values of each sent row, keyed by internal id
    """

    removed_ids: list[str] = field(default_factory=list)
    verified_ids: list[str] = field(default_factory=list)
    status: str = "applied"
    unknown_ids: list[int] = field(default_factory=list)
    sent_values: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def sent(self) -> int:
        return len(self.removed_ids) + len(self.verified_ids)


def build_payload(
    rows: Sequence[Row],
    columns: Sequence[str],
) -> tuple[list[dict[str, Any]], dict[int, str]]:
    """
    Build the classification payload for a batch.

    Returns:
        (items, id_map) where items are ``{"id": n, "text": "..."}`` and
        id_map maps each batch-local id back to the row's internal id
    """
    items: list[dict[str, Any]] = []
    id_map: dict[int, str] = {}
    for local_id, row in enumerate(rows, start=1):
        text = ", ".join(f"{column}:{row.get(column)}" for column in columns)
        items.append({"id": local_id, "text": text})
        id_map[local_id] = row.internal_id
    return items, id_map


class RelevanceFilter:
    """
    Classifies unverified rows through the LLM.

    Example:
        relevance = RelevanceFilter(client, payload_columns=["用户名", "简介"])
        outcome = await relevance.classify(table.rows)
        print(len(outcome.removed_ids), len(outcome.verified_ids))
    """

    def __init__(
        self,
        client: LLMClient,
        payload_columns: Sequence[str] = ("用户名", "简介"),
        batch_size: Optional[int] = None,
    ) -> None:
        self.client = client
        self.payload_columns = list(payload_columns)
        self.batch_size = batch_size

    def _batches(self, rows: list[Row]) -> Iterable[list[Row]]:
        if not self.batch_size:
            yield rows
            return
        for start in range(0, len(rows), self.batch_size):
            yield rows[start : start + self.batch_size]

    async def classify(
        self,
        rows: Iterable[Row],
        prompt: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RelevanceOutcome:
        """
        Classify every unverified row.

        Args:
            rows: Current table rows (verified rows are ignored)
            prompt: Classification instructions (default: logistics relevance)
            cancel_event: When set between batches, the round is abandoned

        Returns:
            RelevanceOutcome to be applied by the caller

        Raises:
            ConfigurationError: Missing credential
            RemoteError / ParseError: Any batch failed; nothing is decided
            OperationCancelled: The cancellation event was set
        """
        pending = [row for row in rows if is_pending(row)]
        if not pending:
            logger.info("relevance.nothing_to_verify")
            return RelevanceOutcome(status="nothing_to_verify")

        self.client.ensure_configured()
        system_prompt = prompt or SYSTEM_PROMPT_FILTER

        outcome = RelevanceOutcome()
        batches = list(self._batches(pending))
        logger.info("relevance.started", rows=len(pending), batches=len(batches))

        for batch_number, batch in enumerate(batches, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("relevance.cancelled", completed_batches=batch_number - 1)
                raise OperationCancelled(
                    "Relevance filtering cancelled",
                    details={"completed_batches": batch_number - 1, "total_batches": len(batches)},
                )

            items, id_map = build_payload(batch, self.payload_columns)
            remove_local = await self._classify_batch(items, system_prompt, batch_number)

            unknown = sorted(local_id for local_id in remove_local if local_id not in id_map)
            if unknown:
                logger.warning("relevance.unknown_ids_ignored", batch=batch_number, ids=unknown)
                outcome.unknown_ids.extend(unknown)

            for row in batch:
                outcome.sent_values[row.internal_id] = {
                    column: row.get(column) for column in self.payload_columns
                }

            for local_id, internal_id in id_map.items():
                if local_id in remove_local:
                    outcome.removed_ids.append(internal_id)
                else:
                    outcome.verified_ids.append(internal_id)

        logger.info(
            "relevance.classified",
            removed=len(outcome.removed_ids),
            verified=len(outcome.verified_ids),
        )
        return outcome

    async def _classify_batch(
        self,
        items: list[dict[str, Any]],
        system_prompt: str,
        batch_number: int,
    ) -> set[int]:
        """Send one batch and return the batch-local ids to remove."""
        user_content = f"需要分析的数据 ({len(items)} 条):\n" + json.dumps(items, ensure_ascii=False)
        response = await self.client.chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            response_format=json_schema_format(FILTER_JSON_SCHEMA),
            operation="filter",
        )
        payload = recover_json(
            response.content,
            RemovalPayload,
            strategies=OBJECT_STRATEGIES,
            context=f"relevance_batch_{batch_number}",
        )
        return set(payload.ids_to_remove)
