"""
Price Updater Service
=====================

Rate-sheet price updates:

1. RateSheetReader OCRs a pasted rate-sheet image through the LLM vision
   endpoint into ``[{ports: [...], prices: {P45: ...}}]`` records.
2. PriceMatcher maps those records onto table rows by normalized port code
   and applies per-tier adjustment rules. It only proposes updates.
3. apply_price_updates merges accepted previews into the rows and marks the
   written columns as highlighted.
"""

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Optional, Union

from datacleaner.schemas.domain import CellValue, Row
from datacleaner.schemas.pricing import (
    PRICE_TIERS,
    AdjustmentRule,
    ColumnMapping,
    PortPriceRecord,
    PriceMatchReport,
    PriceUpdatePreview,
)
from datacleaner.services.llm.client import LLMClient
from datacleaner.services.llm.prompts import SYSTEM_PROMPT_RATE_SHEET
from datacleaner.utils.errors import ConfigurationError, ValidationError
from datacleaner.utils.json_recovery import ARRAY_STRATEGIES, recover_json
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

SAMPLE_SIZE = 5

PORT_KEYWORDS = ("port", "code", "dest", "pod", "city")


def normalize_port(value: CellValue) -> str:
    """Match key form: trimmed, uppercased."""
    if value is None:
        return ""
    return str(value).strip().upper()


def guess_column_mapping(headers: Sequence[str]) -> ColumnMapping:
    """
    Guess which columns hold the port code and each price tier.

    Port: first header containing a port keyword (case-insensitive).
    Tiers: first header containing the tier's weight break; "100" excludes
    headers that also contain "1000".
    """

    def first(predicate) -> str:
        return next((h for h in headers if predicate(h)), "")

    tiers = {
        "P45": first(lambda h: "45" in h),
        "P100": first(lambda h: "100" in h and "1000" not in h),
        "P300": first(lambda h: "300" in h),
        "P500": first(lambda h: "500" in h),
        "P1000": first(lambda h: "1000" in h),
    }
    return ColumnMapping(
        port=first(lambda h: any(k in h.lower() for k in PORT_KEYWORDS)),
        tiers={tier: column for tier, column in tiers.items() if column},
    )


def validate_mapping(mapping: ColumnMapping, headers: Sequence[str]) -> None:
    """
    Check the mapping before any remote call is made.

    Raises:
        ConfigurationError: No port column, or a mapped column does not exist
    """
    if not mapping.port:
        raise ConfigurationError("Please map the Port/Code column first")

    unknown = [c for c in (mapping.port, *mapping.tiers.values()) if c not in headers]
    if unknown:
        raise ConfigurationError("Mapped column not in table", details={"columns": unknown})

    bad_tiers = [t for t in mapping.tiers if t not in PRICE_TIERS]
    if bad_tiers:
        raise ConfigurationError("Unknown price tier", details={"tiers": bad_tiers})


def _to_number(value: object) -> Optional[float]:
    """Numeric form of an extracted price; None when blank or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _as_cell(number: float) -> Union[int, float]:
    return int(number) if number.is_integer() else round(number, 4)


class PriceMatcher:
    """
    Proposes per-row price updates from OCR'd rate-sheet records.

    Example:
        matcher = PriceMatcher(guess_column_mapping(table.headers))
        report = matcher.propose(table.rows, records)
        for preview in report.previews:
            print(preview.port, preview.updates)
    """

    def __init__(
        self,
        mapping: ColumnMapping,
        rules: Optional[Mapping[str, AdjustmentRule]] = None,
    ) -> None:
        if not mapping.port:
            raise ConfigurationError("Please map the Port/Code column first")
        self.mapping = mapping
        self.rules = dict(rules or {})

    def build_price_map(
        self,
        records: Iterable[PortPriceRecord],
    ) -> tuple[dict[str, dict[str, object]], int, list[str]]:
        """
        Fan out each record's ports to its price set.

        Returns:
            (port -> prices, total port codes, sample of port codes)
        """
        price_map: dict[str, dict[str, object]] = {}
        total = 0
        sample: list[str] = []
        for record in records:
            for port in record.ports:
                key = normalize_port(port)
                if not key:
                    continue
                price_map[key] = record.prices
                total += 1
                if len(sample) < SAMPLE_SIZE:
                    sample.append(key)
        return price_map, total, sample

    def adjusted_updates(self, prices: Mapping[str, object]) -> dict[str, Union[int, float]]:
        """Column -> adjusted price for every mapped tier with a numeric value."""
        updates: dict[str, Union[int, float]] = {}
        for tier, column in self.mapping.tiers.items():
            if not column:
                continue
            number = _to_number(prices.get(tier))
            if number is None:
                continue
            rule = self.rules.get(tier) or AdjustmentRule()
            updates[column] = _as_cell(rule.apply(number))
        return updates

    def propose(
        self,
        rows: Sequence[Row],
        records: Iterable[PortPriceRecord],
        raw_response: Optional[str] = None,
    ) -> PriceMatchReport:
        """
        Match rows against the records. No mutation.

        Args:
            rows: Table rows in display order
            records: OCR output
            raw_response: Model text kept for diagnostics

        Returns:
            PriceMatchReport with previews and match diagnostics
        """
        price_map, total_ports, extracted_sample = self.build_price_map(records)
        report = PriceMatchReport(
            ports_found=total_ports,
            extracted_sample=extracted_sample,
            raw_response=raw_response,
        )

        for index, row in enumerate(rows, start=1):
            key = normalize_port(row.get(self.mapping.port))
            if not key:
                continue
            if len(report.table_sample) < SAMPLE_SIZE:
                report.table_sample.append(key)

            prices = price_map.get(key)
            if prices is None:
                continue
            report.rows_matched += 1

            updates = self.adjusted_updates(prices)
            if not updates:
                continue
            report.previews.append(
                PriceUpdatePreview(
                    row_id=row.internal_id,
                    row_index=index,
                    port=key,
                    updates=updates,
                    previous={column: row.get(column) for column in updates},
                )
            )

        logger.info(
            "price_matcher.proposed",
            ports_found=report.ports_found,
            rows_matched=report.rows_matched,
            previews=len(report.previews),
        )
        return report


def apply_price_updates(
    rows: Sequence[Row],
    previews: Iterable[PriceUpdatePreview],
) -> tuple[list[Row], int]:
    """
    Merge preview updates into their rows.

    Updated columns join the row's highlight set. Previews whose row no longer
    exists are skipped.

    Returns:
        (new row list, number of rows updated)
    """
    by_id = {preview.row_id: preview for preview in previews}
    updated = 0
    result: list[Row] = []

    for row in rows:
        preview = by_id.pop(row.internal_id, None)
        if preview is None or not preview.updates:
            result.append(row)
            continue
        row = row.with_values(dict(preview.updates))
        row = row.with_meta(highlighted=row.meta.highlighted | frozenset(preview.updates))
        result.append(row)
        updated += 1

    if by_id:
        logger.warning("price_updater.stale_previews", row_ids=list(by_id))
    return result, updated


def normalize_image_payload(image_b64: str) -> str:
    """Data-URI form of an image; bare base64 is assumed to be PNG."""
    image_b64 = image_b64.strip()
    if not image_b64:
        raise ValidationError("Image payload is empty")
    if image_b64.startswith("data:"):
        return image_b64
    return f"data:image/png;base64,{image_b64}"


class RateSheetReader:
    """OCR of rate-sheet images through a vision-capable chat model."""

    def __init__(self, client: LLMClient, prompt: str = SYSTEM_PROMPT_RATE_SHEET) -> None:
        self.client = client
        self.prompt = prompt

    async def read(self, image_b64: str) -> tuple[list[PortPriceRecord], str]:
        """
        Extract port/price records from an image.

        Returns:
            (records, raw model text)

        Raises:
            ConfigurationError / RemoteError / ParseError
        """
        self.client.ensure_configured()
        image_url = normalize_image_payload(image_b64)

        response = await self.client.chat(
            [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self.prompt},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
            operation="vision",
        )
        records = recover_json(
            response.content,
            list[PortPriceRecord],
            strategies=ARRAY_STRATEGIES,
            context="rate_sheet",
        )
        logger.info("rate_sheet.read", records=len(records))
        return records, response.content
