"""
Price Updater Schemas
=====================

Models for the rate-sheet price updater: OCR output, column mapping,
adjustment rules and the proposed per-row updates.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

# Weight-break price tiers read from rate sheets
PRICE_TIERS: tuple[str, ...] = ("P45", "P100", "P300", "P500", "P1000")


class PortPriceRecord(BaseModel):
    """One line of a rate sheet: destination codes sharing a price set."""

    ports: list[str] = Field(default_factory=list)
    prices: dict[str, Union[float, int, str, None]] = Field(default_factory=dict)

    @field_validator("ports", mode="before")
    @classmethod
    def split_port_string(cls, v: object) -> object:
        """Accept "AER/ASF" style strings as well as lists."""
        if isinstance(v, str):
            return [p for p in v.replace(",", "/").split("/") if p.strip()]
        return v


class AdjustmentMode(str, Enum):
    """How an extracted price is adjusted before it is written."""

    NONE = "none"
    ADD = "add"
    SUBTRACT = "subtract"


class AdjustmentRule(BaseModel):
    """Markup rule for one tier."""

    mode: AdjustmentMode = AdjustmentMode.ADD
    value: float = 0.0

    def apply(self, price: float) -> float:
        if self.mode == AdjustmentMode.ADD:
            return price + self.value
        if self.mode == AdjustmentMode.SUBTRACT:
            return price - self.value
        return price


class ColumnMapping(BaseModel):
    """
    Which table columns the price updater reads and writes.

    Attributes:
        port: Column holding the match key (destination code)
        tiers: Tier key (P45...) -> column receiving that tier's price
    """

    port: str = ""
    tiers: dict[str, str] = Field(default_factory=dict)


class PriceUpdatePreview(BaseModel):
    """Proposed update for one matched row."""

    row_id: str
    row_index: int = Field(..., ge=1, description="1-based position in the table")
    port: str
    updates: dict[str, Union[float, int]]
    previous: dict[str, Union[float, int, str, None]] = Field(default_factory=dict)


class PriceMatchReport(BaseModel):
    """
    Output of the matching step, including diagnostics.

    ``ports_found`` counts port codes in the OCR output (after fan-out);
    ``rows_matched`` counts table rows whose key matched any of them.
    """

    previews: list[PriceUpdatePreview] = Field(default_factory=list)
    ports_found: int = 0
    rows_matched: int = 0
    extracted_sample: list[str] = Field(default_factory=list)
    table_sample: list[str] = Field(default_factory=list)
    raw_response: Optional[str] = None

    @property
    def status(self) -> str:
        return "matched" if self.previews else "no_matches"
