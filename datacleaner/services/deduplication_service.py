"""
Deduplication Service
=====================

Merges newly extracted or imported records into the table, rejecting
records whose natural key already exists.

- Natural key: one designated column, whitespace-trimmed
- Empty key: never a duplicate, always admitted
- Checked against keys already in the table AND keys admitted earlier in the
  same batch, so the first occurrence wins
- Admitted rows get a fresh internal id and start unverified

Pure merge step: no network or storage I/O.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from datacleaner.schemas.domain import CellValue, Row, Table
from datacleaner.schemas.extraction import ExtractedProfile
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)

# Extraction field -> table column
PROFILE_COLUMNS: dict[str, str] = {
    "username": "用户名",
    "douyin_id": "抖音号",
    "fans": "粉丝数",
    "bio": "简介",
    "contact": "联系方式",
}


def profile_to_values(profile: ExtractedProfile) -> dict[str, CellValue]:
    """Map an extracted profile onto the cleaning table's columns."""
    return {column: getattr(profile, attr) for attr, column in PROFILE_COLUMNS.items()}


@dataclass
class MergeResult:
    """Outcome of a merge."""

    rows: list[Row] = field(default_factory=list)
    total_incoming: int = 0
    duplicates_rejected: int = 0
    rejected_keys: list[str] = field(default_factory=list)

    @property
    def admitted(self) -> int:
        return len(self.rows)


class DeduplicationService:
    """
    Natural-key deduplication for incoming records.

    Example:
        service = DeduplicationService(key_column="抖音号")
        merge = service.merge(table, [profile_to_values(p) for p in profiles])
        print(f"added {merge.admitted}, rejected {merge.duplicates_rejected}")
    """

    def __init__(self, key_column: str = "抖音号") -> None:
        """
        Initialize DeduplicationService.

        Args:
            key_column: Column holding the natural key
        """
        self.key_column = key_column

    @staticmethod
    def normalize_key(value: CellValue) -> str:
        """Natural key form: trimmed string, empty for null."""
        if value is None:
            return ""
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value).strip()

    def existing_keys(self, table: Table) -> set[str]:
        keys = {self.normalize_key(row.get(self.key_column)) for row in table.rows}
        keys.discard("")
        return keys

    def merge(
        self,
        table: Table,
        records: Iterable[Mapping[str, CellValue]],
        headers: list[str] | None = None,
    ) -> MergeResult:
        """
        Decide which records to append.

        Args:
            table: Current table (not modified)
            records: Incoming header-keyed records, in priority order
            headers: Headers every new row must carry (default: table headers)

        Returns:
            MergeResult with the rows to append and the rejected count
        """
        headers = headers if headers is not None else table.headers
        seen = self.existing_keys(table)
        result = MergeResult()

        for record in records:
            result.total_incoming += 1
            key = self.normalize_key(record.get(self.key_column))

            if key and key in seen:
                result.duplicates_rejected += 1
                result.rejected_keys.append(key)
                logger.debug("dedup.duplicate_rejected", key=key)
                continue

            if key:
                seen.add(key)
            result.rows.append(Row.create(dict(record), headers))

        logger.info(
            "dedup.merged",
            incoming=result.total_incoming,
            admitted=result.admitted,
            duplicates=result.duplicates_rejected,
        )
        return result

    def merge_profiles(self, table: Table, profiles: Iterable[ExtractedProfile]) -> MergeResult:
        """Merge extraction output into the table."""
        return self.merge(table, (profile_to_values(p) for p in profiles))
