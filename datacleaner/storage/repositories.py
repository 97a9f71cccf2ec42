"""Repositories over the key/value store.

TableRepository persists the whole table as one versioned JSON blob:

    {"schema_version": 2, "headers": [...], "rows": [
        {"id": "...", "verification": "unverified", "highlighted": [], "values": {...}}
    ]}

Version 1 is the legacy layout: a bare JSON list of row objects where the
bookkeeping lives next to the data (``_internal_id``, ``checkStatus``). It is
migrated on load.

CredentialRepository stores the remote API key.
"""
import json
from typing import Any, Optional

import structlog

from datacleaner.schemas.domain import (
    DEFAULT_HEADERS,
    STATUS_COLUMN,
    Row,
    RowMeta,
    Table,
    VerificationState,
)
from datacleaner.storage.kv_store import KeyValueStore
from datacleaner.utils.errors import StorageError, ValidationError
from datacleaner.utils.ids import new_internal_id

logger = structlog.get_logger(__name__)

TABLE_KEY = "cleaner_db"
CREDENTIAL_KEY = "openrouter_api_key"
SCHEMA_VERSION = 2

_LEGACY_META_KEYS = {"_internal_id", "checkStatus", "_highlight", "_highlights"}


def serialize_table(table: Table) -> str:
    """Current-version JSON blob for a table."""
    return json.dumps(
        {
            "schema_version": SCHEMA_VERSION,
            "headers": table.headers,
            "rows": [
                {
                    "id": row.internal_id,
                    "verification": row.verification.value,
                    "highlighted": sorted(row.meta.highlighted),
                    "values": row.values,
                }
                for row in table.rows
            ],
        },
        ensure_ascii=False,
    )


def _load_v2(data: dict[str, Any]) -> Table:
    headers = [str(h) for h in data.get("headers") or DEFAULT_HEADERS]
    rows = []
    for item in data.get("rows") or []:
        meta = RowMeta(
            internal_id=str(item.get("id") or new_internal_id()),
            verification=VerificationState(item.get("verification", "unverified")),
            highlighted=frozenset(item.get("highlighted") or ()),
        )
        rows.append(Row(meta=meta, values=dict(item.get("values") or {})))
    return Table(headers=headers, rows=rows)


def _load_v1(items: list[Any]) -> Table:
    """Migrate the legacy bare-list layout."""
    headers = list(DEFAULT_HEADERS)
    rows = []
    seen_ids: set[str] = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        values = {
            str(k): v
            for k, v in item.items()
            if k not in _LEGACY_META_KEYS and k != STATUS_COLUMN
        }
        for column in values:
            if column not in headers:
                headers.append(column)

        legacy_id = item.get("_internal_id")
        internal_id = str(legacy_id) if legacy_id not in (None, "") else new_internal_id()
        if internal_id in seen_ids:
            internal_id = new_internal_id()
        seen_ids.add(internal_id)

        verification = (
            VerificationState.VERIFIED
            if item.get("checkStatus") == "verified"
            else VerificationState.UNVERIFIED
        )
        rows.append(
            Row(meta=RowMeta(internal_id=internal_id, verification=verification), values=values)
        )
    return Table(headers=headers, rows=rows)


def deserialize_table(blob: str) -> Table:
    """
    Parse a stored blob of any known version.

    Raises:
        ValidationError: Unparseable blob or unknown schema version
    """
    try:
        data = json.loads(blob)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Stored table is not JSON: {e}") from e

    if isinstance(data, list):
        return _load_v1(data)
    if not isinstance(data, dict):
        raise ValidationError("Stored table has an unknown layout")

    version = data.get("schema_version")
    if version == SCHEMA_VERSION:
        try:
            return _load_v2(data)
        except (ValueError, TypeError, AttributeError) as e:
            raise ValidationError(f"Stored table is malformed: {e}") from e
    raise ValidationError(
        "Unsupported stored table version",
        details={"schema_version": version, "supported": SCHEMA_VERSION},
    )


class TableRepository:
    """Load-at-startup / save-after-every-mutation persistence for the table."""

    def __init__(self, store: KeyValueStore, key: str = TABLE_KEY):
        self.store = store
        self.key = key

    async def load(self) -> Table:
        """Stored table, or an empty default table when nothing usable is stored."""
        try:
            blob = await self.store.get(self.key)
        except StorageError as e:
            logger.error("table_repository_read_failed", error=e.message, details=e.details)
            return Table()
        if not blob:
            logger.info("table_repository_empty")
            return Table()
        try:
            table = deserialize_table(blob)
        except ValidationError as e:
            logger.error(
                "table_repository_load_failed",
                error=e.message,
                details=e.details,
                blob_preview=blob[:200],
            )
            return Table()
        logger.info("table_repository_loaded", rows=len(table), headers=len(table.headers))
        return table

    async def save(self, table: Table) -> None:
        await self.store.set(self.key, serialize_table(table))
        logger.debug("table_repository_saved", rows=len(table))

    async def clear(self) -> None:
        await self.store.delete(self.key)


def mask_key(key: str) -> str:
    """Display form of a credential: first and last four characters only."""
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}{'*' * 8}{key[-4:]}"


class CredentialRepository:
    """Persisted remote-capability API key."""

    def __init__(self, store: KeyValueStore, key: str = CREDENTIAL_KEY):
        self.store = store
        self.key = key

    async def get(self) -> Optional[str]:
        value = await self.store.get(self.key)
        return value or None

    async def set(self, api_key: str) -> None:
        api_key = api_key.strip()
        if not api_key:
            raise ValidationError("API key must not be empty")
        await self.store.set(self.key, api_key)
        logger.info("credential_saved")

    async def clear(self) -> None:
        await self.store.delete(self.key)
        logger.info("credential_cleared")

    async def masked(self) -> Optional[str]:
        value = await self.get()
        return mask_key(value) if value else None
