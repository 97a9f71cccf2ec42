"""Persistent key/value stores.

A process-wide key -> string store holding the saved API credential and the
serialized table. Two backends:
- FileKeyValueStore: one JSON object on disk, written atomically
- RedisKeyValueStore: namespaced string keys in Redis
"""
import asyncio
import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from datacleaner.config.settings import Settings, get_settings
from datacleaner.utils.errors import StorageError

logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """Minimal async string store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Value for key, or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store value under key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key; absent keys are ignored."""

    async def close(self) -> None:
        """Release backend resources."""


class FileKeyValueStore(KeyValueStore):
    """JSON-file backend.

    The whole store is one JSON object. Every write goes to a temp file in the
    same directory and is moved into place with os.replace, so a crash never
    leaves a half-written store.

    A file that cannot be parsed is renamed to ``<name>.corrupt-<ns>`` and the
    store starts empty.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._data: Optional[dict[str, str]] = None
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data
        if not self.path.exists():
            self._data = {}
            return self._data
        try:
            text = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            self._move_aside(str(e))
            return self._data
        except OSError as e:
            logger.error("kv_store_load_failed", path=str(self.path), error=str(e))
            raise StorageError(
                f"Cannot read store file: {e}", details={"path": str(self.path)}
            ) from e
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            self._move_aside(str(e))
            return self._data
        if not isinstance(raw, dict):
            self._move_aside("not a JSON object")
            return self._data
        self._data = {str(k): str(v) for k, v in raw.items()}
        return self._data

    def _move_aside(self, reason: str) -> None:
        """Rename an unparseable store file and start from an empty store."""
        backup = self.path.with_name(f"{self.path.name}.corrupt-{time.time_ns()}")
        try:
            os.replace(self.path, backup)
        except OSError as e:
            logger.error("kv_store_move_aside_failed", path=str(self.path), error=str(e))
            raise StorageError(
                f"Cannot move corrupt store file aside: {e}", details={"path": str(self.path)}
            ) from e
        logger.error(
            "kv_store_corrupt_file_moved",
            path=str(self.path),
            backup=str(backup),
            reason=reason,
        )
        self._data = {}

    def _flush(self) -> None:
        data = self._load()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            logger.error("kv_store_write_failed", path=str(self.path), error=str(e))
            raise StorageError(
                f"Cannot write store file: {e}", details={"path": str(self.path)}
            ) from e

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._load().get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._load()[key] = value
            self._flush()

    async def delete(self, key: str) -> None:
        async with self._lock:
            if self._load().pop(key, None) is not None:
                self._flush()


class RedisKeyValueStore(KeyValueStore):
    """Redis backend; keys are prefixed with a namespace."""

    def __init__(self, redis: Redis, namespace: str = "datacleaner:"):
        self.redis = redis
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.redis.get(self._key(key))
        except RedisError as e:
            logger.error("kv_store_redis_get_failed", key=key, error=str(e))
            raise StorageError(f"Redis read failed: {e}", details={"key": key}) from e
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    async def set(self, key: str, value: str) -> None:
        try:
            await self.redis.set(self._key(key), value)
        except RedisError as e:
            logger.error("kv_store_redis_set_failed", key=key, error=str(e))
            raise StorageError(f"Redis write failed: {e}", details={"key": key}) from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except RedisError as e:
            logger.error("kv_store_redis_delete_failed", key=key, error=str(e))
            raise StorageError(f"Redis delete failed: {e}", details={"key": key}) from e

    async def close(self) -> None:
        await self.redis.aclose()


def create_store(settings: Optional[Settings] = None) -> KeyValueStore:
    """Build the store selected by ``store_backend``."""
    settings = settings or get_settings()
    if settings.store_backend == "redis":
        logger.info("kv_store_created", backend="redis", namespace=settings.store_namespace)
        return RedisKeyValueStore(Redis.from_url(settings.redis_url), settings.store_namespace)
    logger.info("kv_store_created", backend="file", path=settings.store_path)
    return FileKeyValueStore(settings.store_path)
