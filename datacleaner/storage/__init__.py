"""
Storage
=======

Key/value backends and the repositories built on them.
"""

from datacleaner.storage.kv_store import (
    FileKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    create_store,
)
from datacleaner.storage.repositories import CredentialRepository, TableRepository

__all__ = [
    "CredentialRepository",
    "FileKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "TableRepository",
    "create_store",
]
