"""
Test Configuration and Fixtures
================================

Shared pytest fixtures for datacleaner tests.
"""

import json
from collections.abc import Callable
from typing import Any, Optional, Union

import pytest

from datacleaner.config.settings import Settings
from datacleaner.schemas.domain import DEFAULT_HEADERS, Row, Table, VerificationState
from datacleaner.services.llm.client import ChatMessage, LLMClient, LLMConfig, LLMResponse
from datacleaner.services.table_service import TableService
from datacleaner.storage.kv_store import FileKeyValueStore
from datacleaner.storage.repositories import CredentialRepository, TableRepository

Reply = Union[str, Exception, Callable[[list[ChatMessage]], str]]


class FakeLLMClient(LLMClient):
    """
    Scripted LLM client.

    Each call consumes the next reply: a string is returned as content, an
    exception is raised, a callable is called with the messages.
    """

    def __init__(self, replies: Optional[list[Reply]] = None, api_key: Optional[str] = "test-key"):
        super().__init__(LLMConfig(api_key=api_key))
        self.replies = list(replies or [])
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def chat(
        self,
        messages: list[ChatMessage],
        response_format: Optional[dict[str, Any]] = None,
        max_tokens: Optional[int] = None,
        operation: str = "chat",
    ) -> LLMResponse:
        self.ensure_configured()
        self.calls.append(
            {"messages": messages, "response_format": response_format, "operation": operation}
        )
        if not self.replies:
            raise AssertionError("FakeLLMClient ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        content = reply(messages) if callable(reply) else reply
        return LLMResponse(content=content, model=self.config.model, raw_body=content)

    async def close(self) -> None:
        self.closed = True


def profiles_json(*profiles: dict[str, str]) -> str:
    """Extraction reply with the given profiles."""
    return json.dumps({"profiles": list(profiles)}, ensure_ascii=False)


def profile(douyin_id: str, username: str = "", bio: str = "") -> dict[str, str]:
    return {
        "username": username or f"user-{douyin_id}",
        "douyinId": douyin_id,
        "fans": "1w",
        "bio": bio,
        "contact": "",
    }


def make_row(
    douyin_id: str = "",
    username: str = "",
    bio: str = "",
    verified: bool = False,
    **extra: Any,
) -> Row:
    row = Row.create(
        {"用户名": username, "抖音号": douyin_id, "简介": bio, **extra},
        DEFAULT_HEADERS,
    )
    if verified:
        row = row.with_meta(verification=VerificationState.VERIFIED)
    return row


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        openrouter_api_key=None,
        store_backend="file",
        store_path=str(tmp_path / "store.json"),
        chunk_size_lines=500,
        chunk_overlap_lines=10,
    )


@pytest.fixture
def kv_store(settings: Settings) -> FileKeyValueStore:
    return FileKeyValueStore(settings.store_path)


@pytest.fixture
def table_repository(kv_store: FileKeyValueStore) -> TableRepository:
    return TableRepository(kv_store)


@pytest.fixture
def credentials(kv_store: FileKeyValueStore) -> CredentialRepository:
    return CredentialRepository(kv_store)


@pytest.fixture
def table_service(table_repository: TableRepository, settings: Settings) -> TableService:
    return TableService(table_repository, settings)


@pytest.fixture
def sample_table() -> Table:
    return Table(
        rows=[
            make_row("dy001", "空运专线", "欧美FBA头程"),
            make_row("dy002", "美食探店", "吃遍全城"),
            make_row("dy003", "海运拼箱", "双清包税", verified=True),
            make_row("", "无ID账号", ""),
        ]
    )
