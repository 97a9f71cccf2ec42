"""
Extraction Schemas
==================

Pydantic models for LLM-based profile extraction and relevance filtering.
Defines the response contracts the model must satisfy and the aggregated
results handed back to callers.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtractedProfile(BaseModel):
    """
    Profile record extracted from unstructured text.

    Every field is a string; "not found" is the empty string, never null.
    ``douyinId`` is accepted as an alias of ``douyin_id`` since that is the
    key the model is asked to produce.
    """

    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(default="", description="Display name")
    douyin_id: str = Field(default="", alias="douyinId", description="External account id")
    fans: str = Field(default="", description="Follower count, original units kept (e.g. '1.5w')")
    bio: str = Field(default="", description="Biography text")
    contact: str = Field(default="", description="Phone / WeChat / email")

    @field_validator("username", "douyin_id", "fans", "bio", "contact", mode="before")
    @classmethod
    def coerce_to_string(cls, v: Any) -> str:
        """Null becomes empty string; numbers are rendered as text."""
        if v is None:
            return ""
        if isinstance(v, float) and v.is_integer():
            return str(int(v))
        if isinstance(v, (list, dict)):
            raise ValueError("expected a scalar value")
        return str(v)


class ProfilesPayload(BaseModel):
    """Extraction response contract: ``{"profiles": [...]}``."""

    profiles: list[ExtractedProfile]


class RemovalPayload(BaseModel):
    """Relevance response contract: ``{"ids_to_remove": [number...]}``."""

    ids_to_remove: list[int]


class ChunkError(BaseModel):
    """
    A chunk that failed during extraction.

    Kept in the result so the caller can show what went wrong and offer a retry.
    """

    chunk_index: int = Field(..., ge=0)
    start_line: int = Field(..., ge=0)
    end_line: int = Field(..., ge=0)
    error_type: str = Field(..., description="RemoteError, ParseError, ...")
    error_message: str
    status_code: Optional[int] = None
    raw_response: Optional[str] = Field(None, description="Raw body/text for diagnostics")


class ExtractionResult(BaseModel):
    """
    Result of a chunked extraction run.

    Partial success is normal: failed chunks are listed in ``errors`` and
    their profiles are simply missing from ``profiles``.
    """

    profiles: list[ExtractedProfile] = Field(default_factory=list)
    total_chunks: int = Field(default=0, ge=0)
    succeeded_chunks: int = Field(default=0, ge=0)
    errors: list[ChunkError] = Field(default_factory=list)

    @property
    def failed_chunks(self) -> int:
        return len(self.errors)

    @property
    def status(self) -> str:
        """
        Overall outcome.

        Returns:
            - 'empty': nothing to process (blank input)
            - 'success': every chunk succeeded
            - 'partial': some chunks failed
            - 'failed': every chunk failed
        """
        if self.total_chunks == 0:
            return "empty"
        if not self.errors:
            return "success"
        if self.succeeded_chunks == 0:
            return "failed"
        return "partial"
