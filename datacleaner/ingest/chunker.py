"""
Chunker - Text-to-Chunk Splitter
================================

Splits long pasted text into line-bounded, overlapping slices, each small
enough for a single model request.

Chunk i starts at line ``i * (chunk_size - overlap)`` and spans
``chunk_size`` lines (fewer at the tail). Iteration stops as soon as a
chunk reaches the last line, so there is never a trailing empty chunk.
Whitespace-only chunks are skipped.

Overlap exists so that a record straddling a boundary appears complete in at
least one chunk. Dropping partial records at chunk edges is the extraction
prompt's job, not the chunker's.
"""

import math
from collections.abc import Iterator
from dataclasses import dataclass

from datacleaner.utils.errors import ConfigurationError
from datacleaner.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TextChunk:
    """
    A slice of the source text.

    Attributes:
        index: Position in emission order (0-based, counts skipped blanks too)
        start_line: First line (0-based, inclusive)
        end_line: Last line (exclusive)
        text: Lines joined with newlines
    """

    index: int
    start_line: int
    end_line: int
    text: str

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line


class TextChunker:
    """
    Line-based sliding window over text.

    Example:
        chunker = TextChunker(chunk_size=500, overlap=10)
        for chunk in chunker.iter_chunks(text):
            ...
    """

    DEFAULT_CHUNK_SIZE = 500
    DEFAULT_OVERLAP = 10

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
    ) -> None:
        """
        Initialize TextChunker.

        Args:
            chunk_size: Lines per chunk
            overlap: Lines shared by consecutive chunks (0 <= overlap < chunk_size)

        Raises:
            ConfigurationError: If the parameters cannot make progress
        """
        if chunk_size < 1:
            raise ConfigurationError(
                "chunk_size must be at least 1",
                details={"chunk_size": chunk_size},
            )
        if overlap < 0 or overlap >= chunk_size:
            raise ConfigurationError(
                "overlap must satisfy 0 <= overlap < chunk_size",
                details={"chunk_size": chunk_size, "overlap": overlap},
            )
        self.chunk_size = chunk_size
        self.overlap = overlap

    @property
    def step(self) -> int:
        return self.chunk_size - self.overlap

    def iter_chunks(self, text: str) -> Iterator[TextChunk]:
        """
        Yield chunks in source order.

        The iterator is restartable: calling it again re-splits the text.
        """
        lines = text.splitlines()
        total = len(lines)
        index = 0

        while True:
            start = index * self.step
            end = min(start + self.chunk_size, total)
            body = "\n".join(lines[start:end])
            if body.strip():
                yield TextChunk(index=index, start_line=start, end_line=end, text=body)
            if start + self.chunk_size >= total:
                break
            index += 1

    def chunk(self, text: str) -> list[TextChunk]:
        """Split text into a list of non-blank chunks."""
        chunks = list(self.iter_chunks(text))
        logger.debug(
            "chunker.split",
            chunk_size=self.chunk_size,
            overlap=self.overlap,
            chunks=len(chunks),
        )
        return chunks

    def expected_chunk_count(self, line_count: int) -> int:
        """Number of windows for ``line_count`` lines (before blank-skipping)."""
        if line_count <= self.chunk_size:
            return 1
        return math.ceil((line_count - self.overlap) / self.step)
