"""Fixed-window chunking with a short backward overlap."""

from __future__ import annotations

import uuid
from math import ceil

from agent_pipeline.config import ChunkingConfig
from agent_pipeline.types import DocumentChunk, SourceDocument


class FixedWindowChunker:
    """Splits text into sequential windows of `chunk_size` characters.

    Window `i` covers `[start_i, min((i + 1) * chunk_size, len(text)))` where
    `start_0 = 0` and `start_i = max(0, i * chunk_size - overlap)` for `i > 0`.
    Every window after the first therefore repeats the last `overlap`
    characters of its predecessor, so a sentence cut at a boundary stays
    intact in at least one chunk. Windows whose stripped text is shorter than
    `min_chunk_chars` are dropped; `chunk_index` keeps the window number so
    boundaries stay computable from the index alone.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def windows(self, length: int) -> list[tuple[int, int]]:
        size = self.config.chunk_size
        bounds: list[tuple[int, int]] = []
        for i in range(ceil(length / size)):
            start = 0 if i == 0 else max(0, i * size - self.config.overlap)
            end = min((i + 1) * size, length)
            bounds.append((start, end))
        return bounds

    def chunk(self, document: SourceDocument, text: str) -> list[DocumentChunk]:
        chunks: list[DocumentChunk] = []
        for index, (start, end) in enumerate(self.windows(len(text))):
            piece = text[start:end]
            if len(piece.strip()) < self.config.min_chunk_chars:
                continue
            chunks.append(
                DocumentChunk(
                    chunk_id=str(uuid.uuid4()),
                    document_id=document.document_id,
                    company_id=document.company_id,
                    agent_id=document.agent_id,
                    chunk_index=index,
                    start=start,
                    end=end,
                    text=piece,
                    metadata={
                        "filename": document.name,
                        "file_type": document.mime_type,
                        "chunk_index": index,
                    },
                )
            )
        return chunks
