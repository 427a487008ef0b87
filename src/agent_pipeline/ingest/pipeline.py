"""End-to-end ingest pipeline: extract -> validate -> chunk -> embed -> replace."""

from __future__ import annotations

from dataclasses import replace

from agent_pipeline.errors import EmbeddingProviderError, ExtractionError, NotFoundError
from agent_pipeline.ingest.chunker import FixedWindowChunker
from agent_pipeline.ingest.embedder import Embedder
from agent_pipeline.ingest.extractors import ExtractorRegistry
from agent_pipeline.ingest.validation import ContentValidator
from agent_pipeline.obs.logging import get_logger
from agent_pipeline.retrieval.vector_store import ChunkStore
from agent_pipeline.storage.agents import AgentStore
from agent_pipeline.storage.documents import BlobStorage, DocumentStore
from agent_pipeline.types import DocumentChunk, IngestResult, SourceDocument

logger = get_logger(__name__)


class IngestPipeline:
    """Coordinates extractor/validator/chunker/embedder/chunk store stages.

    Nothing is written to the chunk store until every chunk has an embedding,
    so a provider failure leaves the previous chunk set untouched.
    """

    def __init__(
        self,
        extractors: ExtractorRegistry,
        validator: ContentValidator,
        chunker: FixedWindowChunker,
        embedder: Embedder,
        chunk_store: ChunkStore,
    ) -> None:
        self._extractors = extractors
        self._validator = validator
        self._chunker = chunker
        self._embedder = embedder
        self._chunk_store = chunk_store

    @property
    def embedding_dimensions(self) -> int:
        return self._embedder.dimension

    def extract_text(self, raw: bytes, mime_type: str, filename: str) -> str:
        """Extract and validate text; raises `ExtractionError` with a notice."""
        try:
            text = self._extractors.extract(raw, mime_type)
        except Exception as exc:
            raise ExtractionError(
                f"Failed to extract content from {filename}: {exc}", reason="extractor_failed"
            ) from exc
        return self._validator.validate(
            text, filename=filename, size=len(raw), mime_type=mime_type
        )

    def ingest(
        self, raw: bytes, mime_type: str, filename: str, document: SourceDocument
    ) -> IngestResult:
        text = self.extract_text(raw, mime_type, filename)
        chunks = self._chunker.chunk(document, text)
        embeddings = self._embed(chunks)
        self._chunk_store.replace_document(document.document_id, chunks, embeddings)

        logger.info(
            "document_ingested",
            document_id=document.document_id,
            company_id=document.company_id,
            agent_id=document.agent_id,
            chunk_count=len(chunks),
            text_length=len(text),
        )
        return IngestResult(
            document_id=document.document_id,
            chunk_count=len(chunks),
            embedding_dimensions=self.embedding_dimensions,
        )

    def _embed(self, chunks: list[DocumentChunk]) -> list[list[float]]:
        if not chunks:
            return []
        try:
            embeddings = self._embedder.embed_documents([chunk.text for chunk in chunks])
        except EmbeddingProviderError:
            raise
        except Exception as exc:
            raise EmbeddingProviderError(f"Embedding request failed: {exc}") from exc
        if len(embeddings) != len(chunks):
            raise EmbeddingProviderError(
                f"Expected {len(chunks)} embeddings, received {len(embeddings)}"
            )
        return embeddings


class DocumentIngestService:
    """Resolves stored documents and runs them through the pipeline.

    Successful runs tag the document; failures leave it untouched.
    """

    def __init__(
        self,
        pipeline: IngestPipeline,
        documents: DocumentStore,
        blobs: BlobStorage,
        agents: AgentStore,
    ) -> None:
        self.pipeline = pipeline
        self.documents = documents
        self.blobs = blobs
        self.agents = agents

    def ingest_document(
        self,
        document_id: str,
        company_id: str,
        storage_locator: str,
        agent_id: str | None = None,
    ) -> IngestResult:
        stored = self.documents.get(document_id)
        if stored.company_id != company_id:
            # Cross-company access reads as absence.
            raise NotFoundError("document", document_id)
        if agent_id is not None and self.agents.get(agent_id).company_id != company_id:
            raise NotFoundError("agent", agent_id)

        raw = self.blobs.read(storage_locator)
        document = replace(
            stored,
            agent_id=agent_id if agent_id is not None else stored.agent_id,
            storage_locator=storage_locator,
            size=stored.size or len(raw),
            tags=list(stored.tags),
        )
        result = self.pipeline.ingest(raw, document.mime_type, document.name, document)

        tags = ["processed", "embedded"]
        if document.agent_id:
            tags.append(f"agent-{document.agent_id}")
        document.add_tags(*tags)
        self.documents.save(document)
        return result
