"""Tiered context retriever over profile, documents and playbooks."""

from __future__ import annotations

from collections.abc import Callable

from agent_pipeline.config import RetrievalConfig
from agent_pipeline.errors import RetrievalDegraded
from agent_pipeline.ingest.embedder import Embedder
from agent_pipeline.obs.logging import get_logger
from agent_pipeline.obs.tracing import tier_counts
from agent_pipeline.retrieval.knowledge import CompanyProfileStore, PlaybookStore
from agent_pipeline.retrieval.vector_store import ChunkStore
from agent_pipeline.types import ContextSource, ContextTier, ScoredChunk

logger = get_logger(__name__)

_COMPANY_PROFILE_CHARS = 2000


class ContextRetriever:
    """Collects context sources tier by tier.

    Tiers run in declaration order (company profile, agent documents, shared
    documents, playbooks) and their results are appended without any global
    re-ranking; the combined list is cut at `total_max_chunks`. Vector tiers
    keep their own descending-similarity order and drop anything below the
    similarity threshold. A failing tier is logged and contributes nothing.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        profile_store: CompanyProfileStore,
        playbook_store: PlaybookStore,
        embedder: Embedder | None = None,
    ) -> None:
        self.chunk_store = chunk_store
        self.profile_store = profile_store
        self.playbook_store = playbook_store
        self.embedder = embedder

    def retrieve(
        self,
        query: str,
        query_embedding: list[float] | None,
        config: RetrievalConfig,
        company_id: str,
        agent_id: str | None,
    ) -> list[ContextSource]:
        has_embedding = bool(query_embedding)
        tiers: list[tuple[ContextTier, bool, Callable[[], list[ContextSource]]]] = [
            (
                ContextTier.COMPANY_PROFILE,
                config.enable_company_profile,
                lambda: self._company_profile(company_id),
            ),
            (
                ContextTier.AGENT_DOCS,
                config.enable_agent_docs and has_embedding and agent_id is not None,
                lambda: self._agent_docs(query_embedding or [], config, agent_id or ""),
            ),
            (
                ContextTier.SHARED_DOCS,
                config.enable_shared_docs and has_embedding,
                lambda: self._shared_docs(query_embedding or [], config, company_id),
            ),
            (
                ContextTier.PLAYBOOKS,
                config.enable_playbooks,
                lambda: self._playbooks(company_id, config),
            ),
        ]

        sources: list[ContextSource] = []
        for tier, enabled, fetch in tiers:
            if not enabled:
                continue
            try:
                sources.extend(fetch())
            except Exception as exc:
                degraded = RetrievalDegraded(tier.value, exc)
                logger.warning("retrieval_tier_failed", tier=tier.value, error=str(degraded))

        limited = sources[: config.total_max_chunks]
        logger.info(
            "context_retrieved",
            company_id=company_id,
            agent_id=agent_id,
            tiers=tier_counts(limited),
            total=len(limited),
            vector_tiers_skipped=not has_embedding,
        )
        return limited

    def embed_query(self, query: str) -> list[float] | None:
        """Embed the query, or return None when the provider is unavailable."""
        if self.embedder is None:
            return None
        try:
            return self.embedder.embed_query(query)
        except Exception as exc:
            logger.warning(
                "query_embedding_failed", error=str(exc), error_type=type(exc).__name__
            )
            return None

    def retrieve_for_query(
        self,
        query: str,
        config: RetrievalConfig,
        company_id: str,
        agent_id: str | None,
    ) -> list[ContextSource]:
        if not config.any_enabled:
            return []
        return self.retrieve(query, self.embed_query(query), config, company_id, agent_id)

    def _company_profile(self, company_id: str) -> list[ContextSource]:
        profile = self.profile_store.get_profile(company_id)
        if profile is None:
            return []
        return [
            ContextSource(
                tier=ContextTier.COMPANY_PROFILE,
                content=f"{title}:\n{body}"[:_COMPANY_PROFILE_CHARS],
                metadata={"source": "Company Profile", "section": title},
            )
            for title, body in profile.sections()
        ]

    def _agent_docs(
        self, query_embedding: list[float], config: RetrievalConfig, agent_id: str
    ) -> list[ContextSource]:
        matches = self.chunk_store.match_agent_chunks(
            query_embedding,
            agent_id=agent_id,
            threshold=config.similarity_threshold,
            limit=config.max_chunks_per_source,
        )
        return [_scored_source(ContextTier.AGENT_DOCS, match) for match in matches]

    def _shared_docs(
        self, query_embedding: list[float], config: RetrievalConfig, company_id: str
    ) -> list[ContextSource]:
        matches = self.chunk_store.match_shared_chunks(
            query_embedding,
            company_id=company_id,
            threshold=config.similarity_threshold,
            limit=config.max_chunks_per_source,
        )
        return [_scored_source(ContextTier.SHARED_DOCS, match) for match in matches]

    def _playbooks(self, company_id: str, config: RetrievalConfig) -> list[ContextSource]:
        playbooks = self.playbook_store.list_playbooks(
            company_id, limit=config.max_chunks_per_source
        )
        return [
            ContextSource(
                tier=ContextTier.PLAYBOOKS,
                content=playbook.content[: config.playbook_snippet_chars],
                metadata={"source": playbook.title, "playbook_id": playbook.playbook_id},
            )
            for playbook in playbooks
        ]


def _scored_source(tier: ContextTier, match: ScoredChunk) -> ContextSource:
    chunk = match.chunk
    return ContextSource(
        tier=tier,
        content=chunk.text,
        relevance_score=match.score,
        metadata={
            "source": chunk.metadata.get("filename", chunk.document_id),
            "document_id": chunk.document_id,
            "chunk_index": chunk.chunk_index,
        },
    )
