import pytest

from agent_pipeline.config import RetrievalConfig
from agent_pipeline.ingest.embedder import HashingEmbedder
from agent_pipeline.retrieval.knowledge import (
    CompanyProfile,
    InMemoryCompanyProfileStore,
    InMemoryPlaybookStore,
    Playbook,
)
from agent_pipeline.retrieval.retriever import ContextRetriever
from agent_pipeline.retrieval.vector_store import InMemoryChunkStore
from agent_pipeline.types import ContextTier, DocumentChunk

_QUERY = "how do we encrypt customer data"


class _ExplodingChunkStore(InMemoryChunkStore):
    def match_agent_chunks(self, query_embedding, *, agent_id, threshold, limit):
        raise ConnectionError("vector rpc unavailable")


def _chunk(index: int, *, document_id: str, agent_id: str | None) -> DocumentChunk:
    return DocumentChunk(
        chunk_id=f"{document_id}-{index}",
        document_id=document_id,
        company_id="company-1",
        agent_id=agent_id,
        chunk_index=index,
        start=index * 1000,
        end=(index + 1) * 1000,
        text=f"{_QUERY} section {index}",
        metadata={"filename": f"{document_id}.txt"},
    )


def _retriever(store=None, embedder=None) -> ContextRetriever:
    store = store if store is not None else InMemoryChunkStore()
    hashing = HashingEmbedder()
    agent_chunks = [_chunk(i, document_id="agent-doc", agent_id="agent-1") for i in range(8)]
    shared_chunks = [_chunk(i, document_id="shared-doc", agent_id=None) for i in range(8)]
    store.replace_document("agent-doc", agent_chunks, hashing.embed_documents([c.text for c in agent_chunks]))
    store.replace_document("shared-doc", shared_chunks, hashing.embed_documents([c.text for c in shared_chunks]))

    profiles = InMemoryCompanyProfileStore()
    profiles.save(
        CompanyProfile(
            company_id="company-1",
            company_name="Acme",
            overview="Industrial safety equipment.",
            mission="Keep workers safe.",
            core_values=["Safety", "Candor"],
            brand_voice="Plain and direct.",
        )
    )
    playbooks = InMemoryPlaybookStore()
    for i in range(8):
        playbooks.add(Playbook(f"pb-{i}", "company-1", f"Playbook {i}", "Step one. " * 200))
    playbooks.add(Playbook("pb-draft", "company-1", "Draft", "unfinished", status="draft"))
    return ContextRetriever(store, profiles, playbooks, embedder or hashing)


@pytest.mark.parametrize("total_max_chunks", [1, 4, 9, 15, 40])
def test_retrieval_never_exceeds_total_cap(total_max_chunks: int) -> None:
    config = RetrievalConfig(
        similarity_threshold=0.1, max_chunks_per_source=8, total_max_chunks=total_max_chunks
    )

    sources = _retriever().retrieve_for_query(_QUERY, config, "company-1", "agent-1")

    assert len(sources) <= total_max_chunks


def test_tiers_are_appended_in_declaration_order() -> None:
    config = RetrievalConfig(similarity_threshold=0.1, max_chunks_per_source=2, total_max_chunks=15)

    sources = _retriever().retrieve_for_query(_QUERY, config, "company-1", "agent-1")

    tiers = [source.tier for source in sources]
    assert tiers == [
        ContextTier.COMPANY_PROFILE,
        ContextTier.COMPANY_PROFILE,
        ContextTier.COMPANY_PROFILE,
        ContextTier.COMPANY_PROFILE,
        ContextTier.AGENT_DOCS,
        ContextTier.AGENT_DOCS,
        ContextTier.SHARED_DOCS,
        ContextTier.SHARED_DOCS,
        ContextTier.PLAYBOOKS,
        ContextTier.PLAYBOOKS,
    ]
    assert sources[0].content.startswith("Company Overview:\nAcme: Industrial safety")
    assert all(len(source.content) <= 1000 for source in sources if source.tier is ContextTier.PLAYBOOKS)


def test_shared_tier_excludes_agent_linked_chunks() -> None:
    config = RetrievalConfig(
        enable_company_profile=False,
        enable_agent_docs=False,
        enable_playbooks=False,
        similarity_threshold=0.1,
        max_chunks_per_source=20,
        total_max_chunks=20,
    )

    sources = _retriever().retrieve_for_query(_QUERY, config, "company-1", "agent-1")

    assert len(sources) == 8
    assert {source.metadata["document_id"] for source in sources} == {"shared-doc"}
    scores = [source.relevance_score for source in sources]
    assert scores == sorted(scores, reverse=True)


def test_threshold_filters_weak_matches() -> None:
    config = RetrievalConfig(
        enable_company_profile=False,
        enable_playbooks=False,
        similarity_threshold=0.99,
    )

    sources = _retriever().retrieve_for_query("completely unrelated words", config, "company-1", "agent-1")

    assert sources == []


def test_embedding_failure_keeps_flat_tiers(failing_embedder) -> None:
    config = RetrievalConfig(similarity_threshold=0.1, max_chunks_per_source=2)

    sources = _retriever(embedder=failing_embedder).retrieve_for_query(
        _QUERY, config, "company-1", "agent-1"
    )

    tiers = {source.tier for source in sources}
    assert tiers == {ContextTier.COMPANY_PROFILE, ContextTier.PLAYBOOKS}


def test_failing_tier_degrades_to_empty() -> None:
    config = RetrievalConfig(similarity_threshold=0.1, max_chunks_per_source=2)

    sources = _retriever(store=_ExplodingChunkStore()).retrieve_for_query(
        _QUERY, config, "company-1", "agent-1"
    )

    tiers = [source.tier for source in sources]
    assert ContextTier.AGENT_DOCS not in tiers
    assert ContextTier.SHARED_DOCS in tiers
    assert ContextTier.PLAYBOOKS in tiers


def test_nothing_enabled_returns_empty() -> None:
    config = RetrievalConfig(
        enable_company_profile=False,
        enable_agent_docs=False,
        enable_shared_docs=False,
        enable_playbooks=False,
    )

    assert _retriever().retrieve_for_query(_QUERY, config, "company-1", "agent-1") == []


def test_draft_playbooks_are_ignored() -> None:
    config = RetrievalConfig(
        enable_company_profile=False,
        enable_agent_docs=False,
        enable_shared_docs=False,
        max_chunks_per_source=20,
        total_max_chunks=20,
    )

    sources = _retriever().retrieve_for_query(_QUERY, config, "company-1", "agent-1")

    assert len(sources) == 8
    assert "pb-draft" not in {source.metadata["playbook_id"] for source in sources}
