import pytest

from agent_pipeline.obs.tracing import TraceStore, estimate_token_count
from agent_pipeline.types import ContextSource, ContextTier, ToolInvocationResult


def _record(store: TraceStore, latency_ms: float, sources=(), tool_results=()):
    return store.create_record(
        agent_id="agent-1",
        conversation_id="conv-1",
        action_type="document_search",
        confidence=0.9,
        sources=list(sources),
        tool_results=list(tool_results),
        tool_traces=[],
        question="What is the refund policy?",
        answer="Refunds within 30 days.",
        latency_ms=latency_ms,
    )


def test_summary_aggregates_tiers_and_tools() -> None:
    store = TraceStore()
    _record(
        store,
        10.0,
        sources=[
            ContextSource(tier=ContextTier.COMPANY_PROFILE, content="a"),
            ContextSource(tier=ContextTier.SHARED_DOCS, content="b", relevance_score=0.8),
        ],
        tool_results=[
            ToolInvocationResult(tool_call_id="1", tool_id="t", name="t", content="ok"),
            ToolInvocationResult(tool_call_id="2", tool_id="t", name="t", error="boom"),
        ],
    )
    _record(store, 30.0)

    summary = store.summary()

    assert summary["total_requests"] == 2
    assert summary["avg_latency_ms"] == 20.0
    assert summary["tier_usage"] == {"company_profile": 1, "shared_docs": 1}
    assert summary["tool_successes"] == 1
    assert summary["tool_errors"] == 1
    assert summary["context_hit_rate"] == 0.5


def test_records_are_bounded_and_retrievable() -> None:
    store = TraceStore(max_records=2)
    first = _record(store, 1.0)
    _record(store, 2.0)
    third = _record(store, 3.0)

    assert store.get(third.trace_id).latency_ms == 3.0
    assert [record.latency_ms for record in store.list_recent()] == [2.0, 3.0]
    with pytest.raises(KeyError):
        store.get(first.trace_id)


def test_token_estimate_counts_words_and_punctuation() -> None:
    assert estimate_token_count("Refunds within 30 days.") == 5
