"""Per-turn analytics records and aggregate metrics."""

from __future__ import annotations

import re
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone

from agent_pipeline.types import ContextSource, ToolInvocationResult, ToolTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class TurnRecord:
    trace_id: str
    timestamp_utc: str
    agent_id: str
    conversation_id: str | None
    action_type: str
    confidence: float
    tiers_used: dict[str, int]
    tool_successes: int
    tool_errors: int
    tool_traces: list[ToolTrace] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0


class TraceStore:
    """In-memory turn analytics used by the API metrics endpoint."""

    def __init__(self, max_records: int = 1000) -> None:
        self._records: dict[str, TurnRecord] = {}
        self._max_records = max_records

    def create_record(
        self,
        *,
        agent_id: str,
        conversation_id: str | None,
        action_type: str,
        confidence: float,
        sources: list[ContextSource],
        tool_results: list[ToolInvocationResult],
        tool_traces: list[ToolTrace],
        question: str,
        answer: str,
        latency_ms: float,
    ) -> TurnRecord:
        successes = sum(1 for result in tool_results if result.success)
        record = TurnRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            agent_id=agent_id,
            conversation_id=conversation_id,
            action_type=action_type,
            confidence=confidence,
            tiers_used=tier_counts(sources),
            tool_successes=successes,
            tool_errors=len(tool_results) - successes,
            tool_traces=tool_traces,
            input_tokens=estimate_token_count(question),
            output_tokens=estimate_token_count(answer),
            latency_ms=latency_ms,
        )
        self._records[record.trace_id] = record
        while len(self._records) > self._max_records:
            self._records.pop(next(iter(self._records)))
        return record

    def get(self, trace_id: str) -> TurnRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TurnRecord]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, object]:
        """Aggregate turn metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "action_types": {},
                "tier_usage": {},
                "tool_successes": 0,
                "tool_errors": 0,
                "context_hit_rate": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        tier_usage: Counter[str] = Counter()
        for record in records:
            tier_usage.update(record.tiers_used)

        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "action_types": dict(Counter(record.action_type for record in records)),
            "tier_usage": dict(tier_usage),
            "tool_successes": sum(record.tool_successes for record in records),
            "tool_errors": sum(record.tool_errors for record in records),
            "context_hit_rate": sum(1 for record in records if record.tiers_used) / total,
        }


def tier_counts(sources: list[ContextSource]) -> dict[str, int]:
    return dict(Counter(source.tier.value for source in sources))


class Timer:
    """Simple context timer used by the conversation loop."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
