"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ContextTier(str, Enum):
    """Retrieval tiers, in source-declaration order."""

    COMPANY_PROFILE = "company_profile"
    AGENT_DOCS = "agent_docs"
    SHARED_DOCS = "shared_docs"
    PLAYBOOKS = "playbooks"


class ActionType(str, Enum):
    TOOL = "tool"
    DOCUMENT_SEARCH = "document_search"
    BOTH = "both"
    ASSISTANT_ONLY = "assistant_only"
    LONG_FORM = "long_form"

    @property
    def uses_tools(self) -> bool:
        return self in (ActionType.TOOL, ActionType.BOTH)

    @property
    def uses_retrieval(self) -> bool:
        return self in (ActionType.DOCUMENT_SEARCH, ActionType.BOTH)


@dataclass(slots=True)
class SourceDocument:
    """A logical uploaded document and its processing tags."""

    document_id: str
    name: str
    mime_type: str
    size: int
    company_id: str
    storage_locator: str
    agent_id: str | None = None
    tags: list[str] = field(default_factory=list)

    def add_tags(self, *tags: str) -> None:
        for tag in tags:
            if tag not in self.tags:
                self.tags.append(tag)


@dataclass(slots=True)
class DocumentChunk:
    """A slice of extracted document text.

    `agent_id` of None means the chunk is visible to every agent of the company.
    """

    chunk_id: str
    document_id: str
    company_id: str
    chunk_index: int
    start: int
    end: int
    text: str
    agent_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ScoredChunk:
    chunk: DocumentChunk
    score: float


@dataclass(slots=True)
class ContextSource:
    """One retrieval result. Never persisted."""

    tier: ContextTier
    content: str
    relevance_score: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ToolInvocation:
    tool_id: str
    action: str
    parameters: dict[str, Any] = field(default_factory=dict)
    priority: int = 1


@dataclass(slots=True)
class IntentPlan:
    """Routing decision for one user message."""

    action_type: ActionType
    tools_required: list[ToolInvocation] = field(default_factory=list)
    document_search_query: str | None = None
    confidence: float = 0.5
    rationale: str = ""


@dataclass(slots=True)
class ToolInvocationResult:
    """Outcome of one requested tool call; exactly one of content/error is set."""

    tool_call_id: str
    tool_id: str | None
    name: str
    content: str | None = None
    error: str | None = None
    latency_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    def as_message_content(self) -> str:
        if self.error is not None:
            return f"Error: {self.error}"
        return self.content or ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_call_id": self.tool_call_id,
            "tool_id": self.tool_id,
            "name": self.name,
            "success": self.success,
            "content": self.content,
            "error": self.error,
        }


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


@dataclass(slots=True)
class Attachment:
    name: str
    storage_locator: str
    mime_type: str = "application/octet-stream"
    size: int = 0


@dataclass(slots=True)
class ChatMessage:
    role: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


@dataclass(slots=True)
class Citation:
    tier: ContextTier
    content: str
    relevance_score: float | None
    source: dict[str, Any]


@dataclass(slots=True)
class AssistantReply:
    reply: str
    plan: IntentPlan
    citations: list[Citation] = field(default_factory=list)
    tool_results: list[ToolInvocationResult] = field(default_factory=list)
    conversation_id: str | None = None

    @property
    def used_context(self) -> bool:
        return bool(self.citations)


@dataclass(slots=True)
class IngestResult:
    document_id: str
    chunk_count: int
    embedding_dimensions: int


@dataclass(slots=True)
class ConverseRequest:
    message: str
    agent_id: str
    user_id: str
    company_id: str
    conversation_id: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
