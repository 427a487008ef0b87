"""Conversation turn orchestration: classify, retrieve, call tools, answer, persist."""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from time import perf_counter
from typing import Any

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from agent_pipeline.agent.classifier import IntentClassifier
from agent_pipeline.agent.llm import ChatModel, content_text
from agent_pipeline.agent.prompts import build_system_prompt
from agent_pipeline.agent.registry import ToolCatalog, ToolRegistry
from agent_pipeline.config import AgentConfig
from agent_pipeline.errors import (
    ExtractionError,
    NotFoundError,
    ToolInvocationError,
    ValidationError,
)
from agent_pipeline.ingest.pipeline import IngestPipeline
from agent_pipeline.obs.logging import get_logger
from agent_pipeline.obs.tracing import Timer, TraceStore
from agent_pipeline.retrieval.retriever import ContextRetriever
from agent_pipeline.storage.agents import AgentProfile, AgentStore
from agent_pipeline.storage.conversations import ConversationStore
from agent_pipeline.storage.documents import BlobStorage
from agent_pipeline.types import (
    ActionType,
    AssistantReply,
    Attachment,
    ChatMessage,
    Citation,
    ContextSource,
    ConverseRequest,
    IntentPlan,
    ToolInvocationResult,
    ToolTrace,
)

logger = get_logger(__name__)

KNOWLEDGE_TERMS = re.compile(
    r"\b(sops?|standard operating procedures?|polic(y|ies)|procedures?|handbook"
    r"|guidelines|company docs?|knowledge base)\b",
    re.IGNORECASE,
)

_ATTACHMENT_APOLOGY = (
    "I'm sorry, I couldn't read the attached document \"{name}\". {detail} "
    "Please try uploading a text-based version of the file."
)
_EMPTY_REPLY_NOTICE = "I ran the requested tools but could not put together a response. Please try again."


class ToolExecutionLoop:
    """Runs one conversation turn.

    State flow: classify -> (retrieve) -> first model call -> (execute tools ->
    second model call) -> persist. Tool calls run one after another, each under
    its own deadline; a failing call becomes an error result and never aborts
    its siblings. Messages are persisted only once a reply exists.
    """

    def __init__(
        self,
        *,
        model: ChatModel,
        classifier: IntentClassifier,
        retriever: ContextRetriever,
        tool_registry: ToolRegistry,
        agents: AgentStore,
        conversations: ConversationStore,
        trace_store: TraceStore,
        blobs: BlobStorage | None = None,
        ingest_pipeline: IngestPipeline | None = None,
        config: AgentConfig | None = None,
    ) -> None:
        self.model = model
        self.classifier = classifier
        self.retriever = retriever
        self.tool_registry = tool_registry
        self.agents = agents
        self.conversations = conversations
        self.trace_store = trace_store
        self.blobs = blobs
        self.ingest_pipeline = ingest_pipeline
        self.config = config or AgentConfig()

    def converse(self, request: ConverseRequest) -> AssistantReply:
        message = request.message.strip()
        if not message:
            raise ValidationError("message must not be empty")

        agent = self.agents.get(request.agent_id)
        if agent.company_id != request.company_id:
            raise NotFoundError("agent", request.agent_id)

        catalog = self.tool_registry.catalog(agent.enabled_tool_ids)
        history: list[ChatMessage] = []
        if request.conversation_id:
            history = self.conversations.history(
                request.conversation_id, self.config.history_limit
            )

        observed_tools: list[ToolTrace] = []
        with Timer() as timer:
            plan = self.classifier.classify(message, history, catalog, request.attachments)
            sources = self._retrieve(message, plan, agent, request.company_id)
            reply_text, tool_results = self._answer(
                message,
                history,
                plan,
                sources,
                agent,
                catalog,
                request.attachments,
                observer=observed_tools.append,
            )

        citations = [
            Citation(
                tier=source.tier,
                content=source.content[: agent.retrieval.content_preview_chars],
                relevance_score=source.relevance_score,
                source=dict(source.metadata),
            )
            for source in sources
        ]
        conversation_id = self._persist(request, message, reply_text, plan, citations, tool_results)

        record = self.trace_store.create_record(
            agent_id=agent.agent_id,
            conversation_id=conversation_id,
            action_type=plan.action_type.value,
            confidence=plan.confidence,
            sources=sources,
            tool_results=tool_results,
            tool_traces=list(observed_tools),
            question=message,
            answer=reply_text,
            latency_ms=timer.elapsed_ms,
        )
        logger.info(
            "turn_completed",
            trace_id=record.trace_id,
            agent_id=agent.agent_id,
            action_type=plan.action_type.value,
            tiers=record.tiers_used,
            tool_successes=record.tool_successes,
            tool_errors=record.tool_errors,
            latency_ms=round(record.latency_ms, 2),
        )
        return AssistantReply(
            reply=reply_text,
            plan=plan,
            citations=citations,
            tool_results=tool_results,
            conversation_id=conversation_id,
        )

    def _retrieve(
        self, message: str, plan: IntentPlan, agent: AgentProfile, company_id: str
    ) -> list[ContextSource]:
        if not (plan.action_type.uses_retrieval or KNOWLEDGE_TERMS.search(message)):
            return []
        query = plan.document_search_query or message
        return self.retriever.retrieve_for_query(
            query, agent.retrieval, company_id, agent.agent_id
        )

    def _answer(
        self,
        message: str,
        history: Sequence[ChatMessage],
        plan: IntentPlan,
        sources: list[ContextSource],
        agent: AgentProfile,
        catalog: ToolCatalog,
        attachments: Sequence[Attachment],
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> tuple[str, list[ToolInvocationResult]]:
        attachment_text: str | None = None
        attachment_name: str | None = None
        if plan.action_type is ActionType.LONG_FORM and attachments:
            attachment_name = attachments[0].name
            try:
                attachment_text = self._read_attachment(attachments[0])
            except (ExtractionError, NotFoundError) as exc:
                logger.warning(
                    "attachment_unreadable", attachment=attachment_name, error=str(exc)
                )
                detail = "It may be image-based, password-protected, or empty."
                return _ATTACHMENT_APOLOGY.format(name=attachment_name, detail=detail), []

        system_prompt = build_system_prompt(
            agent.system_preamble(),
            sources=sources,
            plan=plan,
            catalog=catalog,
            attachment_text=attachment_text,
            attachment_name=attachment_name,
        )
        messages: list[BaseMessage] = [
            SystemMessage(content=system_prompt),
            *_history_messages(history),
            HumanMessage(content=message),
        ]

        tools = None
        if plan.action_type.uses_tools and len(catalog):
            tools = self.tool_registry.as_langchain_tools(descriptor.id for descriptor in catalog)

        first = self.model.invoke(messages, tools=tools)
        if not first.tool_calls:
            return content_text(first), []

        tool_results = self.execute_tool_calls(first.tool_calls, catalog, observer)
        followup: list[BaseMessage] = [
            *messages,
            first,
            *(
                ToolMessage(
                    content=result.as_message_content(),
                    tool_call_id=result.tool_call_id,
                    name=result.name,
                )
                for result in tool_results
            ),
        ]
        second = self.model.invoke(followup)
        reply_text = content_text(second).strip()
        if not reply_text:
            logger.warning("empty_followup_reply", tool_calls=len(tool_results))
            reply_text = _EMPTY_REPLY_NOTICE
        return reply_text, tool_results

    def execute_tool_calls(
        self,
        tool_calls: Sequence[dict[str, Any]],
        catalog: ToolCatalog,
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> list[ToolInvocationResult]:
        """Execute calls in request order; every call yields exactly one result."""
        return [self._execute_one(call, catalog, observer) for call in tool_calls]

    def _execute_one(
        self,
        call: dict[str, Any],
        catalog: ToolCatalog,
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> ToolInvocationResult:
        name = str(call.get("name") or "")
        call_id = str(call.get("id") or uuid.uuid4())
        args = call.get("args") or {}
        tool_id = catalog.resolve(name) if name else None
        start = perf_counter()
        try:
            if tool_id is None:
                raise ToolInvocationError(f"Tool is not enabled for this agent: {name}", tool_name=name)
            content = self._run_with_deadline(tool_id, name, args, observer)
        except Exception as exc:
            error = exc if isinstance(exc, ToolInvocationError) else ToolInvocationError(
                str(exc) or type(exc).__name__, tool_name=name
            )
            logger.warning(
                "tool_call_failed",
                tool=name,
                tool_call_id=call_id,
                error=error.message,
                error_type=type(exc).__name__,
            )
            return ToolInvocationResult(
                tool_call_id=call_id,
                tool_id=tool_id,
                name=name,
                error=error.message,
                latency_ms=(perf_counter() - start) * 1000.0,
            )
        return ToolInvocationResult(
            tool_call_id=call_id,
            tool_id=tool_id,
            name=name,
            content=content,
            latency_ms=(perf_counter() - start) * 1000.0,
        )

    def _run_with_deadline(
        self,
        tool_id: str,
        name: str,
        args: dict[str, Any],
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> str:
        # A fresh worker per call so a hung tool never blocks the next one.
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"tool-{name}")
        try:
            future = pool.submit(self.tool_registry.execute, tool_id, args, observer)
            try:
                return future.result(timeout=self.config.tool_timeout_seconds)
            except FutureTimeoutError as exc:
                future.cancel()
                raise ToolInvocationError(
                    f"Tool timed out after {self.config.tool_timeout_seconds:g}s", tool_name=name
                ) from exc
        finally:
            pool.shutdown(wait=False)

    def _read_attachment(self, attachment: Attachment) -> str:
        if self.blobs is None or self.ingest_pipeline is None:
            raise ExtractionError("Attachment reading is not configured")
        raw = self.blobs.read(attachment.storage_locator)
        return self.ingest_pipeline.extract_text(raw, attachment.mime_type, attachment.name)

    def _persist(
        self,
        request: ConverseRequest,
        message: str,
        reply_text: str,
        plan: IntentPlan,
        citations: list[Citation],
        tool_results: list[ToolInvocationResult],
    ) -> str:
        conversation_id = request.conversation_id or self.conversations.create(
            request.agent_id, request.user_id
        )
        user_message = ChatMessage(
            role="user",
            content=message,
            metadata={
                "user_id": request.user_id,
                "attachments": [attachment.name for attachment in request.attachments],
            },
        )
        assistant_message = ChatMessage(
            role="assistant",
            content=reply_text,
            metadata={
                "agent_id": request.agent_id,
                "action_type": plan.action_type.value,
                "tool_results": [result.to_dict() for result in tool_results],
                "context_used": [
                    {"tier": citation.tier.value, "relevance_score": citation.relevance_score}
                    for citation in citations
                ],
            },
        )
        self.conversations.append(conversation_id, [user_message, assistant_message])
        return conversation_id


def _history_messages(history: Sequence[ChatMessage]) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for item in history:
        if item.role == "user":
            messages.append(HumanMessage(content=item.content))
        elif item.role == "assistant":
            messages.append(AIMessage(content=item.content))
        elif item.role == "system":
            messages.append(SystemMessage(content=item.content))
    return messages
