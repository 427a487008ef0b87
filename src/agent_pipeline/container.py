"""Wires stores, providers and pipeline components into one service bundle."""

from __future__ import annotations

from dataclasses import dataclass

from agent_pipeline.agent.classifier import IntentClassifier
from agent_pipeline.agent.llm import ChatModel, create_chat_model
from agent_pipeline.agent.loop import ToolExecutionLoop
from agent_pipeline.agent.registry import ToolRegistry
from agent_pipeline.agent.tools import (
    ModelResearchProvider,
    ResearchProvider,
    register_builtin_tools,
)
from agent_pipeline.config import (
    AgentConfig,
    ChunkingConfig,
    ClassifierConfig,
    Settings,
    ValidationConfig,
    get_settings,
)
from agent_pipeline.ingest.chunker import FixedWindowChunker
from agent_pipeline.ingest.embedder import Embedder, HashingEmbedder, OpenAIEmbedder
from agent_pipeline.ingest.extractors import ExtractorRegistry
from agent_pipeline.ingest.pipeline import DocumentIngestService, IngestPipeline
from agent_pipeline.ingest.validation import ContentValidator
from agent_pipeline.obs.logging import get_logger
from agent_pipeline.obs.tracing import TraceStore
from agent_pipeline.retrieval.knowledge import (
    InMemoryCompanyProfileStore,
    InMemoryPlaybookStore,
)
from agent_pipeline.retrieval.retriever import ContextRetriever
from agent_pipeline.retrieval.vector_store import InMemoryChunkStore
from agent_pipeline.storage.agents import InMemoryAgentStore
from agent_pipeline.storage.conversations import InMemoryConversationStore
from agent_pipeline.storage.documents import InMemoryBlobStorage, InMemoryDocumentStore

logger = get_logger(__name__)


@dataclass(slots=True)
class Services:
    settings: Settings
    agents: InMemoryAgentStore
    documents: InMemoryDocumentStore
    blobs: InMemoryBlobStorage
    chunk_store: InMemoryChunkStore
    profiles: InMemoryCompanyProfileStore
    playbooks: InMemoryPlaybookStore
    conversations: InMemoryConversationStore
    embedder: Embedder
    ingest_pipeline: IngestPipeline
    ingest_service: DocumentIngestService
    retriever: ContextRetriever
    registry: ToolRegistry
    trace_store: TraceStore
    loop: ToolExecutionLoop | None


def build_services(
    settings: Settings | None = None,
    *,
    chat_model: ChatModel | None = None,
    classifier_model: ChatModel | None = None,
    embedder: Embedder | None = None,
    research_provider: ResearchProvider | None = None,
    agent_config: AgentConfig | None = None,
) -> Services:
    """Build the default in-memory service bundle.

    Without injected models, OpenAI models are created when an API key is
    configured; otherwise the conversation loop is left unset and only
    ingestion is available.
    """
    settings = settings or get_settings()

    if embedder is None:
        if settings.openai_api_key:
            embedder = OpenAIEmbedder(
                model=settings.embedding_model,
                dimension=settings.embedding_dimensions,
                api_key=settings.openai_api_key,
                timeout=settings.embedding_timeout_seconds,
                max_retries=settings.embedding_max_retries,
            )
        else:
            logger.warning("embedding_provider_unconfigured", fallback="hashing")
            embedder = HashingEmbedder()

    if chat_model is None and settings.openai_api_key:
        chat_model = create_chat_model(settings)
    if classifier_model is None and settings.openai_api_key:
        classifier_model = create_chat_model(
            settings, model=settings.classifier_model, temperature=0.1, with_fallback=False
        )
    classifier_model = classifier_model or chat_model

    validation_config = ValidationConfig()
    chunk_store = InMemoryChunkStore()
    documents = InMemoryDocumentStore()
    blobs = InMemoryBlobStorage()
    ingest_pipeline = IngestPipeline(
        ExtractorRegistry(max_chars=validation_config.max_text_chars),
        ContentValidator(validation_config),
        FixedWindowChunker(ChunkingConfig()),
        embedder,
        chunk_store,
    )
    profiles = InMemoryCompanyProfileStore()
    playbooks = InMemoryPlaybookStore()
    retriever = ContextRetriever(chunk_store, profiles, playbooks, embedder)

    classifier_config = ClassifierConfig()
    registry = ToolRegistry()
    if research_provider is None and chat_model is not None:
        research_provider = ModelResearchProvider(chat_model)
    if research_provider is not None:
        register_builtin_tools(
            registry, research_provider, research_tool_name=classifier_config.research_tool_name
        )

    agents = InMemoryAgentStore()
    conversations = InMemoryConversationStore()
    trace_store = TraceStore()

    loop: ToolExecutionLoop | None = None
    if chat_model is not None and classifier_model is not None:
        loop = ToolExecutionLoop(
            model=chat_model,
            classifier=IntentClassifier(classifier_model, classifier_config),
            retriever=retriever,
            tool_registry=registry,
            agents=agents,
            conversations=conversations,
            trace_store=trace_store,
            blobs=blobs,
            ingest_pipeline=ingest_pipeline,
            config=agent_config or AgentConfig(),
        )

    return Services(
        settings=settings,
        agents=agents,
        documents=documents,
        blobs=blobs,
        chunk_store=chunk_store,
        profiles=profiles,
        playbooks=playbooks,
        conversations=conversations,
        embedder=embedder,
        ingest_pipeline=ingest_pipeline,
        ingest_service=DocumentIngestService(ingest_pipeline, documents, blobs, agents),
        retriever=retriever,
        registry=registry,
        trace_store=trace_store,
        loop=loop,
    )
