"""FastAPI entrypoint for ingestion and conversation endpoints."""

from __future__ import annotations

import base64
import binascii
import uuid
from dataclasses import asdict
from typing import Any

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from agent_pipeline.config import RetrievalConfig
from agent_pipeline.container import Services, build_services
from agent_pipeline.errors import (
    AuthenticationError,
    EmbeddingProviderError,
    ExtractionError,
    ModelProviderError,
    NotFoundError,
    PipelineError,
    ValidationError,
)
from agent_pipeline.obs.logging import get_logger, setup_logging
from agent_pipeline.retrieval.knowledge import CompanyProfile, Playbook
from agent_pipeline.storage.agents import AgentProfile
from agent_pipeline.types import Attachment, ConverseRequest, SourceDocument

logger = get_logger(__name__)

_GENERIC_SERVER_ERRORS = {
    EmbeddingProviderError.code: "Embedding provider unavailable, please retry later",
    ModelProviderError.code: "Model provider unavailable, please retry later",
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IngestRequest(_CamelModel):
    document_id: str = Field(min_length=1)
    company_id: str = Field(min_length=1)
    agent_id: str | None = None
    storage_locator: str = Field(min_length=1)


class IngestResponse(_CamelModel):
    success: bool = True
    chunk_count: int
    embedding_dimensions: int


class AttachmentPayload(_CamelModel):
    name: str = Field(min_length=1)
    storage_locator: str = Field(min_length=1)
    mime_type: str = "application/octet-stream"
    size: int = Field(default=0, ge=0)


class ConverseBody(_CamelModel):
    message: str = Field(min_length=1)
    agent_id: str = Field(min_length=1)
    conversation_id: str | None = None
    user_id: str = Field(min_length=1)
    company_id: str = Field(min_length=1)
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class CitationPayload(_CamelModel):
    tier: str
    content: str
    relevance_score: float | None = None
    source: dict[str, Any] = Field(default_factory=dict)


class ContextMetadata(_CamelModel):
    used_context: bool
    citations: list[CitationPayload]


class ConverseResponse(_CamelModel):
    reply: str
    context_metadata: ContextMetadata
    conversation_id: str | None = None
    action_type: str
    tool_results: list[dict[str, Any]] = Field(default_factory=list)


class AgentBody(_CamelModel):
    agent_id: str | None = None
    company_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    instructions: str | None = None
    enabled_tool_ids: list[str] = Field(default_factory=list)
    retrieval_config: RetrievalConfig = Field(default_factory=RetrievalConfig)


class DocumentBody(_CamelModel):
    document_id: str | None = None
    company_id: str = Field(min_length=1)
    agent_id: str | None = None
    name: str = Field(min_length=1)
    mime_type: str = "text/plain"
    storage_locator: str | None = None
    content_base64: str | None = None


class PlaybookBody(_CamelModel):
    company_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    status: str = "complete"


def create_app(services: Services | None = None) -> FastAPI:
    """Build the API around a service bundle (defaults from the environment)."""
    services = services or build_services()
    app = FastAPI(title="Agent Conversation Pipeline", version="0.1.0")
    app.state.services = services

    def require_token(authorization: str | None = Header(default=None)) -> None:
        token = services.settings.api_token
        if token and authorization != f"Bearer {token}":
            raise AuthenticationError("Missing or invalid bearer token")

    @app.exception_handler(PipelineError)
    async def _pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
        body = exc.to_dict()
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
            body = {"error": _GENERIC_SERVER_ERRORS.get(exc.code, "Internal server error")}
        if request.url.path == "/ingest":
            body = {"success": False, **body}
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        error = f"{location}: {message}" if location else message
        return JSONResponse(status_code=400, content={"error": error})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request_crashed", path=request.url.path, error_type=type(exc).__name__)
        body: dict[str, Any] = {"error": "Internal server error"}
        if request.url.path == "/ingest":
            body = {"success": False, **body}
        return JSONResponse(status_code=500, content=body)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": services.loop is not None,
            "embedder": type(services.embedder).__name__,
            "chunk_count": len(services.chunk_store),
        }

    @app.get("/metrics", dependencies=[Depends(require_token)])
    def metrics() -> dict[str, Any]:
        return services.trace_store.summary()

    @app.get("/traces", dependencies=[Depends(require_token)])
    def traces(limit: int = 20) -> dict[str, Any]:
        return {"items": [asdict(record) for record in services.trace_store.list_recent(limit=limit)]}

    @app.get("/traces/{trace_id}", dependencies=[Depends(require_token)])
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = services.trace_store.get(trace_id)
        except KeyError as exc:
            raise NotFoundError("trace", trace_id) from exc
        return asdict(record)

    @app.get("/tools", dependencies=[Depends(require_token)])
    def tools() -> dict[str, Any]:
        return {
            "items": [
                {
                    "id": descriptor.id,
                    "name": descriptor.name,
                    "description": descriptor.description,
                    "parameterSchema": descriptor.parameter_schema,
                }
                for descriptor in services.registry.catalog()
            ]
        }

    @app.post("/agents", dependencies=[Depends(require_token)])
    def register_agent(body: AgentBody) -> dict[str, Any]:
        unknown = [tool_id for tool_id in body.enabled_tool_ids if tool_id not in services.registry.catalog()]
        if unknown:
            raise ValidationError(f"Unknown tool ids: {', '.join(unknown)}")
        agent = AgentProfile(
            agent_id=body.agent_id or str(uuid.uuid4()),
            company_id=body.company_id,
            name=body.name,
            description=body.description,
            instructions=body.instructions,
            enabled_tool_ids=body.enabled_tool_ids,
            retrieval=body.retrieval_config,
        )
        services.agents.save(agent)
        return {"agentId": agent.agent_id}

    @app.post("/documents", dependencies=[Depends(require_token)])
    def register_document(body: DocumentBody) -> dict[str, Any]:
        document_id = body.document_id or str(uuid.uuid4())
        locator = body.storage_locator or f"{body.company_id}/{document_id}"
        size = 0
        if body.content_base64 is not None:
            try:
                raw = base64.b64decode(body.content_base64, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValidationError("contentBase64 is not valid base64") from exc
            services.blobs.write(locator, raw)
            size = len(raw)
        services.documents.save(
            SourceDocument(
                document_id=document_id,
                name=body.name,
                mime_type=body.mime_type,
                size=size,
                company_id=body.company_id,
                agent_id=body.agent_id,
                storage_locator=locator,
            )
        )
        return {"documentId": document_id, "storageLocator": locator}

    @app.put("/companies/{company_id}/profile", dependencies=[Depends(require_token)])
    def save_company_profile(company_id: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            profile = CompanyProfile.model_validate({**body, "company_id": company_id})
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid company profile: {exc.errors()[0]['msg']}") from exc
        services.profiles.save(profile)
        return {"companyId": company_id, "sections": len(profile.sections())}

    @app.post("/playbooks", dependencies=[Depends(require_token)])
    def add_playbook(body: PlaybookBody) -> dict[str, Any]:
        playbook = Playbook(
            playbook_id=str(uuid.uuid4()),
            company_id=body.company_id,
            title=body.title,
            content=body.content,
            status=body.status,
        )
        services.playbooks.add(playbook)
        return {"playbookId": playbook.playbook_id}

    @app.post(
        "/ingest",
        response_model=IngestResponse,
        dependencies=[Depends(require_token)],
    )
    def ingest(body: IngestRequest) -> IngestResponse:
        try:
            result = services.ingest_service.ingest_document(
                body.document_id,
                body.company_id,
                body.storage_locator,
                agent_id=body.agent_id,
            )
        except ExtractionError as exc:
            logger.info("ingest_rejected", document_id=body.document_id, reason=exc.reason)
            raise
        return IngestResponse(
            chunk_count=result.chunk_count,
            embedding_dimensions=result.embedding_dimensions,
        )

    @app.post(
        "/converse",
        response_model=ConverseResponse,
        dependencies=[Depends(require_token)],
    )
    def converse(body: ConverseBody) -> ConverseResponse:
        if services.loop is None:
            raise ModelProviderError("Model provider credentials are not configured")
        reply = services.loop.converse(
            ConverseRequest(
                message=body.message,
                agent_id=body.agent_id,
                user_id=body.user_id,
                company_id=body.company_id,
                conversation_id=body.conversation_id,
                attachments=[
                    Attachment(
                        name=item.name,
                        storage_locator=item.storage_locator,
                        mime_type=item.mime_type,
                        size=item.size,
                    )
                    for item in body.attachments
                ],
            )
        )
        return ConverseResponse(
            reply=reply.reply,
            context_metadata=ContextMetadata(
                used_context=reply.used_context,
                citations=[
                    CitationPayload(
                        tier=citation.tier.value,
                        content=citation.content,
                        relevance_score=citation.relevance_score,
                        source=citation.source,
                    )
                    for citation in reply.citations
                ],
            ),
            conversation_id=reply.conversation_id,
            action_type=reply.plan.action_type.value,
            tool_results=[result.to_dict() for result in reply.tool_results],
        )

    return app


def create_default_app() -> FastAPI:
    services = build_services()
    setup_logging(services.settings.log_level, json_format=services.settings.log_json)
    return create_app(services)
