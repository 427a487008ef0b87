"""Error taxonomy for the conversation pipeline."""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base pipeline exception carrying an HTTP status and machine code."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}


class ValidationError(PipelineError):
    """Malformed input, rejected before any provider call."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(PipelineError):
    status_code = 401
    code = "AUTH_REQUIRED"


class NotFoundError(PipelineError):
    """A referenced agent, document or blob does not exist."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class ExtractionError(PipelineError):
    """Document unreadable or rejected by the quality gate.

    The message is the user-facing failure notice; the document is left
    unprocessed.
    """

    status_code = 422
    code = "EXTRACTION_FAILED"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(message)


class EmbeddingProviderError(PipelineError):
    status_code = 500
    code = "EMBEDDING_PROVIDER_ERROR"


class RetrievalDegraded(PipelineError):
    """One retrieval tier failed; absorbed by the retriever and logged."""

    code = "RETRIEVAL_DEGRADED"

    def __init__(self, tier: str, cause: Exception) -> None:
        self.tier = tier
        self.cause = cause
        super().__init__(f"{tier} retrieval failed: {cause}")


class ToolInvocationError(PipelineError):
    """Failure scoped to one tool call; forwarded to the model as a result."""

    code = "TOOL_ERROR"

    def __init__(self, message: str, *, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class ModelProviderError(PipelineError):
    """The LLM provider failed; fatal for the turn."""

    status_code = 500
    code = "MODEL_PROVIDER_ERROR"
