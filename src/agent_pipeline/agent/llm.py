"""Chat model wrapper with tool binding, fallbacks and error mapping."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage

from agent_pipeline.config import Settings
from agent_pipeline.errors import ModelProviderError
from agent_pipeline.obs.logging import get_logger

logger = get_logger(__name__)


class ChatModel:
    """Primary chat model plus optional fallbacks.

    Tools are bound to every model in the chain so a fallback can honour the
    same function-calling contract. Provider exceptions surface as
    `ModelProviderError`.
    """

    def __init__(self, primary: Any, fallbacks: Sequence[Any] = ()) -> None:
        self.primary = primary
        self.fallbacks = list(fallbacks)

    def invoke(self, messages: list[BaseMessage], tools: Sequence[Any] | None = None) -> AIMessage:
        runnable = self._runnable(tools)
        try:
            response = runnable.invoke(messages)
        except Exception as exc:
            logger.error("model_call_failed", error=str(exc), error_type=type(exc).__name__)
            raise ModelProviderError(f"Model provider call failed: {exc}") from exc
        if isinstance(response, AIMessage):
            return response
        return AIMessage(content=content_text(response))

    def _runnable(self, tools: Sequence[Any] | None) -> Any:
        models = [self.primary, *self.fallbacks]
        if tools:
            models = [model.bind_tools(list(tools)) for model in models]
        primary, *rest = models
        if rest:
            return primary.with_fallbacks(rest)
        return primary


def content_text(message: Any) -> str:
    """Flatten string or content-block message content to plain text."""
    if isinstance(message, str):
        return message
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content)


def create_chat_model(
    settings: Settings,
    *,
    model: str | None = None,
    temperature: float = 0.7,
    with_fallback: bool = True,
) -> ChatModel:
    """Build an OpenAI-backed `ChatModel` with explicit timeouts and retries."""
    from langchain_openai import ChatOpenAI

    if not settings.openai_api_key:
        raise ModelProviderError("Model provider credentials are not configured")

    def _build(name: str) -> ChatOpenAI:
        return ChatOpenAI(
            model=name,
            temperature=temperature,
            api_key=settings.openai_api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
        )

    primary_name = model or settings.chat_model
    fallbacks = []
    if with_fallback and settings.fallback_chat_model and settings.fallback_chat_model != primary_name:
        fallbacks.append(_build(settings.fallback_chat_model))
    return ChatModel(_build(primary_name), fallbacks)
