from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from langchain_core.messages import AIMessage
from pydantic import BaseModel

from agent_pipeline.agent.llm import ChatModel
from agent_pipeline.agent.registry import ToolSpec
from agent_pipeline.config import AgentConfig, Settings
from agent_pipeline.container import Services, build_services
from agent_pipeline.ingest.embedder import HashingEmbedder


class ScriptedChatModel:
    """Stand-in for a LangChain chat model that replays scripted replies."""

    def __init__(self, responses: list[Any] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[list[Any]] = []
        self.bound_tools: list[list[str]] = []

    def bind_tools(self, tools: list[Any]) -> "ScriptedChatModel":
        self.bound_tools.append([tool.name for tool in tools])
        return self

    def invoke(self, messages: list[Any]) -> AIMessage:
        self.calls.append(list(messages))
        if not self.responses:
            raise AssertionError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return AIMessage(content=response)
        return response


class StaticResearchProvider:
    def __init__(self) -> None:
        self.queries: list[tuple[str, str]] = []

    def research(self, query: str, *, depth: str, include_sources: bool) -> str:
        self.queries.append((query, depth))
        return f"Research brief for {query} ({depth})"


class FailingEmbedder(HashingEmbedder):
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        raise RuntimeError("embedding quota exceeded")

    def embed_query(self, text: str) -> list[float]:
        raise RuntimeError("embedding quota exceeded")


class QueryInput(BaseModel):
    query: str


def build_pdf(lines: list[str]) -> bytes:
    """Single-page PDF with one Helvetica text line per entry."""
    operations = ["BT", "/F1 14 Tf", "72 720 Td", "18 TL"]
    for line in lines:
        escaped = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        operations.append(f"({escaped}) Tj T*")
    operations.append("ET")
    stream = "\n".join(operations).encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R"
        b" /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    output = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(output))
        output += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_offset = len(output)
    output += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        output += b"%010d 00000 n \n" % offset
    output += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref_offset,
    )
    return bytes(output)


def echo_tool(name: str, handler: Callable[[QueryInput], str] | None = None, **kwargs: Any) -> ToolSpec:
    return ToolSpec(
        name=name,
        description=f"{name} test tool",
        args_schema=QueryInput,
        handler=handler or (lambda data: f"{name}: {data.query}"),
        **kwargs,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, openai_api_key=None, api_token=None)


@pytest.fixture
def scripted_model() -> type[ScriptedChatModel]:
    return ScriptedChatModel


@pytest.fixture
def research_provider() -> StaticResearchProvider:
    return StaticResearchProvider()


@pytest.fixture
def failing_embedder() -> FailingEmbedder:
    return FailingEmbedder()


@pytest.fixture
def make_tool() -> Callable[..., ToolSpec]:
    return echo_tool


@pytest.fixture
def make_pdf() -> Callable[[list[str]], bytes]:
    return build_pdf


@pytest.fixture
def make_services(
    settings: Settings, research_provider: StaticResearchProvider
) -> Callable[..., Services]:
    def _factory(
        chat: ScriptedChatModel,
        classifier: ScriptedChatModel,
        *,
        agent_config: AgentConfig | None = None,
        **overrides: Any,
    ) -> Services:
        return build_services(
            overrides.get("settings", settings),
            chat_model=ChatModel(chat),
            classifier_model=ChatModel(classifier),
            embedder=overrides.get("embedder") or HashingEmbedder(),
            research_provider=overrides.get("research_provider", research_provider),
            agent_config=agent_config,
        )

    return _factory
