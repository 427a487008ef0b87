"""Built-in tools and adapters for external tool providers."""

from __future__ import annotations

import json
from typing import Any, Literal, Protocol

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from agent_pipeline.agent.llm import ChatModel, content_text
from agent_pipeline.agent.registry import ToolRegistry, ToolSpec

ResearchDepth = Literal["quick", "detailed", "comprehensive"]


class ResearchInput(BaseModel):
    query: str = Field(min_length=1)
    depth: ResearchDepth = "detailed"
    include_sources: bool = True


class ProviderCallInput(BaseModel):
    action: str = Field(min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)


class ResearchProvider(Protocol):
    def research(self, query: str, *, depth: str, include_sources: bool) -> str:
        """Return a research brief for `query`."""


class ExternalToolProvider(Protocol):
    """An opaque capability such as calendar, drive or email access."""

    name: str
    description: str

    def invoke(self, action: str, parameters: dict[str, Any]) -> Any:
        """Run `action` with `parameters` and return a JSON-serializable result."""


_DEPTH_GUIDANCE = {
    "quick": "Give a short overview in a few bullet points.",
    "detailed": "Give a structured briefing with key findings and context.",
    "comprehensive": (
        "Give an in-depth report covering background, current state, key players, "
        "trends, risks and outlook."
    ),
}


class ModelResearchProvider:
    """Research backed by a chat model's own knowledge."""

    def __init__(self, model: ChatModel) -> None:
        self.model = model

    def research(self, query: str, *, depth: str, include_sources: bool) -> str:
        instructions = [
            "You are a research analyst.",
            _DEPTH_GUIDANCE.get(depth, _DEPTH_GUIDANCE["detailed"]),
            "State clearly when information may be out of date.",
        ]
        if include_sources:
            instructions.append("List the sources or publications your findings rely on.")
        response = self.model.invoke(
            [SystemMessage(content=" ".join(instructions)), HumanMessage(content=query)]
        )
        return content_text(response)


def register_builtin_tools(
    registry: ToolRegistry,
    research_provider: ResearchProvider,
    *,
    research_tool_id: str | None = None,
    research_tool_name: str = "web_research",
) -> ToolSpec:
    """Register the research tool and return its spec."""

    def _research(input_data: ResearchInput) -> str:
        return research_provider.research(
            input_data.query,
            depth=input_data.depth,
            include_sources=input_data.include_sources,
        )

    spec = ToolSpec(
        name=research_tool_name,
        description=(
            "Research current information on the web: news, market analysis, industry "
            "trends and competitors."
        ),
        args_schema=ResearchInput,
        handler=_research,
        tool_id=research_tool_id or "",
        tags=["research"],
    )
    registry.register(spec)
    return spec


def register_provider_tool(
    registry: ToolRegistry,
    provider: ExternalToolProvider,
    *,
    tool_id: str | None = None,
) -> ToolSpec:
    """Expose an external provider as a tool taking `{action, parameters}`."""

    def _call(input_data: ProviderCallInput) -> str:
        result = provider.invoke(input_data.action, input_data.parameters)
        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False, default=str)

    spec = ToolSpec(
        name=provider.name,
        description=provider.description,
        args_schema=ProviderCallInput,
        handler=_call,
        tool_id=tool_id or "",
        tags=["provider"],
    )
    registry.register(spec)
    return spec
