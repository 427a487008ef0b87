"""Tool registry and per-agent tool catalog built on Pydantic v2 models."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field

from agent_pipeline.types import ToolTrace

_TOOL_NAMESPACE = uuid.UUID("6f1c2d0e-3a57-4c1b-9e0f-5d1b7a2c9e44")


def stable_tool_id(name: str) -> str:
    """Deterministic identifier for tools registered without one."""
    return str(uuid.uuid5(_TOOL_NAMESPACE, name))


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], str]
    tool_id: str = ""
    tags: list[str] = Field(default_factory=list)

    def model_post_init(self, context: Any) -> None:
        if not self.tool_id:
            self.tool_id = stable_tool_id(self.name)

    def invoke(self, payload: dict[str, Any]) -> str:
        data = self.args_schema.model_validate(payload)
        return self.handler(data)

    def descriptor(self) -> "ToolDescriptor":
        return ToolDescriptor(
            id=self.tool_id,
            name=self.name,
            description=self.description,
            parameter_schema=self.args_schema.model_json_schema(),
        )


@dataclass(slots=True)
class ToolDescriptor:
    """Tool description exchanged with the model provider."""

    id: str
    name: str
    description: str
    parameter_schema: dict[str, Any] = field(default_factory=dict)


class ToolCatalog:
    """Explicit name->identifier lookup for the tools enabled on one agent.

    Built by the caller for each turn and handed to both the classifier and the
    execution loop, so both sides agree on identifiers.
    """

    def __init__(self, descriptors: Iterable[ToolDescriptor]) -> None:
        self._by_id: dict[str, ToolDescriptor] = {}
        self._id_by_name: dict[str, str] = {}
        for descriptor in descriptors:
            self._by_id[descriptor.id] = descriptor
            self._id_by_name[descriptor.name.lower()] = descriptor.id

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(self._by_id.values())

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._by_id

    @property
    def name_to_id(self) -> dict[str, str]:
        return {descriptor.name: descriptor.id for descriptor in self._by_id.values()}

    def get(self, tool_id: str) -> ToolDescriptor | None:
        return self._by_id.get(tool_id)

    def id_for_name(self, name: str) -> str | None:
        return self._id_by_name.get(name.lower())

    def resolve(self, reference: str) -> str | None:
        """Map an identifier or display name to the identifier, if enabled."""
        if reference in self._by_id:
            return reference
        return self.id_for_name(reference)


class ToolRegistry:
    """Stores tool specs and exports LangChain-compatible tool objects."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.tool_id in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        if any(existing.name == spec.name for existing in self._tools.values()):
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.tool_id] = spec

    def get(self, tool_id: str) -> ToolSpec:
        spec = self._tools.get(tool_id)
        if spec is None:
            raise KeyError(f"Unknown tool: {tool_id}")
        return spec

    def execute(
        self,
        tool_id: str,
        payload: dict[str, Any],
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> str:
        """Run one tool; `observer`, when given, receives its `ToolTrace`."""
        return self._execute_spec(self.get(tool_id), payload, observer)

    def catalog(self, enabled_ids: Iterable[str] | None = None) -> ToolCatalog:
        """Catalog of the enabled tools; unknown identifiers are ignored."""
        specs = self.specs(enabled_ids)
        return ToolCatalog(spec.descriptor() for spec in specs)

    def as_langchain_tools(self, enabled_ids: Iterable[str] | None = None) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self.specs(enabled_ids):
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    func=self._build_function(spec),
                )
            )
        return tools

    def specs(self, enabled_ids: Iterable[str] | None = None) -> list[ToolSpec]:
        if enabled_ids is None:
            return list(self._tools.values())
        return [self._tools[tool_id] for tool_id in enabled_ids if tool_id in self._tools]

    def _build_function(self, spec: ToolSpec) -> Callable[..., str]:
        def _callable(**kwargs: Any) -> str:
            return self._execute_spec(spec, kwargs)

        return _callable

    def _execute_spec(
        self,
        spec: ToolSpec,
        payload: dict[str, Any],
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> str:
        start = perf_counter()
        output = spec.invoke(payload)
        latency_ms = (perf_counter() - start) * 1000.0

        if observer is not None:
            observer(
                ToolTrace(
                    name=spec.name,
                    input_payload=payload,
                    output_preview=output[:320],
                    latency_ms=latency_ms,
                )
            )
        return output
