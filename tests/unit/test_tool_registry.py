import pytest
from pydantic import BaseModel, Field, ValidationError

from agent_pipeline.agent.registry import ToolRegistry, ToolSpec, stable_tool_id


class EchoInput(BaseModel):
    value: int = Field(ge=1)


def _spec(name: str = "echo", **kwargs) -> ToolSpec:
    def _handler(data: EchoInput) -> str:
        return str(data.value)

    return ToolSpec(
        name=name,
        description="echo positive int",
        args_schema=EchoInput,
        handler=_handler,
        **kwargs,
    )


def test_tool_registry_validation() -> None:
    registry = ToolRegistry()
    spec = _spec()
    registry.register(spec)

    assert registry.execute(spec.tool_id, {"value": 3}) == "3"

    with pytest.raises(ValidationError):
        registry.execute(spec.tool_id, {"value": 0})


def test_duplicate_tool_registration_rejected() -> None:
    registry = ToolRegistry()
    registry.register(_spec(tool_id="a1"))

    with pytest.raises(ValueError):
        registry.register(_spec(tool_id="a1"))
    with pytest.raises(ValueError):
        registry.register(_spec(tool_id="b2"))


def test_tool_ids_default_to_stable_uuid() -> None:
    assert _spec().tool_id == stable_tool_id("echo")
    assert _spec(tool_id="caller-uuid").tool_id == "caller-uuid"


def test_catalog_only_contains_enabled_tools() -> None:
    registry = ToolRegistry()
    registry.register(_spec("calendar", tool_id="cal-1"))
    registry.register(_spec("drive", tool_id="drv-1"))

    catalog = registry.catalog(["drv-1", "missing"])

    assert len(catalog) == 1
    assert "drv-1" in catalog
    assert catalog.name_to_id == {"drive": "drv-1"}
    assert catalog.resolve("Drive") == "drv-1"
    assert catalog.resolve("cal-1") is None
    descriptor = catalog.get("drv-1")
    assert descriptor.parameter_schema["properties"]["value"]["minimum"] == 1


def test_langchain_tools_follow_enabled_ids() -> None:
    registry = ToolRegistry()
    registry.register(_spec("calendar", tool_id="cal-1"))
    registry.register(_spec("drive", tool_id="drv-1"))

    tools = registry.as_langchain_tools(["cal-1"])

    assert [tool.name for tool in tools] == ["calendar"]
    assert tools[0].invoke({"value": 7}) == "7"


def test_unknown_tool_id_raises_key_error() -> None:
    with pytest.raises(KeyError):
        ToolRegistry().execute("nope", {})
