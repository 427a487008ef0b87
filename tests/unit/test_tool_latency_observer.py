from pydantic import BaseModel

from agent_pipeline.agent.registry import ToolRegistry, ToolSpec


class EchoInput(BaseModel):
    text: str


def test_tool_observer_captures_latency_and_payload() -> None:
    registry = ToolRegistry()

    def _handler(data: EchoInput) -> str:
        return data.text.upper()

    spec = ToolSpec(
        name="echo",
        description="uppercase",
        args_schema=EchoInput,
        handler=_handler,
    )
    registry.register(spec)

    observed = []
    result = registry.execute(spec.tool_id, {"text": "hello"}, observed.append)
    registry.execute(spec.tool_id, {"text": "again"})

    assert result == "HELLO"
    assert len(observed) == 1
    assert observed[0].name == "echo"
    assert observed[0].input_payload == {"text": "hello"}
    assert observed[0].output_preview == "HELLO"
    assert observed[0].latency_ms >= 0.0
