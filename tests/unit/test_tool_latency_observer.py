import asyncio

from pydantic import BaseModel

from grant_agent.agent.registry import ToolDefinition, ToolRegistry
from grant_agent.types import Specialist


class EchoInput(BaseModel):
    text: str


async def _upper(data: EchoInput) -> dict[str, str]:
    return {"text": data.text.upper()}


def test_tool_observer_captures_latency_and_payload() -> None:
    registry = ToolRegistry(
        [
            ToolDefinition(
                name="echo",
                description="uppercase",
                args_schema=EchoInput,
                handler=_upper,
                specialist=Specialist(name="Echo", module="Test"),
                group="test",
            )
        ]
    )

    observed = []
    result = asyncio.run(registry.execute("echo", {"text": "hello"}, observer=observed.append))

    assert result.payload == {"text": "HELLO"}
    assert len(observed) == 1
    assert observed[0].name == "echo"
    assert observed[0].input_payload == {"text": "hello"}
    assert observed[0].latency_ms >= 0.0
    assert observed[0].success
    assert "HELLO" in observed[0].output_preview


def test_observer_sees_unknown_tool_failure() -> None:
    registry = ToolRegistry([])

    observed = []
    asyncio.run(registry.execute("ghost", {"a": 1}, observer=observed.append))

    assert observed[0].name == "ghost"
    assert observed[0].success is False
