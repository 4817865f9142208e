from __future__ import annotations

import pytest
from support import SleepRecorder

from tether.tools.registry import LocalTool, ToolRegistry


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry()

    def add(*, a: int, b: int) -> int:
        return a + b

    async def echo(*, text: str = "") -> str:
        return text

    registry.register(
        LocalTool(
            "add",
            add,
            description="Add two integers",
            parameters={
                "type": "object",
                "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}},
                "required": ["a", "b"],
            },
        )
    )
    registry.register(LocalTool("echo", echo, description="Echo text back"))
    return registry
