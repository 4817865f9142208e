import asyncio
import json

import httpx
import pytest

from tether.errors import ToolServerError
from tether.messages import ToolCallRequest
from tether.tools.invoker import invoke
from tether.tools.registry import LocalTool, ToolRegistry


def _payload(message) -> dict:
    assert message.role == "tool"
    return json.loads(message.content)


@pytest.mark.asyncio
async def test_successful_call_serializes_result(registry: ToolRegistry) -> None:
    call = ToolCallRequest(id="call_1", name="add", arguments='{"a": 2, "b": 3}')

    message = await invoke(call, registry)

    assert message.tool_call_id == "call_1"
    assert message.name == "add"
    assert message.content == "5"


@pytest.mark.asyncio
async def test_blank_arguments_mean_empty_object(registry: ToolRegistry) -> None:
    message = await invoke(ToolCallRequest(id="c", name="echo", arguments="   "), registry)

    assert message.content == '""'


@pytest.mark.asyncio
async def test_none_result_becomes_null() -> None:
    registry = ToolRegistry()
    registry.register(LocalTool("noop", lambda: None))

    message = await invoke(ToolCallRequest(id="c", name="noop"), registry)

    assert message.content == "null"


@pytest.mark.asyncio
async def test_unknown_tool_lists_available_tools(registry: ToolRegistry) -> None:
    message = await invoke(ToolCallRequest(id="c", name="weather", arguments="{}"), registry)

    payload = _payload(message)
    assert message.name == "weather"
    assert payload["error"] is True
    assert payload["kind"] == "tool_not_found"
    assert "Tool 'weather' not found. Available tools: add, echo" in payload["message"]


@pytest.mark.asyncio
async def test_invalid_json_arguments_never_reach_the_tool() -> None:
    called = False

    def handler(**kwargs) -> str:
        nonlocal called
        called = True
        return "ran"

    registry = ToolRegistry()
    registry.register(LocalTool("probe", handler))

    message = await invoke(ToolCallRequest(id="c", name="probe", arguments="{not json"), registry)

    payload = _payload(message)
    assert payload["kind"] == "invalid_tool_args"
    assert "Invalid JSON arguments for tool probe" in payload["message"]
    assert called is False


@pytest.mark.asyncio
async def test_non_object_arguments_are_rejected(registry: ToolRegistry) -> None:
    message = await invoke(ToolCallRequest(id="c", name="echo", arguments="[1, 2]"), registry)

    payload = _payload(message)
    assert payload["kind"] == "invalid_tool_args"
    assert "got list" in payload["message"]


@pytest.mark.asyncio
async def test_schema_violation_never_reaches_the_tool() -> None:
    called = False

    def add(*, a: int, b: int) -> int:
        nonlocal called
        called = True
        return a + b

    registry = ToolRegistry()
    registry.register(
        LocalTool(
            "add",
            add,
            parameters={
                "type": "object",
                "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}},
                "required": ["a", "b"],
            },
        )
    )

    message = await invoke(ToolCallRequest(id="c", name="add", arguments='{"a": "one"}'), registry)

    payload = _payload(message)
    assert payload["kind"] == "invalid_tool_args"
    assert "do not match its schema" in payload["message"]
    assert called is False


@pytest.mark.asyncio
async def test_malformed_schema_skips_validation() -> None:
    registry = ToolRegistry()
    registry.register(
        LocalTool("loose", lambda **kwargs: sorted(kwargs), parameters={"type": "not-a-type"})
    )

    message = await invoke(ToolCallRequest(id="c", name="loose", arguments='{"x": 1}'), registry)

    assert json.loads(message.content) == ["x"]


@pytest.mark.asyncio
async def test_capability_failure_becomes_tool_server_error_payload() -> None:
    async def broken(**kwargs) -> None:
        request = httpx.Request("POST", "http://127.0.0.1:8080/tools/broken/call")
        response = httpx.Response(500, request=request, json={"error": "disk full"})
        raise ToolServerError("HTTP 500 Internal Server Error", url=str(request.url), response=response)

    registry = ToolRegistry()
    registry.register(LocalTool("broken", broken))

    message = await invoke(ToolCallRequest(id="c", name="broken"), registry)

    payload = _payload(message)
    assert payload["kind"] == "tool_server_error"
    assert payload["message"].startswith("Error in tool broken: ")
    assert "disk full" in payload["message"]


@pytest.mark.asyncio
async def test_unexpected_exception_uses_tool_server_default_kind() -> None:
    def explode() -> None:
        raise ValueError("bad state")

    registry = ToolRegistry()
    registry.register(LocalTool("explode", explode))

    message = await invoke(ToolCallRequest(id="c", name="explode"), registry)

    payload = _payload(message)
    assert payload["kind"] == "tool_server_error"
    assert "bad state" in payload["message"]


@pytest.mark.asyncio
async def test_unsupported_call_type_skips_registry() -> None:
    class _ExplodingRegistry(ToolRegistry):
        def get(self, name):  # type: ignore[override]
            raise AssertionError("registry must not be consulted")

    message = await invoke(
        ToolCallRequest(id="c", name="add", arguments="{}", type="retrieval"),
        _ExplodingRegistry(),
    )

    payload = _payload(message)
    assert payload["error"] is True
    assert "Unsupported tool call type: retrieval" in payload["message"]


@pytest.mark.asyncio
async def test_large_results_are_not_truncated() -> None:
    registry = ToolRegistry()
    registry.register(LocalTool("big", lambda: "x" * 5000))

    message = await invoke(ToolCallRequest(id="c", name="big"), registry)

    assert json.loads(message.content) == "x" * 5000


@pytest.mark.asyncio
async def test_slow_tool_does_not_block_sibling(registry: ToolRegistry) -> None:
    async def slow() -> str:
        await asyncio.sleep(0.05)
        return "slow"

    registry.register(LocalTool("slow", slow))

    results = await asyncio.gather(
        invoke(ToolCallRequest(id="1", name="slow"), registry),
        invoke(ToolCallRequest(id="2", name="missing"), registry),
    )

    assert [m.tool_call_id for m in results] == ["1", "2"]
    assert results[0].content == '"slow"'
    assert _payload(results[1])["kind"] == "tool_not_found"
