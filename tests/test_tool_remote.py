import json

import httpx
import pytest

from tether.errors import ClassifiedError, ErrorKind, ToolServerError, classify
from tether.tools.registry import ToolRegistry
from tether.tools.remote import ToolServerClient, load_remote_tools

TOOL_SERVER = "http://127.0.0.1:8080"

DESCRIPTIONS = {
    "get_weather": {
        "description": "Current weather for a city",
        "parametersSchema": {"type": "object", "properties": {"city": {"type": "string"}}},
    },
    "list_files": {"description": "List files"},
}


def _server(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if request.method == "GET" and path == "/tools":
        return httpx.Response(200, json=list(DESCRIPTIONS))
    if request.method == "GET" and path.startswith("/tools/"):
        name = path.removeprefix("/tools/")
        if name in DESCRIPTIONS:
            return httpx.Response(200, json=DESCRIPTIONS[name])
        return httpx.Response(404, json={"error": f"Unknown tool {name}"})
    if request.method == "POST" and path == "/tools/get_weather/call":
        params = json.loads(request.content)["parameters"]
        return httpx.Response(200, json={"result": {"city": params["city"], "temp_c": 21}})
    return httpx.Response(500, json={"error": "unexpected route"})


def _client(handler=_server) -> ToolServerClient:
    return ToolServerClient(TOOL_SERVER, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_load_remote_tools_registers_in_server_order() -> None:
    registry = ToolRegistry()

    async with _client() as client:
        loaded = await load_remote_tools(client, registry)

    assert [descriptor.name for descriptor in loaded] == ["get_weather", "list_files"]
    assert registry.names() == ["get_weather", "list_files"]
    weather = registry.get("get_weather")
    assert weather is not None
    assert weather.source == "remote"
    assert weather.schema["properties"] == {"city": {"type": "string"}}
    files = registry.get("list_files")
    assert files is not None
    assert files.schema == {"type": "object", "properties": {}}


@pytest.mark.asyncio
async def test_remote_tool_posts_parameters_and_returns_result() -> None:
    registry = ToolRegistry()

    async with _client() as client:
        await load_remote_tools(client, registry)
        result = await registry.execute("get_weather", kwargs={"city": "Oslo"})

    assert result == {"city": "Oslo", "temp_c": 21}


@pytest.mark.asyncio
async def test_non_list_tool_index_aborts_loading() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"tools": ["a"]})

    async with _client(handler) as client:
        with pytest.raises(ClassifiedError) as exc_info:
            await load_remote_tools(client, ToolRegistry())

    error = exc_info.value
    assert error.kind is ErrorKind.TOOL_SERVER_ERROR
    assert error.message == f"Could not load tools. Is the tool server running at {TOOL_SERVER}?"
    assert "did not return a list of tool names" in (error.details or "")


@pytest.mark.asyncio
async def test_unreachable_server_aborts_loading_with_url() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(ClassifiedError) as exc_info:
            await load_remote_tools(client, ToolRegistry())

    assert exc_info.value.kind is ErrorKind.TOOL_SERVER_ERROR
    assert TOOL_SERVER in exc_info.value.message


@pytest.mark.asyncio
async def test_http_error_from_tool_call_is_tool_server_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, json={"message": "bad gateway upstream"})

    async with _client(handler) as client:
        with pytest.raises(ToolServerError) as exc_info:
            await client.call_tool("get_weather", {"city": "Oslo"})

    failure = exc_info.value
    assert failure.status == 502
    assert failure.url == f"{TOOL_SERVER}/tools/get_weather/call"

    error = classify(failure)
    assert error.kind is ErrorKind.TOOL_SERVER_ERROR
    assert error.retryable is False
    assert error.details == "bad gateway upstream"


@pytest.mark.asyncio
async def test_invalid_json_body_is_tool_server_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    async with _client(handler) as client:
        with pytest.raises(ToolServerError, match="Invalid JSON"):
            await client.call_tool("get_weather", {})
